import pytest

from models.errors import ValidationError
from models.user import validate_and_normalize
from services.auth_service import get_password_hash, verify_password

VALID = {"username": "jane_doe", "email": "Jane.Doe@Example.com", "password": "abcdef"}


def test_email_is_lowercased_and_trimmed():
    doc = validate_and_normalize({**VALID, "email": "  Jane.Doe@Example.COM "})
    assert doc["email"] == "jane.doe@example.com"


def test_create_applies_preference_defaults():
    doc = validate_and_normalize(VALID)
    assert doc["preferences"] == {
        "theme": "auto",
        "language": "ko",
        "notifications": {"email": True, "push": True},
    }


@pytest.mark.parametrize(
    "username",
    ["ab", "a" * 31, "jane doe", "jane-doe", "jané"],
)
def test_invalid_usernames(username):
    with pytest.raises(ValidationError) as exc:
        validate_and_normalize({**VALID, "username": username})
    assert exc.value.field == "username"


@pytest.mark.parametrize("username", ["abc", "a" * 30, "Jane_Doe_99"])
def test_valid_usernames(username):
    assert validate_and_normalize({**VALID, "username": username})["username"] == username


@pytest.mark.parametrize(
    "email",
    ["plainaddress", "jane@", "@example.com", "jane@example", "jane@example.info", "jane@@example.com"],
)
def test_invalid_emails(email):
    with pytest.raises(ValidationError) as exc:
        validate_and_normalize({**VALID, "email": email})
    assert exc.value.field == "email"


@pytest.mark.parametrize("email", ["a.b-c@mail.example.co.kr", "user_1@example.io"])
def test_valid_emails(email):
    assert validate_and_normalize({**VALID, "email": email})["email"] == email


def test_short_password_fails():
    with pytest.raises(ValidationError) as exc:
        validate_and_normalize({**VALID, "password": "abc12"})
    assert exc.value.field == "password"


def test_password_over_bcrypt_limit_fails():
    with pytest.raises(ValidationError) as exc:
        validate_and_normalize({**VALID, "password": "a" * 73})
    assert exc.value.field == "password"


def test_name_limit():
    with pytest.raises(ValidationError) as exc:
        validate_and_normalize({**VALID, "name": "n" * 51})
    assert exc.value.field == "name"


def test_invalid_theme_reports_nested_field():
    with pytest.raises(ValidationError) as exc:
        validate_and_normalize({**VALID, "preferences": {"theme": "neon"}})
    assert exc.value.field == "preferences.theme"


def test_partial_preferences_become_dotted_paths():
    doc = validate_and_normalize(
        {"preferences": {"theme": "dark", "notifications": {"push": False}}}, partial=True
    )
    assert doc == {"preferences.theme": "dark", "preferences.notifications.push": False}


def test_partial_keeps_plaintext_only_when_supplied():
    assert "password" not in validate_and_normalize({"name": "Jane"}, partial=True)
    assert validate_and_normalize({"password": "newpass"}, partial=True) == {"password": "newpass"}


def test_partial_rejects_null_email():
    with pytest.raises(ValidationError) as exc:
        validate_and_normalize({"email": None}, partial=True)
    assert exc.value.field == "email"


# --- Hashing ---

def test_hash_differs_from_plaintext_and_verifies():
    hashed = get_password_hash("abcdef")
    assert hashed != "abcdef"
    assert hashed.startswith("$2b$12$")
    assert verify_password("abcdef", hashed) is True
    assert verify_password("wrong", hashed) is False


def test_hashes_are_salted():
    assert get_password_hash("abcdef") != get_password_hash("abcdef")


def test_malformed_hash_never_verifies():
    assert verify_password("abcdef", "not-a-bcrypt-hash") is False
    assert verify_password("abcdef", "") is False
