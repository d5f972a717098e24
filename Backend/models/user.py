"""
User model: input validation, preferences, and the API response shape.
"""
import re
from datetime import datetime
from typing import Any, Literal, Mapping, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

from models.errors import ValidationError, validation_error_from_pydantic
from models.todo import as_utc

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30
PASSWORD_MIN_LENGTH = 6
# bcrypt only looks at the first 72 bytes
PASSWORD_MAX_BYTES = 72
NAME_MAX_LENGTH = 50

USERNAME_PATTERN = re.compile(r"[A-Za-z0-9_]+")
# local@domain.tld with a 2-3 character final label; ASCII word characters only
EMAIL_PATTERN = re.compile(r"\w+(?:[.-]\w+)*@\w+(?:[.-]\w+)*\.\w{2,3}", re.ASCII)

Theme = Literal["light", "dark", "auto"]

_camel = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NotificationPreferences(BaseModel):
    email: bool = True
    push: bool = True


class Preferences(BaseModel):
    theme: Theme = "auto"
    language: str = "ko"
    notifications: NotificationPreferences = Field(default_factory=NotificationPreferences)


def normalize_email(value: str) -> str:
    """Emails are stored and looked up lowercased."""
    return value.strip().lower()


class UserBase(BaseModel):
    model_config = _camel

    @field_validator("username", check_fields=False)
    @classmethod
    def _check_username(cls, value: Optional[str]) -> str:
        if value is None:
            raise ValueError("Username is required.")
        value = value.strip()
        if not USERNAME_MIN_LENGTH <= len(value) <= USERNAME_MAX_LENGTH:
            raise ValueError(
                f"Username must be between {USERNAME_MIN_LENGTH} and {USERNAME_MAX_LENGTH} characters."
            )
        if not USERNAME_PATTERN.fullmatch(value):
            raise ValueError("Username may only contain letters, numbers and underscores.")
        return value

    @field_validator("email", check_fields=False)
    @classmethod
    def _check_email(cls, value: Optional[str]) -> str:
        if value is None:
            raise ValueError("Email is required.")
        value = normalize_email(value)
        if not EMAIL_PATTERN.fullmatch(value):
            raise ValueError("Please provide a valid email address.")
        return value

    @field_validator("password", check_fields=False)
    @classmethod
    def _check_password(cls, value: Optional[str]) -> str:
        if value is None or len(value) < PASSWORD_MIN_LENGTH:
            raise ValueError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters.")
        if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
            raise ValueError(f"Password cannot exceed {PASSWORD_MAX_BYTES} bytes.")
        return value

    @field_validator("name", check_fields=False)
    @classmethod
    def _check_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if len(value) > NAME_MAX_LENGTH:
            raise ValueError(f"Name cannot exceed {NAME_MAX_LENGTH} characters.")
        return value


class UserCreate(UserBase):
    """Model for user registration"""
    username: str
    email: str
    password: str
    name: Optional[str] = None
    profile_image: Optional[str] = None
    preferences: Preferences = Field(default_factory=Preferences)


class UserUpdate(UserBase):
    """Profile and credential changes; only supplied fields are applied."""
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    profile_image: Optional[str] = None
    preferences: Optional[Preferences] = None

    @field_validator("preferences")
    @classmethod
    def _preferences_not_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("preferences cannot be null.")
        return value


class UserLogin(BaseModel):
    """Model for user login"""
    email: str
    password: str


def _flatten(prefix: str, values: Mapping[str, Any]) -> dict:
    flat = {}
    for key, value in values.items():
        path = f"{prefix}.{key}"
        if isinstance(value, Mapping):
            flat.update(_flatten(path, value))
        else:
            flat[path] = value
    return flat


def validate_and_normalize(data: Any, partial: bool = False) -> dict:
    """
    Validates a user payload and returns it in storage form.

    The returned `password` (if any) is still plaintext; hashing is the
    caller's job and happens only when this key is present. For partial
    updates, preferences come back as dotted paths so a partial preferences
    object only touches the keys it names.
    """
    if not isinstance(data, Mapping):
        raise ValidationError(field="body", reason="Request body must be a JSON object.")

    model_cls = UserUpdate if partial else UserCreate
    try:
        model = model_cls.model_validate(data)
    except PydanticValidationError as e:
        raise validation_error_from_pydantic(e.errors()) from e

    if not partial:
        return model.model_dump(by_alias=True, exclude_none=True)

    doc = model.model_dump(by_alias=True, exclude_unset=True)
    preferences = doc.pop("preferences", None)
    if preferences:
        doc.update(_flatten("preferences", preferences))
    if not doc:
        raise ValidationError(field="body", reason="No updatable fields were supplied.")
    return doc


class UserResponse(BaseModel):
    """User model for API responses (no password)"""
    model_config = _camel

    id: str
    username: str
    email: str
    name: Optional[str] = None
    profile_image: Optional[str] = None
    is_active: bool = True
    is_email_verified: bool = False
    last_login: Optional[datetime] = None
    preferences: Preferences = Field(default_factory=Preferences)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    todo_count: Optional[int] = None
    completed_todo_count: Optional[int] = None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any], counts: Optional[Mapping[str, int]] = None) -> "UserResponse":
        def _dt(key: str) -> Optional[datetime]:
            value = doc.get(key)
            return as_utc(value) if value is not None else None

        counts = counts or {}
        return cls(
            id=str(doc["_id"]),
            username=doc["username"],
            email=doc["email"],
            name=doc.get("name"),
            profile_image=doc.get("profileImage"),
            is_active=doc.get("isActive", True),
            is_email_verified=doc.get("isEmailVerified", False),
            last_login=_dt("lastLogin"),
            preferences=Preferences.model_validate(doc.get("preferences") or {}),
            created_at=_dt("createdAt"),
            updated_at=_dt("updatedAt"),
            todo_count=counts.get("todoCount"),
            completed_todo_count=counts.get("completedTodoCount"),
        )
