from datetime import timedelta

import pytest
from bson import ObjectId
from pymongo import TEXT

from models.errors import AuthenticationError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from models.todo import DueStatus, TodoResponse
from services import query_helpers, todo_service, user_service
from services.auth_service import verify_password


def _todo(repo, now, **fields):
    return todo_service.create_todo(repo, {"title": "task", **fields}, now)


# --- Todos ---

def test_create_stamps_timestamps(todo_repo, now):
    created = _todo(todo_repo, now)
    assert created["createdAt"] is not None
    assert created["updatedAt"] == created["createdAt"]
    assert todo_repo.count() == 1


def test_update_only_touches_supplied_fields(todo_repo, now):
    created = _todo(todo_repo, now, description="keep me", priority="high")
    later = now + timedelta(minutes=5)
    updated = todo_service.update_todo(todo_repo, created["_id"], {"title": " renamed "}, later)
    assert updated["title"] == "renamed"
    assert updated["description"] == "keep me"
    assert updated["priority"] == "high"


def test_update_null_clears_field(todo_repo, now):
    created = _todo(todo_repo, now, category="home", dueDate=(now + timedelta(days=2)).isoformat())
    updated = todo_service.update_todo(todo_repo, created["_id"], {"category": None, "dueDate": None}, now)
    assert "category" not in updated
    assert "dueDate" not in updated


def test_toggle_flips_completed(todo_repo, now):
    created = _todo(todo_repo, now)
    assert todo_service.toggle_todo(todo_repo, created["_id"], now)["completed"] is True
    assert todo_service.toggle_todo(todo_repo, created["_id"], now)["completed"] is False


def test_toggle_flips_the_stored_value_when_read_is_stale(todo_repo, now, monkeypatch):
    created = _todo(todo_repo, now)
    stale = dict(created)
    # Another writer completes it between our read and our write
    todo_service.set_completed(todo_repo, created["_id"], True, now)

    real_find_by_id = todo_repo.find_by_id
    reads = iter([stale])
    monkeypatch.setattr(todo_repo, "find_by_id", lambda id: next(reads, None) or real_find_by_id(id))

    assert todo_service.toggle_todo(todo_repo, created["_id"], now)["completed"] is False


def test_conditional_update_skips_when_match_fails(todo_repo, now):
    created = _todo(todo_repo, now)
    assert todo_repo.update_by_id(created["_id"], {"title": "x"}, now, match={"completed": True}) is None
    assert todo_repo.find_by_id(created["_id"])["title"] == "task"


def test_patch_without_due_date_lets_todo_become_overdue(todo_repo, now):
    created = _todo(todo_repo, now, dueDate=(now + timedelta(hours=1)).isoformat())
    later = now + timedelta(days=1)
    updated = todo_service.update_todo(todo_repo, created["_id"], {"title": "still open"}, later)
    assert updated["title"] == "still open"
    assert TodoResponse.from_document(updated, later).due_status == DueStatus.OVERDUE


def test_text_index_covers_title_and_description(database):
    info = database["todos"].index_information().values()
    text_indexes = [index for index in info if any(direction == TEXT for _, direction in index["key"])]
    assert len(text_indexes) == 1
    assert {"title", "description"} <= set(text_indexes[0].get("weights") or dict(text_indexes[0]["key"]))


def test_delete_missing_todo_is_not_found(todo_repo):
    with pytest.raises(NotFoundError):
        todo_service.delete_todo(todo_repo, ObjectId())


def test_malformed_id_is_a_validation_error(todo_repo):
    with pytest.raises(ValidationError) as exc:
        todo_service.get_todo(todo_repo, "12345")
    assert exc.value.field == "id"


def test_list_filter_search_is_case_insensitive(todo_repo, now):
    _todo(todo_repo, now, title="Buy Milk")
    _todo(todo_repo, now, title="walk dog", description="then buy treats")
    _todo(todo_repo, now, title="read")
    found = todo_service.list_todos(todo_repo, todo_service.build_list_filter(search="BUY"))
    assert {doc["title"] for doc in found} == {"Buy Milk", "walk dog"}


# --- Query helpers ---

def test_completed_and_pending(todo_repo, now):
    _todo(todo_repo, now, title="done", completed=True)
    _todo(todo_repo, now, title="open")
    assert [d["title"] for d in query_helpers.find_completed(todo_repo)] == ["done"]
    assert [d["title"] for d in query_helpers.find_pending(todo_repo)] == ["open"]


def test_find_by_priority(todo_repo, now):
    _todo(todo_repo, now, title="a", priority="high")
    _todo(todo_repo, now, title="b", priority="low")
    assert [d["title"] for d in query_helpers.find_by_priority(todo_repo, "high")] == ["a"]
    with pytest.raises(ValidationError):
        query_helpers.find_by_priority(todo_repo, "urgent")


def test_find_due_soon_window(todo_repo, now):
    _todo(todo_repo, now, title="in window", dueDate=(now + timedelta(days=3)).isoformat())
    _todo(todo_repo, now, title="edge", dueDate=(now + timedelta(days=7)).isoformat())
    _todo(todo_repo, now, title="too far", dueDate=(now + timedelta(days=8)).isoformat())
    _todo(todo_repo, now, title="done", completed=True, dueDate=(now + timedelta(days=1)).isoformat())
    _todo(todo_repo, now, title="no date")

    titles = [d["title"] for d in query_helpers.find_due_soon(todo_repo, now, days=7)]
    assert titles == ["in window", "edge"]


def test_find_due_soon_excludes_past_due(todo_repo, now):
    _todo(todo_repo, now, title="soon", dueDate=(now + timedelta(hours=2)).isoformat())
    later = now + timedelta(hours=3)
    assert query_helpers.find_due_soon(todo_repo, later) == []


# --- Users ---

def _user(repo, now, **fields):
    return user_service.create_user(
        repo, {"username": "jane_doe", "email": "jane@example.com", "password": "abcdef", **fields}, now
    )


def test_create_user_hashes_and_hides_password(user_repo, now):
    created = _user(user_repo, now)
    assert "password" not in created

    stored = user_repo.find_by_id(created["_id"], include_private=True)
    assert stored["password"] != "abcdef"
    assert verify_password("abcdef", stored["password"])
    assert stored["isActive"] is True
    assert stored["isEmailVerified"] is False
    assert stored["preferences"]["language"] == "ko"


def test_email_conflict_ignores_case(user_repo, now):
    _user(user_repo, now)
    with pytest.raises(ConflictError) as exc:
        _user(user_repo, now, username="other", email="JANE@Example.com")
    assert exc.value.field == "email"


def test_username_conflict(user_repo, now):
    _user(user_repo, now)
    with pytest.raises(ConflictError) as exc:
        _user(user_repo, now, email="other@example.com")
    assert exc.value.field == "username"


def test_unique_index_conflict_is_typed(user_repo, now):
    _user(user_repo, now)
    # Bypass the pre-check, as a racing writer would
    with pytest.raises(ConflictError) as exc:
        user_repo.insert({"username": "someone", "email": "jane@example.com", "password": "x"}, now)
    assert exc.value.field == "email"


def test_update_without_password_keeps_hash(user_repo, now):
    created = _user(user_repo, now)
    before = user_repo.find_by_id(created["_id"], include_private=True)["password"]
    user_service.update_user(user_repo, created["_id"], {"name": "Jane"}, now)
    after = user_repo.find_by_id(created["_id"], include_private=True)["password"]
    assert after == before


def test_update_with_password_rehashes(user_repo, now):
    created = _user(user_repo, now)
    user_service.update_user(user_repo, created["_id"], {"password": "newpass"}, now)
    stored = user_repo.find_by_id(created["_id"], include_private=True)["password"]
    assert verify_password("newpass", stored)
    assert not verify_password("abcdef", stored)


def test_update_preferences_merges(user_repo, now):
    created = _user(user_repo, now)
    updated = user_service.update_user(user_repo, created["_id"], {"preferences": {"theme": "dark"}}, now)
    assert updated["preferences"] == {
        "theme": "dark",
        "language": "ko",
        "notifications": {"email": True, "push": True},
    }


def test_update_email_to_taken_one_conflicts(user_repo, now):
    _user(user_repo, now)
    other = _user(user_repo, now, username="other", email="other@example.com")
    with pytest.raises(ConflictError):
        user_service.update_user(user_repo, other["_id"], {"email": "Jane@example.com"}, now)


def test_find_by_email_lowercases_input(user_repo, now):
    created = _user(user_repo, now)
    assert user_service.find_by_email(user_repo, "  JANE@EXAMPLE.COM")["_id"] == created["_id"]


def test_derive_counts(user_repo, todo_repo, now):
    owner = _user(user_repo, now)
    _todo(todo_repo, now, createdBy=str(owner["_id"]))
    _todo(todo_repo, now, createdBy=str(owner["_id"]), completed=True)
    _todo(todo_repo, now)
    assert user_service.derive_counts(owner["_id"], todo_repo) == {"todoCount": 2, "completedTodoCount": 1}


def test_find_active_users(user_repo, now):
    active = _user(user_repo, now)
    inactive = _user(user_repo, now, username="gone", email="gone@example.com")
    user_service.set_active(user_repo, inactive["_id"], False, now)
    assert [u["_id"] for u in query_helpers.find_active_users(user_repo)] == [active["_id"]]


def test_authenticate_records_login(user_repo, now):
    _user(user_repo, now)
    user = user_service.authenticate(user_repo, "Jane@Example.com", "abcdef", now)
    assert user["lastLogin"] is not None
    assert "password" not in user


def test_authenticate_rejects_bad_password_and_inactive(user_repo, now):
    created = _user(user_repo, now)
    with pytest.raises(AuthenticationError):
        user_service.authenticate(user_repo, "jane@example.com", "wrong1", now)

    user_service.set_active(user_repo, created["_id"], False, now)
    with pytest.raises(ForbiddenError):
        user_service.authenticate(user_repo, "jane@example.com", "abcdef", now)
