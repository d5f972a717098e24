"""
User operations: registration, profile updates, account state and
credential checks.
"""
import logging
from datetime import datetime
from typing import Any, List, Optional

from db.repository import MongoRepository, parse_object_id
from models.errors import AuthenticationError, ConflictError, ForbiddenError, NotFoundError
from models.user import Preferences, normalize_email, validate_and_normalize
from services.auth_service import get_password_hash, verify_password

logger = logging.getLogger(__name__)

UNIQUE_FIELDS = ("username", "email")


def _require(doc: Optional[dict], id: Any) -> dict:
    if doc is None:
        raise NotFoundError("User", id)
    return doc


def _check_unique(repo: MongoRepository, values: dict, exclude_id: Any = None) -> None:
    """
    Reports a taken username/email before writing. The unique indexes
    still have the final say when two writers race.
    """
    for field in UNIQUE_FIELDS:
        if field not in values:
            continue
        query: dict[str, Any] = {field: values[field]}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        if repo.find_one(query) is not None:
            raise ConflictError(field=field)


def derive_counts(user_id: Any, todo_repo: MongoRepository) -> dict:
    """Todo counts owned by the user, computed on every read."""
    owner = parse_object_id(user_id)
    return {
        "todoCount": todo_repo.count({"createdBy": owner}),
        "completedTodoCount": todo_repo.count({"createdBy": owner, "completed": True}),
    }


def create_user(repo: MongoRepository, data: Any, now: datetime) -> dict:
    values = validate_and_normalize(data)
    _check_unique(repo, values)

    values["password"] = get_password_hash(values["password"])
    doc = {
        "profileImage": None,
        "isActive": True,
        "isEmailVerified": False,
        "lastLogin": None,
        "preferences": Preferences().model_dump(),
        **values,
    }
    created = repo.insert(doc, now)
    logger.info("Registered user %s (%s)", created["username"], created["_id"])
    return created


def get_user(repo: MongoRepository, id: Any) -> dict:
    return _require(repo.find_by_id(id), id)


def list_users(repo: MongoRepository) -> List[dict]:
    return repo.find({}, sort=[("createdAt", -1)])


def find_by_email(repo: MongoRepository, email: str) -> Optional[dict]:
    return repo.find_one({"email": normalize_email(email)})


def find_by_username(repo: MongoRepository, username: str) -> Optional[dict]:
    return repo.find_one({"username": username.strip()})


def update_user(repo: MongoRepository, id: Any, data: Any, now: datetime) -> dict:
    """
    Applies a partial profile/credential update. The stored hash is only
    replaced when a new password is part of this update.
    """
    object_id = parse_object_id(id)
    changes = validate_and_normalize(data, partial=True)
    _require(repo.find_by_id(object_id), id)
    _check_unique(repo, changes, exclude_id=object_id)

    if "password" in changes:
        changes["password"] = get_password_hash(changes["password"])
        logger.info("Password changed for user %s", object_id)

    unset = ["name"] if "name" in changes and changes["name"] is None else []
    patch = {key: value for key, value in changes.items() if key not in unset}
    return _require(repo.update_by_id(object_id, patch, now, unset=unset), id)


def set_active(repo: MongoRepository, id: Any, active: bool, now: datetime) -> dict:
    updated = _require(repo.update_by_id(id, {"isActive": active}, now), id)
    logger.info("User %s %s", updated["_id"], "activated" if active else "deactivated")
    return updated


def authenticate(repo: MongoRepository, email: str, password: str, now: datetime) -> dict:
    """
    Checks credentials and records the login time. Unknown email and wrong
    password are reported identically.
    """
    user = repo.find_one({"email": normalize_email(email)}, include_private=True)
    if user is None or not verify_password(password, user.get("password", "")):
        raise AuthenticationError("Incorrect email or password")
    if not user.get("isActive", True):
        raise ForbiddenError("User account is inactive")
    return _require(repo.update_by_id(user["_id"], {"lastLogin": now}, now), user["_id"])


def delete_user(repo: MongoRepository, id: Any) -> dict:
    deleted = _require(repo.delete_by_id(id), id)
    logger.info("Deleted user %s", deleted["_id"])
    return deleted
