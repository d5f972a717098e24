"""
Todo operations: one validate-then-write (or read) step each.

Every function takes the repository and the request time explicitly, so
nothing here reads the clock or the database singleton on its own.
"""
import logging
import re
from datetime import datetime
from typing import Any, List, Mapping, Optional

from db.repository import MongoRepository, parse_object_id
from models.errors import ConflictError, NotFoundError, ValidationError
from models.todo import CLEARABLE_FIELDS, PRIORITIES, validate_and_normalize

logger = logging.getLogger(__name__)

NEWEST_FIRST = [("createdAt", -1)]
TOGGLE_ATTEMPTS = 5


def _require(doc: Optional[dict], id: Any) -> dict:
    if doc is None:
        raise NotFoundError("Todo", id)
    return doc


def create_todo(repo: MongoRepository, data: Any, now: datetime) -> dict:
    doc = validate_and_normalize(data, now)
    created = repo.insert(doc, now)
    logger.info("Created todo %s", created["_id"])
    return created


def get_todo(repo: MongoRepository, id: Any) -> dict:
    return _require(repo.find_by_id(id), id)


def build_list_filter(
    completed: Optional[bool] = None,
    priority: Optional[str] = None,
    category: Optional[str] = None,
    tag: Optional[str] = None,
    created_by: Optional[str] = None,
    search: Optional[str] = None,
) -> dict:
    """Mongo filter for the todo list endpoint; every argument is optional."""
    filter: dict[str, Any] = {}
    if completed is not None:
        filter["completed"] = completed
    if priority is not None:
        if priority not in PRIORITIES:
            raise ValidationError(field="priority", reason=f"Priority must be one of {', '.join(PRIORITIES)}.")
        filter["priority"] = priority
    if category:
        filter["category"] = category.strip()
    if tag:
        filter["tags"] = tag.strip()
    if created_by:
        filter["createdBy"] = parse_object_id(created_by, field="createdBy")
    if search and search.strip():
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        filter["$or"] = [{"title": pattern}, {"description": pattern}]
    return filter


def list_todos(repo: MongoRepository, filter: Optional[Mapping[str, Any]] = None) -> List[dict]:
    return repo.find(filter or {}, sort=NEWEST_FIRST)


def update_todo(repo: MongoRepository, id: Any, data: Any, now: datetime) -> dict:
    """
    Partial update. Only the supplied fields are validated and written;
    null clears description, category or dueDate.
    """
    changes = validate_and_normalize(data, now, partial=True)
    unset = [key for key in CLEARABLE_FIELDS if key in changes and changes[key] is None]
    patch = {key: value for key, value in changes.items() if key not in unset}
    updated = repo.update_by_id(id, patch, now, unset=unset)
    return _require(updated, id)


def set_completed(repo: MongoRepository, id: Any, completed: bool, now: datetime) -> dict:
    return _require(repo.update_by_id(id, {"completed": completed}, now), id)


def toggle_todo(repo: MongoRepository, id: Any, now: datetime) -> dict:
    """
    Flips `completed`. The write only applies while the stored value is still
    the one just read; otherwise the record is re-read and the flip retried,
    so concurrent toggles each take effect once.
    """
    for _ in range(TOGGLE_ATTEMPTS):
        completed = get_todo(repo, id).get("completed", False)
        updated = repo.update_by_id(id, {"completed": not completed}, now, match={"completed": completed})
        if updated is not None:
            return updated
    logger.warning("Gave up toggling todo %s after %d attempts", id, TOGGLE_ATTEMPTS)
    raise ConflictError(field="completed")


def delete_todo(repo: MongoRepository, id: Any) -> dict:
    deleted = _require(repo.delete_by_id(id), id)
    logger.info("Deleted todo %s", deleted["_id"])
    return deleted
