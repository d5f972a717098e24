"""
Canned read-only queries. Window queries take the snapshot time as an
argument so results are deterministic for a given `now`.
"""
from datetime import datetime, timedelta
from typing import List

from db.repository import MongoRepository
from models.errors import ValidationError
from models.todo import PRIORITIES
from services.todo_service import NEWEST_FIRST


def find_completed(todo_repo: MongoRepository) -> List[dict]:
    return todo_repo.find({"completed": True}, sort=NEWEST_FIRST)


def find_pending(todo_repo: MongoRepository) -> List[dict]:
    return todo_repo.find({"completed": False}, sort=NEWEST_FIRST)


def find_by_priority(todo_repo: MongoRepository, priority: str) -> List[dict]:
    if priority not in PRIORITIES:
        raise ValidationError(field="priority", reason=f"Priority must be one of {', '.join(PRIORITIES)}.")
    return todo_repo.find({"priority": priority}, sort=NEWEST_FIRST)


def find_due_soon(todo_repo: MongoRepository, now: datetime, days: int = 7) -> List[dict]:
    """Pending todos due within [now, now + days], soonest first."""
    if days < 0:
        raise ValidationError(field="days", reason="days cannot be negative.")
    window_end = now + timedelta(days=days)
    return todo_repo.find(
        {"completed": False, "dueDate": {"$gte": now, "$lte": window_end}},
        sort=[("dueDate", 1)],
    )


def find_active_users(user_repo: MongoRepository) -> List[dict]:
    return user_repo.find({"isActive": True}, sort=[("createdAt", -1)])
