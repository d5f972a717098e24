from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from db.database import get_todo_repository
from db.repository import MongoRepository
from models.todo import TodoResponse
from routes.common import get_now, success
from services import query_helpers, todo_service

# Create a router for todo-related endpoints
todo_router = APIRouter(tags=["Todos"])


def _many(docs: list, now: datetime) -> dict:
    data = [TodoResponse.from_document(doc, now) for doc in docs]
    return success(data, count=len(data))


# -----------------------------------------------------------------
# --- Create / list ---
# -----------------------------------------------------------------
@todo_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create a new todo"
)
def create_todo(
    payload: Dict[str, Any] = Body(..., examples=[{"title": "Write report", "priority": "high", "tags": ["work"]}]),
    repo: MongoRepository = Depends(get_todo_repository),
    now: datetime = Depends(get_now),
):
    """
    Validates and normalizes the payload (trimming, defaults, blank tags
    removed, due date in the future) and stores it.
    """
    created = todo_service.create_todo(repo, payload, now)
    return success(TodoResponse.from_document(created, now), "Todo created successfully.")


@todo_router.get("", summary="List todos, newest first")
def list_todos(
    completed: Optional[bool] = Query(None),
    priority: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    tag: Optional[str] = Query(None),
    created_by: Optional[str] = Query(None, alias="createdBy"),
    search: Optional[str] = Query(None, description="Case-insensitive match on title or description"),
    repo: MongoRepository = Depends(get_todo_repository),
    now: datetime = Depends(get_now),
):
    filter = todo_service.build_list_filter(
        completed=completed,
        priority=priority,
        category=category,
        tag=tag,
        created_by=created_by,
        search=search,
    )
    return _many(todo_service.list_todos(repo, filter), now)


# -----------------------------------------------------------------
# --- Canned queries (declared before /{todo_id}) ---
# -----------------------------------------------------------------
@todo_router.get("/completed", summary="Completed todos")
def completed_todos(repo: MongoRepository = Depends(get_todo_repository), now: datetime = Depends(get_now)):
    return _many(query_helpers.find_completed(repo), now)


@todo_router.get("/pending", summary="Todos not yet completed")
def pending_todos(repo: MongoRepository = Depends(get_todo_repository), now: datetime = Depends(get_now)):
    return _many(query_helpers.find_pending(repo), now)


@todo_router.get("/due-soon", summary="Pending todos due within the next N days")
def due_soon_todos(
    days: int = Query(7, ge=0, le=365),
    repo: MongoRepository = Depends(get_todo_repository),
    now: datetime = Depends(get_now),
):
    return _many(query_helpers.find_due_soon(repo, now, days), now)


@todo_router.get("/priority/{priority}", summary="Todos with the given priority")
def todos_by_priority(
    priority: str,
    repo: MongoRepository = Depends(get_todo_repository),
    now: datetime = Depends(get_now),
):
    return _many(query_helpers.find_by_priority(repo, priority), now)


# -----------------------------------------------------------------
# --- Endpoints that use the MongoDB _id ---
# -----------------------------------------------------------------
@todo_router.get("/{todo_id}", summary="Get a single todo by its MongoDB ID")
def get_todo(todo_id: str, repo: MongoRepository = Depends(get_todo_repository), now: datetime = Depends(get_now)):
    return success(TodoResponse.from_document(todo_service.get_todo(repo, todo_id), now))


@todo_router.patch("/{todo_id}", summary="Partially update a todo")
def update_todo(
    todo_id: str,
    payload: Dict[str, Any] = Body(..., examples=[{"title": "Write final report", "dueDate": None}]),
    repo: MongoRepository = Depends(get_todo_repository),
    now: datetime = Depends(get_now),
):
    """
    Only the fields present in the body are validated and changed.
    Sending null for description, category or dueDate clears it.
    """
    updated = todo_service.update_todo(repo, todo_id, payload, now)
    return success(TodoResponse.from_document(updated, now), "Todo updated.")


@todo_router.patch("/{todo_id}/toggle", summary="Flip the completed flag")
def toggle_todo(todo_id: str, repo: MongoRepository = Depends(get_todo_repository), now: datetime = Depends(get_now)):
    updated = todo_service.toggle_todo(repo, todo_id, now)
    state = "completed" if updated.get("completed") else "not completed"
    return success(TodoResponse.from_document(updated, now), f"Todo marked as {state}.")


@todo_router.patch("/{todo_id}/complete", summary="Mark a todo completed")
def complete_todo(todo_id: str, repo: MongoRepository = Depends(get_todo_repository), now: datetime = Depends(get_now)):
    updated = todo_service.set_completed(repo, todo_id, True, now)
    return success(TodoResponse.from_document(updated, now), "Todo marked as completed.")


@todo_router.patch("/{todo_id}/incomplete", summary="Mark a todo not completed")
def incomplete_todo(todo_id: str, repo: MongoRepository = Depends(get_todo_repository), now: datetime = Depends(get_now)):
    updated = todo_service.set_completed(repo, todo_id, False, now)
    return success(TodoResponse.from_document(updated, now), "Todo marked as not completed.")


@todo_router.delete("/{todo_id}", summary="Delete a todo")
def delete_todo(todo_id: str, repo: MongoRepository = Depends(get_todo_repository)):
    todo_service.delete_todo(repo, todo_id)
    return success(message="Todo deleted successfully.")
