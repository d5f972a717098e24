"""
User routes: registration, lookups, profile management and credential checks.
"""
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Query, status

from db.database import get_todo_repository, get_user_repository
from db.repository import MongoRepository
from models.errors import NotFoundError
from models.user import UserLogin, UserResponse
from routes.common import get_now, success
from services import query_helpers, user_service

user_router = APIRouter(tags=["Users"])


def _with_counts(doc: dict, todo_repo: MongoRepository) -> UserResponse:
    return UserResponse.from_document(doc, user_service.derive_counts(doc["_id"], todo_repo))


@user_router.post("", status_code=status.HTTP_201_CREATED, summary="Register a new user")
def register_user(
    payload: Dict[str, Any] = Body(..., examples=[{"username": "jane_doe", "email": "Jane@Example.com", "password": "secret1"}]),
    repo: MongoRepository = Depends(get_user_repository),
    now: datetime = Depends(get_now),
):
    """
    Register a new user.

    Raises:
        ValidationError: bad username/email/password shape (400)
        ConflictError: username or email already registered (409)
    """
    created = user_service.create_user(repo, payload, now)
    return success(UserResponse.from_document(created), "User registered successfully.")


@user_router.get("", summary="List users")
def list_users(
    active: bool = Query(False, description="Only active accounts"),
    repo: MongoRepository = Depends(get_user_repository),
):
    docs = query_helpers.find_active_users(repo) if active else user_service.list_users(repo)
    data = [UserResponse.from_document(doc) for doc in docs]
    return success(data, count=len(data))


@user_router.get("/lookup/email", summary="Find a user by email (case-insensitive)")
def lookup_by_email(
    email: str = Query(..., examples=["jane@example.com"]),
    repo: MongoRepository = Depends(get_user_repository),
    todo_repo: MongoRepository = Depends(get_todo_repository),
):
    user = user_service.find_by_email(repo, email)
    if user is None:
        raise NotFoundError("User", email)
    return success(_with_counts(user, todo_repo))


@user_router.get("/lookup/username", summary="Find a user by username")
def lookup_by_username(
    username: str = Query(..., examples=["jane_doe"]),
    repo: MongoRepository = Depends(get_user_repository),
    todo_repo: MongoRepository = Depends(get_todo_repository),
):
    user = user_service.find_by_username(repo, username)
    if user is None:
        raise NotFoundError("User", username)
    return success(_with_counts(user, todo_repo))


@user_router.post("/login", summary="Check credentials and record the login")
def login(
    credentials: UserLogin,
    repo: MongoRepository = Depends(get_user_repository),
    now: datetime = Depends(get_now),
):
    """
    Verifies email and password. No token is issued; the caller gets the
    user record with an updated lastLogin.

    Raises:
        AuthenticationError: unknown email or wrong password (401)
        ForbiddenError: account is inactive (403)
    """
    user = user_service.authenticate(repo, credentials.email, credentials.password, now)
    return success(UserResponse.from_document(user), "Login successful.")


@user_router.get("/{user_id}", summary="Get a user with todo counts")
def get_user(
    user_id: str,
    repo: MongoRepository = Depends(get_user_repository),
    todo_repo: MongoRepository = Depends(get_todo_repository),
):
    return success(_with_counts(user_service.get_user(repo, user_id), todo_repo))


@user_router.patch("/{user_id}", summary="Update profile, preferences or credentials")
def update_user(
    user_id: str,
    payload: Dict[str, Any] = Body(..., examples=[{"name": "Jane", "preferences": {"theme": "dark"}}]),
    repo: MongoRepository = Depends(get_user_repository),
    now: datetime = Depends(get_now),
):
    updated = user_service.update_user(repo, user_id, payload, now)
    return success(UserResponse.from_document(updated), "User updated.")


@user_router.patch("/{user_id}/activate", summary="Activate an account")
def activate_user(user_id: str, repo: MongoRepository = Depends(get_user_repository), now: datetime = Depends(get_now)):
    updated = user_service.set_active(repo, user_id, True, now)
    return success(UserResponse.from_document(updated), "User activated.")


@user_router.patch("/{user_id}/deactivate", summary="Deactivate an account")
def deactivate_user(user_id: str, repo: MongoRepository = Depends(get_user_repository), now: datetime = Depends(get_now)):
    updated = user_service.set_active(repo, user_id, False, now)
    return success(UserResponse.from_document(updated), "User deactivated.")


@user_router.delete("/{user_id}", summary="Delete a user")
def delete_user(user_id: str, repo: MongoRepository = Depends(get_user_repository)):
    user_service.delete_user(repo, user_id)
    return success(message="User deleted successfully.")
