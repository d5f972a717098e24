from datetime import datetime, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

from db.database import (
    ensure_indexes,
    get_todo_repository,
    get_user_repository,
    todo_repository,
    user_repository,
)
from main import app
from routes.common import get_now

# Whole seconds: MongoDB keeps millisecond precision only
NOW = datetime(2025, 3, 10, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def database():
    client = mongomock.MongoClient()
    db = client["todo-app-test"]
    ensure_indexes(db)
    yield db
    client.close()


@pytest.fixture
def todo_repo(database):
    return todo_repository(database["todos"])


@pytest.fixture
def user_repo(database):
    return user_repository(database["users"])


@pytest.fixture
def client(todo_repo, user_repo):
    # Use the in-memory collections and a pinned clock for every request
    app.dependency_overrides[get_todo_repository] = lambda: todo_repo
    app.dependency_overrides[get_user_repository] = lambda: user_repo
    app.dependency_overrides[get_now] = lambda: NOW
    yield TestClient(app)
    app.dependency_overrides.clear()
