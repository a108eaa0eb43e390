"""
Shared fixtures.

- store: SQLite store on a temporary file
- session: explicit user context for direct store calls
- client: FastAPI TestClient with the store and clock overridden
- auth_headers: bearer header for a freshly registered user
"""
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from backend.db import SQLiteStore, get_store
from backend.main import app, get_now
from backend.models import UserSession

# Friday 15 March 2024, 09:30 local time
FIXED_NOW = datetime(2024, 3, 15, 9, 30)


@pytest.fixture
def store(tmp_path):
    return SQLiteStore(str(tmp_path / "test_shiftbook.db"))


@pytest.fixture
def session():
    return UserSession(user_id="user-1", email="ann@example.com", name="Ann")


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_now] = lambda: FIXED_NOW
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def register_and_login(client, email="ann@example.com", password="secret123", name="Ann"):
    client.post("/auth/register", json={"email": email, "password": password, "name": name})
    res = client.post("/auth/login", json={"email": email, "password": password})
    assert res.status_code == 200, res.text
    return {"Authorization": f"Bearer {res.json()['access_token']}"}


@pytest.fixture
def auth_headers(client):
    return register_and_login(client)


def set_now(value: datetime):
    app.dependency_overrides[get_now] = lambda: value
