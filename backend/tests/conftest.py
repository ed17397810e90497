"""
Pytest configuration and shared test helpers for backend tests.
"""
import os

# Skip heavy server startup (MongoDB, scheduler) when running under pytest.
os.environ.setdefault("PYTEST_RUNNING", "1")

import pytest
from unittest.mock import AsyncMock, MagicMock

# Shared TestClient fixture so tests can use in-process requests without a running server.
# TestClient is not entered as a context manager, so the lifespan (DB connect, scheduler) never runs.
from fastapi.testclient import TestClient
from server import app
from middleware import admin_route_guard, require_auth, get_current_db_user

ADMIN_USER = {
    "user_id": "admin-1",
    "clerk_id": "user_admin",
    "email": "admin@translatoraxis.com",
    "role": "admin",
    "name": "Admin",
}

CUSTOMER_USER = {
    "user_id": "user-1",
    "clerk_id": "user_customer",
    "email": "customer@example.com",
    "role": "user",
    "name": "Jane Customer",
}


class AsyncCursor:
    """Motor-style cursor: chainable sort/limit/skip, async to_list and async iteration."""

    def __init__(self, docs):
        self.docs = list(docs)

    def sort(self, *args, **kwargs):
        return self

    def limit(self, *args, **kwargs):
        return self

    def skip(self, *args, **kwargs):
        return self

    async def to_list(self, length=None):
        return list(self.docs)

    def __aiter__(self):
        self._iter = iter(self.docs)
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


def mock_cursor(docs):
    return AsyncCursor(docs)


def mock_collection(find_one=None, find=None):
    collection = MagicMock()
    collection.find_one = AsyncMock(return_value=find_one)
    collection.find = MagicMock(return_value=mock_cursor(find or []))
    collection.insert_one = AsyncMock()
    collection.insert_many = AsyncMock()
    collection.update_one = AsyncMock()
    collection.count_documents = AsyncMock(return_value=len(find or []))
    return collection


@pytest.fixture
def client():
    """Return a TestClient for the main FastAPI app (server:app). Use for unit-style API tests."""
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_client(client):
    """TestClient authenticated as an admin."""
    app.dependency_overrides[admin_route_guard] = lambda: ADMIN_USER
    return client


@pytest.fixture
def customer_client(client):
    """TestClient authenticated as a regular signed-in customer."""
    app.dependency_overrides[require_auth] = lambda: {"sub": CUSTOMER_USER["clerk_id"]}
    app.dependency_overrides[get_current_db_user] = lambda: CUSTOMER_USER
    return client
