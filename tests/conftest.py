"""
tests/conftest.py -- Shared test fixtures for the RBAC API tests.

This module provides:
  - store / post_store / tokens: isolated in-memory objects for unit tests
  - _make_test_store(): named shared-memory SQLite store for integration tests
  - _patch_lifespan(): wires a test store into app.state, bypassing real startup
  - api_client: TestClient plus an admin JWT for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the TestClient because it runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. Unit tests run on one thread and use plain :memory:.

DEBUG and BCRYPT_ROUNDS must be set before any auth/core import: DEBUG lets
get_settings() auto-generate SECRET_KEY, and the minimum bcrypt cost keeps
the suite fast.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set env before any auth/core import -- get_settings() is cached
# on first call and auth.tokens reads it at module load.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, wire_app_state
from auth.models import User
from auth.store import UserStore
from auth.tokens import TokenService, hash_password
from core.config import get_settings
from posts.store import PostStore

# Rate limits are shared process-wide; the suite logs in far more often than
# any real client would.
limiter.enabled = False

TEST_SECRET = "test-secret-key-that-is-at-least-32-characters"

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-pass-123"


# ---------------------------------------------------------------------------
# Unit test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    """Fresh in-memory UserStore with the default roles seeded."""
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def post_store(store: UserStore) -> PostStore:
    return PostStore(store.engine)


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(TEST_SECRET, 3600)


def make_user(store: UserStore, email: str, role: str | None = "user", password: str = "secret1", **kwargs) -> User:
    """Insert a user directly through the store, bypassing IdentityService."""
    role_id = store.get_role_by_name(role).id if role else None
    return store.create_user(
        User(
            email=email,
            password_hash=hash_password(password),
            first_name=kwargs.pop("first_name", "Test"),
            last_name=kwargs.pop("last_name", "User"),
            role_id=role_id,
            **kwargs,
        )
    )


# ---------------------------------------------------------------------------
# Integration fixtures
# ---------------------------------------------------------------------------


def _make_test_store(db_suffix: str) -> UserStore:
    """Create an isolated named shared-memory SQLite store.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    return UserStore(db_url=f"sqlite:///file:test_rbac_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(user_store: UserStore):
    """Return an async context manager that replaces the real lifespan.

    Uses the same wire_app_state() as production so tests exercise the real
    object graph, just on an isolated database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_app_state(app, user_store, get_settings())
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, admin_token, admin_id) for API integration tests.

    One database per test module. The admin user is created before the
    client starts; its token is issued with the same TokenService settings
    the app uses.
    """
    user_store = _make_test_store(request.module.__name__.rsplit(".", 1)[-1])
    admin = make_user(
        user_store,
        ADMIN_EMAIL,
        role="admin",
        password=ADMIN_PASSWORD,
        first_name="Admin",
        last_name="User",
    )
    token = TokenService.from_settings(get_settings()).issue(admin.id)

    app.router.lifespan_context = _patch_lifespan(user_store)

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client, token, admin.id

    user_store.close()


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
