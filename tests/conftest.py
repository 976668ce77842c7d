"""
tests/conftest.py -- Shared test fixtures for User API integration tests.

This module provides:
  - make_test_store(): creates an isolated in-memory user store
  - _patch_lifespan(): wires a test store and gate settings into app.state,
    bypassing the real DATABASE_URL startup
  - basic_client / bearer_client / open_client: one TestClient per auth mode
  - basic_header(): builds an Authorization: Basic header value

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

SECRET_KEY and DATABASE_URL must be set before any application import so
get_settings() validates instead of raising.
"""

from __future__ import annotations

import base64
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set required config before any auth/core/api import.
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef0123456789")
os.environ.setdefault("DATABASE_URL", "sqlite:///file:test_users_default?mode=memory&cache=shared&uri=true")

import pytest
from fastapi.testclient import TestClient

from api.main import app, init_state
from auth.models import User
from auth.store import UserStore
from core.config import get_settings

SEED_EMAIL = "john@example.com"
SEED_PASSWORD = "testpass123"


@dataclass
class ApiContext:
    client: TestClient
    store: UserStore
    user_id: str


def basic_header(email: str, password: str) -> str:
    """Return the Authorization header value for HTTP Basic credentials."""
    return "Basic " + base64.b64encode(f"{email}:{password}".encode()).decode()


def make_test_store(db_suffix: str) -> UserStore:
    """Create an isolated named shared-memory SQLite store.

    Args:
        db_suffix: Label for the DB name (e.g. "basic", "bearer"). A random
                   tail keeps every fixture instance on its own database.
    """
    name = f"test_users_{db_suffix}_{uuid.uuid4().hex[:8]}"
    return UserStore(f"sqlite:///file:{name}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(user_store: UserStore, **overrides):
    """Return an async context manager that replaces the real lifespan.

    overrides are Settings fields (auth_mode, enforce_token_version,
    protect_docs) applied on top of the environment-derived settings.
    """
    settings = get_settings().model_copy(update=overrides)

    @asynccontextmanager
    async def test_lifespan(app):
        init_state(app, user_store, settings)
        yield

    return test_lifespan


def _client(db_suffix: str, **overrides) -> Generator[ApiContext, None, None]:
    store = make_test_store(db_suffix)
    uid = store.create_user(User(name="John Smith", age=30, email=SEED_EMAIL), password=SEED_PASSWORD)
    app.router.lifespan_context = _patch_lifespan(store, **overrides)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(client=client, store=store, user_id=uid)
    store.close()


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def basic_client() -> Generator[ApiContext, None, None]:
    """/users behind HTTP Basic; docs protected. Seeded with john@example.com."""
    yield from _client("basic", auth_mode="basic", protect_docs=True)


@pytest.fixture(scope="module")
def bearer_client() -> Generator[ApiContext, None, None]:
    """/users behind bearer tokens with live token_version checks."""
    yield from _client("bearer", auth_mode="bearer", enforce_token_version=True, protect_docs=True)


@pytest.fixture(scope="module")
def lazy_bearer_client() -> Generator[ApiContext, None, None]:
    """Bearer tokens without the per-request token_version check."""
    yield from _client("lazy_bearer", auth_mode="bearer", enforce_token_version=False)


@pytest.fixture(scope="module")
def open_client() -> Generator[ApiContext, None, None]:
    """/users and the docs left unprotected."""
    yield from _client("open", auth_mode="none", protect_docs=False)


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    """Fresh private in-memory store for unit tests."""
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()
