"""
tests/conftest.py -- Shared test fixtures for Gatekeeper tests.

This module provides:
  - store: a fresh file-backed AccountStore per test (unit tests, threads)
  - api_client: TestClient + isolated store + admin JWT, one per test module

Design: API tests use named shared-memory SQLite URIs (not plain :memory:)
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

Environment must be set before any api/ or auth/ import: get_settings() is
read at import time by api.main and api.limiter, and refuses to load
without SECRET_KEY.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set configuration before importing the app.
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-gatekeeper-0123456789abcdef")
os.environ.setdefault("BCRYPT_ROUNDS", "10")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.service import register_account
from auth.store import AccountStore
from auth.tokens import create_access_token

ADMIN_PASSWORD = "adminpass123"


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _patch_lifespan(store: AccountStore):
    """Return an async context manager that replaces the real lifespan.

    Wires a pre-created test store into app.state so TestClient routes see an
    isolated test DB rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.account_store = store
        yield

    return test_lifespan


@pytest.fixture
def store(tmp_path) -> Generator[AccountStore, None, None]:
    """A fresh file-backed store. File-backed so tests may use threads."""
    s = AccountStore(f"sqlite:///{tmp_path / 'accounts.db'}")
    yield s
    s.close()


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, AccountStore, str, str], None, None]:
    """Yield (client, store, admin_token, admin_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers against an isolated in-memory store. The admin
    account (testadmin / admin@example.com / ADMIN_PASSWORD) is created before
    the client starts.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    store = AccountStore(f"sqlite:///file:test_accounts_{suffix}?mode=memory&cache=shared&uri=true")

    admin = register_account(store, "testadmin", "admin@example.com", ADMIN_PASSWORD, role="admin")
    token = create_access_token(admin.id, admin.username, admin.role)

    app.router.lifespan_context = _patch_lifespan(store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, store, token, admin.id

    store.close()
