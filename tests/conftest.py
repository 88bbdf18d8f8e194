"""
tests/conftest.py -- Shared test fixtures for TokenGate unit and integration tests.

This module provides:
  - make_test_components(): isolated in-memory stores plus codec and service
  - _patch_lifespan(): wires test components into app.state, bypassing real startup
  - auth_components: fresh components per test, for unit tests of the auth layer
  - api_client: TestClient with an admin token for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process. Users and
revocations get separate names so the two engines never contend for one
shared-cache lock.

Environment variables must be set before any api/auth/core import:
get_settings() is cached on first call and api.main reads it at import time.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from types import SimpleNamespace

# CRITICAL: DEBUG lets get_settings() auto-generate SECRET_KEY instead of
# raising; the low bcrypt cost and generous rate limit keep the suite fast.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("AUTH_RATE_LIMIT", "1000/minute")
os.environ.setdefault("DATABASE_URL", "sqlite:///file:test_tokengate_default?mode=memory&cache=shared&uri=true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.passwords import PasswordHasher
from auth.revocation import RevocationStore
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenCodec

TEST_SECRET = "test-secret-key-for-tokengate-suite-0123456789"

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "adminpass123"


# ---------------------------------------------------------------------------
# Component helpers
# ---------------------------------------------------------------------------


def _memory_url(name: str) -> str:
    return f"sqlite:///file:{name}?mode=memory&cache=shared&uri=true"


def make_test_components(
    db_suffix: str,
    revocation: bool = True,
    registration_role_policy: str = "honor",
    password_min_length: int = 6,
) -> SimpleNamespace:
    """Create isolated auth components backed by named shared-memory SQLite.

    Args:
        db_suffix:  Unique string appended to the DB names so fixtures never
                    share state (e.g. 'api', or a uuid per test).
        revocation: Build a RevocationStore (True) or run stateless (False).
        registration_role_policy: Passed through to AuthService.
        password_min_length: Minimum plaintext length enforced by the store.
    """
    user_store = UserStore(
        _memory_url(f"test_users_{db_suffix}"),
        hasher=PasswordHasher(rounds=4),
        password_min_length=password_min_length,
    )
    codec = TokenCodec(TEST_SECRET, expire_seconds=3600)
    revocations = RevocationStore(_memory_url(f"test_revocations_{db_suffix}")) if revocation else None
    auth_service = AuthService(
        user_store,
        codec,
        revocations=revocations,
        registration_role_policy=registration_role_policy,
    )
    return SimpleNamespace(
        user_store=user_store,
        token_codec=codec,
        revocations=revocations,
        auth_service=auth_service,
    )


def close_components(components: SimpleNamespace) -> None:
    if components.revocations is not None:
        components.revocations.close()
    components.user_store.close()


def _patch_lifespan(components: SimpleNamespace):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test components into app.state so TestClient routes see
    isolated test DBs rather than the configured database. No purge task is
    started; tests call purge_expired() directly.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = components.user_store
        app.state.token_codec = components.token_codec
        app.state.revocations = components.revocations
        app.state.auth_service = components.auth_service
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def auth_components() -> Generator[SimpleNamespace, None, None]:
    """Fresh components per test: nothing one unit test writes leaks into another."""
    components = make_test_components(uuid.uuid4().hex)
    yield components
    close_components(components)


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use isolated in-memory stores.
    The admin user is created before the client starts and its token is
    issued for use in Authorization headers.
    """
    components = make_test_components(f"api_{uuid.uuid4().hex}")

    admin = components.user_store.create_user(
        name="Test Admin",
        email=ADMIN_EMAIL,
        password=ADMIN_PASSWORD,
        role="admin",
    )
    token = components.auth_service.issue_token(admin)

    app.router.lifespan_context = _patch_lifespan(components)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, admin.id

    close_components(components)


def register(client: TestClient, email: str, password: str = "userpass123", **extra) -> dict:
    """Register an account through the API and return the response body."""
    body = {"name": extra.pop("name", email.split("@")[0]), "email": email, "password": password, **extra}
    resp = client.post("/api/v1/auth/register", json=body)
    assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
    return resp.json()


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
