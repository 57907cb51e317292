"""
tests/conftest.py -- Shared test fixtures for the Scribe session core.

This module provides:
  - settings: an explicit Settings value with test secrets and bcrypt cost 4
  - store: an in-memory CredentialStore with default roles seeded
  - service: an AuthService wired to the two above
  - api_client: TestClient with a patched lifespan and an admin access token

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for the
API client because TestClient runs route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. Unit fixtures run on one thread and can use plain :memory:.

The signing secrets must be in the environment before any api/ import:
api/main.py reads get_settings() at import time to configure CORS.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before importing api/ or calling get_settings().
os.environ.setdefault("JWT_SECRET", "test-access-secret-0123456789abcdef0123456789")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret-0123456789abcdef012345678")
os.environ.setdefault("BCRYPT_SALT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import RoleCode
from auth.profiles import ProfileService
from auth.service import AuthService
from auth.store import CredentialStore
from core.config import Settings

ACCESS_SECRET = "unit-access-secret-0123456789abcdef0123456789"
REFRESH_SECRET = "unit-refresh-secret-0123456789abcdef012345678"

ADMIN_EMAIL = "admin@scribe.test"
ADMIN_PASSWORD = "Admin!pass1"


def make_settings(**overrides) -> Settings:
    values = {
        "jwt_secret": ACCESS_SECRET,
        "jwt_refresh_secret": REFRESH_SECRET,
        "bcrypt_salt_rounds": 4,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def store() -> Generator[CredentialStore, None, None]:
    """In-memory CredentialStore with ADMIN and BLOGGER seeded."""
    s = CredentialStore("sqlite:///:memory:")
    s.seed_roles()
    yield s
    s.close()


@pytest.fixture
def service(settings: Settings, store: CredentialStore) -> AuthService:
    return AuthService(settings, store)


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(store: CredentialStore, auth_service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test objects into app.state so TestClient routes see an
    isolated test DB rather than the configured DATABASE_URL.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.store = store
        app.state.profiles = ProfileService(store)
        app.state.auth_service = auth_service
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str], None, None]:
    """Yield (client, admin_access_token) for API integration tests.

    The admin is registered through AuthService and promoted, then logged in
    again so the access token carries the ADMIN role claim.
    """
    # One database per test module; a shared-cache name outlives a disposed engine.
    db_name = f"test_auth_api_{uuid.uuid4().hex[:8]}"
    store = CredentialStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    store.seed_roles()
    auth_service = AuthService(make_settings(), store)

    registered = auth_service.register("Admin", ADMIN_EMAIL, ADMIN_PASSWORD)
    store.update_role(registered.user.id, RoleCode.ADMIN)
    admin_token = auth_service.login(ADMIN_EMAIL, ADMIN_PASSWORD).tokens.access_token

    app.router.lifespan_context = _patch_lifespan(store, auth_service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, admin_token

    store.close()
