"""
tests/conftest.py -- Shared test fixtures for SegreGate integration tests.

This module provides:
  - make_test_store(): isolated named shared-memory credential store
  - patch_lifespan(): wires a test store into app.state, bypassing real startup
  - api: module-scoped ApiContext -- TestClient plus seeded admin, volunteer
         and user accounts with helpers for bearer headers

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

Environment variables must be set before any api/auth/core import so
get_settings() builds dev-mode settings (generated secrets, known origins,
and a login rate limit high enough for a full test run).
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: set before any project import -- get_settings() is cached.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("CORS_ALLOWED_ORIGINS", "http://localhost:3000,https://app.segregate.org")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import Credential
from auth.store import CredentialStore
from auth.tokens import hash_password, issue_access_token

PASSWORD = "password123"


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_test_store(db_suffix: str) -> CredentialStore:
    """Create an isolated named shared-memory SQLite credential store.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    return CredentialStore(db_url=f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true")


def patch_lifespan(store: CredentialStore):
    """Return a lifespan that installs the given store instead of the real one."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.credential_store = store
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# API context
# ---------------------------------------------------------------------------


@dataclass
class ApiContext:
    client: TestClient
    store: CredentialStore
    admin: Credential
    volunteer: Credential
    user: Credential

    def token_for(self, credential: Credential) -> str:
        return issue_access_token(credential.id, credential.email, credential.role)

    def auth_headers(self, credential: Credential) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token_for(credential)}"}


def _seed(store: CredentialStore) -> dict[str, Credential]:
    hashed = hash_password(PASSWORD)
    return {
        role: store.create_credential(
            Credential(name=f"Seed {role.title()}", email=f"{role}@segregate.org", hashed_password=hashed, role=role)
        )
        for role in ("admin", "volunteer", "user")
    }


@pytest.fixture(scope="module")
def api(request) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext bound to a fresh store for this test module.

    The TestClient uses the real FastAPI app (real gate, real routers) with a
    patched lifespan, so tests hit real handlers against an isolated DB.
    """
    store = make_test_store(request.module.__name__.rsplit(".", 1)[-1])
    seeded = _seed(store)
    app.router.lifespan_context = patch_lifespan(store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(client=client, store=store, **seeded)

    store.close()


@pytest.fixture
def fresh_client(api: ApiContext) -> Generator[TestClient, None, None]:
    """A TestClient with an empty cookie jar, sharing the module's store."""
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client
