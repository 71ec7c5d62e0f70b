"""
tests/conftest.py -- Shared fixtures for the auth test suite.

This module provides:
  - repository: FakeIdentityRepository (tests/fakes.py) seeded with two identities
  - hasher / issuer / validator: core objects built from the test settings
  - identity_store: IdentityStore on an in-memory SQLite database
  - api_client: TestClient wired to isolated stores through a patched lifespan

The DEBUG env var must be set before any auth/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, build_auth_state
from auth.models import Identity
from auth.passwords import PasswordHasher
from auth.store import IdentityStore
from auth.tokens import TokenIssuer, TokenValidator
from core.config import get_settings
from tests.fakes import ADMIN_PASSWORD, DISABLED_PASSWORD, FakeIdentityRepository

# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher()


@pytest.fixture
def issuer() -> TokenIssuer:
    return TokenIssuer.from_settings(get_settings())


@pytest.fixture
def validator() -> TokenValidator:
    return TokenValidator.from_settings(get_settings())


@pytest.fixture(scope="session")
def admin_hash(hasher: PasswordHasher) -> str:
    return hasher.hash(ADMIN_PASSWORD)


@pytest.fixture
def repository(hasher: PasswordHasher, admin_hash: str) -> FakeIdentityRepository:
    """Fake repository holding an active admin (id 1) and a disabled user (id 2)."""
    return FakeIdentityRepository(
        [
            Identity(id=1, username="admin", email="admin@example.com", secret_hash=admin_hash),
            Identity(
                id=2,
                username="disabled",
                email="disabled@example.com",
                secret_hash=hasher.hash(DISABLED_PASSWORD),
                is_active=False,
            ),
        ]
    )


@pytest.fixture
def identity_store() -> Generator[IdentityStore, None, None]:
    store = IdentityStore("sqlite:///:memory:")
    yield store
    store.close()


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(store: IdentityStore):
    """Return a lifespan that wires the given store instead of the real one."""

    @asynccontextmanager
    async def test_lifespan(app):
        build_auth_state(app, get_settings(), store)
        yield

    return test_lifespan


@pytest.fixture
def api_client(
    identity_store: IdentityStore, hasher: PasswordHasher, admin_hash: str
) -> Generator[tuple[TestClient, IdentityStore], None, None]:
    """Yield (client, store) with an active "admin" and an inactive "disabled" identity.

    Function-scoped: the client keeps cookies between requests, so every test
    starts from a clean jar and a reset rate limiter.
    """
    identity_store.create_identity(Identity(username="admin", email="admin@example.com", secret_hash=admin_hash))
    identity_store.create_identity(
        Identity(
            username="disabled",
            email="disabled@example.com",
            secret_hash=hasher.hash(DISABLED_PASSWORD),
            is_active=False,
        )
    )
    limiter.reset()
    app.router.lifespan_context = _patch_lifespan(identity_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, identity_store
