# =============================================================================
# Shared Test Fixtures
# =============================================================================
#
# Everything here runs without PostgreSQL, GitHub or a running server:
#   - In-memory stores (fresh per test)
#   - A controllable clock, injected into the validator and issuer
#   - A FastAPI TestClient over an app wired to the in-memory stores
#
# SQLAlchemy store tests build their own temporary SQLite database
# (see test_key_store.py).
# =============================================================================

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from keygate.config import Settings
from keygate.db.models import UserRole, UserStatus
from keygate.main import create_app
from keygate.services.accounts import InMemoryAccountStore
from keygate.services.audit import InMemoryAuditRecorder
from keygate.services.key_store import InMemoryKeyStore
from keygate.services.sessions import create_access_token, hash_password

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def key_store() -> InMemoryKeyStore:
    return InMemoryKeyStore()


@pytest.fixture
def account_store() -> InMemoryAccountStore:
    return InMemoryAccountStore()


@pytest.fixture
def audit_recorder() -> InMemoryAuditRecorder:
    return InMemoryAuditRecorder()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        storage_backend="memory",
        jwt_secret="test-secret-that-is-long-enough-for-hs256",
        github_client_id="",
    )


@pytest.fixture
def make_account(account_store):
    """Create an account synchronously; returns its AccountProfile."""

    def _make(
        email: str = "alice@keygate.dev",
        *,
        role: UserRole = UserRole.USER,
        status: UserStatus = UserStatus.ACTIVE,
        password: str | None = None,
    ):
        return asyncio.run(account_store.create(
            email,
            password_hash=hash_password(password) if password else None,
            role=role,
            status=status,
            name=email.split("@")[0].title(),
            username=email.split("@")[0],
        ))

    return _make


@pytest.fixture
def auth_headers(settings):
    """Bearer headers for an account."""

    def _headers(account) -> dict[str, str]:
        token, _ = create_access_token(account.id, account.role, settings)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def app(settings, key_store, account_store, audit_recorder, clock):
    return create_app(
        settings,
        key_store=key_store,
        account_store=account_store,
        audit_recorder=audit_recorder,
        clock=clock,
    )


@pytest.fixture
def client(app):
    # Entering the context runs the lifespan (builds validator and issuer)
    with TestClient(app) as test_client:
        yield test_client
