"""
tests/conftest.py -- Shared test fixtures for SubmitVault unit and integration tests.

This module provides:
  - clock: a settable clock for OTP expiry and lockout windows
  - account_store / audit_store / submission_store: fresh in-memory stores
  - protector: ContentProtector with throwaway keys
  - auth_service: AuthService wired to in-memory stores and the fake clock
  - api_client: TestClient over the real app with a patched lifespan and
    one logged-in account per role
  - login_flow: runs the two-step login over HTTP and returns the token

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the TestClient because it runs route handlers in a thread pool. Plain
':memory:' DBs are per-connection and would present a blank schema to each
worker thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.
Unit-test stores stay on one thread, so plain ':memory:' is enough there.

DEBUG, ALLOWED_HOSTS and LOGIN_RATE_LIMIT must be set before api.main is
imported: the middleware stack and rate limit read get_settings() at import
time, and DEBUG lets Settings auto-generate the secrets.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

# CRITICAL: Set these before any api/ or core/ import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app, close_state, configure_state
from audit.sink import AuditSink
from audit.store import AuditStore
from auth.lockout import LockoutPolicy
from auth.models import Role
from auth.otp import OTPIssuer
from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.store import AccountStore
from auth.tokens import TokenService
from core.config import Settings
from vault.protector import ContentProtector
from vault.store import SubmissionStore

# Satisfies the default credential policy: 16 chars, all four classes.
PASSWORD = "Correct-Horse-9!"

# bcrypt's minimum cost keeps the suite fast; production uses 12.
TEST_ROUNDS = 4

TEST_SECRET = "test-secret-key-0123456789abcdef0123456789"


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock that only moves when a test calls advance()."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Unit-test components
# ---------------------------------------------------------------------------


@pytest.fixture
def account_store() -> Generator[AccountStore, None, None]:
    store = AccountStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def audit_store() -> Generator[AuditStore, None, None]:
    store = AuditStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def submission_store() -> Generator[SubmissionStore, None, None]:
    store = SubmissionStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=TEST_ROUNDS)


@pytest.fixture
def protector() -> ContentProtector:
    return ContentProtector(os.urandom(32), b"test-signing-key-0123456789abcdef")


@pytest.fixture
def auth_service(account_store, audit_store, hasher, clock) -> AuthService:
    """AuthService with threshold 3, 900 s lock, 300 s OTP, all on the fake clock."""
    return AuthService(
        store=account_store,
        hasher=hasher,
        otp=OTPIssuer(account_store, ttl_seconds=300, clock=clock),
        tokens=TokenService(TEST_SECRET, lifetime_seconds=3600, clock=clock),
        lockout=LockoutPolicy(threshold=3, duration_seconds=900),
        audit=AuditSink(audit_store),
        password_min_length=12,
        clock=clock,
    )


# ---------------------------------------------------------------------------
# API integration fixtures
# ---------------------------------------------------------------------------


def _test_settings() -> Settings:
    """Settings pointed at a fresh named shared-memory database.

    A uuid in the name keeps modules from seeing each other's rows even when
    an earlier module's connections have not been collected yet.
    """
    name = f"test_submitvault_{uuid.uuid4().hex}"
    return Settings(
        debug=True,
        database_url=f"sqlite:///file:{name}?mode=memory&cache=shared&uri=true",
        bcrypt_rounds=TEST_ROUNDS,
        _env_file=None,
    )


def _patch_lifespan(settings: Settings):
    """Return an async context manager that replaces the real lifespan.

    Builds the real component graph via configure_state(), only with test
    settings, so TestClient routes exercise the production wiring.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        configure_state(app.state, settings)
        yield
        close_state(app.state)

    return test_lifespan


@dataclass
class ApiContext:
    client: TestClient
    state: object
    headers: dict[str, dict[str, str]]  # username -> Authorization header
    account_ids: dict[str, int]


# username -> role for the accounts every API test module starts with
SEED_ACCOUNTS = {
    "alice": Role.SUBMITTER,
    "bob": Role.SUBMITTER,
    "rita": Role.REVIEWER,
    "otto": Role.AUDITOR,
}


@pytest.fixture(scope="module")
def api_client() -> Generator[ApiContext, None, None]:
    """Yield an ApiContext for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use an isolated in-memory database.
    Seed accounts are registered through AuthService and given tokens minted
    by the app's own TokenService.
    """
    app.router.lifespan_context = _patch_lifespan(_test_settings())

    with TestClient(app, raise_server_exceptions=True) as client:
        state = app.state
        headers: dict[str, dict[str, str]] = {}
        account_ids: dict[str, int] = {}
        for username, role in SEED_ACCOUNTS.items():
            account = state.auth.register(username, PASSWORD, role)
            token = state.tokens.issue(account.id, account.username, account.role)
            headers[username] = {"Authorization": f"Bearer {token}"}
            account_ids[username] = account.id
        yield ApiContext(client=client, state=state, headers=headers, account_ids=account_ids)


@pytest.fixture
def login_flow(api_client) -> Callable[[str, str], str]:
    """Return a function that performs password + OTP login over HTTP.

    The one-time code is read back from the account store, standing in for
    the out-of-band delivery channel.
    """

    def _login(username: str, password: str = PASSWORD) -> str:
        client = api_client.client
        resp = client.post("/api/v1/auth/login", json={"username": username, "password": password})
        assert resp.status_code == 200, resp.text
        account_id = resp.json()["account_id"]
        code = api_client.state.account_store.get_latest_challenge(account_id).code
        resp = client.post("/api/v1/auth/verify-otp", json={"account_id": account_id, "code": code})
        assert resp.status_code == 200, resp.text
        return resp.json()["access_token"]

    return _login
