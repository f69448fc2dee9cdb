"""Shared test fixtures for the auth test suite."""

from datetime import datetime, timedelta
from pathlib import Path

import pytest
from dotenv import load_dotenv
from fastapi.testclient import TestClient

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env")

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module.reset_vault_cache()

from auth.config import AuthConfig
from auth.memory_store import InMemoryAuthStore
from auth.passwords import PasswordHasher
from auth.security_logger import SecurityLogger
from auth.service import AuthService
from auth.session import SessionManager
from utils.timezone import now_utc


# =============================================================================
# TEST CONSTANTS
# =============================================================================

TEST_EMAIL = "shopper@example.com"
TEST_PASSWORD = "LongPass123"
TEST_IP = "203.0.113.7"

# Cheapest bcrypt cost; real deployments use 12
TEST_BCRYPT_ROUNDS = 4


class FakeClock:
    """Settable UTC clock for stores that take a clock callable."""

    def __init__(self, start: datetime | None = None):
        self.now = start or now_utc()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingDelivery:
    """TokenDelivery that keeps what it was asked to send."""

    def __init__(self):
        self.sent = []

    def deliver(self, purpose, user, raw_token, expires_at):
        self.sent.append((purpose, user.email, raw_token, expires_at))

    @property
    def last_token(self) -> str:
        return self.sent[-1][2]


# =============================================================================
# CORE FIXTURES
# =============================================================================


@pytest.fixture
def config() -> AuthConfig:
    return AuthConfig(bcrypt_rounds=TEST_BCRYPT_ROUNDS)


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    """Session-scoped: building one at a non-default cost hashes once."""
    return PasswordHasher(TEST_BCRYPT_ROUNDS)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> InMemoryAuthStore:
    """In-memory store on the fake clock. Advance clock to age sessions."""
    return InMemoryAuthStore(clock=clock)


@pytest.fixture
def security_logger() -> SecurityLogger:
    """Log-only security logger (no database)."""
    return SecurityLogger()


@pytest.fixture
def delivery() -> RecordingDelivery:
    return RecordingDelivery()


@pytest.fixture
def session_manager(store, config) -> SessionManager:
    return SessionManager(store, config)


@pytest.fixture
def auth_service(config, store, hasher, session_manager, security_logger, delivery) -> AuthService:
    return AuthService(
        config=config,
        store=store,
        hasher=hasher,
        session_manager=session_manager,
        security_logger=security_logger,
        token_delivery=delivery,
    )


@pytest.fixture
def registered(auth_service):
    """A registered user with one live session."""
    return auth_service.register(TEST_EMAIL, TEST_PASSWORD, ip_address=TEST_IP)


# =============================================================================
# APP & CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def app(config, store, delivery):
    """Full application over the in-memory store."""
    from api.app import create_app

    return create_app(config=config, store=store, token_delivery=delivery)


@pytest.fixture
def client(app):
    """Anonymous test client; keeps cookies between calls."""
    return TestClient(app, raise_server_exceptions=False)
