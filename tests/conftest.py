"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- A controllable clock
- In-memory storage shared by all repository adapters
- Recording fakes for the SMS and mail ports
- A FastAPI app and TestClient wired to all of the above
- A PostgreSQL pool and storage for the integration suites
"""

from collections.abc import Generator

import psycopg
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from psycopg_pool import ConnectionPool, PoolTimeout

from schoolgate.adapters.repository.memory import MemoryDatabase
from schoolgate.adapters.repository.postgres import run_migrations
from schoolgate.adapters.storage import Storage, build_memory_storage, build_postgres_storage
from schoolgate.api.dependencies import get_mailer, get_sms_sender
from schoolgate.api.errors import register_exception_handlers
from schoolgate.api.v1 import router as v1_router
from schoolgate.api.web import router as web_router
from schoolgate.config.settings import Settings, get_settings
from tests.helpers import (
    TEST_ROUNDS,
    TEST_SECRET,
    FakeClock,
    RecordingMailer,
    RecordingSmsSender,
)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_db() -> MemoryDatabase:
    return MemoryDatabase()


@pytest.fixture
def storage(memory_db: MemoryDatabase) -> Storage:
    """In-memory storage; every adapter shares one database."""
    return build_memory_storage(memory_db)


@pytest.fixture
def sms_sender() -> RecordingSmsSender:
    return RecordingSmsSender()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def settings() -> Settings:
    return Settings(storage_backend="memory", bcrypt_cost=TEST_ROUNDS, jwt_secret_key=TEST_SECRET)


@pytest.fixture
def app(
    storage: Storage,
    settings: Settings,
    sms_sender: RecordingSmsSender,
    mailer: RecordingMailer,
) -> Generator[FastAPI, None, None]:
    """Application wired to in-memory storage and recording fakes."""
    test_app = FastAPI()
    register_exception_handlers(test_app)
    test_app.include_router(v1_router, prefix="/api/v1")
    test_app.include_router(web_router)

    test_app.state.storage = storage
    test_app.dependency_overrides[get_settings] = lambda: settings
    test_app.dependency_overrides[get_sms_sender] = lambda: sms_sender
    test_app.dependency_overrides[get_mailer] = lambda: mailer

    yield test_app
    test_app.dependency_overrides.clear()


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Test client that leaves redirects to the test."""
    return TestClient(app, follow_redirects=False)


# === PostgreSQL fixtures (integration and adversarial suites) ===

TABLES = (
    "events",
    "wizard_flows",
    "verification_codes",
    "class_enrollments",
    "role_assignments",
    "invites",
    "accounts",
)


@pytest.fixture(scope="session")
def pool() -> Generator[ConnectionPool, None, None]:
    """Connection pool on the configured database; skips when it is unreachable."""
    settings = get_settings()
    pool = ConnectionPool(conninfo=settings.database_url, min_size=1, max_size=10, open=False)
    try:
        pool.open(wait=True, timeout=3)
    except (PoolTimeout, psycopg.OperationalError):
        pool.close()
        pytest.skip("PostgreSQL is not reachable")
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture
def pg_storage(pool: ConnectionPool) -> Storage:
    """PostgreSQL storage over freshly emptied tables."""
    with pool.connection() as conn:
        conn.execute(f"TRUNCATE {', '.join(TABLES)} CASCADE")
    return build_postgres_storage(pool)
