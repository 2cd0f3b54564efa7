import os
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, text

from portal.config.settings import AuthMode, Settings
from portal.infra.database import Database
from portal.main import create_app
from portal.v1.core.rate_limit import RateLimiter
from portal.v1.core.registries import JobRegistry
from portal.v1.infra.jobs.handlers import DevelopmentResult, ProjectDevelopmentPayload
from portal.v1.infra.jobs.store import JobStore

CRON_SECRET = "test-cron-secret"


class FakeClock:
    """Settable wall clock for the job store."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime.now(UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeDevelopmentAgent:
    """Development agent returning queued outcomes, success once they run out."""

    def __init__(self, outcomes: list[Any] | None = None):
        self.outcomes = list(outcomes or [])
        self.calls: list[ProjectDevelopmentPayload] = []

    async def develop(self, payload: ProjectDevelopmentPayload) -> DevelopmentResult:
        self.calls.append(payload)
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if isinstance(outcome, Exception):
            raise outcome
        return outcome or DevelopmentResult(
            success=True,
            repository_url=f"https://git.example.com/{payload.project_id}",
            generated_files=["index.html"],
        )


class RecordingHandler:
    """Job handler that records calls and raises queued errors."""

    def __init__(self, errors: list[Exception] | None = None, result: Any = None):
        self.errors = list(errors or [])
        self.result = result
        self.calls: list[tuple[Any, Any]] = []

    async def handle(self, session, job, payload):
        self.calls.append((job.id, payload))
        if self.errors:
            raise self.errors.pop(0)
        return self.result


def _postgres_url() -> str | None:
    database_url = os.getenv("DATABASE_URL")
    if database_url and "postgresql" in database_url:
        return database_url
    return None


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings for an isolated test database."""
    return Settings(
        database_url=_postgres_url() or f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}",
        environment="development",
        debug=False,
        auth_mode=AuthMode.DEV,
        log_level="WARNING",
        cron_secret=CRON_SECRET,
        job_backoff_jitter=0.0,
    )


@pytest.fixture
async def database(settings) -> AsyncGenerator[Database, None]:
    """Create the job tables in a fresh database."""
    db = Database(settings)

    if db.engine.dialect.name == "sqlite":
        # Serialise writers the way row locks do on PostgreSQL
        @event.listens_for(db.engine.sync_engine, "connect")
        def do_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(db.engine.sync_engine, "begin")
        def do_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    await db.create_all()
    yield db

    if db.engine.dialect.name == "postgresql":
        async with db.engine.begin() as conn:
            await conn.execute(text("DELETE FROM jobs"))
    await db.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(database, settings, clock) -> JobStore:
    return JobStore(database, settings, clock=clock)


@pytest.fixture
def registry() -> JobRegistry:
    return JobRegistry()


@pytest.fixture
def agent() -> FakeDevelopmentAgent:
    return FakeDevelopmentAgent()


@pytest.fixture
def app(settings, database, agent):
    """Create a test FastAPI application bound to the test database."""
    return create_app(
        settings=settings,
        database=database,
        rate_limiter=RateLimiter(),
        agent=agent,
    )


@pytest.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for the test application."""
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"X-User-ID": "user-1"}


@pytest.fixture
def cron_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {CRON_SECRET}"}


@pytest.fixture
def handler_factory():
    """Build RecordingHandler instances: handler_factory(errors=[...], result=...)."""
    return RecordingHandler
