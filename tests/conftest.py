"""
Pytest configuration and shared fixtures.
"""

import os
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

# Test database URL - in-memory SQLite, one fresh database per engine
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

# Set DATABASE_URL environment variable BEFORE any imports that might read settings
os.environ["DATABASE_URL"] = TEST_DATABASE_URL

from delayed_jobs.api.main import create_app  # noqa: E402
from delayed_jobs.config import WorkerConfig  # noqa: E402
from delayed_jobs.db import (  # noqa: E402
    create_engine_for_url,
    create_session_factory,
    create_tables,
    get_async_session,
    get_session_context,
)
from delayed_jobs.db.repository import JobRepository  # noqa: E402
from delayed_jobs.db.views import IndexViews  # noqa: E402
from delayed_jobs.types.job import JobRecord, WriteResult  # noqa: E402


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class Store:
    """
    Test-side access to the job store.

    Every call runs in its own committed session, like the workers do.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock: FakeClock):
        self._session_factory = session_factory
        self._clock = clock

    async def enqueue(self, payload: dict[str, Any] | None = None, **kwargs: Any) -> JobRecord:
        async with get_session_context(self._session_factory) as session:
            return await JobRepository(session, clock=self._clock).create_job(
                payload=payload or {"job_type": "echo", "data": {"message": "hello"}},
                **kwargs,
            )

    async def get(self, job_id: UUID) -> JobRecord:
        async with get_session_context(self._session_factory) as session:
            job = await JobRepository(session, clock=self._clock).get_job(job_id)
        assert job is not None
        return job

    async def write(self, record: JobRecord) -> WriteResult:
        async with get_session_context(self._session_factory) as session:
            return await JobRepository(session, clock=self._clock).conditional_write(record)

    async def ready_ids(self) -> list[UUID]:
        async with get_session_context(self._session_factory) as session:
            return [job.id for job in await IndexViews(session, clock=self._clock).ready_jobs()]

    async def my_ids(self, worker_id: str) -> list[UUID]:
        async with get_session_context(self._session_factory) as session:
            return [job.id for job in await IndexViews(session, clock=self._clock).my_jobs(worker_id)]

    async def expired_ids(self, max_run_time: timedelta) -> list[UUID]:
        async with get_session_context(self._session_factory) as session:
            views = IndexViews(session, clock=self._clock)
            return [job.id for job in await views.expired_jobs(max_run_time)]

    async def candidate_ids(self, worker_id: str, max_run_time: timedelta) -> set[UUID]:
        """Ids found by any of the three reservation queries."""
        return {
            *await self.ready_ids(),
            *await self.my_ids(worker_id),
            *await self.expired_ids(max_run_time),
        }


@pytest.fixture
def clock() -> FakeClock:
    """Create a controllable clock."""
    return FakeClock(datetime(2026, 1, 1, 12, 0, 0))


@pytest_asyncio.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Create an async database engine with the schema in place."""
    engine = create_engine_for_url(TEST_DATABASE_URL)
    await create_tables(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to the test engine."""
    return create_session_factory(async_engine)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create a database session for tests."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession], clock: FakeClock) -> Store:
    """Create a store helper sharing the test clock."""
    return Store(session_factory, clock)


@pytest.fixture
def worker_config() -> WorkerConfig:
    """Create worker settings with a short max run time."""
    return WorkerConfig(
        max_run_time=timedelta(minutes=5),
        read_ahead=5,
        poll_interval=0.01,
        retry_base_delay=5.0,
        retry_backoff_exponent=4,
    )


@pytest_asyncio.fixture
async def app(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[FastAPI]:
    """Create a FastAPI app whose routes use the test database."""

    async def override_session() -> AsyncGenerator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app = create_app()
    app.dependency_overrides[get_async_session] = override_session
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
