"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  Every test gets its own engine; ``StaticPool``
keeps the single in-memory connection alive for the test's lifetime.
Redis is an ``AsyncMock`` and the clock is frozen so time-based rules
(refund buckets, the completion delay) are deterministic.
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.app import create_app
from carpool.api.dependencies import get_clock, get_db
from carpool.api.middleware import limiter
from carpool.infrastructure import models  # noqa: F401  (registers tables)
from carpool.infrastructure.database import Base, build_engine, build_session_factory
from carpool.infrastructure.redis_client import get_redis

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable stand-in for ``get_clock``; tests move it with ``advance``."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now

    def set(self, when: datetime) -> datetime:
        self.now = when
        return self.now


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine():
    test_engine = build_engine(TEST_DB_URL)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_redis():
    """Redis that always grants the lock."""
    redis = AsyncMock()
    redis.set = AsyncMock(return_value=True)
    redis.eval = AsyncMock(return_value=1)
    return redis


@pytest.fixture
def clock():
    return FrozenClock()


@pytest_asyncio.fixture
async def client(session_factory, mock_redis, clock) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with DB, Redis and clock overridden.

    ``ASGITransport`` does not run lifespan events, so the background
    expiry worker never starts during tests.
    """
    app = create_app()

    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def _get_redis():
        return mock_redis

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_redis] = _get_redis
    app.dependency_overrides[get_clock] = clock

    limiter.enabled = False
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    limiter.enabled = True
