"""
Async SQLAlchemy engine and session factory.

Production runs on PostgreSQL through ``asyncpg``; tests and local
experiments can point ``DATABASE_URL`` at ``sqlite+aiosqlite``.  SQLite
rejects the queue-pool sizing arguments, and an in-memory SQLite database
lives only as long as its one connection, so ``build_engine`` switches to a
``StaticPool`` there.
"""

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from carpool.config import settings


def build_engine(url: str, *, echo: bool = False) -> AsyncEngine:
    if make_url(url).get_backend_name() == "sqlite":
        return create_async_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(
        url,
        echo=echo,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Snapshots are rebuilt from rows after commit; expiring them buys nothing.
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_url, echo=settings.db_echo)
async_session_factory = build_session_factory(engine)


class Base(DeclarativeBase):
    """Declarative base shared by the ride, booking and request tables."""
