"""FastAPI dependency injection helpers."""

from datetime import datetime, timezone
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncSession

from carpool.config import settings
from carpool.domain.pricing import PricingEngine, PricingRates
from carpool.infrastructure.database import async_session_factory


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_clock() -> datetime:
    """Wall-clock ``now`` for this request.  Tests override it."""
    return datetime.now(timezone.utc)


@lru_cache
def get_pricing_engine() -> PricingEngine:
    return PricingEngine(
        PricingRates.from_settings(settings), currency=settings.default_currency
    )
