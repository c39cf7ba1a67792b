"""
Background Expiry Worker
========================

Runs every ``EXPIRY_SWEEP_INTERVAL_SECONDS`` (default 60 s).

Concurrency safety
------------------
* **Redis distributed lock** ensures only one instance sweeps at a time
  across multiple API processes.
* Every write is a compare-and-swap through the repositories.  If a user
  action wins the race for a row, the sweep rolls that item back, logs it,
  and moves on.
* The lock TTL is pushed out before each item; if another worker has
  taken the lock in the meantime the sweep stops and leaves the rest to it.

Work per cycle
--------------
1. Departed rides with no paid/completed booking become ``expired``; their
   unpaid bookings expire with them.
2. Departed rides that *do* have paid bookings stay live (the driver still
   has to complete or cancel), but their unpaid bookings lapse.
3. Direct requests whose requested time has passed become ``expired``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.config import settings
from carpool.domain.entities import Ride
from carpool.domain.enums import BOOKING_UNPAID
from carpool.domain.exceptions import EngineError
from carpool.domain.lifecycle import expire_booking, expire_ride
from carpool.domain.negotiation import expire_request
from carpool.infrastructure.database import async_session_factory
from carpool.infrastructure.locks import DistributedLock
from carpool.infrastructure.redis_client import get_redis
from carpool.infrastructure.repositories import (
    DirectRequestRepository,
    RideRepository,
)

logger = logging.getLogger(__name__)

LOCK_NAME = "expiry_sweep"

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


@dataclass
class SweepSummary:
    ran: bool = True
    rides_expired: int = 0
    bookings_expired: int = 0
    requests_expired: int = 0
    conflicts: int = 0
    lock_lost: bool = False


# ── Public API ────────────────────────────────────────────────────────


async def start_expiry_loop() -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info(
        "Expiry worker started (interval=%ds)",
        settings.expiry_sweep_interval_seconds,
    )


async def stop_expiry_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Expiry worker stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _loop() -> None:
    """Periodic loop: run a sweep then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            redis = await get_redis()
            async with async_session_factory() as session:
                await run_expiry_cycle(session, redis, datetime.now(timezone.utc))
        except Exception:
            logger.exception("Unhandled error in expiry cycle")
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.expiry_sweep_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass


def _expire_departed(ride: Ride, now: datetime) -> tuple[Ride, int, bool]:
    """Return (new snapshot, bookings expired, whether the ride itself expired)."""
    unpaid = sum(1 for b in ride.bookings if b.status in BOOKING_UNPAID)
    if not ride.has_finalized_bookings:
        return expire_ride(ride, now, expected=ride.status), unpaid, True

    updated = ride
    for booking in ride.bookings:
        if booking.status in BOOKING_UNPAID:
            updated = expire_booking(
                updated, booking.id, expected=booking.status
            ).ride
    return updated, unpaid, False


async def run_expiry_cycle(
    session: AsyncSession,
    redis: aioredis.Redis,
    now: datetime,
) -> SweepSummary:
    """Execute one sweep under the distributed lock."""
    lock = DistributedLock(redis, LOCK_NAME, ttl_seconds=settings.expiry_lock_ttl_seconds)
    if not await lock.acquire():
        logger.debug("Lock held by another worker - skipping sweep")
        return SweepSummary(ran=False)

    summary = SweepSummary()
    try:
        rides = RideRepository(session)
        requests = DirectRequestRepository(session)

        for ride in await rides.list_departed_live(now):
            if ride.has_finalized_bookings and not any(
                b.status in BOOKING_UNPAID for b in ride.bookings
            ):
                continue
            if not await lock.extend():
                break
            try:
                updated, lapsed, ride_expired = _expire_departed(ride, now)
                await rides.save(ride, updated)
                await session.commit()
            except EngineError as exc:
                await session.rollback()
                summary.conflicts += 1
                logger.info("Skipped ride %s during sweep: %s", ride.id, exc)
                continue
            summary.bookings_expired += lapsed
            summary.rides_expired += int(ride_expired)

        expirable = await requests.list_expirable(now) if lock.held else []
        for request in expirable:
            if not await lock.extend():
                break
            try:
                expired = expire_request(request, now, expected=request.status)
                await requests.save(request, expired)
                await session.commit()
            except EngineError as exc:
                await session.rollback()
                summary.conflicts += 1
                logger.info("Skipped request %s during sweep: %s", request.id, exc)
                continue
            summary.requests_expired += 1

        if not lock.held:
            summary.lock_lost = True
            logger.warning("Expiry sweep stopped early: lock %s was lost", lock.key)
    finally:
        await lock.release()

    if summary.rides_expired or summary.bookings_expired or summary.requests_expired:
        logger.info(
            "Expiry sweep: %d ride(s), %d booking(s), %d request(s) expired",
            summary.rides_expired,
            summary.bookings_expired,
            summary.requests_expired,
        )
    return summary
