"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates, through the same domain functions the API uses:
  - 4 posted rides around the Bay Area (one with fare splitting)
  - bookings in every sub-state: pending, approved, paid
  - 3 direct requests: pending, quoted, confirmed
"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select

from carpool.domain.entities import Location
from carpool.domain.lifecycle import (
    approve_booking,
    pay_booking,
    post_ride,
    request_booking,
)
from carpool.domain.negotiation import accept_quote, open_request, quote
from carpool.infrastructure.database import async_session_factory, engine
from carpool.infrastructure.models import RideModel
from carpool.infrastructure.repositories import DirectRequestRepository, RideRepository

SFO = Location(37.6213, -122.3790, "San Francisco International Airport")
PALO_ALTO = Location(37.4419, -122.1430, "Palo Alto")
OAKLAND = Location(37.8044, -122.2712, "Oakland")
SAN_JOSE = Location(37.3382, -121.8863, "San Jose")
BERKELEY = Location(37.8715, -122.2730, "Berkeley")

RIDES = [
    # (driver, origin, destination, hours ahead, price, seats, fare split)
    ("driver-ana", SFO, PALO_ALTO, 30, "24.00", 3, True),
    ("driver-ben", OAKLAND, SAN_JOSE, 6, "18.50", 4, False),
    ("driver-caro", BERKELEY, SFO, 3, "21.00", 2, False),
    ("driver-dev", SAN_JOSE, OAKLAND, 50, "17.25", 3, True),
]

RIDERS = ["rider-eli", "rider-fay", "rider-gus", "rider-hal"]


def _id() -> str:
    return uuid.uuid4().hex


async def seed():
    now = datetime.now(timezone.utc)
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(select(func.count()).select_from(RideModel))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        rides = RideRepository(session)
        requests = DirectRequestRepository(session)

        # ── Rides & bookings ─────────────────────────────────────────
        for i, (driver, origin, dest, hours, price, seats, split) in enumerate(RIDES):
            ride = post_ride(
                ride_id=_id(),
                driver_id=driver,
                origin=origin,
                destination=dest,
                departure_time=now + timedelta(hours=hours),
                price_per_seat=price,
                seats_total=seats,
                fare_splitting_enabled=split,
            )
            await rides.add(ride)

            # Ride i gets i bookings, each one step further along.
            current = ride
            for step, rider in enumerate(RIDERS[:i]):
                booked = request_booking(
                    current, booking_id=_id(), rider_id=rider, seats=1, now=now
                )
                current = booked.ride
                if step >= 1:
                    current = approve_booking(current, booked.booking.id).ride
                if step >= 2:
                    b = current.booking(booked.booking.id)
                    current = pay_booking(current, b.id, b.amount_due).ride
            if current is not ride:
                await rides.save(ride, current)
        print(f"  Created {len(RIDES)} rides")

        # ── Direct requests ──────────────────────────────────────────
        pending = open_request(
            request_id=_id(),
            requester_id="rider-eli",
            driver_id="driver-ben",
            origin=OAKLAND,
            destination=SFO,
            requested_datetime=now + timedelta(days=2),
            seats_requested=1,
            rider_max_price_per_seat="20.00",
            now=now,
            message="Flight at 9am, one carry-on.",
        )
        await requests.add(pending)

        quoted = open_request(
            request_id=_id(),
            requester_id="rider-fay",
            driver_id="driver-ana",
            origin=PALO_ALTO,
            destination=SFO,
            requested_datetime=now + timedelta(days=1),
            seats_requested=2,
            rider_max_price_per_seat="25.00",
            now=now,
        )
        await requests.add(quote(quoted, "22.00").request)

        confirmed = open_request(
            request_id=_id(),
            requester_id="rider-gus",
            driver_id="driver-dev",
            origin=SAN_JOSE,
            destination=BERKELEY,
            requested_datetime=now + timedelta(days=3),
            seats_requested=1,
            rider_max_price_per_seat="30.00",
            now=now,
        )
        await requests.add(accept_quote(quote(confirmed, "28.00").request))
        print("  Created 3 direct requests")

        await session.commit()
        print("Seed complete.")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
