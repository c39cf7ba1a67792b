"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work), maps rows to the
immutable domain entities and back, and persists transitions with
compare-and-swap ``UPDATE`` statements:

* rides     -- ``WHERE id = ? AND status = ? AND version = ?``
* bookings  -- ``WHERE id = ? AND status = ? AND approval_status = ?``
* requests  -- ``WHERE id = ? AND status = ?``

A zero row count means someone else moved the row first; that surfaces as
``StaleState`` and the caller's transaction is rolled back.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import BookingModel, DirectRideRequestModel, RideModel
from carpool.domain.entities import Booking, DirectRideRequest, Location, Ride
from carpool.domain.enums import (
    REQUEST_TERMINAL,
    RIDE_TERMINAL,
    ApprovalStatus,
    BookingStatus,
    RequestStatus,
    RideStatus,
)
from carpool.domain.exceptions import NotFound, StaleState

_LIVE_RIDE = [s.value for s in RideStatus if s not in RIDE_TERMINAL]
_LIVE_REQUEST = [s.value for s in RequestStatus if s not in REQUEST_TERMINAL]


# ── Row <-> entity mapping ────────────────────────────────────────────


def _location(lat: float, lng: float, address: Optional[str]) -> Location:
    return Location(latitude=lat, longitude=lng, address=address)


def booking_from_row(row: BookingModel) -> Booking:
    return Booking(
        id=row.id,
        ride_id=row.ride_id,
        rider_id=row.rider_id,
        seats_booked=row.seats_booked,
        price_per_seat=row.price_per_seat,
        total_paid=row.total_paid,
        status=BookingStatus(row.status),
        approval_status=ApprovalStatus(row.approval_status),
        currency=row.currency,
        created_at=row.created_at,
        source_request_id=row.source_request_id,
    )


def ride_from_row(row: RideModel) -> Ride:
    return Ride(
        id=row.id,
        driver_id=row.driver_id,
        origin=_location(row.origin_lat, row.origin_lng, row.origin_address),
        destination=_location(
            row.destination_lat, row.destination_lng, row.destination_address
        ),
        departure_time=row.departure_time,
        price_per_seat=row.price_per_seat,
        seats_total=row.seats_total,
        fare_splitting_enabled=row.fare_splitting_enabled,
        status=RideStatus(row.status),
        bookings=tuple(booking_from_row(b) for b in row.bookings),
        currency=row.currency,
        version=row.version,
    )


def request_from_row(row: DirectRideRequestModel) -> DirectRideRequest:
    return DirectRideRequest(
        id=row.id,
        requester_id=row.requester_id,
        driver_id=row.driver_id,
        origin=_location(row.origin_lat, row.origin_lng, row.origin_address),
        destination=_location(
            row.destination_lat, row.destination_lng, row.destination_address
        ),
        requested_datetime=row.requested_datetime,
        seats_requested=row.seats_requested,
        rider_max_price_per_seat=row.rider_max_price_per_seat,
        driver_quoted_price=row.driver_quoted_price,
        message=row.message or "",
        status=RequestStatus(row.status),
        created_at=row.created_at,
        booking_id=row.booking_id,
        currency=row.currency,
    )


def _booking_row(booking: Booking) -> BookingModel:
    return BookingModel(
        id=booking.id,
        ride_id=booking.ride_id,
        rider_id=booking.rider_id,
        seats_booked=booking.seats_booked,
        price_per_seat=booking.price_per_seat,
        total_paid=booking.total_paid,
        currency=booking.currency,
        status=booking.status.value,
        approval_status=booking.approval_status.value,
        source_request_id=booking.source_request_id,
        created_at=booking.created_at,
    )


# ── Repositories ──────────────────────────────────────────────────────


class RideRepository:
    """Rides together with their bookings (one aggregate)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, ride: Ride) -> Ride:
        self.session.add(
            RideModel(
                id=ride.id,
                driver_id=ride.driver_id,
                origin_lat=ride.origin.latitude,
                origin_lng=ride.origin.longitude,
                origin_address=ride.origin.address,
                destination_lat=ride.destination.latitude,
                destination_lng=ride.destination.longitude,
                destination_address=ride.destination.address,
                departure_time=ride.departure_time,
                price_per_seat=ride.price_per_seat,
                seats_total=ride.seats_total,
                fare_splitting_enabled=ride.fare_splitting_enabled,
                currency=ride.currency,
                status=ride.status.value,
                version=ride.version,
            )
        )
        for booking in ride.bookings:
            self.session.add(_booking_row(booking))
        await self.session.flush()
        return ride

    async def find(self, ride_id: str) -> Optional[Ride]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.id == ride_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return ride_from_row(row) if row else None

    async def get(self, ride_id: str) -> Ride:
        ride = await self.find(ride_id)
        if ride is None:
            raise NotFound(f"ride {ride_id} not found")
        return ride

    async def save(self, before: Ride, after: Ride) -> Ride:
        """Persist ``before -> after``; raise ``StaleState`` if the row moved."""
        result = await self.session.execute(
            update(RideModel)
            .where(
                RideModel.id == before.id,
                RideModel.status == before.status.value,
                RideModel.version == before.version,
            )
            .values(
                status=after.status.value,
                price_per_seat=after.price_per_seat,
                version=after.version,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise StaleState(
                f"ride {before.id} changed concurrently (expected version "
                f"{before.version}, status {before.status.value})",
                current_status=before.status,
                attempted="save_ride",
                expected=before.status,
            )

        previous = {b.id: b for b in before.bookings}
        for booking in after.bookings:
            old = previous.get(booking.id)
            if old is None:
                self.session.add(_booking_row(booking))
            elif old != booking:
                await self._save_booking(old, booking)
        await self.session.flush()
        return after

    async def _save_booking(self, before: Booking, after: Booking) -> None:
        result = await self.session.execute(
            update(BookingModel)
            .where(
                BookingModel.id == before.id,
                BookingModel.status == before.status.value,
                BookingModel.approval_status == before.approval_status.value,
            )
            .values(
                status=after.status.value,
                approval_status=after.approval_status.value,
                total_paid=after.total_paid,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise StaleState(
                f"booking {before.id} changed concurrently",
                current_status=before.status,
                attempted="save_booking",
                expected=before.status,
            )

    async def list_departed_live(self, now: datetime) -> list[Ride]:
        """Non-terminal rides whose departure time has passed."""
        result = await self.session.execute(
            select(RideModel)
            .where(
                RideModel.status.in_(_LIVE_RIDE),
                RideModel.departure_time < now,
            )
            .order_by(RideModel.departure_time)
            .execution_options(populate_existing=True)
        )
        return [ride_from_row(r) for r in result.scalars().all()]


class DirectRequestRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, request: DirectRideRequest) -> DirectRideRequest:
        self.session.add(
            DirectRideRequestModel(
                id=request.id,
                requester_id=request.requester_id,
                driver_id=request.driver_id,
                origin_lat=request.origin.latitude,
                origin_lng=request.origin.longitude,
                origin_address=request.origin.address,
                destination_lat=request.destination.latitude,
                destination_lng=request.destination.longitude,
                destination_address=request.destination.address,
                requested_datetime=request.requested_datetime,
                seats_requested=request.seats_requested,
                rider_max_price_per_seat=request.rider_max_price_per_seat,
                driver_quoted_price=request.driver_quoted_price,
                message=request.message,
                currency=request.currency,
                status=request.status.value,
                booking_id=request.booking_id,
                created_at=request.created_at,
            )
        )
        await self.session.flush()
        return request

    async def find(self, request_id: str) -> Optional[DirectRideRequest]:
        result = await self.session.execute(
            select(DirectRideRequestModel)
            .where(DirectRideRequestModel.id == request_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return request_from_row(row) if row else None

    async def get(self, request_id: str) -> DirectRideRequest:
        request = await self.find(request_id)
        if request is None:
            raise NotFound(f"request {request_id} not found")
        return request

    async def save(
        self, before: DirectRideRequest, after: DirectRideRequest
    ) -> DirectRideRequest:
        result = await self.session.execute(
            update(DirectRideRequestModel)
            .where(
                DirectRideRequestModel.id == before.id,
                DirectRideRequestModel.status == before.status.value,
            )
            .values(
                status=after.status.value,
                driver_quoted_price=after.driver_quoted_price,
                booking_id=after.booking_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise StaleState(
                f"request {before.id} changed concurrently",
                current_status=before.status,
                attempted="save_request",
                expected=before.status,
            )
        return after

    async def list_expirable(self, now: datetime) -> list[DirectRideRequest]:
        """Live requests whose requested time is at or before *now*."""
        result = await self.session.execute(
            select(DirectRideRequestModel)
            .where(
                DirectRideRequestModel.status.in_(_LIVE_REQUEST),
                DirectRideRequestModel.requested_datetime <= now,
            )
            .order_by(DirectRideRequestModel.requested_datetime)
            .execution_options(populate_existing=True)
        )
        return [request_from_row(r) for r in result.scalars().all()]
