"""
Ride endpoints
==============

POST /api/v1/rides                                   -- driver posts a ride
GET  /api/v1/rides/{ride_id}                         -- ride, seats and bookings
GET  /api/v1/rides/{ride_id}/earnings                -- confirmed vs pending driver earnings
POST /api/v1/rides/{ride_id}/reprice                 -- change the posted price
POST /api/v1/rides/{ride_id}/bookings                -- rider books seats
POST /api/v1/rides/{ride_id}/bookings/{bid}/approve  -- driver approves (reserves seats)
POST /api/v1/rides/{ride_id}/bookings/{bid}/reject   -- driver rejects
POST /api/v1/rides/{ride_id}/bookings/{bid}/pay      -- record a captured payment
POST /api/v1/rides/{ride_id}/bookings/{bid}/cancel   -- cancel one booking with refund
POST /api/v1/rides/{ride_id}/complete                -- driver marks the trip done
POST /api/v1/rides/{ride_id}/cancel                  -- driver cancels the whole ride
"""

import dataclasses
import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_clock, get_db
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    BookingCancellationResponse,
    BookingCreate,
    BookingResultResponse,
    BookingTransitionBody,
    EarningsSummaryResponse,
    PayBody,
    RepriceBody,
    RideCancellationResponse,
    RideCreate,
    RideResponse,
    RideTransitionBody,
)
from carpool.config import settings
from carpool.domain.entities import Location
from carpool.domain.fare_split import driver_earnings_summary
from carpool.domain.lifecycle import (
    approve_booking,
    cancel_booking,
    cancel_ride,
    complete_ride,
    pay_booking,
    post_ride,
    reject_booking,
    reprice_ride,
    request_booking,
)
from carpool.infrastructure.repositories import RideRepository

router = APIRouter(prefix="/rides", tags=["rides"])


def _expected(body: Optional[BaseModel]):
    return getattr(body, "expected_status", None)


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="Post a ride",
)
@limiter.limit(settings.rate_limit)
async def create_ride(
    request: Request,
    body: RideCreate,
    db: AsyncSession = Depends(get_db),
):
    ride = post_ride(
        ride_id=uuid.uuid4().hex,
        driver_id=body.driver_id,
        origin=Location(**body.origin.model_dump()),
        destination=Location(**body.destination.model_dump()),
        departure_time=body.departure_time,
        price_per_seat=body.price_per_seat,
        seats_total=body.seats_total,
        fare_splitting_enabled=body.fare_splitting_enabled,
        currency=body.currency or settings.default_currency,
    )
    await RideRepository(db).add(ride)
    return RideResponse.model_validate(ride)


@router.get(
    "/{ride_id}",
    response_model=RideResponse,
    summary="Get a ride with its bookings",
)
@limiter.limit(settings.rate_limit)
async def get_ride(
    request: Request,
    ride_id: str,
    db: AsyncSession = Depends(get_db),
):
    return RideResponse.model_validate(await RideRepository(db).get(ride_id))


@router.get(
    "/{ride_id}/earnings",
    response_model=EarningsSummaryResponse,
    summary="Driver earnings across the ride's bookings",
)
@limiter.limit(settings.rate_limit)
async def get_earnings(
    request: Request,
    ride_id: str,
    db: AsyncSession = Depends(get_db),
):
    ride = await RideRepository(db).get(ride_id)
    summary = driver_earnings_summary(ride.price_per_seat, ride.bookings)
    return EarningsSummaryResponse(
        **dataclasses.asdict(summary), currency=ride.currency
    )


@router.post(
    "/{ride_id}/reprice",
    response_model=RideResponse,
    summary="Change the posted price",
    description="Existing bookings keep the price they were created with.",
)
@limiter.limit(settings.rate_limit)
async def reprice(
    request: Request,
    ride_id: str,
    body: RepriceBody,
    db: AsyncSession = Depends(get_db),
):
    repo = RideRepository(db)
    ride = await repo.get(ride_id)
    updated = reprice_ride(ride, body.price_per_seat, expected=body.expected_status)
    return RideResponse.model_validate(await repo.save(ride, updated))


# ── Bookings ──────────────────────────────────────────────────────────


@router.post(
    "/{ride_id}/bookings",
    status_code=201,
    response_model=BookingResultResponse,
    summary="Book seats on a ride",
    description="The booking waits for the driver's approval before it holds seats.",
)
@limiter.limit(settings.rate_limit)
async def create_booking(
    request: Request,
    ride_id: str,
    body: BookingCreate,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_clock),
):
    repo = RideRepository(db)
    ride = await repo.get(ride_id)
    result = request_booking(
        ride,
        booking_id=uuid.uuid4().hex,
        rider_id=body.rider_id,
        seats=body.seats,
        now=now,
        expected=body.expected_status,
    )
    await repo.save(ride, result.ride)
    return BookingResultResponse.model_validate(result)


@router.post(
    "/{ride_id}/bookings/{booking_id}/approve",
    response_model=BookingResultResponse,
    summary="Driver approves a booking",
)
@limiter.limit(settings.rate_limit)
async def approve(
    request: Request,
    ride_id: str,
    booking_id: str,
    body: Optional[BookingTransitionBody] = None,
    db: AsyncSession = Depends(get_db),
):
    repo = RideRepository(db)
    ride = await repo.get(ride_id)
    result = approve_booking(ride, booking_id, expected=_expected(body))
    await repo.save(ride, result.ride)
    return BookingResultResponse.model_validate(result)


@router.post(
    "/{ride_id}/bookings/{booking_id}/reject",
    response_model=BookingResultResponse,
    summary="Driver rejects a booking",
)
@limiter.limit(settings.rate_limit)
async def reject(
    request: Request,
    ride_id: str,
    booking_id: str,
    body: Optional[BookingTransitionBody] = None,
    db: AsyncSession = Depends(get_db),
):
    repo = RideRepository(db)
    ride = await repo.get(ride_id)
    result = reject_booking(ride, booking_id, expected=_expected(body))
    await repo.save(ride, result.ride)
    return BookingResultResponse.model_validate(result)


@router.post(
    "/{ride_id}/bookings/{booking_id}/pay",
    response_model=BookingResultResponse,
    summary="Record a captured payment",
    description="``amount`` must equal seats x the booking's price snapshot.",
)
@limiter.limit(settings.rate_limit)
async def pay(
    request: Request,
    ride_id: str,
    booking_id: str,
    body: PayBody,
    db: AsyncSession = Depends(get_db),
):
    repo = RideRepository(db)
    ride = await repo.get(ride_id)
    result = pay_booking(ride, booking_id, body.amount, expected=body.expected_status)
    await repo.save(ride, result.ride)
    return BookingResultResponse.model_validate(result)


@router.post(
    "/{ride_id}/bookings/{booking_id}/cancel",
    response_model=BookingCancellationResponse,
    summary="Cancel one booking",
    description="The refund depends on how long before departure the cancel happens.",
)
@limiter.limit(settings.rate_limit)
async def cancel_one_booking(
    request: Request,
    ride_id: str,
    booking_id: str,
    body: Optional[BookingTransitionBody] = None,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_clock),
):
    repo = RideRepository(db)
    ride = await repo.get(ride_id)
    result = cancel_booking(ride, booking_id, now, expected=_expected(body))
    await repo.save(ride, result.ride)
    return BookingCancellationResponse.model_validate(result)


# ── Ride transitions ──────────────────────────────────────────────────


@router.post(
    "/{ride_id}/complete",
    response_model=RideResponse,
    summary="Mark the ride completed",
    description="Allowed from two hours after departure; earlier returns 412.",
)
@limiter.limit(settings.rate_limit)
async def complete(
    request: Request,
    ride_id: str,
    body: Optional[RideTransitionBody] = None,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_clock),
):
    repo = RideRepository(db)
    ride = await repo.get(ride_id)
    completed = complete_ride(ride, now, expected=_expected(body))
    return RideResponse.model_validate(await repo.save(ride, completed))


@router.post(
    "/{ride_id}/cancel",
    response_model=RideCancellationResponse,
    summary="Cancel the ride and every live booking on it",
)
@limiter.limit(settings.rate_limit)
async def cancel(
    request: Request,
    ride_id: str,
    body: Optional[RideTransitionBody] = None,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_clock),
):
    repo = RideRepository(db)
    ride = await repo.get(ride_id)
    result = cancel_ride(ride, now, expected=_expected(body))
    await repo.save(ride, result.ride)
    return RideCancellationResponse.model_validate(result)
