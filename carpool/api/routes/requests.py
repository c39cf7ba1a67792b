"""
Direct ride request endpoints
=============================

POST /api/v1/requests                  -- rider asks a specific driver
GET  /api/v1/requests/{request_id}     -- current negotiation state
POST /api/v1/requests/{request_id}/quote    -- driver quotes a per-seat price
POST /api/v1/requests/{request_id}/accept   -- rider accepts the quote
POST /api/v1/requests/{request_id}/decline  -- rider (or driver) declines
POST /api/v1/requests/{request_id}/cancel   -- rider withdraws
POST /api/v1/requests/{request_id}/book     -- confirmed request becomes a booking

Every transition accepts ``expected_status``; the repository's
compare-and-swap turns a lost race into 409 even without it.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_clock, get_db
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    BookingHandoffResponse,
    BookingResponse,
    BookRequestBody,
    DeclineBody,
    DirectRequestCreate,
    DirectRequestResponse,
    QuoteBody,
    RequestTransitionBody,
    RideResponse,
)
from carpool.config import settings
from carpool.domain.entities import Location
from carpool.domain.exceptions import InvalidInput
from carpool.domain.lifecycle import attach_booking, post_ride
from carpool.domain.negotiation import (
    accept_quote,
    book_from_confirmed,
    cancel_request,
    decline_quote,
    decline_request,
    open_request,
    quote,
)
from carpool.infrastructure.repositories import DirectRequestRepository, RideRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/requests", tags=["requests"])


def _expected(body: Optional[RequestTransitionBody]):
    return body.expected_status if body else None


@router.post(
    "",
    status_code=201,
    response_model=DirectRequestResponse,
    summary="Send a direct ride request to a driver",
)
@limiter.limit(settings.rate_limit)
async def create_request(
    request: Request,
    body: DirectRequestCreate,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_clock),
):
    ride_request = open_request(
        request_id=uuid.uuid4().hex,
        requester_id=body.requester_id,
        driver_id=body.driver_id,
        origin=Location(**body.origin.model_dump()),
        destination=Location(**body.destination.model_dump()),
        requested_datetime=body.requested_datetime,
        seats_requested=body.seats_requested,
        rider_max_price_per_seat=body.rider_max_price_per_seat,
        now=now,
        message=body.message,
        currency=body.currency or settings.default_currency,
    )
    await DirectRequestRepository(db).add(ride_request)
    return DirectRequestResponse.model_validate(ride_request)


@router.get(
    "/{request_id}",
    response_model=DirectRequestResponse,
    summary="Get a direct request",
)
@limiter.limit(settings.rate_limit)
async def get_request(
    request: Request,
    request_id: str,
    db: AsyncSession = Depends(get_db),
):
    ride_request = await DirectRequestRepository(db).get(request_id)
    return DirectRequestResponse.model_validate(ride_request)


@router.post(
    "/{request_id}/quote",
    response_model=DirectRequestResponse,
    summary="Driver quotes a per-seat price",
    description="Quoting above the rider's maximum succeeds but returns a warning.",
)
@limiter.limit(settings.rate_limit)
async def quote_request(
    request: Request,
    request_id: str,
    body: QuoteBody,
    db: AsyncSession = Depends(get_db),
):
    repo = DirectRequestRepository(db)
    current = await repo.get(request_id)
    outcome = quote(current, body.price, expected=body.expected_status)
    await repo.save(current, outcome.request)
    response = DirectRequestResponse.model_validate(outcome.request)
    response.warnings = list(outcome.warnings)
    return response


@router.post(
    "/{request_id}/accept",
    response_model=DirectRequestResponse,
    summary="Rider accepts the quote",
)
@limiter.limit(settings.rate_limit)
async def accept_request(
    request: Request,
    request_id: str,
    body: Optional[RequestTransitionBody] = None,
    db: AsyncSession = Depends(get_db),
):
    repo = DirectRequestRepository(db)
    current = await repo.get(request_id)
    accepted = accept_quote(current, expected=_expected(body))
    await repo.save(current, accepted)
    return DirectRequestResponse.model_validate(accepted)


@router.post(
    "/{request_id}/decline",
    response_model=DirectRequestResponse,
    summary="Decline a request or its quote",
    description=(
        "``by=rider`` declines a driver's quote; ``by=driver`` declines a "
        "request that has not been quoted yet."
    ),
)
@limiter.limit(settings.rate_limit)
async def decline(
    request: Request,
    request_id: str,
    body: Optional[DeclineBody] = None,
    db: AsyncSession = Depends(get_db),
):
    repo = DirectRequestRepository(db)
    current = await repo.get(request_id)
    if body is not None and body.by == "driver":
        declined = decline_request(current, expected=body.expected_status)
    else:
        declined = decline_quote(current, expected=_expected(body))
    await repo.save(current, declined)
    return DirectRequestResponse.model_validate(declined)


@router.post(
    "/{request_id}/cancel",
    response_model=DirectRequestResponse,
    summary="Rider withdraws the request",
)
@limiter.limit(settings.rate_limit)
async def cancel(
    request: Request,
    request_id: str,
    body: Optional[RequestTransitionBody] = None,
    db: AsyncSession = Depends(get_db),
):
    repo = DirectRequestRepository(db)
    current = await repo.get(request_id)
    cancelled = cancel_request(current, expected=_expected(body))
    await repo.save(current, cancelled)
    return DirectRequestResponse.model_validate(cancelled)


@router.post(
    "/{request_id}/book",
    status_code=201,
    response_model=BookingHandoffResponse,
    summary="Turn a confirmed request into its booking",
    description=(
        "Creates exactly one booking at the quoted price.  With ``ride_id`` "
        "the booking joins that driver's ride; without it a ride is posted "
        "for the request's route and time."
    ),
)
@limiter.limit(settings.rate_limit)
async def book(
    request: Request,
    request_id: str,
    body: Optional[BookRequestBody] = None,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_clock),
):
    requests = DirectRequestRepository(db)
    rides = RideRepository(db)
    current = await requests.get(request_id)

    existing_ride_id = body.ride_id if body is not None else None
    handoff = book_from_confirmed(
        current,
        booking_id=uuid.uuid4().hex,
        ride_id=existing_ride_id or uuid.uuid4().hex,
        now=now,
        expected=_expected(body),
    )

    if existing_ride_id:
        ride = await rides.get(existing_ride_id)
        if ride.driver_id != current.driver_id:
            raise InvalidInput(
                f"ride {ride.id} belongs to another driver",
                current_status=current.status,
                attempted="book_from_confirmed",
            )
    else:
        ride = post_ride(
            ride_id=handoff.booking.ride_id,
            driver_id=current.driver_id,
            origin=current.origin,
            destination=current.destination,
            departure_time=current.requested_datetime,
            price_per_seat=handoff.booking.price_per_seat,
            seats_total=current.seats_requested,
            currency=current.currency,
        )
        await rides.add(ride)

    await requests.save(current, handoff.request)
    updated = await rides.save(ride, attach_booking(ride, handoff.booking))
    logger.info("Request %s booked onto ride %s", request_id, ride.id)

    return BookingHandoffResponse(
        request=DirectRequestResponse.model_validate(handoff.request),
        booking=BookingResponse.model_validate(handoff.booking),
        ride=RideResponse.model_validate(updated),
    )
