"""
Direct ride request negotiation
===============================

A rider asks one specific driver for a ride; the driver answers with a
quote; the rider accepts or declines; an accepted quote becomes exactly
one booking.

    pending --quote--> driver_quoted --accept--> confirmed --book--> booked
       |                    |                        |
       +--decline/cancel/expire                      +--expire

Every operation is a total function of (snapshot, event[, now]) returning a
new snapshot or raising.  Each accepts ``expected`` -- the status the caller
last observed -- so a host can guarantee that of several racing
``accept_quote`` / ``decline_quote`` / ``cancel_request`` calls exactly one
succeeds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .entities import Booking, DirectRideRequest, Location, Trip
from .enums import ApprovalStatus, BookingStatus, RequestStatus
from .exceptions import InvalidInput, PreconditionNotMet, StaleState
from .money import Number, round2, to_decimal
from .pricing import PriceQuote, PricingEngine, RequestPricePreview, preview_request_price

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuoteOutcome:
    request: DirectRideRequest
    warnings: tuple[str, ...] = ()

    @property
    def above_max(self) -> bool:
        return bool(self.warnings)


@dataclass(frozen=True)
class BookingHandoff:
    """The booked request plus the booking it produced, returned together."""

    request: DirectRideRequest
    booking: Booking


@dataclass(frozen=True)
class RequestPreview:
    quote: PriceQuote
    seats: RequestPricePreview


def open_request(
    *,
    request_id: str,
    requester_id: str,
    driver_id: str,
    origin: Location,
    destination: Location,
    requested_datetime: datetime,
    seats_requested: int,
    rider_max_price_per_seat: Number,
    now: datetime,
    message: str = "",
    currency: str = "USD",
) -> DirectRideRequest:
    if requester_id == driver_id:
        raise InvalidInput("a rider cannot send a direct request to themselves")
    return DirectRideRequest(
        id=request_id,
        requester_id=requester_id,
        driver_id=driver_id,
        origin=origin,
        destination=destination,
        requested_datetime=requested_datetime,
        seats_requested=seats_requested,
        rider_max_price_per_seat=to_decimal(rider_max_price_per_seat, "rider_max_price_per_seat"),
        message=message,
        status=RequestStatus.PENDING,
        created_at=now,
        currency=currency,
    )


def quote(
    request: DirectRideRequest,
    price: Number,
    *,
    expected: Optional[RequestStatus] = None,
) -> QuoteOutcome:
    """Driver proposes *price* per seat.  Quoting above the rider's max is legal."""
    price = round2(to_decimal(price, "price"))
    if price <= 0:
        raise InvalidInput(f"quoted price must be > 0, got {price}", attempted="quote")

    quoted = request.transition_to(
        RequestStatus.DRIVER_QUOTED,
        attempted="quote",
        expected=expected,
        driver_quoted_price=price,
    )

    warnings: tuple[str, ...] = ()
    if price > request.rider_max_price_per_seat:
        msg = (
            f"quoted {price} exceeds the rider's maximum of "
            f"{request.rider_max_price_per_seat} per seat"
        )
        logger.warning("Request %s: %s", request.id, msg)
        warnings = (msg,)
    return QuoteOutcome(request=quoted, warnings=warnings)


def accept_quote(
    request: DirectRideRequest, *, expected: Optional[RequestStatus] = None
) -> DirectRideRequest:
    """Rider accepts; the quoted price is frozen from here on."""
    return request.transition_to(
        RequestStatus.CONFIRMED, attempted="accept_quote", expected=expected
    )


def _require_source(
    request: DirectRideRequest, source: RequestStatus, *, attempted: str
) -> None:
    if request.status != source:
        raise StaleState(
            f"{attempted}: only allowed from {source.value}, found {request.status.value}",
            current_status=request.status,
            attempted=attempted,
            expected=source,
        )


def decline_quote(
    request: DirectRideRequest, *, expected: Optional[RequestStatus] = None
) -> DirectRideRequest:
    """Rider turns the quote down.  A new quote needs a new request."""
    declined = request.transition_to(
        RequestStatus.DECLINED, attempted="decline_quote", expected=expected
    )
    _require_source(request, RequestStatus.DRIVER_QUOTED, attempted="decline_quote")
    return declined


def decline_request(
    request: DirectRideRequest, *, expected: Optional[RequestStatus] = None
) -> DirectRideRequest:
    """Driver declines before quoting."""
    declined = request.transition_to(
        RequestStatus.DECLINED, attempted="decline_request", expected=expected
    )
    _require_source(request, RequestStatus.PENDING, attempted="decline_request")
    return declined


def cancel_request(
    request: DirectRideRequest, *, expected: Optional[RequestStatus] = None
) -> DirectRideRequest:
    return request.transition_to(
        RequestStatus.CANCELLED, attempted="cancel_request", expected=expected
    )


def expire_request(
    request: DirectRideRequest,
    now: datetime,
    *,
    deadline: Optional[datetime] = None,
    expected: Optional[RequestStatus] = None,
) -> DirectRideRequest:
    deadline = deadline or request.requested_datetime
    if now < deadline:
        raise PreconditionNotMet(
            f"request {request.id} does not expire until {deadline.isoformat()}",
            current_status=request.status,
            attempted="expire_request",
        )
    return request.transition_to(
        RequestStatus.EXPIRED, attempted="expire_request", expected=expected
    )


def book_from_confirmed(
    request: DirectRideRequest,
    *,
    booking_id: str,
    ride_id: str,
    now: datetime,
    expected: Optional[RequestStatus] = None,
) -> BookingHandoff:
    """Turn a confirmed request into its one and only booking.

    The booking starts ``confirmed`` / ``approved``: both parties already
    agreed on the price, so only payment remains.
    """
    booked = request.transition_to(
        RequestStatus.BOOKED,
        attempted="book_from_confirmed",
        expected=expected,
        booking_id=booking_id,
    )
    booking = Booking(
        id=booking_id,
        ride_id=ride_id,
        rider_id=request.requester_id,
        seats_booked=request.seats_requested,
        price_per_seat=request.driver_quoted_price,
        status=BookingStatus.CONFIRMED,
        approval_status=ApprovalStatus.APPROVED,
        currency=request.currency,
        created_at=now,
        source_request_id=request.id,
    )
    logger.info("Request %s booked as %s", request.id, booking_id)
    return BookingHandoff(request=booked, booking=booking)


def preview_request_price_for_trip(
    trip: Trip, seats: int, engine: Optional[PricingEngine] = None
) -> RequestPreview:
    """Suggested price for the rider's ask, with the multi-seat discount shown."""
    engine = engine or PricingEngine()
    suggestion = engine.suggest_for_trip(trip)
    return RequestPreview(
        quote=suggestion,
        seats=preview_request_price(suggestion.suggested_price_per_seat, seats),
    )
