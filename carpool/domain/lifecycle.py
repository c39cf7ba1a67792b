"""
Posted ride & booking lifecycle
===============================

Ride
----
    open <-> full <-> matched --complete (>= departure + 2h)--> completed
      \\         \\         \\--cancel (<= departure + 30m)----> cancelled
       \\--------\\--------\\--expire (departed, nothing paid)--> expired

Among the live statuses the ride's status is *derived*, never set directly
(see ``derive_status``).

Booking
-------
    pending[approval=pending] --approve--> pending[approval=approved] --pay--> paid --ride completes--> completed
             \\--reject--> cancelled[approval=rejected]
    confirmed (from a direct request) --pay--> paid
    pending / confirmed / paid --cancel--> cancelled (refund per policy)
    pending / confirmed --expire--> expired

Seats are reserved the moment a booking is approved, not when it is paid,
so the approval window can never overbook a ride.

Every function takes the ``Ride`` aggregate (with its bookings) and returns a
new one with ``version`` bumped; nothing is mutated in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from .entities import Booking, Location, Ride
from .enums import (
    BOOKING_UNPAID,
    ApprovalStatus,
    BookingStatus,
    RideStatus,
    RideType,
)
from .exceptions import (
    CancellationWindowClosed,
    CapacityExceeded,
    InvalidInput,
    PreconditionNotMet,
    StaleState,
    TerminalState,
    TooEarly,
)
from .fare_split import require_fare_splitting_eligible, split
from .money import Number, round2, to_decimal
from .refunds import CANCELLATION_CUTOFF, CancellationOutcome, format_remaining, preview_refund

logger = logging.getLogger(__name__)

COMPLETION_DELAY = timedelta(hours=2)


@dataclass(frozen=True)
class BookingResult:
    ride: Ride
    booking: Booking


@dataclass(frozen=True)
class BookingCancellation:
    ride: Ride
    booking: Booking
    outcome: CancellationOutcome


@dataclass(frozen=True)
class RideCancellation:
    ride: Ride
    outcomes: dict[str, CancellationOutcome]

    @property
    def total_refund(self) -> Decimal:
        return round2(sum((o.refund_amount for o in self.outcomes.values()), Decimal(0)))


# ── Helpers ───────────────────────────────────────────────────────────


def derive_status(ride: Ride) -> RideStatus:
    """Live status implied by the ride's bookings; terminal statuses stick."""
    if ride.is_terminal:
        return ride.status
    if ride.seats_available == 0:
        return RideStatus.FULL
    if ride.has_finalized_bookings:
        return RideStatus.MATCHED
    return RideStatus.OPEN


def _commit(ride: Ride) -> Ride:
    """Re-derive the live status and bump the version."""
    return replace(ride, status=derive_status(ride), version=ride.version + 1)


def _require_live(ride: Ride, attempted: str, expected: Optional[RideStatus] = None) -> None:
    if expected is not None and ride.status != expected:
        raise StaleState(
            f"{attempted}: expected ride status {expected.value}, found {ride.status.value}",
            current_status=ride.status,
            attempted=attempted,
            expected=expected,
        )
    if ride.is_terminal:
        raise TerminalState(
            f"{attempted}: ride {ride.id} is {ride.status.value}",
            current_status=ride.status,
            attempted=attempted,
        )


def _require_approval(booking: Booking, approval: ApprovalStatus, attempted: str) -> None:
    if booking.approval_status != approval:
        raise StaleState(
            f"{attempted}: booking {booking.id} approval is "
            f"{booking.approval_status.value}, expected {approval.value}",
            current_status=booking.status,
            attempted=attempted,
        )


def _require_booking_status(
    booking: Booking,
    allowed: set[BookingStatus],
    attempted: str,
    expected: Optional[BookingStatus] = None,
) -> None:
    if expected is not None and booking.status != expected:
        raise StaleState(
            f"{attempted}: expected booking status {expected.value}, "
            f"found {booking.status.value}",
            current_status=booking.status,
            attempted=attempted,
            expected=expected,
        )
    if booking.is_terminal:
        raise TerminalState(
            f"{attempted}: booking {booking.id} is {booking.status.value}",
            current_status=booking.status,
            attempted=attempted,
        )
    if booking.status not in allowed:
        raise StaleState(
            f"{attempted}: booking {booking.id} is {booking.status.value}",
            current_status=booking.status,
            attempted=attempted,
        )


def _require_window_open(ride: Ride, now: datetime, attempted: str, current) -> None:
    if now > ride.departure_time + CANCELLATION_CUTOFF:
        raise CancellationWindowClosed(
            f"{attempted}: ride {ride.id} departed more than "
            f"{int(CANCELLATION_CUTOFF.total_seconds() // 60)} minutes ago",
            current_status=current,
            attempted=attempted,
        )


# ── Ride creation & pricing ───────────────────────────────────────────


def post_ride(
    *,
    ride_id: str,
    driver_id: str,
    origin: Location,
    destination: Location,
    departure_time: datetime,
    price_per_seat: Number,
    seats_total: int,
    fare_splitting_enabled: bool = False,
    currency: str = "USD",
) -> Ride:
    if fare_splitting_enabled:
        require_fare_splitting_eligible(RideType.POST, seats_total, True)
    return Ride(
        id=ride_id,
        driver_id=driver_id,
        origin=origin,
        destination=destination,
        departure_time=departure_time,
        price_per_seat=to_decimal(price_per_seat, "price_per_seat"),
        seats_total=seats_total,
        fare_splitting_enabled=fare_splitting_enabled,
        currency=currency,
    )


def booking_price(ride: Ride, seats: int) -> Decimal:
    """Per-seat price a new booking of *seats* would lock in right now."""
    if not ride.fare_splitting_enabled:
        return ride.price_per_seat
    return split(ride.price_per_seat, ride.seats_booked + seats).discounted_price_per_seat


def reprice_ride(
    ride: Ride, new_price: Number, *, expected: Optional[RideStatus] = None
) -> Ride:
    """Change the posted price.  Existing bookings keep their snapshot."""
    _require_live(ride, "reprice_ride", expected)
    price = round2(to_decimal(new_price, "price_per_seat"))
    if price <= 0:
        raise InvalidInput("price_per_seat must be > 0", attempted="reprice_ride")
    return _commit(replace(ride, price_per_seat=price))


# ── Booking transitions ───────────────────────────────────────────────


def request_booking(
    ride: Ride,
    *,
    booking_id: str,
    rider_id: str,
    seats: int,
    now: datetime,
    expected: Optional[RideStatus] = None,
) -> BookingResult:
    """A rider commits to a posted ride; the driver still has to approve."""
    _require_live(ride, "request_booking", expected)
    if seats < 1:
        raise InvalidInput("seats must be >= 1", attempted="request_booking")
    if rider_id == ride.driver_id:
        raise InvalidInput("drivers cannot book their own ride", attempted="request_booking")
    if now >= ride.departure_time:
        raise PreconditionNotMet(
            f"ride {ride.id} has already departed",
            current_status=ride.status,
            attempted="request_booking",
        )
    if seats > ride.seats_available:
        raise CapacityExceeded(
            f"ride {ride.id} has {ride.seats_available} seat(s) left, "
            f"{seats} requested",
            current_status=ride.status,
            attempted="request_booking",
        )

    booking = Booking(
        id=booking_id,
        ride_id=ride.id,
        rider_id=rider_id,
        seats_booked=seats,
        price_per_seat=booking_price(ride, seats),
        currency=ride.currency,
        created_at=now,
    )
    updated = _commit(ride.with_bookings(booking))
    return BookingResult(ride=updated, booking=booking)


def attach_booking(ride: Ride, booking: Booking) -> Ride:
    """Attach a booking created elsewhere (e.g. from a direct request)."""
    _require_live(ride, "attach_booking")
    if booking.ride_id != ride.id:
        raise InvalidInput(
            f"booking {booking.id} belongs to ride {booking.ride_id}",
            attempted="attach_booking",
        )
    if booking.holds_seats and booking.seats_booked > ride.seats_available:
        raise CapacityExceeded(
            f"ride {ride.id} has {ride.seats_available} seat(s) left",
            current_status=ride.status,
            attempted="attach_booking",
        )
    return _commit(ride.with_bookings(booking))


def approve_booking(
    ride: Ride,
    booking_id: str,
    *,
    expected: Optional[BookingStatus] = None,
) -> BookingResult:
    _require_live(ride, "approve_booking")
    booking = ride.booking(booking_id)
    _require_booking_status(booking, {BookingStatus.PENDING}, "approve_booking", expected)
    _require_approval(booking, ApprovalStatus.PENDING, "approve_booking")
    if booking.seats_booked > ride.seats_available:
        raise CapacityExceeded(
            f"approving {booking.seats_booked} seat(s) would overbook ride "
            f"{ride.id} ({ride.seats_available} left)",
            current_status=booking.status,
            attempted="approve_booking",
        )

    approved = replace(booking, approval_status=ApprovalStatus.APPROVED)
    logger.debug("Booking %s approved on ride %s", booking_id, ride.id)
    return BookingResult(ride=_commit(ride.with_bookings(approved)), booking=approved)


def reject_booking(
    ride: Ride,
    booking_id: str,
    *,
    expected: Optional[BookingStatus] = None,
) -> BookingResult:
    _require_live(ride, "reject_booking")
    booking = ride.booking(booking_id)
    _require_booking_status(booking, {BookingStatus.PENDING}, "reject_booking", expected)
    rejected = booking.transition_to(
        BookingStatus.CANCELLED,
        attempted="reject_booking",
        approval_status=ApprovalStatus.REJECTED,
    )
    return BookingResult(ride=_commit(ride.with_bookings(rejected)), booking=rejected)


def pay_booking(
    ride: Ride,
    booking_id: str,
    amount: Number,
    *,
    expected: Optional[BookingStatus] = None,
) -> BookingResult:
    """Record a captured payment.  *amount* must match the snapshot price."""
    _require_live(ride, "pay_booking")
    booking = ride.booking(booking_id)
    paid = booking.transition_to(
        BookingStatus.PAID,
        attempted="pay_booking",
        expected=expected,
        total_paid=round2(to_decimal(amount, "amount")),
    )
    if booking.status == BookingStatus.PENDING:
        _require_approval(booking, ApprovalStatus.APPROVED, "pay_booking")
    if paid.total_paid != booking.amount_due:
        raise InvalidInput(
            f"payment of {paid.total_paid} does not match {booking.amount_due} due "
            f"({booking.seats_booked} x {booking.price_per_seat})",
            current_status=booking.status,
            attempted="pay_booking",
        )
    return BookingResult(ride=_commit(ride.with_bookings(paid)), booking=paid)


def cancel_booking(
    ride: Ride,
    booking_id: str,
    now: datetime,
    *,
    expected: Optional[BookingStatus] = None,
) -> BookingCancellation:
    """Rider- or driver-initiated cancellation of one booking."""
    booking = ride.booking(booking_id)
    cancelled = booking.transition_to(
        BookingStatus.CANCELLED, attempted="cancel_booking", expected=expected
    )
    _require_window_open(ride, now, "cancel_booking", booking.status)

    outcome = preview_refund(booking.total_paid, ride.departure_time, now, booking.status)
    updated = _commit(ride.with_bookings(cancelled))
    logger.info(
        "Booking %s cancelled (%s): refund %s, penalty %s",
        booking_id,
        outcome.category.value,
        outcome.refund_amount,
        outcome.penalty_amount,
    )
    return BookingCancellation(ride=updated, booking=cancelled, outcome=outcome)


def expire_booking(
    ride: Ride,
    booking_id: str,
    *,
    expected: Optional[BookingStatus] = None,
) -> BookingResult:
    """Lapse an unpaid booking.  Called by the host's expiry sweep."""
    booking = ride.booking(booking_id)
    _require_booking_status(booking, set(BOOKING_UNPAID), "expire_booking", expected)
    expired = booking.transition_to(BookingStatus.EXPIRED, attempted="expire_booking")
    return BookingResult(ride=_commit(ride.with_bookings(expired)), booking=expired)


# ── Ride transitions ──────────────────────────────────────────────────


def time_until_completable(ride: Ride, now: datetime) -> timedelta:
    return max(timedelta(0), ride.departure_time + COMPLETION_DELAY - now)


def complete_ride(
    ride: Ride, now: datetime, *, expected: Optional[RideStatus] = None
) -> Ride:
    """Driver marks the trip done; every paid booking completes with it."""
    _require_live(ride, "complete_ride", expected)
    remaining = time_until_completable(ride, now)
    if remaining > timedelta(0):
        raise TooEarly(
            f"ride {ride.id} can be completed in {format_remaining(remaining)}",
            remaining=remaining,
            current_status=ride.status,
            attempted="complete_ride",
        )

    # Unpaid bookings are left alone; they lapse on their own.
    bookings = tuple(
        b.transition_to(BookingStatus.COMPLETED, attempted="complete_ride")
        if b.status == BookingStatus.PAID
        else b
        for b in ride.bookings
    )
    completed = replace(ride, bookings=bookings).transition_to(
        RideStatus.COMPLETED, attempted="complete_ride"
    )
    logger.info(
        "Ride %s completed; earnings %s", ride.id, completed.total_earnings
    )
    return replace(completed, version=ride.version + 1)


def cancel_ride(
    ride: Ride, now: datetime, *, expected: Optional[RideStatus] = None
) -> RideCancellation:
    """Driver cancels the ride; each live booking is cancelled and refunded on its own."""
    _require_live(ride, "cancel_ride", expected)
    _require_window_open(ride, now, "cancel_ride", ride.status)

    outcomes: dict[str, CancellationOutcome] = {}
    bookings = []
    for b in ride.bookings:
        if b.is_terminal:
            bookings.append(b)
            continue
        outcomes[b.id] = preview_refund(b.total_paid, ride.departure_time, now, b.status)
        bookings.append(b.transition_to(BookingStatus.CANCELLED, attempted="cancel_ride"))

    cancelled = replace(ride, bookings=tuple(bookings)).transition_to(
        RideStatus.CANCELLED, attempted="cancel_ride"
    )
    logger.info("Ride %s cancelled; %d booking(s) refunded", ride.id, len(outcomes))
    return RideCancellation(
        ride=replace(cancelled, version=ride.version + 1), outcomes=outcomes
    )


def expire_ride(
    ride: Ride, now: datetime, *, expected: Optional[RideStatus] = None
) -> Ride:
    """Departure passed and nothing was ever paid: the post lapses."""
    _require_live(ride, "expire_ride", expected)
    if now <= ride.departure_time:
        raise PreconditionNotMet(
            f"ride {ride.id} has not departed yet",
            current_status=ride.status,
            attempted="expire_ride",
        )
    if ride.has_finalized_bookings:
        raise PreconditionNotMet(
            f"ride {ride.id} has paid bookings and must be completed or cancelled",
            current_status=ride.status,
            attempted="expire_ride",
        )

    bookings = tuple(
        b if b.is_terminal else b.transition_to(BookingStatus.EXPIRED, attempted="expire_ride")
        for b in ride.bookings
    )
    expired = replace(ride, bookings=bookings).transition_to(
        RideStatus.EXPIRED, attempted="expire_ride"
    )
    return replace(expired, version=ride.version + 1)


def total_earnings(ride: Ride) -> Decimal:
    return ride.total_earnings
