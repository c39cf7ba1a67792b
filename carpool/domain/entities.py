"""
Domain entities.

Patterns used
-------------
- **Immutable snapshots**: every entity is a frozen dataclass.  A transition
  builds a new instance with ``dataclasses.replace``; a rejected transition
  raises before anything is built, so the caller's snapshot is never
  partially updated.
- **State Pattern** via ``check_transition``: the transition tables in
  ``enums`` decide which moves are legal, and the optional ``expected``
  status acts as an optimistic-concurrency token.
- ``Ride`` is the aggregate root for its ``Booking`` records; seat counts
  and earnings are derived from them and never stored separately.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Mapping, Optional, TypeVar

from .enums import (
    BOOKING_FINALIZED,
    BOOKING_TERMINAL,
    BOOKING_TRANSITIONS,
    REQUEST_TERMINAL,
    REQUEST_TRANSITIONS,
    RIDE_TERMINAL,
    RIDE_TRANSITIONS,
    ApprovalStatus,
    BookingStatus,
    RequestStatus,
    RideStatus,
)
from .exceptions import CapacityExceeded, InvalidInput, NotFound, StaleState, TerminalState
from .money import ZERO, round2, to_decimal

S = TypeVar("S", bound=Enum)


def check_transition(
    current: S,
    target: S,
    transitions: Mapping[S, set[S]],
    terminal: frozenset,
    *,
    attempted: str,
    expected: Optional[S] = None,
) -> None:
    """Raise unless ``current -> target`` is legal.

    ``expected`` is the status the caller last observed.  A mismatch is always
    ``StaleState`` -- even if the entity has since reached a terminal status --
    so that of several racing transitions exactly one wins and the rest see a
    conflict.
    """
    if expected is not None and current != expected:
        raise StaleState(
            f"{attempted}: expected status {expected.value}, found {current.value}",
            current_status=current,
            attempted=attempted,
            expected=expected,
        )
    if current in terminal:
        raise TerminalState(
            f"{attempted}: status {current.value} is terminal",
            current_status=current,
            attempted=attempted,
        )
    if target not in transitions.get(current, set()):
        raise StaleState(
            f"{attempted}: cannot move from {current.value} to {target.value}",
            current_status=current,
            attempted=attempted,
        )


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    address: Optional[str] = None


@dataclass(frozen=True)
class Trip:
    """Resolved route between two points, produced by a routing lookup."""

    origin: Location
    destination: Location
    distance_miles: float
    duration_minutes: float

    def __post_init__(self) -> None:
        if self.distance_miles < 0 or self.duration_minutes < 0:
            raise InvalidInput("trip distance and duration must be >= 0")


# ── Entities ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DirectRideRequest:
    id: str
    requester_id: str
    driver_id: str
    origin: Location
    destination: Location
    requested_datetime: datetime
    seats_requested: int
    rider_max_price_per_seat: Decimal
    driver_quoted_price: Optional[Decimal] = None
    message: str = ""
    status: RequestStatus = RequestStatus.PENDING
    created_at: Optional[datetime] = None
    booking_id: Optional[str] = None
    currency: str = "USD"

    def __post_init__(self) -> None:
        if self.seats_requested < 1:
            raise InvalidInput("seats_requested must be >= 1")
        max_price = round2(to_decimal(self.rider_max_price_per_seat, "rider_max_price_per_seat"))
        if max_price <= 0:
            raise InvalidInput("rider_max_price_per_seat must be > 0")
        object.__setattr__(self, "rider_max_price_per_seat", max_price)
        if self.driver_quoted_price is not None:
            object.__setattr__(
                self, "driver_quoted_price", round2(self.driver_quoted_price)
            )

    @property
    def is_terminal(self) -> bool:
        return self.status in REQUEST_TERMINAL

    def transition_to(
        self,
        new_status: RequestStatus,
        *,
        attempted: str,
        expected: Optional[RequestStatus] = None,
        **changes,
    ) -> "DirectRideRequest":
        check_transition(
            self.status,
            new_status,
            REQUEST_TRANSITIONS,
            REQUEST_TERMINAL,
            attempted=attempted,
            expected=expected,
        )
        return replace(self, status=new_status, **changes)


@dataclass(frozen=True)
class Booking:
    id: str
    ride_id: str
    rider_id: str
    seats_booked: int
    price_per_seat: Decimal
    total_paid: Decimal = ZERO
    status: BookingStatus = BookingStatus.PENDING
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    currency: str = "USD"
    created_at: Optional[datetime] = None
    source_request_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.seats_booked < 1:
            raise InvalidInput("seats_booked must be >= 1")
        price = round2(to_decimal(self.price_per_seat, "price_per_seat"))
        if price <= 0:
            raise InvalidInput("price_per_seat must be > 0")
        object.__setattr__(self, "price_per_seat", price)
        object.__setattr__(self, "total_paid", round2(self.total_paid))

    @property
    def amount_due(self) -> Decimal:
        return round2(self.price_per_seat * self.seats_booked)

    @property
    def is_terminal(self) -> bool:
        return self.status in BOOKING_TERMINAL

    @property
    def is_finalized(self) -> bool:
        return self.status in BOOKING_FINALIZED

    @property
    def holds_seats(self) -> bool:
        """Seats are reserved from approval onward, not from payment."""
        if self.status == BookingStatus.PENDING:
            return self.approval_status == ApprovalStatus.APPROVED
        return self.status in (
            BookingStatus.CONFIRMED,
            BookingStatus.PAID,
            BookingStatus.COMPLETED,
        )

    def transition_to(
        self,
        new_status: BookingStatus,
        *,
        attempted: str,
        expected: Optional[BookingStatus] = None,
        **changes,
    ) -> "Booking":
        check_transition(
            self.status,
            new_status,
            BOOKING_TRANSITIONS,
            BOOKING_TERMINAL,
            attempted=attempted,
            expected=expected,
        )
        return replace(self, status=new_status, **changes)


@dataclass(frozen=True)
class Ride:
    id: str
    driver_id: str
    origin: Location
    destination: Location
    departure_time: datetime
    price_per_seat: Decimal
    seats_total: int
    fare_splitting_enabled: bool = False
    status: RideStatus = RideStatus.OPEN
    bookings: tuple[Booking, ...] = field(default_factory=tuple)
    currency: str = "USD"
    version: int = 0

    def __post_init__(self) -> None:
        if self.seats_total < 1:
            raise InvalidInput("seats_total must be >= 1")
        price = round2(to_decimal(self.price_per_seat, "price_per_seat"))
        if price <= 0:
            raise InvalidInput("price_per_seat must be > 0")
        object.__setattr__(self, "price_per_seat", price)
        object.__setattr__(self, "bookings", tuple(self.bookings))
        if self.seats_booked > self.seats_total:
            raise CapacityExceeded(
                f"ride {self.id} would hold {self.seats_booked} of "
                f"{self.seats_total} seats",
                current_status=self.status,
            )

    # ── Derived aggregates ────────────────────────────────────────

    @property
    def seats_booked(self) -> int:
        return sum(b.seats_booked for b in self.bookings if b.holds_seats)

    @property
    def seats_available(self) -> int:
        return self.seats_total - self.seats_booked

    @property
    def total_earnings(self) -> Decimal:
        return round2(sum((b.total_paid for b in self.bookings if b.is_finalized), ZERO))

    @property
    def has_finalized_bookings(self) -> bool:
        return any(b.is_finalized for b in self.bookings)

    @property
    def is_terminal(self) -> bool:
        return self.status in RIDE_TERMINAL

    # ── Booking access ────────────────────────────────────────────

    def booking(self, booking_id: str) -> Booking:
        for b in self.bookings:
            if b.id == booking_id:
                return b
        raise NotFound(
            f"booking {booking_id} does not belong to ride {self.id}",
            current_status=self.status,
        )

    def with_bookings(self, *updated: Booking) -> "Ride":
        """Return a copy with *updated* bookings swapped in (or appended)."""
        by_id = {b.id: b for b in updated}
        merged = [by_id.pop(b.id, b) for b in self.bookings]
        merged.extend(by_id.values())
        return replace(self, bookings=tuple(merged))

    def transition_to(
        self,
        new_status: RideStatus,
        *,
        attempted: str,
        expected: Optional[RideStatus] = None,
    ) -> "Ride":
        check_transition(
            self.status,
            new_status,
            RIDE_TRANSITIONS,
            RIDE_TERMINAL,
            attempted=attempted,
            expected=expected,
        )
        return replace(self, status=new_status)
