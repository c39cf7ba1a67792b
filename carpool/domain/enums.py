"""Domain enumerations and state-transition rules."""

import enum


class RideType(str, enum.Enum):
    POST = "post"
    REQUEST = "request"


# ── Direct ride request ───────────────────────────────────────────────


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    DRIVER_QUOTED = "driver_quoted"
    CONFIRMED = "confirmed"
    BOOKED = "booked"
    DECLINED = "declined"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


REQUEST_TRANSITIONS: dict[RequestStatus, set[RequestStatus]] = {
    RequestStatus.PENDING: {
        RequestStatus.DRIVER_QUOTED,
        RequestStatus.DECLINED,
        RequestStatus.EXPIRED,
        RequestStatus.CANCELLED,
    },
    RequestStatus.DRIVER_QUOTED: {
        RequestStatus.CONFIRMED,
        RequestStatus.DECLINED,
        RequestStatus.EXPIRED,
        RequestStatus.CANCELLED,
    },
    # Once confirmed, cancellation goes through the booking lifecycle.
    RequestStatus.CONFIRMED: {RequestStatus.BOOKED, RequestStatus.EXPIRED},
    RequestStatus.BOOKED: set(),
    RequestStatus.DECLINED: set(),
    RequestStatus.EXPIRED: set(),
    RequestStatus.CANCELLED: set(),
}

REQUEST_TERMINAL = frozenset(s for s, nxt in REQUEST_TRANSITIONS.items() if not nxt)


# ── Posted ride ───────────────────────────────────────────────────────


class RideStatus(str, enum.Enum):
    OPEN = "open"
    FULL = "full"
    MATCHED = "matched"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


_RIDE_LIVE = {RideStatus.OPEN, RideStatus.FULL, RideStatus.MATCHED}
_RIDE_END = {RideStatus.COMPLETED, RideStatus.CANCELLED, RideStatus.EXPIRED}

# open/full/matched move freely between each other as bookings change;
# the actual target is always chosen by ``lifecycle.derive_status``.
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    **{s: (_RIDE_LIVE - {s}) | _RIDE_END for s in _RIDE_LIVE},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
    RideStatus.EXPIRED: set(),
}

RIDE_TERMINAL = frozenset(_RIDE_END)


# ── Booking ───────────────────────────────────────────────────────────


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    # Price already agreed through a direct request; awaiting payment.
    CONFIRMED = "confirmed"
    PAID = "paid"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


BOOKING_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {
        BookingStatus.PAID,
        BookingStatus.CANCELLED,
        BookingStatus.EXPIRED,
    },
    BookingStatus.CONFIRMED: {
        BookingStatus.PAID,
        BookingStatus.CANCELLED,
        BookingStatus.EXPIRED,
    },
    BookingStatus.PAID: {BookingStatus.COMPLETED, BookingStatus.CANCELLED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
    BookingStatus.EXPIRED: set(),
}

BOOKING_TERMINAL = frozenset(s for s, nxt in BOOKING_TRANSITIONS.items() if not nxt)

# Bookings whose money counts toward driver earnings.
BOOKING_FINALIZED = frozenset({BookingStatus.PAID, BookingStatus.COMPLETED})

# Bookings that never captured a payment.
BOOKING_UNPAID = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})


class CancellationCategory(str, enum.Enum):
    FULL_REFUND = "full-refund"
    MINOR_PENALTY = "minor-penalty"
    MAJOR_PENALTY = "major-penalty"
    NO_REFUND = "no-refund"
