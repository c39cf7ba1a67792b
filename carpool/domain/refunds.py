"""
Cancellation & refund policy.

Buckets are evaluated against ``departure_time - now``, most generous first;
lower bounds are inclusive:

==================  ========  ==================
time to departure   refund    category
==================  ========  ==================
>= 24 h             100 %     ``full-refund``
>= 2 h              90 %      ``minor-penalty``
>= 30 min           50 %      ``major-penalty``
otherwise           0 %       ``no-refund``
==================  ========  ==================

Cancelling is refused outright once ``now > departure_time + 30 min``.
Refund and penalty always add up to exactly what was paid.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Union

from .enums import BOOKING_TERMINAL, BOOKING_UNPAID, BookingStatus, CancellationCategory
from .exceptions import InvalidInput
from .money import ZERO, Number, percent_of, round2

CANCELLATION_CUTOFF = timedelta(minutes=30)


@dataclass(frozen=True)
class RefundBucket:
    min_notice: timedelta
    refund_percentage: int
    category: CancellationCategory
    label: str


BUCKETS: tuple[RefundBucket, ...] = (
    RefundBucket(timedelta(hours=24), 100, CancellationCategory.FULL_REFUND,
                 "Free cancellation (24+ hours notice)"),
    RefundBucket(timedelta(hours=2), 90, CancellationCategory.MINOR_PENALTY,
                 "Standard cancellation (2-24 hours notice)"),
    RefundBucket(timedelta(minutes=30), 50, CancellationCategory.MAJOR_PENALTY,
                 "Late cancellation (30 min - 2 hours notice)"),
)
NO_REFUND = RefundBucket(timedelta.min, 0, CancellationCategory.NO_REFUND,
                         "No refund (less than 30 minutes notice)")


@dataclass(frozen=True)
class CancellationCheck:
    allowed: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class CancellationOutcome:
    original_amount: Decimal
    refund_amount: Decimal
    penalty_amount: Decimal
    category: CancellationCategory
    refund_percentage: int
    penalty_percentage: int
    hours_before_departure: float
    cancellable: bool
    reason: str


def _booking_status(value: Union[BookingStatus, str]) -> BookingStatus:
    try:
        return BookingStatus(value)
    except ValueError as exc:
        raise InvalidInput(f"unknown booking status: {value!r}") from exc


def time_until_departure(departure_time: datetime, now: datetime) -> timedelta:
    return departure_time - now


def cutoff_passed(departure_time: datetime, now: datetime) -> bool:
    return now > departure_time + CANCELLATION_CUTOFF


def bucket_for(notice: timedelta) -> RefundBucket:
    for bucket in BUCKETS:
        if notice >= bucket.min_notice:
            return bucket
    return NO_REFUND


def can_cancel(
    departure_time: datetime,
    status: Union[BookingStatus, str],
    now: datetime,
) -> CancellationCheck:
    status = _booking_status(status)
    if status in BOOKING_TERMINAL:
        return CancellationCheck(False, f"Booking is already {status.value}")
    if cutoff_passed(departure_time, now):
        return CancellationCheck(
            False, "Ride departed more than 30 minutes ago"
        )
    return CancellationCheck(True)


def preview_refund(
    total_paid: Number,
    departure_time: datetime,
    now: datetime,
    status: Optional[Union[BookingStatus, str]] = None,
) -> CancellationOutcome:
    """Refund/penalty split for cancelling at *now*.  Pure; safe to call repeatedly."""
    paid = round2(total_paid)
    if paid < 0:
        raise InvalidInput(f"total_paid must be >= 0, got {total_paid!r}")

    notice = time_until_departure(departure_time, now)
    bucket = bucket_for(notice)
    cancellable = not cutoff_passed(departure_time, now)

    if status is not None and _booking_status(status) in BOOKING_UNPAID:
        # Nothing was captured, so cancelling is a pure status change.
        paid = ZERO

    refund = percent_of(paid, bucket.refund_percentage)
    penalty = paid - refund

    if not cancellable:
        reason = "Cannot cancel (ride departed more than 30 minutes ago)"
    else:
        reason = bucket.label

    return CancellationOutcome(
        original_amount=paid,
        refund_amount=refund,
        penalty_amount=penalty,
        category=bucket.category,
        refund_percentage=bucket.refund_percentage,
        penalty_percentage=100 - bucket.refund_percentage,
        hours_before_departure=round(notice.total_seconds() / 3600, 2),
        cancellable=cancellable,
        reason=reason,
    )


def format_remaining(delta: timedelta) -> str:
    """``1h 59m`` / ``5m``; negative deltas read as ``... ago``."""
    seconds = int(delta.total_seconds())
    suffix = " ago" if seconds < 0 else ""
    seconds = abs(seconds)
    hours, rest = divmod(seconds, 3600)
    minutes = rest // 60
    text = f"{hours}h {minutes}m" if hours else f"{minutes}m"
    return text + suffix


def policy_text() -> str:
    lines = ["Cancellation Policy:"]
    lines.append("- More than 24 hours before departure: 100% refund")
    lines.append("- 2-24 hours before departure: 90% refund (10% fee)")
    lines.append("- 30 minutes - 2 hours before departure: 50% refund (50% fee)")
    lines.append("- Less than 30 minutes before departure: No refund")
    lines.append("- More than 30 minutes after departure: Cannot cancel")
    return "\n".join(lines)
