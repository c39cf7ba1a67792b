"""
Fare splitting: progressive per-seat discounts as more riders share a post.

Every extra passenger lowers the per-seat price while raising what the
driver takes home (two riders at 25 % off earn the driver 150 % of a solo
fare; four at 50 % off earn 200 %).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Union

from .entities import Booking
from .enums import BOOKING_FINALIZED, BookingStatus, RideType
from .exceptions import IneligibleOperation, InvalidInput
from .money import ZERO, Number, round2, to_decimal
from .pricing import FARE_SPLIT_DISCOUNT

logger = logging.getLogger(__name__)

_EARNINGS_EXCLUDED = frozenset({BookingStatus.CANCELLED, BookingStatus.EXPIRED})


@dataclass(frozen=True)
class FareSplit:
    original_price: Decimal
    total_passengers: int
    discount_percentage: int
    discounted_price_per_seat: Decimal
    driver_earnings: Decimal
    passenger_savings: Decimal


@dataclass(frozen=True)
class RefitAdvice:
    """What a cancellation would mean for the riders who stay.

    Advisory only: nothing in the engine charges ``price_increase``.
    """

    refund_amount: Decimal
    new_price_per_passenger: Decimal
    price_increase: Decimal


@dataclass(frozen=True)
class RideSharePricing:
    base_price: Decimal
    total_passengers: int
    price_per_passenger: Decimal
    total_driver_earnings: Decimal
    total_passenger_cost: Decimal
    discount_applied: int


@dataclass(frozen=True)
class SavingsScenario:
    passengers: int
    price_per_passenger: Decimal
    savings: Decimal


def _ride_type(value: Union[RideType, str]) -> RideType:
    try:
        return RideType(value)
    except ValueError as exc:
        raise InvalidInput(f"unknown ride type: {value!r}") from exc


def _positive_price(value: Number, field: str) -> Decimal:
    price = to_decimal(value, field)
    if price <= 0:
        raise InvalidInput(f"{field} must be > 0, got {value!r}")
    return price


def split(base_price_per_seat: Number, total_passengers: int) -> FareSplit:
    if total_passengers < 1:
        raise InvalidInput(f"total_passengers must be >= 1, got {total_passengers}")
    base = _positive_price(base_price_per_seat, "base_price_per_seat")

    pct = FARE_SPLIT_DISCOUNT.percentage(total_passengers)
    discounted = round2(base * (1 - Decimal(pct) / 100))
    return FareSplit(
        original_price=round2(base),
        total_passengers=total_passengers,
        discount_percentage=pct,
        discounted_price_per_seat=discounted,
        driver_earnings=round2(discounted * total_passengers),
        passenger_savings=round2(base - discounted),
    )


def is_fare_splitting_eligible(
    ride_type: Union[RideType, str],
    seats_total: int,
    driver_opt_in: bool = True,
) -> bool:
    """Only multi-seat driver posts whose driver opted in."""
    return _ride_type(ride_type) == RideType.POST and seats_total > 1 and driver_opt_in


def require_fare_splitting_eligible(
    ride_type: Union[RideType, str],
    seats_total: int,
    driver_opt_in: bool = True,
) -> None:
    if not is_fare_splitting_eligible(ride_type, seats_total, driver_opt_in):
        raise IneligibleOperation(
            f"fare splitting needs a driver post with more than one seat "
            f"(type={_ride_type(ride_type).value}, seats={seats_total}, "
            f"opt_in={driver_opt_in})",
            attempted="fare_split",
        )


def cancellation_refit(
    original_payment: Number, remaining_passengers: int, base_price: Number
) -> RefitAdvice:
    paid = round2(original_payment)
    base = _positive_price(base_price, "base_price")
    if remaining_passengers <= 0:
        return RefitAdvice(
            refund_amount=paid,
            new_price_per_passenger=round2(base),
            price_increase=ZERO,
        )

    refit = split(base, remaining_passengers)
    increase = max(ZERO, refit.discounted_price_per_seat - paid)
    if increase > 0:
        logger.info(
            "Refit advisory: %d remaining passenger(s) would owe +%s each",
            remaining_passengers,
            increase,
        )
    return RefitAdvice(
        refund_amount=paid,
        new_price_per_passenger=refit.discounted_price_per_seat,
        price_increase=round2(increase),
    )


def ride_share_pricing(
    base_price: Number, confirmed_passengers: int, pending_passengers: int = 0
) -> RideSharePricing:
    """Price the confirmed party; pending riders only count toward the head-count."""
    if confirmed_passengers < 0 or pending_passengers < 0:
        raise InvalidInput("passenger counts must be >= 0")
    fs = split(base_price, max(1, confirmed_passengers))
    return RideSharePricing(
        base_price=fs.original_price,
        total_passengers=confirmed_passengers + pending_passengers,
        price_per_passenger=fs.discounted_price_per_seat,
        total_driver_earnings=fs.driver_earnings,
        total_passenger_cost=round2(fs.discounted_price_per_seat * confirmed_passengers),
        discount_applied=fs.discount_percentage,
    )


def potential_savings(
    base_price: Number, current_passengers: int, max_passengers: int = 4
) -> list[SavingsScenario]:
    """Per-passenger price for every head-count from *current* up to *max*."""
    if current_passengers < 1:
        raise InvalidInput("current_passengers must be >= 1")
    scenarios = []
    for n in range(current_passengers, max_passengers + 1):
        fs = split(base_price, n)
        scenarios.append(
            SavingsScenario(
                passengers=n,
                price_per_passenger=fs.discounted_price_per_seat,
                savings=fs.passenger_savings,
            )
        )
    return scenarios


@dataclass(frozen=True)
class EarningsSummary:
    confirmed_earnings: Decimal
    pending_earnings: Decimal
    total_potential_earnings: Decimal
    average_discount: Decimal


def driver_earnings_summary(
    base_price: Number, bookings: Iterable[Booking]
) -> EarningsSummary:
    """What the driver has banked versus what is still awaiting payment.

    Each live booking is priced as its own split over ``seats_booked``
    passengers.  Cancelled and expired bookings contribute nothing and do
    not count toward the average discount.
    """
    confirmed = pending = ZERO
    discounts = 0
    counted = 0
    for booking in bookings:
        if booking.status in _EARNINGS_EXCLUDED:
            continue
        fs = split(base_price, booking.seats_booked)
        if booking.status in BOOKING_FINALIZED:
            confirmed += fs.driver_earnings
        else:
            pending += fs.driver_earnings
        discounts += fs.discount_percentage
        counted += 1

    average = round2(Decimal(discounts) / counted) if counted else ZERO
    return EarningsSummary(
        confirmed_earnings=confirmed,
        pending_earnings=pending,
        total_potential_earnings=confirmed + pending,
        average_discount=average,
    )
