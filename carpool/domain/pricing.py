"""
Carpool Pricing Engine  (Strategy Pattern)
==========================================

Formula
-------
Price = Base_Fee + Gas + Distance x Rate_Per_Mile + Minutes x Rate_Per_Minute + Incentive

* **Gas**       = (miles / MPG) x gas price per gallon
* **Incentive** = max(DRIVER_INCENTIVE_BASE, miles x DRIVER_INCENTIVE_RATE)

The total is summed from the unrounded components and rounded once; the
breakdown fields are rounded individually for display only.

Discounts are tier lookups (``TieredDiscount``), never interpolated:

* request-side seat discount: 1 -> 0 %, 2 -> 15 %, 3 -> 25 %, 4+ -> 40 %
* fare-split discount:        1 -> 0 %, 2 -> 25 %, 3 -> 40 %, 4+ -> 50 %

Complexity: O(1) per price calculation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Optional

from .entities import Trip
from .exceptions import InvalidInput
from .money import Number, round2, to_decimal

GAS_PRICE_PER_GALLON = Decimal("3.50")
MPG = Decimal("25")
BASE_FEE = Decimal("4.50")
DISTANCE_RATE = Decimal("0.55")
TIME_RATE = Decimal("0.15")
DRIVER_INCENTIVE_BASE = Decimal("3.00")
DRIVER_INCENTIVE_RATE = Decimal("0.20")


# ── Discount strategies ───────────────────────────────────────────────


class DiscountSchedule(ABC):
    @abstractmethod
    def percentage(self, count: int) -> int: ...


class TieredDiscount(DiscountSchedule):
    """Fixed lookup table; counts above the last tier get ``ceiling``."""

    def __init__(self, tiers: Mapping[int, int], ceiling: int):
        self.tiers = dict(tiers)
        self.ceiling = ceiling
        self._top = max(self.tiers)

    def percentage(self, count: int) -> int:
        if count < 1:
            raise InvalidInput(f"count must be >= 1, got {count}")
        if count > self._top:
            return self.ceiling
        return self.tiers[count]


REQUEST_SEAT_DISCOUNT = TieredDiscount({1: 0, 2: 15, 3: 25}, ceiling=40)
FARE_SPLIT_DISCOUNT = TieredDiscount({1: 0, 2: 25, 3: 40, 4: 50}, ceiling=50)


# ── Value objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class PricingRates:
    gas_price_per_gallon: Decimal = GAS_PRICE_PER_GALLON
    mpg: Decimal = MPG
    base_fee: Decimal = BASE_FEE
    distance_rate: Decimal = DISTANCE_RATE
    time_rate: Decimal = TIME_RATE
    driver_incentive_base: Decimal = DRIVER_INCENTIVE_BASE
    driver_incentive_rate: Decimal = DRIVER_INCENTIVE_RATE

    @classmethod
    def from_settings(cls, settings: Any) -> "PricingRates":
        return cls(
            gas_price_per_gallon=to_decimal(settings.gas_price_per_gallon),
            mpg=to_decimal(settings.mpg),
            base_fee=to_decimal(settings.base_fee),
            distance_rate=to_decimal(settings.distance_rate),
            time_rate=to_decimal(settings.time_rate),
            driver_incentive_base=to_decimal(settings.driver_incentive_base),
            driver_incentive_rate=to_decimal(settings.driver_incentive_rate),
        )

    @property
    def floor(self) -> Decimal:
        """Price of a zero-length trip."""
        return round2(self.base_fee + self.driver_incentive_base)


@dataclass(frozen=True)
class PriceQuote:
    base_fee: Decimal
    gas_fee: Decimal
    distance_fee: Decimal
    time_fee: Decimal
    driver_incentive: Decimal
    suggested_price_per_seat: Decimal
    currency: str = "USD"


@dataclass(frozen=True)
class RequestPricePreview:
    """A rider's multi-seat ask; display only, never persisted."""

    price_per_seat: Decimal
    seats: int
    discount_percentage: int
    discounted_price_per_seat: Decimal
    total_price: Decimal
    savings: Decimal


# ── Engine facade ─────────────────────────────────────────────────────


class PricingEngine:
    """High-level API used by the negotiation flow and the API layer."""

    def __init__(self, rates: Optional[PricingRates] = None, currency: str = "USD"):
        self.rates = rates or PricingRates()
        self.currency = currency

    def suggest_price(
        self, distance_miles: Number, duration_minutes: Number
    ) -> PriceQuote:
        miles = to_decimal(distance_miles, "distance_miles")
        minutes = to_decimal(duration_minutes, "duration_minutes")
        if miles < 0 or minutes < 0:
            raise InvalidInput("distance and duration must be >= 0")

        r = self.rates
        gas = miles / r.mpg * r.gas_price_per_gallon
        distance = miles * r.distance_rate
        time = minutes * r.time_rate
        incentive = max(r.driver_incentive_base, miles * r.driver_incentive_rate)
        total = r.base_fee + gas + distance + time + incentive

        return PriceQuote(
            base_fee=round2(r.base_fee),
            gas_fee=round2(gas),
            distance_fee=round2(distance),
            time_fee=round2(time),
            driver_incentive=round2(incentive),
            suggested_price_per_seat=round2(total),
            currency=self.currency,
        )

    def suggest_for_trip(self, trip: Trip) -> PriceQuote:
        return self.suggest_price(trip.distance_miles, trip.duration_minutes)


def preview_request_price(price_per_seat: Number, seats: int) -> RequestPricePreview:
    price = round2(to_decimal(price_per_seat, "price_per_seat"))
    if price <= 0:
        raise InvalidInput("price_per_seat must be > 0")
    if seats < 1:
        raise InvalidInput("seats must be >= 1")

    pct = REQUEST_SEAT_DISCOUNT.percentage(seats)
    discounted = round2(price * (1 - Decimal(pct) / 100))
    return RequestPricePreview(
        price_per_seat=price,
        seats=seats,
        discount_percentage=pct,
        discounted_price_per_seat=discounted,
        total_price=round2(discounted * seats),
        savings=round2(price - discounted),
    )
