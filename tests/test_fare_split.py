"""Unit tests for fare splitting, eligibility and the cancellation refit."""

from decimal import Decimal

import pytest

from carpool.domain.entities import Booking
from carpool.domain.enums import BookingStatus, RideType
from carpool.domain.exceptions import IneligibleOperation, InvalidInput
from carpool.domain.fare_split import (
    cancellation_refit,
    driver_earnings_summary,
    is_fare_splitting_eligible,
    potential_savings,
    require_fare_splitting_eligible,
    ride_share_pricing,
    split,
)


class TestSplit:
    def test_scenario_b(self):
        fs = split("17.40", 3)
        assert fs.discount_percentage == 40
        assert fs.discounted_price_per_seat == Decimal("10.44")
        assert fs.driver_earnings == Decimal("31.32")
        assert fs.passenger_savings == Decimal("6.96")

    def test_solo_passenger_pays_full_price(self):
        fs = split("20", 1)
        assert fs.discounted_price_per_seat == Decimal("20.00")
        assert fs.driver_earnings == Decimal("20.00")

    def test_driver_earns_more_as_car_fills(self):
        earnings = [split("20", n).driver_earnings for n in range(1, 7)]
        assert earnings == sorted(earnings)
        assert split("20", 2).driver_earnings == Decimal("30.00")  # 150 %
        assert split("20", 4).driver_earnings == Decimal("40.00")  # 200 %

    def test_discount_never_exceeds_cap(self):
        pcts = [split("20", n).discount_percentage for n in range(1, 12)]
        assert pcts == sorted(pcts)
        assert max(pcts) == 50

    def test_half_up_rounding(self):
        # 0.25 * 0.75 = 0.1875 -> 0.19
        assert split("0.25", 2).discounted_price_per_seat == Decimal("0.19")

    @pytest.mark.parametrize("price,n", [("0", 2), ("-5", 2), ("10", 0)])
    def test_invalid_input(self, price, n):
        with pytest.raises(InvalidInput):
            split(price, n)


class TestEligibility:
    def test_multi_seat_post_with_opt_in(self):
        assert is_fare_splitting_eligible(RideType.POST, 3, True)
        assert is_fare_splitting_eligible("post", 2)

    def test_request_rides_are_never_eligible(self):
        assert not is_fare_splitting_eligible(RideType.REQUEST, 4, True)

    def test_single_seat_is_not_eligible(self):
        assert not is_fare_splitting_eligible(RideType.POST, 1, True)

    def test_opt_out(self):
        assert not is_fare_splitting_eligible(RideType.POST, 4, False)

    def test_require_raises(self):
        with pytest.raises(IneligibleOperation) as exc:
            require_fare_splitting_eligible(RideType.REQUEST, 4)
        assert exc.value.attempted == "fare_split"

    def test_unknown_ride_type(self):
        with pytest.raises(InvalidInput):
            is_fare_splitting_eligible("carpool", 3)


class TestCancellationRefit:
    def test_remaining_riders_would_pay_more(self):
        # 3 riders at 40 % off paid 12.00 each; one leaves, two remain at 25 % off.
        advice = cancellation_refit("12.00", 2, "20.00")
        assert advice.refund_amount == Decimal("12.00")
        assert advice.new_price_per_passenger == Decimal("15.00")
        assert advice.price_increase == Decimal("3.00")

    def test_nobody_left(self):
        advice = cancellation_refit("12.00", 0, "20.00")
        assert advice.price_increase == Decimal("0.00")
        assert advice.new_price_per_passenger == Decimal("20.00")

    def test_increase_never_negative(self):
        advice = cancellation_refit("20.00", 3, "20.00")
        assert advice.price_increase == Decimal("0.00")


class TestRideSharePricing:
    def test_counts_pending_only_in_headcount(self):
        pricing = ride_share_pricing("20.00", 2, pending_passengers=1)
        assert pricing.total_passengers == 3
        assert pricing.discount_applied == 25
        assert pricing.price_per_passenger == Decimal("15.00")
        assert pricing.total_passenger_cost == Decimal("30.00")

    def test_no_confirmed_passengers(self):
        pricing = ride_share_pricing("20.00", 0)
        assert pricing.total_passenger_cost == Decimal("0.00")
        assert pricing.price_per_passenger == Decimal("20.00")

    def test_negative_counts_rejected(self):
        with pytest.raises(InvalidInput):
            ride_share_pricing("20.00", -1)


class TestPotentialSavings:
    def test_scenarios_up_to_max(self):
        scenarios = potential_savings("20.00", 2, max_passengers=4)
        assert [s.passengers for s in scenarios] == [2, 3, 4]
        assert [s.price_per_passenger for s in scenarios] == [
            Decimal("15.00"), Decimal("12.00"), Decimal("10.00"),
        ]
        assert scenarios[-1].savings == Decimal("10.00")

    def test_current_above_max_is_empty(self):
        assert potential_savings("20.00", 5, max_passengers=4) == []


def _booking(booking_id, seats, status):
    return Booking(
        id=booking_id,
        ride_id="ride-1",
        rider_id=f"rider-{booking_id}",
        seats_booked=seats,
        price_per_seat="20.00",
        status=status,
    )


class TestDriverEarningsSummary:
    def test_confirmed_pending_and_cancelled(self):
        summary = driver_earnings_summary(
            "20.00",
            [
                _booking("b1", 2, BookingStatus.PAID),
                _booking("b2", 1, BookingStatus.COMPLETED),
                _booking("b3", 3, BookingStatus.PENDING),
                _booking("b4", 4, BookingStatus.CANCELLED),
                _booking("b5", 2, BookingStatus.EXPIRED),
            ],
        )
        assert summary.confirmed_earnings == Decimal("50.00")
        assert summary.pending_earnings == Decimal("36.00")
        assert summary.total_potential_earnings == Decimal("86.00")
        # (25 + 0 + 40) / 3; cancelled and expired bookings are not averaged
        assert summary.average_discount == Decimal("21.67")

    def test_agreed_but_unpaid_counts_as_pending(self):
        summary = driver_earnings_summary("20.00", [_booking("b1", 2, BookingStatus.CONFIRMED)])
        assert summary.confirmed_earnings == Decimal("0")
        assert summary.pending_earnings == Decimal("30.00")

    def test_no_bookings(self):
        summary = driver_earnings_summary("20.00", [])
        assert summary.total_potential_earnings == Decimal("0")
        assert summary.average_discount == Decimal("0")

    def test_only_cancelled_bookings(self):
        summary = driver_earnings_summary("20.00", [_booking("b1", 2, BookingStatus.CANCELLED)])
        assert summary.total_potential_earnings == Decimal("0")
        assert summary.average_discount == Decimal("0")
