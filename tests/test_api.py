"""
Integration tests for the REST API endpoints.

Runs the real app against in-memory SQLite with Redis mocked and the clock
frozen (see ``conftest.py``).  Money comes back as JSON strings.
"""

from datetime import datetime, timedelta, timezone

import pytest

API = "/api/v1"
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

OAKLAND = {"latitude": 37.8044, "longitude": -122.2712, "address": "Oakland"}
SFO = {"latitude": 37.6213, "longitude": -122.3790, "address": "SFO"}


async def _post_ride(client, departure=None, **overrides):
    body = {
        "driver_id": "driver-1",
        "origin": OAKLAND,
        "destination": SFO,
        "departure_time": (departure or NOW + timedelta(days=2)).isoformat(),
        "price_per_seat": "20.00",
        "seats_total": 4,
    }
    body.update(overrides)
    resp = await client.post(f"{API}/rides", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _paid_booking(client, ride_id, seats=2, rider_id="rider-1"):
    resp = await client.post(
        f"{API}/rides/{ride_id}/bookings", json={"rider_id": rider_id, "seats": seats}
    )
    assert resp.status_code == 201, resp.text
    booking = resp.json()["booking"]
    url = f"{API}/rides/{ride_id}/bookings/{booking['id']}"
    assert (await client.post(f"{url}/approve")).status_code == 200
    resp = await client.post(f"{url}/pay", json={"amount": booking["amount_due"]})
    assert resp.status_code == 200, resp.text
    return resp.json()


async def _direct_request(client, **overrides):
    body = {
        "requester_id": "rider-1",
        "driver_id": "driver-1",
        "origin": OAKLAND,
        "destination": SFO,
        "requested_datetime": (NOW + timedelta(days=1)).isoformat(),
        "seats_requested": 2,
        "rider_max_price_per_seat": "25.00",
    }
    body.update(overrides)
    resp = await client.post(f"{API}/requests", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get(f"{API}/admin/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestPricingEndpoints:
    @pytest.mark.asyncio
    async def test_suggest_price(self, client):
        resp = await client.post(
            f"{API}/pricing/suggest", json={"distance_miles": 10, "duration_minutes": 20}
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["suggested_price_per_seat"] == "17.40"
        assert data["gas_fee"] == "1.40"
        assert data["currency"] == "USD"

    @pytest.mark.asyncio
    async def test_suggest_from_coordinates(self, client):
        resp = await client.post(
            f"{API}/pricing/suggest", json={"origin": OAKLAND, "destination": SFO}
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["distance_miles"] > 0
        assert data["duration_minutes"] > 0

    @pytest.mark.asyncio
    async def test_suggest_needs_a_trip(self, client):
        resp = await client.post(f"{API}/pricing/suggest", json={"distance_miles": 10})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_negative_distance_is_400(self, client):
        resp = await client.post(
            f"{API}/pricing/suggest", json={"distance_miles": -1, "duration_minutes": 5}
        )
        assert resp.status_code == 400
        assert resp.json()["kind"] == "invalid_input"

    @pytest.mark.asyncio
    async def test_request_preview(self, client):
        resp = await client.post(
            f"{API}/pricing/request-preview", json={"seats": 3, "price_per_seat": "20.00"}
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["discount_percentage"] == 25
        assert data["total_price"] == "45.00"

    @pytest.mark.asyncio
    async def test_fare_split(self, client):
        resp = await client.post(
            f"{API}/pricing/fare-split",
            json={"base_price_per_seat": "17.40", "total_passengers": 3},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["discounted_price_per_seat"] == "10.44"
        assert data["driver_earnings"] == "31.32"
        assert data["passenger_savings"] == "6.96"

    @pytest.mark.asyncio
    async def test_fare_split_ineligible_is_422(self, client):
        resp = await client.post(
            f"{API}/pricing/fare-split",
            json={
                "base_price_per_seat": "17.40",
                "total_passengers": 3,
                "ride_type": "request",
            },
        )
        assert resp.status_code == 422
        assert resp.json()["kind"] == "ineligible_operation"

    @pytest.mark.asyncio
    async def test_potential_savings(self, client):
        resp = await client.get(
            f"{API}/pricing/potential-savings",
            params={"base_price": "20.00", "current_passengers": 2},
        )
        assert resp.status_code == 200
        assert [s["price_per_passenger"] for s in resp.json()] == ["15.00", "12.00", "10.00"]


class TestCancellationEndpoints:
    @pytest.mark.asyncio
    async def test_preview(self, client):
        resp = await client.post(
            f"{API}/cancellations/preview",
            json={
                "total_paid": "50.00",
                "departure_time": (NOW + timedelta(hours=5)).isoformat(),
                "status": "paid",
            },
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["refund_amount"] == "45.00"
        assert data["penalty_amount"] == "5.00"
        assert data["category"] == "minor-penalty"
        assert data["can_cancel"] is True
        assert data["time_until_departure"] == "5h 0m"

    @pytest.mark.asyncio
    async def test_naive_departure_rejected(self, client):
        resp = await client.post(
            f"{API}/cancellations/preview",
            json={"total_paid": "50.00", "departure_time": "2026-03-01T17:00:00"},
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_policy(self, client):
        resp = await client.get(f"{API}/cancellations/policy")
        assert "90% refund" in resp.json()["policy"]


class TestRideFlow:
    @pytest.mark.asyncio
    async def test_post_book_approve_pay(self, client):
        ride = await _post_ride(client)
        assert ride["status"] == "open"
        assert ride["seats_available"] == 4

        data = await _paid_booking(client, ride["id"], seats=2)
        assert data["booking"]["status"] == "paid"
        assert data["booking"]["total_paid"] == "40.00"
        assert data["ride"]["status"] == "matched"
        assert data["ride"]["seats_available"] == 2
        assert data["ride"]["total_earnings"] == "40.00"

        resp = await client.get(f"{API}/rides/{ride['id']}")
        assert resp.status_code == 200
        assert len(resp.json()["bookings"]) == 1

    @pytest.mark.asyncio
    async def test_earnings_summary(self, client):
        ride = await _post_ride(client)
        await _paid_booking(client, ride["id"], seats=2)
        resp = await client.post(
            f"{API}/rides/{ride['id']}/bookings", json={"rider_id": "rider-2", "seats": 1}
        )
        assert resp.status_code == 201

        resp = await client.get(f"{API}/rides/{ride['id']}/earnings")
        assert resp.status_code == 200
        data = resp.json()
        assert data["confirmed_earnings"] == "30.00"
        assert data["pending_earnings"] == "20.00"
        assert data["total_potential_earnings"] == "50.00"
        assert data["average_discount"] == "12.50"
        assert data["currency"] == "USD"

    @pytest.mark.asyncio
    async def test_earnings_for_unknown_ride_is_404(self, client):
        resp = await client.get(f"{API}/rides/missing/earnings")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_wrong_payment_amount_is_400(self, client):
        ride = await _post_ride(client)
        resp = await client.post(
            f"{API}/rides/{ride['id']}/bookings", json={"rider_id": "rider-1", "seats": 2}
        )
        booking_id = resp.json()["booking"]["id"]
        url = f"{API}/rides/{ride['id']}/bookings/{booking_id}"
        await client.post(f"{url}/approve")

        resp = await client.post(f"{url}/pay", json={"amount": "20.00"})
        assert resp.status_code == 400
        assert resp.json()["attempted"] == "pay_booking"

    @pytest.mark.asyncio
    async def test_overbooking_is_412(self, client):
        ride = await _post_ride(client, seats_total=2)
        resp = await client.post(
            f"{API}/rides/{ride['id']}/bookings", json={"rider_id": "rider-1", "seats": 3}
        )
        assert resp.status_code == 412
        assert resp.json()["kind"] == "capacity_exceeded"

    @pytest.mark.asyncio
    async def test_complete_too_early_then_ok(self, client, clock):
        departure = NOW + timedelta(days=1)
        ride = await _post_ride(client, departure=departure)
        await _paid_booking(client, ride["id"])

        clock.set(departure + timedelta(hours=1))
        resp = await client.post(f"{API}/rides/{ride['id']}/complete")
        assert resp.status_code == 412
        body = resp.json()
        assert body["kind"] == "too_early"
        assert body["remaining_seconds"] == 3600

        clock.advance(hours=1, minutes=1)
        resp = await client.post(f"{API}/rides/{ride['id']}/complete")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "completed"
        assert data["bookings"][0]["status"] == "completed"

        resp = await client.post(f"{API}/rides/{ride['id']}/complete")
        assert resp.status_code == 409
        assert resp.json()["kind"] == "terminal_state"

    @pytest.mark.asyncio
    async def test_reprice_keeps_booking_snapshot(self, client):
        ride = await _post_ride(client)
        await _paid_booking(client, ride["id"])
        resp = await client.post(
            f"{API}/rides/{ride['id']}/reprice", json={"price_per_seat": "30.00"}
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["price_per_seat"] == "30.00"
        assert data["bookings"][0]["price_per_seat"] == "20.00"

    @pytest.mark.asyncio
    async def test_cancel_booking_refund(self, client):
        ride = await _post_ride(client, departure=NOW + timedelta(hours=5))
        data = await _paid_booking(client, ride["id"], seats=1)
        booking_id = data["booking"]["id"]

        resp = await client.post(f"{API}/rides/{ride['id']}/bookings/{booking_id}/cancel")
        assert resp.status_code == 200
        body = resp.json()
        assert body["booking"]["status"] == "cancelled"
        assert body["outcome"]["refund_amount"] == "18.00"
        assert body["outcome"]["penalty_amount"] == "2.00"
        assert body["ride"]["status"] == "open"

    @pytest.mark.asyncio
    async def test_cancel_ride_refunds_every_booking(self, client):
        ride = await _post_ride(client)
        await _paid_booking(client, ride["id"], seats=1, rider_id="rider-1")
        await _paid_booking(client, ride["id"], seats=2, rider_id="rider-2")

        resp = await client.post(f"{API}/rides/{ride['id']}/cancel")
        assert resp.status_code == 200
        body = resp.json()
        assert body["ride"]["status"] == "cancelled"
        assert len(body["outcomes"]) == 2
        assert body["total_refund"] == "60.00"

    @pytest.mark.asyncio
    async def test_cancel_after_window_is_412(self, client, clock):
        departure = NOW + timedelta(hours=1)
        ride = await _post_ride(client, departure=departure)
        clock.set(departure + timedelta(minutes=45))
        resp = await client.post(f"{API}/rides/{ride['id']}/cancel")
        assert resp.status_code == 412
        assert resp.json()["kind"] == "cancellation_window_closed"

    @pytest.mark.asyncio
    async def test_stale_expected_status_is_409(self, client):
        ride = await _post_ride(client)
        resp = await client.post(
            f"{API}/rides/{ride['id']}/bookings",
            json={"rider_id": "rider-1", "seats": 1, "expected_status": "full"},
        )
        assert resp.status_code == 409
        body = resp.json()
        assert body["kind"] == "stale_state"
        assert body["current_status"] == "open"

    @pytest.mark.asyncio
    async def test_unknown_ride_is_404(self, client):
        resp = await client.get(f"{API}/rides/does-not-exist")
        assert resp.status_code == 404
        assert resp.json()["kind"] == "not_found"

    @pytest.mark.asyncio
    async def test_single_seat_fare_split_is_422(self, client):
        resp = await client.post(
            f"{API}/rides",
            json={
                "driver_id": "driver-1",
                "origin": OAKLAND,
                "destination": SFO,
                "departure_time": (NOW + timedelta(days=1)).isoformat(),
                "price_per_seat": "20.00",
                "seats_total": 1,
                "fare_splitting_enabled": True,
            },
        )
        assert resp.status_code == 422


class TestDirectRequestFlow:
    @pytest.mark.asyncio
    async def test_quote_accept_book(self, client):
        req = await _direct_request(client)
        assert req["status"] == "pending"
        url = f"{API}/requests/{req['id']}"

        resp = await client.post(f"{url}/quote", json={"price": "30.00"})
        assert resp.status_code == 200
        quoted = resp.json()
        assert quoted["status"] == "driver_quoted"
        assert quoted["driver_quoted_price"] == "30.00"
        assert quoted["warnings"]

        resp = await client.post(f"{url}/accept", json={"expected_status": "driver_quoted"})
        assert resp.json()["status"] == "confirmed"

        resp = await client.post(f"{url}/book")
        assert resp.status_code == 201, resp.text
        handoff = resp.json()
        assert handoff["request"]["status"] == "booked"
        assert handoff["booking"]["status"] == "confirmed"
        assert handoff["booking"]["approval_status"] == "approved"
        assert handoff["booking"]["price_per_seat"] == "30.00"
        assert handoff["booking"]["source_request_id"] == req["id"]
        assert handoff["ride"]["driver_id"] == "driver-1"
        assert handoff["ride"]["seats_available"] == 0
        assert handoff["ride"]["status"] == "full"

        # The booking still has to be paid through the ride.
        ride_id = handoff["ride"]["id"]
        booking_id = handoff["booking"]["id"]
        resp = await client.post(
            f"{API}/rides/{ride_id}/bookings/{booking_id}/pay", json={"amount": "60.00"}
        )
        assert resp.status_code == 200
        assert resp.json()["booking"]["status"] == "paid"

        resp = await client.post(f"{url}/book")
        assert resp.status_code == 409
        assert resp.json()["kind"] == "terminal_state"

    @pytest.mark.asyncio
    async def test_book_onto_existing_ride(self, client):
        ride = await _post_ride(client)
        req = await _direct_request(client)
        url = f"{API}/requests/{req['id']}"
        await client.post(f"{url}/quote", json={"price": "18.00"})
        await client.post(f"{url}/accept")

        resp = await client.post(f"{url}/book", json={"ride_id": ride["id"]})
        assert resp.status_code == 201
        data = resp.json()
        assert data["ride"]["id"] == ride["id"]
        assert data["ride"]["seats_available"] == 2
        assert data["ride"]["price_per_seat"] == "20.00"
        assert data["booking"]["price_per_seat"] == "18.00"

    @pytest.mark.asyncio
    async def test_book_onto_another_drivers_ride_is_rolled_back(self, client):
        ride = await _post_ride(client, driver_id="driver-2")
        req = await _direct_request(client)
        url = f"{API}/requests/{req['id']}"
        await client.post(f"{url}/quote", json={"price": "18.00"})
        await client.post(f"{url}/accept")

        resp = await client.post(f"{url}/book", json={"ride_id": ride["id"]})
        assert resp.status_code == 400

        resp = await client.get(url)
        assert resp.json()["status"] == "confirmed"

    @pytest.mark.asyncio
    async def test_accept_cancel_race(self, client):
        req = await _direct_request(client)
        url = f"{API}/requests/{req['id']}"
        await client.post(f"{url}/quote", json={"price": "20.00"})

        first = await client.post(f"{url}/accept", json={"expected_status": "driver_quoted"})
        second = await client.post(f"{url}/cancel", json={"expected_status": "driver_quoted"})
        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json()["current_status"] == "confirmed"

    @pytest.mark.asyncio
    async def test_driver_declines(self, client):
        req = await _direct_request(client)
        resp = await client.post(f"{API}/requests/{req['id']}/decline", json={"by": "driver"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "declined"

    @pytest.mark.asyncio
    async def test_rider_declines_before_quote_is_409(self, client):
        req = await _direct_request(client)
        resp = await client.post(f"{API}/requests/{req['id']}/decline")
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_driver_cannot_decline_quoted_request_with_expected_status(self, client):
        req = await _direct_request(client)
        url = f"{API}/requests/{req['id']}"
        await client.post(f"{url}/quote", json={"price": "18.00"})
        resp = await client.post(
            f"{url}/decline", json={"by": "driver", "expected_status": "driver_quoted"}
        )
        assert resp.status_code == 409
        assert resp.json()["kind"] == "stale_state"

    @pytest.mark.asyncio
    async def test_rider_cannot_decline_pending_request_with_expected_status(self, client):
        req = await _direct_request(client)
        resp = await client.post(
            f"{API}/requests/{req['id']}/decline",
            json={"by": "rider", "expected_status": "pending"},
        )
        assert resp.status_code == 409
        assert resp.json()["kind"] == "stale_state"

    @pytest.mark.asyncio
    async def test_request_to_self_is_400(self, client):
        resp = await client.post(
            f"{API}/requests",
            json={
                "requester_id": "driver-1",
                "driver_id": "driver-1",
                "origin": OAKLAND,
                "destination": SFO,
                "requested_datetime": (NOW + timedelta(days=1)).isoformat(),
                "seats_requested": 1,
                "rider_max_price_per_seat": "25.00",
            },
        )
        assert resp.status_code == 400


class TestExpirySweepEndpoint:
    @pytest.mark.asyncio
    async def test_sweep_expires_departed_ride(self, client, clock):
        departure = NOW + timedelta(hours=1)
        ride = await _post_ride(client, departure=departure)
        await client.post(
            f"{API}/rides/{ride['id']}/bookings", json={"rider_id": "rider-1", "seats": 1}
        )
        await _direct_request(client, requested_datetime=departure.isoformat())

        clock.set(departure + timedelta(minutes=5))
        resp = await client.post(f"{API}/admin/expiry-sweep")
        assert resp.status_code == 200
        assert resp.json() == {
            "ran": True,
            "rides_expired": 1,
            "bookings_expired": 1,
            "requests_expired": 1,
            "conflicts": 0,
        }

        resp = await client.get(f"{API}/rides/{ride['id']}")
        assert resp.json()["status"] == "expired"
