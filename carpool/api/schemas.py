"""Pydantic request / response schemas for the REST API.

Money is ``Decimal`` throughout; pydantic serialises it to a JSON string so
no cents are lost to float rounding on the wire.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import AwareDatetime, BaseModel, Field, model_validator

from carpool.domain.enums import (
    ApprovalStatus,
    BookingStatus,
    CancellationCategory,
    RequestStatus,
    RideStatus,
    RideType,
)


class LocationSchema(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: Optional[str] = Field(None, max_length=255)

    model_config = {"from_attributes": True}


# ── Pricing ───────────────────────────────────────────────────────────


class PriceSuggestRequest(BaseModel):
    distance_miles: Optional[float] = None
    duration_minutes: Optional[float] = None
    origin: Optional[LocationSchema] = None
    destination: Optional[LocationSchema] = None

    @model_validator(mode="after")
    def _trip_or_coordinates(self) -> "PriceSuggestRequest":
        explicit = self.distance_miles is not None and self.duration_minutes is not None
        located = self.origin is not None and self.destination is not None
        if not (explicit or located):
            raise ValueError(
                "give distance_miles and duration_minutes, or origin and destination"
            )
        return self


class PriceQuoteResponse(BaseModel):
    base_fee: Decimal
    gas_fee: Decimal
    distance_fee: Decimal
    time_fee: Decimal
    driver_incentive: Decimal
    suggested_price_per_seat: Decimal
    currency: str
    distance_miles: Optional[float] = None
    duration_minutes: Optional[float] = None

    model_config = {"from_attributes": True}


class RequestPreviewRequest(BaseModel):
    seats: int = Field(..., ge=1, le=8)
    price_per_seat: Optional[Decimal] = None
    distance_miles: Optional[float] = None
    duration_minutes: Optional[float] = None

    @model_validator(mode="after")
    def _price_or_trip(self) -> "RequestPreviewRequest":
        if self.price_per_seat is None and (
            self.distance_miles is None or self.duration_minutes is None
        ):
            raise ValueError("give price_per_seat, or distance_miles and duration_minutes")
        return self


class RequestPricePreviewResponse(BaseModel):
    price_per_seat: Decimal
    seats: int
    discount_percentage: int
    discounted_price_per_seat: Decimal
    total_price: Decimal
    savings: Decimal
    currency: str = "USD"

    model_config = {"from_attributes": True}


class FareSplitRequest(BaseModel):
    base_price_per_seat: Decimal
    total_passengers: int
    ride_type: Optional[RideType] = None
    seats_total: Optional[int] = None
    driver_opt_in: bool = True


class FareSplitResponse(BaseModel):
    original_price: Decimal
    total_passengers: int
    discount_percentage: int
    discounted_price_per_seat: Decimal
    driver_earnings: Decimal
    passenger_savings: Decimal
    currency: str = "USD"

    model_config = {"from_attributes": True}


class SavingsScenarioResponse(BaseModel):
    passengers: int
    price_per_passenger: Decimal
    savings: Decimal

    model_config = {"from_attributes": True}


class EarningsSummaryResponse(BaseModel):
    confirmed_earnings: Decimal
    pending_earnings: Decimal
    total_potential_earnings: Decimal
    average_discount: Decimal
    currency: str = "USD"

    model_config = {"from_attributes": True}


# ── Cancellations ─────────────────────────────────────────────────────


class CancellationPreviewRequest(BaseModel):
    total_paid: Decimal
    departure_time: AwareDatetime
    status: Optional[BookingStatus] = None


class CancellationOutcomeResponse(BaseModel):
    original_amount: Decimal
    refund_amount: Decimal
    penalty_amount: Decimal
    category: CancellationCategory
    refund_percentage: int
    penalty_percentage: int
    hours_before_departure: float
    cancellable: bool
    reason: str

    model_config = {"from_attributes": True}


class CancellationPreviewResponse(CancellationOutcomeResponse):
    can_cancel: Optional[bool] = None
    can_cancel_reason: Optional[str] = None
    time_until_departure: str


class PolicyResponse(BaseModel):
    policy: str


# ── Direct requests ───────────────────────────────────────────────────


class DirectRequestCreate(BaseModel):
    requester_id: str = Field(..., min_length=1, max_length=64)
    driver_id: str = Field(..., min_length=1, max_length=64)
    origin: LocationSchema
    destination: LocationSchema
    requested_datetime: AwareDatetime
    seats_requested: int = Field(1, ge=1, le=8)
    rider_max_price_per_seat: Decimal
    message: str = Field("", max_length=1000)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class QuoteBody(BaseModel):
    price: Decimal
    expected_status: Optional[RequestStatus] = None


class RequestTransitionBody(BaseModel):
    expected_status: Optional[RequestStatus] = Field(
        None, description="Status the caller last saw; a mismatch returns 409."
    )


class DeclineBody(RequestTransitionBody):
    by: Literal["rider", "driver"] = "rider"


class BookRequestBody(RequestTransitionBody):
    ride_id: Optional[str] = Field(
        None,
        description="Attach the booking to this ride; omitted, a ride is posted for it.",
    )


class DirectRequestResponse(BaseModel):
    id: str
    requester_id: str
    driver_id: str
    origin: LocationSchema
    destination: LocationSchema
    requested_datetime: datetime
    seats_requested: int
    rider_max_price_per_seat: Decimal
    driver_quoted_price: Optional[Decimal] = None
    message: str = ""
    status: RequestStatus
    created_at: Optional[datetime] = None
    booking_id: Optional[str] = None
    currency: str
    warnings: list[str] = []

    model_config = {"from_attributes": True}


# ── Rides & bookings ──────────────────────────────────────────────────


class RideCreate(BaseModel):
    driver_id: str = Field(..., min_length=1, max_length=64)
    origin: LocationSchema
    destination: LocationSchema
    departure_time: AwareDatetime
    price_per_seat: Decimal
    seats_total: int = Field(..., ge=1, le=8)
    fare_splitting_enabled: bool = False
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class BookingCreate(BaseModel):
    rider_id: str = Field(..., min_length=1, max_length=64)
    seats: int = Field(1, ge=1, le=8)
    expected_status: Optional[RideStatus] = None


class BookingTransitionBody(BaseModel):
    expected_status: Optional[BookingStatus] = None


class PayBody(BookingTransitionBody):
    amount: Decimal


class RideTransitionBody(BaseModel):
    expected_status: Optional[RideStatus] = None


class RepriceBody(RideTransitionBody):
    price_per_seat: Decimal


class BookingResponse(BaseModel):
    id: str
    ride_id: str
    rider_id: str
    seats_booked: int
    price_per_seat: Decimal
    total_paid: Decimal
    amount_due: Decimal
    status: BookingStatus
    approval_status: ApprovalStatus
    currency: str
    created_at: Optional[datetime] = None
    source_request_id: Optional[str] = None

    model_config = {"from_attributes": True}


class RideResponse(BaseModel):
    id: str
    driver_id: str
    origin: LocationSchema
    destination: LocationSchema
    departure_time: datetime
    price_per_seat: Decimal
    seats_total: int
    seats_booked: int
    seats_available: int
    fare_splitting_enabled: bool
    status: RideStatus
    total_earnings: Decimal
    currency: str
    version: int
    bookings: list[BookingResponse] = []

    model_config = {"from_attributes": True}


class BookingResultResponse(BaseModel):
    ride: RideResponse
    booking: BookingResponse

    model_config = {"from_attributes": True}


class BookingCancellationResponse(BookingResultResponse):
    outcome: CancellationOutcomeResponse


class RideCancellationResponse(BaseModel):
    ride: RideResponse
    outcomes: dict[str, CancellationOutcomeResponse]
    total_refund: Decimal

    model_config = {"from_attributes": True}


class BookingHandoffResponse(BaseModel):
    request: DirectRequestResponse
    booking: BookingResponse
    ride: RideResponse


# ── Admin ─────────────────────────────────────────────────────────────


class HealthResponse(BaseModel):
    status: str = "ok"


class SweepResponse(BaseModel):
    ran: bool
    rides_expired: int
    bookings_expired: int
    requests_expired: int
    conflicts: int
    lock_lost: bool = False

    model_config = {"from_attributes": True}


class ErrorResponse(BaseModel):
    detail: str
    kind: str
    current_status: Optional[str] = None
    attempted: Optional[str] = None
    remaining_seconds: Optional[int] = None
