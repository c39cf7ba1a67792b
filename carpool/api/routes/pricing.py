"""
Pricing endpoints
=================

POST /api/v1/pricing/suggest            -- suggested per-seat price for a trip
POST /api/v1/pricing/request-preview    -- multi-seat discount preview for a rider's ask
POST /api/v1/pricing/fare-split         -- discounted per-seat price for N passengers
GET  /api/v1/pricing/potential-savings  -- price per passenger as the car fills up
"""

from dataclasses import asdict
from decimal import Decimal

from fastapi import APIRouter, Depends, Query, Request

from carpool.api.dependencies import get_pricing_engine
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    FareSplitRequest,
    FareSplitResponse,
    PriceQuoteResponse,
    PriceSuggestRequest,
    RequestPreviewRequest,
    RequestPricePreviewResponse,
    SavingsScenarioResponse,
)
from carpool.config import settings
from carpool.domain.distance import estimate_trip
from carpool.domain.entities import Location
from carpool.domain.fare_split import potential_savings, require_fare_splitting_eligible, split
from carpool.domain.pricing import PricingEngine, preview_request_price

router = APIRouter(prefix="/pricing", tags=["pricing"])


@router.post(
    "/suggest",
    response_model=PriceQuoteResponse,
    summary="Suggest a fair per-seat price",
    description=(
        "Pass ``distance_miles`` and ``duration_minutes`` from a routing "
        "lookup, or ``origin``/``destination`` coordinates for a "
        "great-circle estimate."
    ),
)
@limiter.limit(settings.rate_limit)
async def suggest_price(
    request: Request,
    body: PriceSuggestRequest,
    engine: PricingEngine = Depends(get_pricing_engine),
):
    if body.distance_miles is not None and body.duration_minutes is not None:
        miles, minutes = body.distance_miles, body.duration_minutes
    else:
        trip = estimate_trip(
            Location(**body.origin.model_dump()),
            Location(**body.destination.model_dump()),
            settings.average_speed_mph,
        )
        miles, minutes = trip.distance_miles, trip.duration_minutes

    quote = engine.suggest_price(miles, minutes)
    return PriceQuoteResponse(
        **asdict(quote), distance_miles=miles, duration_minutes=minutes
    )


@router.post(
    "/request-preview",
    response_model=RequestPricePreviewResponse,
    summary="Preview the multi-seat discount on a direct request",
)
@limiter.limit(settings.rate_limit)
async def request_preview(
    request: Request,
    body: RequestPreviewRequest,
    engine: PricingEngine = Depends(get_pricing_engine),
):
    price = body.price_per_seat
    if price is None:
        price = engine.suggest_price(
            body.distance_miles, body.duration_minutes
        ).suggested_price_per_seat
    preview = preview_request_price(price, body.seats)
    return RequestPricePreviewResponse(**asdict(preview), currency=engine.currency)


@router.post(
    "/fare-split",
    response_model=FareSplitResponse,
    summary="Per-seat price once the fare is split",
    description=(
        "When ``ride_type`` is given, eligibility is checked first and an "
        "ineligible ride is rejected with 422."
    ),
)
@limiter.limit(settings.rate_limit)
async def fare_split(
    request: Request,
    body: FareSplitRequest,
    engine: PricingEngine = Depends(get_pricing_engine),
):
    if body.ride_type is not None:
        require_fare_splitting_eligible(
            body.ride_type,
            body.seats_total if body.seats_total is not None else body.total_passengers,
            body.driver_opt_in,
        )
    result = split(body.base_price_per_seat, body.total_passengers)
    return FareSplitResponse(**asdict(result), currency=engine.currency)


@router.get(
    "/potential-savings",
    response_model=list[SavingsScenarioResponse],
    summary="Per-passenger price for each head-count up to the maximum",
)
@limiter.limit(settings.rate_limit)
async def get_potential_savings(
    request: Request,
    base_price: Decimal = Query(...),
    current_passengers: int = Query(1),
    max_passengers: int = Query(4, le=8),
):
    return [
        SavingsScenarioResponse.model_validate(s)
        for s in potential_savings(base_price, current_passengers, max_passengers)
    ]
