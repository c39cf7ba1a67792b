"""
Cancellation endpoints
======================

POST /api/v1/cancellations/preview  -- refund/penalty split for cancelling now
GET  /api/v1/cancellations/policy   -- human-readable policy text
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Request

from carpool.api.dependencies import get_clock
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    CancellationOutcomeResponse,
    CancellationPreviewRequest,
    CancellationPreviewResponse,
    PolicyResponse,
)
from carpool.config import settings
from carpool.domain.refunds import (
    can_cancel,
    format_remaining,
    policy_text,
    preview_refund,
    time_until_departure,
)

router = APIRouter(prefix="/cancellations", tags=["cancellations"])


@router.post(
    "/preview",
    response_model=CancellationPreviewResponse,
    summary="Preview the refund for cancelling now",
)
@limiter.limit(settings.rate_limit)
async def preview(
    request: Request,
    body: CancellationPreviewRequest,
    now: datetime = Depends(get_clock),
):
    outcome = preview_refund(body.total_paid, body.departure_time, now, body.status)
    check = (
        can_cancel(body.departure_time, body.status, now)
        if body.status is not None
        else None
    )
    base = CancellationOutcomeResponse.model_validate(outcome)
    return CancellationPreviewResponse(
        **base.model_dump(),
        can_cancel=check.allowed if check else None,
        can_cancel_reason=check.reason if check else None,
        time_until_departure=format_remaining(
            time_until_departure(body.departure_time, now)
        ),
    )


@router.get("/policy", response_model=PolicyResponse, summary="Cancellation policy")
async def policy():
    return PolicyResponse(policy=policy_text())
