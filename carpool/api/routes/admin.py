"""
Admin / operations endpoints
============================

GET  /api/v1/admin/health        -- simple health check
POST /api/v1/admin/expiry-sweep  -- run one expiry sweep now
"""

from datetime import datetime

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_clock, get_db
from carpool.api.middleware import limiter
from carpool.api.schemas import HealthResponse, SweepResponse
from carpool.config import settings
from carpool.infrastructure.redis_client import get_redis
from carpool.workers.expiry import run_expiry_cycle

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post(
    "/expiry-sweep",
    response_model=SweepResponse,
    summary="Expire departed rides, unpaid bookings and stale requests",
    description=(
        "Runs the same cycle as the background worker.  Returns ``ran=false`` "
        "when another process holds the sweep lock."
    ),
)
@limiter.limit(settings.rate_limit)
async def expiry_sweep(
    request: Request,
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    now: datetime = Depends(get_clock),
):
    summary = await run_expiry_cycle(db, redis, now)
    return SweepResponse.model_validate(summary)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
