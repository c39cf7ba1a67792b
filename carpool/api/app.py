"""
FastAPI application factory.

* Registers routes for pricing, cancellations, direct requests, rides and admin.
* Starts / stops the background expiry worker via lifespan events.
* Maps engine errors to HTTP statuses with a structured JSON body.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from carpool.api.middleware import limiter
from carpool.api.routes import admin, cancellations, pricing, requests, rides
from carpool.config import settings
from carpool.domain.exceptions import (
    EngineError,
    IneligibleOperation,
    InvalidInput,
    NotFound,
    PreconditionNotMet,
    StaleState,
    TerminalState,
)
from carpool.infrastructure.redis_client import close_redis
from carpool.workers import expiry as _expiry

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

# First match wins; subclasses of PreconditionNotMet share its status.
HTTP_STATUS = (
    (NotFound, 404),
    (InvalidInput, 400),
    (IneligibleOperation, 422),
    (PreconditionNotMet, 412),
    (StaleState, 409),
    (TerminalState, 409),
)


async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    status = next((code for cls, code in HTTP_STATUS if isinstance(exc, cls)), 400)
    if status == 409:
        logger.info("Conflict on %s: %s", request.url.path, exc.message)
    return JSONResponse(status_code=status, content=exc.to_dict())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the expiry worker on startup; stop it and Redis on shutdown."""
    await _expiry.start_expiry_loop()
    yield
    await _expiry.stop_expiry_loop()
    await close_redis()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Carpool Pricing & Ride Engagement API",
        description=(
            "Fair per-seat pricing, fare splitting, direct rider-to-driver "
            "negotiation, ride and booking lifecycles, and time-based "
            "cancellation refunds."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Engine errors
    app.add_exception_handler(EngineError, engine_error_handler)

    # Routers
    app.include_router(pricing.router, prefix="/api/v1")
    app.include_router(cancellations.router, prefix="/api/v1")
    app.include_router(requests.router, prefix="/api/v1")
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
