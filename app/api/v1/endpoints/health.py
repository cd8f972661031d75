"""Health check endpoints."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from app.config import settings
from app.core.clock import Clock
from app.core.locks import SlotLockRegistry
from app.core.redis_client import check_redis_connection
from app.database import check_database_connection
from app.dependencies import get_booking_sweeper, get_clock, get_lock_registry
from app.services.booking_sweeper import BookingSweeper

logger = structlog.get_logger(__name__)

router = APIRouter()

# Upper bound for a single backend probe
PROBE_TIMEOUT_SECONDS = 3.0


class HealthResponse(BaseModel):
    """Liveness of the API process."""

    status: str
    version: str
    environment: str
    clinic_time: str


class DetailedHealthResponse(BaseModel):
    """Backends and in-process scheduling state."""

    status: str
    version: str
    environment: str
    database: str
    redis: str
    booking_sweeper: str
    active_locks: int


async def _probe(name: str, check: Callable[[], Awaitable[bool]]) -> str:
    try:
        healthy = await asyncio.wait_for(check(), timeout=PROBE_TIMEOUT_SECONDS)
    except TimeoutError:
        logger.warning("health_probe_timeout", backend=name, timeout=PROBE_TIMEOUT_SECONDS)
        healthy = False
    return "healthy" if healthy else "unhealthy"


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Basic health check",
)
async def health_check(clock: Annotated[Clock, Depends(get_clock)]) -> HealthResponse:
    """
    Basic health check.

    Also reports the clinic wall-clock time used for slot comparisons, which
    makes a misconfigured ``CLINIC_TIMEZONE`` easy to spot.
    """
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
        clinic_time=clock().isoformat(timespec="minutes"),
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Detailed health check",
)
async def detailed_health_check(
    locks: Annotated[SlotLockRegistry, Depends(get_lock_registry)],
    sweeper: Annotated[BookingSweeper, Depends(get_booking_sweeper)],
) -> DetailedHealthResponse:
    """
    Database and Redis reachability plus the booking sweeper and lock state.

    Each backend probe is bounded, so a hung dependency reports as unhealthy
    instead of hanging the check.
    """
    database, redis = await asyncio.gather(
        _probe("database", check_database_connection),
        _probe("redis", check_redis_connection),
    )

    return DetailedHealthResponse(
        status="healthy" if database == redis == "healthy" else "degraded",
        version=settings.app_version,
        environment=settings.environment,
        database=database,
        redis=redis,
        booking_sweeper="running" if sweeper.running else "stopped",
        active_locks=len(locks.active_locks()),
    )


@router.get(
    "/ping",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Simple ping",
)
async def ping() -> dict[str, str]:
    """Simple ping endpoint."""
    return {"message": "pong"}
