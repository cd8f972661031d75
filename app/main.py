"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1.router import api_router
from app.config import settings
from app.core.exceptions import AppException
from app.core.firebase import initialize_firebase
from app.core.redis_client import check_redis_connection, close_redis_connection
from app.database import check_database_connection, engine
from app.dependencies import get_booking_sweeper
from app.middleware.error_handler import (
    app_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from app.middleware.logging import LoggingMiddleware, configure_logging

# Configure logging
configure_logging()
logger = structlog.get_logger()


async def _check_backends() -> None:
    """Log reachability of the database and Redis; the API starts either way."""
    for name, check in (("database", check_database_connection), ("redis", check_redis_connection)):
        if await check():
            logger.info("backend_connected", backend=name)
        else:
            logger.error("backend_connection_failed", backend=name)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Connects to the notification channel and backends on startup, runs the
    organization booking sweeper while the app is up, and releases
    connections on shutdown.
    """
    logger.info(
        "application_startup",
        environment=settings.environment,
        clinic_timezone=settings.clinic_timezone,
        cancellation_window_hours=settings.cancellation_window_hours,
        home_visit_buffer_minutes=settings.home_visit_buffer_minutes,
    )

    try:
        initialize_firebase(
            settings.firebase_credentials_path or None,
            settings.firebase_config_json or None,
        )
        logger.info("firebase_initialized")
    except Exception as e:
        logger.warning(
            "firebase_initialization_failed",
            error=str(e),
            note="Scheduling notifications will be skipped until credentials are configured.",
        )

    await _check_backends()

    sweeper = get_booking_sweeper()
    if settings.booking_sweep_enabled:
        sweeper.start()
    else:
        logger.info("booking_sweeper_disabled")

    yield

    logger.info("application_shutdown")

    await sweeper.stop()

    await engine.dispose()
    logger.info("database_connections_closed")

    close_redis_connection()
    logger.info("redis_connection_closed")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Telehealth appointment scheduling and doctor assignment API",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add logging middleware
app.add_middleware(LoggingMiddleware)

# Add exception handlers
app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(
    RequestValidationError, validation_exception_handler  # type: ignore[arg-type]
)
app.add_exception_handler(Exception, general_exception_handler)  # type: ignore[arg-type]

# Include API router
app.include_router(api_router, prefix=settings.api_v1_prefix)

# Setup Prometheus instrumentation
Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    should_instrument_requests_inprogress=True,
    excluded_handlers=[
        "/docs",
        "/redoc",
        "/openapi.json",
        "/metrics",
        f"{settings.api_v1_prefix}/ping",
    ],
    inprogress_name="http_requests_inprogress",
    inprogress_labels=True,
).instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Service banner with the API entry points."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
        "appointments": f"{settings.api_v1_prefix}/appointments",
        "organization_bookings": f"{settings.api_v1_prefix}/organization-bookings",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )
