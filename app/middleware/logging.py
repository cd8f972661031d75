"""Logging middleware and configuration."""

import logging
import sys
import time
import uuid
from collections.abc import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import settings


def configure_logging() -> None:
    """Configure structured logging."""
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper()),
    )


# Probes polled by load balancers and Prometheus; logged at debug only
QUIET_PATHS = frozenset(
    {"/metrics", f"{settings.api_v1_prefix}/health", f"{settings.api_v1_prefix}/ping"}
)

# Requests slower than this are logged as warnings
SLOW_REQUEST_SECONDS = 2.0


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log every request and bind a request id to the log context.

    The request id is bound with structlog contextvars, so scheduling events
    logged by the services during the request carry it too.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        """
        Log request and response details.

        Args:
            request: Request object
            call_next: Next middleware in chain

        Returns:
            Response object
        """
        logger = structlog.get_logger()
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        quiet = request.url.path in QUIET_PATHS
        log = logger.debug if quiet else logger.info

        start_time = time.perf_counter()
        log(
            "request_started",
            method=request.method,
            path=request.url.path,
            client=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
                duration=time.perf_counter() - start_time,
            )
            raise

        duration = time.perf_counter() - start_time
        if duration > SLOW_REQUEST_SECONDS and not quiet:
            log = logger.warning
        log(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration=duration,
        )

        response.headers["X-Process-Time"] = str(duration)
        response.headers["X-Request-ID"] = request_id

        return response
