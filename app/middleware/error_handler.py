"""Error handling middleware."""

import structlog
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.exceptions import AppException

logger = structlog.get_logger(__name__)


# Seconds a client should wait before retrying a retryable error
RETRY_AFTER_SECONDS = 1


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handle custom application exceptions.

    Retryable errors (slot or date taken, upstream unavailable) carry a
    ``Retry-After`` header so clients can re-query candidates and try again.

    Args:
        request: Request object
        exc: Application exception

    Returns:
        JSON error response carrying the error context
    """
    if exc.status_code >= 500:
        logger.error(
            "request_upstream_error",
            error=exc.__class__.__name__,
            message=exc.message,
            details=exc.details,
        )
    elif exc.status_code == status.HTTP_409_CONFLICT:
        logger.info(
            "scheduling_conflict",
            error=exc.__class__.__name__,
            details=exc.details,
            path=request.url.path,
        )

    headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if exc.retryable else None

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.__class__.__name__,
            "message": exc.message,
            "details": exc.details,
            "retryable": exc.retryable,
            "path": str(request.url),
        },
        headers=headers,
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """
    Handle HTTP exceptions.

    Args:
        request: Request object
        exc: HTTP exception

    Returns:
        JSON error response
    """
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "HTTPException",
            "message": exc.detail,
            "path": str(request.url),
        },
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Handle validation errors.

    Args:
        request: Request object
        exc: Validation exception

    Returns:
        JSON error response with validation details
    """
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "ValidationError",
            "message": "Request validation failed",
            "details": jsonable_errors(exc),
            "path": str(request.url),
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Strip non-serializable context (raised exceptions) from pydantic errors."""
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(error)
    return errors


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions.

    Args:
        request: Request object
        exc: Exception

    Returns:
        JSON error response
    """
    logger.error("unhandled_exception", error=str(exc), path=request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "InternalServerError",
            "message": "An unexpected error occurred",
            "path": str(request.url),
        },
    )
