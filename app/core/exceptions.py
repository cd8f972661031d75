"""Custom application exceptions."""

from typing import Any


class AppException(Exception):
    """Base application exception."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        """Initialize exception with message, status code and error context."""
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found", details: dict | None = None):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404, details=details)


class ForbiddenException(AppException):
    """Forbidden access exception."""

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(self, message: str = "Conflict", details: dict | None = None):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409, details=details)


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error", details: dict | None = None):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422, details=details)


# ============================================================================
# Scheduling errors
# ============================================================================


class InvalidTimeFormatException(ValidationException):
    """Time string matched neither the 24-hour nor the 12-hour pattern."""

    def __init__(self, raw: str):
        """Echo the offending input."""
        self.raw = raw
        super().__init__(f"Invalid time format: {raw!r}", details={"raw": raw})


class InvalidDateFormatException(ValidationException):
    """Date string is not YYYY-MM-DD / DD/MM/YYYY or is not a real calendar date."""

    def __init__(self, raw: str):
        """Echo the offending input."""
        self.raw = raw
        super().__init__(f"Invalid date format: {raw!r}", details={"raw": raw})


class InvalidRequestException(ValidationException):
    """A scheduling request could not be canonicalized."""

    def __init__(self, message: str, details: dict | None = None):
        """Initialize with 422 status code."""
        super().__init__(message, details=details)


class SlotConflictException(ConflictException):
    """Doctor slot was taken by the time the assignment was committed."""

    retryable = True

    def __init__(self, reason: str, date: str, time: str, doctor_id: str | None = None):
        """Carry the slot so callers can re-query candidates."""
        self.reason = reason
        super().__init__(
            f"Doctor is not available: {reason}",
            details={"reason": reason, "doctor_id": doctor_id, "date": date, "time": time},
        )


class AlreadyAssignedException(ConflictException):
    """Appointment already holds the requested assignment or is closed."""

    def __init__(self, appointment_id: str, doctor_id: str | None, status: str):
        """Carry the current assignment."""
        super().__init__(
            "Appointment is already assigned",
            details={"appointment_id": appointment_id, "doctor_id": doctor_id, "status": status},
        )


class DateAlreadyBookedException(ConflictException):
    """Another active organization booking holds the date."""

    retryable = True

    def __init__(self, date: str, booking_id: str | None = None):
        """Carry the contested date."""
        super().__init__(
            f"Date {date} is already booked by another organization",
            details={"date": date, "booking_id": booking_id},
        )


class TooLateToCancelException(ConflictException):
    """Patient cancellation attempted inside the cancellation window."""

    def __init__(self, appointment_id: str, hours_remaining: float, deadline: str):
        """Carry the remaining time and the deadline that was missed."""
        self.hours_remaining = hours_remaining
        super().__init__(
            "Appointments can only be cancelled at least 24 hours in advance",
            details={
                "appointment_id": appointment_id,
                "hours_remaining": round(hours_remaining, 2),
                "deadline": deadline,
            },
        )


class InvalidTransitionException(ConflictException):
    """Status change not allowed by the appointment state machine."""

    def __init__(self, current: str, target: str, entity_id: str | None = None):
        """Carry both ends of the rejected transition."""
        super().__init__(
            f"Cannot transition from {current} to {target}",
            details={"id": entity_id, "current": current, "target": target},
        )


class EvaluationTimeoutException(AppException):
    """A bounded store read did not finish in time."""

    def __init__(self, operation: str, timeout: float):
        """Initialize with 504 status code."""
        super().__init__(
            f"Timed out during {operation}",
            status_code=504,
            details={"operation": operation, "timeout_seconds": timeout},
        )


class UpstreamUnavailableException(AppException):
    """Backing store or notification channel failed."""

    retryable = True

    def __init__(self, operation: str, error: str | None = None):
        """Initialize with 503 status code."""
        super().__init__(
            f"Upstream service unavailable during {operation}",
            status_code=503,
            details={"operation": operation, "error": error},
        )
