"""Storage boundaries used by the scheduling services.

The services only depend on these protocols; the sibling modules provide
the PostgreSQL implementations.
"""

import asyncio
from collections.abc import Awaitable
from typing import Any, Protocol, TypeVar
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import EvaluationTimeoutException, UpstreamUnavailableException
from app.schemas.appointments import Appointment, AppointmentFilters
from app.schemas.doctors import DoctorProfile, DoctorSchedule
from app.schemas.organization_bookings import OrganizationBooking, OrganizationBookingStatus

T = TypeVar("T")

# Failures that mean the backing service, not the request, is at fault
UPSTREAM_ERRORS: tuple[type[BaseException], ...] = (SQLAlchemyError, OSError)


class DuplicateActiveRecordError(Exception):
    """A write violated a one-active-record-per-slot/date constraint."""


class AppointmentStore(Protocol):
    """Appointment persistence."""

    async def get_appointment(self, appointment_id: UUID) -> Appointment | None: ...

    async def get_appointments_by_doctor(
        self,
        doctor_id: UUID,
        date: str | None = None,
        include_cancelled: bool = False,
    ) -> list[Appointment]: ...

    async def list_appointments(
        self, filters: AppointmentFilters
    ) -> tuple[int, list[Appointment]]: ...

    async def create_appointment(self, values: dict[str, Any]) -> Appointment: ...

    async def update_appointment(
        self,
        appointment_id: UUID,
        patch: dict[str, Any],
        expected: dict[str, Any] | None = None,
    ) -> Appointment | None: ...


class DoctorDirectory(Protocol):
    """Read access to approved doctors and their declared schedules."""

    async def get_approved_doctors(
        self,
        city: str | None = None,
        locality: str | None = None,
    ) -> list[DoctorProfile]: ...

    async def get_doctor(self, doctor_id: UUID) -> DoctorProfile | None: ...

    async def get_schedule(self, doctor_id: UUID) -> DoctorSchedule | None: ...


class OrganizationBookingStore(Protocol):
    """Organization booking persistence."""

    async def get_booking(self, booking_id: UUID) -> OrganizationBooking | None: ...

    async def list_bookings(
        self, status: OrganizationBookingStatus | None = None
    ) -> list[OrganizationBooking]: ...

    async def create_booking(self, values: dict[str, Any]) -> OrganizationBooking: ...

    async def update_booking(
        self,
        booking_id: UUID,
        patch: dict[str, Any],
        expected: dict[str, Any] | None = None,
    ) -> OrganizationBooking | None: ...


async def bounded_read(call: Awaitable[T], operation: str, timeout: float) -> T:
    """
    Await a store read with a deadline.

    Raises:
        EvaluationTimeoutException: If the read does not finish in time
        UpstreamUnavailableException: If the store fails
    """
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except TimeoutError:
        raise EvaluationTimeoutException(operation, timeout) from None
    except UPSTREAM_ERRORS as e:
        raise UpstreamUnavailableException(operation, str(e)) from e


async def bounded_write(call: Awaitable[T], operation: str, timeout: float) -> T:
    """
    Await a store write with a deadline.

    Timeouts and store failures both surface as upstream errors; a timed-out
    write is cancelled, so its transaction is rolled back by the session.

    Raises:
        UpstreamUnavailableException: On timeout or store failure
    """
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except TimeoutError:
        raise UpstreamUnavailableException(operation, f"timed out after {timeout}s") from None
    except UPSTREAM_ERRORS as e:
        raise UpstreamUnavailableException(operation, str(e)) from e
