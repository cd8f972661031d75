"""FastAPI dependencies."""

from collections.abc import Callable, Coroutine
from functools import lru_cache
from typing import Annotated, Any
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.core.clock import Clock, clinic_now
from app.core.locks import SlotLockRegistry
from app.core.redis_client import CacheManager, get_redis_client
from app.core.security import Actor, decode_access_token
from app.database import AsyncSessionLocal, get_session_factory
from app.repositories.appointments import SqlAppointmentStore
from app.repositories.base import AppointmentStore, DoctorDirectory, OrganizationBookingStore
from app.repositories.organization_bookings import SqlOrganizationBookingStore
from app.schemas.appointments import ActorRole
from app.services.appointment_service import AppointmentService
from app.services.assignment_service import AssignmentService
from app.services.availability_service import AvailabilityService
from app.services.booking_sweeper import BookingSweeper
from app.services.doctor_service import DoctorService
from app.services.notification_service import NotificationDispatcher
from app.services.organization_booking_service import OrganizationBookingService

# Security
security = HTTPBearer()


def _credentials_error(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Actor:
    """
    Extract and validate the caller from a JWT token.

    Patients and doctors are identified by a UUID ``sub``; admins may use any
    subject.

    Args:
        credentials: Bearer token credentials

    Returns:
        Authenticated actor

    Raises:
        HTTPException: If token is invalid or expired
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise _credentials_error()

    subject = payload.get("sub")
    if subject is None or not isinstance(subject, str):
        raise _credentials_error()

    try:
        role = ActorRole(payload.get("role", ActorRole.PATIENT.value))
    except ValueError:
        raise _credentials_error("Invalid role") from None

    if role != ActorRole.ADMIN:
        try:
            subject = str(UUID(subject))
        except ValueError:
            raise _credentials_error("Invalid user ID format") from None

    return Actor(id=subject, role=role)


def require_roles(*roles: ActorRole) -> Callable[..., Coroutine[Any, Any, Actor]]:
    """Build a dependency that admits only the given roles."""

    async def checker(actor: Annotated[Actor, Depends(get_current_actor)]) -> Actor:
        if actor.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(r.value for r in roles)}",
            )
        return actor

    return checker


# ============================================================================
# Process-wide singletons
# ============================================================================


@lru_cache
def get_lock_registry() -> SlotLockRegistry:
    """Slot lock registry shared by all requests in this process."""
    return SlotLockRegistry(acquire_timeout=settings.slot_lock_timeout_seconds)


@lru_cache
def get_notification_dispatcher() -> NotificationDispatcher:
    """Notification dispatcher."""
    return NotificationDispatcher(timeout=settings.notification_timeout_seconds)


def get_clock() -> Clock:
    """Clinic wall clock."""
    return clinic_now


def get_cache_manager() -> CacheManager:
    """Get cache manager instance."""
    return CacheManager(get_redis_client())


# ============================================================================
# Stores
# ============================================================================


def get_appointment_store(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> AppointmentStore:
    """Appointment store."""
    return SqlAppointmentStore(session_factory)


def get_doctor_directory(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    cache_manager: Annotated[CacheManager, Depends(get_cache_manager)],
) -> DoctorDirectory:
    """Approved doctor directory."""
    return DoctorService(
        session_factory,
        cache_manager=cache_manager,
        cache_ttl=settings.doctor_cache_ttl_seconds,
    )


def get_organization_booking_store(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> OrganizationBookingStore:
    """Organization booking store."""
    return SqlOrganizationBookingStore(session_factory)


# ============================================================================
# Services
# ============================================================================


def get_availability_service(
    store: Annotated[AppointmentStore, Depends(get_appointment_store)],
    directory: Annotated[DoctorDirectory, Depends(get_doctor_directory)],
) -> AvailabilityService:
    """Get availability service instance."""
    return AvailabilityService(
        store,
        directory,
        store_timeout=settings.store_timeout_seconds,
        home_visit_buffer_minutes=settings.home_visit_buffer_minutes,
    )


def get_appointment_service(
    store: Annotated[AppointmentStore, Depends(get_appointment_store)],
    directory: Annotated[DoctorDirectory, Depends(get_doctor_directory)],
    availability: Annotated[AvailabilityService, Depends(get_availability_service)],
    locks: Annotated[SlotLockRegistry, Depends(get_lock_registry)],
    dispatcher: Annotated[NotificationDispatcher, Depends(get_notification_dispatcher)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> AppointmentService:
    """Get appointment service instance."""
    return AppointmentService(
        store,
        directory,
        availability,
        locks,
        dispatcher,
        clock=clock,
        cancellation_window_hours=settings.cancellation_window_hours,
        store_timeout=settings.store_timeout_seconds,
    )


def get_assignment_service(
    store: Annotated[AppointmentStore, Depends(get_appointment_store)],
    directory: Annotated[DoctorDirectory, Depends(get_doctor_directory)],
    availability: Annotated[AvailabilityService, Depends(get_availability_service)],
    locks: Annotated[SlotLockRegistry, Depends(get_lock_registry)],
    dispatcher: Annotated[NotificationDispatcher, Depends(get_notification_dispatcher)],
) -> AssignmentService:
    """Get assignment service instance."""
    return AssignmentService(
        store,
        directory,
        availability,
        locks,
        dispatcher,
        store_timeout=settings.store_timeout_seconds,
    )


def get_organization_booking_service(
    store: Annotated[OrganizationBookingStore, Depends(get_organization_booking_store)],
    locks: Annotated[SlotLockRegistry, Depends(get_lock_registry)],
    dispatcher: Annotated[NotificationDispatcher, Depends(get_notification_dispatcher)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> OrganizationBookingService:
    """Get organization booking service instance."""
    return OrganizationBookingService(
        store,
        locks,
        dispatcher,
        clock=clock,
        store_timeout=settings.store_timeout_seconds,
    )


def build_organization_booking_service() -> OrganizationBookingService:
    """Booking service for work running outside a request."""
    return OrganizationBookingService(
        SqlOrganizationBookingStore(AsyncSessionLocal),
        get_lock_registry(),
        get_notification_dispatcher(),
        store_timeout=settings.store_timeout_seconds,
    )


@lru_cache
def get_booking_sweeper() -> BookingSweeper:
    """Booking sweeper shared by the periodic loop and on-read sweeps."""
    return BookingSweeper(
        build_organization_booking_service,
        interval_seconds=settings.booking_sweep_interval_seconds,
    )


# Type aliases for dependency injection
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
AdminActor = Annotated[Actor, Depends(require_roles(ActorRole.ADMIN))]
StaffActor = Annotated[Actor, Depends(require_roles(ActorRole.DOCTOR, ActorRole.ADMIN))]
PatientActor = Annotated[Actor, Depends(require_roles(ActorRole.PATIENT))]
