"""Appointment lifecycle: booking, reads and status transitions."""

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

import structlog

from app.core.clock import Clock, clinic_now
from app.core.exceptions import (
    ForbiddenException,
    InvalidDateFormatException,
    InvalidRequestException,
    InvalidTimeFormatException,
    InvalidTransitionException,
    NotFoundException,
    SlotConflictException,
    TooLateToCancelException,
)
from app.core.locks import LockTimeoutError, SlotLockRegistry, doctor_day_key
from app.core.security import Actor
from app.repositories.base import (
    AppointmentStore,
    DoctorDirectory,
    DuplicateActiveRecordError,
    bounded_read,
    bounded_write,
)
from app.schemas.appointments import (
    ActorRole,
    Appointment,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    AssignmentType,
)
from app.services.availability_service import ALREADY_BOOKED, SLOT_BUSY, AvailabilityService
from app.services.doctor_service import APPROVED, resolve_doctor_name
from app.services.notification_service import NotificationDispatcher, NotificationEvent
from app.services.time_normalizer import combine, normalize_date, normalize_time

logger = structlog.get_logger(__name__)

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}


def ensure_transition(appointment: Appointment, target: AppointmentStatus) -> None:
    """
    Check a status change against the appointment state machine.

    Raises:
        InvalidTransitionException: If the change is not allowed
    """
    if target not in ALLOWED_TRANSITIONS[appointment.status]:
        raise InvalidTransitionException(
            appointment.status.value, target.value, str(appointment.id)
        )


def effective_status(
    appointment: Appointment,
    now: datetime,
    include_pending: bool = False,
) -> AppointmentStatus:
    """
    Status as it should be presented at wall-clock time ``now``.

    A confirmed appointment whose slot has passed reads as completed; pending
    ones only when ``include_pending`` is set. The stored status is untouched.
    """
    expirable = {AppointmentStatus.CONFIRMED}
    if include_pending:
        expirable.add(AppointmentStatus.PENDING)

    if appointment.status not in expirable:
        return appointment.status

    try:
        slot = combine(appointment.date, appointment.time)
    except (InvalidDateFormatException, InvalidTimeFormatException):
        logger.warning(
            "appointment_slot_unparseable",
            appointment_id=str(appointment.id),
            date=appointment.date,
            time=appointment.time,
        )
        return appointment.status

    return AppointmentStatus.COMPLETED if slot < now else appointment.status


def check_cancellation_window(
    appointment: Appointment,
    now: datetime,
    window_hours: int = 24,
) -> None:
    """
    Enforce the patient cancellation deadline.

    Cancelling exactly ``window_hours`` before the slot is still allowed.

    Raises:
        TooLateToCancelException: If less than ``window_hours`` remain
    """
    slot = combine(appointment.date, appointment.time)
    remaining = slot - now
    if remaining < timedelta(hours=window_hours):
        deadline = slot - timedelta(hours=window_hours)
        raise TooLateToCancelException(
            str(appointment.id),
            hours_remaining=remaining.total_seconds() / 3600,
            deadline=deadline.isoformat(),
        )


def to_response(
    appointment: Appointment,
    now: datetime,
    include_pending: bool = False,
) -> AppointmentResponse:
    """Attach the effective status to a stored appointment."""
    return AppointmentResponse(
        **appointment.model_dump(),
        effective_status=effective_status(appointment, now, include_pending),
    )


def notification_payload(appointment: Appointment, **extra: Any) -> dict[str, Any]:
    """Template fields shared by appointment notifications."""
    return {
        "appointment_id": str(appointment.id),
        "patient_name": appointment.patient_name,
        "doctor_name": appointment.doctor_name,
        "consultation_mode": appointment.consultation_mode.value,
        "date": appointment.date,
        "time": appointment.time,
        "status": appointment.status.value,
        **extra,
    }


class AppointmentService:
    """Service for booking appointments and moving them through their lifecycle."""

    def __init__(
        self,
        store: AppointmentStore,
        directory: DoctorDirectory,
        availability: AvailabilityService,
        locks: SlotLockRegistry,
        dispatcher: NotificationDispatcher,
        clock: Clock = clinic_now,
        cancellation_window_hours: int = 24,
        store_timeout: float = 5.0,
    ):
        """Initialize service with its collaborators."""
        self.store = store
        self.directory = directory
        self.availability = availability
        self.locks = locks
        self.dispatcher = dispatcher
        self.clock = clock
        self.cancellation_window_hours = cancellation_window_hours
        self.store_timeout = store_timeout

    async def create_appointment(
        self,
        actor: Actor,
        data: AppointmentCreate,
    ) -> AppointmentResponse:
        """
        Book a new appointment.

        The appointment starts pending. A doctor chosen by the patient is
        checked under the doctor-day lock and attached, but confirmation still
        happens separately.

        Args:
            actor: Patient booking the appointment
            data: Appointment creation data

        Returns:
            Created appointment

        Raises:
            InvalidDateFormatException: If the date is malformed
            InvalidTimeFormatException: If the time is malformed
            InvalidRequestException: If the slot is in the past
            NotFoundException: If the chosen doctor is unknown or not approved
            SlotConflictException: If the chosen doctor is not free
        """
        date = normalize_date(data.date)
        time = normalize_time(data.time)

        if combine(date, time) <= self.clock():
            raise InvalidRequestException(
                "Appointment time must be in the future",
                details={"date": date, "time": time},
            )

        values: dict[str, Any] = {
            "patient_id": UUID(actor.id),
            "patient_name": data.patient_name,
            "patient_email": data.patient_email,
            "patient_city": data.patient_city,
            "patient_locality": data.patient_locality,
            "consultation_mode": data.consultation_mode,
            "date": date,
            "time": time,
            "symptoms": data.symptoms,
            "status": AppointmentStatus.PENDING,
        }

        if data.doctor_id is None:
            appointment = await bounded_write(
                self.store.create_appointment(values),
                operation="create_appointment",
                timeout=self.store_timeout,
            )
        else:
            appointment = await self._create_with_doctor(actor, data.doctor_id, values)

        logger.info(
            "appointment_created",
            appointment_id=str(appointment.id),
            doctor_id=str(appointment.doctor_id) if appointment.doctor_id else None,
            date=date,
            time=time,
        )

        await self.dispatcher.notify(
            NotificationEvent.APPOINTMENT_CREATED,
            notification_payload(appointment, recipients=[appointment.patient_id]),
        )

        return to_response(appointment, self.clock())

    async def _create_with_doctor(
        self,
        actor: Actor,
        doctor_id: UUID,
        values: dict[str, Any],
    ) -> Appointment:
        doctor = await bounded_read(
            self.directory.get_doctor(doctor_id),
            operation="get_doctor",
            timeout=self.store_timeout,
        )
        if doctor is None or doctor.status != APPROVED:
            raise NotFoundException("Doctor not found", details={"doctor_id": str(doctor_id)})

        date, time = values["date"], values["time"]
        try:
            async with self.locks.hold(doctor_day_key(doctor.id, date), holder=actor.id):
                (snapshot,) = await self.availability.evaluate(
                    date, time, values["consultation_mode"].value, [doctor]
                )
                if not snapshot.is_available:
                    raise SlotConflictException(
                        snapshot.conflict_reason or ALREADY_BOOKED, date, time, str(doctor.id)
                    )

                values.update(
                    doctor_id=doctor.id,
                    doctor_name=resolve_doctor_name(doctor),
                    specialization=doctor.specialization,
                    assignment_type=AssignmentType.MANUAL,
                    assigned_by=actor.id,
                    assigned_at=datetime.now(UTC),
                )
                return await bounded_write(
                    self.store.create_appointment(values),
                    operation="create_appointment",
                    timeout=self.store_timeout,
                )
        except LockTimeoutError:
            raise SlotConflictException(SLOT_BUSY, date, time, str(doctor.id)) from None
        except DuplicateActiveRecordError:
            raise SlotConflictException(ALREADY_BOOKED, date, time, str(doctor.id)) from None

    async def load(self, appointment_id: UUID) -> Appointment:
        """
        Load an appointment without access checks.

        Raises:
            NotFoundException: If appointment not found
        """
        appointment = await bounded_read(
            self.store.get_appointment(appointment_id),
            operation="get_appointment",
            timeout=self.store_timeout,
        )
        if appointment is None:
            raise NotFoundException(
                "Appointment not found", details={"appointment_id": str(appointment_id)}
            )
        return appointment

    @staticmethod
    def _check_access(appointment: Appointment, actor: Actor) -> None:
        if actor.is_admin:
            return
        if actor.role == ActorRole.PATIENT and str(appointment.patient_id) == actor.id:
            return
        if actor.role == ActorRole.DOCTOR and str(appointment.doctor_id) == actor.id:
            return
        raise ForbiddenException("Access denied to this appointment")

    async def get_appointment(
        self,
        appointment_id: UUID,
        actor: Actor,
        include_pending: bool = False,
    ) -> AppointmentResponse:
        """
        Get appointment by ID.

        Args:
            appointment_id: Appointment ID
            actor: Requesting caller
            include_pending: Also present past pending appointments as completed

        Returns:
            Appointment details

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If the caller doesn't have access
        """
        appointment = await self.load(appointment_id)
        self._check_access(appointment, actor)
        return to_response(appointment, self.clock(), include_pending)

    async def list_appointments(
        self,
        actor: Actor,
        filters: AppointmentFilters,
        include_pending: bool = False,
    ) -> AppointmentListResponse:
        """
        List appointments visible to the caller.

        Patients see their own appointments and doctors the ones assigned to
        them; admins may filter freely.
        """
        if actor.role == ActorRole.PATIENT:
            filters = filters.model_copy(update={"patient_id": UUID(actor.id)})
        elif actor.role == ActorRole.DOCTOR:
            filters = filters.model_copy(update={"doctor_id": UUID(actor.id)})

        if filters.date:
            filters = filters.model_copy(update={"date": normalize_date(filters.date)})

        total, items = await bounded_read(
            self.store.list_appointments(filters),
            operation="list_appointments",
            timeout=self.store_timeout,
        )

        now = self.clock()
        return AppointmentListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=[to_response(item, now, include_pending) for item in items],
        )

    async def confirm(self, appointment_id: UUID, actor: Actor) -> AppointmentResponse:
        """
        Confirm a pending appointment that already has a doctor attached.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If a doctor confirms someone else's appointment
            InvalidRequestException: If no doctor is attached yet
            InvalidTransitionException: If the appointment is not pending
        """
        appointment = await self.load(appointment_id)
        self._check_access(appointment, actor)
        ensure_transition(appointment, AppointmentStatus.CONFIRMED)

        if appointment.doctor_id is None:
            raise InvalidRequestException(
                "Assign a doctor before confirming the appointment",
                details={"appointment_id": str(appointment_id)},
            )

        updated = await self._apply_transition(appointment, AppointmentStatus.CONFIRMED, {})

        await self.dispatcher.notify(
            NotificationEvent.APPOINTMENT_CONFIRMED,
            notification_payload(updated, recipients=[updated.patient_id]),
        )
        return to_response(updated, self.clock())

    async def complete(self, appointment_id: UUID, actor: Actor) -> AppointmentResponse:
        """
        Mark a confirmed appointment as completed.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If a doctor completes someone else's appointment
            InvalidTransitionException: If the appointment is not confirmed
        """
        appointment = await self.load(appointment_id)
        self._check_access(appointment, actor)
        ensure_transition(appointment, AppointmentStatus.COMPLETED)

        updated = await self._apply_transition(appointment, AppointmentStatus.COMPLETED, {})

        await self.dispatcher.notify(
            NotificationEvent.APPOINTMENT_COMPLETED,
            notification_payload(updated, recipients=[updated.patient_id]),
        )
        return to_response(updated, self.clock())

    async def cancel(
        self,
        appointment_id: UUID,
        actor: Actor,
        reason: str | None = None,
    ) -> AppointmentResponse:
        """
        Cancel a pending or confirmed appointment.

        Patients must cancel at least ``cancellation_window_hours`` before the
        slot; doctors and admins are not bound by the window.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If the caller doesn't have access
            InvalidTransitionException: If the appointment is already closed
            TooLateToCancelException: If a patient cancels inside the window
        """
        appointment = await self.load(appointment_id)
        self._check_access(appointment, actor)
        ensure_transition(appointment, AppointmentStatus.CANCELLED)

        if actor.role == ActorRole.PATIENT:
            check_cancellation_window(appointment, self.clock(), self.cancellation_window_hours)

        updated = await self._apply_transition(
            appointment,
            AppointmentStatus.CANCELLED,
            {"cancellation_date": datetime.now(UTC), "cancelled_by": actor.role},
        )

        logger.info(
            "appointment_cancelled",
            appointment_id=str(appointment_id),
            cancelled_by=actor.role.value,
            reason=reason,
        )

        await self.dispatcher.notify(
            NotificationEvent.APPOINTMENT_CANCELLED,
            notification_payload(
                updated,
                reason=reason,
                recipients=[updated.patient_id, updated.doctor_id],
            ),
        )
        return to_response(updated, self.clock())

    async def _apply_transition(
        self,
        appointment: Appointment,
        target: AppointmentStatus,
        patch: dict[str, Any],
    ) -> Appointment:
        """Write a status change guarded by the status it was checked against."""
        updated = await bounded_write(
            self.store.update_appointment(
                appointment.id,
                {**patch, "status": target, "updated_at": datetime.now(UTC)},
                expected={"status": appointment.status},
            ),
            operation="update_appointment_status",
            timeout=self.store_timeout,
        )

        if updated is None:
            # Someone else moved the appointment between our read and write
            current = await self.load(appointment.id)
            raise InvalidTransitionException(
                current.status.value, target.value, str(appointment.id)
            )

        logger.info(
            "appointment_status_changed",
            appointment_id=str(appointment.id),
            previous_status=appointment.status.value,
            status=target.value,
        )
        return updated
