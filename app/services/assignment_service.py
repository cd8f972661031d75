"""Doctor assignment: manual resolution, auto-assignment and reassignment."""

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any, TypeVar
from uuid import UUID

import structlog

from app.core.exceptions import (
    AlreadyAssignedException,
    AppException,
    InvalidTransitionException,
    NotFoundException,
    SlotConflictException,
)
from app.core.locks import LockTimeoutError, SlotLockRegistry, doctor_day_key
from app.core.security import SYSTEM_ACTOR, Actor
from app.repositories.base import (
    AppointmentStore,
    DoctorDirectory,
    DuplicateActiveRecordError,
    bounded_read,
    bounded_write,
)
from app.schemas.appointments import (
    TERMINAL_STATUSES,
    Appointment,
    AppointmentFilters,
    AppointmentStatus,
    AssignmentType,
    BatchAssignmentItem,
    BatchAssignmentResult,
)
from app.schemas.doctors import AvailabilityResponse, DoctorProfile
from app.services.appointment_service import notification_payload
from app.services.availability_service import (
    ALREADY_BOOKED,
    SLOT_BUSY,
    AvailabilityService,
    canonical_slot,
)
from app.services.doctor_service import APPROVED, resolve_doctor_name
from app.services.notification_service import NotificationDispatcher, NotificationEvent

logger = structlog.get_logger(__name__)

NO_DOCTOR_AVAILABLE = "No doctor is available for this slot"

# Profiles and availability snapshots both carry city/locality
Located = TypeVar("Located")


def _matches(value: str | None, wanted: str | None) -> bool:
    if not value or not wanted:
        return False
    return value.strip().lower() == wanted.strip().lower()


def rank_candidates(
    candidates: Sequence[Located],
    city: str | None,
    locality: str | None,
) -> list[Located]:
    """
    Order candidates by proximity to the patient.

    City matches come first, then locality matches within them; ties keep
    their input order.
    """
    return sorted(
        candidates,
        key=lambda c: (
            not _matches(getattr(c, "city", None), city),
            not _matches(getattr(c, "locality", None), locality),
        ),
    )


class AssignmentService:
    """Attach doctors to appointments without double-booking a slot.

    Every write happens inside the doctor-day lock after a fresh availability check
    and is additionally guarded by the appointment's expected status and
    doctor, so a concurrent change makes the write miss instead of clobber.
    """

    def __init__(
        self,
        store: AppointmentStore,
        directory: DoctorDirectory,
        availability: AvailabilityService,
        locks: SlotLockRegistry,
        dispatcher: NotificationDispatcher,
        store_timeout: float = 5.0,
    ):
        """Initialize service with its collaborators."""
        self.store = store
        self.directory = directory
        self.availability = availability
        self.locks = locks
        self.dispatcher = dispatcher
        self.store_timeout = store_timeout

    async def _load(self, appointment_id: UUID) -> Appointment:
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

    async def _approved_doctor(self, doctor_id: UUID) -> DoctorProfile:
        doctor = await bounded_read(
            self.directory.get_doctor(doctor_id),
            operation="get_doctor",
            timeout=self.store_timeout,
        )
        if doctor is None or doctor.status != APPROVED:
            raise NotFoundException("Doctor not found", details={"doctor_id": str(doctor_id)})
        return doctor

    @staticmethod
    def _ensure_assignable(appointment: Appointment) -> None:
        if appointment.status in TERMINAL_STATUSES:
            raise InvalidTransitionException(
                appointment.status.value,
                AppointmentStatus.CONFIRMED.value,
                str(appointment.id),
            )
        if appointment.status == AppointmentStatus.CONFIRMED:
            raise AlreadyAssignedException(
                str(appointment.id),
                str(appointment.doctor_id) if appointment.doctor_id else None,
                appointment.status.value,
            )

    async def resolve(
        self,
        appointment_id: UUID,
        doctor_id: UUID,
        actor: Actor = SYSTEM_ACTOR,
        assignment_type: AssignmentType = AssignmentType.MANUAL,
    ) -> Appointment:
        """
        Assign a doctor to a pending appointment and confirm it.

        Args:
            appointment_id: Pending appointment
            doctor_id: Doctor to assign
            actor: Caller making the assignment
            assignment_type: Whether this is a manual or automatic assignment

        Returns:
            The confirmed appointment

        Raises:
            NotFoundException: If the appointment or doctor does not exist
            AlreadyAssignedException: If the appointment is already confirmed
            InvalidTransitionException: If the appointment is closed
            SlotConflictException: If the doctor is not free at the slot
        """
        appointment = await self._load(appointment_id)
        self._ensure_assignable(appointment)
        doctor = await self._approved_doctor(doctor_id)

        updated = await self._guarded_assign(
            appointment,
            doctor,
            actor,
            patch={
                "status": AppointmentStatus.CONFIRMED,
                "assignment_type": assignment_type,
                "assigned_by": actor.id,
                "assigned_at": datetime.now(UTC),
            },
        )

        logger.info(
            "doctor_assigned",
            appointment_id=str(appointment_id),
            doctor_id=str(doctor_id),
            assignment_type=assignment_type.value,
            assigned_by=actor.id,
        )

        await self.dispatcher.notify(
            NotificationEvent.DOCTOR_ASSIGNED,
            notification_payload(updated, recipients=[updated.doctor_id]),
        )
        await self.dispatcher.notify(
            NotificationEvent.APPOINTMENT_CONFIRMED,
            notification_payload(updated, recipients=[updated.patient_id]),
        )
        return updated

    async def reassign(
        self,
        appointment_id: UUID,
        doctor_id: UUID,
        actor: Actor,
        reason: str | None = None,
    ) -> Appointment:
        """
        Move an open appointment to a different doctor.

        The previous doctor and the reason are recorded; the appointment ends
        up confirmed with the new doctor.

        Raises:
            NotFoundException: If the appointment or doctor does not exist
            AlreadyAssignedException: If the doctor is already the assigned one
            InvalidTransitionException: If the appointment is closed
            SlotConflictException: If the new doctor is not free at the slot
        """
        appointment = await self._load(appointment_id)
        if appointment.status in TERMINAL_STATUSES:
            raise InvalidTransitionException(
                appointment.status.value,
                AppointmentStatus.CONFIRMED.value,
                str(appointment.id),
            )
        if appointment.doctor_id == doctor_id:
            raise AlreadyAssignedException(
                str(appointment.id), str(doctor_id), appointment.status.value
            )

        doctor = await self._approved_doctor(doctor_id)
        now = datetime.now(UTC)

        updated = await self._guarded_assign(
            appointment,
            doctor,
            actor,
            patch={
                "status": AppointmentStatus.CONFIRMED,
                "assignment_type": AssignmentType.MANUAL,
                "assigned_by": actor.id,
                "assigned_at": now,
                "previous_doctor_id": appointment.doctor_id,
                "previous_doctor_name": appointment.doctor_name,
                "reassignment_reason": reason,
                "reassigned_by": actor.id,
                "reassigned_at": now,
            },
        )

        logger.info(
            "appointment_reassigned",
            appointment_id=str(appointment_id),
            previous_doctor_id=str(appointment.doctor_id) if appointment.doctor_id else None,
            doctor_id=str(doctor_id),
            reassigned_by=actor.id,
        )

        await self.dispatcher.notify(
            NotificationEvent.APPOINTMENT_REASSIGNED,
            notification_payload(
                updated,
                reason=reason,
                recipients=[updated.patient_id, appointment.doctor_id],
            ),
        )
        await self.dispatcher.notify(
            NotificationEvent.DOCTOR_ASSIGNED,
            notification_payload(updated, recipients=[updated.doctor_id]),
        )
        return updated

    async def _guarded_assign(
        self,
        appointment: Appointment,
        doctor: DoctorProfile,
        actor: Actor,
        patch: dict[str, Any],
    ) -> Appointment:
        """Re-check the doctor under the doctor-day lock and write the assignment."""
        date, time = appointment.date, appointment.time
        try:
            async with self.locks.hold(doctor_day_key(doctor.id, date), holder=actor.id):
                (snapshot,) = await self.availability.evaluate(
                    date,
                    time,
                    appointment.consultation_mode.value,
                    [doctor],
                    exclude_appointment_id=appointment.id,
                )
                if not snapshot.is_available:
                    raise SlotConflictException(
                        snapshot.conflict_reason or ALREADY_BOOKED, date, time, str(doctor.id)
                    )

                updated = await bounded_write(
                    self.store.update_appointment(
                        appointment.id,
                        {
                            **patch,
                            "doctor_id": doctor.id,
                            "doctor_name": resolve_doctor_name(doctor),
                            "specialization": doctor.specialization,
                            "updated_at": datetime.now(UTC),
                        },
                        expected={
                            "status": appointment.status,
                            "doctor_id": appointment.doctor_id,
                        },
                    ),
                    operation="assign_doctor",
                    timeout=self.store_timeout,
                )
        except LockTimeoutError:
            raise SlotConflictException(SLOT_BUSY, date, time, str(doctor.id)) from None
        except DuplicateActiveRecordError:
            raise SlotConflictException(ALREADY_BOOKED, date, time, str(doctor.id)) from None

        if updated is None:
            current = await self._load(appointment.id)
            logger.info(
                "assignment_lost_race",
                appointment_id=str(appointment.id),
                doctor_id=str(doctor.id),
                current_status=current.status.value,
            )
            if current.status in TERMINAL_STATUSES:
                raise InvalidTransitionException(
                    current.status.value,
                    AppointmentStatus.CONFIRMED.value,
                    str(current.id),
                )
            raise AlreadyAssignedException(
                str(current.id),
                str(current.doctor_id) if current.doctor_id else None,
                current.status.value,
            )

        return updated

    async def auto_assign(
        self,
        appointment_id: UUID,
        actor: Actor = SYSTEM_ACTOR,
    ) -> Appointment:
        """
        Assign the nearest available approved doctor.

        Candidates are tried in ranked order; one that loses its slot to a
        concurrent assignment is skipped in favour of the next.

        Raises:
            NotFoundException: If the appointment does not exist
            AlreadyAssignedException: If the appointment is already confirmed
            InvalidTransitionException: If the appointment is closed
            SlotConflictException: If no candidate could take the slot
        """
        appointment = await self._load(appointment_id)
        self._ensure_assignable(appointment)

        doctors = await bounded_read(
            self.directory.get_approved_doctors(),
            operation="get_approved_doctors",
            timeout=self.store_timeout,
        )
        snapshots = await self.availability.evaluate(
            appointment.date,
            appointment.time,
            appointment.consultation_mode.value,
            doctors,
            exclude_appointment_id=appointment.id,
        )
        available_ids = {s.doctor_id for s in snapshots if s.is_available}
        ranked = rank_candidates(
            [d for d in doctors if d.id in available_ids],
            appointment.patient_city,
            appointment.patient_locality,
        )

        for doctor in ranked:
            try:
                return await self.resolve(
                    appointment.id,
                    doctor.id,
                    actor=actor,
                    assignment_type=AssignmentType.AUTO,
                )
            except SlotConflictException as e:
                logger.info(
                    "auto_assign_candidate_skipped",
                    appointment_id=str(appointment.id),
                    doctor_id=str(doctor.id),
                    reason=e.reason,
                )

        raise SlotConflictException(NO_DOCTOR_AVAILABLE, appointment.date, appointment.time)

    async def assign_all_pending(self, actor: Actor = SYSTEM_ACTOR) -> BatchAssignmentResult:
        """
        Auto-assign every pending appointment that has no doctor yet.

        Each appointment is handled independently; one failure does not stop
        the batch.
        """
        pending: list[Appointment] = []
        page = 1
        while True:
            total, items = await bounded_read(
                self.store.list_appointments(
                    AppointmentFilters(
                        status=AppointmentStatus.PENDING,
                        unassigned_only=True,
                        page=page,
                        page_size=100,
                    )
                ),
                operation="list_pending_appointments",
                timeout=self.store_timeout,
            )
            pending.extend(items)
            if not items or len(pending) >= total:
                break
            page += 1

        details: list[BatchAssignmentItem] = []
        for appointment in pending:
            try:
                assigned = await self.auto_assign(appointment.id, actor=actor)
                details.append(
                    BatchAssignmentItem(
                        appointment_id=appointment.id,
                        success=True,
                        message=f"Assigned to {assigned.doctor_name}",
                        doctor_id=assigned.doctor_id,
                    )
                )
            except AppException as e:
                details.append(
                    BatchAssignmentItem(
                        appointment_id=appointment.id,
                        success=False,
                        message=e.message,
                    )
                )

        successful = sum(1 for item in details if item.success)
        logger.info(
            "pending_appointments_assigned",
            total=len(details),
            successful=successful,
            failed=len(details) - successful,
        )

        return BatchAssignmentResult(
            total=len(details),
            successful=successful,
            failed=len(details) - successful,
            details=details,
        )

    async def candidate_availability(
        self,
        date: str,
        time: str,
        mode: str,
        city: str | None = None,
        locality: str | None = None,
        exclude_appointment_id: UUID | None = None,
    ) -> AvailabilityResponse:
        """
        Availability of every approved doctor for one slot.

        Available doctors come first, each group ranked by proximity to
        ``city`` and ``locality``.
        """
        date, time, consultation_mode = canonical_slot(date, time, mode)

        doctors = await bounded_read(
            self.directory.get_approved_doctors(),
            operation="get_approved_doctors",
            timeout=self.store_timeout,
        )
        snapshots = await self.availability.evaluate(
            date,
            time,
            consultation_mode.value,
            doctors,
            exclude_appointment_id=exclude_appointment_id,
        )
        ranked = rank_candidates(snapshots, city, locality)
        ordered = sorted(ranked, key=lambda s: not s.is_available)
        available = sum(1 for s in ordered if s.is_available)

        return AvailabilityResponse(
            date=date,
            time=time,
            mode=consultation_mode,
            total_doctors=len(ordered),
            available_count=available,
            unavailable_count=len(ordered) - available,
            doctors=ordered,
        )
