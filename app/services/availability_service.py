"""Doctor availability evaluation for a requested slot."""

import asyncio
from collections.abc import Sequence
from uuid import UUID

import structlog

from app.core.exceptions import (
    EvaluationTimeoutException,
    InvalidDateFormatException,
    InvalidRequestException,
    InvalidTimeFormatException,
)
from app.repositories.base import AppointmentStore, DoctorDirectory, bounded_read
from app.schemas.appointments import Appointment, ConsultationMode
from app.schemas.doctors import DoctorAvailability, DoctorProfile, DoctorSchedule
from app.services.doctor_service import resolve_doctor_name
from app.services.time_normalizer import (
    normalize_date,
    normalize_time,
    time_to_minutes,
    weekday_name,
)

logger = structlog.get_logger(__name__)

ALREADY_BOOKED = "Already booked at this time"
OUTSIDE_WORKING_HOURS = "Outside working hours"
DURING_BREAK = "During break time"
BLOCKED_DATE = "Blocked date"
HOME_VISIT_BUFFER = "Home visit buffer conflict"
DATA_UNAVAILABLE = "Doctor data unavailable"
EVALUATION_TIMEOUT = "Evaluation timeout"
SLOT_BUSY = "Slot is being assigned by another request"


def canonical_slot(date: str, time: str, mode: str) -> tuple[str, str, ConsultationMode]:
    """
    Canonicalize a requested slot.

    Raises:
        InvalidRequestException: If date, time or mode is malformed
    """
    try:
        return normalize_date(date), normalize_time(time), ConsultationMode(mode)
    except (InvalidDateFormatException, InvalidTimeFormatException) as e:
        raise InvalidRequestException(e.message, details=e.details) from e
    except ValueError:
        raise InvalidRequestException(
            f"Invalid consultation mode: {mode!r}", details={"mode": mode}
        ) from None


def check_schedule(schedule: DoctorSchedule, date: str, time: str) -> str | None:
    """
    Check a slot against a doctor's declared schedule.

    Working hours and breaks are inclusive at both ends.

    Returns:
        Conflict reason, or None if the schedule allows the slot
    """
    if date in {normalize_date(blocked) for blocked in schedule.blocked_dates}:
        return BLOCKED_DATE

    day = weekday_name(date)
    if day not in {d.strip().lower() for d in schedule.days}:
        return f"Not available on {day.capitalize()}"

    minutes = time_to_minutes(time)
    if minutes < time_to_minutes(schedule.start_time) or minutes > time_to_minutes(
        schedule.end_time
    ):
        return OUTSIDE_WORKING_HOURS

    if schedule.break_start_time and schedule.break_end_time:
        if (
            time_to_minutes(schedule.break_start_time)
            <= minutes
            <= time_to_minutes(schedule.break_end_time)
        ):
            return DURING_BREAK

    return None


class AvailabilityService:
    """Read-only availability evaluation.

    Results are a point-in-time view and must not be used as a commit
    decision; the assignment service re-evaluates under the doctor-day lock.
    """

    def __init__(
        self,
        appointment_store: AppointmentStore,
        doctor_directory: DoctorDirectory,
        store_timeout: float = 5.0,
        home_visit_buffer_minutes: int = 120,
    ):
        """Initialize service with its stores and limits."""
        self.appointments = appointment_store
        self.directory = doctor_directory
        self.store_timeout = store_timeout
        self.home_visit_buffer_minutes = home_visit_buffer_minutes

    async def evaluate(
        self,
        date: str,
        time: str,
        mode: str,
        candidate_doctors: Sequence[DoctorProfile],
        exclude_appointment_id: UUID | None = None,
    ) -> list[DoctorAvailability]:
        """
        Compute availability of each candidate for one slot.

        Args:
            date: Requested date in any accepted format
            time: Requested time in any accepted format
            mode: Consultation mode of the request
            candidate_doctors: Doctors to evaluate
            exclude_appointment_id: Appointment being placed, ignored as a conflict

        Returns:
            One snapshot per candidate, in input order

        Raises:
            InvalidRequestException: If the slot cannot be canonicalized
        """
        date, time, consultation_mode = canonical_slot(date, time, mode)

        return list(
            await asyncio.gather(
                *(
                    self._evaluate_doctor(
                        doctor, date, time, consultation_mode, exclude_appointment_id
                    )
                    for doctor in candidate_doctors
                )
            )
        )

    async def _evaluate_doctor(
        self,
        doctor: DoctorProfile,
        date: str,
        time: str,
        mode: ConsultationMode,
        exclude_appointment_id: UUID | None,
    ) -> DoctorAvailability:
        snapshot = DoctorAvailability(
            doctor_id=doctor.id,
            is_available=True,
            doctor_name=resolve_doctor_name(doctor),
            specialization=doctor.specialization,
            city=doctor.city,
            locality=doctor.locality,
        )

        try:
            existing, schedule = await bounded_read(
                asyncio.gather(
                    self.appointments.get_appointments_by_doctor(doctor.id, date=date),
                    self.directory.get_schedule(doctor.id),
                ),
                operation="availability_evaluation",
                timeout=self.store_timeout,
            )
            reason, conflicting_id = self._find_conflict(
                existing, schedule, date, time, mode, exclude_appointment_id
            )
        except EvaluationTimeoutException:
            logger.warning("availability_evaluation_timeout", doctor_id=str(doctor.id))
            reason, conflicting_id = EVALUATION_TIMEOUT, None
        except Exception as e:
            logger.warning(
                "availability_doctor_data_error",
                doctor_id=str(doctor.id),
                error=str(e),
            )
            reason, conflicting_id = DATA_UNAVAILABLE, None

        if reason:
            snapshot.is_available = False
            snapshot.conflict_reason = reason
            snapshot.conflicting_appointment_id = conflicting_id

        return snapshot

    def _find_conflict(
        self,
        existing: list[Appointment],
        schedule: DoctorSchedule | None,
        date: str,
        time: str,
        mode: ConsultationMode,
        exclude_appointment_id: UUID | None,
    ) -> tuple[str | None, UUID | None]:
        booked = [
            appointment
            for appointment in existing
            if appointment.id != exclude_appointment_id
            and normalize_date(appointment.date) == date
        ]
        requested = time_to_minutes(time)

        # Exact slot, regardless of consultation mode
        for appointment in booked:
            if time_to_minutes(appointment.time) == requested:
                return ALREADY_BOOKED, appointment.id

        if schedule is not None:
            reason = check_schedule(schedule, date, time)
            if reason:
                return reason, None

        # Home visits reserve travel time on either side
        for appointment in booked:
            if mode != ConsultationMode.HOME and appointment.consultation_mode != (
                ConsultationMode.HOME
            ):
                continue
            if abs(time_to_minutes(appointment.time) - requested) <= self.home_visit_buffer_minutes:
                return HOME_VISIT_BUFFER, appointment.id

        return None, None
