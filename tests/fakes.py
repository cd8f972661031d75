"""In-memory stand-ins for the stores and the notification dispatcher."""

import asyncio
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from app.repositories.base import DuplicateActiveRecordError
from app.schemas.appointments import Appointment, AppointmentFilters, AppointmentStatus
from app.schemas.doctors import DoctorProfile, DoctorSchedule
from app.schemas.organization_bookings import OrganizationBooking, OrganizationBookingStatus
from app.services.notification_service import NotificationEvent


def _plain(values: dict[str, Any]) -> dict[str, Any]:
    return {key: getattr(value, "value", value) for key, value in values.items()}


class FixedClock:
    """Clinic clock frozen at a settable instant."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class InMemoryAppointmentStore:
    """Appointment store with the same one-active-appointment-per-slot rule."""

    def __init__(self, read_delay: float = 0.0):
        self.items: dict[UUID, Appointment] = {}
        self.read_delay = read_delay
        self.failing_doctors: set[UUID] = set()

    async def _pause(self) -> None:
        # Yield so concurrent callers interleave like they would on real I/O
        await asyncio.sleep(self.read_delay)

    def _check_unique(self, candidate: Appointment) -> None:
        if candidate.doctor_id is None or candidate.status == AppointmentStatus.CANCELLED:
            return
        for other in self.items.values():
            if (
                other.id != candidate.id
                and other.status != AppointmentStatus.CANCELLED
                and other.doctor_id == candidate.doctor_id
                and other.date == candidate.date
                and other.time == candidate.time
            ):
                raise DuplicateActiveRecordError("uq_appointments_doctor_slot_active")

    def add(self, **values: Any) -> Appointment:
        """Insert directly, bypassing the services."""
        now = datetime.now(UTC)
        record = Appointment.model_validate(
            {
                "id": uuid4(),
                "patient_id": uuid4(),
                "patient_name": "Test Patient",
                "patient_email": "patient@example.com",
                "consultation_mode": "virtual",
                "status": "pending",
                "created_at": now,
                "updated_at": now,
                **_plain(values),
            }
        )
        self._check_unique(record)
        self.items[record.id] = record
        return record

    async def get_appointment(self, appointment_id: UUID) -> Appointment | None:
        await self._pause()
        return self.items.get(appointment_id)

    async def get_appointments_by_doctor(
        self,
        doctor_id: UUID,
        date: str | None = None,
        include_cancelled: bool = False,
    ) -> list[Appointment]:
        await self._pause()
        if doctor_id in self.failing_doctors:
            raise OSError("connection reset")
        return [
            item
            for item in self.items.values()
            if item.doctor_id == doctor_id
            and (date is None or item.date == date)
            and (include_cancelled or item.status != AppointmentStatus.CANCELLED)
        ]

    async def list_appointments(
        self, filters: AppointmentFilters
    ) -> tuple[int, list[Appointment]]:
        await self._pause()
        matched = [
            item
            for item in self.items.values()
            if (filters.patient_id is None or item.patient_id == filters.patient_id)
            and (filters.doctor_id is None or item.doctor_id == filters.doctor_id)
            and (filters.status is None or item.status == filters.status)
            and (filters.date is None or item.date == filters.date)
            and (not filters.unassigned_only or item.doctor_id is None)
        ]
        start = (filters.page - 1) * filters.page_size
        return len(matched), matched[start : start + filters.page_size]

    async def create_appointment(self, values: dict[str, Any]) -> Appointment:
        await self._pause()
        return self.add(**values)

    async def update_appointment(
        self,
        appointment_id: UUID,
        patch: dict[str, Any],
        expected: dict[str, Any] | None = None,
    ) -> Appointment | None:
        await self._pause()
        current = self.items.get(appointment_id)
        if current is None:
            return None

        stored = current.model_dump(mode="json")
        for column, value in _plain(expected or {}).items():
            wanted = str(value) if isinstance(value, UUID) else value
            if stored[column] != wanted:
                return None

        updated = Appointment.model_validate({**current.model_dump(), **_plain(patch)})
        self._check_unique(updated)
        self.items[appointment_id] = updated
        return updated


class InMemoryDoctorDirectory:
    """Doctor directory holding profiles and schedules."""

    def __init__(
        self,
        doctors: list[DoctorProfile] | None = None,
        schedules: list[DoctorSchedule] | None = None,
    ):
        self.doctors = {doctor.id: doctor for doctor in doctors or []}
        self.schedules = {schedule.doctor_id: schedule for schedule in schedules or []}
        self.slow_doctors: dict[UUID, float] = {}

    def add_doctor(self, **values: Any) -> DoctorProfile:
        doctor = DoctorProfile.model_validate({"id": uuid4(), "full_name": "Dr. Test", **values})
        self.doctors[doctor.id] = doctor
        return doctor

    def add_schedule(self, doctor_id: UUID, **values: Any) -> DoctorSchedule:
        schedule = DoctorSchedule.model_validate({"doctor_id": doctor_id, **values})
        self.schedules[doctor_id] = schedule
        return schedule

    async def get_approved_doctors(
        self,
        city: str | None = None,
        locality: str | None = None,
    ) -> list[DoctorProfile]:
        return [
            doctor
            for doctor in self.doctors.values()
            if doctor.status == "approved"
            and (city is None or (doctor.city or "").lower() == city.lower())
            and (locality is None or (doctor.locality or "").lower() == locality.lower())
        ]

    async def get_doctor(self, doctor_id: UUID) -> DoctorProfile | None:
        return self.doctors.get(doctor_id)

    async def get_schedule(self, doctor_id: UUID) -> DoctorSchedule | None:
        if doctor_id in self.slow_doctors:
            await asyncio.sleep(self.slow_doctors[doctor_id])
        return self.schedules.get(doctor_id)


class InMemoryOrganizationBookingStore:
    """Organization booking store with the one-active-booking-per-date rule."""

    def __init__(self, write_delay: float = 0.0):
        self.items: dict[UUID, OrganizationBooking] = {}
        self.write_delay = write_delay
        self.failing_writes: set[UUID] = set()

    def _check_unique(self, candidate: OrganizationBooking) -> None:
        if candidate.status == OrganizationBookingStatus.CANCELLED:
            return
        held = candidate.scheduled_date or candidate.preferred_date
        for other in self.items.values():
            if (
                other.id != candidate.id
                and other.status != OrganizationBookingStatus.CANCELLED
                and (other.scheduled_date or other.preferred_date) == held
            ):
                raise DuplicateActiveRecordError("uq_organization_bookings_active_date")

    def add(self, **values: Any) -> OrganizationBooking:
        """Insert directly, bypassing the services and the uniqueness rule."""
        now = datetime.now(UTC)
        record = OrganizationBooking.model_validate(
            {
                "id": uuid4(),
                "organization_name": "Acme Corp",
                "status": "pending",
                "submitted_at": now,
                "updated_at": now,
                **_plain(values),
            }
        )
        self.items[record.id] = record
        return record

    async def get_booking(self, booking_id: UUID) -> OrganizationBooking | None:
        await asyncio.sleep(0)
        return self.items.get(booking_id)

    async def list_bookings(
        self, status: OrganizationBookingStatus | None = None
    ) -> list[OrganizationBooking]:
        await asyncio.sleep(0)
        return [item for item in self.items.values() if status is None or item.status == status]

    async def create_booking(self, values: dict[str, Any]) -> OrganizationBooking:
        await asyncio.sleep(self.write_delay)
        now = datetime.now(UTC)
        record = OrganizationBooking.model_validate(
            {"id": uuid4(), "submitted_at": now, "updated_at": now, **_plain(values)}
        )
        self._check_unique(record)
        self.items[record.id] = record
        return record

    async def update_booking(
        self,
        booking_id: UUID,
        patch: dict[str, Any],
        expected: dict[str, Any] | None = None,
    ) -> OrganizationBooking | None:
        await asyncio.sleep(self.write_delay)
        if booking_id in self.failing_writes:
            raise OSError("connection reset")

        current = self.items.get(booking_id)
        if current is None:
            return None

        stored = current.model_dump(mode="json")
        for column, value in _plain(expected or {}).items():
            if stored[column] != value:
                return None

        updated = OrganizationBooking.model_validate({**current.model_dump(), **_plain(patch)})
        self._check_unique(updated)
        self.items[booking_id] = updated
        return updated


class RecordingDispatcher:
    """Notification dispatcher that records instead of sending."""

    def __init__(self):
        self.sent: list[tuple[NotificationEvent, dict[str, Any]]] = []

    async def notify(self, event: NotificationEvent, payload: dict[str, Any]) -> None:
        self.sent.append((event, payload))

    def events(self) -> list[NotificationEvent]:
        return [event for event, _ in self.sent]
