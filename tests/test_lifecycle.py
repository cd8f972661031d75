"""Tests for booking, status transitions and cancellation."""

from datetime import datetime
from uuid import UUID, uuid4

import pytest

from app.core.exceptions import (
    ForbiddenException,
    InvalidRequestException,
    InvalidTransitionException,
    NotFoundException,
    SlotConflictException,
    TooLateToCancelException,
)
from app.core.security import Actor
from app.schemas.appointments import (
    ActorRole,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentStatus,
    AssignmentType,
)
from app.schemas.doctors import DoctorProfile
from app.services.appointment_service import (
    AppointmentService,
    check_cancellation_window,
    effective_status,
)
from app.services.availability_service import ALREADY_BOOKED
from app.services.notification_service import NotificationEvent
from tests.fakes import FixedClock, InMemoryAppointmentStore, RecordingDispatcher


@pytest.fixture
def patient(patient_id: UUID) -> Actor:
    return Actor(id=str(patient_id), role=ActorRole.PATIENT)


@pytest.fixture
def admin() -> Actor:
    return Actor(id="admin@clinic", role=ActorRole.ADMIN)


@pytest.mark.asyncio
async def test_create_appointment_starts_pending_in_canonical_form(
    appointment_service: AppointmentService,
    dispatcher: RecordingDispatcher,
    patient: Actor,
    sample_appointment_data: dict,
) -> None:
    created = await appointment_service.create_appointment(
        patient, AppointmentCreate(**sample_appointment_data)
    )

    assert created.status == AppointmentStatus.PENDING
    assert created.effective_status == AppointmentStatus.PENDING
    assert created.date == "2025-03-12"
    assert created.time == "10:00"
    assert created.doctor_id is None
    assert str(created.patient_id) == patient.id
    assert dispatcher.events() == [NotificationEvent.APPOINTMENT_CREATED]


@pytest.mark.asyncio
async def test_create_appointment_in_the_past_is_rejected(
    appointment_service: AppointmentService,
    patient: Actor,
    sample_appointment_data: dict,
) -> None:
    data = AppointmentCreate(**{**sample_appointment_data, "date": "10/03/2025", "time": "8:30 AM"})

    with pytest.raises(InvalidRequestException):
        await appointment_service.create_appointment(patient, data)


@pytest.mark.asyncio
async def test_create_with_chosen_doctor_attaches_but_stays_pending(
    appointment_service: AppointmentService,
    patient: Actor,
    doctor: DoctorProfile,
    sample_appointment_data: dict,
) -> None:
    data = AppointmentCreate(**sample_appointment_data, doctor_id=doctor.id)

    created = await appointment_service.create_appointment(patient, data)

    assert created.status == AppointmentStatus.PENDING
    assert created.doctor_id == doctor.id
    assert created.doctor_name == "Dr. Meera Raman"
    assert created.assignment_type == AssignmentType.MANUAL
    assert created.assigned_by == patient.id


@pytest.mark.asyncio
async def test_create_with_busy_chosen_doctor_conflicts(
    appointment_service: AppointmentService,
    appointment_store: InMemoryAppointmentStore,
    patient: Actor,
    doctor: DoctorProfile,
    sample_appointment_data: dict,
) -> None:
    appointment_store.add(doctor_id=doctor.id, date="2025-03-12", time="10:00", status="confirmed")
    data = AppointmentCreate(**sample_appointment_data, doctor_id=doctor.id)

    with pytest.raises(SlotConflictException) as exc_info:
        await appointment_service.create_appointment(patient, data)

    assert exc_info.value.reason == ALREADY_BOOKED
    assert exc_info.value.details["time"] == "10:00"


@pytest.mark.asyncio
async def test_create_with_unapproved_doctor_is_not_found(
    appointment_service: AppointmentService,
    directory,
    patient: Actor,
    sample_appointment_data: dict,
) -> None:
    suspended = directory.add_doctor(full_name="Dr. Suspended", status="suspended")
    data = AppointmentCreate(**sample_appointment_data, doctor_id=suspended.id)

    with pytest.raises(NotFoundException):
        await appointment_service.create_appointment(patient, data)


@pytest.mark.asyncio
async def test_confirm_then_complete(
    appointment_service: AppointmentService,
    appointment_store: InMemoryAppointmentStore,
    doctor: DoctorProfile,
    dispatcher: RecordingDispatcher,
) -> None:
    """The attached doctor can move the appointment through to completion."""
    appointment = appointment_store.add(doctor_id=doctor.id, date="2025-03-12", time="10:00")
    doctor_actor = Actor(id=str(doctor.id), role=ActorRole.DOCTOR)

    confirmed = await appointment_service.confirm(appointment.id, doctor_actor)
    completed = await appointment_service.complete(appointment.id, doctor_actor)

    assert confirmed.status == AppointmentStatus.CONFIRMED
    assert completed.status == AppointmentStatus.COMPLETED
    assert dispatcher.events() == [
        NotificationEvent.APPOINTMENT_CONFIRMED,
        NotificationEvent.APPOINTMENT_COMPLETED,
    ]


@pytest.mark.asyncio
async def test_confirm_without_doctor_is_rejected(
    appointment_service: AppointmentService,
    appointment_store: InMemoryAppointmentStore,
    admin: Actor,
) -> None:
    appointment = appointment_store.add(date="2025-03-12", time="10:00")

    with pytest.raises(InvalidRequestException):
        await appointment_service.confirm(appointment.id, admin)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("stored", "action"),
    [
        ("pending", "complete"),
        ("confirmed", "confirm"),
        ("completed", "cancel"),
        ("cancelled", "confirm"),
        ("cancelled", "complete"),
    ],
)
async def test_disallowed_transitions(
    appointment_service: AppointmentService,
    appointment_store: InMemoryAppointmentStore,
    doctor: DoctorProfile,
    admin: Actor,
    stored: str,
    action: str,
) -> None:
    appointment = appointment_store.add(
        doctor_id=doctor.id, date="2025-03-12", time="10:00", status=stored
    )

    with pytest.raises(InvalidTransitionException) as exc_info:
        await getattr(appointment_service, action)(appointment.id, admin)

    assert exc_info.value.details["current"] == stored
    assert appointment_store.items[appointment.id].status == stored


@pytest.mark.asyncio
async def test_patient_can_cancel_exactly_24_hours_ahead(
    appointment_service: AppointmentService,
    appointment_store: InMemoryAppointmentStore,
    dispatcher: RecordingDispatcher,
    patient: Actor,
) -> None:
    appointment = appointment_store.add(
        patient_id=patient.id, date="2025-03-11", time="09:00", status="confirmed"
    )

    cancelled = await appointment_service.cancel(appointment.id, patient, reason="Recovered")

    assert cancelled.status == AppointmentStatus.CANCELLED
    assert cancelled.cancelled_by == ActorRole.PATIENT
    assert cancelled.cancellation_date is not None
    assert dispatcher.events() == [NotificationEvent.APPOINTMENT_CANCELLED]


@pytest.mark.asyncio
async def test_patient_cannot_cancel_inside_window(
    appointment_service: AppointmentService,
    appointment_store: InMemoryAppointmentStore,
    patient: Actor,
) -> None:
    appointment = appointment_store.add(
        patient_id=patient.id, date="2025-03-11", time="08:59", status="confirmed"
    )

    with pytest.raises(TooLateToCancelException) as exc_info:
        await appointment_service.cancel(appointment.id, patient)

    assert exc_info.value.status_code == 409
    assert exc_info.value.details["deadline"] == "2025-03-10T08:59:00"
    assert appointment_store.items[appointment.id].status == AppointmentStatus.CONFIRMED


@pytest.mark.asyncio
async def test_doctor_may_cancel_inside_window(
    appointment_service: AppointmentService,
    appointment_store: InMemoryAppointmentStore,
    doctor: DoctorProfile,
) -> None:
    appointment = appointment_store.add(
        doctor_id=doctor.id, date="2025-03-10", time="11:00", status="confirmed"
    )

    cancelled = await appointment_service.cancel(
        appointment.id, Actor(id=str(doctor.id), role=ActorRole.DOCTOR)
    )

    assert cancelled.cancelled_by == ActorRole.DOCTOR


def test_cancellation_window_counts_whole_hours(appointment_store: InMemoryAppointmentStore):
    appointment = appointment_store.add(date="2025-03-12", time="09:00")

    check_cancellation_window(appointment, datetime(2025, 3, 10, 9, 0), window_hours=48)
    with pytest.raises(TooLateToCancelException):
        check_cancellation_window(appointment, datetime(2025, 3, 10, 9, 1), window_hours=48)


def test_effective_status(appointment_store: InMemoryAppointmentStore, clock: FixedClock):
    """Past confirmed slots read as completed; past pending ones only on request."""
    confirmed = appointment_store.add(date="2025-03-10", time="08:00", status="confirmed")
    pending = appointment_store.add(date="2025-03-10", time="08:00", status="pending")
    upcoming = appointment_store.add(date="2025-03-10", time="09:30", status="confirmed")
    now = clock()

    assert effective_status(confirmed, now) == AppointmentStatus.COMPLETED
    assert effective_status(pending, now) == AppointmentStatus.PENDING
    assert effective_status(pending, now, include_pending=True) == AppointmentStatus.COMPLETED
    assert effective_status(upcoming, now) == AppointmentStatus.CONFIRMED
    assert confirmed.status == AppointmentStatus.CONFIRMED


def test_effective_status_with_unparseable_slot(appointment_store: InMemoryAppointmentStore):
    legacy = appointment_store.add(date="someday", time="10:00", status="confirmed")

    assert effective_status(legacy, datetime(2025, 3, 10)) == AppointmentStatus.CONFIRMED


@pytest.mark.asyncio
async def test_access_rules(
    appointment_service: AppointmentService,
    appointment_store: InMemoryAppointmentStore,
    doctor: DoctorProfile,
    patient: Actor,
    admin: Actor,
) -> None:
    """Patients see their own appointments, doctors their assigned ones."""
    appointment = appointment_store.add(patient_id=patient.id, date="2025-03-12", time="10:00")
    stranger = Actor(id=str(uuid4()), role=ActorRole.PATIENT)
    other_doctor = Actor(id=str(uuid4()), role=ActorRole.DOCTOR)
    assert admin.is_admin and not patient.is_admin

    assert (await appointment_service.get_appointment(appointment.id, patient)).id == appointment.id
    assert (await appointment_service.get_appointment(appointment.id, admin)).id == appointment.id

    for actor in (stranger, other_doctor):
        with pytest.raises(ForbiddenException):
            await appointment_service.get_appointment(appointment.id, actor)

    with pytest.raises(NotFoundException):
        await appointment_service.get_appointment(uuid4(), admin)


@pytest.mark.asyncio
async def test_list_is_scoped_to_the_caller(
    appointment_service: AppointmentService,
    appointment_store: InMemoryAppointmentStore,
    doctor: DoctorProfile,
    patient: Actor,
    admin: Actor,
) -> None:
    own = appointment_store.add(patient_id=patient.id, date="2025-03-12", time="10:00")
    appointment_store.add(doctor_id=doctor.id, date="2025-03-12", time="11:00")

    mine = await appointment_service.list_appointments(
        patient, AppointmentFilters(patient_id=uuid4())
    )
    assigned = await appointment_service.list_appointments(
        Actor(id=str(doctor.id), role=ActorRole.DOCTOR), AppointmentFilters()
    )
    by_date = await appointment_service.list_appointments(
        admin, AppointmentFilters(date="12/03/2025")
    )

    assert [item.id for item in mine.items] == [own.id]
    assert [item.doctor_id for item in assigned.items] == [doctor.id]
    assert by_date.total == 2
