"""Appointment endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.core.clock import Clock
from app.dependencies import (
    AdminActor,
    CurrentActor,
    PatientActor,
    StaffActor,
    get_appointment_service,
    get_assignment_service,
    get_clock,
)
from app.schemas.appointments import (
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    BatchAssignmentResult,
    CancelRequest,
    ReassignRequest,
    ResolveRequest,
)
from app.schemas.doctors import AvailabilityResponse
from app.services.appointment_service import AppointmentService, to_response
from app.services.assignment_service import AssignmentService

router = APIRouter()

Appointments = Annotated[AppointmentService, Depends(get_appointment_service)]
Assignments = Annotated[AssignmentService, Depends(get_assignment_service)]
WallClock = Annotated[Clock, Depends(get_clock)]


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Book an appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    actor: PatientActor,
    service: Appointments,
) -> AppointmentResponse:
    """
    Book a new appointment for the authenticated patient.

    Dates may be sent as ``YYYY-MM-DD`` or ``DD/MM/YYYY`` and times as
    ``HH:MM`` or ``h:MM AM/PM``. The appointment starts pending.
    """
    return await service.create_appointment(actor, data)


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments",
)
async def list_appointments(
    actor: CurrentActor,
    service: Appointments,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    patient_id: UUID | None = Query(None),
    doctor_id: UUID | None = Query(None),
    date: str | None = Query(None),
    unassigned_only: bool = Query(False),
    include_pending: bool = Query(False, description="Show past pending appointments as completed"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List appointments visible to the caller with filtering.

    Patients only see their own appointments and doctors the ones assigned
    to them.
    """
    filters = AppointmentFilters(
        patient_id=patient_id,
        doctor_id=doctor_id,
        status=status_filter,
        date=date,
        unassigned_only=unassigned_only,
        page=page,
        page_size=page_size,
    )
    return await service.list_appointments(actor, filters, include_pending)


@router.post(
    "/assign-pending",
    response_model=BatchAssignmentResult,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Auto-assign all pending appointments",
)
async def assign_pending_appointments(
    actor: AdminActor,
    assignments: Assignments,
) -> BatchAssignmentResult:
    """Auto-assign every pending appointment without a doctor (admin only)."""
    return await assignments.assign_all_pending(actor)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    service: Appointments,
    include_pending: bool = Query(False),
) -> AppointmentResponse:
    """
    Get a specific appointment by ID.

    Raises:
        NotFoundException: If appointment not found
        ForbiddenException: If the caller doesn't have access
    """
    return await service.get_appointment(appointment_id, actor, include_pending)


@router.get(
    "/{appointment_id}/availability",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Doctor availability for an appointment",
)
async def get_appointment_availability(
    appointment_id: UUID,
    actor: AdminActor,
    service: Appointments,
    assignments: Assignments,
    date: str | None = Query(None),
    time: str | None = Query(None),
    mode: str | None = Query(None),
) -> AvailabilityResponse:
    """
    Availability of every approved doctor for an appointment's slot.

    ``date``, ``time`` and ``mode`` default to the appointment's own; the
    appointment itself never counts as a conflict.
    """
    appointment = await service.load(appointment_id)
    return await assignments.candidate_availability(
        date or appointment.date,
        time or appointment.time,
        mode or appointment.consultation_mode.value,
        city=appointment.patient_city,
        locality=appointment.patient_locality,
        exclude_appointment_id=appointment.id,
    )


@router.post(
    "/{appointment_id}/resolve",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Assign a doctor",
)
async def resolve_appointment(
    appointment_id: UUID,
    data: ResolveRequest,
    actor: AdminActor,
    assignments: Assignments,
    clock: WallClock,
) -> AppointmentResponse:
    """
    Assign a specific doctor and confirm the appointment (admin only).

    Raises:
        SlotConflictException: If the doctor is not free at the slot
        AlreadyAssignedException: If the appointment is already confirmed
    """
    appointment = await assignments.resolve(appointment_id, data.doctor_id, actor)
    return to_response(appointment, clock())


@router.post(
    "/{appointment_id}/auto-assign",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Auto-assign the nearest available doctor",
)
async def auto_assign_appointment(
    appointment_id: UUID,
    actor: AdminActor,
    assignments: Assignments,
    clock: WallClock,
) -> AppointmentResponse:
    """Assign the best-ranked available doctor (admin only)."""
    appointment = await assignments.auto_assign(appointment_id, actor)
    return to_response(appointment, clock())


@router.post(
    "/{appointment_id}/reassign",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Reassign to another doctor",
)
async def reassign_appointment(
    appointment_id: UUID,
    data: ReassignRequest,
    actor: AdminActor,
    assignments: Assignments,
    clock: WallClock,
) -> AppointmentResponse:
    """Move an open appointment to a different doctor (admin only)."""
    appointment = await assignments.reassign(appointment_id, data.doctor_id, actor, data.reason)
    return to_response(appointment, clock())


@router.post(
    "/{appointment_id}/confirm",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Confirm appointment",
)
async def confirm_appointment(
    appointment_id: UUID,
    actor: StaffActor,
    service: Appointments,
) -> AppointmentResponse:
    """Confirm a pending appointment that already has a doctor."""
    return await service.confirm(appointment_id, actor)


@router.post(
    "/{appointment_id}/complete",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Complete appointment",
)
async def complete_appointment(
    appointment_id: UUID,
    actor: StaffActor,
    service: Appointments,
) -> AppointmentResponse:
    """Mark a confirmed appointment as completed."""
    return await service.complete(appointment_id, actor)


@router.post(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    service: Appointments,
    data: CancelRequest | None = None,
) -> AppointmentResponse:
    """
    Cancel a pending or confirmed appointment.

    Patients must cancel at least 24 hours before the slot.

    Raises:
        TooLateToCancelException: If a patient cancels inside the window
        InvalidTransitionException: If the appointment is already closed
    """
    return await service.cancel(appointment_id, actor, data.reason if data else None)
