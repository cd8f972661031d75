"""Appointment schemas for request/response validation."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ConsultationMode(str, Enum):
    """How the consultation takes place."""

    VIRTUAL = "virtual"
    HOME = "home"
    CLINIC = "clinic"


class AssignmentType(str, Enum):
    """How the doctor was attached."""

    AUTO = "auto"
    MANUAL = "manual"


class ActorRole(str, Enum):
    """Role of the caller performing an action."""

    PATIENT = "patient"
    DOCTOR = "doctor"
    ADMIN = "admin"


TERMINAL_STATUSES = frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED})


class AppointmentCreate(BaseModel):
    """Schema for a patient booking request.

    ``date`` and ``time`` are accepted in any supported format and stored in
    canonical form.
    """

    patient_name: str = Field(..., min_length=1, max_length=200)
    patient_email: EmailStr
    consultation_mode: ConsultationMode
    date: str = Field(..., min_length=1, max_length=20)
    time: str = Field(..., min_length=1, max_length=20)
    symptoms: str | None = Field(None, max_length=2000)
    patient_city: str | None = Field(None, max_length=100)
    patient_locality: str | None = Field(None, max_length=100)
    doctor_id: UUID | None = None


class Appointment(BaseModel):
    """Stored appointment record."""

    id: UUID
    patient_id: UUID
    patient_name: str
    patient_email: str
    patient_city: str | None = None
    patient_locality: str | None = None
    doctor_id: UUID | None = None
    doctor_name: str | None = None
    specialization: str | None = None
    assignment_type: AssignmentType | None = None
    assigned_by: str | None = None
    assigned_at: datetime | None = None
    previous_doctor_id: UUID | None = None
    previous_doctor_name: str | None = None
    reassignment_reason: str | None = None
    reassigned_by: str | None = None
    reassigned_at: datetime | None = None
    consultation_mode: ConsultationMode
    date: str
    time: str
    symptoms: str | None = None
    status: AppointmentStatus
    cancellation_date: datetime | None = None
    cancelled_by: ActorRole | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AppointmentResponse(Appointment):
    """Appointment with both the stored and the wall-clock effective status."""

    effective_status: AppointmentStatus


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    page: int
    page_size: int
    items: list[AppointmentResponse]


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    patient_id: UUID | None = None
    doctor_id: UUID | None = None
    status: AppointmentStatus | None = None
    date: str | None = None
    unassigned_only: bool = False
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class CancelRequest(BaseModel):
    """Optional context for a cancellation."""

    reason: str | None = Field(None, max_length=500)


class ResolveRequest(BaseModel):
    """Assign a specific doctor to an appointment."""

    doctor_id: UUID


class ReassignRequest(BaseModel):
    """Move an appointment to a different doctor."""

    doctor_id: UUID
    reason: str | None = Field(None, max_length=500)


class BatchAssignmentItem(BaseModel):
    """Outcome of auto-assigning one pending appointment."""

    appointment_id: UUID
    success: bool
    message: str
    doctor_id: UUID | None = None


class BatchAssignmentResult(BaseModel):
    """Outcome of auto-assigning all pending appointments."""

    total: int
    successful: int
    failed: int
    details: list[BatchAssignmentItem]
