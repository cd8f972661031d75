"""Doctor directory and availability schemas."""

from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.appointments import ConsultationMode

# ============================================================================
# Doctor Directory Schemas
# ============================================================================


class DoctorProfile(BaseModel):
    """Approved doctor as seen by the scheduling core."""

    id: UUID
    full_name: str | None = None
    email: str | None = None
    specialization: str = "General"
    status: str = "approved"
    city: str | None = None
    locality: str | None = None
    state: str | None = None
    pincode: str | None = None

    model_config = {"from_attributes": True}


class DoctorSchedule(BaseModel):
    """Declared weekly working hours of a doctor."""

    doctor_id: UUID
    days: list[str] = Field(default_factory=list)
    start_time: str
    end_time: str
    break_start_time: str | None = None
    break_end_time: str | None = None
    slot_duration: int = Field(30, ge=5, le=240)
    blocked_dates: list[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class LocationFilter(BaseModel):
    """Optional location filter for the doctor directory."""

    city: str | None = None
    locality: str | None = None


# ============================================================================
# Availability Schemas
# ============================================================================


class DoctorAvailability(BaseModel):
    """Per-doctor availability for one slot; computed fresh on every call."""

    doctor_id: UUID
    is_available: bool
    conflict_reason: str | None = None
    doctor_name: str | None = None
    specialization: str | None = None
    city: str | None = None
    locality: str | None = None
    conflicting_appointment_id: UUID | None = None


class AvailabilityResponse(BaseModel):
    """Availability of a candidate pool for one slot."""

    date: str
    time: str
    mode: ConsultationMode
    total_doctors: int
    available_count: int
    unavailable_count: int
    doctors: list[DoctorAvailability]
