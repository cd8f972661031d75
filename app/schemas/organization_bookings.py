"""Organization booking schemas."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class OrganizationBookingStatus(str, Enum):
    """Organization booking status enumeration."""

    PENDING = "pending"
    CONTACTED = "contacted"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


CLOSED_BOOKING_STATUSES = frozenset(
    {OrganizationBookingStatus.COMPLETED, OrganizationBookingStatus.CANCELLED}
)

# Placeholder the admin portal writes when no scheduled date was set
UNSET_DATE = "N/A"


class OrganizationBookingCreate(BaseModel):
    """Schema for the organization booking form."""

    organization_name: str = Field(..., min_length=1, max_length=300)
    organization_type: str | None = Field(None, max_length=100)
    contact_person_name: str | None = Field(None, max_length=200)
    designation: str | None = Field(None, max_length=200)
    contact_phone: str | None = Field(None, max_length=20)
    contact_email: EmailStr | None = None
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=100)
    number_of_beneficiaries: int | None = Field(None, ge=1)
    requirement: str | None = Field(None, max_length=2000)
    preferred_date: str = Field(..., min_length=1, max_length=20)
    preferred_time: str | None = Field(None, max_length=20)


class OrganizationBookingUpdate(BaseModel):
    """Admin changes to a booking."""

    status: OrganizationBookingStatus | None = None
    scheduled_date: str | None = Field(None, max_length=20)


class OrganizationBooking(BaseModel):
    """Stored organization booking."""

    id: UUID
    organization_name: str
    organization_type: str | None = None
    contact_person_name: str | None = None
    designation: str | None = None
    contact_phone: str | None = None
    contact_email: str | None = None
    city: str | None = None
    state: str | None = None
    number_of_beneficiaries: int | None = None
    requirement: str | None = None
    preferred_date: str
    preferred_time: str | None = None
    scheduled_date: str | None = None
    status: OrganizationBookingStatus
    auto_completed_at: datetime | None = None
    auto_completed_reason: str | None = None
    auto_completed_date: str | None = None
    submitted_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BookedDatesResponse(BaseModel):
    """Dates the booking form must not offer."""

    dates: list[str]


class SweepResult(BaseModel):
    """Outcome of one expiry sweep."""

    checked: int
    auto_completed: int
    skipped: int
    booking_ids: list[UUID]
