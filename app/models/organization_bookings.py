"""Organization (group) bookings table using SQLAlchemy Core."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID, VARCHAR

metadata = MetaData()

organization_bookings = Table(
    "organization_bookings",
    metadata,
    Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    # Organization and contact
    Column("organization_name", Text, nullable=False),
    Column("organization_type", String(100), nullable=True),
    Column("contact_person_name", Text, nullable=True),
    Column("designation", Text, nullable=True),
    Column("contact_phone", VARCHAR(20), nullable=True),
    Column("contact_email", String(255), nullable=True),
    Column("city", String(100), nullable=True),
    Column("state", String(100), nullable=True),
    Column("number_of_beneficiaries", Integer, nullable=True),
    Column("requirement", Text, nullable=True),
    # Dates, canonical YYYY-MM-DD
    Column("preferred_date", VARCHAR(10), nullable=False),
    Column("preferred_time", VARCHAR(5), nullable=True),
    Column("scheduled_date", VARCHAR(10), nullable=True),
    Column("status", String(20), nullable=False, server_default="pending"),
    # Set only by the expiry sweep
    Column("auto_completed_at", TIMESTAMP(timezone=True), nullable=True),
    Column("auto_completed_reason", Text, nullable=True),
    Column("auto_completed_date", VARCHAR(10), nullable=True),
    # Audit
    Column("submitted_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    CheckConstraint(
        "status IN ('pending', 'contacted', 'scheduled', 'completed', 'cancelled')",
        name="organization_bookings_status_check",
    ),
)

# One active booking per effective date; backstop for the date lock
Index(
    "uq_organization_bookings_active_date",
    func.coalesce(organization_bookings.c.scheduled_date, organization_bookings.c.preferred_date),
    unique=True,
    postgresql_where=organization_bookings.c.status != "cancelled",
)
