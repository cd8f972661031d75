"""Appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Index,
    MetaData,
    String,
    Table,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID, VARCHAR

metadata = MetaData()

appointments = Table(
    "appointments",
    metadata,
    Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    # Requester (immutable after creation)
    Column("patient_id", UUID(as_uuid=True), nullable=False, index=True),
    Column("patient_name", Text, nullable=False),
    Column("patient_email", Text, nullable=False),
    Column("patient_city", VARCHAR(100), nullable=True),
    Column("patient_locality", VARCHAR(100), nullable=True),
    # Assignment (written together)
    Column("doctor_id", UUID(as_uuid=True), nullable=True, index=True),
    Column("doctor_name", Text, nullable=True),
    Column("specialization", Text, nullable=True),
    Column("assignment_type", String(10), nullable=True),
    Column("assigned_by", Text, nullable=True),
    Column("assigned_at", TIMESTAMP(timezone=True), nullable=True),
    # Reassignment audit
    Column("previous_doctor_id", UUID(as_uuid=True), nullable=True),
    Column("previous_doctor_name", Text, nullable=True),
    Column("reassignment_reason", Text, nullable=True),
    Column("reassigned_by", Text, nullable=True),
    Column("reassigned_at", TIMESTAMP(timezone=True), nullable=True),
    # Slot, canonical YYYY-MM-DD and HH:MM
    Column("consultation_mode", String(10), nullable=False),
    Column("date", VARCHAR(10), nullable=False),
    Column("time", VARCHAR(5), nullable=False),
    Column("symptoms", Text, nullable=True),
    # Status management
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("cancellation_date", TIMESTAMP(timezone=True), nullable=True),
    Column("cancelled_by", String(20), nullable=True),
    # Audit fields
    Column("created_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    # Constraints
    CheckConstraint(
        "status IN ('pending', 'confirmed', 'completed', 'cancelled')",
        name="appointments_status_check",
    ),
    CheckConstraint(
        "consultation_mode IN ('virtual', 'home', 'clinic')",
        name="appointments_consultation_mode_check",
    ),
    CheckConstraint(
        "assignment_type IS NULL OR assignment_type IN ('auto', 'manual')",
        name="appointments_assignment_type_check",
    ),
    # One active appointment per doctor slot; backstop for the doctor-day lock
    Index(
        "uq_appointments_doctor_slot_active",
        "doctor_id",
        "date",
        "time",
        unique=True,
        postgresql_where=text("status <> 'cancelled' AND doctor_id IS NOT NULL"),
    ),
    Index("idx_appointments_status", "status"),
)
