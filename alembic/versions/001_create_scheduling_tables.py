"""Create scheduling tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Enable pgcrypto extension
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    # Doctor directory
    op.create_table(
        "doctors",
        sa.Column(
            "id", postgresql.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False
        ),
        sa.Column("full_name", sa.Text(), nullable=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("specialization", sa.String(200), server_default="General", nullable=False),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("locality", sa.String(100), nullable=True),
        sa.Column("state", sa.String(100), nullable=True),
        sa.Column("pincode", sa.String(10), nullable=True),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_doctors_specialization", "doctors", ["specialization"])
    op.create_index("ix_doctors_status", "doctors", ["status"])
    op.create_index("ix_doctors_city", "doctors", ["city"])

    op.create_table(
        "doctor_schedules",
        sa.Column(
            "id", postgresql.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False
        ),
        sa.Column("doctor_id", postgresql.UUID(), nullable=False),
        sa.Column("days", sa.JSON(), nullable=False),
        sa.Column("start_time", sa.String(5), nullable=False),
        sa.Column("end_time", sa.String(5), nullable=False),
        sa.Column("break_start_time", sa.String(5), nullable=True),
        sa.Column("break_end_time", sa.String(5), nullable=True),
        sa.Column("slot_duration", sa.Integer(), server_default=sa.text("30"), nullable=False),
        sa.Column("blocked_dates", sa.JSON(), server_default=sa.text("'[]'"), nullable=False),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["doctor_id"], ["doctors.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("doctor_id"),
    )

    # Appointments
    op.create_table(
        "appointments",
        sa.Column(
            "id", postgresql.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False
        ),
        sa.Column("patient_id", postgresql.UUID(), nullable=False),
        sa.Column("patient_name", sa.Text(), nullable=False),
        sa.Column("patient_email", sa.Text(), nullable=False),
        sa.Column("patient_city", sa.VARCHAR(100), nullable=True),
        sa.Column("patient_locality", sa.VARCHAR(100), nullable=True),
        sa.Column("doctor_id", postgresql.UUID(), nullable=True),
        sa.Column("doctor_name", sa.Text(), nullable=True),
        sa.Column("specialization", sa.Text(), nullable=True),
        sa.Column("assignment_type", sa.String(10), nullable=True),
        sa.Column("assigned_by", sa.Text(), nullable=True),
        sa.Column("assigned_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("previous_doctor_id", postgresql.UUID(), nullable=True),
        sa.Column("previous_doctor_name", sa.Text(), nullable=True),
        sa.Column("reassignment_reason", sa.Text(), nullable=True),
        sa.Column("reassigned_by", sa.Text(), nullable=True),
        sa.Column("reassigned_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("consultation_mode", sa.String(10), nullable=False),
        sa.Column("date", sa.VARCHAR(10), nullable=False),
        sa.Column("time", sa.VARCHAR(5), nullable=False),
        sa.Column("symptoms", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        sa.Column("cancellation_date", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.String(20), nullable=True),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'completed', 'cancelled')",
            name="appointments_status_check",
        ),
        sa.CheckConstraint(
            "consultation_mode IN ('virtual', 'home', 'clinic')",
            name="appointments_consultation_mode_check",
        ),
        sa.CheckConstraint(
            "assignment_type IS NULL OR assignment_type IN ('auto', 'manual')",
            name="appointments_assignment_type_check",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_appointments_patient_id", "appointments", ["patient_id"])
    op.create_index("ix_appointments_doctor_id", "appointments", ["doctor_id"])
    op.create_index("idx_appointments_status", "appointments", ["status"])
    op.create_index(
        "uq_appointments_doctor_slot_active",
        "appointments",
        ["doctor_id", "date", "time"],
        unique=True,
        postgresql_where=sa.text("status <> 'cancelled' AND doctor_id IS NOT NULL"),
    )

    # Organization bookings
    op.create_table(
        "organization_bookings",
        sa.Column(
            "id", postgresql.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False
        ),
        sa.Column("organization_name", sa.Text(), nullable=False),
        sa.Column("organization_type", sa.String(100), nullable=True),
        sa.Column("contact_person_name", sa.Text(), nullable=True),
        sa.Column("designation", sa.Text(), nullable=True),
        sa.Column("contact_phone", sa.VARCHAR(20), nullable=True),
        sa.Column("contact_email", sa.String(255), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("state", sa.String(100), nullable=True),
        sa.Column("number_of_beneficiaries", sa.Integer(), nullable=True),
        sa.Column("requirement", sa.Text(), nullable=True),
        sa.Column("preferred_date", sa.VARCHAR(10), nullable=False),
        sa.Column("preferred_time", sa.VARCHAR(5), nullable=True),
        sa.Column("scheduled_date", sa.VARCHAR(10), nullable=True),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        sa.Column("auto_completed_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("auto_completed_reason", sa.Text(), nullable=True),
        sa.Column("auto_completed_date", sa.VARCHAR(10), nullable=True),
        sa.Column(
            "submitted_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'contacted', 'scheduled', 'completed', 'cancelled')",
            name="organization_bookings_status_check",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.execute(
        "CREATE UNIQUE INDEX uq_organization_bookings_active_date "
        "ON organization_bookings (COALESCE(scheduled_date, preferred_date)) "
        "WHERE status <> 'cancelled'"
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.execute("DROP INDEX IF EXISTS uq_organization_bookings_active_date")
    op.drop_table("organization_bookings")

    op.drop_index("uq_appointments_doctor_slot_active", table_name="appointments")
    op.drop_index("idx_appointments_status", table_name="appointments")
    op.drop_index("ix_appointments_doctor_id", table_name="appointments")
    op.drop_index("ix_appointments_patient_id", table_name="appointments")
    op.drop_table("appointments")

    op.drop_table("doctor_schedules")
    op.drop_index("ix_doctors_city", table_name="doctors")
    op.drop_index("ix_doctors_status", table_name="doctors")
    op.drop_index("ix_doctors_specialization", table_name="doctors")
    op.drop_table("doctors")
