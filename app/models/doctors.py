"""Doctor directory and schedule tables using SQLAlchemy Core."""

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import UUID

metadata = MetaData()

doctors = Table(
    "doctors",
    metadata,
    Column("id", UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()")),
    Column("full_name", Text, nullable=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("specialization", String(200), nullable=False, server_default="General", index=True),
    # Only approved doctors are assignment candidates
    Column("status", String(20), nullable=False, server_default="pending", index=True),
    # Practice location
    Column("city", String(100), index=True),
    Column("locality", String(100)),
    Column("state", String(100)),
    Column("pincode", String(10)),
    # Metadata
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=text("NOW()")),
)

doctor_schedules = Table(
    "doctor_schedules",
    metadata,
    Column("id", UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()")),
    Column(
        "doctor_id",
        UUID(as_uuid=True),
        ForeignKey("doctors.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    ),
    # Weekday names, e.g. ["monday", "wednesday"]
    Column("days", JSON, nullable=False),
    Column("start_time", String(5), nullable=False),
    Column("end_time", String(5), nullable=False),
    Column("break_start_time", String(5)),
    Column("break_end_time", String(5)),
    Column("slot_duration", Integer, nullable=False, server_default=text("30")),
    # Ad-hoc days off, canonical YYYY-MM-DD
    Column("blocked_dates", JSON, nullable=False, server_default=text("'[]'")),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=text("NOW()")),
)
