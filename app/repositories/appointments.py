"""PostgreSQL appointment store."""

from typing import Any
from uuid import UUID

from sqlalchemy import and_, func, insert, select, true, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.appointments import appointments
from app.repositories.base import DuplicateActiveRecordError
from app.schemas.appointments import Appointment, AppointmentFilters, AppointmentStatus


def _enum_values(values: dict[str, Any]) -> dict[str, Any]:
    """Store enum members by value."""
    return {key: getattr(value, "value", value) for key, value in values.items()}


def is_unique_violation(error: IntegrityError) -> bool:
    """Tell unique-index violations apart from other integrity errors."""
    return "uq_" in str(error.orig) or "duplicate key" in str(error.orig)


class SqlAppointmentStore:
    """Appointment store backed by the ``appointments`` table.

    Every call opens its own short-lived session so that concurrent reads
    from the availability evaluator never share a connection.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize store with a session factory."""
        self.session_factory = session_factory

    async def get_appointment(self, appointment_id: UUID) -> Appointment | None:
        """Get appointment by ID."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(appointments).where(appointments.c.id == appointment_id)
            )
            row = result.fetchone()

        return Appointment.model_validate(dict(row._mapping)) if row else None

    async def get_appointments_by_doctor(
        self,
        doctor_id: UUID,
        date: str | None = None,
        include_cancelled: bool = False,
    ) -> list[Appointment]:
        """Get a doctor's appointments, optionally limited to one date."""
        conditions = [appointments.c.doctor_id == doctor_id]

        if date:
            conditions.append(appointments.c.date == date)

        if not include_cancelled:
            conditions.append(appointments.c.status != AppointmentStatus.CANCELLED.value)

        async with self.session_factory() as session:
            result = await session.execute(
                select(appointments)
                .where(and_(*conditions))
                .order_by(appointments.c.date, appointments.c.time)
            )
            rows = result.fetchall()

        return [Appointment.model_validate(dict(row._mapping)) for row in rows]

    async def list_appointments(
        self,
        filters: AppointmentFilters,
    ) -> tuple[int, list[Appointment]]:
        """List appointments with filtering and pagination."""
        conditions = []

        if filters.patient_id:
            conditions.append(appointments.c.patient_id == filters.patient_id)

        if filters.doctor_id:
            conditions.append(appointments.c.doctor_id == filters.doctor_id)

        if filters.status:
            conditions.append(appointments.c.status == filters.status.value)

        if filters.date:
            conditions.append(appointments.c.date == filters.date)

        if filters.unassigned_only:
            conditions.append(appointments.c.doctor_id.is_(None))

        where = and_(true(), *conditions)
        offset = (filters.page - 1) * filters.page_size

        async with self.session_factory() as session:
            total_result = await session.execute(
                select(func.count()).select_from(appointments).where(where)
            )
            total = total_result.scalar() or 0

            result = await session.execute(
                select(appointments)
                .where(where)
                .order_by(appointments.c.date.desc(), appointments.c.time.desc())
                .limit(filters.page_size)
                .offset(offset)
            )
            rows = result.fetchall()

        return total, [Appointment.model_validate(dict(row._mapping)) for row in rows]

    async def create_appointment(self, values: dict[str, Any]) -> Appointment:
        """Insert a new appointment."""
        async with self.session_factory() as session:
            try:
                result = await session.execute(
                    insert(appointments).values(**_enum_values(values)).returning(appointments)
                )
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                if is_unique_violation(e):
                    raise DuplicateActiveRecordError(str(e.orig)) from e
                raise

            row = result.fetchone()

        return Appointment.model_validate(dict(row._mapping))

    async def update_appointment(
        self,
        appointment_id: UUID,
        patch: dict[str, Any],
        expected: dict[str, Any] | None = None,
    ) -> Appointment | None:
        """
        Apply a single-row patch atomically.

        Args:
            appointment_id: Appointment ID
            patch: Column values to write
            expected: Column values the row must still hold (compare-and-set)

        Returns:
            Updated appointment, or None if no row matched
        """
        conditions = [appointments.c.id == appointment_id]
        for column, value in _enum_values(expected or {}).items():
            if value is None:
                conditions.append(appointments.c[column].is_(None))
            else:
                conditions.append(appointments.c[column] == value)

        async with self.session_factory() as session:
            try:
                result = await session.execute(
                    update(appointments)
                    .where(and_(*conditions))
                    .values(**_enum_values(patch))
                    .returning(appointments)
                )
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                if is_unique_violation(e):
                    raise DuplicateActiveRecordError(str(e.orig)) from e
                raise

            row = result.fetchone()

        return Appointment.model_validate(dict(row._mapping)) if row else None
