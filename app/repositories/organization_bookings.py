"""PostgreSQL organization booking store."""

from typing import Any
from uuid import UUID

from sqlalchemy import and_, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.organization_bookings import organization_bookings
from app.repositories.appointments import is_unique_violation
from app.repositories.base import DuplicateActiveRecordError
from app.schemas.organization_bookings import OrganizationBooking, OrganizationBookingStatus


class SqlOrganizationBookingStore:
    """Organization booking store backed by the ``organization_bookings`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize store with a session factory."""
        self.session_factory = session_factory

    async def get_booking(self, booking_id: UUID) -> OrganizationBooking | None:
        """Get booking by ID."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(organization_bookings).where(organization_bookings.c.id == booking_id)
            )
            row = result.fetchone()

        return OrganizationBooking.model_validate(dict(row._mapping)) if row else None

    async def list_bookings(
        self,
        status: OrganizationBookingStatus | None = None,
    ) -> list[OrganizationBooking]:
        """List bookings, newest first."""
        stmt = select(organization_bookings).order_by(organization_bookings.c.submitted_at.desc())
        if status:
            stmt = stmt.where(organization_bookings.c.status == status.value)

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            rows = result.fetchall()

        return [OrganizationBooking.model_validate(dict(row._mapping)) for row in rows]

    async def create_booking(self, values: dict[str, Any]) -> OrganizationBooking:
        """Insert a new booking."""
        values = {key: getattr(value, "value", value) for key, value in values.items()}

        async with self.session_factory() as session:
            try:
                result = await session.execute(
                    insert(organization_bookings).values(**values).returning(organization_bookings)
                )
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                if is_unique_violation(e):
                    raise DuplicateActiveRecordError(str(e.orig)) from e
                raise

            row = result.fetchone()

        return OrganizationBooking.model_validate(dict(row._mapping))

    async def update_booking(
        self,
        booking_id: UUID,
        patch: dict[str, Any],
        expected: dict[str, Any] | None = None,
    ) -> OrganizationBooking | None:
        """Apply a single-row patch, optionally guarded by expected column values."""
        conditions = [organization_bookings.c.id == booking_id]
        for column, value in (expected or {}).items():
            conditions.append(organization_bookings.c[column] == getattr(value, "value", value))

        values = {key: getattr(value, "value", value) for key, value in patch.items()}

        async with self.session_factory() as session:
            try:
                result = await session.execute(
                    update(organization_bookings)
                    .where(and_(*conditions))
                    .values(**values)
                    .returning(organization_bookings)
                )
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                if is_unique_violation(e):
                    raise DuplicateActiveRecordError(str(e.orig)) from e
                raise

            row = result.fetchone()

        return OrganizationBooking.model_validate(dict(row._mapping)) if row else None
