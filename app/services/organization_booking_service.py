"""Organization bookings: one active booking per date and expiry of past dates."""

from collections.abc import Iterable
from datetime import UTC, date, datetime
from typing import Any
from uuid import UUID

import structlog

from app.core.clock import Clock, clinic_now
from app.core.exceptions import (
    DateAlreadyBookedException,
    InvalidDateFormatException,
    InvalidRequestException,
    InvalidTransitionException,
    NotFoundException,
    UpstreamUnavailableException,
)
from app.core.locks import LockTimeoutError, SlotLockRegistry, booking_date_key
from app.repositories.base import (
    DuplicateActiveRecordError,
    OrganizationBookingStore,
    bounded_read,
    bounded_write,
)
from app.schemas.organization_bookings import (
    CLOSED_BOOKING_STATUSES,
    UNSET_DATE,
    BookedDatesResponse,
    OrganizationBooking,
    OrganizationBookingCreate,
    OrganizationBookingStatus,
    OrganizationBookingUpdate,
    SweepResult,
)
from app.services.notification_service import NotificationDispatcher, NotificationEvent
from app.services.time_normalizer import normalize_date, normalize_time, parse_date

logger = structlog.get_logger(__name__)

SCHEDULED_DATE_EXCEEDED = "Scheduled date exceeded"
PREFERRED_DATE_EXCEEDED = "Preferred date exceeded"

# Topic suffix admin devices subscribe to
ADMIN_RECIPIENT = "admins"


def _is_set(value: str | None) -> bool:
    return bool(value and value.strip() and value.strip() != UNSET_DATE)


def effective_booking_date(booking: OrganizationBooking) -> tuple[str, bool]:
    """
    Date a booking occupies.

    Returns:
        The raw date and whether it is the scheduled date (rather than the
        preferred one)
    """
    if _is_set(booking.scheduled_date):
        return booking.scheduled_date.strip(), True
    return booking.preferred_date, False


def occupied_dates(
    bookings: Iterable[OrganizationBooking],
    exclude_booking_id: UUID | None = None,
) -> dict[str, UUID]:
    """Canonical dates held by non-cancelled bookings, mapped to their holder."""
    dates: dict[str, UUID] = {}
    for booking in bookings:
        if booking.status == OrganizationBookingStatus.CANCELLED:
            continue
        if booking.id == exclude_booking_id:
            continue
        raw, _ = effective_booking_date(booking)
        try:
            dates.setdefault(normalize_date(raw), booking.id)
        except InvalidDateFormatException:
            logger.warning(
                "organization_booking_date_unparseable",
                booking_id=str(booking.id),
                date=raw,
            )
    return dates


def sweep(
    bookings: Iterable[OrganizationBooking],
    today: date,
    stamped_at: datetime,
) -> list[OrganizationBooking]:
    """
    Close every open booking whose effective date is before ``today``.

    The scheduled date wins over the preferred one when it is set. Bookings
    with an unparseable date are logged and left alone.

    Returns:
        Auto-completed copies of the expired bookings
    """
    expired = []
    for booking in bookings:
        if booking.status in CLOSED_BOOKING_STATUSES:
            continue

        raw, is_scheduled = effective_booking_date(booking)
        try:
            effective = parse_date(raw)
        except InvalidDateFormatException:
            logger.warning(
                "organization_booking_sweep_skipped",
                booking_id=str(booking.id),
                date=raw,
            )
            continue

        if effective >= today:
            continue

        expired.append(
            booking.model_copy(
                update={
                    "status": OrganizationBookingStatus.COMPLETED,
                    "auto_completed_at": stamped_at,
                    "auto_completed_reason": (
                        SCHEDULED_DATE_EXCEEDED if is_scheduled else PREFERRED_DATE_EXCEEDED
                    ),
                    "auto_completed_date": effective.isoformat(),
                    "updated_at": stamped_at,
                }
            )
        )

    return expired


class OrganizationBookingService:
    """Service for organization health-camp bookings."""

    def __init__(
        self,
        store: OrganizationBookingStore,
        locks: SlotLockRegistry,
        dispatcher: NotificationDispatcher,
        clock: Clock = clinic_now,
        store_timeout: float = 5.0,
    ):
        """Initialize service with its collaborators."""
        self.store = store
        self.locks = locks
        self.dispatcher = dispatcher
        self.clock = clock
        self.store_timeout = store_timeout

    async def _list(
        self, status: OrganizationBookingStatus | None = None
    ) -> list[OrganizationBooking]:
        return await bounded_read(
            self.store.list_bookings(status),
            operation="list_organization_bookings",
            timeout=self.store_timeout,
        )

    async def get_booking(self, booking_id: UUID) -> OrganizationBooking:
        """
        Get booking by ID.

        Raises:
            NotFoundException: If booking not found
        """
        booking = await bounded_read(
            self.store.get_booking(booking_id),
            operation="get_organization_booking",
            timeout=self.store_timeout,
        )
        if booking is None:
            raise NotFoundException(
                "Organization booking not found", details={"booking_id": str(booking_id)}
            )
        return booking

    async def create_booking(self, data: OrganizationBookingCreate) -> OrganizationBooking:
        """
        Submit a booking for a date no other active booking holds.

        Args:
            data: Booking form data

        Returns:
            Created booking

        Raises:
            InvalidDateFormatException: If the preferred date is malformed
            InvalidTimeFormatException: If the preferred time is malformed
            InvalidRequestException: If the preferred date is in the past
            DateAlreadyBookedException: If the date is taken
        """
        preferred_date = normalize_date(data.preferred_date)
        preferred_time = normalize_time(data.preferred_time) if data.preferred_time else None

        if parse_date(preferred_date) < self.clock().date():
            raise InvalidRequestException(
                "Preferred date must not be in the past",
                details={"preferred_date": preferred_date},
            )

        values: dict[str, Any] = {
            **data.model_dump(exclude={"preferred_date", "preferred_time"}),
            "preferred_date": preferred_date,
            "preferred_time": preferred_time,
            "status": OrganizationBookingStatus.PENDING,
        }

        try:
            async with self.locks.hold(booking_date_key(preferred_date)):
                holder = occupied_dates(await self._list()).get(preferred_date)
                if holder is not None:
                    raise DateAlreadyBookedException(preferred_date, str(holder))

                booking = await bounded_write(
                    self.store.create_booking(values),
                    operation="create_organization_booking",
                    timeout=self.store_timeout,
                )
        except LockTimeoutError:
            raise DateAlreadyBookedException(preferred_date) from None
        except DuplicateActiveRecordError:
            raise DateAlreadyBookedException(preferred_date) from None

        logger.info(
            "organization_booking_created",
            booking_id=str(booking.id),
            preferred_date=preferred_date,
        )

        await self.dispatcher.notify(
            NotificationEvent.ORGANIZATION_BOOKING_CREATED,
            {
                "booking_id": str(booking.id),
                "organization_name": booking.organization_name,
                "preferred_date": booking.preferred_date,
                "recipients": [ADMIN_RECIPIENT],
            },
        )
        return booking

    async def booked_dates(self) -> BookedDatesResponse:
        """Dates held by active bookings, in ascending order."""
        return BookedDatesResponse(dates=sorted(occupied_dates(await self._list())))

    async def list_bookings(
        self, status: OrganizationBookingStatus | None = None
    ) -> list[OrganizationBooking]:
        """List bookings, newest first."""
        return await self._list(status)

    async def update_booking(
        self,
        booking_id: UUID,
        data: OrganizationBookingUpdate,
    ) -> OrganizationBooking:
        """
        Apply an admin change to an open booking.

        A new scheduled date must not collide with another active booking;
        ``"N/A"`` or an empty value clears it.

        Raises:
            NotFoundException: If booking not found
            InvalidTransitionException: If the booking is already closed
            InvalidDateFormatException: If the scheduled date is malformed
            DateAlreadyBookedException: If the new date is taken
        """
        booking = await self.get_booking(booking_id)

        if booking.status in CLOSED_BOOKING_STATUSES:
            raise InvalidTransitionException(
                booking.status.value,
                (data.status or booking.status).value,
                str(booking_id),
            )

        patch: dict[str, Any] = {"updated_at": datetime.now(UTC)}
        if data.status is not None:
            patch["status"] = data.status

        fields = data.model_fields_set
        if "scheduled_date" in fields:
            patch["scheduled_date"] = (
                normalize_date(data.scheduled_date) if _is_set(data.scheduled_date) else None
            )

        # Date the booking will occupy after the change, when it changes at all
        claimed = None
        if "scheduled_date" in patch and patch.get("status") != OrganizationBookingStatus.CANCELLED:
            claimed = patch["scheduled_date"] or normalize_date(booking.preferred_date)

        try:
            if claimed:
                async with self.locks.hold(booking_date_key(claimed)):
                    holder = occupied_dates(await self._list(), exclude_booking_id=booking_id).get(
                        claimed
                    )
                    if holder is not None:
                        raise DateAlreadyBookedException(claimed, str(holder))
                    updated = await self._write_update(booking, patch)
            else:
                updated = await self._write_update(booking, patch)
        except LockTimeoutError:
            raise DateAlreadyBookedException(claimed) from None
        except DuplicateActiveRecordError:
            raise DateAlreadyBookedException(claimed or booking.preferred_date) from None

        logger.info(
            "organization_booking_updated",
            booking_id=str(booking_id),
            status=updated.status.value,
            scheduled_date=updated.scheduled_date,
        )
        return updated

    async def _write_update(
        self,
        booking: OrganizationBooking,
        patch: dict[str, Any],
    ) -> OrganizationBooking:
        updated = await bounded_write(
            self.store.update_booking(booking.id, patch, expected={"status": booking.status}),
            operation="update_organization_booking",
            timeout=self.store_timeout,
        )
        if updated is None:
            current = await self.get_booking(booking.id)
            raise InvalidTransitionException(
                current.status.value,
                patch.get("status", booking.status).value,
                str(booking.id),
            )
        return updated

    async def run_sweep(self) -> SweepResult:
        """
        Persist the expiry sweep for all open bookings.

        A booking whose status changed since it was read, or whose write
        fails, is left as is and picked up by a later sweep.
        """
        bookings = await self._list()
        previous_status = {booking.id: booking.status for booking in bookings}
        expired = sweep(bookings, self.clock().date(), datetime.now(UTC))

        completed: list[UUID] = []
        for booking in expired:
            try:
                updated = await bounded_write(
                    self.store.update_booking(
                        booking.id,
                        {
                            "status": booking.status,
                            "auto_completed_at": booking.auto_completed_at,
                            "auto_completed_reason": booking.auto_completed_reason,
                            "auto_completed_date": booking.auto_completed_date,
                            "updated_at": booking.updated_at,
                        },
                        expected={"status": previous_status[booking.id]},
                    ),
                    operation="auto_complete_organization_booking",
                    timeout=self.store_timeout,
                )
            except UpstreamUnavailableException as e:
                logger.warning(
                    "organization_booking_auto_complete_failed",
                    booking_id=str(booking.id),
                    error=e.message,
                )
                continue

            if updated is None:
                continue

            completed.append(updated.id)
            logger.info(
                "organization_booking_auto_completed",
                booking_id=str(updated.id),
                reason=updated.auto_completed_reason,
                date=updated.auto_completed_date,
            )
            await self.dispatcher.notify(
                NotificationEvent.ORGANIZATION_BOOKING_AUTO_COMPLETED,
                {
                    "booking_id": str(updated.id),
                    "organization_name": updated.organization_name,
                    "auto_completed_reason": updated.auto_completed_reason,
                    "recipients": [ADMIN_RECIPIENT],
                },
            )

        return SweepResult(
            checked=len(bookings),
            auto_completed=len(completed),
            skipped=len(expired) - len(completed),
            booking_ids=completed,
        )
