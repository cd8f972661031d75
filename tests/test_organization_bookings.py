"""Tests for organization bookings, the expiry sweep and the sweeper."""

import asyncio
from datetime import UTC, date, datetime

import pytest

from app.core.exceptions import (
    DateAlreadyBookedException,
    InvalidRequestException,
    InvalidTransitionException,
)
from app.schemas.organization_bookings import (
    OrganizationBookingCreate,
    OrganizationBookingStatus,
    OrganizationBookingUpdate,
)
from app.services.booking_sweeper import BookingSweeper
from app.services.notification_service import NotificationEvent
from app.services.organization_booking_service import (
    PREFERRED_DATE_EXCEEDED,
    SCHEDULED_DATE_EXCEEDED,
    OrganizationBookingService,
    occupied_dates,
    sweep,
)
from tests.fakes import InMemoryOrganizationBookingStore, RecordingDispatcher

STAMP = datetime(2025, 1, 5, 6, 30, tzinfo=UTC)


def _form(preferred_date: str, **values) -> OrganizationBookingCreate:
    return OrganizationBookingCreate(
        organization_name=values.pop("organization_name", "Acme Corp"),
        contact_email="hr@acme.example",
        number_of_beneficiaries=120,
        preferred_date=preferred_date,
        **values,
    )


def test_sweep_uses_preferred_date_when_unscheduled(
    booking_store: InMemoryOrganizationBookingStore,
) -> None:
    booking = booking_store.add(preferred_date="2025-01-01", scheduled_date="N/A")

    (expired,) = sweep([booking], date(2025, 1, 5), STAMP)

    assert expired.status == OrganizationBookingStatus.COMPLETED
    assert expired.auto_completed_reason == PREFERRED_DATE_EXCEEDED
    assert expired.auto_completed_date == "2025-01-01"
    assert expired.auto_completed_at == STAMP
    assert booking.status == OrganizationBookingStatus.PENDING


def test_sweep_prefers_scheduled_date(booking_store: InMemoryOrganizationBookingStore) -> None:
    past_schedule = booking_store.add(preferred_date="2025-02-01", scheduled_date="04/01/2025")
    future_schedule = booking_store.add(preferred_date="2024-12-01", scheduled_date="2025-01-10")

    expired = sweep([past_schedule, future_schedule], date(2025, 1, 5), STAMP)

    assert [b.id for b in expired] == [past_schedule.id]
    assert expired[0].auto_completed_reason == SCHEDULED_DATE_EXCEEDED
    assert expired[0].auto_completed_date == "2025-01-04"


def test_sweep_leaves_today_closed_and_unparseable_alone(
    booking_store: InMemoryOrganizationBookingStore,
) -> None:
    bookings = [
        booking_store.add(preferred_date="2025-01-05"),
        booking_store.add(preferred_date="2024-12-01", status="cancelled"),
        booking_store.add(preferred_date="2024-12-01", status="completed"),
        booking_store.add(preferred_date="sometime in spring"),
    ]

    assert sweep(bookings, date(2025, 1, 5), STAMP) == []


def test_occupied_dates(booking_store: InMemoryOrganizationBookingStore) -> None:
    scheduled = booking_store.add(preferred_date="2025-04-01", scheduled_date="02/04/2025")
    preferred = booking_store.add(preferred_date="2025-04-03", scheduled_date="N/A")
    booking_store.add(preferred_date="2025-04-05", status="cancelled")
    booking_store.add(preferred_date="not a date")

    dates = occupied_dates(booking_store.items.values())

    assert dates == {"2025-04-02": scheduled.id, "2025-04-03": preferred.id}
    assert "2025-04-02" not in occupied_dates(
        booking_store.items.values(), exclude_booking_id=scheduled.id
    )


@pytest.mark.asyncio
async def test_create_booking(
    booking_service: OrganizationBookingService,
    dispatcher: RecordingDispatcher,
) -> None:
    booking = await booking_service.create_booking(_form("20/03/2025", preferred_time="10:30 AM"))

    assert booking.preferred_date == "2025-03-20"
    assert booking.preferred_time == "10:30"
    assert booking.status == OrganizationBookingStatus.PENDING
    assert dispatcher.events() == [NotificationEvent.ORGANIZATION_BOOKING_CREATED]


@pytest.mark.asyncio
async def test_create_booking_on_taken_date(
    booking_service: OrganizationBookingService,
    booking_store: InMemoryOrganizationBookingStore,
) -> None:
    holder = booking_store.add(preferred_date="2025-03-25", scheduled_date="2025-03-20")
    booking_store.add(preferred_date="2025-03-21", status="cancelled")

    with pytest.raises(DateAlreadyBookedException) as exc_info:
        await booking_service.create_booking(_form("2025-03-20"))

    assert exc_info.value.status_code == 409
    assert exc_info.value.details == {"date": "2025-03-20", "booking_id": str(holder.id)}

    # A cancelled booking releases its date
    freed = await booking_service.create_booking(_form("21/03/2025"))
    assert freed.preferred_date == "2025-03-21"


@pytest.mark.asyncio
async def test_create_booking_in_the_past(booking_service: OrganizationBookingService) -> None:
    with pytest.raises(InvalidRequestException):
        await booking_service.create_booking(_form("2025-03-09"))


@pytest.mark.asyncio
async def test_concurrent_bookings_for_one_date(
    booking_service: OrganizationBookingService,
    booking_store: InMemoryOrganizationBookingStore,
) -> None:
    """Two organizations submitting the same date at once: one gets it."""
    booking_store.write_delay = 0.01

    results = await asyncio.gather(
        booking_service.create_booking(_form("2025-03-20", organization_name="Acme Corp")),
        booking_service.create_booking(_form("20/03/2025", organization_name="Globex")),
        return_exceptions=True,
    )

    assert sum(1 for r in results if isinstance(r, DateAlreadyBookedException)) == 1
    assert len(booking_store.items) == 1


@pytest.mark.asyncio
async def test_booked_dates(
    booking_service: OrganizationBookingService,
    booking_store: InMemoryOrganizationBookingStore,
) -> None:
    booking_store.add(preferred_date="2025-04-10")
    booking_store.add(preferred_date="2025-04-20", scheduled_date="01/04/2025")
    booking_store.add(preferred_date="2025-04-15", status="cancelled")

    response = await booking_service.booked_dates()

    assert response.dates == ["2025-04-01", "2025-04-10"]


@pytest.mark.asyncio
async def test_update_booking_schedules_and_clears(
    booking_service: OrganizationBookingService,
    booking_store: InMemoryOrganizationBookingStore,
) -> None:
    booking = booking_store.add(preferred_date="2025-04-10")

    scheduled = await booking_service.update_booking(
        booking.id,
        OrganizationBookingUpdate(status="scheduled", scheduled_date="12/04/2025"),
    )
    cleared = await booking_service.update_booking(
        booking.id, OrganizationBookingUpdate(scheduled_date="N/A")
    )

    assert scheduled.status == OrganizationBookingStatus.SCHEDULED
    assert scheduled.scheduled_date == "2025-04-12"
    assert cleared.scheduled_date is None
    assert cleared.status == OrganizationBookingStatus.SCHEDULED


@pytest.mark.asyncio
async def test_update_booking_to_taken_date(
    booking_service: OrganizationBookingService,
    booking_store: InMemoryOrganizationBookingStore,
) -> None:
    booking_store.add(preferred_date="2025-04-12")
    booking = booking_store.add(preferred_date="2025-04-10")

    with pytest.raises(DateAlreadyBookedException):
        await booking_service.update_booking(
            booking.id, OrganizationBookingUpdate(scheduled_date="2025-04-12")
        )

    assert booking_store.items[booking.id].scheduled_date is None


@pytest.mark.asyncio
async def test_closed_booking_is_immutable(
    booking_service: OrganizationBookingService,
    booking_store: InMemoryOrganizationBookingStore,
) -> None:
    booking = booking_store.add(preferred_date="2025-03-01", status="completed")

    with pytest.raises(InvalidTransitionException):
        await booking_service.update_booking(
            booking.id, OrganizationBookingUpdate(status="contacted")
        )


@pytest.mark.asyncio
async def test_run_sweep_persists_and_skips_failed_writes(
    booking_service: OrganizationBookingService,
    booking_store: InMemoryOrganizationBookingStore,
    dispatcher: RecordingDispatcher,
) -> None:
    expired = booking_store.add(preferred_date="2025-03-01", status="contacted")
    unwritable = booking_store.add(preferred_date="2025-03-05")
    booking_store.add(preferred_date="2025-03-20")
    booking_store.failing_writes.add(unwritable.id)

    result = await booking_service.run_sweep()

    assert (result.checked, result.auto_completed, result.skipped) == (3, 1, 1)
    assert result.booking_ids == [expired.id]
    stored = booking_store.items[expired.id]
    assert stored.status == OrganizationBookingStatus.COMPLETED
    assert stored.auto_completed_reason == PREFERRED_DATE_EXCEEDED
    assert booking_store.items[unwritable.id].status == OrganizationBookingStatus.PENDING
    assert dispatcher.events() == [NotificationEvent.ORGANIZATION_BOOKING_AUTO_COMPLETED]


@pytest.mark.asyncio
async def test_sweeper_skips_while_a_sweep_is_in_flight(sweeper: BookingSweeper) -> None:
    async with sweeper._in_flight:
        assert await sweeper.run_once() is None

    result = await sweeper.run_once()
    assert result is not None
    assert result.checked == 0


@pytest.mark.asyncio
async def test_sweeper_loop(
    sweeper: BookingSweeper,
    booking_store: InMemoryOrganizationBookingStore,
) -> None:
    expired = booking_store.add(preferred_date="2025-03-01")

    sweeper.start()
    assert sweeper.running is True
    await asyncio.sleep(0.1)
    await sweeper.stop()

    assert sweeper.running is False
    assert booking_store.items[expired.id].status == OrganizationBookingStatus.COMPLETED
