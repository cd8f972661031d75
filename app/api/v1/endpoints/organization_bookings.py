"""Organization booking endpoints."""

from typing import Annotated
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, status

from app.dependencies import (
    AdminActor,
    get_booking_sweeper,
    get_organization_booking_service,
)
from app.schemas.organization_bookings import (
    BookedDatesResponse,
    OrganizationBooking,
    OrganizationBookingCreate,
    OrganizationBookingStatus,
    OrganizationBookingUpdate,
    SweepResult,
)
from app.services.booking_sweeper import BookingSweeper
from app.services.organization_booking_service import OrganizationBookingService

logger = structlog.get_logger(__name__)

router = APIRouter()

Bookings = Annotated[OrganizationBookingService, Depends(get_organization_booking_service)]
Sweeper = Annotated[BookingSweeper, Depends(get_booking_sweeper)]


@router.post(
    "/",
    response_model=OrganizationBooking,
    status_code=status.HTTP_201_CREATED,
    summary="Submit an organization booking",
)
async def create_organization_booking(
    data: OrganizationBookingCreate,
    service: Bookings,
) -> OrganizationBooking:
    """
    Submit a health-camp booking for an organization.

    Only one active booking may hold a date.

    Raises:
        DateAlreadyBookedException: If the preferred date is taken
    """
    return await service.create_booking(data)


@router.get(
    "/booked-dates",
    response_model=BookedDatesResponse,
    status_code=status.HTTP_200_OK,
    summary="Dates already taken",
)
async def get_booked_dates(service: Bookings, sweeper: Sweeper) -> BookedDatesResponse:
    """Dates the booking form must not offer."""
    await sweeper.run_once(service)
    return await service.booked_dates()


@router.get(
    "/",
    response_model=list[OrganizationBooking],
    status_code=status.HTTP_200_OK,
    summary="List organization bookings",
)
async def list_organization_bookings(
    actor: AdminActor,
    service: Bookings,
    sweeper: Sweeper,
    status_filter: OrganizationBookingStatus | None = Query(None, alias="status"),
) -> list[OrganizationBooking]:
    """List bookings after closing the ones whose date has passed (admin only)."""
    await sweeper.run_once(service)
    return await service.list_bookings(status_filter)


@router.patch(
    "/{booking_id}",
    response_model=OrganizationBooking,
    status_code=status.HTTP_200_OK,
    summary="Update an organization booking",
)
async def update_organization_booking(
    booking_id: UUID,
    data: OrganizationBookingUpdate,
    actor: AdminActor,
    service: Bookings,
) -> OrganizationBooking:
    """
    Change status or scheduled date of an open booking (admin only).

    Send ``scheduled_date: "N/A"`` to clear the scheduled date.
    """
    return await service.update_booking(booking_id, data)


@router.post(
    "/sweep",
    response_model=SweepResult | None,
    status_code=status.HTTP_200_OK,
    summary="Run the expiry sweep now",
)
async def sweep_organization_bookings(
    actor: AdminActor,
    service: Bookings,
    sweeper: Sweeper,
) -> SweepResult | None:
    """Close expired bookings now; returns null if a sweep is already running."""
    result = await sweeper.run_once(service)
    logger.info("booking_sweep_requested", requested_by=actor.id, skipped=result is None)
    return result
