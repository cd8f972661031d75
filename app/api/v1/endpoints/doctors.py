"""Doctor directory and availability endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from app.dependencies import CurrentActor, get_assignment_service, get_doctor_directory
from app.repositories.base import DoctorDirectory
from app.schemas.doctors import AvailabilityResponse, DoctorProfile
from app.services.assignment_service import AssignmentService

router = APIRouter()


@router.get(
    "/",
    response_model=list[DoctorProfile],
    status_code=status.HTTP_200_OK,
    summary="List approved doctors",
)
async def list_doctors(
    actor: CurrentActor,
    directory: Annotated[DoctorDirectory, Depends(get_doctor_directory)],
    city: str | None = Query(None, description="Filter by city"),
    locality: str | None = Query(None, description="Filter by locality"),
) -> list[DoctorProfile]:
    """
    List approved doctors.

    - **city**: Case-insensitive city filter
    - **locality**: Case-insensitive locality filter
    """
    return await directory.get_approved_doctors(city=city, locality=locality)


@router.get(
    "/available",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_200_OK,
    summary="Doctor availability for a slot",
)
async def get_available_doctors(
    actor: CurrentActor,
    assignments: Annotated[AssignmentService, Depends(get_assignment_service)],
    date: str = Query(..., description="YYYY-MM-DD or DD/MM/YYYY"),
    time: str = Query(..., description="HH:MM or h:MM AM/PM"),
    mode: str = Query(..., description="virtual, home or clinic"),
    city: str | None = Query(None, description="Rank doctors in this city first"),
    locality: str | None = Query(None, description="Then doctors in this locality"),
) -> AvailabilityResponse:
    """
    Availability of every approved doctor for one slot.

    Available doctors are listed first, ranked by proximity; each unavailable
    doctor carries the reason.
    """
    return await assignments.candidate_availability(
        date, time, mode, city=city, locality=locality
    )
