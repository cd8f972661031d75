"""API v1 router configuration."""

from fastapi import APIRouter

from app.api.v1.endpoints import (
    appointments,
    doctors,
    health,
    organization_bookings,
    scheduling,
)

api_router = APIRouter()

# Include routers
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(appointments.router, prefix="/appointments", tags=["Appointments"])
api_router.include_router(doctors.router, prefix="/doctors", tags=["Doctors"])
api_router.include_router(
    organization_bookings.router,
    prefix="/organization-bookings",
    tags=["Organization Bookings"],
)
api_router.include_router(scheduling.router, prefix="/scheduling", tags=["Scheduling"])
