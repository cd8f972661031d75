"""Scheduling diagnostics endpoints."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from app.core.locks import SlotLockRegistry
from app.dependencies import AdminActor, get_booking_sweeper, get_lock_registry
from app.services.booking_sweeper import BookingSweeper

router = APIRouter()


class LockInfo(BaseModel):
    """One slot or booking-date lock that is held or awaited."""

    key: list[str]
    locked: bool
    holder: str | None = None
    acquired_at: datetime | None = None
    waiters: int


class SchedulingStatus(BaseModel):
    """In-process scheduling state."""

    active_locks: list[LockInfo]
    sweeper_running: bool


@router.get(
    "/locks",
    response_model=SchedulingStatus,
    status_code=status.HTTP_200_OK,
    summary="Inspect scheduling locks (admin only)",
)
async def get_scheduling_locks(
    actor: AdminActor,
    locks: Annotated[SlotLockRegistry, Depends(get_lock_registry)],
    sweeper: Annotated[BookingSweeper, Depends(get_booking_sweeper)],
) -> SchedulingStatus:
    """Locks currently held or awaited in this process."""
    return SchedulingStatus(
        active_locks=[LockInfo(**entry) for entry in locks.active_locks()],
        sweeper_running=sweeper.running,
    )
