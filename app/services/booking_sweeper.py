"""Periodic and on-demand expiry of past organization bookings."""

import asyncio
from collections.abc import Callable

import structlog

from app.core.exceptions import AppException
from app.schemas.organization_bookings import SweepResult
from app.services.organization_booking_service import OrganizationBookingService

logger = structlog.get_logger(__name__)


class BookingSweeper:
    """
    Runs the organization booking expiry sweep.

    At most one sweep runs at a time per process; a sweep requested while
    another is in flight is skipped rather than queued.
    """

    def __init__(
        self,
        service_factory: Callable[[], OrganizationBookingService],
        interval_seconds: float = 300,
    ):
        """Initialize sweeper with a factory for the booking service."""
        self.service_factory = service_factory
        self.interval_seconds = interval_seconds
        self._in_flight = asyncio.Lock()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        """Whether the periodic loop is active."""
        return self._task is not None and not self._task.done()

    async def run_once(
        self, service: OrganizationBookingService | None = None
    ) -> SweepResult | None:
        """
        Sweep now unless a sweep is already in flight.

        Returns:
            The sweep outcome, or None if skipped
        """
        if self._in_flight.locked():
            logger.debug("booking_sweep_skipped_in_flight")
            return None

        async with self._in_flight:
            result = await (service or self.service_factory()).run_sweep()

        if result.auto_completed:
            logger.info(
                "booking_sweep_completed",
                checked=result.checked,
                auto_completed=result.auto_completed,
                skipped=result.skipped,
            )
        return result

    async def _run_forever(self) -> None:
        logger.info("booking_sweeper_started", interval_seconds=self.interval_seconds)

        while True:
            try:
                await self.run_once()
            except AppException as e:
                logger.warning("booking_sweep_failed", error=e.message, details=e.details)
            except Exception as e:
                logger.error("booking_sweep_error", error=str(e), exc_info=True)

            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        """Start the periodic loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run_forever(), name="booking-sweeper")

    async def stop(self) -> None:
        """Cancel the periodic loop and wait for it to exit."""
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("booking_sweeper_stopped")
