"""Doctor-day and booking-date mutual exclusion for check-then-write sequences."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

logger = structlog.get_logger(__name__)

LockKey = tuple[str, ...]


class LockTimeoutError(Exception):
    """Lock for a key could not be acquired within the timeout."""

    def __init__(self, key: LockKey, timeout: float):
        """Store the contested key."""
        self.key = key
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout}s waiting for lock {key}")


@dataclass
class _LockEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    refs: int = 0
    holder: str | None = None
    acquired_at: datetime | None = None


def doctor_day_key(doctor_id: str, date: str) -> LockKey:
    """
    Lock key for one doctor on one canonical date.

    Covers the whole day so the home-visit buffer, which spans neighbouring
    slots, is re-checked by one writer at a time.
    """
    return ("doctor-day", str(doctor_id), date)


def booking_date_key(date: str) -> LockKey:
    """Lock key for one organization booking date."""
    return ("org-date", date)


class SlotLockRegistry:
    """
    Registry of per-key asyncio locks.

    Entries exist only while a caller holds or waits for the key, so
    ``active_locks`` shows exactly the slots currently being written.
    """

    def __init__(self, acquire_timeout: float = 10.0):
        """Initialize an empty registry."""
        self.acquire_timeout = acquire_timeout
        self._entries: dict[LockKey, _LockEntry] = {}

    @asynccontextmanager
    async def hold(
        self,
        key: LockKey,
        holder: str | None = None,
        timeout: float | None = None,
    ) -> AsyncIterator[None]:
        """
        Hold the lock for ``key`` for the duration of the block.

        Raises:
            LockTimeoutError: If the lock is not acquired in time
        """
        wait = self.acquire_timeout if timeout is None else timeout
        entry = self._entries.setdefault(key, _LockEntry())
        entry.refs += 1

        try:
            try:
                await asyncio.wait_for(entry.lock.acquire(), timeout=wait)
            except TimeoutError:
                logger.warning("slot_lock_timeout", key=list(key), holder=entry.holder)
                raise LockTimeoutError(key, wait) from None

            entry.holder = holder
            entry.acquired_at = datetime.now(UTC)
            try:
                yield
            finally:
                entry.holder = None
                entry.acquired_at = None
                entry.lock.release()
        finally:
            entry.refs -= 1
            if entry.refs == 0:
                self._entries.pop(key, None)

    def is_locked(self, key: LockKey) -> bool:
        """Check whether someone currently holds ``key``."""
        entry = self._entries.get(key)
        return bool(entry and entry.lock.locked())

    def active_locks(self) -> list[dict]:
        """Snapshot of held or awaited keys."""
        return [
            {
                "key": list(key),
                "locked": entry.lock.locked(),
                "holder": entry.holder,
                "acquired_at": entry.acquired_at,
                "waiters": max(entry.refs - (1 if entry.lock.locked() else 0), 0),
            }
            for key, entry in self._entries.items()
        ]
