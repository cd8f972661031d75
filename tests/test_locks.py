"""Tests for the scheduling lock registry."""

import asyncio

import pytest

from app.core.locks import LockTimeoutError, SlotLockRegistry, booking_date_key, doctor_day_key


def test_keys() -> None:
    assert doctor_day_key("d1", "2025-03-12") == ("doctor-day", "d1", "2025-03-12")
    assert booking_date_key("2025-03-12") == ("org-date", "2025-03-12")


@pytest.mark.asyncio
async def test_same_key_is_mutually_exclusive() -> None:
    registry = SlotLockRegistry(acquire_timeout=1.0)
    key = doctor_day_key("d1", "2025-03-12")
    inside = 0
    peak = 0

    async def critical_section() -> None:
        nonlocal inside, peak
        async with registry.hold(key):
            inside += 1
            peak = max(peak, inside)
            await asyncio.sleep(0.01)
            inside -= 1

    await asyncio.gather(*(critical_section() for _ in range(5)))

    assert peak == 1
    assert registry.active_locks() == []


@pytest.mark.asyncio
async def test_different_keys_do_not_block() -> None:
    registry = SlotLockRegistry(acquire_timeout=0.05)

    async with registry.hold(doctor_day_key("d1", "2025-03-12")):
        async with registry.hold(doctor_day_key("d2", "2025-03-12")):
            assert len(registry.active_locks()) == 2


@pytest.mark.asyncio
async def test_timeout_when_held() -> None:
    registry = SlotLockRegistry(acquire_timeout=5.0)
    key = booking_date_key("2025-03-20")

    async with registry.hold(key, holder="admin@clinic"):
        with pytest.raises(LockTimeoutError) as exc_info:
            async with registry.hold(key, timeout=0.05):
                pass

        assert exc_info.value.key == key
        (entry,) = registry.active_locks()
        assert entry["holder"] == "admin@clinic"
        assert entry["locked"] is True
        assert entry["waiters"] == 0

    assert registry.is_locked(key) is False
    assert registry.active_locks() == []


@pytest.mark.asyncio
async def test_lock_released_on_error() -> None:
    registry = SlotLockRegistry()
    key = doctor_day_key("d1", "2025-03-12")

    with pytest.raises(RuntimeError):
        async with registry.hold(key):
            raise RuntimeError("write failed")

    assert registry.is_locked(key) is False

    async with registry.hold(key, timeout=0.05):
        assert registry.is_locked(key) is True
