"""Clinic wall clock."""

from collections.abc import Callable
from datetime import datetime
from zoneinfo import ZoneInfo

from app.config import settings

Clock = Callable[[], datetime]


def clinic_now() -> datetime:
    """
    Current time in the clinic's zone, without tzinfo.

    Appointment slots are stored as naive local date/time pairs, so "now" is
    compared in the same wall-clock terms.
    """
    return datetime.now(ZoneInfo(settings.clinic_timezone)).replace(tzinfo=None)
