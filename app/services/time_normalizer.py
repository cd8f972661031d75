"""Canonical parsing of appointment dates and times.

Every date or time string that enters the scheduling core goes through this
module. Canonical forms are ``YYYY-MM-DD`` for dates and 24-hour ``HH:MM`` for
times; anything that does not match a known pattern is rejected rather than
guessed.
"""

import re
from datetime import date, datetime, time

from app.core.exceptions import InvalidDateFormatException, InvalidTimeFormatException

# ASCII digits only
_TIME_24H = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$", re.ASCII)
_TIME_12H = re.compile(r"^(1[0-2]|0?[1-9]):([0-5]\d)\s*([AaPp][Mm])$", re.ASCII)
_DATE_ISO = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$", re.ASCII)
_DATE_DMY = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$", re.ASCII)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def normalize_time(raw: str) -> str:
    """
    Convert a 24-hour or 12-hour clock string to canonical ``HH:MM``.

    Args:
        raw: Time such as ``"9:05"``, ``"14:00"`` or ``"2:00 pm"``

    Returns:
        Zero-padded 24-hour time

    Raises:
        InvalidTimeFormatException: If the string matches neither form
    """
    if not isinstance(raw, str):
        raise InvalidTimeFormatException(str(raw))

    value = raw.strip()

    match = _TIME_24H.match(value)
    if match:
        hours, minutes = match.groups()
        return f"{int(hours):02d}:{minutes}"

    match = _TIME_12H.match(value)
    if match:
        hours, minutes, meridiem = match.groups()
        hour = int(hours)
        if meridiem.upper() == "AM":
            hour = 0 if hour == 12 else hour
        elif hour != 12:
            hour += 12
        return f"{hour:02d}:{minutes}"

    raise InvalidTimeFormatException(raw)


def normalize_date(raw: str) -> str:
    """
    Convert ``YYYY-MM-DD`` or ``DD/MM/YYYY`` to canonical ``YYYY-MM-DD``.

    The calendar date is validated, so ``2025-13-01`` and ``31/02/2025`` fail.

    Raises:
        InvalidDateFormatException: If the string is not a real date in a known form
    """
    return parse_date(raw).isoformat()


def parse_date(raw: str) -> date:
    """Parse a date in either accepted form into a ``date``."""
    if not isinstance(raw, str):
        raise InvalidDateFormatException(str(raw))

    value = raw.strip()

    match = _DATE_ISO.match(value)
    if match:
        year, month, day = (int(part) for part in match.groups())
    else:
        match = _DATE_DMY.match(value)
        if not match:
            raise InvalidDateFormatException(raw)
        day, month, year = (int(part) for part in match.groups())

    try:
        return date(year, month, day)
    except ValueError:
        raise InvalidDateFormatException(raw) from None


def combine(date_value: str, time_value: str) -> datetime:
    """Combine a date and a time into a naive wall-clock ``datetime``."""
    hours, minutes = normalize_time(time_value).split(":")
    return datetime.combine(parse_date(date_value), time(int(hours), int(minutes)))


def time_to_minutes(time_value: str) -> int:
    """Minutes since midnight for any accepted time string."""
    hours, minutes = normalize_time(time_value).split(":")
    return int(hours) * 60 + int(minutes)


def weekday_name(date_value: str) -> str:
    """Lower-case weekday name of a date."""
    return WEEKDAYS[parse_date(date_value).weekday()]
