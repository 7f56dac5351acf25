"""Display timestamps and calendar-day keys for conversation turns.

Turns carry a human-readable timestamp (``DD.MM.YYYY, HH:MM:SS``); the part before
the comma is the day key used to bucket history and to index memories.
"""

from __future__ import annotations

from datetime import date, datetime, tzinfo
from typing import Callable
from zoneinfo import ZoneInfo

DISPLAY_FORMAT = "%d.%m.%Y, %H:%M:%S"
DAY_FORMAT = "%d.%m.%Y"

Clock = Callable[[], datetime]


def format_timestamp(dt: datetime) -> str:
    return dt.strftime(DISPLAY_FORMAT)


def format_day(d: date) -> str:
    return d.strftime(DAY_FORMAT)


def day_key(timestamp: str) -> str:
    """Return the calendar-day part of a display timestamp."""
    return timestamp.split(",", 1)[0].strip()


def parse_day(key: str) -> date | None:
    """Parse a day key, accepting unpadded values such as ``5.1.2025``.

    Returns None for anything that is not a ``day.month.year`` triple.
    """
    parts = key.strip().split(".")
    if len(parts) != 3:
        return None
    try:
        day, month, year = (int(p) for p in parts)
        return date(year, month, day)
    except ValueError:
        return None


def canonical_day_key(key: str) -> str:
    """Zero-padded form of a day key, so ``5.1.2025`` and ``05.01.2025`` name the same day.

    Keys that do not parse are returned unchanged.
    """
    parsed = parse_day(key)
    return format_day(parsed) if parsed else key.strip()


def is_on_day(timestamp: str, day: date) -> bool:
    return parse_day(day_key(timestamp)) == day


def to_local(dt: datetime, tz: tzinfo | None = None) -> datetime:
    """Convert *dt* to *tz* (or the host zone when None). Naive values are read as host-local time."""
    return dt.astimezone(tz)


def make_clock(tz_name: str | None = None) -> Clock:
    """Return a zero-argument callable yielding the current local time."""
    tz = ZoneInfo(tz_name) if tz_name else None

    def _now() -> datetime:
        return datetime.now(tz) if tz else datetime.now()

    return _now
