# ==============================================================================
# Clock and Calendar Helpers
# ==============================================================================
"""
Timestamps are Unix milliseconds throughout the package. Daily rollups are
keyed by calendar day in the configured timezone (server local if unset).
"""

import time
from collections.abc import Callable
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall clock time in Unix milliseconds."""
    return int(time.time() * 1000)


def _tzinfo(tz: str | None):
    return ZoneInfo(tz) if tz else None


def day_for(timestamp_ms: int, tz: str | None = None) -> date:
    """Calendar day a timestamp falls on."""
    dt = datetime.fromtimestamp(timestamp_ms / 1000.0, tz=_tzinfo(tz))
    return dt.date()


def day_start_ms(day: date, tz: str | None = None) -> int:
    """Unix milliseconds of local midnight starting the given day."""
    dt = datetime(day.year, day.month, day.day, tzinfo=_tzinfo(tz))
    return int(dt.timestamp() * 1000)


def day_end_ms(day: date, tz: str | None = None) -> int:
    """Unix milliseconds of the last millisecond of the given day."""
    return day_start_ms(day + timedelta(days=1), tz) - 1


def to_datetime(timestamp_ms: int | None, tz: str | None = None) -> datetime | None:
    if timestamp_ms is None:
        return None
    return datetime.fromtimestamp(timestamp_ms / 1000.0, tz=_tzinfo(tz))
