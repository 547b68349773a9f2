'''
Helpers for turning wall-clock schedule data (dates + times in a location's
timezone) into aware datetimes.
'''
from datetime import date, datetime, time, timedelta
from typing import Iterator
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..common.config import settings
from ..common.logger import log


def resolve_timezone(tz_name: str | None) -> ZoneInfo:
    """
    Returns the ZoneInfo for tz_name, falling back to the configured default
    (and finally UTC) when the name is missing or unknown.
    """
    for candidate in (tz_name, settings.DEFAULT_TIMEZONE):
        if not candidate:
            continue
        try:
            return ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError):
            log.warning(f"Invalid timezone '{candidate}', trying fallback.")
    return ZoneInfo("UTC")


def combine_local(day: date, at: time, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, at).replace(tzinfo=tz)


def local_days(range_start: datetime, range_end: datetime, tz: ZoneInfo) -> Iterator[date]:
    """Every local calendar day touched by [range_start, range_end)."""
    current = range_start.astimezone(tz).date()
    last = (range_end - timedelta(microseconds=1)).astimezone(tz).date()
    while current <= last:
        yield current
        current += timedelta(days=1)
