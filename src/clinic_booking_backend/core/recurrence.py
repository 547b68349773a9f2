'''
Bounded expansion of RFC 5545 recurrence rules (opening hours).

A rule only ever gets expanded one local day at a time inside the query range,
so an open-ended rule can never be iterated to infinity. Expansions are cached
per (rule, anchor, day).
'''
from datetime import date, datetime, time, timedelta
from functools import lru_cache

from dateutil.rrule import rrulebase, rrulestr

from .intervals import Interval, intersect_range
from .local_time import local_days, resolve_timezone


@lru_cache(maxsize=256)
def _parse_rule(rule: str, anchor: datetime) -> rrulebase:
    return rrulestr(rule, dtstart=anchor, forceset=True)


@lru_cache(maxsize=8192)
def occurrences_on_day(rule: str, anchor: datetime, day: date) -> tuple[datetime, ...]:
    """Naive local occurrence starts of `rule` falling on `day`."""
    day_start = datetime.combine(day, time.min)
    day_end = day_start + timedelta(days=1)
    recurrence = _parse_rule(rule, anchor)
    return tuple(o for o in recurrence.between(day_start, day_end, inc=True) if o < day_end)


def block_length(start_time: time, end_time: time) -> timedelta:
    """Length of a daily block; an end at or before the start wraps past midnight."""
    start = timedelta(hours=start_time.hour, minutes=start_time.minute, seconds=start_time.second)
    end = timedelta(hours=end_time.hour, minutes=end_time.minute, seconds=end_time.second)
    if end <= start:
        end += timedelta(days=1)
    return end - start


def expand(
    rule: str,
    anchor_date: date,
    start_time: time,
    end_time: time,
    tz_name: str | None,
    range_start: datetime,
    range_end: datetime,
) -> list[Interval]:
    """
    Concrete opening intervals produced by `rule` inside [range_start, range_end).

    Each occurrence opens a block of (end_time - start_time) on the local wall
    clock of `tz_name`.
    """
    tz = resolve_timezone(tz_name)
    anchor = datetime.combine(anchor_date, start_time)
    length = block_length(start_time, end_time)

    intervals = []
    # Start one day early so a block that wraps past midnight into the range is kept.
    first_day = range_start.astimezone(tz).date() - timedelta(days=1)
    days = [first_day] + list(local_days(range_start, range_end, tz))
    for day in days:
        if day < anchor_date:
            continue
        for occurrence in occurrences_on_day(rule, anchor, day):
            start = occurrence.replace(tzinfo=tz)
            end = (occurrence + length).replace(tzinfo=tz)
            if start < end:
                intervals.append(Interval(start, end))

    return intersect_range(intervals, range_start, range_end)
