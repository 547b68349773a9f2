'''
Interval algebra over half-open time ranges [start, end).

Everything in here is pure. Callers reject malformed ranges before they reach
this layer; constructing an Interval with start >= end raises ValueError.
'''
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable


@dataclass(frozen=True, order=True)
class Interval:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError("Interval start must be earlier than end.")

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def contains(self, other: "Interval") -> bool:
        return self.start <= other.start and other.end <= self.end


def overlaps(a: Interval, b: Interval) -> bool:
    """True when the two intervals share time. Touching boundaries do not overlap."""
    return a.start < b.end and a.end > b.start


def merge(intervals: Iterable[Interval]) -> list[Interval]:
    """Union of the given intervals. Overlapping and touching intervals are joined."""
    ordered = sorted(intervals)
    if not ordered:
        return []

    merged = [ordered[0]]
    for current in ordered[1:]:
        last = merged[-1]
        if current.start <= last.end:
            if current.end > last.end:
                merged[-1] = Interval(last.start, current.end)
        else:
            merged.append(current)
    return merged


def subtract(open_intervals: Iterable[Interval], busy: Iterable[Interval]) -> list[Interval]:
    """
    Returns the open set minus every busy interval.

    Both sides are sorted and unioned first, then swept once. Busy intervals
    are ordered by start and (after the union) by end as well, so the busy
    cursor only ever moves forward.
    """
    opened = merge(open_intervals)
    blocked = merge(busy)

    result: list[Interval] = []
    j = 0
    for window in opened:
        while j < len(blocked) and blocked[j].end <= window.start:
            j += 1

        cursor = window.start
        k = j
        while k < len(blocked) and blocked[k].start < window.end:
            if blocked[k].start > cursor:
                result.append(Interval(cursor, blocked[k].start))
            cursor = max(cursor, blocked[k].end)
            k += 1

        if cursor < window.end:
            result.append(Interval(cursor, window.end))
    return result


def intersect_range(intervals: Iterable[Interval], range_start: datetime, range_end: datetime) -> list[Interval]:
    """Clips intervals to [range_start, range_end), dropping anything left empty."""
    clipped = []
    for interval in intervals:
        start = max(interval.start, range_start)
        end = min(interval.end, range_end)
        if start < end:
            clipped.append(Interval(start, end))
    return sorted(clipped)


def total_duration(intervals: Iterable[Interval]) -> timedelta:
    return sum((interval.duration for interval in merge(intervals)), timedelta())
