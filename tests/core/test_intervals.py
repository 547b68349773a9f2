'''
Testing the interval algebra.
'''
import pytest
from datetime import datetime, timedelta, timezone

from clinic_booking_backend.core.intervals import (
    Interval, intersect_range, merge, overlaps, subtract, total_duration
)


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2030, 1, 7, hour, minute, tzinfo=timezone.utc)

def iv(start_hour, end_hour) -> Interval:
    return Interval(at(start_hour), at(end_hour))


class TestInterval:

    def test_empty_or_inverted_interval_is_rejected(self):
        with pytest.raises(ValueError):
            Interval(at(10), at(10))
        with pytest.raises(ValueError):
            Interval(at(11), at(10))

    def test_duration_and_contains(self):
        outer = iv(9, 17)
        assert outer.duration == timedelta(hours=8)
        assert outer.contains(iv(9, 10))
        assert outer.contains(outer)
        assert not outer.contains(iv(16, 18))

    def test_touching_intervals_do_not_overlap(self):
        assert not overlaps(iv(9, 10), iv(10, 11))
        assert overlaps(iv(9, 11), iv(10, 12))
        assert overlaps(iv(9, 17), iv(12, 13))

    def test_intervals_in_different_timezones_compare_by_instant(self):
        vienna = timezone(timedelta(hours=1))
        local = Interval(datetime(2030, 1, 7, 10, tzinfo=vienna), datetime(2030, 1, 7, 11, tzinfo=vienna))
        assert overlaps(local, Interval(at(9, 30), at(10)))
        assert not overlaps(local, iv(10, 11))


class TestMerge:

    def test_merge_joins_overlapping_and_touching(self):
        merged = merge([iv(13, 15), iv(9, 11), iv(10, 12), iv(15, 16)])
        assert merged == [iv(9, 12), iv(13, 16)]

    def test_merge_keeps_contained_interval_absorbed(self):
        assert merge([iv(9, 17), iv(10, 11)]) == [iv(9, 17)]

    def test_merge_empty(self):
        assert merge([]) == []


class TestSubtract:

    def test_subtract_break_from_working_day(self):
        assert subtract([iv(9, 17)], [iv(12, 13)]) == [iv(9, 12), iv(13, 17)]

    def test_subtract_busy_covering_everything(self):
        assert subtract([iv(9, 17)], [iv(8, 18)]) == []

    def test_subtract_busy_at_edges(self):
        assert subtract([iv(9, 17)], [iv(8, 10), iv(16, 19)]) == [iv(10, 16)]

    def test_subtract_busy_spanning_two_open_windows(self):
        result = subtract([iv(9, 12), iv(13, 17)], [iv(10, 14)])
        assert result == [iv(9, 10), iv(14, 17)]

    def test_subtract_unsorted_and_overlapping_busy(self):
        result = subtract([iv(13, 17), iv(8, 12)], [iv(15, 16), iv(9, 10), iv(9, 11)])
        assert result == [iv(8, 9), iv(11, 12), iv(13, 15), iv(16, 17)]

    def test_subtract_without_busy_returns_merged_open(self):
        assert subtract([iv(9, 10), iv(10, 11)], []) == [iv(9, 11)]

    def test_subtract_result_never_overlaps_busy_and_reconstructs_open(self):
        """free + (open covered by busy) must add up to exactly the open time."""
        opened = [iv(8, 12), iv(13, 18), iv(19, 21)]
        busy = [Interval(at(7), at(8, 30)), Interval(at(11, 15), at(13, 45)), Interval(at(17), at(20))]
        free = subtract(opened, busy)
        print(f"\nFree: {free}")

        for f in free:
            assert not any(overlaps(f, b) for b in busy)
            assert any(o.contains(f) for o in opened)

        covered = subtract(opened, free)
        assert total_duration(free) + total_duration(covered) == total_duration(opened)
        assert merge(free + covered) == merge(opened)


class TestIntersectRange:

    def test_clips_and_drops_empty(self):
        result = intersect_range([iv(8, 10), iv(11, 13), iv(14, 15)], at(9), at(14))
        assert result == [iv(9, 10), iv(11, 13)]

    def test_total_duration_counts_overlap_once(self):
        assert total_duration([iv(9, 11), iv(10, 12)]) == timedelta(hours=3)
