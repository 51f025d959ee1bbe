"""Tests for half-open intervals and the overlap predicate."""

from datetime import datetime, timedelta, timezone

import pytest

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from slotbook.intervals import Interval, overlaps, overlaps_any

T0 = datetime(2030, 1, 7, 9, 0, tzinfo=timezone.utc)


def iv(start_min: int, end_min: int) -> Interval:
    return Interval(T0 + timedelta(minutes=start_min), T0 + timedelta(minutes=end_min))


class TestOverlaps:
    def test_touching_endpoints_do_not_overlap(self):
        assert not overlaps(iv(0, 60), iv(60, 120))
        assert not overlaps(iv(60, 120), iv(0, 60))

    def test_partial_overlap(self):
        assert overlaps(iv(0, 60), iv(30, 90))
        assert overlaps(iv(30, 90), iv(0, 60))

    def test_containment(self):
        assert overlaps(iv(0, 120), iv(30, 60))
        assert overlaps(iv(30, 60), iv(0, 120))

    def test_identical(self):
        assert overlaps(iv(0, 60), iv(0, 60))

    def test_disjoint(self):
        assert not overlaps(iv(0, 30), iv(45, 60))

    def test_overlaps_any(self):
        assert overlaps_any(iv(0, 60), [iv(60, 90), iv(59, 61)])
        assert not overlaps_any(iv(0, 60), [iv(60, 90)])
        assert not overlaps_any(iv(0, 60), [])


class TestInterval:
    def test_naive_datetimes_are_utc(self):
        naive = Interval(datetime(2030, 1, 7, 9), datetime(2030, 1, 7, 10))
        assert naive.start.tzinfo is timezone.utc
        assert overlaps(naive, iv(30, 90))

    def test_rejects_reversed(self):
        with pytest.raises(ValueError):
            iv(60, 0)

    def test_expand(self):
        buffered = iv(60, 120).expand(timedelta(minutes=15), timedelta(minutes=5))
        assert buffered == iv(45, 125)

    def test_contains(self):
        assert iv(0, 180).contains(iv(0, 60))
        assert iv(0, 180).contains(iv(120, 180))
        assert not iv(0, 180).contains(iv(150, 210))

    def test_duration(self):
        assert iv(0, 45).duration == timedelta(minutes=45)

    def test_equal_across_timezones(self):
        other_tz = timezone(timedelta(hours=-6))
        shifted = Interval(T0.astimezone(other_tz), (T0 + timedelta(hours=1)).astimezone(other_tz))
        assert shifted == iv(0, 60)
