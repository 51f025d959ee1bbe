"""Tests for the slot generator."""

from datetime import datetime, time, timedelta, timezone

import pytest

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from slotbook.calendar_providers.base import BusyPeriod
from slotbook.intervals import Interval, overlaps
from slotbook.models import ApprovalStatus, Booking, BookingStatus, Window
from slotbook.slots import generate_slots

from conftest import MONDAY, NOW, OWNER, at

HOUR = timedelta(hours=1)


def window(day=0, start=time(9), end=time(12), **kw) -> Window:
    kw.setdefault("timezone", "UTC")
    return Window(owner_id=OWNER, day_of_week=day, start_time=start, end_time=end, **kw)


def booking(start: datetime, end: datetime, **kw) -> Booking:
    kw.setdefault("status", BookingStatus.CONFIRMED)
    kw.setdefault("approval_status", ApprovalStatus.APPROVED)
    return Booking(
        owner_id=OWNER, link_id="l", client_name="Ada", client_email="ada@example.com",
        start_time=start, end_time=end, **kw,
    )


def monday(windows, bookings=(), busy=(), before=timedelta(0), after=timedelta(0), duration=HOUR):
    return generate_slots(
        windows, bookings, busy, MONDAY, at(23, 59), duration, before, after, now=NOW,
    )


def starts(slots) -> list[tuple[int, int]]:
    return [(s.start.hour, s.start.minute) for s in slots]


class TestScenarios:
    def test_three_back_to_back_slots(self):
        slots = monday([window()])
        assert slots == [
            Interval(at(9), at(10)),
            Interval(at(10), at(11)),
            Interval(at(11), at(12)),
        ]

    def test_existing_booking_removes_slot(self):
        slots = monday([window()], bookings=[booking(at(10), at(11))])
        assert starts(slots) == [(9, 0), (11, 0)]

    def test_buffer_before_against_busy_period(self):
        busy = [BusyPeriod(at(10, 45), at(11, 15))]
        slots = monday([window()], busy=busy, before=timedelta(minutes=15))
        assert starts(slots) == [(9, 0)]

    def test_buffered_span_may_cross_window_edges(self):
        """Buffers widen the conflict check only; the slot itself must fit the window."""
        slots = monday([window()], before=timedelta(minutes=15), after=timedelta(minutes=15))
        assert starts(slots) == [(9, 0), (10, 0), (11, 0)]

    def test_buffer_after_rejects_slot_touching_busy(self):
        busy = [BusyPeriod(at(11), at(11, 30))]
        assert starts(monday([window()], busy=busy)) == [(9, 0), (10, 0)]
        buffered = monday([window()], busy=busy, after=timedelta(minutes=5))
        assert starts(buffered) == [(9, 0)]


class TestBoundaries:
    def test_touching_booking_does_not_block(self):
        slots = monday([window()], bookings=[booking(at(8), at(9)), booking(at(12), at(13))])
        assert len(slots) == 3

    def test_canceled_booking_ignored(self):
        slots = monday([window()], bookings=[booking(at(10), at(11), status=BookingStatus.CANCELED)])
        assert len(slots) == 3

    def test_rejected_booking_ignored(self):
        rejected = booking(at(10), at(11), status=None, approval_status=ApprovalStatus.REJECTED)
        assert len(monday([window()], bookings=[rejected])) == 3

    def test_pending_booking_blocks(self):
        pending = booking(at(10), at(11), status=None, approval_status=ApprovalStatus.PENDING)
        assert starts(monday([window()], bookings=[pending])) == [(9, 0), (11, 0)]

    def test_partial_tail_not_offered(self):
        slots = monday([window(end=time(11, 30))])
        assert starts(slots) == [(9, 0), (10, 0)]

    def test_step_is_meeting_duration(self):
        slots = monday([window()], duration=timedelta(minutes=45))
        assert starts(slots) == [(9, 0), (9, 45), (10, 30), (11, 15)]

    def test_past_slots_dropped(self):
        slots = generate_slots(
            [window()], [], [], MONDAY, at(23, 59), HOUR, now=at(10, 30),
        )
        assert starts(slots) == [(11, 0)]


class TestWindows:
    def test_inverted_window_contributes_nothing(self):
        assert monday([window(start=time(22), end=time(2))]) == []

    def test_zero_length_window_skipped(self):
        assert monday([window(start=time(9), end=time(9))]) == []

    def test_inactive_window_skipped(self):
        assert monday([window(active=False)]) == []

    def test_day_without_window_contributes_nothing(self):
        assert monday([window(day=2)]) == []

    def test_multiple_days_in_order(self):
        windows = [window(day=1, start=time(14), end=time(15)), window(day=0)]
        slots = generate_slots(
            windows, [], [], MONDAY, MONDAY + timedelta(days=2), HOUR, now=NOW,
        )
        assert [s.start for s in slots] == [
            at(9), at(10), at(11), at(14, day=MONDAY + timedelta(days=1)),
        ]

    def test_window_timezone(self):
        chicago = window(timezone="America/Chicago")
        slots = monday([chicago])
        # 09:00 CST is 15:00 UTC in January
        assert slots[0].start == at(15)
        assert len(slots) == 3

    def test_identical_windows_do_not_duplicate(self):
        assert len(monday([window(), window()])) == 3

    def test_weekday_names_accepted(self):
        assert window(day="Monday").day_of_week == 0


class TestProperties:
    def test_slots_contained_and_conflict_free(self):
        windows = [window(), window(start=time(13), end=time(17, 30))]
        bookings = [booking(at(9, 30), at(10, 15)), booking(at(14), at(14, 30), status=BookingStatus.CANCELED)]
        busy = [BusyPeriod(at(15, 10), at(15, 20))]
        before, after = timedelta(minutes=10), timedelta(minutes=10)
        duration = timedelta(minutes=30)

        slots = monday(windows, bookings, busy, before, after, duration)

        assert slots
        for slot in slots:
            assert slot.duration == duration
            assert any(Interval(*w.materialize(slot.start.date())).contains(slot) for w in windows)
            buffered = slot.expand(before, after)
            for b in bookings:
                if not b.is_canceled:
                    assert not overlaps(buffered, b.interval)
            for p in busy:
                assert not overlaps(buffered, p.interval)
        assert slots == sorted(slots, key=lambda s: s.start)

    def test_rejects_non_positive_duration(self):
        with pytest.raises(ValueError):
            monday([window()], duration=timedelta(0))

    def test_empty_when_range_reversed(self):
        assert generate_slots([window()], [], [], at(12), at(9), HOUR, now=NOW) == []
