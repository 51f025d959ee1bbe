"""Slot generation from recurring windows.

Candidates are walked back-to-back through each window in steps of the
meeting duration. A candidate is offered when it fits inside the window,
does not start in the past, and its buffered span overlaps neither a
booking that still holds its time nor an external busy period.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Iterator, Sequence
from zoneinfo import ZoneInfo

from slotbook.intervals import Interval, ensure_aware, overlaps_any
from slotbook.models.booking import Booking
from slotbook.models.window import Window

log = logging.getLogger("slotbook.slots")


def _days(range_start: datetime, range_end: datetime, tz: ZoneInfo) -> Iterator[date]:
    day = range_start.astimezone(tz).date()
    last = range_end.astimezone(tz).date()
    while day <= last:
        yield day
        day += timedelta(days=1)


def _window_candidates(window: Window, day: date, duration: timedelta) -> Iterator[Interval]:
    window_start, window_end = window.materialize(day)
    slot_start = window_start
    while slot_start + duration <= window_end:
        yield Interval(slot_start, slot_start + duration)
        slot_start += duration


def generate_slots(
    windows: Iterable[Window],
    bookings: Iterable[Booking],
    busy_periods: Iterable,
    range_start: datetime,
    range_end: datetime,
    meeting_duration: timedelta,
    buffer_before: timedelta = timedelta(0),
    buffer_after: timedelta = timedelta(0),
    *,
    now: datetime | None = None,
) -> list[Interval]:
    """Return offerable slots in ``[range_start, range_end]``, ascending by start.

    Args:
        windows: Recurring availability rules. Inactive and invalid windows
            (end not after start) are ignored.
        bookings: Existing bookings. Canceled and rejected ones are ignored.
        busy_periods: External busy intervals; anything with ``start`` and
            ``end`` attributes.
        range_start: First instant of the query; every calendar day touched
            by the range is considered in full.
        range_end: Last instant of the query.
        meeting_duration: Length of each slot and the step between slots.
        buffer_before: Margin added before a candidate when checking conflicts.
        buffer_after: Margin added after a candidate when checking conflicts.
        now: Slots starting before this instant are dropped. Defaults to
            the current time.
    """
    if meeting_duration <= timedelta(0):
        raise ValueError("meeting_duration must be positive")

    range_start = ensure_aware(range_start)
    range_end = ensure_aware(range_end)
    now = ensure_aware(now) if now is not None else datetime.now(tz=timezone.utc)
    if range_end < range_start:
        return []

    blocked: list[Interval] = [b.interval for b in bookings if b.blocks_time]
    blocked.extend(Interval(p.start, p.end) for p in busy_periods)

    usable: Sequence[Window] = [w for w in windows if w.active and w.is_valid]
    seen: set[tuple[datetime, datetime]] = set()
    slots: list[Interval] = []

    for window in usable:
        tz = ZoneInfo(window.timezone)
        for day in _days(range_start, range_end, tz):
            if day.weekday() != window.day_of_week:
                continue
            for candidate in _window_candidates(window, day, meeting_duration):
                if candidate.start < now:
                    continue
                buffered = candidate.expand(buffer_before, buffer_after)
                if overlaps_any(buffered, blocked):
                    continue
                key = (candidate.start, candidate.end)
                if key in seen:
                    continue
                seen.add(key)
                slots.append(candidate)

    slots.sort(key=lambda s: s.start)
    log.debug(
        "Generated %d slots between %s and %s from %d windows",
        len(slots), range_start.isoformat(), range_end.isoformat(), len(usable),
    )
    return slots
