"""Availability queries for a link.

Loads the owner's windows and bookings, pulls busy periods from the
external calendar (degrading to none when it is unreachable), and hands
everything to the slot generator.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from slotbook.calendar_sync import CalendarSync
from slotbook.errors import NotFoundError, ValidationError
from slotbook.intervals import Interval, ensure_aware
from slotbook.models.link import Link
from slotbook.slots import generate_slots
from slotbook.store.base import SchedulingStore

log = logging.getLogger("slotbook.availability")

MAX_RANGE = timedelta(days=93)

# Whole days are materialised in each window's own timezone, so the data
# loaded around the query reaches a day past either end.
_DAY_PAD = timedelta(days=1)


class AvailabilityService:
    def __init__(self, store: SchedulingStore, calendar: CalendarSync) -> None:
        self._store = store
        self._calendar = calendar

    async def get_link(self, link_key: str) -> Link:
        link = await self._store.get_link_by_key(link_key)
        if link is None:
            raise NotFoundError(f"Booking link {link_key!r} not found")
        return link

    async def available_slots(
        self,
        link_key: str,
        range_start: datetime,
        range_end: datetime,
        now: datetime | None = None,
    ) -> list[Interval]:
        """Offerable slots for ``link_key`` between ``range_start`` and ``range_end``."""
        range_start = ensure_aware(range_start)
        range_end = ensure_aware(range_end)
        if range_end <= range_start:
            raise ValidationError("Range end must be after range start")
        if range_end - range_start > MAX_RANGE:
            raise ValidationError(f"Range may span at most {MAX_RANGE.days} days")

        link = await self.get_link(link_key)
        if not link.is_bookable(now):
            log.info("Link %s is not bookable; offering no slots", link.link_key)
            return []
        return await self.slots_for_link(link, range_start, range_end, now=now)

    async def slots_for_link(
        self,
        link: Link,
        range_start: datetime,
        range_end: datetime,
        now: datetime | None = None,
    ) -> list[Interval]:
        windows = await self._store.list_windows(link.owner_id, active_only=True)
        if not windows:
            return []

        fetch_start = range_start - _DAY_PAD - link.before
        fetch_end = range_end + _DAY_PAD + link.after
        bookings = await self._store.list_bookings(link.owner_id, fetch_start, fetch_end)
        busy = await self._calendar.busy_periods(link.owner_id, fetch_start, fetch_end)

        return generate_slots(
            windows,
            bookings,
            busy,
            range_start,
            range_end,
            link.duration,
            link.before,
            link.after,
            now=now,
        )
