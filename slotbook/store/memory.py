"""In-process implementation of :class:`SchedulingStore`.

Records are kept as pydantic models in dicts and copied on the way in and
out, so callers cannot mutate stored state without going through the
store. Suitable for tests, local development and single-process
deployments.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from slotbook.errors import ConcurrencyConflictError, NotFoundError, ValidationError
from slotbook.intervals import Interval, ensure_aware, overlaps
from slotbook.models import Booking, CalendarCredential, Link, Window

from .base import SchedulingStore

log = logging.getLogger("slotbook.store.memory")


class InMemoryStore(SchedulingStore):
    def __init__(self) -> None:
        self._windows: dict[str, Window] = {}
        self._links: dict[str, Link] = {}
        self._bookings: dict[str, Booking] = {}
        self._credentials: dict[str, CalendarCredential] = {}
        self._lock = asyncio.Lock()

    # ── Windows ──────────────────────────────────────────────

    async def save_window(self, window: Window) -> Window:
        self._windows[window.id] = window.model_copy(deep=True)
        return window

    async def get_window(self, window_id: str) -> Optional[Window]:
        window = self._windows.get(window_id)
        return window.model_copy(deep=True) if window else None

    async def list_windows(self, owner_id: str, active_only: bool = True) -> list[Window]:
        return [
            w.model_copy(deep=True)
            for w in self._windows.values()
            if w.owner_id == owner_id and (w.active or not active_only)
        ]

    # ── Links ────────────────────────────────────────────────

    async def save_link(self, link: Link) -> Link:
        for other in self._links.values():
            if other.link_key == link.link_key and other.id != link.id:
                raise ValueError(f"Link key {link.link_key!r} already in use")
        self._links[link.id] = link.model_copy(deep=True)
        return link

    async def get_link(self, link_id: str) -> Optional[Link]:
        link = self._links.get(link_id)
        return link.model_copy(deep=True) if link else None

    async def get_link_by_key(self, link_key: str) -> Optional[Link]:
        for link in self._links.values():
            if link.link_key == link_key:
                return link.model_copy(deep=True)
        return None

    async def increment_link_usage(self, link_id: str) -> Link:
        async with self._lock:
            link = self._links.get(link_id)
            if link is None:
                raise NotFoundError(f"Link {link_id} not found")
            if link.is_exhausted():
                raise ValidationError(f"Link {link.link_key!r} reached its usage limit")
            link.usage_count += 1
            return link.model_copy(deep=True)

    # ── Bookings ─────────────────────────────────────────────

    async def insert_booking(self, booking: Booking) -> Booking:
        async with self._lock:
            if booking.id in self._bookings:
                raise ValueError(f"Booking {booking.id} already exists")
            stored = booking.model_copy(deep=True, update={"version": 1})
            self._bookings[stored.id] = stored
            return stored.model_copy(deep=True)

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        booking = self._bookings.get(booking_id)
        return booking.model_copy(deep=True) if booking else None

    async def list_bookings(
        self,
        owner_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        include_canceled: bool = False,
    ) -> list[Booking]:
        window = None
        if start is not None or end is not None:
            window = Interval(
                ensure_aware(start or datetime.min.replace(tzinfo=timezone.utc)),
                ensure_aware(end or datetime.max.replace(tzinfo=timezone.utc)),
            )
        found = [
            b.model_copy(deep=True)
            for b in self._bookings.values()
            if b.owner_id == owner_id
            and (include_canceled or not b.is_canceled)
            and (window is None or overlaps(b.interval, window))
        ]
        found.sort(key=lambda b: b.start_time)
        return found

    async def compare_and_set_booking(self, booking: Booking, expected_version: int) -> Booking:
        async with self._lock:
            current = self._bookings.get(booking.id)
            if current is None:
                raise NotFoundError(f"Booking {booking.id} not found")
            if current.version != expected_version:
                log.warning(
                    "CAS mismatch on booking %s: expected v%d, found v%d",
                    booking.id, expected_version, current.version,
                )
                raise ConcurrencyConflictError(booking.id, expected_version, current.version)
            stored = booking.model_copy(
                deep=True,
                update={
                    "version": expected_version + 1,
                    "updated_at": datetime.now(tz=timezone.utc),
                },
            )
            self._bookings[stored.id] = stored
            return stored.model_copy(deep=True)

    async def delete_booking(self, booking_id: str) -> None:
        async with self._lock:
            self._bookings.pop(booking_id, None)

    # ── Credentials ──────────────────────────────────────────

    async def get_credential(self, owner_id: str) -> Optional[CalendarCredential]:
        cred = self._credentials.get(owner_id)
        return cred.model_copy(deep=True) if cred else None

    async def save_credential(self, credential: CalendarCredential) -> CalendarCredential:
        self._credentials[credential.owner_id] = credential.model_copy(deep=True)
        return credential

    async def owner_for_calendar(self, identifier: str) -> Optional[str]:
        for cred in self._credentials.values():
            if cred.channel_id and cred.channel_id == identifier:
                return cred.owner_id
        owners = [c.owner_id for c in self._credentials.values() if c.calendar_id == identifier]
        if len(owners) == 1:
            return owners[0]
        if len(owners) > 1:
            log.warning("Calendar id %r is shared by %d owners; cannot resolve", identifier, len(owners))
        return None
