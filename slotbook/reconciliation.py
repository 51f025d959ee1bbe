"""Conflict reconciliation driven by external calendar change notifications.

A notification only says "something changed on this calendar". The job
resolves it to an owner and recomputes the conflict flags of every upcoming,
non-canceled booking from fresh busy periods. It never patches
incrementally, so stale or duplicate notifications are harmless.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from slotbook.calendar_providers.base import BusyPeriod
from slotbook.calendar_sync import CalendarSync
from slotbook.config import settings
from slotbook.errors import ExternalGatewayError, ValidationError
from slotbook.intervals import Interval, ensure_aware, overlaps
from slotbook.locks import KeyedLocks
from slotbook.models.booking import Booking, ConflictDetail
from slotbook.store.base import SchedulingStore

log = logging.getLogger("slotbook.reconciliation")


@dataclass
class ReconcileReport:
    owner_id: str
    checked: int = 0
    flagged: list[str] = field(default_factory=list)
    cleared: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    # Beyond the lookahead horizon; flags left as they were
    deferred: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.updated)


def find_conflicts(target: Booking | Interval, busy: list[BusyPeriod]) -> list[ConflictDetail]:
    """External events overlapping a booking or a proposed interval.

    A booking's own tentative or confirmed event never counts against it.
    """
    if isinstance(target, Booking):
        interval = target.interval
        own = {target.tentative_event_id, target.confirmed_event_id} - {None}
    else:
        interval, own = target, set()
    return [
        ConflictDetail(event_id=p.event_id, summary=p.summary, start=p.start, end=p.end)
        for p in busy
        if not (p.event_id and p.event_id in own) and overlaps(interval, p.interval)
    ]


class ReconciliationJob:
    """Recomputes ``has_calendar_conflict`` for an owner's upcoming bookings."""

    def __init__(
        self,
        store: SchedulingStore,
        calendar: CalendarSync,
        booking_locks: KeyedLocks,
        lookahead: timedelta | None = None,
    ) -> None:
        self._store = store
        self._calendar = calendar
        self._booking_locks = booking_locks
        self._lookahead = lookahead or timedelta(days=settings.reconcile_lookahead_days)
        self._owner_runs = KeyedLocks()
        self._pending: dict[str, asyncio.Task] = {}
        self._rerun: set[str] = set()

    # ── Notification entry point ───────────────────────────────

    async def notify(self, calendar_id: str, marker: str = "") -> bool:
        """Schedule reconciliation for the calendar's owner and return at once.

        Returns False when the calendar cannot be resolved to an owner.
        Notifications arriving while a run for the same owner is queued or
        in flight are coalesced into one follow-up run.
        """
        owner_id = await self._store.owner_for_calendar(calendar_id)
        if owner_id is None:
            log.warning("Change notification for unknown calendar %s (marker %s)", calendar_id, marker)
            return False

        log.info("Change notification for owner %s (calendar %s, marker %s)", owner_id, calendar_id, marker)
        task = self._pending.get(owner_id)
        if task is not None and not task.done():
            self._rerun.add(owner_id)
            return True
        self._pending[owner_id] = asyncio.create_task(self._run(owner_id))
        return True

    async def _run(self, owner_id: str) -> None:
        try:
            while True:
                self._rerun.discard(owner_id)
                try:
                    await self.reconcile_owner(owner_id)
                except ExternalGatewayError as exc:
                    # The next notification retries
                    log.warning("Reconciliation for owner %s aborted: %s", owner_id, exc)
                except Exception:
                    log.exception("Reconciliation for owner %s failed", owner_id)
                if owner_id not in self._rerun:
                    break
        finally:
            self._pending.pop(owner_id, None)

    async def drain(self) -> None:
        """Wait for every scheduled run to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending.values()), return_exceptions=True)

    # ── Ad-hoc check ───────────────────────────────────────────

    async def check_conflicts(
        self, owner_id: str, start: datetime, end: datetime
    ) -> list[ConflictDetail]:
        """Calendar events overlapping a proposed ``[start, end)`` for the owner.

        Raises:
            ValidationError: empty or reversed interval, or no calendar
                connected for the owner.
            ExternalGatewayError: the calendar could not be read.
        """
        start, end = ensure_aware(start), ensure_aware(end)
        if end <= start:
            raise ValidationError("Conflict check end must be after start")
        if not await self._calendar.is_connected(owner_id):
            raise ValidationError(f"No calendar connected for owner {owner_id}")
        interval = Interval(start, end)
        busy = await self._calendar.busy_periods(owner_id, start, end, strict=True)
        return find_conflicts(interval, busy)

    # ── Reconciliation ─────────────────────────────────────────

    async def reconcile_owner(self, owner_id: str, now: datetime | None = None) -> ReconcileReport:
        """Recompute conflict flags for the owner's upcoming bookings.

        Bookings starting at or after the lookahead horizon are not checked
        against the calendar and keep their current flags; they are listed
        in ``report.deferred`` and picked up once they come within range.

        Raises:
            ExternalGatewayError: busy periods could not be fetched; no
                booking is touched.
        """
        now = ensure_aware(now or datetime.now(tz=timezone.utc))
        report = ReconcileReport(owner_id)

        async with self._owner_runs.hold(owner_id):
            upcoming = [
                b
                for b in await self._store.list_bookings(owner_id, start=now)
                if b.start_time > now
            ]
            if not upcoming:
                return report

            horizon = min(max(b.end_time for b in upcoming), now + self._lookahead)
            busy = await self._calendar.busy_periods(owner_id, now, horizon, strict=True)

            for candidate in upcoming:
                if candidate.start_time >= horizon:
                    report.deferred.append(candidate.id)
                    continue
                report.checked += 1
                await self._reconcile_booking(candidate.id, busy, report)

        if report.changed:
            log.info(
                "Reconciled owner %s: %d checked, %d flagged, %d cleared",
                owner_id, report.checked, len(report.flagged), len(report.cleared),
            )
        return report

    async def _reconcile_booking(
        self, booking_id: str, busy: list[BusyPeriod], report: ReconcileReport
    ) -> Optional[Booking]:
        async with self._booking_locks.hold(booking_id):
            booking = await self._store.get_booking(booking_id)
            if booking is None or booking.is_canceled:
                return None

            conflicts = find_conflicts(booking, busy)
            has_conflict = bool(conflicts)
            if has_conflict == booking.has_calendar_conflict and conflicts == booking.conflict_details:
                return booking

            updated = await self._store.compare_and_set_booking(
                booking.model_copy(
                    update={"has_calendar_conflict": has_conflict, "conflict_details": conflicts}
                ),
                booking.version,
            )
            report.updated.append(booking_id)
            if has_conflict and not booking.has_calendar_conflict:
                report.flagged.append(booking_id)
                log.info("Booking %s now conflicts with %d calendar events", booking_id, len(conflicts))
            elif not has_conflict and booking.has_calendar_conflict:
                report.cleared.append(booking_id)
                log.info("Booking %s no longer conflicts", booking_id)
            return updated
