"""Shared fixtures: in-memory store, fake calendar gateway, fake token refresher."""

import asyncio
import itertools
from datetime import datetime, time, timedelta, timezone

import pytest

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from slotbook.calendar_providers.base import BusyPeriod, CalendarEvent, CalendarGateway
from slotbook.credentials import TokenRefresher
from slotbook.engine import build_engine
from slotbook.errors import CredentialExpiredError
from slotbook.intervals import Interval
from slotbook.models import CalendarCredential, Link, Window
from slotbook.store.memory import InMemoryStore

OWNER = "owner-1"

# 2030-01-07 is a Monday
MONDAY = datetime(2030, 1, 7, tzinfo=timezone.utc)
NOW = datetime(2030, 1, 1, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0, day: datetime = MONDAY) -> datetime:
    return day.replace(hour=hour, minute=minute)


class FakeGateway(CalendarGateway):
    """Records calls; confirmed events it created show up as busy periods."""

    supports_push = True

    def __init__(self) -> None:
        self.events: dict[str, dict] = {}
        self.external: list[BusyPeriod] = []
        self.calls: list[tuple[str, str]] = []
        self.fail: set[str] = set()
        self.watched: list[tuple[str, str]] = []
        self.stopped: list[tuple[str, str]] = []
        self.delay = 0.0
        self._ids = itertools.count(1)

    def _maybe_fail(self, op: str) -> None:
        if op in self.fail:
            raise RuntimeError(f"{op} unavailable")

    async def get_busy_periods(self, credential, start, end):
        self.calls.append(("busy", ""))
        if self.delay:
            await asyncio.sleep(self.delay)
        self._maybe_fail("busy")
        window = Interval(start, end)
        busy = [p for p in self.external if p.interval.start < window.end and window.start < p.interval.end]
        for event_id, ev in self.events.items():
            if not ev["tentative"]:
                busy.append(BusyPeriod(ev["interval"].start, ev["interval"].end, event_id, ev["event"].summary))
        return sorted(busy, key=lambda p: p.start)

    async def create_event(self, credential, interval, event: CalendarEvent, tentative=False):
        self._maybe_fail("create")
        event_id = f"evt_{next(self._ids)}"
        self.events[event_id] = {"interval": interval, "event": event, "tentative": tentative}
        self.calls.append(("create", event_id))
        return event_id

    async def promote_to_confirmed(self, credential, event_id):
        self._maybe_fail("promote")
        self.events[event_id]["tentative"] = False
        self.calls.append(("promote", event_id))

    async def delete_event(self, credential, event_id):
        self._maybe_fail("delete")
        self.events.pop(event_id, None)
        self.calls.append(("delete", event_id))

    async def watch(self, credential, channel_id, address):
        self._maybe_fail("watch")
        self.watched.append((channel_id, address))
        return f"res-{channel_id}"

    async def stop_channel(self, credential, channel_id, resource_id):
        self._maybe_fail("stop")
        self.stopped.append((channel_id, resource_id))
        self.calls.append(("stop", channel_id))

    def count(self, op: str) -> int:
        return sum(1 for name, _ in self.calls if name == op)


class FakeRefresher(TokenRefresher):
    def __init__(self) -> None:
        self.calls = 0
        self.fail = False

    async def refresh(self, credential):
        self.calls += 1
        if self.fail:
            raise CredentialExpiredError("invalid_grant")
        return credential.model_copy(
            update={
                "access_token": f"fresh-{self.calls}",
                "expires_at": datetime.now(tz=timezone.utc) + timedelta(hours=1),
            }
        )


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def refresher():
    return FakeRefresher()


@pytest.fixture
def engine(store, gateway, refresher):
    return build_engine(store=store, gateway=gateway, refresher=refresher)


@pytest.fixture
async def connected(store):
    """Owner with a valid calendar credential."""
    cred = CalendarCredential(
        owner_id=OWNER,
        access_token="token",
        refresh_token="refresh",
        expires_at=datetime.now(tz=timezone.utc) + timedelta(days=3650),
        calendar_id="owner1@example.com",
        channel_id="chan-1",
    )
    await store.save_credential(cred)
    return cred


@pytest.fixture
async def monday_window(store):
    window = Window(
        owner_id=OWNER, day_of_week=0, start_time=time(9), end_time=time(12), timezone="UTC"
    )
    await store.save_window(window)
    return window


async def make_link(store, **fields) -> Link:
    fields.setdefault("duration_minutes", 60)
    link = Link(owner_id=OWNER, **fields)
    await store.save_link(link)
    return link


@pytest.fixture
async def link(store, monday_window):
    return await make_link(store, link_key="intro")


@pytest.fixture
async def approval_link(store, monday_window):
    return await make_link(store, link_key="review", requires_approval=True)
