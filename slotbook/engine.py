"""Wiring of the store, calendar gateway and services into one engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from slotbook.availability import AvailabilityService
from slotbook.calendar_providers.base import CalendarGateway
from slotbook.calendar_sync import CalendarSync
from slotbook.configuration import LinkConfiguration
from slotbook.credentials import CredentialManager, GoogleTokenRefresher, TokenRefresher
from slotbook.lifecycle import BookingService
from slotbook.locks import KeyedLocks
from slotbook.reconciliation import ReconciliationJob
from slotbook.store.base import SchedulingStore
from slotbook.store.memory import InMemoryStore


@dataclass
class Engine:
    store: SchedulingStore
    credentials: CredentialManager
    calendar: CalendarSync
    configuration: LinkConfiguration
    availability: AvailabilityService
    bookings: BookingService
    reconciliation: ReconciliationJob


def build_engine(
    store: Optional[SchedulingStore] = None,
    gateway: Optional[CalendarGateway] = None,
    refresher: Optional[TokenRefresher] = None,
) -> Engine:
    """Assemble an engine; defaults to the in-memory store and Google Calendar."""
    store = store or InMemoryStore()
    if gateway is None:
        from slotbook.calendar_providers.google import GoogleCalendarGateway

        gateway = GoogleCalendarGateway()
    credentials = CredentialManager(store, refresher or GoogleTokenRefresher())
    calendar = CalendarSync(gateway, credentials)
    availability = AvailabilityService(store, calendar)
    booking_locks = KeyedLocks()
    return Engine(
        store=store,
        credentials=credentials,
        calendar=calendar,
        configuration=LinkConfiguration(store),
        availability=availability,
        bookings=BookingService(store, calendar, availability, booking_locks),
        reconciliation=ReconciliationJob(store, calendar, booking_locks),
    )
