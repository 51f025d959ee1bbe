"""Abstract base class for calendar gateways.

Defines the contract the engine needs from "a calendar": busy-period
lookup, event create/promote/delete, and push-channel registration. Any
backend (Google, Outlook, etc.) implements this ABC. Every call receives
the owner's credential; keeping it fresh is the caller's job.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from slotbook.intervals import Interval
from slotbook.models.credential import CalendarCredential


@dataclass
class BusyPeriod:
    """An interval during which the owner's calendar is blocked."""

    start: datetime
    end: datetime
    event_id: str = ""
    summary: str = ""

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)


@dataclass
class CalendarEvent:
    """Descriptive metadata for an event to be created."""

    summary: str
    description: str = ""
    attendees: list[str] = field(default_factory=list)  # email addresses
    location: str = ""


class CalendarGateway(ABC):
    """Abstract calendar backend.

    Backends that can push change notifications set ``supports_push`` and
    implement :meth:`watch` and :meth:`stop_channel`.
    """

    supports_push: bool = False

    @abstractmethod
    async def get_busy_periods(
        self,
        credential: CalendarCredential,
        start: datetime,
        end: datetime,
    ) -> list[BusyPeriod]:
        """Return blocking intervals overlapping ``[start, end)``.

        Transparent (non-blocking) and cancelled events are not busy. An
        empty calendar returns an empty list.
        """

    @abstractmethod
    async def create_event(
        self,
        credential: CalendarCredential,
        interval: Interval,
        event: CalendarEvent,
        tentative: bool = False,
    ) -> str:
        """Create an event and return its provider identifier.

        Tentative events must not block time and must be visually distinct
        from confirmed ones.
        """

    @abstractmethod
    async def promote_to_confirmed(
        self, credential: CalendarCredential, event_id: str
    ) -> None:
        """Turn a tentative event into a confirmed, blocking one in place."""

    @abstractmethod
    async def delete_event(
        self, credential: CalendarCredential, event_id: str
    ) -> None:
        """Delete an event. Raises on failure."""

    async def watch(
        self, credential: CalendarCredential, channel_id: str, address: str
    ) -> str:
        """Register a push channel for the credential's calendar.

        Returns the provider's resource id, needed to stop the channel.
        """
        raise NotImplementedError(f"{type(self).__name__} does not support push channels")

    async def stop_channel(
        self, credential: CalendarCredential, channel_id: str, resource_id: str
    ) -> None:
        """Stop a push channel opened by :meth:`watch`. An unknown channel is not an error."""
        raise NotImplementedError(f"{type(self).__name__} does not support push channels")
