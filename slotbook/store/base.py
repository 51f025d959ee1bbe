"""Abstract persistence contract for windows, links, bookings and credentials.

The engine never talks to a database directly; it goes through this ABC.
Bookings are written with compare-and-set on ``Booking.version`` so two
concurrent mutations of the same booking cannot both win.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from slotbook.models import Booking, CalendarCredential, Link, Window


class SchedulingStore(ABC):
    """Storage backend for the booking engine."""

    # ── Windows ──────────────────────────────────────────────

    @abstractmethod
    async def save_window(self, window: Window) -> Window:
        """Insert or replace a window."""

    @abstractmethod
    async def get_window(self, window_id: str) -> Optional[Window]:
        """Look up a window by id."""

    @abstractmethod
    async def list_windows(self, owner_id: str, active_only: bool = True) -> list[Window]:
        """Return the owner's windows."""

    # ── Links ────────────────────────────────────────────────

    @abstractmethod
    async def save_link(self, link: Link) -> Link:
        """Insert or replace a link."""

    @abstractmethod
    async def get_link(self, link_id: str) -> Optional[Link]:
        """Look up a link by its id."""

    @abstractmethod
    async def get_link_by_key(self, link_key: str) -> Optional[Link]:
        """Look up a link by its public key."""

    @abstractmethod
    async def increment_link_usage(self, link_id: str) -> Link:
        """Atomically bump ``usage_count`` and return the updated link.

        Raises ``ValidationError`` when the link is already at its usage
        limit, leaving the count unchanged.
        """

    # ── Bookings ─────────────────────────────────────────────

    @abstractmethod
    async def insert_booking(self, booking: Booking) -> Booking:
        """Store a new booking at version 1 and return it."""

    @abstractmethod
    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        """Look up a booking by id."""

    @abstractmethod
    async def list_bookings(
        self,
        owner_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        include_canceled: bool = False,
    ) -> list[Booking]:
        """Return the owner's bookings overlapping ``[start, end)``, ordered by start."""

    @abstractmethod
    async def compare_and_set_booking(self, booking: Booking, expected_version: int) -> Booking:
        """Replace the booking only if the stored version equals ``expected_version``.

        Returns the stored booking with its version bumped. Raises
        ``ConcurrencyConflictError`` on mismatch and ``NotFoundError`` when
        the booking no longer exists.
        """

    @abstractmethod
    async def delete_booking(self, booking_id: str) -> None:
        """Remove a booking record (cancel-with-purge only)."""

    # ── Credentials ──────────────────────────────────────────

    @abstractmethod
    async def get_credential(self, owner_id: str) -> Optional[CalendarCredential]:
        """Return the owner's calendar credential, if connected."""

    @abstractmethod
    async def save_credential(self, credential: CalendarCredential) -> CalendarCredential:
        """Insert or replace the owner's calendar credential."""

    @abstractmethod
    async def owner_for_calendar(self, identifier: str) -> Optional[str]:
        """Resolve a push channel id or calendar id to its owner."""
