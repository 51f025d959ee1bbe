"""Owner-scoped access to the calendar gateway.

Each call first obtains a fresh credential (the per-owner lock is held only
for that step), then runs the gateway call under a timeout. Any failure of
the call itself comes back as ``ExternalGatewayError``.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Awaitable, Optional, TypeVar

from slotbook.calendar_providers.base import BusyPeriod, CalendarEvent, CalendarGateway
from slotbook.config import settings
from slotbook.credentials import CredentialManager
from slotbook.errors import CredentialExpiredError, ExternalGatewayError
from slotbook.intervals import Interval
from slotbook.models.credential import CalendarCredential

log = logging.getLogger("slotbook.calendar_sync")

T = TypeVar("T")


class CalendarSync:
    def __init__(
        self,
        gateway: CalendarGateway,
        credentials: CredentialManager,
        timeout: float | None = None,
    ) -> None:
        self._gateway = gateway
        self._credentials = credentials
        self._timeout = timeout or settings.gateway_timeout_seconds

    async def _call(self, what: str, owner_id: str, coro: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(coro, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise ExternalGatewayError(
                f"{what} for owner {owner_id} timed out after {self._timeout}s"
            ) from exc
        except ExternalGatewayError:
            raise
        except Exception as exc:
            raise ExternalGatewayError(f"{what} for owner {owner_id} failed: {exc}") from exc

    async def _credential(self, owner_id: str) -> Optional[CalendarCredential]:
        return await self._credentials.ensure_fresh(owner_id)

    async def is_connected(self, owner_id: str) -> bool:
        try:
            return await self._credential(owner_id) is not None
        except CredentialExpiredError:
            return False

    async def busy_periods(
        self,
        owner_id: str,
        start: datetime,
        end: datetime,
        strict: bool = False,
    ) -> list[BusyPeriod]:
        """Busy periods for the owner's calendar.

        A missing or disconnected calendar yields ``[]``. Gateway and
        refresh failures also yield ``[]`` unless ``strict`` is set, in
        which case they propagate.
        """
        try:
            credential = await self._credential(owner_id)
            if credential is None:
                return []
            return await self._call(
                "Busy-period lookup",
                owner_id,
                self._gateway.get_busy_periods(credential, start, end),
            )
        except ExternalGatewayError:
            if strict:
                raise
            log.warning(
                "Busy-period lookup failed for owner %s; continuing without external calendar",
                owner_id,
                exc_info=True,
            )
            return []

    async def create_event(
        self,
        owner_id: str,
        interval: Interval,
        event: CalendarEvent,
        tentative: bool,
    ) -> Optional[str]:
        """Create an event; returns None when no calendar is connected."""
        credential = await self._credential(owner_id)
        if credential is None:
            log.info("No connected calendar for owner %s; skipping event creation", owner_id)
            return None
        return await self._call(
            "Event creation",
            owner_id,
            self._gateway.create_event(credential, interval, event, tentative=tentative),
        )

    async def promote_to_confirmed(self, owner_id: str, event_id: str) -> bool:
        """Promote a tentative event; returns False when no calendar is connected."""
        credential = await self._credential(owner_id)
        if credential is None:
            return False
        await self._call(
            "Event promotion",
            owner_id,
            self._gateway.promote_to_confirmed(credential, event_id),
        )
        return True

    async def delete_event(self, owner_id: str, event_id: str) -> bool:
        """Delete an event; returns False when no calendar is connected."""
        credential = await self._credential(owner_id)
        if credential is None:
            return False
        await self._call(
            "Event deletion",
            owner_id,
            self._gateway.delete_event(credential, event_id),
        )
        return True

    async def _stop_channel(self, credential: CalendarCredential) -> None:
        await self._call(
            "Channel stop",
            credential.owner_id,
            self._gateway.stop_channel(
                credential, credential.channel_id, credential.resource_id or ""
            ),
        )
        log.info("Stopped push channel %s for owner %s", credential.channel_id, credential.owner_id)

    async def watch(self, owner_id: str, address: str | None = None) -> Optional[str]:
        """Register a push channel for the owner's calendar and remember its id.

        A channel registered earlier is stopped first. Failing to stop it is
        logged and does not prevent the new registration.
        """
        address = address or settings.notification_address
        if not address:
            return None
        if not self._gateway.supports_push:
            log.info("Calendar gateway has no push support; owner %s is not watched", owner_id)
            return None
        credential = await self._credential(owner_id)
        if credential is None:
            return None

        if credential.channel_id:
            try:
                await self._stop_channel(credential)
            except ExternalGatewayError as exc:
                log.warning(
                    "Previous push channel %s for owner %s not stopped: %s",
                    credential.channel_id, owner_id, exc,
                )

        channel_id = uuid.uuid4().hex
        resource_id = await self._call(
            "Channel registration",
            owner_id,
            self._gateway.watch(credential, channel_id, address),
        )
        await self._credentials.update_channel(owner_id, channel_id, resource_id or None)
        return channel_id

    async def unwatch(self, owner_id: str) -> bool:
        """Stop the owner's push channel; False when none is registered."""
        if not self._gateway.supports_push:
            return False
        credential = await self._credential(owner_id)
        if credential is None or not credential.channel_id:
            return False
        await self._stop_channel(credential)
        await self._credentials.update_channel(owner_id, None, None)
        return True
