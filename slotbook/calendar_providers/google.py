"""Google Calendar gateway implementation.

Talks to the Calendar API v3 with an owner's OAuth access token. Token
refresh happens upstream (see ``slotbook.credentials``), so the client here
is built from a bare access token and never refreshes on its own.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from functools import partial
from typing import Any

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from slotbook.intervals import Interval
from slotbook.models.credential import CalendarCredential

from .base import BusyPeriod, CalendarEvent, CalendarGateway

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar"]

# Calendar API event colours: 5 = banana (tentative), 1 = lavender (confirmed)
TENTATIVE_COLOR_ID = "5"
CONFIRMED_COLOR_ID = "1"

_GONE = {404, 410}


class GoogleCalendarGateway(CalendarGateway):
    """CalendarGateway backed by Google Calendar API v3."""

    supports_push = True

    def __init__(self, page_size: int = 250) -> None:
        self._page_size = page_size

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _service(self, credential: CalendarCredential):
        creds = Credentials(token=credential.access_token, scopes=SCOPES)
        return build("calendar", "v3", credentials=creds, cache_discovery=False)

    async def _run_in_executor(self, func, *args, **kwargs) -> Any:
        """Run a synchronous Google API call in the default thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, partial(func, *args, **kwargs)
        )

    @staticmethod
    def _to_rfc3339(dt: datetime) -> str:
        """Convert a datetime to an RFC 3339 string with timezone."""
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.isoformat()

    @staticmethod
    def _parse_when(when: dict) -> datetime:
        """Parse an event ``start``/``end`` object (timed or all-day)."""
        if "dateTime" in when:
            return datetime.fromisoformat(when["dateTime"].replace("Z", "+00:00"))
        return datetime.fromisoformat(when["date"]).replace(tzinfo=timezone.utc)

    # ------------------------------------------------------------------
    # CalendarGateway interface
    # ------------------------------------------------------------------

    async def get_busy_periods(
        self,
        credential: CalendarCredential,
        start: datetime,
        end: datetime,
    ) -> list[BusyPeriod]:
        """List events in the range and keep the ones that block time.

        Events are listed rather than queried through freebusy so that
        each busy period carries the event id and summary used in
        conflict details.
        """
        service = self._service(credential)
        busy: list[BusyPeriod] = []
        page_token: str | None = None

        while True:
            response = await self._run_in_executor(
                service.events()
                .list(
                    calendarId=credential.calendar_id,
                    timeMin=self._to_rfc3339(start),
                    timeMax=self._to_rfc3339(end),
                    singleEvents=True,
                    orderBy="startTime",
                    maxResults=self._page_size,
                    pageToken=page_token,
                )
                .execute
            )
            for item in response.get("items", []):
                if item.get("status") == "cancelled":
                    continue
                if item.get("transparency") == "transparent":
                    continue
                if "start" not in item or "end" not in item:
                    continue
                busy.append(
                    BusyPeriod(
                        start=self._parse_when(item["start"]),
                        end=self._parse_when(item["end"]),
                        event_id=item.get("id", ""),
                        summary=item.get("summary", ""),
                    )
                )
            page_token = response.get("nextPageToken")
            if not page_token:
                break

        busy.sort(key=lambda b: b.start)
        return busy

    async def create_event(
        self,
        credential: CalendarCredential,
        interval: Interval,
        event: CalendarEvent,
        tentative: bool = False,
    ) -> str:
        """Insert an event into the owner's calendar.

        Tentative holds are transparent and banana-coloured; confirmed
        events are opaque and invite attendees.
        """
        body: dict[str, Any] = {
            "summary": event.summary,
            "start": {"dateTime": self._to_rfc3339(interval.start)},
            "end": {"dateTime": self._to_rfc3339(interval.end)},
            "status": "tentative" if tentative else "confirmed",
            "transparency": "transparent" if tentative else "opaque",
            "colorId": TENTATIVE_COLOR_ID if tentative else CONFIRMED_COLOR_ID,
        }
        if event.description:
            body["description"] = event.description
        if event.location:
            body["location"] = event.location
        if event.attendees:
            body["attendees"] = [
                {"email": addr} for addr in event.attendees
            ]

        service = self._service(credential)
        result = await self._run_in_executor(
            service.events()
            .insert(
                calendarId=credential.calendar_id,
                body=body,
                sendUpdates="none" if tentative else "all",
            )
            .execute
        )

        logger.info(
            "Created %s event %s on calendar %s",
            "tentative" if tentative else "confirmed",
            result["id"],
            credential.calendar_id,
        )
        return result["id"]

    async def promote_to_confirmed(
        self, credential: CalendarCredential, event_id: str
    ) -> None:
        """Patch a tentative hold into a confirmed, opaque event."""
        service = self._service(credential)
        await self._run_in_executor(
            service.events()
            .patch(
                calendarId=credential.calendar_id,
                eventId=event_id,
                body={
                    "status": "confirmed",
                    "transparency": "opaque",
                    "colorId": CONFIRMED_COLOR_ID,
                },
                sendUpdates="all",
            )
            .execute
        )
        logger.info("Promoted event %s on calendar %s", event_id, credential.calendar_id)

    async def delete_event(
        self, credential: CalendarCredential, event_id: str
    ) -> None:
        """Delete an event; an event that is already gone counts as deleted."""
        service = self._service(credential)
        try:
            await self._run_in_executor(
                service.events()
                .delete(calendarId=credential.calendar_id, eventId=event_id)
                .execute
            )
        except HttpError as exc:
            if exc.resp.status not in _GONE:
                raise
            logger.info("Event %s already gone from calendar %s", event_id, credential.calendar_id)
            return
        logger.info("Deleted event %s on calendar %s", event_id, credential.calendar_id)

    async def watch(
        self, credential: CalendarCredential, channel_id: str, address: str
    ) -> str:
        """Open a web_hook channel; the calendar id travels back as the channel token."""
        service = self._service(credential)
        result = await self._run_in_executor(
            service.events()
            .watch(
                calendarId=credential.calendar_id,
                body={
                    "id": channel_id,
                    "type": "web_hook",
                    "address": address,
                    "token": credential.calendar_id,
                },
            )
            .execute
        )
        logger.info("Watching calendar %s on channel %s", credential.calendar_id, channel_id)
        return result.get("resourceId", "")

    async def stop_channel(
        self, credential: CalendarCredential, channel_id: str, resource_id: str
    ) -> None:
        """Stop a web_hook channel; one that has already expired counts as stopped."""
        service = self._service(credential)
        try:
            await self._run_in_executor(
                service.channels()
                .stop(body={"id": channel_id, "resourceId": resource_id})
                .execute
            )
        except HttpError as exc:
            if exc.resp.status not in _GONE:
                raise
            logger.info("Channel %s already gone", channel_id)
            return
        logger.info("Stopped channel %s for calendar %s", channel_id, credential.calendar_id)
