"""Pydantic model for an owner's calendar OAuth credential."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel

from slotbook.intervals import ensure_aware


class CalendarCredential(BaseModel):
    """Access/refresh token pair for one owner's connected calendar."""

    owner_id: str
    access_token: str
    refresh_token: str = ""
    expires_at: Optional[datetime] = None
    calendar_id: str = "primary"
    channel_id: Optional[str] = None  # push channel registered with the provider
    resource_id: Optional[str] = None  # provider handle needed to stop that channel
    disconnected: bool = False

    def needs_refresh(self, margin: timedelta, now: datetime | None = None) -> bool:
        """True when expired, expiring within ``margin``, or expiry unknown."""
        if self.expires_at is None:
            return True
        now = now or datetime.now(tz=timezone.utc)
        return ensure_aware(self.expires_at) <= ensure_aware(now) + margin
