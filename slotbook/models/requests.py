"""Pydantic models for HTTP requests and responses."""

from datetime import datetime, time
from typing import Optional

from pydantic import BaseModel

from slotbook.models.link import Question


class BookingRequest(BaseModel):
    """Data a client submits to book a slot on a link."""

    client_name: str
    client_email: str
    start_time: datetime
    answers: dict[str, str] = {}


class ApproveRequest(BaseModel):
    actor: Optional[str] = None
    expected_version: Optional[int] = None


class RejectRequest(BaseModel):
    reason: str = ""
    actor: Optional[str] = None
    expected_version: Optional[int] = None


class CancelRequest(BaseModel):
    actor: Optional[str] = None
    purge: bool = False
    expected_version: Optional[int] = None


class ChangeNotification(BaseModel):
    """Body form of a calendar change notification."""

    calendar_id: str
    marker: str = ""


class SlotResponse(BaseModel):
    start: datetime
    end: datetime


class WindowRequest(BaseModel):
    day_of_week: int | str
    start_time: time
    end_time: time
    active: bool = True
    timezone: Optional[str] = None


class WindowUpdate(BaseModel):
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    active: Optional[bool] = None


class CalendarConnection(BaseModel):
    """Tokens obtained by the OAuth consent flow."""

    access_token: str
    refresh_token: str = ""
    expires_at: Optional[datetime] = None
    calendar_id: str = "primary"


class LinkRequest(BaseModel):
    meeting_name: str = "Meeting"
    link_key: Optional[str] = None
    description: str = ""
    location: str = "Virtual"
    duration_minutes: int
    buffer_before: int = 0
    buffer_after: int = 0
    questions: list[Question] = []
    usage_limit: int = 0
    expires_at: Optional[datetime] = None
    requires_approval: bool = False


class ConflictCheck(BaseModel):
    """A proposed meeting time to check against the owner's calendar."""

    start_time: datetime
    end_time: datetime
