"""Pydantic models for bookings and their calendar conflict details."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from slotbook.intervals import Interval, ensure_aware


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELED = "canceled"
    COMPLETED = "completed"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ConflictDetail(BaseModel):
    """An external calendar event that overlaps a booking."""

    event_id: str = ""
    summary: str = ""
    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return ensure_aware(value)


class Answer(BaseModel):
    question_id: str
    question: str = ""
    answer: str = ""


class Booking(BaseModel):
    """A client's meeting with an owner, booked through a link.

    ``status`` stays unset while approval is pending. ``tentative_event_id``
    and ``confirmed_event_id`` are the external calendar reflections of the
    booking; at most one of them is set at a time. ``version`` is bumped by
    the store on every successful compare-and-set write.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    owner_id: str
    link_id: str
    client_name: str
    client_email: str
    start_time: datetime
    end_time: datetime
    status: Optional[BookingStatus] = None
    approval_status: ApprovalStatus = ApprovalStatus.PENDING

    tentative_event_id: Optional[str] = None
    confirmed_event_id: Optional[str] = None

    has_calendar_conflict: bool = False
    conflict_details: list[ConflictDetail] = []

    answers: list[Answer] = []

    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    canceled_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    version: int = 0

    @field_validator("start_time", "end_time")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return ensure_aware(value)

    @field_validator("client_email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        value = value.strip()
        local, _, domain = value.partition("@")
        if not local or "." not in domain:
            raise ValueError(f"Invalid email address: {value!r}")
        return value

    @model_validator(mode="after")
    def _check_order(self) -> "Booking":
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self

    # ── Derived state ────────────────────────────────────────────

    @property
    def interval(self) -> Interval:
        return Interval(self.start_time, self.end_time)

    @property
    def is_canceled(self) -> bool:
        return self.status == BookingStatus.CANCELED

    @property
    def blocks_time(self) -> bool:
        """Whether this booking occupies its slot for availability purposes."""
        return not self.is_canceled and self.approval_status != ApprovalStatus.REJECTED

    @property
    def external_event_id(self) -> Optional[str]:
        """Whichever calendar event currently reflects this booking."""
        return self.confirmed_event_id or self.tentative_event_id

    def is_completed(self, now: datetime | None = None) -> bool:
        now = ensure_aware(now or _utcnow())
        if self.status == BookingStatus.COMPLETED:
            return True
        return self.status == BookingStatus.CONFIRMED and now > self.end_time

    def effective_status(self, now: datetime | None = None) -> Optional[BookingStatus]:
        """``status`` with completion derived from the clock."""
        if self.is_completed(now):
            return BookingStatus.COMPLETED
        return self.status
