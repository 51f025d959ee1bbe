"""Pydantic models for bookable meeting-type links."""

from __future__ import annotations

import secrets
import string
import uuid
from datetime import datetime, timedelta, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field

from slotbook.intervals import ensure_aware

_KEY_ALPHABET = string.ascii_lowercase + string.digits


def generate_link_key() -> str:
    return "".join(secrets.choice(_KEY_ALPHABET) for _ in range(8))


class Question(BaseModel):
    """A custom question the client answers when booking."""

    id: str
    label: str
    type: Literal["text", "textarea", "select", "radio", "checkbox"] = "text"
    required: bool = False
    options: list[str] = []


class Link(BaseModel):
    """A shareable configuration for one bookable meeting type."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    owner_id: str
    link_key: str = Field(default_factory=generate_link_key)
    meeting_name: str = "Meeting"
    description: str = ""
    location: str = "Virtual"
    duration_minutes: int = Field(ge=15, le=240)
    buffer_before: int = Field(default=0, ge=0)  # minutes
    buffer_after: int = Field(default=0, ge=0)   # minutes
    questions: list[Question] = []
    usage_limit: int = Field(default=0, ge=0)    # 0 = unlimited
    usage_count: int = Field(default=0, ge=0)
    expires_at: Optional[datetime] = None
    requires_approval: bool = False
    active: bool = True

    @property
    def duration(self) -> timedelta:
        return timedelta(minutes=self.duration_minutes)

    @property
    def before(self) -> timedelta:
        return timedelta(minutes=self.buffer_before)

    @property
    def after(self) -> timedelta:
        return timedelta(minutes=self.buffer_after)

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(tz=timezone.utc)
        return ensure_aware(self.expires_at) <= ensure_aware(now)

    def is_exhausted(self) -> bool:
        return self.usage_limit > 0 and self.usage_count >= self.usage_limit

    def is_bookable(self, now: datetime | None = None) -> bool:
        """Active, unexpired and under its usage limit."""
        return self.active and not self.is_expired(now) and not self.is_exhausted()

    def missing_answers(self, answers: dict[str, str]) -> list[str]:
        """Labels of required questions left unanswered."""
        return [
            q.label
            for q in self.questions
            if q.required and not str(answers.get(q.id, "")).strip()
        ]
