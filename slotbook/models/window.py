"""Pydantic model for recurring weekly availability windows."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

from slotbook.config import settings

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


class Window(BaseModel):
    """One recurring availability rule: a weekday plus a time-of-day range.

    ``day_of_week`` follows :meth:`datetime.date.weekday` (0 = Monday). Weekday
    names are accepted on input. Times are wall-clock times in ``timezone``.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    owner_id: str
    day_of_week: int
    start_time: time
    end_time: time
    active: bool = True
    timezone: str = Field(default_factory=lambda: settings.calendar_timezone)

    @field_validator("day_of_week", mode="before")
    @classmethod
    def _normalize_weekday(cls, value):
        if isinstance(value, str) and not value.isdigit():
            try:
                return WEEKDAYS.index(value.strip().lower())
            except ValueError:
                raise ValueError(f"Unknown weekday: {value!r}") from None
        return value

    @field_validator("day_of_week")
    @classmethod
    def _check_weekday_range(cls, value: int) -> int:
        if not 0 <= value <= 6:
            raise ValueError("day_of_week must be between 0 (Monday) and 6 (Sunday)")
        return value

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {value!r}") from None
        return value

    @property
    def is_valid(self) -> bool:
        """False for zero-length windows and windows that would wrap past midnight."""
        return self.start_time < self.end_time

    def materialize(self, day: date) -> tuple[datetime, datetime]:
        """Place the window's bounds onto a concrete date in its timezone."""
        tz = ZoneInfo(self.timezone)
        return (
            datetime.combine(day, self.start_time, tzinfo=tz),
            datetime.combine(day, self.end_time, tzinfo=tz),
        )
