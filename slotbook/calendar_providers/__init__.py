"""Calendar gateway abstractions and implementations."""

from .base import BusyPeriod, CalendarEvent, CalendarGateway

__all__ = ["BusyPeriod", "CalendarEvent", "CalendarGateway"]
