"""Half-open time intervals and the overlap predicate.

Every conflict check in the engine (slot vs booking, slot vs busy period,
booking vs busy period) goes through :func:`overlaps`, so two meetings that
touch at a shared endpoint never conflict.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone


def ensure_aware(dt: datetime) -> datetime:
    """Interpret naive datetimes as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass(frozen=True)
class Interval:
    """A ``[start, end)`` span of time."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", ensure_aware(self.start))
        object.__setattr__(self, "end", ensure_aware(self.end))
        if self.end < self.start:
            raise ValueError(f"Interval end {self.end} precedes start {self.start}")

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def expand(self, before: timedelta = timedelta(0), after: timedelta = timedelta(0)) -> "Interval":
        """Return the interval widened by ``before`` at the start and ``after`` at the end."""
        return Interval(self.start - before, self.end + after)

    def contains(self, other: "Interval") -> bool:
        return self.start <= other.start and other.end <= self.end

    def as_utc(self) -> "Interval":
        return Interval(self.start.astimezone(timezone.utc), self.end.astimezone(timezone.utc))


def overlaps(a: Interval, b: Interval) -> bool:
    """True iff the half-open intervals share at least one instant."""
    return a.start < b.end and b.start < a.end


def overlaps_any(candidate: Interval, others) -> bool:
    return any(overlaps(candidate, other) for other in others)
