"""Data models for the booking engine."""

from .booking import Answer, ApprovalStatus, Booking, BookingStatus, ConflictDetail
from .credential import CalendarCredential
from .link import Link, Question
from .window import Window

__all__ = [
    "Answer",
    "ApprovalStatus",
    "Booking",
    "BookingStatus",
    "CalendarCredential",
    "ConflictDetail",
    "Link",
    "Question",
    "Window",
]
