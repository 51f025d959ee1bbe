"""Error taxonomy for the booking engine.

ValidationError and its subclasses are raised synchronously and never
retried. ExternalGatewayError is non-fatal for booking records: lifecycle
operations catch it and report it as a warning. ConcurrencyConflictError
means the stored booking changed underneath the caller.
"""

from __future__ import annotations


class SchedulingError(Exception):
    """Base class for every error raised by slotbook."""


class ValidationError(SchedulingError):
    """Malformed input, unknown entity or a slot that is no longer offered."""


class NotFoundError(ValidationError):
    """Referenced link, window or booking does not exist."""


class InvalidTransitionError(ValidationError):
    """Requested lifecycle action is not allowed from the booking's state."""


class SlotUnavailableError(ValidationError):
    """Selected start time is not one of the currently offered slots."""


class ExternalGatewayError(SchedulingError):
    """A calendar call failed or timed out."""


class CredentialExpiredError(ExternalGatewayError):
    """Token refresh failed; the owner must reconnect their calendar."""


class ConcurrencyConflictError(SchedulingError):
    """Compare-and-set mismatch: state changed, refresh and retry."""

    def __init__(self, booking_id: str, expected_version: int, actual_version: int | None) -> None:
        self.booking_id = booking_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Booking {booking_id} changed (expected version {expected_version}, "
            f"found {actual_version}); refresh and retry."
        )
