"""Booking lifecycle: creation, approval, rejection and cancellation.

State machine::

    requested ──┬─> pending ──┬─> approved/confirmed ──> completed (derived)
                │             └─> rejected
                └─> approved/confirmed (no approval required)

    pending | approved/confirmed ──> canceled

The booking record is the source of truth and the external calendar is a
reflection of it. Every transition is committed with compare-and-set
before the calendar is touched; a calendar failure leaves the event id
fields as they were and comes back as a warning on the result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from slotbook.availability import AvailabilityService
from slotbook.calendar_providers.base import CalendarEvent
from slotbook.calendar_sync import CalendarSync
from slotbook.errors import (
    ConcurrencyConflictError,
    ExternalGatewayError,
    InvalidTransitionError,
    NotFoundError,
    SlotUnavailableError,
    ValidationError,
)
from slotbook.intervals import Interval, ensure_aware
from slotbook.locks import KeyedLocks
from slotbook.models.booking import Answer, ApprovalStatus, Booking, BookingStatus
from slotbook.models.link import Link
from slotbook.store.base import SchedulingStore

log = logging.getLogger("slotbook.lifecycle")


def redact_pii(value: str) -> str:
    """Mask PII for logging: show first 3 and last 2 chars only."""
    if not value or len(value) <= 5:
        return "***"
    return value[:3] + "***" + value[-2:]


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass
class BookingResult:
    """Outcome of a lifecycle operation.

    ``warnings`` collects calendar failures that did not prevent the
    booking transition from being committed.
    """

    booking: Booking
    warnings: list[str] = field(default_factory=list)

    @property
    def tentative_hold(self) -> bool:
        return self.booking.tentative_event_id is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "booking": self.booking.model_dump(mode="json"),
            "booking_id": self.booking.id,
            "approval_status": self.booking.approval_status.value,
            "tentative_hold": self.tentative_hold,
            "warnings": list(self.warnings),
        }


class BookingService:
    """Drives bookings through their lifecycle.

    ``booking_locks`` must be shared with the reconciliation job so that a
    conflict re-flag never interleaves with a cancel or approval of the same
    booking.
    """

    def __init__(
        self,
        store: SchedulingStore,
        calendar: CalendarSync,
        availability: AvailabilityService,
        booking_locks: KeyedLocks | None = None,
    ) -> None:
        self._store = store
        self._calendar = calendar
        self._availability = availability
        self._booking_locks = booking_locks or KeyedLocks()
        self._owner_locks = KeyedLocks()

    @property
    def booking_locks(self) -> KeyedLocks:
        return self._booking_locks

    # ── Helpers ────────────────────────────────────────────────

    async def _load(self, booking_id: str, expected_version: Optional[int]) -> Booking:
        booking = await self._store.get_booking(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        if expected_version is not None and booking.version != expected_version:
            raise ConcurrencyConflictError(booking_id, expected_version, booking.version)
        return booking

    async def _commit(self, booking: Booking, **changes: Any) -> Booking:
        return await self._store.compare_and_set_booking(
            booking.model_copy(update=changes), booking.version
        )

    @staticmethod
    def _event_for(booking: Booking, link: Optional[Link], tentative: bool) -> CalendarEvent:
        name = link.meeting_name if link else "Meeting"
        lines = [f"Booking from {booking.client_name} ({booking.client_email})"]
        if tentative:
            lines.append("Pending approval: this hold does not block time.")
        for answer in booking.answers:
            lines.append(f"{answer.question or answer.question_id}: {answer.answer}")
        return CalendarEvent(
            summary=f"{name} with {booking.client_name}",
            description="\n".join(lines),
            attendees=[booking.client_email],
            location=link.location if link else "",
        )

    # ── Create ─────────────────────────────────────────────────

    async def create_booking(
        self,
        link_key: str,
        client_name: str,
        client_email: str,
        start_time: datetime,
        answers: Optional[dict[str, str]] = None,
        now: datetime | None = None,
    ) -> BookingResult:
        """Book ``start_time`` on the link if it is still offered.

        Raises:
            NotFoundError: unknown link.
            ValidationError: link not bookable, bad client data or
                unanswered required questions.
            SlotUnavailableError: the slot is no longer offered.
        """
        answers = answers or {}
        link = await self._availability.get_link(link_key)
        if not link.is_bookable(now):
            raise ValidationError(f"Booking link {link_key!r} is inactive, expired or used up")
        missing = link.missing_answers(answers)
        if missing:
            raise ValidationError(f"Missing answers: {', '.join(missing)}")

        start_time = ensure_aware(start_time)
        requested = Interval(start_time, start_time + link.duration)
        labels = {q.id: q.label for q in link.questions}

        try:
            draft = Booking(
                owner_id=link.owner_id,
                link_id=link.id,
                client_name=client_name,
                client_email=client_email,
                start_time=requested.start,
                end_time=requested.end,
                status=None if link.requires_approval else BookingStatus.CONFIRMED,
                approval_status=(
                    ApprovalStatus.PENDING if link.requires_approval else ApprovalStatus.APPROVED
                ),
                answers=[
                    Answer(question_id=qid, question=labels.get(qid, ""), answer=str(text))
                    for qid, text in answers.items()
                ],
            )
        except PydanticValidationError as exc:
            raise ValidationError(str(exc)) from exc

        # Check-then-insert must not interleave with another booking for the owner
        async with self._owner_locks.hold(link.owner_id):
            link = await self._store.get_link(link.id)
            if link is None or not link.is_bookable(now):
                raise ValidationError(f"Booking link {link_key!r} is inactive, expired or used up")
            offered = await self._availability.slots_for_link(
                link, requested.start, requested.end, now=now
            )
            if requested not in offered:
                raise SlotUnavailableError(
                    f"Slot starting {requested.start.isoformat()} is no longer available"
                )
            await self._store.increment_link_usage(link.id)
            booking = await self._store.insert_booking(draft)

        log.info(
            "Booking %s created for %s on link %s (%s)",
            booking.id, redact_pii(booking.client_email), link.link_key,
            booking.approval_status.value,
        )

        result = BookingResult(booking)
        tentative = link.requires_approval
        async with self._booking_locks.hold(booking.id):
            try:
                event_id = await self._calendar.create_event(
                    booking.owner_id,
                    booking.interval,
                    self._event_for(booking, link, tentative),
                    tentative=tentative,
                )
            except ExternalGatewayError as exc:
                log.warning("Calendar hold for booking %s not created: %s", booking.id, exc)
                result.warnings.append(f"Calendar event not created: {exc}")
                return result
            if event_id:
                field_name = "tentative_event_id" if tentative else "confirmed_event_id"
                result.booking = await self._commit(booking, **{field_name: event_id})
        return result

    # ── Approve / reject ───────────────────────────────────────

    async def approve(
        self,
        booking_id: str,
        actor: Optional[str] = None,
        expected_version: Optional[int] = None,
        now: datetime | None = None,
    ) -> BookingResult:
        """Approve a pending booking and promote its tentative hold in place."""
        async with self._booking_locks.hold(booking_id):
            booking = await self._load(booking_id, expected_version)
            if booking.is_canceled or booking.approval_status != ApprovalStatus.PENDING:
                raise InvalidTransitionError(
                    f"Cannot approve booking {booking_id} in state "
                    f"{booking.approval_status.value}/{booking.status.value if booking.status else '-'}"
                )

            booking = await self._commit(
                booking,
                approval_status=ApprovalStatus.APPROVED,
                status=BookingStatus.CONFIRMED,
                approved_by=actor,
                approved_at=ensure_aware(now or _utcnow()),
            )
            log.info("Booking %s approved by %s", booking_id, actor or "-")
            result = BookingResult(booking)

            try:
                if booking.tentative_event_id:
                    promoted = await self._calendar.promote_to_confirmed(
                        booking.owner_id, booking.tentative_event_id
                    )
                    if promoted:
                        result.booking = await self._commit(
                            booking,
                            confirmed_event_id=booking.tentative_event_id,
                            tentative_event_id=None,
                        )
                else:
                    link = await self._store.get_link(booking.link_id)
                    event_id = await self._calendar.create_event(
                        booking.owner_id,
                        booking.interval,
                        self._event_for(booking, link, tentative=False),
                        tentative=False,
                    )
                    if event_id:
                        result.booking = await self._commit(booking, confirmed_event_id=event_id)
            except ExternalGatewayError as exc:
                log.warning("Calendar not updated for approved booking %s: %s", booking_id, exc)
                result.warnings.append(f"Calendar event not confirmed: {exc}")
            return result

    async def reject(
        self,
        booking_id: str,
        reason: str = "",
        actor: Optional[str] = None,
        expected_version: Optional[int] = None,
        now: datetime | None = None,
    ) -> BookingResult:
        """Reject a pending booking and remove its tentative hold."""
        async with self._booking_locks.hold(booking_id):
            booking = await self._load(booking_id, expected_version)
            if booking.is_canceled or booking.approval_status != ApprovalStatus.PENDING:
                raise InvalidTransitionError(
                    f"Cannot reject booking {booking_id} in state {booking.approval_status.value}"
                )

            booking = await self._commit(
                booking,
                approval_status=ApprovalStatus.REJECTED,
                rejected_by=actor,
                rejected_at=ensure_aware(now or _utcnow()),
                rejection_reason=reason or None,
            )
            log.info("Booking %s rejected by %s", booking_id, actor or "-")
            result = BookingResult(booking)

            if booking.tentative_event_id:
                try:
                    deleted = await self._calendar.delete_event(
                        booking.owner_id, booking.tentative_event_id
                    )
                except ExternalGatewayError as exc:
                    log.warning("Tentative hold for booking %s not deleted: %s", booking_id, exc)
                    result.warnings.append(f"Tentative event not deleted: {exc}")
                else:
                    if deleted:
                        result.booking = await self._commit(booking, tentative_event_id=None)
            return result

    # ── Cancel ─────────────────────────────────────────────────

    async def cancel(
        self,
        booking_id: str,
        actor: Optional[str] = None,
        purge: bool = False,
        expected_version: Optional[int] = None,
        now: datetime | None = None,
    ) -> BookingResult:
        """Cancel a booking and delete whichever calendar event reflects it.

        Canceling an already-canceled booking changes nothing. With
        ``purge`` the record is removed after cancellation. Rejected and
        completed bookings cannot be canceled but can still be purged.
        """
        async with self._booking_locks.hold(booking_id):
            booking = await self._load(booking_id, expected_version)
            if booking.is_canceled:
                log.info("Booking %s already canceled", booking_id)
                result = BookingResult(booking)
            elif booking.approval_status == ApprovalStatus.REJECTED or booking.is_completed(now):
                # Terminal records cannot be canceled, only purged
                if not purge:
                    state = "rejected" if booking.approval_status == ApprovalStatus.REJECTED else "completed"
                    raise InvalidTransitionError(f"Booking {booking_id} is already {state}")
                result = BookingResult(booking)
            else:
                result = await self._cancel_locked(booking, actor, now)

            if purge:
                await self._store.delete_booking(booking_id)
                log.info("Booking %s purged", booking_id)
            return result

    async def _cancel_locked(
        self, booking: Booking, actor: Optional[str], now: datetime | None
    ) -> BookingResult:
        booking = await self._commit(
            booking,
            status=BookingStatus.CANCELED,
            canceled_at=ensure_aware(now or _utcnow()),
        )
        log.info("Booking %s canceled by %s", booking.id, actor or "-")
        result = BookingResult(booking)

        event_id = booking.external_event_id
        if event_id:
            try:
                deleted = await self._calendar.delete_event(booking.owner_id, event_id)
            except ExternalGatewayError as exc:
                log.warning("Event %s for canceled booking %s not deleted: %s", event_id, booking.id, exc)
                result.warnings.append(f"Calendar event not deleted: {exc}")
            else:
                if deleted:
                    result.booking = await self._commit(
                        booking, tentative_event_id=None, confirmed_event_id=None
                    )
        return result
