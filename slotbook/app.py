"""FastAPI application: HTTP endpoints for availability and bookings.

Endpoints:

  GET  /health                          Health check
  POST /owners/{owner_id}/windows       Add a weekly availability window
  PATCH /windows/{window_id}           Move or toggle a window
  POST /owners/{owner_id}/links         Create a booking link
  PUT  /owners/{owner_id}/calendar      Connect calendar tokens, open push channel
  DELETE /owners/{owner_id}/calendar/channel  Stop the push channel
  POST /owners/{owner_id}/conflicts     Check a proposed time against the calendar
  GET  /links/{link_key}/slots          Offerable slots for a link
  POST /links/{link_key}/bookings       Book a slot
  GET  /bookings/{booking_id}           Current booking state
  POST /bookings/{booking_id}/approve   Owner approves a pending booking
  POST /bookings/{booking_id}/reject    Owner rejects a pending booking
  POST /bookings/{booking_id}/cancel    Cancel (idempotent)
  POST /calendar/notifications          Calendar push notification

Push notifications are acknowledged immediately; reconciliation runs in
the background.
"""

from __future__ import annotations

from dotenv import load_dotenv
load_dotenv()

import logging
import time
from datetime import datetime
from typing import Optional

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)-20s %(levelname)-7s %(message)s",
)

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse

from slotbook.auth import require_admin_token
from slotbook.config import settings
from slotbook.engine import Engine, build_engine
from slotbook.errors import (
    ConcurrencyConflictError,
    ExternalGatewayError,
    NotFoundError,
    ValidationError,
)
from slotbook.models.credential import CalendarCredential
from slotbook.models.requests import (
    ApproveRequest,
    BookingRequest,
    CalendarConnection,
    CancelRequest,
    ChangeNotification,
    ConflictCheck,
    LinkRequest,
    RejectRequest,
    SlotResponse,
    WindowRequest,
    WindowUpdate,
)

log = logging.getLogger("slotbook.app")

_START_TIME = time.time()


def create_app(engine: Optional[Engine] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="slotbook",
        description="Weekly availability, booking approvals and calendar reconciliation",
        version="0.1.0",
    )
    engine = engine or build_engine()
    app.state.engine = engine

    for warning in settings.validate_startup():
        log.warning(warning)

    # ── Error mapping ──────────────────────────────────────────

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse({"success": False, "error": str(exc)}, status_code=404)

    @app.exception_handler(ValidationError)
    async def invalid(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse({"success": False, "error": str(exc)}, status_code=400)

    @app.exception_handler(ConcurrencyConflictError)
    async def conflict(request: Request, exc: ConcurrencyConflictError) -> JSONResponse:
        return JSONResponse(
            {"success": False, "error": str(exc), "current_version": exc.actual_version},
            status_code=409,
        )

    @app.exception_handler(ExternalGatewayError)
    async def gateway_failed(request: Request, exc: ExternalGatewayError) -> JSONResponse:
        log.warning("Calendar gateway error escaped to %s: %s", request.url.path, exc)
        return JSONResponse({"success": False, "error": str(exc)}, status_code=502)

    # ── Health check ───────────────────────────────────────────

    @app.get("/health")
    async def health() -> JSONResponse:
        """Lightweight health check; confirms the event loop is responsive."""
        uptime = round(time.time() - _START_TIME, 1)
        return JSONResponse({"status": "ok", "uptime": uptime})

    # ── Owner configuration ────────────────────────────────────

    @app.post(
        "/owners/{owner_id}/windows",
        status_code=201,
        dependencies=[Depends(require_admin_token)],
    )
    async def add_window(owner_id: str, body: WindowRequest):
        fields = body.model_dump(exclude_none=True)
        window = await engine.configuration.add_window(owner_id, **fields)
        return {"success": True, "window": window.model_dump(mode="json")}

    @app.patch("/windows/{window_id}", dependencies=[Depends(require_admin_token)])
    async def update_window(window_id: str, body: WindowUpdate):
        window = await engine.configuration.update_window_bounds(
            window_id, start_time=body.start_time, end_time=body.end_time
        )
        if body.active is not None:
            window = await engine.configuration.set_window_active(window_id, body.active)
        return {"success": True, "window": window.model_dump(mode="json")}

    @app.post(
        "/owners/{owner_id}/links",
        status_code=201,
        dependencies=[Depends(require_admin_token)],
    )
    async def create_link(owner_id: str, body: LinkRequest):
        fields = body.model_dump(exclude_none=True)
        link = await engine.configuration.create_link(owner_id, **fields)
        return {"success": True, "link": link.model_dump(mode="json")}

    @app.put("/owners/{owner_id}/calendar", dependencies=[Depends(require_admin_token)])
    async def connect_calendar(owner_id: str, body: CalendarConnection):
        """Store tokens from the consent flow and open a push channel."""
        await engine.credentials.connect(
            CalendarCredential(owner_id=owner_id, **body.model_dump())
        )
        try:
            channel_id = await engine.calendar.watch(owner_id)
        except ExternalGatewayError as exc:
            log.warning("Push channel for owner %s not registered: %s", owner_id, exc)
            channel_id = None
        return {"success": True, "channel_id": channel_id}

    @app.delete(
        "/owners/{owner_id}/calendar/channel",
        dependencies=[Depends(require_admin_token)],
    )
    async def stop_calendar_channel(owner_id: str):
        """Stop the owner's push channel."""
        stopped = await engine.calendar.unwatch(owner_id)
        return {"success": True, "stopped": stopped}

    @app.post(
        "/owners/{owner_id}/conflicts",
        dependencies=[Depends(require_admin_token)],
    )
    async def check_conflicts(owner_id: str, body: ConflictCheck):
        """Calendar events overlapping a proposed time."""
        conflicts = await engine.reconciliation.check_conflicts(
            owner_id, body.start_time, body.end_time
        )
        return {
            "success": True,
            "has_conflicts": bool(conflicts),
            "count": len(conflicts),
            "conflicts": [c.model_dump(mode="json") for c in conflicts],
        }

    # ── Availability ───────────────────────────────────────────

    @app.get("/links/{link_key}/slots")
    async def get_slots(link_key: str, start: datetime, end: datetime):
        slots = await engine.availability.available_slots(link_key, start, end)
        data = [SlotResponse(start=s.start, end=s.end).model_dump(mode="json") for s in slots]
        return {"success": True, "count": len(data), "data": data}

    # ── Bookings ───────────────────────────────────────────────

    @app.post("/links/{link_key}/bookings", status_code=201)
    async def create_booking(link_key: str, body: BookingRequest):
        result = await engine.bookings.create_booking(
            link_key,
            client_name=body.client_name,
            client_email=body.client_email,
            start_time=body.start_time,
            answers=body.answers,
        )
        return {"success": True, **result.to_dict()}

    @app.get("/bookings/{booking_id}", dependencies=[Depends(require_admin_token)])
    async def get_booking(booking_id: str):
        booking = await engine.store.get_booking(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        effective = booking.effective_status()
        return {
            "success": True,
            "booking": booking.model_dump(mode="json"),
            "effective_status": effective.value if effective else None,
        }

    @app.post("/bookings/{booking_id}/approve", dependencies=[Depends(require_admin_token)])
    async def approve_booking(booking_id: str, body: ApproveRequest):
        result = await engine.bookings.approve(
            booking_id, actor=body.actor, expected_version=body.expected_version
        )
        return {"success": True, **result.to_dict()}

    @app.post("/bookings/{booking_id}/reject", dependencies=[Depends(require_admin_token)])
    async def reject_booking(booking_id: str, body: RejectRequest):
        result = await engine.bookings.reject(
            booking_id,
            reason=body.reason,
            actor=body.actor,
            expected_version=body.expected_version,
        )
        return {"success": True, **result.to_dict()}

    @app.post("/bookings/{booking_id}/cancel", dependencies=[Depends(require_admin_token)])
    async def cancel_booking(booking_id: str, body: CancelRequest):
        result = await engine.bookings.cancel(
            booking_id,
            actor=body.actor,
            purge=body.purge,
            expected_version=body.expected_version,
        )
        return {"success": True, **result.to_dict()}

    # ── Calendar push notifications ────────────────────────────

    @app.post("/calendar/notifications")
    async def calendar_notification(
        request: Request,
        x_goog_channel_id: Optional[str] = Header(default=None),
        x_goog_resource_state: Optional[str] = Header(default=None),
        x_goog_message_number: Optional[str] = Header(default=None),
    ) -> JSONResponse:
        """Acknowledge a change notification and schedule reconciliation.

        Google delivers the channel id in headers with an empty body; other
        senders may post ``{"calendar_id": ..., "marker": ...}``.
        """
        if x_goog_resource_state == "sync":
            # Channel handshake, nothing changed yet
            return JSONResponse({"success": True, "scheduled": False})

        if x_goog_channel_id:
            identifier, marker = x_goog_channel_id, x_goog_message_number or ""
        else:
            try:
                payload = ChangeNotification.model_validate(await request.json())
            except ValueError as exc:
                raise ValidationError(f"Malformed change notification: {exc}") from exc
            identifier, marker = payload.calendar_id, payload.marker

        scheduled = await engine.reconciliation.notify(identifier, marker)
        return JSONResponse({"success": True, "scheduled": scheduled})

    return app


# ── Module-level app instance for uvicorn ──────────────────────

app = create_app()


if __name__ == "__main__":
    import uvicorn

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["default"]["fmt"] = (
        "%(asctime)s %(name)-12s %(levelname)-8s %(message)s"
    )

    uvicorn.run(
        "slotbook.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=log_config,
    )
