"""Owner-side configuration of availability windows and booking links."""

from __future__ import annotations

import logging
from datetime import time
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from slotbook.errors import NotFoundError, ValidationError
from slotbook.models.link import Link
from slotbook.models.window import Window
from slotbook.store.base import SchedulingStore

log = logging.getLogger("slotbook.configuration")


class LinkConfiguration:
    def __init__(self, store: SchedulingStore) -> None:
        self._store = store

    async def add_window(self, owner_id: str, **fields: Any) -> Window:
        try:
            window = Window(owner_id=owner_id, **fields)
        except PydanticValidationError as exc:
            raise ValidationError(str(exc)) from exc
        if not window.is_valid:
            # Stored as entered, but it will never produce slots
            log.warning(
                "Window %s for owner %s ends at or before it starts; it offers no slots",
                window.id, owner_id,
            )
        return await self._store.save_window(window)

    async def _window(self, window_id: str) -> Window:
        window = await self._store.get_window(window_id)
        if window is None:
            raise NotFoundError(f"Window {window_id} not found")
        return window

    async def update_window_bounds(
        self, window_id: str, start_time: Optional[time] = None, end_time: Optional[time] = None
    ) -> Window:
        """Move a window's bounds; its identity and weekday stay the same."""
        window = await self._window(window_id)
        updated = window.model_copy(
            update={
                "start_time": start_time if start_time is not None else window.start_time,
                "end_time": end_time if end_time is not None else window.end_time,
            }
        )
        return await self._store.save_window(updated)

    async def set_window_active(self, window_id: str, active: bool) -> Window:
        window = await self._window(window_id)
        return await self._store.save_window(window.model_copy(update={"active": active}))

    async def create_link(self, owner_id: str, **fields: Any) -> Link:
        try:
            link = Link(owner_id=owner_id, **fields)
        except PydanticValidationError as exc:
            raise ValidationError(str(exc)) from exc
        try:
            await self._store.save_link(link)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        log.info("Link %s created for owner %s", link.link_key, owner_id)
        return link

    async def set_link_active(self, link_key: str, active: bool) -> Link:
        link = await self._store.get_link_by_key(link_key)
        if link is None:
            raise NotFoundError(f"Booking link {link_key!r} not found")
        return await self._store.save_link(link.model_copy(update={"active": active}))
