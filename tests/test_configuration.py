"""Tests for owner configuration of windows and links."""

from datetime import time

import pytest

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from slotbook.configuration import LinkConfiguration
from slotbook.errors import NotFoundError, ValidationError

from conftest import OWNER


@pytest.fixture
def config(store):
    return LinkConfiguration(store)


class TestWindows:
    async def test_add_window_by_name(self, config, store):
        window = await config.add_window(
            OWNER, day_of_week="Tuesday", start_time=time(13), end_time=time(17), timezone="UTC"
        )
        assert window.day_of_week == 1
        assert (await store.get_window(window.id)) == window

    async def test_invalid_window_is_stored(self, config, store):
        window = await config.add_window(
            OWNER, day_of_week=0, start_time=time(17), end_time=time(9), timezone="UTC"
        )
        assert not window.is_valid
        assert await store.get_window(window.id) is not None

    async def test_unknown_weekday(self, config):
        with pytest.raises(ValidationError):
            await config.add_window(OWNER, day_of_week="someday", start_time=time(9), end_time=time(10))

    async def test_unknown_timezone(self, config):
        with pytest.raises(ValidationError):
            await config.add_window(
                OWNER, day_of_week=0, start_time=time(9), end_time=time(10), timezone="Mars/Olympus"
            )

    async def test_update_bounds_keeps_identity(self, config, monday_window):
        updated = await config.update_window_bounds(monday_window.id, end_time=time(15))
        assert updated.id == monday_window.id
        assert updated.day_of_week == monday_window.day_of_week
        assert updated.start_time == time(9)
        assert updated.end_time == time(15)

    async def test_deactivate(self, config, store, monday_window):
        await config.set_window_active(monday_window.id, False)
        assert await store.list_windows(OWNER) == []
        assert len(await store.list_windows(OWNER, active_only=False)) == 1

    async def test_missing_window(self, config):
        with pytest.raises(NotFoundError):
            await config.set_window_active("nope", False)


class TestLinks:
    async def test_create_link(self, config, store):
        link = await config.create_link(OWNER, meeting_name="Intro", duration_minutes=30)
        assert len(link.link_key) == 8
        assert (await store.get_link_by_key(link.link_key)).id == link.id

    async def test_duration_bounds(self, config):
        with pytest.raises(ValidationError):
            await config.create_link(OWNER, duration_minutes=10)
        with pytest.raises(ValidationError):
            await config.create_link(OWNER, duration_minutes=300)

    async def test_duplicate_key(self, config):
        await config.create_link(OWNER, link_key="intro", duration_minutes=30)
        with pytest.raises(ValidationError):
            await config.create_link(OWNER, link_key="intro", duration_minutes=45)

    async def test_deactivate_link(self, config):
        await config.create_link(OWNER, link_key="intro", duration_minutes=30)
        link = await config.set_link_active("intro", False)
        assert not link.active
        assert not link.is_bookable()

    async def test_missing_link(self, config):
        with pytest.raises(NotFoundError):
            await config.set_link_active("nope", True)
