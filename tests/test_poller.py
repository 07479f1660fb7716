"""Tests for the retention sweep and background loops."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from river_of_news.config import Settings
from river_of_news.models import Item, RefreshResult
from river_of_news.poller import run_retention_once, start_polling

from conftest import FIXED_NOW


def _insert(db, key: str, age: timedelta) -> None:
    db.insert_item(
        Item(
            canonical_key=key,
            url=f"https://example.com/{key}",
            title=key,
            snippet="",
            published_at=FIXED_NOW - age,
        )
    )


def test_retention_deletes_only_items_outside_window(db, settings):
    _insert(db, "stale", timedelta(days=30, seconds=1))
    _insert(db, "edge", timedelta(days=30))
    _insert(db, "fresh", timedelta(days=1))

    deleted = run_retention_once(db, settings, now=FIXED_NOW)

    assert deleted == 1
    assert db.get_item_by_key("stale") is None
    assert db.get_item_by_key("edge") is not None
    assert db.get_item_by_key("fresh") is not None


def test_retention_window_is_configurable(db):
    _insert(db, "week-old", timedelta(days=7))

    assert run_retention_once(db, Settings(retention_days=3), now=FIXED_NOW) == 1


def test_polling_loop_survives_errors():
    service = AsyncMock()
    service.refresh_due_feeds.side_effect = [RuntimeError("db locked"), RefreshResult(inserted=2)]
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)
        if len(sleeps) == 2:
            raise asyncio.CancelledError

    with patch("river_of_news.poller.asyncio.sleep", side_effect=fake_sleep):
        with pytest.raises(asyncio.CancelledError):
            asyncio.run(start_polling(service, Settings(poll_tick_seconds=7)))

    assert service.refresh_due_feeds.await_count == 2
    assert sleeps == [7, 7]
