"""Tests for the SQLite storage layer."""

from datetime import timedelta

import pytest

from river_of_news.database import Database
from river_of_news.errors import DuplicateFeedError
from river_of_news.models import STATUS_HEALTHY, STATUS_UNHEALTHY, Feed, Item, ItemSource

from conftest import FIXED_NOW


def _item(key: str, published_at=FIXED_NOW) -> Item:
    return Item(
        canonical_key=key,
        url=f"https://example.com/{key}",
        title=key,
        snippet="",
        published_at=published_at,
        ingested_at=FIXED_NOW,
    )


def _link(db, item_id: int, feed_id: int) -> bool:
    return db.add_item_source(
        ItemSource(item_id=item_id, feed_id=feed_id, source_item_guid="", first_seen_at=FIXED_NOW)
    )


class TestFeeds:
    def test_add_assigns_id(self, db):
        feed = db.add_feed(Feed(url="https://example.com/rss", normalized_url="https://example.com/rss", title="Example"))

        assert feed.id is not None
        stored = db.get_feed(feed.id)
        assert stored.title == "Example"
        assert stored.status == STATUS_HEALTHY
        assert stored.consecutive_failures == 0

    def test_duplicate_normalized_url_rejected(self, db, add_feed):
        add_feed("https://example.com/rss")

        with pytest.raises(DuplicateFeedError):
            add_feed("https://example.com/rss", title="Again")

    def test_listing_is_ordered_by_title_case_insensitively(self, db, add_feed):
        add_feed("https://c.example.com/rss", "zeta")
        add_feed("https://a.example.com/rss", "Alpha")
        add_feed("https://b.example.com/rss", "beta")

        assert [f.title for f in db.get_all_feeds()] == ["Alpha", "beta", "zeta"]

    def test_get_missing_feed(self, db):
        assert db.get_feed(42) is None

    def test_delete_missing_feed(self, db):
        assert db.delete_feed(42) is False

    def test_delete_removes_orphans_and_keeps_shared_items(self, db, add_feed):
        doomed = add_feed("https://a.example.com/rss")
        survivor = add_feed("https://b.example.com/rss")
        orphan_id = db.insert_item(_item("orphan"))
        shared_id = db.insert_item(_item("shared"))
        _link(db, orphan_id, doomed.id)
        _link(db, shared_id, doomed.id)
        _link(db, shared_id, survivor.id)

        assert db.delete_feed(doomed.id) is True

        assert db.get_feed(doomed.id) is None
        assert db.get_item_by_key("orphan") is None
        assert db.get_item_by_key("shared") is not None
        assert [s.feed_id for s in db.get_item_sources(shared_id)] == [survivor.id]


class TestHealth:
    def test_failures_accumulate_until_threshold(self, db, add_feed):
        feed = add_feed("https://example.com/rss")

        for _ in range(2):
            db.mark_feed_failed(feed.id, "HTTP 500", 3, FIXED_NOW)
        assert db.get_feed(feed.id).status == STATUS_HEALTHY

        db.mark_feed_failed(feed.id, "HTTP 502", 3, FIXED_NOW)
        stored = db.get_feed(feed.id)
        assert stored.status == STATUS_UNHEALTHY
        assert stored.consecutive_failures == 3
        assert stored.last_error == "HTTP 502"
        assert stored.last_polled_at == FIXED_NOW

    def test_success_resets_state(self, db, add_feed):
        feed = add_feed("https://example.com/rss", status=STATUS_UNHEALTHY, consecutive_failures=5, last_error="boom")
        later = FIXED_NOW + timedelta(minutes=1)

        db.mark_feed_succeeded(feed.id, later)

        stored = db.get_feed(feed.id)
        assert stored.status == STATUS_HEALTHY
        assert stored.consecutive_failures == 0
        assert stored.last_error is None
        assert stored.last_polled_at == later
        assert stored.last_success_at == later


class TestItems:
    def test_insert_is_idempotent_per_key(self, db):
        first = db.insert_item(_item("k1"))

        assert first is not None
        assert db.insert_item(_item("k1")) is None
        assert db.find_item_id("k1") == first
        assert db.get_item_count() == 1

    def test_item_source_recorded_once(self, db, add_feed):
        feed = add_feed("https://example.com/rss")
        item_id = db.insert_item(_item("k1"))

        assert _link(db, item_id, feed.id) is True
        assert _link(db, item_id, feed.id) is False
        assert db.get_item_source_count() == 1

    def test_retention_cascades_to_sources(self, db, add_feed):
        feed = add_feed("https://example.com/rss")
        old_id = db.insert_item(_item("old", FIXED_NOW - timedelta(days=31)))
        new_id = db.insert_item(_item("new", FIXED_NOW - timedelta(days=29)))
        _link(db, old_id, feed.id)
        _link(db, new_id, feed.id)

        deleted = db.delete_items_published_before(FIXED_NOW - timedelta(days=30))

        assert deleted == 1
        assert db.get_item_by_key("old") is None
        assert db.get_item_sources(old_id) == []
        assert db.get_item_source_count() == 1

    def test_transaction_rolls_back_on_error(self, db):
        with pytest.raises(RuntimeError):
            with db.transaction():
                db.insert_item(_item("k1"))
                raise RuntimeError("fail")

        assert db.get_item_count() == 0


def test_not_connected_raises(tmp_db_path):
    with pytest.raises(RuntimeError, match="not connected"):
        Database(tmp_db_path).conn
