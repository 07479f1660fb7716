"""SQLite database operations for River of News."""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

from river_of_news.errors import DuplicateFeedError
from river_of_news.models import (
    STATUS_HEALTHY,
    STATUS_UNHEALTHY,
    Feed,
    Item,
    ItemDetail,
    ItemSource,
    RiverItem,
)

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS feeds (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    url TEXT NOT NULL,
    normalized_url TEXT UNIQUE NOT NULL,
    title TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'healthy' CHECK (status IN ('healthy', 'unhealthy')),
    consecutive_failures INTEGER NOT NULL DEFAULT 0 CHECK (consecutive_failures >= 0),
    last_error TEXT,
    last_polled_at TEXT,
    last_success_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    canonical_key TEXT UNIQUE NOT NULL,
    guid TEXT,
    url TEXT NOT NULL,
    canonical_url TEXT,
    image_url TEXT,
    title TEXT NOT NULL,
    snippet TEXT NOT NULL DEFAULT '',
    published_at TEXT NOT NULL,
    ingested_at TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS item_sources (
    item_id INTEGER NOT NULL REFERENCES items(id) ON DELETE CASCADE,
    feed_id INTEGER NOT NULL REFERENCES feeds(id) ON DELETE CASCADE,
    source_item_guid TEXT NOT NULL DEFAULT '',
    source_item_url TEXT,
    first_seen_at TEXT NOT NULL,
    PRIMARY KEY (item_id, feed_id)
);

CREATE INDEX IF NOT EXISTS idx_items_river
    ON items(published_at DESC, ingested_at DESC, id DESC);
CREATE INDEX IF NOT EXISTS idx_item_sources_feed_id ON item_sources(feed_id);
"""

RIVER_COLUMNS = """
    i.id, i.title, i.url, i.canonical_url, i.image_url, i.snippet,
    i.published_at, i.ingested_at
"""


class Database:
    """SQLite database manager for feeds, items and item sources.

    The connection runs in autocommit mode; multi-statement writes go
    through ``transaction()``.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Open database connection and initialize schema."""
        self._conn = sqlite3.connect(
            self.db_path, check_same_thread=False, isolation_level=None
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(SCHEMA_SQL)

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed statements atomically; roll back on any error."""
        self.conn.execute("BEGIN IMMEDIATE")
        try:
            yield self.conn
        except BaseException:
            self.conn.execute("ROLLBACK")
            raise
        self.conn.execute("COMMIT")

    # --- Feed operations ---

    def add_feed(self, feed: Feed) -> Feed:
        """Insert a new feed and return it with its assigned id.

        Raises:
            DuplicateFeedError: If a feed with the same normalized URL exists.
        """
        try:
            cursor = self.conn.execute(
                """INSERT INTO feeds (url, normalized_url, title, status,
                   consecutive_failures, last_error, last_polled_at,
                   last_success_at, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    feed.url,
                    feed.normalized_url,
                    feed.title,
                    feed.status,
                    feed.consecutive_failures,
                    feed.last_error,
                    to_timestamp(feed.last_polled_at),
                    to_timestamp(feed.last_success_at),
                    to_timestamp(feed.created_at),
                    to_timestamp(feed.updated_at),
                ),
            )
        except sqlite3.IntegrityError:
            raise DuplicateFeedError("Feed URL already exists.")
        feed.id = cursor.lastrowid
        return feed

    def get_feed(self, feed_id: int) -> Feed | None:
        """Look up a feed by its id."""
        row = self.conn.execute(
            "SELECT * FROM feeds WHERE id = ?", (feed_id,)
        ).fetchone()
        return _row_to_feed(row) if row else None

    def get_all_feeds(self) -> list[Feed]:
        """Return all feeds ordered for display."""
        rows = self.conn.execute(
            """SELECT * FROM feeds
               ORDER BY title COLLATE NOCASE, normalized_url COLLATE NOCASE"""
        ).fetchall()
        return [_row_to_feed(r) for r in rows]

    def get_feeds_for_refresh(self) -> list[Feed]:
        """Return all feeds in refresh order."""
        rows = self.conn.execute(
            "SELECT * FROM feeds ORDER BY normalized_url COLLATE NOCASE, id"
        ).fetchall()
        return [_row_to_feed(r) for r in rows]

    def delete_feed(self, feed_id: int) -> bool:
        """Delete a feed and the items only it reported. Returns True if deleted."""
        with self.transaction() as conn:
            orphans = conn.execute(
                """DELETE FROM items
                   WHERE id IN (
                       SELECT s1.item_id FROM item_sources s1
                       WHERE s1.feed_id = ?
                       AND NOT EXISTS (
                           SELECT 1 FROM item_sources s2
                           WHERE s2.item_id = s1.item_id AND s2.feed_id != ?
                       )
                   )""",
                (feed_id, feed_id),
            )
            cursor = conn.execute("DELETE FROM feeds WHERE id = ?", (feed_id,))
        if cursor.rowcount > 0:
            logger.info(
                "Deleted feed %s and %d orphaned items", feed_id, orphans.rowcount
            )
        return cursor.rowcount > 0

    def mark_feed_succeeded(self, feed_id: int, timestamp: datetime) -> None:
        """Reset a feed's failure state after a successful ingest."""
        now = to_timestamp(timestamp)
        self.conn.execute(
            """UPDATE feeds SET status = ?, consecutive_failures = 0,
               last_error = NULL, last_polled_at = ?, last_success_at = ?,
               updated_at = ?
               WHERE id = ?""",
            (STATUS_HEALTHY, now, now, now, feed_id),
        )

    def mark_feed_failed(
        self,
        feed_id: int,
        error_message: str,
        unhealthy_threshold: int,
        timestamp: datetime,
    ) -> None:
        """Increment a feed's failure count and store the error.

        The feed turns unhealthy once the count reaches ``unhealthy_threshold``;
        only a successful poll turns it healthy again.
        """
        now = to_timestamp(timestamp)
        self.conn.execute(
            """UPDATE feeds SET consecutive_failures = consecutive_failures + 1,
               status = CASE WHEN consecutive_failures + 1 >= ? THEN ? ELSE status END,
               last_error = ?, last_polled_at = ?, updated_at = ?
               WHERE id = ?""",
            (unhealthy_threshold, STATUS_UNHEALTHY, error_message, now, now, feed_id),
        )

    # --- Item operations ---

    def find_item_id(self, canonical_key: str) -> int | None:
        """Return the id of the item with this canonical key, if any."""
        row = self.conn.execute(
            "SELECT id FROM items WHERE canonical_key = ?", (canonical_key,)
        ).fetchone()
        return row["id"] if row else None

    def get_item_by_key(self, canonical_key: str) -> Item | None:
        """Look up an item by its canonical key."""
        row = self.conn.execute(
            "SELECT * FROM items WHERE canonical_key = ?", (canonical_key,)
        ).fetchone()
        return _row_to_item(row) if row else None

    def insert_item(self, item: Item) -> int | None:
        """Insert an item. Returns its id, or None if the key already exists."""
        cursor = self.conn.execute(
            """INSERT INTO items (canonical_key, guid, url, canonical_url,
               image_url, title, snippet, published_at, ingested_at,
               created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(canonical_key) DO NOTHING""",
            (
                item.canonical_key,
                item.guid,
                item.url,
                item.canonical_url,
                item.image_url,
                item.title,
                item.snippet,
                to_timestamp(item.published_at),
                to_timestamp(item.ingested_at),
                to_timestamp(item.created_at),
                to_timestamp(item.updated_at),
            ),
        )
        if cursor.rowcount == 0:
            return None
        item.id = cursor.lastrowid
        return item.id

    def add_item_source(self, source: ItemSource) -> bool:
        """Record that a feed reported an item. Returns False if already recorded."""
        cursor = self.conn.execute(
            """INSERT INTO item_sources (item_id, feed_id, source_item_guid,
               source_item_url, first_seen_at)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(item_id, feed_id) DO NOTHING""",
            (
                source.item_id,
                source.feed_id,
                source.source_item_guid,
                source.source_item_url,
                to_timestamp(source.first_seen_at),
            ),
        )
        return cursor.rowcount > 0

    def get_item_sources(self, item_id: int) -> list[ItemSource]:
        """Return the sources of an item in first-seen order."""
        rows = self.conn.execute(
            """SELECT * FROM item_sources WHERE item_id = ?
               ORDER BY first_seen_at, feed_id""",
            (item_id,),
        ).fetchall()
        return [_row_to_item_source(r) for r in rows]

    def get_item_count(self) -> int:
        row = self.conn.execute("SELECT COUNT(*) AS cnt FROM items").fetchone()
        return row["cnt"] if row else 0

    def get_item_source_count(self) -> int:
        row = self.conn.execute("SELECT COUNT(*) AS cnt FROM item_sources").fetchone()
        return row["cnt"] if row else 0

    def delete_items_published_before(self, cutoff: datetime) -> int:
        """Delete items published before ``cutoff``. Returns count of deleted items."""
        cursor = self.conn.execute(
            "DELETE FROM items WHERE published_at < ?", (to_timestamp(cutoff),)
        )
        return cursor.rowcount

    # --- River queries ---

    def query_river(
        self,
        fetch_limit: int,
        feed_ids: list[int] | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        after: tuple[str, str, int] | None = None,
    ) -> list[RiverItem]:
        """Return river rows in (published_at, ingested_at, id) descending order.

        ``after`` is the (published_at, ingested_at, id) tuple of the last row
        already served; only rows strictly after it in river order qualify.
        """
        query = f"SELECT {RIVER_COLUMNS} FROM items i WHERE 1=1"
        params: list = []

        if start_date is not None:
            query += " AND i.published_at >= ?"
            params.append(to_timestamp(start_date))
        if end_date is not None:
            query += " AND i.published_at <= ?"
            params.append(to_timestamp(end_date))
        if after is not None:
            published_at, ingested_at, item_id = after
            query += """ AND (
                i.published_at < ?
                OR (i.published_at = ? AND i.ingested_at < ?)
                OR (i.published_at = ? AND i.ingested_at = ? AND i.id < ?)
            )"""
            params.extend(
                [published_at, published_at, ingested_at, published_at, ingested_at, item_id]
            )
        if feed_ids:
            placeholders = ",".join("?" for _ in feed_ids)
            query += f""" AND EXISTS (
                SELECT 1 FROM item_sources s
                WHERE s.item_id = i.id AND s.feed_id IN ({placeholders})
            )"""
            params.extend(feed_ids)

        query += " ORDER BY i.published_at DESC, i.ingested_at DESC, i.id DESC LIMIT ?"
        params.append(fetch_limit)

        rows = self.conn.execute(query, params).fetchall()
        names = self._source_names([r["id"] for r in rows])
        return [_row_to_river_item(r, names.get(r["id"], [])) for r in rows]

    def get_item_detail(self, item_id: int) -> ItemDetail | None:
        """Return a single river item with its original link."""
        row = self.conn.execute(
            f"SELECT {RIVER_COLUMNS} FROM items i WHERE i.id = ?", (item_id,)
        ).fetchone()
        if row is None:
            return None
        names = self._source_names([item_id])
        return ItemDetail(
            **vars(_row_to_river_item(row, names.get(item_id, []))),
            url=row["url"],
        )

    def _source_names(self, item_ids: list[int]) -> dict[int, list[str]]:
        """Map item ids to their distinct source feed names, first seen first."""
        if not item_ids:
            return {}
        placeholders = ",".join("?" for _ in item_ids)
        rows = self.conn.execute(
            f"""SELECT s.item_id, COALESCE(f.title, f.normalized_url) AS name
                FROM item_sources s
                JOIN feeds f ON f.id = s.feed_id
                WHERE s.item_id IN ({placeholders})
                ORDER BY s.first_seen_at, s.feed_id""",
            item_ids,
        ).fetchall()
        names: dict[int, list[str]] = {}
        for r in rows:
            item_names = names.setdefault(r["item_id"], [])
            if r["name"] not in item_names:
                item_names.append(r["name"])
        return names


# --- Helper functions ---


def to_timestamp(dt: datetime | None) -> str | None:
    """Convert a datetime to a fixed-width UTC ISO string for storage.

    Naive datetimes are taken as UTC. Fixed width keeps string order equal
    to chronological order in SQL comparisons.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_timestamp(s: str | None) -> datetime | None:
    """Convert a stored ISO string back to an aware datetime."""
    if not s:
        return None
    return datetime.fromisoformat(s)


def _row_to_feed(row: sqlite3.Row) -> Feed:
    """Convert a database row to a Feed dataclass."""
    return Feed(
        id=row["id"],
        url=row["url"],
        normalized_url=row["normalized_url"],
        title=row["title"],
        status=row["status"],
        consecutive_failures=row["consecutive_failures"],
        last_error=row["last_error"],
        last_polled_at=from_timestamp(row["last_polled_at"]),
        last_success_at=from_timestamp(row["last_success_at"]),
        created_at=from_timestamp(row["created_at"]),
        updated_at=from_timestamp(row["updated_at"]),
    )


def _row_to_item(row: sqlite3.Row) -> Item:
    """Convert a database row to an Item dataclass."""
    return Item(
        id=row["id"],
        canonical_key=row["canonical_key"],
        guid=row["guid"],
        url=row["url"],
        canonical_url=row["canonical_url"],
        image_url=row["image_url"],
        title=row["title"],
        snippet=row["snippet"],
        published_at=from_timestamp(row["published_at"]),
        ingested_at=from_timestamp(row["ingested_at"]),
        created_at=from_timestamp(row["created_at"]),
        updated_at=from_timestamp(row["updated_at"]),
    )


def _row_to_item_source(row: sqlite3.Row) -> ItemSource:
    return ItemSource(
        item_id=row["item_id"],
        feed_id=row["feed_id"],
        source_item_guid=row["source_item_guid"],
        source_item_url=row["source_item_url"],
        first_seen_at=from_timestamp(row["first_seen_at"]),
    )


def _row_to_river_item(row: sqlite3.Row, source_names: list[str]) -> RiverItem:
    return RiverItem(
        id=row["id"],
        title=row["title"],
        canonical_url=row["canonical_url"],
        image_url=row["image_url"],
        snippet=row["snippet"],
        published_at=from_timestamp(row["published_at"]),
        ingested_at=from_timestamp(row["ingested_at"]),
        source_names=source_names,
    )
