"""JSON operations consumed by the River of News UI and CRUD layer."""

import json
from dataclasses import asdict
from datetime import datetime, timezone

from river_of_news.config import DEFAULT_MAX_PAGE_SIZE
from river_of_news.database import Database, to_timestamp
from river_of_news.errors import (
    DuplicateFeedError,
    InvalidQueryError,
    InvalidUrlError,
    NotFoundError,
)
from river_of_news.ingestion import FeedIngestionService
from river_of_news.models import Feed, RiverItem
from river_of_news.river import RiverFilter, get_item as get_river_item, query_items
from river_of_news.urls import normalize_feed_url

# Module-level references, set during application startup
_db: Database | None = None
_service: FeedIngestionService | None = None


def set_database(db: Database) -> None:
    """Set the database instance used by all operations."""
    global _db
    _db = db


def set_ingestion_service(service: FeedIngestionService) -> None:
    """Set the ingestion service used by the refresh operations."""
    global _service
    _service = service


def _get_db() -> Database:
    """Get the database instance, raising if not set."""
    if _db is None:
        raise RuntimeError("Database not initialized. Call set_database() first.")
    return _db


def _get_service() -> FeedIngestionService:
    if _service is None:
        raise RuntimeError(
            "Ingestion service not initialized. Call set_ingestion_service() first."
        )
    return _service


def _error(code: str, message: str) -> str:
    return json.dumps({"status": "error", "error": code, "message": message})


async def refresh_all_feeds() -> str:
    """Refresh every feed now, ignoring the schedule."""
    result = await _get_service().refresh_all_feeds()
    return json.dumps(asdict(result))


async def refresh_due_feeds() -> str:
    """Refresh the feeds whose polling or backoff interval has elapsed."""
    result = await _get_service().refresh_due_feeds()
    return json.dumps(asdict(result))


def get_items(
    feed_ids: str = "",
    start_date: str = "",
    end_date: str = "",
    cursor: str = "",
    limit: int | str | None = None,
) -> str:
    """Get one page of the river.

    Args:
        feed_ids: Optional comma-separated feed ids to restrict the river to.
        start_date: Optional ISO 8601 date; only items published at or after it.
        end_date: Optional ISO 8601 date; only items published at or before it.
        cursor: Optional ``next_cursor`` from the previous page.
        limit: Page size, 1 to the configured maximum (default the maximum).
    """
    db = _get_db()
    max_limit = _service.settings.max_page_size if _service else DEFAULT_MAX_PAGE_SIZE

    try:
        river_filter = RiverFilter(
            feed_ids=_parse_feed_ids(feed_ids),
            start_date=_parse_iso_date(start_date, "start_date"),
            end_date=_parse_iso_date(end_date, "end_date"),
            cursor=cursor or None,
            limit=_parse_limit(limit),
        )
        page = query_items(db, river_filter, max_limit=max_limit)
    except InvalidQueryError as e:
        return _error("bad_request", str(e))

    return json.dumps({
        "items": [_item_payload(item) for item in page.items],
        "next_cursor": page.next_cursor,
        "has_more": page.has_more,
    })


def get_item(item_id: int | str) -> str:
    """Get a single river item by id."""
    db = _get_db()
    try:
        item = get_river_item(db, int(item_id))
    except (NotFoundError, ValueError):
        return _error("not_found", "Item not found.")

    payload = _item_payload(item)
    payload["url"] = item.url
    return json.dumps(payload)


def list_feeds() -> str:
    """List all feeds with their polling health."""
    db = _get_db()
    feeds = db.get_all_feeds()
    return json.dumps({
        "feeds": [_feed_payload(feed) for feed in feeds],
        "total": len(feeds),
    })


def add_feed(url: str, title: str | None = None) -> str:
    """Add a feed by URL.

    Args:
        url: The http(s) URL of the RSS or Atom feed.
        title: Optional display title; defaults to the normalized URL.
    """
    db = _get_db()

    try:
        normalized_url = normalize_feed_url(url or "")
    except InvalidUrlError:
        return _error("invalid_url", "Invalid feed URL.")

    feed = Feed(
        url=url.strip(),
        normalized_url=normalized_url,
        title=(title or "").strip() or normalized_url,
    )
    try:
        saved_feed = db.add_feed(feed)
    except DuplicateFeedError as e:
        return _error("conflict", str(e))

    return json.dumps({"status": "created", "feed": _feed_payload(saved_feed)})


def delete_feed(feed_id: int | str) -> str:
    """Delete a feed and any items no other feed reported."""
    db = _get_db()
    try:
        deleted = db.delete_feed(int(feed_id))
    except ValueError:
        deleted = False
    if not deleted:
        return _error("not_found", "Feed not found.")
    return json.dumps({"status": "deleted", "feed_id": int(feed_id)})


def _item_payload(item: RiverItem) -> dict:
    return {
        "id": item.id,
        "title": item.title,
        "canonical_url": item.canonical_url,
        "image_url": item.image_url,
        "snippet": item.snippet,
        "published_at": to_timestamp(item.published_at),
        "ingested_at": to_timestamp(item.ingested_at),
        "source_names": item.sources,
    }


def _feed_payload(feed: Feed) -> dict:
    return {
        "id": feed.id,
        "url": feed.url,
        "normalized_url": feed.normalized_url,
        "title": feed.title,
        "status": feed.status,
        "consecutive_failures": feed.consecutive_failures,
        "last_error": feed.last_error,
        "last_polled_at": to_timestamp(feed.last_polled_at),
        "last_success_at": to_timestamp(feed.last_success_at),
    }


def _parse_feed_ids(raw: str) -> list[int]:
    """Parse a comma-separated list of feed ids, dropping duplicates."""
    feed_ids: list[int] = []
    for part in (raw or "").split(","):
        part = part.strip()
        if not part:
            continue
        try:
            feed_id = int(part)
        except ValueError:
            raise InvalidQueryError(f"Invalid feed id: {part!r}")
        if feed_id not in feed_ids:
            feed_ids.append(feed_id)
    return feed_ids


def _parse_iso_date(date_str: str, name: str) -> datetime | None:
    """Parse an ISO 8601 date string; naive values are taken as UTC."""
    if not date_str or not date_str.strip():
        return None
    try:
        parsed = datetime.fromisoformat(date_str.strip().replace("Z", "+00:00"))
    except ValueError:
        raise InvalidQueryError(f"Invalid {name}; expected ISO-8601 UTC.")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_limit(limit: int | str | None) -> int | None:
    if limit is None or limit == "":
        return None
    try:
        return int(limit)
    except (TypeError, ValueError):
        raise InvalidQueryError("Invalid limit; expected an integer.")
