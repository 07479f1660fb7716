"""Data models for River of News."""

from dataclasses import dataclass, field
from datetime import datetime, timezone

STATUS_HEALTHY = "healthy"
STATUS_UNHEALTHY = "unhealthy"


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass
class Feed:
    """Represents a subscribed RSS/Atom source and its polling health."""

    url: str
    normalized_url: str
    title: str
    status: str = STATUS_HEALTHY
    consecutive_failures: int = 0
    last_error: str | None = None
    last_polled_at: datetime | None = None
    last_success_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    id: int | None = None


@dataclass
class Item:
    """A deduplicated river entry, created once per canonical key."""

    canonical_key: str
    url: str
    title: str
    snippet: str
    published_at: datetime
    guid: str | None = None
    canonical_url: str | None = None
    image_url: str | None = None
    ingested_at: datetime = field(default_factory=utcnow)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    id: int | None = None


@dataclass
class ItemSource:
    """Records that a feed reported an item."""

    item_id: int
    feed_id: int
    source_item_guid: str
    source_item_url: str | None = None
    first_seen_at: datetime = field(default_factory=utcnow)


@dataclass
class RiverItem:
    """An item as served on a river page."""

    id: int
    title: str
    canonical_url: str | None
    image_url: str | None
    snippet: str
    published_at: datetime
    ingested_at: datetime
    source_names: list[str] = field(default_factory=list)

    @property
    def sources(self) -> str:
        return ", ".join(self.source_names)


@dataclass
class ItemDetail(RiverItem):
    """A single item with its original link."""

    url: str | None = None


@dataclass
class RiverPage:
    """One page of the river plus the cursor for the next page, if any."""

    items: list[RiverItem]
    next_cursor: str | None = None

    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None


@dataclass
class RefreshResult:
    """Counts from one refresh cycle."""

    status: str = "completed"
    processed: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0
    inserted: int = 0
    merged: int = 0
