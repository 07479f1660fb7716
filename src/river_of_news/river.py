"""Keyset-paginated reads over the merged item river."""

import base64
import binascii
from dataclasses import dataclass, field
from datetime import datetime

from river_of_news.config import DEFAULT_MAX_PAGE_SIZE
from river_of_news.database import Database, from_timestamp, to_timestamp
from river_of_news.errors import InvalidQueryError, NotFoundError
from river_of_news.models import ItemDetail, RiverItem, RiverPage


@dataclass
class RiverFilter:
    """Filters and paging for a river query.

    ``start_date`` and ``end_date`` bound ``published_at`` inclusively.
    ``limit`` defaults to the maximum page size.
    """

    feed_ids: list[int] = field(default_factory=list)
    start_date: datetime | None = None
    end_date: datetime | None = None
    cursor: str | None = None
    limit: int | None = None


def encode_cursor(item: RiverItem) -> str:
    """Encode the ordering tuple of the last served item as an opaque token."""
    text = f"{to_timestamp(item.published_at)}|{to_timestamp(item.ingested_at)}|{item.id}"
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> tuple[str, str, int]:
    """Decode a cursor back into its (published_at, ingested_at, id) tuple.

    Raises:
        InvalidQueryError: If the token is malformed.
    """
    try:
        text = base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8")
        published_at, ingested_at, item_id = text.split("|")
        if not published_at or not ingested_at:
            raise ValueError("empty timestamp")
        # Re-normalize so hand-built tokens compare like stored values.
        return (
            to_timestamp(from_timestamp(published_at)),
            to_timestamp(from_timestamp(ingested_at)),
            int(item_id),
        )
    except (binascii.Error, UnicodeError, ValueError, TypeError):
        raise InvalidQueryError("Invalid cursor.")


def query_items(
    db: Database, river_filter: RiverFilter, max_limit: int = DEFAULT_MAX_PAGE_SIZE
) -> RiverPage:
    """Return one page of the river, newest first.

    Raises:
        InvalidQueryError: For an inverted date range, an out-of-range limit
            or a malformed cursor. Raised before storage is touched.
    """
    start, end = river_filter.start_date, river_filter.end_date
    if start is not None and end is not None and to_timestamp(end) < to_timestamp(start):
        raise InvalidQueryError(
            "Invalid date range; end_date must be on or after start_date."
        )

    limit = max_limit if river_filter.limit is None else river_filter.limit
    if limit <= 0 or limit > max_limit:
        raise InvalidQueryError(
            f"Invalid limit; expected integer in range 1..{max_limit}."
        )

    after = decode_cursor(river_filter.cursor) if river_filter.cursor else None

    rows = db.query_river(
        fetch_limit=limit + 1,
        feed_ids=river_filter.feed_ids,
        start_date=start,
        end_date=end,
        after=after,
    )

    if len(rows) <= limit:
        return RiverPage(items=rows)

    items = rows[:limit]
    return RiverPage(items=items, next_cursor=encode_cursor(items[limit - 1]))


def get_item(db: Database, item_id: int) -> ItemDetail:
    """Return a single item.

    Raises:
        NotFoundError: If no item has this id.
    """
    item = db.get_item_detail(item_id)
    if item is None:
        raise NotFoundError("Item not found.")
    return item
