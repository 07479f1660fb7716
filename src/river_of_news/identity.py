"""Canonical identity keys used to merge items across feeds."""

import hashlib
from datetime import datetime

from river_of_news.feed_parser import ParsedItem
from river_of_news.urls import canonicalize_article_url


def get_source_guid(item: ParsedItem) -> str | None:
    """Return the item's explicit id, else its feed-native guid, trimmed."""
    for candidate in (item.id, item.guid):
        if candidate and candidate.strip():
            return candidate.strip()
    return None


def build_canonical_key(feed_id: int, item: ParsedItem) -> str:
    """Derive the identity key deciding whether an item is new or a duplicate.

    Guids merge across feeds, then canonical article URLs. Items with
    neither get a content fingerprint that includes ``feed_id`` and so
    only ever dedup within their own feed.
    """
    source_guid = get_source_guid(item)
    if source_guid:
        return f"guid:{source_guid}"

    canonical_url = canonicalize_article_url(item.link)
    if canonical_url:
        return f"url:{canonical_url}"

    payload = "|".join(
        (
            str(feed_id),
            item.title or "",
            item.link or "",
            _isoformat(item.published),
            _isoformat(item.updated),
            item.plain_text or "",
        )
    )
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return f"unique:{digest}"


def _isoformat(dt: datetime | None) -> str:
    return dt.isoformat() if dt else ""
