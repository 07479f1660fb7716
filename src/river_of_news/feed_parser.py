"""RSS/Atom feed fetching and parsing using requests and feedparser."""

import logging
from calendar import timegm
from dataclasses import dataclass, field
from datetime import datetime, timezone
from time import struct_time
from urllib.parse import urlparse

import feedparser
import requests

from river_of_news.errors import FeedFetchError

logger = logging.getLogger(__name__)

USER_AGENT = "river-of-news/0.1"
HTML_TYPES = ("text/html", "application/xhtml+xml")


@dataclass
class Enclosure:
    """A file attached to a feed entry."""

    url: str
    mime_type: str | None = None


@dataclass
class ParsedItem:
    """One entry of a parsed feed, reduced to the fields ingestion needs."""

    id: str | None = None
    guid: str | None = None
    title: str | None = None
    link: str | None = None
    published: datetime | None = None
    updated: datetime | None = None
    plain_text: str | None = None
    html: str | None = None
    media_thumbnail_url: str | None = None
    media_url: str | None = None
    enclosures: list[Enclosure] = field(default_factory=list)


@dataclass
class ParsedFeed:
    """Result of parsing an RSS/Atom feed."""

    title: str
    items: list[ParsedItem]
    warnings: list[str] = field(default_factory=list)


def fetch_and_parse(url: str, timeout: float = 10.0) -> ParsedFeed:
    """Fetch and parse an RSS or Atom feed from a URL.

    Args:
        url: The feed URL to fetch and parse.
        timeout: Seconds to wait for the server before giving up.

    Returns:
        ParsedFeed with feed metadata and items.

    Raises:
        FeedFetchError: If the URL is invalid, unreachable, or not a valid feed.
    """
    content = download_feed(url, timeout)
    return parse_feed(content)


def download_feed(url: str, timeout: float) -> bytes:
    """Download the raw feed document."""
    _validate_url(url)

    try:
        response = requests.get(
            url,
            headers={"User-Agent": USER_AGENT},
            timeout=timeout,
        )
    except requests.Timeout:
        raise FeedFetchError(f"Timed out after {timeout:g}s")
    except requests.RequestException as e:
        raise FeedFetchError(f"Could not reach URL: {e}")

    if response.status_code in (401, 403):
        raise FeedFetchError(
            "Feed requires authentication. Ensure the URL is publicly accessible."
        )

    if response.status_code >= 400:
        raise FeedFetchError(f"Could not reach URL: HTTP {response.status_code}")

    return response.content


def parse_feed(content: bytes | str) -> ParsedFeed:
    """Parse a downloaded feed document.

    Raises:
        FeedFetchError: If the document is not an RSS or Atom feed.
    """
    parsed = feedparser.parse(content)

    if not parsed.get("version") and not parsed.entries:
        raise FeedFetchError("URL does not point to a valid RSS or Atom feed")

    warnings: list[str] = []
    if parsed.bozo:
        warnings.append(
            f"Feed has formatting issues: {parsed.get('bozo_exception')}"
        )

    items = []
    for entry in parsed.entries:
        try:
            items.append(_extract_item(entry))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            warnings.append(f"Skipping malformed entry: {e}")

    for warning in warnings:
        logger.debug("%s", warning)

    return ParsedFeed(
        title=parsed.feed.get("title") or "Untitled Feed",
        items=items,
        warnings=warnings,
    )


def _validate_url(url: str) -> None:
    """Validate that the URL has a valid format."""
    try:
        result = urlparse(url)
    except ValueError:
        raise FeedFetchError("Invalid URL format")
    if not result.scheme or not result.netloc:
        raise FeedFetchError("Invalid URL format")
    if result.scheme not in ("http", "https"):
        raise FeedFetchError("Invalid URL format: only http and https are supported")


def _extract_item(entry) -> ParsedItem:
    """Build a ParsedItem from a feedparser entry."""
    plain_text, html = _extract_bodies(entry)

    return ParsedItem(
        id=entry.get("id"),
        guid=entry.get("guid"),
        title=entry.get("title"),
        link=entry.get("link"),
        published=_parse_date(entry, "published_parsed"),
        updated=_parse_date(entry, "updated_parsed"),
        plain_text=plain_text,
        html=html,
        media_thumbnail_url=_first_url(entry.get("media_thumbnail")),
        media_url=_first_url(entry.get("media_content")),
        enclosures=[
            Enclosure(url=enclosure.get("href") or enclosure.get("url"), mime_type=enclosure.get("type"))
            for enclosure in entry.get("enclosures", [])
            if enclosure.get("href") or enclosure.get("url")
        ],
    )


def _extract_bodies(entry) -> tuple[str | None, str | None]:
    """Return the first plain-text body and the first HTML body of an entry."""
    candidates = list(entry.get("content") or [])
    if entry.get("summary_detail"):
        candidates.append(entry["summary_detail"])
    elif entry.get("summary"):
        candidates.append({"type": "text/html", "value": entry["summary"]})

    plain_text = None
    html = None
    for candidate in candidates:
        value = candidate.get("value")
        if not value:
            continue
        content_type = (candidate.get("type") or "").lower()
        if content_type in HTML_TYPES:
            html = html or value
        elif content_type == "text/plain":
            plain_text = plain_text or value
    return plain_text, html


def _first_url(media: list | None) -> str | None:
    for entry in media or []:
        url = entry.get("url")
        if url:
            return url
    return None


def _parse_date(entry, field_name: str) -> datetime | None:
    """Parse a feedparser time struct (always UTC) into an aware datetime."""
    # Raw lookup; FeedParserDict.get maps updated_parsed onto published_parsed.
    time_struct = dict.get(entry, field_name)
    if isinstance(time_struct, struct_time):
        try:
            return datetime.fromtimestamp(timegm(time_struct), tz=timezone.utc)
        except (ValueError, OverflowError):
            return None
    return None
