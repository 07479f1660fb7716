"""Snippet and image extraction from parsed feed items."""

import re
from urllib.parse import urlsplit

from river_of_news.config import DEFAULT_SNIPPET_LENGTH
from river_of_news.feed_parser import ParsedItem

SNIPPET_LENGTH_LIMIT = DEFAULT_SNIPPET_LENGTH

HTML_TAG_RE = re.compile(r"<[^>]+>")
HTML_IMG_SRC_RE = re.compile(
    r"""<img\b[^>]*\bsrc\s*=\s*['"](?P<url>[^'"]+)['"][^>]*>""",
    re.IGNORECASE,
)


def build_snippet(item: ParsedItem, limit: int = SNIPPET_LENGTH_LIMIT) -> str:
    """Return a plain-text snippet of at most ``limit`` characters plus "...".

    The plain-text body wins over the HTML body. Tags are replaced by spaces.
    """
    candidate = item.plain_text or item.html or ""
    if not candidate.strip():
        return ""

    plain = HTML_TAG_RE.sub(" ", candidate).strip()
    if len(plain) <= limit:
        return plain
    return plain[:limit].rstrip() + "..."


def build_image_url(item: ParsedItem) -> str | None:
    """Pick the best image for an item.

    Media thumbnail, then media content, then the first image enclosure,
    then the first absolute ``<img src>`` in the HTML body.
    """
    media_image = item.media_thumbnail_url or item.media_url
    if media_image and media_image.strip():
        return media_image.strip()

    for enclosure in item.enclosures:
        if enclosure.url and _is_image_mime_type(enclosure.mime_type):
            return enclosure.url

    if not item.html or not item.html.strip():
        return None

    match = HTML_IMG_SRC_RE.search(item.html)
    if not match:
        return None

    candidate = match.group("url").strip()
    return candidate if _is_absolute_url(candidate) else None


def _is_image_mime_type(mime_type: str | None) -> bool:
    return bool(mime_type) and mime_type.strip().lower().startswith("image/")


def _is_absolute_url(url: str) -> bool:
    try:
        result = urlsplit(url)
    except ValueError:
        return False
    return bool(result.scheme) and bool(result.netloc)
