"""Shared test fixtures for River of News tests."""

import os
import tempfile
from datetime import datetime, timezone

import pytest

from river_of_news.config import Settings
from river_of_news.database import Database
from river_of_news.errors import FeedFetchError
from river_of_news.feed_parser import ParsedFeed, ParsedItem
from river_of_news.models import Feed


SAMPLE_RSS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/">
  <channel>
    <title>Test Feed</title>
    <link>https://example.com</link>
    <description>A test RSS feed</description>
    <item>
      <title>First Article</title>
      <link>https://example.com/article-1?utm_source=rss</link>
      <guid>article-1</guid>
      <description>&lt;p&gt;Description of the &lt;b&gt;first&lt;/b&gt; article&lt;/p&gt;</description>
      <pubDate>Fri, 13 Feb 2026 10:00:00 GMT</pubDate>
      <media:thumbnail url="https://example.com/thumb-1.jpg"/>
    </item>
    <item>
      <title>Second Article</title>
      <link>https://example.com/article-2</link>
      <guid>article-2</guid>
      <description>Description of the second article</description>
      <pubDate>Fri, 13 Feb 2026 09:00:00 GMT</pubDate>
      <enclosure url="https://example.com/episode.mp3" type="audio/mpeg" length="1"/>
      <enclosure url="https://example.com/cover.png" type="image/png" length="1"/>
    </item>
  </channel>
</rss>"""

SAMPLE_ATOM_XML = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Test Atom Feed</title>
  <link href="https://example.com"/>
  <subtitle>A test Atom feed</subtitle>
  <entry>
    <title>Atom Entry 1</title>
    <link href="https://example.com/entry-1"/>
    <id>urn:uuid:entry-1</id>
    <summary type="text">Summary of entry 1</summary>
    <updated>2026-02-13T10:00:00Z</updated>
  </entry>
</feed>"""

SAMPLE_NOT_A_FEED_XML = """<?xml version="1.0" encoding="UTF-8"?>
<html>
  <body>This is not a feed</body>
</html>"""

FIXED_NOW = datetime(2026, 2, 13, 12, 0, 0, tzinfo=timezone.utc)


class StubFetcher:
    """Fetcher double returning canned feeds (or errors) per URL."""

    def __init__(self, feeds: dict | None = None):
        self.feeds = dict(feeds or {})
        self.calls: list[tuple[str, float]] = []

    def __call__(self, url: str, timeout: float) -> ParsedFeed:
        self.calls.append((url, timeout))
        result = self.feeds.get(url)
        if result is None:
            raise FeedFetchError("Could not reach URL: HTTP 404")
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def tmp_db_path():
    """Provide a temporary SQLite database path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = f.name
    yield path
    for suffix in ("", "-wal", "-shm"):
        try:
            os.unlink(path + suffix)
        except OSError:
            pass


@pytest.fixture
def db(tmp_db_path):
    """A connected database with the schema applied."""
    database = Database(tmp_db_path)
    database.connect()
    yield database
    database.close()


@pytest.fixture
def settings():
    """Default settings."""
    return Settings()


@pytest.fixture
def add_feed(db):
    """Insert a feed and return it."""

    def _add(url: str, title: str | None = None, **kwargs) -> Feed:
        return db.add_feed(
            Feed(url=url, normalized_url=url, title=title or url, **kwargs)
        )

    return _add


@pytest.fixture
def make_item():
    """Build a ParsedItem with sensible defaults."""

    def _make(**kwargs) -> ParsedItem:
        kwargs.setdefault("title", "An article")
        kwargs.setdefault("published", FIXED_NOW)
        return ParsedItem(**kwargs)

    return _make


@pytest.fixture
def sample_rss_xml():
    """Sample valid RSS 2.0 XML."""
    return SAMPLE_RSS_XML


@pytest.fixture
def sample_atom_xml():
    """Sample valid Atom XML."""
    return SAMPLE_ATOM_XML


@pytest.fixture
def sample_not_a_feed_xml():
    """Sample XML that is not a feed."""
    return SAMPLE_NOT_A_FEED_XML
