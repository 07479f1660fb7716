"""Tests for canonical key derivation."""

from datetime import datetime, timezone

from river_of_news.feed_parser import ParsedItem
from river_of_news.identity import build_canonical_key, get_source_guid


def test_explicit_id_preferred_and_trimmed():
    item = ParsedItem(id="  abc  ", guid="other", link="https://example.com/a")
    assert get_source_guid(item) == "abc"
    assert build_canonical_key(1, item) == "guid:abc"


def test_guid_used_when_id_blank():
    item = ParsedItem(id="   ", guid="g1")
    assert build_canonical_key(1, item) == "guid:g1"


def test_guid_key_is_feed_independent():
    item = ParsedItem(guid="g1")
    assert build_canonical_key(1, item) == build_canonical_key(2, item)


def test_canonical_url_when_no_guid():
    item = ParsedItem(link="https://Example.com/post/?utm_source=feed")
    assert build_canonical_key(1, item) == "url:https://example.com/post"


def test_fingerprint_when_no_guid_or_url():
    item = ParsedItem(
        title="Untracked",
        published=datetime(2026, 2, 13, tzinfo=timezone.utc),
        plain_text="body",
    )
    key = build_canonical_key(1, item)
    assert key.startswith("unique:")
    assert len(key) == len("unique:") + 64
    assert key == build_canonical_key(1, item)


def test_fingerprint_is_scoped_to_feed():
    item = ParsedItem(title="Same", plain_text="same body")
    assert build_canonical_key(1, item) != build_canonical_key(2, item)


def test_fingerprint_changes_with_content():
    a = ParsedItem(title="Same", plain_text="one")
    b = ParsedItem(title="Same", plain_text="two")
    assert build_canonical_key(1, a) != build_canonical_key(1, b)
