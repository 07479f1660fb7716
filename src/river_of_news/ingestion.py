"""Feed ingestion: fetch due feeds, merge their items, track feed health."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from river_of_news.config import Settings
from river_of_news.content import build_image_url, build_snippet
from river_of_news.database import Database
from river_of_news.errors import FeedFetchError
from river_of_news.feed_parser import ParsedFeed, ParsedItem, fetch_and_parse
from river_of_news.identity import build_canonical_key, get_source_guid
from river_of_news.models import Feed, Item, ItemSource, RefreshResult, utcnow
from river_of_news.scheduler import is_due
from river_of_news.urls import canonicalize_article_url

logger = logging.getLogger(__name__)

UNTITLED = "(untitled)"

Fetcher = Callable[[str, float], ParsedFeed]


class FeedIngestionService:
    """Refreshes feeds one at a time and merges their items into the river.

    Each feed's items and its healthy mark are written in one transaction,
    so an interrupted cycle leaves the feed due for retry.
    """

    def __init__(
        self,
        db: Database,
        fetcher: Fetcher = fetch_and_parse,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.fetcher = fetcher
        self.settings = settings or Settings()
        self.clock = clock

    async def refresh_all_feeds(self) -> RefreshResult:
        """Refresh every feed regardless of schedule."""
        return await self.refresh_feeds(force_all=True)

    async def refresh_due_feeds(self) -> RefreshResult:
        """Refresh only the feeds the scheduler considers due."""
        return await self.refresh_feeds(force_all=False)

    async def refresh_feeds(self, force_all: bool) -> RefreshResult:
        """Run one refresh cycle over all feeds.

        Fetch failures are recorded per feed and never abort the cycle.
        Storage errors propagate.
        """
        result = RefreshResult()

        for feed in self.db.get_feeds_for_refresh():
            if not force_all and not is_due(feed, self.clock(), self.settings):
                result.skipped += 1
                continue

            result.processed += 1
            try:
                parsed = await asyncio.to_thread(
                    self.fetcher, feed.url, self.settings.request_timeout_seconds
                )
            except FeedFetchError as e:
                logger.warning("Feed '%s' error: %s", feed.title, e)
                self._mark_failed(feed, str(e) or "Feed fetch failed.")
                result.failed += 1
                continue
            except Exception as e:
                logger.warning("Feed '%s' unexpected error: %s", feed.title, e)
                self._mark_failed(feed, str(e) or type(e).__name__)
                result.failed += 1
                continue

            counts = self._ingest(feed, parsed.items)
            if counts is None:
                logger.info("Feed %s was deleted during refresh; skipping", feed.id)
                continue

            inserted, merged = counts
            result.success += 1
            result.inserted += inserted
            result.merged += merged
            if inserted:
                logger.info("Feed '%s': %d new items", feed.title, inserted)

        logger.info(
            "Refresh complete: %d processed, %d ok, %d failed, %d skipped, "
            "%d inserted, %d merged",
            result.processed,
            result.success,
            result.failed,
            result.skipped,
            result.inserted,
            result.merged,
        )
        return result

    def _ingest(self, feed: Feed, items: list[ParsedItem]) -> tuple[int, int] | None:
        """Merge one feed's items and mark it healthy in a single transaction.

        Returns (inserted, merged), or None if the feed no longer exists.
        """
        inserted = 0
        merged = 0

        with self.db.transaction():
            if self.db.get_feed(feed.id) is None:
                return None

            for parsed_item in items:
                now = self.clock()
                item_id, is_new = self._merge_item(feed, parsed_item, now)
                if is_new:
                    inserted += 1
                else:
                    merged += 1

                self.db.add_item_source(
                    ItemSource(
                        item_id=item_id,
                        feed_id=feed.id,
                        source_item_guid=get_source_guid(parsed_item) or "",
                        source_item_url=parsed_item.link,
                        first_seen_at=now,
                    )
                )

            self.db.mark_feed_succeeded(feed.id, self.clock())

        return inserted, merged

    def _merge_item(
        self, feed: Feed, parsed_item: ParsedItem, now: datetime
    ) -> tuple[int, bool]:
        """Return (item_id, inserted) for the item's canonical key.

        Existing items are left untouched: first-seen content wins.
        """
        canonical_key = build_canonical_key(feed.id, parsed_item)
        existing_id = self.db.find_item_id(canonical_key)
        if existing_id is not None:
            return existing_id, False

        title = (parsed_item.title or "").strip() or UNTITLED
        item = Item(
            canonical_key=canonical_key,
            guid=get_source_guid(parsed_item),
            url=parsed_item.link or feed.url,
            canonical_url=canonicalize_article_url(parsed_item.link),
            image_url=build_image_url(parsed_item),
            title=title,
            snippet=build_snippet(parsed_item, self.settings.snippet_length_limit),
            published_at=parsed_item.published or parsed_item.updated or now,
            ingested_at=now,
            created_at=now,
            updated_at=now,
        )
        item_id = self.db.insert_item(item)
        if item_id is None:
            # Another writer inserted the same key first.
            return self.db.find_item_id(canonical_key), False
        return item_id, True

    def _mark_failed(self, feed: Feed, error_message: str) -> None:
        self.db.mark_feed_failed(
            feed.id, error_message, self.settings.unhealthy_threshold, self.clock()
        )
