"""Background polling and retention loops for River of News."""

import asyncio
import logging
from datetime import datetime, timedelta

from river_of_news.config import Settings
from river_of_news.database import Database
from river_of_news.ingestion import FeedIngestionService
from river_of_news.models import utcnow

logger = logging.getLogger(__name__)


def run_retention_once(
    db: Database, settings: Settings, now: datetime | None = None
) -> int:
    """Delete items published before the retention window. Returns count deleted."""
    cutoff = (now or utcnow()) - timedelta(days=settings.retention_days)
    deleted = db.delete_items_published_before(cutoff)
    if deleted:
        logger.info("Retention removed %d items published before %s", deleted, cutoff)
    return deleted


async def start_polling(service: FeedIngestionService, settings: Settings) -> None:
    """Run the polling loop indefinitely, refreshing only feeds that are due."""
    interval = settings.poll_tick_seconds
    logger.info("Poller started (interval: %ds)", interval)

    while True:
        try:
            result = await service.refresh_due_feeds()
            if result.inserted > 0:
                logger.info("Poll cycle complete: %d new items", result.inserted)
        except Exception as e:
            logger.error("Poll cycle failed: %s", e)

        await asyncio.sleep(interval)


async def start_retention(db: Database, settings: Settings) -> None:
    """Run the retention sweep indefinitely."""
    interval = settings.retention_sweep_seconds
    logger.info(
        "Retention sweep started (interval: %ds, window: %d days)",
        interval,
        settings.retention_days,
    )

    while True:
        try:
            run_retention_once(db, settings)
        except Exception as e:
            logger.error("Retention sweep failed: %s", e)

        await asyncio.sleep(interval)
