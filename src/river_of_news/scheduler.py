"""Poll scheduling with health-aware backoff."""

from datetime import datetime, timedelta, timezone

from river_of_news.config import Settings
from river_of_news.models import Feed


def retry_delay(feed: Feed, settings: Settings) -> timedelta:
    """How long after its last poll a feed becomes due again.

    Feeds at or past the unhealthy threshold use the backoff tiers, one
    tier per extra failure, capped at the last tier.
    """
    failures = feed.consecutive_failures
    if failures >= settings.unhealthy_threshold:
        tiers = settings.backoff_minutes
        tier = min(failures - settings.unhealthy_threshold, len(tiers) - 1)
        return timedelta(minutes=tiers[tier])
    return timedelta(minutes=settings.poll_interval_minutes)


def is_due(feed: Feed, now: datetime, settings: Settings) -> bool:
    """Return True if the feed should be refreshed at ``now``."""
    if feed.last_polled_at is None:
        return True
    return _as_utc(now) - _as_utc(feed.last_polled_at) >= retry_delay(feed, settings)


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
