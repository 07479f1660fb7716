"""Entry point for River of News: python -m river_of_news"""

import asyncio
import logging

from river_of_news import api
from river_of_news.config import Settings
from river_of_news.database import Database
from river_of_news.ingestion import FeedIngestionService
from river_of_news.poller import start_polling, start_retention

logger = logging.getLogger("river_of_news")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quiet noisy loggers
    logging.getLogger("urllib3").setLevel(logging.WARNING)


async def main(settings: Settings) -> None:
    """Initialize storage and run the polling and retention loops."""
    db = Database(settings.db_path)
    db.connect()

    service = FeedIngestionService(db, settings=settings)
    api.set_database(db)
    api.set_ingestion_service(service)

    tasks = [
        asyncio.create_task(start_polling(service, settings)),
        asyncio.create_task(start_retention(db, settings)),
    ]
    logger.info("River of News running on %s", settings.db_path)

    try:
        await asyncio.gather(*tasks)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        db.close()


def run() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    try:
        asyncio.run(main(settings))
    except KeyboardInterrupt:
        print("\nGoodbye!")


if __name__ == "__main__":
    run()
