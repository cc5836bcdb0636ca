"""
Newsmaker Harvester - Main Entry Point

Wires every component together and runs until SIGINT/SIGTERM:
- infrastructure checks (PostgreSQL, Redis); missing configuration aborts startup
- crawl jobs on fixed intervals (news per language, calendar, historical, quotes)
- FastAPI read API in the background
- graceful shutdown (scheduler, browser, HTTP session, DB/Redis)
"""

from __future__ import annotations

import asyncio
import signal
import sys
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

import uvicorn

from harvester.api.deps import set_dependencies
from harvester.api.server import app as api_app
from harvester.crawler.base_crawler import Fetcher
from harvester.crawler.browser import BrowserPool
from harvester.crawler.calendar_crawler import CALENDAR_PERIODS, CalendarCrawler
from harvester.crawler.dedup import PushDedup
from harvester.crawler.errors import ConfigurationError
from harvester.crawler.historical_crawler import HistoricalCrawler
from harvester.crawler.news_crawler import NewsCrawler
from harvester.crawler.quotes_crawler import QuotesCrawler
from harvester.db.cache import CacheService
from harvester.db.connection import close_db, get_redis, init_db
from harvester.db.store import HistoricalStore, NewsStore
from harvester.notify.dispatcher import NotificationDispatcher
from harvester.notify.push_sender import build_push_sender
from harvester.scheduler.jobs import (
    CalendarJobQueue,
    CrawlJobs,
    JobScheduler,
    JobStatusRecorder,
    register_default_jobs,
)
from harvester.scheduler.lock import DistributedLock
from harvester.utils.config import get_settings
from harvester.utils.logger import get_logger

logger = get_logger(__name__)

_SHUTDOWN_TIMEOUT: float = 30.0
_STARTUP_GRACE_PERIOD: float = 1.0


@dataclass
class Components:
    cache: CacheService
    news_store: NewsStore
    historical_store: HistoricalStore
    browser: BrowserPool
    status: JobStatusRecorder
    jobs: CrawlJobs


def build_components() -> Components:
    """Construct the crawl pipeline on top of the shared DB/Redis clients."""
    settings = get_settings()
    redis = get_redis()
    cache = CacheService(redis)
    fetcher = Fetcher()
    news_store = NewsStore(batch_size=settings.upsert_batch_size)
    historical_store = HistoricalStore(batch_size=settings.upsert_batch_size)
    dispatcher = NotificationDispatcher(
        store=news_store,
        sender=build_push_sender(),
        dedup=PushDedup(redis),
    )
    browser = BrowserPool()
    status = JobStatusRecorder(cache)
    jobs = CrawlJobs(
        news=NewsCrawler(fetcher, news_store, dispatcher=dispatcher, cache=cache),
        historical=HistoricalCrawler(fetcher, historical_store, cache),
        calendar=CalendarCrawler(browser, cache),
        quotes=QuotesCrawler(fetcher, cache),
        lock=DistributedLock(redis),
        status=status,
    )
    return Components(
        cache=cache,
        news_store=news_store,
        historical_store=historical_store,
        browser=browser,
        status=status,
        jobs=jobs,
    )


class HarvesterSystem:
    """Process-level owner of the scheduler, API server and shared resources."""

    def __init__(self) -> None:
        self.settings = get_settings()
        self.components: Components | None = None
        self.scheduler = JobScheduler()
        self.calendar_queue: CalendarJobQueue | None = None
        self.api_server_task: asyncio.Task | None = None

    async def initialize(self) -> None:
        """Verify infrastructure and build components.

        Raises:
            ConfigurationError: Database or Redis settings are missing.
        """
        if not self.settings.db_password:
            raise ConfigurationError("DB_PASSWORD is required")
        if not self.settings.redis_url:
            raise ConfigurationError("Redis connection settings are required")

        await init_db()
        logger.info("Database and Redis connection verified")

        self.components = build_components()
        self.calendar_queue = CalendarJobQueue(self.components.jobs)
        register_default_jobs(self.scheduler, self.components.jobs, self.calendar_queue)

        set_dependencies(
            news_store=self.components.news_store,
            historical_store=self.components.historical_store,
            cache=self.components.cache,
            status=self.components.status,
            job_names=sorted(self.scheduler.jobs)
            + [f"calendar:{p}" for p in CALENDAR_PERIODS],
        )

    def start_jobs(self) -> None:
        if self.calendar_queue is None:
            raise RuntimeError("initialize() must run before start_jobs()")
        self.calendar_queue.start()
        self.scheduler.start()

    async def start_api_server(self) -> None:
        """Run the read API until the process stops."""
        config = uvicorn.Config(
            api_app,
            host="0.0.0.0",
            port=self.settings.api_port,
            log_level="info",
        )
        server = uvicorn.Server(config)
        logger.info("Starting read API on port %d...", self.settings.api_port)
        await server.serve()

    async def shutdown(self) -> None:
        await self.scheduler.stop()
        if self.calendar_queue is not None:
            await self.calendar_queue.stop()
        if self.api_server_task is not None:
            self.api_server_task.cancel()
            try:
                await self.api_server_task
            except asyncio.CancelledError:
                pass
        if self.components is not None:
            await self.components.browser.close()
        await Fetcher.close_session()
        await close_db()
        logger.info("Shutdown complete")


async def main() -> None:
    """Start everything and wait for a termination signal."""
    system = HarvesterSystem()
    _shutdown_event = asyncio.Event()

    def signal_handler(sig: signal.Signals) -> None:
        logger.info("Received signal %s, initiating graceful shutdown...", sig)
        _shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))

    exit_code = 0
    try:
        await system.initialize()
        system.api_server_task = asyncio.create_task(system.start_api_server())
        await asyncio.sleep(_STARTUP_GRACE_PERIOD)
        system.start_jobs()
        await _shutdown_event.wait()
    except ConfigurationError as e:
        logger.critical("Configuration error, aborting: %s", e)
        exit_code = 1
    except Exception as e:
        logger.exception("Fatal error in main: %s", e)
        exit_code = 1
    finally:
        logger.info("Running shutdown sequence (timeout=%.0fs)...", _SHUTDOWN_TIMEOUT)
        try:
            await asyncio.wait_for(system.shutdown(), timeout=_SHUTDOWN_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning(
                "Shutdown timed out after %.0f seconds, forcing exit.", _SHUTDOWN_TIMEOUT
            )
        except Exception as exc:
            logger.error("Error during shutdown: %s", exc)
        sys.exit(exit_code)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
