"""
Crawl job entry points and the interval scheduler.

Every job runs under its distributed lock and records its last outcome in
Redis (``status:job:{name}``) for the status endpoint. The scheduler
re-arms each job on a fixed interval and launches every run as its own
task; a run that is still going when the next one is due is not awaited or
cancelled, the lock decides which one proceeds.

Calendar periods share one browser, so their runs are additionally fed
through a single-consumer queue and execute one at a time.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from harvester.crawler.calendar_crawler import CALENDAR_PERIODS, CalendarCrawler
from harvester.crawler.historical_crawler import HistoricalCrawler
from harvester.crawler.news_crawler import LANGUAGES, NewsCrawler
from harvester.crawler.quotes_crawler import QuotesCrawler
from harvester.db.cache import STATUS_TTL, CacheService
from harvester.scheduler.lock import DistributedLock, lock_key
from harvester.utils.config import get_settings
from harvester.utils.logger import get_logger

logger = get_logger(__name__)

STATUS_KEY_PREFIX = "status:job:"


def status_key(name: str) -> str:
    return f"{STATUS_KEY_PREFIX}{name}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class JobStatusRecorder:
    """Last-run bookkeeping kept in Redis, never in process memory."""

    def __init__(self, cache: CacheService) -> None:
        self._cache = cache

    async def started(self, name: str) -> None:
        status = await self._cache.get_json(status_key(name)) or {}
        status.update(name=name, running=True, last_started_at=_now_iso())
        await self._cache.set_json(status_key(name), status, ttl=STATUS_TTL)

    async def finished(
        self, name: str, result: dict[str, Any] | None, error: str | None = None
    ) -> None:
        status = await self._cache.get_json(status_key(name)) or {"name": name}
        status.update(
            running=False,
            last_finished_at=_now_iso(),
            last_result=result,
            last_error=error,
        )
        await self._cache.set_json(status_key(name), status, ttl=STATUS_TTL)

    async def get(self, name: str) -> dict[str, Any] | None:
        return await self._cache.get_json(status_key(name))


class CrawlJobs:
    """The four job entry points, each safe to call concurrently.

    Returns from each entry point follow the ``safe_crawl`` shape:
    ``{"success": bool, "skipped": bool, ...}``; exceptions never escape.
    """

    def __init__(
        self,
        news: NewsCrawler,
        historical: HistoricalCrawler,
        calendar: CalendarCrawler,
        quotes: QuotesCrawler,
        lock: DistributedLock,
        status: JobStatusRecorder,
    ) -> None:
        self.news = news
        self.historical = historical
        self.calendar = calendar
        self.quotes = quotes
        self._lock = lock
        self._status = status
        settings = get_settings()
        self._ttls = {
            "news": settings.news_lock_ttl,
            "calendar": settings.calendar_lock_ttl,
            "historical": settings.historical_lock_ttl,
            "quotes": settings.quotes_lock_ttl,
        }

    async def _run_locked(
        self,
        name: str,
        ttl: int,
        job: Callable[[], Awaitable[dict[str, Any]]],
        record: bool = True,
    ) -> dict[str, Any]:
        async def tracked() -> dict[str, Any]:
            if record:
                await self._status.started(name)
            try:
                result = await job()
            except Exception as e:
                logger.error("[job:%s] failed: %s", name, e, exc_info=True)
                if record:
                    await self._status.finished(name, None, error=str(e))
                return {"success": False, "skipped": False, "error": str(e)}
            if record:
                await self._status.finished(name, result)
            return {"success": True, "skipped": False, **result}

        try:
            outcome = await self._lock.with_lock(lock_key(name), ttl, tracked)
        except Exception as e:
            logger.error("[job:%s] lock unavailable: %s", name, e)
            return {"success": False, "skipped": True, "error": str(e)}
        if not outcome.acquired:
            return {"success": True, "skipped": True}
        return outcome.value

    async def scrape_news_by_language(self, language: str) -> dict[str, Any]:
        return await self._run_locked(
            f"news:{language}",
            self._ttls["news"],
            lambda: self.news.crawl_language(language),
        )

    async def scrape_calendar_period(self, period: str) -> dict[str, Any]:
        async def job() -> dict[str, Any]:
            document = await self.calendar.scrape_period(period)
            return {"period": period, "total": document["total"]}

        return await self._run_locked(f"calendar:{period}", self._ttls["calendar"], job)

    async def scrape_all_historical_symbols(self) -> dict[str, Any]:
        return await self._run_locked(
            "historical", self._ttls["historical"], self.historical.crawl_all
        )

    async def scrape_quotes(self) -> dict[str, Any]:
        async def job() -> dict[str, Any]:
            document = await self.quotes.refresh()
            return {"total": document["total"]}

        # runs every few seconds; status writes would double the Redis traffic
        return await self._run_locked("quotes", self._ttls["quotes"], job, record=False)


class CalendarJobQueue:
    """Single consumer that runs calendar periods one at a time."""

    def __init__(self, jobs: CrawlJobs) -> None:
        self._jobs = jobs
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._consumer: asyncio.Task | None = None

    def start(self) -> None:
        if self._consumer is None or self._consumer.done():
            self._consumer = asyncio.create_task(self._consume(), name="calendar-queue")

    async def enqueue_all(self) -> dict[str, Any]:
        for period in CALENDAR_PERIODS:
            await self._queue.put(period)
        return {"queued": list(CALENDAR_PERIODS)}

    async def join(self) -> None:
        await self._queue.join()

    async def _consume(self) -> None:
        while True:
            period = await self._queue.get()
            try:
                await self._jobs.scrape_calendar_period(period)
            finally:
                self._queue.task_done()

    async def stop(self) -> None:
        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None


@dataclass
class ScheduledJob:
    name: str
    interval: float
    run: Callable[[], Awaitable[Any]]
    runs: int = 0
    in_flight: set[asyncio.Task] = field(default_factory=set)


class JobScheduler:
    """Fixed-interval re-arming of jobs, each run in its own task."""

    def __init__(self) -> None:
        self._jobs: dict[str, ScheduledJob] = {}
        self._loops: list[asyncio.Task] = []
        self._stop = asyncio.Event()

    def every(
        self, name: str, interval: float, run: Callable[[], Awaitable[Any]]
    ) -> None:
        """Register ``run`` to start every ``interval`` seconds."""
        self._jobs[name] = ScheduledJob(name=name, interval=interval, run=run)

    def start(self) -> None:
        self._stop.clear()
        for job in self._jobs.values():
            self._loops.append(asyncio.create_task(self._loop(job), name=f"schedule:{job.name}"))
        logger.info(
            "Scheduler started: %s",
            ", ".join(f"{j.name}/{j.interval:g}s" for j in self._jobs.values()),
        )

    async def _loop(self, job: ScheduledJob) -> None:
        while not self._stop.is_set():
            task = asyncio.create_task(self._launch(job), name=f"job:{job.name}:{job.runs}")
            job.runs += 1
            job.in_flight.add(task)
            task.add_done_callback(job.in_flight.discard)
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=job.interval)
            except asyncio.TimeoutError:
                continue

    async def _launch(self, job: ScheduledJob) -> None:
        try:
            await job.run()
        except Exception as e:
            logger.error("[schedule:%s] run raised: %s", job.name, e, exc_info=True)

    async def stop(self, timeout: float = 10.0) -> None:
        """Stop re-arming and give in-flight runs ``timeout`` seconds to finish."""
        self._stop.set()
        for loop in self._loops:
            loop.cancel()
        await asyncio.gather(*self._loops, return_exceptions=True)
        self._loops.clear()

        pending = [t for job in self._jobs.values() for t in job.in_flight]
        if pending:
            done, still_running = await asyncio.wait(pending, timeout=timeout)
            for task in still_running:
                task.cancel()
            logger.info(
                "Scheduler stopped: %d runs finished, %d cancelled",
                len(done), len(still_running),
            )

    @property
    def jobs(self) -> dict[str, ScheduledJob]:
        return self._jobs


def register_default_jobs(
    scheduler: JobScheduler, jobs: CrawlJobs, calendar_queue: CalendarJobQueue
) -> None:
    """Register news (per language), calendar, historical and quotes jobs."""
    settings = get_settings()
    for language in LANGUAGES:
        scheduler.every(
            f"news:{language}",
            settings.news_interval,
            lambda lang=language: jobs.scrape_news_by_language(lang),
        )
    scheduler.every("calendar", settings.calendar_interval, calendar_queue.enqueue_all)
    scheduler.every(
        "historical", settings.historical_interval, jobs.scrape_all_historical_symbols
    )
    scheduler.every("quotes", settings.quotes_interval, jobs.scrape_quotes)
