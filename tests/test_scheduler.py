from __future__ import annotations

import asyncio

import pytest

from harvester.scheduler.jobs import (
    CalendarJobQueue,
    CrawlJobs,
    JobScheduler,
    JobStatusRecorder,
    register_default_jobs,
)
from harvester.scheduler.lock import DistributedLock, lock_key


class StubNews:
    def __init__(self) -> None:
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None

    async def crawl_language(self, language: str) -> dict:
        self.calls.append(language)
        if self.gate is not None:
            await self.gate.wait()
        return {"language": language, "inserted": 2}


class StubCalendar:
    def __init__(self) -> None:
        self.periods: list[str] = []
        self.fail = False

    async def scrape_period(self, period: str) -> dict:
        self.periods.append(period)
        if self.fail:
            raise RuntimeError("render timed out")
        return {"period": period, "total": 3, "data": []}


class StubHistorical:
    async def crawl_all(self) -> dict:
        return {"symbols": 2, "inserted": 5, "errors": 0}


class StubQuotes:
    def __init__(self) -> None:
        self.refreshes = 0

    async def refresh(self) -> dict:
        self.refreshes += 1
        return {"total": 14}


def _jobs(fake_redis, cache) -> CrawlJobs:
    return CrawlJobs(
        news=StubNews(),
        historical=StubHistorical(),
        calendar=StubCalendar(),
        quotes=StubQuotes(),
        lock=DistributedLock(fake_redis),
        status=JobStatusRecorder(cache),
    )


@pytest.mark.asyncio
async def test_job_result_and_status_are_recorded(fake_redis, cache) -> None:
    jobs = _jobs(fake_redis, cache)

    result = await jobs.scrape_news_by_language("en")

    assert result == {"success": True, "skipped": False, "language": "en", "inserted": 2}
    status = await JobStatusRecorder(cache).get("news:en")
    assert status["running"] is False
    assert status["last_result"]["inserted"] == 2
    assert status["last_error"] is None
    assert lock_key("news:en") not in fake_redis.data


@pytest.mark.asyncio
async def test_overlapping_run_is_skipped(fake_redis, cache) -> None:
    jobs = _jobs(fake_redis, cache)
    jobs.news.gate = asyncio.Event()

    first = asyncio.create_task(jobs.scrape_news_by_language("id"))
    while not jobs.news.calls:
        await asyncio.sleep(0)
    second = await jobs.scrape_news_by_language("id")
    other_language = asyncio.create_task(jobs.scrape_news_by_language("en"))
    jobs.news.gate.set()

    assert second == {"success": True, "skipped": True}
    assert (await first)["skipped"] is False
    assert (await other_language)["skipped"] is False
    assert jobs.news.calls == ["id", "en"]


@pytest.mark.asyncio
async def test_failure_is_contained_and_recorded(fake_redis, cache) -> None:
    jobs = _jobs(fake_redis, cache)
    jobs.calendar.fail = True

    result = await jobs.scrape_calendar_period("today")

    assert result["success"] is False
    assert "render timed out" in result["error"]
    status = await JobStatusRecorder(cache).get("calendar:today")
    assert status["last_error"] == "render timed out"
    assert lock_key("calendar:today") not in fake_redis.data


@pytest.mark.asyncio
async def test_lock_backend_outage_skips_the_run(fake_redis, cache) -> None:
    jobs = _jobs(fake_redis, cache)
    fake_redis.fail = True

    result = await jobs.scrape_all_historical_symbols()

    assert result["success"] is False
    assert result["skipped"] is True


@pytest.mark.asyncio
async def test_quotes_do_not_write_status(fake_redis, cache) -> None:
    jobs = _jobs(fake_redis, cache)
    result = await jobs.scrape_quotes()
    assert result["total"] == 14
    assert await JobStatusRecorder(cache).get("quotes") is None


@pytest.mark.asyncio
async def test_calendar_queue_runs_every_period_in_order(fake_redis, cache) -> None:
    jobs = _jobs(fake_redis, cache)
    queue = CalendarJobQueue(jobs)
    queue.start()

    await queue.enqueue_all()
    await asyncio.wait_for(queue.join(), timeout=1)
    await queue.stop()

    assert jobs.calendar.periods == ["today", "this-week", "previous-week", "next-week"]


@pytest.mark.asyncio
async def test_scheduler_runs_immediately_and_rearms() -> None:
    scheduler = JobScheduler()
    runs: list[int] = []

    async def tick() -> None:
        runs.append(len(runs))

    scheduler.every("tick", 0.05, tick)
    scheduler.start()
    await asyncio.sleep(0.18)
    await scheduler.stop(timeout=1)

    assert 3 <= len(runs) <= 5
    count = len(runs)
    await asyncio.sleep(0.1)
    assert len(runs) == count


@pytest.mark.asyncio
async def test_slow_run_does_not_delay_the_next_one() -> None:
    scheduler = JobScheduler()
    started = 0
    never = asyncio.Event()

    async def slow() -> None:
        nonlocal started
        started += 1
        await never.wait()

    scheduler.every("slow", 0.05, slow)
    scheduler.start()
    await asyncio.sleep(0.13)
    await scheduler.stop(timeout=0.05)

    # runs overlap; the lock, not the scheduler, decides who proceeds
    assert started >= 2


@pytest.mark.asyncio
async def test_run_exceptions_do_not_stop_the_schedule() -> None:
    scheduler = JobScheduler()
    attempts = 0

    async def flaky() -> None:
        nonlocal attempts
        attempts += 1
        raise RuntimeError("boom")

    scheduler.every("flaky", 0.03, flaky)
    scheduler.start()
    await asyncio.sleep(0.1)
    await scheduler.stop()

    assert attempts >= 2


@pytest.mark.asyncio
async def test_default_registration(fake_redis, cache) -> None:
    jobs = _jobs(fake_redis, cache)
    scheduler = JobScheduler()
    register_default_jobs(scheduler, jobs, CalendarJobQueue(jobs))

    assert set(scheduler.jobs) == {"news:en", "news:id", "calendar", "historical", "quotes"}
    assert scheduler.jobs["quotes"].interval == 9
    assert scheduler.jobs["news:en"].interval == 30 * 60
