#!/usr/bin/env python3
"""
Run a single crawl job once, under its distributed lock.

Useful for backfills and for checking a source by hand without starting
the scheduler or the read API. The lock is the same one the scheduler
uses, so a manual run never overlaps a scheduled one.

Usage:
    python scripts/run_job.py news-en
    python scripts/run_job.py calendar-this-week
    python scripts/run_job.py historical
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(_PROJECT_ROOT))
os.chdir(_PROJECT_ROOT)

from dotenv import load_dotenv

load_dotenv()

from harvester.crawler.base_crawler import Fetcher
from harvester.crawler.calendar_crawler import CALENDAR_PERIODS
from harvester.crawler.errors import ConfigurationError
from harvester.crawler.news_crawler import LANGUAGES
from harvester.db.connection import close_db, init_db
from harvester.main import build_components
from harvester.scheduler.jobs import CrawlJobs
from harvester.utils.logger import get_logger

logger = get_logger(__name__)


def _job_table(jobs: CrawlJobs) -> dict:
    table = {f"news-{lang}": (lambda l=lang: jobs.scrape_news_by_language(l)) for lang in LANGUAGES}
    for period in CALENDAR_PERIODS:
        table[f"calendar-{period}"] = lambda p=period: jobs.scrape_calendar_period(p)
    table["historical"] = jobs.scrape_all_historical_symbols
    table["quotes"] = jobs.scrape_quotes
    return table


def job_names() -> list[str]:
    names = [f"news-{lang}" for lang in LANGUAGES]
    names += [f"calendar-{period}" for period in CALENDAR_PERIODS]
    return names + ["historical", "quotes"]


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run one crawl job once.")
    parser.add_argument("job", choices=job_names(), help="job to run")
    return parser.parse_args(argv)


async def run(job: str) -> int:
    """Run ``job`` and print its result. Returns the process exit code."""
    try:
        await init_db()
    except ConfigurationError as e:
        logger.critical("Configuration error, aborting: %s", e)
        return 1

    components = build_components()
    try:
        result = await _job_table(components.jobs)[job]()
        print(json.dumps(result, indent=2, default=str, ensure_ascii=False))
        return 0 if result.get("success") else 1
    finally:
        await components.browser.close()
        await Fetcher.close_session()
        await close_db()


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    sys.exit(asyncio.run(run(args.job)))


if __name__ == "__main__":
    main()
