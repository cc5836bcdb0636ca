"""
Historical price crawl.

The symbol catalog comes from the historical landing page's ``cid`` select
box and is cached with an explicit fetched-at timestamp. Each symbol's
daily table is paginated 8 rows at a time; pages are stored as they
arrive (insert-if-missing). After every run the full stored series, newest
date first, is cached as the per-symbol snapshot for the read API.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any

from harvester.crawler.base_crawler import SITE_ORIGIN, Fetcher
from harvester.crawler.pagination import PaginationDriver
from harvester.crawler.parsers import (
    SymbolEntry,
    parse_historical_table,
    parse_symbol_catalog,
)
from harvester.crawler.pool import BoundedPool
from harvester.db.cache import (
    CATALOG_KEY,
    CATALOG_TTL,
    HISTORICAL_TTL,
    CacheService,
    historical_key,
)
from harvester.db.store import HistoricalStore
from harvester.utils.config import get_settings
from harvester.utils.logger import get_logger

logger = get_logger(__name__)

HISTORICAL_BASE_URL = f"{SITE_ORIGIN}/index.php/en/historical-data-2"
HISTORICAL_PAGE_SIZE = 8


def historical_page_url(cid: str, offset: int) -> str:
    return f"{HISTORICAL_BASE_URL}?cid={cid}&period=d&start={offset}"


def _bar_day(row: dict[str, Any]) -> datetime:
    try:
        return datetime.strptime(row["date"], "%d %b %Y")
    except (KeyError, TypeError, ValueError):
        return datetime.min


class HistoricalCrawler:
    """Symbol catalog + per-symbol history crawl."""

    def __init__(
        self,
        fetcher: Fetcher,
        store: HistoricalStore,
        cache: CacheService,
        catalog_ttl: int = CATALOG_TTL,
        clock=time.time,
    ) -> None:
        settings = get_settings()
        self._fetcher = fetcher
        self._store = store
        self._cache = cache
        self._catalog_ttl = catalog_ttl
        self._clock = clock
        self._pool = BoundedPool(settings.historical_symbol_concurrency)
        self._max_pages = settings.historical_max_pages
        self._max_rows = settings.historical_max_rows
        self._empty_streak = settings.empty_streak_threshold
        self._delay = settings.politeness_delay_seconds

    async def get_symbols(self, force: bool = False) -> list[SymbolEntry]:
        """Return the symbol catalog, refreshing it once older than the TTL."""
        if not force:
            cached = await self._cache.get_json(CATALOG_KEY)
            if cached and self._clock() - float(cached.get("fetched_at", 0)) < self._catalog_ttl:
                symbols = [SymbolEntry(**s) for s in cached.get("symbols", [])]
                if symbols:
                    logger.debug("[historical] using cached catalog (%d symbols)", len(symbols))
                    return symbols

        html = await self._fetcher.fetch_text(HISTORICAL_BASE_URL)
        symbols = parse_symbol_catalog(html)
        if symbols:
            await self._cache.set_json(
                CATALOG_KEY,
                {
                    "fetched_at": self._clock(),
                    "symbols": [{"cid": s.cid, "name": s.name} for s in symbols],
                },
                ttl=self._catalog_ttl,
            )
        logger.info("[historical] fetched catalog: %d symbols", len(symbols))
        return symbols

    async def crawl_symbol(self, entry: SymbolEntry) -> dict[str, Any]:
        """Paginate one symbol, storing new dates page by page."""
        known = await self._store.known_dates(entry.name)
        stats = {"symbol": entry.name, "inserted": 0, "failed": 0}

        async def on_page(rows: list[dict[str, Any]]) -> None:
            report = await self._store.insert_missing(entry.name, rows)
            stats["inserted"] += len(report.inserted)
            stats["failed"] += len(report.failed)

        driver = PaginationDriver(
            fetch_page=self._fetcher.fetch_text,
            parse_page=parse_historical_table,
            identify=lambda row: row["date"],
            page_size=HISTORICAL_PAGE_SIZE,
            max_pages=self._max_pages,
            empty_streak_threshold=self._empty_streak,
            delay=self._delay,
            max_items=self._max_rows,
            label=f"historical:{entry.name}",
        )
        result = await driver.run(
            lambda offset: historical_page_url(entry.cid, offset),
            known_ids=known,
            on_page=on_page,
        )

        series = await self._store.rows_for(entry.name)
        if series:
            series.sort(key=_bar_day, reverse=True)
            await self._cache.set_json(
                historical_key(entry.name),
                {
                    "status": "success",
                    "symbol": entry.name,
                    "data": series,
                    "updatedAt": datetime.now(timezone.utc).isoformat(),
                },
                ttl=HISTORICAL_TTL,
            )

        stats.update(pages=result.pages_fetched, fresh=result.fresh_count, stop=result.stop_reason)
        return stats

    async def crawl_all(self) -> dict[str, Any]:
        """Crawl every catalog symbol with bounded concurrency."""
        symbols = await self.get_symbols()
        results = await self._pool.run(
            [lambda entry=entry: self.crawl_symbol(entry) for entry in symbols]
        )

        summary: dict[str, Any] = {"symbols": len(symbols), "inserted": 0, "errors": 0}
        for entry, result in zip(symbols, results):
            if isinstance(result, BaseException):
                summary["errors"] += 1
                logger.error("[historical] %s failed: %s", entry.name, result)
                continue
            summary["inserted"] += result["inserted"]

        logger.info("[historical] all symbols done: %s", summary)
        return summary
