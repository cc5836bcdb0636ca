"""
Live quotes poller.

Reads the site's JSON quotes endpoint for a fixed symbol list and caches
the snapshot under ``quotes:live``.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from harvester.crawler.base_crawler import SITE_ORIGIN, Fetcher
from harvester.crawler.errors import ParseAnomaly
from harvester.crawler.parsers import parse_quotes
from harvester.db.cache import QUOTES_KEY, QUOTES_TTL, CacheService
from harvester.utils.logger import get_logger

logger = get_logger(__name__)

QUOTE_SYMBOLS: tuple[str, ...] = (
    "LGD", "LSI", "GHSIN5", "LCOPU5", "SN1U5", "DJIA", "DAX", "DX",
    "AUDUSD", "EURUSD", "GBPUSD", "CHF", "JPY", "RP",
)


def quotes_url(symbols: tuple[str, ...] = QUOTE_SYMBOLS) -> str:
    return f"{SITE_ORIGIN}/quotes/live?s={'+'.join(symbols)}"


class QuotesCrawler:
    def __init__(self, fetcher: Fetcher, cache: CacheService) -> None:
        self._fetcher = fetcher
        self._cache = cache

    async def refresh(self) -> dict[str, Any]:
        """Fetch and cache the quote snapshot. Returns the cached document."""
        result = await self._fetcher.fetch(
            quotes_url(), headers={"Accept": "application/json, text/plain, */*"}
        )
        body = result.body
        try:
            payload = json.loads(body)
        except ValueError as e:
            raise ParseAnomaly("quotes endpoint did not return JSON") from e

        quotes = parse_quotes(payload)
        document = {
            "status": "success",
            "updatedAt": datetime.now(timezone.utc).isoformat(),
            "total": len(quotes),
            "data": [asdict(q) for q in quotes],
        }
        await self._cache.set_json(QUOTES_KEY, document, ttl=QUOTES_TTL)
        logger.debug("[quotes] cached %d quotes", len(quotes))
        return document
