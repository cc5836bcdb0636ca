"""
Offset-based pagination driver.

Walks ``start=0, page_size, 2*page_size, ...`` for one listing, filters out
items whose identity is already known (persisted before this run, or seen
earlier in this run) and hands each page's fresh items to a callback before
the next page is fetched.

Stop conditions, checked after every page:
    * ``empty_streak``: ``empty_streak_threshold`` consecutive pages yielded
      no fresh item (empty, challenge, fetch error, or all known).
    * ``max_pages``: the page ceiling was reached.
    * ``short_page``: the page parsed fewer items than a full page (but at
      least one), meaning it was the last one. Only for sources whose
      parser keeps every row of a page (``stop_on_short_page``).
    * ``max_items``: the optional fresh-item ceiling was reached.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Hashable, Iterable

from harvester.crawler.base_crawler import is_challenge_page
from harvester.crawler.errors import CrawlError, ParseAnomaly
from harvester.utils.logger import get_logger

logger = get_logger(__name__)

STOP_EMPTY_STREAK = "empty_streak"
STOP_MAX_PAGES = "max_pages"
STOP_SHORT_PAGE = "short_page"
STOP_MAX_ITEMS = "max_items"


@dataclass
class PaginationResult:
    pages_fetched: int = 0
    parsed_count: int = 0
    fresh_count: int = 0
    stop_reason: str = ""


class PaginationDriver:
    """Drive one paginated listing to completion.

    Args:
        fetch_page: ``async (url) -> html``. May raise ``CrawlError``.
        parse_page: ``(html) -> list`` of items. May raise ``ParseAnomaly``.
        identify: Maps an item to its identity key.
        page_size: Offset increment and full-page item count.
        max_pages: Hard ceiling on fetches.
        empty_streak_threshold: Consecutive fresh-less pages before stopping.
        delay: Politeness sleep between pages, in seconds.
        max_items: Optional ceiling on fresh items across the run.
        stop_on_short_page: Treat a partially filled page as the last one.
            Leave off when the parser drops items, since a filtered full
            page would look short.
        label: Prefix for log lines.
    """

    def __init__(
        self,
        fetch_page: Callable[[str], Awaitable[str]],
        parse_page: Callable[[str], list[Any]],
        identify: Callable[[Any], Hashable],
        page_size: int,
        max_pages: int,
        empty_streak_threshold: int = 3,
        delay: float = 0.0,
        max_items: int | None = None,
        stop_on_short_page: bool = True,
        label: str = "paginate",
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._fetch_page = fetch_page
        self._parse_page = parse_page
        self._identify = identify
        self.page_size = page_size
        self.max_pages = max_pages
        self.empty_streak_threshold = empty_streak_threshold
        self.delay = delay
        self.max_items = max_items
        self.stop_on_short_page = stop_on_short_page
        self.label = label
        self._sleep = sleep

    async def run(
        self,
        build_url: Callable[[int], str],
        known_ids: Iterable[Hashable] = (),
        on_page: Callable[[list[Any]], Awaitable[Any]] | None = None,
        seen: set[Hashable] | None = None,
    ) -> PaginationResult:
        """Fetch pages until a stop condition holds.

        Args:
            build_url: Maps an offset to the page URL.
            known_ids: Identities persisted before this run.
            on_page: Awaited with each page's fresh items (only when
                non-empty) before the next fetch.
            seen: Identities already taken earlier in the same run. Updated
                in place, so several listings can share one set.

        Returns:
            Counters and the stop reason.
        """
        known = set(known_ids)
        if seen is None:
            seen = set()
        result = PaginationResult()
        offset = 0
        empty_streak = 0

        while True:
            url = build_url(offset)
            items = await self._load(url)
            result.pages_fetched += 1
            result.parsed_count += len(items)

            fresh: list[Any] = []
            for item in items:
                key = self._identify(item)
                if key in known or key in seen:
                    continue
                seen.add(key)
                fresh.append(item)

            if self.max_items is not None:
                fresh = fresh[: max(self.max_items - result.fresh_count, 0)]

            if fresh:
                empty_streak = 0
                result.fresh_count += len(fresh)
                if on_page is not None:
                    await on_page(fresh)
            else:
                empty_streak += 1

            logger.debug(
                "[%s] offset=%d parsed=%d fresh=%d streak=%d",
                self.label, offset, len(items), len(fresh), empty_streak,
            )

            if empty_streak >= self.empty_streak_threshold:
                result.stop_reason = STOP_EMPTY_STREAK
                break
            if self.max_items is not None and result.fresh_count >= self.max_items:
                result.stop_reason = STOP_MAX_ITEMS
                break
            if result.pages_fetched >= self.max_pages:
                result.stop_reason = STOP_MAX_PAGES
                break
            if self.stop_on_short_page and 0 < len(items) < self.page_size:
                result.stop_reason = STOP_SHORT_PAGE
                break

            offset += self.page_size
            if self.delay > 0:
                await self._sleep(self.delay)

        logger.info(
            "[%s] done: pages=%d parsed=%d fresh=%d stop=%s",
            self.label, result.pages_fetched, result.parsed_count,
            result.fresh_count, result.stop_reason,
        )
        return result

    async def _load(self, url: str) -> list[Any]:
        """Fetch and parse one page. Every failure becomes an empty page."""
        try:
            html = await self._fetch_page(url)
        except CrawlError as e:
            logger.warning("[%s] fetch failed for %s: %s", self.label, url, e)
            return []
        if is_challenge_page(html):
            logger.warning("[%s] challenge page at %s", self.label, url)
            return []
        try:
            return self._parse_page(html)
        except ParseAnomaly as e:
            logger.warning("[%s] unexpected markup at %s: %s", self.label, url, e)
            return []
