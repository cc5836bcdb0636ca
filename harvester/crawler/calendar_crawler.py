"""
Economic calendar scraper.

The calendar table is filled in by client-side script, so each period view
is rendered in the shared headless browser. The rendered markup is then
parsed with the same BeautifulSoup parsers as the static pages, and the
result is cached per period with a short TTL.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from harvester.crawler.base_crawler import SITE_ORIGIN, is_challenge_page
from harvester.crawler.browser import BrowserPool
from harvester.crawler.errors import CrawlError, NetworkError
from harvester.crawler.parsers import parse_calendar_table
from harvester.db.cache import CALENDAR_TTL, CacheService, calendar_key
from harvester.utils.logger import get_logger

logger = get_logger(__name__)

CALENDAR_URL = f"{SITE_ORIGIN}/index.php/en/analysis/economic-calendar"

# period bucket -> value of the calendar's ``period`` query parameter
CALENDAR_PERIODS: dict[str, str] = {
    "today": "today",
    "this-week": "thisweek",
    "previous-week": "lastweek",
    "next-week": "nextweek",
}

_PAGE_TIMEOUT_MS = 60_000
_TABLE_TIMEOUT_MS = 30_000


def calendar_url(period: str) -> str:
    if period not in CALENDAR_PERIODS:
        raise ValueError(f"unknown calendar period: {period}")
    return f"{CALENDAR_URL}?period={CALENDAR_PERIODS[period]}"


class CalendarCrawler:
    """Render one calendar period, parse it and cache the events.

    Args:
        browser: Shared browser handle.
        cache: Target of the ``calendar:{period}`` snapshots.
        render: Optional override of the rendering step, ``async (url) -> html``.
    """

    def __init__(
        self,
        browser: BrowserPool,
        cache: CacheService,
        render: Callable[[str], Awaitable[str]] | None = None,
    ) -> None:
        self._browser = browser
        self._cache = cache
        self._render = render or self._render_with_browser

    async def _render_with_browser(self, url: str) -> str:
        async with self._browser.page() as page:
            try:
                await page.goto(url, timeout=_PAGE_TIMEOUT_MS, wait_until="networkidle")
            except Exception as e:
                logger.warning("[calendar] networkidle wait failed, retrying on DOM load: %s", e)
                try:
                    await page.goto(url, timeout=_PAGE_TIMEOUT_MS, wait_until="domcontentloaded")
                except Exception as e2:
                    raise NetworkError(str(e2), url) from e2
            try:
                await page.wait_for_selector("table tbody tr", timeout=_TABLE_TIMEOUT_MS)
            except Exception as e:
                logger.warning("[calendar] table rows did not appear at %s: %s", url, e)
            return await page.content()

    async def scrape_period(self, period: str) -> dict[str, Any]:
        """Render, parse and cache one period.

        Returns:
            The cached document (``status``, ``period``, ``total``, ``data``).

        Raises:
            CrawlError: Rendering failed, a challenge page came back, or the
                table was missing. The previous snapshot stays cached.
        """
        url = calendar_url(period)
        html = await self._render(url)
        if is_challenge_page(html):
            raise CrawlError(f"challenge page while rendering {url}")

        events = parse_calendar_table(html)
        document = {
            "status": "success",
            "period": period,
            "updatedAt": datetime.now(timezone.utc).isoformat(),
            "total": len(events),
            "data": events,
        }
        await self._cache.set_json(calendar_key(period), document, ttl=CALENDAR_TTL)
        logger.info("[calendar:%s] cached %d events", period, len(events))
        return document
