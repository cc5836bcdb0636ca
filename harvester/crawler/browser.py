"""
Shared headless Chromium for render-driven scrapes.

The browser process is started lazily by the first caller (single-flight:
concurrent first callers wait on one launch) and lives until ``close()``
at shutdown. Each scrape gets its own context and page, closed when the
scrape ends, so cookies and storage never leak between runs.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from playwright.async_api import Browser, Page, Playwright, async_playwright

from harvester.utils.logger import get_logger

logger = get_logger(__name__)

_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)
_LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"]


class BrowserPool:
    """Process-wide Playwright browser handle."""

    def __init__(self, headless: bool = True) -> None:
        self._headless = headless
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()

    @property
    def started(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def _ensure_browser(self) -> Browser:
        if self.started:
            return self._browser  # type: ignore[return-value]
        async with self._lock:
            if self.started:
                return self._browser  # type: ignore[return-value]
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._headless, args=_LAUNCH_ARGS
            )
            logger.info("[browser] chromium launched")
            return self._browser

    @asynccontextmanager
    async def page(self, locale: str = "en-US") -> AsyncIterator[Page]:
        """Yield a fresh page in a fresh context; both closed on exit."""
        browser = await self._ensure_browser()
        context = await browser.new_context(user_agent=_USER_AGENT, locale=locale)
        try:
            page = await context.new_page()
            yield page
        finally:
            await context.close()

    async def close(self) -> None:
        async with self._lock:
            if self._browser is not None:
                try:
                    await self._browser.close()
                except Exception as e:
                    logger.warning("[browser] close failed: %s", e)
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
                logger.info("[browser] stopped")
