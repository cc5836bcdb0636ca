"""
HTTP fetcher shared by every newsmaker crawler.

A single aiohttp session serves the whole process. ``Fetcher.fetch`` sends
browser-like headers, classifies failures into ``NetworkError`` /
``HttpError`` and retries transient ones with exponential backoff.
``is_challenge_page`` recognises anti-bot interstitials so that callers can
treat them as empty pages instead of parsing them.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import aiohttp
from bs4 import BeautifulSoup

from harvester.crawler.errors import HttpError, NetworkError
from harvester.utils.config import get_settings
from harvester.utils.logger import get_logger

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Module constants
# ---------------------------------------------------------------------------

_CRAWLER_TIMEOUT_CONNECT: float = 10.0

SITE_ORIGIN = "https://www.newsmaker.id"

_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)

_ACCEPT_LANGUAGE = {
    "id": "id-ID,id;q=0.9,en-US;q=0.8,en;q=0.7",
    "en": "en-US,en;q=0.9",
}

# Lower-cased substrings seen on block / interstitial pages
_CHALLENGE_SIGNATURES = (
    "access denied",
    "forbidden",
    "captcha",
    "attention required",
    "just a moment",
    "verify you are human",
    "request blocked",
)

# a real page has more visible text than this; a block page is a short notice
_NOTICE_MAX_CHARS = 1500


def browser_headers(language: str = "en") -> dict[str, str]:
    """Build desktop-browser request headers for a target language."""
    return {
        "User-Agent": _USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": _ACCEPT_LANGUAGE.get(language, _ACCEPT_LANGUAGE["en"]),
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
        "Referer": f"{SITE_ORIGIN}/",
    }


def is_challenge_page(html: str | None) -> bool:
    """Return True when the page looks like an anti-bot block page.

    Only the ``<title>`` and the visible text are inspected, with scripts and
    styles left out. A full-length page that merely mentions "forbidden" is
    not flagged.
    """
    if not html:
        return False
    soup = BeautifulSoup(html, "html.parser")
    title = soup.title.get_text(" ", strip=True).lower() if soup.title else ""
    if any(sig in title for sig in _CHALLENGE_SIGNATURES):
        return True
    root = soup.body or soup
    for tag in root(["script", "style", "noscript", "title"]):
        tag.decompose()
    text = " ".join(root.get_text(" ").split()).lower()
    if len(text) > _NOTICE_MAX_CHARS:
        return False
    return any(sig in text for sig in _CHALLENGE_SIGNATURES)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff: ``base_delay * 2 ** attempt`` between attempts."""

    attempts: int = 3
    base_delay: float = 0.5

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (2 ** attempt)

    @staticmethod
    def is_retryable(exc: Exception) -> bool:
        if isinstance(exc, NetworkError):
            return True
        if isinstance(exc, HttpError):
            return exc.retryable
        return False


@dataclass
class FetchResult:
    body: str
    status: int
    url: str


class Fetcher:
    """Retrying HTTP GET over the shared aiohttp session.

    Attributes:
        retry: Backoff policy applied to transient failures.
        timeout: Per-request total timeout in seconds.
        max_redirects: Redirect ceiling per request.
    """

    # Shared aiohttp session across all fetcher instances
    _shared_session: aiohttp.ClientSession | None = None

    def __init__(
        self,
        retry: RetryPolicy | None = None,
        timeout: float | None = None,
        max_redirects: int | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        settings = get_settings()
        self.retry = retry or RetryPolicy(
            attempts=settings.fetch_retry_attempts,
            base_delay=settings.fetch_retry_base_delay,
        )
        self.timeout = timeout if timeout is not None else settings.fetch_timeout_seconds
        self.max_redirects = (
            max_redirects if max_redirects is not None else settings.fetch_max_redirects
        )
        self._sleep = sleep

    async def fetch(
        self,
        url: str,
        language: str = "en",
        headers: dict[str, str] | None = None,
    ) -> FetchResult:
        """GET ``url`` with retries.

        Args:
            url: Absolute URL.
            language: Target language, selects the Accept-Language header.
            headers: Extra headers merged over the browser defaults.

        Returns:
            The successful response.

        Raises:
            NetworkError: Transport failure after the last attempt.
            HttpError: Non-retryable status, or retryable status after the
                last attempt.
        """
        merged = browser_headers(language)
        if headers:
            merged.update(headers)

        attempt = 0
        while True:
            try:
                return await self._request(url, merged)
            except (NetworkError, HttpError) as e:
                attempt += 1
                if not self.retry.is_retryable(e):
                    raise
                if attempt >= self.retry.attempts:
                    logger.error("[fetch] giving up on %s: %s", url, e)
                    raise
                delay = self.retry.delay_for(attempt - 1)
                logger.warning(
                    "[fetch] attempt %d/%d failed for %s (%s), retrying in %.1fs",
                    attempt, self.retry.attempts, url, e, delay,
                )
                await self._sleep(delay)

    async def fetch_text(self, url: str, language: str = "en") -> str:
        return (await self.fetch(url, language=language)).body

    async def _request(self, url: str, headers: dict[str, str]) -> FetchResult:
        """Single GET attempt, failures mapped onto the crawler error types."""
        session = await self.get_session()
        timeout = aiohttp.ClientTimeout(
            total=self.timeout, connect=_CRAWLER_TIMEOUT_CONNECT
        )
        try:
            async with session.get(
                url,
                headers=headers,
                timeout=timeout,
                max_redirects=self.max_redirects,
            ) as resp:
                if not 200 <= resp.status < 300:
                    raise HttpError(resp.status, url)
                body = await resp.text(errors="replace")
                return FetchResult(body=body, status=resp.status, url=str(resp.url))
        except HttpError:
            raise
        except asyncio.TimeoutError as e:
            raise NetworkError(f"timeout after {self.timeout}s", url) from e
        except aiohttp.TooManyRedirects as e:
            raise NetworkError(f"more than {self.max_redirects} redirects", url) from e
        except aiohttp.ClientResponseError as e:
            raise HttpError(e.status, url, str(e)) from e
        except aiohttp.ClientError as e:
            raise NetworkError(str(e) or e.__class__.__name__, url) from e

    @classmethod
    async def get_session(cls) -> aiohttp.ClientSession:
        """Return shared aiohttp session, creating one if needed."""
        if cls._shared_session is None or cls._shared_session.closed:
            settings = get_settings()
            timeout = aiohttp.ClientTimeout(
                total=settings.fetch_timeout_seconds,
                connect=_CRAWLER_TIMEOUT_CONNECT,
            )
            cls._shared_session = aiohttp.ClientSession(timeout=timeout)
        return cls._shared_session

    @classmethod
    async def close_session(cls) -> None:
        """Close the shared aiohttp session."""
        if cls._shared_session is not None and not cls._shared_session.closed:
            await cls._shared_session.close()
            cls._shared_session = None


def absolute_url(href: str | None) -> str:
    """Resolve a site-relative href against the site origin."""
    if not href:
        return ""
    href = href.strip()
    if href.startswith(("http://", "https://")):
        return href
    if href.startswith("//"):
        return "https:" + href
    if not href.startswith("/"):
        href = "/" + href
    return SITE_ORIGIN + href
