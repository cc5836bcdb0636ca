"""
News crawl for one language.

Categories are crawled one after another. For each listing page, the items
not yet stored are detail-fetched with bounded concurrency, converted to
rows, upserted, and the newly inserted rows are handed to the notification
dispatcher before the next page is requested.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from harvester.crawler.authors import normalize_author
from harvester.crawler.base_crawler import SITE_ORIGIN, Fetcher, is_challenge_page
from harvester.crawler.dates import derive_published_at
from harvester.crawler.errors import CrawlError, ParseAnomaly
from harvester.crawler.language_filter import is_plausibly_indonesian
from harvester.crawler.pagination import PaginationDriver
from harvester.crawler.parsers import (
    ArticleDetail,
    NewsListItem,
    parse_article_detail,
    parse_news_list,
)
from harvester.crawler.pool import BoundedPool
from harvester.crawler.vocabulary import DEFAULT_AUTHOR_VOCABULARY, AuthorVocabulary
from harvester.db.cache import CacheService, news_pattern
from harvester.db.models import DEFAULT_SOURCE_NAME
from harvester.db.store import NewsStore
from harvester.notify.dispatcher import NotificationDispatcher
from harvester.utils.config import get_settings
from harvester.utils.logger import get_logger

logger = get_logger(__name__)

NEWS_CATEGORIES: tuple[str, ...] = (
    "economic-news/all-economic-news",
    "economic-news/fiscal-moneter",
    "market-news/index/all-index",
    "market-news/commodity/all-commodity",
    "market-news/currencies/all-currencies",
    "analysis/analysis-market",
    "analysis/analysis-opinion",
)

NEWS_PAGE_SIZE = 20
LANGUAGES = ("en", "id")


def news_list_url(language: str, category: str, offset: int) -> str:
    return f"{SITE_ORIGIN}/index.php/{language}/{category}?start={offset}"


def canonical_link(link: str) -> str:
    link = link.strip()
    return link[:-1] if link.endswith("/") else link


def truncate_utf8(text: str, max_bytes: int) -> str:
    """Cut ``text`` to at most ``max_bytes`` UTF-8 bytes without splitting a character."""
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    return encoded[:max_bytes].decode("utf-8", errors="ignore")


class NewsCrawler:
    """Crawl, reconcile and notify for one site language at a time.

    Attributes:
        categories: Category paths crawled in order.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        store: NewsStore,
        dispatcher: NotificationDispatcher | None = None,
        cache: CacheService | None = None,
        vocabulary: AuthorVocabulary = DEFAULT_AUTHOR_VOCABULARY,
        categories: tuple[str, ...] = NEWS_CATEGORIES,
    ) -> None:
        settings = get_settings()
        self._fetcher = fetcher
        self._store = store
        self._dispatcher = dispatcher
        self._cache = cache
        self._vocabulary = vocabulary
        self.categories = categories
        self._pool = BoundedPool(settings.detail_concurrency)
        self._max_pages = settings.news_max_pages
        self._empty_streak = settings.empty_streak_threshold
        self._delay = settings.politeness_delay_seconds
        self._offset_hours = settings.source_utc_offset_hours
        self._body_ceiling = settings.body_byte_ceiling

    async def crawl_language(self, language: str) -> dict[str, Any]:
        """Crawl every category for ``language``.

        Returns:
            Run counters: pages, fresh, inserted, updated, failed, dropped.
        """
        known = await self._store.known_links(language)
        logger.info("[news:%s] %d links already stored", language, len(known))
        # one seen set across categories: a link listed in several feeds is taken once
        seen: set[str] = set()

        stats: dict[str, Any] = {
            "language": language,
            "pages": 0,
            "fresh": 0,
            "inserted": 0,
            "updated": 0,
            "failed": 0,
            "dropped": 0,
            "notified": 0,
        }

        for category in self.categories:
            driver = PaginationDriver(
                fetch_page=lambda url: self._fetcher.fetch_text(url, language=language),
                parse_page=lambda html: parse_news_list(html, language, self._vocabulary),
                identify=lambda item: canonical_link(item.link),
                page_size=NEWS_PAGE_SIZE,
                max_pages=self._max_pages,
                empty_streak_threshold=self._empty_streak,
                delay=self._delay,
                # the list parser drops cross-language cards, so a full page can look short
                stop_on_short_page=False,
                label=f"news:{language}:{category}",
            )

            async def on_page(items: list[NewsListItem]) -> None:
                await self._reconcile_page(language, items, stats)

            result = await driver.run(
                lambda offset, c=category: news_list_url(language, c, offset),
                known_ids=known,
                on_page=on_page,
                seen=seen,
            )
            stats["pages"] += result.pages_fetched
            stats["fresh"] += result.fresh_count

        if stats["inserted"] or stats["updated"]:
            if self._cache is not None:
                await self._cache.delete_pattern(news_pattern(language))

        logger.info("[news:%s] run complete: %s", language, stats)
        return stats

    async def _reconcile_page(
        self, language: str, items: list[NewsListItem], stats: dict[str, Any]
    ) -> None:
        results = await self._pool.run(
            [lambda item=item: self._fetch_detail(item) for item in items]
        )

        rows: list[dict[str, Any]] = []
        for item, result in zip(items, results):
            if isinstance(result, BaseException):
                # left unsaved so the next run retries it
                stats["dropped"] += 1
                logger.warning("[news:%s] detail failed for %s: %s", language, item.link, result)
                continue
            if language == "id" and not is_plausibly_indonesian(
                item.title, item.summary, result.text
            ):
                stats["dropped"] += 1
                logger.info("[news:id] English copy under /id/, dropped: %s", item.link)
                continue
            rows.append(self.build_row(item, result))

        if not rows:
            return

        report = await self._store.upsert_news(rows)
        stats["inserted"] += len(report.inserted)
        stats["updated"] += report.updated
        stats["failed"] += len(report.failed)

        if self._dispatcher is not None and report.inserted:
            counts = await self._dispatcher.dispatch_many(report.inserted)
            stats["notified"] += counts.get("sent", 0)

    async def _fetch_detail(self, item: NewsListItem) -> ArticleDetail:
        html = await self._fetcher.fetch_text(item.link, language=item.language)
        if is_challenge_page(html):
            raise CrawlError(f"challenge page at {item.link}")
        try:
            return parse_article_detail(html, self._vocabulary)
        except ParseAnomaly as e:
            raise CrawlError(f"{e} at {item.link}") from e

    def build_row(self, item: NewsListItem, detail: ArticleDetail) -> dict[str, Any]:
        """Combine listing and detail data into a ``news`` row dict."""
        author = None
        author_name = None
        if detail.author:
            author, author_name = detail.author, detail.author_name
        elif item.author_hint:
            match = normalize_author(item.author_hint, self._vocabulary)
            if match:
                author, author_name = match.code, match.name

        link = canonical_link(item.link)
        return {
            "title": item.title,
            "link": link,
            "image": item.image,
            "category": item.category,
            "date": item.date,
            "summary": item.summary,
            "detail": truncate_utf8(detail.text, self._body_ceiling),
            "language": item.language,
            "source_name": detail.source_name or DEFAULT_SOURCE_NAME,
            "source_url": link,
            "author": author,
            "author_name": author_name,
            "published_at": derive_published_at(
                item.date, item.language, self._offset_hours,
                now=datetime.now(timezone.utc),
            ),
        }
