"""
Persistence operations for news articles and historical bars.

Writes are batched multi-row INSERTs with an ON CONFLICT clause:
``news`` rows upsert an allow-listed column subset, ``historical_data``
rows are insert-if-missing. When a batch statement fails, the batch is
retried row by row so a single bad row only loses itself.

The dialect-specific ``insert`` construct is picked from the bound engine
(PostgreSQL in production, SQLite in tests); both support the same
``on_conflict_do_*`` API.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from harvester.crawler.errors import PersistenceError
from harvester.db.connection import get_session_factory
from harvester.db.models import HistoricalBar, NewsArticle, normalize_news_row
from harvester.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 150

# Columns refreshed when a known (link, language) is seen again
NEWS_UPSERT_COLUMNS: tuple[str, ...] = (
    "summary",
    "detail",
    "author",
    "author_name",
    "image",
    "category",
    "date",
    "language",
    "title",
    "published_at",
)

NEWS_INSERT_COLUMNS: tuple[str, ...] = (
    "title",
    "link",
    "image",
    "category",
    "date",
    "summary",
    "detail",
    "language",
    "source_name",
    "source_url",
    "author",
    "author_name",
    "published_at",
)

HISTORICAL_COLUMNS: tuple[str, ...] = (
    "symbol",
    "date",
    "event",
    "open",
    "high",
    "low",
    "close",
    "change",
    "volume",
    "open_interest",
)


def _insert_for(session: AsyncSession):
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert
    return pg_insert


def _chunks(rows: list[dict[str, Any]], size: int) -> Iterable[list[dict[str, Any]]]:
    for i in range(0, len(rows), size):
        yield rows[i:i + size]


@dataclass
class UpsertReport:
    """Outcome of a batched write.

    Attributes:
        inserted: Rows that did not exist before this write.
        updated: Count of rows that already existed and were refreshed.
        failed: One error per row that could not be written.
    """

    inserted: list[dict[str, Any]] = field(default_factory=list)
    updated: int = 0
    failed: list[PersistenceError] = field(default_factory=list)

    @property
    def written(self) -> int:
        return len(self.inserted) + self.updated


class NewsStore:
    """Read/write access to the ``news`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self._session_factory = session_factory
        self.batch_size = batch_size

    def _factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory

    async def known_links(self, language: str) -> set[str]:
        """All persisted links for a language, loaded once per crawl run."""
        async with self._factory()() as session:
            result = await session.execute(
                select(NewsArticle.link).where(NewsArticle.language == language)
            )
            return {row[0] for row in result}

    async def get_id(self, link: str, language: str) -> int | None:
        async with self._factory()() as session:
            result = await session.execute(
                select(NewsArticle.id).where(
                    NewsArticle.link == link, NewsArticle.language == language
                )
            )
            return result.scalar_one_or_none()

    async def update_push_state(self, link: str, language: str, **values: Any) -> None:
        async with self._factory()() as session:
            async with session.begin():
                await session.execute(
                    update(NewsArticle)
                    .where(NewsArticle.link == link, NewsArticle.language == language)
                    .values(**values)
                )

    async def upsert_news(self, rows: list[dict[str, Any]]) -> UpsertReport:
        """Upsert news rows in batches.

        Args:
            rows: Row dicts; defaults are applied via ``normalize_news_row``.

        Returns:
            Which rows were new, how many were refreshed, which failed.
        """
        report = UpsertReport()
        prepared = self._dedupe([normalize_news_row(r) for r in rows])
        for batch in _chunks(prepared, self.batch_size):
            try:
                inserted, updated = await self._write_news_batch(batch)
                report.inserted.extend(inserted)
                report.updated += updated
            except Exception as e:
                logger.warning(
                    "[news-store] batch of %d failed (%s), falling back to per-row writes",
                    len(batch), e,
                )
                for row in batch:
                    try:
                        inserted, updated = await self._write_news_batch([row])
                        report.inserted.extend(inserted)
                        report.updated += updated
                    except Exception as row_error:
                        err = PersistenceError(row["link"], str(row_error))
                        report.failed.append(err)
                        logger.error(
                            "[news-store] row failed link=%s title='%.60s' reason=%s",
                            row["link"], row.get("title", ""), row_error,
                        )

        logger.info(
            "[news-store] upsert: %d new, %d refreshed, %d failed",
            len(report.inserted), report.updated, len(report.failed),
        )
        return report

    @staticmethod
    def _dedupe(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        # one statement must not touch the same conflict key twice
        by_key: dict[tuple[str, str], dict[str, Any]] = {}
        for row in rows:
            by_key[(row["link"], row["language"])] = row
        return list(by_key.values())

    async def _write_news_batch(
        self, batch: list[dict[str, Any]]
    ) -> tuple[list[dict[str, Any]], int]:
        values = [{col: row.get(col) for col in NEWS_INSERT_COLUMNS} for row in batch]
        async with self._factory()() as session:
            async with session.begin():
                conditions = [
                    (NewsArticle.link == row["link"]) & (NewsArticle.language == row["language"])
                    for row in batch
                ]
                existing = await session.execute(
                    select(NewsArticle.link, NewsArticle.language).where(or_(*conditions))
                )
                existing_keys = {(link, lang) for link, lang in existing}

                insert = _insert_for(session)
                stmt = insert(NewsArticle).values(values)
                set_ = {col: stmt.excluded[col] for col in NEWS_UPSERT_COLUMNS}
                set_["updated_at"] = func.now()
                stmt = stmt.on_conflict_do_update(
                    index_elements=["link", "language"], set_=set_
                )
                await session.execute(stmt)

        inserted = [r for r in batch if (r["link"], r["language"]) not in existing_keys]
        return inserted, len(batch) - len(inserted)

    async def list_news(
        self,
        language: str,
        category: str | None = None,
        search: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[int, list[NewsArticle]]:
        """Newest-first page of articles with optional category/search filters."""
        conditions = [NewsArticle.language == language]
        if category and category != "all":
            conditions.append(NewsArticle.category.ilike(f"%{category}%"))
        if search:
            pattern = f"%{search}%"
            conditions.append(or_(
                NewsArticle.title.ilike(pattern),
                NewsArticle.summary.ilike(pattern),
                NewsArticle.detail.ilike(pattern),
            ))

        async with self._factory()() as session:
            total = (await session.execute(
                select(func.count()).select_from(NewsArticle).where(*conditions)
            )).scalar_one()
            result = await session.execute(
                select(NewsArticle)
                .where(*conditions)
                .order_by(NewsArticle.published_at.desc(), NewsArticle.id.desc())
                .offset(max(page - 1, 0) * page_size)
                .limit(page_size)
            )
            return total, list(result.scalars())


class HistoricalStore:
    """Insert-if-missing access to ``historical_data``."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self._session_factory = session_factory
        self.batch_size = batch_size

    def _factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory

    async def known_dates(self, symbol: str) -> set[str]:
        async with self._factory()() as session:
            result = await session.execute(
                select(HistoricalBar.date).where(HistoricalBar.symbol == symbol)
            )
            return {row[0] for row in result}

    async def insert_missing(
        self, symbol: str, rows: list[dict[str, Any]]
    ) -> UpsertReport:
        """Insert rows whose ``(symbol, date)`` is not stored yet."""
        report = UpsertReport()
        by_date: dict[str, dict[str, Any]] = {}
        for row in rows:
            if row.get("date"):
                by_date.setdefault(row["date"], {**row, "symbol": symbol})
        prepared = list(by_date.values())

        for batch in _chunks(prepared, self.batch_size):
            try:
                inserted, existing = await self._write_historical_batch(symbol, batch)
                report.inserted.extend(inserted)
                report.updated += existing
            except Exception as e:
                logger.warning(
                    "[historical-store] %s: batch of %d failed (%s), retrying per row",
                    symbol, len(batch), e,
                )
                for row in batch:
                    try:
                        inserted, existing = await self._write_historical_batch(symbol, [row])
                        report.inserted.extend(inserted)
                        report.updated += existing
                    except Exception as row_error:
                        key = f"{symbol}/{row['date']}"
                        report.failed.append(PersistenceError(key, str(row_error)))
                        logger.error("[historical-store] row failed %s: %s", key, row_error)

        logger.info(
            "[historical-store] %s: %d inserted, %d already stored, %d failed",
            symbol, len(report.inserted), report.updated, len(report.failed),
        )
        return report

    async def _write_historical_batch(
        self, symbol: str, batch: list[dict[str, Any]]
    ) -> tuple[list[dict[str, Any]], int]:
        values = [{col: row.get(col) for col in HISTORICAL_COLUMNS} for row in batch]
        async with self._factory()() as session:
            async with session.begin():
                existing = await session.execute(
                    select(HistoricalBar.date).where(
                        HistoricalBar.symbol == symbol,
                        HistoricalBar.date.in_([row["date"] for row in batch]),
                    )
                )
                existing_dates = {row[0] for row in existing}
                insert = _insert_for(session)
                stmt = insert(HistoricalBar).values(values).on_conflict_do_nothing(
                    index_elements=["symbol", "date"]
                )
                await session.execute(stmt)

        inserted = [r for r in batch if r["date"] not in existing_dates]
        return inserted, len(batch) - len(inserted)

    async def list_symbols(self) -> list[str]:
        async with self._factory()() as session:
            result = await session.execute(
                select(HistoricalBar.symbol).distinct().order_by(HistoricalBar.symbol)
            )
            return [row[0] for row in result]

    async def rows_for(self, symbol: str, limit: int = 5000) -> list[dict[str, Any]]:
        async with self._factory()() as session:
            result = await session.execute(
                select(HistoricalBar)
                .where(func.lower(HistoricalBar.symbol) == symbol.lower())
                .order_by(HistoricalBar.id)
                .limit(limit)
            )
            return [
                {col: getattr(bar, col) for col in HISTORICAL_COLUMNS}
                for bar in result.scalars()
            ]


def news_to_dict(article: NewsArticle, fields: str = "full") -> dict[str, Any]:
    """Serialise an article for the read API. ``fields=list`` omits the body."""
    data: dict[str, Any] = {
        "id": article.id,
        "title": article.title,
        "link": article.link,
        "image": article.image,
        "category": article.category,
        "date": article.date,
        "summary": article.summary,
        "language": article.language,
        "source_name": article.source_name,
        "source_url": article.source_url,
        "author": article.author,
        "author_name": article.author_name,
        "published_at": _iso(article.published_at),
    }
    if fields != "list":
        data["detail"] = article.detail
    return data


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
