"""
SQLAlchemy ORM models for the newsmaker harvester.

Only news articles and historical price bars are stored relationally.
Calendar events, quotes and the symbol catalog live in Redis with a TTL.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    TIMESTAMP,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

DEFAULT_SOURCE_NAME = "Newsmaker 23"

PUSH_PENDING = "pending"
PUSH_SENT = "sent"
PUSH_FAILED = "failed"
PUSH_SKIPPED = "skipped"


class Base(DeclarativeBase):
    pass


class NewsArticle(Base):
    """One article per (link, language). Rows are upserted, never deleted."""

    __tablename__ = "news"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[str] = mapped_column(String(512), nullable=False)
    image: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str | None] = mapped_column(String(100))
    date: Mapped[str | None] = mapped_column(String(100))  # raw display date
    summary: Mapped[str | None] = mapped_column(Text)
    detail: Mapped[str | None] = mapped_column(Text)
    language: Mapped[str] = mapped_column(String(5), nullable=False)
    source_name: Mapped[str] = mapped_column(
        String(100), nullable=False, default=DEFAULT_SOURCE_NAME
    )
    source_url: Mapped[str | None] = mapped_column(String(512))
    author: Mapped[str | None] = mapped_column(String(10))
    author_name: Mapped[str | None] = mapped_column(String(100))
    published_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True))
    push_status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=PUSH_PENDING
    )
    push_topic: Mapped[str | None] = mapped_column(String(100))
    push_collapse_key: Mapped[str | None] = mapped_column(String(100))
    push_deeplink: Mapped[str | None] = mapped_column(String(512))
    push_dedupe_hash: Mapped[str | None] = mapped_column(String(40))
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("link", "language", name="uniq_link_lang"),
        Index("idx_news_language_published", "language", "published_at"),
        Index("idx_news_category", "category"),
    )


class HistoricalBar(Base):
    """Daily OHLC row for one symbol. Find-or-create only."""

    __tablename__ = "historical_data"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(String(100), nullable=False)
    date: Mapped[str] = mapped_column(String(50), nullable=False)
    event: Mapped[str | None] = mapped_column(Text)
    open: Mapped[float | None] = mapped_column(Float)
    high: Mapped[float | None] = mapped_column(Float)
    low: Mapped[float | None] = mapped_column(Float)
    close: Mapped[float | None] = mapped_column(Float)
    change: Mapped[str | None] = mapped_column(String(50))
    volume: Mapped[float | None] = mapped_column(Float)
    open_interest: Mapped[float | None] = mapped_column(Float)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("symbol", "date", name="uniq_symbol_date"),
        Index("idx_historical_symbol", "symbol"),
    )


def normalize_news_row(row: dict) -> dict:
    """Apply write-time defaults to a news row dict.

    Trims the link and drops one trailing slash, lower-cases the language,
    and fills ``source_name``, ``source_url`` and ``published_at`` when absent.
    The input dict is not modified.
    """
    out = dict(row)
    link = (out.get("link") or "").strip()
    if link.endswith("/"):
        link = link[:-1]
    out["link"] = link
    out["language"] = (out.get("language") or "").strip().lower()
    if not out.get("source_name"):
        out["source_name"] = DEFAULT_SOURCE_NAME
    if not out.get("source_url"):
        out["source_url"] = link
    if out.get("published_at") is None:
        out["published_at"] = datetime.now(timezone.utc)
    return out
