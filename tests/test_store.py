from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from harvester.db.models import DEFAULT_SOURCE_NAME, PUSH_PENDING, PUSH_SENT, NewsArticle
from harvester.db.store import HistoricalStore, NewsStore, news_to_dict


def _row(n: int, **overrides) -> dict:
    row = {
        "title": f"Headline {n}",
        "link": f"https://www.newsmaker.id/index.php/en/market-news/{n}-story",
        "summary": f"Summary {n}",
        "detail": f"Body {n}",
        "category": "Commodity",
        "date": "12 September 2025 08:38",
        "language": "en",
        "published_at": datetime(2025, 9, 12, 1, n % 60, tzinfo=timezone.utc),
    }
    row.update(overrides)
    return row


@pytest.mark.asyncio
async def test_upsert_reports_new_rows_then_refreshes(session_factory) -> None:
    store = NewsStore(session_factory)

    first = await store.upsert_news([_row(1), _row(2)])
    assert [r["link"] for r in first.inserted] == [_row(1)["link"], _row(2)["link"]]
    assert first.updated == 0

    second = await store.upsert_news([_row(1, summary="Fresh summary"), _row(3)])
    assert [r["link"] for r in second.inserted] == [_row(3)["link"]]
    assert second.updated == 1

    async with session_factory() as session:
        rows = (await session.execute(select(NewsArticle))).scalars().all()
    assert len(rows) == 3
    refreshed = next(r for r in rows if r.link == _row(1)["link"])
    assert refreshed.summary == "Fresh summary"


@pytest.mark.asyncio
async def test_upsert_is_idempotent(session_factory) -> None:
    store = NewsStore(session_factory)
    await store.upsert_news([_row(1), _row(2)])
    report = await store.upsert_news([_row(1), _row(2)])

    assert report.inserted == []
    assert report.updated == 2
    assert await store.known_links("en") == {_row(1)["link"], _row(2)["link"]}


@pytest.mark.asyncio
async def test_upsert_applies_defaults_and_canonical_link(session_factory) -> None:
    store = NewsStore(session_factory)
    row = _row(5, link=_row(5)["link"] + "/", language="EN")
    row.pop("published_at")
    await store.upsert_news([row])

    async with session_factory() as session:
        stored = (await session.execute(select(NewsArticle))).scalar_one()
    assert stored.link == _row(5)["link"]
    assert stored.language == "en"
    assert stored.source_name == DEFAULT_SOURCE_NAME
    assert stored.source_url == _row(5)["link"]
    assert stored.published_at is not None
    assert stored.push_status == PUSH_PENDING


@pytest.mark.asyncio
async def test_conflict_does_not_touch_columns_outside_the_allow_list(session_factory) -> None:
    store = NewsStore(session_factory)
    await store.upsert_news([_row(1, source_name="Reuters")])
    await store.update_push_state(_row(1)["link"], "en", push_status=PUSH_SENT)

    await store.upsert_news([_row(1, source_name="Bloomberg", title="Edited headline")])

    async with session_factory() as session:
        stored = (await session.execute(select(NewsArticle))).scalar_one()
    assert stored.title == "Edited headline"
    assert stored.source_name == "Reuters"
    assert stored.push_status == PUSH_SENT


@pytest.mark.asyncio
async def test_same_link_in_both_languages_is_two_rows(session_factory) -> None:
    store = NewsStore(session_factory)
    report = await store.upsert_news([_row(1), _row(1, language="id")])
    assert len(report.inserted) == 2
    assert await store.get_id(_row(1)["link"], "id") is not None


@pytest.mark.asyncio
async def test_bad_row_falls_back_to_per_row_writes(session_factory) -> None:
    store = NewsStore(session_factory, batch_size=10)
    report = await store.upsert_news([_row(1), _row(2, title=None), _row(3)])

    assert sorted(r["link"] for r in report.inserted) == [_row(1)["link"], _row(3)["link"]]
    assert len(report.failed) == 1
    assert report.failed[0].key == _row(2)["link"]
    assert await store.known_links("en") == {_row(1)["link"], _row(3)["link"]}


@pytest.mark.asyncio
async def test_batches_are_chunked(session_factory) -> None:
    store = NewsStore(session_factory, batch_size=2)
    report = await store.upsert_news([_row(n) for n in range(5)])
    assert len(report.inserted) == 5
    assert report.written == 5


@pytest.mark.asyncio
async def test_list_news_filters_and_orders_newest_first(session_factory) -> None:
    store = NewsStore(session_factory)
    await store.upsert_news([
        _row(1, category="Commodity"),
        _row(2, category="Currencies", title="Rupiah slips"),
        _row(3, category="Commodity", summary="Gold at record"),
    ])

    total, articles = await store.list_news("en")
    assert total == 3
    assert [a.title for a in articles] == ["Headline 3", "Rupiah slips", "Headline 1"]

    total, articles = await store.list_news("en", category="commodity")
    assert total == 2

    total, articles = await store.list_news("en", search="record")
    assert [a.title for a in articles] == ["Headline 3"]

    total, articles = await store.list_news("en", page=2, page_size=2)
    assert total == 3
    assert [a.title for a in articles] == ["Headline 1"]

    listed = news_to_dict(articles[0], fields="list")
    assert "detail" not in listed
    assert news_to_dict(articles[0])["detail"] == "Body 1"


def _bar(date: str, close: float | None = 1.0, event: str | None = None) -> dict:
    return {
        "date": date,
        "event": event,
        "open": close,
        "high": close,
        "low": close,
        "close": close,
        "change": "+0.1",
        "volume": 10.0,
        "open_interest": None,
    }


@pytest.mark.asyncio
async def test_insert_missing_never_overwrites(session_factory) -> None:
    store = HistoricalStore(session_factory)

    first = await store.insert_missing("Gold", [_bar("12 Sep 2025", 10.0), _bar("11 Sep 2025", 9.0)])
    assert len(first.inserted) == 2

    second = await store.insert_missing(
        "Gold", [_bar("12 Sep 2025", 99.0), _bar("10 Sep 2025", None, event="Holiday")]
    )
    assert [r["date"] for r in second.inserted] == ["10 Sep 2025"]
    assert second.updated == 1

    rows = await store.rows_for("gold")
    by_date = {r["date"]: r for r in rows}
    assert by_date["12 Sep 2025"]["close"] == 10.0
    assert by_date["10 Sep 2025"]["event"] == "Holiday"
    assert await store.known_dates("Gold") == {"12 Sep 2025", "11 Sep 2025", "10 Sep 2025"}
    assert await store.list_symbols() == ["Gold"]


@pytest.mark.asyncio
async def test_insert_missing_ignores_rows_without_date(session_factory) -> None:
    store = HistoricalStore(session_factory)
    report = await store.insert_missing("Silver", [_bar(""), _bar("12 Sep 2025"), _bar("12 Sep 2025")])
    assert len(report.inserted) == 1
