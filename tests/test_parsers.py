from __future__ import annotations

import pytest

from harvester.crawler.errors import ParseAnomaly
from harvester.crawler.parsers import (
    parse_article_detail,
    parse_calendar_table,
    parse_historical_table,
    parse_news_list,
    parse_number,
    parse_quotes,
    parse_symbol_catalog,
)

NEWS_LIST_HTML = """
<html><body>
<div class="single-news-item">
  <img class="card-img" src="/images/news/gold.jpg">
  <span class="category-label">Commodity</span>
  <h5 class="card-title"><a href="/index.php/en/market-news/commodity/123-gold-climbs">Gold climbs</a></h5>
  <p class="card-text">12 September 2025 08:38</p>
  <p class="card-text">Gold rose on Friday (azf)</p>
</div>
<div class="single-news-item">
  <h5 class="card-title"><a href="/index.php/id/market-news/commodity/124-emas-naik">Emas naik</a></h5>
  <p class="card-text">12 September 2025 08:40</p>
</div>
<div class="single-news-item">
  <h5 class="card-title"><a href="/index.php/en/x"></a></h5>
</div>
<div class="single-news-item">
  <h5 class="card-title"><a href="/index.php/en/market-news/index/125-dow">Dow slips (DJIA)</a></h5>
  <p class="card-text">Stocks fell as oil (WTI) rallied</p>
</div>
</body></html>
"""


def test_parse_news_list_extracts_cards() -> None:
    items = parse_news_list(NEWS_LIST_HTML, "en")

    assert [i.title for i in items] == ["Gold climbs", "Dow slips (DJIA)"]
    gold = items[0]
    assert gold.link == "https://www.newsmaker.id/index.php/en/market-news/commodity/123-gold-climbs"
    assert gold.image == "https://www.newsmaker.id/images/news/gold.jpg"
    assert gold.category == "Commodity"
    assert gold.date == "12 September 2025 08:38"
    assert gold.summary == "Gold rose on Friday"
    assert gold.author_hint == "azf"
    assert gold.language == "en"


def test_parse_news_list_keeps_non_author_markers_in_summary() -> None:
    dow = parse_news_list(NEWS_LIST_HTML, "en")[1]
    assert dow.date is None
    assert dow.summary == "Stocks fell as oil (WTI) rallied"
    assert dow.author_hint is None


def test_parse_news_list_filters_by_language_segment() -> None:
    items = parse_news_list(NEWS_LIST_HTML, "id")
    assert [i.title for i in items] == ["Emas naik"]


def test_parse_news_list_without_cards_is_empty() -> None:
    assert parse_news_list("<html><body><p>nothing</p></body></html>", "en") == []


ARTICLE_HTML = """
<html><head><meta name="author" content="Adisti"></head><body>
<div class="article-content">
  <h3>Related news</h3>
  <p>Gold prices rose (WTI) on Friday.</p>
  <p><span>Ad</span>Analysts expect more gains. (azf)</p>
  <p>Source: Reuters (azf)</p>
  <script>var tracking = 1;</script>
</div>
</body></html>
"""


def test_parse_article_detail_reads_body_author_and_source() -> None:
    detail = parse_article_detail(ARTICLE_HTML)

    assert detail.text == "Gold prices rose (WTI) on Friday.\n\nAnalysts expect more gains."
    assert detail.author == "azf"
    assert detail.author_name == "Azifah"
    assert detail.source_name == "Reuters"


def test_parse_article_detail_falls_back_to_meta_author() -> None:
    html = """
    <html><head><meta name="author" content="Adisti"></head><body>
    <article><p>Rupiah weakened against the dollar (USD).</p></article>
    </body></html>
    """
    detail = parse_article_detail(html)
    assert detail.author == "ads"
    assert detail.author_name == "Adisti"
    assert detail.source_name is None
    assert detail.text == "Rupiah weakened against the dollar (USD)."


def test_parse_article_detail_ignores_non_staff_markers() -> None:
    html = '<div class="item-page"><p>Crude oil (WTI) rose. (xx)</p></div>'
    detail = parse_article_detail(html)
    assert detail.author is None
    assert detail.author_name is None


def test_parse_article_detail_without_container_raises() -> None:
    with pytest.raises(ParseAnomaly):
        parse_article_detail("<html><body><div>nothing</div></body></html>")


CALENDAR_HTML = """
<table>
<thead><tr>
  <th>Time</th><th>Currency</th><th>Impact</th><th>Event</th>
  <th>Previous</th><th>Forecast</th><th>Actual</th>
</tr></thead>
<tbody>
  <tr><td colspan="7">Friday, 12 Sep 2025</td></tr>
  <tr>
    <td>19:30</td><td>USD</td><td><span>High</span></td><td>Core CPI m/m</td>
    <td>0.3%</td><td>0.3%</td><td>0.4%</td>
  </tr>
  <tr class="event-detail"><td colspan="7">Sources: Bureau of Labor Statistics<br>Measures: Change in price</td></tr>
  <tr><td>21:00</td><td>USD</td><td><span>Low</span></td><td>-</td><td></td><td></td><td></td></tr>
  <tr><td>21:00</td><td>EUR</td><td><span>Medium</span></td><td>ECB Press Conference</td><td></td><td></td><td></td></tr>
</tbody>
</table>
"""


def test_parse_calendar_table_events_and_details() -> None:
    events = parse_calendar_table(CALENDAR_HTML)

    assert [e["event"] for e in events] == ["Core CPI m/m", "ECB Press Conference"]
    cpi = events[0]
    assert cpi["date"] == "Friday, 12 Sep 2025"
    assert cpi["time"] == "19:30"
    assert cpi["currency"] == "USD"
    assert cpi["impact"] == "High"
    assert (cpi["previous"], cpi["forecast"], cpi["actual"]) == ("0.3%", "0.3%", "0.4%")
    assert cpi["detail"] == {
        "sources": "Bureau of Labor Statistics",
        "measures": "Change in price",
    }

    ecb = events[1]
    assert ecb["date"] == "Friday, 12 Sep 2025"
    assert (ecb["previous"], ecb["forecast"], ecb["actual"]) == ("-", "-", "-")
    assert "detail" not in ecb


def test_parse_calendar_table_inline_figures_and_impact_class() -> None:
    html = """
    <table>
    <thead><tr><th>Time</th><th>Cur</th><th>Imp</th><th>Event</th></tr></thead>
    <tbody>
      <tr>
        <td>08:30</td><td>JPY</td><td><span class="impact-high"></span></td>
        <td>GDP q/q<br>Previous: 0.1% | Forecast: 0.2% | Actual: 0.3%</td>
      </tr>
    </tbody>
    </table>
    """
    (event,) = parse_calendar_table(html)
    assert event["event"] == "GDP q/q"
    assert event["impact"] == "impact-high"
    assert (event["previous"], event["forecast"], event["actual"]) == ("0.1%", "0.2%", "0.3%")


def test_parse_calendar_table_without_table_raises() -> None:
    with pytest.raises(ParseAnomaly):
        parse_calendar_table("<html><body><div>loading...</div></body></html>")


HISTORICAL_HTML = """
<table class="table table-striped table-bordered">
<thead><tr><th>Date</th><th>Open</th><th>High</th><th>Low</th><th>Close</th>
<th>Change</th><th>Volume</th><th>Open Interest</th></tr></thead>
<tbody>
  <tr><td>12 Sep 2025</td><td>3,640.10</td><td>3,655.00</td><td>3,630.50</td>
      <td>3,650.20</td><td>+10.10</td><td>1,234</td><td>5,678</td></tr>
  <tr><td>11 Sep 2025</td><td colspan="7">Holiday</td></tr>
  <tr><td>10 Sep 2025</td><td>-</td><td>-</td><td>-</td><td>-</td><td></td><td></td><td></td></tr>
</tbody>
</table>
"""


def test_parse_historical_table() -> None:
    rows = parse_historical_table(HISTORICAL_HTML)

    assert len(rows) == 2
    bar, holiday = rows
    assert bar["date"] == "12 Sep 2025"
    assert bar["open"] == 3640.10
    assert bar["close"] == 3650.20
    assert bar["change"] == "+10.10"
    assert bar["volume"] == 1234.0
    assert bar["open_interest"] == 5678.0
    assert bar["event"] is None

    assert holiday["date"] == "11 Sep 2025"
    assert holiday["event"] == "Holiday"
    assert holiday["open"] is None


def test_parse_historical_table_missing_table_raises() -> None:
    with pytest.raises(ParseAnomaly):
        parse_historical_table("<table class='table'><tr><td>x</td></tr></table>")


def test_parse_symbol_catalog_skips_placeholders_and_duplicates() -> None:
    html = """
    <select name="cid">
      <option value="">Choose symbol</option>
      <option value="19">Gold</option>
      <option value="19">Gold</option>
      <option value="20">Silver</option>
    </select>
    """
    entries = parse_symbol_catalog(html)
    assert [(e.cid, e.name) for e in entries] == [("19", "Gold"), ("20", "Silver")]


def test_parse_quotes_respects_count() -> None:
    payload = [
        {"count": 2},
        {"symbol": "LGD", "last": "3,650.2", "prevClose": "3,640", "percentChange": "0.28"},
        {"symbol": "LSI", "last": "41.2", "high": "-"},
        {"symbol": "EXTRA", "last": "1"},
    ]
    quotes = parse_quotes(payload)
    assert [q.symbol for q in quotes] == ["LGD", "LSI"]
    assert quotes[0].last == 3650.2
    assert quotes[0].prev_close == 3640.0
    assert quotes[0].percent_change == 0.28
    assert quotes[1].high is None


@pytest.mark.parametrize("payload", [{"count": 1}, [], ["x"], [{"count": "many"}]])
def test_parse_quotes_rejects_unexpected_shapes(payload) -> None:
    with pytest.raises(ParseAnomaly):
        parse_quotes(payload)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("1,234.5", 1234.5),
        ("  42 ", 42.0),
        (7, 7.0),
        ("-", None),
        ("—", None),
        ("", None),
        ("n/a", None),
        (None, None),
        ("abc", None),
    ],
)
def test_parse_number(raw, expected) -> None:
    assert parse_number(raw) == expected
