"""
HTML/JSON parsers for newsmaker.id pages.

All functions here are pure: markup in, plain data out. Selectors are
specific to the site and are expected to break when its templates change;
when an expected container is missing entirely, ``ParseAnomaly`` is raised
so the caller can log it and treat the page as empty.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

from bs4 import BeautifulSoup, Tag

from harvester.crawler.authors import (
    find_author,
    normalize_author,
    strip_markers,
    strip_trailing_marker,
)
from harvester.crawler.base_crawler import absolute_url
from harvester.crawler.errors import ParseAnomaly
from harvester.crawler.vocabulary import DEFAULT_AUTHOR_VOCABULARY, AuthorVocabulary

_PARSER = "html.parser"

# "12 September 2025", "3 Okt 2025"
LIST_DATE_RE = re.compile(r"\d{1,2} \w+ \d{4}")

_SOURCE_LABEL_RE = re.compile(r"^\s*(source|sumber)\s*:\s*", re.IGNORECASE)

_DETAIL_CONTAINERS = ("div.article-content", "article", "div.item-page")
_DETAIL_STRIP_TAGS = ("span", "h3", "script", "style")

_NULL_TOKENS = frozenset({"", "-", "—", "–", "n/a"})


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def parse_number(value: Any) -> float | None:
    """Parse a display number such as ``"1,234.5"``.

    Thousands separators are dropped; dashes, blanks and None become None.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = str(value).replace(",", "").replace("\xa0", "").strip()
    if cleaned.lower() in _NULL_TOKENS:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def _text(node: Tag | None, separator: str = "") -> str:
    if node is None:
        return ""
    return node.get_text(separator, strip=True)


# ---------------------------------------------------------------------------
# News list
# ---------------------------------------------------------------------------

@dataclass
class NewsListItem:
    title: str
    link: str
    language: str
    image: str | None = None
    category: str | None = None
    date: str | None = None
    summary: str | None = None
    author_hint: str | None = None  # marker code found in the summary


def _belongs_to_language(link: str, language: str) -> bool:
    segments = [s for s in urlparse(link).path.split("/") if s]
    return language in segments


def parse_news_list(
    html: str,
    language: str,
    vocabulary: AuthorVocabulary = DEFAULT_AUTHOR_VOCABULARY,
) -> list[NewsListItem]:
    """Parse a category listing page.

    Args:
        html: Listing page markup.
        language: Language segment being crawled (``en``/``id``). Items
            linking into another language segment are dropped.
        vocabulary: Author tables used to strip ``(xx)`` tags from summaries.

    Returns:
        Items in page order. Items without title or link are skipped.
    """
    soup = BeautifulSoup(html, _PARSER)
    items: list[NewsListItem] = []

    for card in soup.select("div.single-news-item"):
        anchor = card.select_one("h5.card-title a")
        title = _text(anchor)
        href = anchor.get("href") if anchor else None
        link = absolute_url(href)
        if not title or not link:
            continue
        if not _belongs_to_language(link, language):
            continue

        img = card.select_one("img.card-img")
        image = absolute_url(img.get("src")) if img and img.get("src") else None
        category = _text(card.select_one("span.category-label")) or None

        date = None
        summary = None
        for p in card.select("p.card-text"):
            text = _text(p)
            if not text:
                continue
            if LIST_DATE_RE.search(text):
                date = text
            elif summary is None:
                summary = text

        author_hint = None
        if summary:
            match = find_author(summary, vocabulary)
            if match:
                author_hint = match.code
            summary = strip_markers(summary, vocabulary) or None

        items.append(NewsListItem(
            title=title,
            link=link,
            language=language,
            image=image,
            category=category,
            date=date,
            summary=summary,
            author_hint=author_hint,
        ))

    return items


# ---------------------------------------------------------------------------
# Article detail
# ---------------------------------------------------------------------------

@dataclass
class ArticleDetail:
    text: str
    author: str | None = None
    author_name: str | None = None
    source_name: str | None = None


def _author_from_meta(soup: BeautifulSoup, vocabulary: AuthorVocabulary):
    meta = soup.find("meta", attrs={"name": "author"})
    content = (meta.get("content") or "").strip() if meta else ""
    if not content:
        return None
    match = normalize_author(content, vocabulary)
    if match:
        return match
    # meta tags usually carry the display name rather than the initials
    lowered = content.lower()
    for code, name in vocabulary.staff.items():
        if name.lower() == lowered:
            return normalize_author(code, vocabulary)
    return None


def parse_article_detail(
    html: str,
    vocabulary: AuthorVocabulary = DEFAULT_AUTHOR_VOCABULARY,
) -> ArticleDetail:
    """Extract body text, author and source from an article page.

    Raises:
        ParseAnomaly: No known content container on the page.
    """
    soup = BeautifulSoup(html, _PARSER)
    container = None
    for selector in _DETAIL_CONTAINERS:
        container = soup.select_one(selector)
        if container is not None:
            break
    if container is None:
        raise ParseAnomaly("article content container not found")

    for tag in container.find_all(list(_DETAIL_STRIP_TAGS)):
        tag.decompose()

    paragraphs = [_text(p, " ") for p in container.find_all("p")]
    if not paragraphs:
        paragraphs = [line.strip() for line in container.get_text("\n").split("\n")]
    paragraphs = [p for p in paragraphs if p]

    author = None
    source_name = None

    for i, para in enumerate(paragraphs):
        if _SOURCE_LABEL_RE.match(para):
            author = find_author(para, vocabulary)
            source_name = strip_markers(_SOURCE_LABEL_RE.sub("", para), vocabulary) or None
            del paragraphs[i]
            break

    if author is None:
        for para in paragraphs:
            author = find_author(para, vocabulary)
            if author:
                break

    if author is None:
        author = _author_from_meta(soup, vocabulary)

    cleaned = [strip_trailing_marker(p, vocabulary) for p in paragraphs]
    body = "\n\n".join(p for p in cleaned if p)

    return ArticleDetail(
        text=body,
        author=author.code if author else None,
        author_name=author.name if author else None,
        source_name=source_name,
    )


# ---------------------------------------------------------------------------
# Economic calendar
# ---------------------------------------------------------------------------

_CALENDAR_HEADER_LABELS: dict[str, tuple[str, ...]] = {
    "date": ("date", "tanggal"),
    "time": ("time", "waktu", "jam"),
    "currency": ("currency", "cur", "mata uang"),
    "impact": ("impact", "dampak", "imp"),
    "event": ("event", "peristiwa", "acara"),
    "previous": ("previous", "prev", "sebelumnya"),
    "forecast": ("forecast", "perkiraan"),
    "actual": ("actual", "aktual"),
}
_REQUIRED_HEADERS = ("time", "currency", "impact", "event")

_CALENDAR_DATE_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2}|\d{1,2}/\d{1,2}/\d{4}|\d{1,2} [A-Za-z]{3,9} \d{4}"
    r"|[A-Za-z]+,? \d{1,2} [A-Za-z]{3,9} \d{4})$"
)
_FIGURE_RE = {
    "previous": re.compile(r"Previous\s*:\s*([^|\n]*)", re.IGNORECASE),
    "forecast": re.compile(r"Forecast\s*:\s*([^|\n]*)", re.IGNORECASE),
    "actual": re.compile(r"Actual\s*:\s*([^|\n]*)", re.IGNORECASE),
}
_DETAIL_CLASS_HINTS = ("detail", "accordion", "collapse")
_LABELLED_LINE_RE = re.compile(r"^([A-Za-z][A-Za-z ]{1,30}?)\s*:\s*(.+)$")
_DETAIL_KEY_MAP = {
    "source": "sources",
    "sources": "sources",
    "sumber": "sources",
    "measures": "measures",
    "mengukur": "measures",
}


def _header_map(table: Tag) -> dict[str, int]:
    header_row = table.select_one("thead tr")
    if header_row is None:
        header_row = table.find("tr")
    if header_row is None:
        return {}
    cells = header_row.find_all(["th", "td"])
    mapping: dict[str, int] = {}
    for idx, cell in enumerate(cells):
        label = _text(cell).lower()
        for key, names in _CALENDAR_HEADER_LABELS.items():
            if key not in mapping and any(label.startswith(n) for n in names):
                mapping[key] = idx
                break
    return mapping


def _find_calendar_table(soup: BeautifulSoup) -> tuple[Tag, dict[str, int]]:
    for table in soup.find_all("table"):
        mapping = _header_map(table)
        if all(k in mapping for k in _REQUIRED_HEADERS):
            return table, mapping
    raise ParseAnomaly("calendar table with expected headers not found")


def _is_detail_row(row: Tag, cells: list[Tag]) -> bool:
    classes = " ".join(row.get("class") or []).lower()
    if any(hint in classes for hint in _DETAIL_CLASS_HINTS):
        return True
    return len(cells) == 1 and cells[0].get("colspan") is not None


def _parse_figures(text: str) -> dict[str, str]:
    figures = {}
    for key, pattern in _FIGURE_RE.items():
        m = pattern.search(text)
        figures[key] = (m.group(1).strip() or "-") if m else "-"
    return figures


def _parse_detail_row(cells: list[Tag]) -> dict[str, Any]:
    detail: dict[str, Any] = {}
    container = cells[0] if cells else None
    if container is None:
        return detail

    nested = container.find("table")
    if nested is not None:
        rows = nested.find_all("tr")
        headers = [_text(c).lower() for c in rows[0].find_all(["th", "td"])] if rows else []
        revisions = []
        for tr in rows[1:]:
            values = [_text(c) for c in tr.find_all("td")]
            if values:
                revisions.append(dict(zip(headers, values)))
        detail["revisions"] = revisions
        nested.decompose()

    for line in container.get_text("\n").split("\n"):
        m = _LABELLED_LINE_RE.match(line.strip())
        if not m:
            continue
        label = m.group(1).strip().lower()
        key = _DETAIL_KEY_MAP.get(label, label.replace(" ", "_"))
        detail[key] = m.group(2).strip()
    return detail


def parse_calendar_table(html: str) -> list[dict[str, Any]]:
    """Parse the rendered economic-calendar table.

    Event rows carry time, currency, impact, event name and the
    previous/forecast/actual figures, either as separate columns or as a
    ``Previous: x | Forecast: y | Actual: z`` line under the event name.
    Detail rows attach to the event row right above them.

    Raises:
        ParseAnomaly: No table with the calendar headers.
    """
    soup = BeautifulSoup(html, _PARSER)
    table, mapping = _find_calendar_table(soup)

    tbody = table.find("tbody")
    if tbody is not None:
        body_rows = tbody.find_all("tr", recursive=False)
    else:
        body_rows = table.find_all("tr", recursive=False)[1:]

    events: list[dict[str, Any]] = []
    current: dict[str, Any] | None = None
    current_date: str | None = None

    for row in body_rows:
        cells = row.find_all("td", recursive=False)
        if not cells:
            continue

        if _is_detail_row(row, cells):
            only = _text(cells[0])
            if len(cells) == 1 and _CALENDAR_DATE_RE.match(only):
                current_date = only
                continue
            if current is not None:
                detail = _parse_detail_row(cells)
                if detail:
                    current.setdefault("detail", {}).update(detail)
            continue

        texts = [c.get_text("\n", strip=True) for c in cells]
        offset = 0
        row_date = None
        if "date" not in mapping and _CALENDAR_DATE_RE.match(texts[0].replace("\n", " ")):
            offset = 1
            row_date = texts[0].replace("\n", " ")

        def cell(key: str) -> str:
            idx = mapping.get(key)
            if idx is None:
                return ""
            idx += offset
            return texts[idx] if idx < len(texts) else ""

        if "date" in mapping:
            row_date = cell("date") or None

        event_lines = [ln.strip() for ln in cell("event").split("\n") if ln.strip()]
        event_name = event_lines[0] if event_lines else ""
        if not event_name or event_name == "-":
            current = None
            continue

        impact_idx = mapping["impact"] + offset
        impact = ""
        if impact_idx < len(cells):
            span = cells[impact_idx].find("span")
            impact = _text(span) if span else texts[impact_idx]
            if not impact and span is not None:
                impact = " ".join(span.get("class") or [])

        if any(k in mapping for k in ("previous", "forecast", "actual")):
            figures = {k: (cell(k) or "-") for k in ("previous", "forecast", "actual")}
        else:
            figures = _parse_figures("\n".join(event_lines[1:]))

        if row_date:
            current_date = row_date

        current = {
            "date": current_date,
            "time": cell("time").replace("\n", " ") or None,
            "currency": cell("currency") or None,
            "impact": impact or None,
            "event": event_name,
            **figures,
        }
        events.append(current)

    return events


# ---------------------------------------------------------------------------
# Historical data
# ---------------------------------------------------------------------------

def parse_historical_table(html: str) -> list[dict[str, Any]]:
    """Parse one page of a symbol's daily history.

    Rows with a ``colspan`` cell are non-trading annotations (holidays,
    contract rolls): only the date and the event text are kept.

    Raises:
        ParseAnomaly: The history table is missing.
    """
    soup = BeautifulSoup(html, _PARSER)
    table = soup.select_one("table.table.table-striped.table-bordered")
    if table is None:
        raise ParseAnomaly("historical table not found")

    rows: list[dict[str, Any]] = []
    for tr in table.select("tbody tr"):
        cells = tr.find_all("td")
        if not cells:
            continue

        if any(c.get("colspan") for c in cells):
            date = _text(cells[0])
            if not date:
                continue
            rows.append({
                "date": date,
                "event": _text(cells[-1]) or None,
                "open": None,
                "high": None,
                "low": None,
                "close": None,
                "change": None,
                "volume": None,
                "open_interest": None,
            })
            continue

        texts = [_text(c) for c in cells] + [""] * 8
        row = {
            "date": texts[0] or None,
            "event": None,
            "open": parse_number(texts[1]),
            "high": parse_number(texts[2]),
            "low": parse_number(texts[3]),
            "close": parse_number(texts[4]),
            "change": texts[5] or None,
            "volume": parse_number(texts[6]),
            "open_interest": parse_number(texts[7]),
        }
        if not row["date"]:
            continue
        if all(row[k] is None for k in ("open", "high", "low", "close")):
            continue
        rows.append(row)

    return rows


@dataclass(frozen=True)
class SymbolEntry:
    cid: str
    name: str


def parse_symbol_catalog(html: str) -> list[SymbolEntry]:
    """Read ``(cid, name)`` pairs from the historical page's symbol selector."""
    soup = BeautifulSoup(html, _PARSER)
    entries: list[SymbolEntry] = []
    seen: set[str] = set()
    for option in soup.select('select[name="cid"] option'):
        cid = (option.get("value") or "").strip()
        name = _text(option)
        if not cid or not name or cid in seen:
            continue
        seen.add(cid)
        entries.append(SymbolEntry(cid=cid, name=name))
    return entries


# ---------------------------------------------------------------------------
# Live quotes
# ---------------------------------------------------------------------------

@dataclass
class Quote:
    symbol: str
    last: float | None = None
    high: float | None = None
    low: float | None = None
    open: float | None = None
    prev_close: float | None = None
    value_change: float | None = None
    percent_change: float | None = None


def parse_quotes(payload: Any) -> list[Quote]:
    """Parse the live-quotes JSON: ``[{"count": n}, quote_1, ..., quote_n]``.

    Raises:
        ParseAnomaly: Payload is not in the expected shape.
    """
    if not isinstance(payload, list) or not payload or not isinstance(payload[0], dict):
        raise ParseAnomaly("quotes payload is not a counted list")
    try:
        count = int(payload[0].get("count", 0))
    except (TypeError, ValueError) as e:
        raise ParseAnomaly(f"bad quotes count: {payload[0].get('count')!r}") from e

    quotes: list[Quote] = []
    for raw in payload[1:count + 1]:
        if not isinstance(raw, dict) or not raw.get("symbol"):
            continue
        quotes.append(Quote(
            symbol=str(raw["symbol"]),
            last=parse_number(raw.get("last")),
            high=parse_number(raw.get("high")),
            low=parse_number(raw.get("low")),
            open=parse_number(raw.get("open")),
            prev_close=parse_number(raw.get("prevClose")),
            value_change=parse_number(raw.get("valueChange")),
            percent_change=parse_number(raw.get("percentChange")),
        ))
    return quotes
