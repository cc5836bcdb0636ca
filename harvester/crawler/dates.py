"""
Publish-timestamp derivation from the site's display dates.

The listing shows dates such as ``"12 September 2025 08:38"`` (en) or
``"Jumat, 12 Sep 2025 08:38"`` (id) in WIB (UTC+7). Month names are looked
up in the table of the crawled language first and then in the other one,
since pages sometimes mix conventions.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

MONTHS_EN: dict[str, int] = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sep": 9, "sept": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}

MONTHS_ID: dict[str, int] = {
    "januari": 1, "jan": 1,
    "februari": 2, "feb": 2, "pebruari": 2,
    "maret": 3, "mar": 3,
    "april": 4, "apr": 4,
    "mei": 5,
    "juni": 6, "jun": 6,
    "juli": 7, "jul": 7,
    "agustus": 8, "agu": 8, "agt": 8, "ags": 8,
    "september": 9, "sep": 9, "sept": 9,
    "oktober": 10, "okt": 10,
    "november": 11, "nov": 11, "nopember": 11,
    "desember": 12, "des": 12,
}

_MONTH_TABLES = {"en": MONTHS_EN, "id": MONTHS_ID}

DATE_RE = re.compile(r"(\d{1,2})\s+([A-Za-z]+)\.?\s+(\d{4})")
TIME_RE = re.compile(r"(\d{1,2})[:.](\d{2})(?![\d])")

DEFAULT_HOUR = 12


def _month_number(name: str, language: str) -> int | None:
    name = name.lower()
    primary = _MONTH_TABLES.get(language, MONTHS_EN)
    if name in primary:
        return primary[name]
    for table in _MONTH_TABLES.values():
        if table is not primary and name in table:
            return table[name]
    return None


def parse_display_date(
    raw: str | None, language: str, offset_hours: int = 7
) -> datetime | None:
    """Parse a display date into an aware UTC datetime, or None."""
    if not raw:
        return None
    m = DATE_RE.search(raw)
    if not m:
        return None
    month = _month_number(m.group(2), language)
    if month is None:
        return None
    hour, minute = DEFAULT_HOUR, 0
    t = TIME_RE.search(raw[m.end():])
    if t:
        hour, minute = int(t.group(1)), int(t.group(2))
    try:
        local = datetime(
            int(m.group(3)), month, int(m.group(1)), hour, minute,
            tzinfo=timezone(timedelta(hours=offset_hours)),
        )
    except ValueError:
        return None
    return local.astimezone(timezone.utc)


def derive_published_at(
    raw: str | None,
    language: str,
    offset_hours: int = 7,
    now: datetime | None = None,
) -> datetime:
    """Like ``parse_display_date`` but falls back to ``now`` instead of None.

    Args:
        raw: Display date text from the listing.
        language: ``en`` or ``id``; selects the primary month table.
        offset_hours: Source timezone offset from UTC.
        now: Fallback value, defaults to the current UTC time.

    Returns:
        Aware UTC datetime.
    """
    parsed = parse_display_date(raw, language, offset_hours)
    if parsed is not None:
        return parsed
    return now or datetime.now(timezone.utc)
