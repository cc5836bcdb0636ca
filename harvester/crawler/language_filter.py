"""
Lexical check that an article filed under /id/ is actually Indonesian.

The site occasionally serves English copy on Indonesian paths. Counting a
handful of function words is enough to tell the two apart.
"""

from __future__ import annotations

import re

INDONESIAN_WORDS: frozenset[str] = frozenset({
    "yang", "dan", "di", "ke", "dari", "untuk", "dengan", "pada", "ini", "itu",
    "akan", "tidak", "dalam", "juga", "karena", "oleh", "sebagai", "atau",
    "telah", "masih", "lebih", "setelah", "bahwa", "para", "adalah",
})

ENGLISH_WORDS: frozenset[str] = frozenset({
    "the", "and", "of", "to", "in", "for", "with", "on", "that", "this",
    "is", "are", "was", "were", "will", "from", "by", "as", "at", "its",
    "after", "which", "has", "have", "be",
})

_WORD_RE = re.compile(r"[a-z]+")


def language_scores(text: str) -> tuple[int, int]:
    """Return ``(indonesian_hits, english_hits)`` for ``text``."""
    words = _WORD_RE.findall(text.lower())
    id_hits = sum(1 for w in words if w in INDONESIAN_WORDS)
    en_hits = sum(1 for w in words if w in ENGLISH_WORDS)
    return id_hits, en_hits


def is_plausibly_indonesian(*parts: str | None) -> bool:
    """False only when English function words outnumber Indonesian ones."""
    text = " ".join(p for p in parts if p)
    id_hits, en_hits = language_scores(text)
    return en_hits <= id_hits
