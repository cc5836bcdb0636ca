"""
Vocabulary tables for author markers and push topics.

Kept as data, in the same spirit as the source registry dicts: parsers and
the dispatcher receive these objects instead of embedding literals, so a
new staff code or topic keyword is a one-line change here.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Author markers
# ---------------------------------------------------------------------------

# Known newsroom staff initials -> display name
STAFF_CODES: dict[str, str] = {
    "azf": "Azifah",
    "ads": "Adisti",
    "alg": "Alghifari",
    "yds": "Yudis",
    "frd": "Farid",
    "nda": "Nanda",
    "ktr": "Kartika",
    "ryn": "Ryan",
    "dmi": "Dimas",
    "lis": "Lisa",
    "mrt": "Marta",
    "rfi": "Rafi",
}

# Misspellings seen on the site -> canonical staff code
AUTHOR_ALIASES: dict[str, str] = {
    "afz": "azf",
    "azff": "azf",
    "adss": "ads",
    "agl": "alg",
    "yd": "yds",
    "fdr": "frd",
    "dna": "nda",
}

# Parenthesised tokens that look like an author tag but are not one
AUTHOR_DENYLIST: frozenset[str] = frozenset({
    # instruments and macro acronyms
    "wti", "usd", "idr", "eur", "jpy", "gbp", "aud", "chf", "cad", "cny", "hkd",
    "gdp", "cpi", "ppi", "pmi", "fed", "ecb", "boj", "boe", "rba", "bi", "ojk",
    "opec", "nfp", "fomc", "ihsg", "dji", "djia", "dax", "ftse", "nikkei", "hsi",
    "xau", "xag", "brent", "lme", "etf", "ipo", "yoy", "mom", "qoq", "bps",
    "imf", "wto", "ceo", "cfo", "ai", "us", "uk", "eu", "ri", "apbn",
    # weekdays, both languages
    "mon", "tue", "wed", "thu", "fri", "sat", "sun",
    "senin", "selasa", "rabu", "kamis", "jumat", "sabtu", "minggu",
    # generic words
    "admin", "editor", "redaksi", "staff", "team", "tim", "news", "berita",
    "update", "live", "source", "sumber", "foto", "photo", "ilustrasi",
})


@dataclass(frozen=True)
class AuthorVocabulary:
    """Allow-list, deny-list and alias map for author markers."""

    staff: dict[str, str] = field(default_factory=lambda: dict(STAFF_CODES))
    aliases: dict[str, str] = field(default_factory=lambda: dict(AUTHOR_ALIASES))
    denylist: frozenset[str] = AUTHOR_DENYLIST
    min_length: int = 2
    max_length: int = 6


DEFAULT_AUTHOR_VOCABULARY = AuthorVocabulary()

# ---------------------------------------------------------------------------
# Push topics
# ---------------------------------------------------------------------------

# topic suffix -> lower-cased keywords matched against the item category
TOPIC_KEYWORDS: dict[str, tuple[str, ...]] = {
    "commodity": ("commodity", "komoditas", "gold", "emas", "oil", "minyak", "silver", "perak"),
    "currencies": ("currenc", "forex", "mata uang", "valas"),
    "index": ("index", "indeks", "saham", "stock"),
    "analysis": ("analysis", "analisis", "opinion", "opini"),
    "economy": ("economic", "ekonomi", "fiscal", "fiskal", "moneter", "monetary"),
}

FALLBACK_TOPIC = "general"


@dataclass(frozen=True)
class TopicRules:
    """Ordered keyword rules mapping a category to a push topic suffix."""

    keywords: dict[str, tuple[str, ...]] = field(
        default_factory=lambda: dict(TOPIC_KEYWORDS)
    )
    fallback: str = FALLBACK_TOPIC

    def topic_for(self, category: str | None, language: str) -> str:
        """Return ``news_{language}_{suffix}`` for a category."""
        text = (category or "").lower()
        for suffix, words in self.keywords.items():
            if any(w in text for w in words):
                return f"news_{language}_{suffix}"
        return f"news_{language}_{self.fallback}"

    @staticmethod
    def language_topic(language: str) -> str:
        return f"news_{language}"


DEFAULT_TOPIC_RULES = TopicRules()
