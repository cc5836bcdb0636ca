"""
Author-marker normalisation.

Articles end with an initials tag such as ``(azf)``. Many parenthesised
tokens in financial copy look the same (``(WTI)``, ``(GDP)``), so a marker
counts as an author only when it survives the alias map, the length check,
the deny-list and the staff allow-list.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from harvester.crawler.vocabulary import DEFAULT_AUTHOR_VOCABULARY, AuthorVocabulary

# "(abc)" anywhere in a string
MARKER_RE = re.compile(r"\(\s*([A-Za-z]{2,6})\s*\)")
# "(abc)" at the very end of a paragraph, optional trailing punctuation
TRAILING_MARKER_RE = re.compile(r"\s*\(\s*([A-Za-z]{2,6})\s*\)\s*[.]?\s*$")


@dataclass(frozen=True)
class AuthorMatch:
    code: str
    name: str


def normalize_author(
    candidate: str | None,
    vocabulary: AuthorVocabulary = DEFAULT_AUTHOR_VOCABULARY,
) -> AuthorMatch | None:
    """Validate an author marker.

    Args:
        candidate: Raw marker, with or without parentheses (``"(AZF)"``).
        vocabulary: Allow/deny/alias tables.

    Returns:
        The canonical code and display name, or None when the marker is
        not a known staff code.
    """
    if not candidate:
        return None
    code = candidate.strip().strip("()").strip().lower()
    code = vocabulary.aliases.get(code, code)
    if not (vocabulary.min_length <= len(code) <= vocabulary.max_length):
        return None
    if not code.isalpha():
        return None
    if code in vocabulary.denylist:
        return None
    name = vocabulary.staff.get(code)
    if name is None:
        return None
    return AuthorMatch(code=code, name=name)


def find_author(
    text: str | None,
    vocabulary: AuthorVocabulary = DEFAULT_AUTHOR_VOCABULARY,
) -> AuthorMatch | None:
    """Return the first valid marker found in ``text``."""
    if not text:
        return None
    for m in MARKER_RE.finditer(text):
        match = normalize_author(m.group(1), vocabulary)
        if match is not None:
            return match
    return None


def strip_trailing_marker(
    text: str,
    vocabulary: AuthorVocabulary = DEFAULT_AUTHOR_VOCABULARY,
) -> str:
    """Remove a trailing author tag. Non-author tags like ``(WTI)`` stay."""
    m = TRAILING_MARKER_RE.search(text)
    if m and normalize_author(m.group(1), vocabulary) is not None:
        return text[: m.start()].rstrip()
    return text


def strip_markers(
    text: str,
    vocabulary: AuthorVocabulary = DEFAULT_AUTHOR_VOCABULARY,
) -> str:
    """Remove every valid author tag from ``text`` and tidy whitespace."""

    def _drop(m: re.Match) -> str:
        return "" if normalize_author(m.group(1), vocabulary) else m.group(0)

    return " ".join(MARKER_RE.sub(_drop, text).split())
