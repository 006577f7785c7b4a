"""Lightweight fuzzy matching used to resolve text references to blocks."""

from __future__ import annotations

import re
from dataclasses import dataclass

__all__ = ["DEFAULT_FUZZY_THRESHOLD", "FuzzyMatcher", "normalize_text", "similarity"]

DEFAULT_FUZZY_THRESHOLD = 0.6

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""

    lowered = (text or "").lower()
    stripped = _PUNCTUATION_RE.sub("", lowered)
    return _WHITESPACE_RE.sub(" ", stripped).strip()


def similarity(query: str, content: str) -> float:
    """Score in ``[0, 1]`` for how well ``content`` matches ``query``.

    A normalized substring hit scores 1.0. Otherwise the score is the share
    of query words that contain, or are contained by, some content word.
    Text that normalizes to nothing (blank, or punctuation only) scores 0.0.
    """

    normalized_query = normalize_text(query)
    normalized_content = normalize_text(content)
    if not normalized_query or not normalized_content:
        return 0.0
    if normalized_query in normalized_content:
        return 1.0

    query_words = normalized_query.split()
    content_words = normalized_content.split()
    matching = [
        word
        for word in query_words
        if any(word in candidate or candidate in word for candidate in content_words)
    ]
    return len(matching) / len(query_words)


@dataclass(slots=True, frozen=True)
class FuzzyMatcher:
    """Threshold-bound wrapper around :func:`similarity`."""

    threshold: float = DEFAULT_FUZZY_THRESHOLD

    def __post_init__(self) -> None:
        if not 0.0 <= self.threshold <= 1.0:
            raise ValueError("threshold must be between 0 and 1")

    def similarity(self, query: str, content: str) -> float:
        return similarity(query, content)

    def is_match(self, query: str, content: str) -> bool:
        return similarity(query, content) >= self.threshold
