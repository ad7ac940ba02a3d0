"""
Query normalization.

Every component keys caches, counters and ledger rows on the normalized
form, so the same helper must be used everywhere.
"""

import re
from typing import FrozenSet, List

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")

STOP_WORDS: FrozenSet[str] = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "must", "can",
})


def normalize_query(text: str) -> str:
    """
    Lowercase, strip punctuation, collapse whitespace.

    Idempotent: normalize_query(normalize_query(x)) == normalize_query(x).

    Example:
        >>> normalize_query("  iPhone-15   Pro!! ")
        'iphone15 pro'
    """
    if not text:
        return ""
    lowered = text.lower()
    stripped = _NON_WORD.sub("", lowered)
    return _WHITESPACE.sub(" ", stripped).strip()


def tokenize(text: str) -> List[str]:
    """Split the normalized form into tokens (empty query -> [])."""
    normalized = normalize_query(text)
    return normalized.split(" ") if normalized else []


def extract_keywords(text: str) -> List[str]:
    """
    Meaningful tokens: longer than one character and not a stop-word.

    Example:
        >>> extract_keywords("the iphone 15 pro 256gb")
        ['iphone', '15', 'pro', '256gb']
    """
    return [t for t in tokenize(text) if len(t) > 1 and t not in STOP_WORDS]
