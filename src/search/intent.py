"""
Query Intent Classifier.

Scores a query as TRANSACTIONAL (ready to buy: model numbers, brand names,
long specific phrases) or EXPLORATORY (browsing: "best", "cheap", short
generic terms). The result is advisory metadata attached to search
responses, never a filter.
"""

import re
import threading
from typing import Iterable, List, Optional, Pattern, Set, Tuple

from core.logging import get_logger
from search.models import IntentResult, SearchIntent
from search.normalizer import normalize_query, tokenize

logger = get_logger(__name__)


EXPLORATORY_KEYWORDS: Set[str] = {
    "best", "cheap", "affordable", "top", "trending", "popular",
    "new", "sale", "discount", "under",
}

# Extended at startup from the catalog's brand column (see load_brands)
_FALLBACK_BRANDS: Set[str] = {
    "samsung", "apple", "iphone", "nike", "adidas", "sony", "lg", "hp",
    "dell", "oneplus", "xiaomi", "realme",
}

_DIGIT_RUN = re.compile(r"\d{2,}")

_TRANSACTIONAL_MODEL_NUMBER = 40
_TRANSACTIONAL_BRAND = 30
_TRANSACTIONAL_LONG_SPECIFIC = 20
_EXPLORATORY_KEYWORD = 50
_EXPLORATORY_SHORT_GENERIC = 30


def _build_brand_patterns(brands: Iterable[str]) -> List[Tuple[str, Pattern]]:
    """Word-bounded patterns, longest first so "one plus" wins over "one"."""
    patterns = []
    for brand in sorted({normalize_query(b) for b in brands if b}, key=len, reverse=True):
        if not brand:
            continue
        patterns.append((brand, re.compile(r"(?:^|\s)" + re.escape(brand) + r"(?:\s|$)")))
    return patterns


class IntentClassifier:
    """
    Pure scoring classifier.

    Scores:
        transactional += 40 digit run of 2+ (model numbers)
        transactional += 30 known brand
        transactional += 20 three or more tokens and no exploratory keyword
        exploratory   += 50 any exploratory keyword
        exploratory   += 30 two or fewer tokens and no digit run

    TRANSACTIONAL only when its score is strictly higher.
    """

    def __init__(self, brands: Optional[Iterable[str]] = None):
        self._lock = threading.Lock()
        self._brand_patterns = _build_brand_patterns(brands or _FALLBACK_BRANDS)

    def set_brands(self, brands: Iterable[str]) -> int:
        """Replace the brand vocabulary (fallback brands are always kept)."""
        merged = set(_FALLBACK_BRANDS) | {b for b in brands if b}
        patterns = _build_brand_patterns(merged)
        with self._lock:
            self._brand_patterns = patterns
        return len(patterns)

    def has_brand(self, normalized: str) -> bool:
        return any(p.search(normalized) for _, p in self._brand_patterns)

    def classify(self, query: str) -> IntentResult:
        normalized = normalize_query(query)
        tokens = tokenize(normalized)

        has_exploratory = any(t in EXPLORATORY_KEYWORDS for t in tokens)
        has_model_number = bool(_DIGIT_RUN.search(normalized))

        transactional = 0
        if has_model_number:
            transactional += _TRANSACTIONAL_MODEL_NUMBER
        if normalized and self.has_brand(normalized):
            transactional += _TRANSACTIONAL_BRAND
        if len(tokens) >= 3 and not has_exploratory:
            transactional += _TRANSACTIONAL_LONG_SPECIFIC

        exploratory = 0
        if has_exploratory:
            exploratory += _EXPLORATORY_KEYWORD
        if len(tokens) <= 2 and not has_model_number:
            exploratory += _EXPLORATORY_SHORT_GENERIC

        intent = (
            SearchIntent.TRANSACTIONAL
            if transactional > exploratory
            else SearchIntent.EXPLORATORY
        )
        confidence = min(max(transactional, exploratory) / 100, 1.0)

        return IntentResult(intent=intent, confidence=confidence)


# =============================================================================
# Singleton + startup brand loading
# =============================================================================

_classifier: Optional[IntentClassifier] = None
_classifier_lock = threading.Lock()


def get_intent_classifier() -> IntentClassifier:
    """Get or create the IntentClassifier singleton (thread-safe)."""
    global _classifier
    if _classifier is None:
        with _classifier_lock:
            if _classifier is None:
                _classifier = IntentClassifier()
    return _classifier


def classify_intent(query: str) -> IntentResult:
    """Classify with the shared classifier."""
    return get_intent_classifier().classify(query)


def load_brands(catalog) -> int:
    """
    Extend the shared classifier with brand names from the catalog.

    Falls back to the built-in brand set on error. Returns the number of
    brand patterns in use.
    """
    classifier = get_intent_classifier()
    try:
        brands = catalog.distinct_brands()
    except Exception as e:
        logger.warning("Failed to load brands from catalog", error=str(e))
        return classifier.set_brands([])
    return classifier.set_brands(brands)
