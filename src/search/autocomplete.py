"""
Autocomplete Service.

Merges three suggestion sources, fetched concurrently:
- product titles containing the prefix (priority 100)
- category names containing the prefix (priority 90)
- trending queries starting with the prefix (priority 80)

Prefixes shorter than 2 characters get popular (24h trending) queries
instead. Non-empty lists are cached per (prefix, region).
"""

import json
import math
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional

from config.settings import get_settings
from core.logging import get_logger
from core.utils import safe_get
from search.models import Suggestion, TrendPeriod
from search.normalizer import normalize_query
from search.region import GLOBAL_REGION

logger = get_logger(__name__)


AUTOCOMPLETE_KEY = "search:autocomplete"
MIN_PREFIX_LENGTH = 2
CATEGORY_SUGGESTION_LIMIT = 3
POPULAR_PREFIX_QUERIES = 50
PREFIX_WARM_LENGTH = 3

PRODUCT_PRIORITY = 100
CATEGORY_PRIORITY = 90
TRENDING_PRIORITY = 80
POPULAR_BASE_PRIORITY = 70


@dataclass
class SuggestionCandidate:
    """A suggestion plus its merge-time priority."""
    text: str
    type: str
    priority: float
    category: Optional[str] = None
    parent_category: Optional[str] = None
    brand: Optional[str] = None

    def to_suggestion(self) -> Suggestion:
        return Suggestion(
            text=self.text,
            type=self.type,
            category=self.category,
            parent_category=self.parent_category,
            brand=self.brand,
        )


def merge_suggestions(*tiers: List[SuggestionCandidate], limit: int) -> List[Suggestion]:
    """
    Merge tiers in the given order, keeping the first occurrence of each
    lowercased text, then stable-sort by priority and truncate.
    """
    seen = set()
    merged: List[SuggestionCandidate] = []
    for tier in tiers:
        for candidate in tier:
            key = candidate.text.lower()
            if key in seen:
                continue
            seen.add(key)
            merged.append(candidate)

    merged.sort(key=lambda c: c.priority, reverse=True)
    return [c.to_suggestion() for c in merged[:limit]]


class AutocompleteService:
    """
    Prefix suggestions from the catalog and the trending tracker.

    Args:
        catalog: CatalogStore (title and category-name matches).
        trending: TrendingTracker (popular and trending queries).
        kv: Cache store.
    """

    def __init__(self, catalog, trending, kv, cache_ttl_seconds: Optional[int] = None):
        self.catalog = catalog
        self.trending = trending
        self.kv = kv
        self.cache_ttl_seconds = cache_ttl_seconds or get_settings().autocomplete_cache_ttl_seconds

    def suggest(self, prefix: str, limit: int = 10, region: str = GLOBAL_REGION) -> List[Suggestion]:
        """
        Get autocomplete suggestions.

        Args:
            prefix: Partial search text.
            limit: Max suggestions.
            region: Region bucket for trending matches.
        """
        normalized = normalize_query(prefix)
        if len(normalized) < MIN_PREFIX_LENGTH:
            return self.popular_suggestions(limit, region)

        cache_key = f"{AUTOCOMPLETE_KEY}:{normalized}:{region}"
        cached = self._cache_get(cache_key)
        if cached is not None:
            return [Suggestion.model_validate(s) for s in cached][:limit]

        with ThreadPoolExecutor(max_workers=3) as executor:
            products_future = executor.submit(
                self._product_suggestions, normalized, math.ceil(limit / 2)
            )
            categories_future = executor.submit(
                self._category_suggestions, normalized, CATEGORY_SUGGESTION_LIMIT
            )
            trending_future = executor.submit(
                self._trending_suggestions, normalized, math.ceil(limit / 3), region
            )
            products = products_future.result()
            categories = categories_future.result()
            trending = trending_future.result()

        suggestions = merge_suggestions(products, categories, trending, limit=limit)

        if suggestions:
            self._cache_set(cache_key, [s.model_dump() for s in suggestions])
        return suggestions

    def popular_suggestions(self, limit: int = 10, region: str = GLOBAL_REGION) -> List[Suggestion]:
        """24h trending queries for prefixes too short to match on."""
        cache_key = f"{AUTOCOMPLETE_KEY}:popular:{region}"
        cached = self._cache_get(cache_key)
        if cached is not None:
            return [Suggestion.model_validate(s) for s in cached][:limit]

        try:
            trending = self.trending.get_trending(region, TrendPeriod.DAY, limit)
        except Exception as e:
            logger.error("Popular suggestions failed", region=region, error=str(e))
            return []

        candidates = [
            SuggestionCandidate(
                text=t.query,
                type="popular",
                priority=POPULAR_BASE_PRIORITY + t.score / 10,
            )
            for t in trending
        ]
        suggestions = merge_suggestions(candidates, limit=limit)

        if suggestions:
            self._cache_set(cache_key, [s.model_dump() for s in suggestions])
        return suggestions

    def refresh_popular_prefixes(self, region: str = GLOBAL_REGION) -> int:
        """
        Pre-warm the cache for the 3-character prefixes of the top
        popular queries. Returns the number of prefixes warmed.
        """
        popular = self.trending.get_popular_queries(region, POPULAR_PREFIX_QUERIES)

        prefixes = []
        for query in popular:
            if len(query) < PREFIX_WARM_LENGTH:
                continue
            prefix = query[:PREFIX_WARM_LENGTH]
            if prefix not in prefixes:
                prefixes.append(prefix)

        for prefix in prefixes:
            self.suggest(prefix, 10, region)

        logger.info(
            "Refreshed autocomplete cache for popular prefixes",
            queries=len(popular),
            prefixes=len(prefixes),
            region=region,
        )
        return len(prefixes)

    # =========================================================================
    # Sources
    # =========================================================================

    def _product_suggestions(self, prefix: str, limit: int) -> List[SuggestionCandidate]:
        try:
            rows = self.catalog.title_matches(prefix, limit)
        except Exception as e:
            logger.error("Product suggestions failed", prefix=prefix, error=str(e))
            return []
        return [
            SuggestionCandidate(
                text=row["title"],
                type="product",
                priority=PRODUCT_PRIORITY,
                category=safe_get(row, "categories", "name"),
                brand=row.get("brand"),
            )
            for row in rows
            if row.get("title")
        ]

    def _category_suggestions(self, prefix: str, limit: int) -> List[SuggestionCandidate]:
        try:
            rows = self.catalog.category_matches(prefix, limit)
        except Exception as e:
            logger.error("Category suggestions failed", prefix=prefix, error=str(e))
            return []
        return [
            SuggestionCandidate(
                text=row["name"],
                type="category",
                priority=CATEGORY_PRIORITY,
                parent_category=safe_get(row, "parent", "name"),
            )
            for row in rows
            if row.get("name")
        ]

    def _trending_suggestions(self, prefix: str, limit: int, region: str) -> List[SuggestionCandidate]:
        try:
            popular = self.trending.get_popular_queries(region, 100)
        except Exception as e:
            logger.error("Trending suggestions failed", prefix=prefix, error=str(e))
            return []
        matching = [q for q in popular if q.lower().startswith(prefix.lower())][:limit]
        return [
            SuggestionCandidate(text=q, type="trending", priority=TRENDING_PRIORITY)
            for q in matching
        ]

    # =========================================================================
    # Cache helpers
    # =========================================================================

    def _cache_get(self, key: str):
        try:
            raw = self.kv.get(key)
        except Exception as e:
            logger.warning("Autocomplete cache read failed", key=key, error=str(e))
            return None
        return json.loads(raw) if raw else None

    def _cache_set(self, key: str, value) -> None:
        try:
            self.kv.set(key, json.dumps(value), self.cache_ttl_seconds)
        except Exception as e:
            logger.warning("Autocomplete cache write failed", key=key, error=str(e))


# =============================================================================
# Singleton
# =============================================================================

_autocomplete: Optional[AutocompleteService] = None
_autocomplete_lock = threading.Lock()


def get_autocomplete_service() -> AutocompleteService:
    """Get or create the AutocompleteService singleton (thread-safe)."""
    global _autocomplete
    if _autocomplete is None:
        with _autocomplete_lock:
            if _autocomplete is None:
                from search.catalog import get_catalog_store
                from search.kv_store import get_kv_store
                from search.trending import get_trending_tracker
                _autocomplete = AutocompleteService(
                    catalog=get_catalog_store(),
                    trending=get_trending_tracker(),
                    kv=get_kv_store(),
                )
    return _autocomplete
