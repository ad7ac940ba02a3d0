"""
Search Orchestrator.

Search flow:
1. Normalize the query and build the cache key from it and every filter
2. Cache hit: count the search for trending (detached), return as stored
3. Fast index (Algolia) with the raw filters; any hit answers
4. Index error or no hits: durable catalog store
   - explicit sort: one ordered, paginated query with an exact count
   - relevance: up to 100 candidates scored in memory, paginated in memory
5. Still nothing for a non-empty query: the fallback pipeline
   (semantic, miss logging, category, recommendations, empty)

Index and store answers are cached; fallback answers never are.
Trending increments and miss writes are detached: FastAPI background
tasks when the route passes its bound runner, inline otherwise.
"""

import hashlib
import json
import threading
import time
from typing import List, Optional

from config.settings import get_settings
from core.logging import get_logger
from search.fallbacks import FallbackContext, default_strategies, last_page, run_pipeline
from search.intent import IntentClassifier, get_intent_classifier
from search.models import (
    AdminTrendingItem,
    IntentResult,
    ScoredProduct,
    SearchMeta,
    SearchRequest,
    SearchResponse,
    SortOption,
    TrendingItem,
    TrendPeriod,
)
from search.normalizer import normalize_query
from search.region import GLOBAL_REGION
from search.scoring import rank_by_relevance

logger = get_logger(__name__)


CACHE_KEY_PREFIX = "search:v1"


def build_cache_key(normalized: str, request: SearchRequest) -> str:
    """
    search:v1:{normalized}:{sha1 of the filter fingerprint}

    Example:
        >>> build_cache_key("iphone", SearchRequest(q="iPhone")).startswith("search:v1:iphone:")
        True
    """
    fingerprint = json.dumps(request.filter_fingerprint(), sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha1(fingerprint.encode("utf-8")).hexdigest()
    return f"{CACHE_KEY_PREFIX}:{normalized}:{digest}"


class SearchOrchestrator:
    """
    Central search service.

    Collaborators are injected; the get_search_orchestrator() singleton
    wires the production ones.

    Args:
        catalog: CatalogStore (durable store path, fallbacks).
        kv: Response cache.
        trending: TrendingTracker.
        ledger: MissLedger.
        index: AlgoliaClient, or None when the fast index is not configured.
        embeddings: EmbeddingProvider for the semantic fallback.
        recommendations: RecommendationEngine.
        task_runner: Detached task runner.
        classifier: IntentClassifier.
        strategies: Override the fallback pipeline.
    """

    def __init__(
        self,
        catalog,
        kv,
        trending,
        ledger,
        index=None,
        embeddings=None,
        recommendations=None,
        task_runner=None,
        classifier: Optional[IntentClassifier] = None,
        strategies: Optional[list] = None,
        cache_ttl_seconds: Optional[int] = None,
        candidate_limit: Optional[int] = None,
    ):
        settings = get_settings()
        self.catalog = catalog
        self.kv = kv
        self.trending = trending
        self.ledger = ledger
        self.index = index
        self._task_runner = task_runner
        self.classifier = classifier or get_intent_classifier()
        self.cache_ttl_seconds = cache_ttl_seconds or settings.search_cache_ttl_seconds
        self.candidate_limit = candidate_limit or settings.relevance_candidate_limit

        if strategies is None:
            strategies = default_strategies(
                catalog=catalog,
                embeddings=embeddings,
                ledger=ledger,
                engine=recommendations,
                trending=trending,
                task_runner=self.task_runner,
            )
        self.strategies = strategies

    @property
    def task_runner(self):
        if self._task_runner is None:
            from core.tasks import get_task_runner
            self._task_runner = get_task_runner()
        return self._task_runner

    # =========================================================================
    # Search
    # =========================================================================

    def search(
        self,
        request: SearchRequest,
        user_id: Optional[str] = None,
        region: str = GLOBAL_REGION,
        tasks=None,
    ) -> SearchResponse:
        """
        Run a search request.

        Args:
            tasks: Detached-task runner for this request (the route binds
                one to its BackgroundTasks). Defaults to self.task_runner.

        Raises:
            CatalogStoreError: The durable store failed on the main path.
        """
        t_start = time.time()
        raw_query = (request.q or "").strip()
        normalized = normalize_query(raw_query)
        intent = self.classifier.classify(normalized)
        cache_key = build_cache_key(normalized, request)
        if tasks is None:
            tasks = self.task_runner

        # 1. Cache
        cached = self._cache_get(cache_key)
        if cached is not None:
            self._record_trending(normalized, region, tasks)
            logger.info("Search cache hit", query=normalized, region=region)
            return cached

        # 2. Fast index
        response = self._search_index(raw_query, normalized, request, intent)

        # 3. Durable store
        if response is None:
            response = self._search_store(normalized, request, intent)

        if response is not None:
            self._record_trending(normalized, region, tasks)
            self._cache_set(cache_key, response)
            logger.info(
                "Search completed",
                query=normalized,
                source=response.meta.source,
                total=response.meta.total,
                region=region,
                latency_ms=int((time.time() - t_start) * 1000),
            )
            return response

        # 4. Browse mode: nothing to fall back on
        if not normalized:
            return SearchResponse(
                data=[],
                meta=SearchMeta(
                    total=0,
                    page=request.page,
                    last_page=1,
                    intent=intent,
                    fallback="none",
                ),
            )

        # 5. Fallback pipeline
        context = FallbackContext(
            request=request,
            raw_query=raw_query,
            intent=intent,
            user_id=user_id,
            region=region,
            tasks=tasks,
        )
        response = run_pipeline(self.strategies, normalized, context)
        if response is None:
            response = SearchResponse(
                data=[],
                meta=SearchMeta(
                    total=0,
                    page=request.page,
                    last_page=1,
                    intent=intent,
                    fallback="none",
                    original_query=raw_query,
                ),
            )

        logger.info(
            "Search fell back",
            query=normalized,
            fallback=response.meta.fallback,
            total=response.meta.total,
            region=region,
            latency_ms=int((time.time() - t_start) * 1000),
        )
        return response

    def _search_index(
        self,
        raw_query: str,
        normalized: str,
        request: SearchRequest,
        intent: IntentResult,
    ) -> Optional[SearchResponse]:
        if self.index is None:
            return None
        try:
            products, total = self.index.search_products(raw_query, request)
        except Exception as e:
            logger.warning("Fast index search failed, using catalog store", query=normalized, error=str(e))
            return None
        if total <= 0:
            return None
        return self._page_response(products, total, request, intent, "index")

    def _search_store(
        self,
        normalized: str,
        request: SearchRequest,
        intent: IntentResult,
    ) -> Optional[SearchResponse]:
        if request.sort != SortOption.RELEVANCE:
            products, total = self.catalog.find_sorted(request, normalized)
        else:
            candidates, total = self.catalog.find_candidates(request, normalized, self.candidate_limit)
            ranked = rank_by_relevance(candidates, normalized)
            products = ranked[request.offset:request.offset + request.limit]

        if total <= 0:
            return None
        return self._page_response(products, total, request, intent, "store")

    @staticmethod
    def _page_response(
        products: List[ScoredProduct],
        total: int,
        request: SearchRequest,
        intent: IntentResult,
        source: str,
    ) -> SearchResponse:
        return SearchResponse(
            data=products,
            meta=SearchMeta(
                total=total,
                page=request.page,
                last_page=last_page(total, request.limit),
                intent=intent,
                source=source,
            ),
        )

    # =========================================================================
    # Trending
    # =========================================================================

    def _record_trending(self, normalized: str, region: str, tasks) -> None:
        if not normalized:
            return
        tasks.submit("trending.increment", self.trending.increment, normalized, region)

    def get_trending(
        self,
        region: str = GLOBAL_REGION,
        period: TrendPeriod = TrendPeriod.DAY,
        limit: int = 10,
    ) -> List[TrendingItem]:
        """24h: delta-annotated trending. 7d: decayed trending."""
        if period == TrendPeriod.DAY:
            return self.trending.get_trending_with_delta(region, limit)
        return self.trending.get_trending(region, period, limit)

    def get_admin_trending(self, region: str = GLOBAL_REGION, limit: int = 20) -> List[AdminTrendingItem]:
        """Trending queries flagged with their miss counts; a miss means no supply."""
        trending = self.trending.get_trending_with_delta(region, limit)
        miss_counts = self.ledger.miss_counts_for([t.query for t in trending])
        return [
            AdminTrendingItem(
                **t.model_dump(),
                miss_count=miss_counts.get(t.query, 0),
                has_supply=t.query not in miss_counts,
            )
            for t in trending
        ]

    # =========================================================================
    # Cache helpers
    # =========================================================================

    def _cache_get(self, key: str) -> Optional[SearchResponse]:
        try:
            raw = self.kv.get(key)
        except Exception as e:
            logger.warning("Search cache read failed", key=key, error=str(e))
            return None
        if not raw:
            return None
        try:
            return SearchResponse.model_validate_json(raw)
        except ValueError as e:
            logger.warning("Discarding unreadable cached search", key=key, error=str(e))
            return None

    def _cache_set(self, key: str, response: SearchResponse) -> None:
        try:
            self.kv.set(key, response.model_dump_json(), self.cache_ttl_seconds)
        except Exception as e:
            logger.warning("Search cache write failed", key=key, error=str(e))


# =============================================================================
# Singleton
# =============================================================================

_orchestrator: Optional[SearchOrchestrator] = None
_orchestrator_lock = threading.Lock()


def get_search_orchestrator() -> SearchOrchestrator:
    """Get or create the SearchOrchestrator singleton (thread-safe)."""
    global _orchestrator
    if _orchestrator is None:
        with _orchestrator_lock:
            if _orchestrator is None:
                from search.algolia_client import get_algolia_client_optional
                from search.catalog import get_catalog_store
                from search.embeddings import get_embedding_provider
                from search.kv_store import get_kv_store
                from search.miss_ledger import get_miss_ledger
                from search.recommendations import get_recommendation_engine
                from search.trending import get_trending_tracker
                _orchestrator = SearchOrchestrator(
                    catalog=get_catalog_store(),
                    kv=get_kv_store(),
                    trending=get_trending_tracker(),
                    ledger=get_miss_ledger(),
                    index=get_algolia_client_optional(),
                    embeddings=get_embedding_provider(),
                    recommendations=get_recommendation_engine(),
                )
    return _orchestrator
