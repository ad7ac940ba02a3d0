"""
Zero-result fallback pipeline.

When neither the fast index nor the durable store has a match, the
orchestrator runs an ordered list of strategies. Each strategy takes the
normalized query and a FallbackContext and returns a SearchResponse, or
None to hand over to the next one:

    1. semantic        embedding retrieval
    2. record_miss     infer a category, log the miss (always None)
    3. category        the inferred category's most popular products
    4. recommendations recommendation engine picks
    5. none            no results, with trending queries as suggestions

Strategy failures are logged and treated as None. The last strategy
always answers.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from core.logging import get_logger
from search.category_inference import infer_category
from search.models import (
    CategoryMatch,
    IntentResult,
    ScoredProduct,
    SearchMeta,
    SearchRequest,
    SearchResponse,
    SortOption,
    TrendPeriod,
)
from search.normalizer import extract_keywords
from search.recommendations import recommend_products
from search.region import GLOBAL_REGION

logger = get_logger(__name__)


EMPTY_SUGGESTION_LIMIT = 5


@dataclass
class FallbackContext:
    """Everything a strategy may need about the failed search."""
    request: SearchRequest
    raw_query: str
    intent: IntentResult
    user_id: Optional[str] = None
    region: str = GLOBAL_REGION
    keywords: List[str] = field(default_factory=list)
    category: CategoryMatch = field(default_factory=CategoryMatch)
    # detached-task runner for this request; None uses the stage's own
    tasks: Optional[Any] = None


FallbackStrategy = Callable[[str, FallbackContext], Optional[SearchResponse]]


def last_page(total: int, limit: int) -> int:
    return max(1, math.ceil(total / limit)) if limit else 1


def run_pipeline(
    strategies: List[FallbackStrategy],
    normalized: str,
    context: FallbackContext,
) -> Optional[SearchResponse]:
    """Try each strategy in order; the first non-None response wins."""
    for strategy in strategies:
        name = getattr(strategy, "name", type(strategy).__name__)
        try:
            response = strategy(normalized, context)
        except Exception as e:
            logger.warning("Fallback stage failed", stage=name, query=normalized, error=str(e))
            continue
        if response is not None:
            logger.info(
                "Fallback stage answered",
                stage=name,
                query=normalized,
                total=response.meta.total,
            )
            return response
    return None


def _single_page_response(
    products: List[ScoredProduct],
    context: FallbackContext,
    fallback: str,
    **meta,
) -> SearchResponse:
    return SearchResponse(
        data=products,
        meta=SearchMeta(
            total=len(products),
            page=1,
            last_page=1,
            intent=context.intent,
            fallback=fallback,
            original_query=context.raw_query,
            **meta,
        ),
    )


# =============================================================================
# Strategies
# =============================================================================

class SemanticFallback:
    """
    Nearest products by query embedding. Provider failure means no results.

    Relevance sort only: embedding neighbours have no price or recency
    order to honour.
    """

    name = "semantic"

    def __init__(self, catalog, embeddings):
        self.catalog = catalog
        self.embeddings = embeddings

    def __call__(self, normalized: str, context: FallbackContext) -> Optional[SearchResponse]:
        if context.request.sort != SortOption.RELEVANCE:
            return None
        if not self.embeddings.enabled:
            return None
        vector = self.embeddings.embed(normalized)
        if not vector:
            return None

        products = self.catalog.match_by_embedding(vector, context.request.limit)
        if not products:
            return None
        return _single_page_response(products, context, "semantic", source="semantic")


class RecordMissStage:
    """
    Infer the category from keywords and log the miss (detached).

    Never answers; it fills context.keywords and context.category for
    the stages after it.
    """

    name = "record_miss"

    def __init__(self, catalog, ledger, task_runner):
        self.catalog = catalog
        self.ledger = ledger
        self.task_runner = task_runner

    def __call__(self, normalized: str, context: FallbackContext) -> Optional[SearchResponse]:
        context.keywords = extract_keywords(normalized)
        try:
            context.category = infer_category(context.keywords, self.catalog)
        except Exception as e:
            logger.warning("Category inference failed", query=normalized, error=str(e))
            context.category = CategoryMatch()

        tasks = context.tasks or self.task_runner
        tasks.submit(
            "miss.log",
            self.ledger.log_miss,
            context.raw_query or normalized,
            normalized,
            user_id=context.user_id,
            region=context.region,
            keywords=context.keywords,
            category=context.category,
        )
        return None


class CategoryFallback:
    """The inferred category's top products by popularity."""

    name = "category"

    def __init__(self, catalog):
        self.catalog = catalog

    def __call__(self, normalized: str, context: FallbackContext) -> Optional[SearchResponse]:
        if not context.category.found:
            return None

        request = context.request
        products, total = self.catalog.top_in_category(
            context.category.category_id,
            limit=request.limit,
            offset=request.offset,
            in_stock=bool(request.in_stock),
        )
        if not products:
            return None

        return SearchResponse(
            data=products,
            meta=SearchMeta(
                total=total,
                page=request.page,
                last_page=last_page(total, request.limit),
                intent=context.intent,
                source="category",
                fallback="category",
                suggested_category=context.category.category_name,
                original_query=context.raw_query,
            ),
        )


class RecommendationFallback:
    """General picks from the recommendation engine."""

    name = "recommendations"

    def __init__(self, engine, catalog):
        self.engine = engine
        self.catalog = catalog

    def __call__(self, normalized: str, context: FallbackContext) -> Optional[SearchResponse]:
        products = recommend_products(
            self.engine, self.catalog, context.user_id, context.request.limit,
        )
        if not products:
            return None
        return _single_page_response(
            products,
            context,
            "recommendations",
            source="recommendation",
            message=f'No exact matches for "{context.raw_query}". Here are some popular items.',
        )


class EmptyFallback:
    """Terminal stage: no products, trending queries as suggestions."""

    name = "none"

    def __init__(self, trending):
        self.trending = trending

    def __call__(self, normalized: str, context: FallbackContext) -> Optional[SearchResponse]:
        try:
            trending = self.trending.get_trending(GLOBAL_REGION, TrendPeriod.DAY, EMPTY_SUGGESTION_LIMIT)
            suggestions = [t.query for t in trending]
        except Exception as e:
            logger.warning("Trending suggestions unavailable", error=str(e))
            suggestions = []

        return SearchResponse(
            data=[],
            meta=SearchMeta(
                total=0,
                page=context.request.page,
                last_page=1,
                intent=context.intent,
                fallback="none",
                message=f'No results found for "{context.raw_query}".',
                original_query=context.raw_query,
                suggestions=suggestions,
            ),
        )


def default_strategies(catalog, embeddings, ledger, engine, trending, task_runner) -> List[FallbackStrategy]:
    """
    The production escalation order.

    Stages whose collaborator is None (no embedding provider, no
    recommendation engine) are left out rather than failing on every miss.
    """
    strategies: List[FallbackStrategy] = []
    if embeddings is not None:
        strategies.append(SemanticFallback(catalog, embeddings))
    strategies.append(RecordMissStage(catalog, ledger, task_runner))
    strategies.append(CategoryFallback(catalog))
    if engine is not None:
        strategies.append(RecommendationFallback(engine, catalog))
    strategies.append(EmptyFallback(trending))
    return strategies
