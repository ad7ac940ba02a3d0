"""
Search API Routes.

Public endpoints accept an optional bearer token (misses and trending are
attributed to the user when present). Admin endpoints require an admin
role in the token's app_metadata.

NOTE: Routes use `def` (not `async def`) because the underlying services
(Algolia SDK, Supabase client, Redis) are all synchronous. FastAPI runs
sync route handlers in a thread pool, avoiding event-loop blocking.
"""

from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query

from core.auth import SupabaseUser, get_current_user, require_admin
from core.logging import get_logger
from core.tasks import TaskRunner, get_task_runner
from search.autocomplete import AutocompleteService, get_autocomplete_service
from search.exceptions import CatalogStoreError, MissNotFoundError, SearchError
from search.index_sync import IndexSyncService, get_index_sync_service
from search.miss_ledger import MissLedger, get_miss_ledger
from search.models import (
    AdminTrendingItem,
    MissAnalytics,
    MissPeriod,
    MissRecordSummary,
    ResolveMissRequest,
    SearchRequest,
    SearchResponse,
    Suggestion,
    TrendingItem,
    TrendPeriod,
)
from search.orchestrator import SearchOrchestrator, get_search_orchestrator
from search.region import resolve_region
from search.trending import TrendingTracker, get_trending_tracker

logger = get_logger(__name__)

router = APIRouter(prefix="/api/search", tags=["Search"])


def get_region(
    lat: Optional[float] = Query(None, description="Latitude"),
    lng: Optional[float] = Query(None, description="Longitude"),
    pincode: Optional[str] = Query(None, description="6-digit postal code"),
    region: Optional[str] = Query(None, description="Free-text region hint"),
) -> str:
    """Region bucket from the request's location inputs (coordinates first)."""
    return resolve_region(lat=lat, lng=lng, pincode=pincode, region_hint=region)


# =============================================================================
# Search
# =============================================================================

@router.get(
    "",
    response_model=SearchResponse,
    summary="Search products",
)
def search(
    request: Annotated[SearchRequest, Query()],
    background_tasks: BackgroundTasks,
    region: str = Depends(get_region),
    user: Optional[SupabaseUser] = Depends(get_current_user),
    orchestrator: SearchOrchestrator = Depends(get_search_orchestrator),
    runner: TaskRunner = Depends(get_task_runner),
) -> SearchResponse:
    """
    Search the catalog.

    Tries the fast index, then the catalog store with in-memory relevance
    scoring. Zero-result queries fall back to semantic matches, the
    inferred category, or recommendations (`meta.fallback`).

    Trending increments and miss writes run as background tasks after
    the response is sent.
    """
    try:
        return orchestrator.search(
            request,
            user_id=user.id if user else None,
            region=region,
            tasks=runner.bind(background_tasks),
        )
    except CatalogStoreError as e:
        logger.error("Catalog store unavailable", error=str(e))
        raise HTTPException(status_code=503, detail="Search is temporarily unavailable")


@router.get(
    "/suggest",
    response_model=List[Suggestion],
    summary="Autocomplete suggestions",
)
def suggest(
    q: str = Query("", max_length=200, description="Partial search text"),
    limit: int = Query(10, ge=1, le=20, description="Max suggestions"),
    region: str = Depends(get_region),
    service: AutocompleteService = Depends(get_autocomplete_service),
) -> List[Suggestion]:
    """Products, categories and trending queries; popular queries for short input."""
    return service.suggest(q, limit=limit, region=region)


@router.get(
    "/trending",
    response_model=List[TrendingItem],
    summary="Trending searches",
)
def trending(
    period: TrendPeriod = Query(TrendPeriod.DAY, description="Window: 24h or 7d"),
    limit: int = Query(10, ge=1, le=50),
    region: str = Depends(get_region),
    orchestrator: SearchOrchestrator = Depends(get_search_orchestrator),
) -> List[TrendingItem]:
    """24h results carry change vs the previous day; 7d results are decayed counts."""
    return orchestrator.get_trending(region, period, limit)


# =============================================================================
# Admin
# =============================================================================

@router.get(
    "/admin/misses",
    response_model=List[MissRecordSummary],
    summary="Top zero-result queries (all time)",
)
def admin_misses(
    limit: int = Query(50, ge=1, le=500),
    admin: SupabaseUser = Depends(require_admin),
    ledger: MissLedger = Depends(get_miss_ledger),
) -> List[MissRecordSummary]:
    return ledger.top_misses(limit)


@router.get(
    "/admin/miss/analytics",
    response_model=MissAnalytics,
    summary="Search miss analytics",
)
def admin_miss_analytics(
    period: MissPeriod = Query(MissPeriod.WEEK),
    limit: int = Query(50, ge=1, le=500),
    admin: SupabaseUser = Depends(require_admin),
    ledger: MissLedger = Depends(get_miss_ledger),
) -> MissAnalytics:
    """Top misses, demand gaps by inferred category, and resolution summary."""
    return ledger.get_analytics(period, limit)


@router.post(
    "/admin/miss/resolve",
    summary="Mark a search miss as resolved",
)
def admin_resolve_miss(
    request: ResolveMissRequest,
    admin: SupabaseUser = Depends(require_admin),
    ledger: MissLedger = Depends(get_miss_ledger),
) -> Dict[str, Any]:
    try:
        miss = ledger.resolve(request.miss_id, request.product_id)
    except MissNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    logger.info(
        "Admin resolved search miss",
        admin_id=admin.id,
        miss_id=miss.id,
        product_id=request.product_id,
    )
    return {"status": "resolved", "miss_id": miss.id, "product_id": miss.resolved_product_id}


@router.get(
    "/admin/trending/analytics",
    response_model=List[AdminTrendingItem],
    summary="Trending searches with catalog supply",
)
def admin_trending_analytics(
    limit: int = Query(20, ge=1, le=100),
    region: str = Depends(get_region),
    admin: SupabaseUser = Depends(require_admin),
    orchestrator: SearchOrchestrator = Depends(get_search_orchestrator),
) -> List[AdminTrendingItem]:
    """`has_supply` is False for trending queries that also appear as misses."""
    return orchestrator.get_admin_trending(region, limit)


@router.post(
    "/admin/sync",
    summary="Queue a full catalog push to the search index",
    status_code=202,
)
def admin_sync(
    background_tasks: BackgroundTasks,
    admin: SupabaseUser = Depends(require_admin),
    service: IndexSyncService = Depends(get_index_sync_service),
    runner: TaskRunner = Depends(get_task_runner),
) -> Dict[str, Any]:
    """Index pushes run as background tasks after the 202 is sent."""
    try:
        queued = service.sync_all_products(tasks=runner.bind(background_tasks))
    except SearchError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"status": "queued", "queued": queued, "message": f"Queued {queued} products for synchronization"}


@router.post(
    "/admin/trending/cleanup",
    summary="Purge stale trending aggregates",
)
def admin_trending_cleanup(
    retention_days: Optional[int] = Query(None, ge=1, le=365),
    admin: SupabaseUser = Depends(require_admin),
    tracker: TrendingTracker = Depends(get_trending_tracker),
) -> Dict[str, int]:
    return {"deleted": tracker.cleanup_old_trends(retention_days)}
