"""
Recommendation engine adapter.

The engine is a black box that returns ranked product IDs
(`get_smart_recommendations` RPC); this module hydrates those IDs into
products from the catalog, keeping the engine's order.
"""

import threading
from typing import List, Optional

from core.logging import get_logger
from search.models import ScoredProduct

logger = get_logger(__name__)


class RecommendationEngine:
    """Ranked product IDs for a (possibly anonymous) user."""

    def __init__(self, supabase=None):
        self._supabase = supabase

    @property
    def supabase(self):
        if self._supabase is None:
            from config.database import get_supabase_client
            self._supabase = get_supabase_client()
        return self._supabase

    def recommend_ids(self, user_id: Optional[str], limit: int) -> List[str]:
        result = self.supabase.rpc("get_smart_recommendations", {
            "p_user_id": user_id,
            "p_limit": limit,
        }).execute()

        ids = []
        for row in result.data or []:
            # RPC returns either bare ids or {product_id: ...} rows
            if isinstance(row, dict):
                pid = row.get("product_id") or row.get("id")
            else:
                pid = row
            if pid:
                ids.append(str(pid))
        return ids


def recommend_products(engine: RecommendationEngine, catalog, user_id: Optional[str], limit: int) -> List[ScoredProduct]:
    """Recommended products, hydrated from the catalog in ranked order."""
    ids = engine.recommend_ids(user_id, limit)
    if not ids:
        return []
    return catalog.get_products_by_ids(ids[:limit], source="recommendation")


# =============================================================================
# Singleton
# =============================================================================

_engine: Optional[RecommendationEngine] = None
_engine_lock = threading.Lock()


def get_recommendation_engine() -> RecommendationEngine:
    """Get or create the RecommendationEngine singleton (thread-safe)."""
    global _engine
    if _engine is None:
        with _engine_lock:
            if _engine is None:
                _engine = RecommendationEngine()
    return _engine
