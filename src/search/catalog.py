"""
Catalog Store adapter.

Read-only access to the `products` and `categories` tables through the
Supabase (PostgREST) client. Every product row leaves this module as a
ScoredProduct via the StoreRow / SemanticHit source types.

Query failures are raised as CatalogStoreError so the orchestrator can
let them propagate on the main path and swallow them inside fallbacks.
"""

import threading
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from core.logging import get_logger
from search.exceptions import CatalogStoreError
from search.models import ScoredProduct, SearchRequest, SortOption
from search.sources import SemanticHit, StoreRow

logger = get_logger(__name__)


PRODUCT_COLUMNS = (
    "id, title, description, brand, price, offer_price, stock, tags, images, "
    "category_id, popularity_score, rating, created_at, categories(name)"
)

# (column, descending) for every explicit sort
SORT_ORDERS: Dict[SortOption, Tuple[str, bool]] = {
    SortOption.PRICE_LOW: ("price", False),
    SortOption.PRICE_HIGH: ("price", True),
    SortOption.RATING: ("rating", True),
    SortOption.NEWEST: ("created_at", True),
}


def _quote(value: str) -> str:
    """Quote a value for a PostgREST or= filter."""
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


class CatalogStore:
    """
    Query-by-filter and count operations over the durable catalog.

    Args:
        supabase: Supabase client (injected in tests).
    """

    def __init__(self, supabase=None):
        self._supabase = supabase

    @property
    def supabase(self):
        if self._supabase is None:
            from config.database import get_supabase_client
            self._supabase = get_supabase_client()
        return self._supabase

    # =========================================================================
    # Search paths
    # =========================================================================

    def _filtered(self, request: SearchRequest, normalized: str, count: Optional[str] = None):
        query = (
            self.supabase.table("products")
            .select(PRODUCT_COLUMNS, count=count)
            .eq("is_active", True)
        )
        if request.in_stock:
            query = query.gt("stock", 0)
        if request.min_price is not None:
            query = query.gte("price", request.min_price)
        if request.max_price is not None:
            query = query.lte("price", request.max_price)
        if request.category_id:
            query = query.eq("category_id", request.category_id)
        if normalized:
            pattern = _quote(f"%{normalized}%")
            query = query.or_(
                f"title.ilike.{pattern},"
                f"description.ilike.{pattern},"
                f"brand.ilike.{pattern},"
                f"tags.cs.{{{_quote(normalized)}}}"
            )
        return query

    def find_sorted(self, request: SearchRequest, normalized: str) -> Tuple[List[ScoredProduct], int]:
        """
        One page of filter-matching products in the request's explicit sort
        order, plus the exact total.
        """
        column, desc = SORT_ORDERS[request.sort]
        try:
            result = (
                self._filtered(request, normalized, count="exact")
                .order(column, desc=desc, nullsfirst=False)
                .order("id")
                .range(request.offset, request.offset + request.limit - 1)
                .execute()
            )
        except Exception as e:
            raise CatalogStoreError(f"Sorted product query failed: {e}") from e

        rows = result.data or []
        total = result.count if result.count is not None else len(rows)
        return [StoreRow(r).to_product() for r in rows], total

    def find_candidates(
        self,
        request: SearchRequest,
        normalized: str,
        limit: int = 100,
    ) -> Tuple[List[ScoredProduct], int]:
        """
        Up to `limit` filter-matching products for in-memory relevance
        scoring, plus the exact number of matches.
        """
        try:
            result = (
                self._filtered(request, normalized, count="exact")
                .order("popularity_score", desc=True, nullsfirst=False)
                .order("id")
                .limit(limit)
                .execute()
            )
        except Exception as e:
            raise CatalogStoreError(f"Candidate product query failed: {e}") from e

        rows = result.data or []
        total = result.count if result.count is not None else len(rows)
        return [StoreRow(r).to_product() for r in rows], total

    # =========================================================================
    # Categories
    # =========================================================================

    def find_category_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        """First active category whose name contains `name` (case-insensitive)."""
        result = (
            self.supabase.table("categories")
            .select("id, name")
            .eq("is_active", True)
            .ilike("name", f"%{name}%")
            .limit(1)
            .execute()
        )
        rows = result.data or []
        return rows[0] if rows else None

    def top_in_category(
        self,
        category_id: str,
        limit: int,
        offset: int = 0,
        in_stock: bool = False,
    ) -> Tuple[List[ScoredProduct], int]:
        """A category's products ordered by popularity, with the exact total."""
        query = (
            self.supabase.table("products")
            .select(PRODUCT_COLUMNS, count="exact")
            .eq("is_active", True)
            .eq("category_id", category_id)
        )
        if in_stock:
            query = query.gt("stock", 0)
        result = (
            query.order("popularity_score", desc=True, nullsfirst=False)
            .order("id")
            .range(offset, offset + limit - 1)
            .execute()
        )
        rows = result.data or []
        total = result.count if result.count is not None else len(rows)
        return [StoreRow(r).to_product(source="category") for r in rows], total

    # =========================================================================
    # Autocomplete sources
    # =========================================================================

    def title_matches(self, fragment: str, limit: int) -> List[Dict[str, Any]]:
        """Popular products whose title contains the fragment."""
        result = (
            self.supabase.table("products")
            .select("title, brand, categories(name)")
            .eq("is_active", True)
            .ilike("title", f"%{fragment}%")
            .order("popularity_score", desc=True, nullsfirst=False)
            .limit(limit)
            .execute()
        )
        return result.data or []

    def category_matches(self, fragment: str, limit: int) -> List[Dict[str, Any]]:
        """Active categories whose name contains the fragment, with parent name."""
        result = (
            self.supabase.table("categories")
            .select("name, parent:parent_id(name)")
            .eq("is_active", True)
            .ilike("name", f"%{fragment}%")
            .limit(limit)
            .execute()
        )
        return result.data or []

    # =========================================================================
    # Lookups
    # =========================================================================

    def get_products_by_ids(self, product_ids: Sequence[str], source: str = "store") -> List[ScoredProduct]:
        """Active products for the given IDs, in the order the IDs were given."""
        if not product_ids:
            return []
        result = (
            self.supabase.table("products")
            .select(PRODUCT_COLUMNS)
            .eq("is_active", True)
            .in_("id", list(product_ids))
            .execute()
        )
        by_id = {str(r["id"]): r for r in (result.data or [])}
        return [
            StoreRow(by_id[pid]).to_product(source=source)
            for pid in map(str, product_ids)
            if pid in by_id
        ]

    def match_by_embedding(self, embedding: List[float], limit: int) -> List[ScoredProduct]:
        """Nearest active products by cosine similarity (match_products RPC)."""
        vector_str = f"[{','.join(map(str, embedding))}]"
        result = self.supabase.rpc("match_products", {
            "query_embedding": vector_str,
            "match_count": limit,
        }).execute()
        return [SemanticHit(r).to_product() for r in (result.data or [])]

    def distinct_brands(self) -> List[str]:
        """Brand names present on active products."""
        result = (
            self.supabase.table("products")
            .select("brand")
            .eq("is_active", True)
            .not_.is_("brand", "null")
            .execute()
        )
        return sorted({r["brand"] for r in (result.data or []) if r.get("brand")})

    def iter_active_products(self, batch_size: int = 100) -> Iterator[List[Dict[str, Any]]]:
        """Page through active product rows (raw dicts) in stable id order."""
        offset = 0
        while True:
            result = (
                self.supabase.table("products")
                .select(PRODUCT_COLUMNS)
                .eq("is_active", True)
                .order("id")
                .range(offset, offset + batch_size - 1)
                .execute()
            )
            rows = result.data or []
            if not rows:
                return
            yield rows
            if len(rows) < batch_size:
                return
            offset += batch_size


# =============================================================================
# Singleton
# =============================================================================

_catalog: Optional[CatalogStore] = None
_catalog_lock = threading.Lock()


def get_catalog_store() -> CatalogStore:
    """Get or create the CatalogStore singleton (thread-safe)."""
    global _catalog
    if _catalog is None:
        with _catalog_lock:
            if _catalog is None:
                _catalog = CatalogStore()
    return _catalog
