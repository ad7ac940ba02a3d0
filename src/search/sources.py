"""
Tagged product sources.

Each retrieval path returns rows in its own shape: Algolia hits, catalog
rows from Supabase, and similarity rows from the vector RPC. Wrapping a
raw row in its source type and calling to_product() gives the one
ScoredProduct shape that scoring and responses work with.
"""

from dataclasses import dataclass
from typing import Any, Dict, List

from core.utils import parse_timestamp, safe_get, to_float, to_int
from search.models import ScoredProduct


def _string_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value if v]


def _optional_float(value: Any):
    return None if value is None else to_float(value)


@dataclass(frozen=True)
class IndexHit:
    """An Algolia hit (see algolia_config.product_to_index_record)."""
    raw: Dict[str, Any]

    def to_product(self) -> ScoredProduct:
        hit = self.raw
        created_ts = hit.get("created_at_timestamp")
        return ScoredProduct(
            id=str(hit.get("objectID") or hit.get("id")),
            title=hit.get("title") or "",
            description=hit.get("description"),
            brand=hit.get("brand"),
            price=to_float(hit.get("price")),
            offer_price=_optional_float(hit.get("offer_price")),
            stock=to_int(hit.get("stock")),
            tags=_string_list(hit.get("tags")),
            images=_string_list(hit.get("images")),
            category_id=hit.get("category_id"),
            category_name=hit.get("category_name"),
            popularity_score=to_float(hit.get("popularity_score")),
            rating=_optional_float(hit.get("rating")),
            # 0 means "unknown" in index records
            created_at=parse_timestamp(created_ts or None),
            source="index",
        )


@dataclass(frozen=True)
class StoreRow:
    """A row from the products table, with an optional categories(name) embed."""
    raw: Dict[str, Any]

    def to_product(self, source: str = "store") -> ScoredProduct:
        row = self.raw
        return ScoredProduct(
            id=str(row["id"]),
            title=row.get("title") or "",
            description=row.get("description"),
            brand=row.get("brand"),
            price=to_float(row.get("price")),
            offer_price=_optional_float(row.get("offer_price")),
            stock=to_int(row.get("stock")),
            tags=_string_list(row.get("tags")),
            images=_string_list(row.get("images")),
            category_id=row.get("category_id"),
            category_name=safe_get(row, "categories", "name"),
            popularity_score=to_float(row.get("popularity_score")),
            rating=_optional_float(row.get("rating")),
            created_at=parse_timestamp(row.get("created_at")),
            source=source,
        )


@dataclass(frozen=True)
class SemanticHit:
    """A row from the match_products vector RPC; carries a similarity."""
    raw: Dict[str, Any]

    def to_product(self) -> ScoredProduct:
        row = self.raw
        return ScoredProduct(
            id=str(row["id"]),
            title=row.get("title") or "",
            description=row.get("description"),
            brand=row.get("brand"),
            price=to_float(row.get("price")),
            offer_price=_optional_float(row.get("offer_price")),
            stock=to_int(row.get("stock")),
            images=_string_list(row.get("images")),
            category_id=row.get("category_id"),
            popularity_score=to_float(row.get("popularity_score")),
            source="semantic",
            semantic_score=to_float(row.get("similarity")),
        )
