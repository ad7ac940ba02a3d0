"""
Algolia Index Configuration.

Defines searchable attributes, facets, custom ranking, sort replicas,
synonyms, filter building and the product-to-record mapping for the
products index.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from core.utils import parse_timestamp, safe_get, to_float, to_int
from search.models import SearchRequest, SortOption


# ============================================================================
# Index Settings
# ============================================================================

ALGOLIA_INDEX_SETTINGS: Dict[str, Any] = {
    # ===========================================
    # SEARCHABLE ATTRIBUTES (priority order)
    # ===========================================
    "searchableAttributes": [
        "title",                         # 1st - Product title (highest)
        "brand",                         # 2nd - Brand name
        "unordered(tags)",               # 3rd - Merchandising tags
        "unordered(category_name)",      # 4th - Category
        "unordered(description)",        # 5th - Long description
    ],

    # ===========================================
    # FACETS FOR FILTERING
    # ===========================================
    "attributesForFaceting": [
        "searchable(brand)",
        "filterOnly(category_id)",
        "filterOnly(in_stock)",
        "category_name",
        "price",
    ],

    # ===========================================
    # CUSTOM RANKING (business tie-breakers)
    # ===========================================
    "customRanking": [
        "desc(popularity_score)",
        "desc(in_stock)",
    ],

    # ===========================================
    # TYPO TOLERANCE
    # ===========================================
    "typoTolerance": True,
    "minWordSizefor1Typo": 4,
    "minWordSizefor2Typos": 8,
    # Model numbers must match exactly
    "disableTypoToleranceOnNumericTokens": True,

    # ===========================================
    # LANGUAGE
    # ===========================================
    "removeStopWords": True,
    "ignorePlurals": True,

    # ===========================================
    # PAGINATION
    # ===========================================
    "hitsPerPage": 20,
    "paginationLimitedTo": 1000,
}


# ============================================================================
# Sort Replicas
# ============================================================================

# Virtual replicas share the primary's data and settings; only ranking differs.
REPLICA_SUFFIXES: Dict[str, Dict[str, Any]] = {
    "_price_asc": {"customRanking": ["asc(price)"]},
    "_price_desc": {"customRanking": ["desc(price)"]},
    "_rating_desc": {"customRanking": ["desc(rating)"]},
    "_newest": {"customRanking": ["desc(created_at_timestamp)"]},
}

SORT_REPLICAS: Dict[SortOption, str] = {
    SortOption.PRICE_LOW: "_price_asc",
    SortOption.PRICE_HIGH: "_price_desc",
    SortOption.RATING: "_rating_desc",
    SortOption.NEWEST: "_newest",
}


def get_replica_names(index_name: str) -> List[str]:
    """Replica declarations for the primary index settings."""
    return [f"virtual({index_name}{suffix})" for suffix in REPLICA_SUFFIXES]


def get_replica_index_name(index_name: str, sort: SortOption) -> Optional[str]:
    """Index to query for a sort order; None means the primary (relevance)."""
    suffix = SORT_REPLICAS.get(sort)
    return f"{index_name}{suffix}" if suffix else None


# ============================================================================
# Synonyms
# ============================================================================

ALGOLIA_SYNONYMS: List[Dict[str, Any]] = [
    {"objectID": "phone_mobile", "type": "synonym",
     "synonyms": ["phone", "mobile", "smartphone", "cellphone"]},
    {"objectID": "tv_television", "type": "synonym",
     "synonyms": ["tv", "television"]},
    {"objectID": "tee_tshirt", "type": "synonym",
     "synonyms": ["tee", "t-shirt", "tshirt", "t shirt"]},
    {"objectID": "earbuds_earphones", "type": "synonym",
     "synonyms": ["earbuds", "earphones", "tws"]},
    {"objectID": "sneakers_trainers", "type": "synonym",
     "synonyms": ["sneakers", "trainers"]},
    {"objectID": "laptop_notebook", "type": "synonym",
     "synonyms": ["laptop", "notebook computer"]},
    {"objectID": "fridge_refrigerator", "type": "synonym",
     "synonyms": ["fridge", "refrigerator"]},

    # One-way: "macbook" finds laptops, "laptop" does not pull every MacBook first
    {"objectID": "macbook_to_laptop", "type": "oneWaySynonym",
     "input": "macbook", "synonyms": ["laptop"]},
]


# ============================================================================
# Filters
# ============================================================================

def _quote(value: str) -> str:
    return '"' + str(value).replace('"', '\\"') + '"'


def _number(value: float) -> str:
    """Plain decimal, never exponent notation (1234567 stays 1234567)."""
    if float(value).is_integer():
        return str(int(value))
    return format(Decimal(repr(float(value))), "f")


def build_index_filters(request: SearchRequest) -> Optional[str]:
    """
    Algolia filter string for the request's raw filters.

    Example:
        >>> build_index_filters(SearchRequest(category_id="c1", min_price=10, in_stock=True))
        'category_id:"c1" AND price >= 10 AND in_stock:true'
    """
    clauses = []
    if request.category_id:
        clauses.append(f"category_id:{_quote(request.category_id)}")
    if request.min_price is not None:
        clauses.append(f"price >= {_number(request.min_price)}")
    if request.max_price is not None:
        clauses.append(f"price <= {_number(request.max_price)}")
    if request.in_stock:
        clauses.append("in_stock:true")
    return " AND ".join(clauses) if clauses else None


# ============================================================================
# Product-to-Algolia Record Mapping
# ============================================================================

def _to_timestamp(value) -> int:
    """Unix timestamp for a datetime/ISO string, 0 when unknown."""
    dt = parse_timestamp(value)
    return int(dt.timestamp()) if dt else 0


def product_to_index_record(product: dict) -> dict:
    """
    Convert a `products` row (with optional categories(name) embed) to an
    Algolia record.
    """
    stock = to_int(product.get("stock"))
    offer_price = product.get("offer_price")

    record = {
        "objectID": str(product["id"]),

        # Searchable text
        "title": product.get("title"),
        "brand": product.get("brand"),
        "description": product.get("description"),
        "tags": product.get("tags") or [],

        # Category
        "category_id": product.get("category_id"),
        "category_name": safe_get(product, "categories", "name"),

        # Pricing
        "price": to_float(product.get("price")),
        "offer_price": to_float(offer_price) if offer_price is not None else None,

        # Stock & recency
        "stock": stock,
        "in_stock": stock > 0,
        "created_at_timestamp": _to_timestamp(product.get("created_at")),

        # Ranking metrics
        "popularity_score": to_float(product.get("popularity_score")),
        "rating": to_float(product.get("rating")) if product.get("rating") is not None else None,

        # Display only
        "images": product.get("images") or [],
    }

    # Remove None values (Algolia doesn't like them)
    return {k: v for k, v in record.items() if v is not None}
