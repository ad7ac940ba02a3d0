"""
Pydantic models for the search & discovery API.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


# ============================================================================
# Enums
# ============================================================================

class SearchIntent(str, Enum):
    """Whether the shopper is ready to buy or browsing."""
    TRANSACTIONAL = "transactional"  # "iphone 15 pro 256gb"
    EXPLORATORY = "exploratory"      # "best phones under 20000"


class SortOption(str, Enum):
    """Result ordering. Anything but RELEVANCE is a single order-by on the store."""
    RELEVANCE = "relevance"
    PRICE_LOW = "price_low"
    PRICE_HIGH = "price_high"
    RATING = "rating"
    NEWEST = "newest"


class TrendPeriod(str, Enum):
    """Trending counter windows."""
    DAY = "24h"
    WEEK = "7d"


class MissPeriod(str, Enum):
    """Look-back windows for miss analytics."""
    DAY = "24h"
    WEEK = "7d"
    MONTH = "30d"


TrendDirection = Literal["up", "down", "stable"]
SuggestionType = Literal["product", "category", "trending", "popular"]
FallbackLabel = Literal["semantic", "category", "recommendations", "none"]
ResultSource = Literal["index", "store", "semantic", "category", "recommendation"]


class IntentResult(BaseModel):
    """Advisory intent annotation attached to search results."""
    intent: SearchIntent
    confidence: float = Field(..., ge=0.0, le=1.0)


# ============================================================================
# Request Models
# ============================================================================

class SearchRequest(BaseModel):
    """Query text plus the filters that shape a search."""
    q: Optional[str] = Field(None, max_length=500, description="Search query")
    category_id: Optional[str] = Field(None, description="Restrict to a category")
    min_price: Optional[float] = Field(None, ge=0, description="Minimum price")
    max_price: Optional[float] = Field(None, ge=0, description="Maximum price")
    in_stock: Optional[bool] = Field(None, description="Only products with stock > 0")
    sort: SortOption = Field(SortOption.RELEVANCE, description="Sort order")
    page: int = Field(1, ge=1, description="Page number (1-indexed)")
    limit: int = Field(20, ge=1, le=100, description="Results per page")

    @model_validator(mode="after")
    def validate_price_range(self):
        """Ensure min_price <= max_price when both are set."""
        if self.min_price is not None and self.max_price is not None:
            if self.min_price > self.max_price:
                raise ValueError(f"min_price ({self.min_price}) must be <= max_price ({self.max_price})")
        return self

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def filter_fingerprint(self) -> Dict[str, Any]:
        """Every active filter that changes the result set, excluding q."""
        return {
            "category_id": self.category_id,
            "min_price": self.min_price,
            "max_price": self.max_price,
            "in_stock": bool(self.in_stock),
            "sort": self.sort.value,
            "page": self.page,
            "limit": self.limit,
        }


class ResolveMissRequest(BaseModel):
    """Admin action: a product now satisfies a missed query."""
    miss_id: str = Field(..., min_length=1)
    product_id: str = Field(..., min_length=1)


# ============================================================================
# Products
# ============================================================================

class ScoredProduct(BaseModel):
    """A catalog product, normalised from whichever source produced it."""
    id: str
    title: str
    description: Optional[str] = None
    brand: Optional[str] = None
    price: float = 0.0
    offer_price: Optional[float] = None
    stock: int = 0
    tags: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    popularity_score: float = 0.0
    rating: Optional[float] = None
    created_at: Optional[datetime] = None

    source: ResultSource = "store"
    relevance_score: Optional[float] = None
    semantic_score: Optional[float] = None

    @property
    def discount_percent(self) -> float:
        """Percentage off list price; 0 without a lower offer price."""
        if self.offer_price is None or self.price <= 0:
            return 0.0
        return max((self.price - self.offer_price) / self.price * 100, 0.0)


# ============================================================================
# Response Models
# ============================================================================

class SearchMeta(BaseModel):
    """Pagination plus diagnostics describing how the result was produced."""
    total: int
    page: int
    last_page: int
    intent: Optional[IntentResult] = None
    source: Optional[ResultSource] = None
    fallback: Optional[FallbackLabel] = None
    suggested_category: Optional[str] = None
    message: Optional[str] = None
    original_query: Optional[str] = None
    suggestions: Optional[List[str]] = None


class SearchResponse(BaseModel):
    """Response from the search orchestrator."""
    data: List[ScoredProduct]
    meta: SearchMeta


class Suggestion(BaseModel):
    """An autocomplete suggestion as returned to the client."""
    text: str
    type: SuggestionType
    category: Optional[str] = None
    parent_category: Optional[str] = None
    brand: Optional[str] = None


class TrendingItem(BaseModel):
    """A trending query with its decayed display score."""
    query: str
    count: int
    score: float
    trend: TrendDirection = "stable"
    change_percent: Optional[float] = None


class AdminTrendingItem(TrendingItem):
    """Trending query correlated with zero-result searches."""
    miss_count: int = 0
    has_supply: bool = True


# ============================================================================
# Ledger / aggregate records
# ============================================================================

class SearchMiss(BaseModel):
    """One (normalized query, dedup window) zero-result event."""
    id: str
    query: str
    normalized_query: str
    user_id: Optional[str] = None
    region: str = "global"
    count: int = 1
    keywords: List[str] = Field(default_factory=list)
    inferred_category_id: Optional[str] = None
    inferred_category_name: Optional[str] = None
    resolved: bool = False
    resolved_product_id: Optional[str] = None
    last_searched_at: datetime
    created_at: Optional[datetime] = None


class TrendingEntry(BaseModel):
    """Durable (query, region) popularity aggregate."""
    query: str
    region: str
    count: int
    last_seen: datetime


class CategoryMatch(BaseModel):
    """A category inferred from query keywords."""
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    confidence: float = 0.0

    @property
    def found(self) -> bool:
        return self.category_id is not None


class MissRecordSummary(BaseModel):
    """A missed query as shown on the admin dashboard."""
    id: str
    query: str
    normalized_query: str
    count: int
    keywords: List[str]
    suggested_category: Optional[str] = None
    last_searched_at: datetime
    resolved: bool


class DemandGap(BaseModel):
    """Miss volume for one inferred category."""
    category: str
    category_id: Optional[str] = None
    miss_count: int
    unique_queries: int
    potential_revenue: float


class MissSummaryStats(BaseModel):
    total_misses: int
    unique_queries: int
    resolved_count: int
    resolution_rate: float
    period: MissPeriod


class MissAnalytics(BaseModel):
    """Admin analytics over the miss ledger."""
    top_misses: List[MissRecordSummary]
    demand_gaps: List[DemandGap]
    summary: MissSummaryStats
