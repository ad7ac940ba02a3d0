"""
Pytest configuration and shared fixtures for the search & discovery tests.
"""
import os
import sys
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), "src"))

# Load environment variables
from dotenv import load_dotenv
load_dotenv(os.path.join(os.path.dirname(os.path.dirname(__file__)), ".env"))

# Tests never talk to real services: no Redis, no Algolia, no OpenAI
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret-with-enough-bytes-for-hs256"
os.environ["REDIS_ENABLED"] = "false"
os.environ["ALGOLIA_APP_ID"] = ""
os.environ["OPENAI_API_KEY"] = ""


TEST_JWT_SECRET = os.environ["SUPABASE_JWT_SECRET"]
NOW = datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


# ============================================================================
# Clocks
# ============================================================================

class FakeClock:
    """Settable clock. Call for a datetime, .seconds() for an epoch float."""

    def __init__(self, start: datetime = NOW):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def seconds(self) -> float:
        return self.now.timestamp()

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# Fixtures: Infrastructure
# ============================================================================

@pytest.fixture
def kv(clock):
    from search.kv_store import InMemoryKeyValueStore
    return InMemoryKeyValueStore(clock=clock.seconds)


@pytest.fixture
def task_runner():
    """Unbound runner: tasks run in the test thread, failures land in dead letters."""
    from core.tasks import TaskRunner
    return TaskRunner()


@pytest.fixture
def trending_repository():
    from search.trending import InMemoryTrendingRepository
    return InMemoryTrendingRepository()


@pytest.fixture
def tracker(kv, trending_repository, task_runner, clock):
    from search.trending import TrendingTracker
    return TrendingTracker(
        kv=kv,
        repository=trending_repository,
        task_runner=task_runner,
        clock=clock,
        cache_ttl_seconds=300,
        popular_ttl_seconds=600,
    )


@pytest.fixture
def miss_repository():
    from search.miss_ledger import InMemoryMissRepository
    return InMemoryMissRepository()


@pytest.fixture
def ledger(miss_repository, clock):
    from search.miss_ledger import MissLedger
    return MissLedger(
        repository=miss_repository,
        clock=clock,
        dedup_window_seconds=3600,
        conversion_rate=0.15,
        average_order_value=500,
    )


@pytest.fixture
def catalog():
    """CatalogStore double: every lookup empty unless a test says otherwise."""
    mock = MagicMock()
    mock.find_sorted.return_value = ([], 0)
    mock.find_candidates.return_value = ([], 0)
    mock.find_category_by_name.return_value = None
    mock.top_in_category.return_value = ([], 0)
    mock.title_matches.return_value = []
    mock.category_matches.return_value = []
    mock.get_products_by_ids.return_value = []
    mock.match_by_embedding.return_value = []
    mock.distinct_brands.return_value = []
    return mock


# ============================================================================
# Fixtures: Test Data Factories
# ============================================================================

def make_product(product_id: str = "p1", **overrides):
    """ScoredProduct with sensible defaults."""
    from search.models import ScoredProduct
    data = {
        "id": product_id,
        "title": f"Product {product_id}",
        "brand": "TestBrand",
        "price": 100.0,
        "stock": 20,
        "popularity_score": 10.0,
    }
    data.update(overrides)
    return ScoredProduct(**data)


@pytest.fixture
def product_factory():
    return make_product


@pytest.fixture
def sample_product_row() -> dict:
    """A `products` row as returned by Supabase with the categories embed."""
    return {
        "id": "prod-001",
        "title": "iPhone 15 Pro 256GB",
        "description": "Titanium. A17 Pro chip.",
        "brand": "Apple",
        "price": 134900,
        "offer_price": 127900,
        "stock": 12,
        "tags": ["iphone", "smartphone"],
        "images": ["https://img.example.com/iphone15.jpg"],
        "category_id": "cat-phones",
        "categories": {"name": "Smartphones"},
        "popularity_score": 87.5,
        "rating": 4.6,
        "created_at": "2026-01-05T10:00:00+00:00",
        "is_active": True,
    }


def make_token(sub: str = "user-123", role: str = "", expires_in: int = 3600, **claims) -> str:
    """Sign a Supabase-style access token with the test secret."""
    import jwt
    payload = {
        "sub": sub,
        "aud": "authenticated",
        "role": "authenticated",
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        "email": f"{sub}@example.com",
    }
    if role:
        payload["app_metadata"] = {"role": role}
    payload.update(claims)
    return jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")


@pytest.fixture
def user_token() -> str:
    return make_token()


@pytest.fixture
def admin_token() -> str:
    return make_token(sub="admin-1", role="admin")


@pytest.fixture
def token_factory():
    return make_token
