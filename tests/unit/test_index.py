"""
Tests for the Algolia index: configuration, client wrapper and sync.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest


# =============================================================================
# Index configuration
# =============================================================================

class TestBuildIndexFilters:

    def test_all_filters(self):
        from search.algolia_config import build_index_filters
        from search.models import SearchRequest

        request = SearchRequest(category_id="c1", min_price=10, max_price=99.5, in_stock=True)

        assert build_index_filters(request) == (
            'category_id:"c1" AND price >= 10 AND price <= 99.5 AND in_stock:true'
        )

    def test_no_filters(self):
        from search.algolia_config import build_index_filters
        from search.models import SearchRequest

        assert build_index_filters(SearchRequest(q="tv")) is None

    def test_large_and_fractional_prices_kept_exact(self):
        from search.algolia_config import build_index_filters
        from search.models import SearchRequest

        request = SearchRequest(min_price=1234567, max_price=2500000.75)

        assert build_index_filters(request) == "price >= 1234567 AND price <= 2500000.75"

    def test_tiny_price_not_in_exponent_form(self):
        from search.algolia_config import build_index_filters
        from search.models import SearchRequest

        assert build_index_filters(SearchRequest(min_price=0.0001)) == "price >= 0.0001"


class TestProductToIndexRecord:

    def test_record_mapping(self, sample_product_row):
        from search.algolia_config import product_to_index_record

        record = product_to_index_record(sample_product_row)

        assert record["objectID"] == "prod-001"
        assert record["category_name"] == "Smartphones"
        assert record["in_stock"] is True
        assert record["offer_price"] == 127900.0
        assert record["created_at_timestamp"] == int(
            datetime(2026, 1, 5, 10, tzinfo=timezone.utc).timestamp()
        )
        assert "is_active" not in record

    def test_none_values_dropped(self):
        from search.algolia_config import product_to_index_record

        record = product_to_index_record({"id": 7, "title": "Kettle", "stock": 0})

        assert record["objectID"] == "7"
        assert record["in_stock"] is False
        assert record["created_at_timestamp"] == 0
        assert "brand" not in record
        assert "rating" not in record


class TestReplicas:

    def test_replica_declarations(self):
        from search.algolia_config import get_replica_names

        names = get_replica_names("products")

        assert "virtual(products_price_asc)" in names
        assert len(names) == 4

    def test_replica_for_sort(self):
        from search.algolia_config import get_replica_index_name
        from search.models import SortOption

        assert get_replica_index_name("products", SortOption.PRICE_HIGH) == "products_price_desc"
        assert get_replica_index_name("products", SortOption.RELEVANCE) is None


# =============================================================================
# Client wrapper
# =============================================================================

@pytest.fixture
def algolia():
    from search.algolia_client import AlgoliaClient

    raw = MagicMock()
    return AlgoliaClient(app_id="APP", write_key="key", index_name="products", client=raw), raw


class TestAlgoliaClient:

    def test_search_products_uses_replica_and_zero_based_page(self, algolia):
        from search.models import SearchRequest

        client, raw = algolia
        raw.search_single_index.return_value.to_dict.return_value = {
            "hits": [{"objectID": "p1", "title": "Sony TV", "price": 50000, "created_at_timestamp": 0}],
            "nbHits": 41,
        }

        products, total = client.search_products("tv", SearchRequest(q="tv", sort="newest", page=2, limit=20, in_stock=True))

        assert total == 41
        assert products[0].id == "p1"
        assert products[0].source == "index"
        assert products[0].created_at is None
        kwargs = raw.search_single_index.call_args.kwargs
        assert kwargs["index_name"] == "products_newest"
        assert kwargs["search_params"] == {
            "query": "tv",
            "hitsPerPage": 20,
            "page": 1,
            "filters": "in_stock:true",
        }

    def test_relevance_searches_primary(self, algolia):
        from search.models import SearchRequest

        client, raw = algolia
        raw.search_single_index.return_value.to_dict.return_value = {"hits": [], "nbHits": 0}

        assert client.search_products("tv", SearchRequest(q="tv")) == ([], 0)
        assert raw.search_single_index.call_args.kwargs["index_name"] == "products"

    def test_configure_replicas_waits_for_primary(self, algolia):
        client, raw = algolia
        raw.set_settings.return_value.to_dict.return_value = {"taskID": 99}

        responses = client.configure_replicas()

        raw.wait_for_task.assert_called_once_with(index_name="products", task_id=99)
        configured = [c.kwargs["index_name"] for c in raw.set_settings.call_args_list]
        assert configured[0] == "products"
        assert "products_rating_desc" in configured
        assert len(responses) == 4

    def test_requires_app_id(self):
        from search.algolia_client import AlgoliaClient

        with pytest.raises(ValueError):
            AlgoliaClient(app_id="", write_key="key")

    def test_optional_client_none_when_unconfigured(self):
        from search.algolia_client import get_algolia_client_optional

        assert get_algolia_client_optional() is None


# =============================================================================
# Index sync
# =============================================================================

class TestIndexSyncService:

    def test_sync_all_queues_one_task_per_batch(self, catalog, task_runner, sample_product_row):
        from search.index_sync import IndexSyncService

        catalog.iter_active_products.return_value = iter([
            [sample_product_row, dict(sample_product_row, id="prod-002")],
            [dict(sample_product_row, id="prod-003")],
        ])
        index = MagicMock()

        queued = IndexSyncService(catalog, index, task_runner=task_runner).sync_all_products(batch_size=2)

        assert queued == 3
        assert index.save_objects.call_count == 2
        first_batch = index.save_objects.call_args_list[0].args[0]
        assert [r["objectID"] for r in first_batch] == ["prod-001", "prod-002"]

    def test_failed_batch_goes_to_dead_letters(self, catalog, task_runner, sample_product_row):
        from search.index_sync import IndexSyncService

        catalog.iter_active_products.return_value = iter([[sample_product_row]])
        index = MagicMock()
        index.save_objects.side_effect = RuntimeError("algolia 503")

        queued = IndexSyncService(catalog, index, task_runner=task_runner).sync_all_products()

        assert queued == 1
        assert task_runner.dead_letters()[0].task_name == "index.save_batch"

    def test_index_and_remove_product(self, catalog, task_runner, sample_product_row):
        from search.index_sync import IndexSyncService

        index = MagicMock()
        service = IndexSyncService(catalog, index, task_runner=task_runner)

        service.index_product(sample_product_row)
        service.remove_product(42)

        assert index.save_objects.call_args.args[0][0]["objectID"] == "prod-001"
        index.delete_object.assert_called_once_with("42")

    def test_unconfigured_index_raises(self, catalog, task_runner):
        from search.exceptions import SearchError
        from search.index_sync import IndexSyncService

        service = IndexSyncService(catalog, None, task_runner=task_runner)

        with pytest.raises(SearchError):
            service.sync_all_products()
        catalog.iter_active_products.assert_not_called()
