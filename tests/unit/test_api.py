"""
API tests: routes wired to in-memory services through dependency overrides.

The app is used without its lifespan (no `with TestClient(...)`), so no
catalog connection is attempted at startup.
"""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def index_sync(catalog, task_runner):
    from search.index_sync import IndexSyncService
    return IndexSyncService(catalog, MagicMock(), task_runner=task_runner)


@pytest.fixture
def orchestrator(catalog, kv, tracker, ledger, task_runner):
    from search.intent import IntentClassifier
    from search.orchestrator import SearchOrchestrator

    embeddings = MagicMock()
    embeddings.enabled = False
    recommendations = MagicMock()
    recommendations.recommend_ids.return_value = []
    return SearchOrchestrator(
        catalog=catalog,
        kv=kv,
        trending=tracker,
        ledger=ledger,
        index=None,
        embeddings=embeddings,
        recommendations=recommendations,
        task_runner=task_runner,
        classifier=IntentClassifier(),
    )


@pytest.fixture
def client(orchestrator, catalog, tracker, kv, ledger, index_sync, task_runner):
    from api.app import create_app
    from core.tasks import get_task_runner
    from search.autocomplete import AutocompleteService, get_autocomplete_service
    from search.index_sync import get_index_sync_service
    from search.miss_ledger import get_miss_ledger
    from search.orchestrator import get_search_orchestrator
    from search.trending import get_trending_tracker

    app = create_app()
    app.dependency_overrides[get_search_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_autocomplete_service] = lambda: AutocompleteService(
        catalog=catalog, trending=tracker, kv=kv,
    )
    app.dependency_overrides[get_miss_ledger] = lambda: ledger
    app.dependency_overrides[get_index_sync_service] = lambda: index_sync
    app.dependency_overrides[get_trending_tracker] = lambda: tracker
    app.dependency_overrides[get_task_runner] = lambda: task_runner
    return TestClient(app)


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


class TestSearchEndpoint:

    def test_search_returns_products(self, client, catalog, product_factory):
        catalog.find_candidates.return_value = ([product_factory("p1", title="Sony TV")], 1)

        response = client.get("/api/search", params={"q": "tv", "in_stock": "true"})

        assert response.status_code == 200
        body = response.json()
        assert [p["id"] for p in body["data"]] == ["p1"]
        assert body["meta"]["total"] == 1
        assert body["meta"]["source"] == "store"
        assert response.headers["X-Request-ID"]

    def test_price_range_validated(self, client, catalog):
        response = client.get("/api/search", params={"q": "tv", "min_price": 500, "max_price": 100})

        assert response.status_code == 422
        catalog.find_candidates.assert_not_called()

    def test_limit_bounds(self, client):
        assert client.get("/api/search", params={"limit": 0}).status_code == 422
        assert client.get("/api/search", params={"limit": 101}).status_code == 422

    def test_invalid_token_rejected(self, client):
        response = client.get("/api/search", params={"q": "tv"}, headers=_auth("not-a-jwt"))
        assert response.status_code == 401

    def test_miss_attributed_to_user(self, client, ledger, user_token):
        client.get("/api/search", params={"q": "qwertyuiop", "pincode": "400001"}, headers=_auth(user_token))

        misses = ledger.top_misses(10)
        assert misses[0].normalized_query == "qwertyuiop"

    def test_store_outage_is_503(self, client, catalog):
        from search.exceptions import CatalogStoreError

        catalog.find_candidates.side_effect = CatalogStoreError("connection refused")

        response = client.get("/api/search", params={"q": "tv"})

        assert response.status_code == 503

    def test_telemetry_queued_as_background_tasks(self, client, catalog, product_factory):
        from fastapi import BackgroundTasks
        from core.tasks import get_task_runner

        runner = MagicMock()
        client.app.dependency_overrides[get_task_runner] = lambda: runner
        catalog.find_candidates.return_value = ([product_factory("p1", title="Sony TV")], 1)

        response = client.get("/api/search", params={"q": "tv"})

        assert response.status_code == 200
        (background_tasks,), _ = runner.bind.call_args
        assert isinstance(background_tasks, BackgroundTasks)
        names = [c.args[0] for c in runner.bind.return_value.submit.call_args_list]
        assert names == ["trending.increment"]

    def test_miss_written_after_response(self, client, ledger, task_runner):
        response = client.get("/api/search", params={"q": "qwertyuiop"})

        assert response.json()["meta"]["fallback"] == "none"
        assert ledger.top_misses(10)[0].normalized_query == "qwertyuiop"
        assert task_runner.dead_letters() == []

    def test_background_failure_keeps_200(self, client, catalog, tracker, task_runner, product_factory, monkeypatch):
        monkeypatch.setattr(tracker, "increment", MagicMock(side_effect=ConnectionError("redis down")))
        catalog.find_candidates.return_value = ([product_factory("p1", title="Sony TV")], 1)

        response = client.get("/api/search", params={"q": "tv"})

        assert response.status_code == 200
        assert task_runner.dead_letters()[0].task_name == "trending.increment"


class TestPublicDiscovery:

    def test_suggest(self, client, catalog):
        catalog.title_matches.return_value = [{"title": "iPhone 15", "brand": "Apple"}]

        response = client.get("/api/search/suggest", params={"q": "iph"})

        assert response.status_code == 200
        assert response.json()[0] == {
            "text": "iPhone 15",
            "type": "product",
            "category": None,
            "parent_category": None,
            "brand": "Apple",
        }

    def test_suggest_limit_bounds(self, client):
        assert client.get("/api/search/suggest", params={"q": "iph", "limit": 21}).status_code == 422

    def test_trending(self, client, tracker):
        for _ in range(2):
            tracker.increment("iphone")

        response = client.get("/api/search/trending", params={"period": "7d"})

        assert response.status_code == 200
        assert response.json()[0]["query"] == "iphone"

    def test_trending_bad_period(self, client):
        assert client.get("/api/search/trending", params={"period": "1y"}).status_code == 422


class TestAdminEndpoints:

    def test_requires_token(self, client):
        assert client.get("/api/search/admin/misses").status_code == 401

    def test_requires_admin_role(self, client, user_token):
        response = client.get("/api/search/admin/misses", headers=_auth(user_token))
        assert response.status_code == 403

    def test_misses_and_analytics(self, client, ledger, admin_token):
        ledger.log_miss("purple phone", "purple phone")

        misses = client.get("/api/search/admin/misses", headers=_auth(admin_token))
        analytics = client.get(
            "/api/search/admin/miss/analytics",
            params={"period": "24h"},
            headers=_auth(admin_token),
        )

        assert misses.json()[0]["normalized_query"] == "purple phone"
        assert analytics.status_code == 200
        assert analytics.json()["summary"]["total_misses"] == 1

    def test_resolve(self, client, ledger, admin_token):
        miss = ledger.log_miss("purple phone", "purple phone")

        response = client.post(
            "/api/search/admin/miss/resolve",
            json={"miss_id": miss.id, "product_id": "prod-9"},
            headers=_auth(admin_token),
        )

        assert response.status_code == 200
        assert response.json() == {"status": "resolved", "miss_id": miss.id, "product_id": "prod-9"}

    def test_resolve_unknown_miss(self, client, admin_token):
        response = client.post(
            "/api/search/admin/miss/resolve",
            json={"miss_id": "missing", "product_id": "prod-9"},
            headers=_auth(admin_token),
        )
        assert response.status_code == 404

    def test_trending_analytics_supply(self, client, tracker, ledger, admin_token):
        tracker.increment("iphone")
        tracker.increment("unicorn phone")
        ledger.log_miss("unicorn phone", "unicorn phone")

        response = client.get("/api/search/admin/trending/analytics", headers=_auth(admin_token))

        supply = {item["query"]: item["has_supply"] for item in response.json()}
        assert supply == {"iphone": True, "unicorn phone": False}

    def test_sync_queues_products(self, client, catalog, index_sync, sample_product_row, admin_token):
        catalog.iter_active_products.return_value = iter([[sample_product_row]])

        response = client.post("/api/search/admin/sync", headers=_auth(admin_token))

        assert response.status_code == 202
        assert response.json()["queued"] == 1
        index_sync.index.save_objects.assert_called_once()

    def test_sync_pushes_run_as_background_tasks(self, client, catalog, index_sync, sample_product_row, admin_token):
        from core.tasks import get_task_runner

        runner = MagicMock()
        client.app.dependency_overrides[get_task_runner] = lambda: runner
        catalog.iter_active_products.return_value = iter([[sample_product_row], [sample_product_row]])

        response = client.post("/api/search/admin/sync", headers=_auth(admin_token))

        assert response.status_code == 202
        submitted = runner.bind.return_value.submit.call_args_list
        assert [c.args[0] for c in submitted] == ["index.save_batch", "index.save_batch"]
        index_sync.index.save_objects.assert_not_called()

    def test_sync_without_index(self, client, catalog, task_runner, admin_token):
        from search.index_sync import IndexSyncService, get_index_sync_service

        client.app.dependency_overrides[get_index_sync_service] = (
            lambda: IndexSyncService(catalog, None, task_runner=task_runner)
        )

        response = client.post("/api/search/admin/sync", headers=_auth(admin_token))

        assert response.status_code == 503

    def test_trending_cleanup(self, client, admin_token):
        response = client.post(
            "/api/search/admin/trending/cleanup",
            params={"retention_days": 7},
            headers=_auth(admin_token),
        )

        assert response.status_code == 200
        assert response.json() == {"deleted": 0}


class TestHealthEndpoints:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy", "service": "search-api"}

    def test_live(self, client):
        assert client.get("/live").json() == {"status": "alive"}

    def test_ready_without_catalog(self, client, monkeypatch):
        import api.routes.health as health

        monkeypatch.setattr(health, "get_supabase_client_optional", lambda: None)

        assert client.get("/ready").json()["status"] == "not_ready"

    def test_detailed_without_catalog(self, client, monkeypatch):
        import api.routes.health as health

        monkeypatch.setattr(health, "get_supabase_client_optional", lambda: None)

        body = client.get("/health/detailed").json()

        assert body["status"] == "degraded"
        assert body["checks"]["supabase"]["status"] == "not_configured"
        assert body["checks"]["kv_store"] == {"status": "connected", "backend": "memory"}
        assert body["checks"]["algolia"]["status"] == "not_configured"


class TestTokenVerification:

    def test_expired_token(self, token_factory):
        from fastapi import HTTPException
        from core.auth import verify_jwt

        with pytest.raises(HTTPException) as exc:
            verify_jwt(token_factory(expires_in=-60))

        assert exc.value.status_code == 401
        assert exc.value.detail == "Token has expired"

    def test_wrong_audience(self, token_factory):
        from fastapi import HTTPException
        from core.auth import verify_jwt

        with pytest.raises(HTTPException) as exc:
            verify_jwt(token_factory(aud="anon"))

        assert exc.value.detail == "Invalid token audience"

    def test_admin_role_from_app_metadata(self, admin_token, user_token):
        from core.auth import extract_user, verify_jwt

        admin = extract_user(verify_jwt(admin_token))
        user = extract_user(verify_jwt(user_token))

        assert admin.is_admin is True
        assert user.is_admin is False
        assert user.app_metadata == {}
