"""
Health and probe endpoints.

`/health/detailed` reports each backing service the search path touches:
the catalog (Supabase), the counter/cache store (Redis or in-memory), and
whether the fast index and semantic retrieval are configured.
"""

from typing import Any, Dict

from fastapi import APIRouter

from config.database import get_supabase_client_optional
from config.settings import get_settings

router = APIRouter(tags=["Health"])

SERVICE = "search-api"


def _check_catalog() -> Dict[str, Any]:
    client = get_supabase_client_optional()
    if client is None:
        return {"status": "not_configured"}
    try:
        result = client.table("products").select("id").limit(1).execute()
    except Exception as e:
        return {"status": "error", "error": str(e)}
    return {"status": "connected" if result.data else "empty"}


def _check_kv() -> Dict[str, Any]:
    from search.kv_store import RedisKeyValueStore, get_kv_store

    try:
        store = get_kv_store()
        ok = store.ping()
    except Exception as e:
        return {"status": "error", "error": str(e)}
    backend = "redis" if isinstance(store, RedisKeyValueStore) else "memory"
    return {"status": "connected" if ok else "error", "backend": backend}


@router.get("/health")
async def health_check() -> Dict[str, Any]:
    return {"status": "healthy", "service": SERVICE}


@router.get("/health/detailed")
def detailed_health_check() -> Dict[str, Any]:
    """Dependency status; `degraded` when the catalog or KV store is unreachable."""
    settings = get_settings()
    catalog = _check_catalog()
    kv = _check_kv()

    healthy = catalog["status"] == "connected" and kv["status"] == "connected"
    return {
        "status": "healthy" if healthy else "degraded",
        "service": SERVICE,
        "environment": settings.environment,
        "checks": {
            "supabase": catalog,
            "kv_store": kv,
            "algolia": {"status": "configured" if settings.algolia_enabled else "not_configured"},
            "semantic_search": settings.semantic_search_enabled and bool(settings.openai_api_key),
        },
    }


@router.get("/ready")
def readiness_check() -> Dict[str, str]:
    """Ready once a catalog client can be built; search cannot answer without it."""
    if get_supabase_client_optional() is None:
        return {"status": "not_ready", "reason": "catalog_not_configured"}
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> Dict[str, str]:
    return {"status": "alive"}
