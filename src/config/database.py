"""
Storage clients.

Supabase holds the catalog (`products`, `categories`), the trending
aggregate (`search_trending`) and the miss ledger (`product_search_misses`).
Redis, when enabled, holds trending counters and response caches.
"""

from functools import lru_cache
from typing import Optional

from supabase import Client, create_client

from config.settings import get_settings


class SupabaseClientError(Exception):
    """The Supabase client could not be built from the current settings."""


@lru_cache(maxsize=1)
def get_supabase_client() -> Client:
    settings = get_settings()
    try:
        return create_client(settings.supabase_url, settings.supabase_service_key)
    except Exception as e:
        raise SupabaseClientError(f"Failed to create Supabase client: {e}") from e


def get_supabase_client_optional() -> Optional[Client]:
    """The Supabase client, or None (health probes report it instead of failing)."""
    try:
        return get_supabase_client()
    except SupabaseClientError:
        return None


@lru_cache(maxsize=1)
def get_redis_client():
    """
    Redis client for counters and caches, or None when REDIS_ENABLED is off.

    PINGs once so a wrong REDIS_URL fails at startup, not on the first
    trending increment.
    """
    settings = get_settings()
    if not settings.redis_enabled:
        return None

    import redis

    client = redis.from_url(settings.redis_url, decode_responses=True)
    client.ping()
    return client
