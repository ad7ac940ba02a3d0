"""
Key-value cache and counter store.

Response caches and trending counters only need a handful of operations:
string get/set with a TTL, delete, increment a member of a scored set
(refreshing the key's expiry) and read the top-N members.

Backends:
1. InMemory: for development and tests (single process)
2. Redis: for production (redis_enabled=True)
"""

import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

from core.logging import get_logger

logger = get_logger(__name__)


class KeyValueStore:
    """Interface shared by the backends."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def incr_member(self, key: str, member: str, amount: float = 1.0,
                    ttl_seconds: Optional[int] = None) -> float:
        """Increment a member's score in a scored set; returns the new score."""
        raise NotImplementedError

    def top_n(self, key: str, n: int) -> List[Tuple[str, float]]:
        """Highest-scoring members, descending."""
        raise NotImplementedError

    def ping(self) -> bool:
        return True


# =============================================================================
# In-memory backend
# =============================================================================

class InMemoryKeyValueStore(KeyValueStore):
    """
    Process-local store with lazy expiry.

    Args:
        clock: Returns the current time in seconds. Tests inject a fake.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._values: Dict[str, Tuple[str, float]] = {}
        self._sets: Dict[str, Dict[str, float]] = {}
        self._set_expiry: Dict[str, float] = {}
        self._lock = threading.Lock()

    def _expired(self, expires_at: Optional[float]) -> bool:
        return expires_at is not None and expires_at <= self._clock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._values.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._expired(expires_at):
                del self._values[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._values[key] = (value, self._clock() + ttl_seconds)

    def delete(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)
            self._sets.pop(key, None)
            self._set_expiry.pop(key, None)

    def _live_set(self, key: str) -> Dict[str, float]:
        if self._expired(self._set_expiry.get(key)):
            self._sets.pop(key, None)
            self._set_expiry.pop(key, None)
        return self._sets.setdefault(key, {})

    def incr_member(self, key: str, member: str, amount: float = 1.0,
                    ttl_seconds: Optional[int] = None) -> float:
        with self._lock:
            members = self._live_set(key)
            members[member] = members.get(member, 0.0) + amount
            if ttl_seconds is not None:
                self._set_expiry[key] = self._clock() + ttl_seconds
            return members[member]

    def top_n(self, key: str, n: int) -> List[Tuple[str, float]]:
        if n <= 0:
            return []
        with self._lock:
            members = self._live_set(key)
            # Redis breaks score ties by member, descending
            ranked = sorted(members.items(), key=lambda kv: (kv[1], kv[0]), reverse=True)
            return ranked[:n]

    def clear(self) -> None:
        with self._lock:
            self._values.clear()
            self._sets.clear()
            self._set_expiry.clear()


# =============================================================================
# Redis backend
# =============================================================================

class RedisKeyValueStore(KeyValueStore):
    """Redis-backed store; scored sets map to ZSETs."""

    def __init__(self, client):
        self._redis = client

    def get(self, key: str) -> Optional[str]:
        return self._redis.get(key)

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._redis.setex(key, ttl_seconds, value)

    def delete(self, key: str) -> None:
        self._redis.delete(key)

    def incr_member(self, key: str, member: str, amount: float = 1.0,
                    ttl_seconds: Optional[int] = None) -> float:
        pipe = self._redis.pipeline()
        pipe.zincrby(key, amount, member)
        if ttl_seconds is not None:
            pipe.expire(key, ttl_seconds)
        results = pipe.execute()
        return float(results[0])

    def top_n(self, key: str, n: int) -> List[Tuple[str, float]]:
        if n <= 0:
            return []
        rows = self._redis.zrevrange(key, 0, n - 1, withscores=True)
        return [(member, float(score)) for member, score in rows]

    def ping(self) -> bool:
        return bool(self._redis.ping())


# =============================================================================
# Singleton
# =============================================================================

_kv_store: Optional[KeyValueStore] = None
_kv_store_lock = threading.Lock()


def get_kv_store() -> KeyValueStore:
    """
    Get or create the KeyValueStore singleton (thread-safe).

    Uses Redis when enabled in settings, otherwise the in-memory backend.
    """
    global _kv_store
    if _kv_store is None:
        with _kv_store_lock:
            if _kv_store is None:
                from config.database import get_redis_client
                client = get_redis_client()
                if client is not None:
                    _kv_store = RedisKeyValueStore(client)
                    logger.info("Key-value store initialized", backend="redis")
                else:
                    _kv_store = InMemoryKeyValueStore()
                    logger.info("Key-value store initialized", backend="memory")
    return _kv_store
