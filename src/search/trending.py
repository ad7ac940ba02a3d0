"""
Trending Tracker.

Per-region popularity counters for normalized queries, kept in the
key-value store as scored sets:

    search:trending:{region}:24h    expires 48h after the last increment
    search:trending:{region}:7d     expires 14 days after the last increment

Every increment is also reconciled (detached) into the durable
`search_trending` aggregate, which backs the 24-48h comparison snapshot
and is purged after the retention window.

Display score is a flat per-window multiplier (0.95 for 24h, 0.85 for 7d).
"""

import json
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from config.settings import get_settings
from core.logging import get_logger
from core.utils import parse_timestamp, to_int, utc_now
from search.kv_store import KeyValueStore
from search.models import TrendingEntry, TrendingItem, TrendPeriod
from search.normalizer import normalize_query
from search.region import GLOBAL_REGION

logger = get_logger(__name__)


TREND_KEY = "search:trending"
POPULAR_KEY = "search:popular"

DECAY_FACTORS: Dict[TrendPeriod, float] = {
    TrendPeriod.DAY: 0.95,
    TrendPeriod.WEEK: 0.85,
}

COUNTER_TTL_SECONDS: Dict[TrendPeriod, int] = {
    TrendPeriod.DAY: 48 * 3600,
    TrendPeriod.WEEK: 14 * 24 * 3600,
}

MIN_QUERY_LENGTH = 2
SNAPSHOT_LIMIT = 100
CHANGE_THRESHOLD = 5.0


def counter_key(region: str, period: TrendPeriod) -> str:
    return f"{TREND_KEY}:{region.lower()}:{period.value}"


def decayed_score(count: float, period: TrendPeriod) -> float:
    """
    Example:
        >>> decayed_score(100, TrendPeriod.DAY)
        95.0
    """
    return round(count * DECAY_FACTORS[period], 2)


def change_percent(current: int, previous: int) -> float:
    """Percent change vs the previous window, rounded to 1 decimal."""
    if previous > 0:
        change = (current - previous) / previous * 100
    else:
        change = 100.0 if current > 0 else 0.0
    return round(change, 1)


def trend_direction(change: float) -> str:
    if change > CHANGE_THRESHOLD:
        return "up"
    if change < -CHANGE_THRESHOLD:
        return "down"
    return "stable"


# =============================================================================
# Durable aggregate
# =============================================================================

class TrendingRepository:
    """One row per (query, region) with a running count and last-seen time."""

    def upsert(self, query: str, region: str, seen_at: datetime) -> None:
        raise NotImplementedError

    def snapshot(self, region: str, start: datetime, end: datetime,
                 limit: int = SNAPSHOT_LIMIT) -> List[TrendingEntry]:
        """Rows last seen within [start, end], highest count first."""
        raise NotImplementedError

    def delete_older_than(self, cutoff: datetime) -> int:
        raise NotImplementedError


class InMemoryTrendingRepository(TrendingRepository):
    """Process-local aggregate for development and tests."""

    def __init__(self):
        self._rows: Dict[Tuple[str, str], TrendingEntry] = {}
        self._lock = threading.Lock()

    def upsert(self, query: str, region: str, seen_at: datetime) -> None:
        with self._lock:
            existing = self._rows.get((query, region))
            if existing is None:
                self._rows[(query, region)] = TrendingEntry(
                    query=query, region=region, count=1, last_seen=seen_at,
                )
            else:
                self._rows[(query, region)] = existing.model_copy(
                    update={"count": existing.count + 1, "last_seen": seen_at}
                )

    def put(self, entry: TrendingEntry) -> None:
        """Seed a row directly (historical data)."""
        with self._lock:
            self._rows[(entry.query, entry.region)] = entry

    def get(self, query: str, region: str) -> Optional[TrendingEntry]:
        with self._lock:
            return self._rows.get((query, region))

    def snapshot(self, region: str, start: datetime, end: datetime,
                 limit: int = SNAPSHOT_LIMIT) -> List[TrendingEntry]:
        with self._lock:
            rows = [
                r for r in self._rows.values()
                if r.region == region and start <= r.last_seen <= end
            ]
        rows.sort(key=lambda r: r.count, reverse=True)
        return rows[:limit]

    def delete_older_than(self, cutoff: datetime) -> int:
        with self._lock:
            stale = [k for k, r in self._rows.items() if r.last_seen < cutoff]
            for key in stale:
                del self._rows[key]
        return len(stale)


class SupabaseTrendingRepository(TrendingRepository):
    """`search_trending` table, unique on (query, region)."""

    TABLE = "search_trending"

    def __init__(self, supabase=None):
        self._supabase = supabase

    @property
    def supabase(self):
        if self._supabase is None:
            from config.database import get_supabase_client
            self._supabase = get_supabase_client()
        return self._supabase

    def upsert(self, query: str, region: str, seen_at: datetime) -> None:
        existing = (
            self.supabase.table(self.TABLE)
            .select("id, count")
            .eq("query", query)
            .eq("region", region)
            .limit(1)
            .execute()
        )
        rows = existing.data or []
        if rows:
            row = rows[0]
            self.supabase.table(self.TABLE).update({
                "count": to_int(row.get("count")) + 1,
                "last_seen": seen_at.isoformat(),
            }).eq("id", row["id"]).execute()
        else:
            self.supabase.table(self.TABLE).insert({
                "query": query,
                "region": region,
                "count": 1,
                "last_seen": seen_at.isoformat(),
            }).execute()

    def snapshot(self, region: str, start: datetime, end: datetime,
                 limit: int = SNAPSHOT_LIMIT) -> List[TrendingEntry]:
        result = (
            self.supabase.table(self.TABLE)
            .select("query, region, count, last_seen")
            .eq("region", region)
            .gte("last_seen", start.isoformat())
            .lte("last_seen", end.isoformat())
            .order("count", desc=True)
            .limit(limit)
            .execute()
        )
        return [
            TrendingEntry(
                query=r["query"],
                region=r["region"],
                count=to_int(r.get("count")),
                last_seen=parse_timestamp(r["last_seen"]),
            )
            for r in (result.data or [])
        ]

    def delete_older_than(self, cutoff: datetime) -> int:
        result = (
            self.supabase.table(self.TABLE)
            .delete()
            .lt("last_seen", cutoff.isoformat())
            .execute()
        )
        return len(result.data or [])


# =============================================================================
# Tracker
# =============================================================================

class TrendingTracker:
    """
    Fast counters plus the durable aggregate.

    Args:
        kv: Counter and cache store.
        repository: Durable (query, region) aggregate.
        task_runner: Runs the durable upsert off the request path.
        clock: Returns the current UTC datetime.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        repository: TrendingRepository,
        task_runner=None,
        clock: Callable[[], datetime] = utc_now,
        cache_ttl_seconds: Optional[int] = None,
        popular_ttl_seconds: Optional[int] = None,
    ):
        settings = get_settings()
        self.kv = kv
        self.repository = repository
        self._task_runner = task_runner
        self._clock = clock
        self.cache_ttl_seconds = cache_ttl_seconds or settings.trending_cache_ttl_seconds
        self.popular_ttl_seconds = popular_ttl_seconds or settings.popular_cache_ttl_seconds

    @property
    def task_runner(self):
        if self._task_runner is None:
            from core.tasks import get_task_runner
            self._task_runner = get_task_runner()
        return self._task_runner

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def increment(self, query: str, region: str = GLOBAL_REGION) -> bool:
        """
        Count one search of `query` in `region` (and in global).

        Returns False when the query is too short to track.
        """
        normalized = normalize_query(query)
        if len(normalized) < MIN_QUERY_LENGTH:
            return False

        region = (region or GLOBAL_REGION).lower()
        regions = [region] if region == GLOBAL_REGION else [region, GLOBAL_REGION]
        for bucket in regions:
            for period in TrendPeriod:
                self.kv.incr_member(
                    counter_key(bucket, period),
                    normalized,
                    1,
                    ttl_seconds=COUNTER_TTL_SECONDS[period],
                )

        self.task_runner.submit(
            "trending.persist",
            self.repository.upsert,
            normalized,
            region,
            self._clock(),
        )
        return True

    def cleanup_old_trends(self, retention_days: Optional[int] = None) -> int:
        """Delete durable rows not seen within the retention window."""
        days = retention_days if retention_days is not None else get_settings().trending_retention_days
        cutoff = self._clock() - timedelta(days=days)
        deleted = self.repository.delete_older_than(cutoff)
        logger.info("Cleaned up old trending entries", deleted=deleted, retention_days=days)
        return deleted

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_trending(
        self,
        region: str = GLOBAL_REGION,
        period: TrendPeriod = TrendPeriod.DAY,
        limit: int = 10,
    ) -> List[TrendingItem]:
        """Top queries for a (region, window) bucket with decayed scores."""
        region = (region or GLOBAL_REGION).lower()
        cache_key = f"{TREND_KEY}:cache:{region}:{period.value}:{limit}"

        cached = self._cache_get(cache_key)
        if cached is not None:
            return [TrendingItem.model_validate(item) for item in cached]

        try:
            top = self.kv.top_n(counter_key(region, period), limit)
        except Exception as e:
            logger.warning("Failed to read trending counters", region=region, error=str(e))
            return []

        items = [
            TrendingItem(
                query=query,
                count=int(count),
                score=decayed_score(count, period),
                trend="stable",
            )
            for query, count in top
        ]

        self._cache_set(cache_key, [i.model_dump() for i in items], self.cache_ttl_seconds)
        return items

    def get_trending_with_delta(self, region: str = GLOBAL_REGION, limit: int = 10) -> List[TrendingItem]:
        """
        24h trending annotated with the change vs the 24-48h-ago snapshot.
        """
        region = (region or GLOBAL_REGION).lower()
        current = self.get_trending(region, TrendPeriod.DAY, limit * 2)

        now = self._clock()
        try:
            previous = self.repository.snapshot(
                region, now - timedelta(hours=48), now - timedelta(hours=24),
            )
        except Exception as e:
            logger.warning("Failed to load previous trending snapshot", region=region, error=str(e))
            previous = []
        previous_counts = {p.query: p.count for p in previous}

        annotated = []
        for item in current[:limit]:
            change = change_percent(item.count, previous_counts.get(item.query, 0))
            annotated.append(item.model_copy(update={
                "change_percent": change,
                "trend": trend_direction(change),
            }))
        return annotated

    def get_popular_queries(self, region: str = GLOBAL_REGION, limit: int = 100) -> List[str]:
        """7-day top queries, cached (used by autocomplete)."""
        region = (region or GLOBAL_REGION).lower()
        cache_key = f"{POPULAR_KEY}:{region}"

        cached = self._cache_get(cache_key)
        if cached is not None:
            return list(cached)[:limit]

        queries = [t.query for t in self.get_trending(region, TrendPeriod.WEEK, limit)]
        if queries:
            self._cache_set(cache_key, queries, self.popular_ttl_seconds)
        return queries

    # -------------------------------------------------------------------------
    # Cache helpers
    # -------------------------------------------------------------------------

    def _cache_get(self, key: str):
        try:
            raw = self.kv.get(key)
        except Exception as e:
            logger.warning("Trending cache read failed", key=key, error=str(e))
            return None
        return json.loads(raw) if raw else None

    def _cache_set(self, key: str, value, ttl_seconds: int) -> None:
        try:
            self.kv.set(key, json.dumps(value), ttl_seconds)
        except Exception as e:
            logger.warning("Trending cache write failed", key=key, error=str(e))


# =============================================================================
# Singleton
# =============================================================================

_tracker: Optional[TrendingTracker] = None
_tracker_lock = threading.Lock()


def get_trending_tracker() -> TrendingTracker:
    """Get or create the TrendingTracker singleton (thread-safe)."""
    global _tracker
    if _tracker is None:
        with _tracker_lock:
            if _tracker is None:
                from search.kv_store import get_kv_store
                _tracker = TrendingTracker(
                    kv=get_kv_store(),
                    repository=SupabaseTrendingRepository(),
                )
    return _tracker
