"""
Miss Ledger.

Records zero-result searches in `product_search_misses`, one live record
per normalized query within a rolling dedup window (default 1 hour),
and serves the admin analytics built on top of them.
"""

import threading
import uuid
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

from config.settings import get_settings
from core.logging import get_logger
from core.utils import parse_timestamp, to_int, utc_now
from search.exceptions import MissNotFoundError
from search.models import (
    CategoryMatch,
    DemandGap,
    MissAnalytics,
    MissPeriod,
    MissRecordSummary,
    MissSummaryStats,
    SearchMiss,
)

logger = get_logger(__name__)


PERIOD_DELTAS: Dict[MissPeriod, timedelta] = {
    MissPeriod.DAY: timedelta(hours=24),
    MissPeriod.WEEK: timedelta(days=7),
    MissPeriod.MONTH: timedelta(days=30),
}

DEMAND_GAP_LIMIT = 20


# =============================================================================
# Repositories
# =============================================================================

class MissRepository:
    """Storage operations the ledger needs."""

    def find_live(self, normalized_query: str, since: datetime) -> Optional[SearchMiss]:
        """Most recent record for the query last searched at or after `since`."""
        raise NotImplementedError

    def create(self, miss: SearchMiss) -> None:
        raise NotImplementedError

    def record_repeat(self, miss_id: str, count: int, last_searched_at: datetime,
                      category: Optional[CategoryMatch] = None) -> None:
        raise NotImplementedError

    def get(self, miss_id: str) -> Optional[SearchMiss]:
        raise NotImplementedError

    def mark_resolved(self, miss_id: str, product_id: str) -> None:
        raise NotImplementedError

    def list_since(self, cutoff: datetime) -> List[SearchMiss]:
        raise NotImplementedError

    def top(self, limit: int) -> List[SearchMiss]:
        raise NotImplementedError

    def for_queries(self, normalized_queries: Sequence[str]) -> List[SearchMiss]:
        raise NotImplementedError


class InMemoryMissRepository(MissRepository):
    """Process-local ledger for development and tests."""

    def __init__(self):
        self._rows: Dict[str, SearchMiss] = {}
        self._lock = threading.Lock()

    def find_live(self, normalized_query: str, since: datetime) -> Optional[SearchMiss]:
        with self._lock:
            live = [
                m for m in self._rows.values()
                if m.normalized_query == normalized_query and m.last_searched_at >= since
            ]
        return max(live, key=lambda m: m.last_searched_at) if live else None

    def create(self, miss: SearchMiss) -> None:
        with self._lock:
            self._rows[miss.id] = miss

    def record_repeat(self, miss_id: str, count: int, last_searched_at: datetime,
                      category: Optional[CategoryMatch] = None) -> None:
        with self._lock:
            update = {"count": count, "last_searched_at": last_searched_at}
            if category is not None:
                update["inferred_category_id"] = category.category_id
                update["inferred_category_name"] = category.category_name
            self._rows[miss_id] = self._rows[miss_id].model_copy(update=update)

    def get(self, miss_id: str) -> Optional[SearchMiss]:
        with self._lock:
            return self._rows.get(miss_id)

    def mark_resolved(self, miss_id: str, product_id: str) -> None:
        with self._lock:
            self._rows[miss_id] = self._rows[miss_id].model_copy(
                update={"resolved": True, "resolved_product_id": product_id}
            )

    def list_since(self, cutoff: datetime) -> List[SearchMiss]:
        with self._lock:
            return [m for m in self._rows.values() if m.last_searched_at >= cutoff]

    def top(self, limit: int) -> List[SearchMiss]:
        with self._lock:
            rows = list(self._rows.values())
        rows.sort(key=lambda m: m.count, reverse=True)
        return rows[:limit]

    def for_queries(self, normalized_queries: Sequence[str]) -> List[SearchMiss]:
        wanted = set(normalized_queries)
        with self._lock:
            return [m for m in self._rows.values() if m.normalized_query in wanted]

    def all(self) -> List[SearchMiss]:
        with self._lock:
            return list(self._rows.values())


def _row_to_miss(row: dict) -> SearchMiss:
    return SearchMiss(
        id=str(row["id"]),
        query=row.get("query") or "",
        normalized_query=row.get("normalized_query") or "",
        user_id=row.get("user_id"),
        region=row.get("region") or "global",
        count=to_int(row.get("count"), 1),
        keywords=row.get("keywords") or [],
        inferred_category_id=row.get("inferred_category_id"),
        inferred_category_name=row.get("inferred_category_name"),
        resolved=bool(row.get("resolved")),
        resolved_product_id=row.get("resolved_product_id"),
        last_searched_at=parse_timestamp(row.get("last_searched_at")),
        created_at=parse_timestamp(row.get("created_at")),
    )


class SupabaseMissRepository(MissRepository):
    """`product_search_misses` table."""

    TABLE = "product_search_misses"
    PAGE_SIZE = 1000

    def __init__(self, supabase=None):
        self._supabase = supabase

    @property
    def supabase(self):
        if self._supabase is None:
            from config.database import get_supabase_client
            self._supabase = get_supabase_client()
        return self._supabase

    def find_live(self, normalized_query: str, since: datetime) -> Optional[SearchMiss]:
        result = (
            self.supabase.table(self.TABLE)
            .select("*")
            .eq("normalized_query", normalized_query)
            .gte("last_searched_at", since.isoformat())
            .order("last_searched_at", desc=True)
            .limit(1)
            .execute()
        )
        rows = result.data or []
        return _row_to_miss(rows[0]) if rows else None

    def create(self, miss: SearchMiss) -> None:
        self.supabase.table(self.TABLE).insert(miss.model_dump(mode="json")).execute()

    def record_repeat(self, miss_id: str, count: int, last_searched_at: datetime,
                      category: Optional[CategoryMatch] = None) -> None:
        update = {"count": count, "last_searched_at": last_searched_at.isoformat()}
        if category is not None:
            update["inferred_category_id"] = category.category_id
            update["inferred_category_name"] = category.category_name
        self.supabase.table(self.TABLE).update(update).eq("id", miss_id).execute()

    def get(self, miss_id: str) -> Optional[SearchMiss]:
        result = (
            self.supabase.table(self.TABLE)
            .select("*")
            .eq("id", miss_id)
            .limit(1)
            .execute()
        )
        rows = result.data or []
        return _row_to_miss(rows[0]) if rows else None

    def mark_resolved(self, miss_id: str, product_id: str) -> None:
        self.supabase.table(self.TABLE).update({
            "resolved": True,
            "resolved_product_id": product_id,
        }).eq("id", miss_id).execute()

    def list_since(self, cutoff: datetime) -> List[SearchMiss]:
        misses: List[SearchMiss] = []
        offset = 0
        while True:
            result = (
                self.supabase.table(self.TABLE)
                .select("*")
                .gte("last_searched_at", cutoff.isoformat())
                .order("id")
                .range(offset, offset + self.PAGE_SIZE - 1)
                .execute()
            )
            rows = result.data or []
            misses.extend(_row_to_miss(r) for r in rows)
            if len(rows) < self.PAGE_SIZE:
                return misses
            offset += self.PAGE_SIZE

    def top(self, limit: int) -> List[SearchMiss]:
        result = (
            self.supabase.table(self.TABLE)
            .select("*")
            .order("count", desc=True)
            .limit(limit)
            .execute()
        )
        return [_row_to_miss(r) for r in (result.data or [])]

    def for_queries(self, normalized_queries: Sequence[str]) -> List[SearchMiss]:
        if not normalized_queries:
            return []
        result = (
            self.supabase.table(self.TABLE)
            .select("*")
            .in_("normalized_query", list(normalized_queries))
            .execute()
        )
        return [_row_to_miss(r) for r in (result.data or [])]


# =============================================================================
# Ledger
# =============================================================================

def _summary(miss: SearchMiss) -> MissRecordSummary:
    return MissRecordSummary(
        id=miss.id,
        query=miss.query,
        normalized_query=miss.normalized_query,
        count=miss.count,
        keywords=miss.keywords,
        suggested_category=miss.inferred_category_name,
        last_searched_at=miss.last_searched_at,
        resolved=miss.resolved,
    )


class MissLedger:
    """
    Zero-result query log with deduplication and analytics.

    Args:
        repository: Storage backend.
        clock: Returns the current UTC datetime.
    """

    def __init__(
        self,
        repository: MissRepository,
        clock: Callable[[], datetime] = utc_now,
        dedup_window_seconds: Optional[int] = None,
        conversion_rate: Optional[float] = None,
        average_order_value: Optional[float] = None,
    ):
        settings = get_settings()
        self.repository = repository
        self._clock = clock
        self.dedup_window = timedelta(
            seconds=dedup_window_seconds or settings.miss_dedup_window_seconds
        )
        self.conversion_rate = (
            conversion_rate if conversion_rate is not None else settings.miss_conversion_rate
        )
        self.average_order_value = (
            average_order_value if average_order_value is not None else settings.miss_average_order_value
        )
        # Serializes find-then-write within this process
        self._write_lock = threading.Lock()

    def log_miss(
        self,
        raw_query: str,
        normalized: str,
        user_id: Optional[str] = None,
        region: str = "global",
        keywords: Optional[List[str]] = None,
        category: Optional[CategoryMatch] = None,
    ) -> SearchMiss:
        """
        Record one zero-result search.

        Repeats within the dedup window increment the live record; the
        inferred category is only filled in when the record has none.
        """
        now = self._clock()
        inferred = category if category is not None and category.found else None

        with self._write_lock:
            live = self.repository.find_live(normalized, now - self.dedup_window)
            if live is not None:
                merge_category = inferred if live.inferred_category_id is None else None
                self.repository.record_repeat(live.id, live.count + 1, now, merge_category)
                update = {"count": live.count + 1, "last_searched_at": now}
                if merge_category is not None:
                    update["inferred_category_id"] = merge_category.category_id
                    update["inferred_category_name"] = merge_category.category_name
                logger.debug("Search miss repeated", query=normalized, count=live.count + 1)
                return live.model_copy(update=update)

            miss = SearchMiss(
                id=str(uuid.uuid4()),
                query=raw_query or normalized,
                normalized_query=normalized,
                user_id=user_id,
                region=region,
                count=1,
                keywords=keywords if keywords is not None else normalized.split(),
                inferred_category_id=inferred.category_id if inferred else None,
                inferred_category_name=inferred.category_name if inferred else None,
                last_searched_at=now,
                created_at=now,
            )
            self.repository.create(miss)

        logger.debug("Search miss logged", query=normalized, region=region)
        return miss

    def get_analytics(self, period: MissPeriod = MissPeriod.WEEK, limit: int = 50) -> MissAnalytics:
        """Top misses, demand gaps by category and summary for a look-back period."""
        cutoff = self._clock() - PERIOD_DELTAS[period]
        misses = self.repository.list_since(cutoff)

        top = sorted(misses, key=lambda m: m.count, reverse=True)[:limit]

        grouped: Dict[str, List[SearchMiss]] = defaultdict(list)
        for miss in misses:
            if miss.inferred_category_id:
                grouped[miss.inferred_category_id].append(miss)

        gaps = []
        for category_id, rows in grouped.items():
            miss_count = sum(m.count for m in rows)
            name = next((m.inferred_category_name for m in rows if m.inferred_category_name), None)
            gaps.append(DemandGap(
                category=name or "Unknown",
                category_id=category_id,
                miss_count=miss_count,
                unique_queries=len({m.normalized_query for m in rows}),
                potential_revenue=round(
                    miss_count * self.conversion_rate * self.average_order_value, 2
                ),
            ))
        gaps.sort(key=lambda g: g.miss_count, reverse=True)

        resolved_count = sum(1 for m in misses if m.resolved)
        summary = MissSummaryStats(
            total_misses=sum(m.count for m in misses),
            unique_queries=len({m.normalized_query for m in misses}),
            resolved_count=resolved_count,
            resolution_rate=round(resolved_count / len(misses), 4) if misses else 0.0,
            period=period,
        )

        return MissAnalytics(
            top_misses=[_summary(m) for m in top],
            demand_gaps=gaps[:DEMAND_GAP_LIMIT],
            summary=summary,
        )

    def resolve(self, miss_id: str, product_id: str) -> SearchMiss:
        """
        Mark a miss resolved by `product_id`. Idempotent; counts are untouched.

        Raises:
            MissNotFoundError: Unknown miss ID.
        """
        miss = self.repository.get(miss_id)
        if miss is None:
            raise MissNotFoundError(miss_id)
        if miss.resolved and miss.resolved_product_id == product_id:
            return miss

        self.repository.mark_resolved(miss_id, product_id)
        logger.info("Search miss resolved", miss_id=miss_id, product_id=product_id)
        return miss.model_copy(update={"resolved": True, "resolved_product_id": product_id})

    def miss_counts_for(self, normalized_queries: Sequence[str]) -> Dict[str, int]:
        """Summed miss count per query, only for queries that have misses."""
        counts: Dict[str, int] = defaultdict(int)
        for miss in self.repository.for_queries(normalized_queries):
            counts[miss.normalized_query] += miss.count
        return dict(counts)

    def top_misses(self, limit: int = 50) -> List[MissRecordSummary]:
        """All-time demand-gap listing by count."""
        return [_summary(m) for m in self.repository.top(limit)]


# =============================================================================
# Singleton
# =============================================================================

_ledger: Optional[MissLedger] = None
_ledger_lock = threading.Lock()


def get_miss_ledger() -> MissLedger:
    """Get or create the MissLedger singleton (thread-safe)."""
    global _ledger
    if _ledger is None:
        with _ledger_lock:
            if _ledger is None:
                _ledger = MissLedger(repository=SupabaseMissRepository())
    return _ledger
