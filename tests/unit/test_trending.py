"""
Tests for the trending tracker.
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest


class TestHelpers:

    def test_decayed_score(self):
        from search.models import TrendPeriod
        from search.trending import decayed_score

        assert decayed_score(100, TrendPeriod.DAY) == 95.0
        assert decayed_score(100, TrendPeriod.WEEK) == 85.0
        assert decayed_score(3, TrendPeriod.DAY) == 2.85

    @pytest.mark.parametrize("current, previous, expected", [
        (150, 100, 50.0),
        (50, 100, -50.0),
        (10, 0, 100.0),
        (0, 0, 0.0),
        (103, 100, 3.0),
        (1, 3, -66.7),
    ])
    def test_change_percent(self, current, previous, expected):
        from search.trending import change_percent
        assert change_percent(current, previous) == expected

    @pytest.mark.parametrize("change, direction", [
        (5.1, "up"), (5.0, "stable"), (-5.0, "stable"), (-5.1, "down"),
    ])
    def test_trend_direction(self, change, direction):
        from search.trending import trend_direction
        assert trend_direction(change) == direction

    def test_counter_key(self):
        from search.models import TrendPeriod
        from search.trending import counter_key
        assert counter_key("Mumbai", TrendPeriod.WEEK) == "search:trending:mumbai:7d"


class TestIncrement:

    def test_counts_region_and_global(self, tracker, kv):
        from search.models import TrendPeriod
        from search.trending import counter_key

        assert tracker.increment("iPhone 15!", "pin:560001") is True

        for region in ("pin:560001", "global"):
            for period in TrendPeriod:
                assert kv.top_n(counter_key(region, period), 1) == [("iphone 15", 1.0)]

    def test_global_counted_once(self, tracker, kv):
        from search.models import TrendPeriod
        from search.trending import counter_key

        tracker.increment("tv", "global")

        assert kv.top_n(counter_key("global", TrendPeriod.DAY), 1) == [("tv", 1.0)]

    def test_short_query_ignored(self, tracker, kv):
        from search.models import TrendPeriod
        from search.trending import counter_key

        assert tracker.increment(" a! ", "global") is False
        assert kv.top_n(counter_key("global", TrendPeriod.DAY), 10) == []

    def test_durable_row_upserted(self, tracker, trending_repository, clock):
        tracker.increment("shoes", "mumbai")
        tracker.increment("shoes", "mumbai")

        row = trending_repository.get("shoes", "mumbai")
        assert row.count == 2
        assert row.last_seen == clock()

    def test_durable_failure_does_not_raise(self, kv, clock):
        from core.tasks import TaskRunner
        from search.trending import TrendingTracker

        repository = MagicMock()
        repository.upsert.side_effect = RuntimeError("db down")
        runner = TaskRunner()
        tracker = TrendingTracker(kv, repository, task_runner=runner, clock=clock)

        assert tracker.increment("shoes") is True
        assert runner.dead_letters()[0].task_name == "trending.persist"

    def test_day_counter_expires_48h_after_last_increment(self, tracker, clock):
        from search.models import TrendPeriod

        tracker.increment("shoes")
        clock.advance(hours=48, seconds=1)

        assert tracker.get_trending("global", TrendPeriod.DAY, 10) == []
        assert [t.query for t in tracker.get_trending("global", TrendPeriod.WEEK, 10)] == ["shoes"]


class TestGetTrending:

    def test_top_queries_with_decayed_scores(self, tracker):
        from search.models import TrendPeriod

        for _ in range(3):
            tracker.increment("iphone")
        tracker.increment("tv")

        items = tracker.get_trending("global", TrendPeriod.DAY, 10)

        assert [(i.query, i.count, i.score, i.trend) for i in items] == [
            ("iphone", 3, 2.85, "stable"),
            ("tv", 1, 0.95, "stable"),
        ]

    def test_result_cached(self, tracker):
        from search.models import TrendPeriod

        tracker.increment("iphone")
        first = tracker.get_trending("global", TrendPeriod.DAY, 10)
        tracker.increment("tv")
        second = tracker.get_trending("global", TrendPeriod.DAY, 10)

        assert second == first

    def test_cache_expires(self, tracker, clock):
        from search.models import TrendPeriod

        tracker.increment("iphone")
        tracker.get_trending("global", TrendPeriod.DAY, 10)
        tracker.increment("tv")
        clock.advance(seconds=301)

        assert len(tracker.get_trending("global", TrendPeriod.DAY, 10)) == 2

    def test_counter_failure_returns_empty(self, trending_repository, clock):
        from search.models import TrendPeriod
        from search.trending import TrendingTracker

        kv = MagicMock()
        kv.get.return_value = None
        kv.top_n.side_effect = ConnectionError("redis down")
        tracker = TrendingTracker(kv, trending_repository, clock=clock)

        assert tracker.get_trending("global", TrendPeriod.DAY, 10) == []


class TestTrendingWithDelta:

    def test_change_vs_previous_day(self, tracker, trending_repository, clock):
        from search.models import TrendingEntry

        for _ in range(15):
            tracker.increment("iphone")
        for _ in range(2):
            tracker.increment("tv")
        tracker.increment("kettle")

        yesterday = clock() - timedelta(hours=30)
        trending_repository.put(TrendingEntry(query="iphone", region="global", count=10, last_seen=yesterday))
        trending_repository.put(TrendingEntry(query="tv", region="global", count=4, last_seen=yesterday))

        items = {i.query: i for i in tracker.get_trending_with_delta("global", 10)}

        assert items["iphone"].change_percent == 50.0
        assert items["iphone"].trend == "up"
        assert items["tv"].change_percent == -50.0
        assert items["tv"].trend == "down"
        assert items["kettle"].change_percent == 100.0
        assert items["kettle"].trend == "up"

    def test_snapshot_failure_treated_as_no_history(self, kv, clock):
        from search.trending import TrendingTracker

        repository = MagicMock()
        repository.snapshot.side_effect = RuntimeError("db down")
        tracker = TrendingTracker(kv, repository, task_runner=MagicMock(), clock=clock)
        tracker.increment("iphone")

        items = tracker.get_trending_with_delta("global", 5)

        assert items[0].change_percent == 100.0

    def test_respects_limit(self, tracker):
        for query in ["aa", "bb", "cc", "dd"]:
            tracker.increment(query)

        assert len(tracker.get_trending_with_delta("global", 2)) == 2


class TestPopularQueries:

    def test_uses_week_window(self, tracker):
        for _ in range(2):
            tracker.increment("shoes")
        tracker.increment("shirt")

        assert tracker.get_popular_queries("global", 10) == ["shoes", "shirt"]

    def test_empty_result_not_cached(self, tracker):
        assert tracker.get_popular_queries("global", 10) == []

        tracker.increment("shoes")

        # the 7d trending list for limit 10 was cached empty; popular must not be
        assert tracker.kv.get("search:popular:global") is None


class TestCleanup:

    def test_deletes_rows_past_retention(self, tracker, trending_repository, clock):
        from search.models import TrendingEntry

        trending_repository.put(TrendingEntry(
            query="old", region="global", count=5, last_seen=clock() - timedelta(days=31),
        ))
        trending_repository.put(TrendingEntry(
            query="fresh", region="global", count=5, last_seen=clock() - timedelta(days=29),
        ))

        assert tracker.cleanup_old_trends(30) == 1
        assert trending_repository.get("old", "global") is None
        assert trending_repository.get("fresh", "global") is not None

    def test_default_retention_from_settings(self, tracker, trending_repository, clock):
        from search.models import TrendingEntry

        trending_repository.put(TrendingEntry(
            query="old", region="global", count=1, last_seen=clock() - timedelta(days=45),
        ))

        assert tracker.cleanup_old_trends() == 1
