import os

import pytest
from freezegun import freeze_time

from match_stats_cache import MatchStatsCache
from models import CompleteMatchStats, PlayerMatchStats


@pytest.fixture
def cache(temp_data_dir):
    return MatchStatsCache(db_path=os.path.join(temp_data_dir, "cache.db"), ttl_days=30)


@pytest.fixture
def stats():
    return CompleteMatchStats(
        map_name="Mirage",
        score="13 / 11",
        players={"p1": PlayerMatchStats(kills=21, deaths=14, assists=3, adr=88.4, headshots=9,
                                        headshot_pct=43, mvps=4, rounds=24)},
    )


class TestMatchStatsCache:

    def test_miss(self, cache):
        assert cache.get("unknown") is None

    def test_put_and_get(self, cache, stats):
        assert cache.put("m1", stats) is True
        assert cache.get("m1") == stats

    def test_put_overwrites(self, cache, stats):
        cache.put("m1", stats)
        stats.map_name = "Nuke"
        cache.put("m1", stats)

        assert cache.get("m1").map_name == "Nuke"
        assert cache.get_storage_stats()['count'] == 1

    def test_entries_expire(self, cache, stats):
        with freeze_time("2024-01-01 12:00:00"):
            cache.put("m1", stats)

        with freeze_time("2024-01-30 12:00:00"):
            assert cache.get("m1") is not None

        with freeze_time("2024-02-01 12:00:01"):
            assert cache.get("m1") is None

    def test_cleanup_expired(self, cache, stats):
        with freeze_time("2024-01-01 12:00:00"):
            cache.put("old", stats)
        with freeze_time("2024-02-15 12:00:00"):
            cache.put("new", stats)
            removed = cache.cleanup_expired()

            assert removed == 1
            assert cache.get("new") is not None
            assert cache.get_storage_stats()['count'] == 1

    def test_clear_all(self, cache, stats):
        cache.put("m1", stats)
        assert cache.clear_all() is True
        assert cache.get_storage_stats()['count'] == 0

    def test_survives_reopen(self, temp_data_dir, stats):
        path = os.path.join(temp_data_dir, "cache.db")
        MatchStatsCache(db_path=path).put("m1", stats)

        assert MatchStatsCache(db_path=path).get("m1") == stats
