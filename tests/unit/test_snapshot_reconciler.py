import os
from datetime import datetime, timedelta

import pytest
import pytz

import snapshot_reconciler
from config import PERIODS
from models import RatingPoint, RatingRow
from snapshot_reconciler import (
    METADATA_FRESH, METADATA_STALE, NO_METADATA, SnapshotReconciler,
    backfill_rating, get_period_start, rating_at_or_before, repair_table,
)

BERLIN = pytz.timezone("Europe/Berlin")
# Thursday afternoon, before the spring DST switch
NOW = BERLIN.localize(datetime(2024, 3, 14, 15, 0))
DAY_START_TS = int(BERLIN.localize(datetime(2024, 3, 14)).timestamp())


def _rows(rows):
    return {row.player_id: row.rating for row in rows}


class TestRatingAtOrBefore:

    def test_empty_history_uses_current(self):
        assert rating_at_or_before([], 1000, 1500) == 1500

    def test_newest_point_at_or_before_boundary(self):
        history = [RatingPoint(100, 1400), RatingPoint(200, 1420), RatingPoint(300, 1450)]

        assert rating_at_or_before(history, 250, 1500) == 1420
        assert rating_at_or_before(history, 200, 1500) == 1420
        assert rating_at_or_before(history, 1000, 1500) == 1450

    def test_all_points_later_uses_oldest(self):
        history = [RatingPoint(100, 1400), RatingPoint(200, 1420)]
        assert rating_at_or_before(history, 50, 1500) == 1400


class TestPeriodStart:

    @pytest.mark.parametrize("period,expected", [
        ("daily", datetime(2024, 3, 14)),
        ("weekly", datetime(2024, 3, 11)),
        ("monthly", datetime(2024, 3, 1)),
        ("yearly", datetime(2024, 1, 1)),
    ])
    def test_period_starts(self, period, expected):
        start = get_period_start(period, NOW, BERLIN)

        assert start.replace(tzinfo=None) == expected
        assert start.utcoffset() == timedelta(hours=1)

    def test_converts_utc_input(self):
        # 23:30 UTC is already the next day in Berlin
        now = pytz.utc.localize(datetime(2024, 3, 14, 23, 30))
        assert get_period_start("daily", now, BERLIN).day == 15

    def test_summer_time_offset(self):
        now = BERLIN.localize(datetime(2024, 7, 10, 12, 0))
        assert get_period_start("daily", now, BERLIN).utcoffset() == timedelta(hours=2)

    def test_unknown_period(self):
        with pytest.raises(ValueError):
            get_period_start("hourly", NOW, BERLIN)


class TestBackfillRating:

    def test_no_activity_since_boundary_uses_live_rating(self, player_result_factory):
        player = player_result_factory(elo=1510, rating_history=[(DAY_START_TS - 500, 1490)])
        assert backfill_rating(player, DAY_START_TS) == 1510

    def test_activity_since_boundary_uses_history(self, player_result_factory):
        player = player_result_factory(elo=1510, rating_history=[
            (DAY_START_TS - 500, 1490), (DAY_START_TS + 500, 1510)
        ])
        assert backfill_rating(player, DAY_START_TS) == 1490

    def test_no_history(self, player_result_factory):
        assert backfill_rating(player_result_factory(elo=1333), DAY_START_TS) == 1333


class TestRepairTable:

    def test_adds_missing_players(self, player_result_factory):
        active = player_result_factory(player_id="a", elo=1600, last_match_ts=DAY_START_TS + 10,
                                       rating_history=[(DAY_START_TS - 10, 1570), (DAY_START_TS + 10, 1600)])
        inactive = player_result_factory(player_id="b", elo=1200, last_match_ts=DAY_START_TS - 10)
        rows = []

        assert repair_table(rows, [active, inactive], DAY_START_TS) is True
        assert _rows(rows) == {"a": 1570, "b": 1200}

    def test_pins_inactive_players(self, player_result_factory):
        inactive = player_result_factory(player_id="b", elo=1200, last_match_ts=DAY_START_TS - 10)
        rows = [RatingRow("b", 1100)]

        assert repair_table(rows, [inactive], DAY_START_TS) is True
        assert _rows(rows) == {"b": 1200}

    def test_keeps_active_players(self, player_result_factory):
        active = player_result_factory(player_id="a", elo=1600, last_match_ts=DAY_START_TS + 10)
        rows = [RatingRow("a", 1550)]

        assert repair_table(rows, [active], DAY_START_TS) is False
        assert _rows(rows) == {"a": 1550}

    def test_idempotent(self, player_result_factory):
        results = [
            player_result_factory(player_id="a", elo=1600, last_match_ts=DAY_START_TS + 10,
                                  rating_history=[(DAY_START_TS - 10, 1570)]),
            player_result_factory(player_id="b", elo=1200),
        ]
        rows = [RatingRow("b", 900), RatingRow("gone", 1000)]

        repair_table(rows, results, DAY_START_TS)
        first = [row.to_dict() for row in rows]

        assert repair_table(rows, results, DAY_START_TS) is False
        assert [row.to_dict() for row in rows] == first
        # Players no longer tracked are left alone
        assert _rows(rows)["gone"] == 1000


class TestSnapshotReconciler:

    @pytest.fixture
    def reconciler(self, data_manager):
        return SnapshotReconciler(data_manager, "Europe/Berlin", periods=["daily"])

    def test_backfill_without_metadata(self, reconciler, data_manager, player_result_factory):
        active = player_result_factory(player_id="a", elo=1600, last_match_ts=DAY_START_TS + 60,
                                       rating_history=[(DAY_START_TS - 60, 1560), (DAY_START_TS + 60, 1600)])
        idle = player_result_factory(player_id="b", elo=1300, last_match_ts=DAY_START_TS - 86400,
                                     rating_history=[(DAY_START_TS - 86400, 1300)])
        latest = [RatingRow("a", 1600), RatingRow("b", 1300)]

        snapshots = reconciler.reconcile([active, idle], latest, NOW)

        assert reconciler.period_states["daily"] == NO_METADATA
        assert _rows(snapshots["daily"]) == {"a": 1560, "b": 1300}
        assert _rows(data_manager.load_rating_table("daily")) == {"a": 1560, "b": 1300}
        assert data_manager.load_period_meta("daily") == {'last_updated': "2024-03-14"}

    def test_backfill_then_repair_zeroes_inactive_gain(self, reconciler, player_result_factory):
        # Rating history disagrees with the last match time; the live rating wins
        idle = player_result_factory(player_id="b", elo=1500, last_match_ts=0,
                                     rating_history=[(DAY_START_TS - 100, 1400), (DAY_START_TS + 100, 1450)])

        snapshots = reconciler.reconcile([idle], [RatingRow("b", 1500)], NOW)

        assert _rows(snapshots["daily"]) == {"b": 1500}

    def test_fresh_metadata_loads_stored_table(self, reconciler, data_manager, player_result_factory):
        data_manager.save_period_meta("daily", "2024-03-14")
        data_manager.save_rating_table("daily", [RatingRow("a", 1550)])
        active = player_result_factory(player_id="a", elo=1600, last_match_ts=DAY_START_TS + 60)

        snapshots = reconciler.reconcile([active], [RatingRow("a", 1600)], NOW)

        assert reconciler.period_states["daily"] == METADATA_FRESH
        assert _rows(snapshots["daily"]) == {"a": 1550}

    def test_stale_metadata_rolls_forward(self, reconciler, data_manager, player_result_factory):
        data_manager.save_period_meta("daily", "2024-03-13")
        data_manager.save_rating_table("daily", [RatingRow("a", 1400)])
        active = player_result_factory(player_id="a", elo=1600, last_match_ts=DAY_START_TS + 60)

        snapshots = reconciler.reconcile([active], [RatingRow("a", 1600)], NOW)

        assert reconciler.period_states["daily"] == METADATA_STALE
        assert _rows(snapshots["daily"]) == {"a": 1600}
        assert data_manager.load_period_meta("daily") == {'last_updated': "2024-03-14"}

    def test_fresh_metadata_repairs_missing_player(self, reconciler, data_manager, player_result_factory):
        data_manager.save_period_meta("daily", "2024-03-14")
        data_manager.save_rating_table("daily", [RatingRow("a", 1550)])
        results = [
            player_result_factory(player_id="a", elo=1600, last_match_ts=DAY_START_TS + 60),
            player_result_factory(player_id="new", elo=1000),
        ]

        reconciler.reconcile(results, [], NOW)

        assert _rows(data_manager.load_rating_table("daily")) == {"a": 1550, "new": 1000}

    def test_second_run_is_stable(self, reconciler, data_manager, player_result_factory):
        results = [player_result_factory(player_id="a", elo=1600, last_match_ts=DAY_START_TS + 60,
                                         rating_history=[(DAY_START_TS - 60, 1560)])]
        latest = [RatingRow("a", 1600)]

        first = reconciler.reconcile(results, latest, NOW)
        second = reconciler.reconcile(results, latest, NOW + timedelta(hours=1))

        assert _rows(first["daily"]) == _rows(second["daily"])
        assert reconciler.period_states["daily"] == METADATA_FRESH

    @pytest.mark.parametrize("content", ["{not json", '{"last_updated": "someday"}', '{"other": 1}'])
    def test_corrupt_metadata_triggers_backfill(self, reconciler, data_manager, temp_data_dir,
                                                player_result_factory, content):
        with open(os.path.join(temp_data_dir, "elo-daily-meta.json"), "w", encoding="utf-8") as f:
            f.write(content)
        player = player_result_factory(player_id="a", elo=1600)

        reconciler.reconcile([player], [RatingRow("a", 1600)], NOW)

        assert reconciler.period_states["daily"] == NO_METADATA
        assert data_manager.load_period_meta("daily") == {'last_updated': "2024-03-14"}

    def test_failure_in_one_period_keeps_others(self, data_manager, player_result_factory, mocker):
        reconciler = SnapshotReconciler(data_manager, "Europe/Berlin")
        mocker.patch.object(snapshot_reconciler, "repair_table",
                            side_effect=[RuntimeError("boom"), False, False, False])
        player = player_result_factory(player_id="a", elo=1600)

        snapshots = reconciler.reconcile([player], [RatingRow("a", 1600)], NOW)

        assert set(snapshots) == set(PERIODS)
        assert _rows(snapshots["weekly"]) == {"a": 1600}
