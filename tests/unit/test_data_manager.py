import json
import os

from data_manager import DataManager
from models import NotificationState, RatingRow


class TestRatingTables:

    def test_missing_table(self, data_manager):
        assert data_manager.load_rating_table("daily") is None

    def test_save_and_load(self, data_manager, temp_data_dir):
        rows = [RatingRow("a", 1600), RatingRow("b", 1450)]

        assert data_manager.save_rating_table("weekly", rows) is True
        assert data_manager.load_rating_table("weekly") == rows

        with open(os.path.join(temp_data_dir, "elo-weekly.json"), encoding="utf-8") as f:
            assert json.load(f) == [{"player_id": "a", "rating": 1600}, {"player_id": "b", "rating": 1450}]

    def test_save_latest(self, data_manager, temp_data_dir):
        data_manager.save_latest([RatingRow("a", 1600)])
        assert os.path.exists(os.path.join(temp_data_dir, "elo-latest.json"))

    def test_malformed_rows_are_skipped(self, data_manager, temp_data_dir):
        with open(os.path.join(temp_data_dir, "elo-daily.json"), "w", encoding="utf-8") as f:
            json.dump([{"player_id": "a", "rating": 1500}, {"rating": 1}, "junk"], f)

        assert data_manager.load_rating_table("daily") == [RatingRow("a", 1500)]

    def test_corrupt_table(self, data_manager, temp_data_dir):
        with open(os.path.join(temp_data_dir, "elo-daily.json"), "w", encoding="utf-8") as f:
            f.write("[{")

        assert data_manager.load_rating_table("daily") is None


class TestPeriodMeta:

    def test_round_trip(self, data_manager):
        data_manager.save_period_meta("monthly", "2024-03-01")
        assert data_manager.load_period_meta("monthly") == {"last_updated": "2024-03-01"}

    def test_non_object_is_absent(self, data_manager, temp_data_dir):
        with open(os.path.join(temp_data_dir, "elo-monthly-meta.json"), "w", encoding="utf-8") as f:
            f.write('"2024-03-01"')

        assert data_manager.load_period_meta("monthly") is None


class TestNotificationState:

    def test_round_trip(self, data_manager):
        state = NotificationState(last_run_ts=1234, players={"p1": "m1"})

        data_manager.save_notification_state(state)

        assert data_manager.load_notification_state_data() == {"last_run_ts": 1234, "players": {"p1": "m1"}}

    def test_missing(self, data_manager):
        assert data_manager.load_notification_state_data() is None


class TestLoadPlayers:

    def test_comments_blanks_and_duplicates(self, temp_data_dir):
        path = os.path.join(temp_data_dir, "players.txt")
        with open(path, "w", encoding="utf-8") as f:
            f.write("# tracked players\n"
                    "aaa-111  # Alice\n"
                    "\n"
                    "bbb-222 // Bob\n"
                    "   \n"
                    "aaa-111\n"
                    "ccc-333\n")

        assert DataManager.load_players(path) == ["aaa-111", "bbb-222", "ccc-333"]

    def test_missing_file(self, temp_data_dir):
        assert DataManager.load_players(os.path.join(temp_data_dir, "nope.txt")) == []


def test_creates_data_dir(temp_data_dir):
    path = os.path.join(temp_data_dir, "nested", "data")
    DataManager(data_dir=path)
    assert os.path.isdir(path)


def test_save_failure_returns_false(data_manager, mock_filelock):
    mock_filelock.return_value.__enter__.side_effect = OSError("locked")
    assert data_manager.save_rating_table("daily", [RatingRow("a", 1)]) is False
