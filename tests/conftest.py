import pytest
from unittest.mock import Mock
import tempfile
import shutil

from models import (
    CompleteMatchStats, MatchHistoryItem, PlayerMatchStats, PlayerResult,
    PlayerStatsSnapshot, RatingPoint, TeamPlayer,
)

PLAYER_ID = "player-1"


@pytest.fixture
def temp_data_dir():
    """Create a temporary directory for test data files"""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir)


@pytest.fixture
def data_manager(temp_data_dir):
    """DataManager writing into a temporary directory"""
    from data_manager import DataManager
    return DataManager(data_dir=temp_data_dir)


@pytest.fixture
def mock_filelock(mocker):
    """Mock filelock for testing"""
    mock = mocker.patch('utils.FileLock')
    mock.return_value.__enter__ = Mock()
    mock.return_value.__exit__ = Mock(return_value=False)
    return mock


def make_history_item(match_id, finished_at, won=True, player_id=PLAYER_ID, mates=None,
                      opponents=None, winner=None):
    """Build a MatchHistoryItem with the player on faction1"""
    mates = mates or []
    opponents = opponents or [TeamPlayer(player_id="enemy-1", nickname="Enemy")]
    teams = {
        'faction1': [TeamPlayer(player_id=player_id, nickname="Me")] + list(mates),
        'faction2': list(opponents),
    }
    if winner is None:
        winner = 'faction1' if won else 'faction2'
    return MatchHistoryItem(match_id=match_id, finished_at=finished_at, teams=teams, winner=winner)


def make_match_stats(map_name="de_mirage", player_id=PLAYER_ID, kills=20, deaths=10, assists=5,
                     adr=80.0, headshots=10, mvps=3, rounds=24, score="13 / 11"):
    return CompleteMatchStats(
        map_name=map_name,
        score=score,
        players={
            player_id: PlayerMatchStats(kills=kills, deaths=deaths, assists=assists, adr=adr,
                                        headshots=headshots, mvps=mvps, rounds=rounds)
        },
    )


def make_player_result(player_id=PLAYER_ID, nickname="Alice", elo=1500, last_match_ts=0,
                       rating_history=None, **kwargs):
    stats = kwargs.pop('stats', None) or PlayerStatsSnapshot(
        rating_history=[RatingPoint(epoch_seconds=ts, rating=r) for ts, r in (rating_history or [])]
    )
    return PlayerResult(player_id=player_id, nickname=nickname, elo=elo, stats=stats,
                        last_match_ts=last_match_ts, **kwargs)


@pytest.fixture
def history_item_factory():
    return make_history_item


@pytest.fixture
def match_stats_factory():
    return make_match_stats


@pytest.fixture
def player_result_factory():
    return make_player_result
