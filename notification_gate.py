"""
Decides which players' latest matches get announced.

The state file remembers, per player, the last match id that was looked at,
plus when the previous run started. A match is only announced when its id is
new *and* it finished after the comparison threshold, so a fresh install or a
long outage does not flood the channel with old games.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from config import MIGRATION_LOOKBACK_HOURS
from data_manager import DataManager
from models import MatchNotification, NotificationState, PlayerResult
from utils import to_number

# How the comparison threshold was chosen
BRAND_NEW = "brand_new"
MIGRATION = "migration"
NORMAL = "normal"


@dataclass
class LoadedNotificationState:
    state: NotificationState
    comparison_ts: int
    mode: str


def _is_well_formed(data: Dict[str, Any]) -> bool:
    """Current format needs a player map and a numeric (or absent) run time"""
    if 'players' not in data:
        return True
    if not isinstance(data['players'], dict):
        return False
    last_run_ts = data.get('last_run_ts')
    return last_run_ts is None or to_number(last_run_ts) is not None


def load_notification_state(data_manager: DataManager, run_start_ts: int,
                            lookback_hours: int = MIGRATION_LOOKBACK_HOURS) -> LoadedNotificationState:
    """
    Load the persisted state and pick the comparison threshold.

    - no (readable) state file: brand-new install, nothing before this run is announced
    - legacy player map, or no previous run time: announce the last ``lookback_hours``
    - otherwise: announce what finished after the previous run started
    """
    data = data_manager.load_notification_state_data()

    if isinstance(data, dict) and not _is_well_formed(data):
        logging.warning("⚠️ Notification state has an unexpected shape, treating it as missing")
        data = None

    if not isinstance(data, dict):
        logging.info("ℹ️ Brand new installation. Initial seeding will occur after processing.")
        return LoadedNotificationState(NotificationState(), run_start_ts, BRAND_NEW)

    if 'players' in data:
        state = NotificationState.from_dict(data)
    else:
        # Old format stored only the player -> match id map
        state = NotificationState(last_run_ts=0, players={
            str(k): v for k, v in data.items() if isinstance(v, str)
        })

    if state.last_run_ts == 0:
        logging.info(f"ℹ️ Migrating to time-based tracking. Using {lookback_hours}h fallback for this run.")
        return LoadedNotificationState(state, run_start_ts - lookback_hours * 3600, MIGRATION)

    return LoadedNotificationState(state, state.last_run_ts, NORMAL)


def rating_delta(player: PlayerResult) -> Optional[int]:
    """Rating change of the newest match, None without two history points"""
    history = player.stats.rating_history
    if len(history) < 2:
        return None
    return history[-1].rating - history[-2].rating


def tracked_participants(match_details: Optional[Dict[str, Any]], tracked_ids: Iterable[str],
                         own_nickname: str) -> List[str]:
    """Nicknames of other tracked players found in a match's rosters"""
    if not match_details:
        return []

    tracked = set(tracked_ids)
    nicknames = []
    for team in (match_details.get('teams') or {}).values():
        for member in (team or {}).get('roster') or []:
            nickname = member.get('nickname')
            if nickname == own_nickname:
                continue
            if member.get('player_id') in tracked and nickname:
                nicknames.append(nickname)
    return nicknames


class NotificationGate:
    """Per-run gate; mutates the state it was given"""

    def __init__(self, state: NotificationState, comparison_ts: int):
        self.state = state
        self.comparison_ts = comparison_ts

    def evaluate(self, player: PlayerResult) -> Optional[MatchNotification]:
        """
        Check a player's latest match against the stored state.

        The stored id is updated whenever a new id is seen, even if the match
        turns out to be too old to announce.
        """
        latest_id = player.latest_match_id
        if not latest_id or latest_id == self.state.players.get(player.player_id):
            return None

        self.state.players[player.player_id] = latest_id

        detail = next((m for m in player.stats.match_history if m.match_id == latest_id), None)
        if detail is None:
            logging.info(f"ℹ️ No stats for latest match of {player.nickname}, skipping notification.")
            return None

        if detail.date <= self.comparison_ts:
            logging.info(f"ℹ️ Match for {player.nickname} is before last run. Skipping notification.")
            return None

        return MatchNotification(player=player, match=detail, rating_delta=rating_delta(player))

    def finish_run(self, run_start_ts: int) -> NotificationState:
        """Stamp the run start so the next run compares against it"""
        self.state.last_run_ts = run_start_ts
        return self.state
