import logging
import os
import re
from typing import Dict, List, Optional, Any

from config import DATA_DIR, NOTIFICATION_STATE_FILE, RANGE_FILES
from models import NotificationState, RatingRow
from utils import ensure_directory_exists, safe_json_load, safe_json_save

COMMENT_PATTERN = re.compile(r'#|//')


class DataManager:
    """
    Reads and writes the JSON state kept between runs.

    Unreadable files are reported and treated as missing; nothing here raises
    for malformed content.
    """

    def __init__(self, data_dir: str = DATA_DIR):
        self.data_dir = data_dir
        ensure_directory_exists(self.data_dir)

    def _path(self, filename: str) -> str:
        return os.path.join(self.data_dir, filename)

    # Rating tables

    def load_rating_table(self, period: str) -> Optional[List[RatingRow]]:
        """Load a period table, None if it is missing or unreadable"""
        data = safe_json_load(self._path(RANGE_FILES[period]))
        if not isinstance(data, list):
            return None

        rows = []
        for entry in data:
            try:
                rows.append(RatingRow.from_dict(entry))
            except (KeyError, TypeError, AttributeError) as e:
                logging.warning(f"Skipping malformed row in {RANGE_FILES[period]}: {e}")
        return rows

    def save_rating_table(self, period: str, rows: List[RatingRow]) -> bool:
        saved = safe_json_save(self._path(RANGE_FILES[period]), [row.to_dict() for row in rows])
        if saved:
            logging.info(f"✅ Wrote {RANGE_FILES[period]} ({len(rows)} entries)")
        return saved

    def save_latest(self, rows: List[RatingRow]) -> bool:
        return self.save_rating_table("latest", rows)

    # Period metadata

    def _meta_path(self, period: str) -> str:
        return self._path(f"elo-{period}-meta.json")

    def load_period_meta(self, period: str) -> Optional[Dict[str, Any]]:
        """Load the "last updated" marker of a period, None if missing or unreadable"""
        data = safe_json_load(self._meta_path(period))
        return data if isinstance(data, dict) else None

    def save_period_meta(self, period: str, last_updated: str) -> bool:
        return safe_json_save(self._meta_path(period), {'last_updated': last_updated})

    # Notification state

    def load_notification_state_data(self) -> Optional[Any]:
        """Raw notification state as stored, None if missing or unreadable"""
        return safe_json_load(self._path(NOTIFICATION_STATE_FILE))

    def save_notification_state(self, state: NotificationState) -> bool:
        return safe_json_save(self._path(NOTIFICATION_STATE_FILE), state.to_dict())

    # Player list

    @staticmethod
    def load_players(players_file: str) -> List[str]:
        """
        Read tracked player ids, one per line.

        Everything after ``#`` or ``//`` is a comment; blank lines are skipped
        and duplicates keep their first position.
        """
        try:
            with open(players_file, 'r', encoding='utf-8') as f:
                lines = f.read().splitlines()
        except FileNotFoundError:
            logging.error(f"❌ Player list not found: {players_file}")
            return []

        players = []
        for line in lines:
            player_id = COMMENT_PATTERN.split(line, maxsplit=1)[0].strip()
            if player_id and player_id not in players:
                players.append(player_id)
        return players
