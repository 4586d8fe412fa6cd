"""
Rolling rating snapshots.

Each period (daily, weekly, monthly, yearly) keeps a table with every tracked
player's rating at the start of the current period plus a "last updated"
marker. The dashboard derives period gains from these tables, so they have to
stay correct even when runs are skipped, repeated or the files are new.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pytz
from dateutil import parser as date_parser

from config import PERIODS, REFERENCE_TIMEZONE
from data_manager import DataManager
from models import PlayerResult, RatingPoint, RatingRow
from utils import log_error

# Per-period states
NO_METADATA = "no_metadata"
METADATA_STALE = "metadata_stale"
METADATA_FRESH = "metadata_fresh"


def get_period_start(period: str, now: datetime, tz: pytz.BaseTzInfo) -> datetime:
    """Return midnight in ``tz`` at the start of the period containing ``now``."""
    local = now.astimezone(tz)
    day = local.date()

    if period == "daily":
        start = day
    elif period == "weekly":
        start = day - timedelta(days=day.weekday())
    elif period == "monthly":
        start = day.replace(day=1)
    elif period == "yearly":
        start = day.replace(month=1, day=1)
    else:
        raise ValueError(f"Unknown period: {period}")

    return tz.localize(datetime(start.year, start.month, start.day))


def rating_at_or_before(history: List[RatingPoint], boundary_ts: int, current_rating: int) -> int:
    """
    Rating a player held at ``boundary_ts``.

    Returns the newest point at or before the boundary, the oldest point if
    every point is later, or ``current_rating`` when there is no history.
    ``history`` must be ordered oldest first.
    """
    if not history:
        return current_rating

    for point in reversed(history):
        if point.epoch_seconds <= boundary_ts:
            return point.rating
    return history[0].rating


def backfill_rating(player: PlayerResult, boundary_ts: int) -> int:
    """Rating at the boundary for a table built from history alone."""
    history = player.stats.rating_history
    if history and history[-1].epoch_seconds < boundary_ts:
        # Nothing happened since the boundary, so the live rating is the historical one
        return player.elo
    return rating_at_or_before(history, boundary_ts, player.elo)


def played_since(player: PlayerResult, boundary_ts: int) -> bool:
    return bool(player.last_match_ts) and player.last_match_ts >= boundary_ts


def repair_table(rows: List[RatingRow], results: List[PlayerResult], boundary_ts: int) -> bool:
    """
    Bring a period table in line with the current players, in place.

    Missing players are added (at their boundary rating if they played this
    period, at their live rating otherwise) and rows of players who did not
    play this period are pinned to the live rating so their gain reads zero.

    Returns:
        True if any row was added or changed
    """
    by_player = {row.player_id: row for row in rows}
    changed = False

    for player in results:
        active = played_since(player, boundary_ts)
        existing = by_player.get(player.player_id)

        if existing is None:
            rating = rating_at_or_before(player.stats.rating_history, boundary_ts, player.elo) \
                if active else player.elo
            row = RatingRow(player_id=player.player_id, rating=rating)
            rows.append(row)
            by_player[player.player_id] = row
            changed = True
        elif not active and existing.rating != player.elo:
            existing.rating = player.elo
            changed = True

    return changed


class SnapshotReconciler:
    """Runs the per-period snapshot state machine once per run."""

    def __init__(self, data_manager: DataManager, tz_name: str = REFERENCE_TIMEZONE,
                 periods: Optional[List[str]] = None):
        self.data_manager = data_manager
        self.tz = pytz.timezone(tz_name)
        self.periods = periods or list(PERIODS)
        self.period_states: Dict[str, str] = {}

    def _load_marker(self, period: str) -> Optional[datetime]:
        """Parse the period's "last updated" marker, None if absent or unreadable"""
        meta = self.data_manager.load_period_meta(period)
        if not meta or not meta.get('last_updated'):
            return None

        try:
            marker = date_parser.isoparse(str(meta['last_updated']))
        except (ValueError, OverflowError) as e:
            logging.warning(f"Ignoring unreadable {period} marker {meta['last_updated']!r}: {e}")
            return None

        if marker.tzinfo is None:
            return self.tz.localize(marker)
        return marker.astimezone(self.tz)

    def reconcile(self, results: List[PlayerResult], latest: List[RatingRow],
                  now: Optional[datetime] = None) -> Dict[str, List[RatingRow]]:
        """
        Update every period table and return them keyed by period.

        A failure in one period is logged and leaves that period's stored
        table untouched; the other periods still run.
        """
        now = now or datetime.now(self.tz)
        snapshots = {}

        for period in self.periods:
            try:
                snapshots[period] = self.reconcile_period(period, results, latest, now)
            except Exception as e:
                log_error(f"reconciling {period} snapshot", e)
                snapshots[period] = self.data_manager.load_rating_table(period) or []

        return snapshots

    def reconcile_period(self, period: str, results: List[PlayerResult],
                         latest: List[RatingRow], now: datetime) -> List[RatingRow]:
        start = get_period_start(period, now, self.tz)
        start_ts = int(start.timestamp())
        marker = self._load_marker(period)

        if marker is None:
            self.period_states[period] = NO_METADATA
            logging.info(f"ℹ️ First run for {period}. Backfilling from history...")
            rows = [RatingRow(player_id=p.player_id, rating=backfill_rating(p, start_ts)) for p in results]
            self.data_manager.save_rating_table(period, rows)
            self.data_manager.save_period_meta(period, start.date().isoformat())
        elif marker < start:
            self.period_states[period] = METADATA_STALE
            logging.info(f"ℹ️ New {period} period started {start.date().isoformat()}, rolling snapshot forward")
            rows = [RatingRow(player_id=row.player_id, rating=row.rating) for row in latest]
            self.data_manager.save_rating_table(period, rows)
            self.data_manager.save_period_meta(period, start.date().isoformat())
        else:
            self.period_states[period] = METADATA_FRESH
            rows = self.data_manager.load_rating_table(period) or []

        if repair_table(rows, results, start_ts):
            logging.info(f"🔧 Repaired {period} snapshot")
            self.data_manager.save_rating_table(period, rows)

        return rows
