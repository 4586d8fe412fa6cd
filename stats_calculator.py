"""
Player statistics aggregation for the dashboard.

Turns a player's raw match history, the per-match stats and the raw rating
telemetry into a PlayerStatsSnapshot. Everything here is pure: no network, no
files, and malformed numbers are coerced to zero instead of raising.
"""

from typing import Dict, List, Any, Optional, Iterable

from config import PROFILE_LANG
from cs2_maps import UNKNOWN_MAP
from models import (
    Award, CompleteMatchStats, MapOnlyMatchStats, MapPerformance, MatchDetail,
    MatchHistoryItem, MatchStats, PlayerMatchStats, PlayerResult,
    PlayerStatsSnapshot, RatingPoint, RecentStats, Streak, TeammateStats,
)
from utils import format_ratio, parse_epoch_millis, round_half_up, safe_float, to_number

# K/D shown for a flawless match (kills but no deaths)
FLAWLESS_KD = "10.0"


def profile_url(raw_url: Optional[str], lang: str = PROFILE_LANG) -> str:
    """Fill the language placeholder FACEIT leaves in profile URLs."""
    return (raw_url or "").replace("{lang}", lang)


def percent(part: float, whole: float) -> int:
    return round_half_up(part / whole * 100) if whole else 0


class PlayerStatsAccumulator:
    """Collects running totals while walking one player's history newest-first."""

    def __init__(self, player_id: str):
        self.player_id = player_id

        # Personal totals over matches with usable stats
        self.kills = 0
        self.deaths = 0
        self.assists = 0
        self.adr_total = 0.0
        self.headshots = 0
        self.rounds = 0
        self.processed = 0

        self.results: List[str] = []
        self.map_data: Dict[str, Dict[str, int]] = {}
        self.teammate_counts: Dict[str, Dict[str, int]] = {}
        self.teammate_info: Dict[str, Dict[str, Any]] = {}
        self.detailed_history: List[MatchDetail] = []

    def add_match(self, item: MatchHistoryItem, stats: Optional[MatchStats]) -> None:
        """Fold a single history item into the running totals."""
        if stats is None:
            stats = MapOnlyMatchStats(UNKNOWN_MAP)

        player_stats = None
        if isinstance(stats, CompleteMatchStats):
            player_stats = stats.players.get(self.player_id)

        if player_stats is not None:
            self._add_personal(player_stats)

        did_win = self._add_outcome(item)
        result = "W" if did_win else "L"
        self.results.append(result)

        map_name = stats.map_name or UNKNOWN_MAP
        self._add_map(map_name, did_win, player_stats)

        if player_stats is not None:
            self.detailed_history.append(
                self._build_detail(item, stats, map_name, result, player_stats)
            )

    def _add_personal(self, player_stats: PlayerMatchStats) -> None:
        self.kills += player_stats.kills
        self.deaths += player_stats.deaths
        self.assists += player_stats.assists
        self.adr_total += safe_float(player_stats.adr)
        self.headshots += player_stats.headshots
        self.rounds += player_stats.rounds
        self.processed += 1

    def _add_outcome(self, item: MatchHistoryItem) -> bool:
        """Return whether the player won, crediting teammates on the way.

        A match without a winner or without the player in any roster counts as
        a loss, and nobody gets teammate credit for it.
        """
        if not item.teams or not item.winner:
            return False

        side = item.side_of(self.player_id)
        if side is None:
            return False

        did_win = side == item.winner
        for mate in item.teams[side]:
            if mate.player_id == self.player_id:
                continue

            counts = self.teammate_counts.setdefault(
                mate.player_id, {'count': 0, 'wins': 0, 'losses': 0}
            )
            counts['count'] += 1
            counts['wins' if did_win else 'losses'] += 1

            # First sighting wins, later profile changes are ignored
            if mate.player_id not in self.teammate_info:
                self.teammate_info[mate.player_id] = {
                    'nickname': mate.nickname,
                    'url': profile_url(mate.faceit_url),
                    'avatar': mate.avatar,
                }
        return did_win

    def _add_map(self, map_name: str, did_win: bool,
                 player_stats: Optional[PlayerMatchStats]) -> None:
        data = self.map_data.setdefault(
            map_name, {'wins': 0, 'losses': 0, 'kills': 0, 'deaths': 0, 'matches': 0}
        )
        data['matches'] += 1
        data['wins' if did_win else 'losses'] += 1
        if player_stats is not None:
            data['kills'] += player_stats.kills
            data['deaths'] += player_stats.deaths

    def _build_detail(self, item: MatchHistoryItem, stats: CompleteMatchStats,
                      map_name: str, result: str,
                      player_stats: PlayerMatchStats) -> MatchDetail:
        kills = player_stats.kills
        deaths = player_stats.deaths
        if deaths:
            kd = format_ratio(kills, deaths)
        else:
            kd = FLAWLESS_KD if kills > 0 else "0.00"

        hs_percent = player_stats.headshot_pct or percent(player_stats.headshots, kills)

        return MatchDetail(
            match_id=item.match_id,
            date=item.finished_at,
            result=result,
            map=map_name,
            score=stats.score or "0 / 0",
            kills=kills,
            deaths=deaths,
            assists=player_stats.assists,
            adr=safe_float(player_stats.adr),
            hs_percent=hs_percent,
            mvps=player_stats.mvps,
            kd=kd,
        )

    def recent_stats(self) -> RecentStats:
        wins = self.results.count("W")
        return RecentStats(
            kills=self.kills,
            deaths=self.deaths,
            assists=self.assists,
            wins=wins,
            kd=format_ratio(self.kills, self.deaths),
            adr=format_ratio(self.adr_total, self.processed, digits=1),
            hs_percent=percent(self.headshots, self.kills),
            kr=format_ratio(self.kills, self.rounds),
            winrate_pct=percent(wins, len(self.results)),
            match_count=self.processed,
        )

    def map_performance(self) -> List[MapPerformance]:
        maps = [
            MapPerformance(
                map=map_name,
                wins=d['wins'],
                losses=d['losses'],
                matches=d['matches'],
                winrate_pct=percent(d['wins'], d['matches']),
                kd=format_ratio(d['kills'], d['deaths']),
            )
            for map_name, d in self.map_data.items()
        ]
        return sorted(maps, key=lambda m: m.matches, reverse=True)

    def teammates(self) -> List[TeammateStats]:
        teammates = []
        for mate_id, counts in self.teammate_counts.items():
            info = self.teammate_info.get(mate_id, {})
            nickname = info.get('nickname')
            if not nickname:
                continue
            teammates.append(TeammateStats(
                player_id=mate_id,
                nickname=nickname,
                url=info.get('url') or "#",
                avatar=info.get('avatar') or "",
                count=counts['count'],
                wins=counts['wins'],
                losses=counts['losses'],
                winrate_pct=percent(counts['wins'], counts['count']),
            ))
        return teammates


def compute_streak(results: List[str]) -> Streak:
    """Count consecutive identical results starting at the newest match."""
    if not results:
        return Streak()

    first = results[0]
    count = 0
    for result in results:
        if result != first:
            break
        count += 1
    return Streak(type="win" if first == "W" else "loss", count=count)


def transform_rating_history(raw_history: Optional[Iterable[Dict[str, Any]]]) -> List[RatingPoint]:
    """
    Convert raw rating telemetry into RatingPoints, oldest first.

    The stats API reports ``date`` in epoch milliseconds and delivers the
    newest point first; entries without a numeric date or rating are dropped.
    """
    points = []
    for item in raw_history or []:
        if not isinstance(item, dict):
            continue
        epoch_seconds = parse_epoch_millis(item.get('date'))
        rating = to_number(item.get('elo'))
        if epoch_seconds is None or rating is None:
            continue

        delta = to_number(item.get('elo_delta'))
        points.append(RatingPoint(
            epoch_seconds=epoch_seconds,
            rating=int(rating),
            rating_delta=int(delta) if delta is not None else None,
        ))
    points.reverse()
    return points


def empty_stats() -> PlayerStatsSnapshot:
    """Snapshot for a player with no usable data."""
    return PlayerStatsSnapshot()


def compute_player_stats(player_id: str,
                         history: Optional[List[MatchHistoryItem]],
                         match_stats: Optional[Dict[str, MatchStats]],
                         raw_rating_history: Optional[List[Dict[str, Any]]] = None) -> PlayerStatsSnapshot:
    """
    Calculate the full stats snapshot for one player.

    Args:
        player_id: FACEIT player id the history belongs to
        history: Match history items, newest first
        match_stats: Per-match stats keyed by match id; missing entries are
            treated as matches whose map is unknown
        raw_rating_history: Rating telemetry as returned by the stats API

    Returns:
        PlayerStatsSnapshot; the all-zero snapshot when there is no input
    """
    if not player_id:
        return empty_stats()

    match_stats = match_stats or {}
    accumulator = PlayerStatsAccumulator(player_id)
    for item in history or []:
        accumulator.add_match(item, match_stats.get(item.match_id))

    return PlayerStatsSnapshot(
        recent=accumulator.recent_stats(),
        streak=compute_streak(accumulator.results),
        last5=accumulator.results[:5],
        map_performance=accumulator.map_performance(),
        teammates=accumulator.teammates(),
        rating_history=transform_rating_history(raw_rating_history),
        match_history=accumulator.detailed_history,
    )


def calculate_awards(results: List[PlayerResult]) -> Dict[str, Award]:
    """Pick the dashboard award winners; ties go to the first player seen."""
    if not results:
        return {}

    best_kd = Award(value="0.00")
    best_hs = Award(value=0)
    best_adr = Award(value="0.0")
    best_winrate = Award(value=0)
    longest_streak = Award(value=0)
    lowest_deaths = Award(value=None)

    for player in results:
        recent = player.stats.recent
        streak = player.stats.streak

        if safe_float(recent.kd) > safe_float(best_kd.value):
            best_kd = Award(player.nickname, recent.kd, player.avatar)
        if recent.hs_percent > best_hs.value:
            best_hs = Award(player.nickname, recent.hs_percent, player.avatar)
        if safe_float(recent.adr) > safe_float(best_adr.value):
            best_adr = Award(player.nickname, recent.adr, player.avatar)
        if recent.match_count > 0 and recent.winrate_pct > best_winrate.value:
            best_winrate = Award(player.nickname, recent.winrate_pct, player.avatar)
        if recent.match_count > 0 and (lowest_deaths.value is None or recent.deaths < lowest_deaths.value):
            lowest_deaths = Award(player.nickname, recent.deaths, player.avatar)
        if streak.type == "win" and streak.count > longest_streak.value:
            longest_streak = Award(player.nickname, streak.count, player.avatar)

    if lowest_deaths.value is None:
        lowest_deaths = Award(value=0)

    return {
        'best_kd': best_kd,
        'best_hs': best_hs,
        'best_adr': best_adr,
        'best_winrate': best_winrate,
        'longest_streak': longest_streak,
        'lowest_deaths': lowest_deaths,
    }
