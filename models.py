"""Data models for players, matches, derived stats and persisted state."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, Optional, List, Union

from utils import safe_float, safe_int, to_number


class BaseModel(ABC):
    """Base class for all data models."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary representation."""
        return asdict(self)


class PersistedModel(BaseModel):
    """Model that is written to and read back from disk."""

    @classmethod
    @abstractmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PersistedModel':
        """Create model instance from dictionary."""
        pass


# Match history

@dataclass(frozen=True)
class TeamPlayer(BaseModel):
    player_id: str
    nickname: Optional[str] = None
    faceit_url: str = ""
    avatar: str = ""

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'TeamPlayer':
        return cls(
            player_id=data.get('player_id', ''),
            nickname=data.get('nickname'),
            faceit_url=data.get('faceit_url') or "",
            avatar=data.get('avatar') or "",
        )


@dataclass(frozen=True)
class MatchHistoryItem(BaseModel):
    """One entry of a player's match history as delivered by the API."""
    match_id: str
    finished_at: int
    teams: Dict[str, List[TeamPlayer]] = field(default_factory=dict)
    winner: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'MatchHistoryItem':
        teams = {}
        for side, team in (data.get('teams') or {}).items():
            players = (team or {}).get('players') or []
            teams[side] = [TeamPlayer.from_api(p) for p in players if p.get('player_id')]

        results = data.get('results') or {}
        return cls(
            match_id=data.get('match_id', ''),
            finished_at=safe_int(data.get('finished_at')),
            teams=teams,
            winner=results.get('winner') or None,
        )

    def side_of(self, player_id: str) -> Optional[str]:
        """Return the side the player was on, None if not found"""
        for side, members in self.teams.items():
            if any(p.player_id == player_id for p in members):
                return side
        return None


# Per-match stats: either complete or only the map name is known

@dataclass
class PlayerMatchStats(PersistedModel):
    kills: int = 0
    deaths: int = 0
    assists: int = 0
    adr: float = 0.0
    headshots: int = 0
    headshot_pct: Optional[int] = None
    mvps: int = 0
    rounds: int = 0

    @classmethod
    def from_api(cls, player_stats: Dict[str, Any], rounds: int) -> 'PlayerMatchStats':
        hs_pct = to_number(player_stats.get('Headshots %'))
        return cls(
            kills=safe_int(player_stats.get('Kills')),
            deaths=safe_int(player_stats.get('Deaths')),
            assists=safe_int(player_stats.get('Assists')),
            adr=safe_float(player_stats.get('ADR')),
            headshots=safe_int(player_stats.get('Headshots')),
            headshot_pct=int(hs_pct) if hs_pct else None,
            mvps=safe_int(player_stats.get('MVPs')),
            rounds=rounds,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlayerMatchStats':
        hs_pct = to_number(data.get('headshot_pct'))
        return cls(
            kills=safe_int(data.get('kills')),
            deaths=safe_int(data.get('deaths')),
            assists=safe_int(data.get('assists')),
            adr=safe_float(data.get('adr')),
            headshots=safe_int(data.get('headshots')),
            headshot_pct=int(hs_pct) if hs_pct else None,
            mvps=safe_int(data.get('mvps')),
            rounds=safe_int(data.get('rounds')),
        )


@dataclass
class CompleteMatchStats(PersistedModel):
    map_name: str
    score: str = "0 / 0"
    players: Dict[str, PlayerMatchStats] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CompleteMatchStats':
        players = {
            player_id: PlayerMatchStats.from_dict(stats)
            for player_id, stats in (data.get('players') or {}).items()
        }
        return cls(
            map_name=data.get('map_name') or "Unknown",
            score=data.get('score') or "0 / 0",
            players=players,
        )


@dataclass
class MapOnlyMatchStats(BaseModel):
    map_name: str = "Unknown"


MatchStats = Union[CompleteMatchStats, MapOnlyMatchStats]


# Derived statistics

@dataclass
class RatingPoint(BaseModel):
    epoch_seconds: int
    rating: int
    rating_delta: Optional[int] = None


@dataclass
class RecentStats(BaseModel):
    kills: int = 0
    deaths: int = 0
    assists: int = 0
    wins: int = 0
    kd: str = "0.00"
    adr: str = "0.0"
    hs_percent: int = 0
    kr: str = "0.00"
    winrate_pct: int = 0
    match_count: int = 0


@dataclass
class Streak(BaseModel):
    type: str = "none"
    count: int = 0


@dataclass
class MapPerformance(BaseModel):
    map: str
    wins: int = 0
    losses: int = 0
    matches: int = 0
    winrate_pct: int = 0
    kd: str = "0.00"


@dataclass
class TeammateStats(BaseModel):
    player_id: str
    nickname: str
    url: str = "#"
    avatar: str = ""
    count: int = 0
    wins: int = 0
    losses: int = 0
    winrate_pct: int = 0


@dataclass
class MatchDetail(BaseModel):
    match_id: str
    date: int
    result: str
    map: str
    score: str
    kills: int
    deaths: int
    assists: int
    adr: float
    hs_percent: int
    mvps: int
    kd: str


@dataclass
class PlayerStatsSnapshot(BaseModel):
    recent: RecentStats = field(default_factory=RecentStats)
    streak: Streak = field(default_factory=Streak)
    last5: List[str] = field(default_factory=list)
    map_performance: List[MapPerformance] = field(default_factory=list)
    teammates: List[TeammateStats] = field(default_factory=list)
    rating_history: List[RatingPoint] = field(default_factory=list)
    match_history: List[MatchDetail] = field(default_factory=list)


@dataclass
class PlayerResult(BaseModel):
    """Everything the dashboard knows about one tracked player after a run."""
    player_id: str
    nickname: str
    elo: int
    stats: PlayerStatsSnapshot
    avatar: str = ""
    level: int = 0
    faceit_url: str = ""
    winrate: str = "—"
    matches: str = "—"
    last_match: str = "—"
    last_match_ts: int = 0
    latest_match_id: Optional[str] = None
    latest_match_result: Optional[str] = None


# Persisted state

@dataclass
class RatingRow(PersistedModel):
    player_id: str
    rating: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RatingRow':
        return cls(player_id=str(data['player_id']), rating=safe_int(data.get('rating')))


@dataclass
class NotificationState(PersistedModel):
    last_run_ts: int = 0
    players: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NotificationState':
        players = data.get('players')
        if not isinstance(players, dict):
            players = {}
        return cls(
            last_run_ts=safe_int(data.get('last_run_ts')),
            players={str(k): v for k, v in players.items() if isinstance(v, str)},
        )


# Outputs

@dataclass
class MatchNotification(BaseModel):
    player: PlayerResult
    match: MatchDetail
    rating_delta: Optional[int] = None
    teammates: List[str] = field(default_factory=list)


@dataclass
class Award(BaseModel):
    name: str = "—"
    value: Any = 0
    avatar: str = ""
