import re
import logging
from typing import Optional, Dict, Any, List

from api_clients import BaseAPIClient, RateLimitInfo
from config import (
    CONCURRENCY, FACEIT_API_BASE, FACEIT_API_KEY, FACEIT_STATS_API_BASE,
    GAME_ID, MAX_MATCHES, RATING_HISTORY_SIZE, REQUEST_TIMEOUT,
)
from cs2_maps import UNKNOWN_MAP, normalize_map_name
from match_stats_cache import MatchStatsCache
from models import (
    CompleteMatchStats, MapOnlyMatchStats, MatchHistoryItem, MatchStats, PlayerMatchStats,
)
from utils import log_error, safe_int

UUID_PATTERN = re.compile(r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$', re.IGNORECASE)

# The public stats host rejects requests that do not look like a browser
BROWSER_HEADERS = {
    'User-Agent': ('Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
                   '(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36'),
    'Accept': 'application/json, text/plain, */*',
    'Accept-Language': 'de-DE,de;q=0.9,en-US;q=0.8,en;q=0.7',
    'Origin': 'https://www.faceit.com',
    'Sec-Fetch-Dest': 'empty',
    'Sec-Fetch-Mode': 'cors',
    'Sec-Fetch-Site': 'same-site',
}


class FaceitStatsClient(BaseAPIClient):
    """Client for FACEIT's unauthenticated stats API (rating history)"""

    def __init__(self, max_concurrency: int = CONCURRENCY):
        super().__init__(
            base_url=FACEIT_STATS_API_BASE,
            rate_limit=RateLimitInfo(requests_per_second=2.0, requests_per_minute=60,
                                     requests_per_hour=2000),
            timeout=REQUEST_TIMEOUT,
            max_concurrency=max_concurrency
        )

    def _get_default_headers(self) -> Dict[str, str]:
        return dict(BROWSER_HEADERS)

    def _get_auth_headers(self) -> Dict[str, str]:
        return {}


class FaceitClient(BaseAPIClient):
    """
    Gateway to the FACEIT Data API.

    Every public method degrades to a sentinel (None, [] or {}) instead of
    raising, so one unreachable endpoint never aborts a run.
    """

    def __init__(self, api_key: str = FACEIT_API_KEY, cache: Optional[MatchStatsCache] = None,
                 stats_client: Optional[FaceitStatsClient] = None,
                 max_concurrency: int = CONCURRENCY):
        # Data API allows 10k requests per hour per key
        rate_limit = RateLimitInfo(
            requests_per_second=5.0,
            requests_per_minute=300,
            requests_per_hour=10000,
            burst_limit=max_concurrency
        )

        super().__init__(
            base_url=FACEIT_API_BASE,
            api_key=api_key,
            rate_limit=rate_limit,
            timeout=REQUEST_TIMEOUT,
            max_concurrency=max_concurrency
        )

        self.cache = cache
        self.stats_client = stats_client or FaceitStatsClient(max_concurrency=max_concurrency)

        if api_key:
            logging.info(f"🔑 FACEIT API key loaded: {api_key[:4]}... (length {len(api_key)})")
        else:
            logging.error("❌ FACEIT_API_KEY is missing, Data API requests will fail")

    def _get_auth_headers(self) -> Dict[str, str]:
        """Get authentication headers for the Data API."""
        if self.api_key:
            return {'Authorization': f'Bearer {self.api_key}'}
        return {}

    async def close(self) -> None:
        await super().close()
        await self.stats_client.close()

    async def _get_json(self, endpoint: str, params: Dict[str, Any] = None,
                        action: str = None) -> Optional[Any]:
        """GET an endpoint, returning the JSON body or None on any failure"""
        try:
            response = await self.get(endpoint, params=params)
        except Exception as e:
            log_error(action or f"fetching {endpoint}", e)
            return None

        if response.success:
            return response.data
        if response.status_code in (401, 403):
            logging.error("❌ FACEIT authentication failed, check FACEIT_API_KEY")
        elif response.status_code != 404:
            logging.warning(f"FACEIT request {endpoint} returned status {response.status_code}")
        return None

    async def get_player(self, nickname_or_id: str) -> Optional[Dict[str, Any]]:
        """Get a player profile by nickname or player UUID"""
        if UUID_PATTERN.match(nickname_or_id):
            return await self._get_json(f'players/{nickname_or_id}',
                                        action=f"fetching profile {nickname_or_id}")
        return await self._get_json('players', params={'nickname': nickname_or_id},
                                    action=f"fetching profile {nickname_or_id}")

    async def get_player_history(self, player_id: str, limit: int = MAX_MATCHES) -> List[MatchHistoryItem]:
        """Get the player's most recent matches, newest first"""
        data = await self._get_json(f'players/{player_id}/history',
                                    params={'game': GAME_ID, 'limit': limit},
                                    action=f"fetching history for {player_id}")
        if not isinstance(data, dict):
            return []

        items = []
        for raw_item in data.get('items') or []:
            if raw_item.get('match_id'):
                items.append(MatchHistoryItem.from_api(raw_item))
        return items

    async def get_player_stats(self, player_id: str) -> Dict[str, Any]:
        """Get lifetime stats for the game"""
        data = await self._get_json(f'players/{player_id}/stats/{GAME_ID}',
                                    action=f"fetching lifetime stats for {player_id}")
        return data if isinstance(data, dict) else {}

    async def get_match_details(self, match_id: str) -> Optional[Dict[str, Any]]:
        """Get full match details (rosters, veto)"""
        data = await self._get_json(f'matches/{match_id}',
                                    action=f"fetching match details {match_id}")
        return data if isinstance(data, dict) else None

    async def get_rating_history(self, player_id: str) -> List[Dict[str, Any]]:
        """Get raw rating telemetry, newest first, dates in epoch milliseconds"""
        headers = {'Referer': f'https://www.faceit.com/de/players/{player_id}'}
        try:
            response = await self.stats_client.get(
                f'stats/time/users/{player_id}/games/{GAME_ID}',
                params={'size': RATING_HISTORY_SIZE},
                headers=headers
            )
        except Exception as e:
            log_error(f"fetching rating history for {player_id}", e)
            return []

        if not response.success or not isinstance(response.data, list):
            logging.error(f"❌ No usable rating history for {player_id} "
                          f"(status {response.status_code}, likely blocked)")
            return []
        return response.data

    async def get_match_stats(self, match_id: str) -> Optional[CompleteMatchStats]:
        """Get normalized per-match stats, from the cache when possible"""
        if self.cache:
            cached = self.cache.get(match_id)
            if cached:
                logging.debug(f"Using cached stats for match {match_id}")
                return cached

        data = await self._get_json(f'matches/{match_id}/stats',
                                    action=f"fetching match stats {match_id}")
        stats = self.parse_match_stats(data)
        if stats and self.cache:
            self.cache.put(match_id, stats)
        return stats

    @staticmethod
    def parse_match_stats(data: Optional[Dict[str, Any]]) -> Optional[CompleteMatchStats]:
        """Normalize the first round of a /matches/{id}/stats response"""
        if not isinstance(data, dict) or not data.get('rounds'):
            return None

        round_data = data['rounds'][0]
        round_stats = round_data.get('round_stats') or {}
        score = round_stats.get('Score') or "0 / 0"
        rounds = sum(safe_int(part) for part in score.split(' / '))

        players = {}
        for team in round_data.get('teams') or []:
            for player in team.get('players') or []:
                player_id = player.get('player_id')
                if player_id:
                    players[player_id] = PlayerMatchStats.from_api(player.get('player_stats') or {}, rounds)

        return CompleteMatchStats(
            map_name=normalize_map_name(round_stats.get('Map')),
            score=score,
            players=players,
        )

    @staticmethod
    def map_from_details(details: Optional[Dict[str, Any]]) -> Optional[str]:
        """Extract the picked map from match details, if any"""
        if not details:
            return None
        picks = ((details.get('voting') or {}).get('map') or {}).get('pick') or []
        return picks[0] if picks else None

    async def resolve_match_stats(self, match_id: str) -> MatchStats:
        """
        Get stats for a match, degrading to a map-only placeholder.

        When the stats endpoint fails or reports no map, the map is looked up in
        the match details veto instead.
        """
        stats = await self.get_match_stats(match_id)
        if stats is not None and stats.map_name != UNKNOWN_MAP:
            return stats

        details = await self.get_match_details(match_id)
        map_name = normalize_map_name(self.map_from_details(details))

        if stats is None:
            return MapOnlyMatchStats(map_name)
        stats.map_name = map_name
        if self.cache and map_name != UNKNOWN_MAP:
            self.cache.put(match_id, stats)
        return stats
