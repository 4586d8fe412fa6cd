#!/usr/bin/env python3
"""
EloBoard - FACEIT CS2 rating dashboard

One run fetches every tracked player, updates the rolling rating snapshots,
announces new matches on Discord and renders the static dashboard page.
"""

import asyncio
import logging
import sys
from datetime import datetime
from typing import Dict, List, Optional, Any

from config import (
    APP_VERSION, FACEIT_API_KEY, LOG_FILE, LOG_LEVEL, MAX_MATCHES,
    MIGRATION_LOOKBACK_HOURS, OUTPUT_FILE, PLAYERS_FILE, PROFILE_LANG,
    REFERENCE_TIMEZONE, TEMPLATE_FILE,
)
from data_manager import DataManager
from faceit_client import FaceitClient
from match_stats_cache import MatchStatsCache
from models import MatchStats, PlayerResult, RatingRow
from notification_gate import NotificationGate, load_notification_state, tracked_participants
from notifier import DiscordNotifier
from renderer import DashboardRenderer
from snapshot_reconciler import SnapshotReconciler
from stats_calculator import calculate_awards, compute_player_stats, profile_url
from utils import format_local_datetime, get_local_now, log_error, safe_int


def setup_logging() -> None:
    """Configure logging with proper formatting."""
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format=log_format,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(LOG_FILE, encoding="utf-8"),
        ],
    )

    # Reduce library logging verbosity
    logging.getLogger("discord").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


async def process_player(client: FaceitClient, player_id: str,
                         tz_name: str = REFERENCE_TIMEZONE) -> Optional[PlayerResult]:
    """
    Fetch and aggregate everything the dashboard shows for one player.

    Returns:
        PlayerResult, or None if the profile or its rating is unavailable
    """
    try:
        profile, history, lifetime_stats, raw_rating_history = await asyncio.gather(
            client.get_player(player_id),
            client.get_player_history(player_id, MAX_MATCHES),
            client.get_player_stats(player_id),
            client.get_rating_history(player_id),
        )

        if not profile or not profile.get('player_id'):
            logging.error(f"❌ Profile not found for {player_id}")
            return None

        game = (profile.get('games') or {}).get('cs2') or {}
        elo = safe_int(game.get('faceit_elo'))
        if not elo:
            logging.warning(f"⚠️ No CS2 rating for {profile.get('nickname', player_id)}, skipping")
            return None

        # One match at a time per player
        match_stats: Dict[str, MatchStats] = {}
        for item in history:
            match_stats[item.match_id] = await client.resolve_match_stats(item.match_id)

        stats = compute_player_stats(profile['player_id'], history, match_stats, raw_rating_history)

        lifetime = lifetime_stats.get('lifetime') or {}
        last_ts = history[0].finished_at if history else 0

        return PlayerResult(
            player_id=profile['player_id'],
            nickname=profile.get('nickname') or player_id,
            elo=elo,
            stats=stats,
            avatar=profile.get('avatar') or "",
            level=safe_int(game.get('skill_level')),
            faceit_url=profile_url(profile.get('faceit_url'), PROFILE_LANG),
            winrate=f"{lifetime['Win Rate %']}%" if lifetime.get('Win Rate %') is not None else "—",
            matches=str(lifetime['Matches']) if lifetime.get('Matches') is not None else "—",
            last_match=format_local_datetime(last_ts, tz_name),
            last_match_ts=last_ts,
            latest_match_id=history[0].match_id if history else None,
            latest_match_result=stats.last5[0] if stats.last5 else None,
        )

    except Exception as e:
        log_error(f"processing player {player_id}", e)
        return None


class EloDashboard:
    """Sequences one dashboard update run."""

    def __init__(self, client: Optional[FaceitClient] = None,
                 data_manager: Optional[DataManager] = None,
                 notifier: Optional[DiscordNotifier] = None,
                 renderer: Optional[DashboardRenderer] = None,
                 players_file: str = PLAYERS_FILE,
                 template_file: str = TEMPLATE_FILE,
                 output_file: str = OUTPUT_FILE,
                 tz_name: str = REFERENCE_TIMEZONE,
                 lookback_hours: int = MIGRATION_LOOKBACK_HOURS):
        self.data_manager = data_manager or DataManager()
        self.client = client or FaceitClient(api_key=FACEIT_API_KEY, cache=MatchStatsCache())
        self.notifier = notifier or DiscordNotifier()
        self.renderer = renderer or DashboardRenderer()
        self.reconciler = SnapshotReconciler(self.data_manager, tz_name)
        self.players_file = players_file
        self.template_file = template_file
        self.output_file = output_file
        self.tz_name = tz_name
        self.lookback_hours = lookback_hours

    async def run(self, now: Optional[datetime] = None) -> List[PlayerResult]:
        """Run a full update and return the processed players, highest rating first."""
        try:
            return await self._run(now or get_local_now(self.tz_name))
        finally:
            await self.client.close()

    async def _run(self, now: datetime) -> List[PlayerResult]:
        logging.info(f"🚀 Starting EloBoard v{APP_VERSION} update...")
        run_start_ts = int(now.timestamp())

        loaded = load_notification_state(self.data_manager, run_start_ts, self.lookback_hours)
        gate = NotificationGate(loaded.state, loaded.comparison_ts)

        player_ids = self.data_manager.load_players(self.players_file)
        if not player_ids:
            logging.warning("⚠️ No players to process")
        logging.info(f"ℹ️ Processing {len(player_ids)} players...")

        processed = await asyncio.gather(*(
            process_player(self.client, player_id, self.tz_name) for player_id in player_ids
        ))
        results = [p for p in processed if p is not None]

        tracked_ids = set(player_ids) | {p.player_id for p in results}
        for player in results:
            await self._notify(gate, player, tracked_ids)

        results.sort(key=lambda p: p.elo, reverse=True)

        latest = [RatingRow(player_id=p.player_id, rating=p.elo) for p in results]
        self.data_manager.save_latest(latest)

        snapshots = self.reconciler.reconcile(results, latest, now)
        awards = calculate_awards(results)

        self.renderer.render(
            self.template_file,
            self.output_file,
            results,
            now.astimezone(self.reconciler.tz).strftime('%Y-%m-%d %H:%M'),
            snapshots,
            awards,
        )

        self.data_manager.save_notification_state(gate.finish_run(run_start_ts))
        self._cleanup_cache()

        logging.info("✨ Done!")
        return results

    async def _notify(self, gate: NotificationGate, player: PlayerResult, tracked_ids: set) -> None:
        notification = gate.evaluate(player)
        if notification is None:
            return

        logging.info(f"🔔 Sending notification for {player.nickname}: {player.latest_match_id}")
        details = await self.client.get_match_details(player.latest_match_id)
        notification.teammates = tracked_participants(details, tracked_ids, player.nickname)

        try:
            sent = await self.notifier.send_match_notification(notification)
        except Exception as e:
            log_error(f"sending notification for {player.nickname}", e)
            return

        if sent:
            logging.info(f"✅ Notification sent for {player.nickname}")

    def _cleanup_cache(self) -> None:
        cache = getattr(self.client, 'cache', None)
        if cache is None:
            return

        cache.cleanup_expired()
        stats: Dict[str, Any] = cache.get_storage_stats()
        logging.info(f"🗄️ Match stats cache holds {stats.get('count', 0)} entries")


def main() -> None:
    """Main entry point."""
    setup_logging()

    try:
        asyncio.run(EloDashboard().run())
    except KeyboardInterrupt:
        logging.info("Run interrupted by user")
    except Exception as e:
        logging.critical(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
