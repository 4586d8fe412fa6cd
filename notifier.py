import logging
from datetime import datetime, timezone
from typing import List, Optional

import aiohttp
import discord

from config import DISCORD_CHANNEL_ID, DISCORD_TOKEN, DISCORD_WEBHOOK_URL, EMPTY_VALUE
from models import MatchNotification
from utils import log_error, safe_int

DISCORD_API_BASE = "https://discord.com/api/v10"
MATCH_ROOM_URL = "https://www.faceit.com/en/cs2/room/{match_id}"
DEFAULT_THUMBNAIL = "https://corporate.faceit.com/wp-content/uploads/icon-faceit-300x300.png"
WIN_COLOR = 0x00FF00
LOSS_COLOR = 0xFF0000


def safe_embed_field(embed: discord.Embed, name: str, value: str, inline: bool = True) -> None:
    """Add field to embed with length validation."""
    # Discord limits: name=256, value=1024
    if len(name) > 256:
        name = name[:253] + "..."
    if len(value) > 1024:
        value = value[:1021] + "..."

    embed.add_field(name=name, value=value, inline=inline)


def format_score(score: Optional[str], is_win: bool) -> str:
    """Order a "a / b" score so the player's team comes first"""
    if not score:
        return EMPTY_VALUE

    parts = score.split(" / ")
    if len(parts) != 2 or not all(p.strip().isdigit() for p in parts):
        return score

    high, low = max(safe_int(p) for p in parts), min(safe_int(p) for p in parts)
    return f"{high} / {low}" if is_win else f"{low} / {high}"


def format_rating_delta(delta: Optional[int]) -> str:
    if delta is None:
        return ""
    return f" (+{delta})" if delta >= 0 else f" ({delta})"


class DiscordNotifier:
    """Posts match results to Discord through webhooks or a bot channel"""

    def __init__(self, webhook_url: str = DISCORD_WEBHOOK_URL, token: str = DISCORD_TOKEN,
                 channel_id: str = DISCORD_CHANNEL_ID):
        self.webhook_urls: List[str] = [u.strip() for u in (webhook_url or "").split(",") if u.strip()]
        self.token = (token or "").strip()
        self.channel_id = (channel_id or "").strip()

    @property
    def configured(self) -> bool:
        return bool(self.webhook_urls) or bool(self.token and self.channel_id)

    async def send_match_notification(self, notification: MatchNotification) -> bool:
        """
        Send a match result embed.

        Returns:
            True if at least one destination accepted the message
        """
        if not self.configured:
            logging.warning("⚠️ Discord notifier: no credentials found (webhook or token/channel id). "
                            "Skipping notification.")
            return False

        embed = self.create_match_embed(notification)

        async with aiohttp.ClientSession() as session:
            if self.webhook_urls:
                return await self._send_via_webhooks(session, embed)
            return await self._send_via_bot(session, embed)

    def create_match_embed(self, notification: MatchNotification) -> discord.Embed:
        """Build the result embed for one player's match"""
        player = notification.player
        match = notification.match
        is_win = match.result == "W"
        score = format_score(match.score, is_win)

        title = f"🏆 Win for {player.nickname}" if is_win else f"💀 Loss for {player.nickname}"
        if score != EMPTY_VALUE:
            title += f" ({score})"

        timestamp = datetime.fromtimestamp(match.date, tz=timezone.utc) if match.date \
            else datetime.now(timezone.utc)

        embed = discord.Embed(
            title=title,
            url=player.faceit_url or None,
            color=WIN_COLOR if is_win else LOSS_COLOR,
            timestamp=timestamp
        )
        embed.set_thumbnail(url=player.avatar or DEFAULT_THUMBNAIL)

        assists = f" ({match.assists})" if match.assists else ""
        safe_embed_field(embed, "Map", match.map or "Unknown")
        safe_embed_field(embed, "Score", score)
        safe_embed_field(embed, "Elo", f"{player.elo}{format_rating_delta(notification.rating_delta)}")
        safe_embed_field(embed, "K/D", match.kd or "0.00")
        safe_embed_field(embed, "Kills", f"{match.kills}/{match.deaths}{assists}")
        safe_embed_field(embed, "ADR", f"{match.adr:.1f}" if match.adr else EMPTY_VALUE)
        safe_embed_field(embed, "HS %", f"{match.hs_percent}%" if match.hs_percent else EMPTY_VALUE)
        safe_embed_field(embed, "MVPs", str(match.mvps or 0))
        safe_embed_field(embed, "Match Link", f"[Room]({MATCH_ROOM_URL.format(match_id=match.match_id)})")

        if notification.teammates:
            safe_embed_field(embed, "Dashboard Teammates", ", ".join(notification.teammates), inline=False)

        embed.set_footer(text="Match time")
        return embed

    async def _send_via_webhooks(self, session: aiohttp.ClientSession, embed: discord.Embed) -> bool:
        sent = False
        for url in self.webhook_urls:
            try:
                webhook = discord.Webhook.from_url(url, session=session)
                await webhook.send(embed=embed)
                sent = True
            except (discord.HTTPException, ValueError, aiohttp.ClientError) as e:
                log_error(f"sending Discord webhook ({url[:40]}...)", e)
        return sent

    async def _send_via_bot(self, session: aiohttp.ClientSession, embed: discord.Embed) -> bool:
        url = f"{DISCORD_API_BASE}/channels/{self.channel_id}/messages"
        headers = {"Authorization": f"Bot {self.token}"}
        try:
            async with session.post(url, json={"embeds": [embed.to_dict()]}, headers=headers) as response:
                if response.status >= 300:
                    logging.error(f"❌ Discord bot message failed with status {response.status}")
                return response.status < 300
        except aiohttp.ClientError as e:
            log_error("sending Discord bot message", e)
            return False
