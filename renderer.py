"""
Static dashboard rendering.

The template is plain HTML carrying marker comments; each marker is replaced
by a rendered fragment or an inline data script.
"""

import html
import json
import logging
import re
from typing import Any, Dict, List, Optional

from config import EMPTY_VALUE
from cs2_maps import UNKNOWN_MAP
from models import Award, MapPerformance, PlayerResult, RatingRow, RecentStats, TeammateStats
from utils import safe_float, to_number

TABLE_MARKER = "<!-- INSERT_ELO_TABLE_HERE -->"
LAST_UPDATED_MARKER = "<!-- INSERT_LAST_UPDATED -->"
PLAYER_COUNT_MARKER = "<!-- INSERT_PLAYER_COUNT -->"
AWARDS_MARKER = "<!-- INSERT_AWARDS_SECTION -->"
COMPARISON_MARKER = "<!-- INSERT_COMPARISON_DATA -->"
HISTORY_MARKER = re.compile(r"<!--\s*INSERT_HISTORY_DATA\s*-->")

STAT_LABEL = "stat-label"
STAT_VALUE = "stat-value"
SECTION_TITLE = "section-title"
INNER_PANEL = "inner-panel"

# (award key, emoji, title, value suffix, color)
AWARD_CARDS = [
    ('best_kd', "🎯", "Best K/D", "", "blue"),
    ('best_hs', "💥", "Headshot King", "%", "yellow"),
    ('best_adr', "⚡", "Best ADR", "", "purple"),
    ('best_winrate', "🏆", "Best Winrate", "%", "green"),
    ('longest_streak', "🔥", "Win Streak", "W", "orange"),
    ('lowest_deaths', "🛡️", "Survivor", " Deaths", "cyan"),
]


def escape_html(value: Any) -> str:
    if value is None:
        return ""
    return html.escape(str(value), quote=True)


def to_script_json(data: Any) -> str:
    """JSON that is safe to inline in a <script> element"""
    return json.dumps(data, ensure_ascii=False).replace("</", "<\\/")


def elo_tier_class(elo: int) -> str:
    if elo >= 2500:
        return "elo-tier-legendary"
    if elo >= 2000:
        return "elo-tier-diamond"
    if elo >= 1500:
        return "elo-tier-platinum"
    if elo >= 1000:
        return "elo-tier-gold"
    return "elo-tier-silver"


def rank_badge(rank: int) -> str:
    css = f"rank-{rank}" if rank <= 3 else "rank-default"
    return f'<div class="rank-badge {css}">{rank}</div>'


class DashboardRenderer:
    """Renders the dashboard page from a marker template."""

    def render(self, template_path: str, output_path: str, players: List[PlayerResult],
               last_updated: str, history_data: Dict[str, List[RatingRow]],
               awards: Optional[Dict[str, Award]] = None) -> bool:
        """
        Fill the template and write the page.

        Returns:
            False if the template could not be read or the page not written
        """
        try:
            with open(template_path, 'r', encoding='utf-8') as f:
                template = f.read()
        except OSError as e:
            logging.error(f"❌ Dashboard template {template_path} could not be read: {e}")
            return False

        rows = "\n".join(self.render_player(p, rank) for rank, p in enumerate(players, start=1))

        page = template.replace(TABLE_MARKER, rows)
        page = page.replace(LAST_UPDATED_MARKER, escape_html(last_updated))
        page = page.replace(PLAYER_COUNT_MARKER, str(len(players)))
        page = page.replace(AWARDS_MARKER, self.render_awards(awards))

        comparison = [
            {
                'id': p.player_id,
                'nickname': p.nickname,
                'avatar': p.avatar,
                'history': [point.to_dict() for point in p.stats.rating_history],
            }
            for p in players
        ]
        page = page.replace(
            COMPARISON_MARKER,
            f"<script>window.COMPARISON_DATA = {to_script_json(comparison)};</script>"
        )

        history = {
            period: [row.to_dict() for row in rows_]
            for period, rows_ in (history_data or {}).items()
        }
        history_script = f"<script>window.ELO_DATA = {to_script_json(history)};</script>"
        if HISTORY_MARKER.search(page):
            page = HISTORY_MARKER.sub(lambda _: history_script, page, count=1)
        else:
            logging.error("❌ History data marker not found in template!")

        try:
            with open(output_path, 'w', encoding='utf-8') as f:
                f.write(page)
        except OSError as e:
            logging.error(f"❌ Could not write dashboard {output_path}: {e}")
            return False

        logging.info(f"✅ Generated {output_path}")
        return True

    def render_awards(self, awards: Optional[Dict[str, Award]]) -> str:
        if not awards:
            return ""

        cards = []
        for key, emoji, title, suffix, color in AWARD_CARDS:
            award = awards.get(key) or Award()
            cards.append(f"""
      <div class="glass-panel award-card award-{color}">
        <div class="award-icon">{emoji}</div>
        <div class="min-w-0">
          <p class="award-title">{title}</p>
          <p class="award-name">{escape_html(award.name)}</p>
          <p class="award-value text-{color}-400">{escape_html(award.value)}{suffix}</p>
        </div>
      </div>""")

        return f'\n    <div class="awards-grid">{"".join(cards)}\n    </div>'

    def render_player(self, p: PlayerResult, rank: int) -> str:
        """Main table row plus the collapsible detail row of one player"""
        stats = p.stats
        safe_name = escape_html(p.nickname)
        player_id = escape_html(p.player_id)

        peak_elo = max([point.rating for point in stats.rating_history] + [p.elo])

        streak = stats.streak
        streak_str = f"{streak.count}{'W' if streak.type == 'win' else 'L'}" if streak.count > 0 else EMPTY_VALUE
        streak_badge = ""
        if streak.count >= 2:
            if streak.type == "win":
                streak_badge = f'<span class="streak-badge streak-win">🔥{streak.count}W</span>'
            else:
                streak_badge = f'<span class="streak-badge streak-loss">💀{streak.count}L</span>'

        last5_html = "".join(
            f'<div class="result-dot {"dot-win" if r == "W" else "dot-loss"}"></div>' for r in stats.last5
        )

        if p.avatar:
            avatar_html = (f'<img src="{escape_html(p.avatar)}" class="avatar" alt="{safe_name}" '
                           f'loading="lazy" />')
        else:
            avatar_html = f'<div class="avatar avatar-empty">{escape_html(p.nickname[:1].upper())}</div>'

        winrate_pct = to_number((p.winrate or "").rstrip("%")) or 0
        winrate_color = "winrate-good" if winrate_pct >= 55 else "winrate-even" if winrate_pct >= 50 else "winrate-bad"
        matches = int(to_number(p.matches) or 0)

        main_row = f"""
<tr class="player-row glass-card"
    data-player-id="{player_id}"
    data-elo="{p.elo}"
    data-nickname="{safe_name}"
    data-winrate="{winrate_pct:g}"
    data-matches="{matches}"
    data-level="{p.level}"
    data-last="{escape_html(p.last_match)}"
    data-last-ts="{p.last_match_ts or 0}"
    data-kd="{safe_float(stats.recent.kd):g}"
    data-peak="{peak_elo}"
    data-streak="{streak_str}"
    data-streak-type="{streak.type}">
  <td class="p-4">
    <div class="player-cell">
        {rank_badge(rank)}
        <span class="toggle-details">▸</span>
        {avatar_html}
        <div class="flex flex-col">
            <div class="flex items-center gap-1">
                <a href="{escape_html(p.faceit_url) or '#'}" target="_blank" class="nickname-link">{safe_name}</a>
                {streak_badge}
            </div>
            <div class="last5">{last5_html}</div>
        </div>
    </div>
  </td>
  <td class="p-4 font-mono {elo_tier_class(p.elo)} elo-now">{p.elo}</td>
  <td class="p-4 font-mono elo-diff">-</td>
  <td class="p-4 text-center">
    <img src="icons/levels/level_{p.level}_icon.png" width="28" height="28" title="Level {p.level}" class="level-badge">
  </td>
  <td class="p-4">
    <div class="winrate-cell">
        <span class="font-mono">{escape_html(p.winrate)}</span>
        <div class="winrate-bar"><div class="winrate-fill {winrate_color}" style="width: {winrate_pct:g}%"></div></div>
    </div>
  </td>
  <td class="p-4 text-right font-mono">{escape_html(p.matches)}</td>
  <td class="p-4 text-right font-mono last-match-cell" data-ts="{p.last_match_ts or 0}">{escape_html(p.last_match)}</td>
</tr>""".strip()

        teammates = stats.teammates
        top_mates = sorted(teammates, key=lambda m: m.count, reverse=True)[:5]
        best_mates = sorted(teammates, key=lambda m: m.wins, reverse=True)[:5]
        worst_mates = sorted(teammates, key=lambda m: m.losses, reverse=True)[:5]

        detail_row = f"""
<tr class="details-row" data-player-id="{player_id}">
  <td colspan="7" class="p-0 border-none">
    <div class="details-content">
      <div class="details-grid glass-panel">
          <div class="details-wide">
              {self._render_stat_block(stats.recent, stats.map_performance)}
              {self._render_map_block(stats.map_performance)}
              {self._render_chart_block(player_id, stats.rating_history, peak_elo)}
          </div>
          <div>
               {self._render_mates_block("👥 Most played with", top_mates, 'count', 'G')}
          </div>
          <div>
               {self._render_mates_block("🏆 Most wins with", best_mates, 'wins', 'W')}
               {self._render_mates_block("💀 Most losses with", worst_mates, 'losses', 'L', loss_rate=True)}
          </div>
      </div>
    </div>
  </td>
</tr>""".strip()

        return main_row + "\n" + detail_row

    def _render_stat_block(self, recent: RecentStats, maps: List[MapPerformance]) -> str:
        known_maps = [m for m in maps if m.map != UNKNOWN_MAP]
        radar = escape_html(json.dumps({
            'labels': [m.map for m in known_maps],
            'data': [m.winrate_pct for m in known_maps],
        }))
        kd_color = "text-green-400" if safe_float(recent.kd) >= 1 else "text-red-400"
        avg_kills = round(recent.kills / recent.match_count) if recent.match_count else 0

        return f"""
<div class="mb-4">
  <div class="{SECTION_TITLE}">Performance (Last 30)</div>
  <div class="stats-grid {INNER_PANEL}">
    <div><span class="{STAT_LABEL}">K/D</span> <span class="{STAT_VALUE} {kd_color}">{recent.kd}</span></div>
    <div><span class="{STAT_LABEL}">K/R</span> <span class="{STAT_VALUE}">{recent.kr}</span></div>
    <div><span class="{STAT_LABEL}">Avg Kills</span> <span class="{STAT_VALUE}">{avg_kills}</span></div>
    <div><span class="{STAT_LABEL}">HS %</span> <span class="{STAT_VALUE}">{recent.hs_percent}</span></div>
    <div class="stats-totals">
        <span>K: <b>{recent.kills}</b></span>
        <span>A: <b>{recent.assists}</b></span>
        <span>D: <b>{recent.deaths}</b></span>
        <span>ADR: <b>{recent.adr}</b></span>
    </div>
  </div>
  <div class="{INNER_PANEL} radar-panel">
      <div class="{SECTION_TITLE}">🕸️ Performance Web</div>
      <canvas class="radar-chart" data-radar="{radar}"></canvas>
  </div>
</div>"""

    def _render_map_block(self, maps: List[MapPerformance]) -> str:
        if not maps:
            return ""

        rows = []
        for m in maps:
            color = "text-green-400" if m.winrate_pct >= 50 else "text-red-400"
            kd_color = "text-green-400" if safe_float(m.kd) >= 1 else "text-red-400"
            rows.append(f"""
      <tr>
        <td>{escape_html(m.map)}</td>
        <td class="text-center">{m.matches}</td>
        <td class="text-center {color}">{m.winrate_pct}%</td>
        <td class="text-center {kd_color}">{m.kd}</td>
      </tr>""")

        return f"""
<div class="mb-4">
  <div class="{SECTION_TITLE}">🗺️ Map Performance</div>
  <div class="{INNER_PANEL}">
    <table class="map-table">
      <thead><tr><th>Map</th><th>Games</th><th>Win%</th><th>K/D</th></tr></thead>
      <tbody>{"".join(rows)}</tbody>
    </table>
  </div>
</div>"""

    def _render_chart_block(self, player_id: str, history, peak_elo: int) -> str:
        data = escape_html(json.dumps([point.to_dict() for point in history]))
        return f"""
<div class="{INNER_PANEL} chart-panel">
    <div class="chart-header">
        <div class="{SECTION_TITLE}">📈 ELO Trend</div>
        <div class="peak-badge">⭐ Peak: {peak_elo}</div>
    </div>
    <canvas id="chart-{player_id}" class="elo-chart" data-history="{data}"></canvas>
</div>"""

    def _render_mates_block(self, title: str, mates: List[TeammateStats], value_key: str,
                            suffix: str, loss_rate: bool = False) -> str:
        items = []
        for mate in mates:
            pct = 100 - mate.winrate_pct if loss_rate else mate.winrate_pct
            good = pct < 50 if loss_rate else pct >= 50
            items.append(f"""
        <li class="mate-item">
            <a href="{escape_html(mate.url)}" target="_blank" class="nickname-link">{escape_html(mate.nickname)}</a>
            <span class="mate-count">{getattr(mate, value_key)} {suffix} <span class="mate-pct {'pct-good' if good else 'pct-bad'}">{pct}%</span></span>
        </li>""")

        return f"""
<div class="mb-4">
  <div class="{SECTION_TITLE}">{title}</div>
  <ul class="{INNER_PANEL}">{"".join(items)}
  </ul>
</div>"""
