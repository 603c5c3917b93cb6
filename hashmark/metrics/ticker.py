"""
Team ticker.

A short strip of team-level trends (season value vs. the latest game) plus
the season's statistical leaders, built from CFBD alone. Every upstream call
is optional: a call that fails just removes its items.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Optional

from hashmark.ingestion.http_client import ProviderError
from hashmark.metrics.normalizer import coerce_number, format_number
from hashmark.models.records import normalize_name, now_iso


logger = logging.getLogger(__name__)

TREND_TOLERANCE = 0.005


@dataclass(frozen=True)
class TickerMetric:
    label: str
    path: tuple[str, ...]
    # key used by the older flat advanced-stats rows
    flat_key: str
    kind: str
    invert: bool = False

    @property
    def unit(self) -> str:
        return "%" if self.kind == "pct" else ""


ADVANCED_METRICS = (
    TickerMetric("Off SR", ("offense", "successRate"), "off_success_rate", "pct"),
    TickerMetric("Pass SR", ("offense", "passingPlays", "successRate"), "off_passing_success_rate", "pct"),
    TickerMetric("Rush SR", ("offense", "rushingPlays", "successRate"), "off_rushing_success_rate", "pct"),
    TickerMetric("Off PPA/play", ("offense", "ppa"), "off_ppa", "ppa"),
    TickerMetric("Havoc Allowed", ("offense", "havoc", "total"), "off_havoc_total", "pct", invert=True),
    TickerMetric("Def SR allowed", ("defense", "successRate"), "def_success_rate", "pct", invert=True),
)

# (category, statType, unit)
LEADERS = (
    ("passing", "YDS", "yd"),
    ("rushing", "YDS", "rush"),
    ("receiving", "YDS", "rec"),
    ("kicking", "PTS", "pts"),
)


def _round_half_up(value: float, digits: int) -> float:
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def metric_value(row: Optional[dict[str, Any]], metric: TickerMetric) -> Optional[float]:
    if not row:
        return None
    node: Any = row
    for step in metric.path:
        node = node.get(step) if isinstance(node, dict) else None
    raw = coerce_number(node)
    if raw is None:
        raw = coerce_number(row.get(metric.flat_key))
    if raw is None:
        return None
    if metric.kind == "pct":
        return _round_half_up(raw * 100, 1)
    return _round_half_up(raw, 2)


def trend(season: Optional[float], last: Optional[float], *, invert: bool = False) -> tuple[str, float]:
    if season is None or last is None:
        return "steady", 0.0
    delta = last - season
    if invert:
        delta = -delta
    if abs(delta) < TREND_TOLERANCE:
        return "steady", delta
    return ("up" if delta > 0 else "down"), delta


def compact(value: float) -> str:
    if abs(value) >= 1000:
        return f"{value / 1000:.1f}k"
    return format_number(value)


def _team_rows(rows: list[dict[str, Any]], team: str) -> list[dict[str, Any]]:
    want = normalize_name(team)
    return [r for r in rows if normalize_name(r.get("team") or r.get("school")) == want]


def advanced_items(season_row: Optional[dict[str, Any]], last_row: Optional[dict[str, Any]]) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    for metric in ADVANCED_METRICS:
        season = metric_value(season_row, metric)
        last = metric_value(last_row, metric)
        if season is None and last is None:
            continue
        direction, delta = trend(season, last, invert=metric.invert)
        items.append(
            {
                "label": metric.label,
                "unit": metric.unit,
                "val": season if season is not None else last,
                "last": last,
                "d": direction,
                "delta": round(delta, 3),
            }
        )
    return items


def yards_per_play_item(team_stats: list[dict[str, Any]]) -> Optional[dict[str, Any]]:
    totals: dict[str, float] = {}
    for row in team_stats:
        name = row.get("statName") or row.get("stat_name")
        value = coerce_number(row.get("statValue", row.get("stat_value")))
        if name and value is not None:
            totals[str(name)] = value
    plays = totals.get("rushingAttempts", 0.0) + totals.get("passAttempts", 0.0)
    if "totalYards" not in totals or plays <= 0:
        return None
    ypp = _round_half_up(totals["totalYards"] / plays, 2)
    return {"label": "Yds/Play", "unit": "", "val": ypp, "last": None, "d": "steady", "delta": 0.0}


def leader_items(player_rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    for category, stat_type, unit in LEADERS:
        best: Optional[tuple[float, str]] = None
        for row in player_rows:
            if str(row.get("category") or "").lower() != category:
                continue
            if str(row.get("statType") or "").upper() != stat_type:
                continue
            value = coerce_number(row.get("stat"))
            name = row.get("player")
            if value is None or not name:
                continue
            if best is None or value > best[0]:
                best = (value, str(name))
        if best is not None:
            items.append({"label": best[1], "unit": unit, "val": compact(best[0]), "d": "steady"})
    return items


def _fetch_rows(label: str, call: Callable[[], Any]) -> list[dict[str, Any]]:
    try:
        payload = call()
    except ProviderError as e:
        logger.warning("ticker: %s unavailable: %s", label, e)
        return []
    if not isinstance(payload, list):
        logger.warning("ticker: unexpected %s payload (%s)", label, type(payload).__name__)
        return []
    return [r for r in payload if isinstance(r, dict)]


def build_ticker(client: Any, *, team: str, year: int) -> dict[str, Any]:
    """Ticker document for `team`; `items` is empty when CFBD gave us nothing usable."""
    season_adv = _team_rows(_fetch_rows("season advanced", lambda: client.season_advanced(team=team, year=year)), team)
    game_adv = [
        r
        for r in _team_rows(_fetch_rows("game advanced", lambda: client.game_advanced(team=team, year=year)), team)
        if r.get("week") is not None
    ]
    last_game: Optional[dict[str, Any]] = None
    last_week: Optional[int] = None
    if game_adv:
        last_game = max(game_adv, key=lambda r: coerce_number(r.get("week")) or 0.0)
        last_week = int(coerce_number(last_game.get("week")) or 0) or None

    items = advanced_items(season_adv[0], last_game) if season_adv else []
    if not items:
        team_stats = _team_rows(_fetch_rows("team season", lambda: client.team_season_stats(team=team, year=year)), team)
        ypp = yards_per_play_item(team_stats)
        if ypp is not None:
            items.append(ypp)

    players = _team_rows(_fetch_rows("player season", lambda: client.player_season_stats(team=team, year=year)), team)
    items.extend(leader_items(players))
    logger.info("Ticker for %s %s: %d items (last week %s)", team, year, len(items), last_week)
    return {"year": year, "team": team, "lastWeek": last_week, "items": items, "generated_at": now_iso()}
