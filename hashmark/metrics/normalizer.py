from __future__ import annotations

import re
from typing import Any, Mapping, Optional

from hashmark.models.records import DEFENSE, OFFENSE


# Canonical stat code -> upstream key names, most preferred first.
# Every canonical code is also its own alias so a normalized statline
# normalizes to itself.
OFFENSE_ALIASES: dict[str, tuple[str, ...]] = {
    "cmp": ("cmp", "completions", "passCompletions", "pass_cmp", "passing_completions", "passCmp"),
    "att": ("att", "attempts", "passAttempts", "pass_att", "passing_attempts", "passing_att", "passAtt"),
    "pass_yds": (
        "pass_yds",
        "passingYards",
        "passYards",
        "passYds",
        "passing_yards",
        "passing_yds",
        "yards_passing",
    ),
    "pass_td": (
        "pass_td",
        "passingTds",
        "passingTDs",
        "passingTouchdowns",
        "passTd",
        "passing_touchdowns",
        "passing_td",
    ),
    "int": ("int", "interceptionsThrown", "passInt", "pass_int", "passing_int", "passing_interceptions", "interceptions"),
    "car": ("car", "rushingAttempts", "carries", "rush_att", "rushAtt", "rushing_attempts", "rushing_car"),
    "rush_yds": (
        "rush_yds",
        "rushingYards",
        "rushYds",
        "rushYards",
        "yards_rushing",
        "rushing_yards",
        "rushing_yds",
    ),
    "rush_td": ("rush_td", "rushingTds", "rushingTDs", "rushingTouchdowns", "rushTd", "rushing_touchdowns", "rushing_td"),
    "rec": ("rec", "receptions", "receiving_rec", "receiving_receptions"),
    "rec_yds": (
        "rec_yds",
        "receivingYards",
        "recYds",
        "recYards",
        "receiving_yards",
        "receiving_yds",
        "yards_receiving",
    ),
    "rec_td": (
        "rec_td",
        "receivingTds",
        "receivingTDs",
        "receivingTouchdowns",
        "recTd",
        "receiving_touchdowns",
        "receiving_td",
    ),
    "fum": ("fum", "fumblesLost", "fumbles_lost", "fum_lost", "lost"),
}

DEFENSE_ALIASES: dict[str, tuple[str, ...]] = {
    "tkl": ("tkl", "tackles", "totalTackles", "tot_tackles", "totl", "defensive_tot", "defensive_tackles"),
    "solo": ("solo", "soloTackles", "solo_tackles", "defensive_solo"),
    "tfl": ("tfl", "tacklesForLoss", "tackles_for_loss", "defensive_tfl"),
    "sacks": ("sacks", "sack", "defensive_sacks"),
    "def_int": (
        "def_int",
        "interceptionsDefended",
        "defInterceptions",
        "defIntercept",
        "defensive_int",
        "interceptions_int",
        "interceptions_interceptions",
        "interceptions",
    ),
    "pd": ("pd", "passesDefended", "pbu", "pbus", "pdus", "passBreakUps", "passes_defended", "defensive_pd"),
    "ff": ("ff", "forcedFumbles", "forced_fumbles", "fumbles_forced", "defensive_ff"),
    "fr": ("fr", "fumblesRecovered", "fumbles_recovered", "fumbles_rec"),
}

ALIASES_BY_SIDE = {OFFENSE: OFFENSE_ALIASES, DEFENSE: DEFENSE_ALIASES}


def _clean_key(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "", str(name).lower())


def coerce_number(value: Any) -> Optional[float]:
    """Display-side parse: None when the value is missing or not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if value == value else None
    s = str(value).strip().replace(",", "")
    if s in {"", "-", "--", "None", "NA", "NaN", "null"}:
        return None
    try:
        num = float(s)
    except ValueError:
        return None
    return num if num == num else None


def stat_value(statline: Mapping[str, Any], code: str) -> float:
    """Scoring-side parse: missing or non-numeric counts as 0."""
    num = coerce_number(statline.get(code))
    return num if num is not None else 0.0


def format_number(num: float) -> str:
    if float(num).is_integer():
        return str(int(num))
    return f"{num:.1f}"


def _lookup(row: Mapping[str, Any], cleaned: dict[str, Any], aliases: tuple[str, ...]) -> Optional[float]:
    for alias in aliases:
        if alias in row:
            num = coerce_number(row[alias])
            if num is not None:
                return num
    for alias in aliases:
        key = _clean_key(alias)
        if key in cleaned:
            num = coerce_number(cleaned[key])
            if num is not None:
                return num
    return None


def normalize_statline(row: Mapping[str, Any] | None, side: str) -> dict[str, str]:
    """
    Map one upstream stat row onto the canonical statline for `side`.

    Fields with no resolvable key are omitted; nothing here raises.
    """
    if not isinstance(row, Mapping) or side not in ALIASES_BY_SIDE:
        return {}
    cleaned: dict[str, Any] = {}
    for k, v in row.items():
        cleaned.setdefault(_clean_key(k), v)

    statline: dict[str, str] = {}
    for code, aliases in ALIASES_BY_SIDE[side].items():
        num = _lookup(row, cleaned, aliases)
        if num is not None:
            statline[code] = format_number(num)
    return statline
