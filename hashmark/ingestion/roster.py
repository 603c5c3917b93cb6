from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Iterable, Optional

from hashmark.models.records import Player, coerce_int, coerce_player_id, normalize_name


logger = logging.getLogger(__name__)


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _position(raw: dict[str, Any]) -> Optional[str]:
    pos = raw.get("position")
    if isinstance(pos, dict):
        pos = pos.get("abbreviation") or pos.get("displayName") or pos.get("name")
    pos = pos or raw.get("pos")
    text = _text(pos)
    return text.upper() if text else None


def _height(raw: dict[str, Any]) -> Optional[str]:
    value = raw.get("displayHeight") or raw.get("height") or raw.get("ht")
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        inches = int(value)
        # CFBD and cfbfastR report total inches.
        if 48 <= inches <= 96:
            return f"{inches // 12}' {inches % 12}\""
        return str(inches)
    return str(value).strip() or None


def _weight(raw: dict[str, Any]) -> Optional[int]:
    value = raw.get("weight") or raw.get("wt") or raw.get("displayWeight")
    if isinstance(value, str):
        value = value.lower().replace("lbs", "").strip()
    return coerce_int(value)


def _class_year(raw: dict[str, Any]) -> Optional[str]:
    value = raw.get("class") or raw.get("experienceClass") or raw.get("year")
    if isinstance(value, dict):
        value = value.get("displayValue") or value.get("abbreviation")
    return _text(value)


def _profile_url(raw: dict[str, Any]) -> Optional[str]:
    for link in raw.get("links") or []:
        if isinstance(link, dict) and "player/" in str(link.get("href") or ""):
            return str(link["href"])
    return _text(raw.get("profileUrl") or raw.get("profile_url"))


def map_player(raw: dict[str, Any]) -> Optional[Player]:
    """Map one upstream roster row (ESPN, CFBD, cfbfastR or cached) onto a Player."""
    if not isinstance(raw, dict):
        return None
    core = raw.get("athlete") if isinstance(raw.get("athlete"), dict) else raw
    name = (
        core.get("displayName")
        or core.get("fullName")
        or core.get("name")
        or " ".join(p for p in (core.get("firstName") or core.get("first_name"), core.get("lastName") or core.get("last_name")) if p)
    )
    name = _text(name)
    if not name:
        return None
    return Player(
        name=name,
        id=coerce_player_id(core.get("id") or core.get("athleteId") or core.get("athlete_id") or core.get("playerId")),
        position=_position(core),
        jersey_number=coerce_int(core.get("jersey") or core.get("uniform") or core.get("number")),
        height_text=_height(core),
        weight=_weight(core),
        class_year=_class_year(core),
        profile_url=_profile_url(core),
    )


def normalize_roster(rows: Iterable[dict[str, Any]], counters: Optional[Counter] = None) -> list[Player]:
    """
    Map, dedupe and sort upstream roster rows.

    Dedup key is the id when present, otherwise the normalized name. A
    name-only row whose name already belongs to an id'd player is dropped.
    """
    counters = counters if counters is not None else Counter()
    by_id: dict[int, Player] = {}
    by_name: dict[str, Player] = {}
    for raw in rows:
        player = map_player(raw)
        if player is None:
            counters["roster_dropped_missing_name"] += 1
            continue
        key = normalize_name(player.name)
        if player.id is not None:
            if player.id in by_id:
                counters["roster_dropped_duplicate"] += 1
                continue
            by_id[player.id] = player
            # an id'd row supersedes an earlier name-only row
            if key in by_name and by_name[key].id is None:
                del by_name[key]
                counters["roster_dropped_duplicate"] += 1
            by_name.setdefault(key, player)
            continue
        if key in by_name:
            counters["roster_dropped_duplicate"] += 1
            continue
        by_name[key] = player

    players = list(by_id.values()) + [p for p in by_name.values() if p.id is None]
    return sorted(players, key=lambda p: (p.name.lower(), p.id or 0))
