"""
Known upstream payload shapes for player stat data.

Every provider payload is classified into exactly one variant and parsed by
that variant's parser into flat `ParsedRow`s. Payloads that match none of the
variants come back as `UnknownShape`, which adapters report as a failure.

Variants:
- FlatRows:         [{"player": ..., "passingYards": 120, ...}, ...]
- CategoryRows:     [{"playerId", "player", "category", "statType", "stat"}, ...]  (CFBD season)
- TeamCategoryTree: [{"teams": [{"school", "categories": [{"name", "types": [{"name", "athletes"}]}]}]}]  (CFBD game)
- EspnBoxscore:     {"boxscore": {"players": [{"team", "statistics": [{"name", "labels", "athletes"}]}]}}
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from hashmark.models.records import coerce_player_id


@dataclass(frozen=True)
class ParsedRow:
    name: str
    player_id: Optional[int] = None
    position: Optional[str] = None
    team: Optional[str] = None
    team_id: Optional[str] = None
    stats: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FlatRows:
    rows: list[dict[str, Any]]


@dataclass(frozen=True)
class CategoryRows:
    rows: list[dict[str, Any]]


@dataclass(frozen=True)
class TeamCategoryTree:
    teams: list[dict[str, Any]]


@dataclass(frozen=True)
class EspnBoxscore:
    teams: list[dict[str, Any]]


@dataclass(frozen=True)
class UnknownShape:
    description: str


PayloadShape = Union[FlatRows, CategoryRows, TeamCategoryTree, EspnBoxscore, UnknownShape]

_NAME_KEYS = ("player", "name", "player_name", "athlete_name", "displayName", "fullName")
_ID_KEYS = ("playerId", "athleteId", "athlete_id", "player_id", "id")
_POSITION_KEYS = ("position", "pos", "position_group")
_TEAM_KEYS = ("team", "school", "team_name")
_META_KEYS = set(_NAME_KEYS) | set(_ID_KEYS) | set(_POSITION_KEYS) | set(_TEAM_KEYS) | {
    "season",
    "year",
    "week",
    "conference",
    "first_name",
    "last_name",
    "firstName",
    "lastName",
    "category",
    "statType",
    "stat",
}


def _first(row: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for k in keys:
        v = row.get(k)
        if v not in (None, ""):
            return v
    return None


def _row_name(row: dict[str, Any]) -> str:
    name = _first(row, _NAME_KEYS)
    if isinstance(name, str) and name.strip():
        return name.strip()
    first = row.get("first_name") or row.get("firstName") or ""
    last = row.get("last_name") or row.get("lastName") or ""
    return f"{first} {last}".strip()


def _team_name(team: Any) -> Optional[str]:
    if isinstance(team, dict):
        return team.get("school") or team.get("displayName") or team.get("location") or team.get("name")
    if isinstance(team, str) and team.strip():
        return team.strip()
    return None


def detect_shape(payload: Any) -> PayloadShape:
    if isinstance(payload, dict):
        box = payload.get("boxscore")
        if isinstance(box, dict) and isinstance(box.get("players"), list):
            return EspnBoxscore(teams=[t for t in box["players"] if isinstance(t, dict)])
        if isinstance(payload.get("teams"), list):
            return TeamCategoryTree(teams=[t for t in payload["teams"] if isinstance(t, dict)])
        return UnknownShape(f"object with keys {sorted(payload)[:8]}")

    if not isinstance(payload, list):
        return UnknownShape(f"unexpected payload type {type(payload).__name__}")
    if not payload:
        # An empty list is a valid (empty) flat result.
        return FlatRows(rows=[])

    rows = [r for r in payload if isinstance(r, dict)]
    if not rows:
        return UnknownShape("list without object rows")

    head = rows[0]
    if isinstance(head.get("teams"), list):
        teams: list[dict[str, Any]] = []
        for game in rows:
            teams.extend(t for t in game.get("teams") or [] if isinstance(t, dict))
        return TeamCategoryTree(teams=teams)
    if isinstance(head.get("categories"), list):
        return TeamCategoryTree(teams=rows)
    if "category" in head and ("statType" in head or "stat_type" in head) and "stat" in head:
        return CategoryRows(rows=rows)
    if _row_name(head):
        return FlatRows(rows=rows)
    return UnknownShape(f"rows with keys {sorted(head)[:8]}")


def _parse_flat(shape: FlatRows) -> list[ParsedRow]:
    out: list[ParsedRow] = []
    for row in shape.rows:
        name = _row_name(row)
        if not name:
            continue
        stats = {k: v for k, v in row.items() if k not in _META_KEYS}
        out.append(
            ParsedRow(
                name=name,
                player_id=coerce_player_id(_first(row, _ID_KEYS)),
                position=_first(row, _POSITION_KEYS),
                team=_team_name(_first(row, _TEAM_KEYS)),
                stats=stats,
            )
        )
    return out


def _parse_category_rows(shape: CategoryRows) -> list[ParsedRow]:
    folded: dict[str, dict[str, Any]] = {}
    for row in shape.rows:
        name = _row_name(row)
        pid = coerce_player_id(_first(row, _ID_KEYS))
        if not name and pid is None:
            continue
        key = f"id:{pid}" if pid is not None else f"name:{name.lower()}"
        entry = folded.setdefault(
            key,
            {
                "name": name,
                "player_id": pid,
                "position": _first(row, _POSITION_KEYS),
                "team": _team_name(_first(row, _TEAM_KEYS)),
                "stats": {},
            },
        )
        category = str(row.get("category") or "").strip()
        stat_type = str(row.get("statType") or row.get("stat_type") or "").strip()
        if not stat_type:
            continue
        stat_key = f"{category}_{stat_type}" if category else stat_type
        entry["stats"][stat_key] = row.get("stat")
    return [ParsedRow(**e) for e in folded.values() if e["name"]]


def _fold_category(
    folded: dict[str, dict[str, Any]],
    *,
    category: str,
    labels: list[str],
    athlete_id: Any,
    name: str,
    position: Optional[str],
    team: Optional[str],
    team_id: Optional[str],
    values: list[Any],
) -> None:
    pid = coerce_player_id(athlete_id)
    if not name and pid is None:
        return
    key = f"id:{pid}" if pid is not None else f"name:{name.lower()}"
    entry = folded.setdefault(
        key,
        {"name": name, "player_id": pid, "position": position, "team": team, "team_id": team_id, "stats": {}},
    )
    if not entry["name"] and name:
        entry["name"] = name
    if not entry["position"] and position:
        entry["position"] = position
    for label, value in zip(labels, values):
        label = str(label).strip()
        if label.upper() == "C/ATT" and isinstance(value, str) and "/" in value:
            cmp_, att = value.split("/", 1)
            entry["stats"][f"{category}_completions"] = cmp_
            entry["stats"][f"{category}_att"] = att
            continue
        entry["stats"][f"{category}_{label}"] = value


def _parse_team_tree(shape: TeamCategoryTree) -> list[ParsedRow]:
    folded: dict[str, dict[str, Any]] = {}
    for team in shape.teams:
        team_name = _team_name(team.get("school") or team.get("team"))
        team_id = str(team.get("teamId") or team.get("id") or "") or None
        for cat in team.get("categories") or []:
            if not isinstance(cat, dict):
                continue
            category = str(cat.get("name") or "").strip()
            for stat_type in cat.get("types") or []:
                if not isinstance(stat_type, dict):
                    continue
                label = str(stat_type.get("name") or "").strip()
                for a in stat_type.get("athletes") or []:
                    if not isinstance(a, dict):
                        continue
                    _fold_category(
                        folded,
                        category=category,
                        labels=[label],
                        athlete_id=a.get("id") or a.get("athleteId"),
                        name=str(a.get("name") or "").strip(),
                        position=a.get("position") or a.get("pos"),
                        team=team_name,
                        team_id=team_id,
                        values=[a.get("stat")],
                    )
    return [ParsedRow(**e) for e in folded.values() if e["name"]]


def _parse_espn_boxscore(shape: EspnBoxscore) -> list[ParsedRow]:
    folded: dict[str, dict[str, Any]] = {}
    for team in shape.teams:
        team_obj = team.get("team") if isinstance(team.get("team"), dict) else {}
        team_name = _team_name(team_obj)
        team_id = str(team_obj.get("id")) if team_obj.get("id") is not None else None
        for stat in team.get("statistics") or []:
            if not isinstance(stat, dict):
                continue
            category = str(stat.get("name") or "").strip()
            labels = list(stat.get("labels") or [])
            for a in stat.get("athletes") or []:
                if not isinstance(a, dict):
                    continue
                athlete = a.get("athlete") if isinstance(a.get("athlete"), dict) else {}
                pos = athlete.get("position")
                if isinstance(pos, dict):
                    pos = pos.get("abbreviation")
                _fold_category(
                    folded,
                    category=category,
                    labels=labels,
                    athlete_id=athlete.get("id") or a.get("id"),
                    name=str(athlete.get("displayName") or athlete.get("fullName") or a.get("name") or "").strip(),
                    position=pos,
                    team=team_name,
                    team_id=team_id,
                    values=list(a.get("stats") or []),
                )
    return [ParsedRow(**e) for e in folded.values() if e["name"]]


def parse_rows(shape: PayloadShape) -> list[ParsedRow]:
    """Parse a classified payload. UnknownShape is the caller's problem; it yields []."""
    if isinstance(shape, FlatRows):
        return _parse_flat(shape)
    if isinstance(shape, CategoryRows):
        return _parse_category_rows(shape)
    if isinstance(shape, TeamCategoryTree):
        return _parse_team_tree(shape)
    if isinstance(shape, EspnBoxscore):
        return _parse_espn_boxscore(shape)
    return []


def find_season(node: Any, *, max_nodes: int = 5000) -> Optional[int]:
    """
    Best-effort season/year lookup anywhere in a payload.

    Only four-digit values > 1900 count, so class years (1-5) and jersey
    numbers never match.
    """
    seen: set[int] = set()
    stack = [node]
    visited = 0
    while stack and visited < max_nodes:
        current = stack.pop()
        if not isinstance(current, (dict, list)) or id(current) in seen:
            continue
        seen.add(id(current))
        visited += 1
        if isinstance(current, list):
            stack.extend(reversed(current))
            continue
        candidates: list[Any] = []
        season = current.get("season")
        if isinstance(season, dict):
            candidates.extend([season.get("year"), season.get("season"), season.get("displayYear")])
        else:
            candidates.append(season)
        candidates.extend([current.get("year"), current.get("seasonYear")])
        for candidate in candidates:
            try:
                value = int(str(candidate).strip())
            except (TypeError, ValueError):
                continue
            if value > 1900:
                return value
        stack.extend(v for v in current.values() if isinstance(v, (dict, list)))
    return None
