from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


OFFENSE = "offense"
DEFENSE = "defense"
SIDES = (OFFENSE, DEFENSE)

LAST_GAME = "last_game"
SEASON = "season"
SCOPES = (LAST_GAME, SEASON)

# (side, scope) -> published file name
SPOTLIGHT_FILES: dict[tuple[str, str], str] = {
    (OFFENSE, LAST_GAME): "spotlight_offense_last.json",
    (DEFENSE, LAST_GAME): "spotlight_defense_last.json",
    (OFFENSE, SEASON): "spotlight_offense_season.json",
    (DEFENSE, SEASON): "spotlight_defense_season.json",
}
FEATURED_FILE = "spotlight_featured.json"

HEADSHOT_URL = "https://a.espncdn.com/i/headshots/college-football/players/full/{id}.png"
PROFILE_URL = "https://www.espn.com/college-football/player/_/id/{id}"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def bucket_key(side: str, scope: str) -> str:
    return f"{side}_{scope}"


def normalize_name(value: Any) -> str:
    """Lowercase, trim and collapse inner whitespace; '' for non-strings."""
    if not isinstance(value, str):
        return ""
    return re.sub(r"\s+", " ", value).strip().lower()


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", (value or "").lower()).strip("-")


def coerce_player_id(value: Any) -> Optional[int]:
    """Upstream ids arrive as ints, numeric strings, or floats from CSV readers."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    s = str(value).strip()
    if not s:
        return None
    try:
        num = float(s)
    except ValueError:
        return None
    if num != num or num <= 0 or not num.is_integer():
        return None
    return int(num)


def coerce_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    s = str(value).strip()
    try:
        num = float(s)
    except ValueError:
        return None
    if num != num or not num.is_integer():
        return None
    return int(num)


@dataclass(frozen=True)
class Player:
    name: str
    id: Optional[int] = None
    position: Optional[str] = None
    jersey_number: Optional[int] = None
    height_text: Optional[str] = None
    weight: Optional[int] = None
    class_year: Optional[str] = None
    profile_url: Optional[str] = None

    @property
    def headshot_url(self) -> str:
        return HEADSHOT_URL.format(id=self.id) if self.id is not None else ""

    @property
    def profile_link(self) -> str:
        if self.profile_url:
            return self.profile_url
        return PROFILE_URL.format(id=self.id) if self.id is not None else ""

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "pos": self.position,
            "number": self.jersey_number,
            "class": self.class_year,
            "height": self.height_text,
            "weight": self.weight,
            "profile_url": self.profile_link or None,
            "headshot": self.headshot_url,
        }

    @classmethod
    def from_json(cls, row: dict[str, Any]) -> Optional["Player"]:
        name = row.get("name")
        if not isinstance(name, str) or not name.strip():
            return None
        return cls(
            name=name.strip(),
            id=coerce_player_id(row.get("id")),
            position=row.get("pos") or row.get("position"),
            jersey_number=coerce_int(row.get("number")),
            height_text=row.get("height"),
            weight=coerce_int(row.get("weight")),
            class_year=row.get("class"),
            profile_url=row.get("profile_url"),
        )


@dataclass(frozen=True)
class PlayerRef:
    """Weak reference into a roster snapshot: an id, a name, or both."""

    id: Optional[int] = None
    name: Optional[str] = None

    def dedup_key(self) -> str:
        if self.id is not None:
            return f"id:{self.id}"
        return f"name:{normalize_name(self.name)}"


@dataclass(frozen=True)
class RosterSnapshot:
    team_id: int
    season: int
    players: tuple[Player, ...]
    source: str
    generated_at: str = field(default_factory=now_iso)

    @property
    def id_coverage(self) -> float:
        if not self.players:
            return 0.0
        return sum(1 for p in self.players if p.id is not None) / len(self.players)

    def to_meta(self, *, strict: bool, last_good_reuse: bool) -> dict[str, Any]:
        return {
            "teamId": self.team_id,
            "season": self.season,
            "source": self.source,
            "strict": strict,
            "lastGoodReuse": last_good_reuse,
            "generated_at": self.generated_at,
            "players": len(self.players),
        }


@dataclass(frozen=True)
class StatRecord:
    player_ref: PlayerRef
    scope: str
    side: str
    statline: dict[str, str]
    score: float
    source: str
    position: Optional[str] = None


@dataclass(frozen=True)
class SpotlightSet:
    """Published rows for one (side, scope) bucket, best first."""

    side: str
    scope: str
    rows: tuple[dict[str, Any], ...]
    source: str

    @property
    def key(self) -> str:
        return bucket_key(self.side, self.scope)

    @property
    def file_name(self) -> str:
        return SPOTLIGHT_FILES[(self.side, self.scope)]

    def __len__(self) -> int:
        return len(self.rows)


@dataclass(frozen=True)
class Failure:
    """Adapter outcome when no usable data came back."""

    adapter: str
    reason: str
    kind: str = "transport"
    detected_season: Optional[int] = None

    def __bool__(self) -> bool:
        return False


@dataclass
class BuildMeta:
    mode: str
    state: str
    season: int
    team_id: int
    roster_source: Optional[str] = None
    buckets: dict[str, str] = field(default_factory=dict)
    counters: dict[str, int] = field(default_factory=dict)
    failures: list[str] = field(default_factory=list)
    ticker: Optional[str] = None
    generated_at: str = field(default_factory=now_iso)

    def to_json(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "state": self.state,
            "season": self.season,
            "teamId": self.team_id,
            "rosterSource": self.roster_source,
            "buckets": dict(sorted(self.buckets.items())),
            "counters": dict(sorted(self.counters.items())),
            "failures": list(self.failures),
            "ticker": self.ticker,
            "generatedAt": self.generated_at,
        }
