from __future__ import annotations

from typing import Any, Optional

from hashmark.config import PipelineConfig
from hashmark.ingestion.adapters import ProviderAdapter
from hashmark.ingestion.http_client import ProviderError
from hashmark.models.records import Player, RosterSnapshot


SEASON = 2025
TEAM_ID = 96


def roster_rows(n: int, *, with_ids: Optional[int] = None, start_id: int = 4430000) -> list[dict[str, Any]]:
    """`n` ESPN-style athlete rows; the first `with_ids` of them carry an id."""
    with_ids = n if with_ids is None else with_ids
    positions = ["QB", "RB", "WR", "TE", "OL", "DL", "LB", "CB", "S"]
    rows: list[dict[str, Any]] = []
    for i in range(n):
        row: dict[str, Any] = {
            "displayName": f"Player {i:03d}",
            "position": {"abbreviation": positions[i % len(positions)]},
            "jersey": str(i % 99 + 1),
        }
        if i < with_ids:
            row["id"] = str(start_id + i)
        rows.append(row)
    return rows


def make_snapshot(n: int, *, season: int = SEASON, source: str = "espn", start_id: int = 4430000) -> RosterSnapshot:
    players = tuple(
        Player(name=f"Player {i:03d}", id=start_id + i, position="WR") for i in range(n)
    )
    return RosterSnapshot(team_id=TEAM_ID, season=season, players=players, source=source)


class FakeAdapter(ProviderAdapter):
    """Adapter driven by canned payloads; `None` means the upstream is down."""

    def __init__(
        self,
        config: PipelineConfig,
        name: str,
        *,
        roster: Optional[list[dict[str, Any]]] = None,
        roster_season: Optional[int] = None,
        stats: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(config)
        self.name = name
        self.roster = roster
        self.roster_season = roster_season
        self.stats = stats or {}
        self.stats_calls: list[str] = []

    def _roster_rows(self) -> tuple[list[dict[str, Any]], Optional[int]]:
        if self.roster is None:
            raise ProviderError(f"{self.name} roster unavailable")
        return self.roster, self.roster_season

    def _stats_payload(self, scope: str) -> Any:
        self.stats_calls.append(scope)
        if scope not in self.stats:
            raise ProviderError(f"{self.name} {scope} unavailable")
        return self.stats[scope]


def stat_row(name: str, pid: Optional[int], position: str, **stats: Any) -> dict[str, Any]:
    row: dict[str, Any] = {"player": name, "position": position, "season": SEASON}
    if pid is not None:
        row["id"] = pid
    row.update(stats)
    return row


SEASON_ADVANCED = [
    {
        "season": 2025,
        "team": "Kentucky",
        "offense": {
            "successRate": 0.452,
            "ppa": 0.21,
            "passingPlays": {"successRate": 0.44},
            "rushingPlays": {"successRate": 0.47},
            "havoc": {"total": 0.15},
        },
        "defense": {"successRate": 0.40},
    },
    {"season": 2025, "team": "Western Kentucky", "offense": {"successRate": 0.61}},
]

GAME_ADVANCED = [
    {"week": 3, "team": "Kentucky", "offense": {"successRate": 0.38}},
    {
        "week": 5,
        "team": "Kentucky",
        "offense": {"successRate": 0.50, "ppa": 0.18, "passingPlays": {"successRate": 0.44}, "havoc": {"total": 0.10}},
        "defense": {"successRate": 0.45},
    },
    {"week": 9, "team": "Western Kentucky", "offense": {"successRate": 0.2}},
]

PLAYER_ROWS = [
    {"player": "Quinn Arm", "team": "Kentucky", "category": "passing", "statType": "YDS", "stat": "2512"},
    {"player": "Ray Back", "team": "Kentucky", "category": "rushing", "statType": "YDS", "stat": "812"},
    {"player": "Bo Run", "team": "Kentucky", "category": "rushing", "statType": "YDS", "stat": "640"},
    {"player": "Kit Boot", "team": "Kentucky", "category": "kicking", "statType": "PTS", "stat": "88"},
    {"player": "Hill Topper", "team": "Western Kentucky", "category": "passing", "statType": "YDS", "stat": "3900"},
]


class StubTickerClient:
    """CFBD stand-in; an Exception value is raised instead of returned."""

    def __init__(self, season=SEASON_ADVANCED, games=GAME_ADVANCED, team_stats=(), players=PLAYER_ROWS):
        self.payloads = {
            "season_advanced": season,
            "game_advanced": games,
            "team_season_stats": list(team_stats),
            "player_season_stats": players,
        }
        self.calls = []

    def _answer(self, name, team, year):
        self.calls.append((name, team, year))
        payload = self.payloads[name]
        if isinstance(payload, Exception):
            raise payload
        return payload

    def season_advanced(self, *, team, year):
        return self._answer("season_advanced", team, year)

    def game_advanced(self, *, team, year):
        return self._answer("game_advanced", team, year)

    def team_season_stats(self, *, team, year):
        return self._answer("team_season_stats", team, year)

    def player_season_stats(self, *, team, year):
        return self._answer("player_season_stats", team, year)
