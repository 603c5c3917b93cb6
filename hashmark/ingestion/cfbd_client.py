from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from hashmark.ingestion.http_client import PayloadShapeError, ProviderError, RetryingJsonClient


logger = logging.getLogger(__name__)

CFBD_BASE_URL = "https://api.collegefootballdata.com"


class CFBDClient:
    """CollegeFootballData REST client (bearer-token auth)."""

    def __init__(self, *, api_key: str, http: Optional[RetryingJsonClient] = None, **http_kwargs: Any) -> None:
        self._api_key = (api_key or "").strip()
        if not self._api_key:
            raise ProviderError("CFBD_API_KEY is required")
        self._http = http or RetryingJsonClient(
            base_url=CFBD_BASE_URL,
            headers={"Authorization": f"Bearer {self._api_key}"},
            **http_kwargs,
        )

    def roster(self, *, team: str, year: int) -> Any:
        return self._http.get_json("/roster", params={"team": team, "year": year})

    def player_season_stats(self, *, team: str, year: int) -> Any:
        try:
            return self._http.get_json("/stats/player/season", params={"team": team, "year": year})
        except ProviderError as e:
            # Older accounts expose the same data under /player/season.
            logger.info("CFBD /stats/player/season failed (%s); trying /player/season", e)
            return self._http.get_json("/player/season", params={"team": team, "year": year})

    def season_advanced(self, *, team: str, year: int) -> Any:
        return self._http.get_json("/stats/season/advanced", params={"team": team, "year": year})

    def game_advanced(self, *, team: str, year: int) -> Any:
        return self._http.get_json("/stats/game/advanced", params={"team": team, "year": year})

    def team_season_stats(self, *, team: str, year: int) -> Any:
        return self._http.get_json("/stats/season", params={"team": team, "year": year})

    def games(self, *, team: str, year: int, season_type: str = "regular") -> Any:
        return self._http.get_json("/games", params={"team": team, "year": year, "seasonType": season_type})

    def game_player_stats(self, *, game_id: int) -> Any:
        return self._http.get_json("/games/players", params={"gameId": game_id})

    def latest_completed_game(self, *, team: str, year: int) -> Optional[dict[str, Any]]:
        games = self.games(team=team, year=year, season_type="both")
        if not isinstance(games, list):
            raise PayloadShapeError("Unexpected CFBD /games shape")
        return latest_completed(games)


def _start(game: dict[str, Any]) -> str:
    return str(game.get("startDate") or game.get("start_date") or game.get("date") or "")


def _is_completed(game: dict[str, Any]) -> bool:
    if game.get("completed") is True:
        return True
    home = game.get("homePoints", game.get("home_points"))
    away = game.get("awayPoints", game.get("away_points"))
    return home is not None and away is not None


def latest_completed(games: list[dict[str, Any]]) -> Optional[dict[str, Any]]:
    done = [g for g in games if isinstance(g, dict) and _is_completed(g)]
    if not done:
        return None

    def sort_key(g: dict[str, Any]) -> tuple[datetime, int]:
        raw = _start(g)
        try:
            ts = datetime.fromisoformat(raw.replace("Z", "+00:00")).replace(tzinfo=None)
        except ValueError:
            ts = datetime.min
        return ts, int(g.get("week") or 0)

    return max(done, key=sort_key)
