from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from bs4 import BeautifulSoup

from hashmark.ingestion.http_client import PayloadShapeError, RetryingJsonClient
from hashmark.ingestion.shapes import find_season


logger = logging.getLogger(__name__)

ESPN_SITE_API = "https://site.api.espn.com/apis/site/v2/sports/football/college-football"
ESPN_WEB_API = "https://site.web.api.espn.com/apis/site/v2/sports/football/college-football"
ESPN_ROSTER_PAGE = "https://www.espn.com/college-football/team/roster/_/id/{team_id}"

REGULAR_SEASON = 2
POSTSEASON = 3

_HEADING_SEASON = re.compile(r"(\d{4})\b.*\broster", re.IGNORECASE)
_EMBEDDED_STATE = re.compile(r"window\[['\"](?:__espnfitt__|__NUXT_DATA__)['\"]\]\s*=\s*(\{.*\})\s*;", re.DOTALL)


class ESPNClient:
    """Public ESPN site API (no auth), plus the team roster web page."""

    def __init__(self, *, http: Optional[RetryingJsonClient] = None, **http_kwargs: Any) -> None:
        self._http = http or RetryingJsonClient(headers={"Cache-Control": "no-cache"}, **http_kwargs)

    def team_roster(self, team_id: int) -> Any:
        return self._http.get_json(f"{ESPN_WEB_API}/teams/{team_id}", params={"enable": "roster"})

    def schedule(self, team_id: int, *, season: Optional[int] = None, season_type: Optional[int] = None) -> Any:
        params: dict[str, Any] = {}
        if season:
            params["season"] = season
        if season_type:
            params["seasontype"] = season_type
        return self._http.get_json(f"{ESPN_SITE_API}/teams/{team_id}/schedule", params=params or None)

    def boxscore(self, event_id: str) -> Any:
        return self._http.get_json(f"{ESPN_SITE_API}/summary", params={"event": event_id})

    def roster_page(self, team_id: int) -> str:
        return self._http.get_text(ESPN_ROSTER_PAGE.format(team_id=team_id))


def merge_schedules(*schedules: Any) -> dict[str, Any]:
    """One schedule payload holding the events of several season types."""
    events: list[Any] = []
    for schedule in schedules:
        if isinstance(schedule, dict):
            events.extend(schedule.get("events") or [])
    return {"events": events}


def _event_completed(event: dict[str, Any]) -> bool:
    status = event.get("status")
    if not isinstance(status, dict):
        comps = event.get("competitions") or []
        status = comps[0].get("status") if comps and isinstance(comps[0], dict) else None
    if not isinstance(status, dict):
        return False
    status_type = status.get("type") if isinstance(status.get("type"), dict) else {}
    return bool(status_type.get("completed"))


def latest_completed_event(schedule: Any) -> Optional[dict[str, Any]]:
    events = schedule.get("events") if isinstance(schedule, dict) else None
    done = [e for e in events or [] if isinstance(e, dict) and _event_completed(e)]
    if not done:
        return None
    return max(done, key=lambda e: str(e.get("date") or ""))


def roster_athletes(payload: Any) -> list[dict[str, Any]]:
    """Flatten the grouped athlete lists of a team payload."""
    if not isinstance(payload, dict):
        return []
    team = payload.get("team") if isinstance(payload.get("team"), dict) else {}
    groups = team.get("athletes") or payload.get("athletes") or []
    players: list[dict[str, Any]] = []
    for group in groups:
        if not isinstance(group, dict):
            continue
        # grouped by position ({"items": [...]}) or already flat
        items = group.get("items") or group.get("athletes")
        if items is None and (group.get("id") or group.get("displayName")):
            items = [group]
        for item in items or []:
            if isinstance(item, dict):
                players.append(item.get("athlete") if isinstance(item.get("athlete"), dict) else item)
    return players


def _dig(node: Any, *path: Any) -> Any:
    for step in path:
        if isinstance(step, int):
            if not isinstance(node, list) or len(node) <= step:
                return None
        elif not isinstance(node, dict):
            return None
        node = node[step] if isinstance(step, int) else node.get(step)
    return node


def roster_season(payload: Any) -> Optional[int]:
    """Season year declared by a team payload, if any."""
    candidates = [
        _dig(payload, "team", "season", "year"),
        _dig(payload, "team", "record", "season", "year"),
        _dig(payload, "season", "year"),
        _dig(payload, "team", "nextEvent", 0, "season", "year"),
        _dig(payload, "team", "previousEvent", 0, "season", "year"),
    ]
    for candidate in candidates:
        try:
            value = int(candidate)
        except (TypeError, ValueError):
            continue
        if value > 1900:
            return value
    return None


def _page_blobs(soup: BeautifulSoup) -> list[Any]:
    """JSON documents embedded in the roster page's script tags."""
    blobs: list[Any] = []
    for script in soup.find_all("script"):
        text = script.string or script.get_text() or ""
        if script.get("type") == "application/json":
            candidate: Optional[str] = text
        else:
            m = _EMBEDDED_STATE.search(text)
            candidate = m.group(1) if m else None
        if not candidate:
            continue
        try:
            blobs.append(json.loads(candidate))
        except ValueError as e:
            logger.debug("skipping unparseable embedded JSON (%s)", e)
    return blobs


def page_roster_nodes(node: Any) -> list[dict[str, Any]]:
    """Athlete dicts found under any `items` / `athletes` list in an embedded page document."""
    found: list[dict[str, Any]] = []
    if isinstance(node, list):
        for item in node:
            found.extend(page_roster_nodes(item))
        return found
    if not isinstance(node, dict):
        return found
    for key in ("items", "athletes"):
        items = node.get(key)
        if not isinstance(items, list) or not items:
            continue
        if not all(isinstance(i, dict) and (isinstance(i.get("athlete"), dict) or i.get("id")) for i in items):
            continue
        for item in items:
            athlete = item["athlete"] if isinstance(item.get("athlete"), dict) else item
            if athlete.get("id"):
                found.append(athlete)
    for value in node.values():
        if isinstance(value, (dict, list)):
            found.extend(page_roster_nodes(value))
    return found


def _heading_season(soup: BeautifulSoup) -> Optional[int]:
    for heading in soup.find_all(["h1", "h2"]):
        m = _HEADING_SEASON.search(heading.get_text(" ", strip=True))
        if m:
            return int(m.group(1))
    return None


def parse_roster_page(html: str) -> tuple[list[dict[str, Any]], Optional[int]]:
    """
    Athletes and declared season from the ESPN team roster web page.

    The page carries its data as embedded JSON; the season comes from the
    "2025 Kentucky Wildcats Roster" style heading when present, otherwise
    from the embedded documents themselves.
    """
    soup = BeautifulSoup(html, "html.parser")
    season = _heading_season(soup)
    for blob in _page_blobs(soup):
        athletes = page_roster_nodes(blob)
        if athletes:
            return athletes, season if season is not None else find_season(blob)
    raise PayloadShapeError("Unable to find roster JSON in ESPN roster page")
