"""
Provider adapters.

Each adapter wraps one upstream and never raises on upstream trouble:
transport errors, unrecognized payload shapes and season disagreements all
come back as a `Failure` value so the orchestrator can move on to the next
source.
"""
from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Callable, Optional, Union

import requests

from hashmark.config import PipelineConfig
from hashmark.ingestion.cfbd_client import CFBDClient
from hashmark.ingestion.cfbfastr_client import CfbfastrClient
from hashmark.ingestion.espn_client import (
    POSTSEASON,
    REGULAR_SEASON,
    ESPNClient,
    latest_completed_event,
    merge_schedules,
    parse_roster_page,
    roster_athletes,
    roster_season,
)
from hashmark.ingestion.http_client import PayloadShapeError, ProviderError
from hashmark.ingestion.roster import normalize_roster
from hashmark.ingestion.shapes import ParsedRow, UnknownShape, detect_shape, find_season, parse_rows
from hashmark.metrics.spotlight import build_records
from hashmark.models.records import LAST_GAME, SEASON, Failure, RosterSnapshot, StatRecord, coerce_int, normalize_name


logger = logging.getLogger(__name__)

RosterResult = Union[RosterSnapshot, Failure]
StatsResult = Union[list[StatRecord], Failure]

# Raised by payload walkers on records missing the fields they index into.
MALFORMED_PAYLOAD_ERRORS = (TypeError, ValueError, KeyError)


class SeasonMismatch(ProviderError):
    """Upstream answered for a different season than the one requested."""

    def __init__(self, message: str, detected_season: Optional[int] = None) -> None:
        super().__init__(message)
        self.detected_season = detected_season


class ProviderAdapter:
    name = "base"

    def __init__(self, config: PipelineConfig, counters: Optional[Counter] = None) -> None:
        self.config = config
        self.counters = counters if counters is not None else Counter()

    # --- subclass hooks ---
    def _roster_rows(self) -> tuple[list[dict[str, Any]], Optional[int]]:
        raise NotImplementedError

    def _stats_payload(self, scope: str) -> Any:
        raise NotImplementedError

    # --- public contract ---
    def fetch_roster(self) -> RosterResult:
        try:
            rows, detected = self._roster_rows()
            if detected is not None and detected != self.config.season:
                raise SeasonMismatch(f"roster season {detected} != target {self.config.season}", detected)
            players = normalize_roster(rows, self.counters)
        except SeasonMismatch as e:
            return self._fail(str(e), kind="season_mismatch", detected_season=e.detected_season)
        except PayloadShapeError as e:
            return self._fail(str(e), kind="shape")
        except (ProviderError, requests.RequestException) as e:
            return self._fail(str(e))
        except NotImplementedError:
            return self._fail("roster not supported", kind="unsupported")
        except MALFORMED_PAYLOAD_ERRORS as e:
            return self._fail(f"malformed roster payload ({e!r})", kind="shape")

        if not players:
            return self._fail("roster payload empty", kind="shape")
        logger.info("[%s] roster rows=%d players=%d", self.name, len(rows), len(players))
        return RosterSnapshot(
            team_id=self.config.team_id,
            season=self.config.season,
            players=tuple(players),
            source=self.name,
        )

    def fetch_stats(self, scope: str) -> StatsResult:
        try:
            payload = self._stats_payload(scope)
            if payload is None:
                return self._fail(f"{scope}: no completed game found", kind="empty")

            shape = detect_shape(payload)
            if isinstance(shape, UnknownShape):
                raise PayloadShapeError(f"unrecognized payload ({shape.description})")

            detected = find_season(payload)
            if detected is not None and detected != self.config.season:
                raise SeasonMismatch(f"stats season {detected} != target {self.config.season}", detected)

            rows = self._own_team(parse_rows(shape))
            records = build_records(rows, scope=scope, source=self.name)
        except SeasonMismatch as e:
            return self._fail(f"{scope}: {e}", kind="season_mismatch", detected_season=e.detected_season)
        except PayloadShapeError as e:
            return self._fail(f"{scope}: {e}", kind="shape")
        except (ProviderError, requests.RequestException) as e:
            return self._fail(f"{scope}: {e}")
        except NotImplementedError:
            return self._fail(f"{scope} stats not supported", kind="unsupported")
        except MALFORMED_PAYLOAD_ERRORS as e:
            return self._fail(f"{scope}: malformed payload ({e!r})", kind="shape")

        logger.info("[%s] %s stat rows=%d", self.name, scope, len(records))
        return records

    # --- helpers ---
    def _own_team(self, rows: list[ParsedRow]) -> list[ParsedRow]:
        """
        Drop rows tagged with another team; untagged rows go to the roster gate.

        A team id decides when present. Otherwise the school name must match
        exactly, so "Western Kentucky" is not mistaken for "Kentucky".
        """
        want = normalize_name(self.config.team)
        team_id = str(self.config.team_id)
        kept: list[ParsedRow] = []
        for row in rows:
            if row.team_id is not None:
                ours = str(row.team_id) == team_id
            elif row.team:
                ours = normalize_name(row.team) == want
            else:
                ours = True
            if not ours:
                self.counters["dropped_other_team"] += 1
                continue
            kept.append(row)
        return kept

    def _fail(self, reason: str, *, kind: str = "transport", detected_season: Optional[int] = None) -> Failure:
        logger.warning("[%s] %s", self.name, reason)
        self.counters[f"adapter_failure_{kind}"] += 1
        return Failure(adapter=self.name, reason=reason, kind=kind, detected_season=detected_season)


class CfbdAdapter(ProviderAdapter):
    name = "cfbd"

    def __init__(self, config: PipelineConfig, counters: Optional[Counter] = None, client: Optional[CFBDClient] = None) -> None:
        super().__init__(config, counters)
        self._client = client

    @property
    def client(self) -> CFBDClient:
        if self._client is None:
            self._client = CFBDClient(
                api_key=self.config.cfbd_api_key,
                timeout_seconds=self.config.http_timeout_seconds,
                backoff_seconds=self.config.backoff_seconds,
            )
        return self._client

    def _roster_rows(self) -> tuple[list[dict[str, Any]], Optional[int]]:
        payload = self.client.roster(team=self.config.team, year=self.config.season)
        if not isinstance(payload, list):
            raise PayloadShapeError("Unexpected CFBD /roster shape")
        rows = [r for r in payload if isinstance(r, dict)]
        return rows, find_season(rows)

    def _stats_payload(self, scope: str) -> Any:
        if scope == SEASON:
            return self.client.player_season_stats(team=self.config.team, year=self.config.season)
        if scope == LAST_GAME:
            game = self.client.latest_completed_game(team=self.config.team, year=self.config.season)
            if game is None:
                return None
            season = game.get("season")
            if season is not None and str(season) != str(self.config.season):
                raise SeasonMismatch(f"latest game belongs to season {season}", coerce_int(season))
            game_id = coerce_int(game.get("id") or game.get("game_id") or game.get("gameId"))
            if game_id is None:
                raise PayloadShapeError("CFBD game has no id")
            return self.client.game_player_stats(game_id=game_id)
        raise NotImplementedError


class EspnAdapter(ProviderAdapter):
    """Team API first, then the public roster web page."""

    name = "espn"

    def __init__(self, config: PipelineConfig, counters: Optional[Counter] = None, client: Optional[ESPNClient] = None) -> None:
        super().__init__(config, counters)
        self.client = client or ESPNClient(
            timeout_seconds=config.http_timeout_seconds,
            backoff_seconds=config.backoff_seconds,
        )

    def _roster_rows(self) -> tuple[list[dict[str, Any]], Optional[int]]:
        try:
            payload = self.client.team_roster(self.config.team_id)
            athletes = roster_athletes(payload)
            if athletes:
                return athletes, roster_season(payload)
            reason = "team payload missing athlete list"
        except ProviderError as e:
            reason = str(e)
        logger.info("[%s] team API roster unusable (%s); trying roster page", self.name, reason)
        self.counters["espn_roster_page_fallback"] += 1
        return parse_roster_page(self.client.roster_page(self.config.team_id))

    def _stats_payload(self, scope: str) -> Any:
        if scope != LAST_GAME:
            # The public site API has no per-player season totals.
            raise NotImplementedError
        team_id, season = self.config.team_id, self.config.season
        regular = self.client.schedule(team_id, season=season, season_type=REGULAR_SEASON)
        try:
            bowls = self.client.schedule(team_id, season=season, season_type=POSTSEASON)
        except ProviderError as e:
            logger.warning("[%s] postseason schedule unavailable: %s", self.name, e)
            bowls = None
        event = latest_completed_event(merge_schedules(regular, bowls))
        if event is None:
            return None
        detected = find_season(event)
        if detected is not None and detected != season:
            raise SeasonMismatch(f"latest ESPN event belongs to season {detected}", detected)
        return self.client.boxscore(str(event.get("id")))


class CfbfastrAdapter(ProviderAdapter):
    name = "cfbfastr"

    def __init__(self, config: PipelineConfig, counters: Optional[Counter] = None, client: Optional[CfbfastrClient] = None) -> None:
        super().__init__(config, counters)
        self.client = client or CfbfastrClient(
            timeout_seconds=config.http_timeout_seconds,
            backoff_seconds=config.backoff_seconds,
        )

    def _roster_rows(self) -> tuple[list[dict[str, Any]], Optional[int]]:
        rows = self.client.roster(team=self.config.team, year=self.config.season)
        return rows, find_season(rows)

    def _stats_payload(self, scope: str) -> Any:
        if scope != SEASON:
            raise NotImplementedError
        return self.client.player_season_stats(team=self.config.team, year=self.config.season)


ADAPTERS: dict[str, Callable[..., ProviderAdapter]] = {
    CfbdAdapter.name: CfbdAdapter,
    EspnAdapter.name: EspnAdapter,
    CfbfastrAdapter.name: CfbfastrAdapter,
}


def build_adapters(config: PipelineConfig, counters: Counter) -> list[ProviderAdapter]:
    """Instantiate adapters in configured priority order; unknown names are skipped."""
    adapters: list[ProviderAdapter] = []
    for name in config.providers:
        factory = ADAPTERS.get(name)
        if factory is None:
            logger.warning("Unknown provider %r in HASHMARK_PROVIDERS; skipping", name)
            continue
        if name == CfbdAdapter.name and not config.cfbd_api_key:
            logger.warning("CFBD_API_KEY not set; skipping cfbd provider")
            continue
        adapters.append(factory(config, counters))
    return adapters
