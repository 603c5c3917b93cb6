"""
Fallback orchestrator.

Roster stage: adapters are tried in priority order; the first snapshot that
passes the roster gate wins. When every adapter fails, the on-disk roster (or
a checked-in fixture) is reused if it is for the target season, otherwise the
run fails without touching any file.

Spotlight stage (live roster only): each (side, scope) bucket takes the first
adapter, in priority order, that yields a non-empty gated set. A bucket no
adapter can fill reuses its cached file, provided every cached entry still
resolves on the new roster. A live publish also refreshes the CFBD ticker,
keeping the published one when CFBD has nothing.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional, Union

from hashmark.config import PipelineConfig
from hashmark.ingestion.adapters import ProviderAdapter, build_adapters
from hashmark.ingestion.cfbd_client import CFBDClient
from hashmark.metrics.spotlight import pick_featured, rank_bucket
from hashmark.metrics.ticker import build_ticker
from hashmark.models.records import (
    SIDES,
    SCOPES,
    BuildMeta,
    Failure,
    PlayerRef,
    RosterSnapshot,
    SpotlightSet,
    StatRecord,
    bucket_key,
    coerce_player_id,
)
from hashmark.pipeline.artifacts import ArtifactStore
from hashmark.validation.roster_gate import RosterGate, check_snapshot


logger = logging.getLogger(__name__)

REQUIRED_BUCKETS: tuple[tuple[str, str], ...] = tuple((side, scope) for scope in SCOPES for side in SIDES)


class State(str, Enum):
    TRYING = "trying"
    VALIDATING = "validating"
    PUBLISHED = "published"
    CACHE_RESTORED = "cache_restored"
    FAILED = "failed"


class PipelineFailed(RuntimeError):
    """No publishable roster or a required bucket has neither live nor cached data."""


class SeasonMismatchError(PipelineFailed):
    """Strict mode: an upstream reported data for the wrong season."""


@dataclass
class PipelineContext:
    config: PipelineConfig
    store: ArtifactStore
    adapters: list[ProviderAdapter]
    counters: Counter = field(default_factory=Counter)
    roster: Optional[RosterSnapshot] = None
    gate: Optional[RosterGate] = None
    roster_from_cache: bool = False
    buckets: dict[tuple[str, str], SpotlightSet] = field(default_factory=dict)
    failures: list[str] = field(default_factory=list)
    history: list[tuple[State, str]] = field(default_factory=list)
    stats: dict[tuple[str, str], Union[list[StatRecord], Failure]] = field(default_factory=dict)
    ticker_client: Optional[Any] = None
    ticker_source: Optional[str] = None

    @property
    def state(self) -> Optional[State]:
        return self.history[-1][0] if self.history else None

    def transition(self, state: State, detail: str = "") -> None:
        self.history.append((state, detail))
        logger.debug("-> %s %s", state.value, detail)


@dataclass(frozen=True)
class PipelineOutcome:
    state: State
    meta: Optional[BuildMeta]
    reason: str = ""

    @property
    def exit_code(self) -> int:
        return 1 if self.state is State.FAILED else 0


def build_context(
    config: PipelineConfig,
    *,
    adapters: Optional[list[ProviderAdapter]] = None,
    store: Optional[ArtifactStore] = None,
    ticker_client: Optional[Any] = None,
) -> PipelineContext:
    counters: Counter = Counter()
    if adapters is None:
        adapters = build_adapters(config, counters)
    else:
        for adapter in adapters:
            adapter.counters = counters
    store = store or ArtifactStore(
        config.data_dir,
        fixtures_dir=config.fixtures_dir,
        status_dir=config.status_dir,
        dry_run=config.dry_run,
    )
    if ticker_client is None and config.cfbd_api_key:
        ticker_client = CFBDClient(
            api_key=config.cfbd_api_key,
            timeout_seconds=config.http_timeout_seconds,
            backoff_seconds=config.backoff_seconds,
        )
    return PipelineContext(config=config, store=store, adapters=adapters, counters=counters, ticker_client=ticker_client)


def _record_failure(ctx: PipelineContext, failure: Failure) -> None:
    ctx.failures.append(f"{failure.adapter}: {failure.reason}")
    if failure.kind == "season_mismatch" and ctx.config.strict_season:
        raise SeasonMismatchError(f"{failure.adapter}: {failure.reason} (STRICT_SEASON)")


def _recently_built(ctx: PipelineContext) -> bool:
    minutes = ctx.config.min_rebuild_minutes
    if ctx.config.force_rebuild or minutes <= 0:
        return False
    meta = ctx.store.load_build_meta()
    if not meta or meta.get("mode") != "live" or meta.get("season") != ctx.config.season:
        return False
    try:
        built = datetime.fromisoformat(str(meta.get("generatedAt")))
    except ValueError:
        return False
    if built.tzinfo is None:
        built = built.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc) - built < timedelta(minutes=minutes)


# --- roster stage ---
def resolve_roster(ctx: PipelineContext) -> RosterSnapshot:
    cfg = ctx.config
    for adapter in ctx.adapters:
        ctx.transition(State.TRYING, f"roster:{adapter.name}")
        result = adapter.fetch_roster()
        if isinstance(result, Failure):
            _record_failure(ctx, result)
            continue

        ctx.transition(State.VALIDATING, f"roster:{adapter.name}")
        problems = check_snapshot(result, target_season=cfg.season, team_id=cfg.team_id)
        if problems:
            ctx.counters["roster_rejected"] += 1
            for p in problems:
                logger.warning("[%s] roster rejected: %s", adapter.name, p)
                ctx.failures.append(f"{adapter.name}: roster rejected: {p}")
            continue

        logger.info(
            "Roster accepted from %s (%d players, id coverage %.1f%%)",
            adapter.name,
            len(result.players),
            result.id_coverage * 100,
        )
        return result

    for label, snapshot in (
        ("cache", ctx.store.load_cached_roster()),
        ("fixture", ctx.store.load_fixture_roster(season=cfg.season, team_id=cfg.team_id)),
    ):
        if snapshot is None:
            continue
        problems = check_snapshot(snapshot, target_season=cfg.season, team_id=cfg.team_id)
        if problems:
            logger.warning("Last-good %s roster unusable: %s", label, "; ".join(problems))
            ctx.failures.append(f"{label}: {'; '.join(problems)}")
            continue
        logger.warning("All roster providers failed; reusing last-good %s roster (%d players)", label, len(snapshot.players))
        ctx.roster_from_cache = True
        return snapshot

    raise PipelineFailed("No roster available from providers or last-good cache")


# --- spotlight stage ---
def _stats_for(ctx: PipelineContext, adapter: ProviderAdapter, scope: str) -> Union[list[StatRecord], Failure]:
    key = (adapter.name, scope)
    if key not in ctx.stats:
        ctx.transition(State.TRYING, f"stats:{adapter.name}:{scope}")
        result = adapter.fetch_stats(scope)
        ctx.stats[key] = result
        if isinstance(result, Failure):
            _record_failure(ctx, result)
    return ctx.stats[key]


def cached_bucket(ctx: PipelineContext, side: str, scope: str) -> Optional[SpotlightSet]:
    """Cached rows for one bucket, only if every row still resolves on the current roster."""
    assert ctx.gate is not None
    rows = ctx.store.load_cached_bucket(side, scope)
    if not rows:
        return None
    for row in rows:
        ref = PlayerRef(id=coerce_player_id(row.get("id")), name=row.get("name"))
        if not ctx.gate.is_member(ref):
            logger.warning("Cached %s entry %r is not on the current roster", bucket_key(side, scope), row.get("name"))
            ctx.counters["cache_bucket_rejected"] += 1
            return None
    return SpotlightSet(side=side, scope=scope, rows=tuple(rows), source="cache")


def resolve_bucket(ctx: PipelineContext, side: str, scope: str) -> SpotlightSet:
    assert ctx.gate is not None
    for adapter in ctx.adapters:
        result = _stats_for(ctx, adapter, scope)
        if isinstance(result, Failure):
            continue
        ctx.transition(State.VALIDATING, f"{bucket_key(side, scope)}:{adapter.name}")
        ranked = rank_bucket(result, ctx.gate, side=side, scope=scope, source=adapter.name, counters=ctx.counters)
        if ranked.rows:
            return ranked
        logger.info("[%s] no rankable %s entries", adapter.name, bucket_key(side, scope))

    cached = cached_bucket(ctx, side, scope)
    if cached is not None:
        logger.warning("No live data for %s; reusing cached file", bucket_key(side, scope))
        ctx.counters["bucket_cache_fallback"] += 1
        return cached
    raise PipelineFailed(f"No live or cached data for {bucket_key(side, scope)}")


# --- ticker ---
def _ticker_on_disk(ctx: PipelineContext) -> str:
    return "cache" if ctx.store.ticker_path.exists() else "missing"


def publish_ticker(ctx: PipelineContext) -> str:
    """Write a fresh ticker, or keep the published one; never fails the run."""
    cfg = ctx.config
    if ctx.ticker_client is None:
        logger.info("No CFBD client configured; ticker left as published")
        return _ticker_on_disk(ctx)
    ticker = build_ticker(ctx.ticker_client, team=cfg.team, year=cfg.season)
    if not ticker["items"]:
        logger.warning("Ticker came back empty; keeping the published ticker")
        ctx.counters["ticker_cache_fallback"] += 1
        return _ticker_on_disk(ctx)
    ctx.store.write_ticker(ticker)
    return "cfbd"


def _build_meta(ctx: PipelineContext, mode: str, state: State) -> BuildMeta:
    assert ctx.roster is not None
    return BuildMeta(
        mode=mode,
        state=state.value,
        season=ctx.config.season,
        team_id=ctx.config.team_id,
        roster_source=ctx.roster.source,
        buckets={bucket_key(s, c): b.source for (s, c), b in ctx.buckets.items()},
        counters=dict(ctx.counters),
        failures=list(ctx.failures),
        ticker=ctx.ticker_source,
    )


def _restore_from_cache(ctx: PipelineContext) -> PipelineOutcome:
    assert ctx.roster is not None
    store = ctx.store
    if ctx.roster.source == "fixture":
        # The fixture is not on disk yet; publish it as the roster of record.
        store.write_roster(ctx.roster, strict=ctx.config.strict_season, last_good_reuse=True)
    for side, scope in REQUIRED_BUCKETS:
        rows = store.load_cached_bucket(side, scope)
        if rows is None:
            logger.warning("Cache has no %s file", bucket_key(side, scope))
            continue
        ctx.buckets[(side, scope)] = SpotlightSet(side=side, scope=scope, rows=tuple(rows), source="cache")
    ctx.ticker_source = _ticker_on_disk(ctx)
    ctx.transition(State.CACHE_RESTORED, f"roster:{ctx.roster.source}")
    logger.warning("Roster stage reused last-good %s; spotlight files left as published", ctx.roster.source)
    meta = _build_meta(ctx, "cache", State.CACHE_RESTORED)
    store.write_build_meta(meta)
    store.set_last_good_flag(True)
    return PipelineOutcome(state=State.CACHE_RESTORED, meta=meta)


def _publish(ctx: PipelineContext) -> PipelineOutcome:
    assert ctx.roster is not None
    store = ctx.store
    store.write_roster(ctx.roster, strict=ctx.config.strict_season)
    live = 0
    for (side, scope), bucket in ctx.buckets.items():
        if bucket.source == "cache":
            continue
        store.write_bucket(side, scope, list(bucket.rows))
        live += 1
    featured = pick_featured(ctx.buckets)
    if featured is not None:
        store.write_featured(featured)
    ctx.ticker_source = publish_ticker(ctx)
    mode = "live" if live == len(REQUIRED_BUCKETS) else "partial"
    ctx.transition(State.PUBLISHED, mode)
    meta = _build_meta(ctx, mode, State.PUBLISHED)
    store.write_build_meta(meta)
    store.set_last_good_flag(False)
    logger.info("Published %s build: roster=%s buckets=%s", mode, ctx.roster.source, meta.buckets)
    return PipelineOutcome(state=State.PUBLISHED, meta=meta)


def run_pipeline(ctx: PipelineContext) -> PipelineOutcome:
    if _recently_built(ctx):
        logger.info("Live build newer than %d minutes exists; skipping (set FORCE_REBUILD=true to override)", ctx.config.min_rebuild_minutes)
        ctx.transition(State.CACHE_RESTORED, "fresh")
        return PipelineOutcome(state=State.CACHE_RESTORED, meta=None, reason="recent live build")

    try:
        ctx.roster = resolve_roster(ctx)
        ctx.gate = RosterGate(ctx.roster)
        if ctx.roster_from_cache:
            return _restore_from_cache(ctx)

        for side, scope in REQUIRED_BUCKETS:
            ctx.buckets[(side, scope)] = resolve_bucket(ctx, side, scope)
        return _publish(ctx)
    except PipelineFailed as e:
        ctx.transition(State.FAILED, str(e))
        logger.error("Pipeline failed: %s", e)
        for f in ctx.failures:
            logger.error(" - %s", f)
        return PipelineOutcome(state=State.FAILED, meta=None, reason=str(e))


def run(config: PipelineConfig, **kwargs: Any) -> PipelineOutcome:
    return run_pipeline(build_context(config, **kwargs))
