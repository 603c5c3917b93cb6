import json
from dataclasses import replace
from datetime import datetime, timezone

from hashmark.ingestion.http_client import ProviderError
from hashmark.models.records import DEFENSE, LAST_GAME, OFFENSE, SEASON, BuildMeta, PlayerRef, RosterSnapshot
from hashmark.pipeline.artifacts import ArtifactStore
from hashmark.pipeline.orchestrator import State, build_context, run_pipeline
from hashmark.validation.checks import run_all_checks
from hashmark.validation.roster_gate import RosterGate

from tests.helpers import FakeAdapter, StubTickerClient, make_snapshot, roster_rows, stat_row


def team_stats():
    # Player ids follow roster_rows(): Player NNN -> 4430000 + NNN; 080+ have no id.
    return [
        stat_row("Player 000", 4430000, "QB", passingYards=250, passingTDs=2),
        stat_row("Player 001", 4430001, "RB", rushingYards=110, rushingTDs=1),
        stat_row("Player 002", 4430002, "WR", receivingYards=95, receptions=6),
        stat_row("Player 003", 4430003, "TE", receivingYards=20, receptions=2),
        stat_row("Player 082", None, "WR", receivingYards=150),
        stat_row("Rival Star", 777, "WR", receivingYards=300, receivingTDs=3),
        stat_row("Player 005", 4430005, "DL", tackles=4, sacks=2),
        stat_row("Player 006", 4430006, "LB", tackles=11, tacklesForLoss=1),
        stat_row("Player 007", 4430007, "CB", tackles=3, passesDefended=2),
    ]


def snapshot_files(root):
    return {p.relative_to(root).as_posix(): p.read_bytes() for p in sorted(root.rglob("*")) if p.is_file()}


def seed_cache(store: ArtifactStore, snapshot: RosterSnapshot, *, bucket_ids=(0, 1, 2)):
    store.write_roster(snapshot, strict=True)
    for side in (OFFENSE, DEFENSE):
        for scope in (LAST_GAME, SEASON):
            rows = [
                {"name": f"Player {i:03d}", "id": snapshot.players[i].id, "score": 10.0 - i, "scope": scope, "source": "espn"}
                for i in bucket_ids
            ]
            store.write_bucket(side, scope, rows)
    store.write_featured({"name": "Player 000", "id": snapshot.players[0].id})


def test_scenario_a_85_player_roster_publishes(config, store):
    adapter = FakeAdapter(
        config,
        "espn",
        roster=roster_rows(85, with_ids=80),
        roster_season=2025,
        stats={LAST_GAME: team_stats(), SEASON: team_stats()},
    )
    ctx = build_context(config, adapters=[adapter], store=store)
    outcome = run_pipeline(ctx)

    assert outcome.state is State.PUBLISHED
    assert outcome.exit_code == 0
    assert outcome.meta.mode == "live"
    assert len(json.loads(store.roster_path.read_text())) == 85

    gate = RosterGate(ctx.roster)
    for side in (OFFENSE, DEFENSE):
        for scope in (LAST_GAME, SEASON):
            rows = json.loads(store.bucket_path(side, scope).read_text())
            assert 0 < len(rows) <= 3
            ids = [r["id"] for r in rows if r["id"] is not None]
            assert len(ids) == len(set(ids))
            assert all(gate.is_member(PlayerRef(id=r["id"], name=r["name"])) for r in rows)

    offense_last = json.loads(store.bucket_path(OFFENSE, LAST_GAME).read_text())
    assert [r["name"] for r in offense_last] == ["Player 000", "Player 001", "Player 082"]
    assert offense_last[0]["grade_pct"] == 100
    assert offense_last[0]["grade_letter"] == "A+"
    assert offense_last[-1]["grade_letter"] == "D-"
    defense_last = json.loads(store.bucket_path(DEFENSE, LAST_GAME).read_text())
    assert [r["name"] for r in defense_last] == ["Player 006", "Player 005", "Player 007"]
    assert json.loads(store.featured_path.read_text())["name"] == "Player 000"

    meta = json.loads(store.build_meta_path.read_text())
    assert meta["state"] == "published"
    assert meta["buckets"] == {
        "defense_last_game": "espn",
        "defense_season": "espn",
        "offense_last_game": "espn",
        "offense_season": "espn",
    }
    assert meta["counters"]["dropped_not_on_roster"] == 2
    assert meta["ticker"] == "missing"
    assert not store.last_good_flag_path.exists()
    assert run_all_checks(store, config) == []


def test_scenario_b_small_roster_restores_cache_unchanged(config, store):
    seed_cache(store, make_snapshot(90, source="espn"))
    before = snapshot_files(store.team_dir)
    before_buckets = {k: store.bucket_path(*k).read_bytes() for k in [(OFFENSE, LAST_GAME), (DEFENSE, SEASON)]}

    adapter = FakeAdapter(config, "espn", roster=roster_rows(40), roster_season=2025, stats={LAST_GAME: team_stats()})
    ctx = build_context(config, adapters=[adapter], store=store)
    outcome = run_pipeline(ctx)

    assert outcome.state is State.CACHE_RESTORED
    assert outcome.exit_code == 0
    assert snapshot_files(store.team_dir) == before
    assert len(json.loads(store.roster_path.read_text())) == 90
    assert {k: store.bucket_path(*k).read_bytes() for k in before_buckets} == before_buckets
    assert adapter.stats_calls == []
    assert json.loads(store.build_meta_path.read_text())["mode"] == "cache"
    assert store.last_good_flag_path.read_text() == "true"
    assert ctx.counters["roster_rejected"] == 1


def test_all_adapters_fail_without_valid_cache_leaves_files_untouched(config, store):
    # Cache exists but is for last season, so it cannot be reused.
    seed_cache(store, make_snapshot(90, season=2024))
    before = snapshot_files(store.data_dir)

    adapters = [FakeAdapter(config, "cfbd"), FakeAdapter(config, "espn", roster=roster_rows(30), roster_season=2025)]
    outcome = run_pipeline(build_context(config, adapters=adapters, store=store))

    assert outcome.state is State.FAILED
    assert outcome.exit_code == 1
    assert snapshot_files(store.data_dir) == before
    assert not store.build_meta_path.exists()


def test_fixture_roster_used_when_cache_missing(config, store):
    config.fixtures_dir.mkdir(parents=True)
    (config.fixtures_dir / "roster_2025.json").write_text(
        json.dumps([{"id": 4430000 + i, "name": f"Player {i:03d}", "pos": "WR"} for i in range(70)])
    )
    outcome = run_pipeline(build_context(config, adapters=[FakeAdapter(config, "espn")], store=store))

    assert outcome.state is State.CACHE_RESTORED
    meta = json.loads(store.roster_meta_path.read_text())
    assert meta["source"] == "fixture"
    assert meta["lastGoodReuse"] is True
    assert len(json.loads(store.roster_path.read_text())) == 70


def test_strict_season_mismatch_aborts_run(config, store):
    stale = FakeAdapter(config, "cfbd", roster=roster_rows(90), roster_season=2024)
    good = FakeAdapter(config, "espn", roster=roster_rows(90), roster_season=2025, stats={LAST_GAME: team_stats(), SEASON: team_stats()})

    ctx = build_context(config, adapters=[stale, good], store=store)
    outcome = run_pipeline(ctx)
    assert outcome.state is State.FAILED
    assert "STRICT_SEASON" in outcome.reason
    assert not store.data_dir.exists()

    relaxed = replace(config, strict_season=False)
    stale = FakeAdapter(relaxed, "cfbd", roster=roster_rows(90), roster_season=2024)
    good = FakeAdapter(relaxed, "espn", roster=roster_rows(90), roster_season=2025, stats={LAST_GAME: team_stats(), SEASON: team_stats()})
    outcome = run_pipeline(build_context(relaxed, adapters=[stale, good], store=store))
    assert outcome.state is State.PUBLISHED
    assert outcome.meta.roster_source == "espn"


class WrongSeasonSnapshotAdapter(FakeAdapter):
    def fetch_roster(self):
        return make_snapshot(90, season=2024, source=self.name)


def test_wrong_season_snapshot_never_published(config, store):
    first = WrongSeasonSnapshotAdapter(config, "cfbd")
    second = FakeAdapter(config, "espn", roster=roster_rows(90), roster_season=2025, stats={LAST_GAME: team_stats(), SEASON: team_stats()})
    ctx = build_context(config, adapters=[first, second], store=store)
    outcome = run_pipeline(ctx)

    assert outcome.state is State.PUBLISHED
    assert outcome.meta.roster_source == "espn"
    assert (State.VALIDATING, "roster:cfbd") in ctx.history
    assert (State.TRYING, "roster:espn") in ctx.history
    assert json.loads(store.roster_meta_path.read_text())["season"] == 2025


def test_first_adapter_in_priority_order_wins_each_bucket(config, store):
    # cfbd has season offense only; espn fills everything else.
    cfbd_season = [stat_row("Player 003", 4430003, "TE", receivingYards=40)]
    cfbd = FakeAdapter(config, "cfbd", roster=roster_rows(90), roster_season=2025, stats={SEASON: cfbd_season})
    espn = FakeAdapter(config, "espn", roster=roster_rows(90), roster_season=2025, stats={LAST_GAME: team_stats(), SEASON: team_stats()})
    outcome = run_pipeline(build_context(config, adapters=[cfbd, espn], store=store))

    assert outcome.state is State.PUBLISHED
    assert outcome.meta.buckets == {
        "offense_last_game": "espn",
        "defense_last_game": "espn",
        "offense_season": "cfbd",
        "defense_season": "espn",
    }
    offense_season = json.loads(store.bucket_path(OFFENSE, SEASON).read_text())
    assert [r["name"] for r in offense_season] == ["Player 003"]
    # each adapter is asked for a scope at most once
    assert espn.stats_calls == [LAST_GAME, SEASON]


def test_missing_bucket_falls_back_to_cache_per_bucket(config, store):
    seed_cache(store, make_snapshot(90))
    season_before = store.bucket_path(DEFENSE, SEASON).read_bytes()

    adapter = FakeAdapter(config, "espn", roster=roster_rows(90), roster_season=2025, stats={LAST_GAME: team_stats()})
    outcome = run_pipeline(build_context(config, adapters=[adapter], store=store))

    assert outcome.state is State.PUBLISHED
    assert outcome.meta.mode == "partial"
    assert outcome.meta.buckets["offense_season"] == "cache"
    assert outcome.meta.buckets["offense_last_game"] == "espn"
    assert store.bucket_path(DEFENSE, SEASON).read_bytes() == season_before
    assert json.loads(store.build_meta_path.read_text())["counters"]["bucket_cache_fallback"] == 2


def test_cached_bucket_with_departed_player_fails_run(config, store):
    # Cached rows point at ids 4430087-89, which the new 85-player roster does not have.
    seed_cache(store, make_snapshot(90), bucket_ids=(87, 88, 89))
    before = snapshot_files(store.data_dir)

    adapter = FakeAdapter(config, "espn", roster=roster_rows(85), roster_season=2025, stats={LAST_GAME: team_stats()})
    outcome = run_pipeline(build_context(config, adapters=[adapter], store=store))

    assert outcome.state is State.FAILED
    assert "offense_season" in outcome.reason
    assert snapshot_files(store.data_dir) == before


def test_recent_live_build_is_kept_unless_forced(config, store):
    store.write_build_meta(BuildMeta(mode="live", state="published", season=2025, team_id=96, generated_at=datetime.now(timezone.utc).isoformat()))
    guarded = replace(config, min_rebuild_minutes=30)
    adapter = FakeAdapter(guarded, "espn", roster=roster_rows(90), roster_season=2025, stats={LAST_GAME: team_stats(), SEASON: team_stats()})

    outcome = run_pipeline(build_context(guarded, adapters=[adapter], store=store))
    assert outcome.state is State.CACHE_RESTORED
    assert outcome.meta is None
    assert adapter.stats_calls == []

    forced = replace(guarded, force_rebuild=True)
    outcome = run_pipeline(build_context(forced, adapters=[adapter], store=store))
    assert outcome.state is State.PUBLISHED


def test_dry_run_writes_nothing(config):
    dry = replace(config, dry_run=True)
    adapter = FakeAdapter(dry, "espn", roster=roster_rows(90), roster_season=2025, stats={LAST_GAME: team_stats(), SEASON: team_stats()})
    outcome = run_pipeline(build_context(dry, adapters=[adapter]))
    assert outcome.state is State.PUBLISHED
    assert not dry.data_dir.exists()
    assert not dry.status_dir.exists()


def _live_adapter(config):
    return FakeAdapter(config, "espn", roster=roster_rows(90), roster_season=2025, stats={LAST_GAME: team_stats(), SEASON: team_stats()})


def test_live_publish_writes_ticker(config, store):
    client = StubTickerClient()
    ctx = build_context(config, adapters=[_live_adapter(config)], store=store, ticker_client=client)
    outcome = run_pipeline(ctx)

    assert outcome.state is State.PUBLISHED
    ticker = json.loads(store.ticker_path.read_text())
    assert ticker["year"] == 2025
    assert ticker["lastWeek"] == 5
    assert ticker["items"]
    assert json.loads(store.build_meta_path.read_text())["ticker"] == "cfbd"
    assert {c[1:] for c in client.calls} == {("Kentucky", 2025)}
    assert run_all_checks(store, config) == []


def test_empty_ticker_keeps_published_file(config, store):
    store.write_ticker({"year": 2025, "team": "Kentucky", "lastWeek": 4, "items": [{"label": "Off SR"}]})
    before = store.ticker_path.read_bytes()
    empty = StubTickerClient(season=[], games=[], players=ProviderError("HTTP 503"))
    ctx = build_context(config, adapters=[_live_adapter(config)], store=store, ticker_client=empty)
    outcome = run_pipeline(ctx)

    assert outcome.state is State.PUBLISHED
    assert store.ticker_path.read_bytes() == before
    assert outcome.meta.ticker == "cache"
    assert ctx.counters["ticker_cache_fallback"] == 1


def test_cache_restore_leaves_ticker_alone(config, store):
    seed_cache(store, make_snapshot(90, source="espn"))
    store.write_ticker({"year": 2025, "team": "Kentucky", "lastWeek": 4, "items": []})
    before = store.ticker_path.read_bytes()
    client = StubTickerClient()
    adapter = FakeAdapter(config, "espn", roster=roster_rows(40), roster_season=2025)
    outcome = run_pipeline(build_context(config, adapters=[adapter], store=store, ticker_client=client))

    assert outcome.state is State.CACHE_RESTORED
    assert outcome.meta.ticker == "cache"
    assert client.calls == []
    assert store.ticker_path.read_bytes() == before
