import json

import pytest

from hashmark.models.records import DEFENSE, LAST_GAME, OFFENSE, SEASON, BuildMeta
from hashmark.pipeline.artifacts import ArtifactStore, read_json, write_json_atomic
from hashmark.validation.checks import (
    check_espn_map,
    check_roster_meta,
    check_spotlight_file,
    check_ticker,
    roster_frame,
    run_all_checks,
    validate_fixtures,
)

from tests.helpers import make_snapshot


def publish(store: ArtifactStore, n: int = 90):
    snap = make_snapshot(n)
    store.write_roster(snap, strict=True)
    for side in (OFFENSE, DEFENSE):
        for scope in (LAST_GAME, SEASON):
            rows = [{"name": p.name, "id": p.id} for p in snap.players[:3]]
            store.write_bucket(side, scope, rows)
    store.write_featured({"name": snap.players[0].name, "id": snap.players[0].id})
    store.write_build_meta(BuildMeta(mode="live", state="published", season=2025, team_id=96))
    return snap


def test_clean_publish_has_no_issues(config, store):
    publish(store)
    assert run_all_checks(store, config) == []


def test_missing_roster_is_reported(config, store):
    assert run_all_checks(store, config) == [f"Roster missing or empty: {store.roster_path}"]


def test_roster_problems_are_all_reported(config, store):
    publish(store)
    rows = json.loads(store.roster_path.read_text())
    rows = rows[:60]
    rows.append(dict(rows[0]))
    rows[1]["headshot"] = "https://example.test/nope.png"
    write_json_atomic(store.roster_path, rows)

    errors = run_all_checks(store, config)
    assert any("Roster size 61" in e for e in errors)
    assert any("Duplicate roster id: id=4430000 count=2" in e for e in errors)
    assert any("Invalid headshot url for Player 001" in e for e in errors)


def test_roster_meta_locks_season_team_and_source(config):
    meta = {"teamId": 96, "season": 2024, "source": "scraped", "strict": False}
    errors = check_roster_meta(meta, config)
    assert any("season=2024 must equal 2025" in e for e in errors)
    assert any("source='scraped'" in e for e in errors)
    assert any("generated_at missing" in e for e in errors)
    assert any("strict flag" in e for e in errors)
    assert check_roster_meta({"teamId": 96, "season": "2025", "source": "espn", "generated_at": "x"}, config) == [
        "roster_meta season must be numeric (got '2025')"
    ]


def test_spotlight_mismatch_rate_and_duplicates():
    df = roster_frame([{"id": i, "name": f"P{i}", "headshot": ""} for i in range(1, 80)])
    ok = [{"id": 1, "name": "P1"}, {"id": None, "name": "p2"}, {"id": 3, "name": "P3"}]
    assert check_spotlight_file("spotlight_offense_last.json", ok, df) == []

    bad = [{"id": 1}, {"id": 1}, {"id": 555, "name": "Visitor"}]
    errors = check_spotlight_file("spotlight_offense_last.json", bad, df)
    assert "spotlight_offense_last.json: duplicate id 1" in errors
    assert any("1/3 entries not on roster" in e for e in errors)

    assert check_spotlight_file("spotlight_featured.json", {"id": 2, "name": "P2"}, df) == []
    assert check_spotlight_file("x.json", "oops", df) == ["x.json: expected array or object, got str"]


def test_spotlight_row_with_unknown_id_is_off_roster_even_if_name_matches():
    df = roster_frame([{"id": i, "name": f"P{i}", "headshot": ""} for i in range(1, 80)])
    rows = [{"id": 999, "name": "P1"}] + [{"id": i, "name": f"P{i}"} for i in range(2, 11)]
    assert check_spotlight_file("spotlight_offense_season.json", rows, df) == [
        "spotlight_offense_season.json: 1/10 entries not on roster (rate 0.100 > 0.05)"
    ]
    # only id-less rows are matched by name
    rows[0] = {"id": None, "name": "P1"}
    assert check_spotlight_file("spotlight_offense_season.json", rows, df) == []


def test_ticker_is_optional_but_checked_when_present(config, store):
    publish(store)
    assert run_all_checks(store, config) == []

    write_json_atomic(store.ticker_path, {"year": 2024, "items": {}})
    assert run_all_checks(store, config) == [
        "ticker.json year=2024 must equal 2025",
        "ticker.json items must be an array",
    ]
    assert check_ticker([], config) == ["ticker.json: expected object, got list"]
    assert check_ticker({"year": 2025, "items": []}, config) == []


def test_blacklist_applies_to_roster_and_spotlight(config, store):
    publish(store)
    write_json_atomic(store.blacklist_path, ["PLAYER 002", "Long Gone"])
    errors = run_all_checks(store, config)
    assert "Blacklisted name on roster: player 002" in errors
    assert sum("blacklisted name in spotlight: Player 002" in e for e in errors) == 4


def test_espn_map_must_point_at_roster_players():
    df = roster_frame([{"id": 10, "name": "Ann Lee", "headshot": ""}])
    assert check_espn_map({"Ann Lee": 10, "ann-lee": 10}, df) == []
    errors = check_espn_map({"Bo Kim": 11}, df)
    assert errors == ["espn_map contains foreign key: Bo Kim", "espn_map id 11 for Bo Kim not in roster"]


def test_build_meta_mode(config, store):
    publish(store)
    meta = read_json(store.build_meta_path)
    meta["mode"] = "stale"
    write_json_atomic(store.build_meta_path, meta)
    assert run_all_checks(store, config) == ["build_meta mode='stale' not in ['cache', 'live', 'partial']"]


def test_validate_fixtures(store):
    store.fixtures_dir.mkdir(parents=True)
    write_json_atomic(store.fixtures_dir / "roster_2025.json", [{"id": 1, "name": "A"}, {"id": 2, "name": "B"}])
    write_json_atomic(store.fixtures_dir / "spotlight_last.json", [{"id": 2, "name": "B"}])
    assert validate_fixtures(store, 2025) == []

    write_json_atomic(store.fixtures_dir / "spotlight_last.json", [{"id": 3, "name": "C"}, {"name": "D"}])
    assert validate_fixtures(store, 2025) == [
        "fixture spotlight id 3 not in roster",
        "fixture spotlight row missing id: {'name': 'D'}",
    ]
    assert validate_fixtures(store, 2030) == ["fixture roster_2030.json missing entries"]


def test_checked_in_fixtures_are_consistent():
    from pathlib import Path

    root = Path(__file__).resolve().parents[1]
    store = ArtifactStore(root / "data", fixtures_dir=root / "fixtures")
    assert validate_fixtures(store, 2025) == []


def test_atomic_write_leaves_no_temp_files(tmp_path):
    target = tmp_path / "team" / "roster.json"
    write_json_atomic(target, [{"id": 1}])
    write_json_atomic(target, [{"id": 2}])
    assert read_json(target) == [{"id": 2}]
    assert [p.name for p in target.parent.iterdir()] == ["roster.json"]

    with pytest.raises(TypeError):
        write_json_atomic(target, {"bad": object()})
    assert read_json(target) == [{"id": 2}]
    assert [p.name for p in target.parent.iterdir()] == ["roster.json"]


def test_read_json_fallback_on_corrupt_file(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    assert read_json(path, []) == []
    assert read_json(tmp_path / "absent.json", {"x": 1}) == {"x": 1}
