from __future__ import annotations

from typing import Any, Iterable, Optional

import pandas as pd

from hashmark.config import (
    ROSTER_MAX_PLAYERS,
    ROSTER_MIN_ID_COVERAGE,
    ROSTER_MIN_PLAYERS,
    SPOTLIGHT_MAX_MISMATCH_RATE,
    PipelineConfig,
)
from hashmark.models.records import SPOTLIGHT_FILES, coerce_player_id, normalize_name, slugify
from hashmark.pipeline.artifacts import ArtifactStore, read_json


ALLOWED_SOURCES = {"cfbd", "espn", "cfbfastr", "cache", "fixture"}
ALLOWED_MODES = {"live", "cache", "partial"}


def roster_frame(rows: Iterable[dict[str, Any]]) -> pd.DataFrame:
    """Roster rows as a frame with a nullable integer `pid` column."""
    df = pd.DataFrame([r for r in rows if isinstance(r, dict)], columns=["id", "name", "headshot"])
    df["pid"] = pd.array([coerce_player_id(v) for v in df["id"]], dtype="Int64")
    df["name_key"] = df["name"].map(normalize_name)
    return df


def check_roster_size(df: pd.DataFrame) -> list[str]:
    n = len(df)
    if n < ROSTER_MIN_PLAYERS or n > ROSTER_MAX_PLAYERS:
        return [f"Roster size {n} out of range ({ROSTER_MIN_PLAYERS}-{ROSTER_MAX_PLAYERS})"]
    return []


def check_roster_id_coverage(df: pd.DataFrame) -> list[str]:
    if df.empty:
        return []
    coverage = float(df["pid"].notna().mean())
    if coverage < ROSTER_MIN_ID_COVERAGE:
        return [f"Roster id coverage {coverage:.3f} below {ROSTER_MIN_ID_COVERAGE:.2f}"]
    return []


def check_roster_duplicate_ids(df: pd.DataFrame) -> list[str]:
    ids = df["pid"].dropna()
    counts = ids.value_counts()
    dupes = counts[counts > 1]
    return [f"Duplicate roster id: id={int(pid)} count={int(c)}" for pid, c in dupes.items()]


def check_roster_names(df: pd.DataFrame) -> list[str]:
    missing = df[df["name_key"] == ""]
    return [f"Roster entry missing name: id={r.id}" for r in missing.itertuples()]


def check_headshots(df: pd.DataFrame) -> list[str]:
    errs: list[str] = []
    for r in df[df["pid"].notna()].itertuples():
        expected = f"/players/full/{int(r.pid)}.png"
        if not isinstance(r.headshot, str) or expected not in r.headshot:
            errs.append(f"Invalid headshot url for {r.name}: {r.headshot!r}")
    return errs


def check_roster_meta(meta: Optional[dict[str, Any]], config: PipelineConfig) -> list[str]:
    if meta is None:
        return ["roster_meta.json missing"]
    errs: list[str] = []
    if meta.get("teamId") != config.team_id:
        errs.append(f"roster_meta teamId={meta.get('teamId')!r} must equal {config.team_id}")
    season = meta.get("season")
    if isinstance(season, bool) or not isinstance(season, int):
        errs.append(f"roster_meta season must be numeric (got {season!r})")
    elif season != config.season:
        errs.append(f"roster_meta season={season} must equal {config.season}")
    if meta.get("source") not in ALLOWED_SOURCES:
        errs.append(f"roster_meta source={meta.get('source')!r} not in {sorted(ALLOWED_SOURCES)}")
    if not meta.get("generated_at"):
        errs.append("roster_meta generated_at missing")
    if config.strict_season and meta.get("strict") is False:
        errs.append("roster_meta strict flag must stay enabled under STRICT_SEASON")
    return errs


def _spotlight_rows(payload: Any) -> Optional[list[Any]]:
    # The featured file is a single object, the bucket files are arrays.
    if isinstance(payload, dict):
        return [payload]
    if isinstance(payload, list):
        return payload
    return None


def check_spotlight_file(label: str, payload: Any, df: pd.DataFrame) -> list[str]:
    rows = _spotlight_rows(payload)
    if rows is None:
        return [f"{label}: expected array or object, got {type(payload).__name__}"]
    roster_ids = set(int(v) for v in df["pid"].dropna())
    roster_names = set(df["name_key"]) - {""}
    errs: list[str] = []
    seen: set[int] = set()
    mismatched = 0
    for row in rows:
        if not isinstance(row, dict):
            errs.append(f"{label}: invalid row {row!r}")
            continue
        pid = coerce_player_id(row.get("id"))
        if pid is not None and pid in seen:
            errs.append(f"{label}: duplicate id {pid}")
        if pid is not None:
            seen.add(pid)
        on_roster = pid in roster_ids if pid is not None else normalize_name(row.get("name")) in roster_names
        if on_roster:
            continue
        mismatched += 1
    if rows:
        rate = mismatched / len(rows)
        if rate > SPOTLIGHT_MAX_MISMATCH_RATE:
            errs.append(
                f"{label}: {mismatched}/{len(rows)} entries not on roster "
                f"(rate {rate:.3f} > {SPOTLIGHT_MAX_MISMATCH_RATE:.2f})"
            )
    return errs


def check_blacklist(blacklist: Any, df: pd.DataFrame, spotlight_payloads: dict[str, Any]) -> list[str]:
    if not isinstance(blacklist, list):
        return []
    banned = {normalize_name(n) for n in blacklist if isinstance(n, str) and n.strip()}
    errs: list[str] = []
    for name in sorted(banned & set(df["name_key"])):
        errs.append(f"Blacklisted name on roster: {name}")
    for label, payload in spotlight_payloads.items():
        for row in _spotlight_rows(payload) or []:
            if isinstance(row, dict) and normalize_name(row.get("name")) in banned:
                errs.append(f"{label}: blacklisted name in spotlight: {row.get('name')}")
    return errs


def check_espn_map(mapping: Any, df: pd.DataFrame) -> list[str]:
    if mapping is None:
        return []
    if not isinstance(mapping, dict):
        return ["espn_map.json must be an object"]
    valid_keys: set[str] = set()
    for name in df["name"].dropna():
        valid_keys.add(str(name))
        valid_keys.add(slugify(str(name)))
    roster_ids = set(int(v) for v in df["pid"].dropna())
    errs: list[str] = []
    for key, value in mapping.items():
        if key not in valid_keys:
            errs.append(f"espn_map contains foreign key: {key}")
        pid = coerce_player_id(value)
        if pid not in roster_ids:
            errs.append(f"espn_map id {value!r} for {key} not in roster")
    return errs


def check_build_meta(meta: Optional[dict[str, Any]]) -> list[str]:
    if meta is None:
        return ["build_meta.json missing"]
    if meta.get("mode") not in ALLOWED_MODES:
        return [f"build_meta mode={meta.get('mode')!r} not in {sorted(ALLOWED_MODES)}"]
    return []


def check_ticker(ticker: Any, config: PipelineConfig) -> list[str]:
    """Ticker is optional; when published it must be for the configured season."""
    if ticker is None:
        return []
    if not isinstance(ticker, dict):
        return [f"ticker.json: expected object, got {type(ticker).__name__}"]
    errs: list[str] = []
    if ticker.get("year") != config.season:
        errs.append(f"ticker.json year={ticker.get('year')!r} must equal {config.season}")
    if not isinstance(ticker.get("items"), list):
        errs.append("ticker.json items must be an array")
    return errs


def run_all_checks(store: ArtifactStore, config: PipelineConfig) -> list[str]:
    errors: list[str] = []
    rows = read_json(store.roster_path, None)
    if not isinstance(rows, list) or not rows:
        return [f"Roster missing or empty: {store.roster_path}"]

    df = roster_frame(rows)
    errors.extend(check_roster_meta(store.load_roster_meta(), config))
    errors.extend(check_roster_size(df))
    errors.extend(check_roster_id_coverage(df))
    errors.extend(check_roster_duplicate_ids(df))
    errors.extend(check_roster_names(df))
    errors.extend(check_headshots(df))

    payloads: dict[str, Any] = {}
    for key in SPOTLIGHT_FILES:
        path = store.bucket_path(*key)
        payloads[path.name] = read_json(path, [])
    payloads[store.featured_path.name] = read_json(store.featured_path, [])
    for label, payload in payloads.items():
        errors.extend(check_spotlight_file(label, payload, df))

    errors.extend(check_blacklist(read_json(store.blacklist_path, None), df, payloads))
    errors.extend(check_espn_map(read_json(store.espn_map_path, None), df))
    errors.extend(check_build_meta(store.load_build_meta()))
    errors.extend(check_ticker(read_json(store.ticker_path, None), config))
    return errors


def validate_fixtures(store: ArtifactStore, season: int) -> list[str]:
    """Checked-in fixture roster against the checked-in last-game spotlight."""
    if store.fixtures_dir is None:
        return ["fixtures directory not configured"]
    roster = read_json(store.fixtures_dir / f"roster_{season}.json", [])
    spotlight = read_json(store.fixtures_dir / "spotlight_last.json", [])
    if not isinstance(roster, list) or not roster:
        return [f"fixture roster_{season}.json missing entries"]
    df = roster_frame(roster)
    roster_ids = set(int(v) for v in df["pid"].dropna())
    errs: list[str] = []
    for row in _spotlight_rows(spotlight) or []:
        pid = coerce_player_id(row.get("id")) if isinstance(row, dict) else None
        if pid is None:
            errs.append(f"fixture spotlight row missing id: {row!r}")
        elif pid not in roster_ids:
            errs.append(f"fixture spotlight id {pid} not in roster")
    return errs
