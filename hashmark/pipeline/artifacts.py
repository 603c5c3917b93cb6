from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from hashmark.models.records import (
    FEATURED_FILE,
    SPOTLIGHT_FILES,
    BuildMeta,
    Player,
    RosterSnapshot,
    coerce_int,
    normalize_name,
    slugify,
)


logger = logging.getLogger(__name__)


def read_json(path: Path, fallback: Any = None) -> Any:
    """Parsed JSON, or `fallback` when the file is absent or unreadable."""
    if not path.exists():
        return fallback
    try:
        with path.open(encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("Unreadable JSON at %s: %s", path, e)
        return fallback


def write_json_atomic(path: Path, payload: Any) -> None:
    """Write to a temp file in the same directory, then rename over the target."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
            f.write("\n")
        os.replace(tmp, path)
    except Exception:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


class ArtifactStore:
    """The published JSON files; also the last-known-good cache."""

    def __init__(self, data_dir: Path, *, fixtures_dir: Optional[Path] = None, status_dir: Optional[Path] = None, dry_run: bool = False) -> None:
        self.data_dir = Path(data_dir)
        self.team_dir = self.data_dir / "team"
        self.fixtures_dir = Path(fixtures_dir) if fixtures_dir else None
        self.status_dir = Path(status_dir) if status_dir else self.data_dir.parent / "artifacts" / "status"
        self.dry_run = dry_run

    # --- paths ---
    @property
    def roster_path(self) -> Path:
        return self.team_dir / "roster.json"

    @property
    def roster_meta_path(self) -> Path:
        return self.team_dir / "roster_meta.json"

    @property
    def roster_plus_path(self) -> Path:
        return self.team_dir / "roster_plus.json"

    @property
    def build_meta_path(self) -> Path:
        return self.data_dir / "build_meta.json"

    @property
    def espn_map_path(self) -> Path:
        return self.data_dir / "espn_map.json"

    @property
    def blacklist_path(self) -> Path:
        return self.data_dir / "blacklist_names.json"

    @property
    def featured_path(self) -> Path:
        return self.data_dir / FEATURED_FILE

    @property
    def ticker_path(self) -> Path:
        return self.data_dir / "ticker.json"

    @property
    def last_good_flag_path(self) -> Path:
        return self.status_dir / "last-good-roster.flag"

    def bucket_path(self, side: str, scope: str) -> Path:
        return self.data_dir / SPOTLIGHT_FILES[(side, scope)]

    # --- reads ---
    def load_roster_meta(self) -> Optional[dict[str, Any]]:
        meta = read_json(self.roster_meta_path, None)
        return meta if isinstance(meta, dict) else None

    def load_cached_roster(self) -> Optional[RosterSnapshot]:
        meta = self.load_roster_meta()
        rows = read_json(self.roster_path, None)
        if meta is None or not isinstance(rows, list):
            return None
        players = tuple(p for p in (Player.from_json(r) for r in rows if isinstance(r, dict)) if p is not None)
        season = coerce_int(meta.get("season"))
        team_id = coerce_int(meta.get("teamId"))
        if season is None or team_id is None:
            return None
        return RosterSnapshot(
            team_id=team_id,
            season=season,
            players=players,
            source="cache",
            generated_at=str(meta.get("generated_at") or ""),
        )

    def load_fixture_roster(self, *, season: int, team_id: int) -> Optional[RosterSnapshot]:
        if self.fixtures_dir is None:
            return None
        rows = read_json(self.fixtures_dir / f"roster_{season}.json", None)
        if not isinstance(rows, list) or not rows:
            return None
        players = tuple(p for p in (Player.from_json(r) for r in rows if isinstance(r, dict)) if p is not None)
        return RosterSnapshot(team_id=team_id, season=season, players=players, source="fixture")

    def load_cached_bucket(self, side: str, scope: str) -> Optional[list[dict[str, Any]]]:
        rows = read_json(self.bucket_path(side, scope), None)
        if not isinstance(rows, list):
            return None
        return [r for r in rows if isinstance(r, dict)]

    def load_build_meta(self) -> Optional[dict[str, Any]]:
        meta = read_json(self.build_meta_path, None)
        return meta if isinstance(meta, dict) else None

    # --- writes ---
    def _write(self, path: Path, payload: Any) -> None:
        if self.dry_run:
            logger.info("DRY: %s", path)
            return
        write_json_atomic(path, payload)

    def write_roster(self, snapshot: RosterSnapshot, *, strict: bool, last_good_reuse: bool = False) -> None:
        self._write(self.roster_path, [p.to_json() for p in snapshot.players])
        self._write(self.roster_meta_path, snapshot.to_meta(strict=strict, last_good_reuse=last_good_reuse))
        self._write(self.roster_plus_path, build_roster_plus(snapshot.players))
        self._write(self.espn_map_path, build_espn_map(snapshot.players))

    def write_bucket(self, side: str, scope: str, rows: list[dict[str, Any]]) -> None:
        self._write(self.bucket_path(side, scope), rows)

    def write_featured(self, row: dict[str, Any]) -> None:
        self._write(self.featured_path, row)

    def write_build_meta(self, meta: BuildMeta) -> None:
        self._write(self.build_meta_path, meta.to_json())

    def write_ticker(self, ticker: dict[str, Any]) -> None:
        self._write(self.ticker_path, ticker)

    def write_espn_map(self, players: tuple[Player, ...] | list[Player]) -> int:
        mapping = build_espn_map(players)
        self._write(self.espn_map_path, mapping)
        return len(mapping)

    def set_last_good_flag(self, in_use: bool) -> None:
        if self.dry_run:
            return
        flag = self.last_good_flag_path
        if in_use:
            flag.parent.mkdir(parents=True, exist_ok=True)
            flag.write_text("true", encoding="utf-8")
        elif flag.exists():
            flag.unlink()


def build_roster_plus(players: tuple[Player, ...] | list[Player]) -> dict[str, Any]:
    by_id: dict[str, Any] = {}
    by_name: dict[str, Any] = {}
    for p in players:
        if p.id is not None:
            by_id[str(p.id)] = p.to_json()
        by_name[normalize_name(p.name)] = p.id
    return {"byId": by_id, "byName": by_name, "count": len(players)}


def build_espn_map(players: tuple[Player, ...] | list[Player]) -> dict[str, int]:
    """Name and slug -> ESPN id, for players that have an id."""
    mapping: dict[str, int] = {}
    for p in players:
        if p.id is None:
            continue
        mapping[p.name] = p.id
        mapping[slugify(p.name)] = p.id
    return mapping
