from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from hashmark.utils.env import (
    getenv_bool,
    getenv_float,
    getenv_int,
    getenv_list,
    getenv_str,
    project_root,
)


DEFAULT_SEASON = 2025
DEFAULT_TEAM = "Kentucky"
DEFAULT_TEAM_ID = 96
DEFAULT_BACKOFF_MS = (250, 600, 1200)
DEFAULT_PROVIDERS = ("cfbd", "espn", "cfbfastr")

# Roster snapshot bounds shared by the gate and the validator.
ROSTER_MIN_PLAYERS = 65
ROSTER_MAX_PLAYERS = 150
ROSTER_MIN_ID_COVERAGE = 0.90
SPOTLIGHT_MAX_MISMATCH_RATE = 0.05
SPOTLIGHT_SIZE = 3


def _parse_backoff(raw: str | None) -> tuple[float, ...]:
    if not raw:
        return tuple(ms / 1000.0 for ms in DEFAULT_BACKOFF_MS)
    delays: list[float] = []
    for part in raw.split(","):
        s = part.strip()
        if not s:
            continue
        try:
            ms = float(s)
        except ValueError:
            continue
        if ms > 0:
            delays.append(ms / 1000.0)
    return tuple(delays) or tuple(ms / 1000.0 for ms in DEFAULT_BACKOFF_MS)


def _resolve_dir(raw: str) -> Path:
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = project_root() / path
    return path.resolve()


@dataclass(frozen=True)
class PipelineConfig:
    team: str = DEFAULT_TEAM
    team_id: int = DEFAULT_TEAM_ID
    season: int = DEFAULT_SEASON
    strict_season: bool = True
    force_rebuild: bool = False
    dry_run: bool = False
    data_dir: Path = field(default_factory=lambda: project_root() / "data")
    fixtures_dir: Path = field(default_factory=lambda: project_root() / "fixtures")
    status_dir: Path = field(default_factory=lambda: project_root() / "artifacts" / "status")
    cfbd_api_key: str = ""
    providers: tuple[str, ...] = DEFAULT_PROVIDERS
    backoff_seconds: tuple[float, ...] = tuple(ms / 1000.0 for ms in DEFAULT_BACKOFF_MS)
    http_timeout_seconds: float = 9.0
    min_rebuild_minutes: int = 0

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        return cls(
            team=getenv_str("HASHMARK_TEAM", DEFAULT_TEAM),
            team_id=getenv_int("HASHMARK_TEAM_ID", DEFAULT_TEAM_ID),
            season=getenv_int("HASHMARK_SEASON", DEFAULT_SEASON),
            strict_season=getenv_bool("STRICT_SEASON", default=True),
            force_rebuild=getenv_bool("FORCE_REBUILD", default=False),
            dry_run=getenv_bool("DRY_RUN", default=False),
            data_dir=_resolve_dir(getenv_str("HASHMARK_DATA_DIR", "data")),
            fixtures_dir=_resolve_dir(getenv_str("HASHMARK_FIXTURES_DIR", "fixtures")),
            status_dir=_resolve_dir(getenv_str("HASHMARK_STATUS_DIR", "artifacts/status")),
            cfbd_api_key=getenv_str("CFBD_API_KEY", ""),
            providers=tuple(p.lower() for p in getenv_list("HASHMARK_PROVIDERS", list(DEFAULT_PROVIDERS))),
            backoff_seconds=_parse_backoff(getenv_str("HASHMARK_BACKOFF_MS")),
            http_timeout_seconds=getenv_float("HASHMARK_HTTP_TIMEOUT_SECONDS", 9.0),
            min_rebuild_minutes=getenv_int("HASHMARK_MIN_REBUILD_MINUTES", 0),
        )
