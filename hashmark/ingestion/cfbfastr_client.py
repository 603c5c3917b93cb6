from __future__ import annotations

import io
import logging
from typing import Any, Optional

import pandas as pd

from hashmark.ingestion.http_client import PayloadShapeError, RetryingJsonClient


logger = logging.getLogger(__name__)

CFBFASTR_BASE = "https://raw.githubusercontent.com/sportsdataverse/cfbfastR-data/main"


def _read_csv(text: str) -> pd.DataFrame:
    try:
        return pd.read_csv(io.StringIO(text), low_memory=False)
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise PayloadShapeError(f"cfbfastR CSV unreadable: {e}") from e


def _team_rows(df: pd.DataFrame, team: str) -> list[dict[str, Any]]:
    if df.empty:
        return []
    col = next((c for c in ("team", "school", "pos_team") if c in df.columns), None)
    if col is None:
        raise PayloadShapeError(f"cfbfastR CSV has no team column (columns={list(df.columns)[:10]})")
    # Exact school match: "Kentucky" must not pick up "Western Kentucky".
    want = " ".join(team.split()).lower()
    teams = df[col].fillna("").astype(str).str.split().str.join(" ").str.lower()
    sub = df.loc[teams == want]
    # NaN -> None so downstream coercion treats blanks as missing
    sub = sub.astype(object).where(pd.notnull(sub), None)
    return sub.to_dict(orient="records")


class CfbfastrClient:
    """Static CSV mirror of cfbfastR datasets on GitHub."""

    def __init__(self, *, http: Optional[RetryingJsonClient] = None, **http_kwargs: Any) -> None:
        self._http = http or RetryingJsonClient(base_url=CFBFASTR_BASE, headers={"Accept": "text/csv"}, **http_kwargs)

    def roster(self, *, team: str, year: int) -> list[dict[str, Any]]:
        text = self._http.get_text(f"/rosters/csv/cfb_rosters_{year}.csv")
        return _team_rows(_read_csv(text), team)

    def player_season_stats(self, *, team: str, year: int) -> list[dict[str, Any]]:
        text = self._http.get_text(f"/player_stats/csv/player_stats_{year}.csv")
        return _team_rows(_read_csv(text), team)
