from __future__ import annotations

import logging
import math
from collections import Counter
from typing import Any, Iterable, Mapping, Optional

from hashmark.config import SPOTLIGHT_SIZE
from hashmark.ingestion.shapes import ParsedRow
from hashmark.metrics.definitions import is_rankable, score
from hashmark.metrics.normalizer import normalize_statline
from hashmark.models.records import (
    DEFENSE,
    LAST_GAME,
    OFFENSE,
    SEASON,
    Player,
    PlayerRef,
    SpotlightSet,
    StatRecord,
    normalize_name,
)
from hashmark.validation.roster_gate import RosterGate


logger = logging.getLogger(__name__)

OFFENSE_POSITIONS = {"QB", "RB", "WR", "TE", "FB", "HB", "TB", "SB", "OT", "OG", "C", "OL", "ATH"}
DEFENSE_POSITIONS = {"DL", "DE", "DT", "NT", "LB", "OLB", "ILB", "MLB", "EDGE", "CB", "DB", "S", "FS", "SS", "STAR", "NICKEL"}

# Featured pick falls through these buckets in order.
FEATURED_ORDER = ((OFFENSE, LAST_GAME), (DEFENSE, LAST_GAME), (OFFENSE, SEASON), (DEFENSE, SEASON))

GRADE_CUTOFFS = (
    (97, "A+"),
    (93, "A"),
    (90, "A-"),
    (87, "B+"),
    (83, "B"),
    (80, "B-"),
    (77, "C+"),
    (73, "C"),
    (70, "C-"),
    (67, "D+"),
    (63, "D"),
    (60, "D-"),
)


def side_for_position(position: Optional[str]) -> Optional[str]:
    pos = (position or "").strip().upper()
    if pos in OFFENSE_POSITIONS:
        return OFFENSE
    if pos in DEFENSE_POSITIONS:
        return DEFENSE
    return None


def build_record(row: ParsedRow, *, scope: str, source: str) -> StatRecord:
    """
    Turn one parsed upstream row into a StatRecord.

    Side follows the position; players without a known position are put on
    whichever side scores them higher.
    """
    side = side_for_position(row.position)
    if side is None:
        off_line = normalize_statline(row.stats, OFFENSE)
        def_line = normalize_statline(row.stats, DEFENSE)
        off_score, def_score = score(off_line, OFFENSE), score(def_line, DEFENSE)
        if def_score > off_score:
            side, statline, value = DEFENSE, def_line, def_score
        else:
            side, statline, value = OFFENSE, off_line, off_score
    else:
        statline = normalize_statline(row.stats, side)
        value = score(statline, side)
    return StatRecord(
        player_ref=PlayerRef(id=row.player_id, name=row.name),
        scope=scope,
        side=side,
        statline=statline,
        score=value,
        source=source,
        position=row.position,
    )


def build_records(rows: Iterable[ParsedRow], *, scope: str, source: str) -> list[StatRecord]:
    return [build_record(r, scope=scope, source=source) for r in rows]


def entry_to_json(record: StatRecord, player: Player) -> dict[str, Any]:
    return {
        "name": player.name,
        "id": player.id,
        "position": player.position or (record.position or "").upper() or None,
        "headshot-url": player.headshot_url,
        "profile-link": player.profile_link,
        "statline": dict(record.statline),
        "score": record.score,
        "side": record.side,
        "scope": record.scope,
        "source": record.source,
    }


def letter_grade(pct: int) -> str:
    for cut, letter in GRADE_CUTOFFS:
        if pct >= cut:
            return letter
    return "F"


def grade_rows(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Grade each row against the others in its bucket.

    Scores are min-max scaled onto 60-100, so with distinct scores the best
    row is 100 / A+ and the last 60 / D-; equal scores all grade 80 / B-.
    """
    if not rows:
        return rows
    scores = [float(r.get("score") or 0.0) for r in rows]
    lo, hi = min(scores), max(scores)
    for row, value in zip(rows, scores):
        p = 0.5 if hi == lo else (value - lo) / (hi - lo)
        pct = max(0, min(100, math.floor(60 + 40 * p + 0.5)))
        row["grade_pct"] = pct
        row["grade_letter"] = letter_grade(pct)
    return rows


def identity_key(player: Player) -> str:
    return f"id:{player.id}" if player.id is not None else f"name:{normalize_name(player.name)}"


def rank_bucket(
    records: Iterable[StatRecord],
    gate: RosterGate,
    *,
    side: str,
    scope: str,
    source: str,
    counters: Optional[Counter] = None,
    size: int = SPOTLIGHT_SIZE,
) -> SpotlightSet:
    """Gate, score-filter, sort and dedupe one (side, scope) bucket."""
    counters = counters if counters is not None else Counter()
    candidates: list[tuple[StatRecord, Player]] = []
    for record in records:
        if record.side != side or record.scope != scope:
            continue
        player = gate.resolve(record.player_ref)
        if player is None:
            counters["dropped_not_on_roster"] += 1
            continue
        if not is_rankable(record.score):
            counters["dropped_insufficient_signal"] += 1
            continue
        candidates.append((record, player))

    candidates.sort(key=lambda rp: (-rp[0].score, rp[1].name.lower()))
    seen: set[str] = set()
    rows: list[dict[str, Any]] = []
    for record, player in candidates:
        key = identity_key(player)
        if key in seen:
            counters["dropped_duplicate_player"] += 1
            continue
        seen.add(key)
        if len(rows) < size:
            rows.append(entry_to_json(record, player))
    grade_rows(rows)
    return SpotlightSet(side=side, scope=scope, rows=tuple(rows), source=source)


def pick_featured(buckets: Mapping[tuple[str, str], SpotlightSet]) -> Optional[dict[str, Any]]:
    for key in FEATURED_ORDER:
        bucket = buckets.get(key)
        if bucket is not None and bucket.rows:
            return dict(bucket.rows[0])
    return None
