from __future__ import annotations

from typing import Any, Mapping

from hashmark.metrics.normalizer import stat_value
from hashmark.models.records import DEFENSE, OFFENSE


# Linear weights per side. Positive stats carry positive weights, turnovers
# negative ones, so the score is monotone in every input.
OFFENSE_WEIGHTS: dict[str, float] = {
    "pass_yds": 0.04,
    "rush_yds": 0.10,
    "rec_yds": 0.10,
    "pass_td": 4.0,
    "rush_td": 6.0,
    "rec_td": 6.0,
    "rec": 0.5,
    "int": -2.0,
    "fum": -2.0,
}

DEFENSE_WEIGHTS: dict[str, float] = {
    "tkl": 1.0,
    "solo": 0.5,
    "tfl": 2.0,
    "sacks": 4.0,
    "def_int": 5.0,
    "pd": 1.5,
    "ff": 3.0,
    "fr": 2.0,
}

WEIGHTS_BY_SIDE = {OFFENSE: OFFENSE_WEIGHTS, DEFENSE: DEFENSE_WEIGHTS}


def score(statline: Mapping[str, Any], side: str) -> float:
    """
    Simple, explicit composite score.

    Yardage can be negative (sacks taken, lost rushes); a negative total just
    lands below the ranking threshold.
    """
    weights = WEIGHTS_BY_SIDE.get(side)
    if not weights or not statline:
        return 0.0
    total = sum(w * stat_value(statline, code) for code, w in weights.items())
    return round(total, 4)


def is_rankable(value: float) -> bool:
    return value > 0
