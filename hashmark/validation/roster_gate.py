from __future__ import annotations

from typing import Optional

from hashmark.config import ROSTER_MAX_PLAYERS, ROSTER_MIN_ID_COVERAGE, ROSTER_MIN_PLAYERS
from hashmark.models.records import Player, PlayerRef, RosterSnapshot, normalize_name


def check_snapshot(snapshot: Optional[RosterSnapshot], *, target_season: int, team_id: Optional[int] = None) -> list[str]:
    """
    Problems that make a roster snapshot unusable. Empty list means accept.

    There is no partial acceptance: any problem rejects the whole snapshot.
    """
    if snapshot is None:
        return ["roster snapshot missing"]
    errs: list[str] = []
    if snapshot.season != target_season:
        errs.append(f"season mismatch: snapshot={snapshot.season} target={target_season}")
    if team_id is not None and snapshot.team_id != team_id:
        errs.append(f"team mismatch: snapshot={snapshot.team_id} target={team_id}")
    n = len(snapshot.players)
    if n < ROSTER_MIN_PLAYERS or n > ROSTER_MAX_PLAYERS:
        errs.append(f"roster size {n} out of range ({ROSTER_MIN_PLAYERS}-{ROSTER_MAX_PLAYERS})")
    if n and snapshot.id_coverage < ROSTER_MIN_ID_COVERAGE:
        errs.append(f"id coverage {snapshot.id_coverage:.3f} below {ROSTER_MIN_ID_COVERAGE:.2f}")
    return errs


class RosterGate:
    """Membership checks against the accepted roster snapshot."""

    def __init__(self, snapshot: RosterSnapshot) -> None:
        self.snapshot = snapshot
        self._by_id: dict[int, Player] = {}
        self._by_name: dict[str, Player] = {}
        for player in snapshot.players:
            if player.id is not None:
                self._by_id.setdefault(player.id, player)
            self._by_name.setdefault(normalize_name(player.name), player)

    @property
    def ids(self) -> set[int]:
        return set(self._by_id)

    @property
    def names(self) -> set[str]:
        return set(self._by_name)

    def resolve(self, ref: PlayerRef) -> Optional[Player]:
        """By id when the ref has one; by normalized name only for id-less refs."""
        if ref.id is not None:
            # An unknown id is a different athlete, even under a familiar name.
            return self._by_id.get(ref.id)
        key = normalize_name(ref.name)
        if key:
            return self._by_name.get(key)
        return None

    def is_member(self, ref: PlayerRef) -> bool:
        return self.resolve(ref) is not None
