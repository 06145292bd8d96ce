"""
Capture planning.

Pure decision step of the capture engine: given the tiles that already
exist (locked by the caller) and the claim carried by one activity, decide
per tile id whether to insert, update or skip. No I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from hexturf.domain.models.tile import Claim, ClaimOutcome, Tile


@dataclass
class CapturePlan:
    """
    Staged changes for one capture.

    ``inserts`` and ``updates`` hold mutated domain tiles ready to persist.
    ``stolen_from`` maps displaced owner id to the number of tiles taken.
    """

    inserts: List[Tile] = field(default_factory=list)
    updates: List[Tile] = field(default_factory=list)
    created_ids: List[str] = field(default_factory=list)
    updated_ids: List[str] = field(default_factory=list)
    skipped_ids: List[str] = field(default_factory=list)
    captured_ids: List[str] = field(default_factory=list)
    stolen_from: Dict[int, int] = field(default_factory=dict)

    @property
    def created(self) -> int:
        return len(self.created_ids)

    @property
    def updated(self) -> int:
        return len(self.updated_ids)

    @property
    def skipped(self) -> int:
        return len(self.skipped_ids)

    @property
    def is_noop(self) -> bool:
        return not self.inserts and not self.updates


def plan_capture(
    existing: Mapping[str, Tile],
    tile_ids: Sequence[str],
    claim: Claim,
    parent_of: Callable[[str], Optional[str]],
) -> CapturePlan:
    """
    Plan a capture.

    Parameters
    ----------
    existing:
        Current tiles keyed by tile id. Tiles in the plan are mutated in
        place, so pass copies if the originals must survive.
    tile_ids:
        Cells claimed by the activity. Duplicates are planned once.
    claim:
        Who claims them, with which activity and start date.
    parent_of:
        Maps a capture cell to its regional parent for new tiles.
    """
    plan = CapturePlan()
    seen: set[str] = set()

    for tile_id in tile_ids:
        if tile_id in seen:
            continue
        seen.add(tile_id)

        tile = existing.get(tile_id)
        if tile is None:
            plan.inserts.append(Tile.discover(tile_id, claim, parent_tile_id=parent_of(tile_id)))
            plan.created_ids.append(tile_id)
            continue

        previous_owner = tile.owner_id
        outcome = tile.apply_claim(claim)

        if outcome is ClaimOutcome.STALE:
            plan.skipped_ids.append(tile_id)
            continue

        plan.updates.append(tile)
        plan.updated_ids.append(tile_id)
        if outcome is ClaimOutcome.CAPTURED:
            plan.captured_ids.append(tile_id)
            plan.stolen_from[previous_owner] = plan.stolen_from.get(previous_owner, 0) + 1

    return plan
