"""
Tile Domain Model for hexturf.

Purpose
-------
Rich domain model for one H3 cell of the ownership ledger: who holds it,
which activity produced the claim, and the stack of prior claims needed to
undo captures in reverse order.

This is separate from the ``Hexagon`` row in ``hexturf.database.models``.
``TileRepository`` converts between the two.

Responsibilities
----------------
- Decide the outcome of an incoming claim (create / capture / refresh / stale)
- Push and pop capture history as an explicit LIFO stack
- Keep ``capture_count == 1 + len(history)`` and keep
  ``last_previous_owner_id`` equal to the owner on top of the stack

Non-Responsibilities
--------------------
- Persistence and row locking (handled by repositories and services)
- Geometry (handled by ``hexturf.modules.tiling``)

Usage Example
-------------
>>> tile = Tile.discover("8a2a1072b59ffff", claim_a, parent_tile_id="862a10727ffffff")
>>> tile.apply_claim(claim_b)
<ClaimOutcome.CAPTURED: 'captured'>
>>> tile.capture_count, len(tile.history)
(2, 1)
>>> tile.revert()
<RevertOutcome.RESTORED: 'restored'>
>>> tile.owner_id == claim_a.owner_id
True
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from hexturf.domain.models.base import DomainValidationError, Entity


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    raise DomainValidationError(f"Unsupported timestamp value: {value!r}", field="captured_at")


# ============================================================================
# VALUE OBJECTS
# ============================================================================


@dataclass(frozen=True)
class Claim:
    """
    An incoming ownership claim produced by processing one activity.

    Attributes
    ----------
    owner_id : int
        Internal user id of the runner
    owner_external_id : str
        Athlete id at the upstream provider
    activity_id : int
        Internal activity id
    activity_external_id : str
        Upstream activity id
    captured_at : datetime
        Activity start date; orders competing claims
    activity_type : Optional[str]
        Sport type, falling back to activity type
    route_type : Optional[str]
        ``"line"`` or ``"area"``
    """

    owner_id: int
    owner_external_id: str
    activity_id: int
    activity_external_id: str
    captured_at: datetime
    activity_type: Optional[str] = None
    route_type: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "captured_at", ensure_utc(self.captured_at))


@dataclass(frozen=True)
class CaptureHistoryEntry:
    """Snapshot of a tile's claim at the moment it changed hands."""

    owner_id: int
    owner_external_id: str
    activity_id: int
    activity_external_id: str
    captured_at: datetime
    activity_type: Optional[str] = None
    route_type: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "captured_at", ensure_utc(self.captured_at))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "owner_external_id": self.owner_external_id,
            "activity_id": self.activity_id,
            "activity_external_id": self.activity_external_id,
            "captured_at": self.captured_at.isoformat(),
            "activity_type": self.activity_type,
            "route_type": self.route_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> CaptureHistoryEntry:
        try:
            return cls(
                owner_id=int(data["owner_id"]),
                owner_external_id=str(data["owner_external_id"]),
                activity_id=int(data["activity_id"]),
                activity_external_id=str(data["activity_external_id"]),
                captured_at=_parse_timestamp(data["captured_at"]),
                activity_type=data.get("activity_type"),
                route_type=data.get("route_type"),
            )
        except KeyError as exc:
            raise DomainValidationError(
                f"History entry is missing {exc.args[0]!r}", field="capture_history"
            ) from exc


class CaptureHistoryStack:
    """
    LIFO of prior claims for one tile.

    Iteration and ``to_list`` run oldest first; the top of the stack is the
    most recent former owner. Only ``Tile`` pushes and pops.
    """

    __slots__ = ("_entries",)

    def __init__(self, entries: Optional[List[CaptureHistoryEntry]] = None) -> None:
        self._entries: List[CaptureHistoryEntry] = list(entries or [])

    def push(self, entry: CaptureHistoryEntry) -> None:
        self._entries.append(entry)

    def pop(self) -> CaptureHistoryEntry:
        if not self._entries:
            raise DomainValidationError("Cannot pop from an empty capture history")
        return self._entries.pop()

    def peek(self) -> Optional[CaptureHistoryEntry]:
        return self._entries[-1] if self._entries else None

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __iter__(self) -> Iterator[CaptureHistoryEntry]:
        return iter(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CaptureHistoryStack):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"CaptureHistoryStack(depth={len(self._entries)})"

    def copy(self) -> CaptureHistoryStack:
        return CaptureHistoryStack(self._entries)

    def to_list(self) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in self._entries]

    @classmethod
    def from_list(cls, raw: Optional[List[Dict[str, Any]]]) -> CaptureHistoryStack:
        return cls([CaptureHistoryEntry.from_dict(item) for item in (raw or [])])


class ClaimOutcome(str, Enum):
    CREATED = "created"
    CAPTURED = "captured"
    REFRESHED = "refreshed"
    STALE = "stale"

    @property
    def is_update(self) -> bool:
        return self in (ClaimOutcome.CAPTURED, ClaimOutcome.REFRESHED)


class RevertOutcome(str, Enum):
    RESTORED = "restored"
    VACATED = "vacated"


# ============================================================================
# TILE ENTITY
# ============================================================================


class Tile(Entity):
    """
    One hexagon of the ownership ledger.

    The identity is the H3 cell id. All mutation goes through
    :meth:`apply_claim` and :meth:`revert`, which keep the history stack,
    ``capture_count`` and ``last_previous_owner_id`` consistent.
    """

    def __init__(
        self,
        tile_id: str,
        *,
        parent_tile_id: Optional[str],
        owner_id: int,
        owner_external_id: str,
        activity_id: int,
        activity_external_id: str,
        capture_count: int,
        first_captured_at: datetime,
        first_captured_by: int,
        last_captured_at: datetime,
        activity_type: Optional[str] = None,
        route_type: Optional[str] = None,
        last_previous_owner_id: Optional[int] = None,
        history: Optional[CaptureHistoryStack] = None,
    ) -> None:
        if not tile_id:
            raise DomainValidationError("tile_id cannot be empty", field="tile_id")
        super().__init__(tile_id)
        self.parent_tile_id = parent_tile_id
        self.owner_id = owner_id
        self.owner_external_id = owner_external_id
        self.activity_id = activity_id
        self.activity_external_id = activity_external_id
        self.capture_count = capture_count
        self.first_captured_at = ensure_utc(first_captured_at)
        self.first_captured_by = first_captured_by
        self.last_captured_at = ensure_utc(last_captured_at)
        self.activity_type = activity_type
        self.route_type = route_type
        self.last_previous_owner_id = last_previous_owner_id
        self.history = history if history is not None else CaptureHistoryStack()
        self.validate()

    @property
    def tile_id(self) -> str:
        return str(self.id)

    @classmethod
    def discover(cls, tile_id: str, claim: Claim, parent_tile_id: Optional[str]) -> Tile:
        """Create the first claim on a tile nobody has held before."""
        return cls(
            tile_id,
            parent_tile_id=parent_tile_id,
            owner_id=claim.owner_id,
            owner_external_id=claim.owner_external_id,
            activity_id=claim.activity_id,
            activity_external_id=claim.activity_external_id,
            capture_count=1,
            first_captured_at=claim.captured_at,
            first_captured_by=claim.owner_id,
            last_captured_at=claim.captured_at,
            activity_type=claim.activity_type,
            route_type=claim.route_type,
        )

    # ------------------------------------------------------------------ #
    # Invariants
    # ------------------------------------------------------------------ #

    def validate(self) -> None:
        if self.capture_count != 1 + len(self.history):
            raise DomainValidationError(
                f"Tile {self.tile_id}: capture_count {self.capture_count} does not "
                f"match history depth {len(self.history)}",
                field="capture_count",
            )
        top = self.history.peek()
        expected_previous = top.owner_id if top is not None else None
        if self.last_previous_owner_id != expected_previous:
            raise DomainValidationError(
                f"Tile {self.tile_id}: last_previous_owner_id "
                f"{self.last_previous_owner_id} does not match history top {expected_previous}",
                field="last_previous_owner_id",
            )

    # ------------------------------------------------------------------ #
    # State transitions
    # ------------------------------------------------------------------ #

    def is_newer(self, claim: Claim) -> bool:
        """Ties are not newer."""
        return claim.captured_at > self.last_captured_at

    def snapshot(self) -> CaptureHistoryEntry:
        return CaptureHistoryEntry(
            owner_id=self.owner_id,
            owner_external_id=self.owner_external_id,
            activity_id=self.activity_id,
            activity_external_id=self.activity_external_id,
            captured_at=self.last_captured_at,
            activity_type=self.activity_type,
            route_type=self.route_type,
        )

    def _take_claim(self, claim: Claim) -> None:
        self.activity_id = claim.activity_id
        self.activity_external_id = claim.activity_external_id
        self.last_captured_at = claim.captured_at
        self.activity_type = claim.activity_type
        self.route_type = claim.route_type

    def apply_claim(self, claim: Claim) -> ClaimOutcome:
        """
        Apply an incoming claim.

        Returns
        -------
        ClaimOutcome
            STALE when the claim is not strictly newer (tile untouched),
            REFRESHED when the current owner claims again (no history push,
            no count change), CAPTURED when ownership changes hands.
        """
        if not self.is_newer(claim):
            return ClaimOutcome.STALE

        if claim.owner_id == self.owner_id:
            self._take_claim(claim)
            self.owner_external_id = claim.owner_external_id
            return ClaimOutcome.REFRESHED

        displaced = self.snapshot()
        self.history.push(displaced)
        self.owner_id = claim.owner_id
        self.owner_external_id = claim.owner_external_id
        self._take_claim(claim)
        self.capture_count += 1
        self.last_previous_owner_id = displaced.owner_id
        return ClaimOutcome.CAPTURED

    def revert(self) -> RevertOutcome:
        """
        Undo the current claim.

        VACATED means nobody held the tile before; the caller deletes it.
        """
        if not self.history:
            return RevertOutcome.VACATED

        restored = self.history.pop()
        self.owner_id = restored.owner_id
        self.owner_external_id = restored.owner_external_id
        self.activity_id = restored.activity_id
        self.activity_external_id = restored.activity_external_id
        self.last_captured_at = restored.captured_at
        self.activity_type = restored.activity_type
        self.route_type = restored.route_type
        self.capture_count -= 1

        top = self.history.peek()
        self.last_previous_owner_id = top.owner_id if top is not None else None
        return RevertOutcome.RESTORED

    def __repr__(self) -> str:
        return (
            f"Tile(tile_id={self.tile_id!r}, owner_id={self.owner_id}, "
            f"capture_count={self.capture_count}, history={len(self.history)})"
        )
