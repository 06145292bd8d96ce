"""
Shared pieces of the ledger's domain models: identity by key and the
validation error raised when a tile, claim or route input is malformed.
"""

from __future__ import annotations

from typing import Hashable, Optional


class Entity:
    """Equal to another instance of the same class with the same key."""

    def __init__(self, entity_id: Hashable) -> None:
        self._id = entity_id

    @property
    def id(self) -> Hashable:
        return self._id

    def __eq__(self, other: object) -> bool:
        return type(other) is type(self) and other.id == self.id  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._id))


class DomainValidationError(Exception):
    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


def validate_positive(value: int, field_name: str) -> None:
    if value <= 0:
        raise DomainValidationError(f"{field_name} must be positive, got {value}", field=field_name)


def validate_not_blank(value: Optional[str], field_name: str) -> None:
    if value is None or not str(value).strip():
        raise DomainValidationError(f"{field_name} cannot be empty", field=field_name)
