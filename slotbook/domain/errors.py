"""Domain error taxonomy for the slot coordinator.

Every error carries a stable code and a user-safe message. Handlers branch on
the code; ``Conflict`` and ``StaleState`` are expected outcomes, not faults.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from slotbook.domain.models import ConflictItem, SlotRequest


class ErrorCode(Enum):
    """Domain error codes."""

    INVALID_RANGE = "INVALID_RANGE"
    CONFLICT = "CONFLICT"
    STALE_STATE = "STALE_STATE"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    NOT_FOUND = "NOT_FOUND"
    PERMISSION_DENIED = "PERMISSION_DENIED"


class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class InvalidRange(DomainError):
    """Raised when a time range is malformed or zero-length."""

    code = ErrorCode.INVALID_RANGE


class Conflict(DomainError):
    """Raised when committing a slot would overlap a block or an approved slot."""

    code = ErrorCode.CONFLICT

    def __init__(
        self,
        conflicts: Sequence[ConflictItem],
        slot: SlotRequest | None = None,
        timezone: str | None = None,
    ) -> None:
        self.conflicts = tuple(conflicts)
        self.slot = slot
        self.timezone = timezone
        super().__init__(_describe_conflicts(self.conflicts))


class StaleState(DomainError):
    """Raised when the stored record moved on since the caller read it."""

    code = ErrorCode.STALE_STATE


class InvalidTransition(DomainError):
    """Raised when an action is not legal from the current status or lifecycle."""

    code = ErrorCode.INVALID_TRANSITION


class NotFound(DomainError):
    """Raised when a venue, event, slot request or block does not exist."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} not found")
        self.entity = entity
        self.entity_id = entity_id


class PermissionDenied(DomainError):
    """Raised when the actor may not perform the action."""

    code = ErrorCode.PERMISSION_DENIED


class TransientStorageError(Exception):
    """Storage was unreachable (connection loss, timeout). Safe to retry reads only."""


def _describe_conflicts(conflicts: Sequence[ConflictItem]) -> str:
    if not conflicts:
        return "Slot is no longer available"
    parts = []
    for item in conflicts:
        if item.kind == "block":
            label = f"venue block {item.record_id}"
            if item.reason:
                label += f" ({item.reason})"
        else:
            label = f"approved slot request {item.record_id}"
        parts.append(f"{label} on {item.range.describe()}")
    return "Slot is no longer available: overlaps " + "; ".join(parts)
