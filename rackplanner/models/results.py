"""Result data models for validation and editing operations.

User-recoverable failures (collisions, bounds, stale indices, group
constraints) are reported through these objects instead of exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from rackplanner.models.layout import Layout, RackGroup


class MoveDirection(Enum):
    UP = 1
    DOWN = -1


class MoveReason(Enum):
    """Outcome of a keyboard/button move request.

    MOVED:             A free position was found.
    AT_BOUNDARY:       Device already touches the rack edge in that direction.
    NO_VALID_POSITION: Blocked for the whole remaining span, or the request
                       referenced a missing device or device type.
    """
    MOVED = "moved"
    AT_BOUNDARY = "at_boundary"
    NO_VALID_POSITION = "no_valid_position"


class DropFeedback(Enum):
    """Drag-over feedback for a candidate drop position."""
    VALID = "valid"
    BLOCKED = "blocked"
    INVALID = "invalid"


@dataclass
class MoveResult:
    """Result of propose_move.

    Attributes:
        success: True if the device can move.
        new_position: New bottom position [internal units], None on failure.
        reason: Why the move succeeded or failed.
    """
    success: bool = False
    new_position: Optional[int] = None
    reason: MoveReason = MoveReason.NO_VALID_POSITION


@dataclass
class ActionResult:
    """Generic success/error result of a recorded edit."""
    success: bool = True
    error: Optional[str] = None

    @classmethod
    def failed(cls, error: str) -> ActionResult:
        return cls(success=False, error=error)


@dataclass
class GroupResult:
    """Result of a rack-group create/update/add operation.

    Attributes:
        group: The created or updated group, None on error.
        error: Human-readable reason when the request was rejected.
    """
    group: Optional[RackGroup] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class SessionLoadResult:
    """Outcome of unwrapping a persisted session blob.

    Attributes:
        layout: Migrated layout.
        saved_at: ISO timestamp of the save, None for legacy bare layouts.
        is_legacy: True when the blob was a bare layout without wrapper.
    """
    layout: Optional[Layout] = None
    saved_at: Optional[str] = None
    is_legacy: bool = False


@dataclass
class LayoutIssues:
    """Integrity problems found in a loaded layout (best-effort load).

    Attributes:
        unresolved_devices: (rack_id, device_id, slug) for devices whose
            type slug is missing from the library.
        out_of_bounds: (rack_id, device_id) for devices outside the rack.
        collisions: (rack_id, device_id, other_device_id) overlapping pairs.
    """
    unresolved_devices: list[tuple[str, str, str]] = field(default_factory=list)
    out_of_bounds: list[tuple[str, str]] = field(default_factory=list)
    collisions: list[tuple[str, str, str]] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not (self.unresolved_devices or self.out_of_bounds or self.collisions)
