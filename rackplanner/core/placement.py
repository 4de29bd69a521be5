"""Move/placement validator.

propose_move walks a device up or down by one step and, if the first
candidate is blocked, leapfrogs past the blocking devices to the nearest
free position. get_drop_feedback validates drag-and-drop targets without
leapfrog.

Both are pure functions of rack + library + intent and are re-evaluated on
every keypress or drag-over event.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from rackplanner.constants import UNITS_PER_U
from rackplanner.core.occupancy import build_occupancy
from rackplanner.core.units import (
    height_to_internal_units,
    is_within_rack,
    max_bottom_position,
    to_internal_units,
)
from rackplanner.models.layout import DeviceType, Face, Rack, SlotPosition
from rackplanner.models.results import (
    DropFeedback,
    MoveDirection,
    MoveReason,
    MoveResult,
)

logger = logging.getLogger(__name__)


def _resolve_step(step_u: Optional[float]) -> int | None:
    """Step size [U] → internal units.

    None means one full U. Steps finer than the grid are rounded to the
    nearest sub-unit with a floor of one sub-unit; negative, zero and
    non-finite steps are rejected (None).
    """
    if step_u is None:
        return UNITS_PER_U
    if not math.isfinite(step_u) or step_u <= 0:
        return None
    step = to_internal_units(step_u)
    if step < 1:
        logger.debug("Step %.4fU below grid resolution, using 1 sub-unit", step_u)
        step = 1
    return step


def propose_move(
    rack: Rack,
    device_types: list[DeviceType],
    device_index: int,
    direction: MoveDirection | int,
    step_u: Optional[float] = None,
) -> MoveResult:
    """Find the next valid position for a device in *direction*.

    The first candidate is the current position plus one step. When it is
    blocked, the search jumps so the footprint clears the blocking cells:
    moving up, to just above the highest occupied cell under the
    footprint; moving down, so the top sits just below the lowest one.
    Every position skipped this way still covers that cell, so the result
    is the nearest free position beyond the first candidate.

    Args:
        rack: Rack containing the device.
        device_types: Device library.
        device_index: Index in ``rack.devices``.
        direction: MoveDirection.UP / DOWN (or +1 / -1).
        step_u: Step size [U], default 1U. Use 0.5 for fine movement.

    Returns:
        MoveResult with MOVED, AT_BOUNDARY or NO_VALID_POSITION.
        Devices nested in a container always give NO_VALID_POSITION.
    """
    if not 0 <= device_index < len(rack.devices):
        return MoveResult(reason=MoveReason.NO_VALID_POSITION)
    device = rack.devices[device_index]
    if device.container_id is not None:
        # Child positions are U offsets inside the container
        logger.debug("Move rejected: %s is nested in %s", device.id, device.container_id)
        return MoveResult(reason=MoveReason.NO_VALID_POSITION)
    dt = next((d for d in device_types if d.slug == device.device_type), None)
    if dt is None:
        logger.debug("Move rejected: unknown device type %r", device.device_type)
        return MoveResult(reason=MoveReason.NO_VALID_POSITION)
    step = _resolve_step(step_u)
    if step is None:
        return MoveResult(reason=MoveReason.NO_VALID_POSITION)

    h = height_to_internal_units(dt.u_height)
    top_limit = max_bottom_position(rack.height, dt.u_height)
    sign = MoveDirection(direction).value

    if sign > 0 and device.position >= top_limit:
        return MoveResult(reason=MoveReason.AT_BOUNDARY)
    if sign < 0 and device.position <= UNITS_PER_U:
        return MoveResult(reason=MoveReason.AT_BOUNDARY)

    occupancy = build_occupancy(rack, device_types, exclude_index=device_index)
    candidate = device.position + sign * step

    while UNITS_PER_U <= candidate <= top_limit:
        blocking = occupancy.blocking_cells(
            candidate, dt.u_height, device.face, device.slot_position,
        )
        if blocking.size == 0:
            return MoveResult(
                success=True, new_position=int(candidate), reason=MoveReason.MOVED,
            )
        # Leapfrog
        if sign > 0:
            candidate = int(blocking[-1]) + 1
        else:
            candidate = int(blocking[0]) - h

    return MoveResult(reason=MoveReason.NO_VALID_POSITION)


def can_move_up(rack: Rack, device_types: list[DeviceType], device_index: int) -> bool:
    """Enable state for a "move up" button."""
    return propose_move(rack, device_types, device_index, MoveDirection.UP).success


def can_move_down(rack: Rack, device_types: list[DeviceType], device_index: int) -> bool:
    """Enable state for a "move down" button."""
    return propose_move(rack, device_types, device_index, MoveDirection.DOWN).success


def get_drop_feedback(
    rack: Rack,
    device_types: list[DeviceType],
    u_height: float,
    position: int,
    exclude_index: Optional[int] = None,
    face: Face = Face.FRONT,
    slot: SlotPosition = SlotPosition.FULL,
) -> DropFeedback:
    """Tri-state feedback for dropping a device at *position*.

    Args:
        rack: Target rack.
        device_types: Device library.
        u_height: Height of the dragged device [U].
        position: Candidate bottom position [internal units].
        exclude_index: Index of the dragged device when it is already in
            this rack, so dropping it back on itself stays VALID.
        face: Face the device would occupy.
        slot: Slot half the device would occupy.

    Returns:
        INVALID if outside the rack, BLOCKED on collision, VALID otherwise.
    """
    if not is_within_rack(position, u_height, rack.height):
        return DropFeedback.INVALID
    occupancy = build_occupancy(rack, device_types, exclude_index)
    if occupancy.window(position, u_height, face, slot).any():
        return DropFeedback.BLOCKED
    return DropFeedback.VALID
