"""Occupancy model: face-aware map of occupied internal-unit cells.

The occupancy of a rack is a boolean grid indexed as
``[face, cell, slot_half]``:

    face      : 0 = front, 1 = rear
    cell      : internal-unit position (0 .. max_valid_top)
    slot_half : 0 = left, 1 = right

A ``both`` device fills both faces, a ``front``/``rear`` device only its
own face (face-authoritative: a front device never collides with a rear
device at the same height, whatever its type's nominal depth). Full-width
devices fill both slot halves.

Container children (devices with ``container_id``) live in their
container's own 0-indexed space and never take part in rack-level
occupancy; see can_place_in_container.

A device whose slug is missing from the library contributes nothing and
is recorded in ``OccupancyMap.unresolved``; nothing is raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from rackplanner.constants import UNITS_PER_U
from rackplanner.core.units import (
    from_internal_units,
    height_to_internal_units,
    is_within_rack,
    max_bottom_position,
    max_valid_top,
)
from rackplanner.models.layout import (
    DeviceType,
    Face,
    PlacedDevice,
    Rack,
    SlotPosition,
)

logger = logging.getLogger(__name__)

# Grid axes touched by each face / slot value
_FACE_INDICES: dict[Face, list[int]] = {
    Face.FRONT: [0],
    Face.REAR: [1],
    Face.BOTH: [0, 1],
}
_SLOT_INDICES: dict[SlotPosition, list[int]] = {
    SlotPosition.LEFT: [0],
    SlotPosition.RIGHT: [1],
    SlotPosition.FULL: [0, 1],
}


# =====================================================================
# Pairwise predicates
# =====================================================================


def faces_collide(face_a: Face, face_b: Face) -> bool:
    """``both`` collides with everything, equal faces collide, front/rear never."""
    if face_a == Face.BOTH or face_b == Face.BOTH:
        return True
    return face_a == face_b


def slots_overlap(slot_a: SlotPosition, slot_b: SlotPosition) -> bool:
    """``full`` overlaps everything, left/right only themselves."""
    if slot_a == SlotPosition.FULL or slot_b == SlotPosition.FULL:
        return True
    return slot_a == slot_b


def device_range(position: int, u_height: float) -> tuple[int, int]:
    """Inclusive (bottom, top) internal cells of a device at *position*."""
    return position, position + height_to_internal_units(u_height) - 1


def ranges_overlap(range_a: tuple[float, float], range_b: tuple[float, float]) -> bool:
    """Inclusive ranges overlap (edge touch counts)."""
    return range_a[0] <= range_b[1] and range_a[1] >= range_b[0]


def is_container_child(device: PlacedDevice) -> bool:
    return device.container_id is not None


def _library_index(device_types: list[DeviceType]) -> dict[str, DeviceType]:
    return {dt.slug: dt for dt in device_types}


# =====================================================================
# Occupancy grid
# =====================================================================


@dataclass
class OccupancyMap:
    """Occupied cells of one rack.

    Attributes:
        rack_height: Rack height [U].
        cells: Bool grid ``[face, cell, slot_half]``.
        unresolved: Ids of devices whose type slug could not be resolved.
    """
    rack_height: int
    cells: np.ndarray
    unresolved: list[str] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        """True if some devices were skipped (layout partially invalid)."""
        return bool(self.unresolved)

    def window(
        self,
        position: int,
        u_height: float,
        face: Face = Face.FRONT,
        slot: SlotPosition = SlotPosition.FULL,
    ) -> np.ndarray:
        """Per-cell occupancy (1-D bool) under a candidate footprint.

        Cells outside the grid are reported free; callers check bounds
        separately with is_within_rack.
        """
        h = height_to_internal_units(u_height)
        lo = max(position, 0)
        hi = min(position + h, self.cells.shape[1])
        out = np.zeros(h, dtype=bool)
        if hi <= lo:
            return out
        sub = self.cells[np.ix_(_FACE_INDICES[face], np.arange(lo, hi), _SLOT_INDICES[slot])]
        out[lo - position:hi - position] = sub.any(axis=(0, 2))
        return out

    def is_free(
        self,
        position: int,
        u_height: float,
        face: Face = Face.FRONT,
        slot: SlotPosition = SlotPosition.FULL,
    ) -> bool:
        """True if the footprint is inside the rack and collides with nothing."""
        if not is_within_rack(position, u_height, self.rack_height):
            return False
        return not self.window(position, u_height, face, slot).any()

    def blocking_cells(
        self,
        position: int,
        u_height: float,
        face: Face = Face.FRONT,
        slot: SlotPosition = SlotPosition.FULL,
    ) -> np.ndarray:
        """Absolute positions of occupied cells under the footprint (ascending)."""
        return np.flatnonzero(self.window(position, u_height, face, slot)) + position

    def occupied_cells(self, face: Face) -> list[int]:
        """Sorted internal positions occupied on *face* (either slot half)."""
        mask = self.cells[_FACE_INDICES[face]].any(axis=(0, 2))
        return np.flatnonzero(mask).tolist()

    def occupied_units(self, face: Face) -> list[int]:
        """Whole U numbers that have at least one occupied cell on *face*."""
        return sorted({c // UNITS_PER_U for c in self.occupied_cells(face)})


def build_occupancy(
    rack: Rack,
    device_types: list[DeviceType],
    exclude_index: Optional[int] = None,
) -> OccupancyMap:
    """Compute the occupancy grid of a rack.

    Args:
        rack: Rack whose devices are marked.
        device_types: Library used to resolve device heights.
        exclude_index: Index in ``rack.devices`` to leave out (the device
            being moved).

    Returns:
        OccupancyMap. Devices with unresolved slugs are listed in
        ``unresolved`` instead of raising.
    """
    n_cells = max_valid_top(rack.height) + 1
    cells = np.zeros((2, n_cells, 2), dtype=bool)
    library = _library_index(device_types)
    unresolved: list[str] = []

    for i, device in enumerate(rack.devices):
        if i == exclude_index or is_container_child(device):
            continue
        dt = library.get(device.device_type)
        if dt is None:
            unresolved.append(device.id)
            continue
        lo = max(device.position, 0)
        hi = min(device.position + height_to_internal_units(dt.u_height), n_cells)
        if hi <= lo:
            continue
        faces = _FACE_INDICES[device.face]
        slots = _SLOT_INDICES[device.slot_position]
        cells[np.ix_(faces, np.arange(lo, hi), slots)] = True

    if unresolved:
        logger.debug(
            "Rack %s: %d device(s) with unknown type skipped",
            rack.id, len(unresolved),
        )
    return OccupancyMap(rack_height=rack.height, cells=cells, unresolved=unresolved)


# =====================================================================
# Rack-level placement queries
# =====================================================================


def can_place_device(
    rack: Rack,
    device_types: list[DeviceType],
    u_height: float,
    position: int,
    exclude_index: Optional[int] = None,
    face: Face = Face.FRONT,
    slot: SlotPosition = SlotPosition.FULL,
) -> bool:
    """Check whether a device of *u_height* fits at *position*.

    Args:
        rack: Target rack.
        device_types: Device library.
        u_height: Height of the device to place [U].
        position: Bottom position [internal units], U1 = UNITS_PER_U.
        exclude_index: Device index to ignore (move of an existing device).
        face: Face the device would occupy.
        slot: Slot half the device would occupy.

    Returns:
        True if inside the rack and free of collisions.
    """
    if not is_within_rack(position, u_height, rack.height):
        return False
    occupancy = build_occupancy(rack, device_types, exclude_index)
    return not occupancy.window(position, u_height, face, slot).any()


def find_collisions(
    rack: Rack,
    device_types: list[DeviceType],
    u_height: float,
    position: int,
    exclude_index: Optional[int] = None,
    face: Face = Face.FRONT,
    slot: SlotPosition = SlotPosition.FULL,
) -> list[PlacedDevice]:
    """Rack-level devices that a device at *position* would collide with."""
    library = _library_index(device_types)
    new_range = device_range(position, u_height)
    collisions = []
    for i, device in enumerate(rack.devices):
        if i == exclude_index or is_container_child(device):
            continue
        dt = library.get(device.device_type)
        if dt is None:
            continue
        if (
            ranges_overlap(new_range, device_range(device.position, dt.u_height))
            and faces_collide(face, device.face)
            and slots_overlap(slot, device.slot_position)
        ):
            collisions.append(device)
    return collisions


def find_valid_drop_positions(
    rack: Rack,
    device_types: list[DeviceType],
    u_height: float,
    face: Face = Face.FRONT,
    slot: SlotPosition = SlotPosition.FULL,
) -> list[int]:
    """All bottom positions [internal units] where the device fits, ascending."""
    occupancy = build_occupancy(rack, device_types)
    top = max_bottom_position(rack.height, u_height)
    return [
        p for p in range(UNITS_PER_U, top + 1)
        if not occupancy.window(p, u_height, face, slot).any()
    ]


def find_overlapping_devices(
    rack: Rack,
    device_types: list[DeviceType],
) -> list[tuple[PlacedDevice, PlacedDevice]]:
    """Collision set: every pair of rack-level devices that overlap.

    Pairs are ordered by device index. Unresolved and container-child
    devices are ignored.
    """
    library = _library_index(device_types)
    entries = [
        (device, device_range(device.position, library[device.device_type].u_height))
        for device in rack.devices
        if not is_container_child(device) and device.device_type in library
    ]
    pairs = []
    for i, (dev_a, range_a) in enumerate(entries):
        for dev_b, range_b in entries[i + 1:]:
            if (
                ranges_overlap(range_a, range_b)
                and faces_collide(dev_a.face, dev_b.face)
                and slots_overlap(dev_a.slot_position, dev_b.slot_position)
            ):
                pairs.append((dev_a, dev_b))
    return pairs


# =====================================================================
# Container placement
# =====================================================================


def can_place_in_container(
    rack: Rack,
    device_types: list[DeviceType],
    container: PlacedDevice,
    container_type: DeviceType,
    child_type: DeviceType,
    slot_id: str,
    position: int,
    exclude_device_id: Optional[str] = None,
) -> bool:
    """Check a child placement inside a container device.

    Child positions are 0-indexed U offsets from the container bottom
    (not internal units). Children only collide with siblings in the
    same container and the same slot.
    """
    if position < 0:
        return False
    if position + child_type.u_height - 1 >= container_type.u_height:
        return False

    library = _library_index(device_types)
    new_range = (position, position + child_type.u_height - 1)
    for device in rack.devices:
        if device.container_id != container.id:
            continue
        if exclude_device_id is not None and device.id == exclude_device_id:
            continue
        if device.slot_id != slot_id:
            continue
        sibling = library.get(device.device_type)
        if sibling is None:
            continue
        if ranges_overlap(new_range, (device.position, device.position + sibling.u_height - 1)):
            return False
    return True


# =====================================================================
# Dual-view hatching
# =====================================================================


@dataclass
class BlockedRange:
    """U range on one face taken by a half-depth device mounted on the other.

    Attributes:
        bottom: Bottom U (may be fractional).
        top: Top U.
        slot_position: Slot half for half-width devices, None = full width.
    """
    bottom: float
    top: float
    slot_position: Optional[SlotPosition] = None


def get_blocked_slots(
    rack: Rack,
    view: Face,
    device_types: list[DeviceType],
) -> list[BlockedRange]:
    """Ranges visible as blocked when looking at *view* (front or rear).

    Only half-depth devices mounted on the opposite face are reported;
    ``both`` devices and full-depth types are already drawn on every face.
    """
    library = _library_index(device_types)
    blocked = []
    for device in rack.devices:
        if device.face == view or device.face == Face.BOTH:
            continue
        dt = library.get(device.device_type)
        if dt is None or dt.full_depth:
            continue
        bottom = from_internal_units(device.position)
        slot = device.slot_position if dt.slot_width == 1 else None
        blocked.append(BlockedRange(bottom=bottom, top=bottom + dt.u_height - 1, slot_position=slot))
    return blocked


def would_overlap_blocked(blocked: list[BlockedRange], position_u: float, u_height: float) -> bool:
    """True if a device at *position_u* overlaps any blocked range."""
    top = position_u + u_height - 1
    return any(ranges_overlap((position_u, top), (r.bottom, r.top)) for r in blocked)
