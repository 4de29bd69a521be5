"""History commands: tagged operation records and their dispatcher.

A Command is plain data: an operation kind, a user-facing description and
a JSON-safe payload holding before/after state (serialized entities,
original indices and ids). apply_command interprets it in either
direction, so execute, undo and redo share one code path and undo
restores entities at their original index with their original id.

Pure Python (no Qt dependency).
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from rackplanner.core.serializers import (
    device_type_to_dict,
    dict_to_device_type,
    dict_to_placed_device,
    dict_to_rack,
    dict_to_rack_group,
    placed_device_to_dict,
    rack_group_to_dict,
    rack_to_dict,
    _serialize_value,
)
from rackplanner.models.layout import (
    DeviceType,
    Face,
    FormFactor,
    Layout,
    PlacedDevice,
    Rack,
    RackGroup,
    SlotPosition,
)


class CommandKind(Enum):
    ADD_DEVICE_TYPE = "add_device_type"
    UPDATE_DEVICE_TYPE = "update_device_type"
    DELETE_DEVICE_TYPE = "delete_device_type"
    PLACE_DEVICE = "place_device"
    MOVE_DEVICE = "move_device"
    MOVE_DEVICE_TO_RACK = "move_device_to_rack"
    REMOVE_DEVICE = "remove_device"
    UPDATE_DEVICE_FACE = "update_device_face"
    UPDATE_DEVICE = "update_device"
    ADD_RACK = "add_rack"
    UPDATE_RACK = "update_rack"
    DELETE_RACK = "delete_rack"
    REORDER_RACKS = "reorder_racks"
    CLEAR_RACK = "clear_rack"
    CREATE_RACK_GROUP = "create_rack_group"
    UPDATE_RACK_GROUP = "update_rack_group"
    DELETE_RACK_GROUP = "delete_rack_group"


@dataclass
class Command:
    """One undoable history entry.

    Attributes:
        kind: Operation tag, selects the handler in apply_command.
        description: Text shown to the user ("Place 1U Server").
        payload: JSON-safe before/after data.
        timestamp: Creation time (epoch seconds).
    """
    kind: CommandKind
    description: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


# Fields of PlacedDevice editable through UPDATE_DEVICE
DEVICE_OVERRIDE_FIELDS = (
    "name", "colour_override", "front_image", "rear_image", "notes", "slot_position",
)
# Fields of Rack editable through UPDATE_RACK
RACK_SETTING_FIELDS = (
    "name", "height", "width", "desc_units", "show_rear",
    "form_factor", "starting_unit", "position", "notes",
)


# =====================================================================
# Command factories
# =====================================================================


def add_device_type_command(device_type: DeviceType, index: int) -> Command:
    return Command(
        CommandKind.ADD_DEVICE_TYPE,
        f"Add {device_type.display_name}",
        {"index": index, "device_type": device_type_to_dict(device_type)},
    )


def update_device_type_command(
    before: DeviceType,
    after: DeviceType,
    face_changes: list[dict[str, Any]],
) -> Command:
    """Library edit plus the face changes it forces on placements.

    Args:
        before: Type as it is now.
        after: Type after the edit (same slug).
        face_changes: ``{"rack_id", "device_id", "before", "after"}``
            entries for placements switched to ``both``.
    """
    return Command(
        CommandKind.UPDATE_DEVICE_TYPE,
        f"Update {before.display_name}",
        {
            "slug": before.slug,
            "before": device_type_to_dict(before),
            "after": device_type_to_dict(after),
            "face_changes": face_changes,
        },
    )


def delete_device_type_command(
    device_type: DeviceType,
    index: int,
    placements: list[tuple[str, int, PlacedDevice]],
) -> Command:
    """Delete a library entry together with every placement of it.

    Args:
        placements: (rack_id, device_index, device) in ascending index
            order per rack.
    """
    return Command(
        CommandKind.DELETE_DEVICE_TYPE,
        f"Delete {device_type.display_name}",
        {
            "index": index,
            "device_type": device_type_to_dict(device_type),
            "placements": [
                {"rack_id": rack_id, "index": i, "device": placed_device_to_dict(dev)}
                for rack_id, i, dev in placements
            ],
        },
    )


def place_device_command(
    rack_id: str,
    index: int,
    device: PlacedDevice,
    device_name: str,
    imported_type: Optional[DeviceType] = None,
    imported_index: Optional[int] = None,
) -> Command:
    """Place a device; *imported_type* is a starter type copied into the library."""
    return Command(
        CommandKind.PLACE_DEVICE,
        f"Place {device_name}",
        {
            "rack_id": rack_id,
            "index": index,
            "device": placed_device_to_dict(device),
            "imported_type": device_type_to_dict(imported_type) if imported_type else None,
            "imported_index": imported_index,
        },
    )


def move_device_command(
    rack_id: str, device_id: str, before: int, after: int, device_name: str,
) -> Command:
    return Command(
        CommandKind.MOVE_DEVICE,
        f"Move {device_name}",
        {"rack_id": rack_id, "device_id": device_id, "before": before, "after": after},
    )


def move_device_to_rack_command(
    from_rack: Rack,
    from_index: int,
    to_rack: Rack,
    to_index: int,
    device_before: PlacedDevice,
    device_after: PlacedDevice,
    device_name: str,
) -> Command:
    return Command(
        CommandKind.MOVE_DEVICE_TO_RACK,
        f"Move {device_name} to {to_rack.name}",
        {
            "from_rack_id": from_rack.id,
            "from_index": from_index,
            "to_rack_id": to_rack.id,
            "to_index": to_index,
            "device_before": placed_device_to_dict(device_before),
            "device_after": placed_device_to_dict(device_after),
        },
    )


def remove_device_command(
    rack_id: str, index: int, device: PlacedDevice, device_name: str,
) -> Command:
    return Command(
        CommandKind.REMOVE_DEVICE,
        f"Remove {device_name}",
        {"rack_id": rack_id, "index": index, "device": placed_device_to_dict(device)},
    )


def update_device_face_command(
    rack_id: str, device_id: str, before: Face, after: Face, device_name: str,
) -> Command:
    return Command(
        CommandKind.UPDATE_DEVICE_FACE,
        f"Flip {device_name}",
        {
            "rack_id": rack_id,
            "device_id": device_id,
            "before": before.value,
            "after": after.value,
        },
    )


def _device_update_description(device_name: str, after: dict[str, Any]) -> str:
    if len(after) == 1:
        key, value = next(iter(after.items()))
        if key == "name":
            return f"Rename {device_name}"
        if key == "colour_override":
            return f"Update {device_name} colour"
        if key == "front_image":
            return f"Update {device_name} front image"
        if key == "rear_image":
            return f"Update {device_name} rear image"
        if key == "slot_position":
            return f"Move {device_name} to {value} slot"
    return f"Update {device_name}"


def update_device_command(
    rack_id: str,
    device_id: str,
    before: dict[str, Any],
    after: dict[str, Any],
    device_name: str,
) -> Command:
    """Per-instance overrides (name, colour, images, notes, slot)."""
    after = _serialize_value(after)
    return Command(
        CommandKind.UPDATE_DEVICE,
        _device_update_description(device_name, after),
        {
            "rack_id": rack_id,
            "device_id": device_id,
            "before": _serialize_value(before),
            "after": after,
        },
    )


def add_rack_command(rack: Rack, index: int, description: Optional[str] = None) -> Command:
    return Command(
        CommandKind.ADD_RACK,
        description or f"Add {rack.name}",
        {"index": index, "rack": rack_to_dict(rack)},
    )


def update_rack_command(rack_id: str, before: dict[str, Any], after: dict[str, Any]) -> Command:
    return Command(
        CommandKind.UPDATE_RACK,
        "Update rack settings",
        {"rack_id": rack_id, "before": _serialize_value(before), "after": _serialize_value(after)},
    )


def delete_rack_command(
    rack: Rack, index: int, group_changes: list[dict[str, Any]],
) -> Command:
    """Delete a rack and drop it from its groups.

    Args:
        group_changes: ``{"index", "before", "after"}`` per affected group
            (serialized groups; ``after`` is None when the group became
            empty and is deleted), in ascending index order.
    """
    return Command(
        CommandKind.DELETE_RACK,
        f"Delete {rack.name}",
        {"index": index, "rack": rack_to_dict(rack), "group_changes": group_changes},
    )


def reorder_racks_command(from_index: int, to_index: int, positions: list[int]) -> Command:
    """Move the rack at *from_index* to *to_index*.

    Args:
        positions: ``Rack.position`` of every rack before the move, in list
            order. Applying renumbers positions to list indices; undo restores
            these values.
    """
    return Command(
        CommandKind.REORDER_RACKS,
        "Reorder racks",
        {"from_index": from_index, "to_index": to_index, "positions": list(positions)},
    )


def clear_rack_command(rack_id: str, devices: list[PlacedDevice]) -> Command:
    count = len(devices)
    noun = "device" if count == 1 else "devices"
    return Command(
        CommandKind.CLEAR_RACK,
        f"Clear rack ({count} {noun})",
        {"rack_id": rack_id, "devices": [placed_device_to_dict(d) for d in devices]},
    )


def rack_group_command(
    kind: CommandKind,
    description: str,
    index: int,
    before: Optional[RackGroup],
    after: Optional[RackGroup],
) -> Command:
    """Create (before=None), update, or delete (after=None) a rack group."""
    return Command(
        kind,
        description,
        {
            "index": index,
            "before": rack_group_to_dict(before) if before else None,
            "after": rack_group_to_dict(after) if after else None,
        },
    )


# =====================================================================
# Dispatcher
# =====================================================================


def _rack(layout: Layout, rack_id: str) -> Rack:
    rack = layout.find_rack(rack_id)
    if rack is None:
        raise KeyError(f"Rack not found: {rack_id}")
    return rack


def _device_index(rack: Rack, device_id: str) -> int:
    for i, device in enumerate(rack.devices):
        if device.id == device_id:
            return i
    raise KeyError(f"Device not found in rack {rack.id}: {device_id}")


def _type_index(layout: Layout, slug: str) -> int:
    for i, dt in enumerate(layout.device_types):
        if dt.slug == slug:
            return i
    raise KeyError(f"Device type not found: {slug}")


def _set_device_fields(device: PlacedDevice, values: dict[str, Any]) -> None:
    for key, value in values.items():
        if key == "slot_position":
            value = SlotPosition(value) if value is not None else SlotPosition.FULL
        setattr(device, key, value)


def _set_rack_fields(rack: Rack, values: dict[str, Any]) -> None:
    for key, value in values.items():
        if key == "form_factor":
            value = FormFactor(value)
        setattr(rack, key, value)


def _set_group(layout: Layout, index: int, current: Optional[dict], target: Optional[dict]) -> None:
    """Transition one group slot from *current* to *target* state."""
    if current is None and target is not None:
        layout.rack_groups.insert(index, dict_to_rack_group(target))
    elif current is not None and target is None:
        del layout.rack_groups[index]
    elif target is not None:
        layout.rack_groups[index] = dict_to_rack_group(target)


def apply_command(layout: Layout, command: Command, forward: bool = True) -> None:
    """Apply *command* to *layout* (forward = execute/redo, else undo).

    Raises:
        KeyError: If the layout no longer matches the command (entity
            missing). Cannot happen while every mutation goes through
            the history.
    """
    kind = command.kind
    p = command.payload

    if kind == CommandKind.ADD_DEVICE_TYPE:
        if forward:
            layout.device_types.insert(p["index"], dict_to_device_type(p["device_type"]))
        else:
            del layout.device_types[_type_index(layout, p["device_type"]["slug"])]

    elif kind == CommandKind.UPDATE_DEVICE_TYPE:
        state = p["after"] if forward else p["before"]
        layout.device_types[_type_index(layout, p["slug"])] = dict_to_device_type(state)
        for change in p["face_changes"]:
            rack = _rack(layout, change["rack_id"])
            device = rack.devices[_device_index(rack, change["device_id"])]
            device.face = Face(change["after"] if forward else change["before"])

    elif kind == CommandKind.DELETE_DEVICE_TYPE:
        placements = p["placements"]
        if forward:
            for entry in reversed(placements):
                del _rack(layout, entry["rack_id"]).devices[entry["index"]]
            del layout.device_types[p["index"]]
        else:
            layout.device_types.insert(p["index"], dict_to_device_type(p["device_type"]))
            for entry in placements:
                _rack(layout, entry["rack_id"]).devices.insert(
                    entry["index"], dict_to_placed_device(entry["device"]),
                )

    elif kind == CommandKind.PLACE_DEVICE:
        rack = _rack(layout, p["rack_id"])
        if forward:
            if p["imported_type"] is not None:
                layout.device_types.insert(
                    p["imported_index"], dict_to_device_type(p["imported_type"]),
                )
            rack.devices.insert(p["index"], dict_to_placed_device(p["device"]))
        else:
            del rack.devices[_device_index(rack, p["device"]["id"])]
            if p["imported_type"] is not None:
                del layout.device_types[_type_index(layout, p["imported_type"]["slug"])]

    elif kind == CommandKind.MOVE_DEVICE:
        rack = _rack(layout, p["rack_id"])
        rack.devices[_device_index(rack, p["device_id"])].position = (
            p["after"] if forward else p["before"]
        )

    elif kind == CommandKind.MOVE_DEVICE_TO_RACK:
        src = _rack(layout, p["from_rack_id"])
        dst = _rack(layout, p["to_rack_id"])
        device_id = p["device_before"]["id"]
        if forward:
            del src.devices[_device_index(src, device_id)]
            dst.devices.insert(p["to_index"], dict_to_placed_device(p["device_after"]))
        else:
            del dst.devices[_device_index(dst, device_id)]
            src.devices.insert(p["from_index"], dict_to_placed_device(p["device_before"]))

    elif kind == CommandKind.REMOVE_DEVICE:
        rack = _rack(layout, p["rack_id"])
        if forward:
            del rack.devices[_device_index(rack, p["device"]["id"])]
        else:
            rack.devices.insert(p["index"], dict_to_placed_device(p["device"]))

    elif kind == CommandKind.UPDATE_DEVICE_FACE:
        rack = _rack(layout, p["rack_id"])
        rack.devices[_device_index(rack, p["device_id"])].face = Face(
            p["after"] if forward else p["before"]
        )

    elif kind == CommandKind.UPDATE_DEVICE:
        rack = _rack(layout, p["rack_id"])
        device = rack.devices[_device_index(rack, p["device_id"])]
        _set_device_fields(device, p["after"] if forward else p["before"])

    elif kind == CommandKind.ADD_RACK:
        if forward:
            layout.racks.insert(p["index"], dict_to_rack(p["rack"]))
        else:
            layout.racks.remove(_rack(layout, p["rack"]["id"]))

    elif kind == CommandKind.UPDATE_RACK:
        _set_rack_fields(_rack(layout, p["rack_id"]), p["after"] if forward else p["before"])

    elif kind == CommandKind.DELETE_RACK:
        changes = p["group_changes"]
        if forward:
            layout.racks.remove(_rack(layout, p["rack"]["id"]))
            # Descending so deletions keep lower indices valid
            for change in reversed(changes):
                _set_group(layout, change["index"], change["before"], change["after"])
        else:
            layout.racks.insert(p["index"], dict_to_rack(p["rack"]))
            for change in changes:
                _set_group(layout, change["index"], change["after"], change["before"])

    elif kind == CommandKind.REORDER_RACKS:
        src, dst = (p["from_index"], p["to_index"]) if forward else (p["to_index"], p["from_index"])
        layout.racks.insert(dst, layout.racks.pop(src))
        if forward:
            for i, rack in enumerate(layout.racks):
                rack.position = i
        else:
            for rack, position in zip(layout.racks, p["positions"]):
                rack.position = position

    elif kind == CommandKind.CLEAR_RACK:
        rack = _rack(layout, p["rack_id"])
        if forward:
            rack.devices.clear()
        else:
            rack.devices[:] = [dict_to_placed_device(d) for d in p["devices"]]

    elif kind in (
        CommandKind.CREATE_RACK_GROUP,
        CommandKind.UPDATE_RACK_GROUP,
        CommandKind.DELETE_RACK_GROUP,
    ):
        if forward:
            _set_group(layout, p["index"], p["before"], p["after"])
        else:
            _set_group(layout, p["index"], p["after"], p["before"])

    else:
        raise ValueError(f"Unknown command kind: {kind}")
