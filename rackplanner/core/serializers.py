"""Serialization utilities: dataclass ↔ JSON-safe dict conversion.

Handles Enum fields, nested dataclasses and the legacy container keys
(``parent_device`` / ``device_bay``). Used by the layout controller for
history payloads and by migration on load.

Schema migration itself lives in rackplanner.core.migration; the helpers
here expect a structurally current dict (``racks`` list, internal-unit
positions).
"""

from __future__ import annotations

import dataclasses
import logging
from enum import Enum
from typing import Any, TypeVar

import numpy as np

from rackplanner.constants import CATEGORY_COLOURS, CURRENT_VERSION, DEFAULT_LAYOUT_NAME
from rackplanner.models.layout import (
    DeviceCategory,
    DeviceType,
    DisplayMode,
    Face,
    FormFactor,
    Layout,
    LayoutSettings,
    PlacedDevice,
    Rack,
    RackGroup,
    RackGroupPreset,
    SlotPosition,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)


# =====================================================================
# Generic helpers
# =====================================================================


def _serialize_value(val: Any) -> Any:
    """Convert a value to a JSON-safe type."""
    if val is None:
        return None
    if isinstance(val, Enum):
        return val.value
    if isinstance(val, np.generic):
        return val.item()
    if dataclasses.is_dataclass(val) and not isinstance(val, type):
        return _dataclass_to_dict(val)
    if isinstance(val, (list, tuple)):
        return [_serialize_value(v) for v in val]
    if isinstance(val, dict):
        return {k: _serialize_value(v) for k, v in val.items()}
    if isinstance(val, (int, float, str, bool)):
        return val
    return str(val)


def _dataclass_to_dict(obj: Any) -> dict:
    """Recursively convert a dataclass to a JSON-safe dict."""
    result = {}
    for f in dataclasses.fields(obj):
        val = getattr(obj, f.name)
        result[f.name] = _serialize_value(val)
    return result


def _enum_value(enum_cls: type[E], raw: Any, default: E) -> E:
    """Parse an enum value, falling back to *default* for unknown input."""
    if raw is None:
        return default
    try:
        return enum_cls(raw)
    except ValueError:
        logger.warning("Unknown %s value %r, using %s", enum_cls.__name__, raw, default.value)
        return default


def _position_value(raw: Any) -> int:
    """Stored positions are whole internal units (JSON may give 60.0)."""
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ValueError(f"Invalid device position: {raw!r}")
    return int(round(raw))


# =====================================================================
# Layout serialization
# =====================================================================


def layout_to_dict(layout: Layout) -> dict:
    """Serialize a Layout to a JSON-safe dict.

    Args:
        layout: The layout to serialize.

    Returns:
        Dict with enums as strings and positions in internal units.
        ``version`` is written as-is (the controller stamps
        CURRENT_VERSION on load).
    """
    return _dataclass_to_dict(layout)


def dict_to_layout(data: dict) -> Layout:
    """Deserialize a structurally current dict to a Layout.

    Args:
        data: JSON-parsed dict (already migrated).

    Returns:
        Reconstructed Layout. Missing sections get defaults; unknown enum
        values fall back to defaults with a warning.

    Raises:
        ValueError: If a device position is not numeric.
    """
    return Layout(
        version=str(data.get("version", CURRENT_VERSION)),
        name=data.get("name", DEFAULT_LAYOUT_NAME),
        racks=[dict_to_rack(r) for r in data.get("racks", [])],
        device_types=[dict_to_device_type(d) for d in data.get("device_types", [])],
        rack_groups=[dict_to_rack_group(g) for g in data.get("rack_groups") or []],
        settings=_dict_to_settings(data.get("settings") or {}),
    )


def _dict_to_settings(d: dict) -> LayoutSettings:
    return LayoutSettings(
        display_mode=_enum_value(DisplayMode, d.get("display_mode"), DisplayMode.LABEL),
        show_labels_on_images=bool(d.get("show_labels_on_images", False)),
    )


# =====================================================================
# Entity serialization (history payloads)
# =====================================================================


def device_type_to_dict(device_type: DeviceType) -> dict:
    return _dataclass_to_dict(device_type)


def dict_to_device_type(d: dict) -> DeviceType:
    category = _enum_value(DeviceCategory, d.get("category"), DeviceCategory.OTHER)
    return DeviceType(
        slug=d.get("slug", ""),
        u_height=d.get("u_height", 1.0),
        category=category,
        colour=d.get("colour") or CATEGORY_COLOURS[category.value],
        manufacturer=d.get("manufacturer"),
        model=d.get("model"),
        part_number=d.get("part_number"),
        is_full_depth=d.get("is_full_depth"),
        slot_width=d.get("slot_width", 2),
        notes=d.get("notes"),
        tags=list(d.get("tags") or []),
    )


def placed_device_to_dict(device: PlacedDevice) -> dict:
    return _dataclass_to_dict(device)


def dict_to_placed_device(d: dict) -> PlacedDevice:
    kwargs: dict[str, Any] = {}
    if d.get("id"):
        kwargs["id"] = d["id"]
    return PlacedDevice(
        device_type=d.get("device_type", ""),
        position=_position_value(d.get("position", 0)),
        face=_enum_value(Face, d.get("face"), Face.FRONT),
        slot_position=_enum_value(SlotPosition, d.get("slot_position"), SlotPosition.FULL),
        name=d.get("name"),
        colour_override=d.get("colour_override"),
        front_image=d.get("front_image"),
        rear_image=d.get("rear_image"),
        notes=d.get("notes"),
        # Legacy files use parent_device / device_bay
        container_id=d.get("container_id", d.get("parent_device")),
        slot_id=d.get("slot_id", d.get("device_bay")),
        **kwargs,
    )


def rack_to_dict(rack: Rack) -> dict:
    return _dataclass_to_dict(rack)


def dict_to_rack(d: dict) -> Rack:
    kwargs: dict[str, Any] = {}
    if d.get("id"):
        kwargs["id"] = d["id"]
    return Rack(
        name=d.get("name", "Rack"),
        height=int(d.get("height", 42)),
        width=int(d.get("width", 19)),
        desc_units=bool(d.get("desc_units", False)),
        show_rear=bool(d.get("show_rear", True)),
        form_factor=_enum_value(FormFactor, d.get("form_factor"), FormFactor.FOUR_POST_CABINET),
        starting_unit=int(d.get("starting_unit", 1)),
        position=int(d.get("position", 0)),
        devices=[dict_to_placed_device(dev) for dev in d.get("devices", [])],
        notes=d.get("notes"),
        **kwargs,
    )


def rack_group_to_dict(group: RackGroup) -> dict:
    return _dataclass_to_dict(group)


def dict_to_rack_group(d: dict) -> RackGroup:
    kwargs: dict[str, Any] = {}
    if d.get("id"):
        kwargs["id"] = d["id"]
    return RackGroup(
        name=d.get("name"),
        rack_ids=list(d.get("rack_ids", [])),
        layout_preset=_enum_value(RackGroupPreset, d.get("layout_preset"), RackGroupPreset.ROW),
        **kwargs,
    )
