"""Layout, rack and device-type factories plus the built-in starter library.

The starter library is a runtime constant: it is not stored in layouts.
Placing a starter device copies its type into the layout's own library.
"""

from __future__ import annotations

import re
import uuid
from typing import Optional

from rackplanner.constants import (
    CATEGORY_COLOURS,
    CURRENT_VERSION,
    DEFAULT_LAYOUT_NAME,
    DEFAULT_RACK_HEIGHT,
    DEFAULT_RACK_WIDTH,
    DEVICE_HEIGHT_STEP,
    MAX_DEVICE_HEIGHT,
    MIN_DEVICE_HEIGHT,
)
from rackplanner.models.layout import (
    DeviceCategory,
    DeviceType,
    FormFactor,
    Layout,
    LayoutSettings,
    Rack,
)

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


def generate_id() -> str:
    """New unique id for racks, devices and groups."""
    return str(uuid.uuid4())


def slugify(text: str) -> str:
    """Lowercase, non-alphanumeric runs → ``-``, no leading/trailing dashes."""
    return _SLUG_STRIP.sub("-", text.lower()).strip("-")


def generate_device_slug(
    manufacturer: Optional[str] = None,
    model: Optional[str] = None,
    name: Optional[str] = None,
) -> str:
    """Slug from manufacturer + model, falling back to the display name.

    >>> generate_device_slug("Dell", "PowerEdge R740")
    'dell-poweredge-r740'
    """
    if manufacturer and model:
        slug = slugify(f"{manufacturer} {model}")
    elif model:
        slug = slugify(model)
    else:
        slug = slugify(name or "")
    return slug or "device"


def unique_slug(slug: str, existing: set[str]) -> str:
    """Append ``-2``, ``-3`` ... until *slug* is not in *existing*."""
    if slug not in existing:
        return slug
    n = 2
    while f"{slug}-{n}" in existing:
        n += 1
    return f"{slug}-{n}"


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

def validate_device_dimensions(u_height: float, slot_width: int = 2) -> None:
    """Raise ValueError unless height and slot width form a valid DeviceType."""
    if isinstance(u_height, bool) or not isinstance(u_height, (int, float)):
        raise ValueError(f"Device height must be a number, got {u_height!r}")
    if not MIN_DEVICE_HEIGHT <= u_height <= MAX_DEVICE_HEIGHT:
        raise ValueError(
            f"Device height must be between {MIN_DEVICE_HEIGHT} and "
            f"{MAX_DEVICE_HEIGHT}U, got {u_height}"
        )
    if (u_height / DEVICE_HEIGHT_STEP) % 1 != 0:
        raise ValueError(f"Device height must be a multiple of {DEVICE_HEIGHT_STEP}U")
    if isinstance(slot_width, bool) or slot_width not in (1, 2):
        raise ValueError(f"Slot width must be 1 or 2, got {slot_width!r}")


def create_device_type(
    name: str,
    u_height: float,
    category: DeviceCategory = DeviceCategory.OTHER,
    colour: Optional[str] = None,
    manufacturer: Optional[str] = None,
    model: Optional[str] = None,
    is_full_depth: Optional[bool] = None,
    slot_width: int = 2,
    notes: Optional[str] = None,
    tags: Optional[list[str]] = None,
) -> DeviceType:
    """Create a DeviceType with a generated slug.

    Shelves default to full depth; other categories leave the flag unset
    (which also counts as full depth).

    Args:
        name: Display name, used as model when no model is given.
        u_height: Height [U], multiple of 0.5 between 0.5 and 42.
        category: Device category.
        colour: Display colour, defaults to the category colour.

    Raises:
        ValueError: If *u_height* is out of range or not a multiple of 0.5.
    """
    validate_device_dimensions(u_height, slot_width)
    if is_full_depth is None and category == DeviceCategory.SHELF:
        is_full_depth = True
    return DeviceType(
        slug=generate_device_slug(manufacturer, model, name),
        u_height=u_height,
        category=category,
        colour=colour or CATEGORY_COLOURS[category.value],
        manufacturer=manufacturer,
        model=model or name or None,
        is_full_depth=is_full_depth,
        slot_width=slot_width,
        notes=notes,
        tags=list(tags or []),
    )


def create_rack(
    name: str,
    height: int = DEFAULT_RACK_HEIGHT,
    width: int = DEFAULT_RACK_WIDTH,
    form_factor: FormFactor = FormFactor.FOUR_POST_CABINET,
    desc_units: bool = False,
    starting_unit: int = 1,
    show_rear: bool = True,
    rack_id: Optional[str] = None,
) -> Rack:
    """Create an empty rack with application defaults."""
    return Rack(
        id=rack_id or generate_id(),
        name=name,
        height=height,
        width=width,
        desc_units=desc_units,
        show_rear=show_rear,
        form_factor=form_factor,
        starting_unit=starting_unit,
    )


def create_layout(name: str = DEFAULT_LAYOUT_NAME) -> Layout:
    """Create a new layout with one default 42U rack and an empty library."""
    return Layout(
        version=CURRENT_VERSION,
        name=name,
        racks=[create_rack(name)],
        device_types=[],
        settings=LayoutSettings(),
    )


# ---------------------------------------------------------------------------
# Starter library
# ---------------------------------------------------------------------------

def _starter(
    slug: str,
    model: str,
    u_height: float,
    category: DeviceCategory,
    is_full_depth: Optional[bool] = None,
) -> DeviceType:
    return DeviceType(
        slug=slug,
        u_height=u_height,
        category=category,
        colour=CATEGORY_COLOURS[category.value],
        model=model,
        is_full_depth=is_full_depth,
    )


def starter_library() -> list[DeviceType]:
    """Generic device types offered before the user adds their own.

    Returns fresh instances on every call.
    """
    return [
        _starter("1u-server", "1U Server", 1, DeviceCategory.SERVER),
        _starter("2u-server", "2U Server", 2, DeviceCategory.SERVER),
        _starter("4u-server", "4U Server", 4, DeviceCategory.SERVER),
        _starter("1u-switch", "1U Switch", 1, DeviceCategory.NETWORK, is_full_depth=False),
        _starter("1u-router", "1U Router", 1, DeviceCategory.NETWORK, is_full_depth=False),
        _starter("1u-firewall", "1U Firewall", 1, DeviceCategory.NETWORK, is_full_depth=False),
        _starter("24-port-patch-panel", "24-Port Patch Panel", 1, DeviceCategory.PATCH_PANEL, is_full_depth=False),
        _starter("half-u-patch-panel", "0.5U Patch Panel", 0.5, DeviceCategory.PATCH_PANEL, is_full_depth=False),
        _starter("2u-ups", "2U UPS", 2, DeviceCategory.POWER),
        _starter("1u-pdu", "1U PDU", 1, DeviceCategory.POWER, is_full_depth=False),
        _starter("2u-storage", "2U Storage", 2, DeviceCategory.STORAGE),
        _starter("1u-kvm", "1U KVM", 1, DeviceCategory.KVM, is_full_depth=False),
        _starter("1u-shelf", "1U Shelf", 1, DeviceCategory.SHELF, is_full_depth=True),
        _starter("1u-blank", "1U Blank", 1, DeviceCategory.BLANK, is_full_depth=False),
        _starter("1u-cable-management", "1U Cable Management", 1, DeviceCategory.CABLE_MANAGEMENT, is_full_depth=False),
        _starter("1u-fan-panel", "1U Fan Panel", 1, DeviceCategory.COOLING, is_full_depth=False),
    ]


def find_starter_device_type(slug: str) -> DeviceType | None:
    for dt in starter_library():
        if dt.slug == slug:
            return dt
    return None
