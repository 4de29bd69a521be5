"""Layout data models for rack planning.

A layout holds one or more racks, the device-type library those racks
draw from, and optional rack groups. Placed devices refer to their type
by slug only; the library is the single owner of type data.

Heights are in U. Placed-device positions are in internal units
(see rackplanner.core.units) so that half-U placements stay exact.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
import uuid

from rackplanner.constants import (
    CURRENT_VERSION,
    DEFAULT_LAYOUT_NAME,
    DEFAULT_RACK_HEIGHT,
    DEFAULT_RACK_WIDTH,
)


class Face(Enum):
    """Mounting side occupied by a placed device."""
    FRONT = "front"
    REAR = "rear"
    BOTH = "both"


class SlotPosition(Enum):
    """Horizontal half occupied by a device (half-width devices only)."""
    LEFT = "left"
    RIGHT = "right"
    FULL = "full"


class DeviceCategory(Enum):
    SERVER = "server"
    NETWORK = "network"
    PATCH_PANEL = "patch-panel"
    POWER = "power"
    STORAGE = "storage"
    KVM = "kvm"
    AV_MEDIA = "av-media"
    COOLING = "cooling"
    SHELF = "shelf"
    BLANK = "blank"
    CABLE_MANAGEMENT = "cable-management"
    OTHER = "other"


class FormFactor(Enum):
    TWO_POST = "2-post"
    FOUR_POST = "4-post"
    FOUR_POST_CABINET = "4-post-cabinet"
    WALL_MOUNT = "wall-mount"
    OPEN_FRAME = "open-frame"


class RackGroupPreset(Enum):
    """Arrangement of racks within a group.

    ROW:    Racks stand side by side, heights may differ.
    BAYED:  Racks are bolted together; all members must share one height.
    CUSTOM: Free arrangement.
    """
    ROW = "row"
    BAYED = "bayed"
    CUSTOM = "custom"


class DisplayMode(Enum):
    LABEL = "label"
    IMAGE = "image"
    IMAGE_LABEL = "image-label"


@dataclass
class DeviceType:
    """Library entry describing a class of equipment.

    Attributes:
        slug: Unique identifier, referenced by PlacedDevice.device_type.
        u_height: Height in U (positive multiple of 0.5).
        category: Device category (drives default colour).
        colour: Display colour (hex).
        manufacturer: Optional manufacturer name.
        model: Optional model name.
        is_full_depth: None/True = occupies both faces, False = half depth.
        slot_width: 2 = full width, 1 = half width (left/right slot).
    """
    slug: str = ""
    u_height: float = 1.0
    category: DeviceCategory = DeviceCategory.OTHER
    colour: str = "#6272A4"
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    part_number: Optional[str] = None
    is_full_depth: Optional[bool] = None
    slot_width: int = 2
    notes: Optional[str] = None
    tags: list[str] = field(default_factory=list)

    @property
    def full_depth(self) -> bool:
        """Absent flag counts as full depth."""
        return self.is_full_depth is not False

    @property
    def display_name(self) -> str:
        """Model name if set, otherwise the slug."""
        return self.model or self.slug


@dataclass
class PlacedDevice:
    """Instance of a DeviceType mounted in a rack.

    Attributes:
        id: Stable identifier (survives moves and undo).
        device_type: Slug of the DeviceType (lookup key, not ownership).
        position: Bottom position in internal units (U1 = 6). For container
            children, 0-indexed U offset from the container bottom.
        face: Mounting face. Full-depth types always use Face.BOTH.
        slot_position: Horizontal half for half-width devices.
        container_id: Id of the parent container device, if nested.
        slot_id: Bay/slot identifier inside the container.
    """
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    device_type: str = ""
    position: int = 0
    face: Face = Face.FRONT
    slot_position: SlotPosition = SlotPosition.FULL
    name: Optional[str] = None
    colour_override: Optional[str] = None
    front_image: Optional[str] = None
    rear_image: Optional[str] = None
    notes: Optional[str] = None
    container_id: Optional[str] = None
    slot_id: Optional[str] = None

    @property
    def is_container_child(self) -> bool:
        return self.container_id is not None


@dataclass
class Rack:
    """A single rack and its mounted devices.

    Device order is z-order for rendering only; it has no effect on occupancy.
    """
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = "Rack"
    height: int = DEFAULT_RACK_HEIGHT
    width: int = DEFAULT_RACK_WIDTH
    desc_units: bool = False
    show_rear: bool = True
    form_factor: FormFactor = FormFactor.FOUR_POST_CABINET
    starting_unit: int = 1
    position: int = 0
    devices: list[PlacedDevice] = field(default_factory=list)
    notes: Optional[str] = None

    @property
    def device_count(self) -> int:
        return len(self.devices)


@dataclass
class RackGroup:
    """Named set of racks sharing a layout preset."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: Optional[str] = None
    rack_ids: list[str] = field(default_factory=list)
    layout_preset: RackGroupPreset = RackGroupPreset.ROW


@dataclass
class LayoutSettings:
    display_mode: DisplayMode = DisplayMode.LABEL
    show_labels_on_images: bool = False


@dataclass
class Layout:
    """Top-level layout aggregate (the unit that is saved and loaded)."""
    version: str = CURRENT_VERSION
    name: str = DEFAULT_LAYOUT_NAME
    racks: list[Rack] = field(default_factory=list)
    device_types: list[DeviceType] = field(default_factory=list)
    rack_groups: list[RackGroup] = field(default_factory=list)
    settings: LayoutSettings = field(default_factory=LayoutSettings)

    def find_device_type(self, slug: str) -> DeviceType | None:
        """Resolve a slug against the library. None if missing."""
        for dt in self.device_types:
            if dt.slug == slug:
                return dt
        return None

    def find_rack(self, rack_id: str) -> Rack | None:
        for rack in self.racks:
            if rack.id == rack_id:
                return rack
        return None

    @property
    def rack_count(self) -> int:
        return len(self.racks)
