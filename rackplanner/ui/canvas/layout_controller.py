"""Layout controller: editing session for one layout.

Owns the single Layout instance and its command history. All mutations
go through this controller: each one is validated, turned into a
Command, applied through rackplanner.core.commands.apply_command and
pushed on the UndoManager; Qt signals tell canvas and panels what to
refresh.

Create one controller per editing session and pass it to whatever needs
it; reset() returns it to a fresh layout (used between tests).
"""

from __future__ import annotations

import copy
import dataclasses
import logging
from typing import Any, Optional

from PyQt6.QtCore import QObject, pyqtSignal

from rackplanner.constants import (
    ALLOWED_RACK_WIDTHS,
    DEFAULT_LAYOUT_NAME,
    DEFAULT_RACK_HEIGHT,
    DEFAULT_RACK_WIDTH,
    MAX_RACK_HEIGHT,
    MAX_RACKS,
    MIN_RACK_HEIGHT,
)
from rackplanner.core.commands import (
    DEVICE_OVERRIDE_FIELDS,
    RACK_SETTING_FIELDS,
    Command,
    CommandKind,
    add_device_type_command,
    add_rack_command,
    apply_command,
    clear_rack_command,
    delete_device_type_command,
    delete_rack_command,
    move_device_command,
    move_device_to_rack_command,
    place_device_command,
    rack_group_command,
    remove_device_command,
    reorder_racks_command,
    update_device_command,
    update_device_face_command,
    update_device_type_command,
    update_rack_command,
)
from rackplanner.core.migration import migrate_layout
from rackplanner.core.occupancy import (
    OccupancyMap,
    build_occupancy,
    can_place_in_container,
    find_collisions,
    find_overlapping_devices,
)
from rackplanner.core.placement import get_drop_feedback, propose_move
from rackplanner.core.serializers import rack_group_to_dict
from rackplanner.core.templates import (
    create_device_type,
    create_layout,
    create_rack,
    find_starter_device_type,
    generate_id,
    unique_slug,
    validate_device_dimensions,
)
from rackplanner.core.undo_manager import UndoManager
from rackplanner.core.units import is_within_rack
from rackplanner.models.layout import (
    DeviceCategory,
    DeviceType,
    Face,
    FormFactor,
    Layout,
    PlacedDevice,
    Rack,
    RackGroup,
    RackGroupPreset,
    SlotPosition,
)
from rackplanner.models.results import (
    ActionResult,
    DropFeedback,
    GroupResult,
    LayoutIssues,
    MoveDirection,
    MoveReason,
    MoveResult,
)

logger = logging.getLogger(__name__)

_GROUP_KINDS = (
    CommandKind.CREATE_RACK_GROUP,
    CommandKind.UPDATE_RACK_GROUP,
    CommandKind.DELETE_RACK_GROUP,
)
_TYPE_KINDS = (
    CommandKind.ADD_DEVICE_TYPE,
    CommandKind.UPDATE_DEVICE_TYPE,
    CommandKind.DELETE_DEVICE_TYPE,
)


class LayoutController(QObject):
    """Central mediator between the Layout data model and UI views.

    Recorded operations validate their input and return typed results
    (ActionResult, GroupResult, MoveResult) instead of raising; stale
    indices and unknown ids are reported the same way.

    Signals use rack ids (str) for per-rack refresh.
    """

    # Full layout rebuild needed
    layout_changed = pyqtSignal()
    # Devices or settings of one rack changed (rack id)
    rack_changed = pyqtSignal(str)
    device_types_changed = pyqtSignal()
    rack_groups_changed = pyqtSignal()
    # Undo/redo state changed (for menu enable/disable)
    undo_state_changed = pyqtSignal()
    dirty_changed = pyqtSignal(bool)

    def __init__(self, layout: Layout | None = None, parent: QObject | None = None):
        super().__init__(parent)
        self._layout = layout if layout is not None else create_layout()
        self._undo_manager = UndoManager()
        self._dirty: bool = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def layout(self) -> Layout:
        """Current layout (read-only reference)."""
        return self._layout

    @property
    def racks(self) -> list[Rack]:
        return self._layout.racks

    @property
    def device_types(self) -> list[DeviceType]:
        return self._layout.device_types

    @property
    def rack_groups(self) -> list[RackGroup]:
        return self._layout.rack_groups

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    def _set_dirty(self, dirty: bool) -> None:
        if dirty != self._dirty:
            self._dirty = dirty
            self.dirty_changed.emit(dirty)

    def mark_clean(self) -> None:
        """Call after the layout has been saved."""
        self._set_dirty(False)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Discard everything and start from a fresh default layout."""
        self.load_layout(create_layout())

    def new_layout(self, name: str = DEFAULT_LAYOUT_NAME) -> None:
        self.load_layout(create_layout(name))

    def load_layout(self, layout: Layout) -> None:
        """Replace the layout; history is cleared (a load is not undoable)."""
        self._layout = layout
        self._undo_manager.clear()
        self._set_dirty(False)
        self.layout_changed.emit()
        self.device_types_changed.emit()
        self.rack_groups_changed.emit()
        self.undo_state_changed.emit()

    def load_raw_layout(self, raw: Any) -> bool:
        """Migrate and load persisted layout data.

        Returns:
            False if the data could not be migrated; the current layout
            is left untouched.
        """
        layout = migrate_layout(raw)
        if layout is None:
            logger.warning("Layout could not be loaded, keeping current layout")
            return False
        self.load_layout(layout)
        issues = self.layout_issues()
        if not issues.is_valid:
            logger.warning(
                "Loaded layout %r is partially invalid: %d unresolved, "
                "%d out of bounds, %d collisions",
                layout.name, len(issues.unresolved_devices),
                len(issues.out_of_bounds), len(issues.collisions),
            )
        else:
            logger.info("Loaded layout %r (%d racks)", layout.name, layout.rack_count)
        return True

    # ------------------------------------------------------------------
    # Undo / Redo
    # ------------------------------------------------------------------

    def _execute(self, command: Command) -> None:
        """Apply a new command and record it."""
        apply_command(self._layout, command, forward=True)
        self._undo_manager.push(command)
        self._set_dirty(True)
        self._notify(command)
        self.undo_state_changed.emit()

    def execute_raw(self, command: Command) -> None:
        """Apply a command without recording it in the history."""
        apply_command(self._layout, command, forward=True)
        self._set_dirty(True)
        self._notify(command)

    def _notify(self, command: Command) -> None:
        kind = command.kind
        p = command.payload
        if kind in _TYPE_KINDS or (kind == CommandKind.PLACE_DEVICE and p["imported_type"]):
            self.device_types_changed.emit()
        if kind in _GROUP_KINDS or (kind == CommandKind.DELETE_RACK and p["group_changes"]):
            self.rack_groups_changed.emit()
        if kind == CommandKind.MOVE_DEVICE_TO_RACK:
            self.rack_changed.emit(p["from_rack_id"])
            self.rack_changed.emit(p["to_rack_id"])
        elif "rack_id" in p:
            self.rack_changed.emit(p["rack_id"])
        self.layout_changed.emit()

    @property
    def can_undo(self) -> bool:
        return self._undo_manager.can_undo

    @property
    def can_redo(self) -> bool:
        return self._undo_manager.can_redo

    @property
    def undo_description(self) -> str | None:
        return self._undo_manager.undo_description

    @property
    def redo_description(self) -> str | None:
        return self._undo_manager.redo_description

    def undo(self) -> bool:
        """Revert the latest recorded operation."""
        command = self._undo_manager.undo()
        if command is None:
            return False
        apply_command(self._layout, command, forward=False)
        self._set_dirty(True)
        self._notify(command)
        self.undo_state_changed.emit()
        return True

    def redo(self) -> bool:
        """Re-apply the latest undone operation."""
        command = self._undo_manager.redo()
        if command is None:
            return False
        apply_command(self._layout, command, forward=True)
        self._set_dirty(True)
        self._notify(command)
        self.undo_state_changed.emit()
        return True

    def clear_history(self) -> None:
        """Clear undo/redo stacks (e.g. after a bulk import)."""
        self._undo_manager.clear()
        self.undo_state_changed.emit()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_rack(self, rack_id: str) -> Rack | None:
        return self._layout.find_rack(rack_id)

    def _rack_index(self, rack_id: str) -> int:
        for i, rack in enumerate(self._layout.racks):
            if rack.id == rack_id:
                return i
        return -1

    def _device_at(self, rack_id: str, device_index: int) -> tuple[Rack, PlacedDevice] | None:
        rack = self.get_rack(rack_id)
        if rack is None or not 0 <= device_index < len(rack.devices):
            return None
        return rack, rack.devices[device_index]

    def _device_name(self, device: PlacedDevice) -> str:
        """Type model or slug, for command descriptions."""
        dt = self._layout.find_device_type(device.device_type)
        if dt is not None:
            return dt.display_name
        return device.device_type or "device"

    def _blocker_name(self, device: PlacedDevice) -> str:
        return device.name or self._device_name(device)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def occupancy(self, rack_id: str, exclude_index: Optional[int] = None) -> OccupancyMap | None:
        rack = self.get_rack(rack_id)
        if rack is None:
            return None
        return build_occupancy(rack, self._layout.device_types, exclude_index)

    def propose_move(
        self,
        rack_id: str,
        device_index: int,
        direction: MoveDirection | int,
        step_u: Optional[float] = None,
    ) -> MoveResult:
        rack = self.get_rack(rack_id)
        if rack is None:
            return MoveResult(reason=MoveReason.NO_VALID_POSITION)
        return propose_move(rack, self._layout.device_types, device_index, direction, step_u)

    def get_drop_feedback(
        self,
        rack_id: str,
        slug: str,
        position: int,
        exclude_index: Optional[int] = None,
        face: Optional[Face] = None,
        slot: SlotPosition = SlotPosition.FULL,
    ) -> DropFeedback:
        """Drag-over feedback for a library or in-rack device.

        Args:
            rack_id: Rack under the cursor.
            slug: Type of the dragged device (layout or starter library).
            position: Candidate bottom position [internal units].
            exclude_index: Index of the dragged device if it comes from
                this rack.
            face: Face it would occupy, default as place_device decides.
        """
        rack = self.get_rack(rack_id)
        dt = self._resolve_device_type(slug)
        if rack is None or dt is None:
            return DropFeedback.INVALID
        if face is None or dt.full_depth:
            face = Face.BOTH if dt.full_depth else Face.FRONT
        if dt.slot_width != 1:
            slot = SlotPosition.FULL
        return get_drop_feedback(
            rack, self._layout.device_types, dt.u_height, position, exclude_index, face, slot,
        )

    def layout_issues(self) -> LayoutIssues:
        """Unresolved slugs, out-of-bounds devices and collisions, per rack."""
        issues = LayoutIssues()
        for rack in self._layout.racks:
            for device in rack.devices:
                if device.container_id is not None:
                    continue
                dt = self._layout.find_device_type(device.device_type)
                if dt is None:
                    issues.unresolved_devices.append((rack.id, device.id, device.device_type))
                elif not is_within_rack(device.position, dt.u_height, rack.height):
                    issues.out_of_bounds.append((rack.id, device.id))
            for dev_a, dev_b in find_overlapping_devices(rack, self._layout.device_types):
                issues.collisions.append((rack.id, dev_a.id, dev_b.id))
        return issues

    # ------------------------------------------------------------------
    # Device-type library
    # ------------------------------------------------------------------

    def _resolve_device_type(self, slug: str) -> DeviceType | None:
        """Layout library first, then the starter library."""
        return self._layout.find_device_type(slug) or find_starter_device_type(slug)

    def add_device_type(
        self,
        name: str,
        u_height: float,
        category: DeviceCategory = DeviceCategory.OTHER,
        **kwargs: Any,
    ) -> DeviceType:
        """Create a library entry (slug made unique) and record it.

        Raises:
            ValueError: If *u_height* is invalid.
        """
        dt = create_device_type(name, u_height, category, **kwargs)
        dt.slug = unique_slug(dt.slug, {d.slug for d in self._layout.device_types})
        self._execute(add_device_type_command(dt, len(self._layout.device_types)))
        return self._layout.device_types[-1]

    def update_device_type(self, slug: str, /, **updates: Any) -> ActionResult:
        """Edit a library entry.

        Switching a type to full depth moves every placement of it to
        ``both`` within the same history entry. Height and slot width are
        checked the same way as for new types.
        """
        before = self._layout.find_device_type(slug)
        if before is None:
            return ActionResult.failed(f"Device type not found: {slug}")
        if "slug" in updates and updates["slug"] != slug:
            return ActionResult.failed("Device type slug cannot be changed")
        unknown = set(updates) - {f.name for f in dataclasses.fields(before)}
        if unknown:
            return ActionResult.failed(f"Unknown device type field(s): {', '.join(sorted(unknown))}")

        after = copy.deepcopy(before)
        for key, value in updates.items():
            setattr(after, key, value)
        try:
            validate_device_dimensions(after.u_height, after.slot_width)
        except ValueError as exc:
            logger.debug("Update of %s rejected: %s", slug, exc)
            return ActionResult.failed(str(exc))

        face_changes = []
        if after.full_depth:
            for rack in self._layout.racks:
                for device in rack.devices:
                    if device.device_type == slug and device.face != Face.BOTH:
                        face_changes.append({
                            "rack_id": rack.id,
                            "device_id": device.id,
                            "before": device.face.value,
                            "after": Face.BOTH.value,
                        })
        self._execute(update_device_type_command(before, after, face_changes))
        return ActionResult()

    def delete_device_type(self, slug: str) -> ActionResult:
        """Remove a library entry and all of its placements (one history entry)."""
        index = next(
            (i for i, dt in enumerate(self._layout.device_types) if dt.slug == slug), -1,
        )
        if index < 0:
            return ActionResult.failed(f"Device type not found: {slug}")
        placements = [
            (rack.id, i, device)
            for rack in self._layout.racks
            for i, device in enumerate(rack.devices)
            if device.device_type == slug
        ]
        self._execute(delete_device_type_command(
            self._layout.device_types[index], index, placements,
        ))
        return ActionResult()

    # ------------------------------------------------------------------
    # Device placement
    # ------------------------------------------------------------------

    def place_device(
        self,
        rack_id: str,
        slug: str,
        position: int,
        face: Optional[Face] = None,
        slot: SlotPosition = SlotPosition.FULL,
    ) -> ActionResult:
        """Place a new device of type *slug* at *position* [internal units].

        Full-depth types always occupy ``both``; half-depth types use
        *face* (default front). Starter types are copied into the layout
        library as part of the same history entry.
        """
        rack = self.get_rack(rack_id)
        if rack is None:
            return ActionResult.failed(f"Rack not found: {rack_id}")
        dt = self._layout.find_device_type(slug)
        imported = None
        if dt is None:
            imported = find_starter_device_type(slug)
            if imported is None:
                logger.debug("Place rejected: unknown device type %r", slug)
                return ActionResult.failed(f"Device type not found: {slug}")
            dt = imported

        effective_face = Face.BOTH if dt.full_depth else (face or Face.FRONT)
        if dt.slot_width != 1:
            slot = SlotPosition.FULL
        feedback = get_drop_feedback(
            rack, self._layout.device_types, dt.u_height, position, None, effective_face, slot,
        )
        if feedback == DropFeedback.INVALID:
            logger.debug("Place %s at %d rejected: out of bounds", slug, position)
            return ActionResult.failed("Position is outside the rack")
        if feedback == DropFeedback.BLOCKED:
            logger.debug("Place %s at %d rejected: collision", slug, position)
            return ActionResult.failed("Position is occupied")

        device = PlacedDevice(
            id=generate_id(),
            device_type=slug,
            position=position,
            face=effective_face,
            slot_position=slot,
        )
        self._execute(place_device_command(
            rack.id,
            len(rack.devices),
            device,
            dt.display_name,
            imported_type=imported,
            imported_index=len(self._layout.device_types) if imported else None,
        ))
        return ActionResult()

    def move_device(self, rack_id: str, device_index: int, new_position: int) -> ActionResult:
        """Move a device within its rack (collision-checked, self excluded)."""
        found = self._device_at(rack_id, device_index)
        if found is None:
            return ActionResult.failed("Device not found")
        rack, device = found
        dt = self._layout.find_device_type(device.device_type)
        if dt is None:
            return ActionResult.failed(f"Device type not found: {device.device_type}")
        if new_position == device.position:
            return ActionResult()
        if device.container_id is not None:
            error = self._check_nested_move(rack, device, dt, new_position)
            if error:
                return ActionResult.failed(error)
            feedback = DropFeedback.VALID
        else:
            feedback = get_drop_feedback(
                rack, self._layout.device_types, dt.u_height, new_position,
                device_index, device.face, device.slot_position,
            )
        if feedback != DropFeedback.VALID:
            logger.debug(
                "Move %s %d → %d rejected: %s",
                device.id, device.position, new_position, feedback.value,
            )
            return ActionResult.failed(
                "Position is outside the rack" if feedback == DropFeedback.INVALID
                else "Position is occupied"
            )
        self._execute(move_device_command(
            rack.id, device.id, device.position, new_position, dt.display_name,
        ))
        return ActionResult()

    def _check_nested_move(
        self, rack: Rack, device: PlacedDevice, dt: DeviceType, new_position: int,
    ) -> str | None:
        """Validate a U offset inside the device's container."""
        container = next((d for d in rack.devices if d.id == device.container_id), None)
        container_type = (
            self._layout.find_device_type(container.device_type) if container else None
        )
        if container is None or container_type is None:
            return "Container not found"
        if not can_place_in_container(
            rack, self._layout.device_types, container, container_type, dt,
            device.slot_id, new_position, exclude_device_id=device.id,
        ):
            return "Position is not available in the container"
        return None

    def move_device_in_direction(
        self,
        rack_id: str,
        device_index: int,
        direction: MoveDirection | int,
        step_u: Optional[float] = None,
    ) -> MoveResult:
        """Keyboard move: propose_move with leapfrog, then record the move."""
        result = self.propose_move(rack_id, device_index, direction, step_u)
        if result.success and result.new_position is not None:
            self.move_device(rack_id, device_index, result.new_position)
        return result

    def move_device_to_rack(
        self,
        from_rack_id: str,
        device_index: int,
        to_rack_id: str,
        new_position: int,
    ) -> ActionResult:
        """Move a device into another rack (keeps its id)."""
        if from_rack_id == to_rack_id:
            return self.move_device(from_rack_id, device_index, new_position)
        found = self._device_at(from_rack_id, device_index)
        target = self.get_rack(to_rack_id)
        if found is None or target is None:
            return ActionResult.failed("Device or rack not found")
        source, device = found
        if device.container_id is not None:
            return ActionResult.failed("Nested devices move with their container")
        dt = self._layout.find_device_type(device.device_type)
        if dt is None:
            return ActionResult.failed(f"Device type not found: {device.device_type}")
        feedback = get_drop_feedback(
            target, self._layout.device_types, dt.u_height, new_position,
            None, device.face, device.slot_position,
        )
        if feedback != DropFeedback.VALID:
            return ActionResult.failed(
                "Position is outside the rack" if feedback == DropFeedback.INVALID
                else "Position is occupied"
            )
        moved = copy.deepcopy(device)
        moved.position = new_position
        self._execute(move_device_to_rack_command(
            source, device_index, target, len(target.devices), device, moved, dt.display_name,
        ))
        return ActionResult()

    def remove_device(self, rack_id: str, device_index: int) -> ActionResult:
        found = self._device_at(rack_id, device_index)
        if found is None:
            return ActionResult.failed("Device not found")
        rack, device = found
        self._execute(remove_device_command(
            rack.id, device_index, device, self._device_name(device),
        ))
        return ActionResult()

    def update_device_face(self, rack_id: str, device_index: int, face: Face) -> ActionResult:
        """Change the mounting face, rejecting changes that would collide."""
        found = self._device_at(rack_id, device_index)
        if found is None:
            return ActionResult.failed("Device not found")
        rack, device = found
        face = Face(face)
        if face == device.face:
            return ActionResult()
        if device.container_id is not None:
            return ActionResult.failed("Nested devices use their container's face")
        dt = self._layout.find_device_type(device.device_type)
        if dt is not None and dt.full_depth and face != Face.BOTH:
            return ActionResult.failed(
                f"{dt.display_name} is full-depth and must occupy both faces"
            )
        if dt is not None:
            blockers = find_collisions(
                rack, self._layout.device_types, dt.u_height, device.position,
                device_index, face, device.slot_position,
            )
            if blockers:
                target = "full-depth" if face == Face.BOTH else face.value
                names = ", ".join(self._blocker_name(b) for b in blockers)
                return ActionResult.failed(f"Cannot change to {target}: blocked by {names}")
        self._execute(update_device_face_command(
            rack.id, device.id, device.face, face, self._device_name(device),
        ))
        return ActionResult()

    def update_device_overrides(
        self, rack_id: str, device_index: int, **updates: Any,
    ) -> ActionResult:
        """Per-instance overrides: name, colour_override, images, notes, slot_position."""
        found = self._device_at(rack_id, device_index)
        if found is None:
            return ActionResult.failed("Device not found")
        rack, device = found
        unknown = set(updates) - set(DEVICE_OVERRIDE_FIELDS)
        if unknown:
            return ActionResult.failed(f"Unknown device field(s): {', '.join(sorted(unknown))}")
        if "name" in updates:
            updates["name"] = (updates["name"] or "").strip() or None
        if "slot_position" in updates:
            updates["slot_position"] = SlotPosition(updates["slot_position"] or SlotPosition.FULL)

        if "slot_position" in updates and updates["slot_position"] != device.slot_position:
            dt = self._layout.find_device_type(device.device_type)
            if dt is not None and dt.slot_width != 1 and updates["slot_position"] != SlotPosition.FULL:
                return ActionResult.failed(f"{dt.display_name} is full-width")
            if dt is not None and find_collisions(
                rack, self._layout.device_types, dt.u_height, device.position,
                device_index, device.face, updates["slot_position"],
            ):
                return ActionResult.failed("Slot is occupied")

        before = {key: getattr(device, key) for key in updates}
        if before == updates:
            return ActionResult()
        self._execute(update_device_command(
            rack.id, device.id, before, updates, self._device_name(device),
        ))
        return ActionResult()

    # ------------------------------------------------------------------
    # Racks
    # ------------------------------------------------------------------

    def add_rack(
        self,
        name: str,
        height: int = DEFAULT_RACK_HEIGHT,
        width: int = DEFAULT_RACK_WIDTH,
        form_factor: FormFactor = FormFactor.FOUR_POST_CABINET,
        desc_units: bool = False,
        starting_unit: int = 1,
    ) -> Rack | None:
        """Append a new empty rack.

        Returns:
            The new rack, or None if the rack limit is reached or the
            dimensions are invalid.
        """
        if len(self._layout.racks) >= MAX_RACKS:
            logger.warning("Cannot add rack: maximum of %d racks", MAX_RACKS)
            return None
        if not MIN_RACK_HEIGHT <= height <= MAX_RACK_HEIGHT or width not in ALLOWED_RACK_WIDTHS:
            logger.warning("Cannot add rack: invalid size %dU / %d\"", height, width)
            return None
        rack = create_rack(name, height, width, form_factor, desc_units, starting_unit)
        rack.position = len(self._layout.racks)
        self._execute(add_rack_command(rack, len(self._layout.racks)))
        return self._layout.racks[-1]

    def update_rack(self, rack_id: str, **updates: Any) -> ActionResult:
        """Edit rack settings (name, height, width, numbering, ...)."""
        rack = self.get_rack(rack_id)
        if rack is None:
            return ActionResult.failed(f"Rack not found: {rack_id}")
        unknown = set(updates) - set(RACK_SETTING_FIELDS)
        if unknown:
            return ActionResult.failed(f"Unknown rack field(s): {', '.join(sorted(unknown))}")
        if "form_factor" in updates:
            updates["form_factor"] = FormFactor(updates["form_factor"])

        if "height" in updates and updates["height"] != rack.height:
            error = self._check_rack_height(rack, updates["height"])
            if error:
                return ActionResult.failed(error)
        if "width" in updates and updates["width"] not in ALLOWED_RACK_WIDTHS:
            return ActionResult.failed(
                f"Rack width must be one of {', '.join(str(w) for w in ALLOWED_RACK_WIDTHS)}"
            )

        before = {key: getattr(rack, key) for key in updates}
        if before == updates:
            return ActionResult()
        self._execute(update_rack_command(rack.id, before, updates))
        return ActionResult()

    def _check_rack_height(self, rack: Rack, height: int) -> str | None:
        if not MIN_RACK_HEIGHT <= height <= MAX_RACK_HEIGHT:
            return f"Rack height must be between {MIN_RACK_HEIGHT} and {MAX_RACK_HEIGHT}U"
        for device in rack.devices:
            dt = self._layout.find_device_type(device.device_type)
            if device.container_id is None and dt is not None:
                if not is_within_rack(device.position, dt.u_height, height):
                    return f"Cannot resize to {height}U: {self._device_name(device)} would be outside the rack"
        for group in self._layout.rack_groups:
            if group.layout_preset != RackGroupPreset.BAYED or rack.id not in group.rack_ids:
                continue
            others = [self.get_rack(rid) for rid in group.rack_ids if rid != rack.id]
            heights = {r.height for r in others if r is not None}
            if heights and heights != {height}:
                return _bayed_height_error([height, *heights])
        return None

    def delete_rack(self, rack_id: str) -> ActionResult:
        """Delete a rack, drop it from its groups and delete groups left empty."""
        index = self._rack_index(rack_id)
        if index < 0:
            return ActionResult.failed(f"Rack not found: {rack_id}")
        group_changes = []
        for i, group in enumerate(self._layout.rack_groups):
            if rack_id not in group.rack_ids:
                continue
            remaining = [rid for rid in group.rack_ids if rid != rack_id]
            after = None
            if remaining:
                after = copy.deepcopy(group)
                after.rack_ids = remaining
            group_changes.append({
                "index": i,
                "before": rack_group_to_dict(group),
                "after": rack_group_to_dict(after) if after else None,
            })
        self._execute(delete_rack_command(self._layout.racks[index], index, group_changes))
        return ActionResult()

    def duplicate_rack(self, rack_id: str) -> ActionResult:
        """Copy a rack and its devices (new ids) right after the original."""
        index = self._rack_index(rack_id)
        if index < 0:
            return ActionResult.failed(f"Rack not found: {rack_id}")
        if len(self._layout.racks) >= MAX_RACKS:
            return ActionResult.failed(f"Maximum of {MAX_RACKS} racks allowed")
        source = self._layout.racks[index]
        clone = copy.deepcopy(source)
        clone.id = generate_id()
        clone.name = f"{source.name} (Copy)"
        id_map = {}
        for device in clone.devices:
            new_id = generate_id()
            id_map[device.id] = new_id
            device.id = new_id
        for device in clone.devices:
            if device.container_id is not None:
                device.container_id = id_map.get(device.container_id, device.container_id)
        self._execute(add_rack_command(clone, index + 1, f"Duplicate {source.name}"))
        return ActionResult()

    def reorder_racks(self, from_index: int, to_index: int) -> ActionResult:
        n = len(self._layout.racks)
        if not (0 <= from_index < n and 0 <= to_index < n):
            return ActionResult.failed("Rack index out of range")
        if from_index == to_index:
            return ActionResult()
        positions = [rack.position for rack in self._layout.racks]
        self._execute(reorder_racks_command(from_index, to_index, positions))
        return ActionResult()

    def clear_rack(self, rack_id: str) -> ActionResult:
        """Remove every device from a rack (one history entry)."""
        rack = self.get_rack(rack_id)
        if rack is None:
            return ActionResult.failed(f"Rack not found: {rack_id}")
        if not rack.devices:
            return ActionResult()
        self._execute(clear_rack_command(rack.id, list(rack.devices)))
        return ActionResult()

    # ------------------------------------------------------------------
    # Rack groups
    # ------------------------------------------------------------------

    def get_rack_group_by_id(self, group_id: str) -> RackGroup | None:
        for group in self._layout.rack_groups:
            if group.id == group_id:
                return group
        return None

    def get_rack_group_for_rack(self, rack_id: str) -> RackGroup | None:
        for group in self._layout.rack_groups:
            if rack_id in group.rack_ids:
                return group
        return None

    def _group_index(self, group_id: str) -> int:
        for i, group in enumerate(self._layout.rack_groups):
            if group.id == group_id:
                return i
        return -1

    def _validate_group(self, rack_ids: list[str], preset: RackGroupPreset) -> str | None:
        if not rack_ids:
            return "A rack group needs at least one rack"
        missing = [rid for rid in rack_ids if self.get_rack(rid) is None]
        if missing:
            return f"Rack not found: {', '.join(missing)}"
        if preset == RackGroupPreset.BAYED:
            heights = [self.get_rack(rid).height for rid in rack_ids]
            if len(set(heights)) > 1:
                return _bayed_height_error(heights)
        return None

    def create_rack_group(
        self,
        name: str,
        rack_ids: list[str],
        layout_preset: RackGroupPreset = RackGroupPreset.ROW,
    ) -> GroupResult:
        error = self._validate_group(rack_ids, layout_preset)
        if error:
            return GroupResult(error=error)
        group = RackGroup(
            id=generate_id(), name=name, rack_ids=list(rack_ids), layout_preset=layout_preset,
        )
        index = len(self._layout.rack_groups)
        self._execute(rack_group_command(
            CommandKind.CREATE_RACK_GROUP, f"Create {name}", index, None, group,
        ))
        return GroupResult(group=self._layout.rack_groups[index])

    def update_rack_group(
        self,
        group_id: str,
        name: Optional[str] = None,
        rack_ids: Optional[list[str]] = None,
        layout_preset: Optional[RackGroupPreset] = None,
    ) -> GroupResult:
        index = self._group_index(group_id)
        if index < 0:
            return GroupResult(error=f"Rack group not found: {group_id}")
        before = self._layout.rack_groups[index]
        after = copy.deepcopy(before)
        if name is not None:
            after.name = name
        if rack_ids is not None:
            after.rack_ids = list(rack_ids)
        if layout_preset is not None:
            after.layout_preset = layout_preset
        error = self._validate_group(after.rack_ids, after.layout_preset)
        if error:
            return GroupResult(error=error)
        return self._commit_group_change(
            index, before, after, f"Update {before.name or 'rack group'}",
        )

    def delete_rack_group(self, group_id: str) -> ActionResult:
        """Delete a group; its racks are not touched."""
        index = self._group_index(group_id)
        if index < 0:
            return ActionResult.failed(f"Rack group not found: {group_id}")
        group = self._layout.rack_groups[index]
        self._execute(rack_group_command(
            CommandKind.DELETE_RACK_GROUP, f"Delete {group.name or 'rack group'}",
            index, group, None,
        ))
        return ActionResult()

    def add_rack_to_group(self, group_id: str, rack_id: str) -> GroupResult:
        index = self._group_index(group_id)
        if index < 0:
            return GroupResult(error=f"Rack group not found: {group_id}")
        if self.get_rack(rack_id) is None:
            return GroupResult(error=f"Rack not found: {rack_id}")
        before = self._layout.rack_groups[index]
        if rack_id in before.rack_ids:
            return GroupResult(error="Rack is already in this group")
        after = copy.deepcopy(before)
        after.rack_ids.append(rack_id)
        error = self._validate_group(after.rack_ids, after.layout_preset)
        if error:
            return GroupResult(error=error)
        return self._commit_group_change(
            index, before, after, f"Add rack to {before.name or 'rack group'}",
        )

    def remove_rack_from_group(self, group_id: str, rack_id: str) -> GroupResult:
        """Remove a rack; removing the last rack deletes the group."""
        index = self._group_index(group_id)
        if index < 0:
            return GroupResult(error=f"Rack group not found: {group_id}")
        before = self._layout.rack_groups[index]
        if rack_id not in before.rack_ids:
            return GroupResult(error=f"Rack not found in group: {rack_id}")
        remaining = [rid for rid in before.rack_ids if rid != rack_id]
        label = before.name or "rack group"
        if not remaining:
            self._execute(rack_group_command(
                CommandKind.DELETE_RACK_GROUP, f"Delete {label}", index, before, None,
            ))
            return GroupResult()
        after = copy.deepcopy(before)
        after.rack_ids = remaining
        return self._commit_group_change(index, before, after, f"Remove rack from {label}")

    def _commit_group_change(
        self, index: int, before: RackGroup, after: RackGroup, description: str,
    ) -> GroupResult:
        if before == after:
            return GroupResult(group=before)
        self._execute(rack_group_command(
            CommandKind.UPDATE_RACK_GROUP, description, index, before, after,
        ))
        return GroupResult(group=self._layout.rack_groups[index])


def _bayed_height_error(heights: list[int]) -> str:
    listed = ", ".join(f"{h}U" for h in sorted(set(heights)))
    return f"Bayed groups require same-height racks (found {listed})"
