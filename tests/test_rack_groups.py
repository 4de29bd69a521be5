"""Tests for rack group operations on LayoutController."""

import copy
import sys
from unittest.mock import MagicMock

from PyQt6.QtCore import QCoreApplication

from rackplanner.models.layout import Layout, Rack, RackGroupPreset
from rackplanner.ui.canvas.layout_controller import LayoutController

_app = QCoreApplication.instance() or QCoreApplication(sys.argv)


def _controller() -> LayoutController:
    return LayoutController(Layout(racks=[
        Rack(id="r1", name="A", height=42),
        Rack(id="r2", name="B", height=42),
        Rack(id="r3", name="C", height=12),
        Rack(id="r4", name="D", height=20),
    ]))


class TestCreateRackGroup:
    def setup_method(self):
        self.ctrl = _controller()

    def test_create_row(self):
        result = self.ctrl.create_rack_group("Row A", ["r1", "r3"])
        assert result.success
        assert result.group.rack_ids == ["r1", "r3"]
        assert result.group.layout_preset == RackGroupPreset.ROW
        assert self.ctrl.rack_groups == [result.group]
        assert self.ctrl.undo_description == "Undo: Create Row A"

    def test_undo_create(self):
        self.ctrl.create_rack_group("Row A", ["r1"])
        self.ctrl.undo()
        assert self.ctrl.rack_groups == []

    def test_empty_rejected(self):
        result = self.ctrl.create_rack_group("Empty", [])
        assert not result.success
        assert result.group is None
        assert result.error == "A rack group needs at least one rack"
        assert not self.ctrl.can_undo

    def test_missing_rack(self):
        assert self.ctrl.create_rack_group("X", ["r1", "zz"]).error == "Rack not found: zz"

    def test_bayed_mixed_heights(self):
        result = self.ctrl.create_rack_group("Bay", ["r3", "r4"], RackGroupPreset.BAYED)
        assert result.error == "Bayed groups require same-height racks (found 12U, 20U)"
        assert self.ctrl.rack_groups == []

    def test_bayed_same_height(self):
        result = self.ctrl.create_rack_group("Bay", ["r1", "r2"], RackGroupPreset.BAYED)
        assert result.success

    def test_signal(self):
        spy = MagicMock()
        self.ctrl.rack_groups_changed.connect(spy)
        self.ctrl.create_rack_group("Row A", ["r1"])
        spy.assert_called_once()


class TestUpdateRackGroup:
    def setup_method(self):
        self.ctrl = _controller()
        self.group = self.ctrl.create_rack_group("Row", ["r1", "r3"]).group

    def test_rename(self):
        result = self.ctrl.update_rack_group(self.group.id, name="Renamed")
        assert result.group.name == "Renamed"
        self.ctrl.undo()
        assert self.ctrl.rack_groups[0].name == "Row"

    def test_switch_to_bayed_checks_heights(self):
        result = self.ctrl.update_rack_group(self.group.id, layout_preset=RackGroupPreset.BAYED)
        assert result.error == "Bayed groups require same-height racks (found 12U, 42U)"
        assert self.ctrl.rack_groups[0].layout_preset == RackGroupPreset.ROW

    def test_replace_racks(self):
        result = self.ctrl.update_rack_group(self.group.id, rack_ids=["r2"])
        assert result.group.rack_ids == ["r2"]

    def test_empty_racks_rejected(self):
        assert not self.ctrl.update_rack_group(self.group.id, rack_ids=[]).success

    def test_unknown_group(self):
        assert self.ctrl.update_rack_group("nope", name="x").error == "Rack group not found: nope"

    def test_no_change_not_recorded(self):
        self.ctrl.clear_history()
        assert self.ctrl.update_rack_group(self.group.id, name="Row").success
        assert not self.ctrl.can_undo


class TestGroupMembership:
    def setup_method(self):
        self.ctrl = _controller()
        self.row = self.ctrl.create_rack_group("Row", ["r1"]).group
        self.bay = self.ctrl.create_rack_group("Bay", ["r1", "r2"], RackGroupPreset.BAYED).group

    def test_add(self):
        result = self.ctrl.add_rack_to_group(self.row.id, "r3")
        assert result.group.rack_ids == ["r1", "r3"]

    def test_add_duplicate(self):
        assert self.ctrl.add_rack_to_group(self.row.id, "r1").error == "Rack is already in this group"

    def test_add_missing_rack(self):
        assert self.ctrl.add_rack_to_group(self.row.id, "zz").error == "Rack not found: zz"

    def test_add_to_bayed_height_mismatch(self):
        result = self.ctrl.add_rack_to_group(self.bay.id, "r4")
        assert result.error == "Bayed groups require same-height racks (found 20U, 42U)"
        assert self.ctrl.get_rack_group_by_id(self.bay.id).rack_ids == ["r1", "r2"]

    def test_remove(self):
        result = self.ctrl.remove_rack_from_group(self.bay.id, "r2")
        assert result.group.rack_ids == ["r1"]

    def test_remove_last_deletes_group(self):
        before = copy.deepcopy(self.ctrl.layout)
        result = self.ctrl.remove_rack_from_group(self.row.id, "r1")
        assert result.success
        assert result.group is None
        assert self.ctrl.get_rack_group_by_id(self.row.id) is None
        self.ctrl.undo()
        assert self.ctrl.layout == before

    def test_remove_not_member(self):
        assert not self.ctrl.remove_rack_from_group(self.row.id, "r4").success

    def test_lookup_for_rack(self):
        assert self.ctrl.get_rack_group_for_rack("r2") is self.ctrl.get_rack_group_by_id(self.bay.id)
        assert self.ctrl.get_rack_group_for_rack("r4") is None


class TestDeleteRackGroup:
    def test_delete_keeps_racks(self):
        ctrl = _controller()
        group = ctrl.create_rack_group("Row", ["r1", "r2"]).group
        assert ctrl.delete_rack_group(group.id).success
        assert ctrl.rack_groups == []
        assert ctrl.layout.rack_count == 4
        ctrl.undo()
        assert ctrl.rack_groups[0].id == group.id

    def test_delete_unknown(self):
        assert not _controller().delete_rack_group("nope").success


class TestGroupsAndRackEdits:
    def setup_method(self):
        self.ctrl = _controller()
        self.bay = self.ctrl.create_rack_group("Bay", ["r1", "r2"], RackGroupPreset.BAYED).group

    def test_resize_bayed_member_rejected(self):
        result = self.ctrl.update_rack("r1", height=24)
        assert result.error == "Bayed groups require same-height racks (found 24U, 42U)"

    def test_resize_row_member_allowed(self):
        self.ctrl.update_rack_group(self.bay.id, layout_preset=RackGroupPreset.ROW)
        assert self.ctrl.update_rack("r1", height=24).success

    def test_delete_rack_updates_groups(self):
        solo = self.ctrl.create_rack_group("Solo", ["r1"]).group
        before = copy.deepcopy(self.ctrl.layout)
        spy = MagicMock()
        self.ctrl.rack_groups_changed.connect(spy)
        assert self.ctrl.delete_rack("r1").success
        assert self.ctrl.get_rack_group_by_id(self.bay.id).rack_ids == ["r2"]
        assert self.ctrl.get_rack_group_by_id(solo.id) is None
        spy.assert_called_once()
        self.ctrl.undo()
        assert self.ctrl.layout == before
        assert [g.id for g in self.ctrl.rack_groups] == [self.bay.id, solo.id]
