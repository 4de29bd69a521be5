"""Tests for layout schema migration and session wrapping."""

import copy

import pytest

from rackplanner.constants import CURRENT_VERSION
from rackplanner.core.migration import (
    compare_versions,
    is_server_newer,
    migrate_layout,
    migrate_layout_dict,
    unwrap_session,
    wrap_session,
)
from rackplanner.models.layout import Face
from rackplanner.core.templates import create_layout


def _legacy(version="0.6.0"):
    return {
        "version": version,
        "name": "Legacy",
        "rack": {
            "id": "rack-1",
            "name": "Old",
            "height": 42,
            "devices": [
                {"id": "a", "device_type": "1u-server", "position": 10, "face": "front"},
                {"id": "b", "device_type": "chassis", "position": 20.5, "face": "both"},
                {"id": "c", "device_type": "blade", "position": 1, "parent_device": "b", "device_bay": "bay-1"},
                {"id": "d", "device_type": "blade", "position": 0, "container_id": "b", "slot_id": "bay-2"},
            ],
        },
        "device_types": [
            {"slug": "1u-server", "u_height": 1},
            {"slug": "chassis", "u_height": 4},
            {"slug": "blade", "u_height": 1},
        ],
    }


class TestCompareVersions:
    @pytest.mark.parametrize("a, b, expected", [
        ("0.6.0", "0.7.0", -1),
        ("0.7.0", "0.7.0", 0),
        ("1.0.0", "0.7.0", 1),
        ("0.7.0-dev", "0.7.0", 0),
        ("0.7.0+build.5", "0.7.0", 0),
        ("1.2", "1.2.0", 0),
        ("0.10.0", "0.9.0", 1),
        ("abc", "0.0.0", 0),
    ])
    def test_compare(self, a, b, expected):
        assert compare_versions(a, b) == expected


class TestStructuralMigration:
    def test_rack_becomes_racks(self):
        data = migrate_layout_dict(_legacy())
        assert "rack" not in data
        assert [r["id"] for r in data["racks"]] == ["rack-1"]

    def test_existing_racks_untouched(self):
        raw = {"version": CURRENT_VERSION, "racks": [{"id": "x"}], "rack": {"id": "y"}}
        data = migrate_layout_dict(raw)
        assert [r["id"] for r in data["racks"]] == ["x"]

    def test_non_dict_rack_ignored(self):
        data = migrate_layout_dict({"version": CURRENT_VERSION, "rack": "garbage"})
        assert "racks" not in data

    def test_input_not_mutated(self):
        raw = _legacy()
        snapshot = copy.deepcopy(raw)
        migrate_layout_dict(raw)
        assert raw == snapshot


class TestPositionMigration:
    def test_positions_converted(self):
        devices = migrate_layout_dict(_legacy())["racks"][0]["devices"]
        assert devices[0]["position"] == 60
        assert devices[1]["position"] == 123

    def test_container_children_untouched(self):
        devices = migrate_layout_dict(_legacy())["racks"][0]["devices"]
        assert devices[2]["position"] == 1
        assert devices[3]["position"] == 0

    def test_missing_version_treated_as_legacy(self):
        raw = _legacy()
        del raw["version"]
        assert migrate_layout_dict(raw)["racks"][0]["devices"][0]["position"] == 60

    def test_current_version_untouched(self):
        raw = _legacy(version="0.7.0")
        assert migrate_layout_dict(raw)["racks"][0]["devices"][0]["position"] == 10

    def test_prerelease_of_threshold_not_migrated(self):
        raw = _legacy(version="0.7.0-beta")
        assert migrate_layout_dict(raw)["racks"][0]["devices"][0]["position"] == 10

    def test_idempotent(self):
        once = migrate_layout_dict(_legacy())
        twice = migrate_layout_dict(once)
        assert once == twice
        assert once["version"] == CURRENT_VERSION


class TestMigrateLayout:
    def test_legacy_layout_loads(self):
        layout = migrate_layout(_legacy())
        assert layout is not None
        assert layout.name == "Legacy"
        rack = layout.racks[0]
        assert [d.position for d in rack.devices] == [60, 123, 1, 0]
        assert rack.devices[1].face == Face.BOTH
        assert rack.devices[2].container_id == "b"
        assert rack.devices[2].slot_id == "bay-1"

    @pytest.mark.parametrize("raw", [None, [], "layout", 42])
    def test_non_dict_rejected(self, raw):
        assert migrate_layout(raw) is None

    def test_malformed_position(self):
        raw = {"version": CURRENT_VERSION, "racks": [{"devices": [{"position": "top"}]}]}
        assert migrate_layout(raw) is None

    def test_malformed_section(self):
        assert migrate_layout({"version": CURRENT_VERSION, "racks": [42]}) is None

    def test_unknown_enum_falls_back(self):
        raw = {
            "version": CURRENT_VERSION,
            "racks": [{"devices": [{"device_type": "x", "position": 60, "face": "sideways"}]}],
        }
        layout = migrate_layout(raw)
        assert layout.racks[0].devices[0].face == Face.FRONT


class TestSession:
    def test_wrap_unwrap(self):
        layout = create_layout("Saved")
        blob = wrap_session(layout, "2024-05-01T10:00:00Z")
        result = unwrap_session(blob)
        assert result.saved_at == "2024-05-01T10:00:00Z"
        assert not result.is_legacy
        assert result.layout == layout

    def test_wrap_stamps_time(self):
        blob = wrap_session(create_layout())
        assert isinstance(blob["savedAt"], str)

    def test_bare_layout_is_legacy(self):
        result = unwrap_session(_legacy())
        assert result.is_legacy
        assert result.saved_at is None
        assert result.layout.racks[0].devices[0].position == 60

    def test_invalid_wrapper(self):
        assert unwrap_session({"layout": "nope", "savedAt": "2024-05-01T10:00:00Z"}) is None
        assert unwrap_session("nope") is None


class TestServerNewer:
    def test_no_local_timestamp(self):
        assert is_server_newer(None, "2024-01-01T00:00:00Z")
        assert is_server_newer("", "2024-01-01T00:00:00Z")

    def test_compare(self):
        assert is_server_newer("2024-01-01T00:00:00Z", "2024-01-02T00:00:00Z")
        assert not is_server_newer("2024-01-02T00:00:00Z", "2024-01-01T00:00:00Z")
        assert not is_server_newer("2024-01-01T00:00:00Z", "2024-01-01T00:00:00Z")

    def test_offsets(self):
        assert not is_server_newer("2024-01-01T12:00:00+02:00", "2024-01-01T10:00:00Z")

    def test_invalid_timestamp_prefers_server(self):
        assert is_server_newer("not a date", "2024-01-01T00:00:00Z")
