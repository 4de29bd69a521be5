"""Tests for propose_move (leapfrog) and drop feedback.

Covers:
  - Single-step moves up/down, fine (0.5U) steps
  - Leapfrog past one or many blocking devices
  - Boundary vs. fully blocked outcomes
  - Minimal-jump property against a brute-force search
  - Stale index / unknown type handling
  - Tri-state drop feedback
"""

import random

import pytest

from rackplanner.core.occupancy import can_place_device, find_overlapping_devices
from rackplanner.core.placement import (
    can_move_down,
    can_move_up,
    get_drop_feedback,
    propose_move,
)
from rackplanner.core.units import height_to_internal_units, max_bottom_position, to_internal_units
from rackplanner.models.layout import DeviceType, Face, PlacedDevice, Rack, SlotPosition
from rackplanner.models.results import DropFeedback, MoveDirection, MoveReason


def _types() -> list[DeviceType]:
    return [
        DeviceType(slug="1u-server", u_height=1, is_full_depth=False),
        DeviceType(slug="2u-server", u_height=2, is_full_depth=False),
        DeviceType(slug="4u-storage", u_height=4, is_full_depth=False),
        DeviceType(slug="half-u-patch", u_height=0.5, is_full_depth=False),
        DeviceType(slug="1u-full", u_height=1),
    ]


def _pd(slug, u, face=Face.FRONT) -> PlacedDevice:
    return PlacedDevice(device_type=slug, position=to_internal_units(u), face=face)


def _rack(height, devices) -> Rack:
    return Rack(id="r", name="R", height=height, devices=devices)


UP = MoveDirection.UP
DOWN = MoveDirection.DOWN


class TestBasicMoves:
    def setup_method(self):
        self.types = _types()

    def test_move_up_one_u(self):
        rack = _rack(42, [_pd("1u-server", 10)])
        result = propose_move(rack, self.types, 0, UP)
        assert result.success
        assert result.new_position == to_internal_units(11)
        assert result.reason == MoveReason.MOVED

    def test_move_down_one_u(self):
        rack = _rack(42, [_pd("1u-server", 10)])
        result = propose_move(rack, self.types, 0, DOWN)
        assert result.new_position == to_internal_units(9)

    def test_int_direction_accepted(self):
        rack = _rack(42, [_pd("1u-server", 10)])
        assert propose_move(rack, self.types, 0, 1).new_position == to_internal_units(11)
        assert propose_move(rack, self.types, 0, -1).new_position == to_internal_units(9)

    def test_tall_device_steps_one_u(self):
        rack = _rack(42, [_pd("4u-storage", 10)])
        assert propose_move(rack, self.types, 0, UP).new_position == to_internal_units(11)
        assert propose_move(rack, self.types, 0, DOWN).new_position == to_internal_units(9)

    def test_fine_step(self):
        rack = _rack(42, [_pd("2u-server", 10)])
        result = propose_move(rack, self.types, 0, UP, step_u=0.5)
        assert result.new_position == to_internal_units(10.5)

    def test_half_u_device_fine_step(self):
        rack = _rack(42, [_pd("half-u-patch", 10)])
        result = propose_move(rack, self.types, 0, UP, step_u=0.5)
        assert result.new_position == to_internal_units(10.5)

    def test_rear_device_ignores_front_device(self):
        rack = _rack(42, [_pd("1u-server", 10, Face.REAR), _pd("1u-server", 11, Face.FRONT)])
        assert propose_move(rack, self.types, 0, UP).new_position == to_internal_units(11)


class TestLeapfrog:
    def setup_method(self):
        self.types = _types()

    def test_leapfrog_over_one_device(self):
        rack = _rack(42, [_pd("1u-server", 10), _pd("1u-server", 11)])
        result = propose_move(rack, self.types, 0, UP)
        assert result.success
        assert result.new_position == to_internal_units(12)
        assert result.reason == MoveReason.MOVED

    def test_leapfrog_over_several_devices(self):
        rack = _rack(42, [
            _pd("1u-server", 10), _pd("1u-server", 11), _pd("2u-server", 12), _pd("1u-server", 14),
        ])
        assert propose_move(rack, self.types, 0, UP).new_position == to_internal_units(15)

    def test_leapfrog_down(self):
        rack = _rack(42, [_pd("1u-server", 10), _pd("2u-server", 8)])
        assert propose_move(rack, self.types, 0, DOWN).new_position == to_internal_units(7)

    def test_leapfrog_tall_device_lands_just_above(self):
        rack = _rack(42, [_pd("2u-server", 10), _pd("1u-server", 12)])
        assert propose_move(rack, self.types, 0, UP).new_position == to_internal_units(13)

    def test_leapfrog_onto_half_u_gap(self):
        rack = _rack(42, [_pd("half-u-patch", 10), _pd("half-u-patch", 10.5), _pd("half-u-patch", 11.5)])
        # 0.5U device fits the free half-U at 11
        result = propose_move(rack, self.types, 0, UP)
        assert result.new_position == to_internal_units(11)

    def test_both_face_blocks_front_device(self):
        rack = _rack(42, [_pd("1u-server", 10), _pd("1u-full", 11, Face.BOTH)])
        assert propose_move(rack, self.types, 0, UP).new_position == to_internal_units(12)


class TestBoundaries:
    def setup_method(self):
        self.types = _types()

    def test_at_top(self):
        rack = _rack(42, [_pd("1u-server", 42)])
        result = propose_move(rack, self.types, 0, UP)
        assert not result.success
        assert result.new_position is None
        assert result.reason == MoveReason.AT_BOUNDARY

    def test_at_bottom(self):
        rack = _rack(42, [_pd("1u-server", 1)])
        assert propose_move(rack, self.types, 0, DOWN).reason == MoveReason.AT_BOUNDARY

    def test_two_u_at_top(self):
        rack = _rack(42, [_pd("2u-server", 41)])
        assert propose_move(rack, self.types, 0, UP).reason == MoveReason.AT_BOUNDARY

    def test_packed_rack_no_valid_position(self):
        rack = _rack(10, [_pd("1u-server", u) for u in range(5, 11)])
        result = propose_move(rack, self.types, 0, UP)
        assert not result.success
        assert result.new_position is None
        assert result.reason == MoveReason.NO_VALID_POSITION

    def test_blocked_until_top(self):
        rack = _rack(12, [_pd("2u-server", 9), _pd("2u-server", 11)])
        assert propose_move(rack, self.types, 0, UP).reason == MoveReason.NO_VALID_POSITION

    def test_blocked_until_bottom(self):
        rack = _rack(12, [_pd("1u-server", 3), _pd("2u-server", 1)])
        assert propose_move(rack, self.types, 0, DOWN).reason == MoveReason.NO_VALID_POSITION

    def test_can_move_helpers(self):
        rack = _rack(42, [_pd("1u-server", 42)])
        assert not can_move_up(rack, self.types, 0)
        assert can_move_down(rack, self.types, 0)


class TestMinimalJump:
    """The result is the smallest free position at or beyond start + step."""

    @staticmethod
    def _brute_force(rack, types, index, step):
        device = rack.devices[index]
        dt = next(t for t in types if t.slug == device.device_type)
        top = max_bottom_position(rack.height, dt.u_height)
        for p in range(device.position + step, top + 1):
            if can_place_device(rack, types, dt.u_height, p, index, device.face, device.slot_position):
                return p
        return None

    def test_random_layouts(self):
        rng = random.Random(1234)
        types = _types()
        slugs = ["1u-server", "2u-server", "4u-storage", "half-u-patch"]
        for _ in range(200):
            height = rng.randint(6, 24)
            devices: list[PlacedDevice] = []
            for _ in range(rng.randint(1, 10)):
                slug = rng.choice(slugs)
                u_height = next(t.u_height for t in types if t.slug == slug)
                face = rng.choice([Face.FRONT, Face.REAR, Face.BOTH])
                position = rng.randint(6, max_bottom_position(height, u_height))
                trial = PlacedDevice(device_type=slug, position=position, face=face)
                if not find_overlapping_devices(_rack(height, [*devices, trial]), types):
                    devices.append(trial)
            rack = _rack(height, devices)
            step = rng.choice([None, 0.5, 1, 2])
            step_units = 6 if step is None else to_internal_units(step)
            for index in range(len(devices)):
                device = devices[index]
                dt = next(t for t in types if t.slug == device.device_type)
                result = propose_move(rack, types, index, UP, step_u=step)
                if device.position >= max_bottom_position(height, dt.u_height):
                    assert result.reason == MoveReason.AT_BOUNDARY
                    continue
                expected = self._brute_force(rack, types, index, step_units)
                assert result.new_position == expected
                if expected is not None:
                    moved = _rack(height, [
                        *devices[:index],
                        PlacedDevice(device_type=device.device_type, position=expected, face=device.face),
                        *devices[index + 1:],
                    ])
                    assert find_overlapping_devices(moved, types) == []
                    assert expected + height_to_internal_units(dt.u_height) - 1 <= height * 6 + 5


class TestStepResolution:
    def setup_method(self):
        self.types = _types()
        self.rack = _rack(42, [_pd("1u-server", 10)])

    def test_sub_granularity_step_clamped_to_one_unit(self):
        result = propose_move(self.rack, self.types, 0, UP, step_u=0.01)
        assert result.new_position == to_internal_units(10) + 1

    def test_step_rounded_to_grid(self):
        result = propose_move(self.rack, self.types, 0, UP, step_u=0.55)
        assert result.new_position == to_internal_units(10) + 3

    @pytest.mark.parametrize("step", [0, -1, float("nan"), float("inf")])
    def test_invalid_step_rejected(self, step):
        result = propose_move(self.rack, self.types, 0, UP, step_u=step)
        assert result.reason == MoveReason.NO_VALID_POSITION


class TestErrorHandling:
    def setup_method(self):
        self.types = _types()

    def test_invalid_index(self):
        rack = _rack(42, [_pd("1u-server", 10)])
        result = propose_move(rack, self.types, 99, UP)
        assert not result.success
        assert result.new_position is None
        assert result.reason == MoveReason.NO_VALID_POSITION

    def test_negative_index(self):
        rack = _rack(42, [_pd("1u-server", 10)])
        assert propose_move(rack, self.types, -1, UP).reason == MoveReason.NO_VALID_POSITION

    def test_unknown_device_type(self):
        rack = _rack(42, [_pd("unknown-device", 10)])
        result = propose_move(rack, self.types, 0, UP)
        assert not result.success
        assert result.reason == MoveReason.NO_VALID_POSITION

    def test_nested_device_not_moved(self):
        """Child offsets live inside the container, not on the rack grid."""
        types = self.types + [DeviceType(slug="chassis", u_height=4)]
        chassis = PlacedDevice(id="c1", device_type="chassis", position=to_internal_units(10), face=Face.BOTH)
        blade = PlacedDevice(device_type="1u-server", position=0, container_id="c1", slot_id="bay1")
        rack = _rack(42, [chassis, blade])
        for direction in (UP, DOWN):
            result = propose_move(rack, types, 1, direction)
            assert result.reason == MoveReason.NO_VALID_POSITION
            assert result.new_position is None
        assert not can_move_up(rack, types, 1)


class TestDropFeedback:
    def setup_method(self):
        self.types = _types()
        self.rack = _rack(20, [_pd("2u-server", 10), _pd("1u-server", 15, Face.REAR)])

    def test_valid(self):
        assert get_drop_feedback(self.rack, self.types, 1, to_internal_units(5)) == DropFeedback.VALID

    def test_blocked(self):
        assert get_drop_feedback(self.rack, self.types, 1, to_internal_units(11)) == DropFeedback.BLOCKED

    def test_invalid_below_u1(self):
        assert get_drop_feedback(self.rack, self.types, 1, 0) == DropFeedback.INVALID

    def test_invalid_above_top(self):
        assert get_drop_feedback(self.rack, self.types, 2, to_internal_units(20)) == DropFeedback.INVALID

    def test_drop_on_self_is_valid(self):
        assert get_drop_feedback(
            self.rack, self.types, 2, to_internal_units(10), exclude_index=0,
        ) == DropFeedback.VALID

    def test_face_aware(self):
        assert get_drop_feedback(
            self.rack, self.types, 1, to_internal_units(15), face=Face.FRONT,
        ) == DropFeedback.VALID
        assert get_drop_feedback(
            self.rack, self.types, 1, to_internal_units(15), face=Face.BOTH,
        ) == DropFeedback.BLOCKED

    def test_slot_aware(self):
        rack = _rack(10, [PlacedDevice(
            device_type="1u-server", position=12, face=Face.FRONT, slot_position=SlotPosition.LEFT,
        )])
        assert get_drop_feedback(rack, self.types, 1, 12, slot=SlotPosition.RIGHT) == DropFeedback.VALID
        assert get_drop_feedback(rack, self.types, 1, 12, slot=SlotPosition.LEFT) == DropFeedback.BLOCKED
