"""Unit conversion module: single conversion point between U and internal units.

CRITICAL: All position conversions MUST go through this module, including
the legacy position migration.

Internal (core) units:
    Position : integer sub-units, UNITS_PER_U per U, bottom of device
               (U1 bottom = UNITS_PER_U)

UI units:
    Position : U (rack units, 1-based, may be fractional: 10.5 = U10½)
    Height   : U (multiples of 0.5)
"""

import math
from typing import NewType

from rackplanner.constants import UNITS_PER_U

# Type aliases, visible in IDE for unit-error detection
InternalUnits = NewType('InternalUnits', int)
RackUnits = NewType('RackUnits', float)


# ---------------------------------------------------------------------------
# Position conversions
# ---------------------------------------------------------------------------

def to_internal_units(u: float) -> InternalUnits:
    """UI (U) → Core (internal units), rounded to the nearest sub-unit."""
    # Half sub-units round up (floor(x + 0.5)), not to even
    return InternalUnits(math.floor(u * UNITS_PER_U + 0.5))


def from_internal_units(units: int) -> RackUnits:
    """Core (internal units) → UI (U)."""
    return RackUnits(units / UNITS_PER_U)


# ---------------------------------------------------------------------------
# Height conversions
# ---------------------------------------------------------------------------

def height_to_internal_units(u_height: float) -> InternalUnits:
    """Device height (U) → number of internal cells it spans."""
    return InternalUnits(math.floor(u_height * UNITS_PER_U + 0.5))


def max_valid_top(rack_height: int) -> InternalUnits:
    """Highest internal cell inside a rack of *rack_height* U (top of U<height>)."""
    return InternalUnits(rack_height * UNITS_PER_U + (UNITS_PER_U - 1))


def max_bottom_position(rack_height: int, u_height: float) -> InternalUnits:
    """Highest bottom position at which a device of *u_height* still fits."""
    return InternalUnits(max_valid_top(rack_height) - height_to_internal_units(u_height) + 1)


def is_within_rack(position: int, u_height: float, rack_height: int) -> bool:
    """True if a device at *position* lies entirely within U1..U<rack_height>."""
    if position < UNITS_PER_U:
        return False
    return position + height_to_internal_units(u_height) - 1 <= max_valid_top(rack_height)
