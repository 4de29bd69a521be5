"""Application-wide constants.

Positions are stored in internal units (see rackplanner.core.units);
heights in the data model stay in rack units (U).
"""

APP_NAME = "Rack Planner"
APP_VERSION = "1.1.0"

# Internal position grid: 6 sub-units per U (LCM of 2 and 3 → ½U and ⅓U)
UNITS_PER_U = 6

# Layout schema
CURRENT_VERSION = "1.1.0"
POSITION_MIGRATION_VERSION = "0.7.0"  # Older layouts store positions in U
DEFAULT_VERSION = "0.0.0"
DEFAULT_LAYOUT_NAME = "Racky McRackface"

# Racks
MAX_RACKS = 10
MIN_RACK_HEIGHT = 1
MAX_RACK_HEIGHT = 100
DEFAULT_RACK_HEIGHT = 42
DEFAULT_RACK_WIDTH = 19  # inches
ALLOWED_RACK_WIDTHS = [10, 19, 21, 23]
COMMON_RACK_HEIGHTS = [12, 18, 24, 42]

# Devices
MIN_DEVICE_HEIGHT = 0.5
MAX_DEVICE_HEIGHT = 42
DEVICE_HEIGHT_STEP = 0.5

# History
MAX_HISTORY_DEPTH = 50

# Category display colours (muted Dracula palette)
CATEGORY_COLOURS = {
    "server": "#4A7A8A",
    "network": "#7B6BA8",
    "storage": "#3D7A4A",
    "power": "#A84A4A",
    "kvm": "#A87A4A",
    "av-media": "#A85A7A",
    "cooling": "#8A8A4A",
    # Passive equipment
    "shelf": "#6272A4",
    "blank": "#44475A",
    "cable-management": "#6272A4",
    "patch-panel": "#6272A4",
    "other": "#6272A4",
}
