"""Schema and legacy migration for persisted layouts.

Runs once when untrusted data (session snapshot or imported file) enters
the live model. Two independent steps:

1. Structural: singular ``rack`` object → one-element ``racks`` list.
2. Positional: layouts older than POSITION_MIGRATION_VERSION stored device
   positions in U; they are converted to internal units. Container
   children keep their 0-indexed slot positions untouched.

Migration never raises to the caller: failures are logged and reported
as None so the load path can fall back to an empty layout.
"""

from __future__ import annotations

import copy
import logging
import re
from datetime import datetime, timezone
from typing import Any

from rackplanner.constants import (
    CURRENT_VERSION,
    DEFAULT_VERSION,
    POSITION_MIGRATION_VERSION,
)
from rackplanner.core.serializers import dict_to_layout, layout_to_dict
from rackplanner.core.units import to_internal_units
from rackplanner.models.layout import Layout
from rackplanner.models.results import SessionLoadResult

logger = logging.getLogger(__name__)

_LEADING_INT = re.compile(r"\s*(\d+)")


# =====================================================================
# Version comparison
# =====================================================================


def _version_parts(version: str) -> list[int]:
    core = re.split(r"[-+]", version.strip(), maxsplit=1)[0]
    parts = []
    for piece in core.split("."):
        m = _LEADING_INT.match(piece)
        parts.append(int(m.group(1)) if m else 0)
    return parts


def compare_versions(a: str, b: str) -> int:
    """Compare two semantic versions, ignoring pre-release/build suffixes.

    ``"0.7.0-dev"`` equals ``"0.7.0"``; missing parts count as 0
    (``"1.2"`` equals ``"1.2.0"``); non-numeric parts count as 0.

    Returns:
        -1 if a < b, 0 if equal, 1 if a > b.
    """
    parts_a = _version_parts(a)
    parts_b = _version_parts(b)
    for i in range(max(len(parts_a), len(parts_b))):
        pa = parts_a[i] if i < len(parts_a) else 0
        pb = parts_b[i] if i < len(parts_b) else 0
        if pa < pb:
            return -1
        if pa > pb:
            return 1
    return 0


# =====================================================================
# Layout migration
# =====================================================================


def _is_container_child(device: dict) -> bool:
    return device.get("container_id") is not None or device.get("parent_device") is not None


def migrate_layout_dict(raw: dict) -> dict:
    """Apply structural and positional migration to a raw layout dict.

    Works on a deep copy; *raw* is not modified. A layout that needed
    the positional step is stamped with CURRENT_VERSION so that running
    the migration again is a no-op.

    Args:
        raw: JSON-parsed layout dict.

    Returns:
        Migrated dict.
    """
    data = copy.deepcopy(raw)

    # Structural: rack → racks
    if "rack" in data and "racks" not in data:
        if isinstance(data["rack"], dict):
            data["racks"] = [data.pop("rack")]

    # Positional: U values → internal units
    version = data.get("version") or DEFAULT_VERSION
    if compare_versions(str(version), POSITION_MIGRATION_VERSION) < 0:
        migrated = 0
        for rack in data.get("racks") or []:
            for device in rack.get("devices") or []:
                if _is_container_child(device):
                    continue
                position = device.get("position")
                if isinstance(position, (int, float)) and not isinstance(position, bool):
                    device["position"] = to_internal_units(position)
                    migrated += 1
        data["version"] = CURRENT_VERSION
        logger.info("Migrated %d device position(s) from layout version %s", migrated, version)

    return data


def migrate_layout(raw: Any) -> Layout | None:
    """Migrate and deserialize persisted layout data.

    Args:
        raw: JSON-parsed object (expected to be a dict).

    Returns:
        Layout, or None if the data is malformed (the error is logged).
    """
    if not isinstance(raw, dict):
        logger.warning("Layout data is %s, expected an object", type(raw).__name__)
        return None
    try:
        return dict_to_layout(migrate_layout_dict(raw))
    except Exception:
        logger.exception("Layout migration failed")
        return None


# =====================================================================
# Session wrapper
# =====================================================================


def wrap_session(layout: Layout, saved_at: str | None = None) -> dict:
    """Build the ``{"layout", "savedAt"}`` session blob for autosave."""
    if saved_at is None:
        saved_at = datetime.now(timezone.utc).isoformat()
    return {"layout": layout_to_dict(layout), "savedAt": saved_at}


def unwrap_session(obj: Any) -> SessionLoadResult | None:
    """Load a session blob, accepting both the wrapped and legacy bare form.

    Args:
        obj: JSON-parsed session object.

    Returns:
        SessionLoadResult, or None if the blob or its layout is invalid.
    """
    if not isinstance(obj, dict):
        logger.warning("Invalid session data format, expected an object")
        return None

    if "layout" in obj and isinstance(obj.get("savedAt"), str):
        layout_data = obj["layout"]
        if not isinstance(layout_data, dict):
            logger.warning("Invalid layout data in session wrapper")
            return None
        layout = migrate_layout(layout_data)
        if layout is None:
            return None
        return SessionLoadResult(layout=layout, saved_at=obj["savedAt"])

    layout = migrate_layout(obj)
    if layout is None:
        return None
    return SessionLoadResult(layout=layout, saved_at=None, is_legacy=True)


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_server_newer(local_timestamp: str | None, server_timestamp: str) -> bool:
    """Decide whether the server copy should replace the local session.

    Legacy local data (no timestamp) and unparseable timestamps defer to
    the server.
    """
    if not local_timestamp:
        return True
    try:
        local = _parse_timestamp(local_timestamp)
        server = _parse_timestamp(server_timestamp)
    except (ValueError, AttributeError):
        logger.debug(
            "Invalid timestamp comparison: local=%s server=%s",
            local_timestamp, server_timestamp,
        )
        return True
    return server > local
