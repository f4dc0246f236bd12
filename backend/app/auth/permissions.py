"""Capability vocabulary for ministry-scoped RBAC.

Design:
  - A CapabilitySet is eight independent booleans, stored once per
    (user, ministry) pair in `user_ministry_permissions`.
  - No capability implies another; each route checks exactly one.
  - Admins and super admins bypass capability checks entirely
    (see app.auth.ministry_access).

Logical actions map onto capabilities:
  read   → can_view_actions        team read    → can_view_team
  create → can_create_actions      team write   → can_manage_team
  update → can_edit_actions        statistics   → can_view_reports
  delete → can_delete_actions      CSV export   → can_export_data
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from typing import Any


class Capability(str, enum.Enum):
    VIEW_ACTIONS = "can_view_actions"
    CREATE_ACTIONS = "can_create_actions"
    EDIT_ACTIONS = "can_edit_actions"
    DELETE_ACTIONS = "can_delete_actions"
    VIEW_TEAM = "can_view_team"
    MANAGE_TEAM = "can_manage_team"
    VIEW_REPORTS = "can_view_reports"
    EXPORT_DATA = "can_export_data"


CAPABILITY_FIELDS: tuple[str, ...] = tuple(c.value for c in Capability)


# ── Action → capability ─────────────────────────────────────

ACTION_CAPABILITIES: dict[str, Capability] = {
    "read": Capability.VIEW_ACTIONS,
    "create": Capability.CREATE_ACTIONS,
    "write": Capability.CREATE_ACTIONS,
    "update": Capability.EDIT_ACTIONS,
    "delete": Capability.DELETE_ACTIONS,
}


def capability_for(action: str) -> Capability:
    """Return the capability gating a logical action on actions."""
    try:
        return ACTION_CAPABILITIES[action]
    except KeyError:
        raise ValueError(f"Unknown action: {action!r}") from None


def parse_capability(name: str) -> Capability:
    """Accept `can_edit_actions` or the short `edit_actions` form."""
    candidate = name.strip().lower()
    if not candidate.startswith("can_"):
        candidate = f"can_{candidate}"
    return Capability(candidate)


# ── CapabilitySet helpers ───────────────────────────────────

def empty_capabilities() -> dict[str, bool]:
    return {field: False for field in CAPABILITY_FIELDS}


def normalize_capabilities(raw: Mapping[str, Any] | None) -> dict[str, bool]:
    """Coerce an arbitrary mapping into a full CapabilitySet.

    Unknown keys are ignored; missing keys read as False.
    """
    caps = empty_capabilities()
    if raw:
        for field in CAPABILITY_FIELDS:
            if field in raw:
                caps[field] = bool(raw[field])
    return caps


def capabilities_of(row: Any) -> dict[str, bool]:
    """Extract the CapabilitySet from a permission row (or None)."""
    if row is None:
        return empty_capabilities()
    return {field: bool(getattr(row, field)) for field in CAPABILITY_FIELDS}

