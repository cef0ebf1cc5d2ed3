"""
XTmate - Role Definitions

9 roles ordered by a numeric authority level (higher = more privileged):

    PLATFORM - XTmate internal team
    └── super_admin        (1000) - Cross-organization support access

    ORGANIZATION - Restoration company members
    ├── admin              (100)  - Billing, API keys, user management
    ├── general_manager    (90)   - All data, team metrics, analytics
    ├── qa_manager         (80)   - Review queue, approve/reject estimates
    ├── estimator          (70)   - Estimates, line items, price lists
    ├── pm                 (70)   - Field work, capture, vendor dispatch
    ├── project_admin      (60)   - Documentation, limited estimate edits
    ├── field_staff        (50)   - Assigned work orders, time tracking
    └── viewer             (10)   - Read-only organization access

Roles are fixed at build time. Anything outside this set is treated as the
lowest possible level so every check fails closed.
"""

import logging
from enum import Enum
from dataclasses import dataclass
from typing import Any, FrozenSet, Optional

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """
    All 9 roles in the system.

    Naming convention: UPPER_SNAKE_CASE for enum, lower_snake_case for value.
    The value is what organization_members.role stores.
    """

    # =========================================================================
    # PLATFORM (XTmate Internal)
    # =========================================================================

    SUPER_ADMIN = "super_admin"
    """
    Cross-organization access for platform support.
    Who: XTmate founders, support engineers
    """

    # =========================================================================
    # ORGANIZATION
    # =========================================================================

    ADMIN = "admin"
    """Full organization access including billing, API keys and users."""

    GENERAL_MANAGER = "general_manager"
    """All data read access, team metrics, analytics."""

    QA_MANAGER = "qa_manager"
    """Review queue management, approve/reject estimates, SLA tracking."""

    ESTIMATOR = "estimator"
    """Create/edit estimates, line items, price lists, export to ESX."""

    PM = "pm"
    """Field work, LiDAR capture, photos, damage annotation, vendor dispatch."""

    PROJECT_ADMIN = "project_admin"
    """Documentation, invoicing support, limited estimate edits."""

    FIELD_STAFF = "field_staff"
    """View assigned work orders only, time tracking, task completion."""

    VIEWER = "viewer"
    """Read-only access to the organization's estimates."""


LOWEST_ROLE_LEVEL = 0
"""Level assigned to any unrecognized role. Below every real role."""


@dataclass(frozen=True)
class RoleInfo:
    """Complete information about a role."""
    role: Role
    label: str
    description: str
    level: int
    is_platform: bool  # Is this an XTmate internal role?


# =============================================================================
# ROLE REGISTRY
# =============================================================================

ROLES: dict[Role, RoleInfo] = {
    Role.SUPER_ADMIN: RoleInfo(
        role=Role.SUPER_ADMIN,
        label="Super Admin",
        description="Platform support access across every organization",
        level=1000,
        is_platform=True,
    ),
    Role.ADMIN: RoleInfo(
        role=Role.ADMIN,
        label="Admin",
        description="Full organization access including billing, API keys, and user management",
        level=100,
        is_platform=False,
    ),
    Role.GENERAL_MANAGER: RoleInfo(
        role=Role.GENERAL_MANAGER,
        label="General Manager",
        description="All data read access, team metrics, analytics (no backend changes)",
        level=90,
        is_platform=False,
    ),
    Role.QA_MANAGER: RoleInfo(
        role=Role.QA_MANAGER,
        label="QA Manager",
        description="Review queue management, approve/reject estimates, SLA tracking",
        level=80,
        is_platform=False,
    ),
    Role.ESTIMATOR: RoleInfo(
        role=Role.ESTIMATOR,
        label="Estimator",
        description="Create/edit estimates, line items, price lists, export to ESX",
        level=70,
        is_platform=False,
    ),
    Role.PM: RoleInfo(
        role=Role.PM,
        label="Project Manager",
        description="Field work, LiDAR capture, photos, damage annotation, vendor dispatch",
        level=70,
        is_platform=False,
    ),
    Role.PROJECT_ADMIN: RoleInfo(
        role=Role.PROJECT_ADMIN,
        label="Project Administrator",
        description="Documentation, invoicing support, limited estimate edits",
        level=60,
        is_platform=False,
    ),
    Role.FIELD_STAFF: RoleInfo(
        role=Role.FIELD_STAFF,
        label="Field Staff",
        description="View assigned work orders only, time tracking, task completion",
        level=50,
        is_platform=False,
    ),
    Role.VIEWER: RoleInfo(
        role=Role.VIEWER,
        label="Viewer",
        description="Read-only access to organization estimates",
        level=10,
        is_platform=False,
    ),
}


def coerce_role(value: Any) -> Optional[Role]:
    """
    Normalize a role-like value to a Role.

    Accepts Role members, their string values, or anything with a ``value``
    attribute. Returns None for anything unrecognized instead of raising.
    """
    if isinstance(value, Role):
        return value
    if value is None:
        return None

    raw = value.value if hasattr(value, "value") else value
    if not isinstance(raw, str):
        return None
    try:
        return Role(raw.strip().lower())
    except ValueError:
        logger.debug(f"Unrecognized role value: {raw!r}")
        return None


def get_role_info(role: Any) -> Optional[RoleInfo]:
    """Get information about a role, or None if it is not recognized."""
    resolved = coerce_role(role)
    if resolved is None:
        return None
    return ROLES[resolved]


def get_role_level(role: Any) -> int:
    """Get the authority level of a role. Unknown roles get LOWEST_ROLE_LEVEL."""
    info = get_role_info(role)
    if info is None:
        return LOWEST_ROLE_LEVEL
    return info.level


def get_roles_at_or_below(level: int) -> FrozenSet[Role]:
    """Get every role whose level is at or below the given level."""
    return frozenset(role for role, info in ROLES.items() if info.level <= level)


def get_roles_by_level() -> list[RoleInfo]:
    """All roles sorted from most to least privileged (for role pickers)."""
    return sorted(ROLES.values(), key=lambda info: info.level, reverse=True)


# =============================================================================
# ROLE SETS (for quick checks)
# =============================================================================

PLATFORM_ROLES = frozenset(role for role, info in ROLES.items() if info.is_platform)

ORGANIZATION_ROLES = frozenset(role for role, info in ROLES.items() if not info.is_platform)
