"""
XTmate - Permission Definitions

Permissions are namespaced ``resource.action`` identifiers, grouped by
category and mapped to roles.

Categories:
    - ESTIMATES / ROOMS / LINE_ITEMS: Estimate building
    - PHOTOS / ANNOTATIONS / DOCUMENTS: Capture and documentation
    - ANALYTICS: Dashboards and exports
    - WORK_ORDERS: Field work
    - VENDORS: Vendor management and quote requests
    - QA: Review queue
    - SETTINGS: Organization configuration
    - PRELIMINARY_REPORTS: Preliminary damage reports
    - PLATFORM: XTmate internal operations

Inheritance:
    Each role declares its own grants in ROLE_GRANTS. A role's effective
    permission set is its declared grants plus the declared grants of every
    role with a strictly lower level. Roles that share a level (estimator and
    pm) do not inherit from each other. The effective sets are computed once
    at import and validated; a broken table stops the application from
    starting.
"""

import logging
from enum import Enum
from dataclasses import dataclass
from typing import Any, FrozenSet, Iterable, Mapping, Optional

from .roles import Role, ROLES, PLATFORM_ROLES, coerce_role

logger = logging.getLogger(__name__)


class RoleConfigurationError(RuntimeError):
    """The role-permission tables violate an invariant."""


class Permission(str, Enum):
    """
    All permissions in the system.

    Naming: resource.action (e.g., estimates.approve, settings.manage_users)
    """

    # =========================================================================
    # ESTIMATES
    # =========================================================================

    ESTIMATES_CREATE = "estimates.create"
    ESTIMATES_READ_OWN = "estimates.read_own"            # Estimates the caller created
    ESTIMATES_READ_ASSIGNED = "estimates.read_assigned"  # Estimates the caller is assigned to
    ESTIMATES_READ_TEAM = "estimates.read_team"          # Every estimate in the organization
    ESTIMATES_UPDATE_OWN = "estimates.update_own"
    ESTIMATES_UPDATE_ANY = "estimates.update_any"        # Organization-wide manage
    ESTIMATES_UPDATE_LIMITED = "estimates.update_limited"
    ESTIMATES_DELETE_OWN = "estimates.delete_own"
    ESTIMATES_DELETE_ANY = "estimates.delete_any"
    ESTIMATES_APPROVE = "estimates.approve"
    ESTIMATES_REJECT = "estimates.reject"
    ESTIMATES_EXPORT = "estimates.export"
    ESTIMATES_ASSIGN_TEAM = "estimates.assign_team"

    # =========================================================================
    # ROOMS
    # =========================================================================

    ROOMS_CREATE = "rooms.create"
    ROOMS_READ = "rooms.read"
    ROOMS_UPDATE = "rooms.update"
    ROOMS_DELETE = "rooms.delete"
    ROOMS_CAPTURE_LIDAR = "rooms.capture_lidar"

    # =========================================================================
    # LINE ITEMS
    # =========================================================================

    LINE_ITEMS_CREATE = "line_items.create"
    LINE_ITEMS_READ = "line_items.read"
    LINE_ITEMS_UPDATE = "line_items.update"
    LINE_ITEMS_DELETE = "line_items.delete"
    LINE_ITEMS_VERIFY = "line_items.verify"
    LINE_ITEMS_AI_GENERATE = "line_items.ai_generate"

    # =========================================================================
    # PHOTOS / ANNOTATIONS / DOCUMENTS
    # =========================================================================

    PHOTOS_UPLOAD = "photos.upload"
    PHOTOS_READ = "photos.read"
    PHOTOS_ANNOTATE = "photos.annotate"
    PHOTOS_DELETE = "photos.delete"

    ANNOTATIONS_CREATE = "annotations.create"
    ANNOTATIONS_READ = "annotations.read"
    ANNOTATIONS_UPDATE = "annotations.update"
    ANNOTATIONS_DELETE = "annotations.delete"

    DOCUMENTS_UPLOAD = "documents.upload"
    DOCUMENTS_READ = "documents.read"
    DOCUMENTS_DELETE = "documents.delete"

    # =========================================================================
    # ANALYTICS
    # =========================================================================

    ANALYTICS_VIEW_OWN = "analytics.view_own"
    ANALYTICS_VIEW_TEAM = "analytics.view_team"
    ANALYTICS_VIEW_REVENUE = "analytics.view_revenue"
    ANALYTICS_EXPORT = "analytics.export"

    # =========================================================================
    # WORK ORDERS
    # =========================================================================

    WORK_ORDERS_CREATE = "work_orders.create"
    WORK_ORDERS_READ_OWN = "work_orders.read_own"
    WORK_ORDERS_READ_TEAM = "work_orders.read_team"
    WORK_ORDERS_UPDATE_OWN = "work_orders.update_own"
    WORK_ORDERS_UPDATE_ANY = "work_orders.update_any"
    WORK_ORDERS_ASSIGN = "work_orders.assign"
    WORK_ORDERS_CLOCK = "work_orders.clock"
    WORK_ORDERS_COMPLETE = "work_orders.complete"

    # =========================================================================
    # VENDORS
    # =========================================================================

    VENDORS_VIEW = "vendors.view"
    VENDORS_CREATE = "vendors.create"
    VENDORS_UPDATE = "vendors.update"
    VENDORS_DELETE = "vendors.delete"
    VENDORS_INVITE = "vendors.invite"
    VENDORS_REQUEST_QUOTES = "vendors.request_quotes"

    # =========================================================================
    # QA
    # =========================================================================

    QA_VIEW_QUEUE = "qa.view_queue"
    QA_APPROVE = "qa.approve"
    QA_REJECT = "qa.reject"
    QA_VIEW_SCORECARDS = "qa.view_scorecards"
    QA_MANAGE_SLA = "qa.manage_sla"

    # =========================================================================
    # SETTINGS
    # =========================================================================

    SETTINGS_VIEW = "settings.view"
    SETTINGS_MANAGE_PRICE_LISTS = "settings.manage_price_lists"
    SETTINGS_MANAGE_CARRIERS = "settings.manage_carriers"
    SETTINGS_MANAGE_USERS = "settings.manage_users"
    SETTINGS_MANAGE_ROLES = "settings.manage_roles"
    SETTINGS_MANAGE_ORG = "settings.manage_org"
    SETTINGS_MANAGE_BILLING = "settings.manage_billing"
    SETTINGS_MANAGE_INTEGRATIONS = "settings.manage_integrations"

    # =========================================================================
    # PRELIMINARY REPORTS
    # =========================================================================

    PRELIMINARY_REPORTS_CREATE = "preliminary_reports.create"
    PRELIMINARY_REPORTS_READ = "preliminary_reports.read"
    PRELIMINARY_REPORTS_UPDATE = "preliminary_reports.update"
    PRELIMINARY_REPORTS_SUBMIT = "preliminary_reports.submit"
    PRELIMINARY_REPORTS_EXPORT_PDF = "preliminary_reports.export_pdf"

    # =========================================================================
    # PLATFORM (XTmate Internal Only)
    # =========================================================================

    PLATFORM_FULL_ACCESS = "platform.full_access"  # Bypasses tenant isolation
    PLATFORM_MANAGE_ORGANIZATIONS = "platform.manage_organizations"


class Category(str, Enum):
    """Permission categories. The value is the permission namespace."""
    ESTIMATES = "estimates"
    ROOMS = "rooms"
    LINE_ITEMS = "line_items"
    PHOTOS = "photos"
    ANNOTATIONS = "annotations"
    DOCUMENTS = "documents"
    ANALYTICS = "analytics"
    WORK_ORDERS = "work_orders"
    VENDORS = "vendors"
    QA = "qa"
    SETTINGS = "settings"
    PRELIMINARY_REPORTS = "preliminary_reports"
    PLATFORM = "platform"


@dataclass(frozen=True)
class PermissionInfo:
    """Complete information about a permission."""
    permission: Permission
    resource: str
    action: str
    category: Category


def _build_permission_info(permission: Permission) -> PermissionInfo:
    resource, _, action = permission.value.partition(".")
    return PermissionInfo(
        permission=permission,
        resource=resource,
        action=action,
        category=Category(resource),
    )


# =============================================================================
# PERMISSION REGISTRY
# =============================================================================

PERMISSIONS: dict[Permission, PermissionInfo] = {
    permission: _build_permission_info(permission) for permission in Permission
}


def coerce_permission(value: Any) -> Optional[Permission]:
    """Normalize a permission-like value. Returns None if it is not recognized."""
    if isinstance(value, Permission):
        return value
    if value is None:
        return None

    raw = value.value if hasattr(value, "value") else value
    if not isinstance(raw, str):
        return None
    try:
        return Permission(raw)
    except ValueError:
        logger.debug(f"Unrecognized permission value: {raw!r}")
        return None


def get_permission_info(permission: Any) -> Optional[PermissionInfo]:
    """Get information about a permission, or None if it is not recognized."""
    resolved = coerce_permission(permission)
    if resolved is None:
        return None
    return PERMISSIONS[resolved]


def get_permissions_in_category(category: Category) -> FrozenSet[Permission]:
    """All permissions in a category."""
    return frozenset(p for p, info in PERMISSIONS.items() if info.category == category)


PLATFORM_PERMISSIONS = get_permissions_in_category(Category.PLATFORM)


# =============================================================================
# DECLARED GRANTS (ROLE -> PERMISSION)
# =============================================================================

ROLE_GRANTS: dict[Role, FrozenSet[Permission]] = {
    # -------------------------------------------------------------------------
    # SUPER_ADMIN: Everything, in every organization
    # -------------------------------------------------------------------------
    Role.SUPER_ADMIN: frozenset(Permission),

    # -------------------------------------------------------------------------
    # ADMIN: Everything inside their own organization
    # -------------------------------------------------------------------------
    Role.ADMIN: frozenset(Permission) - PLATFORM_PERMISSIONS,

    # -------------------------------------------------------------------------
    # GENERAL_MANAGER: All read access, team management, analytics
    # -------------------------------------------------------------------------
    Role.GENERAL_MANAGER: frozenset({
        # Estimates
        Permission.ESTIMATES_READ_OWN,
        Permission.ESTIMATES_READ_ASSIGNED,
        Permission.ESTIMATES_READ_TEAM,
        Permission.ESTIMATES_UPDATE_OWN,
        Permission.ESTIMATES_UPDATE_ANY,
        Permission.ESTIMATES_UPDATE_LIMITED,
        Permission.ESTIMATES_APPROVE,
        Permission.ESTIMATES_REJECT,
        Permission.ESTIMATES_EXPORT,
        Permission.ESTIMATES_ASSIGN_TEAM,
        # Rooms / Line Items
        Permission.ROOMS_READ,
        Permission.LINE_ITEMS_READ,
        Permission.LINE_ITEMS_VERIFY,
        # Photos / Annotations / Documents
        Permission.PHOTOS_READ,
        Permission.ANNOTATIONS_READ,
        Permission.DOCUMENTS_UPLOAD,
        Permission.DOCUMENTS_READ,
        # Analytics
        Permission.ANALYTICS_VIEW_OWN,
        Permission.ANALYTICS_VIEW_TEAM,
        Permission.ANALYTICS_VIEW_REVENUE,
        Permission.ANALYTICS_EXPORT,
        # Work Orders
        Permission.WORK_ORDERS_CREATE,
        Permission.WORK_ORDERS_READ_OWN,
        Permission.WORK_ORDERS_READ_TEAM,
        Permission.WORK_ORDERS_UPDATE_OWN,
        Permission.WORK_ORDERS_UPDATE_ANY,
        Permission.WORK_ORDERS_ASSIGN,
        Permission.WORK_ORDERS_CLOCK,
        # Vendors
        Permission.VENDORS_VIEW,
        Permission.VENDORS_CREATE,
        Permission.VENDORS_UPDATE,
        Permission.VENDORS_INVITE,
        Permission.VENDORS_REQUEST_QUOTES,
        # QA
        Permission.QA_VIEW_QUEUE,
        Permission.QA_APPROVE,
        Permission.QA_REJECT,
        Permission.QA_VIEW_SCORECARDS,
        Permission.QA_MANAGE_SLA,
        # Settings (limited)
        Permission.SETTINGS_VIEW,
        Permission.SETTINGS_MANAGE_PRICE_LISTS,
        Permission.SETTINGS_MANAGE_CARRIERS,
        Permission.SETTINGS_MANAGE_INTEGRATIONS,
        # Preliminary Reports
        Permission.PRELIMINARY_REPORTS_READ,
        Permission.PRELIMINARY_REPORTS_EXPORT_PDF,
    }),

    # -------------------------------------------------------------------------
    # QA_MANAGER: Review queue, approve/reject, quality metrics
    # -------------------------------------------------------------------------
    Role.QA_MANAGER: frozenset({
        Permission.ESTIMATES_READ_OWN,
        Permission.ESTIMATES_READ_ASSIGNED,
        Permission.ESTIMATES_READ_TEAM,
        Permission.ESTIMATES_UPDATE_LIMITED,
        Permission.ESTIMATES_APPROVE,
        Permission.ESTIMATES_REJECT,
        Permission.ESTIMATES_ASSIGN_TEAM,
        Permission.ROOMS_READ,
        Permission.LINE_ITEMS_READ,
        Permission.LINE_ITEMS_VERIFY,
        Permission.PHOTOS_READ,
        Permission.ANNOTATIONS_READ,
        Permission.DOCUMENTS_READ,
        Permission.ANALYTICS_VIEW_OWN,
        Permission.ANALYTICS_VIEW_TEAM,
        Permission.WORK_ORDERS_READ_OWN,
        Permission.WORK_ORDERS_READ_TEAM,
        Permission.VENDORS_VIEW,
        Permission.QA_VIEW_QUEUE,
        Permission.QA_APPROVE,
        Permission.QA_REJECT,
        Permission.QA_VIEW_SCORECARDS,
        Permission.SETTINGS_VIEW,
        Permission.PRELIMINARY_REPORTS_READ,
    }),

    # -------------------------------------------------------------------------
    # ESTIMATOR: Create/edit estimates, line items, pricing
    # -------------------------------------------------------------------------
    Role.ESTIMATOR: frozenset({
        Permission.ESTIMATES_CREATE,
        Permission.ESTIMATES_READ_OWN,
        Permission.ESTIMATES_READ_ASSIGNED,
        Permission.ESTIMATES_UPDATE_OWN,
        Permission.ESTIMATES_UPDATE_LIMITED,
        Permission.ESTIMATES_DELETE_OWN,
        Permission.ESTIMATES_EXPORT,
        Permission.ROOMS_CREATE,
        Permission.ROOMS_READ,
        Permission.ROOMS_UPDATE,
        Permission.ROOMS_DELETE,
        Permission.LINE_ITEMS_CREATE,
        Permission.LINE_ITEMS_READ,
        Permission.LINE_ITEMS_UPDATE,
        Permission.LINE_ITEMS_DELETE,
        Permission.LINE_ITEMS_VERIFY,
        Permission.LINE_ITEMS_AI_GENERATE,
        Permission.PHOTOS_UPLOAD,
        Permission.PHOTOS_READ,
        Permission.PHOTOS_ANNOTATE,
        Permission.PHOTOS_DELETE,
        Permission.ANNOTATIONS_CREATE,
        Permission.ANNOTATIONS_READ,
        Permission.ANNOTATIONS_UPDATE,
        Permission.ANNOTATIONS_DELETE,
        Permission.DOCUMENTS_UPLOAD,
        Permission.DOCUMENTS_READ,
        Permission.DOCUMENTS_DELETE,
        Permission.ANALYTICS_VIEW_OWN,
        Permission.WORK_ORDERS_READ_OWN,
        Permission.VENDORS_VIEW,
        Permission.SETTINGS_VIEW,
        Permission.SETTINGS_MANAGE_PRICE_LISTS,
        Permission.PRELIMINARY_REPORTS_CREATE,
        Permission.PRELIMINARY_REPORTS_READ,
        Permission.PRELIMINARY_REPORTS_UPDATE,
        Permission.PRELIMINARY_REPORTS_SUBMIT,
        Permission.PRELIMINARY_REPORTS_EXPORT_PDF,
    }),

    # -------------------------------------------------------------------------
    # PM: Field work, capture, photos, vendors
    # -------------------------------------------------------------------------
    Role.PM: frozenset({
        Permission.ESTIMATES_CREATE,
        Permission.ESTIMATES_READ_OWN,
        Permission.ESTIMATES_READ_ASSIGNED,
        Permission.ESTIMATES_UPDATE_OWN,
        Permission.ESTIMATES_UPDATE_LIMITED,
        Permission.ESTIMATES_EXPORT,
        Permission.ROOMS_CREATE,
        Permission.ROOMS_READ,
        Permission.ROOMS_UPDATE,
        Permission.ROOMS_DELETE,
        Permission.ROOMS_CAPTURE_LIDAR,
        Permission.LINE_ITEMS_CREATE,
        Permission.LINE_ITEMS_READ,
        Permission.LINE_ITEMS_UPDATE,
        Permission.LINE_ITEMS_AI_GENERATE,
        Permission.PHOTOS_UPLOAD,
        Permission.PHOTOS_READ,
        Permission.PHOTOS_ANNOTATE,
        Permission.PHOTOS_DELETE,
        Permission.ANNOTATIONS_CREATE,
        Permission.ANNOTATIONS_READ,
        Permission.ANNOTATIONS_UPDATE,
        Permission.ANNOTATIONS_DELETE,
        Permission.DOCUMENTS_UPLOAD,
        Permission.DOCUMENTS_READ,
        Permission.ANALYTICS_VIEW_OWN,
        Permission.WORK_ORDERS_CREATE,
        Permission.WORK_ORDERS_READ_OWN,
        Permission.WORK_ORDERS_READ_TEAM,
        Permission.WORK_ORDERS_UPDATE_OWN,
        Permission.WORK_ORDERS_ASSIGN,
        Permission.WORK_ORDERS_CLOCK,
        Permission.WORK_ORDERS_COMPLETE,
        Permission.VENDORS_VIEW,
        Permission.VENDORS_CREATE,
        Permission.VENDORS_UPDATE,
        Permission.VENDORS_INVITE,
        Permission.VENDORS_REQUEST_QUOTES,
        Permission.SETTINGS_VIEW,
        Permission.PRELIMINARY_REPORTS_CREATE,
        Permission.PRELIMINARY_REPORTS_READ,
        Permission.PRELIMINARY_REPORTS_UPDATE,
        Permission.PRELIMINARY_REPORTS_SUBMIT,
        Permission.PRELIMINARY_REPORTS_EXPORT_PDF,
    }),

    # -------------------------------------------------------------------------
    # PROJECT_ADMIN: Documentation, invoicing, limited estimate edits
    # -------------------------------------------------------------------------
    Role.PROJECT_ADMIN: frozenset({
        Permission.ESTIMATES_READ_OWN,
        Permission.ESTIMATES_READ_ASSIGNED,
        Permission.ESTIMATES_UPDATE_LIMITED,
        Permission.ROOMS_READ,
        Permission.LINE_ITEMS_READ,
        Permission.PHOTOS_READ,
        Permission.ANNOTATIONS_READ,
        Permission.DOCUMENTS_UPLOAD,
        Permission.DOCUMENTS_READ,
        Permission.DOCUMENTS_DELETE,
        Permission.ANALYTICS_VIEW_OWN,
        Permission.WORK_ORDERS_READ_OWN,
        Permission.VENDORS_VIEW,
        Permission.SETTINGS_VIEW,
        Permission.PRELIMINARY_REPORTS_READ,
        Permission.PRELIMINARY_REPORTS_EXPORT_PDF,
    }),

    # -------------------------------------------------------------------------
    # FIELD_STAFF: Assigned work orders only, time tracking
    # -------------------------------------------------------------------------
    Role.FIELD_STAFF: frozenset({
        Permission.ESTIMATES_READ_ASSIGNED,
        Permission.ROOMS_READ,
        Permission.LINE_ITEMS_READ,
        Permission.PHOTOS_UPLOAD,
        Permission.PHOTOS_READ,
        Permission.ANNOTATIONS_READ,
        Permission.ANALYTICS_VIEW_OWN,
        Permission.WORK_ORDERS_READ_OWN,
        Permission.WORK_ORDERS_UPDATE_OWN,
        Permission.WORK_ORDERS_CLOCK,
        Permission.WORK_ORDERS_COMPLETE,
        Permission.SETTINGS_VIEW,
    }),

    # -------------------------------------------------------------------------
    # VIEWER: Read-only view of the organization's estimates
    # -------------------------------------------------------------------------
    Role.VIEWER: frozenset({
        Permission.ESTIMATES_READ_TEAM,
        Permission.ROOMS_READ,
        Permission.LINE_ITEMS_READ,
        Permission.PHOTOS_READ,
        Permission.ANNOTATIONS_READ,
        Permission.DOCUMENTS_READ,
        Permission.PRELIMINARY_REPORTS_READ,
        Permission.SETTINGS_VIEW,
    }),
}


# =============================================================================
# EFFECTIVE PERMISSIONS (declared grants + everything below)
# =============================================================================

def build_effective_permissions(
    grants: Mapping[Role, FrozenSet[Permission]],
) -> dict[Role, FrozenSet[Permission]]:
    """Apply level inheritance to a table of declared grants."""
    effective: dict[Role, FrozenSet[Permission]] = {}
    for role, info in ROLES.items():
        inherited = set(grants.get(role, frozenset()))
        for other, other_info in ROLES.items():
            if other_info.level < info.level:
                inherited |= grants.get(other, frozenset())
        effective[role] = frozenset(inherited)
    return effective


def validate_role_permissions(table: Mapping[Role, FrozenSet[Permission]]) -> None:
    """
    Check the invariants of an effective role-permission table.

    Raises:
        RoleConfigurationError: A role is unmapped, a lower-level role holds a
            permission a higher-level role lacks, or an organization role
            holds a platform permission.
    """
    missing = [role.value for role in Role if role not in table]
    if missing:
        raise RoleConfigurationError(f"Roles without a permission mapping: {', '.join(missing)}")

    for role, permissions in table.items():
        if role not in PLATFORM_ROLES and permissions & PLATFORM_PERMISSIONS:
            leaked = sorted(p.value for p in permissions & PLATFORM_PERMISSIONS)
            raise RoleConfigurationError(
                f"Organization role {role.value} holds platform permissions: {', '.join(leaked)}"
            )

    for lower, lower_info in ROLES.items():
        for higher, higher_info in ROLES.items():
            if lower_info.level >= higher_info.level:
                continue
            gap = table[lower] - table[higher]
            if gap:
                raise RoleConfigurationError(
                    f"{higher.value} (level {higher_info.level}) lacks permissions held by "
                    f"{lower.value} (level {lower_info.level}): "
                    f"{', '.join(sorted(p.value for p in gap))}"
                )


ROLE_PERMISSIONS: dict[Role, FrozenSet[Permission]] = build_effective_permissions(ROLE_GRANTS)
validate_role_permissions(ROLE_PERMISSIONS)


def get_permissions(role: Any) -> FrozenSet[Permission]:
    """Get the effective permissions for a role. Unknown roles get nothing."""
    resolved = coerce_role(role)
    if resolved is None:
        return frozenset()
    return ROLE_PERMISSIONS.get(resolved, frozenset())


def merge_permissions(*permission_sets: Iterable[Any]) -> FrozenSet[Permission]:
    """
    Union of several permission sources (e.g. role defaults plus a grant).

    Unrecognized entries are dropped rather than raising.
    """
    merged: set[Permission] = set()
    for permission_set in permission_sets:
        if not permission_set:
            continue
        for value in permission_set:
            permission = coerce_permission(value)
            if permission is not None:
                merged.add(permission)
    return frozenset(merged)


def apply_permission_overrides(role: Any, overrides: Optional[Mapping[str, Any]]) -> FrozenSet[Permission]:
    """
    Apply per-member custom overrides to the role defaults.

    Overrides come from organization_members.permissions and look like
    ``{"add": ["vendors.invite"], "remove": ["estimates.export"]}``.
    Removals are applied before additions. Platform permissions can never be
    granted through an override, and an unrecognized role gets nothing.
    """
    if coerce_role(role) is None:
        return frozenset()

    base = get_permissions(role)
    if not overrides:
        return base
    if not isinstance(overrides, Mapping):
        logger.warning(f"Ignoring malformed permission overrides: {type(overrides).__name__}")
        return base

    to_remove = overrides.get("remove") or []
    to_add = overrides.get("add") or []
    sequence_types = (list, tuple, set, frozenset)
    if not isinstance(to_remove, sequence_types) or not isinstance(to_add, sequence_types):
        logger.warning("Ignoring malformed permission overrides: expected lists")
        return base

    remaining = base - merge_permissions(to_remove)
    granted = merge_permissions(to_add) - PLATFORM_PERMISSIONS
    return merge_permissions(remaining, granted)
