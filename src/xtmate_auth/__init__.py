"""
XTmate - Authorization Core

Role-based access control for the multi-tenant estimating platform.

Hierarchy (higher level inherits every lower level's permissions):
    1000 - super_admin: Platform support, crosses organization boundaries
     100 - admin: Organization owner/administrator
      90 - general_manager: Runs operations, approves work
      80 - qa_manager: Reviews and approves estimates
      70 - estimator / pm: Build estimates / capture site data
      60 - project_admin: Scheduling and coordination
      50 - field_staff: Assigned field work only
      10 - viewer: Read-only

Estimate access is resolved per estimate (none, read_only, limited_update,
full) from the caller's relationship to it and its workflow status.

Usage:
    from xtmate_auth import Permission, require_permission, require_estimate_access

    @router.post("/estimates")
    async def create_estimate(ctx: AuthContext = Depends(require_permission(Permission.ESTIMATES_CREATE))):
        ...
"""

from .roles import Role, RoleInfo, ROLES, coerce_role, get_role_info, get_role_level
from .permissions import (
    Category,
    Permission,
    PermissionInfo,
    PERMISSIONS,
    ROLE_PERMISSIONS,
    RoleConfigurationError,
    apply_permission_overrides,
    get_permission_info,
    get_permissions,
    merge_permissions,
)
from .access import (
    can_access_resource,
    has_all_permissions,
    has_any_permission,
    has_minimum_role,
    has_permission,
)
from .context import AuthContext, Identity, MembershipRecord
from .estimate_access import (
    EstimateAccessLevel,
    EstimateAction,
    EstimateRecord,
    LimitedUpdateField,
    WorkflowStatus,
    can_access_estimate,
    can_perform_limited_update,
    check_estimate_update,
    get_estimate_access_level,
)
from .errors import AuthFailureReason, AuthorizationError, DependencyUnavailable, Forbidden, Unauthenticated
from .authorize import EstimateAccess, RequestAuthorizer, ensure_permissions
from .dependencies import (
    get_auth_context,
    get_request_authorizer,
    install_authorization,
    optional_auth,
    require_all_permissions,
    require_any_permission,
    require_auth,
    require_estimate_access,
    require_minimum_role,
    require_permission,
    with_permission,
)

__all__ = [
    # Roles
    "Role",
    "RoleInfo",
    "ROLES",
    "coerce_role",
    "get_role_info",
    "get_role_level",

    # Permissions
    "Category",
    "Permission",
    "PermissionInfo",
    "PERMISSIONS",
    "ROLE_PERMISSIONS",
    "RoleConfigurationError",
    "apply_permission_overrides",
    "get_permission_info",
    "get_permissions",
    "merge_permissions",

    # Access evaluation
    "can_access_resource",
    "has_all_permissions",
    "has_any_permission",
    "has_minimum_role",
    "has_permission",

    # Context
    "AuthContext",
    "Identity",
    "MembershipRecord",

    # Estimate access
    "EstimateAccessLevel",
    "EstimateAction",
    "EstimateRecord",
    "LimitedUpdateField",
    "WorkflowStatus",
    "can_access_estimate",
    "can_perform_limited_update",
    "check_estimate_update",
    "get_estimate_access_level",

    # Errors
    "AuthFailureReason",
    "AuthorizationError",
    "DependencyUnavailable",
    "Forbidden",
    "Unauthenticated",

    # Enforcement
    "EstimateAccess",
    "RequestAuthorizer",
    "ensure_permissions",

    # Dependencies
    "get_auth_context",
    "get_request_authorizer",
    "install_authorization",
    "optional_auth",
    "require_all_permissions",
    "require_any_permission",
    "require_auth",
    "require_estimate_access",
    "require_minimum_role",
    "require_permission",
    "with_permission",
]
