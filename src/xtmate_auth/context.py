"""
XTmate - Authentication Context

AuthContext is the object passed through protected routes. It holds who is
making the request, which organization they are acting in, and what they can
do there. It is built once per request and never mutated afterwards.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, FrozenSet

from .access import has_minimum_role
from .permissions import Permission, apply_permission_overrides, coerce_permission
from .roles import Role, coerce_role, get_role_level

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """
    Caller identity as resolved by the identity provider.

    ``organization_id`` is the organization selected in the session, if any.
    """
    user_id: str
    organization_id: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None


@dataclass(frozen=True)
class MembershipRecord:
    """An organization_members row, as the persistence layer hands it over."""
    user_id: str
    organization_id: str
    role: str
    status: str = "active"
    display_name: Optional[str] = None
    email: Optional[str] = None
    permission_overrides: Optional[Mapping[str, Any]] = None
    joined_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == "active"


@dataclass(frozen=True)
class AuthContext:
    """
    Authentication context for the current request.

    Usage:
        @router.get("/estimates")
        async def list_estimates(ctx: AuthContext = Depends(require_auth)):
            if ctx.has_permission(Permission.ESTIMATES_READ_TEAM):
                ...
    """

    # =========================================================================
    # Identity
    # =========================================================================

    user_id: str
    """Identity provider user ID."""

    organization_id: str
    """Organization the user is acting in."""

    role: Optional[Role]
    """User's role in that organization. None if the stored role is unrecognized."""

    # =========================================================================
    # Computed at construction
    # =========================================================================

    permissions: FrozenSet[Permission] = field(default_factory=frozenset)
    """Effective permissions (role defaults plus member overrides)."""

    # =========================================================================
    # Display
    # =========================================================================

    display_name: Optional[str] = None
    email: Optional[str] = None

    # =========================================================================
    # Permission Checks
    # =========================================================================

    def has_permission(self, permission: Any) -> bool:
        """Check if user has a specific permission."""
        resolved = coerce_permission(permission)
        return resolved is not None and resolved in self.permissions

    def has_any_permission(self, permissions: Iterable[Any]) -> bool:
        """Check if user has any of the specified permissions."""
        return any(self.has_permission(p) for p in permissions)

    def has_all_permissions(self, permissions: Iterable[Any]) -> bool:
        """Check if user has all of the specified permissions."""
        return all(self.has_permission(p) for p in permissions)

    def missing_permissions(self, permissions: Iterable[Any]) -> list[str]:
        """Values of the required permissions this user lacks, sorted."""
        missing = set()
        for p in permissions:
            if not self.has_permission(p):
                missing.add(p.value if hasattr(p, "value") else str(p))
        return sorted(missing)

    # =========================================================================
    # Role Checks
    # =========================================================================

    @property
    def level(self) -> int:
        return get_role_level(self.role)

    def has_role(self, role: Any) -> bool:
        return self.role is not None and self.role == coerce_role(role)

    def has_minimum_role(self, role: Any) -> bool:
        return has_minimum_role(self.role, role)

    # =========================================================================
    # Access Checks
    # =========================================================================

    def can_access_organization(self, organization_id: Any) -> bool:
        """Only the caller's own organization, unless they can bypass isolation."""
        if self.has_permission(Permission.PLATFORM_FULL_ACCESS):
            return True
        if not organization_id:
            return False
        return str(organization_id) == self.organization_id

    # =========================================================================
    # Factory Methods
    # =========================================================================

    @classmethod
    def from_membership(cls, identity: Identity, membership: MembershipRecord) -> "AuthContext":
        """Create the context for an identity acting through a membership."""
        role = coerce_role(membership.role)
        if role is None:
            logger.warning(
                f"Membership for user {membership.user_id} in organization "
                f"{membership.organization_id} has unrecognized role {membership.role!r}"
            )
            permissions: FrozenSet[Permission] = frozenset()
        else:
            permissions = apply_permission_overrides(role, membership.permission_overrides)

        return cls(
            user_id=identity.user_id,
            organization_id=str(membership.organization_id),
            role=role,
            permissions=permissions,
            display_name=membership.display_name or identity.display_name,
            email=membership.email or identity.email,
        )

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "userId": self.user_id,
            "organizationId": self.organization_id,
            "role": self.role.value if self.role else None,
            "level": self.level,
            "permissions": sorted(p.value for p in self.permissions),
            "displayName": self.display_name,
            "email": self.email,
        }
