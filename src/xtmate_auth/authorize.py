"""
XTmate - Request Authorization

Transport-agnostic enforcement. Each protected operation goes through:

    Start -> identity resolved | Unauthenticated
          -> permission / access level checked -> authorized | Forbidden

evaluated exactly once, with no retries. A failing collaborator surfaces as
DependencyUnavailable and is never turned into a denial.

RequestAuthorizer is created per request and memoizes the identity,
membership and estimate lookups for that request only. Nothing is cached
across requests, so role changes take effect on the next request.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

from .context import AuthContext, Identity
from .errors import Forbidden, Unauthenticated
from .estimate_access import (
    EstimateAccessLevel,
    EstimateRecord,
    check_estimate_update,
    get_estimate_access_level,
)
from .identity import IdentityProvider
from .permissions import Permission
from .roles import Role, coerce_role
from .store import AuthorizationStore

logger = logging.getLogger(__name__)


# Same message whether the estimate is missing or just not visible
ESTIMATE_NOT_ACCESSIBLE = "Estimate not found or access denied"


PermissionSpec = Union[Permission, str, Iterable[Union[Permission, str]]]


def _as_permission_list(permissions: PermissionSpec) -> List[Any]:
    if isinstance(permissions, (str, Enum)):
        return [permissions]
    return list(permissions)


def _value(item: Any) -> str:
    return item.value if hasattr(item, "value") else str(item)


def ensure_permissions(
    context: Optional[AuthContext],
    permissions: PermissionSpec,
    require_all: bool = False,
) -> AuthContext:
    """
    Check the context holds the required permission(s).

    Args:
        context: Resolved auth context (None = unauthenticated)
        permissions: A permission or a collection of permissions
        require_all: If True, every permission is required; otherwise any one

    Returns:
        The context, for chaining

    Raises:
        Unauthenticated: If there is no context
        Forbidden: If the permission check fails
    """
    if context is None:
        raise Unauthenticated()

    required = _as_permission_list(permissions)

    if require_all:
        missing = context.missing_permissions(required)
        if missing:
            logger.info(
                f"Permission denied for user {context.user_id} in organization "
                f"{context.organization_id}: missing {', '.join(missing)}"
            )
            raise Forbidden(
                f"Missing permissions: {', '.join(missing)}",
                details={"missingPermissions": missing},
            )
        return context

    if not context.has_any_permission(required):
        wanted = sorted({_value(p) for p in required})
        logger.info(
            f"Permission denied for user {context.user_id} in organization "
            f"{context.organization_id}: needs one of {', '.join(wanted)}"
        )
        raise Forbidden(
            f"Required permission: {', '.join(wanted)}",
            details={"missingPermissions": wanted},
        )
    return context


@dataclass(frozen=True)
class EstimateAccess:
    """Result of a successful estimate access check."""
    context: AuthContext
    estimate: EstimateRecord
    access_level: EstimateAccessLevel


class RequestAuthorizer:
    """
    Per-request authorization entry point.

    Usage:
        authorizer = RequestAuthorizer(identity_provider, store, token)
        ctx = await authorizer.require_permission(Permission.ESTIMATES_CREATE)
        access = await authorizer.require_estimate_access(estimate_id, EstimateAccessLevel.FULL)
    """

    def __init__(
        self,
        identity_provider: IdentityProvider,
        store: AuthorizationStore,
        token: Optional[str],
    ):
        self._identity_provider = identity_provider
        self._store = store
        self._token = token

        self._identity_resolved = False
        self._identity: Optional[Identity] = None
        self._context_resolved = False
        self._context: Optional[AuthContext] = None
        self._estimates: Dict[str, Optional[EstimateRecord]] = {}

    # =========================================================================
    # Identity
    # =========================================================================

    async def resolve_identity(self) -> Optional[Identity]:
        """Resolve the session token once; None if it identifies no one."""
        if not self._identity_resolved:
            self._identity = await self._identity_provider.resolve(self._token)
            self._identity_resolved = True
        return self._identity

    async def resolve_context(self) -> Optional[AuthContext]:
        """
        Build the AuthContext for this request.

        Returns None when the caller is not signed in or has no active
        membership in an organization.
        """
        if self._context_resolved:
            return self._context

        identity = await self.resolve_identity()
        context = None
        if identity is not None:
            membership = await self._store.get_membership(identity.user_id, identity.organization_id)
            if membership is None or not membership.is_active:
                logger.info(
                    f"No active membership for user {identity.user_id}"
                    + (f" in organization {identity.organization_id}" if identity.organization_id else "")
                )
            else:
                context = AuthContext.from_membership(identity, membership)

        self._context = context
        self._context_resolved = True
        return context

    async def require_context(self) -> AuthContext:
        """Resolve the context or raise Unauthenticated."""
        context = await self.resolve_context()
        if context is None:
            if self._identity is None:
                raise Unauthenticated()
            raise Unauthenticated("No active organization membership")
        return context

    # =========================================================================
    # Permission and role checks
    # =========================================================================

    async def require_permission(self, permission: PermissionSpec) -> AuthContext:
        return ensure_permissions(await self.require_context(), permission)

    async def require_permissions(
        self,
        permissions: PermissionSpec,
        require_all: bool = False,
    ) -> AuthContext:
        return ensure_permissions(await self.require_context(), permissions, require_all=require_all)

    async def require_minimum_role(self, role: Union[Role, str]) -> AuthContext:
        """Require the caller's role level to be at least that of ``role``."""
        context = await self.require_context()
        if not context.has_minimum_role(role):
            threshold = coerce_role(role)
            required = threshold.value if threshold else str(role)
            logger.info(
                f"Role check failed for user {context.user_id}: "
                f"{context.role.value if context.role else None} below {required}"
            )
            raise Forbidden(f"Required role: {required} or higher", details={"requiredRole": required})
        return context

    # =========================================================================
    # Estimate access
    # =========================================================================

    async def get_estimate(self, estimate_id: str) -> Optional[EstimateRecord]:
        """Look up an estimate once per request; a miss is memoized too."""
        key = str(estimate_id)
        if key not in self._estimates:
            self._estimates[key] = await self._store.get_estimate(key)
        return self._estimates[key]

    async def get_estimate_access_level(self, estimate_id: str) -> EstimateAccessLevel:
        """
        The caller's access level for an estimate.

        Unauthenticated callers get none without touching the store.
        """
        context = await self.resolve_context()
        if context is None:
            return EstimateAccessLevel.NONE
        return get_estimate_access_level(context, await self.get_estimate(estimate_id))

    async def require_estimate_access(
        self,
        estimate_id: str,
        minimum_level: EstimateAccessLevel = EstimateAccessLevel.READ_ONLY,
    ) -> EstimateAccess:
        """
        Require at least ``minimum_level`` on an estimate.

        A missing estimate and an invisible one raise the same Forbidden.
        """
        context = await self.require_context()
        estimate = await self.get_estimate(estimate_id)
        access_level = get_estimate_access_level(context, estimate)

        if access_level == EstimateAccessLevel.NONE:
            logger.info(f"Estimate {estimate_id} not accessible to user {context.user_id}")
            raise Forbidden(ESTIMATE_NOT_ACCESSIBLE, details={"estimateId": str(estimate_id)})

        if not access_level.at_least(minimum_level):
            logger.info(
                f"Estimate {estimate_id}: user {context.user_id} has {access_level.value}, "
                f"needs {minimum_level.value}"
            )
            raise Forbidden(
                f"Requires {minimum_level.value} access to this estimate",
                details={
                    "estimateId": str(estimate_id),
                    "accessLevel": access_level.value,
                    "requiredLevel": minimum_level.value,
                },
            )

        return EstimateAccess(context=context, estimate=estimate, access_level=access_level)

    async def require_estimate_update(self, estimate_id: str, fields: Iterable[Any]) -> EstimateAccess:
        """
        Require that every field of an update may be written.

        One disallowed field rejects the whole update.
        """
        context = await self.require_context()
        estimate = await self.get_estimate(estimate_id)
        result = check_estimate_update(context, estimate, fields)

        if result.access_level == EstimateAccessLevel.NONE:
            logger.info(f"Estimate {estimate_id} not accessible to user {context.user_id}")
            raise Forbidden(ESTIMATE_NOT_ACCESSIBLE, details={"estimateId": str(estimate_id)})

        if not result.allowed:
            if result.disallowed_fields:
                message = f"Not allowed to update: {', '.join(result.disallowed_fields)}"
            else:
                message = f"Requires {EstimateAccessLevel.LIMITED_UPDATE.value} access to this estimate"
            raise Forbidden(
                message,
                details={
                    "estimateId": str(estimate_id),
                    "accessLevel": result.access_level.value,
                    "disallowedFields": list(result.disallowed_fields),
                },
            )

        return EstimateAccess(context=context, estimate=estimate, access_level=result.access_level)
