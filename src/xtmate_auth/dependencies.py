"""
XTmate - FastAPI Dependencies

Dependency injection helpers for route protection.

Usage:
    from xtmate_auth import require_auth, require_permission, require_estimate_access, Permission

    # Require a signed-in organization member
    @router.get("/me")
    async def me(ctx: AuthContext = Depends(require_auth)):
        return ctx.to_dict()

    # Require a permission
    @router.post("/estimates")
    async def create_estimate(ctx: AuthContext = Depends(require_permission(Permission.ESTIMATES_CREATE))):
        ...

    # Require an access level on the estimate named in the path
    @router.patch("/estimates/{estimate_id}")
    async def update_estimate(access: EstimateAccess = Depends(require_estimate_access(EstimateAccessLevel.LIMITED_UPDATE))):
        ...
"""

import functools
import inspect
import logging
from typing import Any, Callable, Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .authorize import EstimateAccess, PermissionSpec, RequestAuthorizer, ensure_permissions
from .context import AuthContext
from .errors import DependencyUnavailable, Unauthenticated, register_exception_handlers
from .estimate_access import EstimateAccessLevel
from .identity import IdentityProvider
from .roles import Role
from .settings import AuthSettings, get_settings
from .store import AuthorizationStore

logger = logging.getLogger(__name__)


# =============================================================================
# HTTP BEARER SECURITY
# =============================================================================

security = HTTPBearer(auto_error=False)


# =============================================================================
# INSTALLATION
# =============================================================================

def install_authorization(
    app: FastAPI,
    identity_provider: IdentityProvider,
    store: AuthorizationStore,
    settings: Optional[AuthSettings] = None,
    vendor_store: Any = None,
) -> None:
    """
    Wire the authorization collaborators into a FastAPI app.

    Stores them on app.state and registers the error handlers that map
    Unauthenticated/Forbidden/DependencyUnavailable to 401/403/503.
    """
    app.state.identity_provider = identity_provider
    app.state.authorization_store = store
    app.state.auth_settings = settings or get_settings()
    if vendor_store is not None:
        app.state.vendor_store = vendor_store
    register_exception_handlers(app)


def _get_auth_settings(request: Request) -> AuthSettings:
    return getattr(request.app.state, "auth_settings", None) or get_settings()


def get_session_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
) -> Optional[str]:
    """Session token from the Authorization header, else from the session cookie."""
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(_get_auth_settings(request).session_cookie_name) or None


# =============================================================================
# CORE DEPENDENCIES
# =============================================================================

async def get_request_authorizer(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> RequestAuthorizer:
    """
    Get the RequestAuthorizer for the current request.

    Created once per request and kept in request.state, so every dependency
    in the same request shares its memoized lookups.
    """
    authorizer = getattr(request.state, "authorizer", None)
    if authorizer is not None:
        return authorizer

    identity_provider = getattr(request.app.state, "identity_provider", None)
    store = getattr(request.app.state, "authorization_store", None)
    if identity_provider is None or store is None:
        logger.error("Authorization is not installed on this app; call install_authorization()")
        raise DependencyUnavailable("Authorization is not configured")

    authorizer = RequestAuthorizer(identity_provider, store, get_session_token(request, credentials))
    request.state.authorizer = authorizer
    return authorizer


async def get_auth_context(
    request: Request,
    authorizer: RequestAuthorizer = Depends(get_request_authorizer),
) -> Optional[AuthContext]:
    """
    Get the authentication context for the current request.

    Does NOT enforce authentication - use require_auth for that.

    Returns:
        AuthContext, or None for anonymous callers and non-members.
    """
    ctx = await authorizer.resolve_context()
    request.state.auth_context = ctx
    return ctx


async def optional_auth(
    ctx: Optional[AuthContext] = Depends(get_auth_context),
) -> Optional[AuthContext]:
    """
    Return authenticated context when available, otherwise None.

    Use this for endpoints that support both anonymous and authenticated access.
    """
    return ctx


async def require_auth(
    authorizer: RequestAuthorizer = Depends(get_request_authorizer),
) -> AuthContext:
    """
    Require a signed-in organization member.

    Raises Unauthenticated (401) otherwise.
    """
    return await authorizer.require_context()


# =============================================================================
# PERMISSION AND ROLE DEPENDENCIES
# =============================================================================

def require_permission(permission: PermissionSpec, require_all: bool = False) -> Callable:
    """
    Require a permission (or any/all of a set of permissions).

    Usage:
        @router.delete("/estimates/{estimate_id}")
        async def delete_estimate(
            ctx: AuthContext = Depends(require_permission(Permission.ESTIMATES_DELETE_ANY)),
        ):
            ...
    """

    async def dependency(authorizer: RequestAuthorizer = Depends(get_request_authorizer)) -> AuthContext:
        return await authorizer.require_permissions(permission, require_all=require_all)

    return dependency


def require_any_permission(*permissions: Any) -> Callable:
    """Require at least one of the permissions."""
    return require_permission(set(permissions), require_all=False)


def require_all_permissions(*permissions: Any) -> Callable:
    """Require every one of the permissions."""
    return require_permission(set(permissions), require_all=True)


def require_minimum_role(role: Union[Role, str]) -> Callable:
    """
    Require a role at or above ``role`` in the hierarchy.

    Usage:
        @router.get("/analytics")
        async def analytics(ctx: AuthContext = Depends(require_minimum_role(Role.QA_MANAGER))):
            ...
    """

    async def dependency(authorizer: RequestAuthorizer = Depends(get_request_authorizer)) -> AuthContext:
        return await authorizer.require_minimum_role(role)

    return dependency


# =============================================================================
# ESTIMATE DEPENDENCIES
# =============================================================================

def require_estimate_access(
    minimum_level: EstimateAccessLevel = EstimateAccessLevel.READ_ONLY,
    estimate_id_param: str = "estimate_id",
) -> Callable:
    """
    Require an access level on the estimate identified by a path/query parameter.

    Returns an EstimateAccess with the context, estimate and resolved level.
    """

    async def dependency(
        request: Request,
        authorizer: RequestAuthorizer = Depends(get_request_authorizer),
    ) -> EstimateAccess:
        estimate_id = request.path_params.get(estimate_id_param) or request.query_params.get(estimate_id_param)
        if not estimate_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Missing {estimate_id_param} parameter",
            )
        return await authorizer.require_estimate_access(str(estimate_id), minimum_level)

    return dependency


# =============================================================================
# DECORATOR
# =============================================================================

def _extract_auth_context_from_call(args: tuple, kwargs: dict) -> Optional[AuthContext]:
    """Extract AuthContext from decorator-invoked handler arguments."""
    for value in kwargs.values():
        if isinstance(value, AuthContext):
            return value
    for value in args:
        if isinstance(value, AuthContext):
            return value
    return None


def with_permission(permission: PermissionSpec, require_all: bool = False) -> Callable:
    """
    Wrap a handler that receives an AuthContext with a permission check.

    Usage:
        @router.post("/work-orders")
        @with_permission(Permission.WORK_ORDERS_CREATE)
        async def create_work_order(ctx: AuthContext = Depends(require_auth)):
            ...
    """

    def decorator(func: Callable) -> Callable:
        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                ctx = _extract_auth_context_from_call(args, kwargs)
                if ctx is None:
                    raise Unauthenticated()
                ensure_permissions(ctx, permission, require_all=require_all)
                return await func(*args, **kwargs)

            async_wrapper._required_permissions = permission
            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            ctx = _extract_auth_context_from_call(args, kwargs)
            if ctx is None:
                raise Unauthenticated()
            ensure_permissions(ctx, permission, require_all=require_all)
            return func(*args, **kwargs)

        sync_wrapper._required_permissions = permission
        return sync_wrapper

    return decorator
