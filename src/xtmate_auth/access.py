"""
Access evaluation predicates.

Pure functions over the static role and permission tables. They never raise
and never perform I/O: an unrecognized role or permission is simply "no
access", so callers can use them anywhere, including concurrently.
"""

from typing import Any, Iterable

from .permissions import coerce_permission, get_permissions
from .roles import coerce_role, get_role_level

__all__ = [
    "has_permission",
    "has_any_permission",
    "has_all_permissions",
    "has_minimum_role",
    "get_role_level",
    "can_access_resource",
]


def has_permission(role: Any, permission: Any) -> bool:
    """Check if a role has a specific permission."""
    resolved = coerce_permission(permission)
    if resolved is None:
        return False
    return resolved in get_permissions(role)


def has_any_permission(role: Any, permissions: Iterable[Any]) -> bool:
    """Check if a role has at least one of the permissions. Empty input is False."""
    return any(has_permission(role, p) for p in permissions)


def has_all_permissions(role: Any, permissions: Iterable[Any]) -> bool:
    """
    Check if a role has every one of the permissions.

    An empty requirement is trivially satisfied; a single unrecognized
    permission makes the whole check fail.
    """
    return all(has_permission(role, p) for p in permissions)


def has_minimum_role(role: Any, threshold_role: Any) -> bool:
    """
    Check if ``role`` has at least the authority of ``threshold_role``.

    Unknown caller roles never pass. An unknown threshold never passes either,
    so a typo in a route guard denies instead of letting everyone through.
    """
    if coerce_role(role) is None or coerce_role(threshold_role) is None:
        return False
    return get_role_level(role) >= get_role_level(threshold_role)


def can_access_resource(
    role: Any,
    resource_owner_id: Any,
    user_id: Any,
    permission_own: Any,
    permission_any: Any,
) -> bool:
    """
    Ownership-aware permission check.

    The "any" permission grants access outright. The "own" permission only
    grants access when the caller owns the resource.
    """
    if has_permission(role, permission_any):
        return True

    if not user_id or not resource_owner_id:
        return False
    return str(resource_owner_id) == str(user_id) and has_permission(role, permission_own)
