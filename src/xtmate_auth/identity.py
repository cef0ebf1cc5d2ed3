"""Identity provider interface."""

from typing import Optional, Protocol, runtime_checkable

from .context import Identity


@runtime_checkable
class IdentityProvider(Protocol):
    """
    Turns a session token into the caller's identity.

    ``resolve`` returns None when the token does not identify anyone
    (missing, expired, forged). It raises only when the provider itself is
    unreachable, and then DependencyUnavailable.
    """

    async def resolve(self, token: Optional[str]) -> Optional[Identity]:
        ...
