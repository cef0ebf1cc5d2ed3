"""
XTmate - Session Token Handling

JWT encoding/decoding for session tokens, plus the identity provider that
turns a verified token into an Identity.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from .context import Identity
from .settings import AuthSettings, get_settings

logger = logging.getLogger(__name__)


SESSION_TOKEN_EXPIRE_HOURS = 8


# =============================================================================
# TOKEN CREATION
# =============================================================================

def create_session_token(
    user_id: str,
    organization_id: Optional[str] = None,
    email: Optional[str] = None,
    name: Optional[str] = None,
    settings: Optional[AuthSettings] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed session token.

    Args:
        user_id: Identity provider user ID (becomes 'sub')
        organization_id: Organization selected in the session
        email: User's email
        name: User's display name
        settings: Auth settings. If None, loads from environment.
        expires_delta: Custom expiration time

    Returns:
        JWT token string
    """
    settings = settings or get_settings()
    if expires_delta is None:
        expires_delta = timedelta(hours=SESSION_TOKEN_EXPIRE_HOURS)

    issued_at = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "iat": issued_at,
        "exp": issued_at + expires_delta,
    }

    if organization_id:
        payload[settings.organization_claim] = str(organization_id)
    if email:
        payload["email"] = email
    if name:
        payload["name"] = name
    if settings.jwt_audience:
        payload["aud"] = settings.jwt_audience
    if settings.jwt_issuer:
        payload["iss"] = settings.jwt_issuer

    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


# =============================================================================
# TOKEN DECODING
# =============================================================================

def decode_session_token(token: str, settings: Optional[AuthSettings] = None) -> Dict[str, Any]:
    """
    Decode and validate a session token.

    Raises:
        jwt.InvalidTokenError: If token is invalid, expired or has the wrong audience/issuer
    """
    settings = settings or get_settings()
    options = {"require": ["sub", "exp"]}
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
        options=options,
    )


# =============================================================================
# IDENTITY PROVIDER
# =============================================================================

class JWTIdentityProvider:
    """
    Resolves identities from self-issued session tokens.

    Any verification failure resolves to None (unauthenticated); it is never
    an error for the caller.
    """

    def __init__(self, settings: Optional[AuthSettings] = None):
        self._settings = settings or get_settings()

    async def resolve(self, token: Optional[str]) -> Optional[Identity]:
        if not token:
            return None

        try:
            payload = decode_session_token(token, self._settings)
        except jwt.ExpiredSignatureError:
            logger.debug("Session token expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.debug(f"Invalid session token: {e}")
            return None

        user_id = payload.get("sub")
        if not user_id:
            return None

        organization_id = payload.get(self._settings.organization_claim)
        return Identity(
            user_id=str(user_id),
            organization_id=str(organization_id) if organization_id else None,
            email=payload.get("email"),
            display_name=payload.get("name"),
        )
