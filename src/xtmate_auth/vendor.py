"""
Vendor Portal Authentication

Vendors do not have organization accounts; they reach the vendor portal
through an unguessable token sent in their invite link. The token is kept in
a cookie once they log in.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol

from fastapi import Request
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .errors import DependencyUnavailable, Unauthenticated
from .models import VendorRecordModel
from .settings import AuthSettings, get_settings

logger = logging.getLogger(__name__)

TOKEN_EXPIRATION_DAYS = 30
MIN_TOKEN_LENGTH = 32
VENDOR_LOGIN_PATH = "/vendor/login"


@dataclass(frozen=True)
class VendorRecord:
    """A vendor as the portal sees it."""
    id: str
    organization_id: str
    name: str
    email: Optional[str] = None
    is_active: bool = True
    token_expires_at: Optional[datetime] = None


# =============================================================================
# TOKENS
# =============================================================================

def generate_vendor_token() -> str:
    """Generate a secure random token for vendor portal access (64 hex chars)."""
    return secrets.token_hex(32)


def get_token_expiration(days: int = TOKEN_EXPIRATION_DAYS, now: Optional[datetime] = None) -> datetime:
    """Calculate token expiration date."""
    return (now or datetime.utcnow()) + timedelta(days=days)


def is_token_valid(vendor: VendorRecord, now: Optional[datetime] = None) -> bool:
    """Check if a vendor's token is still valid (not expired)."""
    if vendor.token_expires_at is None:
        return False
    return vendor.token_expires_at > (now or datetime.utcnow())


# =============================================================================
# STORE
# =============================================================================

class VendorStore(Protocol):
    async def get_active_vendor_by_token(self, token: str) -> Optional[VendorRecord]:
        ...


class SQLAlchemyVendorStore:
    """Vendor token storage over the vendors table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], settings: Optional[AuthSettings] = None):
        self._session_factory = session_factory
        self._settings = settings or get_settings()

    async def get_active_vendor_by_token(self, token: str, now: Optional[datetime] = None) -> Optional[VendorRecord]:
        """
        Validate a vendor token and return the vendor if valid.

        Short tokens are rejected without a lookup.

        Raises:
            DependencyUnavailable: If the database cannot be queried.
        """
        if not token or len(token) < MIN_TOKEN_LENGTH:
            return None

        query = select(VendorRecordModel).where(
            VendorRecordModel.access_token == token,
            VendorRecordModel.is_active.is_(True),
            VendorRecordModel.token_expires_at > (now or datetime.utcnow()),
        ).limit(1)

        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                row = result.scalars().first()
        except SQLAlchemyError as e:
            logger.error(f"Error validating vendor token: {e}")
            raise DependencyUnavailable("Vendor lookup failed") from e

        if row is None:
            return None
        return VendorRecord(
            id=row.id,
            organization_id=row.organization_id,
            name=row.name,
            email=row.email,
            is_active=row.is_active,
            token_expires_at=row.token_expires_at,
        )

    async def issue_token(self, vendor_id: str, days: Optional[int] = None) -> tuple[str, datetime]:
        """
        Create or refresh a vendor's access token.

        Lifetime defaults to settings.vendor_token_ttl_days, the figure the
        invite message quotes.
        """
        if days is None:
            days = self._settings.vendor_token_ttl_days
        token = generate_vendor_token()
        expires_at = get_token_expiration(days)
        await self._update_token(vendor_id, token, expires_at)
        logger.info(f"Issued vendor portal token for vendor {vendor_id}")
        return token, expires_at

    async def invalidate_token(self, vendor_id: str) -> None:
        """Invalidate a vendor's access token."""
        await self._update_token(vendor_id, None, None)
        logger.info(f"Invalidated vendor portal token for vendor {vendor_id}")

    async def _update_token(self, vendor_id: str, token: Optional[str], expires_at: Optional[datetime]) -> None:
        statement = (
            update(VendorRecordModel)
            .where(VendorRecordModel.id == str(vendor_id))
            .values(access_token=token, token_expires_at=expires_at, updated_at=datetime.utcnow())
        )
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(statement)
        except SQLAlchemyError as e:
            logger.error(f"Vendor token update failed for {vendor_id}: {e}")
            raise DependencyUnavailable("Vendor token update failed") from e


# =============================================================================
# FASTAPI DEPENDENCY
# =============================================================================

async def require_vendor_auth(request: Request) -> VendorRecord:
    """
    Require a vendor portal session.

    Raises Unauthenticated with a ``redirect_to`` detail pointing at the
    vendor login page.
    """
    settings: AuthSettings = getattr(request.app.state, "auth_settings", None) or get_settings()
    store = getattr(request.app.state, "vendor_store", None)
    if store is None:
        logger.error("Vendor store is not installed on this app")
        raise DependencyUnavailable("Vendor portal is not configured")

    token = request.cookies.get(settings.vendor_token_cookie_name)
    if not token:
        raise Unauthenticated("Not authenticated", details={"redirect_to": VENDOR_LOGIN_PATH})

    vendor = await store.get_active_vendor_by_token(token)
    if vendor is None:
        raise Unauthenticated("Not authenticated", details={"redirect_to": VENDOR_LOGIN_PATH})
    if not vendor.is_active:
        raise Unauthenticated(
            "Account is not active",
            details={"redirect_to": f"{VENDOR_LOGIN_PATH}?error=inactive"},
        )
    return vendor


# =============================================================================
# LINKS AND MESSAGES
# =============================================================================

def get_vendor_login_url(token: str, settings: Optional[AuthSettings] = None) -> str:
    """Generate a vendor portal login URL."""
    settings = settings or get_settings()
    return f"{settings.app_url.rstrip('/')}{VENDOR_LOGIN_PATH}?token={token}"


def get_vendor_invite_message(
    vendor_name: str,
    estimate_name: str,
    token: str,
    settings: Optional[AuthSettings] = None,
) -> dict:
    """Generate the invite email (subject and body) for a vendor."""
    settings = settings or get_settings()
    login_url = get_vendor_login_url(token, settings)

    body = (
        f"Hello {vendor_name},\n"
        "\n"
        f"You have been invited to submit a quote for: {estimate_name}\n"
        "\n"
        "Please use the following link to access the vendor portal and view the scope of work:\n"
        "\n"
        f"{login_url}\n"
        "\n"
        f"This link will expire in {settings.vendor_token_ttl_days} days.\n"
        "\n"
        "If you have any questions, please contact us.\n"
        "\n"
        "Best regards,\n"
        "XTmate Team"
    )
    return {"subject": f"Quote Request: {estimate_name}", "body": body}
