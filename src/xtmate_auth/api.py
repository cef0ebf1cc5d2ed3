"""
Authorization API

GET /api/auth/context                    - caller's role and permissions (client-side usePermissions)
GET /api/estimates/{estimate_id}/access  - caller's access level on one estimate
GET /api/vendor/session                  - vendor portal session check
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI
from pydantic import BaseModel, Field

from .authorize import EstimateAccess
from .context import AuthContext
from .database import create_engine, create_session_factory
from .dependencies import install_authorization, require_auth, require_estimate_access
from .estimate_access import EstimateAccessLevel, get_updatable_fields
from .identity import IdentityProvider
from .jwt import JWTIdentityProvider
from .settings import AuthSettings, get_settings
from .store import AuthorizationStore, SQLAlchemyAuthorizationStore
from .vendor import SQLAlchemyVendorStore, VendorRecord, require_vendor_auth

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["authorization"])


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class AuthContextResponse(BaseModel):
    userId: str
    organizationId: str
    role: Optional[str] = None
    level: int = 0
    permissions: List[str] = Field(default_factory=list)
    displayName: Optional[str] = None
    email: Optional[str] = None


class EstimateAccessResponse(BaseModel):
    estimateId: str
    accessLevel: str
    updatableFields: List[str] = Field(default_factory=list)


class VendorSessionResponse(BaseModel):
    vendorId: str
    organizationId: str
    name: str
    isAuthenticated: bool = True


# =============================================================================
# ROUTES
# =============================================================================

@router.get("/auth/context", response_model=AuthContextResponse)
async def get_context(ctx: AuthContext = Depends(require_auth)):
    """Return the authenticated user's context including role and permissions."""
    return ctx.to_dict()


@router.get("/estimates/{estimate_id}/access", response_model=EstimateAccessResponse)
async def get_estimate_access(
    estimate_id: str,
    access: EstimateAccess = Depends(require_estimate_access(EstimateAccessLevel.READ_ONLY)),
):
    """Return the caller's access level and the fields they may change."""
    return {
        "estimateId": estimate_id,
        "accessLevel": access.access_level.value,
        "updatableFields": sorted(get_updatable_fields(access.access_level)),
    }


@router.get("/vendor/session", response_model=VendorSessionResponse)
async def get_vendor_session(vendor: VendorRecord = Depends(require_vendor_auth)):
    return {
        "vendorId": vendor.id,
        "organizationId": vendor.organization_id,
        "name": vendor.name,
    }


# =============================================================================
# APP FACTORY
# =============================================================================

def create_app(
    settings: Optional[AuthSettings] = None,
    identity_provider: Optional[IdentityProvider] = None,
    store: Optional[AuthorizationStore] = None,
    vendor_store=None,
) -> FastAPI:
    """
    Build a FastAPI app serving the authorization API.

    Collaborators default to the JWT identity provider and the SQLAlchemy
    stores over the configured database.
    """
    settings = settings or get_settings()
    identity_provider = identity_provider or JWTIdentityProvider(settings)

    if store is None or vendor_store is None:
        session_factory = create_session_factory(create_engine())
        store = store or SQLAlchemyAuthorizationStore(session_factory)
        vendor_store = vendor_store or SQLAlchemyVendorStore(session_factory, settings)

    app = FastAPI(title="XTmate Authorization")
    install_authorization(app, identity_provider, store, settings=settings, vendor_store=vendor_store)
    app.include_router(router)

    logger.info(f"Authorization API created ({settings.environment})")
    return app
