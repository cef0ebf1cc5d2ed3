"""Pytest configuration and fixtures for test suite."""

import os
import sys
from pathlib import Path
from typing import Dict, Optional

import pytest
import pytest_asyncio

# Set test environment BEFORE any other imports
os.environ.setdefault("XTMATE_AUTH_ENVIRONMENT", "test")
os.environ.setdefault("XTMATE_AUTH_JWT_SECRET", "test-secret-key-for-session-tokens-0123456789")
os.environ.setdefault("DB_DRIVER", "sqlite+aiosqlite")

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from xtmate_auth.context import AuthContext, Identity, MembershipRecord
from xtmate_auth.errors import DependencyUnavailable
from xtmate_auth.estimate_access import EstimateRecord, WorkflowStatus
from xtmate_auth.permissions import get_permissions
from xtmate_auth.roles import Role
from xtmate_auth.settings import AuthSettings, get_database_settings, get_settings


ORG_A = "org-a"
ORG_B = "org-b"
TEST_JWT_SECRET = "test-secret-key-for-session-tokens-0123456789"


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Settings are cached with lru_cache; start every test from the environment."""
    get_settings.cache_clear()
    get_database_settings.cache_clear()
    yield
    get_settings.cache_clear()
    get_database_settings.cache_clear()


@pytest.fixture
def auth_settings():
    """Auth settings with a fixed signing key."""
    return AuthSettings(environment="test", jwt_secret=TEST_JWT_SECRET)


# =============================================================================
# CONTEXTS AND ESTIMATES
# =============================================================================

def build_context(
    role: Optional[Role],
    user_id: str = "user-1",
    organization_id: str = ORG_A,
) -> AuthContext:
    """AuthContext with the role's default permissions."""
    return AuthContext(
        user_id=user_id,
        organization_id=organization_id,
        role=role,
        permissions=get_permissions(role) if role else frozenset(),
    )


def build_estimate(
    estimate_id: str = "est-1",
    organization_id: Optional[str] = ORG_A,
    owner_id: Optional[str] = "owner-1",
    assigned_pm_id: Optional[str] = None,
    assigned_estimator_id: Optional[str] = None,
    workflow_status: Optional[str] = WorkflowStatus.DRAFT.value,
) -> EstimateRecord:
    return EstimateRecord(
        id=estimate_id,
        organization_id=organization_id,
        owner_id=owner_id,
        assigned_pm_id=assigned_pm_id,
        assigned_estimator_id=assigned_estimator_id,
        workflow_status=workflow_status,
    )


@pytest.fixture
def make_context():
    return build_context


@pytest.fixture
def make_estimate():
    return build_estimate


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================

class FakeIdentityProvider:
    """Maps fixed tokens to identities and counts resolutions."""

    def __init__(self, identities: Optional[Dict[str, Identity]] = None, fail: bool = False):
        self.identities = identities or {}
        self.fail = fail
        self.calls = 0

    async def resolve(self, token):
        self.calls += 1
        if self.fail:
            raise DependencyUnavailable("Identity provider unreachable")
        if not token:
            return None
        return self.identities.get(token)


class FakeAuthorizationStore:
    """In-memory AuthorizationStore that counts lookups."""

    def __init__(self):
        self.memberships: Dict[tuple, MembershipRecord] = {}
        self.estimates: Dict[str, EstimateRecord] = {}
        self.membership_calls = 0
        self.estimate_calls = 0
        self.fail = False

    def add_member(self, user_id: str, role: str, organization_id: str = ORG_A, **kwargs) -> MembershipRecord:
        membership = MembershipRecord(user_id=user_id, organization_id=organization_id, role=role, **kwargs)
        self.memberships[(user_id, organization_id)] = membership
        return membership

    def add_estimate(self, estimate: EstimateRecord) -> EstimateRecord:
        self.estimates[estimate.id] = estimate
        return estimate

    async def get_membership(self, user_id, organization_id=None):
        self.membership_calls += 1
        if self.fail:
            raise DependencyUnavailable("Membership lookup failed")
        if organization_id:
            membership = self.memberships.get((user_id, organization_id))
            return membership if membership and membership.is_active else None
        for (member_id, _), membership in self.memberships.items():
            if member_id == user_id and membership.is_active:
                return membership
        return None

    async def get_estimate(self, estimate_id):
        self.estimate_calls += 1
        if self.fail:
            raise DependencyUnavailable("Estimate lookup failed")
        return self.estimates.get(estimate_id)


@pytest.fixture
def store():
    return FakeAuthorizationStore()


@pytest.fixture
def identity_provider():
    return FakeIdentityProvider()


# =============================================================================
# DATABASE
# =============================================================================

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """A fresh SQLite database with the authorization schema."""
    from xtmate_auth.database import create_engine, init_schema

    engine = create_engine(url=f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}")
    await init_schema(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    from xtmate_auth.database import create_session_factory

    return create_session_factory(db_engine)
