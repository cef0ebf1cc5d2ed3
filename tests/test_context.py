"""
AuthContext Tests
"""

import dataclasses

import pytest

from xtmate_auth.context import AuthContext, Identity, MembershipRecord
from xtmate_auth.permissions import Permission, get_permissions
from xtmate_auth.roles import Role


@pytest.fixture
def identity():
    return Identity(user_id="user-1", organization_id="org-a", email="pat@example.com", display_name="Pat")


class TestFromMembership:
    """Building the context from an organization membership"""

    def test_role_defaults(self, identity):
        membership = MembershipRecord(user_id="user-1", organization_id="org-a", role="estimator")
        ctx = AuthContext.from_membership(identity, membership)

        assert ctx.role == Role.ESTIMATOR
        assert ctx.organization_id == "org-a"
        assert ctx.permissions == get_permissions(Role.ESTIMATOR)

    def test_overrides_applied(self, identity):
        membership = MembershipRecord(
            user_id="user-1",
            organization_id="org-a",
            role="viewer",
            permission_overrides={"add": ["estimates.create"]},
        )
        ctx = AuthContext.from_membership(identity, membership)
        assert ctx.has_permission(Permission.ESTIMATES_CREATE)

    def test_unknown_role_has_no_permissions(self, identity):
        membership = MembershipRecord(user_id="user-1", organization_id="org-a", role="owner")
        ctx = AuthContext.from_membership(identity, membership)

        assert ctx.role is None
        assert ctx.permissions == frozenset()
        assert ctx.level == 0

    def test_membership_display_fields_win(self, identity):
        membership = MembershipRecord(
            user_id="user-1", organization_id="org-a", role="pm", display_name="Pat Q.",
        )
        ctx = AuthContext.from_membership(identity, membership)
        assert ctx.display_name == "Pat Q."
        assert ctx.email == "pat@example.com"

    def test_membership_is_active(self):
        assert MembershipRecord(user_id="u", organization_id="o", role="pm").is_active
        assert not MembershipRecord(user_id="u", organization_id="o", role="pm", status="suspended").is_active


class TestContextChecks:

    def test_context_is_immutable(self, make_context):
        ctx = make_context(Role.VIEWER)
        with pytest.raises(dataclasses.FrozenInstanceError):
            ctx.role = Role.ADMIN

    def test_permission_checks(self, make_context):
        ctx = make_context(Role.PM)
        assert ctx.has_permission("vendors.invite")
        assert ctx.has_any_permission([Permission.QA_APPROVE, Permission.VENDORS_INVITE])
        assert not ctx.has_all_permissions([Permission.QA_APPROVE, Permission.VENDORS_INVITE])
        assert not ctx.has_permission("estimates.teleport")

    def test_missing_permissions_sorted(self, make_context):
        ctx = make_context(Role.VIEWER)
        missing = ctx.missing_permissions([Permission.QA_APPROVE, Permission.ESTIMATES_CREATE, Permission.SETTINGS_VIEW])
        assert missing == ["estimates.create", "qa.approve"]

    def test_role_checks(self, make_context):
        ctx = make_context(Role.QA_MANAGER)
        assert ctx.level == 80
        assert ctx.has_role("qa_manager")
        assert not ctx.has_role(Role.ADMIN)
        assert ctx.has_minimum_role(Role.ESTIMATOR)
        assert not ctx.has_minimum_role(Role.GENERAL_MANAGER)

    def test_organization_access(self, make_context):
        ctx = make_context(Role.ADMIN, organization_id="org-a")
        assert ctx.can_access_organization("org-a")
        assert not ctx.can_access_organization("org-b")
        assert not ctx.can_access_organization(None)

    def test_super_admin_crosses_organizations(self, make_context):
        ctx = make_context(Role.SUPER_ADMIN, organization_id="org-a")
        assert ctx.can_access_organization("org-b")

    def test_to_dict(self, make_context):
        ctx = make_context(Role.VIEWER)
        data = ctx.to_dict()

        assert data["userId"] == "user-1"
        assert data["organizationId"] == "org-a"
        assert data["role"] == "viewer"
        assert data["level"] == 10
        assert data["permissions"] == sorted(p.value for p in get_permissions(Role.VIEWER))
