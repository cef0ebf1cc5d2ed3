"""
Permission Catalog and Role-Permission Map Tests

Catalog structure, monotonic inheritance by level, validation of the table
at import time, and per-member overrides.
"""

import pytest

from xtmate_auth.access import has_permission
from xtmate_auth.permissions import (
    PERMISSIONS,
    PLATFORM_PERMISSIONS,
    ROLE_GRANTS,
    ROLE_PERMISSIONS,
    Category,
    Permission,
    RoleConfigurationError,
    apply_permission_overrides,
    build_effective_permissions,
    coerce_permission,
    get_permission_info,
    get_permissions,
    get_permissions_in_category,
    merge_permissions,
    validate_role_permissions,
)
from xtmate_auth.roles import ROLES, Role


# =============================================================================
# CATALOG
# =============================================================================

class TestPermissionCatalog:
    """Permission identifiers and their metadata"""

    def test_every_permission_has_info(self):
        assert set(PERMISSIONS) == set(Permission)

    def test_permission_values_are_namespaced(self):
        for permission in Permission:
            resource, sep, action = permission.value.partition(".")
            assert sep == "." and resource and action

    def test_permission_info_splits_resource_and_action(self):
        info = get_permission_info("estimates.update_limited")
        assert info.permission == Permission.ESTIMATES_UPDATE_LIMITED
        assert info.resource == "estimates"
        assert info.action == "update_limited"
        assert info.category == Category.ESTIMATES

    def test_platform_category(self):
        assert PLATFORM_PERMISSIONS == frozenset({
            Permission.PLATFORM_FULL_ACCESS,
            Permission.PLATFORM_MANAGE_ORGANIZATIONS,
        })
        assert get_permissions_in_category(Category.PLATFORM) == PLATFORM_PERMISSIONS

    @pytest.mark.parametrize("value", ["estimates.fly", "", None, 7, "ESTIMATES.CREATE"])
    def test_unknown_permission_is_not_recognized(self, value):
        assert coerce_permission(value) is None
        assert get_permission_info(value) is None


# =============================================================================
# ROLE -> PERMISSION MAP
# =============================================================================

class TestRolePermissionMap:
    """Effective permissions per role"""

    def test_every_role_mapped(self):
        assert set(ROLE_PERMISSIONS) == set(Role)

    def test_super_admin_holds_everything(self):
        assert get_permissions(Role.SUPER_ADMIN) == frozenset(Permission)

    def test_admin_holds_everything_but_platform(self):
        assert get_permissions(Role.ADMIN) == frozenset(Permission) - PLATFORM_PERMISSIONS

    def test_only_super_admin_bypasses_isolation(self):
        holders = {role for role in Role if Permission.PLATFORM_FULL_ACCESS in get_permissions(role)}
        assert holders == {Role.SUPER_ADMIN}

    def test_lower_level_is_subset_of_higher_level(self):
        for lower, lower_info in ROLES.items():
            for higher, higher_info in ROLES.items():
                if lower_info.level < higher_info.level:
                    assert get_permissions(lower) <= get_permissions(higher), (
                        f"{lower.value} should be a subset of {higher.value}"
                    )

    def test_equal_levels_do_not_inherit_from_each_other(self):
        assert Permission.VENDORS_INVITE in get_permissions(Role.PM)
        assert Permission.VENDORS_INVITE not in get_permissions(Role.ESTIMATOR)

    def test_inherited_grants_reach_higher_roles(self):
        # Declared for estimator and pm, inherited by general_manager
        assert Permission.ESTIMATES_CREATE not in ROLE_GRANTS[Role.GENERAL_MANAGER]
        assert Permission.ESTIMATES_CREATE in get_permissions(Role.GENERAL_MANAGER)

    def test_viewer_is_read_only(self):
        viewer = get_permissions(Role.VIEWER)
        assert Permission.ESTIMATES_READ_TEAM in viewer
        assert Permission.ESTIMATES_CREATE not in viewer
        assert Permission.ESTIMATES_UPDATE_ANY not in viewer

    def test_admin_only_permissions(self):
        assert Permission.SETTINGS_MANAGE_BILLING in get_permissions(Role.ADMIN)
        assert Permission.SETTINGS_MANAGE_BILLING not in get_permissions(Role.GENERAL_MANAGER)
        assert Permission.ESTIMATES_DELETE_ANY not in get_permissions(Role.GENERAL_MANAGER)

    def test_unknown_role_has_no_permissions(self):
        assert get_permissions("owner") == frozenset()
        assert get_permissions(None) == frozenset()

    def test_string_role_resolves(self):
        assert get_permissions("qa_manager") == get_permissions(Role.QA_MANAGER)

    def test_has_permission_agrees_with_table(self):
        for role in Role:
            for permission in Permission:
                assert has_permission(role, permission) == (permission in get_permissions(role))


class TestRoleTableValidation:
    """The effective table is checked when the module is imported"""

    def test_current_table_is_valid(self):
        validate_role_permissions(ROLE_PERMISSIONS)

    def test_missing_role_rejected(self):
        table = dict(ROLE_PERMISSIONS)
        del table[Role.VIEWER]
        with pytest.raises(RoleConfigurationError, match="viewer"):
            validate_role_permissions(table)

    def test_platform_leak_rejected(self):
        table = dict(ROLE_PERMISSIONS)
        table[Role.ADMIN] = table[Role.ADMIN] | {Permission.PLATFORM_FULL_ACCESS}
        with pytest.raises(RoleConfigurationError, match="platform"):
            validate_role_permissions(table)

    def test_inheritance_gap_rejected(self):
        table = dict(ROLE_PERMISSIONS)
        table[Role.QA_MANAGER] = table[Role.QA_MANAGER] - {Permission.ESTIMATES_READ_TEAM}
        with pytest.raises(RoleConfigurationError, match="qa_manager"):
            validate_role_permissions(table)

    def test_build_effective_permissions_applies_inheritance(self):
        grants = {role: frozenset() for role in Role}
        grants[Role.VIEWER] = frozenset({Permission.SETTINGS_VIEW})
        effective = build_effective_permissions(grants)
        assert all(Permission.SETTINGS_VIEW in effective[role] for role in Role)


# =============================================================================
# MERGING AND OVERRIDES
# =============================================================================

class TestMergePermissions:

    def test_union_of_sources(self):
        merged = merge_permissions(
            [Permission.ESTIMATES_CREATE],
            {"vendors.invite"},
        )
        assert merged == frozenset({Permission.ESTIMATES_CREATE, Permission.VENDORS_INVITE})

    def test_unknown_entries_dropped(self):
        assert merge_permissions(["estimates.fly", None], []) == frozenset()

    def test_empty_sources(self):
        assert merge_permissions() == frozenset()
        assert merge_permissions(None, []) == frozenset()


class TestPermissionOverrides:
    """organization_members.permissions overrides"""

    def test_no_overrides_returns_role_defaults(self):
        assert apply_permission_overrides(Role.VIEWER, None) == get_permissions(Role.VIEWER)
        assert apply_permission_overrides(Role.VIEWER, {}) == get_permissions(Role.VIEWER)

    def test_add_and_remove(self):
        result = apply_permission_overrides(Role.ESTIMATOR, {
            "add": ["vendors.invite"],
            "remove": ["estimates.export"],
        })
        assert Permission.VENDORS_INVITE in result
        assert Permission.ESTIMATES_EXPORT not in result

    def test_add_wins_over_remove_for_same_permission(self):
        result = apply_permission_overrides(Role.VIEWER, {
            "add": ["vendors.view"],
            "remove": ["vendors.view"],
        })
        assert Permission.VENDORS_VIEW in result

    def test_platform_permissions_cannot_be_added(self):
        result = apply_permission_overrides(Role.ADMIN, {"add": ["platform.full_access"]})
        assert Permission.PLATFORM_FULL_ACCESS not in result

    def test_unknown_role_gets_nothing_from_overrides(self):
        assert apply_permission_overrides("intern", {"add": ["settings.view"]}) == frozenset()
        assert apply_permission_overrides(None, {"add": ["estimates.create"]}) == frozenset()

    @pytest.mark.parametrize("overrides", [
        ["estimates.create"],
        {"add": "estimates.create"},
        {"add": 5},
        "estimates.create",
    ])
    def test_malformed_overrides_ignored(self, overrides):
        assert apply_permission_overrides(Role.VIEWER, overrides) == get_permissions(Role.VIEWER)
