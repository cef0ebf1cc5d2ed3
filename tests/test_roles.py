"""
Role Registry Tests

Levels, lookups and fail-closed handling of unrecognized roles.
"""

import pytest

from xtmate_auth.roles import (
    LOWEST_ROLE_LEVEL,
    ORGANIZATION_ROLES,
    PLATFORM_ROLES,
    ROLES,
    Role,
    coerce_role,
    get_role_info,
    get_role_level,
    get_roles_at_or_below,
    get_roles_by_level,
)


class TestRoleRegistry:
    """Every role is registered with the documented level"""

    def test_all_roles_registered(self):
        assert set(ROLES) == set(Role)
        assert len(Role) == 9

    @pytest.mark.parametrize("role,level", [
        (Role.SUPER_ADMIN, 1000),
        (Role.ADMIN, 100),
        (Role.GENERAL_MANAGER, 90),
        (Role.QA_MANAGER, 80),
        (Role.ESTIMATOR, 70),
        (Role.PM, 70),
        (Role.PROJECT_ADMIN, 60),
        (Role.FIELD_STAFF, 50),
        (Role.VIEWER, 10),
    ])
    def test_role_levels(self, role, level):
        assert get_role_level(role) == level
        assert ROLES[role].level == level

    def test_super_admin_is_only_platform_role(self):
        assert PLATFORM_ROLES == frozenset({Role.SUPER_ADMIN})
        assert Role.SUPER_ADMIN not in ORGANIZATION_ROLES
        assert PLATFORM_ROLES | ORGANIZATION_ROLES == frozenset(Role)

    def test_role_info_is_immutable(self):
        info = get_role_info(Role.ADMIN)
        with pytest.raises(AttributeError):
            info.level = 5000

    def test_roles_by_level_is_descending(self):
        levels = [info.level for info in get_roles_by_level()]
        assert levels == sorted(levels, reverse=True)
        assert get_roles_by_level()[0].role == Role.SUPER_ADMIN


class TestRoleCoercion:
    """String values and unknown roles"""

    def test_string_value_resolves(self):
        assert coerce_role("estimator") == Role.ESTIMATOR
        assert coerce_role(" PM ") == Role.PM

    @pytest.mark.parametrize("value", ["owner", "", None, 42, "platform_admin"])
    def test_unknown_role_resolves_to_none(self, value):
        assert coerce_role(value) is None
        assert get_role_info(value) is None

    def test_unknown_role_gets_lowest_level(self):
        assert get_role_level("intern") == LOWEST_ROLE_LEVEL
        assert LOWEST_ROLE_LEVEL < min(info.level for info in ROLES.values())

    def test_roles_at_or_below(self):
        assert get_roles_at_or_below(70) == frozenset({
            Role.ESTIMATOR, Role.PM, Role.PROJECT_ADMIN, Role.FIELD_STAFF, Role.VIEWER,
        })
        assert get_roles_at_or_below(0) == frozenset()
