"""Tests for the role authority table."""

import pytest

from workforce_governance.governance import (
    AUTHORITY_TABLE,
    SUPREME_TIER,
    Actor,
    Capability,
    Role,
    UnknownRole,
    authority_of,
    can_modify_role,
    has_capability,
    roles_in_tier,
    tier_allows,
)


class TestAuthorityLookup:
    """Test authority_of and the static table."""

    def test_every_role_has_an_entry(self):
        """Each role maps to exactly one authority."""
        assert set(AUTHORITY_TABLE) == set(Role)
        for role, authority in AUTHORITY_TABLE.items():
            assert authority.role == role

    def test_lookup_by_string(self):
        """Raw role identifiers resolve like enum members."""
        assert authority_of("team_lead") is AUTHORITY_TABLE[Role.TEAM_LEAD]

    def test_unknown_role_raises(self):
        """Roles outside the table fail with UnknownRole."""
        with pytest.raises(UnknownRole) as exc_info:
            authority_of("janitor")

        assert exc_info.value.context["role"] == "janitor"

    def test_tiers(self):
        """Tiers follow the hierarchy: overseer, admins, management, operational."""
        assert authority_of(Role.GENERAL_OVERSEER).tier == SUPREME_TIER
        assert authority_of(Role.REPORT_ADMIN).tier == 1
        assert authority_of(Role.USER_ADMIN).tier == 1
        assert authority_of(Role.TEAM_LEAD).tier == 2
        assert authority_of(Role.DEPARTMENT_HEAD).tier == 2
        assert authority_of(Role.EMPLOYEE).tier == 3

    def test_only_overseer_is_supreme(self):
        supreme = [a.role for a in AUTHORITY_TABLE.values() if a.is_supreme]
        assert supreme == [Role.GENERAL_OVERSEER]

    def test_investor_is_not_hierarchical(self):
        """Investors carry capital capabilities but no review power."""
        investor = authority_of(Role.INVESTOR)
        assert investor.hierarchical is False
        assert investor.can(Capability.VIEW_OWN_RETURNS)
        assert not investor.can(Capability.FIRST_REVIEW)

    def test_capabilities(self):
        assert has_capability(Role.TEAM_LEAD, Capability.FIRST_REVIEW)
        assert not has_capability(Role.TEAM_LEAD, Capability.OVERRIDE)
        assert has_capability(Role.REPORT_ADMIN, Capability.OVERRIDE)
        assert not has_capability(Role.FINANCE_HR_ADMIN, Capability.OVERRIDE)
        assert not has_capability(Role.GENERAL_OVERSEER, Capability.SUBMIT_WORK)
        assert has_capability(Role.GENERAL_OVERSEER, Capability.OVERRIDE)


class TestTierAllows:
    """Test seniority comparison."""

    def test_supreme_satisfies_everything(self):
        for required in range(0, 4):
            assert tier_allows(0, required) is True

    def test_strictly_senior_required(self):
        assert tier_allows(1, 2) is True
        assert tier_allows(2, 2) is False
        assert tier_allows(3, 2) is False

    def test_same_tier_when_allowed(self):
        assert tier_allows(1, 1, same_tier_allowed=True) is True
        assert tier_allows(2, 1, same_tier_allowed=True) is False


class TestRoleHelpers:
    """Test roles_in_tier and can_modify_role."""

    def test_roles_in_tier(self):
        assert set(roles_in_tier(2)) == {Role.TEAM_LEAD, Role.DEPARTMENT_HEAD}
        assert Role.INVESTOR not in roles_in_tier(3)
        assert roles_in_tier(0) == [Role.GENERAL_OVERSEER]

    def test_can_modify_role(self):
        assert can_modify_role(Role.GENERAL_OVERSEER, Role.USER_ADMIN) is True
        assert can_modify_role(Role.USER_ADMIN, Role.TEAM_LEAD) is True
        assert can_modify_role(Role.USER_ADMIN, Role.REPORT_ADMIN) is False
        assert can_modify_role(Role.TEAM_LEAD, Role.USER_ADMIN) is False
        assert can_modify_role(Role.INVESTOR, Role.EMPLOYEE) is False


class TestActor:
    """Test the explicit actor value."""

    def test_role_is_normalized(self):
        actor = Actor("report_admin", "a-1")
        assert actor.role is Role.REPORT_ADMIN
        assert actor.authority.display_name == "Report Administrator"

    def test_unknown_role(self):
        with pytest.raises(UnknownRole):
            Actor("janitor", "j-1")

    def test_user_id_required(self):
        with pytest.raises(ValueError):
            Actor(Role.EMPLOYEE, "")
