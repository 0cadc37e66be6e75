"""Role authority table.

Single source of truth for what each role may do. Every engine consults
this table; nothing else decides capability or seniority.

Tiers:
- 0: supreme authority (general overseer only)
- 1: administrators (domain admins)
- 2: management (team leads, department heads)
- 3: operational (employees, traders)

Investor is parallel, not hierarchical: it carries capital capabilities
but never outranks any tier.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from workforce_governance.governance.errors import UnknownRole

SUPREME_TIER = 0
LOWEST_TIER = 3


class Role(str, Enum):
    """Role identifiers assigned by the identity collaborator."""

    EMPLOYEE = "employee"
    TRADER = "trader"
    TEAM_LEAD = "team_lead"
    DEPARTMENT_HEAD = "department_head"
    REPORT_ADMIN = "report_admin"
    FINANCE_HR_ADMIN = "finance_hr_admin"
    INVESTMENT_ADMIN = "investment_admin"
    USER_ADMIN = "user_admin"
    GENERAL_OVERSEER = "general_overseer"
    INVESTOR = "investor"


class Capability(str, Enum):
    """Boolean capabilities a role may carry."""

    SUBMIT_WORK = "submit_work"
    FIRST_REVIEW = "first_review"
    FINAL_REVIEW = "final_review"
    OVERRIDE = "override"
    MODIFY_RATES = "modify_rates"
    VERIFY_CONTRIBUTIONS = "verify_contributions"
    MANAGE_PAYROLL = "manage_payroll"
    MANAGE_INVESTMENTS = "manage_investments"
    MANAGE_USERS = "manage_users"
    VIEW_AUDIT_LOG = "view_audit_log"
    VIEW_OWN_RETURNS = "view_own_returns"


@dataclass(frozen=True)
class Authority:
    """Tier and capability set for one role."""

    role: Role
    tier: int
    capabilities: frozenset[Capability]
    display_name: str
    hierarchical: bool = True

    @property
    def is_supreme(self) -> bool:
        """True for the tier that must justify every governance action."""
        return self.hierarchical and self.tier == SUPREME_TIER

    def can(self, capability: Capability) -> bool:
        """Check a single capability."""
        return capability in self.capabilities


def _caps(*capabilities: Capability) -> frozenset[Capability]:
    return frozenset(capabilities)


_C = Capability

AUTHORITY_TABLE: dict[Role, Authority] = {
    Role.EMPLOYEE: Authority(
        Role.EMPLOYEE, 3,
        _caps(_C.SUBMIT_WORK, _C.VIEW_OWN_RETURNS),
        "Team Member",
    ),
    Role.TRADER: Authority(
        Role.TRADER, 3,
        _caps(_C.SUBMIT_WORK, _C.VIEW_OWN_RETURNS),
        "Trader",
    ),
    Role.TEAM_LEAD: Authority(
        Role.TEAM_LEAD, 2,
        _caps(_C.SUBMIT_WORK, _C.FIRST_REVIEW, _C.VERIFY_CONTRIBUTIONS, _C.VIEW_OWN_RETURNS),
        "Team Lead",
    ),
    Role.DEPARTMENT_HEAD: Authority(
        Role.DEPARTMENT_HEAD, 2,
        _caps(_C.FIRST_REVIEW, _C.VERIFY_CONTRIBUTIONS, _C.VIEW_AUDIT_LOG, _C.VIEW_OWN_RETURNS),
        "Department Head",
    ),
    Role.REPORT_ADMIN: Authority(
        Role.REPORT_ADMIN, 1,
        _caps(
            _C.FIRST_REVIEW, _C.FINAL_REVIEW, _C.OVERRIDE, _C.MODIFY_RATES,
            _C.VERIFY_CONTRIBUTIONS, _C.VIEW_AUDIT_LOG, _C.VIEW_OWN_RETURNS,
        ),
        "Report Administrator",
    ),
    Role.FINANCE_HR_ADMIN: Authority(
        Role.FINANCE_HR_ADMIN, 1,
        _caps(_C.MANAGE_PAYROLL, _C.VIEW_AUDIT_LOG, _C.VIEW_OWN_RETURNS),
        "Finance & HR Administrator",
    ),
    Role.INVESTMENT_ADMIN: Authority(
        Role.INVESTMENT_ADMIN, 1,
        _caps(_C.MANAGE_INVESTMENTS, _C.VIEW_AUDIT_LOG, _C.VIEW_OWN_RETURNS),
        "Investment Administrator",
    ),
    Role.USER_ADMIN: Authority(
        Role.USER_ADMIN, 1,
        _caps(_C.MANAGE_USERS, _C.VIEW_AUDIT_LOG, _C.VIEW_OWN_RETURNS),
        "User Administrator",
    ),
    Role.GENERAL_OVERSEER: Authority(
        Role.GENERAL_OVERSEER, SUPREME_TIER,
        frozenset(Capability) - {_C.SUBMIT_WORK},
        "General Overseer",
    ),
    Role.INVESTOR: Authority(
        Role.INVESTOR, LOWEST_TIER,
        _caps(_C.VIEW_OWN_RETURNS),
        "Investor",
        hierarchical=False,
    ),
}


def authority_of(role: Role | str) -> Authority:
    """Look up a role's authority, raising UnknownRole if it is not in the table."""
    try:
        return AUTHORITY_TABLE[Role(role)]
    except (ValueError, KeyError):
        raise UnknownRole(f"Role '{role}' is not in the authority table", role=role) from None


def tier_allows(actor_tier: int, required_tier: int, same_tier_allowed: bool = False) -> bool:
    """Check whether an actor's tier satisfies a transition's owning tier.

    Tier 0 satisfies any requirement. Otherwise the actor must be strictly
    senior (numerically lower), unless the rule allows same-tier action.
    """
    if actor_tier == SUPREME_TIER:
        return True
    if same_tier_allowed:
        return actor_tier <= required_tier
    return actor_tier < required_tier


def has_capability(role: Role | str, capability: Capability) -> bool:
    """Check whether a role carries a capability."""
    return authority_of(role).can(capability)


def roles_in_tier(tier: int) -> list[Role]:
    """All hierarchical roles sitting at a tier."""
    return [
        auth.role
        for auth in AUTHORITY_TABLE.values()
        if auth.tier == tier and auth.hierarchical
    ]


def can_modify_role(actor_role: Role | str, target_role: Role | str) -> bool:
    """Check whether an actor may change the assignment of another role.

    The supreme tier may modify anyone; everyone else only strictly junior
    hierarchical roles. Non-hierarchical roles modify nobody.
    """
    actor = authority_of(actor_role)
    target = authority_of(target_role)
    if not actor.hierarchical:
        return False
    return tier_allows(actor.tier, target.tier)


@dataclass(frozen=True)
class Actor:
    """Caller identity threaded explicitly into every engine call.

    Supplied by the identity collaborator; nothing here authenticates.
    """

    role: Role
    user_id: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", authority_of(self.role).role)
        if not self.user_id:
            raise ValueError("user_id is required")

    @property
    def authority(self) -> Authority:
        """Tier and capabilities of the actor's role."""
        return AUTHORITY_TABLE[self.role]
