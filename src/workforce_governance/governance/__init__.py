"""Governance rules: authority, transitions, policy and rejections."""

from workforce_governance.governance.authority import (
    AUTHORITY_TABLE,
    LOWEST_TIER,
    SUPREME_TIER,
    Actor,
    Authority,
    Capability,
    Role,
    authority_of,
    can_modify_role,
    has_capability,
    roles_in_tier,
    tier_allows,
)
from workforce_governance.governance.errors import (
    GovernanceError,
    IllegalTransition,
    InvalidAllocation,
    JustificationRequired,
    NotFound,
    RejectionKind,
    StaleState,
    StorageUnavailable,
    UnauthorizedRole,
    UnknownRole,
)
from workforce_governance.governance.policy import GovernancePolicy, require_justification
from workforce_governance.governance.transitions import (
    FinalStatus,
    FirstLineStatus,
    StatusTransitionTable,
    Track,
    TransitionRule,
)

__all__ = [
    # Authority
    "AUTHORITY_TABLE",
    "LOWEST_TIER",
    "SUPREME_TIER",
    "Actor",
    "Authority",
    "Capability",
    "Role",
    "authority_of",
    "can_modify_role",
    "has_capability",
    "roles_in_tier",
    "tier_allows",
    # Transitions
    "FinalStatus",
    "FirstLineStatus",
    "StatusTransitionTable",
    "Track",
    "TransitionRule",
    # Policy
    "GovernancePolicy",
    "require_justification",
    # Errors
    "GovernanceError",
    "IllegalTransition",
    "InvalidAllocation",
    "JustificationRequired",
    "NotFound",
    "RejectionKind",
    "StaleState",
    "StorageUnavailable",
    "UnauthorizedRole",
    "UnknownRole",
]
