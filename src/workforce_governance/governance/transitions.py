"""Work item status transition table.

Two independent tracks per work item:

First-line track (team-lead stage):
- unset → approved | rejected
- rejected → unset (owner resubmission)
- approved is fixed; only an override changes it

Final track (administrative stage):
- pending → approved | rejected | overridden (overridden via override only)
- approved → finalized | overridden
- rejected → overridden
- finalized → overridden
- overridden is terminal

The table is closed-world: a transition that is not listed is rejected.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from workforce_governance.governance.authority import (
    LOWEST_TIER,
    Capability,
    Role,
    authority_of,
    tier_allows,
)
from workforce_governance.governance.errors import IllegalTransition


class Track(str, Enum):
    """Independent status tracks on a work item."""

    FIRST_LINE = "first_line"
    FINAL = "final"


class FirstLineStatus(str, Enum):
    """First-line (team-lead) decision values."""

    UNSET = "unset"
    APPROVED = "approved"
    REJECTED = "rejected"


class FinalStatus(str, Enum):
    """Final disposition values."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FINALIZED = "finalized"
    OVERRIDDEN = "overridden"


@dataclass(frozen=True)
class TransitionRule:
    """Who may cause a given target status.

    Attributes:
        capability: Capability the actor's role must carry.
        required_tier: Tier that owns the transition. None skips the tier
            check (owner actions such as resubmission).
        same_tier_allowed: Allow actors at exactly required_tier.
        owner_only: Only the item's owner may cause it.
    """

    capability: Capability
    required_tier: int | None
    same_tier_allowed: bool = False
    owner_only: bool = False

    def permits(self, role: Role | str) -> bool:
        """Check the role's capability and tier against this rule."""
        authority = authority_of(role)
        if not authority.can(self.capability):
            return False
        if self.required_tier is None:
            return True
        if not authority.hierarchical:
            return False
        return tier_allows(authority.tier, self.required_tier, self.same_tier_allowed)


# Revision requests reset the first-line track without being a table edge
REVISION_RULE = TransitionRule(Capability.FIRST_REVIEW, required_tier=LOWEST_TIER)

RATE_CHANGE_RULE = TransitionRule(Capability.MODIFY_RATES, required_tier=2)


class StatusTransitionTable:
    """Closed-world transition table for both tracks."""

    VALID_TRANSITIONS: dict[Track, dict[str, frozenset[str]]] = {
        Track.FIRST_LINE: {
            FirstLineStatus.UNSET: frozenset({FirstLineStatus.APPROVED, FirstLineStatus.REJECTED}),
            FirstLineStatus.REJECTED: frozenset({FirstLineStatus.UNSET}),
            FirstLineStatus.APPROVED: frozenset(),
        },
        Track.FINAL: {
            FinalStatus.PENDING: frozenset({
                FinalStatus.APPROVED,
                FinalStatus.REJECTED,
                FinalStatus.OVERRIDDEN,
            }),
            FinalStatus.APPROVED: frozenset({FinalStatus.FINALIZED, FinalStatus.OVERRIDDEN}),
            FinalStatus.REJECTED: frozenset({FinalStatus.OVERRIDDEN}),
            FinalStatus.FINALIZED: frozenset({FinalStatus.OVERRIDDEN}),
            FinalStatus.OVERRIDDEN: frozenset(),  # Terminal state
        },
    }

    # Who may cause each target status, per track
    TRANSITION_RULES: dict[Track, dict[str, TransitionRule]] = {
        Track.FIRST_LINE: {
            FirstLineStatus.APPROVED: TransitionRule(Capability.FIRST_REVIEW, required_tier=3),
            FirstLineStatus.REJECTED: TransitionRule(Capability.FIRST_REVIEW, required_tier=3),
            FirstLineStatus.UNSET: TransitionRule(
                Capability.SUBMIT_WORK, required_tier=None, owner_only=True
            ),
        },
        Track.FINAL: {
            FinalStatus.APPROVED: TransitionRule(Capability.FINAL_REVIEW, required_tier=2),
            FinalStatus.REJECTED: TransitionRule(Capability.FINAL_REVIEW, required_tier=2),
            FinalStatus.FINALIZED: TransitionRule(
                Capability.FINAL_REVIEW, required_tier=1, same_tier_allowed=True
            ),
            FinalStatus.OVERRIDDEN: TransitionRule(Capability.OVERRIDE, required_tier=1),
        },
    }

    # Edges that only the override operation may take
    OVERRIDE_ONLY: frozenset[tuple[Track, str, str]] = frozenset({
        (Track.FINAL, FinalStatus.PENDING, FinalStatus.OVERRIDDEN),
    })

    @classmethod
    def status_type(cls, track: Track) -> type[FirstLineStatus] | type[FinalStatus]:
        """Status enum for a track."""
        return FirstLineStatus if track == Track.FIRST_LINE else FinalStatus

    @classmethod
    def parse_status(cls, track: Track | str, value: str) -> FirstLineStatus | FinalStatus:
        """Parse a raw status for a track, rejecting values outside the table."""
        track = Track(track)
        try:
            return cls.status_type(track)(value)
        except ValueError:
            raise IllegalTransition(
                f"'{value}' is not a {track.value} status",
                track=track,
                status=value,
            ) from None

    @classmethod
    def allowed_transitions(cls, track: Track | str, current_status: str) -> frozenset[str]:
        """Statuses reachable from current_status on a track."""
        return cls.VALID_TRANSITIONS[Track(track)].get(current_status, frozenset())

    @classmethod
    def can_transition(cls, track: Track | str, from_status: str, to_status: str) -> bool:
        """Check if an edge exists in the table."""
        return to_status in cls.allowed_transitions(track, from_status)

    @classmethod
    def rule_for(cls, track: Track | str, target_status: str) -> TransitionRule | None:
        """Rule governing who may cause target_status, if any."""
        return cls.TRANSITION_RULES[Track(track)].get(target_status)

    @classmethod
    def transition_allowed_for(cls, track: Track | str, target_status: str, role: Role | str) -> bool:
        """Check whether a role may cause target_status on a track."""
        rule = cls.rule_for(track, target_status)
        if rule is None:
            return False
        return rule.permits(role)

    @classmethod
    def validate_transition(cls, track: Track | str, from_status: str, to_status: str) -> None:
        """Raise IllegalTransition if the edge is not in the table."""
        if not cls.can_transition(track, from_status, to_status):
            raise IllegalTransition(
                f"Cannot move {Track(track).value} status from '{_v(from_status)}' to '{_v(to_status)}'",
                track=track,
                from_status=from_status,
                to_status=to_status,
            )

    @classmethod
    def is_override_only(cls, track: Track | str, from_status: str, to_status: str) -> bool:
        """Check if the edge is reserved for the override operation."""
        return (Track(track), from_status, to_status) in cls.OVERRIDE_ONLY

    @classmethod
    def is_terminal(cls, track: Track | str, status: str) -> bool:
        """Check if no transitions leave this status."""
        return not cls.allowed_transitions(track, status)


def _v(status: str) -> str:
    return status.value if isinstance(status, Enum) else status
