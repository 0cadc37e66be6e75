"""Typed rejections for governance operations.

Every failure raised by the engines is a GovernanceError carrying:
- kind: the RejectionKind taxonomy value
- rule: the specific rule that failed, in words a caller can render
- context: structured details (item id, statuses, role)

Nothing in this module is retried internally. StorageUnavailable is the
only kind a caller may reasonably retry.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class RejectionKind(str, Enum):
    """Rejection taxonomy shared by the engines, API and CLI."""

    UNAUTHORIZED_ROLE = "unauthorized_role"
    ILLEGAL_TRANSITION = "illegal_transition"
    JUSTIFICATION_REQUIRED = "justification_required"
    STALE_STATE = "stale_state"
    INVALID_ALLOCATION = "invalid_allocation"
    NOT_FOUND = "not_found"
    STORAGE_UNAVAILABLE = "storage_unavailable"
    UNKNOWN_ROLE = "unknown_role"

    @property
    def exit_code(self) -> int:
        """Process exit code used by the CLI."""
        return _EXIT_CODES[self]


_EXIT_CODES: dict[RejectionKind, int] = {
    RejectionKind.UNAUTHORIZED_ROLE: 2,
    RejectionKind.NOT_FOUND: 3,
    RejectionKind.ILLEGAL_TRANSITION: 4,
    RejectionKind.JUSTIFICATION_REQUIRED: 5,
    RejectionKind.STALE_STATE: 6,
    RejectionKind.INVALID_ALLOCATION: 7,
    RejectionKind.STORAGE_UNAVAILABLE: 9,
    RejectionKind.UNKNOWN_ROLE: 10,
}


class GovernanceError(Exception):
    """Base class for all governance rejections."""

    kind: RejectionKind

    def __init__(self, rule: str, **context: Any):
        self.rule = rule
        self.context = context
        super().__init__(f"{self.kind.value}: {rule}")

    def to_dict(self) -> dict[str, Any]:
        """Structured form for API responses and logs."""
        return {
            "kind": self.kind.value,
            "rule": self.rule,
            "context": {k: _plain(v) for k, v in self.context.items()},
        }


class UnauthorizedRole(GovernanceError):
    """Actor's role lacks the capability or tier for the action."""

    kind = RejectionKind.UNAUTHORIZED_ROLE


class IllegalTransition(GovernanceError):
    """Requested status change is not in the transition table for the current state."""

    kind = RejectionKind.ILLEGAL_TRANSITION


class JustificationRequired(GovernanceError):
    """Actor's tier mandates a justification and none was supplied."""

    kind = RejectionKind.JUSTIFICATION_REQUIRED


class StaleState(GovernanceError):
    """The item moved on (final status left pending, or a concurrent write won)."""

    kind = RejectionKind.STALE_STATE


class InvalidAllocation(GovernanceError):
    """Contribution weights or totals cannot be allocated."""

    kind = RejectionKind.INVALID_ALLOCATION


class NotFound(GovernanceError):
    """Referenced work item or contribution does not exist."""

    kind = RejectionKind.NOT_FOUND


class StorageUnavailable(GovernanceError):
    """Underlying storage failed; the operation was not applied."""

    kind = RejectionKind.STORAGE_UNAVAILABLE


class UnknownRole(GovernanceError):
    """Role identifier is not in the authority table."""

    kind = RejectionKind.UNKNOWN_ROLE


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(_plain(v) for v in value)
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)
