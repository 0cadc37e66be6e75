"""Governance policy: justification rule and tunable limits."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from workforce_governance.governance.authority import Authority
from workforce_governance.governance.errors import JustificationRequired


@dataclass(frozen=True)
class GovernancePolicy:
    """
    Explicit policy passed to the engines.

    Attributes:
        max_revisions: Cap on revision requests per item. None keeps the
            revision cycle unbounded. Default None.
        payout_quantum: Smallest monetary unit payouts are rounded to.
            Default 0.01.
    """

    max_revisions: int | None = None
    payout_quantum: Decimal = Decimal("0.01")

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.max_revisions is not None and self.max_revisions < 1:
            raise ValueError("max_revisions must be at least 1 or None")
        if self.payout_quantum <= 0:
            raise ValueError("payout_quantum must be positive")


def normalize_justification(text: str | None) -> str | None:
    """Strip whitespace; blank text counts as no justification."""
    if text is None:
        return None
    text = text.strip()
    return text or None


def require_justification(authority: Authority, justification: str | None, action: str) -> str | None:
    """Enforce the mandatory-justification rule for the supreme tier.

    Returns the normalized justification (None if absent and optional).
    Raises JustificationRequired when the actor is supreme-tier and gave
    no reasoning text.
    """
    normalized = normalize_justification(justification)
    if authority.is_supreme and normalized is None:
        raise JustificationRequired(
            f"{authority.display_name} must justify every {action}",
            role=authority.role,
            action=action,
        )
    return normalized
