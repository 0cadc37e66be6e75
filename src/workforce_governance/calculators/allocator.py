"""Contribution allocator - split a shared work item's amount by weight.

Rules:
- No explicit weights: equal split (weight = 1/N each)
- Weights not summing to 1: normalized by their sum
- Weight 0 is legal (acknowledged, unpaid participation)
- Zero collaborators, negative weights, weights above 1, a mix of weighted
  and unweighted collaborators, or all-zero weights are invalid

Amounts are rounded down to the payout quantum and the leftover quanta
are handed out by largest remainder, so the allocation always sums to the
(quantized) total exactly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Protocol

from workforce_governance.governance.errors import InvalidAllocation

logger = logging.getLogger(__name__)

DEFAULT_QUANTUM = Decimal("0.01")
ONE = Decimal("1")
ZERO = Decimal("0")


class WeightedShare(Protocol):
    """Anything with a collaborator id and an optional weight."""

    collaborator_id: str
    weight: Any


@dataclass(frozen=True)
class ContributionShare:
    """Allocator input: one collaborator and their (optional) weight."""

    collaborator_id: str
    weight: Decimal | float | str | None = None


@dataclass(frozen=True)
class Allocation:
    """Allocator output: normalized weight and allocated amount."""

    collaborator_id: str
    weight: Decimal
    amount: Decimal


class ContributionAllocator:
    """Weighted split of a monetary total across collaborators."""

    def __init__(self, quantum: Decimal = DEFAULT_QUANTUM):
        if quantum <= 0:
            raise ValueError("quantum must be positive")
        self.quantum = quantum

    def allocate(
        self,
        total: Decimal | int | str,
        contributions: Iterable[WeightedShare],
    ) -> list[Allocation]:
        """Split total across contributions, preserving input order."""
        shares = list(contributions)
        if not shares:
            raise InvalidAllocation("At least one collaborator is required")

        total = self._quantize_total(total)
        weights = self.normalized_weights(shares)

        exact = [total * w for w in weights]
        floors = [amount.quantize(self.quantum, rounding=ROUND_DOWN) for amount in exact]
        leftover = int((total - sum(floors, ZERO)) / self.quantum)

        # Largest remainder first; ties keep input order
        by_remainder = sorted(
            range(len(shares)),
            key=lambda i: (exact[i] - floors[i], -i),
            reverse=True,
        )
        amounts = list(floors)
        for i in by_remainder[:leftover]:
            amounts[i] += self.quantum

        allocations = [
            Allocation(
                collaborator_id=str(share.collaborator_id),
                weight=weight,
                amount=amount,
            )
            for share, weight, amount in zip(shares, weights, amounts)
        ]
        logger.debug("Allocated %s across %d collaborators", total, len(allocations))
        return allocations

    def normalized_weights(self, shares: list[WeightedShare]) -> list[Decimal]:
        """Weights scaled to sum to 1 (equal split if none are assigned)."""
        if not shares:
            raise InvalidAllocation("At least one collaborator is required")

        raw = [_to_weight(share.weight, share.collaborator_id) for share in shares]
        assigned = [w is not None for w in raw]

        if not any(assigned):
            return [ONE / len(shares)] * len(shares)
        if not all(assigned):
            raise InvalidAllocation(
                "Weights must be assigned to every collaborator or to none",
                unweighted=[s.collaborator_id for s, a in zip(shares, assigned) if not a],
            )

        weight_sum = sum(raw, ZERO)
        if weight_sum == 0:
            raise InvalidAllocation("All contribution weights are zero; nothing to normalize")
        return [w / weight_sum for w in raw]

    def _quantize_total(self, total: Decimal | int | str) -> Decimal:
        try:
            total = Decimal(str(total))
        except InvalidOperation:
            raise InvalidAllocation(f"Total '{total}' is not a number") from None
        if not total.is_finite():
            raise InvalidAllocation(f"Total '{total}' is not finite")
        if total < 0:
            raise InvalidAllocation("Total must not be negative", total=total)
        return total.quantize(self.quantum, rounding=ROUND_HALF_UP)


def _to_weight(value: Any, collaborator_id: str) -> Decimal | None:
    if value is None:
        return None
    try:
        weight = Decimal(str(value))
    except InvalidOperation:
        raise InvalidAllocation(
            f"Weight '{value}' is not a number", collaborator_id=collaborator_id
        ) from None
    if not weight.is_finite() or weight < 0 or weight > 1:
        raise InvalidAllocation(
            "Contribution weight must be between 0 and 1",
            collaborator_id=collaborator_id,
            weight=weight,
        )
    return weight


def allocate(
    total: Decimal | int | str,
    contributions: Iterable[WeightedShare],
    quantum: Decimal = DEFAULT_QUANTUM,
) -> list[Allocation]:
    """Module-level shortcut for ContributionAllocator(quantum).allocate."""
    return ContributionAllocator(quantum).allocate(total, contributions)
