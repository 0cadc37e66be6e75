"""Payout calculators."""

from workforce_governance.calculators.allocator import (
    Allocation,
    ContributionAllocator,
    ContributionShare,
    allocate,
)

__all__ = [
    "Allocation",
    "ContributionAllocator",
    "ContributionShare",
    "allocate",
]
