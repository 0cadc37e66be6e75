"""Contribution weights and their one-way verification."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Mapping
from uuid import UUID

from sqlalchemy import delete, update

from workforce_governance.calculators.allocator import (
    Allocation,
    ContributionAllocator,
    ContributionShare,
)
from workforce_governance.governance.authority import Actor, Capability
from workforce_governance.governance.errors import IllegalTransition, UnauthorizedRole
from workforce_governance.governance.transitions import FinalStatus
from workforce_governance.models import ActionKind, Contribution, Payout, PayoutStatus
from workforce_governance.models.base import utcnow
from workforce_governance.services.approval_engine import build_contributions
from workforce_governance.services.unit_of_work import TransactionalService

logger = logging.getLogger(__name__)


class ContributionService(TransactionalService):
    """Assign, verify and preview contribution shares of shared work items.

    Weights can be (re)assigned while final status is pending and nothing
    has been verified yet. Verification flips once and is never undone;
    repeating it is a no-op.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.allocator = ContributionAllocator(self.policy.payout_quantum)

    async def assign_weights(
        self,
        actor: Actor,
        work_item_id: UUID,
        weights: Mapping[str, Decimal | float | str],
    ) -> list[Contribution]:
        """Replace the weights of every participant on a shared item."""

        async def body():
            return await self._assign_weights(actor, work_item_id, weights), None

        return await self._atomic("assign_weights", work_item_id, body)

    async def _assign_weights(
        self,
        actor: Actor,
        work_item_id: UUID,
        weights: Mapping[str, Decimal | float | str],
    ) -> list[Contribution]:
        item = await self.store.load(work_item_id)
        if actor.user_id != item.owner_id and not actor.authority.can(Capability.FIRST_REVIEW):
            raise UnauthorizedRole(
                "Only the owner or a reviewer may assign contribution weights",
                work_item_id=work_item_id,
                role=actor.role,
            )
        if item.final_status != FinalStatus.PENDING:
            raise IllegalTransition(
                f"Weights are fixed once final status is '{item.final_status}'",
                work_item_id=work_item_id,
                final_status=item.final_status,
            )

        existing = await self.store.contributions_for(work_item_id)
        if any(c.verified for c in existing):
            raise IllegalTransition(
                "Weights cannot change after a contribution has been verified",
                work_item_id=work_item_id,
            )

        contributions = build_contributions(item, weights, self.allocator)
        await self.session.execute(
            delete(Contribution).where(Contribution.work_item_id == work_item_id)
        )
        self.session.add_all(contributions)
        await self.store.save(item)
        logger.info(
            "Weights assigned on %s by %s for %d participants",
            work_item_id, actor.user_id, len(contributions),
        )
        return contributions

    async def verify(self, actor: Actor, contribution_id: UUID) -> Contribution:
        """Mark a contribution verified and release its held payout."""

        async def lookup():
            return await self.store.load_contribution(contribution_id), None

        contribution = await self._atomic("verify", None, lookup)

        async def body():
            return await self._verify(actor, contribution_id), None

        return await self._atomic("verify", contribution.work_item_id, body)

    async def _verify(self, actor: Actor, contribution_id: UUID) -> Contribution:
        authority = actor.authority
        if not authority.can(Capability.VERIFY_CONTRIBUTIONS):
            raise UnauthorizedRole(
                f"{authority.display_name} may not verify contributions",
                contribution_id=contribution_id,
                role=actor.role,
                required_capability=Capability.VERIFY_CONTRIBUTIONS,
            )
        contribution = await self.store.load_contribution(contribution_id)
        if contribution.verified:
            return contribution

        contribution.verified = True
        contribution.verified_by = actor.user_id
        contribution.verified_at = utcnow()
        await self.session.execute(
            update(Payout)
            .where(
                Payout.contribution_id == contribution_id,
                Payout.status == PayoutStatus.HELD.value,
            )
            .values(status=PayoutStatus.RELEASED.value)
            .execution_options(synchronize_session=False)
        )
        await self.session.flush()

        await self.audit.append(
            contribution.work_item_id,
            ActionKind.CONTRIBUTION_VERIFICATION,
            actor,
            previous_value="unverified",
            new_value="verified",
            details={
                "contribution_id": str(contribution_id),
                "collaborator_id": contribution.collaborator_id,
            },
        )
        logger.info(
            "Contribution %s of %s verified by %s",
            contribution_id, contribution.collaborator_id, actor.user_id,
        )
        return contribution

    async def allocate_for(self, work_item_id: UUID, total: Decimal | str | None = None) -> list[Allocation]:
        """Preview the split of an item's rate (or a given total). Read-only."""
        item = await self.store.load(work_item_id)
        contributions = await self.store.contributions_for(work_item_id)
        shares = contributions or [ContributionShare(p) for p in item.participants]
        return self.allocator.allocate(item.rate if total is None else total, shares)
