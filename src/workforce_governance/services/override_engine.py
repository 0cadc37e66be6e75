"""Override engine - resolve items stuck in the conflict state.

An item is in conflict when first-line rejected it and final status is
still pending. Only actors carrying the override capability may resolve
it, and the supreme tier must always say why.

Outcome of a resolution:
- supreme tier reversing the first-line decision: final becomes overridden
- anyone else, or a supreme actor upholding the rejection: final takes the
  resolution directly (approved or rejected)

Either way first-line takes the resolution and one "override" audit event
records the previous first-line value, the resolution and the reasoning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from workforce_governance.governance.authority import Actor, Capability
from workforce_governance.governance.errors import IllegalTransition, UnauthorizedRole
from workforce_governance.governance.policy import require_justification
from workforce_governance.governance.transitions import (
    FinalStatus,
    FirstLineStatus,
    StatusTransitionTable,
    Track,
)
from workforce_governance.models import ActionKind, WorkItem
from workforce_governance.models.base import utcnow
from workforce_governance.services.approval_engine import ApprovalEngine
from workforce_governance.services.notifications import TransitionNotice

logger = logging.getLogger(__name__)

RESOLUTIONS = frozenset({FirstLineStatus.APPROVED, FirstLineStatus.REJECTED})


@dataclass(frozen=True)
class OverrideRequest:
    """Request to resolve a conflicted work item."""

    actor: Actor
    work_item_id: UUID
    resolution: str
    justification: str | None = None


class OverrideEngine(ApprovalEngine):
    """Approval engine that can also resolve conflicts."""

    async def override(self, request: OverrideRequest) -> WorkItem:
        """Resolve a conflicted item; all-or-nothing."""

        async def body():
            return await self._override(request)

        return await self._atomic("override", request.work_item_id, body)

    async def _override(self, request: OverrideRequest) -> tuple[WorkItem, TransitionNotice]:
        actor = request.actor
        authority = actor.authority
        resolution = self._parse_resolution(request.resolution)
        item = await self.store.load(request.work_item_id)

        if not authority.can(Capability.OVERRIDE):
            raise UnauthorizedRole(
                f"{authority.display_name} lacks the override capability",
                work_item_id=item.work_item_id,
                role=actor.role,
                required_capability=Capability.OVERRIDE,
            )
        justification = require_justification(authority, request.justification, ActionKind.OVERRIDE.value)

        if not item.in_conflict:
            raise IllegalTransition(
                "Only items rejected at first line with final status pending can be overridden",
                work_item_id=item.work_item_id,
                first_line_status=item.first_line_status,
                final_status=item.final_status,
            )

        previous_first_line = item.first_line_status
        previous_final = item.final_status
        target = self.final_status_for(actor, previous_first_line, resolution)

        rule = StatusTransitionTable.rule_for(Track.FINAL, target)
        if rule is None or not rule.permits(actor.role):
            raise UnauthorizedRole(
                f"{authority.display_name} may not set final status to '{target.value}'",
                work_item_id=item.work_item_id,
                role=actor.role,
                tier=authority.tier,
            )
        StatusTransitionTable.validate_transition(Track.FINAL, previous_final, target)

        previous_outcome = item.effective_outcome
        now = utcnow()
        item.first_line_status = resolution.value
        item.final_status = target.value
        item.final_reviewed_by = actor.user_id
        item.final_reviewed_at = now
        item.final_reason = justification
        item.override_reason = justification
        if target == FinalStatus.OVERRIDDEN:
            item.override_resolution = resolution.value
        await self.store.save(item)

        await self.audit.append(
            item.work_item_id,
            ActionKind.OVERRIDE,
            actor,
            previous_value=previous_first_line,
            new_value=resolution.value,
            justification=justification,
            details={"final_status": target.value, "previous_final_status": previous_final},
        )
        await self._settle_payouts(item, previous_outcome)

        logger.info(
            "Work item %s overridden to %s (final %s) by %s (%s)",
            item.work_item_id, resolution.value, target.value, actor.user_id, actor.role.value,
        )
        return item, self._notice(item, ActionKind.OVERRIDE, actor, previous_first_line, resolution.value)

    @staticmethod
    def final_status_for(actor: Actor, first_line: str, resolution: FirstLineStatus) -> FinalStatus:
        """Final status an override by this actor produces."""
        if actor.authority.is_supreme and resolution != first_line:
            return FinalStatus.OVERRIDDEN
        return FinalStatus(resolution.value)

    @staticmethod
    def _parse_resolution(value: str) -> FirstLineStatus:
        try:
            resolution = FirstLineStatus(getattr(value, "value", value))
        except ValueError:
            resolution = None
        if resolution not in RESOLUTIONS:
            raise IllegalTransition(
                f"Override resolution must be approved or rejected, not '{value}'",
                resolution=value,
            )
        return resolution
