"""Approval engine - the single authorized mutator of work item status.

Every operation follows the same order:
1. Resolve the actor's authority and the rule for the requested change
2. Check capability and tier, then the justification rule
3. Check the item's current state against the transition table
4. Mutate, save, append one audit event, settle payouts
5. Commit; notify

Checks in 1-3 run before any mutation. A failure anywhere rolls the whole
operation back, including a failed audit append.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Mapping
from uuid import UUID

from sqlalchemy import delete

from workforce_governance.calculators.allocator import ContributionAllocator, ContributionShare
from workforce_governance.governance.authority import Actor, Capability
from workforce_governance.governance.errors import (
    GovernanceError,
    IllegalTransition,
    InvalidAllocation,
    JustificationRequired,
    StaleState,
    UnauthorizedRole,
)
from workforce_governance.governance.policy import require_justification
from workforce_governance.governance.transitions import (
    RATE_CHANGE_RULE,
    REVISION_RULE,
    FinalStatus,
    FirstLineStatus,
    StatusTransitionTable,
    Track,
    TransitionRule,
)
from workforce_governance.models import ActionKind, Contribution, Payout, PayoutStatus, WorkItem, WorkItemKind
from workforce_governance.models.base import utcnow
from workforce_governance.services.notifications import TransitionNotice
from workforce_governance.services.unit_of_work import TransactionalService

logger = logging.getLogger(__name__)

RATE_QUANTUM = Decimal("0.01")
WEIGHT_QUANTUM = Decimal("0.0001")

# Final statuses whose rate can no longer change
RATE_FROZEN = frozenset({FinalStatus.FINALIZED, FinalStatus.OVERRIDDEN})


@dataclass(frozen=True)
class TransitionRequest:
    """One requested status change. Never persisted; its audit event is."""

    actor: Actor
    work_item_id: UUID
    track: Track | str
    target: str
    justification: str | None = None


@dataclass(frozen=True)
class BatchRejection:
    """A per-item failure inside a bulk review."""

    work_item_id: UUID
    error: GovernanceError


@dataclass
class BatchReviewResult:
    """Outcome of review_many: what went through and what was refused."""

    succeeded: list[WorkItem] = field(default_factory=list)
    rejected: list[BatchRejection] = field(default_factory=list)

    @property
    def all_succeeded(self) -> bool:
        return not self.rejected


class ApprovalEngine(TransactionalService):
    """Applies transitions to work items.

    Operations:
    - submit: create a work item (first-line unset, final pending)
    - apply: one first-line or final transition from the table
    - request_revision: send a first-line decision back to the owner
    - resubmit: owner returns a rejected first-line decision to unset
    - change_rate: adjust the item's rate before it is frozen
    - review_many: one first-line decision over many items
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.allocator = ContributionAllocator(self.policy.payout_quantum)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(
        self,
        actor: Actor,
        kind: WorkItemKind | str = WorkItemKind.REPORT,
        description: str | None = None,
        rate: Decimal | int | str = Decimal("0"),
        collaborator_ids: Iterable[str] = (),
        weights: Mapping[str, Decimal | float | str] | None = None,
    ) -> WorkItem:
        """Create a work item owned by the actor."""

        async def body():
            return await self._submit(actor, kind, description, rate, collaborator_ids, weights)

        item = await self._atomic("submit", None, body)
        logger.info("Work item %s submitted by %s", item.work_item_id, actor.user_id)
        return item

    async def _submit(
        self,
        actor: Actor,
        kind: WorkItemKind | str,
        description: str | None,
        rate: Decimal | int | str,
        collaborator_ids: Iterable[str],
        weights: Mapping[str, Decimal | float | str] | None,
    ) -> tuple[WorkItem, None]:
        authority = actor.authority
        if not authority.can(Capability.SUBMIT_WORK):
            raise UnauthorizedRole(
                f"{authority.display_name} may not submit work",
                role=actor.role,
                required_capability=Capability.SUBMIT_WORK,
            )
        try:
            kind = WorkItemKind(_value(kind))
        except ValueError:
            raise IllegalTransition(f"'{kind}' is not a work item kind", kind=kind) from None
        rate = _parse_rate(rate)

        item = await self.store.create(
            kind=kind,
            owner_id=actor.user_id,
            description=description,
            rate=rate,
            collaborator_ids=collaborator_ids,
        )
        if weights:
            self.session.add_all(build_contributions(item, weights, self.allocator))
            await self.store.save(item)
        await self.audit.append(
            item.work_item_id,
            ActionKind.SUBMISSION,
            actor,
            previous_value=None,
            new_value=FirstLineStatus.UNSET.value,
            details=self._details(
                kind=item.kind,
                rate=str(item.rate),
                collaborators=item.collaborator_ids or None,
            ),
        )
        return item, None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def apply(self, request: TransitionRequest) -> WorkItem:
        """Apply one transition; all-or-nothing."""

        async def body():
            return await self._apply(request)

        return await self._atomic("apply", request.work_item_id, body)

    async def resubmit(
        self, actor: Actor, work_item_id: UUID, justification: str | None = None
    ) -> WorkItem:
        """Owner returns a rejected first-line decision to unset."""
        return await self.apply(
            TransitionRequest(
                actor=actor,
                work_item_id=work_item_id,
                track=Track.FIRST_LINE,
                target=FirstLineStatus.UNSET,
                justification=justification,
            )
        )

    async def review_many(
        self,
        actor: Actor,
        work_item_ids: Iterable[UUID],
        target: FirstLineStatus | str,
        justification: str | None = None,
    ) -> BatchReviewResult:
        """Apply one first-line decision to many items independently."""
        outcome = BatchReviewResult()
        succeeded: list[UUID] = []
        for work_item_id in work_item_ids:
            try:
                item = await self.apply(
                    TransitionRequest(
                        actor=actor,
                        work_item_id=work_item_id,
                        track=Track.FIRST_LINE,
                        target=target,
                        justification=justification,
                    )
                )
            except GovernanceError as e:
                outcome.rejected.append(BatchRejection(work_item_id, e))
            else:
                succeeded.append(work_item_id)
        # A rejection rolls the session back and expires earlier results
        outcome.succeeded = [await self.store.load(i) for i in succeeded]
        logger.info(
            "Bulk %s by %s: %d succeeded, %d rejected",
            _value(target),
            actor.user_id,
            len(outcome.succeeded),
            len(outcome.rejected),
        )
        return outcome

    async def _apply(self, request: TransitionRequest) -> tuple[WorkItem, TransitionNotice | None]:
        actor = request.actor
        track = Track(request.track)
        target = StatusTransitionTable.parse_status(track, _value(request.target))
        item = await self.store.load(request.work_item_id)

        rule = StatusTransitionTable.rule_for(track, target)
        if rule is None:
            raise IllegalTransition(
                f"No rule allows setting {track.value} status to '{target.value}'",
                work_item_id=item.work_item_id,
                track=track,
                to_status=target,
            )
        self._check_rule(rule, actor, item, track, target)

        action = _action_for(track, target)
        justification = require_justification(actor.authority, request.justification, action.value)

        if track == Track.FIRST_LINE:
            return await self._apply_first_line(item, actor, target, action, justification)
        return await self._apply_final(item, actor, target, action, justification)

    async def _apply_first_line(
        self,
        item: WorkItem,
        actor: Actor,
        target: FirstLineStatus,
        action: ActionKind,
        justification: str | None,
    ) -> tuple[WorkItem, None]:
        # First-line decisions are void once final status has left pending
        if item.final_status != FinalStatus.PENDING:
            raise StaleState(
                f"Final status is already '{item.final_status}'; first-line decisions no longer apply",
                work_item_id=item.work_item_id,
                final_status=item.final_status,
            )
        previous = item.first_line_status
        StatusTransitionTable.validate_transition(Track.FIRST_LINE, previous, target)

        item.first_line_status = target.value
        item.first_line_reviewed_by = actor.user_id
        item.first_line_reviewed_at = utcnow()
        item.first_line_reason = justification
        await self.store.save(item)

        await self.audit.append(
            item.work_item_id,
            action,
            actor,
            previous_value=previous,
            new_value=target.value,
            justification=justification,
        )
        logger.info(
            "Work item %s first-line %s -> %s by %s (%s)",
            item.work_item_id, previous, target.value, actor.user_id, actor.role.value,
        )
        return item, None

    async def _apply_final(
        self,
        item: WorkItem,
        actor: Actor,
        target: FinalStatus,
        action: ActionKind,
        justification: str | None,
    ) -> tuple[WorkItem, TransitionNotice]:
        previous = item.final_status
        if StatusTransitionTable.is_override_only(Track.FINAL, previous, target):
            raise IllegalTransition(
                f"'{previous}' -> '{target.value}' is only reachable through override",
                work_item_id=item.work_item_id,
                from_status=previous,
                to_status=target,
            )
        StatusTransitionTable.validate_transition(Track.FINAL, previous, target)
        if item.in_conflict:
            raise IllegalTransition(
                "First-line rejected this item; resolve the conflict through override",
                work_item_id=item.work_item_id,
                first_line_status=item.first_line_status,
                final_status=previous,
            )

        previous_outcome = item.effective_outcome
        item.final_status = target.value
        item.final_reviewed_by = actor.user_id
        item.final_reviewed_at = utcnow()
        item.final_reason = justification
        if target == FinalStatus.OVERRIDDEN:
            # Overriding a settled decision reverses its outcome
            item.override_resolution = (
                FinalStatus.REJECTED.value
                if previous_outcome == FinalStatus.APPROVED
                else FinalStatus.APPROVED.value
            )
            item.override_reason = justification
        await self.store.save(item)

        await self.audit.append(
            item.work_item_id,
            action,
            actor,
            previous_value=previous,
            new_value=target.value,
            justification=justification,
            details=self._details(outcome=item.effective_outcome),
        )
        await self._settle_payouts(item, previous_outcome)
        logger.info(
            "Work item %s final %s -> %s by %s (%s)",
            item.work_item_id, previous, target.value, actor.user_id, actor.role.value,
        )
        return item, self._notice(item, action, actor, previous, target.value)

    # ------------------------------------------------------------------
    # Revision and rate
    # ------------------------------------------------------------------

    async def request_revision(self, actor: Actor, work_item_id: UUID, note: str | None) -> WorkItem:
        """Return the first-line decision to unset with a note for the owner."""

        async def body():
            return await self._request_revision(actor, work_item_id, note)

        return await self._atomic("request_revision", work_item_id, body)

    async def _request_revision(
        self, actor: Actor, work_item_id: UUID, note: str | None
    ) -> tuple[WorkItem, None]:
        item = await self.store.load(work_item_id)
        if not REVISION_RULE.permits(actor.role):
            raise self._unauthorized(actor, REVISION_RULE, "request revisions")

        note = require_justification(actor.authority, note, ActionKind.REVISION_REQUEST.value)
        if note is None:
            raise JustificationRequired(
                "A revision request must tell the owner what to change",
                role=actor.role,
                action=ActionKind.REVISION_REQUEST,
            )
        if item.final_status != FinalStatus.PENDING:
            raise StaleState(
                f"Final status is already '{item.final_status}'; revisions no longer apply",
                work_item_id=item.work_item_id,
                final_status=item.final_status,
            )
        if item.first_line_status == FirstLineStatus.APPROVED:
            raise IllegalTransition(
                "An approved first-line decision only changes through override",
                work_item_id=item.work_item_id,
                first_line_status=item.first_line_status,
            )
        cap = self.policy.max_revisions
        if cap is not None and item.revision_count >= cap:
            raise IllegalTransition(
                f"Revision limit of {cap} reached",
                work_item_id=item.work_item_id,
                revision_count=item.revision_count,
            )

        previous = item.first_line_status
        item.first_line_status = FirstLineStatus.UNSET.value
        item.first_line_reviewed_by = actor.user_id
        item.first_line_reviewed_at = utcnow()
        item.first_line_reason = note
        item.revision_count += 1
        item.revision_note = note
        await self.store.save(item)

        await self.audit.append(
            item.work_item_id,
            ActionKind.REVISION_REQUEST,
            actor,
            previous_value=previous,
            new_value=FirstLineStatus.UNSET.value,
            justification=note,
            details={"revision_count": item.revision_count},
        )
        logger.info(
            "Revision %d requested on %s by %s", item.revision_count, item.work_item_id, actor.user_id
        )
        return item, None

    async def change_rate(
        self,
        actor: Actor,
        work_item_id: UUID,
        new_rate: Decimal | int | str,
        justification: str | None = None,
    ) -> WorkItem:
        """Change an item's rate until its final status freezes it."""

        async def body():
            return await self._change_rate(actor, work_item_id, new_rate, justification)

        return await self._atomic("change_rate", work_item_id, body)

    async def _change_rate(
        self,
        actor: Actor,
        work_item_id: UUID,
        new_rate: Decimal | int | str,
        justification: str | None,
    ) -> tuple[WorkItem, None]:
        item = await self.store.load(work_item_id)
        if not RATE_CHANGE_RULE.permits(actor.role):
            raise self._unauthorized(actor, RATE_CHANGE_RULE, "change rates")
        justification = require_justification(
            actor.authority, justification, ActionKind.RATE_CHANGE.value
        )
        rate = _parse_rate(new_rate)
        if item.final_status in RATE_FROZEN:
            raise IllegalTransition(
                f"Rate is frozen once final status is '{item.final_status}'",
                work_item_id=item.work_item_id,
                final_status=item.final_status,
            )

        previous = item.rate
        item.rate = rate
        await self.store.save(item)

        await self.audit.append(
            item.work_item_id,
            ActionKind.RATE_CHANGE,
            actor,
            previous_value=str(previous),
            new_value=str(rate),
            justification=justification,
        )
        if item.effective_outcome == FinalStatus.APPROVED:
            await self._settle_payouts(item, None)
        logger.info("Rate of %s changed %s -> %s by %s", item.work_item_id, previous, rate, actor.user_id)
        return item, None

    # ------------------------------------------------------------------
    # Payout step
    # ------------------------------------------------------------------

    async def _settle_payouts(self, item: WorkItem, previous_outcome: str | None) -> list[Payout]:
        """Bring payout rows in line with the item's outcome.

        An approved shared item gets one row per participant. Leaving the
        approved outcome removes them.
        """
        outcome = item.effective_outcome
        if not item.is_shared or outcome == previous_outcome:
            return []

        await self.session.execute(delete(Payout).where(Payout.work_item_id == item.work_item_id))
        if outcome != FinalStatus.APPROVED:
            await self.store.save(item)
            logger.info("Payouts of %s withdrawn (outcome %s)", item.work_item_id, outcome)
            return []

        contributions = await self.store.contributions_for(item.work_item_id)
        shares = contributions or [ContributionShare(p) for p in item.participants]
        by_collaborator = {c.collaborator_id: c for c in contributions}

        payouts = []
        for allocation in self.allocator.allocate(item.rate, shares):
            contribution = by_collaborator.get(allocation.collaborator_id)
            held = contribution is not None and not contribution.verified
            payouts.append(
                Payout(
                    work_item_id=item.work_item_id,
                    contribution_id=contribution.contribution_id if contribution else None,
                    collaborator_id=allocation.collaborator_id,
                    weight=allocation.weight.quantize(Decimal("1e-10")),
                    amount=allocation.amount,
                    status=(PayoutStatus.HELD if held else PayoutStatus.RELEASED).value,
                )
            )
        self.session.add_all(payouts)
        await self.store.save(item)
        logger.info("Payouts of %s settled across %d participants", item.work_item_id, len(payouts))
        return payouts

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_rule(
        self,
        rule: TransitionRule,
        actor: Actor,
        item: WorkItem,
        track: Track,
        target: FirstLineStatus | FinalStatus,
    ) -> None:
        if rule.owner_only and actor.user_id != item.owner_id:
            raise UnauthorizedRole(
                f"Only the owner may set {track.value} status to '{target.value}'",
                work_item_id=item.work_item_id,
                role=actor.role,
            )
        if not rule.permits(actor.role):
            raise self._unauthorized(actor, rule, f"set {track.value} status to '{target.value}'")

    @staticmethod
    def _unauthorized(actor: Actor, rule: TransitionRule, what: str) -> UnauthorizedRole:
        authority = actor.authority
        if not authority.can(rule.capability):
            reason = f"{authority.display_name} lacks the {rule.capability.value} capability to {what}"
        else:
            reason = f"{authority.display_name} (tier {authority.tier}) is not senior enough to {what}"
        return UnauthorizedRole(
            reason,
            role=actor.role,
            tier=authority.tier,
            required_capability=rule.capability,
            required_tier=rule.required_tier,
        )

    @staticmethod
    def _notice(
        item: WorkItem, action: ActionKind, actor: Actor, previous: str | None, new: str | None
    ) -> TransitionNotice:
        return TransitionNotice(
            work_item_id=item.work_item_id,
            action=action.value,
            previous_value=previous,
            new_value=new,
            actor_id=actor.user_id,
            actor_role=actor.role.value,
            details={"outcome": item.effective_outcome, "owner_id": item.owner_id},
        )


def build_contributions(
    item: WorkItem,
    weights: Mapping[str, Decimal | float | str],
    allocator: ContributionAllocator,
) -> list[Contribution]:
    """Validate weights for every participant and build contribution rows."""
    if not item.is_shared:
        raise InvalidAllocation(
            "Weights only apply to shared work items", work_item_id=item.work_item_id
        )
    participants = item.participants
    unknown = set(weights) - set(participants)
    if unknown:
        raise InvalidAllocation(
            "Weights were given for non-participants",
            work_item_id=item.work_item_id,
            unknown=unknown,
        )
    shares = [ContributionShare(p, weights.get(p)) for p in participants]
    # Raises on mixed, out-of-range or all-zero weights
    normalized = allocator.normalized_weights(shares)
    stored = [
        ContributionShare(
            share.collaborator_id,
            Decimal(str(share.weight if share.weight is not None else weight)).quantize(
                WEIGHT_QUANTUM, rounding=ROUND_HALF_UP
            ),
        )
        for share, weight in zip(shares, normalized)
    ]
    # Weights below the stored precision must not round down to all zero
    allocator.normalized_weights(stored)
    return [
        Contribution(
            work_item_id=item.work_item_id,
            collaborator_id=share.collaborator_id,
            weight=share.weight,
        )
        for share in stored
    ]


def _parse_rate(value: Decimal | int | str) -> Decimal:
    try:
        rate = Decimal(str(value))
    except InvalidOperation:
        raise InvalidAllocation(f"Rate '{value}' is not a number") from None
    if not rate.is_finite() or rate < 0:
        raise InvalidAllocation("Rate must be a non-negative amount", rate=value)
    return rate.quantize(RATE_QUANTUM, rounding=ROUND_HALF_UP)


def _action_for(track: Track, target: FirstLineStatus | FinalStatus) -> ActionKind:
    if track == Track.FIRST_LINE:
        if target == FirstLineStatus.UNSET:
            return ActionKind.SUBMISSION
        return ActionKind.FIRST_LINE_DECISION
    if target == FinalStatus.OVERRIDDEN:
        return ActionKind.OVERRIDE
    return ActionKind.FINAL_DECISION


def _value(status) -> str:
    return getattr(status, "value", status)


__all__ = [
    "ApprovalEngine",
    "BatchRejection",
    "BatchReviewResult",
    "TransitionRequest",
    "build_contributions",
]
