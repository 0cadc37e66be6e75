"""Tests for the approval engine."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import update

from workforce_governance.database import create_schema, get_engine, make_session_factory
from workforce_governance.governance import (
    Actor,
    FinalStatus,
    FirstLineStatus,
    GovernancePolicy,
    IllegalTransition,
    InvalidAllocation,
    JustificationRequired,
    NotFound,
    Role,
    StaleState,
    StatusTransitionTable,
    StorageUnavailable,
    Track,
    UnauthorizedRole,
)
from workforce_governance.models import WorkItem
from workforce_governance.services import (
    ApprovalEngine,
    AuditTrail,
    EntityLockRegistry,
    OverrideEngine,
    TransitionRequest,
    WorkItemStore,
)


def first_line(actor, item_id, target, justification=None):
    return TransitionRequest(actor, item_id, Track.FIRST_LINE, target, justification)


def final(actor, item_id, target, justification=None):
    return TransitionRequest(actor, item_id, Track.FINAL, target, justification)


class TestSubmission:
    """Test work item submission."""

    async def test_submit_starts_unset_and_pending(self, governance, store, worker):
        """A worker submits a report."""
        item = await governance.submit(worker, kind="report", rate="120.5")
        loaded = await store.load(item.work_item_id)

        assert loaded.owner_id == worker.user_id
        assert loaded.first_line_status == FirstLineStatus.UNSET
        assert loaded.final_status == FinalStatus.PENDING
        assert loaded.rate == Decimal("120.50")
        assert loaded.revision_count == 0

    async def test_submission_is_audited(self, governance, session, worker):
        item = await governance.submit(worker, kind="task")
        events = await AuditTrail(session).timeline_for(item.work_item_id)

        assert [e.action for e in events] == ["submission"]
        assert events[0].new_value == "unset"
        assert events[0].actor_id == worker.user_id

    async def test_owner_is_not_a_collaborator(self, governance, worker, collaborator):
        item = await governance.submit(
            worker, collaborator_ids=[worker.user_id, collaborator.user_id, collaborator.user_id]
        )
        assert item.collaborator_ids == [collaborator.user_id]
        assert item.participants == [worker.user_id, collaborator.user_id]

    async def test_role_without_submit_capability(self, governance, investor):
        with pytest.raises(UnauthorizedRole):
            await governance.submit(investor)

    async def test_negative_rate_rejected(self, governance, worker):
        with pytest.raises(InvalidAllocation):
            await governance.submit(worker, rate="-5")

    async def test_weights_need_collaborators(self, governance, worker):
        with pytest.raises(InvalidAllocation):
            await governance.submit(worker, weights={worker.user_id: "1"})


class TestFirstLineDecisions:
    """Test the team-lead stage."""

    async def test_team_lead_approves(self, governance, store, report, team_lead):
        """First-line approved, final stays pending."""
        item_id = report.work_item_id
        item = await governance.apply(first_line(team_lead, item_id, "approved"))

        assert item.first_line_status == "approved"
        assert item.first_line_reviewed_by == team_lead.user_id
        assert item.final_status == "pending"
        loaded = await store.load(item_id)
        assert loaded.first_line_status == "approved"

    async def test_team_lead_rejects_into_conflict(self, governance, report, team_lead):
        """Rejection with a reason leaves the item in conflict."""
        item = await governance.apply(
            first_line(team_lead, report.work_item_id, "rejected", "incomplete evidence")
        )

        assert item.first_line_status == "rejected"
        assert item.first_line_reason == "incomplete evidence"
        assert item.final_status == "pending"
        assert item.in_conflict is True

    async def test_team_lead_cannot_set_final(self, governance, store, report, team_lead):
        item_id = report.work_item_id
        with pytest.raises(UnauthorizedRole) as exc_info:
            await governance.apply(final(team_lead, item_id, "approved"))

        assert exc_info.value.context["required_capability"] == "final_review"
        loaded = await store.load(item_id)
        assert loaded.final_status == "pending"

    async def test_worker_cannot_review(self, governance, report, worker):
        with pytest.raises(UnauthorizedRole):
            await governance.apply(first_line(worker, report.work_item_id, "approved"))

    async def test_approved_first_line_is_fixed(self, governance, report, team_lead):
        item_id = report.work_item_id
        await governance.apply(first_line(team_lead, item_id, "approved"))

        with pytest.raises(IllegalTransition):
            await governance.apply(first_line(team_lead, item_id, "rejected"))

    async def test_first_line_void_after_final(self, governance, report, team_lead, report_admin):
        """First-line decisions no longer apply once final left pending."""
        item_id = report.work_item_id
        await governance.apply(final(report_admin, item_id, "approved"))

        with pytest.raises(StaleState):
            await governance.apply(first_line(team_lead, item_id, "approved"))

    async def test_unknown_status(self, governance, report, team_lead):
        with pytest.raises(IllegalTransition):
            await governance.apply(first_line(team_lead, report.work_item_id, "maybe"))

    async def test_unknown_item(self, governance, team_lead):
        from uuid import uuid4

        with pytest.raises(NotFound):
            await governance.apply(first_line(team_lead, uuid4(), "approved"))


class TestFinalDecisions:
    """Test the administrative stage."""

    async def test_admin_approves_and_finalizes(self, governance, report, team_lead, report_admin):
        item_id = report.work_item_id
        await governance.apply(first_line(team_lead, item_id, "approved"))
        item = await governance.apply(final(report_admin, item_id, "approved"))
        assert item.final_status == "approved"
        assert item.effective_outcome == "approved"

        item = await governance.apply(final(report_admin, item_id, "finalized"))
        assert item.final_status == "finalized"
        assert item.effective_outcome == "approved"

    async def test_final_decision_without_first_line(self, governance, report, report_admin):
        item = await governance.apply(final(report_admin, report.work_item_id, "rejected", "duplicate"))
        assert item.final_status == "rejected"
        assert item.final_reason == "duplicate"

    async def test_conflict_must_go_through_override(self, governance, report, team_lead, report_admin):
        item_id = report.work_item_id
        await governance.apply(first_line(team_lead, item_id, "rejected"))

        with pytest.raises(IllegalTransition) as exc_info:
            await governance.apply(final(report_admin, item_id, "approved"))
        assert "override" in exc_info.value.rule

    async def test_pending_to_overridden_is_override_only(self, governance, report, overseer):
        with pytest.raises(IllegalTransition):
            await governance.apply(final(overseer, report.work_item_id, "overridden", "because"))

    async def test_overseer_overrides_settled_decision(self, governance, report, report_admin, overseer):
        item_id = report.work_item_id
        await governance.apply(final(report_admin, item_id, "approved"))

        item = await governance.apply(final(overseer, item_id, "overridden", "audit found fraud"))

        assert item.final_status == "overridden"
        assert item.override_resolution == "rejected"
        assert item.effective_outcome == "rejected"

    async def test_admin_cannot_produce_overridden(self, governance, report, report_admin):
        item_id = report.work_item_id
        await governance.apply(final(report_admin, item_id, "rejected"))

        with pytest.raises(UnauthorizedRole):
            await governance.apply(final(report_admin, item_id, "overridden", "second thoughts"))

    async def test_overridden_is_terminal(self, governance, report, report_admin, overseer):
        item_id = report.work_item_id
        await governance.apply(final(report_admin, item_id, "rejected"))
        await governance.apply(final(overseer, item_id, "overridden", "reinstated"))

        with pytest.raises(IllegalTransition):
            await governance.apply(final(overseer, item_id, "finalized", "closing"))


class TestJustificationRule:
    """The supreme tier must always justify."""

    async def test_overseer_without_justification(self, governance, store, report, overseer):
        item_id = report.work_item_id
        with pytest.raises(JustificationRequired):
            await governance.apply(final(overseer, item_id, "approved"))

        loaded = await store.load(item_id)
        assert loaded.final_status == "pending"

    async def test_blank_justification_counts_as_missing(self, governance, report, overseer):
        with pytest.raises(JustificationRequired):
            await governance.apply(final(overseer, report.work_item_id, "approved", "   "))

    async def test_overseer_with_justification(self, governance, report, overseer):
        item = await governance.apply(final(overseer, report.work_item_id, "approved", "meets the bar"))
        assert item.final_reason == "meets the bar"

    async def test_others_may_omit_justification(self, governance, report, report_admin):
        item = await governance.apply(final(report_admin, report.work_item_id, "approved"))
        assert item.final_reason is None

    @pytest.mark.parametrize("role", list(Role))
    @pytest.mark.parametrize("justification", [None, "reasoned"])
    async def test_apply_succeeds_iff_allowed_and_justified(
        self, governance, worker, role, justification
    ):
        """From a fresh item, a final approval goes through exactly when the
        table allows the role and the justification rule is met."""
        item = await governance.submit(worker)
        item_id = item.work_item_id
        actor = Actor(role, f"{role.value}-1")

        expected = StatusTransitionTable.transition_allowed_for(Track.FINAL, "approved", role) and (
            not actor.authority.is_supreme or justification is not None
        )
        try:
            await governance.apply(final(actor, item_id, "approved", justification))
            succeeded = True
        except (UnauthorizedRole, JustificationRequired):
            succeeded = False

        assert succeeded is expected


class TestRevisionAndResubmission:
    """Test the revision cycle."""

    async def test_request_revision(self, governance, session, report, team_lead):
        item_id = report.work_item_id
        item = await governance.request_revision(team_lead, item_id, "add the receipts")

        assert item.revision_count == 1
        assert item.revision_note == "add the receipts"
        assert item.first_line_status == "unset"
        events = await AuditTrail(session).timeline_for(item_id)
        assert events[-1].action == "revision_request"

    async def test_revision_after_rejection_clears_conflict(self, governance, report, team_lead):
        item_id = report.work_item_id
        await governance.apply(first_line(team_lead, item_id, "rejected"))
        item = await governance.request_revision(team_lead, item_id, "try again")

        assert item.first_line_status == "unset"
        assert item.in_conflict is False

    async def test_revision_counter_only_grows(self, governance, report, team_lead):
        item_id = report.work_item_id
        for expected in (1, 2, 3):
            item = await governance.request_revision(team_lead, item_id, f"round {expected}")
            assert item.revision_count == expected

    async def test_revision_needs_a_note(self, governance, report, team_lead):
        with pytest.raises(JustificationRequired):
            await governance.request_revision(team_lead, report.work_item_id, "")

    async def test_revision_of_approved_item(self, governance, report, team_lead):
        item_id = report.work_item_id
        await governance.apply(first_line(team_lead, item_id, "approved"))
        with pytest.raises(IllegalTransition):
            await governance.request_revision(team_lead, item_id, "changed my mind")

    async def test_revision_after_final(self, governance, report, team_lead, report_admin):
        item_id = report.work_item_id
        await governance.apply(final(report_admin, item_id, "rejected"))
        with pytest.raises(StaleState):
            await governance.request_revision(team_lead, item_id, "too late")

    async def test_revision_cap(self, session, worker, team_lead, notifier, locks):
        engine = ApprovalEngine(
            session, policy=GovernancePolicy(max_revisions=1), notifier=notifier, locks=locks
        )
        item = await engine.submit(worker)
        item_id = item.work_item_id
        await engine.request_revision(team_lead, item_id, "first")

        with pytest.raises(IllegalTransition) as exc_info:
            await engine.request_revision(team_lead, item_id, "second")
        assert exc_info.value.context["revision_count"] == 1

    async def test_worker_cannot_request_revision(self, governance, report, worker):
        with pytest.raises(UnauthorizedRole):
            await governance.request_revision(worker, report.work_item_id, "please")

    async def test_owner_resubmits(self, governance, session, report, worker, team_lead):
        item_id = report.work_item_id
        await governance.apply(first_line(team_lead, item_id, "rejected"))
        item = await governance.resubmit(worker, item_id)

        assert item.first_line_status == "unset"
        events = await AuditTrail(session).timeline_for(item_id)
        assert [e.action for e in events] == ["submission", "first_line_decision", "submission"]

    async def test_only_owner_resubmits(self, governance, report, team_lead, collaborator):
        item_id = report.work_item_id
        await governance.apply(first_line(team_lead, item_id, "rejected"))
        with pytest.raises(UnauthorizedRole):
            await governance.resubmit(collaborator, item_id)

    async def test_resubmit_requires_rejection(self, governance, report, worker):
        with pytest.raises(IllegalTransition):
            await governance.resubmit(worker, report.work_item_id)


class TestRateChange:
    """Test rate changes."""

    async def test_admin_changes_rate(self, governance, session, report, report_admin):
        item_id = report.work_item_id
        item = await governance.change_rate(report_admin, item_id, "150")

        assert item.rate == Decimal("150.00")
        events = await AuditTrail(session).timeline_for(item_id)
        assert events[-1].action == "rate_change"
        assert events[-1].previous_value == "100.00"
        assert events[-1].new_value == "150.00"

    async def test_team_lead_cannot_change_rate(self, governance, report, team_lead):
        with pytest.raises(UnauthorizedRole):
            await governance.change_rate(team_lead, report.work_item_id, "150")

    async def test_overseer_must_justify_rate_change(self, governance, report, overseer):
        with pytest.raises(JustificationRequired):
            await governance.change_rate(overseer, report.work_item_id, "150")

    async def test_negative_rate(self, governance, report, report_admin):
        with pytest.raises(InvalidAllocation):
            await governance.change_rate(report_admin, report.work_item_id, "-1")

    async def test_rate_frozen_after_finalize(self, governance, report, report_admin):
        item_id = report.work_item_id
        await governance.apply(final(report_admin, item_id, "approved"))
        await governance.apply(final(report_admin, item_id, "finalized"))

        with pytest.raises(IllegalTransition):
            await governance.change_rate(report_admin, item_id, "1")


class TestBulkReview:
    """Test review_many."""

    async def test_each_item_stands_alone(self, governance, store, worker, team_lead, report_admin):
        first = await governance.submit(worker)
        second = await governance.submit(worker)
        third = await governance.submit(worker)
        ids = [first.work_item_id, second.work_item_id, third.work_item_id]
        await governance.apply(final(report_admin, ids[1], "approved"))

        result = await governance.review_many(team_lead, ids, "approved")

        assert [i.work_item_id for i in result.succeeded] == [ids[0], ids[2]]
        assert len(result.rejected) == 1
        assert result.rejected[0].work_item_id == ids[1]
        assert isinstance(result.rejected[0].error, StaleState)
        assert result.all_succeeded is False
        assert (await store.load(ids[0])).first_line_status == "approved"
        assert (await store.load(ids[2])).first_line_status == "approved"

    async def test_rejection_first_keeps_later_results(self, governance, store, worker, team_lead, report_admin):
        blocked = await governance.submit(worker)
        open_item = await governance.submit(worker)
        await governance.apply(final(report_admin, blocked.work_item_id, "approved"))

        result = await governance.review_many(
            team_lead, [blocked.work_item_id, open_item.work_item_id], "rejected", "incomplete"
        )

        assert [r.work_item_id for r in result.rejected] == [blocked.work_item_id]
        assert len(result.succeeded) == 1
        assert result.succeeded[0].work_item_id == open_item.work_item_id
        assert result.succeeded[0].first_line_status == "rejected"
        assert result.succeeded[0].first_line_reason == "incomplete"
        assert (await store.load(blocked.work_item_id)).first_line_status == "unset"


class TestAtomicity:
    """Failures leave no partial mutation."""

    async def test_audit_failure_rolls_back(self, governance, session, store, report, team_lead):
        item_id = report.work_item_id

        async def failing_append(*args, **kwargs):
            raise StorageUnavailable("Audit event could not be recorded")

        governance.audit.append = failing_append

        with pytest.raises(StorageUnavailable):
            await governance.apply(first_line(team_lead, item_id, "approved"))

        loaded = await store.load(item_id)
        assert loaded.first_line_status == "unset"
        assert len(await AuditTrail(session).timeline_for(item_id)) == 1

    async def test_concurrent_change_is_stale(self, governance, session, store, report, team_lead):
        """A row changed between load and save is rejected, not overwritten."""
        item_id = report.work_item_id

        class RacingStore(WorkItemStore):
            async def load(self, work_item_id):
                item = await super().load(work_item_id)
                await self.session.execute(
                    update(WorkItem)
                    .where(WorkItem.work_item_id == work_item_id)
                    .values(row_version=WorkItem.row_version + 1)
                    .execution_options(synchronize_session=False)
                )
                return item

        governance.store = RacingStore(session)

        with pytest.raises(StaleState):
            await governance.apply(first_line(team_lead, item_id, "approved"))

        loaded = await store.load(item_id)
        assert loaded.first_line_status == "unset"
        assert len(await AuditTrail(session).timeline_for(item_id)) == 1

    async def test_simultaneous_decisions_one_wins(self, tmp_path, worker, team_lead):
        """Two sessions racing on one item: exactly one decision lands."""
        engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
        await create_schema(engine)
        factory = make_session_factory(engine)
        locks = EntityLockRegistry()
        other_lead = Actor(Role.DEPARTMENT_HEAD, "head-9")
        try:
            async with factory() as setup:
                item = await ApprovalEngine(setup, locks=locks).submit(worker)
                item_id = item.work_item_id

            async def decide(actor, target):
                async with factory() as session:
                    return await OverrideEngine(session, locks=locks).apply(
                        first_line(actor, item_id, target)
                    )

            results = await asyncio.gather(
                decide(team_lead, "approved"),
                decide(other_lead, "rejected"),
                return_exceptions=True,
            )

            successes = [r for r in results if not isinstance(r, Exception)]
            failures = [r for r in results if isinstance(r, Exception)]
            assert len(successes) == 1
            assert len(failures) == 1
            assert isinstance(failures[0], IllegalTransition)

            async with factory() as check:
                events = await AuditTrail(check).timeline_for(item_id)
                assert len(events) == 2
        finally:
            await engine.dispose()
