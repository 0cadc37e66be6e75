"""Tests for transition notifications."""

from __future__ import annotations

from uuid import uuid4

import pytest

from workforce_governance.governance import Track, UnauthorizedRole
from workforce_governance.services import TransitionNotice, TransitionNotifier, TransitionRequest


def make_notice(**overrides):
    values = dict(
        work_item_id=uuid4(),
        action="final_decision",
        previous_value="pending",
        new_value="approved",
        actor_id="admin-1",
        actor_role="report_admin",
    )
    values.update(overrides)
    return TransitionNotice(**values)


class TestTransitionNotifier:
    """Test TransitionNotifier fan-out."""

    async def test_sync_and_async_handlers(self):
        notifier = TransitionNotifier()
        seen = []

        async def async_handler(notice):
            seen.append(("async", notice.action))

        notifier.on_all(lambda notice: seen.append(("sync", notice.action)))
        notifier.on_all(async_handler)

        errors = await notifier.notify(make_notice())

        assert errors == []
        assert seen == [("sync", "final_decision"), ("async", "final_decision")]

    async def test_failing_handler_is_isolated(self):
        notifier = TransitionNotifier()
        seen = []

        def broken(notice):
            raise ConnectionError("mail server down")

        notifier.on_all(broken)
        notifier.on_all(seen.append)

        errors = await notifier.notify(make_notice())

        assert len(errors) == 1
        assert isinstance(errors[0], ConnectionError)
        assert len(seen) == 1

    async def test_off(self):
        notifier = TransitionNotifier()
        handler = lambda notice: None  # noqa: E731
        notifier.on_all(handler)
        notifier.off(handler)
        assert notifier.handler_count == 0


class TestEngineNotifications:
    """Notices go out for final-track outcomes, after commit."""

    async def test_final_decision_notifies(self, governance, notifier, report, report_admin):
        received = []
        notifier.on_all(received.append)

        await governance.apply(TransitionRequest(report_admin, report.work_item_id, Track.FINAL, "approved"))

        assert len(received) == 1
        notice = received[0]
        assert notice.work_item_id == report.work_item_id
        assert notice.previous_value == "pending"
        assert notice.new_value == "approved"
        assert notice.details["owner_id"] == "worker-1"

    async def test_first_line_decision_is_silent(self, governance, notifier, report, team_lead):
        received = []
        notifier.on_all(received.append)

        await governance.apply(TransitionRequest(team_lead, report.work_item_id, Track.FIRST_LINE, "approved"))

        assert received == []

    async def test_handler_failure_keeps_transition(self, governance, notifier, store, report, report_admin):
        item_id = report.work_item_id

        def broken(notice):
            raise RuntimeError("webhook rejected")

        notifier.on_all(broken)

        item = await governance.apply(TransitionRequest(report_admin, item_id, Track.FINAL, "rejected"))

        assert item.final_status == "rejected"
        assert (await store.load(item_id)).final_status == "rejected"

    async def test_rejected_operation_sends_nothing(self, governance, notifier, report, team_lead):
        received = []
        notifier.on_all(received.append)

        with pytest.raises(UnauthorizedRole):
            await governance.apply(TransitionRequest(team_lead, report.work_item_id, Track.FINAL, "approved"))

        assert received == []
