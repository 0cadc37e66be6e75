"""Governance Command Line Interface.

Exposes the governance operations as request/response commands:
- submit, review, revise, resubmit, override, rate
- allocate-contributions, verify, allocate
- timeline, init-db

Exit codes map 1:1 to the rejection taxonomy (see RejectionKind.exit_code);
0 is success and 1 a usage error.

Usage:
    python -m workforce_governance.cli init-db
    python -m workforce_governance.cli submit --role employee --user u1 --rate 100
    python -m workforce_governance.cli review ITEM --role team_lead --user l1 --decision rejected
    python -m workforce_governance.cli override ITEM --role general_overseer --user o1 \\
        --resolution approved --justification "evidence provided"
    python -m workforce_governance.cli allocate --total 100 --weight a=0.5 --weight b=0.3
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from workforce_governance.calculators.allocator import ContributionAllocator, ContributionShare
from workforce_governance.config import get_settings
from workforce_governance.database import create_schema, get_engine, make_session_factory
from workforce_governance.governance.authority import Actor, Role
from workforce_governance.governance.errors import GovernanceError
from workforce_governance.services.approval_engine import TransitionRequest
from workforce_governance.services.audit_trail import AuditTrail
from workforce_governance.services.contribution_service import ContributionService
from workforce_governance.services.override_engine import OverrideEngine, OverrideRequest
from workforce_governance.services.work_item_store import WorkItemStore

logger = logging.getLogger(__name__)


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


def parse_decimal(s: str) -> Decimal:
    """Parse a decimal amount."""
    try:
        return Decimal(s)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"'{s}' is not a decimal amount") from None


def parse_weight(s: str) -> tuple[str, str]:
    """Parse collaborator=weight."""
    collaborator, sep, weight = s.partition("=")
    if not sep or not collaborator:
        raise argparse.ArgumentTypeError(f"expected COLLABORATOR=WEIGHT, got '{s}'")
    return collaborator, weight


def _plain(value: Any) -> str:
    return str(value)


def item_to_dict(item: Any) -> dict[str, Any]:
    """Printable view of a work item."""
    return {
        "work_item_id": str(item.work_item_id),
        "kind": item.kind,
        "owner_id": item.owner_id,
        "rate": str(item.rate),
        "collaborator_ids": list(item.collaborator_ids),
        "first_line_status": item.first_line_status,
        "final_status": item.final_status,
        "override_resolution": item.override_resolution,
        "effective_outcome": item.effective_outcome,
        "revision_count": item.revision_count,
    }


class GovernanceCli:
    """Governance Command Line Interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m workforce_governance.cli",
            description="Work item governance: approvals, overrides, contributions",
        )
        parser.add_argument(
            "--database-url",
            type=str,
            help="Database URL (default: $DATABASE_URL)",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser("init-db", help="Create the governance tables")

        # submit command
        submit = subparsers.add_parser("submit", help="Submit a report or task")
        self._add_actor_args(submit)
        submit.add_argument("--kind", choices=["report", "task"], default="report")
        submit.add_argument("--description", type=str)
        submit.add_argument("--rate", type=parse_decimal, default=Decimal("0"))
        submit.add_argument(
            "--collaborator",
            action="append",
            default=[],
            help="Collaborator id (repeatable)",
        )
        submit.add_argument(
            "--weight",
            action="append",
            type=parse_weight,
            default=[],
            help="COLLABORATOR=WEIGHT (repeatable; include the owner)",
        )

        # review command
        review = subparsers.add_parser("review", help="Apply a first-line or final decision")
        review.add_argument("work_item_id", type=parse_uuid)
        self._add_actor_args(review)
        review.add_argument("--track", choices=["first_line", "final"], default="first_line")
        review.add_argument(
            "--decision",
            required=True,
            choices=["approved", "rejected", "finalized", "overridden"],
        )
        review.add_argument("--justification", type=str)

        # revise command
        revise = subparsers.add_parser("revise", help="Request a revision from the owner")
        revise.add_argument("work_item_id", type=parse_uuid)
        self._add_actor_args(revise)
        revise.add_argument("--note", type=str, required=True)

        # resubmit command
        resubmit = subparsers.add_parser("resubmit", help="Owner resubmits a rejected item")
        resubmit.add_argument("work_item_id", type=parse_uuid)
        self._add_actor_args(resubmit)

        # override command
        override = subparsers.add_parser("override", help="Resolve a conflicted item")
        override.add_argument("work_item_id", type=parse_uuid)
        self._add_actor_args(override)
        override.add_argument("--resolution", required=True, choices=["approved", "rejected"])
        override.add_argument("--justification", type=str)

        # rate command
        rate = subparsers.add_parser("rate", help="Change an item's rate")
        rate.add_argument("work_item_id", type=parse_uuid)
        self._add_actor_args(rate)
        rate.add_argument("--rate", type=parse_decimal, required=True)
        rate.add_argument("--justification", type=str)

        # allocate-contributions command
        contributions = subparsers.add_parser(
            "allocate-contributions",
            help="Assign contribution weights on a shared item",
        )
        contributions.add_argument("work_item_id", type=parse_uuid)
        self._add_actor_args(contributions)
        contributions.add_argument(
            "--weight",
            action="append",
            type=parse_weight,
            required=True,
            help="COLLABORATOR=WEIGHT (repeatable)",
        )

        # verify command
        verify = subparsers.add_parser("verify", help="Verify a contribution")
        verify.add_argument("contribution_id", type=parse_uuid)
        self._add_actor_args(verify)

        # timeline command
        timeline = subparsers.add_parser("timeline", help="Show a work item's audit history")
        timeline.add_argument("work_item_id", type=parse_uuid)

        # allocate command (pure calculation)
        allocate = subparsers.add_parser("allocate", help="Split a total by weight")
        allocate.add_argument("--total", type=str, required=True)
        allocate.add_argument(
            "--weight",
            action="append",
            type=parse_weight,
            default=[],
            help="COLLABORATOR=WEIGHT (repeatable)",
        )
        allocate.add_argument(
            "--collaborator",
            action="append",
            default=[],
            help="Collaborator id for an equal split (repeatable)",
        )

        return parser

    @staticmethod
    def _add_actor_args(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--role", required=True, help=f"One of: {', '.join(r.value for r in Role)}")
        parser.add_argument("--user", required=True, help="Acting user id")

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        # Dispatch to command handler
        handlers: dict[str, Callable[[argparse.Namespace], Any]] = {
            "init-db": self._cmd_init_db,
            "submit": self._cmd_submit,
            "review": self._cmd_review,
            "revise": self._cmd_revise,
            "resubmit": self._cmd_resubmit,
            "override": self._cmd_override,
            "rate": self._cmd_rate,
            "allocate-contributions": self._cmd_allocate_contributions,
            "verify": self._cmd_verify,
            "timeline": self._cmd_timeline,
            "allocate": self._cmd_allocate,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            result = handler(parsed)
            if asyncio.iscoroutine(result):
                result = asyncio.run(result)
        except GovernanceError as e:
            print(json.dumps({"error": e.to_dict()}, indent=2), file=sys.stderr)
            return e.kind.exit_code

        print(json.dumps(result, indent=2, default=_plain))
        return 0

    # ------------------------------------------------------------------
    # Session plumbing
    # ------------------------------------------------------------------

    async def _with_session(
        self,
        args: argparse.Namespace,
        work: Callable[[AsyncSession], Awaitable[Any]],
    ) -> Any:
        engine = get_engine(args.database_url or get_settings().database_url)
        try:
            async with make_session_factory(engine)() as session:
                return await work(session)
        finally:
            await engine.dispose()

    @staticmethod
    def _actor(args: argparse.Namespace) -> Actor:
        return Actor(role=args.role, user_id=args.user)

    @staticmethod
    def _engine(session: AsyncSession) -> OverrideEngine:
        return OverrideEngine(session, policy=get_settings().policy())

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def _cmd_init_db(self, args: argparse.Namespace) -> dict[str, Any]:
        """Create tables."""
        engine = get_engine(args.database_url or get_settings().database_url)
        try:
            await create_schema(engine)
        finally:
            await engine.dispose()
        return {"status": "initialized"}

    async def _cmd_submit(self, args: argparse.Namespace) -> dict[str, Any]:
        """Submit a work item."""
        actor = self._actor(args)

        async def work(session: AsyncSession) -> dict[str, Any]:
            item = await self._engine(session).submit(
                actor,
                kind=args.kind,
                description=args.description,
                rate=args.rate,
                collaborator_ids=args.collaborator,
                weights=dict(args.weight) or None,
            )
            return item_to_dict(item)

        return await self._with_session(args, work)

    async def _cmd_review(self, args: argparse.Namespace) -> dict[str, Any]:
        """Apply one transition."""
        request = TransitionRequest(
            actor=self._actor(args),
            work_item_id=args.work_item_id,
            track=args.track,
            target=args.decision,
            justification=args.justification,
        )

        async def work(session: AsyncSession) -> dict[str, Any]:
            return item_to_dict(await self._engine(session).apply(request))

        return await self._with_session(args, work)

    async def _cmd_revise(self, args: argparse.Namespace) -> dict[str, Any]:
        """Request a revision."""
        actor = self._actor(args)

        async def work(session: AsyncSession) -> dict[str, Any]:
            item = await self._engine(session).request_revision(actor, args.work_item_id, args.note)
            return item_to_dict(item)

        return await self._with_session(args, work)

    async def _cmd_resubmit(self, args: argparse.Namespace) -> dict[str, Any]:
        """Owner resubmission."""
        actor = self._actor(args)

        async def work(session: AsyncSession) -> dict[str, Any]:
            return item_to_dict(await self._engine(session).resubmit(actor, args.work_item_id))

        return await self._with_session(args, work)

    async def _cmd_override(self, args: argparse.Namespace) -> dict[str, Any]:
        """Resolve a conflict."""
        request = OverrideRequest(
            actor=self._actor(args),
            work_item_id=args.work_item_id,
            resolution=args.resolution,
            justification=args.justification,
        )

        async def work(session: AsyncSession) -> dict[str, Any]:
            return item_to_dict(await self._engine(session).override(request))

        return await self._with_session(args, work)

    async def _cmd_rate(self, args: argparse.Namespace) -> dict[str, Any]:
        """Change a rate."""
        actor = self._actor(args)

        async def work(session: AsyncSession) -> dict[str, Any]:
            item = await self._engine(session).change_rate(
                actor, args.work_item_id, args.rate, args.justification
            )
            return item_to_dict(item)

        return await self._with_session(args, work)

    async def _cmd_allocate_contributions(self, args: argparse.Namespace) -> dict[str, Any]:
        """Assign weights and show the split."""
        actor = self._actor(args)

        async def work(session: AsyncSession) -> dict[str, Any]:
            service = ContributionService(session, policy=get_settings().policy())
            contributions = await service.assign_weights(actor, args.work_item_id, dict(args.weight))
            allocations = await service.allocate_for(args.work_item_id)
            return {
                "work_item_id": str(args.work_item_id),
                "contributions": [
                    {
                        "contribution_id": str(c.contribution_id),
                        "collaborator_id": c.collaborator_id,
                        "weight": str(c.weight),
                    }
                    for c in contributions
                ],
                "allocations": [
                    {"collaborator_id": a.collaborator_id, "amount": str(a.amount)}
                    for a in allocations
                ],
            }

        return await self._with_session(args, work)

    async def _cmd_verify(self, args: argparse.Namespace) -> dict[str, Any]:
        """Verify a contribution."""
        actor = self._actor(args)

        async def work(session: AsyncSession) -> dict[str, Any]:
            service = ContributionService(session, policy=get_settings().policy())
            contribution = await service.verify(actor, args.contribution_id)
            return {
                "contribution_id": str(contribution.contribution_id),
                "collaborator_id": contribution.collaborator_id,
                "verified": contribution.verified,
                "verified_by": contribution.verified_by,
            }

        return await self._with_session(args, work)

    async def _cmd_timeline(self, args: argparse.Namespace) -> dict[str, Any]:
        """Show audit history."""

        async def work(session: AsyncSession) -> dict[str, Any]:
            await WorkItemStore(session).load(args.work_item_id)
            entries = await AuditTrail(session).describe(args.work_item_id)
            return {
                "work_item_id": str(args.work_item_id),
                "events": [
                    {"occurred_at": e.occurred_at.isoformat(), "action": e.action, "summary": e.summary}
                    for e in entries
                ],
            }

        return await self._with_session(args, work)

    def _cmd_allocate(self, args: argparse.Namespace) -> dict[str, Any]:
        """Split a total without touching storage."""
        shares = [ContributionShare(c, w) for c, w in args.weight]
        shares += [ContributionShare(c) for c in args.collaborator]
        allocator = ContributionAllocator(get_settings().payout_quantum)
        allocations = allocator.allocate(args.total, shares)
        return {
            "total": str(sum((a.amount for a in allocations), Decimal("0"))),
            "allocations": [
                {
                    "collaborator_id": a.collaborator_id,
                    "weight": str(a.weight),
                    "amount": str(a.amount),
                }
                for a in allocations
            ],
        }


def main() -> int:
    """CLI entry point."""
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    cli = GovernanceCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
