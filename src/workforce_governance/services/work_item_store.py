"""WorkItem storage: load, create, save with optimistic concurrency."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from workforce_governance.governance.errors import NotFound, StaleState, StorageUnavailable
from workforce_governance.models import Contribution, Payout, WorkItem, WorkItemKind

logger = logging.getLogger(__name__)


class WorkItemStore:
    """Session-scoped access to work items and their shares.

    save() flushes only; the caller owns the transaction. A flush that
    finds the row's version moved on raises StaleState.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        kind: WorkItemKind | str,
        owner_id: str,
        description: str | None = None,
        rate: Decimal | int | str = Decimal("0"),
        collaborator_ids: Iterable[str] = (),
    ) -> WorkItem:
        """Insert a new item with first-line unset and final pending."""
        item = WorkItem(
            kind=WorkItemKind(kind).value,
            owner_id=owner_id,
            description=description,
            rate=Decimal(str(rate)),
            collaborator_ids=[
                c for c in dict.fromkeys(str(c) for c in collaborator_ids) if c != owner_id
            ],
        )
        self.session.add(item)
        await self.save(item)
        return item

    async def get(self, work_item_id: UUID) -> WorkItem | None:
        """Fetch a fresh copy of an item, or None."""
        result = await self._execute(
            select(WorkItem)
            .where(WorkItem.work_item_id == work_item_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def load(self, work_item_id: UUID) -> WorkItem:
        """Fetch an item, raising NotFound if the id is unknown."""
        item = await self.get(work_item_id)
        if item is None:
            raise NotFound(f"Work item {work_item_id} does not exist", work_item_id=work_item_id)
        return item

    async def save(self, item: WorkItem) -> None:
        """Flush pending changes to the item."""
        # A failed flush expires the instance, so read the id up front
        work_item_id = item.work_item_id
        try:
            await self.session.flush()
        except StaleDataError as exc:
            raise StaleState(
                "Work item was changed by a concurrent operation",
                work_item_id=work_item_id,
            ) from exc
        except (SQLAlchemyError, OSError) as exc:
            raise StorageUnavailable("Work item storage is unavailable", error=exc) from exc

    async def contributions_for(self, work_item_id: UUID) -> list[Contribution]:
        """Contributions of an item in insertion order."""
        result = await self._execute(
            select(Contribution)
            .where(Contribution.work_item_id == work_item_id)
            .order_by(Contribution.created_at, Contribution.collaborator_id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def load_contribution(self, contribution_id: UUID) -> Contribution:
        """Fetch a contribution, raising NotFound if the id is unknown."""
        result = await self._execute(
            select(Contribution)
            .where(Contribution.contribution_id == contribution_id)
            .execution_options(populate_existing=True)
        )
        contribution = result.scalar_one_or_none()
        if contribution is None:
            raise NotFound(
                f"Contribution {contribution_id} does not exist",
                contribution_id=contribution_id,
            )
        return contribution

    async def payouts_for(self, work_item_id: UUID) -> list[Payout]:
        """Payout rows of an item."""
        result = await self._execute(
            select(Payout)
            .where(Payout.work_item_id == work_item_id)
            .order_by(Payout.created_at, Payout.collaborator_id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _execute(self, statement):
        try:
            return await self.session.execute(statement)
        except (SQLAlchemyError, OSError) as exc:
            raise StorageUnavailable("Work item storage is unavailable", error=exc) from exc
