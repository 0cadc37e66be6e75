"""Atomic, per-item operation runner shared by the governance services."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, TypeVar
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_governance.governance.errors import GovernanceError, StorageUnavailable
from workforce_governance.governance.policy import GovernancePolicy
from workforce_governance.services.audit_trail import AuditTrail
from workforce_governance.services.locking_service import EntityLockRegistry, entity_locks
from workforce_governance.services.notifications import TransitionNotice, TransitionNotifier
from workforce_governance.services.work_item_store import WorkItemStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

# An operation body returns its result plus an optional notice to send
OperationBody = Callable[[], Awaitable[tuple[T, "TransitionNotice | None"]]]


class TransactionalService:
    """Base for services whose every operation is all-or-nothing.

    Each operation runs inside the work item's exclusive section, commits
    on success and rolls the session back on any failure. Notices go out
    only after the commit.
    """

    def __init__(
        self,
        session: AsyncSession,
        policy: GovernancePolicy | None = None,
        notifier: TransitionNotifier | None = None,
        locks: EntityLockRegistry | None = None,
    ):
        self.session = session
        self.policy = policy or GovernancePolicy()
        self.notifier = notifier or TransitionNotifier()
        self.locks = locks or entity_locks
        self.store = WorkItemStore(session)
        self.audit = AuditTrail(session)

    async def _atomic(
        self, operation: str, work_item_id: UUID | None, body: OperationBody[T]
    ) -> T:
        if work_item_id is None:
            result, notice = await self._run(operation, work_item_id, body)
        else:
            async with self.locks.hold(work_item_id):
                result, notice = await self._run(operation, work_item_id, body)

        if notice is not None:
            await self.notifier.notify(notice)
        return result

    async def _run(
        self, operation: str, work_item_id: UUID | None, body: OperationBody[T]
    ) -> tuple[T, TransitionNotice | None]:
        try:
            result, notice = await body()
            await self.session.commit()
        except GovernanceError as exc:
            await self.session.rollback()
            logger.warning("Rejected %s on %s: %s", operation, work_item_id, exc)
            raise
        except (SQLAlchemyError, OSError) as exc:
            await self.session.rollback()
            logger.error("Storage failure during %s on %s: %s", operation, work_item_id, exc)
            raise StorageUnavailable(
                f"Storage failed during {operation}",
                work_item_id=work_item_id,
                error=exc,
            ) from exc
        except Exception:
            await self.session.rollback()
            raise
        return result, notice

    @staticmethod
    def _details(**values: Any) -> dict[str, Any]:
        return {k: v for k, v in values.items() if v is not None}
