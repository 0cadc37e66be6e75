"""Audit trail: append-only ledger and timeline reconstruction.

The audit_event table is the only authoritative history of a work item.
Timelines are always rebuilt from it; nothing caches a derived copy.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_governance.governance.authority import Actor, authority_of
from workforce_governance.governance.errors import StorageUnavailable, UnknownRole
from workforce_governance.models import ActionKind, AuditEvent

logger = logging.getLogger(__name__)

WORK_ITEM_ENTITY = "work_item"


@dataclass(frozen=True)
class TimelineEntry:
    """One human-readable step of an entity's history."""

    occurred_at: datetime
    action: str
    actor_id: str
    actor_label: str
    previous_value: str | None
    new_value: str | None
    justification: str | None

    @property
    def summary(self) -> str:
        """Single line such as 'Team Lead (lead-1): first line decision unset -> rejected'."""
        text = f"{self.actor_label} ({self.actor_id}): {self.action.replace('_', ' ')}"
        if self.previous_value is not None or self.new_value is not None:
            text += f" {self.previous_value or '-'} -> {self.new_value or '-'}"
        if self.justification:
            text += f' "{self.justification}"'
        return text

    @classmethod
    def from_event(cls, event: AuditEvent) -> TimelineEntry:
        try:
            label = authority_of(event.actor_role).display_name
        except UnknownRole:
            label = event.actor_role
        return cls(
            occurred_at=event.occurred_at,
            action=event.action,
            actor_id=event.actor_id,
            actor_label=label,
            previous_value=event.previous_value,
            new_value=event.new_value,
            justification=event.justification,
        )


class AuditTrail:
    """Insert and query audit events for one session.

    append() flushes immediately so a failed write surfaces inside the
    operation that caused it, never at commit time.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(
        self,
        entity_id: UUID,
        action: ActionKind | str,
        actor: Actor,
        previous_value: str | None = None,
        new_value: str | None = None,
        justification: str | None = None,
        details: dict[str, Any] | None = None,
        entity_type: str = WORK_ITEM_ENTITY,
    ) -> AuditEvent:
        """Record one governance action."""
        event = AuditEvent(
            entity_type=entity_type,
            entity_id=entity_id,
            action=ActionKind(action).value,
            previous_value=previous_value,
            new_value=new_value,
            actor_id=actor.user_id,
            actor_role=actor.role.value,
            justification=justification,
            details_json=details,
        )
        self.session.add(event)
        try:
            await self.session.flush()
        except (SQLAlchemyError, OSError) as exc:
            raise StorageUnavailable(
                "Audit event could not be recorded",
                entity_id=entity_id,
                action=action,
                error=exc,
            ) from exc
        logger.debug("Audit %s on %s by %s", event.action, entity_id, actor.user_id)
        return event

    async def timeline_for(self, entity_id: UUID) -> list[AuditEvent]:
        """Events of one entity, oldest first, ties in insertion order."""
        try:
            result = await self.session.execute(
                select(AuditEvent)
                .where(AuditEvent.entity_id == entity_id)
                .order_by(AuditEvent.occurred_at.asc(), AuditEvent.sequence.asc())
            )
        except (SQLAlchemyError, OSError) as exc:
            raise StorageUnavailable(
                "Audit history is unavailable", entity_id=entity_id, error=exc
            ) from exc
        return list(result.scalars().all())

    async def describe(self, entity_id: UUID) -> list[TimelineEntry]:
        """Human-readable timeline of one entity."""
        return [TimelineEntry.from_event(e) for e in await self.timeline_for(entity_id)]
