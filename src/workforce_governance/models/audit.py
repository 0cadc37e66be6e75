"""Append-only audit event model.

Rows are inserted by the engines and never updated or deleted: the ORM
listeners below refuse both at flush time.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, DateTime, Index, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from workforce_governance.models.base import Base, utcnow


class ActionKind(str, Enum):
    """Audited governance actions."""

    SUBMISSION = "submission"
    FIRST_LINE_DECISION = "first_line_decision"
    FINAL_DECISION = "final_decision"
    REVISION_REQUEST = "revision_request"
    OVERRIDE = "override"
    RATE_CHANGE = "rate_change"
    CONTRIBUTION_VERIFICATION = "contribution_verification"


class AuditEvent(Base):
    """Immutable record of one governance action."""

    __tablename__ = "audit_event"

    # Insertion order breaks timestamp ties
    sequence: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    audit_event_id: Mapped[UUID] = mapped_column(unique=True, nullable=False, default=uuid4)
    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[UUID] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String, nullable=False)
    previous_value: Mapped[str | None] = mapped_column(String, nullable=True)
    new_value: Mapped[str | None] = mapped_column(String, nullable=True)
    actor_id: Mapped[str] = mapped_column(String, nullable=False)
    actor_role: Mapped[str] = mapped_column(String, nullable=False)
    justification: Mapped[str | None] = mapped_column(Text, nullable=True)
    details_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("audit_event_entity_idx", "entity_id", "occurred_at", "sequence"),
        CheckConstraint(
            "action IN ('submission', 'first_line_decision', 'final_decision', "
            "'revision_request', 'override', 'rate_change', 'contribution_verification')",
            name="audit_event_action_check",
        ),
    )


class AuditImmutableError(Exception):
    """Raised when code attempts to modify or delete an audit row."""


@event.listens_for(AuditEvent, "before_update")
def _refuse_update(mapper: Any, connection: Any, target: AuditEvent) -> None:
    raise AuditImmutableError(f"Audit event {target.audit_event_id} is append-only")


@event.listens_for(AuditEvent, "before_delete")
def _refuse_delete(mapper: Any, connection: Any, target: AuditEvent) -> None:
    raise AuditImmutableError(f"Audit event {target.audit_event_id} is append-only")
