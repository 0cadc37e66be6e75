"""ORM models for work items, contributions, payouts and the audit log."""

from workforce_governance.models.audit import ActionKind, AuditEvent, AuditImmutableError
from workforce_governance.models.base import Base, TimestampMixin, utcnow
from workforce_governance.models.work_item import (
    Contribution,
    Payout,
    PayoutStatus,
    WorkItem,
    WorkItemKind,
)

__all__ = [
    "ActionKind",
    "AuditEvent",
    "AuditImmutableError",
    "Base",
    "Contribution",
    "Payout",
    "PayoutStatus",
    "TimestampMixin",
    "WorkItem",
    "WorkItemKind",
    "utcnow",
]
