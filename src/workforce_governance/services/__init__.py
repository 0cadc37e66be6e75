"""Governance services: storage, audit, engines."""

from workforce_governance.services.approval_engine import (
    ApprovalEngine,
    BatchRejection,
    BatchReviewResult,
    TransitionRequest,
)
from workforce_governance.services.audit_trail import AuditTrail, TimelineEntry
from workforce_governance.services.contribution_service import ContributionService
from workforce_governance.services.locking_service import EntityLockRegistry, entity_locks
from workforce_governance.services.notifications import TransitionNotice, TransitionNotifier
from workforce_governance.services.override_engine import OverrideEngine, OverrideRequest
from workforce_governance.services.work_item_store import WorkItemStore

__all__ = [
    "ApprovalEngine",
    "AuditTrail",
    "BatchRejection",
    "BatchReviewResult",
    "ContributionService",
    "EntityLockRegistry",
    "OverrideEngine",
    "OverrideRequest",
    "TimelineEntry",
    "TransitionNotice",
    "TransitionNotifier",
    "TransitionRequest",
    "WorkItemStore",
    "entity_locks",
]
