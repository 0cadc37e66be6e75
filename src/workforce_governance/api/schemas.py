"""Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None


# ============================================================================
# Work item schemas
# ============================================================================


class WorkItemCreate(BaseModel):
    """Schema for submitting a work item."""

    kind: Literal["report", "task"] = "report"
    description: str | None = None
    rate: Decimal = Field(default=Decimal("0"), ge=0)
    collaborator_ids: list[str] = Field(default_factory=list)
    weights: dict[str, Decimal] | None = None


class WorkItemResponse(BaseModel):
    """Schema for work item response."""

    model_config = ConfigDict(from_attributes=True)

    work_item_id: UUID
    kind: str
    owner_id: str
    description: str | None = None
    rate: Decimal
    collaborator_ids: list[str]
    first_line_status: str
    first_line_reviewed_by: str | None = None
    first_line_reason: str | None = None
    final_status: str
    final_reviewed_by: str | None = None
    final_reason: str | None = None
    override_resolution: str | None = None
    override_reason: str | None = None
    effective_outcome: str | None = None
    in_conflict: bool
    revision_count: int
    revision_note: str | None = None
    created_at: datetime
    updated_at: datetime


# ============================================================================
# Review schemas
# ============================================================================


class ReviewRequest(BaseModel):
    """Approve, reject, finalize or request revision."""

    track: Literal["first_line", "final"] = "first_line"
    decision: Literal["approved", "rejected", "finalized", "overridden", "unset", "revision"]
    justification: str | None = None


class BulkReviewRequest(BaseModel):
    """One first-line decision over several items."""

    work_item_ids: list[UUID] = Field(min_length=1)
    decision: Literal["approved", "rejected"]
    justification: str | None = None


class BulkReviewRejection(BaseModel):
    """Per-item failure in a bulk review."""

    work_item_id: UUID
    error: ErrorResponse


class BulkReviewResponse(BaseModel):
    """Schema for bulk review response."""

    succeeded: list[WorkItemResponse]
    rejected: list[BulkReviewRejection]


class OverrideRequestBody(BaseModel):
    """Resolve a conflicted work item."""

    resolution: Literal["approved", "rejected"]
    justification: str | None = None


class RateChangeRequest(BaseModel):
    """Change a work item's rate."""

    rate: Decimal = Field(ge=0)
    justification: str | None = None


# ============================================================================
# Contribution schemas
# ============================================================================


class ContributionAssignment(BaseModel):
    """Weights for every participant of a shared item."""

    weights: dict[str, Decimal]


class ContributionResponse(BaseModel):
    """Schema for contribution response."""

    model_config = ConfigDict(from_attributes=True)

    contribution_id: UUID
    work_item_id: UUID
    collaborator_id: str
    weight: Decimal
    note: str | None = None
    verified: bool
    verified_by: str | None = None
    verified_at: datetime | None = None


class AllocationLine(BaseModel):
    """One collaborator's share of a total."""

    model_config = ConfigDict(from_attributes=True)

    collaborator_id: str
    weight: Decimal
    amount: Decimal


class PayoutResponse(BaseModel):
    """Stored payout row of an approved shared item."""

    model_config = ConfigDict(from_attributes=True)

    payout_id: UUID
    collaborator_id: str
    weight: Decimal
    amount: Decimal
    status: str


class AllocationResponse(BaseModel):
    """Contributions plus the split of the item's rate."""

    work_item_id: UUID
    total: Decimal
    contributions: list[ContributionResponse]
    allocations: list[AllocationLine]
    payouts: list[PayoutResponse] = Field(default_factory=list)


# ============================================================================
# Audit schemas
# ============================================================================


class AuditEventResponse(BaseModel):
    """Schema for one timeline step."""

    model_config = ConfigDict(from_attributes=True)

    audit_event_id: UUID
    action: str
    previous_value: str | None = None
    new_value: str | None = None
    actor_id: str
    actor_role: str
    justification: str | None = None
    occurred_at: datetime
    summary: str | None = None


class TimelineResponse(BaseModel):
    """Ordered history of a work item."""

    work_item_id: UUID
    events: list[AuditEventResponse]


# Shared OpenAPI error documentation for mutating endpoints
ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}
