"""Work item API endpoints: submit, review, override, allocate-contributions."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_governance.api.dependencies import CurrentActor, DbSession, Notifier, Policy
from workforce_governance.api.schemas import (
    ERROR_RESPONSES,
    AllocationLine,
    AllocationResponse,
    AuditEventResponse,
    BulkReviewRejection,
    BulkReviewRequest,
    BulkReviewResponse,
    ContributionAssignment,
    ContributionResponse,
    ErrorResponse,
    OverrideRequestBody,
    PayoutResponse,
    RateChangeRequest,
    ReviewRequest,
    TimelineResponse,
    WorkItemCreate,
    WorkItemResponse,
)
from workforce_governance.services.approval_engine import TransitionRequest
from workforce_governance.services.audit_trail import AuditTrail, TimelineEntry
from workforce_governance.services.contribution_service import ContributionService
from workforce_governance.services.override_engine import OverrideEngine, OverrideRequest
from workforce_governance.services.work_item_store import WorkItemStore

router = APIRouter(prefix="/work-items", tags=["work-items"])

WorkItemId = Annotated[UUID, Path()]


# ============================================================================
# Submission and lookup
# ============================================================================


@router.post(
    "",
    response_model=WorkItemResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def submit_work_item(
    db: DbSession,
    actor: CurrentActor,
    policy: Policy,
    notifier: Notifier,
    payload: WorkItemCreate,
) -> WorkItemResponse:
    """Submit a report or task. First-line starts unset, final pending."""
    engine = OverrideEngine(db, policy=policy, notifier=notifier)
    item = await engine.submit(
        actor,
        kind=payload.kind,
        description=payload.description,
        rate=payload.rate,
        collaborator_ids=payload.collaborator_ids,
        weights=payload.weights,
    )
    return WorkItemResponse.model_validate(item)


@router.get(
    "/{work_item_id}",
    response_model=WorkItemResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_work_item(db: DbSession, work_item_id: WorkItemId) -> WorkItemResponse:
    """Get a work item by ID."""
    item = await WorkItemStore(db).load(work_item_id)
    return WorkItemResponse.model_validate(item)


# ============================================================================
# Review
# ============================================================================


@router.post(
    "/{work_item_id}/review",
    response_model=WorkItemResponse,
    responses=ERROR_RESPONSES,
)
async def review_work_item(
    db: DbSession,
    actor: CurrentActor,
    policy: Policy,
    notifier: Notifier,
    work_item_id: WorkItemId,
    payload: ReviewRequest,
) -> WorkItemResponse:
    """Approve, reject, finalize, or request a revision."""
    engine = OverrideEngine(db, policy=policy, notifier=notifier)
    if payload.decision == "revision":
        item = await engine.request_revision(actor, work_item_id, payload.justification)
    else:
        item = await engine.apply(
            TransitionRequest(
                actor=actor,
                work_item_id=work_item_id,
                track=payload.track,
                target=payload.decision,
                justification=payload.justification,
            )
        )
    return WorkItemResponse.model_validate(item)


@router.post(
    "/review",
    response_model=BulkReviewResponse,
    responses=ERROR_RESPONSES,
)
async def review_many(
    db: DbSession,
    actor: CurrentActor,
    policy: Policy,
    notifier: Notifier,
    payload: BulkReviewRequest,
) -> BulkReviewResponse:
    """Apply one first-line decision to several items; each stands alone."""
    engine = OverrideEngine(db, policy=policy, notifier=notifier)
    result = await engine.review_many(
        actor, payload.work_item_ids, payload.decision, payload.justification
    )
    return BulkReviewResponse(
        succeeded=[WorkItemResponse.model_validate(item) for item in result.succeeded],
        rejected=[
            BulkReviewRejection(
                work_item_id=r.work_item_id,
                error=ErrorResponse(
                    detail=r.error.rule,
                    code=r.error.kind.value,
                    context=r.error.to_dict()["context"],
                ),
            )
            for r in result.rejected
        ],
    )


@router.post(
    "/{work_item_id}/override",
    response_model=WorkItemResponse,
    responses=ERROR_RESPONSES,
)
async def override_work_item(
    db: DbSession,
    actor: CurrentActor,
    policy: Policy,
    notifier: Notifier,
    work_item_id: WorkItemId,
    payload: OverrideRequestBody,
) -> WorkItemResponse:
    """Resolve an item whose first-line rejection conflicts with a pending final."""
    engine = OverrideEngine(db, policy=policy, notifier=notifier)
    item = await engine.override(
        OverrideRequest(
            actor=actor,
            work_item_id=work_item_id,
            resolution=payload.resolution,
            justification=payload.justification,
        )
    )
    return WorkItemResponse.model_validate(item)


@router.post(
    "/{work_item_id}/rate",
    response_model=WorkItemResponse,
    responses=ERROR_RESPONSES,
)
async def change_rate(
    db: DbSession,
    actor: CurrentActor,
    policy: Policy,
    notifier: Notifier,
    work_item_id: WorkItemId,
    payload: RateChangeRequest,
) -> WorkItemResponse:
    """Change the rate of an item that is not yet frozen."""
    engine = OverrideEngine(db, policy=policy, notifier=notifier)
    item = await engine.change_rate(actor, work_item_id, payload.rate, payload.justification)
    return WorkItemResponse.model_validate(item)


# ============================================================================
# Contributions
# ============================================================================


@router.post(
    "/{work_item_id}/contributions",
    response_model=AllocationResponse,
    responses=ERROR_RESPONSES,
)
async def allocate_contributions(
    db: DbSession,
    actor: CurrentActor,
    policy: Policy,
    work_item_id: WorkItemId,
    payload: ContributionAssignment,
) -> AllocationResponse:
    """Assign contribution weights and return the resulting split."""
    service = ContributionService(db, policy=policy)
    await service.assign_weights(actor, work_item_id, payload.weights)
    return await _allocation_response(db, service, work_item_id)


@router.get(
    "/{work_item_id}/contributions",
    response_model=AllocationResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_contributions(
    db: DbSession,
    policy: Policy,
    work_item_id: WorkItemId,
) -> AllocationResponse:
    """Current contributions, split preview and stored payouts."""
    service = ContributionService(db, policy=policy)
    return await _allocation_response(db, service, work_item_id)


@router.post(
    "/contributions/{contribution_id}/verify",
    response_model=ContributionResponse,
    responses=ERROR_RESPONSES,
)
async def verify_contribution(
    db: DbSession,
    actor: CurrentActor,
    policy: Policy,
    contribution_id: Annotated[UUID, Path()],
) -> ContributionResponse:
    """Verify a contribution (idempotent) and release its held payout."""
    service = ContributionService(db, policy=policy)
    contribution = await service.verify(actor, contribution_id)
    return ContributionResponse.model_validate(contribution)


# ============================================================================
# Timeline
# ============================================================================


@router.get(
    "/{work_item_id}/timeline",
    response_model=TimelineResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_timeline(db: DbSession, work_item_id: WorkItemId) -> TimelineResponse:
    """Ordered audit history of a work item."""
    await WorkItemStore(db).load(work_item_id)
    events = await AuditTrail(db).timeline_for(work_item_id)
    return TimelineResponse(
        work_item_id=work_item_id,
        events=[
            AuditEventResponse.model_validate(event).model_copy(
                update={"summary": TimelineEntry.from_event(event).summary}
            )
            for event in events
        ],
    )


async def _allocation_response(
    db: AsyncSession, service: ContributionService, work_item_id: UUID
) -> AllocationResponse:
    store = WorkItemStore(db)
    item = await store.load(work_item_id)
    contributions = await store.contributions_for(work_item_id)
    allocations = await service.allocate_for(work_item_id) if item.is_shared else []
    payouts = await store.payouts_for(work_item_id)
    return AllocationResponse(
        work_item_id=work_item_id,
        total=item.rate,
        contributions=[ContributionResponse.model_validate(c) for c in contributions],
        allocations=[AllocationLine.model_validate(a) for a in allocations],
        payouts=[PayoutResponse.model_validate(p) for p in payouts],
    )
