"""Work item, contribution, and payout models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from workforce_governance.governance.transitions import FinalStatus, FirstLineStatus
from workforce_governance.models.base import Base, TimestampMixin, utcnow


class WorkItemKind(str, Enum):
    """Work item variants. Both share one shape and one lifecycle."""

    REPORT = "report"
    TASK = "task"


class PayoutStatus(str, Enum):
    """Payout release state (held until the contribution is verified)."""

    HELD = "held"
    RELEASED = "released"


# ===== Work Items =====


class WorkItem(Base, TimestampMixin):
    """A report or task moving through first-line and final review."""

    __tablename__ = "work_item"

    work_item_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    rate: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    collaborator_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # First-line track
    first_line_status: Mapped[str] = mapped_column(
        String, nullable=False, default=FirstLineStatus.UNSET.value
    )
    first_line_reviewed_by: Mapped[str | None] = mapped_column(String, nullable=True)
    first_line_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    first_line_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Final track
    final_status: Mapped[str] = mapped_column(
        String, nullable=False, default=FinalStatus.PENDING.value
    )
    final_reviewed_by: Mapped[str | None] = mapped_column(String, nullable=True)
    final_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    final_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Override outcome (set only by the override operation)
    override_resolution: Mapped[str | None] = mapped_column(String, nullable=True)
    override_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    revision_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    revision_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Optimistic concurrency guard, bumped by the ORM on every UPDATE
    row_version: Mapped[int] = mapped_column(Integer, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("kind IN ('report', 'task')", name="work_item_kind_check"),
        CheckConstraint(
            "first_line_status IN ('unset', 'approved', 'rejected')",
            name="work_item_first_line_status_check",
        ),
        CheckConstraint(
            "final_status IN ('pending', 'approved', 'rejected', 'finalized', 'overridden')",
            name="work_item_final_status_check",
        ),
        CheckConstraint(
            "override_resolution IS NULL OR override_resolution IN ('approved', 'rejected')",
            name="work_item_override_resolution_check",
        ),
        CheckConstraint("revision_count >= 0", name="work_item_revision_count_check"),
        CheckConstraint("rate >= 0", name="work_item_rate_check"),
    )

    __mapper_args__ = {"version_id_col": row_version}

    @property
    def is_shared(self) -> bool:
        """True if the item has collaborators besides its owner."""
        return bool(self.collaborator_ids)

    @property
    def participants(self) -> list[str]:
        """Owner first, then collaborators, without duplicates."""
        return list(dict.fromkeys([self.owner_id, *self.collaborator_ids]))

    @property
    def in_conflict(self) -> bool:
        """First-line rejected while final is still pending ("needs override")."""
        return (
            self.first_line_status == FirstLineStatus.REJECTED
            and self.final_status == FinalStatus.PENDING
        )

    @property
    def effective_outcome(self) -> str | None:
        """Approved/rejected outcome once final status has left pending."""
        if self.final_status == FinalStatus.PENDING:
            return None
        if self.final_status == FinalStatus.OVERRIDDEN:
            return self.override_resolution
        if self.final_status == FinalStatus.FINALIZED:
            return FinalStatus.APPROVED.value
        return self.final_status


class Contribution(Base, TimestampMixin):
    """One collaborator's weighted share of a shared work item."""

    __tablename__ = "work_item_contribution"

    contribution_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    work_item_id: Mapped[UUID] = mapped_column(
        ForeignKey("work_item.work_item_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    collaborator_id: Mapped[str] = mapped_column(String, nullable=False)
    weight: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verified_by: Mapped[str | None] = mapped_column(String, nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("work_item_id", "collaborator_id", name="contribution_item_collaborator_unique"),
        CheckConstraint("weight >= 0 AND weight <= 1", name="contribution_weight_check"),
    )


class Payout(Base, TimestampMixin):
    """Allocated share of an approved shared work item."""

    __tablename__ = "work_item_payout"

    payout_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    work_item_id: Mapped[UUID] = mapped_column(
        ForeignKey("work_item.work_item_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    contribution_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("work_item_contribution.contribution_id"),
        nullable=True,
    )
    collaborator_id: Mapped[str] = mapped_column(String, nullable=False)
    weight: Mapped[Decimal] = mapped_column(Numeric(12, 10), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default=PayoutStatus.HELD.value)

    __table_args__ = (
        UniqueConstraint("work_item_id", "collaborator_id", name="payout_item_collaborator_unique"),
        CheckConstraint("amount >= 0", name="payout_amount_check"),
        CheckConstraint("status IN ('held', 'released')", name="payout_status_check"),
    )
