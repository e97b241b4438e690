"""
Module: disbursement_kernel.models.milestone
Responsibility: ORM persistence for milestones and their verifications.

Invariants enforced:
    - Status values limited by check constraint; MilestoneWorkflow enforces
      the transition table.
    - ``version`` is a version_id_col so concurrent verify/release races
      surface as StaleDataError rather than a silent lost update.
    - Verifications are append-only; milestones are never deleted.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from disbursement_kernel.db.base import TrackedBase, UUIDString
from disbursement_kernel.domain.milestone import (
    Milestone,
    MilestoneStatus,
    VerificationDecision,
    VerificationRecord,
)
from disbursement_kernel.exceptions import ImmutabilityViolationError


class MilestoneModel(TrackedBase):
    __tablename__ = "milestones"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'completed', 'verified', 'released', 'cancelled')",
            name="ck_milestones_valid_status",
        ),
        CheckConstraint("amount > 0", name="ck_milestones_amount_positive"),
        Index("ix_milestones_approval_status", "approval_id", "status"),
    )

    approval_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("transaction_approvals.id"), nullable=False,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MilestoneStatus.PENDING.value,
    )
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completion_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    verification_proof: Mapped[str | None] = mapped_column(Text, nullable=True)
    disbursement_reference: Mapped[str | None] = mapped_column(String(200), nullable=True)
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    verifications: Mapped[list["MilestoneVerificationModel"]] = relationship(
        "MilestoneVerificationModel",
        back_populates="milestone",
        order_by="MilestoneVerificationModel.verified_at",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Milestone {self.id} {self.name!r} {self.amount} [{self.status}]>"

    def to_dto(self) -> Milestone:
        return Milestone(
            id=self.id,
            approval_id=self.approval_id,
            name=self.name,
            description=self.description,
            amount=self.amount,
            status=MilestoneStatus(self.status),
            due_date=self.due_date,
            completion_date=self.completion_date,
            verification_proof=self.verification_proof,
            disbursement_reference=self.disbursement_reference,
            released_at=self.released_at,
            created_at=self.created_at,
        )


class MilestoneVerificationModel(TrackedBase):
    """A cosigner's verdict on a completed milestone.  Append-only."""

    __tablename__ = "milestone_verifications"

    __table_args__ = (
        CheckConstraint(
            "decision IN ('approved', 'rejected')",
            name="ck_milestone_verifications_valid_decision",
        ),
    )

    milestone_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("milestones.id"), nullable=False,
    )
    verifier_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    decision: Mapped[str] = mapped_column(String(20), nullable=False)
    comments: Mapped[str] = mapped_column(Text, nullable=False, default="")
    verified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    milestone: Mapped["MilestoneModel"] = relationship(
        "MilestoneModel", back_populates="verifications",
    )

    def to_dto(self) -> VerificationRecord:
        return VerificationRecord(
            id=self.id,
            milestone_id=self.milestone_id,
            verifier_id=self.verifier_id,
            decision=VerificationDecision(self.decision),
            comments=self.comments,
            verified_at=self.verified_at,
        )


@event.listens_for(MilestoneModel, "before_delete")
def prevent_milestone_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="Milestone",
        entity_id=str(target.id),
        reason="Milestones cannot be deleted",
    )


@event.listens_for(MilestoneVerificationModel, "before_update")
def prevent_verification_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="MilestoneVerification",
        entity_id=str(target.id),
        reason="Verifications are immutable -- cannot modify",
    )


@event.listens_for(MilestoneVerificationModel, "before_delete")
def prevent_verification_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="MilestoneVerification",
        entity_id=str(target.id),
        reason="Verifications are immutable -- cannot delete",
    )
