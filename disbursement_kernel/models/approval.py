"""
Module: disbursement_kernel.models.approval
Responsibility: ORM persistence for transaction approvals and their signatures.

Architecture position: Kernel > Models.  May import from db/, domain/, and
    exceptions.

Invariants enforced:
    - Lifecycle: DB check constraint limits status values; the workflow
      enforces transition rules.
    - Optimistic versioning: ``version`` is a SQLAlchemy version_id_col.
      Two sessions that read the same approval and both write it cannot
      both succeed; the loser gets StaleDataError at flush.
    - Signature uniqueness: UNIQUE(approval_id, signer_id) prevents the same
      signer being counted twice, even under concurrent requests.
    - Signatures are append-only; approvals are never deleted.

Failure modes:
    - IntegrityError on duplicate signer.
    - StaleDataError on a lost update race.
    - ImmutabilityViolationError on signature UPDATE/DELETE or approval DELETE.
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
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from disbursement_kernel.db.base import TrackedBase, UUIDString
from disbursement_kernel.domain.approval import (
    ApprovalStatus,
    SignatureRecord,
    TransactionApproval,
)
from disbursement_kernel.exceptions import ImmutabilityViolationError


class TransactionApprovalModel(TrackedBase):
    """Persistent request to move funds, gated on a signature quorum."""

    __tablename__ = "transaction_approvals"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'executed', 'refunded')",
            name="ck_approvals_valid_status",
        ),
        CheckConstraint("amount > 0", name="ck_approvals_amount_positive"),
        CheckConstraint(
            "required_signatures >= 1",
            name="ck_approvals_required_signatures_positive",
        ),
        Index("ix_approvals_charity_status", "charity_id", "status"),
    )

    charity_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("charities.id"), nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    requested_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    required_signatures: Mapped[int] = mapped_column(Integer, nullable=False)
    current_signatures: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ApprovalStatus.PENDING.value,
    )
    external_reference: Mapped[str | None] = mapped_column(String(200), nullable=True)
    refund_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    executed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    refunded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    signatures: Mapped[list["ApprovalSignatureModel"]] = relationship(
        "ApprovalSignatureModel",
        back_populates="approval",
        order_by="ApprovalSignatureModel.signed_at",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<TransactionApproval {self.id} charity={self.charity_id} "
            f"{self.current_signatures}/{self.required_signatures} [{self.status}]>"
        )

    def to_dto(self) -> TransactionApproval:
        return TransactionApproval(
            id=self.id,
            charity_id=self.charity_id,
            amount=self.amount,
            description=self.description,
            requested_by_id=self.requested_by_id,
            required_signatures=self.required_signatures,
            current_signatures=self.current_signatures,
            status=ApprovalStatus(self.status),
            category=self.category,
            external_reference=self.external_reference,
            refund_amount=self.refund_amount,
            created_at=self.created_at,
            executed_at=self.executed_at,
            refunded_at=self.refunded_at,
            signatures=tuple(s.to_dto() for s in self.signatures),
        )


class ApprovalSignatureModel(TrackedBase):
    """One signer's signature on an approval.  Append-only."""

    __tablename__ = "approval_signatures"

    __table_args__ = (
        UniqueConstraint(
            "approval_id", "signer_id",
            name="uq_approval_signatures_signer",
        ),
    )

    approval_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("transaction_approvals.id"), nullable=False,
    )
    signer_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    signature: Mapped[str] = mapped_column(Text, nullable=False, default="")
    signed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    approval: Mapped["TransactionApprovalModel"] = relationship(
        "TransactionApprovalModel", back_populates="signatures",
    )

    def __repr__(self) -> str:
        return f"<ApprovalSignature approval={self.approval_id} signer={self.signer_id}>"

    def to_dto(self) -> SignatureRecord:
        return SignatureRecord(
            id=self.id,
            approval_id=self.approval_id,
            signer_id=self.signer_id,
            signature=self.signature,
            signed_at=self.signed_at,
        )


# =========================================================================
# Immutability listeners
# =========================================================================


@event.listens_for(TransactionApprovalModel, "before_delete")
def prevent_approval_delete(mapper, connection, target):
    """Approvals are retained for the life of the charity."""
    raise ImmutabilityViolationError(
        entity_type="TransactionApproval",
        entity_id=str(target.id),
        reason="Transaction approvals cannot be deleted",
    )


@event.listens_for(ApprovalSignatureModel, "before_update")
def prevent_signature_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="ApprovalSignature",
        entity_id=str(target.id),
        reason="Signatures are immutable -- cannot modify",
    )


@event.listens_for(ApprovalSignatureModel, "before_delete")
def prevent_signature_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="ApprovalSignature",
        entity_id=str(target.id),
        reason="Signatures are immutable -- cannot delete",
    )
