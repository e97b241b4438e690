"""
Module: disbursement_kernel.models.audit_event
Responsibility: ORM persistence for the approval/milestone audit trail.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE through the ORM.
    - ``seq`` orders events within one entity's trail and is unique per
      entity, so two writers cannot interleave the same position.
    - ``payload_hash`` is the SHA-256 of the canonical JSON payload, so a
      payload edited outside the ORM no longer matches its hash.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, Integer, String, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column

from disbursement_kernel.db.base import Base, UUIDString
from disbursement_kernel.exceptions import ImmutabilityViolationError


class AuditAction(str, Enum):
    """Types of auditable actions.

    Every state-changing workflow operation records exactly one of these.
    """

    # Charity administration
    CHARITY_REGISTERED = "charity_registered"
    COSIGNER_ADDED = "cosigner_added"
    COSIGNER_REMOVED = "cosigner_removed"
    MULTISIG_UPDATED = "multisig_updated"
    OWNERSHIP_TRANSFERRED = "ownership_transferred"

    # Budget categories
    BUDGET_CATEGORY_ADDED = "budget_category_added"
    BUDGET_CATEGORY_UPDATED = "budget_category_updated"
    BUDGET_CATEGORY_DELETED = "budget_category_deleted"

    # Approval lifecycle
    APPROVAL_REQUESTED = "approval_requested"
    APPROVAL_SIGNED = "approval_signed"
    APPROVAL_APPROVED = "approval_approved"
    APPROVAL_EXECUTED = "approval_executed"
    APPROVAL_REFUNDED = "approval_refunded"

    # Milestone lifecycle
    MILESTONE_CREATED = "milestone_created"
    MILESTONE_COMPLETED = "milestone_completed"
    MILESTONE_VERIFIED = "milestone_verified"
    MILESTONE_REJECTED = "milestone_rejected"
    MILESTONE_RELEASED = "milestone_released"


class AuditEvent(Base):
    """One append-only audit record."""

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
        UniqueConstraint("entity_type", "entity_id", "seq", name="uq_audit_entity_seq"),
    )

    # e.g. "TransactionApproval", "Milestone", "Charity"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    # Position within the entity's trail, starting at 1
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.action} on {self.entity_type}:{self.entity_id}>"


@event.listens_for(AuditEvent, "before_update")
def prevent_audit_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="AuditEvent",
        entity_id=str(target.id),
        reason="Audit events are append-only -- cannot modify",
    )


@event.listens_for(AuditEvent, "before_delete")
def prevent_audit_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="AuditEvent",
        entity_id=str(target.id),
        reason="Audit events are append-only -- cannot delete",
    )
