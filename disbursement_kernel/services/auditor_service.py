"""
AuditorService -- append-only audit trail for charity, approval and milestone
state changes.

Responsibility:
    Creates immutable audit events for every state-changing workflow
    operation and provides trace queries for review.

Architecture position:
    Kernel > Services -- imperative shell, called by AuthorizationRegistry,
    BudgetLedger, ApprovalWorkflow and MilestoneWorkflow.

Invariants enforced:
    - Append-only: audit events are never modified or deleted (ORM listeners
      on the AuditEvent model).
    - ``payload_hash`` is the SHA-256 of the canonical payload.
    - ``seq`` is contiguous per entity.  A concurrent writer that commits
      the same ``seq`` first makes the insert fail on ``uq_audit_entity_seq``;
      the insert is rolled back to its savepoint and retried with a fresh
      ``max + 1``.

Failure modes:
    - ImmutabilityViolationError if a caller attempts to mutate an event.
    - IntegrityError if ``seq`` still collides after MAX_SEQ_ATTEMPTS.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from disbursement_kernel.domain.clock import Clock, SystemClock
from disbursement_kernel.logging_config import get_logger
from disbursement_kernel.models.audit_event import AuditAction, AuditEvent
from disbursement_kernel.utils.hashing import hash_payload, json_safe

logger = get_logger("services.auditor")

MAX_SEQ_ATTEMPTS = 3


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    payload_hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit events for one entity in ``seq`` order."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(e.action for e in self.entries)

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None


class AuditorService:
    """
    Service for creating append-only audit events.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT interpret or act on audit events.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()

    def _create_audit_event(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        payload_data = json_safe(payload or {})
        computed_payload_hash = hash_payload(payload_data)

        for attempt in range(1, MAX_SEQ_ATTEMPTS + 1):
            seq = self._next_seq(entity_type, entity_id)
            audit_event = AuditEvent(
                entity_type=entity_type,
                entity_id=entity_id,
                seq=seq,
                action=action.value,
                actor_id=actor_id,
                occurred_at=self._clock.now(),
                payload=payload_data,
                payload_hash=computed_payload_hash,
            )
            # Only the audit insert is inside the savepoint; the caller's
            # pending rows are flushed when it opens.
            savepoint = self._session.begin_nested()
            try:
                self._session.add(audit_event)
                self._session.flush()
            except IntegrityError:
                savepoint.rollback()
                if attempt == MAX_SEQ_ATTEMPTS:
                    raise
                # Concurrent insert took this seq; read the new max and retry
                logger.warning(
                    "audit_seq_conflict",
                    extra={
                        "entity_type": entity_type,
                        "entity_id": str(entity_id),
                        "seq": seq,
                        "attempt": attempt,
                    },
                )
                continue
            savepoint.commit()
            break

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "seq": seq,
                "action": action.value,
            },
        )
        return audit_event

    def _next_seq(self, entity_type: str, entity_id: UUID) -> int:
        current = self._session.execute(
            select(func.max(AuditEvent.seq)).where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
        ).scalar()
        return (current or 0) + 1

    # =========================================================================
    # Recording entry points
    # =========================================================================

    def record_charity_event(
        self,
        charity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        **details: Any,
    ) -> AuditEvent:
        """Record registration, cosigner, multisig, budget or ownership changes."""
        return self._create_audit_event(
            entity_type="Charity",
            entity_id=charity_id,
            action=action,
            actor_id=actor_id,
            payload=details,
        )

    def record_approval_event(
        self,
        approval_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        from_status: str | None,
        to_status: str,
        **details: Any,
    ) -> AuditEvent:
        """Record one approval lifecycle step with its status edge."""
        return self._create_audit_event(
            entity_type="TransactionApproval",
            entity_id=approval_id,
            action=action,
            actor_id=actor_id,
            payload={"from_status": from_status, "to_status": to_status, **details},
        )

    def record_milestone_event(
        self,
        milestone_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        from_status: str | None,
        to_status: str,
        **details: Any,
    ) -> AuditEvent:
        """Record one milestone lifecycle step with its status edge."""
        return self._create_audit_event(
            entity_type="Milestone",
            entity_id=milestone_id,
            action=action,
            actor_id=actor_id,
            payload={"from_status": from_status, "to_status": to_status, **details},
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        entries = tuple(
            AuditTraceEntry(
                seq=event.seq,
                action=AuditAction(event.action),
                occurred_at=event.occurred_at,
                actor_id=event.actor_id,
                payload=event.payload or {},
                payload_hash=event.payload_hash,
            )
            for event in events
        )
        return AuditTrace(entity_type=entity_type, entity_id=entity_id, entries=entries)
