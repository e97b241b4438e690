"""
Milestone domain types (``disbursement_kernel.domain.milestone``).

Responsibility
--------------
Pure value objects for milestone-gated fund release: the milestone
lifecycle, verification decisions, and the frozen snapshots returned by
``MilestoneWorkflow``.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``MILESTONE_TRANSITIONS`` defines the only valid status transitions:
  pending -> completed -> verified -> released, plus completed -> pending
  when a verification is rejected.
* Re-completion is accepted from every state (including released); the
  owner may re-mark a milestone completed at any point.
* ``CANCELLED`` is part of the vocabulary but no edge leads into it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class MilestoneStatus(str, Enum):
    """Milestone lifecycle states."""

    PENDING = "pending"
    COMPLETED = "completed"
    VERIFIED = "verified"
    RELEASED = "released"
    CANCELLED = "cancelled"


class VerificationDecision(str, Enum):
    """Outcome a cosigner records when verifying a completed milestone."""

    APPROVED = "approved"
    REJECTED = "rejected"


MILESTONE_TRANSITIONS: dict[MilestoneStatus, frozenset[MilestoneStatus]] = {
    MilestoneStatus.PENDING: frozenset({MilestoneStatus.COMPLETED}),
    MilestoneStatus.COMPLETED: frozenset({
        MilestoneStatus.COMPLETED,
        MilestoneStatus.VERIFIED,
        MilestoneStatus.PENDING,
    }),
    MilestoneStatus.VERIFIED: frozenset({
        MilestoneStatus.COMPLETED,
        MilestoneStatus.RELEASED,
    }),
    MilestoneStatus.RELEASED: frozenset({MilestoneStatus.COMPLETED}),
    MilestoneStatus.CANCELLED: frozenset({MilestoneStatus.COMPLETED}),
}

VERIFICATION_OUTCOMES: dict[VerificationDecision, MilestoneStatus] = {
    VerificationDecision.APPROVED: MilestoneStatus.VERIFIED,
    VerificationDecision.REJECTED: MilestoneStatus.PENDING,
}


def can_transition_milestone(
    current: MilestoneStatus,
    target: MilestoneStatus,
) -> bool:
    """True when ``current -> target`` is an edge of the milestone lifecycle."""
    return target in MILESTONE_TRANSITIONS.get(current, frozenset())


def disbursement_reference(milestone_id: UUID, prefix: str) -> str:
    """Synthetic reference returned in place of a real disbursement hash."""
    return f"{prefix}{milestone_id}"


@dataclass(frozen=True)
class VerificationRecord:
    """One cosigner's verification of a milestone. Append-only."""

    id: UUID
    milestone_id: UUID
    verifier_id: UUID
    decision: VerificationDecision
    comments: str = ""
    verified_at: datetime | None = None


@dataclass(frozen=True)
class Milestone:
    """Immutable snapshot of a milestone."""

    id: UUID
    approval_id: UUID
    name: str
    description: str
    amount: Decimal
    status: MilestoneStatus = MilestoneStatus.PENDING
    due_date: datetime | None = None
    completion_date: datetime | None = None
    verification_proof: str | None = None
    disbursement_reference: str | None = None
    released_at: datetime | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class VerificationResult:
    """Milestone after verification together with the record appended."""

    milestone: Milestone
    verification: VerificationRecord


@dataclass(frozen=True)
class ReleaseResult:
    """Released milestone together with its disbursement reference."""

    milestone: Milestone
    disbursement_reference: str
