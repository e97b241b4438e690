"""
Approval domain types (``disbursement_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the multi-signature approval workflow.  Defines the
approval lifecycle state machine and the frozen snapshots returned by the
service layer.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports from
``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* ``APPROVAL_TRANSITIONS`` defines the only valid status transitions:
  pending -> approved -> executed -> refunded.  No state is skipped and no
  edge points backwards.
* ``required_signatures`` is a snapshot of the charity policy taken when
  the approval was opened.
* ``current_signatures <= required_signatures`` -- the approval leaves
  ``pending`` on the signature that reaches quorum, so no further
  signature can be counted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


# =========================================================================
# Approval Status Lifecycle
# =========================================================================


class ApprovalStatus(str, Enum):
    """Transaction approval lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    EXECUTED = "executed"
    REFUNDED = "refunded"


APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({ApprovalStatus.APPROVED}),
    ApprovalStatus.APPROVED: frozenset({ApprovalStatus.EXECUTED}),
    ApprovalStatus.EXECUTED: frozenset({ApprovalStatus.REFUNDED}),
    ApprovalStatus.REFUNDED: frozenset(),
}


def can_transition_approval(
    current: ApprovalStatus,
    target: ApprovalStatus,
) -> bool:
    """True when ``current -> target`` is an edge of the approval lifecycle."""
    return target in APPROVAL_TRANSITIONS.get(current, frozenset())


def quorum_reached(current_signatures: int, required_signatures: int) -> bool:
    """Quorum is met once the count reaches (or, after a race, exceeds) the snapshot."""
    return current_signatures >= required_signatures


def placeholder_external_reference(approval_id: UUID, prefix: str) -> str:
    """Opaque reference recorded in place of a real ledger transaction hash."""
    return f"{prefix}{approval_id}"


# =========================================================================
# Snapshots
# =========================================================================


@dataclass(frozen=True)
class SignatureRecord:
    """One signer's signature on an approval. Immutable."""

    id: UUID
    approval_id: UUID
    signer_id: UUID
    signature: str = ""
    signed_at: datetime | None = None


@dataclass(frozen=True)
class TransactionApproval:
    """Immutable snapshot of a transaction approval."""

    id: UUID
    charity_id: UUID
    amount: Decimal
    description: str
    requested_by_id: UUID
    required_signatures: int
    current_signatures: int = 0
    status: ApprovalStatus = ApprovalStatus.PENDING
    category: str | None = None
    external_reference: str | None = None
    refund_amount: Decimal | None = None
    created_at: datetime | None = None
    executed_at: datetime | None = None
    refunded_at: datetime | None = None
    signatures: tuple[SignatureRecord, ...] = ()

    @property
    def is_quorum_reached(self) -> bool:
        return quorum_reached(self.current_signatures, self.required_signatures)

    @property
    def signer_ids(self) -> frozenset[UUID]:
        return frozenset(s.signer_id for s in self.signatures)


@dataclass(frozen=True)
class RefundResult:
    """Outcome of a refund: the refunded approval and the amount returned."""

    approval: TransactionApproval
    refund_amount: Decimal
