"""Pure domain layer: value objects, state machines, and calculations."""

from disbursement_kernel.domain.approval import (
    APPROVAL_TRANSITIONS,
    ApprovalStatus,
    RefundResult,
    SignatureRecord,
    TransactionApproval,
)
from disbursement_kernel.domain.caller import AuthenticatedCaller, UserRole
from disbursement_kernel.domain.charity import BudgetCategory, Charity, Cosigner, User
from disbursement_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from disbursement_kernel.domain.milestone import (
    MILESTONE_TRANSITIONS,
    Milestone,
    MilestoneStatus,
    ReleaseResult,
    VerificationDecision,
    VerificationRecord,
    VerificationResult,
)
from disbursement_kernel.domain.refund import calculate_refund

__all__ = [
    "APPROVAL_TRANSITIONS",
    "ApprovalStatus",
    "AuthenticatedCaller",
    "BudgetCategory",
    "Charity",
    "Clock",
    "Cosigner",
    "DeterministicClock",
    "MILESTONE_TRANSITIONS",
    "Milestone",
    "MilestoneStatus",
    "RefundResult",
    "ReleaseResult",
    "SignatureRecord",
    "SystemClock",
    "TransactionApproval",
    "User",
    "UserRole",
    "VerificationDecision",
    "VerificationRecord",
    "VerificationResult",
    "calculate_refund",
]
