"""Kernel services: the imperative shell around the pure domain layer."""

from disbursement_kernel.services.approval_workflow import ApprovalWorkflow
from disbursement_kernel.services.auditor_service import AuditorService, AuditTrace
from disbursement_kernel.services.authorization_registry import AuthorizationRegistry
from disbursement_kernel.services.budget_ledger import BudgetLedger
from disbursement_kernel.services.milestone_workflow import MilestoneWorkflow

__all__ = [
    "ApprovalWorkflow",
    "AuditTrace",
    "AuditorService",
    "AuthorizationRegistry",
    "BudgetLedger",
    "MilestoneWorkflow",
]
