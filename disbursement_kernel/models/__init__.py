"""SQLAlchemy ORM models.  Importing this package registers every table on Base.metadata."""

from disbursement_kernel.models.approval import ApprovalSignatureModel, TransactionApprovalModel
from disbursement_kernel.models.audit_event import AuditAction, AuditEvent
from disbursement_kernel.models.charity import BudgetCategoryModel, CharityModel, CosignerModel
from disbursement_kernel.models.milestone import MilestoneModel, MilestoneVerificationModel
from disbursement_kernel.models.user import UserModel

__all__ = [
    "ApprovalSignatureModel",
    "AuditAction",
    "AuditEvent",
    "BudgetCategoryModel",
    "CharityModel",
    "CosignerModel",
    "MilestoneModel",
    "MilestoneVerificationModel",
    "TransactionApprovalModel",
    "UserModel",
]
