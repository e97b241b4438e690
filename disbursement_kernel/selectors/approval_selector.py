"""
Module: disbursement_kernel.selectors.approval_selector
Responsibility: Read access to approvals, milestones and verifications.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from disbursement_kernel.domain.approval import ApprovalStatus, TransactionApproval
from disbursement_kernel.domain.milestone import Milestone, VerificationRecord
from disbursement_kernel.exceptions import ApprovalNotFoundError
from disbursement_kernel.models.approval import TransactionApprovalModel
from disbursement_kernel.models.milestone import MilestoneModel, MilestoneVerificationModel
from disbursement_kernel.selectors.base import BaseSelector


class ApprovalSelector(BaseSelector[TransactionApprovalModel]):
    """Approvals and their milestones, returned as frozen snapshots."""

    def get_approval(self, approval_id: UUID) -> TransactionApproval:
        """Approval by id, with its signatures."""
        approval = self.session.get(TransactionApprovalModel, approval_id)
        if approval is None:
            raise ApprovalNotFoundError(str(approval_id))
        return approval.to_dto()

    def get_pending_for_charity(self, charity_id: UUID) -> list[TransactionApproval]:
        rows = self.session.execute(
            select(TransactionApprovalModel)
            .where(
                TransactionApprovalModel.charity_id == charity_id,
                TransactionApprovalModel.status == ApprovalStatus.PENDING.value,
            )
            .order_by(TransactionApprovalModel.created_at)
        ).scalars().all()
        return [r.to_dto() for r in rows]

    def get_milestones(self, approval_id: UUID) -> list[Milestone]:
        rows = self.session.execute(
            select(MilestoneModel)
            .where(MilestoneModel.approval_id == approval_id)
            .order_by(MilestoneModel.created_at)
        ).scalars().all()
        return [r.to_dto() for r in rows]

    def get_verifications(self, milestone_id: UUID) -> list[VerificationRecord]:
        rows = self.session.execute(
            select(MilestoneVerificationModel)
            .where(MilestoneVerificationModel.milestone_id == milestone_id)
            .order_by(MilestoneVerificationModel.verified_at)
        ).scalars().all()
        return [r.to_dto() for r in rows]
