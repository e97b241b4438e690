"""
disbursement_kernel.services.milestone_workflow -- Milestone-gated fund release.

Responsibility:
    Splits an approval into milestones, lets the owner mark them completed,
    lets cosigners verify or reject them, and lets the owner release the
    funds of a verified milestone.

Invariants enforced:
    - Verification requires status completed; release requires verified.
    - A rejected verification sends the milestone back to pending.
    - Verifications are append-only records; the milestone row carries
      only the latest status.
    - Release is ledger-neutral: BudgetCategory.spent was already charged
      in full when the parent approval executed.

Known gap kept on purpose:
    ``complete()`` has no status precondition.  The owner can re-complete
    a verified or released milestone, which re-opens it for verification.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from disbursement_kernel.domain.caller import AuthenticatedCaller
from disbursement_kernel.domain.clock import Clock, SystemClock
from disbursement_kernel.domain.milestone import (
    VERIFICATION_OUTCOMES,
    Milestone,
    MilestoneStatus,
    ReleaseResult,
    VerificationDecision,
    VerificationResult,
    can_transition_milestone,
    disbursement_reference,
)
from disbursement_kernel.exceptions import (
    ApprovalNotFoundError,
    ConcurrentModificationError,
    InvalidMilestoneTransitionError,
    MilestoneNotFoundError,
    MissingFieldError,
    NotAuthorizedSignerError,
    NotCosignerError,
    ValidationError,
)
from disbursement_kernel.logging_config import LogContext, get_logger
from disbursement_kernel.models.approval import TransactionApprovalModel
from disbursement_kernel.models.audit_event import AuditAction
from disbursement_kernel.models.charity import CharityModel
from disbursement_kernel.models.milestone import MilestoneModel, MilestoneVerificationModel
from disbursement_kernel.services.approval_workflow import parse_amount
from disbursement_kernel.services.auditor_service import AuditorService
from disbursement_kernel.services.authorization_registry import AuthorizationRegistry

logger = get_logger("services.milestone_workflow")

DEFAULT_DISBURSEMENT_REFERENCE_PREFIX = "milestone-tx-"


class MilestoneWorkflow:
    """
    Service for the milestone lifecycle.

    Contract:
        Same shape as ApprovalWorkflow: explicit caller, flush only,
        frozen snapshots out.
    """

    def __init__(
        self,
        session: Session,
        registry: AuthorizationRegistry,
        auditor: AuditorService,
        clock: Clock | None = None,
        disbursement_reference_prefix: str = DEFAULT_DISBURSEMENT_REFERENCE_PREFIX,
    ):
        self._session = session
        self._registry = registry
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._disbursement_reference_prefix = disbursement_reference_prefix

    def create_milestone(
        self,
        approval_id: UUID,
        caller: AuthenticatedCaller,
        name: str | None,
        description: str | None,
        amount: object,
        due_date: datetime | None = None,
    ) -> Milestone:
        """
        Add a pending milestone to an approval.

        The owner or any cosigner (matched by identity or email) may create
        milestones.  Milestone amounts are not checked against the approval
        amount.
        """
        approval = self._session.get(TransactionApprovalModel, approval_id)
        if approval is None:
            raise ApprovalNotFoundError(str(approval_id))

        charity = self._registry.load_charity(approval.charity_id)
        if not (
            self._registry.is_owner(charity, caller)
            or self._registry.is_any_cosigner(charity, caller)
        ):
            raise NotAuthorizedSignerError(
                str(caller.id), str(charity.id), "create milestones",
            )

        if (
            name is None or not name.strip()
            or description is None or not description.strip()
            or amount is None or (isinstance(amount, str) and not amount.strip())
        ):
            raise MissingFieldError("name", "description", "amount")
        parsed_amount = parse_amount(amount)

        milestone = MilestoneModel(
            approval_id=approval.id,
            name=name.strip(),
            description=description.strip(),
            amount=parsed_amount,
            due_date=due_date,
            status=MilestoneStatus.PENDING.value,
        )
        self._session.add(milestone)
        self._session.flush()

        self._auditor.record_milestone_event(
            milestone.id,
            AuditAction.MILESTONE_CREATED,
            caller.id,
            from_status=None,
            to_status=MilestoneStatus.PENDING.value,
            approval_id=approval.id,
            amount=parsed_amount,
        )
        logger.info(
            "milestone_created",
            extra={
                "milestone_id": str(milestone.id),
                "approval_id": str(approval.id),
                "amount": str(parsed_amount),
            },
        )
        return milestone.to_dto()

    def complete(
        self,
        milestone_id: UUID,
        caller: AuthenticatedCaller,
        proof: str | None = None,
    ) -> Milestone:
        milestone, charity = self._load_milestone(milestone_id)
        current = MilestoneStatus(milestone.status)

        with LogContext.bind(milestone_id=milestone.id, charity_id=charity.id):
            self._registry.require_owner(charity, caller, "mark milestones as completed")
            self._require_transition(milestone, current, MilestoneStatus.COMPLETED)

            milestone.status = MilestoneStatus.COMPLETED.value
            milestone.completion_date = self._clock.now()
            milestone.verification_proof = proof
            self._flush_milestone(milestone)

            self._auditor.record_milestone_event(
                milestone.id,
                AuditAction.MILESTONE_COMPLETED,
                caller.id,
                from_status=current.value,
                to_status=MilestoneStatus.COMPLETED.value,
            )
            logger.info("milestone_completed", extra={"from_status": current.value})
            return milestone.to_dto()

    def verify(
        self,
        milestone_id: UUID,
        caller: AuthenticatedCaller,
        decision: VerificationDecision | str,
        comments: str = "",
    ) -> VerificationResult:
        """
        Record a cosigner's verdict on a completed milestone.

        Approved moves the milestone to verified; rejected sends it back
        to pending.  Only registered cosigners (identity or email) verify;
        the owner does not, unless also registered as a cosigner.
        """
        milestone, charity = self._load_milestone(milestone_id)
        try:
            decision = VerificationDecision(decision)
        except ValueError:
            raise ValidationError(
                f"Invalid verification status {decision!r}: expected 'approved' or 'rejected'"
            )

        current = MilestoneStatus(milestone.status)
        target = VERIFICATION_OUTCOMES[decision]

        with LogContext.bind(milestone_id=milestone.id, charity_id=charity.id):
            if current != MilestoneStatus.COMPLETED:
                raise InvalidMilestoneTransitionError(
                    str(milestone.id), current.value, target.value,
                )
            if not self._registry.is_any_cosigner(charity, caller):
                raise NotCosignerError(str(caller.id), str(charity.id), "verify milestones")

            verification = MilestoneVerificationModel(
                verifier_id=caller.id,
                decision=decision.value,
                comments=comments or "",
                verified_at=self._clock.now(),
            )
            milestone.verifications.append(verification)
            milestone.status = target.value
            self._flush_milestone(milestone)

            action = (
                AuditAction.MILESTONE_VERIFIED
                if decision == VerificationDecision.APPROVED
                else AuditAction.MILESTONE_REJECTED
            )
            self._auditor.record_milestone_event(
                milestone.id,
                action,
                caller.id,
                from_status=current.value,
                to_status=target.value,
                verification_id=verification.id,
            )
            logger.info(
                "milestone_verified",
                extra={"decision": decision.value, "status": target.value},
            )
            return VerificationResult(
                milestone=milestone.to_dto(),
                verification=verification.to_dto(),
            )

    def release(self, milestone_id: UUID, caller: AuthenticatedCaller) -> ReleaseResult:
        """Release a verified milestone's funds and return the disbursement reference."""
        milestone, charity = self._load_milestone(milestone_id)
        current = MilestoneStatus(milestone.status)

        with LogContext.bind(milestone_id=milestone.id, charity_id=charity.id):
            self._require_transition(milestone, current, MilestoneStatus.RELEASED)
            self._registry.require_owner(charity, caller, "release milestone funds")

            reference = disbursement_reference(
                milestone.id, self._disbursement_reference_prefix,
            )
            milestone.status = MilestoneStatus.RELEASED.value
            milestone.disbursement_reference = reference
            milestone.released_at = self._clock.now()
            self._flush_milestone(milestone)

            self._auditor.record_milestone_event(
                milestone.id,
                AuditAction.MILESTONE_RELEASED,
                caller.id,
                from_status=current.value,
                to_status=MilestoneStatus.RELEASED.value,
                disbursement_reference=reference,
                amount=milestone.amount,
            )
            logger.info(
                "milestone_released",
                extra={"amount": str(milestone.amount), "disbursement_reference": reference},
            )
            return ReleaseResult(milestone=milestone.to_dto(), disbursement_reference=reference)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load_milestone(self, milestone_id: UUID) -> tuple[MilestoneModel, CharityModel]:
        """Row-lock the milestone and resolve the charity that owns it."""
        milestone = self._session.execute(
            select(MilestoneModel)
            .where(MilestoneModel.id == milestone_id)
            .with_for_update()
        ).scalar_one_or_none()
        if milestone is None:
            raise MilestoneNotFoundError(str(milestone_id))

        approval = self._session.get(TransactionApprovalModel, milestone.approval_id)
        if approval is None:
            raise ApprovalNotFoundError(str(milestone.approval_id))
        charity = self._registry.load_charity(approval.charity_id)
        return milestone, charity

    @staticmethod
    def _require_transition(
        milestone: MilestoneModel,
        current: MilestoneStatus,
        target: MilestoneStatus,
    ) -> None:
        if not can_transition_milestone(current, target):
            logger.warning(
                "milestone_transition_rejected",
                extra={"from_status": current.value, "to_status": target.value},
            )
            raise InvalidMilestoneTransitionError(str(milestone.id), current.value, target.value)

    def _flush_milestone(self, milestone: MilestoneModel) -> None:
        try:
            self._session.flush()
        except StaleDataError:
            logger.warning("milestone_stale_write", extra={"entity_id": str(milestone.id)})
            raise ConcurrentModificationError("Milestone", str(milestone.id))
