"""
disbursement_kernel.services.approval_workflow -- Multi-signature approval lifecycle.

Responsibility:
    Opens transaction approvals, collects signatures until the policy
    snapshot is met, executes approved transactions against the budget
    ledger, and refunds the unreleased remainder.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/ and peer
    services (AuthorizationRegistry, BudgetLedger, AuditorService).

Invariants enforced:
    - Lifecycle: pending -> approved -> executed -> refunded, checked
      against APPROVAL_TRANSITIONS before anything is written.
    - Quorum: ``current_signatures <= required_signatures``.  The approval
      leaves ``pending`` in the same flush that records the quorum-reaching
      signature.
    - Signature uniqueness: service check plus UNIQUE(approval_id, signer_id).
    - Ledger coupling: the Executed transition and the budget increment
      are flushed in one transaction.
    - Every write loads the approval ``FOR UPDATE`` and is guarded by the
      row's version counter; a lost race surfaces as
      ConcurrentModificationError instead of a silent overwrite.

Failure modes:
    - ApprovalNotFoundError / CharityNotFoundError (404).
    - NotAuthorizedSignerError / NotCharityOwnerError (403).
    - MissingFieldError / InvalidAmountError / NoRefundableFundsError (400).
    - InvalidApprovalTransitionError / DuplicateSignatureError /
      ConcurrentModificationError (409).
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from disbursement_kernel.domain.approval import (
    ApprovalStatus,
    RefundResult,
    TransactionApproval,
    can_transition_approval,
    placeholder_external_reference,
    quorum_reached,
)
from disbursement_kernel.domain.caller import AuthenticatedCaller
from disbursement_kernel.domain.clock import Clock, SystemClock
from disbursement_kernel.domain.milestone import MilestoneStatus
from disbursement_kernel.domain.refund import calculate_refund
from disbursement_kernel.exceptions import (
    ApprovalNotFoundError,
    ConcurrentModificationError,
    DuplicateSignatureError,
    InvalidAmountError,
    InvalidApprovalTransitionError,
    MissingFieldError,
    NotAuthorizedSignerError,
)
from disbursement_kernel.logging_config import LogContext, get_logger
from disbursement_kernel.models.approval import ApprovalSignatureModel, TransactionApprovalModel
from disbursement_kernel.models.audit_event import AuditAction
from disbursement_kernel.models.milestone import MilestoneModel
from disbursement_kernel.services.auditor_service import AuditorService
from disbursement_kernel.services.authorization_registry import AuthorizationRegistry
from disbursement_kernel.services.budget_ledger import BudgetLedger

logger = get_logger("services.approval_workflow")

DEFAULT_EXTERNAL_REFERENCE_PREFIX = "mock-transaction-hash-"

# Fractional digits kept by the Numeric(38, 9) amount columns
AMOUNT_SCALE = 9


def parse_amount(value: object, field_name: str = "amount") -> Decimal:
    """
    Coerce a request amount to a strictly positive Decimal.

    Floats go through ``str()`` so 0.1 stays 0.1.  Amounts finer than
    AMOUNT_SCALE fractional digits are rejected rather than rounded on write.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise MissingFieldError(field_name)
    if isinstance(value, bool):
        raise InvalidAmountError(field_name, value)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmountError(field_name, value)
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmountError(field_name, value)
    if amount.normalize().as_tuple().exponent < -AMOUNT_SCALE:
        raise InvalidAmountError(field_name, value)
    return amount


class ApprovalWorkflow:
    """
    Service for the transaction-approval lifecycle.

    Contract:
        Every public method takes the authenticated caller explicitly,
        flushes its writes, and returns a frozen snapshot.  It never
        commits; the caller's ``session_scope()`` does.
    """

    def __init__(
        self,
        session: Session,
        registry: AuthorizationRegistry,
        ledger: BudgetLedger,
        auditor: AuditorService,
        clock: Clock | None = None,
        external_reference_prefix: str = DEFAULT_EXTERNAL_REFERENCE_PREFIX,
    ):
        self._session = session
        self._registry = registry
        self._ledger = ledger
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._external_reference_prefix = external_reference_prefix

    # =========================================================================
    # Create
    # =========================================================================

    def create_approval(
        self,
        charity_id: UUID,
        caller: AuthenticatedCaller,
        amount: object,
        description: str | None,
        category: str | None = None,
    ) -> TransactionApproval:
        """
        Open a pending approval for ``amount``.

        The charity's current ``required_signatures`` is copied onto the
        approval; later policy changes do not affect it.

        Raises:
            MissingFieldError: amount or description absent.
            InvalidAmountError: amount not a positive number.
            CharityNotFoundError: no such charity.
            NotAuthorizedSignerError: caller is neither owner nor cosigner
                (cosigners are matched by email here).
        """
        if amount is None or description is None or not str(description).strip():
            raise MissingFieldError("amount", "description")
        parsed_amount = parse_amount(amount)

        charity = self._registry.load_charity(charity_id)
        if not (
            self._registry.is_owner(charity, caller)
            or self._registry.is_cosigner(charity, caller)
        ):
            raise NotAuthorizedSignerError(
                str(caller.id), str(charity.id), "create transaction approvals",
            )

        approval = TransactionApprovalModel(
            charity_id=charity.id,
            amount=parsed_amount,
            description=description.strip(),
            category=category.strip() if category and category.strip() else None,
            requested_by_id=caller.id,
            required_signatures=charity.required_signatures,
            current_signatures=0,
            status=ApprovalStatus.PENDING.value,
        )
        self._session.add(approval)
        self._session.flush()

        self._auditor.record_approval_event(
            approval.id,
            AuditAction.APPROVAL_REQUESTED,
            caller.id,
            from_status=None,
            to_status=ApprovalStatus.PENDING.value,
            amount=parsed_amount,
            required_signatures=approval.required_signatures,
        )
        logger.info(
            "approval_created",
            extra={
                "approval_id": str(approval.id),
                "charity_id": str(charity.id),
                "amount": str(parsed_amount),
                "required_signatures": approval.required_signatures,
            },
        )
        return approval.to_dto()

    # =========================================================================
    # Sign
    # =========================================================================

    def add_signature(
        self,
        approval_id: UUID,
        caller: AuthenticatedCaller,
        signature: str = "",
    ) -> TransactionApproval:
        """
        Record the caller's signature and flip to approved on quorum.

        Owners sign by identity; cosigners may be matched by identity or
        by email.

        Raises:
            InvalidApprovalTransitionError: approval is no longer pending.
            NotAuthorizedSignerError: caller may not sign for this charity.
            DuplicateSignatureError: caller already signed.
            ConcurrentModificationError: another request changed the
                approval between our read and write.
        """
        approval = self._load_approval(approval_id)
        current = ApprovalStatus(approval.status)

        with LogContext.bind(approval_id=approval.id, charity_id=approval.charity_id):
            if current != ApprovalStatus.PENDING:
                raise InvalidApprovalTransitionError(
                    str(approval.id), current.value, "signed",
                )

            charity = self._registry.load_charity(approval.charity_id)
            if not (
                self._registry.is_owner(charity, caller)
                or self._registry.is_any_cosigner(charity, caller)
            ):
                raise NotAuthorizedSignerError(
                    str(caller.id), str(charity.id), "sign this transaction",
                )

            if self._has_signed(approval, caller.id):
                logger.warning(
                    "duplicate_signature_rejected",
                    extra={"signer_id": str(caller.id)},
                )
                raise DuplicateSignatureError(str(approval.id), str(caller.id))

            approval.signatures.append(
                ApprovalSignatureModel(
                    signer_id=caller.id,
                    signature=signature or "",
                    signed_at=self._clock.now(),
                )
            )
            approval.current_signatures += 1

            new_status = current
            if quorum_reached(approval.current_signatures, approval.required_signatures):
                new_status = ApprovalStatus.APPROVED
                approval.status = new_status.value

            self._flush_approval(approval, signer_id=caller.id)

            self._auditor.record_approval_event(
                approval.id,
                AuditAction.APPROVAL_SIGNED,
                caller.id,
                from_status=current.value,
                to_status=new_status.value,
                current_signatures=approval.current_signatures,
                required_signatures=approval.required_signatures,
            )
            if new_status == ApprovalStatus.APPROVED:
                self._auditor.record_approval_event(
                    approval.id,
                    AuditAction.APPROVAL_APPROVED,
                    caller.id,
                    from_status=current.value,
                    to_status=new_status.value,
                )

            logger.info(
                "signature_added",
                extra={
                    "signer_id": str(caller.id),
                    "current_signatures": approval.current_signatures,
                    "required_signatures": approval.required_signatures,
                    "status": new_status.value,
                },
            )
            if new_status == ApprovalStatus.APPROVED:
                logger.info("approval_quorum_reached")

            return approval.to_dto()

    # =========================================================================
    # Execute
    # =========================================================================

    def execute(self, approval_id: UUID, caller: AuthenticatedCaller) -> TransactionApproval:
        """
        Execute an approved transaction.

        Assigns a placeholder external reference and adds the amount to the
        matching budget category in the same transaction.  No matching
        category is not an error.
        """
        approval = self._load_approval(approval_id)
        current = ApprovalStatus(approval.status)

        with LogContext.bind(approval_id=approval.id, charity_id=approval.charity_id):
            self._require_transition(approval, current, ApprovalStatus.EXECUTED)

            charity = self._registry.load_charity(approval.charity_id)
            self._registry.require_owner(charity, caller, "execute transactions")

            approval.status = ApprovalStatus.EXECUTED.value
            approval.external_reference = placeholder_external_reference(
                approval.id, self._external_reference_prefix,
            )
            approval.executed_at = self._clock.now()
            self._flush_approval(approval)

            categories_updated = self._ledger.record_spend(
                approval.charity_id, approval.category, approval.amount,
            )

            self._auditor.record_approval_event(
                approval.id,
                AuditAction.APPROVAL_EXECUTED,
                caller.id,
                from_status=current.value,
                to_status=ApprovalStatus.EXECUTED.value,
                external_reference=approval.external_reference,
                category=approval.category,
                categories_updated=categories_updated,
            )
            logger.info(
                "approval_executed",
                extra={
                    "amount": str(approval.amount),
                    "external_reference": approval.external_reference,
                    "categories_updated": categories_updated,
                },
            )
            return approval.to_dto()

    # =========================================================================
    # Refund
    # =========================================================================

    def refund(self, approval_id: UUID, caller: AuthenticatedCaller) -> RefundResult:
        """
        Return what milestones have not released.

        ``refund_amount = amount - sum(released milestone amounts)``.  The
        approval becomes refunded (terminal); a second refund is a conflict.

        Raises:
            NoRefundableFundsError: nothing is left to refund.
        """
        approval = self._load_approval(approval_id)
        current = ApprovalStatus(approval.status)

        with LogContext.bind(approval_id=approval.id, charity_id=approval.charity_id):
            self._require_transition(approval, current, ApprovalStatus.REFUNDED)

            charity = self._registry.load_charity(approval.charity_id)
            self._registry.require_owner(charity, caller, "process refunds")

            released_amounts = self._session.execute(
                select(MilestoneModel.amount).where(
                    MilestoneModel.approval_id == approval.id,
                    MilestoneModel.status == MilestoneStatus.RELEASED.value,
                )
            ).scalars().all()
            refund_amount = calculate_refund(approval.amount, released_amounts)

            approval.status = ApprovalStatus.REFUNDED.value
            approval.refund_amount = refund_amount
            approval.refunded_at = self._clock.now()
            self._flush_approval(approval)

            self._auditor.record_approval_event(
                approval.id,
                AuditAction.APPROVAL_REFUNDED,
                caller.id,
                from_status=current.value,
                to_status=ApprovalStatus.REFUNDED.value,
                refund_amount=refund_amount,
                released_count=len(released_amounts),
            )
            logger.info(
                "approval_refunded",
                extra={"refund_amount": str(refund_amount)},
            )
            return RefundResult(approval=approval.to_dto(), refund_amount=refund_amount)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load_approval(self, approval_id: UUID) -> TransactionApprovalModel:
        """Load and row-lock the approval, raise if not found."""
        approval = self._session.execute(
            select(TransactionApprovalModel)
            .where(TransactionApprovalModel.id == approval_id)
            .with_for_update()
        ).scalar_one_or_none()
        if approval is None:
            raise ApprovalNotFoundError(str(approval_id))
        return approval

    def _has_signed(self, approval: TransactionApprovalModel, signer_id: UUID) -> bool:
        existing = self._session.execute(
            select(ApprovalSignatureModel.id).where(
                ApprovalSignatureModel.approval_id == approval.id,
                ApprovalSignatureModel.signer_id == signer_id,
            )
        ).first()
        return existing is not None

    @staticmethod
    def _require_transition(
        approval: TransactionApprovalModel,
        current: ApprovalStatus,
        target: ApprovalStatus,
    ) -> None:
        if not can_transition_approval(current, target):
            logger.warning(
                "approval_transition_rejected",
                extra={"from_status": current.value, "to_status": target.value},
            )
            raise InvalidApprovalTransitionError(str(approval.id), current.value, target.value)

    def _flush_approval(
        self,
        approval: TransactionApprovalModel,
        signer_id: UUID | None = None,
    ) -> None:
        """Flush, translating version and uniqueness races into conflicts."""
        try:
            self._session.flush()
        except StaleDataError:
            logger.warning("approval_stale_write", extra={"entity_id": str(approval.id)})
            raise ConcurrentModificationError("TransactionApproval", str(approval.id))
        except IntegrityError:
            if signer_id is None:
                raise
            logger.warning(
                "concurrent_signature_conflict",
                extra={"signer_id": str(signer_id)},
            )
            raise DuplicateSignatureError(str(approval.id), str(signer_id))
