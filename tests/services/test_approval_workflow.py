"""
Tests for ApprovalWorkflow.

Covers:
- create_approval: validation, authorization, policy snapshot
- add_signature: quorum, duplicate signers, non-pending approvals
- execute: lifecycle guard, owner gate, reference, ledger coupling
- refund: released milestones, second refund, nothing to refund
- Audit trail and structured logs for each step
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from disbursement_kernel.domain.approval import ApprovalStatus
from disbursement_kernel.exceptions import (
    ApprovalNotFoundError,
    CharityNotFoundError,
    DuplicateSignatureError,
    InvalidAmountError,
    InvalidApprovalTransitionError,
    MissingFieldError,
    NoRefundableFundsError,
    NotAuthorizedSignerError,
    NotCharityOwnerError,
)
from disbursement_kernel.models.approval import ApprovalSignatureModel, TransactionApprovalModel
from disbursement_kernel.models.audit_event import AuditAction
from disbursement_kernel.models.charity import BudgetCategoryModel
from disbursement_kernel.services import ApprovalWorkflow
from disbursement_kernel.services.approval_workflow import parse_amount


@pytest.fixture
def open_approval(approval_workflow, multisig_charity, owner):
    """Factory fixture: a pending approval on the 2-of-N charity."""

    def _create(amount="100", category=None):
        return approval_workflow.create_approval(
            multisig_charity.id, owner, amount, "Kitchen equipment", category,
        )

    return _create


def release_milestone(milestone_workflow, approval_id, owner, verifier, amount):
    milestone = milestone_workflow.create_milestone(
        approval_id, owner, "Phase", "Deliver phase", amount,
    )
    milestone_workflow.complete(milestone.id, owner, "photos")
    milestone_workflow.verify(milestone.id, verifier, "approved")
    return milestone_workflow.release(milestone.id, owner)


class TestParseAmount:

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("100", Decimal("100")),
            (" 12.50 ", Decimal("12.50")),
            (7, Decimal("7")),
            (0.1, Decimal("0.1")),
            (Decimal("3.333"), Decimal("3.333")),
            ("0.000000001", Decimal("0.000000001")),
            ("5.100000000000", Decimal("5.1")),
        ],
    )
    def test_valid_amounts(self, raw, expected):
        assert parse_amount(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_missing(self, raw):
        with pytest.raises(MissingFieldError):
            parse_amount(raw)

    @pytest.mark.parametrize(
        "raw", ["abc", "0", "-5", 0, -1.5, True, "NaN", "Infinity", "0.0000000001", "1.0000000001"],
    )
    def test_invalid(self, raw):
        with pytest.raises(InvalidAmountError) as exc_info:
            parse_amount(raw)
        assert exc_info.value.http_status == 400


class TestCreateApproval:

    def test_owner_opens_pending_approval_with_policy_snapshot(
        self, approval_workflow, multisig_charity, owner,
    ):
        approval = approval_workflow.create_approval(
            multisig_charity.id, owner, "250.75", "  Ovens ", "Equipment",
        )

        assert approval.status == ApprovalStatus.PENDING
        assert approval.amount == Decimal("250.75")
        assert approval.description == "Ovens"
        assert approval.category == "Equipment"
        assert approval.required_signatures == 2
        assert approval.current_signatures == 0
        assert approval.requested_by_id == owner.id
        assert approval.external_reference is None

    def test_email_cosigner_may_open(self, approval_workflow, multisig_charity, cosigner_a):
        approval = approval_workflow.create_approval(
            multisig_charity.id, cosigner_a, 10, "Plates",
        )
        assert approval.requested_by_id == cosigner_a.id

    def test_identity_only_cosigner_may_not_open(
        self, approval_workflow, registry, charity, owner, make_user,
    ):
        linked = make_user(email="linked@example.org")
        registry.add_cosigner(charity.id, owner, "stale@example.org", user_id=linked.id)

        with pytest.raises(NotAuthorizedSignerError):
            approval_workflow.create_approval(charity.id, linked, 10, "Plates")

    def test_outsider_rejected_and_nothing_persisted(
        self, approval_workflow, session, multisig_charity, outsider,
    ):
        with pytest.raises(NotAuthorizedSignerError) as exc_info:
            approval_workflow.create_approval(multisig_charity.id, outsider, 10, "Plates")

        assert exc_info.value.http_status == 403
        assert session.query(TransactionApprovalModel).count() == 0

    @pytest.mark.parametrize("amount,description", [(None, "x"), ("10", None), ("10", "  ")])
    def test_missing_fields(self, approval_workflow, charity, owner, amount, description):
        with pytest.raises(MissingFieldError) as exc_info:
            approval_workflow.create_approval(charity.id, owner, amount, description)
        assert str(exc_info.value) == "Amount and description are required"

    @pytest.mark.parametrize("amount", ["0", "-1", "ten", "0.0000000001"])
    def test_invalid_amount(self, approval_workflow, session, charity, owner, amount):
        with pytest.raises(InvalidAmountError):
            approval_workflow.create_approval(charity.id, owner, amount, "x")
        assert session.query(TransactionApprovalModel).count() == 0

    def test_smallest_amount_survives_storage(self, approval_workflow, session, charity, owner):
        approval = approval_workflow.create_approval(charity.id, owner, "0.000000001", "Stamp")

        session.expire_all()
        stored = session.get(TransactionApprovalModel, approval.id)
        assert stored.amount == Decimal("0.000000001")
        assert stored.amount > 0

    def test_unknown_charity(self, approval_workflow, owner):
        with pytest.raises(CharityNotFoundError):
            approval_workflow.create_approval(uuid4(), owner, "10", "x")

    def test_request_is_audited(self, approval_workflow, auditor_service, open_approval, owner):
        approval = open_approval()
        trace = auditor_service.get_trace("TransactionApproval", approval.id)

        assert trace.actions == (AuditAction.APPROVAL_REQUESTED,)
        assert trace.entries[0].payload["to_status"] == "pending"
        assert trace.entries[0].payload["amount"] == "100"


class TestAddSignature:

    def test_two_of_two_flips_on_second_signature(
        self, approval_workflow, open_approval, owner, cosigner_a,
    ):
        approval = open_approval()

        first = approval_workflow.add_signature(approval.id, owner, "sig-owner")
        assert first.status == ApprovalStatus.PENDING
        assert first.current_signatures == 1

        second = approval_workflow.add_signature(approval.id, cosigner_a, "sig-alice")
        assert second.status == ApprovalStatus.APPROVED
        assert second.current_signatures == 2
        assert second.signer_ids == frozenset({owner.id, cosigner_a.id})

    def test_single_signature_charity_approves_immediately(
        self, approval_workflow, charity, owner,
    ):
        approval = approval_workflow.create_approval(charity.id, owner, "5", "Pens")
        signed = approval_workflow.add_signature(approval.id, owner)
        assert signed.status == ApprovalStatus.APPROVED

    def test_duplicate_signature_conflicts_and_count_unchanged(
        self, approval_workflow, approval_selector, session, open_approval, cosigner_a,
    ):
        approval = open_approval()
        approval_workflow.add_signature(approval.id, cosigner_a, "sig-1")

        with pytest.raises(DuplicateSignatureError) as exc_info:
            approval_workflow.add_signature(approval.id, cosigner_a, "sig-2")

        assert exc_info.value.http_status == 409
        reloaded = approval_selector.get_approval(approval.id)
        assert reloaded.current_signatures == 1
        assert reloaded.status == ApprovalStatus.PENDING
        assert (
            session.query(ApprovalSignatureModel)
            .filter_by(approval_id=approval.id)
            .count()
            == 1
        )

    def test_identity_cosigner_may_sign(
        self, approval_workflow, registry, charity, owner, make_user,
    ):
        linked = make_user(email="linked@example.org")
        registry.add_cosigner(charity.id, owner, "other@example.org", user_id=linked.id)
        approval = approval_workflow.create_approval(charity.id, owner, "5", "Pens")

        signed = approval_workflow.add_signature(approval.id, linked)
        assert signed.signer_ids == frozenset({linked.id})

    def test_outsider_cannot_sign(self, approval_workflow, open_approval, outsider):
        approval = open_approval()
        with pytest.raises(NotAuthorizedSignerError):
            approval_workflow.add_signature(approval.id, outsider)

    def test_approved_approval_takes_no_more_signatures(
        self, approval_workflow, open_approval, owner, cosigner_a, cosigner_b,
    ):
        approval = open_approval()
        approval_workflow.add_signature(approval.id, owner)
        approval_workflow.add_signature(approval.id, cosigner_a)

        with pytest.raises(InvalidApprovalTransitionError):
            approval_workflow.add_signature(approval.id, cosigner_b)

    def test_unknown_approval(self, approval_workflow, owner):
        with pytest.raises(ApprovalNotFoundError):
            approval_workflow.add_signature(uuid4(), owner)

    def test_signature_is_stored(self, approval_workflow, open_approval, cosigner_a):
        approval = open_approval()
        signed = approval_workflow.add_signature(approval.id, cosigner_a, "0xabc")

        (record,) = signed.signatures
        assert record.signer_id == cosigner_a.id
        assert record.signature == "0xabc"
        assert record.signed_at is not None

    def test_quorum_is_audited_and_logged(
        self, approval_workflow, auditor_service, open_approval, owner, cosigner_a, captured_logs,
    ):
        approval = open_approval()
        approval_workflow.add_signature(approval.id, owner)
        approval_workflow.add_signature(approval.id, cosigner_a)

        trace = auditor_service.get_trace("TransactionApproval", approval.id)
        assert trace.actions == (
            AuditAction.APPROVAL_REQUESTED,
            AuditAction.APPROVAL_SIGNED,
            AuditAction.APPROVAL_SIGNED,
            AuditAction.APPROVAL_APPROVED,
        )
        assert [e.seq for e in trace.entries] == [1, 2, 3, 4]

        logs = captured_logs()
        quorum = [r for r in logs if r["message"] == "approval_quorum_reached"]
        assert len(quorum) == 1
        assert quorum[0]["approval_id"] == str(approval.id)


class TestQuorumInvariant:

    @settings(
        max_examples=25,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    @given(required=st.integers(min_value=2, max_value=5), extra_signers=st.integers(min_value=0, max_value=3))
    def test_count_never_exceeds_snapshot(
        self, approval_workflow, registry, owner, make_user, required, extra_signers,
    ):
        created = registry.register_charity(owner, name="Q", description="Q", category="Q")
        signers = [make_user() for _ in range(required + extra_signers)]
        for signer in signers:
            registry.add_cosigner(created.id, owner, signer.email)
        registry.update_multisig_settings(created.id, owner, True, required)
        approval = approval_workflow.create_approval(created.id, owner, "10", "Q")

        accepted = 0
        for signer in signers:
            try:
                latest = approval_workflow.add_signature(approval.id, signer)
            except InvalidApprovalTransitionError:
                continue
            accepted += 1
            assert latest.current_signatures <= latest.required_signatures
            assert latest.is_quorum_reached == (latest.status == ApprovalStatus.APPROVED)

        assert accepted == required


class TestExecute:

    def test_execute_approved(self, approval_workflow, approved_approval, owner, deterministic_clock):
        approval = approved_approval(Decimal("100"))
        executed = approval_workflow.execute(approval.id, owner)

        assert executed.status == ApprovalStatus.EXECUTED
        assert executed.external_reference == f"mock-transaction-hash-{approval.id}"
        assert executed.executed_at == deterministic_clock.now()

    def test_execute_pending_conflicts_and_ledger_untouched(
        self, approval_workflow, ledger, session, charity, owner,
    ):
        category = ledger.add_category(charity.id, owner, "Wells", Decimal("50"))
        approval = approval_workflow.create_approval(charity.id, owner, "100", "Drill", "Wells")

        with pytest.raises(InvalidApprovalTransitionError) as exc_info:
            approval_workflow.execute(approval.id, owner)

        assert exc_info.value.http_status == 409
        session.expire_all()
        assert session.get(BudgetCategoryModel, category.id).spent == Decimal("0")
        assert session.get(TransactionApprovalModel, approval.id).status == "pending"

    def test_execute_twice_conflicts(self, approval_workflow, executed_approval, owner):
        approval = executed_approval()
        with pytest.raises(InvalidApprovalTransitionError):
            approval_workflow.execute(approval.id, owner)

    def test_only_owner_executes(
        self, approval_workflow, open_approval, owner, cosigner_a,
    ):
        approval = open_approval()
        approval_workflow.add_signature(approval.id, owner)
        approval_workflow.add_signature(approval.id, cosigner_a)

        with pytest.raises(NotCharityOwnerError) as exc_info:
            approval_workflow.execute(approval.id, cosigner_a)
        assert str(exc_info.value) == "Only the charity owner can execute transactions"

    def test_configured_reference_prefix(
        self, session, registry, ledger, auditor_service, deterministic_clock,
        approved_approval, owner,
    ):
        workflow = ApprovalWorkflow(
            session, registry, ledger, auditor_service, deterministic_clock,
            external_reference_prefix="chain-",
        )
        approval = approved_approval()
        assert workflow.execute(approval.id, owner).external_reference == f"chain-{approval.id}"

    def test_execution_is_audited(self, approval_workflow, auditor_service, executed_approval):
        approval = executed_approval(Decimal("10"), "Nothing")
        entry = auditor_service.get_trace("TransactionApproval", approval.id).entries[-1]

        assert entry.action == AuditAction.APPROVAL_EXECUTED
        assert entry.payload["from_status"] == "approved"
        assert entry.payload["to_status"] == "executed"
        assert entry.payload["categories_updated"] == 0


class TestRefund:

    def test_refund_without_releases_returns_everything(
        self, approval_workflow, executed_approval, owner, deterministic_clock,
    ):
        approval = executed_approval(Decimal("100"))
        result = approval_workflow.refund(approval.id, owner)

        assert result.refund_amount == Decimal("100")
        assert result.approval.status == ApprovalStatus.REFUNDED
        assert result.approval.refund_amount == Decimal("100")
        assert result.approval.refunded_at == deterministic_clock.now()

    def test_refund_subtracts_released_milestones_only(
        self, approval_workflow, milestone_workflow, registry, charity,
        executed_approval, owner, cosigner_a,
    ):
        registry.add_cosigner(charity.id, owner, cosigner_a.email)
        approval = executed_approval(Decimal("100"))
        release_milestone(milestone_workflow, approval.id, owner, cosigner_a, "40")
        milestone_workflow.create_milestone(approval.id, owner, "Later", "Not released", "30")

        result = approval_workflow.refund(approval.id, owner)
        assert result.refund_amount == Decimal("60")

    def test_refund_twice_conflicts(self, approval_workflow, executed_approval, owner):
        approval = executed_approval()
        approval_workflow.refund(approval.id, owner)

        with pytest.raises(InvalidApprovalTransitionError):
            approval_workflow.refund(approval.id, owner)

    def test_refund_requires_execution(self, approval_workflow, approved_approval, owner):
        approval = approved_approval()
        with pytest.raises(InvalidApprovalTransitionError):
            approval_workflow.refund(approval.id, owner)

    def test_fully_released_has_nothing_to_refund(
        self, approval_workflow, milestone_workflow, registry, session, charity,
        executed_approval, owner, cosigner_a,
    ):
        registry.add_cosigner(charity.id, owner, cosigner_a.email)
        approval = executed_approval(Decimal("100"))
        release_milestone(milestone_workflow, approval.id, owner, cosigner_a, "100")

        with pytest.raises(NoRefundableFundsError):
            approval_workflow.refund(approval.id, owner)
        session.expire_all()
        assert session.get(TransactionApprovalModel, approval.id).status == "executed"

    def test_only_owner_refunds(
        self, approval_workflow, registry, charity, executed_approval, owner, cosigner_a,
    ):
        registry.add_cosigner(charity.id, owner, cosigner_a.email)
        approval = executed_approval()

        with pytest.raises(NotCharityOwnerError) as exc_info:
            approval_workflow.refund(approval.id, cosigner_a)
        assert str(exc_info.value) == "Only the charity owner can process refunds"
