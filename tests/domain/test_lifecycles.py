"""Approval and milestone state machines."""

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given
from hypothesis import strategies as st

from disbursement_kernel.domain.approval import (
    APPROVAL_TRANSITIONS,
    ApprovalStatus,
    TransactionApproval,
    can_transition_approval,
    placeholder_external_reference,
    quorum_reached,
)
from disbursement_kernel.domain.milestone import (
    VERIFICATION_OUTCOMES,
    MilestoneStatus,
    VerificationDecision,
    can_transition_milestone,
    disbursement_reference,
)


class TestApprovalTransitions:

    @pytest.mark.parametrize(
        "current,target",
        [
            (ApprovalStatus.PENDING, ApprovalStatus.APPROVED),
            (ApprovalStatus.APPROVED, ApprovalStatus.EXECUTED),
            (ApprovalStatus.EXECUTED, ApprovalStatus.REFUNDED),
        ],
    )
    def test_forward_edges_allowed(self, current, target):
        assert can_transition_approval(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (ApprovalStatus.PENDING, ApprovalStatus.EXECUTED),
            (ApprovalStatus.PENDING, ApprovalStatus.REFUNDED),
            (ApprovalStatus.APPROVED, ApprovalStatus.REFUNDED),
            (ApprovalStatus.APPROVED, ApprovalStatus.PENDING),
            (ApprovalStatus.EXECUTED, ApprovalStatus.APPROVED),
            (ApprovalStatus.REFUNDED, ApprovalStatus.EXECUTED),
        ],
    )
    def test_skips_and_backward_edges_rejected(self, current, target):
        assert not can_transition_approval(current, target)

    def test_refunded_is_terminal(self):
        assert APPROVAL_TRANSITIONS[ApprovalStatus.REFUNDED] == frozenset()
        for target in ApprovalStatus:
            assert not can_transition_approval(ApprovalStatus.REFUNDED, target)

    def test_every_status_has_an_entry(self):
        assert set(APPROVAL_TRANSITIONS) == set(ApprovalStatus)


class TestQuorum:

    @given(required=st.integers(min_value=1, max_value=20), signatures=st.integers(min_value=0, max_value=20))
    def test_quorum_iff_count_reaches_snapshot(self, required, signatures):
        assert quorum_reached(signatures, required) == (signatures >= required)

    def test_snapshot_property(self):
        approval = TransactionApproval(
            id=uuid4(),
            charity_id=uuid4(),
            amount=Decimal("10"),
            description="x",
            requested_by_id=uuid4(),
            required_signatures=2,
            current_signatures=1,
        )
        assert not approval.is_quorum_reached
        assert approval.signer_ids == frozenset()


class TestMilestoneTransitions:

    @pytest.mark.parametrize(
        "current,target",
        [
            (MilestoneStatus.PENDING, MilestoneStatus.COMPLETED),
            (MilestoneStatus.COMPLETED, MilestoneStatus.VERIFIED),
            (MilestoneStatus.COMPLETED, MilestoneStatus.PENDING),
            (MilestoneStatus.VERIFIED, MilestoneStatus.RELEASED),
        ],
    )
    def test_lifecycle_edges_allowed(self, current, target):
        assert can_transition_milestone(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (MilestoneStatus.PENDING, MilestoneStatus.VERIFIED),
            (MilestoneStatus.PENDING, MilestoneStatus.RELEASED),
            (MilestoneStatus.COMPLETED, MilestoneStatus.RELEASED),
            (MilestoneStatus.RELEASED, MilestoneStatus.VERIFIED),
        ],
    )
    def test_out_of_order_edges_rejected(self, current, target):
        assert not can_transition_milestone(current, target)

    @pytest.mark.parametrize("current", list(MilestoneStatus))
    def test_completion_accepted_from_every_state(self, current):
        assert can_transition_milestone(current, MilestoneStatus.COMPLETED)

    def test_nothing_leads_into_cancelled(self):
        for current in MilestoneStatus:
            assert not can_transition_milestone(current, MilestoneStatus.CANCELLED)

    def test_verification_outcomes(self):
        assert VERIFICATION_OUTCOMES[VerificationDecision.APPROVED] == MilestoneStatus.VERIFIED
        assert VERIFICATION_OUTCOMES[VerificationDecision.REJECTED] == MilestoneStatus.PENDING


class TestReferences:

    def test_placeholder_reference_embeds_id(self):
        approval_id = uuid4()
        assert (
            placeholder_external_reference(approval_id, "mock-transaction-hash-")
            == f"mock-transaction-hash-{approval_id}"
        )

    def test_disbursement_reference_embeds_id(self):
        milestone_id = uuid4()
        assert disbursement_reference(milestone_id, "milestone-tx-") == f"milestone-tx-{milestone_id}"
