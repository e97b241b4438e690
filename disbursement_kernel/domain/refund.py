"""
RefundCalculator -- reconcile an executed approval against released milestones.

Pure function.  No I/O, no clock, no session.  Used only by
``ApprovalWorkflow.refund``.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from disbursement_kernel.exceptions import NoRefundableFundsError


def calculate_refund(
    approval_amount: Decimal,
    released_amounts: Iterable[Decimal],
) -> Decimal:
    """
    Return the unspent remainder of an approval.

    Preconditions:
        - ``approval_amount`` is the executed approval's total.
        - ``released_amounts`` are the amounts of its milestones whose status
          is released (already filtered by the caller).

    Raises:
        NoRefundableFundsError: if the remainder is zero or negative.
    """
    released_total = sum(released_amounts, Decimal("0"))
    refund_amount = approval_amount - released_total
    if refund_amount <= 0:
        raise NoRefundableFundsError(str(approval_amount), str(released_total))
    return refund_amount
