"""
approvals.py -- Transaction approval endpoints.

Endpoints:
- GET  /api/charities/{id}/approvals                  pending approvals
- POST /api/charities/{id}/approvals                  open an approval
- POST /api/charities/approvals/{approval_id}/sign    add the caller's signature
- POST /api/charities/approvals/{approval_id}/execute execute an approved transaction
- POST /api/charities/approvals/{approval_id}/refund  refund the unreleased remainder
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from disbursement_api.dependencies import KernelServices, get_current_caller, get_services
from disbursement_api.schemas import ApprovalCreate, SignatureInput, success
from disbursement_kernel.domain.caller import AuthenticatedCaller
from disbursement_kernel.exceptions import NotAuthorizedSignerError

router = APIRouter(prefix="/charities", tags=["approvals"])


@router.get("/{charity_id}/approvals")
def list_pending_approvals(
    charity_id: UUID,
    caller: AuthenticatedCaller = Depends(get_current_caller),
    services: KernelServices = Depends(get_services),
):
    charity = services.registry.load_charity(charity_id)
    if not (
        services.registry.is_owner(charity, caller)
        or services.registry.is_any_cosigner(charity, caller)
    ):
        raise NotAuthorizedSignerError(str(caller.id), str(charity_id), "view approvals")
    return success(services.approval_reads.get_pending_for_charity(charity_id))


@router.post("/{charity_id}/approvals", status_code=status.HTTP_201_CREATED)
def create_approval(
    charity_id: UUID,
    body: ApprovalCreate,
    caller: AuthenticatedCaller = Depends(get_current_caller),
    services: KernelServices = Depends(get_services),
):
    approval = services.approvals.create_approval(
        charity_id, caller, body.amount, body.description, body.category,
    )
    return success(approval)


@router.post("/approvals/{approval_id}/sign")
def sign_approval(
    approval_id: UUID,
    body: SignatureInput | None = None,
    caller: AuthenticatedCaller = Depends(get_current_caller),
    services: KernelServices = Depends(get_services),
):
    signature = body.signature if body is not None else ""
    return success(services.approvals.add_signature(approval_id, caller, signature))


@router.post("/approvals/{approval_id}/execute")
def execute_approval(
    approval_id: UUID,
    caller: AuthenticatedCaller = Depends(get_current_caller),
    services: KernelServices = Depends(get_services),
):
    approval = services.approvals.execute(approval_id, caller)
    return success(approval, message="Transaction executed successfully")


@router.post("/approvals/{approval_id}/refund")
def refund_approval(
    approval_id: UUID,
    caller: AuthenticatedCaller = Depends(get_current_caller),
    services: KernelServices = Depends(get_services),
):
    result = services.approvals.refund(approval_id, caller)
    return success(
        {"approval": result.approval, "refundAmount": result.refund_amount},
        message="Refund processed successfully",
    )
