"""
milestones.py -- Milestone endpoints.

Endpoints:
- GET   /api/charities/approvals/{approval_id}/milestones   list milestones
- POST  /api/charities/approvals/{approval_id}/milestones   create milestone
- PATCH /api/charities/milestones/{milestone_id}/complete   owner marks completed
- PATCH /api/charities/milestones/{milestone_id}/verify     cosigner verifies
- POST  /api/charities/milestones/{milestone_id}/release    owner releases funds
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from disbursement_api.dependencies import KernelServices, get_current_caller, get_services
from disbursement_api.schemas import MilestoneComplete, MilestoneCreate, MilestoneVerify, success
from disbursement_kernel.domain.caller import AuthenticatedCaller
from disbursement_kernel.exceptions import NotAuthorizedSignerError

router = APIRouter(prefix="/charities", tags=["milestones"])


@router.get("/approvals/{approval_id}/milestones")
def list_milestones(
    approval_id: UUID,
    caller: AuthenticatedCaller = Depends(get_current_caller),
    services: KernelServices = Depends(get_services),
):
    approval = services.approval_reads.get_approval(approval_id)
    charity = services.registry.load_charity(approval.charity_id)
    if not (
        services.registry.is_owner(charity, caller)
        or services.registry.is_any_cosigner(charity, caller)
    ):
        raise NotAuthorizedSignerError(str(caller.id), str(charity.id), "view milestones")
    return success(services.approval_reads.get_milestones(approval_id))


@router.post("/approvals/{approval_id}/milestones", status_code=status.HTTP_201_CREATED)
def create_milestone(
    approval_id: UUID,
    body: MilestoneCreate,
    caller: AuthenticatedCaller = Depends(get_current_caller),
    services: KernelServices = Depends(get_services),
):
    milestone = services.milestones.create_milestone(
        approval_id,
        caller,
        name=body.name,
        description=body.description,
        amount=body.amount,
        due_date=body.due_date,
    )
    return success(milestone)


@router.patch("/milestones/{milestone_id}/complete")
def complete_milestone(
    milestone_id: UUID,
    body: MilestoneComplete | None = None,
    caller: AuthenticatedCaller = Depends(get_current_caller),
    services: KernelServices = Depends(get_services),
):
    proof = body.proof if body is not None else None
    return success(services.milestones.complete(milestone_id, caller, proof))


@router.patch("/milestones/{milestone_id}/verify")
def verify_milestone(
    milestone_id: UUID,
    body: MilestoneVerify,
    caller: AuthenticatedCaller = Depends(get_current_caller),
    services: KernelServices = Depends(get_services),
):
    result = services.milestones.verify(milestone_id, caller, body.status, body.comments)
    return success({"milestone": result.milestone, "verification": result.verification})


@router.post("/milestones/{milestone_id}/release")
def release_milestone(
    milestone_id: UUID,
    caller: AuthenticatedCaller = Depends(get_current_caller),
    services: KernelServices = Depends(get_services),
):
    result = services.milestones.release(milestone_id, caller)
    return success({"milestone": result.milestone, "txHash": result.disbursement_reference})
