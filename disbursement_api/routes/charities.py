"""
charities.py -- Charity administration endpoints.

Endpoints:
- POST   /api/charities                                  register a charity
- GET    /api/charities                                  list charities
- GET    /api/charities/{id}                             charity with cosigners + budget
- PATCH  /api/charities/{id}/multisig                    signature policy
- POST   /api/charities/{id}/cosigners                   add cosigner
- DELETE /api/charities/{id}/cosigners/{cosigner_id}     remove cosigner
- PATCH  /api/charities/{id}/transfer-ownership          hand over ownership
- POST   /api/charities/{id}/budget                      add budget category
- PATCH  /api/charities/{id}/budget/{category_id}        update budget category
- DELETE /api/charities/{id}/budget/{category_id}        delete budget category
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from disbursement_api.dependencies import KernelServices, get_current_caller, get_services
from disbursement_api.schemas import (
    BudgetCategoryInput,
    CharityCreate,
    CosignerCreate,
    MultiSigUpdate,
    OwnershipTransfer,
    success,
)
from disbursement_kernel.domain.caller import AuthenticatedCaller

router = APIRouter(prefix="/charities", tags=["charities"])


@router.post("", status_code=status.HTTP_201_CREATED)
def register_charity(
    body: CharityCreate,
    caller: AuthenticatedCaller = Depends(get_current_caller),
    services: KernelServices = Depends(get_services),
):
    charity = services.registry.register_charity(
        caller,
        name=body.name,
        description=body.description,
        category=body.category,
        website=body.website,
        image_url=body.image_url,
    )
    return success(charity)


@router.get("")
def list_charities(services: KernelServices = Depends(get_services)):
    return success(services.charity_reads.list_charities())


@router.get("/{charity_id}")
def get_charity(charity_id: UUID, services: KernelServices = Depends(get_services)):
    return success(services.charity_reads.get_charity(charity_id))


@router.patch("/{charity_id}/multisig")
def update_multisig_settings(
    charity_id: UUID,
    body: MultiSigUpdate,
    caller: AuthenticatedCaller = Depends(get_current_caller),
    services: KernelServices = Depends(get_services),
):
    charity = services.registry.update_multisig_settings(
        charity_id, caller, body.is_multisig, body.required_signatures,
    )
    return success(charity)


@router.post("/{charity_id}/cosigners", status_code=status.HTTP_201_CREATED)
def add_cosigner(
    charity_id: UUID,
    body: CosignerCreate,
    caller: AuthenticatedCaller = Depends(get_current_caller),
    services: KernelServices = Depends(get_services),
):
    cosigner = services.registry.add_cosigner(
        charity_id,
        caller,
        email=body.email,
        is_primary=body.is_primary,
        user_id=body.user_id,
    )
    return success(cosigner)


@router.delete("/{charity_id}/cosigners/{cosigner_id}")
def remove_cosigner(
    charity_id: UUID,
    cosigner_id: UUID,
    caller: AuthenticatedCaller = Depends(get_current_caller),
    services: KernelServices = Depends(get_services),
):
    services.registry.remove_cosigner(charity_id, caller, cosigner_id)
    return success(message="Cosigner removed successfully")


@router.patch("/{charity_id}/transfer-ownership")
def transfer_ownership(
    charity_id: UUID,
    body: OwnershipTransfer,
    caller: AuthenticatedCaller = Depends(get_current_caller),
    services: KernelServices = Depends(get_services),
):
    charity = services.registry.transfer_ownership(
        charity_id, caller, body.new_owner_id, body.email,
    )
    return success(charity, message="Charity ownership transferred successfully")


@router.post("/{charity_id}/budget", status_code=status.HTTP_201_CREATED)
def add_budget_category(
    charity_id: UUID,
    body: BudgetCategoryInput,
    caller: AuthenticatedCaller = Depends(get_current_caller),
    services: KernelServices = Depends(get_services),
):
    category = services.ledger.add_category(charity_id, caller, body.name, body.allocation)
    return success(category)


@router.patch("/{charity_id}/budget/{category_id}")
def update_budget_category(
    charity_id: UUID,
    category_id: UUID,
    body: BudgetCategoryInput,
    caller: AuthenticatedCaller = Depends(get_current_caller),
    services: KernelServices = Depends(get_services),
):
    category = services.ledger.update_category(
        charity_id, caller, category_id, body.name, body.allocation,
    )
    return success(category)


@router.delete("/{charity_id}/budget/{category_id}")
def delete_budget_category(
    charity_id: UUID,
    category_id: UUID,
    caller: AuthenticatedCaller = Depends(get_current_caller),
    services: KernelServices = Depends(get_services),
):
    services.ledger.delete_category(charity_id, caller, category_id)
    return success(message="Budget category deleted successfully")
