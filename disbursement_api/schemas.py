"""
schemas.py -- Request bodies and the response envelope.

Request fields accept both camelCase (what the web client sends) and
snake_case.  Required business fields are optional at this layer so that
the kernel reports the missing-field message itself.

Responses are always ``{"status": "success", "data": ...}`` with Decimal
amounts rendered as strings.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RequestBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -----------------------------------------------------------------------------
# Charities
# -----------------------------------------------------------------------------


class CharityCreate(RequestBody):
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    website: Optional[str] = None
    image_url: Optional[str] = None


class CosignerCreate(RequestBody):
    email: Optional[str] = None
    is_primary: bool = False
    user_id: Optional[UUID] = None


class MultiSigUpdate(RequestBody):
    is_multisig: bool = Field(False, alias="isMultiSig")
    required_signatures: int = 1


class OwnershipTransfer(RequestBody):
    new_owner_id: Optional[UUID] = None
    email: Optional[str] = None


class BudgetCategoryInput(RequestBody):
    name: Optional[str] = None
    allocation: Decimal = Decimal("0")


# -----------------------------------------------------------------------------
# Approvals and milestones
# -----------------------------------------------------------------------------


class ApprovalCreate(RequestBody):
    amount: Optional[str | int | float] = None
    description: Optional[str] = None
    category: Optional[str] = None


class SignatureInput(RequestBody):
    signature: str = ""


class MilestoneCreate(RequestBody):
    name: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[str | int | float] = None
    due_date: Optional[datetime] = None


class MilestoneComplete(RequestBody):
    proof: Optional[str] = None


class MilestoneVerify(RequestBody):
    status: str
    comments: str = ""


# -----------------------------------------------------------------------------
# Envelope
# -----------------------------------------------------------------------------


def encode(value: Any) -> Any:
    """Kernel DTOs -> JSON-ready values (Decimal as str, UUID as str, enums by value)."""
    return jsonable_encoder(value, custom_encoder={Decimal: str})


def success(data: Any = None, message: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"status": "success"}
    if data is not None:
        body["data"] = encode(data)
    if message is not None:
        body["message"] = message
    return body
