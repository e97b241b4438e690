"""
Charity domain types (``disbursement_kernel.domain.charity``).

Frozen snapshots of the charity aggregate: the charity itself, its
cosigners, and its budget categories.  Returned by the registry, the
budget ledger, and the charity selector.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from disbursement_kernel.domain.caller import UserRole


@dataclass(frozen=True)
class User:
    id: UUID
    external_id: str
    email: str
    role: UserRole


@dataclass(frozen=True)
class Cosigner:
    id: UUID
    charity_id: UUID
    email: str
    user_id: UUID | None = None
    is_primary: bool = False


@dataclass(frozen=True)
class BudgetCategory:
    """Allocation is a percentage of total budget; spent is an absolute amount."""

    id: UUID
    charity_id: UUID
    name: str
    allocation: Decimal
    spent: Decimal = Decimal("0")


@dataclass(frozen=True)
class Charity:
    id: UUID
    name: str
    description: str
    category: str
    owner_id: UUID
    is_multisig: bool = False
    required_signatures: int = 1
    website: str | None = None
    image_url: str | None = None
    created_at: datetime | None = None
    cosigners: tuple[Cosigner, ...] = ()
    budget_categories: tuple[BudgetCategory, ...] = ()
