"""
BudgetLedger -- per-charity budget categories and their spent totals.

Responsibility:
    Owner-only management of budget categories (name + allocation
    percentage) and the single write path for ``spent``.

Invariants enforced:
    - ``spent`` changes only through ``record_spend()``, which issues one
      atomic ``UPDATE ... SET spent = spent + :amount``.  Concurrent
      executions against the same category cannot lose an increment.
    - ``record_spend()`` runs inside the caller's transaction, so the
      increment commits or rolls back together with the approval that
      triggered it.

Not enforced:
    - No cap: spent may exceed any allocation-derived budget.
    - Category names are not unique per charity; a spend hits every
      category with a matching name.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from disbursement_kernel.domain.caller import AuthenticatedCaller
from disbursement_kernel.domain.charity import BudgetCategory
from disbursement_kernel.exceptions import BudgetCategoryNotFoundError, MissingFieldError
from disbursement_kernel.logging_config import get_logger
from disbursement_kernel.models.audit_event import AuditAction
from disbursement_kernel.models.charity import BudgetCategoryModel
from disbursement_kernel.services.auditor_service import AuditorService
from disbursement_kernel.services.authorization_registry import AuthorizationRegistry

logger = get_logger("services.budget_ledger")


class BudgetLedger:
    """Budget categories for a charity.  Flushes, never commits."""

    def __init__(
        self,
        session: Session,
        registry: AuthorizationRegistry,
        auditor: AuditorService,
    ):
        self._session = session
        self._registry = registry
        self._auditor = auditor

    def _load_category(self, charity_id: UUID, category_id: UUID) -> BudgetCategoryModel:
        category = self._session.execute(
            select(BudgetCategoryModel).where(
                BudgetCategoryModel.id == category_id,
                BudgetCategoryModel.charity_id == charity_id,
            )
        ).scalar_one_or_none()
        if category is None:
            raise BudgetCategoryNotFoundError(str(category_id))
        return category

    # =========================================================================
    # Category management
    # =========================================================================

    def add_category(
        self,
        charity_id: UUID,
        caller: AuthenticatedCaller,
        name: str,
        allocation: Decimal = Decimal("0"),
    ) -> BudgetCategory:
        if name is None or not name.strip():
            raise MissingFieldError("name")

        charity = self._registry.load_charity(charity_id)
        self._registry.require_owner(charity, caller, "add budget categories")

        category = BudgetCategoryModel(
            charity_id=charity.id,
            name=name.strip(),
            allocation=allocation,
            spent=Decimal("0"),
        )
        self._session.add(category)
        self._session.flush()
        self._session.expire(charity, ["budget_categories"])

        self._auditor.record_charity_event(
            charity.id,
            AuditAction.BUDGET_CATEGORY_ADDED,
            caller.id,
            category_id=category.id,
            category_name=category.name,
            allocation=allocation,
        )
        logger.info(
            "budget_category_added",
            extra={"charity_id": str(charity.id), "category_id": str(category.id)},
        )
        return category.to_dto()

    def update_category(
        self,
        charity_id: UUID,
        caller: AuthenticatedCaller,
        category_id: UUID,
        name: str,
        allocation: Decimal,
    ) -> BudgetCategory:
        """Rename a category and set its allocation.  ``spent`` is untouched."""
        if name is None or not name.strip():
            raise MissingFieldError("name")

        charity = self._registry.load_charity(charity_id)
        self._registry.require_owner(charity, caller, "update budget categories")
        category = self._load_category(charity.id, category_id)

        category.name = name.strip()
        category.allocation = allocation
        self._session.flush()

        self._auditor.record_charity_event(
            charity.id,
            AuditAction.BUDGET_CATEGORY_UPDATED,
            caller.id,
            category_id=category.id,
            category_name=category.name,
            allocation=allocation,
        )
        logger.info(
            "budget_category_updated",
            extra={"charity_id": str(charity.id), "category_id": str(category.id)},
        )
        return category.to_dto()

    def delete_category(
        self,
        charity_id: UUID,
        caller: AuthenticatedCaller,
        category_id: UUID,
    ) -> None:
        charity = self._registry.load_charity(charity_id)
        self._registry.require_owner(charity, caller, "delete budget categories")
        category = self._load_category(charity.id, category_id)

        self._session.delete(category)
        self._session.flush()
        self._session.expire(charity, ["budget_categories"])

        self._auditor.record_charity_event(
            charity.id,
            AuditAction.BUDGET_CATEGORY_DELETED,
            caller.id,
            category_id=category_id,
        )
        logger.info(
            "budget_category_deleted",
            extra={"charity_id": str(charity.id), "category_id": str(category_id)},
        )

    # =========================================================================
    # Spend
    # =========================================================================

    def record_spend(
        self,
        charity_id: UUID,
        category_name: str | None,
        amount: Decimal,
    ) -> int:
        """
        Atomically add ``amount`` to the matching category's ``spent``.

        Returns the number of categories updated.  Zero (no category given,
        or none with that name) is not an error.
        """
        if not category_name:
            return 0

        result = self._session.execute(
            update(BudgetCategoryModel)
            .where(
                BudgetCategoryModel.charity_id == charity_id,
                BudgetCategoryModel.name == category_name,
            )
            .values(spent=BudgetCategoryModel.spent + amount)
            .execution_options(synchronize_session="fetch")
        )
        updated = result.rowcount or 0

        if updated:
            logger.info(
                "budget_spend_recorded",
                extra={
                    "charity_id": str(charity_id),
                    "category": category_name,
                    "amount": str(amount),
                },
            )
        else:
            logger.info(
                "budget_spend_skipped",
                extra={"charity_id": str(charity_id), "category": category_name},
            )
        return updated
