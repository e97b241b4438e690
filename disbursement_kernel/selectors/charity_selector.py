"""Read access to charities, cosigners and budget categories."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from disbursement_kernel.domain.charity import BudgetCategory, Charity, Cosigner
from disbursement_kernel.exceptions import CharityNotFoundError
from disbursement_kernel.models.charity import BudgetCategoryModel, CharityModel, CosignerModel
from disbursement_kernel.selectors.base import BaseSelector


class CharitySelector(BaseSelector[CharityModel]):

    def get_charity(self, charity_id: UUID) -> Charity:
        """Charity with its cosigners and budget categories."""
        charity = self.session.get(CharityModel, charity_id)
        if charity is None:
            raise CharityNotFoundError(str(charity_id))
        return charity.to_dto()

    def list_charities(self) -> list[Charity]:
        charities = self.session.execute(
            select(CharityModel).order_by(CharityModel.created_at)
        ).scalars().all()
        return [c.to_dto() for c in charities]

    def get_cosigners(self, charity_id: UUID) -> list[Cosigner]:
        rows = self.session.execute(
            select(CosignerModel)
            .where(CosignerModel.charity_id == charity_id)
            .order_by(CosignerModel.created_at)
        ).scalars().all()
        return [r.to_dto() for r in rows]

    def get_budget_categories(self, charity_id: UUID) -> list[BudgetCategory]:
        rows = self.session.execute(
            select(BudgetCategoryModel)
            .where(BudgetCategoryModel.charity_id == charity_id)
            .order_by(BudgetCategoryModel.name)
        ).scalars().all()
        return [r.to_dto() for r in rows]
