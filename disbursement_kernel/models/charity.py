"""
Module: disbursement_kernel.models.charity
Responsibility: ORM persistence for charities and their child collections
    (cosigners, budget categories).

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - required_signatures >= 1 (DB check constraint); the registry adds the
      multisig rule (>= 2 when is_multisig).
    - Budget category spent is only ever incremented, through
      BudgetLedger.record_spend().

Not enforced:
    - Cosigner uniqueness per (charity_id, user_id) or (charity_id, email).
    - spent staying within any allocation-derived cap.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from disbursement_kernel.db.base import TrackedBase, UUIDString
from disbursement_kernel.domain.charity import BudgetCategory, Charity, Cosigner


class CharityModel(TrackedBase):
    """Persistent charity with its current signature policy."""

    __tablename__ = "charities"

    __table_args__ = (
        CheckConstraint(
            "required_signatures >= 1",
            name="ck_charities_required_signatures_positive",
        ),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    website: Mapped[str | None] = mapped_column(String(500), nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    owner_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=False,
    )
    is_multisig: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    required_signatures: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    cosigners: Mapped[list["CosignerModel"]] = relationship(
        "CosignerModel",
        back_populates="charity",
        order_by="CosignerModel.created_at",
        lazy="selectin",
    )
    budget_categories: Mapped[list["BudgetCategoryModel"]] = relationship(
        "BudgetCategoryModel",
        back_populates="charity",
        order_by="BudgetCategoryModel.name",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<Charity {self.id} {self.name!r} "
            f"multisig={self.is_multisig} required={self.required_signatures}>"
        )

    def to_dto(self) -> Charity:
        return Charity(
            id=self.id,
            name=self.name,
            description=self.description,
            category=self.category,
            owner_id=self.owner_id,
            is_multisig=self.is_multisig,
            required_signatures=self.required_signatures,
            website=self.website,
            image_url=self.image_url,
            created_at=self.created_at,
            cosigners=tuple(c.to_dto() for c in self.cosigners),
            budget_categories=tuple(b.to_dto() for b in self.budget_categories),
        )


class CosignerModel(TrackedBase):
    """A person, other than the owner, allowed to sign and verify for a charity."""

    __tablename__ = "cosigners"

    __table_args__ = (
        Index("ix_cosigners_charity_email", "charity_id", "email"),
        Index("ix_cosigners_charity_user", "charity_id", "user_id"),
    )

    charity_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("charities.id"), nullable=False,
    )
    user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    charity: Mapped["CharityModel"] = relationship(
        "CharityModel", back_populates="cosigners",
    )

    def __repr__(self) -> str:
        return f"<Cosigner {self.id} charity={self.charity_id} email={self.email}>"

    def to_dto(self) -> Cosigner:
        return Cosigner(
            id=self.id,
            charity_id=self.charity_id,
            email=self.email,
            user_id=self.user_id,
            is_primary=self.is_primary,
        )


class BudgetCategoryModel(TrackedBase):
    """Per-charity budget line: allocation percentage and amount spent."""

    __tablename__ = "budget_categories"

    __table_args__ = (
        Index("ix_budget_categories_charity_name", "charity_id", "name"),
    )

    charity_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("charities.id"), nullable=False,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    allocation: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    spent: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    charity: Mapped["CharityModel"] = relationship(
        "CharityModel", back_populates="budget_categories",
    )

    def __repr__(self) -> str:
        return (
            f"<BudgetCategory {self.name!r} charity={self.charity_id} "
            f"allocation={self.allocation} spent={self.spent}>"
        )

    def to_dto(self) -> BudgetCategory:
        return BudgetCategory(
            id=self.id,
            charity_id=self.charity_id,
            name=self.name,
            allocation=self.allocation,
            spent=self.spent,
        )
