"""
Module: disbursement_kernel.models.user
Responsibility: ORM persistence for platform users.

The bearer credential presented to the API is the user's ``external_id``
(the identity-provider subject).  The credential resolver maps it to a row
here and builds an ``AuthenticatedCaller``.
"""

from __future__ import annotations

from sqlalchemy import CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column

from disbursement_kernel.db.base import TrackedBase
from disbursement_kernel.domain.caller import AuthenticatedCaller, UserRole
from disbursement_kernel.domain.charity import User


class UserModel(TrackedBase):
    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint(
            "role IN ('USER', 'CHARITY_OWNER')",
            name="ck_users_valid_role",
        ),
    )

    external_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.USER.value)

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email} role={self.role}>"

    def to_dto(self) -> User:
        return User(
            id=self.id,
            external_id=self.external_id,
            email=self.email,
            role=UserRole(self.role),
        )

    def to_caller(self) -> AuthenticatedCaller:
        return AuthenticatedCaller(id=self.id, role=UserRole(self.role), email=self.email)
