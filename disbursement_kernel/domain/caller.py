"""
Authenticated caller value object (``disbursement_kernel.domain.caller``).

The credential middleware resolves a bearer credential into an
``AuthenticatedCaller`` before any workflow runs.  Every workflow operation
takes the caller as an explicit argument; the kernel treats its fields as
ground truth and performs no credential validation itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class UserRole(str, Enum):
    """Platform roles carried on the caller."""

    USER = "USER"
    CHARITY_OWNER = "CHARITY_OWNER"


@dataclass(frozen=True)
class AuthenticatedCaller:
    """Trusted identity of the user making a request."""

    id: UUID
    role: UserRole
    email: str

    @property
    def normalized_email(self) -> str:
        return normalize_email(self.email)


def normalize_email(email: str | None) -> str:
    """Canonical form used for cosigner email matching."""
    return (email or "").strip().lower()
