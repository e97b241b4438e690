"""
Module: disbursement_kernel.selectors.base
Responsibility: Base class for read-only query selectors.

Invariants enforced:
    - Read-only access: selectors accept a Session from the caller and never
      call add(), delete(), flush() or commit().
    - DTO return convention: selectors return frozen dataclasses, not ORM
      instances.
    - Authorization is not a selector concern; callers check access with
      AuthorizationRegistry before reading.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from disbursement_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Selectors share the caller's session and its transaction scope."""

    def __init__(self, session: Session):
        self.session = session
