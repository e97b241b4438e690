"""
dependencies.py -- FastAPI dependencies: DB session, caller, kernel services.

Purpose:
- One SQLAlchemy session per request, committed on success and rolled back
  on any error (``session_scope``).
- Resolve ``Authorization: Bearer <credential>`` into an
  ``AuthenticatedCaller`` before any route runs.
- Build the kernel services for the request around that one session.

This module does NOT:
- Contain business rules (those live in disbursement_kernel.services).
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from dataclasses import dataclass

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from disbursement_kernel.db.engine import session_scope
from disbursement_kernel.domain.caller import AuthenticatedCaller
from disbursement_kernel.exceptions import UnauthenticatedError
from disbursement_kernel.logging_config import LogContext, get_logger
from disbursement_kernel.models.user import UserModel
from disbursement_kernel.selectors import ApprovalSelector, CharitySelector
from disbursement_kernel.services import (
    ApprovalWorkflow,
    AuditorService,
    AuthorizationRegistry,
    BudgetLedger,
    MilestoneWorkflow,
)

logger = get_logger("api.dependencies")

CredentialResolver = Callable[[Session, str], AuthenticatedCaller | None]


def resolve_user_credential(session: Session, credential: str) -> AuthenticatedCaller | None:
    """Default resolver: the bearer credential is the user's external id."""
    user = session.execute(
        select(UserModel).where(UserModel.external_id == credential)
    ).scalar_one_or_none()
    return user.to_caller() if user is not None else None


# -----------------------------------------------------------------------------
# Session
# -----------------------------------------------------------------------------


def get_db(request: Request) -> Generator[Session, None, None]:
    with session_scope(request.app.state.session_factory) as session:
        yield session


# -----------------------------------------------------------------------------
# Caller
# -----------------------------------------------------------------------------


def get_current_caller(
    request: Request,
    session: Session = Depends(get_db),
) -> AuthenticatedCaller:
    header = request.headers.get("Authorization")
    if not header:
        raise UnauthenticatedError("Authorization header is required")

    scheme, _, credential = header.partition(" ")
    credential = credential.strip()
    if scheme.lower() != "bearer" or not credential:
        raise UnauthenticatedError("Invalid authorization header format")

    resolver: CredentialResolver = request.app.state.credential_resolver
    caller = resolver(session, credential)
    if caller is None:
        logger.warning("credential_rejected")
        raise UnauthenticatedError("Invalid or expired token")

    LogContext.set(actor_id=str(caller.id))
    return caller


# -----------------------------------------------------------------------------
# Services
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class KernelServices:
    """Everything a route needs, sharing the request's session."""

    registry: AuthorizationRegistry
    ledger: BudgetLedger
    approvals: ApprovalWorkflow
    milestones: MilestoneWorkflow
    auditor: AuditorService
    approval_reads: ApprovalSelector
    charity_reads: CharitySelector


def get_services(
    request: Request,
    session: Session = Depends(get_db),
) -> KernelServices:
    clock = request.app.state.clock
    references = request.app.state.config.references

    auditor = AuditorService(session, clock)
    registry = AuthorizationRegistry(session, auditor, clock)
    ledger = BudgetLedger(session, registry, auditor)
    return KernelServices(
        registry=registry,
        ledger=ledger,
        approvals=ApprovalWorkflow(
            session,
            registry,
            ledger,
            auditor,
            clock,
            external_reference_prefix=references.external_reference_prefix,
        ),
        milestones=MilestoneWorkflow(
            session,
            registry,
            auditor,
            clock,
            disbursement_reference_prefix=references.disbursement_reference_prefix,
        ),
        auditor=auditor,
        approval_reads=ApprovalSelector(session),
        charity_reads=CharitySelector(session),
    )
