"""
AuthorizationRegistry -- who may act for a charity, and the charity's
signature policy.

Responsibility:
    Answers the two questions every workflow asks (is this caller the owner?
    is this caller a cosigner?) and owns the commands that change the answer:
    registering a charity, adding and removing cosigners, changing the
    multisig policy, and transferring ownership.

Architecture position:
    Kernel > Services -- imperative shell.  Used directly by the HTTP layer
    and as a collaborator by ApprovalWorkflow and MilestoneWorkflow.

Invariants enforced:
    - Only the owner mutates cosigners, multisig settings, or ownership.
    - ``is_multisig`` implies ``required_signatures >= 2``; every charity
      requires at least one signature.
    - Policy changes never rewrite open approvals: each approval carries
      its own ``required_signatures`` snapshot.

Cosigner matching is deliberately two-pronged: ``is_cosigner`` matches
the stored email (case-insensitive), ``is_cosigner_by_identity`` matches
the stored user id.  Callers pick the prong(s) the operation allows.

Failure modes:
    - CharityNotFoundError / CosignerNotFoundError / UserNotFoundError (404).
    - NotCharityOwnerError / InsufficientRoleError (403).
    - MissingFieldError / InvalidMultiSigSettingsError / EmailMismatchError (400).
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from disbursement_kernel.domain.caller import AuthenticatedCaller, UserRole, normalize_email
from disbursement_kernel.domain.charity import Charity, Cosigner
from disbursement_kernel.domain.clock import Clock, SystemClock
from disbursement_kernel.exceptions import (
    CharityNotFoundError,
    CosignerNotFoundError,
    EmailMismatchError,
    InsufficientRoleError,
    InvalidMultiSigSettingsError,
    MissingFieldError,
    NotCharityOwnerError,
    UserNotFoundError,
)
from disbursement_kernel.logging_config import get_logger
from disbursement_kernel.models.audit_event import AuditAction
from disbursement_kernel.models.charity import CharityModel, CosignerModel
from disbursement_kernel.models.user import UserModel
from disbursement_kernel.services.auditor_service import AuditorService

logger = get_logger("services.authorization")


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


class AuthorizationRegistry:
    """
    Charity membership and signature policy.

    Contract:
        Predicates are side-effect free.  Commands flush but never commit;
        the caller owns the transaction.
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
    ):
        self._session = session
        self._auditor = auditor
        self._clock = clock or SystemClock()

    # =========================================================================
    # Predicates
    # =========================================================================

    @staticmethod
    def is_owner(charity: CharityModel | Charity, caller: AuthenticatedCaller) -> bool:
        return charity.owner_id == caller.id

    def is_cosigner(self, charity: CharityModel | Charity, caller: AuthenticatedCaller) -> bool:
        """True when a cosigner row for this charity carries the caller's email."""
        email = caller.normalized_email
        if not email:
            return False
        match = self._session.execute(
            select(CosignerModel.id)
            .where(
                CosignerModel.charity_id == charity.id,
                func.lower(CosignerModel.email) == email,
            )
            .limit(1)
        ).first()
        return match is not None

    def is_cosigner_by_identity(
        self,
        charity: CharityModel | Charity,
        caller: AuthenticatedCaller,
    ) -> bool:
        """True when a cosigner row for this charity is linked to the caller's user id."""
        match = self._session.execute(
            select(CosignerModel.id)
            .where(
                CosignerModel.charity_id == charity.id,
                CosignerModel.user_id == caller.id,
            )
            .limit(1)
        ).first()
        return match is not None

    def is_any_cosigner(
        self,
        charity: CharityModel | Charity,
        caller: AuthenticatedCaller,
    ) -> bool:
        return (
            self.is_cosigner_by_identity(charity, caller)
            or self.is_cosigner(charity, caller)
        )

    # =========================================================================
    # Loading
    # =========================================================================

    def load_charity(self, charity_id: UUID) -> CharityModel:
        charity = self._session.get(CharityModel, charity_id)
        if charity is None:
            raise CharityNotFoundError(str(charity_id))
        return charity

    def get_charity(self, charity_id: UUID) -> Charity:
        return self.load_charity(charity_id).to_dto()

    def require_owner(
        self,
        charity: CharityModel,
        caller: AuthenticatedCaller,
        action: str,
    ) -> None:
        if not self.is_owner(charity, caller):
            logger.warning(
                "owner_check_failed",
                extra={
                    "charity_id": str(charity.id),
                    "caller_id": str(caller.id),
                    "action": action,
                },
            )
            raise NotCharityOwnerError(str(caller.id), str(charity.id), action)

    # =========================================================================
    # Commands
    # =========================================================================

    def register_charity(
        self,
        caller: AuthenticatedCaller,
        name: str,
        description: str,
        category: str,
        website: str | None = None,
        image_url: str | None = None,
    ) -> Charity:
        """
        Register a new charity owned by the caller.

        Raises:
            InsufficientRoleError: caller's role is not CHARITY_OWNER.
            MissingFieldError: name, description or category is blank.
        """
        if caller.role != UserRole.CHARITY_OWNER:
            raise InsufficientRoleError(
                str(caller.id),
                caller.role.value,
                UserRole.CHARITY_OWNER.value,
                "create charities",
            )
        if _blank(name) or _blank(description) or _blank(category):
            raise MissingFieldError("name", "description", "category")

        charity = CharityModel(
            name=name.strip(),
            description=description.strip(),
            category=category.strip(),
            website=website,
            image_url=image_url,
            owner_id=caller.id,
            is_multisig=False,
            required_signatures=1,
        )
        self._session.add(charity)
        self._session.flush()

        self._auditor.record_charity_event(
            charity.id,
            AuditAction.CHARITY_REGISTERED,
            caller.id,
            name=charity.name,
        )
        logger.info(
            "charity_registered",
            extra={"charity_id": str(charity.id), "owner_id": str(caller.id)},
        )
        return charity.to_dto()

    def add_cosigner(
        self,
        charity_id: UUID,
        caller: AuthenticatedCaller,
        email: str,
        is_primary: bool = False,
        user_id: UUID | None = None,
    ) -> Cosigner:
        if _blank(email):
            raise MissingFieldError("email")

        charity = self.load_charity(charity_id)
        self.require_owner(charity, caller, "add cosigners")

        cosigner = CosignerModel(
            charity_id=charity.id,
            email=normalize_email(email),
            user_id=user_id,
            is_primary=is_primary,
        )
        self._session.add(cosigner)
        self._session.flush()
        self._session.expire(charity, ["cosigners"])

        self._auditor.record_charity_event(
            charity.id,
            AuditAction.COSIGNER_ADDED,
            caller.id,
            cosigner_id=cosigner.id,
            email=cosigner.email,
        )
        logger.info(
            "cosigner_added",
            extra={"charity_id": str(charity.id), "cosigner_id": str(cosigner.id)},
        )
        return cosigner.to_dto()

    def remove_cosigner(
        self,
        charity_id: UUID,
        caller: AuthenticatedCaller,
        cosigner_id: UUID,
    ) -> None:
        charity = self.load_charity(charity_id)
        self.require_owner(charity, caller, "remove cosigners")

        cosigner = self._session.get(CosignerModel, cosigner_id)
        if cosigner is None or cosigner.charity_id != charity.id:
            raise CosignerNotFoundError(str(cosigner_id))

        self._session.delete(cosigner)
        self._session.flush()
        self._session.expire(charity, ["cosigners"])

        self._auditor.record_charity_event(
            charity.id,
            AuditAction.COSIGNER_REMOVED,
            caller.id,
            cosigner_id=cosigner_id,
        )
        logger.info(
            "cosigner_removed",
            extra={"charity_id": str(charity.id), "cosigner_id": str(cosigner_id)},
        )

    def update_multisig_settings(
        self,
        charity_id: UUID,
        caller: AuthenticatedCaller,
        is_multisig: bool,
        required_signatures: int,
    ) -> Charity:
        """
        Change the charity's signature policy.

        Approvals already open keep the ``required_signatures`` they were
        created with.
        """
        charity = self.load_charity(charity_id)
        self.require_owner(charity, caller, "update multi-signature settings")

        if is_multisig and required_signatures < 2:
            raise InvalidMultiSigSettingsError(is_multisig, required_signatures)
        if required_signatures < 1:
            raise InvalidMultiSigSettingsError(is_multisig, required_signatures)

        previous = (charity.is_multisig, charity.required_signatures)
        charity.is_multisig = is_multisig
        charity.required_signatures = required_signatures
        self._session.flush()

        self._auditor.record_charity_event(
            charity.id,
            AuditAction.MULTISIG_UPDATED,
            caller.id,
            previous_is_multisig=previous[0],
            previous_required_signatures=previous[1],
            is_multisig=is_multisig,
            required_signatures=required_signatures,
        )
        logger.info(
            "multisig_updated",
            extra={
                "charity_id": str(charity.id),
                "is_multisig": is_multisig,
                "required_signatures": required_signatures,
            },
        )
        return charity.to_dto()

    def transfer_ownership(
        self,
        charity_id: UUID,
        caller: AuthenticatedCaller,
        new_owner_id: UUID | None,
        email: str | None,
    ) -> Charity:
        """
        Hand the charity to another registered user.

        The new owner's email must match the supplied one, and the new owner
        is promoted to CHARITY_OWNER if not one already.
        """
        if new_owner_id is None or _blank(email):
            raise MissingFieldError("new owner ID", "email")

        charity = self.load_charity(charity_id)
        self.require_owner(charity, caller, "transfer ownership")

        new_owner = self._session.get(UserModel, new_owner_id)
        if new_owner is None:
            raise UserNotFoundError(str(new_owner_id))
        if normalize_email(new_owner.email) != normalize_email(email):
            raise EmailMismatchError(str(new_owner_id))

        previous_owner_id = charity.owner_id
        charity.owner_id = new_owner.id
        if new_owner.role != UserRole.CHARITY_OWNER.value:
            new_owner.role = UserRole.CHARITY_OWNER.value
        self._session.flush()

        self._auditor.record_charity_event(
            charity.id,
            AuditAction.OWNERSHIP_TRANSFERRED,
            caller.id,
            previous_owner_id=previous_owner_id,
            new_owner_id=new_owner.id,
        )
        logger.info(
            "ownership_transferred",
            extra={
                "charity_id": str(charity.id),
                "previous_owner_id": str(previous_owner_id),
                "new_owner_id": str(new_owner.id),
            },
        )
        return charity.to_dto()
