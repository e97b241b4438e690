"""
Typed Exception Hierarchy for the Disbursement Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every failure the kernel can report is a class with:
  1. A machine-readable ``code`` class attribute (stable, API-safe)
  2. An ``http_status`` class attribute used by the HTTP edge
  3. Structured attributes carrying the context of the failure

Callers catch by type, never by parsing ``str(exc)``:

    try:
        workflow.add_signature(approval_id, caller, blob)
    except DuplicateSignatureError as e:
        respond(409, code=e.code, signer=e.signer_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    DisbursementKernelError (base)
    |
    +-- ValidationError                         400
    |   +-- MissingFieldError
    |   +-- InvalidAmountError
    |   +-- InvalidMultiSigSettingsError
    |   +-- NoRefundableFundsError
    |   +-- EmailMismatchError
    |
    +-- NotFoundError                           404
    |   +-- CharityNotFoundError
    |   +-- ApprovalNotFoundError
    |   +-- MilestoneNotFoundError
    |   +-- CosignerNotFoundError
    |   +-- BudgetCategoryNotFoundError
    |   +-- UserNotFoundError
    |
    +-- UnauthenticatedError                    401
    |
    +-- ForbiddenError                          403
    |   +-- NotCharityOwnerError
    |   +-- NotAuthorizedSignerError
    |   +-- NotCosignerError
    |   +-- InsufficientRoleError
    |
    +-- ConflictError                           409
    |   +-- InvalidApprovalTransitionError
    |   +-- InvalidMilestoneTransitionError
    |   +-- DuplicateSignatureError
    |   +-- ConcurrentModificationError
    |
    +-- PersistenceError                        500
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                           | When Raised
-------------|--------------------------------|-----------------------------------
Validation   | MISSING_FIELD                  | Required input absent or blank
             | INVALID_AMOUNT                 | Amount non-numeric or not positive
             | INVALID_MULTISIG_SETTINGS      | Multisig with fewer than 2 signers
             | NO_REFUNDABLE_FUNDS            | Released milestones cover the total
             | EMAIL_MISMATCH                 | Ownership transfer email mismatch
-------------|--------------------------------|-----------------------------------
Not found    | CHARITY_NOT_FOUND              | Charity id unknown
             | APPROVAL_NOT_FOUND             | Approval id unknown
             | MILESTONE_NOT_FOUND            | Milestone id unknown
             | COSIGNER_NOT_FOUND             | Cosigner id unknown for charity
             | BUDGET_CATEGORY_NOT_FOUND      | Category id unknown for charity
             | USER_NOT_FOUND                 | User id unknown
-------------|--------------------------------|-----------------------------------
Auth         | UNAUTHENTICATED                | Missing / invalid bearer credential
             | NOT_CHARITY_OWNER              | Owner-only operation
             | NOT_AUTHORIZED_SIGNER          | Neither owner nor cosigner
             | NOT_COSIGNER                   | Cosigner-only operation
             | INSUFFICIENT_ROLE              | Caller role too weak
-------------|--------------------------------|-----------------------------------
Conflict     | INVALID_APPROVAL_TRANSITION    | Approval not in required state
             | INVALID_MILESTONE_TRANSITION   | Milestone not in required state
             | DUPLICATE_SIGNATURE            | Signer already signed approval
             | CONCURRENT_MODIFICATION        | Lost a race on the same row
-------------|--------------------------------|-----------------------------------
Persistence  | PERSISTENCE_ERROR              | Store failure
             | IMMUTABILITY_VIOLATION         | Append-only row updated/deleted
"""


class DisbursementKernelError(Exception):
    """
    Base exception for all disbursement kernel errors.

    All subclasses must define a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "DISBURSEMENT_KERNEL_ERROR"
    http_status: int = 500


# Validation-related exceptions


class ValidationError(DisbursementKernelError):
    """Base exception for malformed or missing input."""

    code: str = "VALIDATION_ERROR"
    http_status: int = 400


class MissingFieldError(ValidationError):
    """One or more required fields were not supplied."""

    code: str = "MISSING_FIELD"

    def __init__(self, *field_names: str):
        self.field_names = tuple(field_names)
        if len(field_names) == 1:
            message = f"{field_names[0]} is required"
        else:
            message = f"{', '.join(field_names[:-1])} and {field_names[-1]} are required"
        super().__init__(message[0].upper() + message[1:])


class InvalidAmountError(ValidationError):
    """Amount could not be parsed or is not strictly positive."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field_name: str, value: object):
        self.field_name = field_name
        self.value = str(value)
        super().__init__(f"Invalid {field_name}: {value!r} (must be a positive number)")


class InvalidMultiSigSettingsError(ValidationError):
    """Multi-signature configuration is not coherent."""

    code: str = "INVALID_MULTISIG_SETTINGS"

    def __init__(self, is_multisig: bool, required_signatures: int):
        self.is_multisig = is_multisig
        self.required_signatures = required_signatures
        if is_multisig:
            message = "At least 2 signatures are required for multi-signature wallets"
        else:
            message = "At least 1 signature is required"
        super().__init__(message)


class NoRefundableFundsError(ValidationError):
    """Released milestones already account for the whole approval amount."""

    code: str = "NO_REFUNDABLE_FUNDS"

    def __init__(self, approval_amount: str, released_amount: str):
        self.approval_amount = approval_amount
        self.released_amount = released_amount
        super().__init__(
            f"No funds available for refund: approved {approval_amount}, "
            f"released {released_amount}"
        )


class EmailMismatchError(ValidationError):
    """Supplied email does not belong to the referenced user."""

    code: str = "EMAIL_MISMATCH"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Email does not match user {user_id}")


# Not-found exceptions


class NotFoundError(DisbursementKernelError):
    """Base exception for absent entities."""

    code: str = "NOT_FOUND"
    http_status: int = 404

    entity_type: str = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class CharityNotFoundError(NotFoundError):
    code: str = "CHARITY_NOT_FOUND"
    entity_type = "Charity"


class ApprovalNotFoundError(NotFoundError):
    code: str = "APPROVAL_NOT_FOUND"
    entity_type = "Transaction approval"


class MilestoneNotFoundError(NotFoundError):
    code: str = "MILESTONE_NOT_FOUND"
    entity_type = "Milestone"


class CosignerNotFoundError(NotFoundError):
    code: str = "COSIGNER_NOT_FOUND"
    entity_type = "Cosigner"


class BudgetCategoryNotFoundError(NotFoundError):
    code: str = "BUDGET_CATEGORY_NOT_FOUND"
    entity_type = "Budget category"


class UserNotFoundError(NotFoundError):
    code: str = "USER_NOT_FOUND"
    entity_type = "User"


# Authentication / authorization exceptions


class UnauthenticatedError(DisbursementKernelError):
    """Bearer credential missing, malformed, or unknown."""

    code: str = "UNAUTHENTICATED"
    http_status: int = 401

    def __init__(self, reason: str = "Unauthorized"):
        self.reason = reason
        super().__init__(reason)


class ForbiddenError(DisbursementKernelError):
    """Authenticated caller lacks the required relationship or role."""

    code: str = "FORBIDDEN"
    http_status: int = 403

    def __init__(self, caller_id: str, charity_id: str, action: str):
        self.caller_id = caller_id
        self.charity_id = charity_id
        self.action = action
        super().__init__(self._message())

    def _message(self) -> str:
        return f"Caller {self.caller_id} may not {self.action} for charity {self.charity_id}"


class NotCharityOwnerError(ForbiddenError):
    """Only the charity owner may perform this action."""

    code: str = "NOT_CHARITY_OWNER"

    def _message(self) -> str:
        return f"Only the charity owner can {self.action}"


class NotAuthorizedSignerError(ForbiddenError):
    """Caller is neither the owner nor a cosigner of the charity."""

    code: str = "NOT_AUTHORIZED_SIGNER"

    def _message(self) -> str:
        return f"You are not authorized to {self.action} for this charity"


class NotCosignerError(ForbiddenError):
    """Only a registered cosigner may perform this action."""

    code: str = "NOT_COSIGNER"

    def _message(self) -> str:
        return f"Only cosigners can {self.action}"


class InsufficientRoleError(ForbiddenError):
    """Caller's role does not permit the action."""

    code: str = "INSUFFICIENT_ROLE"

    def __init__(self, caller_id: str, role: str, required_role: str, action: str):
        self.role = role
        self.required_role = required_role
        super().__init__(caller_id, "-", action)

    def _message(self) -> str:
        return f"Only {self.required_role} users can {self.action}"


# Conflict exceptions


class ConflictError(DisbursementKernelError):
    """Entity is not in the state required by the requested operation."""

    code: str = "CONFLICT"
    http_status: int = 409


class InvalidApprovalTransitionError(ConflictError):
    """Approval lifecycle does not allow the requested transition."""

    code: str = "INVALID_APPROVAL_TRANSITION"

    def __init__(self, approval_id: str, from_status: str, to_status: str):
        self.approval_id = approval_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Transaction approval {approval_id} cannot move from "
            f"'{from_status}' to '{to_status}'"
        )


class InvalidMilestoneTransitionError(ConflictError):
    """Milestone lifecycle does not allow the requested transition."""

    code: str = "INVALID_MILESTONE_TRANSITION"

    def __init__(self, milestone_id: str, from_status: str, to_status: str):
        self.milestone_id = milestone_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Milestone {milestone_id} cannot move from "
            f"'{from_status}' to '{to_status}'"
        )


class DuplicateSignatureError(ConflictError):
    """Signer has already signed this approval."""

    code: str = "DUPLICATE_SIGNATURE"

    def __init__(self, approval_id: str, signer_id: str):
        self.approval_id = approval_id
        self.signer_id = signer_id
        super().__init__(
            f"Signer {signer_id} has already signed transaction approval {approval_id}"
        )


class ConcurrentModificationError(ConflictError):
    """Another transaction changed the row between read and write."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}: "
            "entity was changed by another transaction"
        )


# Persistence exceptions


class PersistenceError(DisbursementKernelError):
    """The store rejected or failed an operation."""

    code: str = "PERSISTENCE_ERROR"
    http_status: int = 500

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        message = f"Could not {operation}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ImmutabilityViolationError(PersistenceError):
    """
    Attempted to modify or delete an append-only record.

    Signatures, milestone verifications and audit events are written once.
    Approvals and milestones are never hard-deleted.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"modify {entity_type} {entity_id}", reason)
