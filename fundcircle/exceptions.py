"""Custom exceptions for the Fund Circle engine."""


class FundCircleError(Exception):
    """Base exception for all Fund Circle errors."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class ValidationError(FundCircleError):
    """Raised when input is rejected before any write takes place."""
    pass


class StateConflictError(FundCircleError):
    """Raised when an entity is not in the status an operation requires."""

    def __init__(self, message: str, current_status: str = None, details: dict = None):
        details = dict(details or {})
        if current_status is not None:
            details['status'] = current_status
        super().__init__(message, details)
        self.current_status = current_status


# =============================================================================
# NOT FOUND
# =============================================================================

class NotFoundError(FundCircleError):
    """Raised when a referenced id does not exist."""

    entity = "Record"

    def __init__(self, entity_id=None, message: str = None):
        details = {}
        if entity_id is not None:
            details['id'] = entity_id
        if message is None:
            message = f"{self.entity} not found"
            if entity_id is not None:
                message = f"{self.entity} '{entity_id}' not found"
        super().__init__(message, details)
        self.entity_id = entity_id


class MemberNotFoundError(NotFoundError):
    entity = "Member"


class DepositNotFoundError(NotFoundError):
    entity = "Deposit"


class LoanNotFoundError(NotFoundError):
    entity = "Loan"


class LoanRequestNotFoundError(NotFoundError):
    entity = "Loan request"


class InstallmentNotFoundError(NotFoundError):
    """Raised when an installment id is not part of the given loan."""

    entity = "Installment"

    def __init__(self, installment_id=None, loan_id=None):
        message = None
        if loan_id is not None:
            message = f"Installment '{installment_id}' not found on loan '{loan_id}'"
        super().__init__(installment_id, message)
        if loan_id is not None:
            self.details['loan_id'] = loan_id
        self.loan_id = loan_id


# =============================================================================
# PERSISTENCE
# =============================================================================

class PersistenceError(FundCircleError):
    """Raised when the storage backend fails."""
    pass


class TransactionError(PersistenceError):
    """Raised when a database transaction fails to complete."""
    pass


class TransientPersistenceError(PersistenceError):
    """Raised for failures that may succeed on a later attempt (locks, busy)."""
    pass


class VersionConflictError(TransientPersistenceError):
    """Raised when a loan was modified by another writer since it was read."""

    def __init__(self, loan_id, expected_version: int):
        details = {'loan_id': loan_id, 'expected_version': expected_version}
        message = f"Loan '{loan_id}' was modified concurrently"
        super().__init__(message, details)


# =============================================================================
# AUTHENTICATION
# =============================================================================

class AuthError(FundCircleError):
    """Base class for login and permission failures."""
    pass


class AccountNotFoundError(AuthError):
    """No account matches the given email and role."""
    pass


class PendingApprovalError(AuthError):
    """The account exists but has not been approved yet."""
    pass


class AccessDeniedError(AuthError):
    """The account's signup was rejected."""
    pass


class PermissionDeniedError(AuthError):
    """The session's role may not perform the requested operation."""

    def __init__(self, operation: str, role: str = None):
        details = {'operation': operation}
        if role:
            details['role'] = role
        super().__init__(f"Not permitted: {operation}", details)
