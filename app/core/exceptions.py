"""
Ledger error hierarchy.

Every error raised inside an operation aborts its transaction. The API layer
maps each kind to an HTTP status and a `{success: false, message}` body.
"""


class LedgerError(Exception):
    """Base class for all business rule failures."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError):
    """Missing or malformed input, detected before any row is locked."""

    status_code = 400


class NotFoundError(LedgerError):
    """Referenced entity does not exist."""

    status_code = 404


class PermissionDeniedError(LedgerError):
    """Actor's role does not allow the operation, or actor is not the designated party."""

    status_code = 403


class ConsistencyViolation(LedgerError):
    """The write would break a ledger invariant."""

    status_code = 409


class InsufficientStock(ConsistencyViolation):
    pass


class InsufficientFunds(ConsistencyViolation):
    pass


class StateError(LedgerError):
    """Operation not allowed in the entity's current state."""

    status_code = 409
