"""
Error taxonomy for the wallet ledger.

Every error carries a stable machine-readable ``code`` and the HTTP status
the API layer answers with. Store-level errors are raised by the stores and
translated by ``LedgerService`` into the user-facing codes.
"""

from typing import Optional


class LedgerServiceError(Exception):
    code = "internal_error"
    status_code = 500

    def __init__(self, message: str = "", code: Optional[str] = None):
        super().__init__(message or self.__class__.__name__)
        if code is not None:
            self.code = code


# Validation

class InvalidAmountError(LedgerServiceError):
    code = "invalid_params"
    status_code = 400


class MissingCredentialsError(LedgerServiceError):
    code = "email_and_password_required"
    status_code = 400


class UidRequiredError(LedgerServiceError):
    code = "uid_required"
    status_code = 400


# Authorization

class UnauthorizedError(LedgerServiceError):
    code = "unauthorized"
    status_code = 401


class InvalidCredentialsError(LedgerServiceError):
    code = "invalid_credentials"
    status_code = 401


# Not found

class NotFoundError(LedgerServiceError):
    code = "not_found"
    status_code = 404


class UserNotFoundError(NotFoundError):
    code = "user_not_found"


# Conflict

class DuplicateEmailError(LedgerServiceError):
    code = "email_already_registered"
    status_code = 400


class AlreadyAllocatedError(LedgerServiceError):
    code = "already_allocated"
    status_code = 409


# Insufficiency

class InsufficientBalanceError(LedgerServiceError):
    status_code = 400


class InsufficientHomeBalanceError(InsufficientBalanceError):
    code = "insufficient_home_balance"


class InsufficientGasBalanceError(InsufficientBalanceError):
    code = "insufficient_gas_balance"


# Storage

class StorageError(LedgerServiceError):
    code = "internal_error"
    status_code = 500


class BalanceNotFoundError(StorageError):
    """No balance row exists for the uid."""


class BalanceExistsError(StorageError):
    """A balance row already exists for the uid."""
