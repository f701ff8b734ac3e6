"""
Error taxonomy for the ledger core.

Every business failure raised by the services is a LedgerError.
Each kind carries a stable machine-readable code and the HTTP
status the API layer maps it to. LedgerError subclasses ValueError
so callers that only care about "the request was rejected" can
keep catching ValueError.
"""


class LedgerError(ValueError):
    """Base class for all rejections surfaced to callers."""

    code: str = "LedgerError"
    status_code: int = 400

    def __init__(self, message: str | None = None):
        super().__init__(message or self.code)

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class InvalidType(LedgerError):
    code = "InvalidType"


class InvalidAmount(LedgerError):
    code = "InvalidAmount"


class MissingAccount(LedgerError):
    code = "MissingAccount"


class SameAccountTransfer(LedgerError):
    code = "SameAccountTransfer"


class InsufficientFunds(LedgerError):
    code = "InsufficientFunds"


class InvalidAction(LedgerError):
    code = "InvalidAction"


class Unauthorized(LedgerError):
    code = "Unauthorized"
    status_code = 401


class Forbidden(LedgerError):
    code = "Forbidden"
    status_code = 403


class NotFound(LedgerError):
    code = "NotFound"
    status_code = 404


class InvalidState(LedgerError):
    code = "InvalidState"
    status_code = 409


class AccountUnavailable(LedgerError):
    """Account does not exist or is not Active."""

    code = "AccountUnavailable"
    status_code = 422


class StorageFailure(LedgerError):
    """The backing store was unreachable or rejected the write."""

    code = "StorageFailure"
    status_code = 503
