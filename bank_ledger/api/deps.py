"""
Shared API dependencies.

Session issuance is handled elsewhere; the caller's identity
arrives already established, either as the `session` cookie set at
login or as an X-Session header for tools and scripts. Its value
is the account number, or the administrator identity.
"""

from fastapi import Cookie, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from bank_ledger.config import get_settings
from bank_ledger.errors import LedgerError
from bank_ledger.models.base import get_db
from bank_ledger.services.audit_service import AuditService
from bank_ledger.services.transaction_service import TransactionService

settings = get_settings()


def get_principal(
    x_session: str | None = Header(default=None),
    session: str | None = Cookie(default=None),
) -> str | None:
    """The acting principal, or None if the caller is anonymous."""
    return x_session or session or None


def get_transaction_service(db: Session = Depends(get_db)) -> TransactionService:
    audit = AuditService(db) if settings.AUDIT_ENABLED else None
    return TransactionService(db, audit=audit)


def http_error(exc: LedgerError) -> HTTPException:
    """Translate a ledger rejection into a structured HTTP error."""
    return HTTPException(status_code=exc.status_code, detail=exc.to_dict())
