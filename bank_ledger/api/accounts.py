"""
Account API endpoints.

Opening, renaming and locking accounts is administrative work;
a customer may read their own account and statement.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bank_ledger.api.deps import get_principal, http_error, settings
from bank_ledger.errors import Forbidden, LedgerError, Unauthorized
from bank_ledger.models.base import get_db
from bank_ledger.schemas.account import (
    AccountOpen,
    AccountResponse,
    AccountUpdate,
)
from bank_ledger.schemas.transaction import (
    TransactionListResponse,
    TransactionResponse,
)
from bank_ledger.services.account_service import AccountService
from bank_ledger.services.query_service import QueryService

router = APIRouter(prefix="/accounts", tags=["Accounts"])


def _require_admin(principal: str | None) -> None:
    if not principal:
        raise http_error(Unauthorized("Not authenticated"))
    if principal != settings.ADMIN_PRINCIPAL:
        raise http_error(Forbidden("Only an administrator may manage accounts"))


@router.get("", response_model=list[AccountResponse])
def list_accounts(
    principal: str | None = Depends(get_principal),
    db: Session = Depends(get_db),
):
    _require_admin(principal)
    return AccountService(db).list_accounts()


@router.post("", response_model=AccountResponse, status_code=201)
def open_account(
    request: AccountOpen,
    principal: str | None = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Open a new Active account."""
    _require_admin(principal)
    service = AccountService(db)
    try:
        account = service.open_account(request)
        db.commit()
        return account
    except LedgerError as e:
        db.rollback()
        raise http_error(e)


@router.get("/{account_number}", response_model=AccountResponse)
def get_account(
    account_number: str,
    principal: str | None = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Get account details, including the current balance."""
    if not principal:
        raise http_error(Unauthorized("Not authenticated"))
    if principal not in (settings.ADMIN_PRINCIPAL, account_number):
        raise http_error(Forbidden("Customers may only view their own account"))
    try:
        return AccountService(db).get_account(account_number)
    except LedgerError as e:
        raise http_error(e)


@router.patch("/{account_number}", response_model=AccountResponse)
def update_account(
    account_number: str,
    request: AccountUpdate,
    principal: str | None = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """
    Rename an account or change its status.

    Enforces the state machine. Archived is terminal.
    """
    _require_admin(principal)
    service = AccountService(db)
    try:
        account = service.update_account(account_number, request)
        db.commit()
        return account
    except LedgerError as e:
        db.rollback()
        raise http_error(e)


@router.get("/{account_number}/statement", response_model=TransactionListResponse)
def get_statement(
    account_number: str,
    limit: int | None = None,
    principal: str | None = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Entries where the account is source or target, newest first."""
    try:
        entries = QueryService(db).statement(account_number, principal, limit)
    except LedgerError as e:
        raise http_error(e)
    return TransactionListResponse(
        transactions=[TransactionResponse.model_validate(t) for t in entries]
    )
