"""
Transaction API endpoints.

Thin layer over TransactionService (writes) and QueryService
(reads). The service owns each atomic unit's commit; routes only
translate rejections into HTTP errors.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from bank_ledger.api.deps import (
    get_principal,
    get_transaction_service,
    http_error,
    settings,
)
from bank_ledger.errors import Forbidden, LedgerError, Unauthorized
from bank_ledger.models.base import get_db
from bank_ledger.models.enums import TransactionStatus, TransactionType
from bank_ledger.schemas.ledger import TransactionQuery
from bank_ledger.schemas.transaction import (
    AuditLogResponse,
    OperationRequest,
    TransactionListResponse,
    TransactionResponse,
    TransitionRequest,
)
from bank_ledger.services.audit_service import AuditService
from bank_ledger.services.query_service import QueryService
from bank_ledger.services.transaction_service import TransactionService

router = APIRouter(prefix="/transactions", tags=["Transactions"])


@router.post("", response_model=TransactionResponse, status_code=201)
def submit_transaction(
    request: OperationRequest,
    principal: str | None = Depends(get_principal),
    service: TransactionService = Depends(get_transaction_service),
):
    """
    Deposit, withdraw or transfer.

    Settled immediately unless `deferred` is true, in which case
    the entry is created Pending and balances are untouched.
    """
    try:
        return service.submit(request, principal)
    except LedgerError as e:
        raise http_error(e)


@router.get("", response_model=TransactionListResponse)
def list_transactions(
    account: str | None = None,
    type: TransactionType | None = None,
    status: TransactionStatus | None = None,
    from_: datetime | None = Query(default=None, alias="from"),
    to: datetime | None = None,
    q: str | None = None,
    limit: int = settings.QUERY_DEFAULT_LIMIT,
    principal: str | None = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Search the ledger, newest first. Customers only see their own account."""
    query = TransactionQuery(
        account=account,
        type=type,
        status=status,
        from_=from_,
        to=to,
        note_contains=q,
        limit=limit,
    )
    try:
        entries = QueryService(db).search(query, principal)
    except LedgerError as e:
        raise http_error(e)
    return TransactionListResponse(
        transactions=[TransactionResponse.model_validate(t) for t in entries]
    )


@router.get("/{transaction_id}", response_model=TransactionResponse)
def get_transaction(
    transaction_id: int,
    principal: str | None = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Get a single ledger entry."""
    try:
        return QueryService(db).get(transaction_id, principal)
    except LedgerError as e:
        raise http_error(e)


@router.post("/{transaction_id}/actions", response_model=TransactionResponse)
def transition_transaction(
    transaction_id: int,
    request: TransitionRequest,
    response: Response,
    principal: str | None = Depends(get_principal),
    service: TransactionService = Depends(get_transaction_service),
):
    """
    Complete, void or roll back an entry.

    Rolling back a completed entry creates a compensating entry,
    which is returned with status 201.
    """
    try:
        entry = service.apply_transition(transaction_id, request, principal)
    except LedgerError as e:
        raise http_error(e)
    if entry.id != transaction_id:
        response.status_code = 201
    return entry


@router.get("/{transaction_id}/audit", response_model=list[AuditLogResponse])
def get_transaction_audit(
    transaction_id: int,
    principal: str | None = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Audit trail of an entry, oldest first. Administrator only."""
    if not principal:
        raise http_error(Unauthorized("Not authenticated"))
    if principal != settings.ADMIN_PRINCIPAL:
        raise http_error(Forbidden("Only an administrator may view the audit trail"))

    audit = AuditService(db)
    return [
        AuditLogResponse(
            id=log.id,
            transaction_id=log.transaction_id,
            action=log.action,
            performed_by=log.performed_by,
            details=AuditService.details_of(log),
            created_at=log.created_at,
        )
        for log in audit.history(transaction_id)
    ]
