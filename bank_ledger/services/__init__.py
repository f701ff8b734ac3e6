"""Business logic services."""

from bank_ledger.services.account_service import AccountService
from bank_ledger.services.ledger_service import LedgerService
from bank_ledger.services.audit_service import AuditService
from bank_ledger.services.query_service import QueryService
from bank_ledger.services.transaction_service import TransactionService

__all__ = [
    "AccountService",
    "LedgerService",
    "AuditService",
    "QueryService",
    "TransactionService",
]
