"""
Query service: read-only views over the ledger.

Backs account statements and administrative search. It reads
through LedgerService and has no path to account balances or to
any write operation.

Customers see only entries that touch their own account; the
administrator sees everything.
"""

from sqlalchemy.orm import Session

from bank_ledger.config import get_settings
from bank_ledger.errors import Forbidden, Unauthorized
from bank_ledger.models.transaction import Transaction
from bank_ledger.schemas.ledger import TransactionQuery
from bank_ledger.services.ledger_service import LedgerService


class QueryService:

    def __init__(self, db: Session):
        self._ledger = LedgerService(db)
        self._admin = get_settings().ADMIN_PRINCIPAL

    def _scope(self, query: TransactionQuery, principal: str | None) -> TransactionQuery:
        if not principal:
            raise Unauthorized("Not authenticated")
        if principal == self._admin:
            return query
        if query.account and query.account != principal:
            raise Forbidden("Customers may only view their own account")
        return query.model_copy(update={"account": principal})

    def search(
        self, query: TransactionQuery, principal: str | None
    ) -> list[Transaction]:
        """Filtered entries, newest first, scoped to the caller."""
        return self._ledger.find(self._scope(query, principal))

    def statement(
        self,
        account_number: str,
        principal: str | None,
        limit: int | None = None,
    ) -> list[Transaction]:
        """Every entry where the account is source or target, newest first."""
        filters = {"account": account_number}
        if limit is not None:
            filters["limit"] = limit
        return self.search(TransactionQuery(**filters), principal)

    def get(self, transaction_id: int, principal: str | None) -> Transaction:
        """A single entry, if the caller may see it."""
        if not principal:
            raise Unauthorized("Not authenticated")
        entry = self._ledger.get(transaction_id)
        if principal != self._admin and principal not in entry.account_numbers:
            raise Forbidden("Customers may only view their own account")
        return entry
