"""
Ledger service: the ledger store.

This service owns the `transactions` table:
1. insert() appends one entry and assigns its id
2. find() answers filtered, newest-first listings
3. patch_status() records a settlement state change

It never touches account balances. The transaction engine decides
what to write; this service only persists it. The caller controls
the transaction boundary.

The ledger table is mandatory. If it is missing or the database is
down, the SQLAlchemy error propagates and the engine reports a
StorageFailure; there is no balance-only fallback.
"""

from datetime import datetime

from sqlalchemy import select, or_
from sqlalchemy.orm import Session

from bank_ledger.errors import NotFound
from bank_ledger.models.base import utcnow
from bank_ledger.models.enums import TransactionStatus
from bank_ledger.models.transaction import Transaction
from bank_ledger.schemas.ledger import TransactionQuery


class LedgerService:

    def __init__(self, db: Session):
        self.db = db

    def insert(self, **fields) -> Transaction:
        """
        Append a ledger entry.

        created_at defaults to the acceptance time. The entry is
        flushed so its id is available to the caller (and to the
        audit trail) before the unit commits.
        """
        fields.setdefault("created_at", utcnow())
        entry = Transaction(**fields)
        self.db.add(entry)
        self.db.flush()
        return entry

    def get(self, transaction_id: int) -> Transaction:
        """Get an entry by id."""
        entry = self.db.get(Transaction, transaction_id)
        if not entry:
            raise NotFound(f"Transaction {transaction_id} not found")
        return entry

    def get_for_update(self, transaction_id: int) -> Transaction:
        """Load an entry for a state change, refreshing any cached copy."""
        entry = self.db.execute(
            select(Transaction)
            .where(Transaction.id == transaction_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if not entry:
            raise NotFound(f"Transaction {transaction_id} not found")
        return entry

    def find_compensation(self, transaction_id: int) -> Transaction | None:
        """Return the entry that reverses `transaction_id`, if one exists."""
        return self.db.execute(
            select(Transaction)
            .where(Transaction.reference_transaction_id == transaction_id)
            .limit(1)
        ).scalar_one_or_none()

    def find(self, query: TransactionQuery) -> list[Transaction]:
        """
        Return entries matching every given filter, newest first.

        - account matches the source OR the target account
        - from/to bound created_at inclusively
        - note_contains is a case-insensitive substring match;
          % and _ in the search text are matched literally
        Ties on created_at are broken by id so repeated reads return
        the same order.
        """
        stmt = select(Transaction)

        if query.account:
            stmt = stmt.where(or_(
                Transaction.account_number == query.account,
                Transaction.target_account == query.account,
            ))
        if query.type:
            stmt = stmt.where(Transaction.type == query.type)
        if query.status:
            stmt = stmt.where(Transaction.status == query.status)
        if query.from_:
            stmt = stmt.where(Transaction.created_at >= query.from_)
        if query.to:
            stmt = stmt.where(Transaction.created_at <= query.to)
        if query.note_contains:
            stmt = stmt.where(
                Transaction.note.icontains(query.note_contains, autoescape=True)
            )

        stmt = stmt.order_by(
            Transaction.created_at.desc(),
            Transaction.id.desc(),
        ).limit(query.limit)

        return list(self.db.execute(stmt).scalars().all())

    def patch_status(
        self,
        transaction_id: int,
        status: TransactionStatus,
        completed_at: datetime | None = None,
        voided_at: datetime | None = None,
    ) -> Transaction:
        """
        Set an entry's status and the matching timestamp.

        Transition rules are enforced by the engine; this only
        persists the outcome.
        """
        entry = self.get(transaction_id)
        entry.status = status
        if completed_at is not None:
            entry.completed_at = completed_at
        if voided_at is not None:
            entry.voided_at = voided_at
        self.db.flush()
        return entry
