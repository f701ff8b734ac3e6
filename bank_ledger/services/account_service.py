"""
Account service: the account store.

Reads accounts, opens them, renames them and moves them through
their lifecycle. adjust_balance is the only code path that writes
the balance column, and it is only called by the transaction engine
inside an atomic unit that already holds the account's lease.
"""

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from bank_ledger.errors import AccountUnavailable, InvalidState, LedgerError
from bank_ledger.models.account import Account
from bank_ledger.schemas.account import AccountOpen, AccountUpdate

logger = logging.getLogger(__name__)


class AccountService:

    def __init__(self, db: Session):
        self.db = db

    def open_account(self, request: AccountOpen) -> Account:
        """
        Open a new Active account.

        The opening balance is written directly; it is not a money
        movement and produces no ledger entry.
        """
        if self.db.get(Account, request.account_number):
            raise LedgerError(
                f"Account '{request.account_number}' already exists"
            )

        account = Account(
            account_number=request.account_number,
            name=request.name,
            balance=request.opening_balance,
        )
        self.db.add(account)
        self.db.flush()
        logger.info(
            "Opened account %s", account.account_number,
            extra={"action": "open_account", "account": account.account_number},
        )
        return account

    def get_account(self, account_number: str) -> Account:
        """Get an account by number."""
        account = self.db.get(Account, account_number)
        if not account:
            raise AccountUnavailable(f"Account {account_number} not found")
        return account

    def list_accounts(self) -> list[Account]:
        accounts = self.db.execute(
            select(Account).order_by(Account.account_number)
        ).scalars().all()
        return list(accounts)

    def lock_account(self, account_number: str) -> Account | None:
        """
        Load an account for mutation.

        populate_existing refreshes an instance already in the
        identity map, so the balance read here is the committed one
        and not a value cached earlier in the session.
        """
        return self.db.execute(
            select(Account)
            .where(Account.account_number == account_number)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def adjust_balance(self, account_number: str, delta: Decimal) -> Account:
        """
        Add delta (positive or negative) to an account balance.

        Read-modify-write on the locked row. Non-negativity is the
        caller's responsibility; the store does not enforce it.
        """
        account = self.lock_account(account_number)
        if account is None:
            raise AccountUnavailable(f"Account {account_number} not found")

        account.balance = account.balance + delta
        self.db.flush()
        return account

    def update_account(
        self, account_number: str, request: AccountUpdate
    ) -> Account:
        """
        Rename an account and/or transition its status.

        Enforces the state machine; only valid transitions
        are allowed. Setting the current status again is a no-op.
        """
        account = self.lock_account(account_number)
        if account is None:
            raise AccountUnavailable(f"Account {account_number} not found")

        if request.name is not None:
            account.name = request.name

        if request.status is not None and request.status != account.status:
            if not account.can_transition_to(request.status):
                raise InvalidState(
                    f"Cannot transition account from {account.status.value} "
                    f"to {request.status.value}"
                )
            logger.info(
                "Account %s status %s -> %s",
                account_number, account.status.value, request.status.value,
                extra={"action": "account_status", "account": account_number},
            )
            account.status = request.status

        self.db.flush()
        return account
