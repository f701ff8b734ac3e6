"""
Transaction service: deposits, withdrawals, transfers and their
settlement lifecycle.

Each new operation:
1. Validates the request (type, amount, accounts, caller) in a
   fixed order; the first failure wins
2. Takes the leases of the accounts involved
3. Checks the accounts are Active
4. Settles now (Completed) or records current balances (Pending)
5. Inserts one ledger entry with before/after snapshots
6. Appends audit records, if an audit trail is configured
7. Commits

Steps 2-7 are one atomic unit. Any failure inside it rolls back the
session, so no balance changes and no ledger row survives a failed
request.

A Pending entry is later completed (settled with the balances at
that moment), voided, or rolled back. Rolling back a Completed entry
posts a compensating entry that reverses its balance effect.
"""

import logging
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bank_ledger.config import get_settings
from bank_ledger.errors import (
    AccountUnavailable,
    Forbidden,
    InsufficientFunds,
    InvalidAction,
    InvalidAmount,
    InvalidState,
    InvalidType,
    LedgerError,
    MissingAccount,
    SameAccountTransfer,
    StorageFailure,
    Unauthorized,
)
from bank_ledger.models.account import Account
from bank_ledger.models.base import utcnow
from bank_ledger.models.enums import (
    REQUESTABLE_TYPES,
    AuditAction,
    TransactionStatus,
    TransactionType,
    TransitionAction,
)
from bank_ledger.models.transaction import Transaction
from bank_ledger.schemas.transaction import OperationRequest, TransitionRequest
from bank_ledger.services.account_service import AccountService
from bank_ledger.services.audit_service import AuditService
from bank_ledger.services.ledger_service import LedgerService
from bank_ledger.services.locks import AccountLockManager, account_locks

logger = logging.getLogger(__name__)

# Scale and integer digits of the Numeric(19, 4) money columns.
AMOUNT_PLACES = 4
MAX_AMOUNT = Decimal(10) ** (19 - AMOUNT_PLACES)

# How each type is undone by a compensating entry.
COMPENSATING_TYPE = {
    TransactionType.DEPOSIT: TransactionType.WITHDRAW,
    TransactionType.WITHDRAW: TransactionType.DEPOSIT,
    TransactionType.TRANSFER: TransactionType.TRANSFER,
}


class TransactionService:
    """
    The only writer of balances for money movement.

    audit is optional: without it the engine behaves identically
    but leaves no audit trail. locks defaults to the process-wide
    lease registry; tests may pass their own.
    """

    def __init__(
        self,
        db: Session,
        audit: AuditService | None = None,
        locks: AccountLockManager | None = None,
    ):
        self.db = db
        self.accounts = AccountService(db)
        self.ledger = LedgerService(db)
        self.audit = audit
        self.locks = locks if locks is not None else account_locks
        self.settings = get_settings()

    # --- Atomic unit ---

    @contextmanager
    def _storage_guard(self):
        """Surface database errors as StorageFailure. Never retried here."""
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Storage failure, session rolled back")
            raise StorageFailure(
                f"Storage failure: {exc.__class__.__name__}"
            ) from exc

    @contextmanager
    def _atomic_unit(self, *account_numbers: str | None):
        """
        Hold the accounts' leases, run the block, then commit.

        The leases are released only after commit or rollback, so
        the next unit on the same account sees the committed result.
        """
        with self.locks.hold(*account_numbers), self._storage_guard():
            try:
                yield
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

    # --- Authorization ---

    def is_admin(self, principal: str | None) -> bool:
        return principal is not None and principal == self.settings.ADMIN_PRINCIPAL

    def _require_principal(self, principal: str | None) -> None:
        if not principal:
            raise Unauthorized("Not authenticated")

    def _require_admin(self, principal: str | None) -> None:
        self._require_principal(principal)
        if not self.is_admin(principal):
            raise Forbidden("Only an administrator may perform this action")

    # --- Validation ---

    @staticmethod
    def _parse_amount(raw) -> Decimal:
        """
        A positive, finite amount that fits Numeric(19, 4) exactly.

        Strings are parsed here, after the type check. Anything finer
        than four decimal places raises InvalidAmount.
        """
        if raw is None or isinstance(raw, bool):
            raise InvalidAmount("Amount must be positive")
        try:
            amount = Decimal(str(raw).strip())
        except InvalidOperation:
            raise InvalidAmount(f"Amount '{raw}' is not a number") from None

        if not amount.is_finite() or amount <= 0:
            raise InvalidAmount("Amount must be positive")
        if amount.normalize().as_tuple().exponent < -AMOUNT_PLACES:
            raise InvalidAmount(
                f"Amount must have at most {AMOUNT_PLACES} decimal places"
            )
        if amount >= MAX_AMOUNT:
            raise InvalidAmount(f"Amount must be below {MAX_AMOUNT:,}")
        return amount

    def _validate_request(
        self, request: OperationRequest, principal: str | None
    ) -> tuple[TransactionType, Decimal]:
        """Checks that need no account state, in order."""
        try:
            txn_type = TransactionType(request.type)
        except ValueError:
            raise InvalidType(f"Invalid type '{request.type}'") from None
        if txn_type not in REQUESTABLE_TYPES:
            raise InvalidType(f"Invalid type '{request.type}'")

        amount = self._parse_amount(request.amount)

        if not request.source_account or (
            txn_type == TransactionType.TRANSFER and not request.target_account
        ):
            raise MissingAccount("Missing account(s)")

        self._require_principal(principal)
        if not self.is_admin(principal) and principal != request.source_account:
            raise Forbidden("Customers may only act on their own account")

        return txn_type, amount

    def _load_active(self, account_number: str, role: str) -> Account:
        account = self.accounts.lock_account(account_number)
        if account is None:
            raise AccountUnavailable(f"{role} account {account_number} not found")
        if not account.is_active:
            raise AccountUnavailable(
                f"{role} account {account_number} unavailable "
                f"(status: {account.status.value})"
            )
        return account

    def _load_parties(
        self, source_number: str, target_number: str | None
    ) -> tuple[Account, Account | None]:
        source = self._load_active(source_number, "Source")
        if target_number is None:
            return source, None
        if target_number == source_number:
            raise SameAccountTransfer("Cannot transfer to the same account")
        return source, self._load_active(target_number, "Target")

    # --- Settlement ---

    @staticmethod
    def _snapshot(source: Account, target: Account | None) -> dict:
        """Current balances as both before and after (nothing applied)."""
        return {
            "source_balance_before": source.balance,
            "source_balance_after": source.balance,
            "target_balance_before": target.balance if target else None,
            "target_balance_after": target.balance if target else None,
        }

    def _settle(
        self,
        txn_type: TransactionType,
        amount: Decimal,
        source: Account,
        target: Account | None,
    ) -> dict:
        """
        Apply the balance effect and return the snapshots.

        The funds check and the debit run under the same lease, so
        no other debit on the source can slip in between them.
        """
        source_before = source.balance
        target_before = target.balance if target else None

        if txn_type == TransactionType.DEPOSIT:
            self.accounts.adjust_balance(source.account_number, amount)
        elif txn_type in (TransactionType.WITHDRAW, TransactionType.TRANSFER):
            if amount > source_before:
                raise InsufficientFunds(
                    f"Insufficient funds: available={source_before}, "
                    f"requested={amount}"
                )
            self.accounts.adjust_balance(source.account_number, -amount)
            if txn_type == TransactionType.TRANSFER:
                self.accounts.adjust_balance(target.account_number, amount)
        else:
            raise InvalidType(f"Cannot settle a '{txn_type.value}' entry")

        return {
            "source_balance_before": source_before,
            "source_balance_after": source.balance,
            "target_balance_before": target_before,
            "target_balance_after": target.balance if target else None,
        }

    def _audit(
        self,
        transaction_id: int,
        action: AuditAction,
        principal: str,
        details: dict | None = None,
    ) -> None:
        if self.audit is not None:
            self.audit.record(transaction_id, action, principal, details)

    # --- New operations ---

    def submit(
        self, request: OperationRequest, principal: str | None
    ) -> Transaction:
        """
        Accept a deposit, withdrawal or transfer.

        Settles immediately unless request.deferred is set, in which
        case the entry is recorded as Pending with unchanged balances.
        """
        try:
            txn_type, amount = self._validate_request(request, principal)
            target_number = (
                request.target_account
                if txn_type == TransactionType.TRANSFER else None
            )
            status = (
                TransactionStatus.PENDING if request.deferred
                else TransactionStatus.COMPLETED
            )

            with self._atomic_unit(request.source_account, target_number):
                source, target = self._load_parties(
                    request.source_account, target_number
                )
                if status == TransactionStatus.COMPLETED:
                    snapshots = self._settle(txn_type, amount, source, target)
                else:
                    snapshots = self._snapshot(source, target)

                now = utcnow()
                txn = self.ledger.insert(
                    type=txn_type,
                    status=status,
                    account_number=source.account_number,
                    target_account=target_number,
                    amount=amount,
                    fee=Decimal("0"),
                    note=request.note,
                    created_by=principal,
                    created_at=now,
                    completed_at=now if status == TransactionStatus.COMPLETED else None,
                    **snapshots,
                )
                self._audit(
                    txn.id, AuditAction.CREATE, principal,
                    {"deferred": request.deferred},
                )
                if status == TransactionStatus.COMPLETED:
                    self._audit(txn.id, AuditAction.COMPLETE, principal)
        except LedgerError as exc:
            logger.warning(
                "Rejected %s request: %s", request.type, exc,
                extra={
                    "action": "submit",
                    "account": request.source_account,
                    "principal": principal,
                },
            )
            raise

        logger.info(
            "Accepted %s of %s (%s)", txn.type.value, txn.amount, txn.status.value,
            extra={
                "action": "submit",
                "transaction_id": txn.id,
                "account": txn.account_number,
                "target_account": txn.target_account,
                "principal": principal,
                "amount": txn.amount,
                "status": txn.status.value,
            },
        )
        return txn

    # --- Deferred-entry transitions ---

    def _find_entry(self, transaction_id: int) -> Transaction:
        # Read before taking leases: the entry names the accounts to lease.
        with self._storage_guard():
            return self.ledger.get(transaction_id)

    @staticmethod
    def _require_transition(
        entry: Transaction, new_status: TransactionStatus, verb: str
    ) -> None:
        if not entry.can_transition_to(new_status):
            raise InvalidState(
                f"Cannot {verb} transaction {entry.id} "
                f"(status: {entry.status.value})"
            )

    def _log_transition(self, action: str, entry: Transaction, principal: str):
        logger.info(
            "Transaction %s: %s", entry.id, action,
            extra={
                "action": action,
                "transaction_id": entry.id,
                "account": entry.account_number,
                "principal": principal,
                "status": entry.status.value,
            },
        )

    def complete(self, transaction_id: int, principal: str | None) -> Transaction:
        """
        Settle a Pending entry now.

        Balances at this moment become the new "before" snapshots.
        Fails if either account is no longer Active or the source
        cannot cover the amount; the entry then stays Pending.
        """
        self._require_admin(principal)
        entry = self._find_entry(transaction_id)

        with self._atomic_unit(*entry.account_numbers):
            entry = self.ledger.get_for_update(transaction_id)
            self._require_transition(entry, TransactionStatus.COMPLETED, "complete")

            source, target = self._load_parties(
                entry.account_number, entry.target_account
            )
            snapshots = self._settle(entry.type, entry.amount, source, target)
            for field, value in snapshots.items():
                setattr(entry, field, value)

            self.ledger.patch_status(
                entry.id, TransactionStatus.COMPLETED, completed_at=utcnow()
            )
            self._audit(entry.id, AuditAction.COMPLETE, principal)

        self._log_transition("complete", entry, principal)
        return entry

    def void(
        self,
        transaction_id: int,
        principal: str | None,
        reason: str | None = None,
    ) -> Transaction:
        """
        Cancel a Pending entry. No balance effect, since none was applied.

        Allowed to the administrator and to whoever created the entry.
        """
        self._require_principal(principal)
        entry = self._find_entry(transaction_id)
        if not self.is_admin(principal) and principal != entry.created_by:
            raise Forbidden("Only the creator or an administrator may void")

        with self._atomic_unit(*entry.account_numbers):
            entry = self.ledger.get_for_update(transaction_id)
            self._require_transition(entry, TransactionStatus.VOIDED, "void")
            self.ledger.patch_status(
                entry.id, TransactionStatus.VOIDED, voided_at=utcnow()
            )
            self._audit(entry.id, AuditAction.VOID, principal, {"reason": reason})

        self._log_transition("void", entry, principal)
        return entry

    def rollback(
        self,
        transaction_id: int,
        principal: str | None,
        reason: str | None = None,
    ) -> Transaction:
        """
        Undo an entry.

        Pending: same as void (status Voided), audited as a rollback;
        the entry is returned.
        Completed: a new Completed entry reversing the balance effect
        is posted and returned; the original keeps its status. An entry
        is compensated at most once, and compensating entries cannot
        themselves be rolled back.
        """
        self._require_admin(principal)
        entry = self._find_entry(transaction_id)

        with self._atomic_unit(*entry.account_numbers):
            entry = self.ledger.get_for_update(transaction_id)
            if entry.status == TransactionStatus.COMPLETED:
                result = self._post_compensation(entry, principal, reason)
            else:
                self._require_transition(entry, TransactionStatus.VOIDED, "roll back")
                self.ledger.patch_status(
                    entry.id, TransactionStatus.VOIDED, voided_at=utcnow()
                )
                self._audit(
                    entry.id, AuditAction.ROLLBACK, principal, {"reason": reason}
                )
                result = entry

        self._log_transition("rollback", entry, principal)
        return result

    def _post_compensation(
        self, entry: Transaction, principal: str, reason: str | None
    ) -> Transaction:
        if entry.reference_transaction_id is not None:
            raise InvalidState(
                f"Transaction {entry.id} is a rollback entry and cannot be rolled back"
            )
        if self.ledger.find_compensation(entry.id) is not None:
            raise InvalidState(f"Transaction {entry.id} has already been rolled back")

        comp_type = COMPENSATING_TYPE.get(entry.type)
        if comp_type is None:
            raise InvalidState(f"Cannot roll back a '{entry.type.value}' entry")

        if comp_type == TransactionType.TRANSFER:
            source_number, target_number = entry.target_account, entry.account_number
        else:
            source_number, target_number = entry.account_number, None

        source, target = self._load_parties(source_number, target_number)
        snapshots = self._settle(comp_type, entry.amount, source, target)

        note = f"Rollback of transaction {entry.id}"
        if reason:
            note = f"{note}: {reason}"

        now = utcnow()
        compensation = self.ledger.insert(
            type=comp_type,
            status=TransactionStatus.COMPLETED,
            account_number=source_number,
            target_account=target_number,
            amount=entry.amount,
            fee=Decimal("0"),
            note=note,
            created_by=principal,
            created_at=now,
            completed_at=now,
            reference_transaction_id=entry.id,
            **snapshots,
        )
        self._audit(
            entry.id, AuditAction.ROLLBACK, principal,
            {"reason": reason, "compensating_transaction_id": compensation.id},
        )
        self._audit(
            compensation.id, AuditAction.CREATE, principal,
            {"deferred": False, "compensates": entry.id},
        )
        self._audit(compensation.id, AuditAction.COMPLETE, principal)
        return compensation

    def apply_transition(
        self,
        transaction_id: int,
        request: TransitionRequest,
        principal: str | None,
    ) -> Transaction:
        """Dispatch a TransitionRequest to complete, void or rollback."""
        try:
            action = TransitionAction(request.action)
        except ValueError:
            raise InvalidAction(f"Unknown action '{request.action}'") from None

        try:
            if action == TransitionAction.COMPLETE:
                return self.complete(transaction_id, principal)
            if action == TransitionAction.VOID:
                return self.void(transaction_id, principal, request.reason)
            return self.rollback(transaction_id, principal, request.reason)
        except LedgerError as exc:
            logger.warning(
                "Rejected %s of transaction %s: %s", action.value, transaction_id, exc,
                extra={
                    "action": action.value,
                    "transaction_id": transaction_id,
                    "principal": principal,
                },
            )
            raise
