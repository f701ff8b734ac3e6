"""
Comprehensive tests for the TransactionService.
"""

import threading
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from bank_ledger.errors import (
    AccountUnavailable,
    Forbidden,
    InsufficientFunds,
    InvalidAction,
    InvalidAmount,
    InvalidState,
    InvalidType,
    MissingAccount,
    NotFound,
    SameAccountTransfer,
    StorageFailure,
    Unauthorized,
)
from bank_ledger.models.enums import (
    AccountStatus,
    TransactionStatus,
    TransactionType,
)
from bank_ledger.models.transaction import Transaction
from bank_ledger.schemas.account import AccountUpdate
from bank_ledger.schemas.transaction import OperationRequest, TransitionRequest
from bank_ledger.services.account_service import AccountService
from bank_ledger.services.transaction_service import TransactionService


ADMIN = "0000"


def op(type_, source, amount, target=None, **kwargs):
    return OperationRequest(
        type=type_,
        source_account=source,
        target_account=target,
        amount=Decimal(str(amount)) if amount is not None else None,
        **kwargs,
    )


def balance_of(db_session, account_number):
    db_session.expire_all()
    return AccountService(db_session).get_account(account_number).balance


def ledger_count(db_session):
    return db_session.execute(
        select(func.count()).select_from(Transaction)
    ).scalar_one()


# --- Immediate settlement ---

class TestDeposit:

    def test_deposit_credits_balance_and_records_snapshots(self, db_session, make_account):
        make_account("10001", "1000")
        service = TransactionService(db_session)

        txn = service.submit(op("deposit", "10001", 500), ADMIN)

        assert txn.status == TransactionStatus.COMPLETED
        assert txn.type == TransactionType.DEPOSIT
        assert txn.source_balance_before == Decimal("1000")
        assert txn.source_balance_after == Decimal("1500")
        assert txn.target_account is None
        assert txn.target_balance_before is None
        assert txn.completed_at is not None
        assert txn.voided_at is None
        assert txn.fee == Decimal("0")
        assert balance_of(db_session, "10001") == Decimal("1500")

    def test_customer_may_deposit_to_own_account(self, db_session, make_account):
        make_account("10001", "0")
        service = TransactionService(db_session)

        txn = service.submit(op("deposit", "10001", "25.50", note="cash"), "10001")

        assert txn.created_by == "10001"
        assert txn.note == "cash"
        assert balance_of(db_session, "10001") == Decimal("25.50")

    def test_target_is_ignored_for_deposit(self, db_session, make_account):
        make_account("10001", "0")
        make_account("10002", "0")
        service = TransactionService(db_session)

        txn = service.submit(op("deposit", "10001", 10, target="10002"), ADMIN)

        assert txn.target_account is None
        assert balance_of(db_session, "10002") == Decimal("0")


class TestWithdraw:

    def test_withdraw_debits_balance(self, db_session, make_account):
        make_account("10001", "1000")
        service = TransactionService(db_session)

        txn = service.submit(op("withdraw", "10001", 300), ADMIN)

        assert txn.source_balance_before == Decimal("1000")
        assert txn.source_balance_after == Decimal("700")
        assert balance_of(db_session, "10001") == Decimal("700")

    def test_withdraw_entire_balance_allowed(self, db_session, make_account):
        make_account("10001", "150")
        service = TransactionService(db_session)

        service.submit(op("withdraw", "10001", 150), ADMIN)

        assert balance_of(db_session, "10001") == Decimal("0")

    def test_insufficient_funds_leaves_no_trace(self, db_session, make_account):
        make_account("10001", "150")
        service = TransactionService(db_session)

        with pytest.raises(InsufficientFunds):
            service.submit(op("withdraw", "10001", 200), ADMIN)

        assert balance_of(db_session, "10001") == Decimal("150")
        assert ledger_count(db_session) == 0


class TestTransfer:

    def test_transfer_moves_funds_between_accounts(self, db_session, make_account):
        make_account("A", "1000")
        make_account("B", "50")
        service = TransactionService(db_session)

        txn = service.submit(op("transfer", "A", 300, target="B"), ADMIN)

        assert balance_of(db_session, "A") == Decimal("700")
        assert balance_of(db_session, "B") == Decimal("350")
        assert txn.source_balance_before == Decimal("1000")
        assert txn.source_balance_after == Decimal("700")
        assert txn.target_balance_before == Decimal("50")
        assert txn.target_balance_after == Decimal("350")
        assert ledger_count(db_session) == 1

    def test_transfer_conserves_money(self, db_session, make_account):
        make_account("A", "800")
        make_account("B", "200")
        service = TransactionService(db_session)

        txn = service.submit(op("transfer", "A", "123.45", target="B"), ADMIN)

        debit = txn.source_balance_before - txn.source_balance_after
        credit = txn.target_balance_after - txn.target_balance_before
        assert debit == credit == Decimal("123.45")
        assert balance_of(db_session, "A") + balance_of(db_session, "B") == Decimal("1000")

    def test_failed_transfer_changes_neither_account(self, db_session, make_account):
        make_account("A", "100")
        make_account("B", "100")
        service = TransactionService(db_session)

        with pytest.raises(InsufficientFunds):
            service.submit(op("transfer", "A", 500, target="B"), ADMIN)

        assert balance_of(db_session, "A") == Decimal("100")
        assert balance_of(db_session, "B") == Decimal("100")
        assert ledger_count(db_session) == 0

    def test_transfer_to_same_account_rejected(self, db_session, make_account):
        make_account("A", "100")
        service = TransactionService(db_session)

        with pytest.raises(SameAccountTransfer):
            service.submit(op("transfer", "A", 10, target="A"), ADMIN)

    def test_transfer_to_archived_account_rejected(self, db_session, make_account):
        make_account("A", "100")
        make_account("B", "0")
        AccountService(db_session).update_account(
            "B", AccountUpdate(status=AccountStatus.ARCHIVED)
        )
        db_session.commit()
        service = TransactionService(db_session)

        with pytest.raises(AccountUnavailable, match="Target"):
            service.submit(op("transfer", "A", 10, target="B"), ADMIN)

        assert balance_of(db_session, "A") == Decimal("100")


# --- Validation order ---

class TestValidation:

    def test_invalid_type_wins_over_everything(self, db_session):
        service = TransactionService(db_session)
        with pytest.raises(InvalidType):
            service.submit(op("refund", None, -1), None)

    def test_fee_is_not_requestable(self, db_session, make_account):
        make_account("10001", "100")
        service = TransactionService(db_session)
        with pytest.raises(InvalidType):
            service.submit(op("fee", "10001", 1), ADMIN)

    @pytest.mark.parametrize("amount", [0, -5, None])
    def test_non_positive_amount_rejected(self, db_session, amount):
        service = TransactionService(db_session)
        with pytest.raises(InvalidAmount):
            service.submit(op("deposit", None, amount), None)

    def test_non_finite_amount_rejected(self, db_session):
        service = TransactionService(db_session)
        request = OperationRequest.model_construct(
            type="deposit", source_account="10001", target_account=None,
            amount=Decimal("NaN"), note=None, deferred=False,
        )
        with pytest.raises(InvalidAmount):
            service.submit(request, ADMIN)

    @pytest.mark.parametrize("amount", ["abc", "NaN", "Infinity", ""])
    def test_unparseable_amount_rejected(self, db_session, amount):
        service = TransactionService(db_session)
        request = OperationRequest(type="deposit", source_account="10001", amount=amount)
        with pytest.raises(InvalidAmount):
            service.submit(request, ADMIN)

    def test_type_checked_before_unparseable_amount(self, db_session):
        service = TransactionService(db_session)
        with pytest.raises(InvalidType):
            service.submit(OperationRequest(type="loan", amount="abc"), None)

    def test_missing_type_is_invalid_type(self, db_session):
        service = TransactionService(db_session)
        with pytest.raises(InvalidType):
            service.submit(OperationRequest(source_account="10001", amount="5"), ADMIN)

    @pytest.mark.parametrize("amount", ["0.00001", "12.34567"])
    def test_amount_finer_than_four_places_rejected(self, db_session, make_account, amount):
        make_account("10001", "100")
        service = TransactionService(db_session)

        with pytest.raises(InvalidAmount, match="decimal places"):
            service.submit(op("deposit", "10001", amount), ADMIN)

        assert balance_of(db_session, "10001") == Decimal("100")
        assert ledger_count(db_session) == 0

    def test_trailing_zeros_beyond_four_places_accepted(self, db_session, make_account):
        make_account("10001", "100")
        service = TransactionService(db_session)

        txn = service.submit(op("deposit", "10001", "1.500000"), ADMIN)

        assert txn.amount == Decimal("1.5")
        assert balance_of(db_session, "10001") == Decimal("101.5")

    def test_amount_too_large_for_column_rejected(self, db_session, make_account):
        make_account("10001", "0")
        service = TransactionService(db_session)
        with pytest.raises(InvalidAmount):
            service.submit(op("deposit", "10001", "1e15"), ADMIN)

    @pytest.mark.parametrize("amount", ["25", 25, 25.0, " 25.00 "])
    def test_numeric_and_string_amounts_accepted(self, db_session, make_account, amount):
        make_account("10001", "0")
        service = TransactionService(db_session)
        request = OperationRequest(type="deposit", source_account="10001", amount=amount)

        txn = service.submit(request, ADMIN)

        assert txn.amount == Decimal("25")

    def test_missing_source_rejected_before_auth(self, db_session):
        service = TransactionService(db_session)
        with pytest.raises(MissingAccount):
            service.submit(op("deposit", None, 10), None)

    def test_transfer_without_target_rejected(self, db_session):
        service = TransactionService(db_session)
        with pytest.raises(MissingAccount):
            service.submit(op("transfer", "A", 10), ADMIN)

    def test_anonymous_caller_rejected(self, db_session, make_account):
        make_account("10001", "100")
        service = TransactionService(db_session)
        with pytest.raises(Unauthorized):
            service.submit(op("withdraw", "10001", 10), None)

    def test_customer_cannot_act_on_other_account(self, db_session, make_account):
        make_account("10001", "100")
        service = TransactionService(db_session)
        with pytest.raises(Forbidden):
            service.submit(op("withdraw", "10001", 10), "10002")

    def test_unknown_source_account(self, db_session):
        service = TransactionService(db_session)
        with pytest.raises(AccountUnavailable, match="not found"):
            service.submit(op("deposit", "99999", 10), ADMIN)

    def test_locked_source_account(self, db_session, make_account):
        make_account("10001", "100")
        AccountService(db_session).update_account(
            "10001", AccountUpdate(status=AccountStatus.LOCKED)
        )
        db_session.commit()
        service = TransactionService(db_session)

        with pytest.raises(AccountUnavailable, match="Locked"):
            service.submit(op("deposit", "10001", 10), ADMIN)
        assert ledger_count(db_session) == 0


# --- Deferred settlement ---

class TestDeferred:

    def test_deferred_deposit_then_complete(self, db_session, make_account):
        make_account("10001", "1000")
        service = TransactionService(db_session)

        txn = service.submit(op("deposit", "10001", 500, deferred=True), ADMIN)

        assert txn.status == TransactionStatus.PENDING
        assert txn.source_balance_before == Decimal("1000")
        assert txn.source_balance_after == Decimal("1000")
        assert txn.completed_at is None
        assert balance_of(db_session, "10001") == Decimal("1000")

        completed = service.complete(txn.id, ADMIN)

        assert completed.status == TransactionStatus.COMPLETED
        assert completed.completed_at is not None
        assert completed.source_balance_before == Decimal("1000")
        assert completed.source_balance_after == Decimal("1500")
        assert balance_of(db_session, "10001") == Decimal("1500")

    def test_pending_alias_accepted(self, db_session, make_account):
        make_account("10001", "10")
        service = TransactionService(db_session)

        request = OperationRequest.model_validate({
            "type": "deposit", "source_account": "10001",
            "amount": "5", "pending": True,
        })
        txn = service.submit(request, ADMIN)

        assert txn.status == TransactionStatus.PENDING

    def test_void_pending_entry(self, db_session, make_account):
        make_account("10001", "1000")
        service = TransactionService(db_session)
        txn = service.submit(op("deposit", "10001", 500, deferred=True), ADMIN)

        voided = service.void(txn.id, ADMIN, reason="customer cancelled")

        assert voided.status == TransactionStatus.VOIDED
        assert voided.voided_at is not None
        assert balance_of(db_session, "10001") == Decimal("1000")

    def test_complete_uses_balances_at_completion(self, db_session, make_account):
        make_account("A", "1000")
        make_account("B", "0")
        service = TransactionService(db_session)
        pending = service.submit(
            op("transfer", "A", 300, target="B", deferred=True), ADMIN
        )
        service.submit(op("deposit", "A", 200), ADMIN)

        completed = service.complete(pending.id, ADMIN)

        assert completed.source_balance_before == Decimal("1200")
        assert completed.source_balance_after == Decimal("900")
        assert completed.target_balance_before == Decimal("0")
        assert completed.target_balance_after == Decimal("300")

    def test_complete_with_insufficient_funds_stays_pending(self, db_session, make_account):
        make_account("10001", "1000")
        service = TransactionService(db_session)
        pending = service.submit(op("withdraw", "10001", 500, deferred=True), ADMIN)
        service.submit(op("withdraw", "10001", 800), ADMIN)

        with pytest.raises(InsufficientFunds):
            service.complete(pending.id, ADMIN)

        db_session.expire_all()
        assert service.ledger.get(pending.id).status == TransactionStatus.PENDING
        assert balance_of(db_session, "10001") == Decimal("200")

    def test_complete_fails_when_account_locked(self, db_session, make_account):
        make_account("10001", "1000")
        service = TransactionService(db_session)
        pending = service.submit(op("deposit", "10001", 50, deferred=True), ADMIN)
        AccountService(db_session).update_account(
            "10001", AccountUpdate(status=AccountStatus.LOCKED)
        )
        db_session.commit()

        with pytest.raises(AccountUnavailable):
            service.complete(pending.id, ADMIN)

    def test_complete_unknown_entry(self, db_session):
        service = TransactionService(db_session)
        with pytest.raises(NotFound):
            service.complete(999, ADMIN)

    def test_completed_entry_cannot_be_voided(self, db_session, make_account):
        make_account("10001", "100")
        service = TransactionService(db_session)
        txn = service.submit(op("deposit", "10001", 10), ADMIN)

        with pytest.raises(InvalidState):
            service.void(txn.id, ADMIN)

        db_session.expire_all()
        assert service.ledger.get(txn.id).status == TransactionStatus.COMPLETED

    def test_voided_entry_cannot_be_completed(self, db_session, make_account):
        make_account("10001", "100")
        service = TransactionService(db_session)
        txn = service.submit(op("deposit", "10001", 10, deferred=True), ADMIN)
        service.void(txn.id, ADMIN)

        with pytest.raises(InvalidState):
            service.complete(txn.id, ADMIN)
        assert balance_of(db_session, "10001") == Decimal("100")

    def test_only_admin_completes(self, db_session, make_account):
        make_account("10001", "100")
        service = TransactionService(db_session)
        txn = service.submit(op("deposit", "10001", 10, deferred=True), "10001")

        with pytest.raises(Forbidden):
            service.complete(txn.id, "10001")
        with pytest.raises(Unauthorized):
            service.complete(txn.id, None)

    def test_creator_may_void_own_entry(self, db_session, make_account):
        make_account("10001", "100")
        service = TransactionService(db_session)
        txn = service.submit(op("withdraw", "10001", 10, deferred=True), "10001")

        with pytest.raises(Forbidden):
            service.void(txn.id, "10002")

        voided = service.void(txn.id, "10001")
        assert voided.status == TransactionStatus.VOIDED


# --- Rollback ---

class TestRollback:

    def test_rollback_pending_behaves_like_void(self, db_session, make_account):
        make_account("10001", "1000")
        service = TransactionService(db_session)
        txn = service.submit(op("withdraw", "10001", 100, deferred=True), ADMIN)

        result = service.rollback(txn.id, ADMIN, reason="duplicate")

        assert result.id == txn.id
        assert result.status == TransactionStatus.VOIDED
        assert result.voided_at is not None
        assert balance_of(db_session, "10001") == Decimal("1000")

    def test_rollback_completed_deposit_posts_compensation(self, db_session, make_account):
        make_account("10001", "1000")
        service = TransactionService(db_session)
        original = service.submit(op("deposit", "10001", 500), ADMIN)

        compensation = service.rollback(original.id, ADMIN, reason="wrong account")

        assert compensation.id != original.id
        assert compensation.type == TransactionType.WITHDRAW
        assert compensation.status == TransactionStatus.COMPLETED
        assert compensation.reference_transaction_id == original.id
        assert compensation.source_balance_before == Decimal("1500")
        assert compensation.source_balance_after == Decimal("1000")
        assert "wrong account" in compensation.note
        assert balance_of(db_session, "10001") == Decimal("1000")

        db_session.expire_all()
        assert service.ledger.get(original.id).status == TransactionStatus.COMPLETED

    def test_rollback_completed_transfer_reverses_direction(self, db_session, make_account):
        make_account("A", "1000")
        make_account("B", "0")
        service = TransactionService(db_session)
        original = service.submit(op("transfer", "A", 400, target="B"), ADMIN)

        compensation = service.rollback(original.id, ADMIN)

        assert compensation.account_number == "B"
        assert compensation.target_account == "A"
        assert balance_of(db_session, "A") == Decimal("1000")
        assert balance_of(db_session, "B") == Decimal("0")

    def test_rollback_fails_if_funds_already_spent(self, db_session, make_account):
        make_account("A", "1000")
        make_account("B", "0")
        service = TransactionService(db_session)
        original = service.submit(op("transfer", "A", 400, target="B"), ADMIN)
        service.submit(op("withdraw", "B", 300), ADMIN)

        with pytest.raises(InsufficientFunds):
            service.rollback(original.id, ADMIN)

        assert balance_of(db_session, "A") == Decimal("600")
        assert balance_of(db_session, "B") == Decimal("100")
        assert ledger_count(db_session) == 2

    def test_rollback_only_once(self, db_session, make_account):
        make_account("10001", "1000")
        service = TransactionService(db_session)
        original = service.submit(op("withdraw", "10001", 100), ADMIN)
        compensation = service.rollback(original.id, ADMIN)

        with pytest.raises(InvalidState, match="already been rolled back"):
            service.rollback(original.id, ADMIN)
        with pytest.raises(InvalidState, match="cannot be rolled back"):
            service.rollback(compensation.id, ADMIN)

        assert balance_of(db_session, "10001") == Decimal("1000")

    def test_rollback_voided_entry_rejected(self, db_session, make_account):
        make_account("10001", "1000")
        service = TransactionService(db_session)
        txn = service.submit(op("deposit", "10001", 1, deferred=True), ADMIN)
        service.void(txn.id, ADMIN)

        with pytest.raises(InvalidState):
            service.rollback(txn.id, ADMIN)

    def test_only_admin_rolls_back(self, db_session, make_account):
        make_account("10001", "1000")
        service = TransactionService(db_session)
        txn = service.submit(op("deposit", "10001", 1), "10001")

        with pytest.raises(Forbidden):
            service.rollback(txn.id, "10001")


class TestApplyTransition:

    def test_dispatches_each_action(self, db_session, make_account):
        make_account("10001", "1000")
        service = TransactionService(db_session)
        first = service.submit(op("deposit", "10001", 1, deferred=True), ADMIN)
        second = service.submit(op("deposit", "10001", 1, deferred=True), ADMIN)

        done = service.apply_transition(
            first.id, TransitionRequest(action="complete"), ADMIN
        )
        voided = service.apply_transition(
            second.id, TransitionRequest(action="void", reason="typo"), ADMIN
        )

        assert done.status == TransactionStatus.COMPLETED
        assert voided.status == TransactionStatus.VOIDED

    def test_unknown_action_rejected(self, db_session):
        service = TransactionService(db_session)
        request = TransitionRequest.model_construct(action="approve", reason=None)

        with pytest.raises(InvalidAction):
            service.apply_transition(1, request, ADMIN)


# --- Properties ---

class TestProperties:

    def test_balance_never_negative(self, db_session, make_account):
        make_account("A", "100")
        make_account("B", "0")
        service = TransactionService(db_session)
        attempts = [
            ("withdraw", 60, None),
            ("transfer", 30, "B"),
            ("withdraw", 20, None),
            ("transfer", 15, "B"),
            ("withdraw", 5, None),
            ("withdraw", 10, None),
        ]

        for type_, amount, target in attempts:
            try:
                service.submit(op(type_, "A", amount, target=target), ADMIN)
            except InsufficientFunds:
                pass
            assert balance_of(db_session, "A") >= 0

        assert balance_of(db_session, "A") == Decimal("5")
        assert balance_of(db_session, "B") == Decimal("30")

    def test_status_never_returns_to_pending(self, db_session, make_account):
        make_account("10001", "100")
        service = TransactionService(db_session)
        txn = service.submit(op("deposit", "10001", 5, deferred=True), ADMIN)
        service.complete(txn.id, ADMIN)

        for action in ("complete", "void"):
            with pytest.raises(InvalidState):
                service.apply_transition(txn.id, TransitionRequest(action=action), ADMIN)

        db_session.expire_all()
        assert service.ledger.get(txn.id).status == TransactionStatus.COMPLETED

    def test_concurrent_withdrawals_one_succeeds(self, db_session, session_factory, make_account):
        make_account("10001", "100")
        barrier = threading.Barrier(2)
        outcomes = []

        def withdraw():
            session = session_factory()
            try:
                service = TransactionService(session)
                barrier.wait()
                try:
                    service.submit(op("withdraw", "10001", 100), ADMIN)
                    outcomes.append("ok")
                except InsufficientFunds:
                    outcomes.append("insufficient")
            finally:
                session.close()

        threads = [threading.Thread(target=withdraw) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert sorted(outcomes) == ["insufficient", "ok"]
        assert balance_of(db_session, "10001") == Decimal("0")
        assert ledger_count(db_session) == 1

    def test_opposite_transfers_do_not_deadlock(self, db_session, session_factory, make_account):
        make_account("A", "500")
        make_account("B", "500")
        barrier = threading.Barrier(2)
        errors = []

        def transfer(source, target):
            session = session_factory()
            try:
                barrier.wait()
                TransactionService(session).submit(
                    op("transfer", source, 100, target=target), ADMIN
                )
            except Exception as exc:
                errors.append(exc)
            finally:
                session.close()

        threads = [
            threading.Thread(target=transfer, args=("A", "B")),
            threading.Thread(target=transfer, args=("B", "A")),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert not any(t.is_alive() for t in threads)
        assert errors == []
        assert balance_of(db_session, "A") == Decimal("500")
        assert balance_of(db_session, "B") == Decimal("500")


# --- Storage failures ---

class TestStorageFailure:

    def test_missing_ledger_table_aborts_unit(self, db_session, make_account):
        make_account("10001", "100")
        Transaction.__table__.drop(bind=db_session.get_bind())
        service = TransactionService(db_session)

        with pytest.raises(StorageFailure):
            service.submit(op("deposit", "10001", 50), ADMIN)

        assert balance_of(db_session, "10001") == Decimal("100")
