"""
Transaction (ledger entry) model.

One row per accepted money-movement request. The row records
which accounts were touched, the amount, who asked for it, and
the balances of both accounts immediately before and after the
movement was settled.

A row is immutable apart from its settlement state: status,
completed_at / voided_at, and the balance snapshots, which are
rewritten exactly once when a Pending entry is completed.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String, DateTime, Numeric, Text, ForeignKey, CheckConstraint,
    Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column

from bank_ledger.models.base import Base, utcnow
from bank_ledger.models.enums import TransactionType, TransactionStatus


# Status only moves forward. Nothing returns to PENDING.
VALID_STATUS_TRANSITIONS: dict[TransactionStatus, set[TransactionStatus]] = {
    TransactionStatus.PENDING: {
        TransactionStatus.COMPLETED,
        TransactionStatus.VOIDED,
    },
    TransactionStatus.COMPLETED: set(),
    TransactionStatus.VOIDED: set(),
}


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(
            TransactionType,
            name="transaction_type_enum",
            values_callable=_enum_values,
            create_constraint=True,
        ),
        nullable=False,
        index=True,
    )
    status: Mapped[TransactionStatus] = mapped_column(
        SAEnum(
            TransactionStatus,
            name="transaction_status_enum",
            values_callable=_enum_values,
            create_constraint=True,
        ),
        nullable=False,
        default=TransactionStatus.PENDING,
        index=True,
    )
    account_number: Mapped[str] = mapped_column(
        ForeignKey("accounts.account_number"), nullable=False, index=True
    )
    target_account: Mapped[str | None] = mapped_column(
        ForeignKey("accounts.account_number"), nullable=True, index=True
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False
    )
    fee: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False, default=Decimal("0")
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, index=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True
    )
    voided_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True
    )

    # Balance snapshots. target_* stay NULL for deposits and withdrawals.
    source_balance_before: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 4), nullable=True
    )
    source_balance_after: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 4), nullable=True
    )
    target_balance_before: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 4), nullable=True
    )
    target_balance_after: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 4), nullable=True
    )

    # Set only on a compensating entry posted by a rollback of a
    # completed entry; points at the entry it reverses.
    reference_transaction_id: Mapped[int | None] = mapped_column(
        ForeignKey("transactions.id"), nullable=True, index=True
    )

    @property
    def account_numbers(self) -> tuple[str, ...]:
        """Every account this entry touches."""
        if self.target_account:
            return (self.account_number, self.target_account)
        return (self.account_number,)

    def can_transition_to(self, new_status: TransactionStatus) -> bool:
        return new_status in VALID_STATUS_TRANSITIONS.get(self.status, set())

    def __repr__(self) -> str:
        return (
            f"<Transaction {self.id} {self.type.value} "
            f"{self.amount} ({self.status.value})>"
        )
