"""
Customer account model.

An account holds a stored balance. The balance column is only
ever changed by AccountService.adjust_balance, called from inside
the transaction engine's atomic unit.

The account has a state machine governing its lifecycle.
Invalid state transitions are rejected.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, DateTime, Numeric, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from bank_ledger.models.base import Base, utcnow
from bank_ledger.models.enums import AccountStatus


# Valid state transitions: the source of truth for the state machine
VALID_TRANSITIONS: dict[AccountStatus, set[AccountStatus]] = {
    AccountStatus.ACTIVE: {AccountStatus.LOCKED, AccountStatus.ARCHIVED},
    AccountStatus.LOCKED: {AccountStatus.ACTIVE, AccountStatus.ARCHIVED},
    AccountStatus.ARCHIVED: set(),  # Terminal state, accounts are never deleted
}


class Account(Base):
    __tablename__ = "accounts"

    account_number: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    balance: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False, default=Decimal("0")
    )
    status: Mapped[AccountStatus] = mapped_column(
        SAEnum(
            AccountStatus,
            name="account_status_enum",
            values_callable=lambda e: [m.value for m in e],
            create_constraint=True,
        ),
        nullable=False,
        default=AccountStatus.ACTIVE,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    def can_transition_to(self, new_status: AccountStatus) -> bool:
        """Check if a state transition is valid."""
        return new_status in VALID_TRANSITIONS.get(self.status, set())

    def __repr__(self) -> str:
        return f"<Account {self.account_number} {self.balance} ({self.status.value})>"
