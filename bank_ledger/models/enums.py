"""
Shared enumerations for database models.

Using Python enums mapped to database enums ensures that
only valid values can be stored. The string values are the
ones stored in the database and exchanged over the API.
"""

import enum


class AccountStatus(str, enum.Enum):
    """Lifecycle of a customer account."""
    ACTIVE = "Active"
    LOCKED = "Locked"
    ARCHIVED = "Archived"


class TransactionType(str, enum.Enum):
    """Kind of money movement recorded by a ledger entry."""
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    TRANSFER = "transfer"
    # Reserved: never produced by the transaction engine.
    FEE = "fee"


# Types a caller may request.
REQUESTABLE_TYPES = frozenset({
    TransactionType.DEPOSIT,
    TransactionType.WITHDRAW,
    TransactionType.TRANSFER,
})


class TransactionStatus(str, enum.Enum):
    """Settlement state of a ledger entry."""
    PENDING = "Pending"
    COMPLETED = "Completed"
    VOIDED = "Voided"


class TransitionAction(str, enum.Enum):
    """Actions accepted against an existing ledger entry."""
    COMPLETE = "complete"
    VOID = "void"
    ROLLBACK = "rollback"


class AuditAction(str, enum.Enum):
    """Actions recorded in the transaction audit trail."""
    CREATE = "create"
    COMPLETE = "complete"
    VOID = "void"
    ROLLBACK = "rollback"
