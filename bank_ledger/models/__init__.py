"""
Database models package.

All models must be imported here so that Alembic can discover
them through Base.metadata when generating migrations.
"""

from bank_ledger.models.base import Base
from bank_ledger.models.enums import (
    AccountStatus,
    TransactionType,
    TransactionStatus,
    TransitionAction,
    AuditAction,
)
from bank_ledger.models.account import Account
from bank_ledger.models.transaction import Transaction
from bank_ledger.models.audit_log import AuditLog

__all__ = [
    "Base",
    "AccountStatus",
    "TransactionType",
    "TransactionStatus",
    "TransitionAction",
    "AuditAction",
    "Account",
    "Transaction",
    "AuditLog",
]
