"""
Pydantic schemas for transaction operations.

OperationRequest accepts any `type`, `amount` and account values.
TransactionService validates them in a fixed order and raises a
specific error kind for each.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import AliasChoices, BaseModel, Field

from bank_ledger.models.enums import (
    AuditAction,
    TransactionStatus,
    TransactionType,
    TransitionAction,
)


class OperationRequest(BaseModel):
    """A request to move money."""
    type: str | None = None
    source_account: str | None = None
    target_account: str | None = None
    # Parsed by the engine; "abc" or "NaN" must reach it as-is
    amount: Decimal | int | float | str | None = None
    note: str | None = None
    # Older clients send "pending"
    deferred: bool = Field(
        default=False,
        validation_alias=AliasChoices("deferred", "pending"),
    )


class TransitionRequest(BaseModel):
    """A state change requested against an existing entry."""
    action: TransitionAction
    reason: str | None = Field(default=None, max_length=255)


class TransactionResponse(BaseModel):
    id: int
    type: TransactionType
    status: TransactionStatus
    account_number: str
    target_account: str | None
    amount: Decimal
    fee: Decimal
    note: str | None
    created_by: str
    created_at: datetime
    completed_at: datetime | None
    voided_at: datetime | None
    source_balance_before: Decimal | None
    source_balance_after: Decimal | None
    target_balance_before: Decimal | None
    target_balance_after: Decimal | None
    reference_transaction_id: int | None

    model_config = {"from_attributes": True}


class TransactionListResponse(BaseModel):
    transactions: list[TransactionResponse]


class AuditLogResponse(BaseModel):
    id: int
    transaction_id: int
    action: AuditAction
    performed_by: str
    details: dict | None
    created_at: datetime
