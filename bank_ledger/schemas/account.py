"""
Pydantic schemas for account operations.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from bank_ledger.models.enums import AccountStatus


class AccountOpen(BaseModel):
    """Request to open a new account."""
    account_number: str = Field(min_length=1, max_length=32)
    name: str = Field(min_length=1, max_length=100)
    opening_balance: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=4)


class AccountUpdate(BaseModel):
    """Rename an account and/or move it through its lifecycle."""
    name: str | None = Field(default=None, min_length=1, max_length=100)
    status: AccountStatus | None = None


class AccountResponse(BaseModel):
    account_number: str
    name: str
    balance: Decimal
    status: AccountStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
