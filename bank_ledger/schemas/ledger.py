"""
Pydantic schemas for ledger queries.

The filter set is shared by the ledger store (which turns it into
SQL) and the query layer (which scopes it to the caller).
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator

from bank_ledger.config import get_settings
from bank_ledger.models.enums import TransactionStatus, TransactionType

settings = get_settings()


class TransactionQuery(BaseModel):
    """Filters for listing ledger entries, newest first."""
    account: str | None = None
    type: TransactionType | None = None
    status: TransactionStatus | None = None
    from_: datetime | None = Field(default=None, alias="from")
    to: datetime | None = None
    note_contains: str | None = Field(default=None, alias="q")
    limit: int = settings.QUERY_DEFAULT_LIMIT

    model_config = {"populate_by_name": True}

    @field_validator("limit")
    @classmethod
    def clamp_limit(cls, v: int) -> int:
        # Oversized limits are clamped, not rejected
        if v < 1:
            return settings.QUERY_DEFAULT_LIMIT
        return min(v, settings.QUERY_MAX_LIMIT)

    @field_validator("from_", "to")
    @classmethod
    def to_naive_utc(cls, v: datetime | None) -> datetime | None:
        # Stored timestamps are naive UTC
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v

    @field_validator("account", "note_contains")
    @classmethod
    def blank_is_none(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v
