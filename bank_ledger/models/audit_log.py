"""
Transaction audit log model.

Records every state-changing action taken on a ledger entry:
who created it, who completed, voided or rolled it back, and why.
"""

from datetime import datetime

from sqlalchemy import String, DateTime, Text, ForeignKey, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from bank_ledger.models.base import Base, utcnow
from bank_ledger.models.enums import AuditAction


class AuditLog(Base):
    """
    Immutable record of an action on a ledger entry.

    Like ledger entries, audit logs are append-only.
    You never update or delete an audit record.
    """

    __tablename__ = "transaction_audit"

    id: Mapped[int] = mapped_column(primary_key=True)
    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("transactions.id"), nullable=False, index=True
    )
    action: Mapped[AuditAction] = mapped_column(
        SAEnum(
            AuditAction,
            name="audit_action_enum",
            values_callable=lambda e: [m.value for m in e],
            create_constraint=True,
        ),
        nullable=False,
    )
    performed_by: Mapped[str] = mapped_column(String(64), nullable=False)
    # JSON document, serialized by AuditService
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.transaction_id} {self.action.value}>"
