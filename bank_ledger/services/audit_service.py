"""
Audit service: the transaction audit trail.

Appends one record per action taken on a ledger entry. Records are
written in the caller's session, so an audit row commits or rolls
back together with the change it describes.
"""

import json

from sqlalchemy import select
from sqlalchemy.orm import Session

from bank_ledger.models.audit_log import AuditLog
from bank_ledger.models.enums import AuditAction


class AuditService:

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        transaction_id: int,
        action: AuditAction,
        performed_by: str,
        details: dict | None = None,
    ) -> AuditLog:
        log = AuditLog(
            transaction_id=transaction_id,
            action=action,
            performed_by=performed_by,
            details=json.dumps(details, default=str) if details else None,
        )
        self.db.add(log)
        self.db.flush()
        return log

    def history(self, transaction_id: int) -> list[AuditLog]:
        """All records for an entry, oldest first."""
        logs = self.db.execute(
            select(AuditLog)
            .where(AuditLog.transaction_id == transaction_id)
            .order_by(AuditLog.id)
        ).scalars().all()
        return list(logs)

    @staticmethod
    def details_of(log: AuditLog) -> dict | None:
        return json.loads(log.details) if log.details else None
