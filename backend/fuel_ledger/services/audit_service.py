"""
Audit Logging Service
Keeps a trail of every money movement recorded or reversed
"""
from sqlalchemy.orm import Session
from sqlalchemy import desc
from typing import Optional, List, Dict
import json
import logging

from fuel_ledger.models import AuditLog

logger = logging.getLogger(__name__)


class AuditAction:
    """Constants for audit actions"""
    DELETE = "DELETE"

    # Money movements
    EXPENSE_RECORDED = "EXPENSE_RECORDED"
    PAYMENT_MADE = "PAYMENT_MADE"
    RECOVERY_RECEIVED = "RECOVERY_RECEIVED"
    VEHICLE_RENT_PAID = "VEHICLE_RENT_PAID"
    VEHICLE_EXPENSE_RECORDED = "VEHICLE_EXPENSE_RECORDED"
    TRANSFER_COMPLETED = "TRANSFER_COMPLETED"
    CASH_RECEIVED = "CASH_RECEIVED"
    POOL_ADJUSTED = "POOL_ADJUSTED"

    # Trips
    TRIP_CANCELLED = "TRIP_CANCELLED"

    # Ledger maintenance
    TRANSACTION_REVERSED = "TRANSACTION_REVERSED"
    LEDGER_RECALCULATED = "LEDGER_RECALCULATED"


class AuditService:
    """Service for recording and retrieving audit logs"""

    def __init__(self, db: Session):
        self.db = db

    def log(
        self,
        action: str,
        resource_type: str,
        resource_id: Optional[int] = None,
        description: Optional[str] = None,
        new_values: Optional[Dict] = None,
        status: str = "success"
    ) -> Optional[AuditLog]:
        """
        Create an audit log entry in the caller's unit of work.

        A failure to write the trail is logged and does not abort the
        movement being audited; the savepoint keeps the session usable.
        """
        try:
            with self.db.begin_nested():
                audit_log = AuditLog(
                    action=action,
                    resource_type=resource_type,
                    resource_id=resource_id,
                    description=description,
                    new_values=json.dumps(new_values, default=str) if new_values else None,
                    status=status
                )
                self.db.add(audit_log)
                self.db.flush()
        except Exception as e:
            logger.error(f"Failed to create audit log: {e}")
            return None

        logger.info(f"Audit: {action} {resource_type}(id={resource_id}) status={status}")
        return audit_log

    def get_by_resource(self, resource_type: str, resource_id: int) -> List[AuditLog]:
        """Audit history of one record, newest first"""
        return self.db.query(AuditLog).filter(
            AuditLog.resource_type == resource_type,
            AuditLog.resource_id == resource_id
        ).order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).all()
