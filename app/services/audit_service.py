# =====================================================
# FILE: app/services/audit_service.py
# Service Layer for the Workflow Audit Trail
# =====================================================

from sqlalchemy.orm import Session
from typing import Optional, Dict, Any, List
import logging

from app.models.audit import AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    """
    Records workflow actions. Entries join the caller's transaction
    and are committed together with the change they describe.
    """

    def __init__(self, db: Session):
        self.db = db

    def log_action(
        self,
        action_type: str,
        user_id: Optional[int] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        action_details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> AuditLog:
        entry = AuditLog(
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action_type=action_type,
            action_details=action_details or {},
            ip_address=ip_address,
            user_agent=user_agent
        )
        self.db.add(entry)
        self.db.flush()

        logger.info(f"Audit: {action_type} on {entity_type}:{entity_id} by user {user_id}")
        return entry

    def history(self, entity_type: str, entity_id: str) -> List[AuditLog]:
        return (
            self.db.query(AuditLog)
            .filter(AuditLog.entity_type == entity_type, AuditLog.entity_id == str(entity_id))
            .order_by(AuditLog.id)
            .all()
        )


# =====================================================
# CONVENIENCE FUNCTIONS FOR COMMON ACTIONS
# =====================================================

def log_document_action(
    db: Session,
    action_type: str,
    document_id: str,
    user_id: Optional[int],
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None
) -> AuditLog:
    """Convenience function to log document-related actions"""
    return AuditService(db).log_action(
        action_type=action_type,
        user_id=user_id,
        entity_type="document",
        entity_id=str(document_id),
        action_details=details,
        ip_address=ip_address
    )


def log_identity_action(
    db: Session,
    action_type: str,
    user_id: int,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None
) -> AuditLog:
    """Convenience function to log identity-related actions"""
    return AuditService(db).log_action(
        action_type=action_type,
        user_id=user_id,
        entity_type="identity",
        entity_id=str(user_id),
        action_details=details,
        ip_address=ip_address
    )
