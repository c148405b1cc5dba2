# =====================================================
# FILE: app/models/audit.py
# Workflow audit trail
# =====================================================

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Text, JSON

from app.core.database import Base
from app.utils.datetime_helpers import utcnow


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"))
    entity_type = Column(String(50))
    entity_id = Column(String(100))
    action_type = Column(String(100))
    action_details = Column(JSON)
    ip_address = Column(String(45))
    user_agent = Column(Text)
    created_at = Column(DateTime, default=utcnow)
