# =====================================================
# FILE: app/models/ledger.py
# Hash-chained attestation entries (database ledger backend)
# =====================================================

from sqlalchemy import Column, String, DateTime, Integer, Text

from app.core.database import Base
from app.utils.datetime_helpers import utcnow


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"

    sequence = Column(Integer, primary_key=True, autoincrement=False)
    receipt_id = Column(String(100), unique=True, nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(100), nullable=False)
    payload_hash = Column(String(64), nullable=False)
    submitter = Column(String(100), nullable=False)
    previous_hash = Column(String(64), nullable=False)
    content_hash = Column(String(64), unique=True, nullable=False)
    body = Column(Text, nullable=False)
    recorded_at = Column(DateTime, default=utcnow, nullable=False)
