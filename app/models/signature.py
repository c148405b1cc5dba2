# =====================================================
# FILE: app/models/signature.py
# Append-only signature records
# =====================================================

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.utils.datetime_helpers import utcnow


class Signature(Base):
    __tablename__ = "signatures"
    __table_args__ = (
        UniqueConstraint("document_id", "signer_id", name="uq_signature_document_signer"),
    )

    id = Column(String(36), primary_key=True)
    document_id = Column(String(36), ForeignKey("documents.id"), nullable=False)
    signer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    sequence = Column(Integer, nullable=False)
    signature = Column(Text, nullable=False)
    signature_hash = Column(String(64), nullable=False)
    signed_payload = Column(Text, nullable=False)
    ledger_receipt_id = Column(String(100), nullable=False)
    ledger_sequence = Column(Integer, nullable=False)
    ledger_content_hash = Column(String(64), nullable=False)
    ip_address = Column(String(45))
    user_agent = Column(Text)
    signed_at = Column(DateTime, default=utcnow, nullable=False)

    document = relationship("Document", back_populates="signatures")
    signer = relationship("User")
