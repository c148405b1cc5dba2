# =====================================================
# FILE: app/models/identity.py
# One-way identity verification records
# =====================================================

from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey, Text, JSON, Float
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.utils.datetime_helpers import utcnow


class IdentityVerification(Base):
    __tablename__ = "identity_verifications"

    id = Column(String(36), primary_key=True)
    subject_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)

    # Declared by the user
    document_type = Column(String(50), nullable=False)
    document_number = Column(String(100), nullable=False)
    date_of_birth = Column(String(10), nullable=False)
    nationality = Column(String(100), nullable=False)
    full_name = Column(String(255), nullable=False)
    document_file = Column(Text)

    # Validation outcome
    validation_method = Column(String(20), nullable=False)
    validation_score = Column(Float, nullable=False)
    validation_passed = Column(Boolean, nullable=False)
    validation_report = Column(JSON)

    # Ledger receipt
    ledger_receipt_id = Column(String(100), nullable=False)
    ledger_sequence = Column(Integer, nullable=False)
    verification_hash = Column(String(64), nullable=False)

    verified_at = Column(DateTime, default=utcnow, nullable=False)

    subject = relationship("User", back_populates="identity_verification")
