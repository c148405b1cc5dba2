# =====================================================
# FILE: app/models/document.py
# Signable document and its signer assignments
# =====================================================

from enum import Enum

from sqlalchemy import (
    Column, String, DateTime, Integer, ForeignKey, Text, JSON, UniqueConstraint
)
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.utils.datetime_helpers import utcnow


class DocumentStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    SIGNED = "signed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class SignerRole(str, Enum):
    REQUIRED = "required"
    OPTIONAL = "optional"


class Document(Base):
    __tablename__ = "documents"

    id = Column(String(36), primary_key=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    title = Column(String(500), nullable=False)
    description = Column(Text)
    file_name = Column(String(255))
    file_path = Column(Text)
    file_size = Column(Integer)
    file_type = Column(String(100))
    content_hash = Column(String(64), nullable=False)
    status = Column(String(20), nullable=False, default=DocumentStatus.DRAFT.value)
    doc_metadata = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    submitted_at = Column(DateTime)
    signed_at = Column(DateTime)
    expires_at = Column(DateTime)
    expired_at = Column(DateTime)
    cancelled_at = Column(DateTime)

    owner = relationship("User", foreign_keys=[owner_id])
    signers = relationship(
        "DocumentSigner",
        back_populates="document",
        order_by="DocumentSigner.position",
        cascade="all, delete-orphan"
    )
    signatures = relationship(
        "Signature",
        back_populates="document",
        order_by="Signature.sequence"
    )

    @property
    def required_signer_ids(self):
        return [s.user_id for s in self.signers if s.role == SignerRole.REQUIRED.value]

    @property
    def optional_signer_ids(self):
        return [s.user_id for s in self.signers if s.role == SignerRole.OPTIONAL.value]

    @property
    def signed_by_ids(self):
        return [s.signer_id for s in self.signatures]

    def __repr__(self):
        return f"<Document {self.id} {self.status}>"


class DocumentSigner(Base):
    __tablename__ = "document_signers"
    __table_args__ = (
        UniqueConstraint("document_id", "user_id", name="uq_document_signer"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(String(36), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    role = Column(String(20), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    document = relationship("Document", back_populates="signers")
    user = relationship("User")
