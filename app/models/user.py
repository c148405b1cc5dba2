# =====================================================
# FILE: app/models/user.py
# Identity reference used by owners and signers
# =====================================================

from sqlalchemy import Column, String, Boolean, DateTime, Integer, Text
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.utils.datetime_helpers import utcnow


class User(Base):
    __tablename__ = "users"
    __table_args__ = {'extend_existing': True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False)
    first_name = Column(String(100))
    last_name = Column(String(100))
    # Ed25519 public key (hex, raw 32 bytes) used to verify document signatures
    signing_public_key = Column(Text)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)

    identity_verification = relationship(
        "IdentityVerification",
        back_populates="subject",
        uselist=False
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def identity_verified(self) -> bool:
        return self.identity_verification is not None

    def __repr__(self):
        return f"<User {self.id} {self.email}>"
