# =====================================================
# FILE: app/models/__init__.py
# Model registry
# =====================================================

from app.core.database import Base

# Identity
from app.models.user import User
from app.models.identity import IdentityVerification

# Documents and signatures
from app.models.document import Document, DocumentSigner, DocumentStatus, SignerRole
from app.models.signature import Signature

# Audit and ledger
from app.models.audit import AuditLog
from app.models.ledger import LedgerEntry

# Export all models
__all__ = [
    # Core
    "Base",

    # Identity
    "User",
    "IdentityVerification",

    # Documents
    "Document",
    "DocumentSigner",
    "DocumentStatus",
    "SignerRole",
    "Signature",

    # Audit & Ledger
    "AuditLog",
    "LedgerEntry",
]
