# =====================================================
# FILE: app/api/api_v1/identity/schemas.py
# Identity verification API Schemas
# =====================================================

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from enum import Enum


class DocumentType(str, Enum):
    PASSPORT = "passport"
    NATIONAL_ID = "national_id"
    DRIVERS_LICENSE = "drivers_license"
    OTHER = "other"


class VerificationDetail(BaseModel):
    document_type: str
    nationality: str
    full_name: str
    validation_method: str
    validation_score: float
    content_verified: bool
    ledger_receipt_id: str
    ledger_sequence: int
    verified_at: Optional[str] = None


class IdentityStatusResponse(BaseModel):
    is_verified: bool
    verification: Optional[VerificationDetail] = None


class IdentityVerifyResponse(BaseModel):
    success: bool = True
    message: str
    validation_method: str
    valid_by_fallback: bool
    validation_score: float
    validation_report: Dict[str, Any] = Field(default_factory=dict)
    ledger_receipt_id: str
    ledger_sequence: int
    verified_at: Optional[str] = None


class CertificateResponse(BaseModel):
    certificate_id: str
    subject_id: int
    full_name: str
    document_type: str
    nationality: str
    validation_method: str
    validation_score: float
    verification_hash: str
    ledger_receipt_id: str
    ledger_sequence: int
    verified_at: str
    issued_at: str
