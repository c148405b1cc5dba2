# =====================================================
# FILE: app/api/api_v1/signatures/schemas.py
# Signature API Schemas
# =====================================================

from pydantic import BaseModel, Field
from typing import Optional, List


class SignRequest(BaseModel):
    """Ed25519 signature (base64) over the canonical signing payload"""
    signature: str = Field(..., min_length=1)
    timestamp: int = Field(..., description="Epoch milliseconds returned with the signing data")
    signature_hash: Optional[str] = Field(None, min_length=64, max_length=64)


class SigningDataResponse(BaseModel):
    data_to_sign: str
    signature_hash: str
    document_hash: str
    timestamp: int


class LedgerReceiptResponse(BaseModel):
    receipt_id: str
    sequence: int
    content_hash: str


class SignatureResponse(BaseModel):
    id: str
    document_id: str
    signer_id: int
    sequence: int
    signature_hash: str
    ledger_receipt: LedgerReceiptResponse
    signed_at: Optional[str] = None


class SignResponse(BaseModel):
    success: bool = True
    message: str
    signature: SignatureResponse
    document_status: str
    fully_signed: bool


class SignatureVerificationResponse(BaseModel):
    signature_id: str
    signer_id: int
    valid: bool
    signature_valid: bool
    document_hash_matches: bool
    ledger_receipt_id: str
    ledger_sequence: int
    signed_at: Optional[str] = None


class PendingDocumentResponse(BaseModel):
    id: str
    title: str
    owner_id: int
    status: str
    signer_role: str
    completion_percentage: float
    submitted_at: Optional[str] = None
    expires_at: Optional[str] = None


class PendingListResponse(BaseModel):
    documents: List[PendingDocumentResponse]
    total: int
