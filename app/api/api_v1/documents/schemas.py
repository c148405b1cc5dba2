# =====================================================
# FILE: app/api/api_v1/documents/schemas.py
# Document API Schemas
# =====================================================

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime


class DocumentUpdateRequest(BaseModel):
    """Partial update; signer lists are only accepted while in draft"""
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    required_signers: Optional[List[int]] = None
    optional_signers: Optional[List[int]] = None
    expires_at: Optional[datetime] = None


class DocumentCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class DocumentResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    status: str
    owner_id: int
    content_hash: str
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    required_signers: List[int] = Field(default_factory=list)
    optional_signers: List[int] = Field(default_factory=list)
    signed_by: List[int] = Field(default_factory=list)
    signature_count: int = 0
    completion_percentage: float = 0.0
    created_at: Optional[str] = None
    submitted_at: Optional[str] = None
    signed_at: Optional[str] = None
    expires_at: Optional[str] = None
    user_role: Optional[str] = None


class DocumentListResponse(BaseModel):
    documents: List[DocumentResponse]
    total: int


class AuditEntryResponse(BaseModel):
    action_type: str
    user_id: Optional[int] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None
