# =====================================================
# FILE: app/api/api_v1/signatures/router.py
# Signature collection API routes
# =====================================================

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from typing import List
import logging

from app.core.database import get_db
from app.core.dependencies import get_current_user, get_ledger, get_storage
from app.models.document import DocumentStatus
from app.models.user import User
from app.services.document_service import DocumentService
from app.services.ledger_service import LedgerClient
from app.services.signature_service import SignaturePayload, SignatureService
from app.services.storage_service import FileStorage
from app.utils.datetime_helpers import format_datetime_to_iso
from app.api.api_v1.signatures.schemas import (
    PendingListResponse,
    SignatureResponse,
    SignatureVerificationResponse,
    SigningDataResponse,
    SignRequest,
    SignResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/signatures", tags=["signatures"])


def get_signature_service(
    db: Session = Depends(get_db),
    ledger: LedgerClient = Depends(get_ledger),
    storage: FileStorage = Depends(get_storage)
) -> SignatureService:
    return SignatureService(db, ledger, DocumentService(db, storage))


# =====================================================
# ENDPOINTS
# =====================================================

@router.get("/pending", response_model=PendingListResponse)
def pending_signatures(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    service: SignatureService = Depends(get_signature_service)
):
    """Pending documents the current user may still sign"""
    documents = service.documents.list_pending_for_signer(current_user.id, limit, offset)
    return {
        "documents": [
            {
                "id": d.id,
                "title": d.title,
                "owner_id": d.owner_id,
                "status": d.status,
                "signer_role": service.documents.authorize_signer(d, current_user.id).value,
                "completion_percentage": service.documents.completion_percentage(d),
                "submitted_at": format_datetime_to_iso(d.submitted_at),
                "expires_at": format_datetime_to_iso(d.expires_at),
            }
            for d in documents
        ],
        "total": len(documents),
    }


@router.get("/history", response_model=List[SignatureResponse])
def signature_history(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    service: SignatureService = Depends(get_signature_service)
):
    signatures = service.signature_history(current_user.id, limit, offset)
    return [service.serialize(s) for s in signatures]


@router.get("/{document_id}/signing-data", response_model=SigningDataResponse)
def signing_data(
    document_id: str,
    current_user: User = Depends(get_current_user),
    service: SignatureService = Depends(get_signature_service)
):
    """Canonical payload for the client to sign"""
    return service.generate_signing_data(document_id, current_user.id)


@router.post("/{document_id}/sign", response_model=SignResponse)
def sign_document(
    document_id: str,
    request: SignRequest,
    http_request: Request,
    current_user: User = Depends(get_current_user),
    service: SignatureService = Depends(get_signature_service)
):
    logger.info(f"✍️ Sign request for document {document_id} by user {current_user.id}")
    result = service.sign(
        document_id,
        current_user.id,
        SignaturePayload(
            signature=request.signature,
            timestamp=request.timestamp,
            signature_hash=request.signature_hash,
        ),
        ip_address=http_request.client.host if http_request.client else None,
        user_agent=http_request.headers.get("user-agent"),
    )

    fully_signed = result.document_status == DocumentStatus.SIGNED.value
    return {
        "success": True,
        "message": "Document fully signed" if fully_signed else "Signature recorded",
        "signature": service.serialize(result.signature),
        "document_status": result.document_status,
        "fully_signed": fully_signed,
    }


@router.get("/{document_id}", response_model=List[SignatureResponse])
def document_signatures(
    document_id: str,
    current_user: User = Depends(get_current_user),
    service: SignatureService = Depends(get_signature_service)
):
    signatures = service.list_signatures(document_id, current_user.id)
    return [service.serialize(s) for s in signatures]


@router.get("/{document_id}/{signature_id}/verify", response_model=SignatureVerificationResponse)
def verify_signature(
    document_id: str,
    signature_id: str,
    current_user: User = Depends(get_current_user),
    service: SignatureService = Depends(get_signature_service)
):
    """Re-check a stored signature against its key and the document hash"""
    return service.verify_signature_record(document_id, signature_id, current_user.id)
