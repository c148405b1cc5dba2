# =====================================================
# FILE: app/api/api_v1/documents/router.py
# Document lifecycle API routes
# =====================================================

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.orm import Session
from typing import Optional, List
from datetime import datetime
import json
import logging

from app.core.database import get_db
from app.core.dependencies import get_current_user, get_storage
from app.core.exceptions import ValidationFailed
from app.models.user import User
from app.services.audit_service import AuditService
from app.services.document_service import DocumentService
from app.services.storage_service import FileStorage
from app.utils.datetime_helpers import format_datetime_to_iso, to_naive_utc
from app.api.api_v1.documents.schemas import (
    AuditEntryResponse,
    DocumentCancelRequest,
    DocumentListResponse,
    DocumentResponse,
    DocumentUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/documents", tags=["documents"])


# =====================================================
# HELPERS
# =====================================================

def parse_id_list(value: Optional[str], field_name: str) -> List[int]:
    """Accepts a JSON array ("[2, 3]") or a comma separated list ("2,3")"""
    if value is None or not value.strip():
        return []
    raw = value.strip()
    try:
        if raw.startswith("["):
            items = json.loads(raw)
        else:
            items = [part.strip() for part in raw.split(",") if part.strip()]
        return [int(item) for item in items]
    except (ValueError, TypeError):
        raise ValidationFailed(f"{field_name} must be a list of user ids")


def parse_expiry(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationFailed("expires_at must be an ISO-8601 datetime")
    return to_naive_utc(parsed)


def get_document_service(
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage)
) -> DocumentService:
    return DocumentService(db, storage)


# =====================================================
# ENDPOINTS
# =====================================================

@router.post("", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
def upload_document(
    file: UploadFile = File(...),
    title: str = Form(...),
    description: Optional[str] = Form(None),
    required_signers: Optional[str] = Form(None),
    optional_signers: Optional[str] = Form(None),
    expires_at: Optional[str] = Form(None),
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service)
):
    """
    Upload a document and create it in draft

    - **file**: PDF or image
    - **required_signers** / **optional_signers**: user ids, JSON array or comma separated
    """
    logger.info(f"📤 Upload request: {file.filename} by user {current_user.email}")
    content = file.file.read()

    document = service.create(
        owner_id=current_user.id,
        content=content,
        metadata={"title": title, "description": description, "original_filename": file.filename},
        required_signers=parse_id_list(required_signers, "required_signers"),
        optional_signers=parse_id_list(optional_signers, "optional_signers"),
        file_name=file.filename,
        file_type=file.content_type,
        expires_at=parse_expiry(expires_at),
    )
    return service.summary(document, current_user.id)


@router.get("", response_model=DocumentListResponse)
def list_my_documents(
    status_filter: Optional[str] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service)
):
    """Documents owned by the current user"""
    documents = service.list_owned(current_user.id, status_filter)
    return {
        "documents": [service.summary(d, current_user.id) for d in documents],
        "total": len(documents),
    }


@router.get("/{document_id}", response_model=DocumentResponse)
def get_document(
    document_id: str,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service)
):
    document = service.get_for_actor(document_id, current_user.id)
    return service.summary(document, current_user.id)


@router.patch("/{document_id}", response_model=DocumentResponse)
def update_document(
    document_id: str,
    request: DocumentUpdateRequest,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service)
):
    document = service.update(
        document_id,
        current_user.id,
        title=request.title,
        description=request.description,
        metadata=request.metadata,
        required_signers=request.required_signers,
        optional_signers=request.optional_signers,
        expires_at=to_naive_utc(request.expires_at),
    )
    return service.summary(document, current_user.id)


@router.post("/{document_id}/submit", response_model=DocumentResponse)
def submit_document(
    document_id: str,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service)
):
    """Send a draft out for signatures"""
    document = service.submit(document_id, current_user.id)
    return service.summary(document, current_user.id)


@router.post("/{document_id}/cancel", response_model=DocumentResponse)
def cancel_document(
    document_id: str,
    request: Optional[DocumentCancelRequest] = None,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service)
):
    document = service.cancel(document_id, current_user.id, reason=request.reason if request else None)
    return service.summary(document, current_user.id)


@router.delete("/{document_id}")
def delete_document(
    document_id: str,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service)
):
    """Drafts only"""
    service.delete(document_id, current_user.id)
    return {"success": True, "message": "Document deleted successfully"}


@router.get("/{document_id}/audit", response_model=List[AuditEntryResponse])
def document_audit_trail(
    document_id: str,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service)
):
    service.get_for_actor(document_id, current_user.id)
    entries = AuditService(service.db).history("document", document_id)
    return [
        {
            "action_type": entry.action_type,
            "user_id": entry.user_id,
            "details": entry.action_details or {},
            "created_at": format_datetime_to_iso(entry.created_at),
        }
        for entry in entries
    ]
