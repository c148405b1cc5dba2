# =====================================================
# FILE: app/api/api_v1/identity/router.py
# Identity verification API routes
# =====================================================

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.orm import Session
import logging

from app.core.config import settings
from app.core.database import get_db
from app.core.dependencies import get_current_user, get_ledger, get_storage, get_validator
from app.core.exceptions import ValidationFailed
from app.models.user import User
from app.services.certificate_service import render_certificate_pdf
from app.services.identity_service import IdentityVerificationService
from app.services.ledger_service import LedgerClient
from app.services.storage_service import FileStorage
from app.services.validation_service import DeclaredIdentity, IdentityDocumentValidator, METHOD_FALLBACK
from app.utils.datetime_helpers import format_datetime_to_iso
from app.api.api_v1.identity.schemas import (
    CertificateResponse,
    DocumentType,
    IdentityStatusResponse,
    IdentityVerifyResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/identity", tags=["identity"])


def get_identity_service(
    db: Session = Depends(get_db),
    ledger: LedgerClient = Depends(get_ledger),
    validator: IdentityDocumentValidator = Depends(get_validator)
) -> IdentityVerificationService:
    return IdentityVerificationService(db, ledger, validator)


# =====================================================
# ENDPOINTS
# =====================================================

@router.post("/verify", response_model=IdentityVerifyResponse, status_code=status.HTTP_201_CREATED)
def verify_identity(
    http_request: Request,
    document_type: DocumentType = Form(...),
    document_number: str = Form(...),
    date_of_birth: str = Form(...),
    nationality: str = Form(...),
    full_name: str = Form(...),
    document_file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    service: IdentityVerificationService = Depends(get_identity_service),
    storage: FileStorage = Depends(get_storage)
):
    """
    Submit an identity document for one-time verification

    The response states whether the document content was checked (OCR)
    or only the completeness of the declared fields (fallback).
    """
    if document_file.content_type not in settings.ALLOWED_UPLOAD_TYPES:
        raise ValidationFailed("Invalid file type. Only JPEG, PNG, and PDF are allowed.")
    content = document_file.file.read()
    if not content:
        raise ValidationFailed("Document file is empty")
    if len(content) > settings.MAX_FILE_SIZE:
        raise ValidationFailed(f"File exceeds maximum size of {settings.MAX_FILE_SIZE} bytes")

    file_path = storage.save(content, document_file.filename, folder="identity")
    declared = DeclaredIdentity(
        document_type=document_type.value,
        document_number=document_number,
        date_of_birth=date_of_birth,
        nationality=nationality,
        full_name=full_name,
    )

    try:
        record = service.verify_identity(
            current_user.id,
            declared,
            file_path,
            ip_address=http_request.client.host if http_request.client else None,
        )
    except Exception:
        storage.delete(file_path)
        raise

    fallback = record.validation_method == METHOD_FALLBACK
    return {
        "success": True,
        "message": (
            "Identity verified by completeness check; document content was not verified"
            if fallback else "Identity verified successfully"
        ),
        "validation_method": record.validation_method,
        "valid_by_fallback": fallback,
        "validation_score": record.validation_score,
        "validation_report": record.validation_report or {},
        "ledger_receipt_id": record.ledger_receipt_id,
        "ledger_sequence": record.ledger_sequence,
        "verified_at": format_datetime_to_iso(record.verified_at),
    }


@router.get("/status", response_model=IdentityStatusResponse)
def identity_status(
    current_user: User = Depends(get_current_user),
    service: IdentityVerificationService = Depends(get_identity_service)
):
    return service.get_status(current_user.id)


@router.get("/certificate", response_model=CertificateResponse)
def identity_certificate(
    current_user: User = Depends(get_current_user),
    service: IdentityVerificationService = Depends(get_identity_service)
):
    return service.build_certificate(current_user.id).to_dict()


@router.get("/certificate/pdf")
def identity_certificate_pdf(
    current_user: User = Depends(get_current_user),
    service: IdentityVerificationService = Depends(get_identity_service)
):
    certificate = service.build_certificate(current_user.id)
    pdf_bytes = render_certificate_pdf(certificate)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f"attachment; filename=identity_certificate_{current_user.id}.pdf"
        }
    )
