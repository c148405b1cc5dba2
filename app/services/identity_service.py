# =====================================================
# FILE: app/services/identity_service.py
# Identity verification: validate, attest, persist (one-way)
# =====================================================

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any
import hashlib
import logging
import uuid

from app.core.exceptions import (
    IdentityAlreadyVerified, IdentityDocumentRejected, ValidationFailed
)
from app.core.locks import identity_locks
from app.models.identity import IdentityVerification
from app.models.user import User
from app.services.audit_service import log_identity_action
from app.services.ledger_service import ENTITY_IDENTITY_VERIFICATION, LedgerClient
from app.services.validation_service import (
    METHOD_OCR, DeclaredIdentity, IdentityDocumentValidator, validate_declared_fields
)
from app.utils.datetime_helpers import utcnow, format_datetime_to_iso

logger = logging.getLogger(__name__)


@dataclass
class IdentityCertificate:
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

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def certificate_id_for(subject_id: int, verified_at: str) -> str:
    return hashlib.sha256(f"{subject_id}-{verified_at}".encode("utf-8")).hexdigest()


class IdentityVerificationService:
    """
    Verifies a user's identity document once. The record is only
    stored after the ledger has acknowledged the attestation.
    """

    def __init__(self, db: Session, ledger: LedgerClient, validator: IdentityDocumentValidator):
        self.db = db
        self.ledger = ledger
        self.validator = validator

    def _existing(self, subject_id: int) -> Optional[IdentityVerification]:
        return (
            self.db.query(IdentityVerification)
            .filter(IdentityVerification.subject_id == subject_id)
            .first()
        )

    def verify_identity(
        self,
        subject_id: int,
        declared: DeclaredIdentity,
        file_path: str,
        ip_address: Optional[str] = None
    ) -> IdentityVerification:
        declared = validate_declared_fields(declared)

        with identity_locks.hold(subject_id):
            try:
                self.db.expire_all()
                if not self.db.query(User.id).filter(User.id == subject_id).first():
                    raise ValidationFailed(f"Unknown user {subject_id}")
                if self._existing(subject_id):
                    raise IdentityAlreadyVerified("Identity already verified")

                report = self.validator.validate(file_path, declared)
                if not report.passed:
                    logger.warning(
                        f"Identity document rejected for user {subject_id}: "
                        f"score {report.overall_score:.2f} < {report.threshold}"
                    )
                    raise IdentityDocumentRejected(report.to_dict())

                ledger_payload = {
                    "subjectId": str(subject_id),
                    "declared": declared.to_dict(),
                    "validationMethod": report.validation_method,
                    "validationScore": report.overall_score,
                }
                verification_hash = hashlib.sha256(
                    f"{subject_id}:{declared.document_type}:{declared.document_number}".encode("utf-8")
                ).hexdigest()

                # Nothing is stored unless this returns
                receipt = self.ledger.record(
                    ENTITY_IDENTITY_VERIFICATION, str(subject_id), ledger_payload, submitter=subject_id
                )

                record = IdentityVerification(
                    id=str(uuid.uuid4()),
                    subject_id=subject_id,
                    document_type=declared.document_type,
                    document_number=declared.document_number,
                    date_of_birth=declared.date_of_birth,
                    nationality=declared.nationality,
                    full_name=declared.full_name,
                    document_file=file_path,
                    validation_method=report.validation_method,
                    validation_score=report.overall_score,
                    validation_passed=report.passed,
                    validation_report=report.to_dict(),
                    ledger_receipt_id=receipt.receipt_id,
                    ledger_sequence=receipt.sequence,
                    verification_hash=verification_hash,
                    verified_at=utcnow(),
                )
                self.db.add(record)
                log_identity_action(
                    self.db, "identity_verified", subject_id,
                    details={
                        "method": report.validation_method,
                        "score": report.overall_score,
                        "receipt_id": receipt.receipt_id,
                    },
                    ip_address=ip_address
                )
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                raise IdentityAlreadyVerified("Identity already verified") from e
            except Exception:
                self.db.rollback()
                raise

        logger.info(
            f"Identity verified for user {subject_id} via {report.validation_method} "
            f"(score {report.overall_score:.2f}, TX {receipt.receipt_id})"
        )
        return record

    def get_status(self, subject_id: int) -> Dict[str, Any]:
        record = self._existing(subject_id)
        if not record:
            return {"is_verified": False, "verification": None}

        return {
            "is_verified": True,
            "verification": {
                "document_type": record.document_type,
                "nationality": record.nationality,
                "full_name": record.full_name,
                "validation_method": record.validation_method,
                "validation_score": record.validation_score,
                "content_verified": record.validation_method == METHOD_OCR,
                "ledger_receipt_id": record.ledger_receipt_id,
                "ledger_sequence": record.ledger_sequence,
                "verified_at": format_datetime_to_iso(record.verified_at),
            },
        }

    def build_certificate(self, subject_id: int) -> IdentityCertificate:
        record = self._existing(subject_id)
        if not record:
            raise ValidationFailed("Identity not verified")

        verified_at = format_datetime_to_iso(record.verified_at)
        return IdentityCertificate(
            certificate_id=certificate_id_for(subject_id, verified_at),
            subject_id=subject_id,
            full_name=record.full_name,
            document_type=record.document_type,
            nationality=record.nationality,
            validation_method=record.validation_method,
            validation_score=record.validation_score,
            verification_hash=record.verification_hash,
            ledger_receipt_id=record.ledger_receipt_id,
            ledger_sequence=record.ledger_sequence,
            verified_at=verified_at,
            issued_at=format_datetime_to_iso(utcnow()),
        )
