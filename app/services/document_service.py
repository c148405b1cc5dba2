# =====================================================
# FILE: app/services/document_service.py
# Document Lifecycle Manager: state machine and signer authorization
# =====================================================

from sqlalchemy.orm import Session
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Dict, List, Any, Iterable
import hashlib
import logging
import uuid

from app.core.config import settings
from app.core.exceptions import (
    DocumentNotFound, InvalidState, NotOwner, Unauthorized, ValidationFailed
)
from app.core.locks import document_locks
from app.models.document import Document, DocumentSigner, DocumentStatus, SignerRole
from app.models.user import User
from app.services.audit_service import log_document_action
from app.services.storage_service import FileStorage
from app.utils.datetime_helpers import utcnow, format_datetime_to_iso

logger = logging.getLogger(__name__)


class SignerAuthorization(str, Enum):
    REQUIRED = "required"
    OPTIONAL = "optional"
    UNAUTHORIZED = "unauthorized"


class DocumentService:
    """
    Owns the document state machine. All status changes happen inside
    the per-document critical section.
    """

    # Valid status transitions
    STATUS_TRANSITIONS = {
        DocumentStatus.DRAFT.value: [DocumentStatus.PENDING.value],
        DocumentStatus.PENDING.value: [
            DocumentStatus.SIGNED.value,
            DocumentStatus.EXPIRED.value,
            DocumentStatus.CANCELLED.value,
        ],
        DocumentStatus.SIGNED.value: [],
        DocumentStatus.EXPIRED.value: [],
        DocumentStatus.CANCELLED.value: [],
    }

    EDITABLE_STATUSES = (DocumentStatus.DRAFT.value, DocumentStatus.PENDING.value)

    def __init__(self, db: Session, storage: Optional[FileStorage] = None):
        self.db = db
        self.storage = storage or FileStorage()

    @staticmethod
    def validate_status_transition(current_status: str, new_status: str) -> bool:
        """Check if status transition is valid"""
        return new_status in DocumentService.STATUS_TRANSITIONS.get(current_status, [])

    def _transition(self, document: Document, new_status: DocumentStatus, actor_id: Optional[int],
                    details: Optional[Dict[str, Any]] = None):
        if not self.validate_status_transition(document.status, new_status.value):
            raise InvalidState(
                f"Document {document.id} cannot move from {document.status} to {new_status.value}"
            )
        old_status = document.status
        document.status = new_status.value
        log_document_action(
            self.db, f"document_{new_status.value}", document.id, actor_id,
            details={"from": old_status, "to": new_status.value, **(details or {})}
        )
        logger.info(f"Document {document.id}: {old_status} -> {new_status.value}")

    # =====================================================
    # LOOKUPS
    # =====================================================

    def get_document(self, document_id: str) -> Document:
        document = self.db.query(Document).filter(Document.id == document_id).first()
        if not document:
            raise DocumentNotFound(f"Document {document_id} not found")
        return document

    def _load_for_update(self, document_id: str) -> Document:
        """Fresh row and collections, locked where the database supports it"""
        self.db.expire_all()
        document = (
            self.db.query(Document)
            .with_for_update()
            .filter(Document.id == document_id)
            .first()
        )
        if not document:
            raise DocumentNotFound(f"Document {document_id} not found")
        return document

    def get_for_actor(self, document_id: str, actor_id: int) -> Document:
        document = self.get_document(document_id)
        if document.owner_id != actor_id and actor_id not in (
            document.required_signer_ids + document.optional_signer_ids
        ):
            raise Unauthorized("Access denied")
        return document

    # =====================================================
    # AUTHORIZATION
    # =====================================================

    @staticmethod
    def authorize_signer(document: Document, identity: int) -> SignerAuthorization:
        # The owner never signs, whatever the signer lists say
        if identity == document.owner_id:
            return SignerAuthorization.UNAUTHORIZED
        if identity in document.required_signer_ids:
            return SignerAuthorization.REQUIRED
        if identity in document.optional_signer_ids:
            return SignerAuthorization.OPTIONAL
        return SignerAuthorization.UNAUTHORIZED

    @staticmethod
    def _require_owner(document: Document, actor_id: int):
        if document.owner_id != actor_id:
            raise NotOwner("Not authorized to modify this document")

    # =====================================================
    # CREATE / UPDATE
    # =====================================================

    def _validate_signers(self, owner_id: int, required: List[int], optional: List[int]):
        errors = []
        if len(set(required)) != len(required) or len(set(optional)) != len(optional):
            errors.append("Signer lists must not contain duplicates")
        if set(required) & set(optional):
            errors.append("A signer cannot be both required and optional")
        if owner_id in required or owner_id in optional:
            errors.append("The document owner cannot be a signer")

        wanted = set(required) | set(optional)
        if wanted:
            found = {row.id for row in self.db.query(User.id).filter(User.id.in_(wanted)).all()}
            missing = sorted(wanted - found)
            if missing:
                errors.append(f"Unknown signers: {missing}")

        if errors:
            raise ValidationFailed("Invalid signer lists", details=errors)

    def _set_signers(self, document: Document, required: Iterable[int], optional: Iterable[int]):
        document.signers.clear()
        self.db.flush()
        position = 0
        for role, ids in ((SignerRole.REQUIRED, required), (SignerRole.OPTIONAL, optional)):
            for user_id in ids:
                document.signers.append(
                    DocumentSigner(user_id=user_id, role=role.value, position=position)
                )
                position += 1

    def create(
        self,
        owner_id: int,
        content: bytes,
        metadata: Dict[str, Any],
        required_signers: Optional[List[int]] = None,
        optional_signers: Optional[List[int]] = None,
        file_name: Optional[str] = None,
        file_type: Optional[str] = None,
        expires_at: Optional[datetime] = None
    ) -> Document:
        """Store the upload and create the document in draft"""
        required = list(required_signers or [])
        optional = list(optional_signers or [])
        metadata = dict(metadata or {})
        title = (metadata.pop("title", None) or "").strip()
        description = metadata.pop("description", None)

        errors = []
        if not title:
            errors.append("Title is required")
        if not content:
            errors.append("Document content is empty")
        elif len(content) > settings.MAX_FILE_SIZE:
            errors.append(f"File exceeds maximum size of {settings.MAX_FILE_SIZE} bytes")
        if file_type and file_type not in settings.ALLOWED_UPLOAD_TYPES:
            errors.append(f"Invalid file type: {file_type}")
        if errors:
            raise ValidationFailed("Validation failed", details=errors)

        if not self.db.query(User.id).filter(User.id == owner_id).first():
            raise ValidationFailed(f"Unknown owner {owner_id}")
        self._validate_signers(owner_id, required, optional)

        file_path = self.storage.save(content, file_name)
        try:
            document = Document(
                id=str(uuid.uuid4()),
                owner_id=owner_id,
                title=title,
                description=description,
                file_name=file_name,
                file_path=file_path,
                file_size=len(content),
                file_type=file_type,
                content_hash=hashlib.sha256(content).hexdigest(),
                status=DocumentStatus.DRAFT.value,
                doc_metadata=metadata,
                expires_at=expires_at,
            )
            self.db.add(document)
            self._set_signers(document, required, optional)
            log_document_action(
                self.db, "document_created", document.id, owner_id,
                details={"content_hash": document.content_hash, "file_name": file_name}
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            self.storage.delete(file_path)
            raise

        logger.info(f"Document {document.id} created by user {owner_id} (hash {document.content_hash[:16]}...)")
        return document

    def update(
        self,
        document_id: str,
        actor_id: int,
        title: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        required_signers: Optional[List[int]] = None,
        optional_signers: Optional[List[int]] = None,
        expires_at: Optional[datetime] = None
    ) -> Document:
        """Edit descriptive fields; signer lists only while in draft"""
        with document_locks.hold(document_id):
            try:
                document = self._load_for_update(document_id)
                self._require_owner(document, actor_id)

                if document.status not in self.EDITABLE_STATUSES:
                    raise InvalidState(f"Document in {document.status} status cannot be edited")

                changed = []
                if title is not None:
                    if not title.strip():
                        raise ValidationFailed("Title cannot be empty")
                    document.title = title.strip()
                    changed.append("title")
                if description is not None:
                    document.description = description
                    changed.append("description")
                if metadata is not None:
                    document.doc_metadata = {**(document.doc_metadata or {}), **metadata}
                    changed.append("metadata")
                if expires_at is not None:
                    document.expires_at = expires_at
                    changed.append("expires_at")

                if required_signers is not None or optional_signers is not None:
                    if document.status != DocumentStatus.DRAFT.value:
                        raise InvalidState("Signers can only be changed while the document is a draft")
                    required = list(required_signers if required_signers is not None
                                    else document.required_signer_ids)
                    optional = list(optional_signers if optional_signers is not None
                                    else document.optional_signer_ids)
                    self._validate_signers(document.owner_id, required, optional)
                    self._set_signers(document, required, optional)
                    changed.append("signers")

                document.updated_at = utcnow()
                log_document_action(self.db, "document_updated", document.id, actor_id,
                                    details={"fields": changed})
                self.db.commit()
                return document
            except Exception:
                self.db.rollback()
                raise

    # =====================================================
    # TRANSITIONS
    # =====================================================

    def submit(self, document_id: str, actor_id: int) -> Document:
        with document_locks.hold(document_id):
            try:
                document = self._load_for_update(document_id)
                self._require_owner(document, actor_id)
                if document.status != DocumentStatus.DRAFT.value:
                    raise InvalidState("Document is not in draft status")
                if not document.required_signer_ids:
                    raise ValidationFailed("At least one required signer is needed to submit")

                self._transition(document, DocumentStatus.PENDING, actor_id)
                document.submitted_at = utcnow()
                if document.expires_at is None and settings.DOCUMENT_DEFAULT_EXPIRY_DAYS:
                    document.expires_at = document.submitted_at + timedelta(
                        days=settings.DOCUMENT_DEFAULT_EXPIRY_DAYS
                    )
                self.db.commit()
                return document
            except Exception:
                self.db.rollback()
                raise

    def delete(self, document_id: str, actor_id: int) -> None:
        """Only drafts are physically removed, together with their upload"""
        with document_locks.hold(document_id):
            try:
                document = self._load_for_update(document_id)
                self._require_owner(document, actor_id)
                if document.status != DocumentStatus.DRAFT.value:
                    raise InvalidState("Only draft documents can be deleted")

                file_path = document.file_path
                self.db.delete(document)
                log_document_action(self.db, "document_deleted", document_id, actor_id)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self.storage.delete(file_path)
        logger.info(f"Document {document_id} deleted by user {actor_id}")

    def cancel(self, document_id: str, actor_id: int, reason: Optional[str] = None) -> Document:
        with document_locks.hold(document_id):
            try:
                document = self._load_for_update(document_id)
                self._require_owner(document, actor_id)
                if document.status != DocumentStatus.PENDING.value:
                    raise InvalidState("Only pending documents can be cancelled")

                self._transition(document, DocumentStatus.CANCELLED, actor_id, {"reason": reason})
                document.cancelled_at = utcnow()
                self.db.commit()
                return document
            except Exception:
                self.db.rollback()
                raise

    def expire(self, document_id: str) -> Document:
        """External time-based trigger: pending -> expired"""
        with document_locks.hold(document_id):
            try:
                document = self._load_for_update(document_id)
                if document.status != DocumentStatus.PENDING.value:
                    raise InvalidState("Only pending documents can expire")

                self._transition(document, DocumentStatus.EXPIRED, None,
                                 {"expires_at": format_datetime_to_iso(document.expires_at)})
                document.expired_at = utcnow()
                self.db.commit()
                return document
            except Exception:
                self.db.rollback()
                raise

    def expire_overdue(self, now: Optional[datetime] = None) -> List[str]:
        """Expire every pending document whose deadline has passed"""
        now = now or utcnow()
        candidates = [
            row.id for row in self.db.query(Document.id).filter(
                Document.status == DocumentStatus.PENDING.value,
                Document.expires_at.isnot(None),
                Document.expires_at <= now
            ).all()
        ]

        expired = []
        for document_id in candidates:
            try:
                self.expire(document_id)
                expired.append(document_id)
            except InvalidState:
                # signed or cancelled since the scan
                continue

        if expired:
            logger.info(f"Expired {len(expired)} overdue document(s)")
        return expired

    def _evaluate_completion(self, document: Document) -> bool:
        """Caller must hold the document lock. True if it became signed."""
        if document.status != DocumentStatus.PENDING.value:
            return False
        required = set(document.required_signer_ids)
        if not required or not required <= set(document.signed_by_ids):
            return False

        self._transition(document, DocumentStatus.SIGNED, None,
                         {"signatures": len(document.signatures)})
        document.signed_at = utcnow()
        return True

    def evaluate_completion(self, document_id: str) -> str:
        """Idempotent: re-checks required signatures, returns the status"""
        with document_locks.hold(document_id):
            try:
                document = self._load_for_update(document_id)
                if self._evaluate_completion(document):
                    self.db.commit()
                return document.status
            except Exception:
                self.db.rollback()
                raise

    # =====================================================
    # QUERIES
    # =====================================================

    def list_pending_for_signer(self, user_id: int, limit: int = 50, offset: int = 0) -> List[Document]:
        """Pending documents where the user is an authorized signer who has not signed yet"""
        documents = (
            self.db.query(Document)
            .join(DocumentSigner, DocumentSigner.document_id == Document.id)
            .filter(
                DocumentSigner.user_id == user_id,
                Document.status == DocumentStatus.PENDING.value,
                Document.owner_id != user_id
            )
            .order_by(Document.submitted_at.desc())
            .all()
        )
        pending = [d for d in documents if user_id not in d.signed_by_ids]
        return pending[offset:offset + limit]

    def list_owned(self, owner_id: int, status: Optional[str] = None) -> List[Document]:
        query = self.db.query(Document).filter(Document.owner_id == owner_id)
        if status:
            query = query.filter(Document.status == status)
        return query.order_by(Document.created_at.desc()).all()

    @staticmethod
    def completion_percentage(document: Document) -> float:
        required = document.required_signer_ids
        if not required:
            return 100.0
        signed = set(document.signed_by_ids)
        return 100.0 * sum(1 for user_id in required if user_id in signed) / len(required)

    def summary(self, document: Document, viewer_id: Optional[int] = None) -> Dict[str, Any]:
        data = {
            "id": document.id,
            "title": document.title,
            "description": document.description,
            "status": document.status,
            "owner_id": document.owner_id,
            "content_hash": document.content_hash,
            "file_name": document.file_name,
            "file_type": document.file_type,
            "file_size": document.file_size,
            "metadata": document.doc_metadata or {},
            "required_signers": document.required_signer_ids,
            "optional_signers": document.optional_signer_ids,
            "signed_by": document.signed_by_ids,
            "signature_count": len(document.signatures),
            "completion_percentage": self.completion_percentage(document),
            "created_at": format_datetime_to_iso(document.created_at),
            "submitted_at": format_datetime_to_iso(document.submitted_at),
            "signed_at": format_datetime_to_iso(document.signed_at),
            "expires_at": format_datetime_to_iso(document.expires_at),
        }
        if viewer_id is not None:
            if viewer_id == document.owner_id:
                data["user_role"] = "owner"
            else:
                role = self.authorize_signer(document, viewer_id)
                data["user_role"] = {
                    SignerAuthorization.REQUIRED: "required_signer",
                    SignerAuthorization.OPTIONAL: "optional_signer",
                }.get(role, "viewer")
        return data
