# =====================================================
# FILE: app/services/signature_service.py
# Signature Collector: verification, attestation and append
# =====================================================

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from dataclasses import dataclass
from typing import Optional, Dict, List, Any
import base64
import binascii
import hashlib
import json
import logging
import time
import uuid

from cryptography.exceptions import InvalidSignature as CryptoInvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from app.core.config import settings
from app.core.exceptions import (
    AlreadySigned, InvalidSignature, InvalidState, Unauthorized, DocumentNotFound
)
from app.core.locks import document_locks
from app.models.document import Document, DocumentStatus
from app.models.signature import Signature
from app.models.user import User
from app.services.audit_service import log_document_action
from app.services.document_service import DocumentService, SignerAuthorization
from app.services.ledger_service import (
    ENTITY_DOCUMENT_SIGNATURE, LedgerClient, LedgerReceipt
)
from app.utils.datetime_helpers import utcnow, format_datetime_to_iso

logger = logging.getLogger(__name__)


@dataclass
class SignaturePayload:
    """What the signer submits: Ed25519 signature over the canonical payload"""
    signature: str  # base64
    timestamp: int  # epoch milliseconds used when the payload was built
    signature_hash: Optional[str] = None


@dataclass
class SigningResult:
    signature: Signature
    receipt: LedgerReceipt
    document_status: str


def build_signing_payload(document_id: str, content_hash: str, signer_id: int, timestamp: int) -> str:
    """Canonical bytes-to-sign: sorted keys, compact separators"""
    return json.dumps(
        {
            "documentId": document_id,
            "contentHash": content_hash,
            "signerId": str(signer_id),
            "timestamp": int(timestamp),
        },
        sort_keys=True,
        separators=(",", ":"),
    )


def verify_ed25519(public_key_hex: str, message: str, signature_b64: str) -> bool:
    try:
        public_key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))
        signature = base64.b64decode(signature_b64, validate=True)
        public_key.verify(signature, message.encode("utf-8"))
        return True
    except (CryptoInvalidSignature, ValueError, binascii.Error) as e:
        logger.warning(f"Signature verification failed: {type(e).__name__}")
        return False


class SignatureService:
    """
    Collects signatures on pending documents. The ledger write and the
    signature append form one unit: without a receipt nothing is stored.
    """

    def __init__(self, db: Session, ledger: LedgerClient, documents: Optional[DocumentService] = None):
        self.db = db
        self.ledger = ledger
        self.documents = documents or DocumentService(db)

    # =====================================================
    # SIGNING DATA
    # =====================================================

    def _check_signable(self, document: Document, signer_id: int) -> SignerAuthorization:
        if document.status != DocumentStatus.PENDING.value:
            raise InvalidState("Document is not in pending status and cannot be signed")

        role = self.documents.authorize_signer(document, signer_id)
        if role == SignerAuthorization.UNAUTHORIZED:
            if signer_id == document.owner_id:
                raise Unauthorized("Document owners cannot sign their own documents")
            raise Unauthorized("You are not authorized to sign this document")

        if signer_id in document.signed_by_ids:
            raise AlreadySigned("You have already signed this document")
        return role

    def generate_signing_data(self, document_id: str, signer_id: int,
                              timestamp: Optional[int] = None) -> Dict[str, Any]:
        """Payload the client signs with its Ed25519 key"""
        document = self.documents.get_document(document_id)
        self._check_signable(document, signer_id)

        timestamp = int(timestamp if timestamp is not None else time.time() * 1000)
        payload = build_signing_payload(document.id, document.content_hash, signer_id, timestamp)
        return {
            "data_to_sign": payload,
            "signature_hash": hashlib.sha256(payload.encode("utf-8")).hexdigest(),
            "document_hash": document.content_hash,
            "timestamp": timestamp,
        }

    # =====================================================
    # VERIFICATION
    # =====================================================

    def _verify(self, document: Document, signer: User, payload: SignaturePayload) -> str:
        now_ms = int(time.time() * 1000)
        max_age_ms = settings.SIGNATURE_MAX_AGE_SECONDS * 1000
        if payload.timestamp > now_ms + 60_000:
            raise InvalidSignature("Signing timestamp is in the future")
        if now_ms - payload.timestamp > max_age_ms:
            raise InvalidSignature("Signing payload has expired, request new signing data")

        if not signer.signing_public_key:
            raise InvalidSignature("No signing key registered for this signer")

        message = build_signing_payload(document.id, document.content_hash, signer.id, payload.timestamp)
        message_hash = hashlib.sha256(message.encode("utf-8")).hexdigest()
        if payload.signature_hash and payload.signature_hash != message_hash:
            raise InvalidSignature("Signature hash does not match signing payload")

        if not verify_ed25519(signer.signing_public_key, message, payload.signature):
            raise InvalidSignature("Invalid signature")
        return message

    # =====================================================
    # SIGN
    # =====================================================

    def sign(
        self,
        document_id: str,
        signer_id: int,
        payload: SignaturePayload,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> SigningResult:
        with document_locks.hold(document_id):
            try:
                document = self.documents._load_for_update(document_id)
                role = self._check_signable(document, signer_id)

                signer = self.db.query(User).filter(User.id == signer_id).first()
                if not signer:
                    raise Unauthorized("Unknown signer")
                message = self._verify(document, signer, payload)
                message_hash = hashlib.sha256(message.encode("utf-8")).hexdigest()

                # Blocks until the ledger acknowledges or the timeout fires
                receipt = self.ledger.record(
                    ENTITY_DOCUMENT_SIGNATURE,
                    f"{document.id}:{signer_id}",
                    {
                        "documentId": document.id,
                        "contentHash": document.content_hash,
                        "signerId": str(signer_id),
                        "signatureHash": message_hash,
                        "signature": payload.signature,
                    },
                    submitter=signer_id,
                )

                signature = Signature(
                    id=str(uuid.uuid4()),
                    document_id=document.id,
                    signer_id=signer_id,
                    sequence=len(document.signatures) + 1,
                    signature=payload.signature,
                    signature_hash=message_hash,
                    signed_payload=message,
                    ledger_receipt_id=receipt.receipt_id,
                    ledger_sequence=receipt.sequence,
                    ledger_content_hash=receipt.content_hash,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    signed_at=utcnow(),
                )
                document.signatures.append(signature)
                log_document_action(
                    self.db, "document_signature_added", document.id, signer_id,
                    details={"role": role.value, "receipt_id": receipt.receipt_id},
                    ip_address=ip_address
                )
                self.db.flush()

                self.documents._evaluate_completion(document)
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                logger.error(f"Duplicate signature rejected by database for {document_id}/{signer_id}: {e}")
                raise AlreadySigned("You have already signed this document") from e
            except Exception:
                self.db.rollback()
                raise

        logger.info(
            f"Document {document_id} signed by user {signer_id} ({role.value}); "
            f"status {document.status}, TX {receipt.receipt_id}"
        )
        return SigningResult(signature=signature, receipt=receipt, document_status=document.status)

    # =====================================================
    # QUERIES
    # =====================================================

    def list_signatures(self, document_id: str, actor_id: int) -> List[Signature]:
        document = self.documents.get_for_actor(document_id, actor_id)
        return list(document.signatures)

    def signature_history(self, signer_id: int, limit: int = 50, offset: int = 0) -> List[Signature]:
        return (
            self.db.query(Signature)
            .filter(Signature.signer_id == signer_id)
            .order_by(Signature.signed_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def verify_signature_record(self, document_id: str, signature_id: str, actor_id: int) -> Dict[str, Any]:
        """Re-check a recorded signature against its payload and the current document hash"""
        document = self.documents.get_for_actor(document_id, actor_id)
        signature = next((s for s in document.signatures if s.id == signature_id), None)
        if signature is None:
            raise DocumentNotFound(f"Signature {signature_id} not found on document {document_id}")

        payload = json.loads(signature.signed_payload)
        key = signature.signer.signing_public_key if signature.signer else None
        cryptographically_valid = bool(key) and verify_ed25519(key, signature.signed_payload, signature.signature)
        hash_matches = payload.get("contentHash") == document.content_hash

        return {
            "signature_id": signature.id,
            "signer_id": signature.signer_id,
            "valid": cryptographically_valid and hash_matches,
            "signature_valid": cryptographically_valid,
            "document_hash_matches": hash_matches,
            "ledger_receipt_id": signature.ledger_receipt_id,
            "ledger_sequence": signature.ledger_sequence,
            "signed_at": format_datetime_to_iso(signature.signed_at),
        }

    @staticmethod
    def serialize(signature: Signature) -> Dict[str, Any]:
        return {
            "id": signature.id,
            "document_id": signature.document_id,
            "signer_id": signature.signer_id,
            "sequence": signature.sequence,
            "signature_hash": signature.signature_hash,
            "ledger_receipt": {
                "receipt_id": signature.ledger_receipt_id,
                "sequence": signature.ledger_sequence,
                "content_hash": signature.ledger_content_hash,
            },
            "signed_at": format_datetime_to_iso(signature.signed_at),
        }
