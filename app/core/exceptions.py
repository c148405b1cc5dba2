# =====================================================
# FILE: app/core/exceptions.py
# Workflow / Validation Error Taxonomy
# =====================================================

from typing import Any, Dict, Optional


class SignLedgerError(Exception):
    """
    Base error for the signing workflow and identity validation.
    `code` is the stable reason code returned to API callers.
    """

    code = "error"
    http_status = 500
    retryable = False

    def __init__(self, message: Optional[str] = None, details: Optional[Any] = None):
        self.message = message or self.__class__.__name__
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.code, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        if self.retryable:
            body["retryable"] = True
        return body


class ValidationFailed(SignLedgerError):
    code = "validation_failed"
    http_status = 400


class IdentityDocumentRejected(ValidationFailed):
    """Identity document content did not match the declared fields."""

    code = "identity_document_rejected"
    http_status = 422

    def __init__(self, report: Dict[str, Any], message: Optional[str] = None):
        self.report = report
        super().__init__(message or "Document validation failed", details=report)


class InvalidState(SignLedgerError):
    code = "invalid_state"
    http_status = 409


class Unauthorized(SignLedgerError):
    code = "unauthorized"
    http_status = 403


class NotOwner(Unauthorized):
    code = "not_owner"


class DocumentNotFound(SignLedgerError):
    code = "document_not_found"
    http_status = 404


class AlreadySigned(SignLedgerError):
    code = "already_signed"
    http_status = 409


class IdentityAlreadyVerified(SignLedgerError):
    code = "identity_already_verified"
    http_status = 409


class InvalidSignature(SignLedgerError):
    code = "invalid_signature"
    http_status = 400


class ExtractionError(SignLedgerError):
    code = "extraction_error"
    http_status = 503


class ExtractionUnavailable(ExtractionError):
    code = "extraction_unavailable"


class ExtractionFailed(ExtractionError):
    code = "extraction_failed"


class LedgerUnavailable(SignLedgerError):
    code = "ledger_unavailable"
    http_status = 503
    retryable = True
