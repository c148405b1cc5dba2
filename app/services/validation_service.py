# =====================================================
# FILE: app/services/validation_service.py
# Identity document validation: confidence scoring and decision
# =====================================================

import logging
import re
from dataclasses import dataclass, field, asdict
from datetime import date
from typing import Any, Dict, List, Optional

from app.core.config import settings
from app.core.exceptions import ExtractionError, ValidationFailed
from app.services.content_extractor import ContentExtractor
from app.services.field_matcher import DOCUMENT_TYPES, match_fields

logger = logging.getLogger(__name__)

FIELD_WEIGHTS = {
    "document_number": 0.5,
    "date_of_birth": 0.3,
    "full_name": 0.2,
}

METHOD_OCR = "ocr"
METHOD_FALLBACK = "fallback"

FALLBACK_MIN_SCORE = 0.6
FALLBACK_MAX_SCORE = 0.9
FALLBACK_PASS_THRESHOLD = 0.7

FALLBACK_MIN_LENGTHS = {
    "document_number": 6,
    "full_name": 3,
    "nationality": 2,
}


@dataclass
class DeclaredIdentity:
    document_type: str
    document_number: str
    date_of_birth: str
    nationality: str
    full_name: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def validate_declared_fields(declared: DeclaredIdentity) -> DeclaredIdentity:
    """Reject malformed declarations before any document processing"""
    errors = []
    if declared.document_type not in DOCUMENT_TYPES:
        errors.append("Valid document type is required")
    for name in ("document_number", "nationality", "full_name"):
        if not (getattr(declared, name) or "").strip():
            errors.append(f"{name} is required")
    try:
        date.fromisoformat((declared.date_of_birth or "").strip())
    except ValueError:
        errors.append("Valid date of birth (YYYY-MM-DD) is required")

    if errors:
        raise ValidationFailed("Validation failed", details=errors)

    return DeclaredIdentity(
        document_type=declared.document_type,
        document_number=declared.document_number.strip(),
        date_of_birth=declared.date_of_birth.strip(),
        nationality=declared.nationality.strip(),
        full_name=declared.full_name.strip(),
    )


def levenshtein_distance(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def _comparable(value: str) -> str:
    return re.sub(r"\s", "", value).lower()


def calculate_confidence(extracted: Optional[str], declared: Optional[str]) -> float:
    """
    1.0 for a case/space-insensitive match, otherwise
    1 - normalized Levenshtein distance (never below 0).
    """
    if not extracted or not declared:
        return 0.0

    a, b = _comparable(extracted), _comparable(declared)
    if a == b:
        return 1.0

    longest = max(len(a), len(b))
    if longest == 0:
        return 0.0
    return max(0.0, 1.0 - levenshtein_distance(a, b) / longest)


@dataclass
class FieldResult:
    extracted_value: Optional[str]
    declared_value: Optional[str]
    matches: bool
    confidence: float


@dataclass
class ValidationReport:
    per_field: Dict[str, FieldResult]
    overall_score: float
    passed: bool
    validation_method: str
    threshold: float
    extracted_text: str = ""
    errors: List[str] = field(default_factory=list)
    completeness: Dict[str, bool] = field(default_factory=dict)
    fallback_reason: Optional[str] = None

    @property
    def valid_by_fallback(self) -> bool:
        return self.validation_method == METHOD_FALLBACK and self.passed

    @property
    def content_verified(self) -> bool:
        return self.validation_method == METHOD_OCR and self.passed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "per_field": {name: asdict(result) for name, result in self.per_field.items()},
            "overall_score": self.overall_score,
            "passed": self.passed,
            "validation_method": self.validation_method,
            "valid_by_fallback": self.valid_by_fallback,
            "content_verified": self.content_verified,
            "threshold": self.threshold,
            "errors": list(self.errors),
            "completeness": dict(self.completeness),
            "fallback_reason": self.fallback_reason,
        }


def calculate_overall_score(per_field: Dict[str, FieldResult]) -> float:
    """Weighted average over the scored fields that are present"""
    total_score = 0.0
    total_weight = 0.0
    for name, weight in FIELD_WEIGHTS.items():
        result = per_field.get(name)
        if result is None:
            continue
        total_score += result.confidence * weight
        total_weight += weight
    return total_score / total_weight if total_weight > 0 else 0.0


def validation_errors(per_field: Dict[str, FieldResult]) -> List[str]:
    errors = []
    for name, result in per_field.items():
        if not result.extracted_value:
            errors.append(f"Could not extract {name} from document")
        elif not result.matches:
            errors.append(
                f'{name} mismatch: extracted "{result.extracted_value}" '
                f'but input was "{result.declared_value}"'
            )
    return errors


class OCRValidator:
    """Content-verified path: compares OCR output to the declaration."""

    def __init__(self, extractor: ContentExtractor, threshold: float = 0.70):
        self.extractor = extractor
        self.threshold = threshold

    def validate(self, file_path: str, declared: DeclaredIdentity) -> ValidationReport:
        text = self.extractor.extract(file_path)
        return self.score_text(text, declared)

    def score_text(self, text: str, declared: DeclaredIdentity) -> ValidationReport:
        extracted = match_fields(text, declared.document_type)

        per_field = {}
        for name in FIELD_WEIGHTS:
            extracted_value = getattr(extracted, name)
            declared_value = getattr(declared, name)
            confidence = calculate_confidence(extracted_value, declared_value)
            per_field[name] = FieldResult(
                extracted_value=extracted_value,
                declared_value=declared_value,
                matches=confidence == 1.0,
                confidence=confidence,
            )

        overall = calculate_overall_score(per_field)
        report = ValidationReport(
            per_field=per_field,
            overall_score=overall,
            passed=overall >= self.threshold,
            validation_method=METHOD_OCR,
            threshold=self.threshold,
            extracted_text=text,
            errors=validation_errors(per_field),
        )
        logger.info(
            f"OCR validation score {overall:.2f} "
            f"({'pass' if report.passed else 'fail'}, threshold {self.threshold})"
        )
        return report


class FallbackValidator:
    """
    Degraded path used when OCR cannot run. Scores only the completeness
    of the declaration, never the document content.
    """

    threshold = FALLBACK_PASS_THRESHOLD

    def completeness(self, declared: DeclaredIdentity) -> Dict[str, bool]:
        checks = {"document_type": declared.document_type in DOCUMENT_TYPES}
        for name, min_length in FALLBACK_MIN_LENGTHS.items():
            value = re.sub(r"\s+", " ", getattr(declared, name) or "").strip()
            checks[name] = len(value) >= min_length
        try:
            date.fromisoformat(declared.date_of_birth or "")
            checks["date_of_birth"] = True
        except ValueError:
            checks["date_of_birth"] = False
        return checks

    def validate(self, declared: DeclaredIdentity, reason: Optional[str] = None) -> ValidationReport:
        checks = self.completeness(declared)
        score = FALLBACK_MIN_SCORE + (FALLBACK_MAX_SCORE - FALLBACK_MIN_SCORE) * (
            sum(checks.values()) / len(checks)
        )

        per_field = {
            name: FieldResult(
                extracted_value=None,
                declared_value=getattr(declared, name),
                matches=False,
                confidence=0.0,
            )
            for name in FIELD_WEIGHTS
        }

        report = ValidationReport(
            per_field=per_field,
            overall_score=score,
            passed=score >= self.threshold,
            validation_method=METHOD_FALLBACK,
            threshold=self.threshold,
            errors=[f"{name} incomplete" for name, ok in checks.items() if not ok],
            completeness=checks,
            fallback_reason=reason,
        )
        logger.warning(
            f"Fallback validation used ({reason or 'OCR unavailable'}): "
            f"completeness score {score:.2f}, document content NOT verified"
        )
        return report


class IdentityDocumentValidator:
    """
    Picks the OCR path when extraction works and degrades to the
    completeness check when it does not. OCR unavailability never
    blocks an identity submission.
    """

    def __init__(self, extractor: ContentExtractor, threshold: Optional[float] = None,
                 fallback: Optional[FallbackValidator] = None):
        self.primary = OCRValidator(
            extractor,
            settings.VALIDATION_THRESHOLD if threshold is None else threshold,
        )
        self.fallback = fallback or FallbackValidator()

    def validate(self, file_path: str, declared: DeclaredIdentity) -> ValidationReport:
        try:
            return self.primary.validate(file_path, declared)
        except ExtractionError as e:
            logger.warning(f"OCR extraction unusable ({e.code}): {e.message}")
            return self.fallback.validate(declared, reason=e.code)
