import pytest

from app.core.exceptions import ValidationFailed
from app.services.content_extractor import ContentExtractor, OCRBackend
from app.services.validation_service import (
    METHOD_FALLBACK,
    METHOD_OCR,
    DeclaredIdentity,
    FallbackValidator,
    FieldResult,
    IdentityDocumentValidator,
    calculate_confidence,
    calculate_overall_score,
    levenshtein_distance,
    validate_declared_fields,
)

PASSPORT_TEXT = "Passport Number: A12345678 ... Date of Birth: 15/05/1990 ... JOHN DOE"


class StaticBackend(OCRBackend):
    name = "static"

    def __init__(self, text):
        self.text = text

    def is_available(self):
        return True

    def recognize(self, image_path):
        return self.text


class BrokenBackend(StaticBackend):
    def recognize(self, image_path):
        raise RuntimeError("engine crashed")


def declared(**overrides):
    values = dict(
        document_type="passport",
        document_number="A12345678",
        date_of_birth="1990-05-15",
        nationality="British",
        full_name="John Doe",
    )
    values.update(overrides)
    return DeclaredIdentity(**values)


@pytest.fixture
def scan(tmp_path):
    path = tmp_path / "passport.png"
    path.write_bytes(b"not really an image")
    return str(path)


def test_confidence_exact_match():
    assert calculate_confidence("A12345678", "A12345678") == 1.0


def test_confidence_ignores_case_and_spaces():
    assert calculate_confidence("JOHN DOE", "John Doe") == 1.0


def test_confidence_unrelated_numbers_is_low():
    assert calculate_confidence("A12345678", "B98765432") < 0.3


def test_confidence_missing_value_is_zero():
    assert calculate_confidence(None, "anything") == 0
    assert calculate_confidence("anything", "") == 0


def test_confidence_single_typo():
    assert calculate_confidence("A12345679", "A12345678") == pytest.approx(1 - 1 / 9)


def test_levenshtein_distance():
    assert levenshtein_distance("kitten", "sitting") == 3
    assert levenshtein_distance("", "abc") == 3


def test_overall_score_renormalizes_over_present_fields():
    per_field = {"document_number": FieldResult("A1", "A1", True, 1.0)}
    assert calculate_overall_score(per_field) == 1.0

    per_field["date_of_birth"] = FieldResult(None, "1990-05-15", False, 0.0)
    assert calculate_overall_score(per_field) == pytest.approx(0.5 / 0.8)


def test_overall_score_with_no_fields():
    assert calculate_overall_score({}) == 0.0


def test_happy_path_passes(scan):
    validator = IdentityDocumentValidator(ContentExtractor(StaticBackend(PASSPORT_TEXT)), threshold=0.7)
    report = validator.validate(scan, declared())

    assert report.validation_method == METHOD_OCR
    assert report.overall_score >= 0.7
    assert report.passed
    assert report.content_verified
    assert not report.valid_by_fallback
    assert report.per_field["document_number"].extracted_value == "A12345678"


def test_document_number_mismatch_fails(scan):
    validator = IdentityDocumentValidator(ContentExtractor(StaticBackend(PASSPORT_TEXT)), threshold=0.7)
    report = validator.validate(scan, declared(document_number="B98765432"))

    number = report.per_field["document_number"]
    assert number.confidence < 0.3
    assert not number.matches
    assert report.overall_score < 0.7
    assert not report.passed
    assert any("A12345678" in e and "B98765432" in e for e in report.errors)


def test_ocr_unavailable_uses_fallback(scan):
    validator = IdentityDocumentValidator(ContentExtractor(None))
    report = validator.validate(scan, declared())

    assert report.validation_method == METHOD_FALLBACK
    assert 0.6 <= report.overall_score <= 0.9
    assert report.passed
    assert report.valid_by_fallback
    assert not report.content_verified
    assert report.fallback_reason == "extraction_unavailable"
    assert report.to_dict()["valid_by_fallback"] is True


def test_ocr_engine_error_uses_fallback(scan):
    validator = IdentityDocumentValidator(ContentExtractor(BrokenBackend("")))
    report = validator.validate(scan, declared())

    assert report.validation_method == METHOD_FALLBACK
    assert report.fallback_reason == "extraction_failed"


def test_fallback_score_tracks_completeness():
    fallback = FallbackValidator()

    complete = fallback.validate(declared())
    assert complete.overall_score == pytest.approx(0.9)

    partial = fallback.validate(declared(nationality="X", document_number="123"))
    assert partial.overall_score == pytest.approx(0.6 + 0.3 * 3 / 5)
    assert partial.passed
    assert partial.completeness["nationality"] is False

    sparse = fallback.validate(declared(
        nationality="X", document_number="123", full_name="Jo", date_of_birth="15/05/1990"
    ))
    assert sparse.overall_score == pytest.approx(0.6 + 0.3 / 5)
    assert not sparse.passed


def test_declared_fields_are_checked():
    with pytest.raises(ValidationFailed) as exc:
        validate_declared_fields(declared(document_type="library_card", date_of_birth="15/05/1990"))
    assert len(exc.value.details) == 2


def test_declared_fields_are_trimmed():
    cleaned = validate_declared_fields(declared(full_name="  John Doe "))
    assert cleaned.full_name == "John Doe"
