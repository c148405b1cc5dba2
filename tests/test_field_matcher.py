import pytest

from app.services.content_extractor import clean_extracted_text
from app.services.field_matcher import (
    extract_date_of_birth,
    extract_document_number,
    extract_full_name,
    match_fields,
    normalize_date,
)


@pytest.mark.parametrize("raw, expected", [
    ("15/05/1990", "1990-05-15"),
    ("15-05-90", "1990-05-15"),
    ("15/05/51", "1951-05-15"),
    ("01.02.49", "2049-02-01"),
    ("5/7/1985", "1985-07-05"),
    ("1990-05-15", "1990-05-15"),
])
def test_normalize_date(raw, expected):
    assert normalize_date(raw) == expected


def test_normalize_date_leaves_unparseable_input():
    assert normalize_date("yesterday") == "yesterday"


def test_passport_scan_fields():
    text = clean_extracted_text(
        "Passport Number: A12345678 ... Date of Birth: 15/05/1990 ... JOHN DOE"
    )
    fields = match_fields(text, "passport")

    assert fields.document_number == "A12345678"
    assert fields.date_of_birth == "1990-05-15"
    assert fields.full_name == "JOHN DOE"


def test_labeled_number_never_captures_the_label_word():
    assert extract_document_number("Passport No. ab123456 Nationality", "passport") == "AB123456"


def test_unlabeled_number_falls_back_to_longest_token_with_digit():
    text = "REPUBLIC OF UTOPIA NATIONALITY UTOPIAN card X1234567 ref 99"
    assert extract_document_number(text, "national_id") == "X1234567"


def test_no_document_number():
    assert extract_document_number("nothing useful here", "other") is None


def test_bare_date_when_no_label():
    assert extract_date_of_birth("DOB unknown issued 03.07.85 somewhere") == "1985-07-03"


def test_labeled_name_stops_at_next_caption():
    text = "Name John Michael Smith Nationality British"
    assert extract_full_name(text) == "John Michael Smith"


def test_name_run_skips_document_captions():
    text = "Passport Number A12345678 Jane Roe 12/01/1980"
    assert extract_full_name(text) == "Jane Roe"


def test_single_capitalized_word_is_not_a_name():
    assert extract_full_name("Passport issued in Doha") is None


@pytest.mark.parametrize("text, expected", [
    ("Name: JOHN A DOE Nationality British", "JOHN A DOE"),
    ("Passport A12345678 Mary J. Watson 01/02/1985", "Mary J. Watson"),
    ("Name JOHN A 12/01/1980", None),
])
def test_middle_initials_stay_in_the_name(text, expected):
    assert extract_full_name(text) == expected


def test_scan_with_middle_initial():
    text = clean_extracted_text("Passport Number: A12345678 Name: JOHN A DOE Date of Birth: 15/05/1990")

    assert match_fields(text, "passport").full_name == "JOHN A DOE"
