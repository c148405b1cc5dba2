# =====================================================
# FILE: app/services/field_matcher.py
# Candidate field extraction from normalized OCR text
# =====================================================

import re
from dataclasses import dataclass
from typing import List, Optional

DOCUMENT_TYPES = ("passport", "national_id", "drivers_license", "other")

# A document number token must contain at least one digit
_NUMBER_TOKEN = r"((?=[A-Z0-9]*\d)[A-Z0-9]{%d,%d})\b"

DOCUMENT_NUMBER_PATTERNS = {
    "passport": re.compile(
        r"\bpassport\b\s*(?:(?:number|no)\b\.?)?[\s:]*" + _NUMBER_TOKEN % (6, 12),
        re.IGNORECASE,
    ),
    "national_id": re.compile(
        r"\b(?:national\s*id(?:entity)?(?:\s*(?:card|number|no))?|id\s*(?:number|no)|identity\s*(?:number|no))\b\.?[\s:]*"
        + _NUMBER_TOKEN % (6, 15),
        re.IGNORECASE,
    ),
    "drivers_license": re.compile(
        r"\b(?:drivers?\s*licen[cs]e|driving\s*licen[cs]e|licen[cs]e)\b\s*(?:(?:number|no)\b\.?)?[\s:]*"
        + _NUMBER_TOKEN % (6, 15),
        re.IGNORECASE,
    ),
    "other": re.compile(
        r"\b(?:document\s*(?:number|no)|number|no|id)\b\.?[\s:]*" + _NUMBER_TOKEN % (6, 15),
        re.IGNORECASE,
    ),
}

BARE_NUMBER_PATTERN = re.compile(r"\b(?=[A-Z0-9]*\d)[A-Z0-9]{6,15}\b", re.IGNORECASE)

_DATE_TOKEN = r"(\d{1,2}[/\-.]\d{1,2}[/\-.](?:\d{4}|\d{2}))(?!\d)"

LABELED_DATE_PATTERN = re.compile(
    r"\b(?:date\s*of\s*birth|birth\s*date|dob|born)\b[\s:]*" + _DATE_TOKEN,
    re.IGNORECASE,
)
BARE_DATE_PATTERN = re.compile(r"(?<!\d)" + _DATE_TOKEN)

LABELED_NAME_PATTERN = re.compile(
    r"\b(?:full\s*name|given\s*names?|surname|name)\b[\s:]*",
    re.IGNORECASE,
)
_CAPITALIZED_WORD = re.compile(r"[A-Z][A-Za-z'\-]+")
# Middle initial; only valid after the first word of a name
_NAME_INITIAL = re.compile(r"[A-Z]\.?")

# Field captions printed on identity documents; never part of a name
LABEL_WORDS = {
    "passport", "number", "no", "date", "of", "birth", "dob", "born", "name", "names",
    "full", "given", "surname", "nationality", "sex", "gender", "place", "issue",
    "issued", "issuing", "expiry", "expiration", "expires", "authority", "type", "code",
    "country", "document", "id", "identity", "national", "card", "license", "licence",
    "driver", "drivers", "driving", "republic", "kingdom", "united", "states",
    "signature", "holder", "address", "height", "class", "valid", "until", "personal",
    "ministry", "government",
}

MAX_NAME_WORDS = 4


@dataclass
class ExtractedFields:
    document_number: Optional[str] = None
    date_of_birth: Optional[str] = None
    full_name: Optional[str] = None


def normalize_date(date_string: str) -> str:
    """
    Convert D[D]/M[M]/YY[YY] (any of / - . as separator) to YYYY-MM-DD.
    Two-digit years below 50 are 20YY, otherwise 19YY.
    Inputs already in Y-M-D order keep their order; anything that is not
    three parts is returned unchanged.
    """
    parts = re.split(r"[/\-.]", date_string.strip())
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        return date_string

    if len(parts[0]) == 4:
        year, month, day = parts
    else:
        day, month, year = parts
        if len(year) == 2:
            year = f"20{year}" if int(year) < 50 else f"19{year}"

    return f"{year}-{month.zfill(2)}-{day.zfill(2)}"


def extract_document_number(text: str, document_type: str) -> Optional[str]:
    pattern = DOCUMENT_NUMBER_PATTERNS.get(document_type, DOCUMENT_NUMBER_PATTERNS["other"])
    match = pattern.search(text)
    if match:
        return re.sub(r"\s", "", match.group(1)).upper()

    # No label: identity documents nearly always print some long ID-like token
    candidates = BARE_NUMBER_PATTERN.findall(text)
    if candidates:
        return max(candidates, key=len).upper()

    return None


def extract_date_of_birth(text: str) -> Optional[str]:
    for pattern in (LABELED_DATE_PATTERN, BARE_DATE_PATTERN):
        match = pattern.search(text)
        if match:
            return normalize_date(match.group(1))
    return None


def _is_name_word(token: str) -> bool:
    return bool(_CAPITALIZED_WORD.fullmatch(token)) and token.lower() not in LABEL_WORDS


def _extends_name(token: str, words: List[str]) -> bool:
    return _is_name_word(token) or (bool(words) and bool(_NAME_INITIAL.fullmatch(token)))


def _trim_initials(words: List[str]) -> List[str]:
    while words and _NAME_INITIAL.fullmatch(words[-1]):
        words = words[:-1]
    return words


def _leading_name(tokens: List[str]) -> Optional[str]:
    words = []
    for token in tokens:
        if not _extends_name(token, words) or len(words) == MAX_NAME_WORDS:
            break
        words.append(token)
    words = _trim_initials(words)
    return " ".join(words) if len(words) >= 2 else None


def extract_full_name(text: str) -> Optional[str]:
    for match in LABELED_NAME_PATTERN.finditer(text):
        name = _leading_name(text[match.end():].split())
        if name:
            return name

    # First run of two or more capitalized, non-caption words
    run: List[str] = []
    for token in text.split():
        if _extends_name(token, run):
            run.append(token)
            continue
        run = _trim_initials(run)
        if len(run) >= 2:
            break
        run = []

    run = _trim_initials(run[:MAX_NAME_WORDS])
    if len(run) >= 2:
        return " ".join(run)
    return None


def match_fields(normalized_text: str, document_type: str) -> ExtractedFields:
    """Pull document number, date of birth and full name out of OCR text"""
    return ExtractedFields(
        document_number=extract_document_number(normalized_text, document_type),
        date_of_birth=extract_date_of_birth(normalized_text),
        full_name=extract_full_name(normalized_text),
    )
