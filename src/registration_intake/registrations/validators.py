"""Field rules for registration forms.

Each ``check_*`` returns the normalized value or raises ``ValueError`` with
the message shown to the applicant, so they plug straight into pydantic
validators.
"""

from __future__ import annotations

import datetime as dt
import re

from .models import age_on

NAME_RE = re.compile(r"^[a-zA-Z\s]+$")
PHONE_RE = re.compile(r"^[6789]\d{9}$")
PINCODE_RE = re.compile(r"^[1-9]\d{5}$")
IDENTITY_RE = re.compile(r"^[2-9]\d{11}$")
BANNED_IDENTITY_NUMBERS = frozenset({"123456789012", "987654321098"})

MIN_AGE = 18
MAX_AGE = 100

_SCRIPT_TAG_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_JS_PROTOCOL_RE = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER_RE = re.compile(r"on\w+\s*=", re.IGNORECASE)
_NON_DIGIT_SPACE_RE = re.compile(r"[^\d\s]")

TEXT_FIELDS = (
    "firstName", "lastName", "email", "address", "city", "state", "courseName", "notes", "reviewedBy",
)
NUMERIC_FIELDS = ("phone", "pincode", "identityNumber")


def digits_only(value: str) -> str:
    return re.sub(r"\D", "", value or "")


def sanitize_text(value: str) -> str:
    value = _SCRIPT_TAG_RE.sub("", value)
    value = _JS_PROTOCOL_RE.sub("", value)
    value = _EVENT_HANDLER_RE.sub("", value)
    return value.strip()


def sanitize_numeric(value: str) -> str:
    return _NON_DIGIT_SPACE_RE.sub("", value)


def sanitize_form(raw: dict[str, str]) -> dict[str, str]:
    """Strip markup from text fields and everything but digits and spaces from numeric ones."""
    clean = dict(raw)
    for name in TEXT_FIELDS:
        if isinstance(clean.get(name), str):
            clean[name] = sanitize_text(clean[name])
    for name in NUMERIC_FIELDS:
        if isinstance(clean.get(name), str):
            clean[name] = sanitize_numeric(clean[name])
    return clean


def is_valid_identity_number(value: str | None) -> bool:
    if not value:
        return False
    number = digits_only(value)
    if not IDENTITY_RE.match(number):
        return False
    if len(set(number)) == 1:
        return False
    return number not in BANNED_IDENTITY_NUMBERS


def check_identity_number(value: str) -> str:
    if not is_valid_identity_number(value):
        raise ValueError("Please enter a valid 12-digit identity number")
    return digits_only(value)


def check_phone(value: str) -> str:
    number = digits_only(value)
    if not PHONE_RE.match(number):
        raise ValueError("Phone number must be 10 digits starting with 6, 7, 8, or 9")
    return number


def check_pincode(value: str) -> str:
    number = digits_only(value)
    if not PINCODE_RE.match(number):
        raise ValueError("Pincode must be 6 digits and cannot start with 0")
    return number


def check_name(value: str, label: str, *, min_len: int = 2, max_len: int = 50) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError(f"{label} is required")
    if not min_len <= len(value) <= max_len:
        raise ValueError(f"{label} must be between {min_len} and {max_len} characters")
    if not NAME_RE.match(value):
        raise ValueError(f"{label} can only contain letters and spaces")
    return value


def check_length(value: str, label: str, *, min_len: int, max_len: int) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError(f"{label} is required")
    if not min_len <= len(value) <= max_len:
        raise ValueError(f"{label} must be between {min_len} and {max_len} characters")
    return value


def check_date_of_birth(born: dt.date, *, today: dt.date | None = None) -> dt.date:
    today = today or dt.date.today()
    if born > today or not MIN_AGE <= age_on(born, today) <= MAX_AGE:
        raise ValueError(
            f"Age must be between {MIN_AGE} and {MAX_AGE} years, and date cannot be in the future"
        )
    return born
