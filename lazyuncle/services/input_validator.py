"""Input validation and sanitization for public birthday submissions.

Every function here is pure. Field validators return a
``(is_valid, sanitized)`` tuple; ``validate_birthday_submission`` runs them
all, collects every error and only hands back sanitized data when the whole
submission passes.
"""

import calendar
import re
from dataclasses import dataclass, field
from datetime import date

from lazyuncle import clock

MAX_SANITIZED_LENGTH = 1000
NAME_MAX_LENGTH = 100
CATEGORY_MAX_LENGTH = 50
NOTES_MAX_LENGTH = 500
RELATIONSHIP_MAX_LENGTH = 50
EMAIL_MAX_LENGTH = 254
TOKEN_MIN_LENGTH = 10
TOKEN_MAX_LENGTH = 100
MIN_YEAR = 1900

ERR_TOKEN = "Invalid sharing link token"
ERR_NAME = "Name is required and must be between 1-100 characters with at least one letter"
ERR_DATE = "Date must be in YYYY-MM-DD format and be a valid date between 1900 and next year"
ERR_CATEGORY = "Category must be 50 characters or less"
ERR_NOTES = "Notes must be 500 characters or less"
ERR_SUBMITTER_NAME = "Submitter name must be between 1-100 characters with at least one letter"
ERR_EMAIL = "Invalid email address format"
ERR_RELATIONSHIP = "Relationship must be 50 characters or less"

_ANGLE_BRACKETS = re.compile(r"[<>]")
_JS_PROTOCOL = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+=", re.IGNORECASE)
_HAS_LETTER = re.compile(r"[a-zA-Z]")
_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TOKEN = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass
class SanitizedSubmission:
    token: str
    name: str
    date: str
    year: int
    month: int
    day: int
    category: str | None = None
    notes: str | None = None
    submitter_name: str | None = None
    submitter_email: str | None = None
    relationship: str | None = None


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    sanitized_data: SanitizedSubmission | None = None


def sanitize_string(value: str | None) -> str:
    """Strip markup and script markers from free text."""
    if not value or not isinstance(value, str):
        return ""
    value = value.strip()
    value = _ANGLE_BRACKETS.sub("", value)
    value = _JS_PROTOCOL.sub("", value)
    value = _EVENT_HANDLER.sub("", value)
    return value[:MAX_SANITIZED_LENGTH]


def max_year() -> int:
    return clock.utcnow().year + 1


def validate_email(email: str | None) -> tuple[bool, str]:
    """Email is optional: a missing value is valid and sanitizes to ``""``."""
    if not email or not isinstance(email, str):
        return True, ""
    sanitized = email.strip().lower()[:EMAIL_MAX_LENGTH]
    return bool(_EMAIL.match(sanitized)), sanitized


def validate_date(value: str | None) -> tuple[bool, str]:
    if not value or not isinstance(value, str):
        return False, ""
    sanitized = value.strip()
    if not _DATE.match(sanitized):
        return False, sanitized
    try:
        parsed = date.fromisoformat(sanitized)
    except ValueError:
        return False, sanitized
    if parsed.year < MIN_YEAR or parsed.year > max_year():
        return False, sanitized
    return True, sanitized


def validate_month(month: int) -> bool:
    return isinstance(month, int) and 1 <= month <= 12


def validate_year(year: int) -> bool:
    return isinstance(year, int) and MIN_YEAR <= year <= max_year()


def validate_day(day: int, month: int, year: int | None = None) -> bool:
    """Check ``day`` against the month length.

    Without a year February allows the 29th, since the birthday may fall in
    a leap year.
    """
    if not isinstance(day, int) or not validate_month(month):
        return False
    if year is None:
        days_in_month = 29 if month == 2 else calendar.monthrange(2001, month)[1]
    else:
        days_in_month = calendar.monthrange(year, month)[1]
    return 1 <= day <= days_in_month


def validate_date_components(year: int | None, month: int, day: int) -> list[str]:
    """Validate a year-optional birthday date, returning error messages."""
    if not validate_month(month):
        return ["Invalid month: must be between 1 and 12"]
    errors = []
    if not validate_day(day, month, year):
        errors.append("Invalid day for the given month")
    if year is not None and not validate_year(year):
        errors.append("Invalid year: must be between 1900 and next year")
    return errors


def validate_name(name: str | None) -> tuple[bool, str]:
    if not name or not isinstance(name, str):
        return False, ""
    sanitized = sanitize_string(name)
    if not 1 <= len(sanitized) <= NAME_MAX_LENGTH:
        return False, sanitized
    if not _HAS_LETTER.search(sanitized):
        return False, sanitized
    return True, sanitized


def _validate_optional_text(value: str | None, max_length: int) -> tuple[bool, str]:
    if not value or not isinstance(value, str):
        return True, ""
    sanitized = sanitize_string(value)
    return len(sanitized) <= max_length, sanitized


def validate_category(category: str | None) -> tuple[bool, str]:
    return _validate_optional_text(category, CATEGORY_MAX_LENGTH)


def validate_notes(notes: str | None) -> tuple[bool, str]:
    return _validate_optional_text(notes, NOTES_MAX_LENGTH)


def validate_relationship(relationship: str | None) -> tuple[bool, str]:
    return _validate_optional_text(relationship, RELATIONSHIP_MAX_LENGTH)


def validate_token(token: str | None) -> bool:
    if not token or not isinstance(token, str):
        return False
    if not TOKEN_MIN_LENGTH <= len(token) <= TOKEN_MAX_LENGTH:
        return False
    return bool(_TOKEN.match(token))


def validate_birthday_submission(data: dict) -> ValidationResult:
    """Validate a complete public submission.

    ``data`` holds ``token``, ``name`` and ``date`` plus the optional
    ``category``, ``notes``, ``submitter_name``, ``submitter_email`` and
    ``relationship`` keys.
    """
    errors: list[str] = []

    token = data.get("token")
    if not validate_token(token):
        errors.append(ERR_TOKEN)

    name_ok, name = validate_name(data.get("name"))
    if not name_ok:
        errors.append(ERR_NAME)

    date_ok, date_str = validate_date(data.get("date"))
    if not date_ok:
        errors.append(ERR_DATE)

    category_ok, category = validate_category(data.get("category"))
    if not category_ok:
        errors.append(ERR_CATEGORY)

    notes_ok, notes = validate_notes(data.get("notes"))
    if not notes_ok:
        errors.append(ERR_NOTES)

    submitter_name = ""
    if data.get("submitter_name"):
        submitter_ok, submitter_name = validate_name(data["submitter_name"])
        if not submitter_ok:
            errors.append(ERR_SUBMITTER_NAME)

    email_ok, email = validate_email(data.get("submitter_email"))
    if not email_ok:
        errors.append(ERR_EMAIL)

    relationship_ok, relationship = validate_relationship(data.get("relationship"))
    if not relationship_ok:
        errors.append(ERR_RELATIONSHIP)

    if errors:
        return ValidationResult(is_valid=False, errors=errors)

    year, month, day = (int(part) for part in date_str.split("-"))
    return ValidationResult(
        is_valid=True,
        sanitized_data=SanitizedSubmission(
            token=token,
            name=name,
            date=date_str,
            year=year,
            month=month,
            day=day,
            category=category or None,
            notes=notes or None,
            submitter_name=submitter_name or None,
            submitter_email=email or None,
            relationship=relationship or None,
        ),
    )
