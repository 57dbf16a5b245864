"""Tests for submission input validation and sanitization."""

import pytest

from lazyuncle import clock
from lazyuncle.services import input_validator as iv

VALID_TOKEN = "abcDEF123_-xyz"


def _submission(**overrides):
    data = {"token": VALID_TOKEN, "name": "Avery", "date": "2015-03-02"}
    data.update(overrides)
    return data


# ── Sanitization ─────────────────────────────────────────────────────────────


class TestSanitize:
    def test_strips_angle_brackets_and_whitespace(self):
        assert iv.sanitize_string("  <b>Bob</b>  ") == "bBob/b"

    def test_removes_javascript_protocol_case_insensitive(self):
        assert iv.sanitize_string("JavaScript:alert(1)") == "alert(1)"

    def test_removes_event_handlers(self):
        assert iv.sanitize_string("img onerror=x") == "img x"
        assert iv.sanitize_string("ONLOAD=go") == "go"

    def test_truncates_to_1000(self):
        assert len(iv.sanitize_string("a" * 1500)) == 1000

    def test_none_and_empty(self):
        assert iv.sanitize_string(None) == ""
        assert iv.sanitize_string("") == ""


# ── Field validators ─────────────────────────────────────────────────────────


class TestFields:
    def test_name_requires_a_letter(self):
        assert iv.validate_name("12345") == (False, "12345")
        assert iv.validate_name("R2D2") == (True, "R2D2")

    def test_name_length_limits(self):
        assert iv.validate_name("a" * 100)[0]
        assert not iv.validate_name("a" * 101)[0]
        assert not iv.validate_name("   ")[0]

    def test_name_checked_after_sanitizing(self):
        ok, sanitized = iv.validate_name("<>")
        assert not ok
        assert sanitized == ""

    @pytest.mark.parametrize("value", ["2015-03-02", "1900-01-01", " 2000-02-29 "])
    def test_valid_dates(self, value):
        assert iv.validate_date(value)[0]

    @pytest.mark.parametrize(
        "value",
        ["1899-12-31", "2015-3-2", "03/02/2015", "2015-02-30", "2023-02-29", "", None, "abcd-ef-gh"],
    )
    def test_invalid_dates(self, value):
        assert not iv.validate_date(value)[0]

    def test_date_year_upper_bound_is_next_year(self):
        next_year = clock.utcnow().year + 1
        assert iv.validate_date(f"{next_year}-01-01")[0]
        assert not iv.validate_date(f"{next_year + 1}-01-01")[0]

    def test_email_optional_and_normalized(self):
        assert iv.validate_email(None) == (True, "")
        assert iv.validate_email("  Jane@Example.COM ") == (True, "jane@example.com")
        assert not iv.validate_email("not-an-email")[0]
        assert not iv.validate_email("a b@example.com")[0]

    def test_optional_text_limits(self):
        assert iv.validate_category("c" * 50)[0]
        assert not iv.validate_category("c" * 51)[0]
        assert iv.validate_notes("n" * 500)[0]
        assert not iv.validate_notes("n" * 501)[0]
        assert not iv.validate_relationship("r" * 51)[0]
        assert iv.validate_relationship(None) == (True, "")

    @pytest.mark.parametrize(
        "token,ok",
        [
            (VALID_TOKEN, True),
            ("short", False),
            ("a" * 100, True),
            ("a" * 101, False),
            ("has space in it", False),
            ("bad!chars#here", False),
            (None, False),
        ],
    )
    def test_token(self, token, ok):
        assert iv.validate_token(token) is ok

    def test_date_components_without_year_allow_feb_29(self):
        assert iv.validate_date_components(None, 2, 29) == []
        assert iv.validate_date_components(2023, 2, 29) == ["Invalid day for the given month"]

    def test_date_components_bad_month_and_year(self):
        assert iv.validate_date_components(None, 13, 1) == [
            "Invalid month: must be between 1 and 12"
        ]
        assert iv.validate_date_components(1850, 1, 1) == [
            "Invalid year: must be between 1900 and next year"
        ]


# ── Aggregate validation ─────────────────────────────────────────────────────


class TestValidateSubmission:
    def test_valid_submission_returns_sanitized_data(self):
        result = iv.validate_birthday_submission(
            _submission(
                name="  Avery  ",
                category="Family",
                submitter_email="Uncle@Example.com",
                relationship="niece",
            )
        )
        assert result.is_valid
        assert result.errors == []
        data = result.sanitized_data
        assert data.name == "Avery"
        assert data.date == "2015-03-02"
        assert (data.year, data.month, data.day) == (2015, 3, 2)
        assert data.category == "Family"
        assert data.submitter_email == "uncle@example.com"
        assert data.notes is None

    def test_errors_accumulate(self):
        result = iv.validate_birthday_submission(
            {
                "token": "bad",
                "name": "",
                "date": "yesterday",
                "notes": "x" * 600,
                "submitter_email": "nope",
            }
        )
        assert not result.is_valid
        assert result.sanitized_data is None
        assert result.errors == [
            iv.ERR_TOKEN,
            iv.ERR_NAME,
            iv.ERR_DATE,
            iv.ERR_NOTES,
            iv.ERR_EMAIL,
        ]

    def test_submitter_name_checked_only_when_given(self):
        assert iv.validate_birthday_submission(_submission(submitter_name="")).is_valid
        result = iv.validate_birthday_submission(_submission(submitter_name="1234"))
        assert result.errors == [iv.ERR_SUBMITTER_NAME]

    def test_single_error_still_withholds_data(self):
        result = iv.validate_birthday_submission(_submission(relationship="r" * 80))
        assert not result.is_valid
        assert result.errors == [iv.ERR_RELATIONSHIP]
        assert result.sanitized_data is None
