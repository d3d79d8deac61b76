"""
Tests for call-sheet row normalization and phone keys.
"""

from datetime import date

import pytest

from app.models.statuses import LoanCode, LoanType
from app.services.reconciliation.errors import ErrorKind, InvalidRowError
from app.services.reconciliation.phone_matcher import format_phone, mask_phone, normalize_phone
from app.services.reconciliation.row_normalizer import (
    header_key,
    is_uw_filled,
    normalize_row,
    parse_loan_type,
    parse_row_date,
)

from tests.factories import CallRowFactory, ReloanCallRowFactory


class TestNormalizePhone:
    """Tests for the 8-digit phone key."""

    @pytest.mark.parametrize(
        "value",
        ["+65 9123 4567", "6591234567", "9123-4567", "91234567", 91234567, 91234567.0, " (65) 9123 4567 "],
    )
    def test_formats_reduce_to_same_key(self, value):
        """Every common way of writing the number yields the same key."""
        assert normalize_phone(value) == "91234567"

    @pytest.mark.parametrize("value", [None, "", "12345", "+1 415 555 0100", "659123456", "abc"])
    def test_unusable_values(self, value):
        """Anything that is not an 8-digit local number has no key."""
        assert normalize_phone(value) is None

    @pytest.mark.parametrize("value", ["+6591234567", "91234567", "65 6123 4567"])
    def test_key_survives_storage_format(self, value):
        """Normalizing the stored form of a key gives the key back."""
        key = normalize_phone(value)
        assert normalize_phone(format_phone(key)) == key
        assert normalize_phone(key) == key

    def test_mask_keeps_last_four_digits(self):
        """Masked numbers never show more than the last four digits."""
        assert mask_phone("+65 9123 4567") == "****4567"
        assert mask_phone(None) == "****"


class TestFieldParsers:
    """Tests for single-column parsers."""

    def test_header_key_strips_connector_prefix(self):
        """Prefix, punctuation, case and whitespace are ignored."""
        assert header_key("col_New or Reloan? ") == "neworreloan"
        assert header_key("New or Reloan?") == "neworreloan"
        assert header_key("COL_RS -Detailed") == "rsdetailed"

    @pytest.mark.parametrize("value,expected", [("Yes", True), ("x", True), ("", False), ("  ", False), ("N/A", False), ("n/a", False)])
    def test_uw_filled(self, value, expected):
        """Any non-empty UW value other than n/a counts."""
        assert is_uw_filled(value) is expected

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("Re Loan - 再贷款", LoanType.reloan),
            ("reloan", LoanType.reloan),
            ("RE-LOAN", LoanType.reloan),
            ("New Loan - 新贷款", LoanType.new),
            ("", LoanType.new),
        ],
    )
    def test_loan_type(self, value, expected):
        """Reloan is recognized regardless of spacing and translation."""
        assert parse_loan_type(value) is expected

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("16/10/2026", date(2026, 10, 16)),
            ("16/10/26", date(2026, 10, 16)),
            ("16-10-2026 14:05", date(2026, 10, 16)),
            ("2026-10-16", date(2026, 10, 16)),
            ("", None),
        ],
    )
    def test_row_date(self, value, expected):
        """Day-first sheet dates, with or without a time part."""
        assert parse_row_date(value) == expected

    @pytest.mark.parametrize("value", ["yesterday", "16/10", "31/02/2026"])
    def test_row_date_rejects_garbage(self, value):
        """Unrecognized or impossible dates raise ValueError."""
        with pytest.raises(ValueError):
            parse_row_date(value)


class TestNormalizeRow:
    """Tests for whole-row normalization."""

    def test_connector_row(self):
        """A typical connector row maps onto every CallOutcome field."""
        row = ReloanCallRowFactory(
            phone="+65 6123 4567",
            name="Tan Mei Ling",
            code=" p ",
            uw="Approved",
            date="16/10/2026 10:15",
            rs_reason="",
        )

        outcome = normalize_row(row, row_number=7)

        assert outcome.row_number == 7
        assert outcome.phone == "61234567"
        assert outcome.name == "Tan Mei Ling"
        assert outcome.code is LoanCode.P
        assert outcome.uw_filled is True
        assert outcome.is_reloan is True
        assert outcome.row_date == date(2026, 10, 16)
        assert outcome.has_outcome is True

    def test_unknown_code_is_other(self):
        """Codes outside P/PRS/RS/R keep their raw text but carry no outcome."""
        outcome = normalize_row(CallRowFactory(code="Callback", uw="n/a"))

        assert outcome.code is LoanCode.other
        assert outcome.raw_code == "Callback"
        assert outcome.has_outcome is False

    def test_rs_reason_and_detail(self):
        """RS columns are read through their aliases."""
        outcome = normalize_row(CallRowFactory(code="RS", rs_reason="Low income", rs_detail="Below 1500"))

        assert outcome.code is LoanCode.RS
        assert outcome.rs_reason == "Low income"
        assert outcome.rs_detail == "Below 1500"

    def test_header_aliases(self):
        """Unprefixed headers and alternate names are accepted."""
        outcome = normalize_row({"H/P": 61234567.0, "Name": "Lim", "Loan Code": "R", "Timestamp": ""})

        assert outcome.phone == "61234567"
        assert outcome.name == "Lim"
        assert outcome.code is LoanCode.R
        assert outcome.row_date is None

    def test_first_non_empty_alias_wins(self):
        """An empty preferred column falls through to the next alias."""
        outcome = normalize_row({"col_Mobile Number": "", "col_Phone": "6123 4567"})
        assert outcome.phone == "61234567"

    def test_missing_phone_is_invalid(self):
        """Rows without a usable phone are rejected with the row number."""
        with pytest.raises(InvalidRowError) as exc_info:
            normalize_row(CallRowFactory(phone="12345"), row_number=3)

        assert exc_info.value.kind is ErrorKind.invalid_row
        assert "Row 3" in exc_info.value.message

    def test_bad_date_is_invalid(self):
        """An unparseable date rejects the row instead of guessing."""
        with pytest.raises(InvalidRowError):
            normalize_row(CallRowFactory(date="tomorrow"))
