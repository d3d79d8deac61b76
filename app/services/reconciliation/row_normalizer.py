"""
Spreadsheet row -> CallOutcome.

The sheet connector delivers free-form column headers (often with a
"col_" prefix and trailing spaces, e.g. "col_New or Reloan? "). Each
CallOutcome field is read from the first non-empty column among an
explicit list of accepted header aliases.
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Mapping, Optional

from app.models.statuses import LoanCode, LoanType
from app.services.reconciliation.errors import InvalidRowError
from app.services.reconciliation.phone_matcher import normalize_phone

HEADER_ALIASES: dict[str, tuple[str, ...]] = {
    "phone": ("Mobile Number", "Phone Number", "Phone", "Mobile", "Contact Number", "H/P"),
    "name": ("Full Name", "Name", "Customer Name"),
    "code": ("Code", "Loan Code"),
    "uw": ("UW", "Underwriter"),
    "loan_type": ("New or Reloan?", "Loan Type", "New or Reloan"),
    "date": ("Date", "Appointment Date", "Timestamp"),
    "rs_reason": ("RS", "RS Reason"),
    "rs_detail": ("RS -Detailed", "RS Detailed", "RS Details"),
    "source": ("Source", "Lead Source"),
    "email": ("Email Address", "Email"),
    "amount": ("Loan Amount Applying?", "Loan Amount", "Amount"),
    "employment_type": ("Employment Type", "Employment Status"),
    "loan_purpose": ("What is the purpose of the Loan?", "Loan Purpose"),
}

CONNECTOR_PREFIX = "col_"
KNOWN_CODES = {code.value for code in LoanCode if code is not LoanCode.other}


@dataclass(frozen=True)
class CallOutcome:
    """One normalized call-sheet row."""

    row_number: int
    phone: str
    name: str = ""
    code: LoanCode = LoanCode.other
    raw_code: str = ""
    uw_filled: bool = False
    loan_type: LoanType = LoanType.new
    raw_date: str = ""
    row_date: Optional[date] = None
    rs_reason: str = ""
    rs_detail: str = ""
    source: str = ""
    email: str = ""
    amount: str = ""
    employment_type: str = ""
    loan_purpose: str = ""

    @property
    def has_outcome(self) -> bool:
        return self.uw_filled or self.code is not LoanCode.other

    @property
    def is_reloan(self) -> bool:
        return self.loan_type is LoanType.reloan


def header_key(header: str) -> str:
    """Canonical form of a header: prefix dropped, letters and digits only, lower case."""
    text = str(header).strip()
    if text.lower().startswith(CONNECTOR_PREFIX):
        text = text[len(CONNECTOR_PREFIX):]
    return re.sub(r"[^a-z0-9]", "", text.lower())


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _lookup(index: Mapping[str, Any], field: str) -> Any:
    for alias in HEADER_ALIASES[field]:
        value = index.get(header_key(alias))
        if _text(value):
            return value
    return None


def parse_code(value: str) -> LoanCode:
    code = value.strip().upper()
    return LoanCode(code) if code in KNOWN_CODES else LoanCode.other


def is_uw_filled(value: str) -> bool:
    text = value.strip()
    return bool(text) and text.lower() != "n/a"


def parse_loan_type(value: str) -> LoanType:
    # "Re Loan - 再贷款" -> "reloan"
    letters = re.sub(r"[^a-z]", "", value.lower())
    return LoanType.reloan if "reloan" in letters else LoanType.new


def parse_row_date(value: str) -> Optional[date]:
    """DD/MM/YY or DD/MM/YYYY (also with "-"), optionally followed by a time."""
    text = value.strip()
    if not text:
        return None
    parts = re.split(r"[/-]", text.split()[0])
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        raise ValueError(f"Unrecognized date {value!r}")
    if len(parts[0]) == 4:
        year, month, day = (int(p) for p in parts)
    else:
        day, month, year = (int(p) for p in parts)
        if year < 100:
            year += 2000
    return date(year, month, day)


def normalize_row(row: Mapping[str, Any], row_number: int = 0) -> CallOutcome:
    """Build a CallOutcome, raising InvalidRowError when the row is unusable."""
    index = {header_key(k): v for k, v in row.items()}

    raw_phone = _lookup(index, "phone")
    phone = normalize_phone(raw_phone)
    if phone is None:
        raise InvalidRowError(f"Row {row_number}: missing or invalid phone number")

    raw_date = _text(_lookup(index, "date"))
    try:
        row_date = parse_row_date(raw_date)
    except ValueError:
        raise InvalidRowError(f"Row {row_number}: unparseable date {raw_date!r}")

    raw_code = _text(_lookup(index, "code"))

    return CallOutcome(
        row_number=row_number,
        phone=phone,
        name=_text(_lookup(index, "name")),
        code=parse_code(raw_code),
        raw_code=raw_code,
        uw_filled=is_uw_filled(_text(_lookup(index, "uw"))),
        loan_type=parse_loan_type(_text(_lookup(index, "loan_type"))),
        raw_date=raw_date,
        row_date=row_date,
        rs_reason=_text(_lookup(index, "rs_reason")),
        rs_detail=_text(_lookup(index, "rs_detail")),
        source=_text(_lookup(index, "source")),
        email=_text(_lookup(index, "email")),
        amount=_text(_lookup(index, "amount")),
        employment_type=_text(_lookup(index, "employment_type")),
        loan_purpose=_text(_lookup(index, "loan_purpose")),
    )
