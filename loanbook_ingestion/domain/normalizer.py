"""
Record Normalizer -- raw extract row to canonical NormalizedRecord.

Responsibility:
    Cleans one raw row (trim, header aliasing, Decimal amounts, dates),
    derives the borrower identity key, the status bucket, the balance and
    the effective date.  Pure apart from the injected Clock.

Architecture position:
    Ingestion > Domain.  Imports kernel domain rules only; no DB access.

Invariants enforced:
    - Money is Decimal; unparseable or non-finite amounts become 0.
    - A settled status (cleared vocabulary or write-off) forces balance 0.
    - effective_date is always a timezone-aware UTC datetime.
    - The branch id comes from the row or the configured default, never a
      hardcoded constant.

Failure modes:
    - RowNormalizationError when the row has no phone, email or name.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Any, Mapping

from loanbook_ingestion.domain.types import NormalizedRecord
from loanbook_kernel.db.types import ZERO
from loanbook_kernel.domain.clock import Clock, SystemClock
from loanbook_kernel.domain.identity import (
    DEFAULT_COUNTRY_CODE,
    clean_display_name,
    make_identity_key,
    normalize_email,
    normalize_phone,
)
from loanbook_kernel.domain.loan_status import (
    LoanStatus,
    StatusBucket,
    settles_balance,
    status_bucket,
    unpaid_amount,
)
from loanbook_kernel.exceptions import RowNormalizationError

# Canonical field -> header spellings seen in branch extracts.  Matching is on
# the squashed form (lowercase letters and digits only).
HEADER_ALIASES: dict[str, tuple[str, ...]] = {
    "full_name": ("Full Name", "Borrower Name", "Client Name", "Name"),
    "mobile": ("Borrower Mobile", "Mobile", "Mobile Number", "Phone", "Phone Number"),
    "landline": ("Borrower Landline", "Landline"),
    "email": ("Borrower Email", "Email", "Email Address"),
    "address": ("Borrower Address", "Address"),
    "date_of_birth": (
        "Borrower Date Of Birth",
        "Borrower Date 0f Birth",
        "Borrower DOB",
        "Date Of Birth",
        "DOB",
    ),
    "loan_status": ("Loan Status Name", "Loan Status", "Status"),
    "principal": ("Principal Amount", "Principal"),
    "interest_balance": ("Total Interest Balance", "Interest Balance"),
    "amortization_due": ("Amortization Due", "Amortisation Due"),
    "penalty": ("Penalty Amount", "Penalty"),
    "next_installment_amount": ("Next Installment Amount", "Next Instalment Amount"),
    "next_due_date": ("Next Due Date",),
    "client_balance": ("Client Balance",),
    "outstanding_balance": ("Outstanding Balance",),
    "balance": ("Balance",),
    "statement_date": ("Statement Date",),
    "report_date": ("Report Date",),
    "as_at": ("As At", "As At Date", "As Of"),
    "branch_id": ("Branch", "Branch Id", "Branch Code"),
    "loan_id": ("Loan Id", "Loan Number", "Loan No", "Loan Ref"),
}

EXPLICIT_BALANCE_FIELDS = ("client_balance", "outstanding_balance", "balance")
EFFECTIVE_DATE_FIELDS = ("statement_date", "report_date", "as_at", "next_due_date")


@lru_cache(maxsize=1024)
def squash_header(header: str) -> str:
    return re.sub(r"[^a-z0-9]", "", str(header).lower())


_ALIAS_INDEX: dict[str, str] = {
    squash_header(alias): canonical
    for canonical, aliases in HEADER_ALIASES.items()
    for alias in aliases
}

_MONTHS = {
    m: i
    for i, m in enumerate(
        ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"),
        start=1,
    )
}

_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})")
_SLASH_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4}|\d{2})$")
_DASH_DATE = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
_NAMED_MONTH_DATE = re.compile(r"^(\d{1,2})[\s\-]+([A-Za-z]{3,9})[\s\-,]+(\d{4}|\d{2})$")


def clean_value(value: Any) -> Any:
    """Trim strings; empty strings become None."""
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def canonicalize_row(raw: Mapping[str, Any]) -> dict[str, Any]:
    """
    Map raw headers onto canonical field names.

    The first non-empty value wins when two headers alias the same field.
    Unknown columns are dropped.
    """
    out: dict[str, Any] = {}
    for header, value in raw.items():
        if header is None:
            continue
        canonical = _ALIAS_INDEX.get(squash_header(header))
        if canonical is None:
            continue
        cleaned = clean_value(value)
        if cleaned is not None and out.get(canonical) is None:
            out[canonical] = cleaned
    return out


def parse_amount(value: Any) -> Decimal:
    """Parse an amount; thousands separators allowed, anything bad becomes 0."""
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    else:
        text = str(value).replace(",", "").replace(" ", "").strip()
        if not text:
            return ZERO
        try:
            result = Decimal(text)
        except InvalidOperation:
            return ZERO
    if not result.is_finite():
        return ZERO
    return result


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date(value: Any) -> date | None:
    """
    Parse the date spellings found in branch extracts.

    Accepted: ``2024-01-31`` (time suffix ignored), ``31/1/2024``,
    ``31/01/24`` (20xx), ``31-01-2024``, ``31 Jan 2024``, ``31-Jan-2024``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None

    m = _ISO_DATE.match(text)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = _SLASH_DATE.match(text) or _DASH_DATE.match(text)
    if m:
        year = m.group(3)
        if len(year) == 2:
            year = "20" + year
        return _safe_date(int(year), int(m.group(2)), int(m.group(1)))

    m = _NAMED_MONTH_DATE.match(text)
    if m:
        month = _MONTHS.get(m.group(2)[:3].lower())
        if month is None:
            return None
        year = m.group(3)
        if len(year) == 2:
            year = "20" + year
        return _safe_date(int(year), month, int(m.group(1)))

    return None


def _text(value: Any) -> str | None:
    return None if value is None else str(value)


def to_utc_datetime(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


class RecordNormalizer:
    """
    Turns raw extract rows into NormalizedRecords.

    Contract:
        ``normalize(raw, row_number)`` either returns a record with a
        non-None identity key or raises RowNormalizationError.
    """

    def __init__(
        self,
        default_branch_id: str,
        country_code: str = DEFAULT_COUNTRY_CODE,
        clock: Clock | None = None,
    ):
        if not default_branch_id:
            raise ValueError("default_branch_id is required")
        self.default_branch_id = str(default_branch_id)
        self.country_code = country_code
        self._clock = clock or SystemClock()

    def _effective_date(self, row: dict[str, Any]) -> datetime:
        for name in EFFECTIVE_DATE_FIELDS:
            parsed = parse_date(row.get(name))
            if parsed is not None:
                return to_utc_datetime(parsed)
        return self._clock.now().astimezone(timezone.utc)

    def _balance(self, row: dict[str, Any], status: str, amort: Decimal,
                 interest: Decimal, penalty: Decimal) -> Decimal:
        if settles_balance(status):
            return ZERO
        for name in EXPLICIT_BALANCE_FIELDS:
            if row.get(name) is not None:
                return parse_amount(row[name])
        return unpaid_amount(amort, interest, penalty, status)

    def normalize(self, raw: Mapping[str, Any], row_number: int) -> NormalizedRecord:
        row = canonicalize_row(raw)

        mobile = _text(row.get("mobile"))
        landline = _text(row.get("landline"))
        display_name = clean_display_name(row.get("full_name"))
        email = row.get("email")
        dob = parse_date(row.get("date_of_birth"))

        phone = normalize_phone(mobile, self.country_code) or normalize_phone(
            landline, self.country_code
        )
        identity_key = make_identity_key(
            phone=phone,
            email=email,
            name=display_name,
            dob=dob,
            country_code=self.country_code,
        )
        if identity_key is None:
            raise RowNormalizationError(row_number, "no phone, email or name")

        raw_status = row.get("loan_status") or LoanStatus.UNKNOWN.value
        parsed_status = LoanStatus.parse(raw_status)
        loan_status = parsed_status.value if parsed_status else str(raw_status)
        bucket = status_bucket(loan_status)

        amort = parse_amount(row.get("amortization_due"))
        interest = parse_amount(row.get("interest_balance"))
        penalty = parse_amount(row.get("penalty"))

        branch_id = str(row.get("branch_id") or self.default_branch_id)
        loan_id = row.get("loan_id")
        source_key = f"{branch_id}:{loan_id}" if loan_id is not None else None

        return NormalizedRecord(
            identity_key=identity_key,
            full_name=display_name,
            phone=phone,
            email=normalize_email(email),
            address=_text(row.get("address")),
            date_of_birth=dob,
            loan_status=loan_status,
            is_extended=bucket is StatusBucket.EXTENDED,
            status_bucket=bucket.value,
            balance=self._balance(row, loan_status, amort, interest, penalty),
            effective_date=self._effective_date(row),
            mobile=mobile,
            landline=landline,
            principal=parse_amount(row.get("principal")),
            interest_balance=interest,
            amortization_due=amort,
            penalty=penalty,
            next_installment_amount=parse_amount(row.get("next_installment_amount")),
            next_due_date=parse_date(row.get("next_due_date")),
            branch_id=branch_id,
            source_key=source_key,
            source_row=row_number,
        )
