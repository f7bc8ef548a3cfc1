"""
Loan status vocabulary, status buckets and the canonical unpaid amount.

Responsibility:
    Classifies the free-text status found on branch extracts and computes
    the single "what the borrower still owes" figure used by both the
    Record Normalizer (fallback when no explicit balance column exists) and
    the Reconciliation Rebuilder (summed per borrower).

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Invariants enforced:
    - A settled status (cleared vocabulary or write-off) owes nothing.
    - The unpaid amount is never negative.
    - Restructure vocabulary wins over cleared vocabulary when bucketing.
"""

import re
from decimal import Decimal
from enum import Enum

from loanbook_kernel.db.types import ZERO


class LoanStatus(str, Enum):
    """Status labels used by the branch ledger extracts."""

    CURRENT = "Current"
    FULLY_PAID = "Fully Paid"
    RESTRUCTURED = "Restructured"
    DEFAULTED = "Defaulted"
    PAST_MATURITY = "Past Maturity"
    MISSED_REPAYMENT = "Missed Repayment"
    WRITE_OFF = "Write-Off"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, raw: str | None) -> "LoanStatus | None":
        """
        Match raw status text to a label, ignoring case, spacing and dashes.

        Returns None for text outside the vocabulary; callers keep the raw
        text in that case.
        """
        if raw is None:
            return None
        squashed = _squash(raw)
        if not squashed:
            return None
        return _BY_SQUASHED.get(squashed)


class StatusBucket(str, Enum):
    BALANCE = "balance"
    CLEARED = "cleared"
    EXTENDED = "extended"


def _squash(text: str) -> str:
    return re.sub(r"[^a-z]", "", str(text).lower())


_BY_SQUASHED = {_squash(s.value): s for s in LoanStatus}

_CLEARED_WORDS = re.compile(r"\b(cleared|closed|paid|settled|completed)\b")
_EXTENDED_WORDS = re.compile(r"\b(extended|rescheduled|restructured|rollover)\b")
_WRITE_OFF = re.compile(r"\bwrite[\s\-_]*off\b|\bwritten[\s\-_]*off\b")


def classify_status(raw: str | None) -> tuple[bool, bool]:
    """
    Return (is_cleared, is_extended) for a raw status string.

    Matching is on whole words, so "Fully Paid" is cleared and "Unpaid"
    is not.  Write-off counts as cleared: nothing more will be collected.
    """
    text = str(raw or "Unknown").lower()
    is_cleared = bool(_CLEARED_WORDS.search(text) or _WRITE_OFF.search(text))
    is_extended = bool(_EXTENDED_WORDS.search(text))
    return is_cleared, is_extended


def status_bucket(raw: str | None) -> StatusBucket:
    is_cleared, is_extended = classify_status(raw)
    if is_extended:
        return StatusBucket.EXTENDED
    if is_cleared:
        return StatusBucket.CLEARED
    return StatusBucket.BALANCE


def settles_balance(raw: str | None) -> bool:
    """True when the status means the balance is zero."""
    is_cleared, _ = classify_status(raw)
    return is_cleared


def unpaid_amount(
    amortization_due: Decimal | None,
    interest_balance: Decimal | None,
    penalty: Decimal | None,
    status: str | None,
) -> Decimal:
    """
    Canonical unpaid amount of one loan row.

    amortization due + interest balance + penalty, clamped at zero, and
    zero when the status settles the loan.
    """
    if settles_balance(status):
        return ZERO
    total = (amortization_due or ZERO) + (interest_balance or ZERO) + (penalty or ZERO)
    return total if total > ZERO else ZERO
