"""Tests for status vocabulary and the canonical unpaid amount."""

from decimal import Decimal

import pytest

from loanbook_kernel.domain.loan_status import (
    LoanStatus,
    StatusBucket,
    classify_status,
    settles_balance,
    status_bucket,
    unpaid_amount,
)


class TestLoanStatusParse:

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Fully Paid", LoanStatus.FULLY_PAID),
            ("fully  paid", LoanStatus.FULLY_PAID),
            ("WRITE-OFF", LoanStatus.WRITE_OFF),
            ("write off", LoanStatus.WRITE_OFF),
            ("Missed Repayment", LoanStatus.MISSED_REPAYMENT),
        ],
    )
    def test_known_labels(self, raw, expected):
        assert LoanStatus.parse(raw) is expected

    def test_unknown_text_is_none(self):
        assert LoanStatus.parse("Frozen by court order") is None
        assert LoanStatus.parse("") is None


class TestClassifyStatus:

    @pytest.mark.parametrize(
        "raw", ["Fully Paid", "Closed", "settled", "Completed", "Cleared", "Write-Off"]
    )
    def test_cleared_vocabulary(self, raw):
        is_cleared, _ = classify_status(raw)
        assert is_cleared
        assert settles_balance(raw)

    @pytest.mark.parametrize("raw", ["Restructured", "Extended", "Rescheduled", "Rollover"])
    def test_extended_vocabulary(self, raw):
        _, is_extended = classify_status(raw)
        assert is_extended
        assert status_bucket(raw) is StatusBucket.EXTENDED

    def test_unpaid_is_not_paid(self):
        assert classify_status("Unpaid") == (False, False)

    def test_extended_wins_over_cleared(self):
        assert status_bucket("Restructured - Paid") is StatusBucket.EXTENDED

    def test_missing_status_is_balance(self):
        assert status_bucket(None) is StatusBucket.BALANCE
        assert status_bucket("Past Maturity") is StatusBucket.BALANCE


class TestUnpaidAmount:

    def test_sums_parts(self):
        total = unpaid_amount(Decimal("100"), Decimal("20.50"), Decimal("5"), "Current")
        assert total == Decimal("125.50")

    def test_missing_parts_count_as_zero(self):
        assert unpaid_amount(Decimal("100"), None, None, "Current") == Decimal("100")

    def test_negative_total_clamped(self):
        assert unpaid_amount(Decimal("-50"), Decimal("10"), None, "Current") == Decimal("0")

    @pytest.mark.parametrize("status", ["Fully Paid", "Write-Off"])
    def test_settled_status_owes_nothing(self, status):
        assert unpaid_amount(Decimal("100"), Decimal("20"), Decimal("5"), status) == Decimal("0")
