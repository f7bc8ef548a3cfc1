"""Pure domain rules: clock, identity keys, status vocabulary."""

from loanbook_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from loanbook_kernel.domain.identity import (
    make_identity_key,
    normalize_phone,
    phone_key_variants,
)
from loanbook_kernel.domain.loan_status import (
    LoanStatus,
    StatusBucket,
    classify_status,
    unpaid_amount,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "make_identity_key",
    "normalize_phone",
    "phone_key_variants",
    "LoanStatus",
    "StatusBucket",
    "classify_status",
    "unpaid_amount",
]
