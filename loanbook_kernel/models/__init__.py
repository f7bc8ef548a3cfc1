"""ORM models for loanbook."""

from loanbook_kernel.models.client import (
    MERGED_FIELDS,
    STATUS_BUCKETS,
    ConsolidatedClient,
)
from loanbook_kernel.models.loan_record import RawLedgerRecord

__all__ = [
    "ConsolidatedClient",
    "RawLedgerRecord",
    "MERGED_FIELDS",
    "STATUS_BUCKETS",
]
