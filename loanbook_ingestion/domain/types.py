"""
loanbook_ingestion.domain.types -- Pure frozen dataclasses for the import system.

ZERO I/O.  Shared by the normalizer, the deduplicator, the ingestor and the
write sinks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol, Sequence

# =============================================================================
# Canonical record
# =============================================================================


@dataclass(frozen=True)
class NormalizedRecord:
    """
    One extract row in canonical form.

    The client fields feed the consolidated client merge; the ledger fields
    are kept so the same record can be written to ``loan_records``.
    """

    identity_key: str | None
    full_name: str | None
    phone: str | None
    email: str | None
    address: str | None
    date_of_birth: date | None
    loan_status: str
    is_extended: bool
    status_bucket: str
    balance: Decimal
    effective_date: datetime

    # Raw ledger fields
    mobile: str | None = None
    landline: str | None = None
    principal: Decimal = Decimal("0")
    interest_balance: Decimal = Decimal("0")
    amortization_due: Decimal = Decimal("0")
    penalty: Decimal = Decimal("0")
    next_installment_amount: Decimal = Decimal("0")
    next_due_date: date | None = None
    branch_id: str | None = None
    source_key: str | None = None
    source_row: int | None = None


# =============================================================================
# Progress and results
# =============================================================================


@dataclass(frozen=True)
class ImportProgress:
    """Cumulative counters passed to the progress callback after each flush."""

    processed: int
    errors: int


@dataclass(frozen=True)
class RowFailure:
    """A row or key that did not make it into the store."""

    stage: str  # "normalize" | "write" | "bulk"
    reason: str
    row_number: int | None = None
    identity_key: str | None = None
    code: str | None = None


@dataclass(frozen=True)
class BatchWriteOutcome:
    """What one sink call committed."""

    written: int
    failed: int
    superseded: int = 0
    failures: tuple[RowFailure, ...] = ()


@dataclass(frozen=True)
class DedupResult:
    """Output of intra-batch deduplication."""

    records: tuple[NormalizedRecord, ...]
    superseded: int


@dataclass(frozen=True)
class ImportRunResult:
    """Terminal summary of one import run."""

    total_merged: int
    total_errors: int
    total_rows: int = 0
    total_superseded: int = 0
    failures: tuple[RowFailure, ...] = field(default=())
    import_run_id: str | None = None
    source: str | None = None

    @property
    def success(self) -> bool:
        return self.total_errors == 0

    def summary(self) -> dict[str, Any]:
        return {
            "total_merged": self.total_merged,
            "total_errors": self.total_errors,
            "success": self.success,
        }


# =============================================================================
# Sink protocol
# =============================================================================


class BatchSink(Protocol):
    """Anything the ingestor can flush a batch of records into."""

    def write_batch(self, records: Sequence[NormalizedRecord]) -> BatchWriteOutcome:
        ...
