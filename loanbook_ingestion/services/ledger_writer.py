"""
Raw ledger writer.

Writes NormalizedRecords into ``loan_records`` as imported.  Rows that carry
a source_key ("<branch_id>:<loan id>") are upserted on it, so re-importing
the same extract replaces rows instead of duplicating them; rows without one
are appended.  Same SAVEPOINT-per-row failure isolation as the client merge.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence
from uuid import uuid4

from sqlalchemy import insert as core_insert
from sqlalchemy.orm import Session

from loanbook_ingestion.domain.types import BatchWriteOutcome, NormalizedRecord
from loanbook_ingestion.services.batch_writer import SavepointBatchWriter
from loanbook_ingestion.services.client_merge import dialect_insert
from loanbook_kernel.db.engine import dialect_name
from loanbook_kernel.domain.clock import Clock, SystemClock
from loanbook_kernel.logging_config import get_logger
from loanbook_kernel.models.loan_record import RawLedgerRecord

logger = get_logger("ingestion.ledger_writer")

_loan_records = RawLedgerRecord.__table__

# Columns replaced when a source_key row is re-imported
_REPLACED_COLUMNS = (
    "full_name",
    "borrower_mobile",
    "borrower_landline",
    "borrower_email",
    "borrower_address",
    "borrower_date_of_birth",
    "loan_status",
    "principal_amount",
    "total_interest_balance",
    "amortization_due",
    "penalty_amount",
    "next_installment_amount",
    "next_due_date",
    "branch_id",
    "imported_at",
    "import_run_id",
    "source_row",
    "updated_at",
)


def ledger_values(
    record: NormalizedRecord,
    now: datetime,
    import_run_id: str | None,
    default_branch_id: str,
) -> dict[str, Any]:
    return {
        "id": uuid4(),
        "full_name": record.full_name,
        "borrower_mobile": record.mobile,
        "borrower_landline": record.landline,
        "borrower_email": record.email,
        "borrower_address": record.address,
        "borrower_date_of_birth": record.date_of_birth,
        "loan_status": record.loan_status,
        "principal_amount": record.principal,
        "total_interest_balance": record.interest_balance,
        "amortization_due": record.amortization_due,
        "penalty_amount": record.penalty,
        "next_installment_amount": record.next_installment_amount,
        "next_due_date": record.next_due_date,
        "branch_id": record.branch_id or default_branch_id,
        "imported_at": now,
        "import_run_id": import_run_id,
        "source_row": record.source_row,
        "source_key": record.source_key,
        "created_at": now,
        "updated_at": now,
    }


class LedgerWriter(SavepointBatchWriter):
    """Ingestor sink for the raw ``loan_records`` table."""

    label = "ledger_row"

    def __init__(
        self,
        session: Session,
        default_branch_id: str,
        clock: Clock | None = None,
        import_run_id: str | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._default_branch_id = default_branch_id
        self._import_run_id = import_run_id
        self._dialect = dialect_name(session)
        dialect_insert(self._dialect)

    def _key_of(self, record: NormalizedRecord) -> str:
        return record.source_key or super()._key_of(record)

    def _execute(self, record: NormalizedRecord, now: datetime) -> None:
        values = ledger_values(record, now, self._import_run_id, self._default_branch_id)
        if record.source_key is None:
            self._session.execute(core_insert(_loan_records).values(**values))
            return
        insert = dialect_insert(self._dialect)
        stmt = insert(_loan_records).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[_loan_records.c.source_key],
            set_={name: stmt.excluded[name] for name in _REPLACED_COLUMNS},
        )
        self._session.execute(stmt)

    def write_batch(self, records: Sequence[NormalizedRecord]) -> BatchWriteOutcome:
        if not records:
            return BatchWriteOutcome(written=0, failed=0)
        now = self._clock.now()
        outcome = self._write_each(records, lambda r: self._execute(r, now))
        logger.info(
            "ledger_rows_written",
            extra={"written": outcome.written, "failed": outcome.failed},
        )
        return outcome
