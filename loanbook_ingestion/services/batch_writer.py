"""
SAVEPOINT-per-key batch writing.

Shared by the client upsert engine and the raw ledger writer.  Each record
is written inside its own SAVEPOINT so a rejected record rolls back alone;
the batch is committed once at the end.

Failure classification:
    IntegrityError / DataError  -> that record failed, batch continues.
    any other SQLAlchemyError   -> the store call failed as a whole;
                                   the batch is rolled back and
                                   BulkCallError is raised.
"""

from __future__ import annotations

from typing import Callable, Sequence

from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from loanbook_ingestion.domain.types import BatchWriteOutcome, NormalizedRecord, RowFailure
from loanbook_kernel.exceptions import BulkCallError, WriteError
from loanbook_kernel.logging_config import get_logger

logger = get_logger("ingestion.batch_writer")

RECORD_ERRORS = (IntegrityError, DataError)


def error_reason(exc: Exception) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig if orig is not None else exc)


class SavepointBatchWriter:
    """Base for sinks that write one statement per record."""

    label = "record"

    def __init__(self, session: Session):
        self._session = session

    def _key_of(self, record: NormalizedRecord) -> str:
        return record.identity_key or f"row:{record.source_row}"

    def _write_each(
        self,
        records: Sequence[NormalizedRecord],
        write_one: Callable[[NormalizedRecord], None],
    ) -> BatchWriteOutcome:
        written = 0
        failures: list[RowFailure] = []

        try:
            for record in records:
                savepoint = self._session.begin_nested()
                try:
                    write_one(record)
                    savepoint.commit()
                    written += 1
                except RECORD_ERRORS as exc:
                    savepoint.rollback()
                    error = WriteError(self._key_of(record), error_reason(exc))
                    failures.append(
                        RowFailure(
                            stage="write",
                            reason=error.reason,
                            row_number=record.source_row,
                            identity_key=error.identity_key,
                            code=error.code,
                        )
                    )
                    logger.warning(
                        f"{self.label}_write_failed",
                        extra={
                            "identity_key": error.identity_key,
                            "source_row": record.source_row,
                            "error_code": error.code,
                            "error_msg": error.reason,
                        },
                    )
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error(
                "bulk_call_failed",
                extra={"key_count": len(records), "error_msg": error_reason(exc)},
            )
            raise BulkCallError(len(records), error_reason(exc)) from exc

        return BatchWriteOutcome(
            written=written,
            failed=len(failures),
            failures=tuple(failures),
        )
