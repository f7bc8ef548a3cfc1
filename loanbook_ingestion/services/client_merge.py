"""
Conflict-resolving upsert of consolidated clients.

Responsibility:
    Writes NormalizedRecords into ``clients`` with a single
    ``INSERT ... ON CONFLICT (identity_key) DO UPDATE`` per key.  The
    conflict branch decides in SQL, atomically, whether the incoming values
    are newer than the stored ones:

        prev         = COALESCE(stored.effective_date, EPOCH)
        needs_update = incoming.effective_date > prev
                       OR (incoming.effective_date = prev
                           AND incoming.balance > COALESCE(stored.balance, 0))
        field        = incoming  if needs_update else COALESCE(stored, incoming)
        effective    = incoming  if needs_update else prev
        last_imported_at, updated_at = processing time, always

    Nothing is read into Python and written back, so concurrent runs over
    the same keys converge to the same row regardless of interleaving.

Architecture position:
    Ingestion > Services.  Imports kernel models and the dialect insert
    constructs.  Only postgresql and sqlite are supported.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Sequence
from uuid import uuid4

from sqlalchemy import DateTime, and_, case, func, literal, or_
from sqlalchemy.orm import Session

from loanbook_ingestion.domain.dedup import deduplicate_batch
from loanbook_ingestion.domain.types import BatchWriteOutcome, NormalizedRecord
from loanbook_ingestion.services.batch_writer import (
    RECORD_ERRORS,
    SavepointBatchWriter,
    error_reason,
)
from loanbook_kernel.db.engine import dialect_name
from loanbook_kernel.domain.clock import Clock, SystemClock
from loanbook_kernel.exceptions import UnsupportedStoreError, WriteError
from loanbook_kernel.logging_config import get_logger
from loanbook_kernel.models.client import MERGED_FIELDS, ConsolidatedClient

logger = get_logger("ingestion.client_merge")

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_clients = ConsolidatedClient.__table__


def dialect_insert(dialect: str):
    """The ``insert`` construct that offers ``on_conflict_do_update``."""
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise UnsupportedStoreError(dialect)
    return insert


def client_values(record: NormalizedRecord, now: datetime) -> dict[str, Any]:
    """Full insert row for a record; the conflict branch picks from it."""
    return {
        "id": uuid4(),
        "identity_key": record.identity_key,
        "full_name": record.full_name,
        "phone": record.phone,
        "email": record.email,
        "address": record.address,
        "date_of_birth": record.date_of_birth,
        "loan_status": record.loan_status,
        "is_extended": record.is_extended,
        "status_bucket": record.status_bucket,
        "balance": record.balance,
        "effective_date": record.effective_date,
        "last_imported_at": now,
        "created_at": now,
        "updated_at": now,
    }


def build_conditional_upsert(dialect: str, values: dict[str, Any]):
    """INSERT ... ON CONFLICT DO UPDATE guarded by effective date and balance."""
    insert = dialect_insert(dialect)
    stmt = insert(_clients).values(**values)
    incoming = stmt.excluded
    stored = _clients.c

    prev = func.coalesce(stored.effective_date, literal(EPOCH, DateTime(timezone=True)))
    needs_update = or_(
        incoming.effective_date > prev,
        and_(
            incoming.effective_date == prev,
            incoming.balance > func.coalesce(stored.balance, 0),
        ),
    )

    set_: dict[str, Any] = {
        name: case(
            (needs_update, incoming[name]),
            else_=func.coalesce(stored[name], incoming[name]),
        )
        for name in MERGED_FIELDS
    }
    set_["effective_date"] = case((needs_update, incoming.effective_date), else_=prev)
    set_["last_imported_at"] = incoming.last_imported_at
    set_["updated_at"] = incoming.updated_at

    return stmt.on_conflict_do_update(index_elements=[stored.identity_key], set_=set_)


def build_replace_upsert(dialect: str, values: dict[str, Any]):
    """INSERT ... ON CONFLICT DO UPDATE that overwrites every field."""
    insert = dialect_insert(dialect)
    stmt = insert(_clients).values(**values)
    incoming = stmt.excluded
    set_ = {name: incoming[name] for name in MERGED_FIELDS}
    set_["effective_date"] = incoming.effective_date
    set_["last_imported_at"] = incoming.last_imported_at
    set_["updated_at"] = incoming.updated_at
    return stmt.on_conflict_do_update(index_elements=[_clients.c.identity_key], set_=set_)


class ClientUpsertEngine(SavepointBatchWriter):
    """
    Applies the effective-date merge to ``clients``.

    Guarantees:
        - One atomic statement per key; no read-modify-write.
        - Re-applying the same record changes only last_imported_at and
          updated_at.
        - merge_many() commits once per call; a rejected key rolls back
          alone and is reported in the outcome.
    """

    label = "client"

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._dialect = dialect_name(session)
        # Fail before the first write, not on it
        dialect_insert(self._dialect)

    def _execute(self, record: NormalizedRecord, now: datetime) -> None:
        values = client_values(record, now)
        self._session.execute(build_conditional_upsert(self._dialect, values))

    def merge(self, record: NormalizedRecord) -> None:
        """
        Upsert a single record and commit.

        Raises:
            WriteError: the store rejected the record.
        """
        if not record.identity_key:
            raise WriteError(f"row:{record.source_row}", "record has no identity key")
        now = self._clock.now()
        savepoint = self._session.begin_nested()
        try:
            self._execute(record, now)
            savepoint.commit()
        except RECORD_ERRORS as exc:
            savepoint.rollback()
            raise WriteError(record.identity_key, error_reason(exc)) from exc
        self._session.commit()

    def merge_many(self, records: Sequence[NormalizedRecord]) -> BatchWriteOutcome:
        """Unordered bulk merge with per-key failure isolation."""
        if not records:
            return BatchWriteOutcome(written=0, failed=0)
        now = self._clock.now()
        # Key order keeps concurrent batches from locking rows in opposite orders
        keyed = sorted((r for r in records if r.identity_key), key=lambda r: r.identity_key)
        outcome = self._write_each(keyed, lambda r: self._execute(r, now))
        logger.info(
            "clients_merged",
            extra={"written": outcome.written, "failed": outcome.failed},
        )
        return outcome


class ClientMergeSink:
    """Ingestor sink: intra-batch dedup, then the conditional bulk merge."""

    def __init__(self, engine: ClientUpsertEngine):
        self._engine = engine

    def write_batch(self, records: Sequence[NormalizedRecord]) -> BatchWriteOutcome:
        deduped = deduplicate_batch(records)
        outcome = self._engine.merge_many(deduped.records)
        return BatchWriteOutcome(
            written=outcome.written,
            failed=outcome.failed,
            superseded=deduped.superseded,
            failures=outcome.failures,
        )
