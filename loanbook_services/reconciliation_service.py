"""
Module: loanbook_services.reconciliation_service
Responsibility: Full recompute of the consolidated client view from the raw
    ``loan_records`` table, bypassing the incremental effective-date merge.
    Used to repair drift and after changes to the identity rules.
Architecture position: Services.  Reads kernel models, reuses the identity
    and unpaid-amount rules of the kernel domain and the upsert statement
    builder of loanbook_ingestion.

Invariants enforced:
    - Rows are grouped by the same identity derivation as import-time
      normalization, so a rebuild and an import agree on who is who.
    - Each borrower's balance is the sum of the canonical unpaid amount of
      their loan rows.
    - The raw table is scanned with a server-side cursor in fixed-size
      chunks; writes start only after the cursor is exhausted.
    - Writes are unconditional upserts committed every ``flush_size`` keys.

Failure modes:
    - BulkCallError when a chunk write fails; chunks already committed stay.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from loanbook_config.schema import ImportSettings
from loanbook_ingestion.domain.normalizer import parse_date
from loanbook_ingestion.services.client_merge import build_replace_upsert, dialect_insert
from loanbook_kernel.db.engine import dialect_name
from loanbook_kernel.db.types import ZERO
from loanbook_kernel.domain.clock import Clock, SystemClock
from loanbook_kernel.domain.identity import (
    DEFAULT_COUNTRY_CODE,
    clean_display_name,
    is_malformed_key,
    make_identity_key,
    normalize_email,
    normalize_phone,
)
from loanbook_kernel.domain.loan_status import LoanStatus, StatusBucket, unpaid_amount
from loanbook_kernel.exceptions import BulkCallError
from loanbook_kernel.logging_config import get_logger
from loanbook_kernel.models.client import ConsolidatedClient
from loanbook_kernel.models.loan_record import RawLedgerRecord

logger = get_logger("services.reconciliation")


@dataclass(frozen=True)
class RebuildResult:
    rows_scanned: int
    rows_skipped: int
    clients_written: int
    clients_purged: int = 0


@dataclass
class _ClientAccumulator:
    """Per-key state gathered while scanning the raw ledger."""

    full_name: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    date_of_birth: Any = None
    balance: Decimal = field(default_factory=lambda: ZERO)
    last_imported_at: datetime | None = None

    def add(self, *, full_name, phone, email, address, date_of_birth, unpaid, imported_at) -> None:
        # First non-empty value wins for profile fields
        self.full_name = self.full_name or full_name
        self.phone = self.phone or phone
        self.email = self.email or email
        self.address = self.address or address
        self.date_of_birth = self.date_of_birth or date_of_birth
        self.balance += unpaid
        if imported_at is not None and (
            self.last_imported_at is None or imported_at > self.last_imported_at
        ):
            self.last_imported_at = imported_at


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        # SQLite hands back naive datetimes; everything is stored as UTC
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


_SCAN_COLUMNS = (
    RawLedgerRecord.full_name,
    RawLedgerRecord.borrower_mobile,
    RawLedgerRecord.borrower_landline,
    RawLedgerRecord.borrower_email,
    RawLedgerRecord.borrower_address,
    RawLedgerRecord.borrower_date_of_birth,
    RawLedgerRecord.loan_status,
    RawLedgerRecord.amortization_due,
    RawLedgerRecord.total_interest_balance,
    RawLedgerRecord.penalty_amount,
    RawLedgerRecord.imported_at,
)


class ClientRebuilder:
    """
    Recomputes ``clients`` from ``loan_records``.

    Contract:
        rebuild() is idempotent: running it twice over unchanged raw data
        yields the same client rows (only updated_at moves).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        flush_size: int = 1000,
        scan_chunk_size: int = 500,
        country_code: str = DEFAULT_COUNTRY_CODE,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self.flush_size = flush_size
        self.scan_chunk_size = scan_chunk_size
        self.country_code = country_code
        self._dialect = dialect_name(session)
        dialect_insert(self._dialect)

    @classmethod
    def from_settings(cls, session: Session, settings: ImportSettings, clock: Clock | None = None) -> "ClientRebuilder":
        return cls(
            session,
            clock=clock,
            flush_size=settings.rebuild_flush_size,
            scan_chunk_size=settings.scan_chunk_size,
            country_code=settings.phone_country_code,
        )

    # -----------------------------------------------------------------
    # Purge
    # -----------------------------------------------------------------

    def purge_malformed_clients(self) -> int:
        """Delete clients whose identity key is malformed. Returns the count."""
        bad_keys = [
            key
            for key in self._session.scalars(
                select(ConsolidatedClient.identity_key).execution_options(
                    yield_per=self.scan_chunk_size
                )
            )
            if is_malformed_key(key)
        ]
        purged = 0
        for start in range(0, len(bad_keys), self.flush_size):
            chunk = bad_keys[start:start + self.flush_size]
            result = self._session.execute(
                delete(ConsolidatedClient).where(ConsolidatedClient.identity_key.in_(chunk))
            )
            purged += result.rowcount or 0
        self._session.commit()
        logger.info("malformed_clients_purged", extra={"purged": purged})
        return purged

    # -----------------------------------------------------------------
    # Rebuild
    # -----------------------------------------------------------------

    def _scan(self) -> tuple[dict[str, _ClientAccumulator], int, int]:
        groups: dict[str, _ClientAccumulator] = {}
        scanned = 0
        skipped = 0
        stmt = select(*_SCAN_COLUMNS).execution_options(yield_per=self.scan_chunk_size)
        for row in self._session.execute(stmt):
            scanned += 1
            phone = normalize_phone(row.borrower_mobile, self.country_code) or normalize_phone(
                row.borrower_landline, self.country_code
            )
            email = normalize_email(row.borrower_email)
            name = clean_display_name(row.full_name)
            dob = parse_date(row.borrower_date_of_birth)
            key = make_identity_key(
                phone=phone,
                email=email,
                name=name,
                dob=dob,
                country_code=self.country_code,
            )
            if key is None:
                skipped += 1
                continue
            groups.setdefault(key, _ClientAccumulator()).add(
                full_name=name,
                phone=phone,
                email=email,
                address=row.borrower_address,
                date_of_birth=dob,
                unpaid=unpaid_amount(
                    Decimal(row.amortization_due or 0),
                    Decimal(row.total_interest_balance or 0),
                    Decimal(row.penalty_amount or 0),
                    row.loan_status,
                ),
                imported_at=_as_utc(row.imported_at),
            )
        return groups, scanned, skipped

    def _values(self, key: str, acc: _ClientAccumulator, now: datetime) -> dict[str, Any]:
        owes = acc.balance > ZERO
        seen_at = acc.last_imported_at or now
        return {
            "identity_key": key,
            "full_name": acc.full_name,
            "phone": acc.phone,
            "email": acc.email,
            "address": acc.address,
            "date_of_birth": acc.date_of_birth,
            "loan_status": LoanStatus.UNKNOWN.value if owes else LoanStatus.FULLY_PAID.value,
            "is_extended": False,
            "status_bucket": StatusBucket.BALANCE.value if owes else StatusBucket.CLEARED.value,
            "balance": acc.balance,
            "effective_date": seen_at,
            "last_imported_at": seen_at,
            "created_at": now,
            "updated_at": now,
        }

    def rebuild(self, purge_malformed: bool = False) -> RebuildResult:
        purged = self.purge_malformed_clients() if purge_malformed else 0

        groups, scanned, skipped = self._scan()
        now = self._clock.now()
        written = 0
        pending = 0

        try:
            for key, acc in groups.items():
                values = self._values(key, acc, now)
                values["id"] = uuid4()
                self._session.execute(build_replace_upsert(self._dialect, values))
                written += 1
                pending += 1
                if pending >= self.flush_size:
                    self._session.commit()
                    pending = 0
                    logger.info("rebuild_chunk_committed", extra={"written": written})
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error(
                "rebuild_write_failed",
                extra={"written": written - pending, "error_msg": str(exc)},
            )
            raise BulkCallError(pending, str(exc)) from exc

        result = RebuildResult(
            rows_scanned=scanned,
            rows_skipped=skipped,
            clients_written=written,
            clients_purged=purged,
        )
        logger.info(
            "rebuild_completed",
            extra={
                "rows_scanned": scanned,
                "rows_skipped": skipped,
                "clients_written": written,
                "clients_purged": purged,
            },
        )
        return result
