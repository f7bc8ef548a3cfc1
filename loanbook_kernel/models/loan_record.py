"""
Module: loanbook_kernel.models.loan_record
Responsibility: ORM persistence for raw loan rows exactly as imported from a
    branch ledger extract.  The Reconciliation Rebuilder recomputes the
    consolidated client view from this table.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - source_key ("<branch_id>:<loan id>") is unique when present, so a
      re-import of the same extract row replaces rather than duplicates it.
    - Amounts are Decimal; missing numeric cells are stored as 0.

Failure modes:
    - IntegrityError on a duplicate source_key inserted outside the ledger
      writer's upsert path.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from loanbook_kernel.db.base import TimestampedBase


class RawLedgerRecord(TimestampedBase):
    """One loan/account row from a branch extract."""

    __tablename__ = "loan_records"

    __table_args__ = (
        UniqueConstraint("source_key", name="uq_loan_record_source_key"),
        Index("idx_loan_record_full_name", "full_name"),
        Index("idx_loan_record_loan_status", "loan_status"),
        Index("idx_loan_record_next_due_date", "next_due_date"),
        Index("idx_loan_record_branch_id", "branch_id"),
    )

    # Borrower
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    borrower_mobile: Mapped[str | None] = mapped_column(String(32), nullable=True)
    borrower_landline: Mapped[str | None] = mapped_column(String(32), nullable=True)
    borrower_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    borrower_address: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    borrower_date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Loan
    loan_status: Mapped[str] = mapped_column(
        String(50), nullable=False, default="Unknown"
    )
    principal_amount: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )
    total_interest_balance: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )
    amortization_due: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )
    penalty_amount: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )
    next_installment_amount: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )
    next_due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Provenance
    branch_id: Mapped[str] = mapped_column(String(50), nullable=False)
    imported_at: Mapped[datetime] = mapped_column(nullable=False)
    import_run_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    source_row: Mapped[int | None] = mapped_column(Integer, nullable=True)
    source_key: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<RawLedgerRecord {self.full_name!r} {self.loan_status} branch={self.branch_id}>"
