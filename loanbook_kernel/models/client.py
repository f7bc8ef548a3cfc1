"""
Module: loanbook_kernel.models.client
Responsibility: ORM persistence for the consolidated borrower view -- one row
    per resolved identity, merged from every branch extract that mentions it.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - identity_key is unique (uq_client_identity_key) and never rewritten.
    - status_bucket is one of balance / cleared / extended
      (ck_client_status_bucket).
    - Business fields only move forward in effective_date; enforced by the
      upsert statement in loanbook_ingestion.services.client_merge, never by
      read-modify-write in Python.

Failure modes:
    - IntegrityError on a duplicate identity_key inserted outside the upsert
      path, or on a status_bucket outside the allowed set.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from loanbook_kernel.db.base import TimestampedBase

STATUS_BUCKETS = ("balance", "cleared", "extended")

# Business fields overwritten only by a strictly newer statement
MERGED_FIELDS = (
    "full_name",
    "phone",
    "email",
    "address",
    "date_of_birth",
    "loan_status",
    "is_extended",
    "status_bucket",
    "balance",
)


class ConsolidatedClient(TimestampedBase):
    """
    One borrower, as seen across all imported statements.

    Guarantees:
        - effective_date is the as-of date of the values currently stored.
        - last_imported_at is the processing time of the latest import that
          touched the row, whether or not it changed business fields.
    """

    __tablename__ = "clients"

    __table_args__ = (
        UniqueConstraint("identity_key", name="uq_client_identity_key"),
        CheckConstraint(
            "status_bucket IN (" + ", ".join(f"'{b}'" for b in STATUS_BUCKETS) + ")",
            name="ck_client_status_bucket",
        ),
        Index("idx_client_phone", "phone"),
        Index("idx_client_status_bucket", "status_bucket"),
        Index("idx_client_updated_at", "updated_at"),
    )

    identity_key: Mapped[str] = mapped_column(String(255), nullable=False)

    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)

    loan_status: Mapped[str] = mapped_column(
        String(50), nullable=False, default="Unknown"
    )
    is_extended: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    status_bucket: Mapped[str] = mapped_column(
        String(20), nullable=False, default="balance"
    )

    balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    effective_date: Mapped[datetime | None] = mapped_column(nullable=True)
    last_imported_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<ConsolidatedClient {self.identity_key}: {self.balance} ({self.status_bucket})>"
