"""
Module: loanbook_kernel.selectors.client_selector
Responsibility: Read-only queries over the consolidated client view: point
    lookup by identity key, phone lookup across key variants, free-text
    search, and the aggregate stats reported after an import.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/identity.py and selectors/base.py.

Invariants enforced:
    - search() never returns more than MAX_SEARCH_LIMIT rows.
    - Amounts are returned as Decimal.
    - Rows are re-read from the store on every call; the upserts run as
      Core statements and never refresh objects already in the session.

Failure modes:
    - Returns None / empty results when nothing matches.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from loanbook_kernel.domain.identity import DEFAULT_COUNTRY_CODE, phone_key_variants
from loanbook_kernel.models.client import ConsolidatedClient
from loanbook_kernel.selectors.base import BaseSelector

MAX_SEARCH_LIMIT = 2000
DEFAULT_SEARCH_LIMIT = 200


@dataclass(frozen=True)
class ClientSnapshot:
    """Immutable view of one consolidated client."""

    identity_key: str
    full_name: str | None
    phone: str | None
    email: str | None
    address: str | None
    date_of_birth: date | None
    loan_status: str
    is_extended: bool
    status_bucket: str
    balance: Decimal
    effective_date: datetime | None
    last_imported_at: datetime | None

    @classmethod
    def from_model(cls, client: ConsolidatedClient) -> "ClientSnapshot":
        return cls(
            identity_key=client.identity_key,
            full_name=client.full_name,
            phone=client.phone,
            email=client.email,
            address=client.address,
            date_of_birth=client.date_of_birth,
            loan_status=client.loan_status,
            is_extended=client.is_extended,
            status_bucket=client.status_bucket,
            balance=Decimal(client.balance),
            effective_date=client.effective_date,
            last_imported_at=client.last_imported_at,
        )


@dataclass(frozen=True)
class ClientStats:
    """Totals reported by the stats query."""

    total_clients: int
    by_bucket: dict[str, int] = field(default_factory=dict)
    total_balance: Decimal = Decimal("0")


class ClientSelector(BaseSelector[ConsolidatedClient]):
    """
    Selector for consolidated client queries.

    Guarantees:
        - find_by_phone() tries the national, bare and international key
          forms, so clients keyed by older imports are still found.
        - search() orders by most recently updated first.
    """

    def __init__(self, session: Session, country_code: str = DEFAULT_COUNTRY_CODE):
        super().__init__(session)
        self.country_code = country_code

    def get_by_key(self, identity_key: str) -> ClientSnapshot | None:
        client = self.session.scalars(
            select(ConsolidatedClient).where(
                ConsolidatedClient.identity_key == identity_key
            ).execution_options(populate_existing=True)
        ).first()
        return ClientSnapshot.from_model(client) if client is not None else None

    def find_by_phone(self, phone: str) -> ClientSnapshot | None:
        variants = phone_key_variants(phone, self.country_code)
        if not variants:
            return None
        clients = self.session.scalars(
            select(ConsolidatedClient).where(
                ConsolidatedClient.identity_key.in_(variants)
            ).execution_options(populate_existing=True)
        ).all()
        if not clients:
            return None
        # Prefer the canonical form when several variants exist
        by_key = {c.identity_key: c for c in clients}
        for key in variants:
            if key in by_key:
                return ClientSnapshot.from_model(by_key[key])
        return None

    def search(self, q: str | None = None, limit: int = DEFAULT_SEARCH_LIMIT) -> list[ClientSnapshot]:
        """
        Case-insensitive substring search over name, email, phone and key.

        An empty query returns the most recently updated clients.
        """
        limit = max(1, min(int(limit), MAX_SEARCH_LIMIT))
        stmt = select(ConsolidatedClient)
        term = (q or "").strip().lower()
        if term:
            pattern = f"%{term}%"
            stmt = stmt.where(
                or_(
                    func.lower(ConsolidatedClient.full_name).like(pattern),
                    func.lower(ConsolidatedClient.email).like(pattern),
                    ConsolidatedClient.phone.like(pattern),
                    func.lower(ConsolidatedClient.identity_key).like(pattern),
                )
            )
        stmt = stmt.order_by(
            ConsolidatedClient.updated_at.desc(),
            ConsolidatedClient.identity_key,
        ).limit(limit).execution_options(populate_existing=True)
        return [ClientSnapshot.from_model(c) for c in self.session.scalars(stmt)]

    def stats(self) -> ClientStats:
        """Client count, count per status bucket, and summed balance."""
        rows = self.session.execute(
            select(
                ConsolidatedClient.status_bucket,
                func.count(),
                func.coalesce(func.sum(ConsolidatedClient.balance), 0),
            ).group_by(ConsolidatedClient.status_bucket)
        ).all()
        by_bucket = {bucket: int(count) for bucket, count, _ in rows}
        total_balance = sum((Decimal(str(total)) for _, _, total in rows), Decimal("0"))
        return ClientStats(
            total_clients=sum(by_bucket.values()),
            by_bucket=by_bucket,
            total_balance=total_balance,
        )
