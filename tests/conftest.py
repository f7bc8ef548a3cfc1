"""
Pytest fixtures for the loanbook test suite.

Provides:
- An in-memory SQLite store per test (fresh engine + tables)
- Deterministic clock and settings
- Record / CSV factories
- Structured log capture

Environment Variables:
- DATABASE_URL: PostgreSQL connection URL for tests marked ``postgres``.
  Those tests are skipped when it is not set.
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from pathlib import Path
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from loanbook_config.schema import ImportSettings, LoanbookSettings, StoreSettings
from loanbook_ingestion.domain.types import NormalizedRecord
from loanbook_kernel.db.engine import (
    create_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from loanbook_kernel.domain.clock import DeterministicClock
from loanbook_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

TEST_BRANCH_ID = "5235364"

# Header row of a real branch "Loan Report" extract
LOAN_REPORT_HEADERS = [
    "Full Name",
    "Borrower Mobile",
    "Borrower Landline",
    "Borrower Email",
    "Borrower Address",
    "Borrower Date 0f Birth",
    "Loan Status Name",
    "Principal Amount",
    "Total Interest Balance",
    "Amortization Due",
    "Next Installment Amount",
    "Next Due Date",
    "Penalty Amount",
]


def utc(year: int, month: int, day: int, hour: int = 0) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture loanbook logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, import_service):
            import_service.import_client_rows(rows)
            logs = captured_logs()
            assert any(r["message"] == "import_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("loanbook")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory SQLite engine with all tables."""
    reset_engine()
    eng = init_engine_from_url("sqlite://")
    create_tables()
    yield eng
    reset_engine()


@pytest.fixture
def session(engine) -> Generator[Session, None, None]:
    s = get_session()
    yield s
    s.rollback()
    s.close()


@pytest.fixture
def session_factory(engine):
    return get_session_factory()


# =============================================================================
# Clock and settings
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(utc(2024, 6, 1, 12))


@pytest.fixture
def settings() -> LoanbookSettings:
    return LoanbookSettings(
        store=StoreSettings(database_url="sqlite://"),
        imports=ImportSettings(
            batch_size=200,
            default_branch_id=TEST_BRANCH_ID,
            phone_country_code="260",
            rebuild_flush_size=1000,
            scan_chunk_size=500,
        ),
    )


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_record():
    """Factory for NormalizedRecords with sensible defaults."""

    def _make(
        identity_key: str | None = "phone:0978559684",
        balance: str | Decimal = "100",
        effective_date: datetime | None = None,
        **overrides,
    ) -> NormalizedRecord:
        fields = {
            "identity_key": identity_key,
            "full_name": "Jane Banda",
            "phone": "0978559684",
            "email": None,
            "address": None,
            "date_of_birth": None,
            "loan_status": "Current",
            "is_extended": False,
            "status_bucket": "balance",
            "balance": Decimal(balance),
            "effective_date": effective_date or utc(2024, 1, 1),
            "branch_id": TEST_BRANCH_ID,
        }
        fields.update(overrides)
        return NormalizedRecord(**fields)

    return _make


@pytest.fixture
def loan_row():
    """Factory for raw extract rows keyed by the real Loan Report headers."""

    def _row(**values) -> dict[str, str]:
        row = {h: "" for h in LOAN_REPORT_HEADERS}
        aliases = {
            "name": "Full Name",
            "mobile": "Borrower Mobile",
            "landline": "Borrower Landline",
            "email": "Borrower Email",
            "address": "Borrower Address",
            "dob": "Borrower Date 0f Birth",
            "status": "Loan Status Name",
            "principal": "Principal Amount",
            "interest": "Total Interest Balance",
            "amortization": "Amortization Due",
            "installment": "Next Installment Amount",
            "next_due": "Next Due Date",
            "penalty": "Penalty Amount",
        }
        for key, value in values.items():
            row[aliases.get(key, key)] = value
        return row

    return _row


@pytest.fixture
def write_csv(tmp_path: Path):
    """Write rows (list of dicts) to a CSV file and return its path."""
    import csv

    def _write(rows: list[dict], name: str = "extract.csv") -> Path:
        path = tmp_path / name
        headers: list[str] = []
        for row in rows:
            for h in row:
                if h not in headers:
                    headers.append(h)
        with path.open("w", encoding="utf-8", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=headers)
            writer.writeheader()
            writer.writerows(rows)
        return path

    return _write

