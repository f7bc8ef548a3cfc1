"""Tests for ImportService: file -> adapter -> normalizer -> ingestor -> store."""

from datetime import datetime
from decimal import Decimal

import openpyxl
import pytest
from sqlalchemy import select

from loanbook_ingestion.services.import_service import ImportService, branch_id_from_filename
from loanbook_kernel.exceptions import SourceError, UnsupportedSourceError
from loanbook_kernel.models.client import ConsolidatedClient
from loanbook_kernel.models.loan_record import RawLedgerRecord
from loanbook_kernel.selectors.client_selector import ClientSelector


@pytest.fixture
def service(session, settings, deterministic_clock):
    return ImportService(session, settings, clock=deterministic_clock)


@pytest.fixture
def extract_rows(loan_row):
    return [
        loan_row(name="Jane Banda", mobile="0978559684", status="Current",
                 amortization="400", next_due="2024-02-15"),
        loan_row(name="Jane Banda", mobile="+260978559684", status="Current",
                 amortization="300", next_due="2024-03-15"),
        loan_row(name="Peter Phiri", mobile="0977000111", status="Fully Paid",
                 amortization="250", next_due="2024-01-10"),
        loan_row(status="Current", amortization="99"),
    ]


class TestBranchResolution:

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("Loan Report-branch-5235364.csv", "5235364"),
            ("BRANCH_77 march.xlsx", "77"),
            ("branch 12.csv", "12"),
            ("loans.csv", None),
        ],
    )
    def test_branch_id_from_filename(self, name, expected):
        assert branch_id_from_filename(name) == expected

    def test_precedence(self, service):
        assert service.resolve_branch_id("branch-77.csv", "99") == "99"
        assert service.resolve_branch_id("branch-77.csv") == "77"
        assert service.resolve_branch_id("loans.csv") == "5235364"
        assert service.resolve_branch_id(None) == "5235364"


class TestImportClients:

    def test_csv_import_merges_by_identity(self, session, service, write_csv, extract_rows):
        path = write_csv(extract_rows)

        result = service.import_clients(path)

        assert result.total_rows == 4
        assert result.total_merged == 2
        assert result.total_superseded == 1
        assert result.total_errors == 1
        assert result.failures[0].stage == "normalize"
        assert result.import_run_id
        assert result.source == str(path)

        selector = ClientSelector(session)
        jane = selector.get_by_key("phone:0978559684")
        assert jane.balance == Decimal("300")
        assert jane.status_bucket == "balance"
        peter = selector.get_by_key("phone:0977000111")
        assert peter.balance == Decimal("0")
        assert peter.status_bucket == "cleared"

    def test_reimport_is_idempotent(self, session, service, write_csv, extract_rows):
        path = write_csv(extract_rows)
        service.import_clients(path)
        first = {c.identity_key: c.balance for c in ClientSelector(session).search()}
        service.import_clients(path)
        second = {c.identity_key: c.balance for c in ClientSelector(session).search()}
        assert first == second

    def test_split_batches_agree_with_single_batch(self, session, service, write_csv, extract_rows):
        service.import_clients(write_csv(extract_rows), batch_size=1)
        assert ClientSelector(session).get_by_key("phone:0978559684").balance == Decimal("300")

    def test_log_context_is_bound(self, service, write_csv, extract_rows, captured_logs):
        result = service.import_clients(write_csv(extract_rows, name="branch-77.csv"))
        started = [r for r in captured_logs() if r["message"] == "import_started"]
        assert len(started) == 1
        assert started[0]["import_run_id"] == result.import_run_id
        assert started[0]["branch_id"] == "77"
        assert started[0]["job"] == "import_clients"

    def test_progress_reported(self, service, write_csv, extract_rows):
        progress = []
        service.import_clients(write_csv(extract_rows), batch_size=2, on_progress=progress.append)
        assert len(progress) == 2
        assert progress[-1].errors == 1

    def test_xlsx_import(self, session, service, tmp_path):
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.append(["Loan Report"])
        ws.append(["Full Name", "Borrower Mobile", "Loan Status Name", "Amortization Due", "Next Due Date"])
        ws.append(["Jane Banda", 978559684, "Current", 400.0, datetime(2024, 2, 15)])
        path = tmp_path / "branch_5235364.xlsx"
        wb.save(path)

        result = service.import_clients(path)

        assert result.total_merged == 1
        assert ClientSelector(session).get_by_key("phone:0978559684").balance == Decimal("400")

    def test_unsupported_format(self, service, tmp_path):
        path = tmp_path / "extract.pdf"
        path.write_bytes(b"%PDF")
        with pytest.raises(UnsupportedSourceError) as exc_info:
            service.import_clients(path)
        assert exc_info.value.source_format == ".pdf"

    def test_missing_file_is_source_error(self, service, tmp_path):
        with pytest.raises(SourceError) as exc_info:
            service.import_clients(tmp_path / "absent.csv")
        assert exc_info.value.partial_result.total_merged == 0

    def test_rows_from_memory(self, session, service, extract_rows):
        result = service.import_client_rows(extract_rows, source="upload")
        assert result.total_merged == 2
        assert result.source == "upload"


class TestImportLedger:

    def test_ledger_rows_keep_branch(self, session, service, write_csv, extract_rows):
        path = write_csv(extract_rows, name="Loan Report-branch-77.csv")

        result = service.import_ledger(path)

        assert result.total_merged == 3
        rows = session.scalars(select(RawLedgerRecord)).all()
        assert {r.branch_id for r in rows} == {"77"}
        assert {r.import_run_id for r in rows} == {result.import_run_id}

    def test_ledger_import_leaves_clients_alone(self, session, service, extract_rows):
        service.import_ledger_rows(extract_rows)
        assert session.scalars(select(ConsolidatedClient)).all() == []

    def test_loan_id_makes_reimport_replace(self, session, service, loan_row):
        rows = [loan_row(name="Jane", mobile="0978559684", amortization="400", **{"Loan Id": "L-1"})]
        service.import_ledger_rows(rows)
        rows[0]["Amortization Due"] = "100"
        service.import_ledger_rows(rows)
        session.expire_all()
        stored = session.scalars(select(RawLedgerRecord)).all()
        assert len(stored) == 1
        assert stored[0].amortization_due == Decimal("100")
        assert stored[0].source_key == "5235364:L-1"


class TestStats:

    def test_get_import_stats(self, service, extract_rows):
        service.import_client_rows(extract_rows)
        service.import_ledger_rows(extract_rows)
        stats = service.get_import_stats()
        assert stats["total_clients"] == 2
        assert stats["by_bucket"] == {"balance": 1, "cleared": 1}
        assert stats["total_balance"] == Decimal("300")
        assert stats["ledger_rows"] == 3

    def test_probe_source(self, service, write_csv, extract_rows):
        probe = service.probe_source(write_csv(extract_rows))
        assert probe.row_count == 4
        assert "Full Name" in probe.columns
