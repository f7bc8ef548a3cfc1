"""
Import service: source -> normalize -> batch -> merge.

Facade used by the CLI and by any job trigger.  Picks the source adapter,
resolves the branch id, binds a fresh import_run_id into the log context,
and runs a StreamingBatchIngestor into the requested sink.
Uses structured logging (LogContext, get_logger("ingestion.*")).
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Iterable, Mapping
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from loanbook_config.schema import LoanbookSettings
from loanbook_ingestion.adapters.base import SourceAdapter, SourceProbe
from loanbook_ingestion.adapters.csv_adapter import CsvSourceAdapter
from loanbook_ingestion.adapters.xlsx_adapter import XlsxSourceAdapter
from loanbook_ingestion.domain.normalizer import RecordNormalizer
from loanbook_ingestion.domain.types import BatchSink, ImportRunResult
from loanbook_ingestion.services.client_merge import ClientMergeSink, ClientUpsertEngine
from loanbook_ingestion.services.ingestor import ProgressCallback, StreamingBatchIngestor
from loanbook_ingestion.services.ledger_writer import LedgerWriter
from loanbook_kernel.domain.clock import Clock, SystemClock
from loanbook_kernel.exceptions import UnsupportedSourceError
from loanbook_kernel.logging_config import LogContext, get_logger
from loanbook_kernel.models.loan_record import RawLedgerRecord
from loanbook_kernel.selectors.client_selector import ClientSelector, ClientStats

logger = get_logger("ingestion.import_service")

_BRANCH_IN_FILENAME = re.compile(r"branch[-_ ]?(\d+)", re.IGNORECASE)

_SUFFIX_FORMATS = {
    ".csv": "csv",
    ".txt": "csv",
    ".xlsx": "xlsx",
}


def _default_adapters() -> dict[str, SourceAdapter]:
    return {
        "csv": CsvSourceAdapter(),
        "xlsx": XlsxSourceAdapter(),
    }


def branch_id_from_filename(path: Path | str) -> str | None:
    """``Loan Report-branch-5235364.csv`` -> ``"5235364"``."""
    m = _BRANCH_IN_FILENAME.search(Path(path).name)
    return m.group(1) if m else None


class ImportService:
    """Orchestrates one import run per call. Uses session, settings, clock and adapters."""

    def __init__(
        self,
        session: Session,
        settings: LoanbookSettings,
        clock: Clock | None = None,
        adapters: dict[str, SourceAdapter] | None = None,
    ):
        self._session = session
        self._settings = settings
        self._clock = clock or SystemClock()
        self._adapters = adapters if adapters is not None else _default_adapters()

    # -----------------------------------------------------------------
    # Source resolution
    # -----------------------------------------------------------------

    def _adapter_for(self, source_path: Path) -> SourceAdapter:
        fmt = _SUFFIX_FORMATS.get(source_path.suffix.lower())
        adapter = self._adapters.get(fmt) if fmt else None
        if adapter is None:
            raise UnsupportedSourceError(str(source_path), source_path.suffix or "<none>")
        return adapter

    def resolve_branch_id(self, source_path: Path | str | None, branch_id: str | None = None) -> str:
        """Explicit argument, else ``branch-<digits>`` in the filename, else the configured default."""
        if branch_id:
            return str(branch_id)
        if source_path is not None:
            from_name = branch_id_from_filename(source_path)
            if from_name:
                return from_name
        return self._settings.imports.default_branch_id

    def probe_source(self, source_path: Path | str, options: dict[str, Any] | None = None) -> SourceProbe:
        path = Path(source_path)
        return self._adapter_for(path).probe(path, options or {})

    # -----------------------------------------------------------------
    # Runs
    # -----------------------------------------------------------------

    def _normalizer(self, branch_id: str) -> RecordNormalizer:
        return RecordNormalizer(
            default_branch_id=branch_id,
            country_code=self._settings.imports.phone_country_code,
            clock=self._clock,
        )

    def _run(
        self,
        target: str,
        rows: Iterable[Mapping[str, Any]],
        sink: BatchSink,
        branch_id: str,
        source: str,
        import_run_id: str,
        batch_size: int | None,
        on_progress: ProgressCallback | None,
    ) -> ImportRunResult:
        ingestor = StreamingBatchIngestor(
            normalizer=self._normalizer(branch_id),
            sink=sink,
            batch_size=batch_size or self._settings.imports.batch_size,
            max_recorded_failures=self._settings.imports.max_recorded_failures,
        )
        with LogContext.bind(
            import_run_id=import_run_id,
            source_name=source,
            branch_id=branch_id,
            job=f"import_{target}",
        ):
            logger.info(
                "import_started",
                extra={"target": target, "batch_size": ingestor.batch_size},
            )
            result = ingestor.run(rows, on_progress=on_progress, source=source)
        return ImportRunResult(
            total_merged=result.total_merged,
            total_errors=result.total_errors,
            total_rows=result.total_rows,
            total_superseded=result.total_superseded,
            failures=result.failures,
            import_run_id=import_run_id,
            source=source,
        )

    def import_client_rows(
        self,
        rows: Iterable[Mapping[str, Any]],
        branch_id: str | None = None,
        batch_size: int | None = None,
        on_progress: ProgressCallback | None = None,
        source: str = "<rows>",
    ) -> ImportRunResult:
        """Merge any iterable of raw rows (e.g. a parsed upload) into ``clients``."""
        sink = ClientMergeSink(ClientUpsertEngine(self._session, self._clock))
        return self._run(
            "clients",
            rows,
            sink,
            self.resolve_branch_id(None, branch_id),
            source,
            str(uuid4()),
            batch_size,
            on_progress,
        )

    def import_ledger_rows(
        self,
        rows: Iterable[Mapping[str, Any]],
        branch_id: str | None = None,
        batch_size: int | None = None,
        on_progress: ProgressCallback | None = None,
        source: str = "<rows>",
    ) -> ImportRunResult:
        """Append/upsert any iterable of raw rows into ``loan_records``."""
        resolved = self.resolve_branch_id(None, branch_id)
        import_run_id = str(uuid4())
        sink = LedgerWriter(
            self._session,
            default_branch_id=resolved,
            clock=self._clock,
            import_run_id=import_run_id,
        )
        return self._run(
            "ledger", rows, sink, resolved, source, import_run_id, batch_size, on_progress
        )

    def import_clients(
        self,
        source_path: Path | str,
        branch_id: str | None = None,
        batch_size: int | None = None,
        options: dict[str, Any] | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ImportRunResult:
        path = Path(source_path)
        rows = self._adapter_for(path).read(path, options or {})
        return self.import_client_rows(
            rows,
            branch_id=self.resolve_branch_id(path, branch_id),
            batch_size=batch_size,
            on_progress=on_progress,
            source=str(path),
        )

    def import_ledger(
        self,
        source_path: Path | str,
        branch_id: str | None = None,
        batch_size: int | None = None,
        options: dict[str, Any] | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ImportRunResult:
        path = Path(source_path)
        rows = self._adapter_for(path).read(path, options or {})
        return self.import_ledger_rows(
            rows,
            branch_id=self.resolve_branch_id(path, branch_id),
            batch_size=batch_size,
            on_progress=on_progress,
            source=str(path),
        )

    # -----------------------------------------------------------------
    # Stats
    # -----------------------------------------------------------------

    def get_import_stats(self) -> dict[str, Any]:
        """Client totals per bucket plus the raw ledger row count."""
        stats: ClientStats = ClientSelector(
            self._session, self._settings.imports.phone_country_code
        ).stats()
        ledger_rows = self._session.scalar(select(func.count()).select_from(RawLedgerRecord))
        return {
            "total_clients": stats.total_clients,
            "by_bucket": dict(stats.by_bucket),
            "total_balance": stats.total_balance,
            "ledger_rows": int(ledger_rows or 0),
        }
