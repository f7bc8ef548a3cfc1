"""
Streaming batch ingestor.

Pulls raw rows from a source iterator, normalizes them, and flushes fixed-size
batches into a sink.  Intake is pull-based: the next row is requested only
after the current one has been normalized and any flush it triggered has
returned, so memory stays bounded by the batch size whatever the source size.

Error policy:
    RowNormalizationError  -> counted, logged, recorded; intake continues.
    BulkCallError          -> every key of the batch counted failed; continues.
    anything the source iterator raises -> SourceError with the partial
                              result.  Batches already flushed stay committed.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping

from loanbook_ingestion.domain.normalizer import RecordNormalizer
from loanbook_ingestion.domain.types import (
    BatchSink,
    ImportProgress,
    ImportRunResult,
    NormalizedRecord,
    RowFailure,
)
from loanbook_kernel.exceptions import BulkCallError, RowNormalizationError, SourceError
from loanbook_kernel.logging_config import get_logger

logger = get_logger("ingestion.ingestor")

DEFAULT_BATCH_SIZE = 200
MAX_BATCH_SIZE = 10_000

ProgressCallback = Callable[[ImportProgress], None]


class StreamingBatchIngestor:
    """Batching driver between a row source and a BatchSink."""

    def __init__(
        self,
        normalizer: RecordNormalizer,
        sink: BatchSink,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_recorded_failures: int = 1000,
    ):
        if not 1 <= batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be in 1..{MAX_BATCH_SIZE}, got {batch_size}")
        self._normalizer = normalizer
        self._sink = sink
        self.batch_size = batch_size
        self._max_failures = max_recorded_failures
        self._reset()

    def _reset(self) -> None:
        self._merged = 0
        self._errors = 0
        self._rows = 0
        self._superseded = 0
        self._failures: list[RowFailure] = []

    def _record_failure(self, failure: RowFailure) -> None:
        if len(self._failures) < self._max_failures:
            self._failures.append(failure)

    def _result(self, source: str | None) -> ImportRunResult:
        return ImportRunResult(
            total_merged=self._merged,
            total_errors=self._errors,
            total_rows=self._rows,
            total_superseded=self._superseded,
            failures=tuple(self._failures),
            source=source,
        )

    def _flush(self, batch: list[NormalizedRecord], on_progress: ProgressCallback | None) -> None:
        if not batch:
            return
        try:
            outcome = self._sink.write_batch(batch)
        except BulkCallError as exc:
            self._errors += exc.key_count
            self._record_failure(
                RowFailure(stage="bulk", reason=exc.reason, code=exc.code)
            )
            logger.warning(
                "batch_failed",
                extra={"key_count": exc.key_count, "error_code": exc.code},
            )
        else:
            self._merged += outcome.written
            self._errors += outcome.failed
            self._superseded += outcome.superseded
            for failure in outcome.failures:
                self._record_failure(failure)
            logger.info(
                "batch_flushed",
                extra={
                    "batch_rows": len(batch),
                    "written": outcome.written,
                    "failed": outcome.failed,
                    "superseded": outcome.superseded,
                },
            )
        if on_progress is not None:
            on_progress(ImportProgress(processed=self._merged, errors=self._errors))

    def run(
        self,
        rows: Iterable[Mapping[str, Any]],
        on_progress: ProgressCallback | None = None,
        source: str | None = None,
    ) -> ImportRunResult:
        """
        Drive one import run to completion.

        Raises:
            SourceError: the row source failed; ``partial_result`` holds the
                counters for everything flushed before the failure.
        """
        self._reset()
        batch: list[NormalizedRecord] = []
        iterator = iter(rows)
        row_number = 0

        while True:
            try:
                raw = next(iterator)
            except StopIteration:
                break
            except Exception as exc:
                partial = self._result(source)
                logger.error(
                    "source_failed",
                    extra={"rows_read": self._rows, "error_msg": str(exc)},
                    exc_info=True,
                )
                raise SourceError(source or "<rows>", str(exc), partial) from exc

            row_number += 1
            self._rows += 1
            try:
                batch.append(self._normalizer.normalize(raw, row_number))
            except RowNormalizationError as exc:
                self._errors += 1
                self._record_failure(
                    RowFailure(
                        stage="normalize",
                        reason=exc.reason,
                        row_number=exc.row_number,
                        code=exc.code,
                    )
                )
                logger.warning(
                    "row_rejected",
                    extra={"source_row": exc.row_number, "error_msg": exc.reason},
                )
                continue

            if len(batch) >= self.batch_size:
                self._flush(batch, on_progress)
                batch = []

        self._flush(batch, on_progress)

        result = self._result(source)
        logger.info(
            "import_completed",
            extra={
                "total_rows": result.total_rows,
                "total_merged": result.total_merged,
                "total_errors": result.total_errors,
                "total_superseded": result.total_superseded,
            },
        )
        return result
