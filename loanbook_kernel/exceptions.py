"""
Typed exception hierarchy for loanbook.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

An import run has to tell a bad row apart from a dead store.  Matching on
message text is fragile, so every error here:
  1. Has its own class (catch by type, not message)
  2. Carries a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (row number, identity key, ...)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LoanbookError (base)
    |
    +-- IngestionError
    |   +-- RowNormalizationError
    |   +-- SourceError
    |   +-- UnsupportedSourceError
    |
    +-- StoreError
    |   +-- WriteError
    |   +-- BulkCallError
    |   +-- UnsupportedStoreError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category   | Code                       | Run behaviour
-----------|----------------------------|--------------------------------------
Ingestion  | ROW_NORMALIZATION_FAILED   | Row counted as error, intake continues
           | SOURCE_FAILED              | Run fails; flushed batches stay committed
           | UNSUPPORTED_SOURCE         | Raised before the run starts
-----------|----------------------------|--------------------------------------
Store      | WRITE_FAILED               | One key counted as error, batch continues
           | BULK_CALL_FAILED           | Every key in the batch counted as error,
           |                            | run continues with the next batch
           | UNSUPPORTED_STORE          | Raised before any write
-----------|----------------------------|--------------------------------------
Config     | CONFIG_INVALID             | Raised at settings load time

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        result = service.import_clients(path)
    except SourceError as e:
        # e.partial_result holds counters for the batches already committed
        report(code=e.code, merged=e.partial_result.total_merged)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from loanbook_ingestion.domain.types import ImportRunResult


class LoanbookError(Exception):
    """
    Base exception for all loanbook errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LOANBOOK_ERROR"

    def __init__(self, message: str = ""):
        self.message = message
        super().__init__(message)


# Ingestion-related exceptions


class IngestionError(LoanbookError):
    """Base exception for source and row errors."""

    code: str = "INGESTION_ERROR"


class RowNormalizationError(IngestionError):
    """A raw row could not be turned into a canonical record."""

    code: str = "ROW_NORMALIZATION_FAILED"

    def __init__(self, row_number: int, reason: str):
        self.row_number = row_number
        self.reason = reason
        super().__init__(f"Row {row_number} rejected: {reason}")


class SourceError(IngestionError):
    """
    The record source itself failed (unreadable, corrupt, missing).

    Fatal to the run.  ``partial_result`` reports what was committed by the
    batches flushed before the failure.
    """

    code: str = "SOURCE_FAILED"

    def __init__(
        self,
        source: str,
        reason: str,
        partial_result: ImportRunResult | None = None,
    ):
        self.source = source
        self.reason = reason
        self.partial_result = partial_result
        super().__init__(f"Source {source} failed: {reason}")


class UnsupportedSourceError(IngestionError):
    """No adapter is registered for the source format."""

    code: str = "UNSUPPORTED_SOURCE"

    def __init__(self, source: str, source_format: str):
        self.source = source
        self.source_format = source_format
        super().__init__(f"Unsupported source format {source_format!r} for {source}")


# Store-related exceptions


class StoreError(LoanbookError):
    """Base exception for persistence errors."""

    code: str = "STORE_ERROR"


class WriteError(StoreError):
    """A single identity key's write was rejected by the store."""

    code: str = "WRITE_FAILED"

    def __init__(self, identity_key: str, reason: str):
        self.identity_key = identity_key
        self.reason = reason
        super().__init__(f"Write failed for {identity_key}: {reason}")


class BulkCallError(StoreError):
    """The whole bulk write for a batch failed (e.g. store unavailable)."""

    code: str = "BULK_CALL_FAILED"

    def __init__(self, key_count: int, reason: str):
        self.key_count = key_count
        self.reason = reason
        super().__init__(f"Bulk write of {key_count} keys failed: {reason}")


class UnsupportedStoreError(StoreError):
    """The bound database dialect has no atomic conditional upsert."""

    code: str = "UNSUPPORTED_STORE"

    def __init__(self, dialect: str):
        self.dialect = dialect
        super().__init__(
            f"Dialect {dialect!r} does not support INSERT ... ON CONFLICT; "
            "use postgresql or sqlite"
        )


# Configuration exceptions


class ConfigurationError(LoanbookError):
    """Settings file or override holds an invalid value."""

    code: str = "CONFIG_INVALID"

    def __init__(self, key: str, reason: str, value: Any = None):
        self.key = key
        self.reason = reason
        self.value = value
        super().__init__(f"Invalid setting {key}: {reason}")
