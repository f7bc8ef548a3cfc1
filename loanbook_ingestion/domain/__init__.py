"""Pure ingestion domain: canonical records, normalization, dedup."""

from loanbook_ingestion.domain.dedup import deduplicate_batch
from loanbook_ingestion.domain.normalizer import RecordNormalizer
from loanbook_ingestion.domain.types import (
    BatchWriteOutcome,
    DedupResult,
    ImportProgress,
    ImportRunResult,
    NormalizedRecord,
    RowFailure,
)

__all__ = [
    "RecordNormalizer",
    "deduplicate_batch",
    "NormalizedRecord",
    "ImportProgress",
    "ImportRunResult",
    "RowFailure",
    "BatchWriteOutcome",
    "DedupResult",
]
