"""Source adapters for branch extracts (file I/O only, no DB)."""

from loanbook_ingestion.adapters.base import SourceAdapter, SourceProbe
from loanbook_ingestion.adapters.csv_adapter import CsvSourceAdapter
from loanbook_ingestion.adapters.xlsx_adapter import XlsxSourceAdapter

__all__ = [
    "SourceAdapter",
    "SourceProbe",
    "CsvSourceAdapter",
    "XlsxSourceAdapter",
]
