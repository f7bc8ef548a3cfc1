"""Ingestion services: batching, merging, ledger writes and the import facade."""

from loanbook_ingestion.services.client_merge import ClientMergeSink, ClientUpsertEngine
from loanbook_ingestion.services.import_service import ImportService
from loanbook_ingestion.services.ingestor import StreamingBatchIngestor
from loanbook_ingestion.services.ledger_writer import LedgerWriter

__all__ = [
    "ClientUpsertEngine",
    "ClientMergeSink",
    "ImportService",
    "StreamingBatchIngestor",
    "LedgerWriter",
]
