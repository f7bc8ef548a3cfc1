"""
Intra-batch deduplication.

Collapses records that share an identity key so at most one write per key
reaches the store from a single batch.  The rule is the same one the store
applies across batches: a later effective date wins, and on equal dates the
larger balance wins.
"""

from __future__ import annotations

from typing import Iterable

from loanbook_ingestion.domain.types import DedupResult, NormalizedRecord


def supersedes(incoming: NormalizedRecord, current: NormalizedRecord) -> bool:
    """True when ``incoming`` should replace ``current`` for the same key."""
    if incoming.effective_date > current.effective_date:
        return True
    if incoming.effective_date == current.effective_date:
        return incoming.balance > current.balance
    return False


def deduplicate_batch(records: Iterable[NormalizedRecord]) -> DedupResult:
    """
    Keep one record per identity key.

    Records are visited in arrival order.  Output keys appear in first-seen
    order; records without an identity key are dropped.  ``superseded``
    counts every keyed record that did not survive.
    """
    kept: dict[str, NormalizedRecord] = {}
    superseded = 0
    for record in records:
        key = record.identity_key
        if not key:
            continue
        current = kept.get(key)
        if current is None:
            kept[key] = record
            continue
        superseded += 1
        if supersedes(record, current):
            kept[key] = record
    return DedupResult(records=tuple(kept.values()), superseded=superseded)
