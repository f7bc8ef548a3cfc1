"""
CSV source adapter.

Uses csv.DictReader. Configurable: delimiter, encoding, quoting, skip_rows.
Handles BOM via utf-8-sig when encoding is utf-8. Streams rows, so a branch
extract of any size is read under bounded memory.  ``read_text`` serves
already-open text streams such as an uploaded file.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Any, Iterator, TextIO

from loanbook_ingestion.adapters.base import SourceProbe

_QUOTING = {
    "minimal": csv.QUOTE_MINIMAL,
    "all": csv.QUOTE_ALL,
    "nonnumeric": csv.QUOTE_NONNUMERIC,
    "none": csv.QUOTE_NONE,
}

_SAMPLE_SIZE = 5


def _get_encoding(options: dict[str, Any]) -> str:
    enc = options.get("encoding", "utf-8")
    if enc.lower() == "utf-8":
        return "utf-8-sig"  # Strip BOM if present
    return enc


def _get_quoting(options: dict[str, Any]) -> int:
    q = options.get("quoting", "minimal")
    if isinstance(q, int):
        return q
    return _QUOTING.get(str(q).lower(), csv.QUOTE_MINIMAL)


def _strip_bom(name: str | None) -> str | None:
    if name is None:
        return None
    return name.lstrip("\ufeff")


def _iter_rows(stream: TextIO, options: dict[str, Any]) -> Iterator[dict[str, Any]]:
    delimiter = options.get("delimiter", ",")
    skip_rows = int(options.get("skip_rows", 0))
    quoting = _get_quoting(options)

    for _ in range(skip_rows):
        next(stream, None)
    reader = csv.DictReader(stream, delimiter=delimiter, quoting=quoting)
    if reader.fieldnames:
        reader.fieldnames = [_strip_bom(n) for n in reader.fieldnames]
    for row in reader:
        # Short rows pad with None; long rows collect extras under the None key
        row.pop(None, None)
        yield row


class CsvSourceAdapter:
    """Read CSV extracts as one dict per row."""

    def read(self, source_path: Path, options: dict[str, Any]) -> Iterator[dict[str, Any]]:
        encoding = _get_encoding(options)
        with Path(source_path).open("r", encoding=encoding, newline="") as f:
            yield from _iter_rows(f, options)

    def read_text(self, stream: TextIO, options: dict[str, Any] | None = None) -> Iterator[dict[str, Any]]:
        """Stream rows from an open text stream (e.g. an uploaded file)."""
        yield from _iter_rows(stream, options or {})

    def probe(self, source_path: Path, options: dict[str, Any]) -> SourceProbe:
        encoding = _get_encoding(options)
        delimiter = options.get("delimiter", ",")
        skip_rows = int(options.get("skip_rows", 0))
        quoting = _get_quoting(options)

        with Path(source_path).open("r", encoding=encoding, newline="") as f:
            for _ in range(skip_rows):
                next(f, None)
            reader = csv.DictReader(f, delimiter=delimiter, quoting=quoting)
            if reader.fieldnames:
                reader.fieldnames = [_strip_bom(n) for n in reader.fieldnames]
            columns = tuple(reader.fieldnames or ())
            sample: list[dict[str, Any]] = []
            count = 0
            for row in reader:
                count += 1
                if len(sample) < _SAMPLE_SIZE:
                    row.pop(None, None)
                    sample.append(dict(row))

        return SourceProbe(
            row_count=count,
            columns=columns,
            sample_rows=tuple(sample),
            encoding=encoding,
            detected_delimiter=delimiter,
        )
