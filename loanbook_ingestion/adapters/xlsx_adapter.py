"""
XLSX source adapter for branch ledger workbooks.

Supports flexible layout:
  - sheet by index (0-based) or name
  - header row by index or auto-detect (scans first rows for loan-extract column names)
  - skip_rows before header
  - renders every cell as a string (dates as ISO, whole floats without ".0")

Auto-detect looks for a row containing at least 2 of the keywords below, so
branch exports with a title block above the table still line up.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from itertools import islice
from pathlib import Path
from typing import Any, Iterator

import openpyxl

from loanbook_ingestion.adapters.base import SourceProbe

_HEADER_KEYWORDS = frozenset({
    "full name", "borrower name", "borrower mobile", "borrower landline",
    "borrower email", "borrower address", "loan status", "loan status name",
    "principal amount", "amortization due", "penalty amount",
    "total interest balance", "next due date", "balance", "client balance",
    "outstanding balance", "statement date", "branch",
})

_HEADER_SCAN_ROWS = 15
_MIN_KEYWORDS = 2
_SAMPLE_SIZE = 5


def _normalize_header_cell(value: Any) -> str:
    if value is None:
        return ""
    return re.sub(r"\s+", " ", str(value)).strip()


def _render(value: Any) -> str:
    """Render a cell value the way a CSV export of the same sheet would."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        if value.time() == datetime.min.time():
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value).strip()


def _cell_value(row: tuple, col_idx: int) -> str:
    if col_idx >= len(row):
        return ""
    return _render(row[col_idx])


def _row_keywords(row: tuple) -> set[str]:
    found = set()
    for value in row:
        text = _normalize_header_cell(value).lower()
        if text in _HEADER_KEYWORDS:
            found.add(text)
    return found


def _detect_header_row(rows: list[tuple]) -> int:
    """Return 0-based index of the first row that looks like a loan-extract header."""
    for i, row in enumerate(rows[:_HEADER_SCAN_ROWS]):
        if len(_row_keywords(row)) >= _MIN_KEYWORDS:
            return i
    return 0


def _build_headers(header_row: tuple) -> list[str]:
    last = 0
    for c in range(len(header_row)):
        if _cell_value(header_row, c):
            last = c + 1
    headers: list[str] = []
    for c in range(max(last, 1)):
        key = _normalize_header_cell(_cell_value(header_row, c)) or f"Column_{c + 1}"
        base = key
        cnt = 0
        while key in headers:
            cnt += 1
            key = f"{base}_{cnt}"
        headers.append(key)
    return headers


class XlsxSourceAdapter:
    """
    Read .xlsx files as one dict per row.

    options:
      sheet: 0-based sheet index (int) or sheet name (str). Default: active sheet.
      skip_rows: rows to skip at top of sheet before header/data. Default: 0.
      header_row: 0-based row index (after skip_rows) to use as header.
        Used when auto_detect_header is false.
      auto_detect_header: if true (default), scan the first rows for a header.
    """

    def _get_sheet(self, wb: Any, options: dict[str, Any]) -> Any:
        sheet_ref = options.get("sheet")
        if sheet_ref is None:
            return wb.active
        if isinstance(sheet_ref, int):
            return wb.worksheets[sheet_ref]
        return wb[sheet_ref]

    def _header_index(self, head: list[tuple], options: dict[str, Any]) -> int:
        header_row_idx = options.get("header_row")
        if not options.get("auto_detect_header", True):
            return int(header_row_idx or 0)
        return _detect_header_row(head)

    def _rows(self, source_path: Path, options: dict[str, Any]) -> Iterator[tuple[list[str], tuple | None]]:
        """Yield (headers, row) pairs; row is None only for an empty sheet."""
        wb = openpyxl.load_workbook(source_path, read_only=True, data_only=True)
        try:
            sheet = self._get_sheet(wb, options)
            skip_rows = int(options.get("skip_rows", 0))
            rows = sheet.iter_rows(min_row=1 + skip_rows, values_only=True)
            head = list(islice(rows, _HEADER_SCAN_ROWS))
            if not head:
                return
            hi = self._header_index(head, options)
            headers = _build_headers(head[hi])
            for row in head[hi + 1:]:
                yield headers, row
            for row in rows:
                yield headers, row
        finally:
            wb.close()

    def read(self, source_path: Path, options: dict[str, Any]) -> Iterator[dict[str, Any]]:
        for headers, row in self._rows(source_path, options):
            vals = [_cell_value(row, c) for c in range(len(headers))]
            if not any(vals):
                continue
            yield dict(zip(headers, vals))

    def probe(self, source_path: Path, options: dict[str, Any]) -> SourceProbe:
        columns: tuple[str, ...] = ()
        sample: list[dict[str, Any]] = []
        count = 0
        for row in self.read(source_path, options):
            if not columns:
                columns = tuple(row)
            count += 1
            if len(sample) < _SAMPLE_SIZE:
                sample.append(row)
        return SourceProbe(
            row_count=count,
            columns=columns,
            sample_rows=tuple(sample),
            encoding=None,
            detected_delimiter=None,
        )
