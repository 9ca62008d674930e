"""
XLSX expense file adapter.

Supports:
  - sheet by index (0-based) or name
  - header row auto-detect (scans the first rows for expense-like column
    names) or explicit ``header_row``
  - normalizes cell values (strip, blank -> empty string); dates stay
    ``datetime``/``date`` objects

Auto-detect looks for a row containing at least 2 of: date, description,
category, amount, vendor, listing, property, memo.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Iterator

import openpyxl

_HEADER_KEYWORDS = frozenset({
    "date", "expense date", "transaction date",
    "description", "memo", "details",
    "category", "type", "account",
    "amount", "total", "cost",
    "vendor", "payee", "merchant",
    "listing", "property", "listing name", "property name",
})


def _normalize_header_cell(value: Any) -> str:
    if value is None:
        return ""
    return re.sub(r"\s+", " ", str(value)).strip()


def _cell_value(row: Any, col_idx: int) -> Any:
    """Cell value from an openpyxl row (0-based column index)."""
    if col_idx >= len(row):
        return ""
    v = row[col_idx].value
    if v is None:
        return ""
    if isinstance(v, str):
        return v.strip()
    if isinstance(v, float) and v == int(v):
        return int(v)
    return v


def _row_keywords(row: Any) -> set[str]:
    found = set()
    for c in range(min(len(row), 30)):
        v = _cell_value(row, c)
        if isinstance(v, str) and v.lower() in _HEADER_KEYWORDS:
            found.add(v.lower())
    return found


def _detect_header_row(rows: list, max_search: int = 15, min_keywords: int = 2) -> int:
    for i, row in enumerate(rows[:max_search]):
        if len(_row_keywords(row)) >= min_keywords:
            return i
    return 0


class XlsxSourceAdapter:
    """Read .xlsx files as one dict per row.

    source options:
      sheet: 0-based sheet index (int) or sheet name (str). Default: active sheet.
      header_row: 0-based header row index; auto-detected when omitted.
    """

    def read(self, source_path: Path, options: dict[str, Any]) -> Iterator[dict[str, Any]]:
        wb = openpyxl.load_workbook(source_path, read_only=True, data_only=True)
        try:
            sheet = self._get_sheet(wb, options)
            rows = list(sheet.iter_rows(min_row=1, max_row=100_000))
            if not rows:
                return

            header_idx = options.get("header_row")
            hi = int(header_idx) if header_idx is not None else _detect_header_row(rows)

            header_row = rows[hi]
            headers: list[str] = []
            for c in range(len(header_row)):
                key = _normalize_header_cell(_cell_value(header_row, c)) or f"Column_{c + 1}"
                base, n = key, 0
                while key in headers:
                    n += 1
                    key = f"{base}_{n}"
                headers.append(key)

            for row in rows[hi + 1:]:
                values = [_cell_value(row, c) for c in range(len(headers))]
                if not any(v != "" for v in values):
                    continue
                yield dict(zip(headers, values))
        finally:
            wb.close()

    def _get_sheet(self, wb: Any, options: dict[str, Any]) -> Any:
        sheet_ref = options.get("sheet")
        if sheet_ref is None:
            return wb.active
        if isinstance(sheet_ref, int):
            return wb.worksheets[sheet_ref]
        return wb[sheet_ref]
