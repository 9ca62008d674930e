"""
Expense upload service: read -> validate -> store.

Reads a CSV or XLSX file through a source adapter, maps flexible column
headers onto expense fields, validates each row, resolves the listing name
to a property id, and stores valid rows as ``UploadedExpense``.

Failure modes:
    - Unsupported extension or unreadable file -> ExpenseUploadError.
    - No recognisable amount or date column -> ExpenseUploadError.
    - Bad individual rows are reported in ``ExpenseUploadResult.errors``
      and never stored.  Good rows are stored regardless.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import date, datetime
from pathlib import Path
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from statement_kernel.domain.values import to_decimal
from statement_kernel.exceptions import ExpenseUploadError
from statement_kernel.logging_config import get_logger
from statement_kernel.models.uploaded_expense import UploadedExpense

from statement_ingestion.adapters.base import SourceAdapter
from statement_ingestion.adapters.csv_adapter import CsvSourceAdapter
from statement_ingestion.adapters.xlsx_adapter import XlsxSourceAdapter
from statement_ingestion.domain.types import (
    ExpenseUploadResult,
    ParsedExpenseRow,
    UploadRowError,
)

logger = get_logger("ingestion.upload_service")

# Canonical field -> accepted header spellings (normalized: lower-case,
# single spaces, no punctuation).
COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "expense_date": ("date", "expense date", "transaction date", "txn date", "paid on"),
    "description": ("description", "memo", "details", "item", "notes"),
    "category": ("category", "type", "expense type", "account"),
    "amount": ("amount", "total", "cost", "expense amount", "price"),
    "vendor": ("vendor", "payee", "merchant", "supplier"),
    "listing_name": ("listing", "property", "listing name", "property name", "unit"),
}

_REQUIRED = ("expense_date", "amount")

_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y", "%d-%b-%Y", "%b %d, %Y")


def _normalize_header(header: str) -> str:
    text = re.sub(r"[^a-z0-9 ]", " ", header.lower())
    return " ".join(text.split())


def resolve_columns(headers: list[str]) -> dict[str, str]:
    """Map canonical field names to the file's actual header names."""
    normalized = {_normalize_header(h): h for h in headers if h}
    resolved: dict[str, str] = {}
    for field_name, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in normalized:
                resolved[field_name] = normalized[alias]
                break
    return resolved


def parse_upload_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognised date {text!r}")


def _text(row: dict[str, Any], columns: dict[str, str], field_name: str) -> str:
    header = columns.get(field_name)
    if header is None:
        return ""
    value = row.get(header)
    return "" if value is None else str(value).strip()


class ExpenseUploadService:
    """Parses and stores manually uploaded expense files.

    Contract:
        ``resolve_property`` maps a listing name from the file to a property
        id (or None).  ``default_property_id`` is used when the file has no
        listing column or the cell is blank.
    """

    def __init__(
        self,
        session: Session,
        resolve_property: Callable[[str], int | None] | None = None,
        adapters: dict[str, SourceAdapter] | None = None,
    ):
        self.session = session
        self._resolve_property = resolve_property
        self._adapters: dict[str, SourceAdapter] = adapters or {
            ".csv": CsvSourceAdapter(),
            ".xlsx": XlsxSourceAdapter(),
        }

    def _adapter_for(self, path: Path) -> SourceAdapter:
        adapter = self._adapters.get(path.suffix.lower())
        if adapter is None:
            raise ExpenseUploadError(path.name, f"unsupported file type {path.suffix!r}")
        return adapter

    def parse(
        self,
        path: Path | str,
        options: dict[str, Any] | None = None,
        default_property_id: int | None = None,
    ) -> ExpenseUploadResult:
        path = Path(path)
        adapter = self._adapter_for(path)
        try:
            raw_rows = list(adapter.read(path, options or {}))
        except (OSError, ValueError, KeyError, IndexError) as exc:
            raise ExpenseUploadError(path.name, str(exc)) from exc

        if not raw_rows:
            return ExpenseUploadResult(filename=path.name)

        columns = resolve_columns(list(raw_rows[0].keys()))
        missing = [f for f in _REQUIRED if f not in columns]
        if missing:
            raise ExpenseUploadError(path.name, f"missing required column(s): {', '.join(missing)}")

        rows: list[ParsedExpenseRow] = []
        errors: list[UploadRowError] = []
        for index, raw in enumerate(raw_rows, start=1):
            parsed = self._parse_row(index, raw, columns, default_property_id, errors)
            if parsed is not None:
                rows.append(parsed)

        logger.info(
            "expense_upload_parsed",
            extra={
                "upload_filename": path.name,
                "row_count": len(raw_rows),
                "valid_count": len(rows),
                "error_count": len(errors),
            },
        )
        return ExpenseUploadResult(filename=path.name, rows=tuple(rows), errors=tuple(errors))

    def _parse_row(
        self,
        index: int,
        raw: dict[str, Any],
        columns: dict[str, str],
        default_property_id: int | None,
        errors: list[UploadRowError],
    ) -> ParsedExpenseRow | None:
        raw_date = raw.get(columns["expense_date"])
        raw_amount = raw.get(columns["amount"])
        row_errors: list[UploadRowError] = []

        expense_date = None
        try:
            if raw_date in (None, ""):
                raise ValueError("Missing date")
            expense_date = parse_upload_date(raw_date)
        except ValueError as exc:
            row_errors.append(UploadRowError(index, "expense_date", str(exc)))

        amount = None
        try:
            amount = abs(to_decimal(raw_amount))
        except ValueError as exc:
            row_errors.append(UploadRowError(index, "amount", str(exc)))

        if row_errors:
            errors.extend(row_errors)
            return None

        listing_name = _text(raw, columns, "listing_name") or None
        property_id = default_property_id
        if listing_name and self._resolve_property is not None:
            property_id = self._resolve_property(listing_name)
            if property_id is None:
                property_id = default_property_id

        return ParsedExpenseRow(
            row_number=index,
            expense_date=expense_date,
            description=_text(raw, columns, "description"),
            category=_text(raw, columns, "category"),
            amount=amount,
            vendor=_text(raw, columns, "vendor"),
            listing_name=listing_name,
            property_id=property_id,
        )

    def store(self, result: ExpenseUploadResult, actor_id: UUID) -> ExpenseUploadResult:
        """Persist every valid row.  Caller owns the transaction."""
        for row in result.rows:
            self.session.add(UploadedExpense(
                property_id=row.property_id,
                listing_name=row.listing_name,
                expense_date=row.expense_date,
                description=row.description,
                category=row.category,
                vendor=row.vendor or None,
                amount=row.amount,
                hidden=False,
                upload_filename=result.filename,
                row_number=row.row_number,
                created_by_id=actor_id,
            ))
        self.session.flush()
        logger.info(
            "expense_upload_stored",
            extra={
                "upload_filename": result.filename,
                "stored_count": len(result.rows),
                "unmapped_count": len(result.unmapped_rows),
            },
        )
        return ExpenseUploadResult(
            filename=result.filename,
            rows=result.rows,
            errors=result.errors,
            stored_count=len(result.rows),
        )

    def import_file(
        self,
        path: Path | str,
        actor_id: UUID,
        options: dict[str, Any] | None = None,
        default_property_id: int | None = None,
    ) -> ExpenseUploadResult:
        return self.store(self.parse(path, options, default_property_id), actor_id)
