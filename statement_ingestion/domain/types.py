"""
statement_ingestion.domain.types -- Pure frozen dataclasses for expense uploads.

ZERO I/O. Imports only from statement_kernel/domain/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal


@dataclass(frozen=True)
class UploadRowError:
    """Why one source row was rejected."""

    row_number: int  # 1-indexed data row
    field: str
    message: str


@dataclass(frozen=True)
class ParsedExpenseRow:
    """A validated upload row, ready to persist."""

    row_number: int
    expense_date: date
    description: str
    category: str
    amount: Decimal
    vendor: str = ""
    listing_name: str | None = None
    property_id: int | None = None


@dataclass(frozen=True)
class ExpenseUploadResult:
    """Outcome of parsing (and optionally storing) one upload file."""

    filename: str
    rows: tuple[ParsedExpenseRow, ...] = ()
    errors: tuple[UploadRowError, ...] = ()
    stored_count: int = 0

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def unmapped_rows(self) -> tuple[ParsedExpenseRow, ...]:
        return tuple(r for r in self.rows if r.property_id is None)
