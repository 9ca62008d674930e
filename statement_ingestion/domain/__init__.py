"""Expense upload domain types."""

from statement_ingestion.domain.types import (
    ExpenseUploadResult,
    ParsedExpenseRow,
    UploadRowError,
)

__all__ = [
    "ExpenseUploadResult",
    "ParsedExpenseRow",
    "UploadRowError",
]
