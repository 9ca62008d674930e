"""Ingestion services."""

from statement_ingestion.services.upload_service import ExpenseUploadService, resolve_columns

__all__ = ["ExpenseUploadService", "resolve_columns"]
