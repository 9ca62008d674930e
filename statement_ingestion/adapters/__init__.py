"""Source adapters: expense upload files and JSON provider exports."""

from statement_ingestion.adapters.base import SourceAdapter
from statement_ingestion.adapters.csv_adapter import CsvSourceAdapter
from statement_ingestion.adapters.json_adapter import JsonAccountingProvider, JsonBookingProvider
from statement_ingestion.adapters.xlsx_adapter import XlsxSourceAdapter

__all__ = [
    "CsvSourceAdapter",
    "JsonAccountingProvider",
    "JsonBookingProvider",
    "SourceAdapter",
    "XlsxSourceAdapter",
]
