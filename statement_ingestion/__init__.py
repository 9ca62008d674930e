"""
statement_ingestion -- external data in: provider guard, provider exports,
and manual expense uploads (CSV/XLSX).
"""

from statement_ingestion.guard import ProviderGuard

__all__ = ["ProviderGuard"]
