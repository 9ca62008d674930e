"""
Expense file adapter protocol.

Contract:
    SourceAdapter.read() yields one dict per source row (streaming), keyed
    by the file's own column headers.

Architecture: statement_ingestion/adapters. File I/O only, no DB imports.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterator, Protocol, runtime_checkable


@runtime_checkable
class SourceAdapter(Protocol):
    """Protocol for reading tabular expense files into row dicts."""

    def read(self, source_path: Path, options: dict[str, Any]) -> Iterator[dict[str, Any]]:
        """Yield one dict per data row."""
        ...
