"""Batch generation domain types."""

from statement_batch.domain.types import (
    BatchProgress,
    CancellationToken,
    GenerationItemResult,
    GenerationItemStatus,
    GenerationJob,
    GenerationJobStatus,
    GenerationReport,
    GenerationRequest,
    GenerationTarget,
    SelectionMode,
)

__all__ = [
    "BatchProgress",
    "CancellationToken",
    "GenerationItemResult",
    "GenerationItemStatus",
    "GenerationJob",
    "GenerationJobStatus",
    "GenerationReport",
    "GenerationRequest",
    "GenerationTarget",
    "SelectionMode",
]
