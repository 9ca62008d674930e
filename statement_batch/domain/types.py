"""
statement_batch.domain.types -- Pure frozen dataclasses for batch generation.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.

Invariants enforced:
    - All DTOs are frozen (immutable).
    - GenerationJob carries an idempotency_key for uniqueness.
    - Item results carry ``retryable`` so callers can re-run only the
      failures that are worth re-running.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from statement_kernel.domain.policy import CalculationType


# =============================================================================
# Status enums
# =============================================================================


class GenerationJobStatus(str, Enum):
    """Job-level lifecycle status."""

    PENDING = "pending"  # Created, not yet started
    RUNNING = "running"  # Execution in progress
    COMPLETED = "completed"  # Every target produced a statement
    FAILED = "failed"  # No target produced a statement
    CANCELLED = "cancelled"  # Cancelled before or during execution
    PARTIALLY_COMPLETED = "partially_completed"  # Some targets failed or were skipped


class GenerationItemStatus(str, Enum):
    """Per-target outcome within a generation job."""

    CREATED = "created"  # New draft statement
    REBUILT = "rebuilt"  # Existing draft overwritten
    ALREADY_EXISTS = "already_exists"  # Non-draft statement left alone
    FAILED = "failed"
    SKIPPED = "skipped"  # Not attempted (cancelled)

    @property
    def succeeded(self) -> bool:
        return self in (
            GenerationItemStatus.CREATED,
            GenerationItemStatus.REBUILT,
            GenerationItemStatus.ALREADY_EXISTS,
        )


class SelectionMode(str, Enum):
    """How a generation request picks its targets."""

    SINGLE = "single"  # One property
    OWNER_PROPERTIES = "owner_properties"  # Explicit property list for one owner
    OWNER_TAG = "owner_tag"  # Every listing with a tag (optionally one owner)
    GROUP = "group"  # Every listing in a group, one combined statement per owner
    ALL = "all"  # Every active listing


# =============================================================================
# Request / target DTOs
# =============================================================================


@dataclass(frozen=True)
class GenerationRequest:
    """What to generate.

    ``combined`` makes one statement for all selected properties of an
    owner instead of one per property (OWNER_PROPERTIES and OWNER_TAG).
    """

    mode: SelectionMode
    period_start: date
    period_end: date
    owner_id: int | None = None
    property_ids: tuple[int, ...] = ()
    tag: str | None = None
    group_id: int | None = None
    calculation_type: CalculationType | None = None
    combined: bool = False
    include_inactive: bool = False
    idempotency_key: str | None = None

    def to_parameters(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "owner_id": self.owner_id,
            "property_ids": list(self.property_ids),
            "tag": self.tag,
            "group_id": self.group_id,
            "calculation_type": self.calculation_type.value if self.calculation_type else None,
            "combined": self.combined,
            "include_inactive": self.include_inactive,
        }


@dataclass(frozen=True)
class GenerationTarget:
    """One statement to generate."""

    item_index: int
    owner_id: int | None
    property_ids: tuple[int, ...]
    group_id: int | None = None

    @property
    def item_key(self) -> str:
        scope = f"group-{self.group_id}" if self.group_id is not None else "+".join(
            str(p) for p in self.property_ids
        )
        owner = "all" if self.owner_id is None else str(self.owner_id)
        return f"{owner}:{scope}"


# =============================================================================
# Job / result DTOs
# =============================================================================


@dataclass(frozen=True)
class GenerationJob:
    """Immutable snapshot of a generation job."""

    job_id: UUID
    status: GenerationJobStatus
    idempotency_key: str
    parameters: dict[str, Any] = field(default_factory=dict)
    total_items: int = 0
    succeeded_items: int = 0
    failed_items: int = 0
    skipped_items: int = 0
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_by: UUID | None = None
    error_summary: str | None = None


@dataclass(frozen=True)
class GenerationItemResult:
    """Immutable result of generating one target.

    Each target runs in its own SAVEPOINT: a failure rolls back only that
    target's writes.
    """

    item_index: int
    item_key: str
    status: GenerationItemStatus
    statement_id: UUID | None = None
    error_code: str | None = None
    error_message: str | None = None
    retryable: bool = False
    duration_ms: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True)
class GenerationReport:
    """Immutable result of running a generation job."""

    job_id: UUID
    status: GenerationJobStatus
    total_items: int
    succeeded: int
    failed: int
    skipped: int
    item_results: tuple[GenerationItemResult, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0

    @property
    def retryable_failures(self) -> tuple[GenerationItemResult, ...]:
        return tuple(r for r in self.item_results if r.retryable)


@dataclass(frozen=True)
class BatchProgress:
    """Progress notification: ``current`` of ``total`` targets processed."""

    current: int
    total: int
    item_key: str = ""
    status: GenerationItemStatus | None = None


class CancellationToken:
    """Cooperative cancellation flag, checked between targets."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()
