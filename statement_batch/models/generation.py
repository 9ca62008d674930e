"""
ORM models for batch generation persistence.

Contract:
    GenerationJobModel and GenerationItemModel persist job state and
    per-target results.  Each has ``to_dto()`` / ``from_dto()`` round-trip
    methods.

Architecture: statement_batch/models. Imports from statement_kernel.db.base only.

Invariants enforced:
    - ``idempotency_key`` is UNIQUE on GenerationJobModel.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from statement_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from statement_batch.domain.types import GenerationItemResult, GenerationJob


class GenerationJobModel(TrackedBase):
    """Persistent generation job record."""

    __tablename__ = "generation_jobs"

    __table_args__ = (
        Index("ix_generation_jobs_status", "status"),
        Index("ix_generation_jobs_created_at", "created_at"),
    )

    status: Mapped[str] = mapped_column(String(50), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    parameters: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    total_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    succeeded_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    error_summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["GenerationItemModel"]] = relationship(
        "GenerationItemModel",
        back_populates="job",
        foreign_keys="GenerationItemModel.job_id",
    )

    def to_dto(self) -> GenerationJob:
        from statement_batch.domain.types import GenerationJob, GenerationJobStatus

        return GenerationJob(
            job_id=self.id,
            status=GenerationJobStatus(self.status),
            idempotency_key=self.idempotency_key,
            parameters=self.parameters or {},
            total_items=self.total_items,
            succeeded_items=self.succeeded_items,
            failed_items=self.failed_items,
            skipped_items=self.skipped_items,
            created_at=self.created_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
            created_by=self.created_by_id,
            error_summary=self.error_summary,
        )

    @classmethod
    def from_dto(cls, dto: GenerationJob, created_by_id: UUID) -> GenerationJobModel:
        return cls(
            id=dto.job_id,
            status=dto.status.value,
            idempotency_key=dto.idempotency_key,
            parameters=dto.parameters or None,
            total_items=dto.total_items,
            succeeded_items=dto.succeeded_items,
            failed_items=dto.failed_items,
            skipped_items=dto.skipped_items,
            started_at=dto.started_at,
            completed_at=dto.completed_at,
            error_summary=dto.error_summary,
            created_by_id=created_by_id,
            updated_by_id=None,
        )


class GenerationItemModel(TrackedBase):
    """Per-target result within a generation job."""

    __tablename__ = "generation_items"

    __table_args__ = (
        Index("ix_generation_items_job_status", "job_id", "status"),
        Index("ix_generation_items_item_key", "item_key"),
    )

    job_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("generation_jobs.id", ondelete="CASCADE"),
        nullable=False,
    )
    item_index: Mapped[int] = mapped_column(Integer, nullable=False)
    item_key: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    statement_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retryable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    duration_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    job: Mapped["GenerationJobModel"] = relationship(
        "GenerationJobModel",
        back_populates="items",
        foreign_keys=[job_id],
    )

    def to_dto(self) -> GenerationItemResult:
        from statement_batch.domain.types import GenerationItemResult, GenerationItemStatus

        return GenerationItemResult(
            item_index=self.item_index,
            item_key=self.item_key,
            status=GenerationItemStatus(self.status),
            statement_id=self.statement_id,
            error_code=self.error_code,
            error_message=self.error_message,
            retryable=self.retryable,
            duration_ms=self.duration_ms,
            started_at=self.started_at,
            completed_at=self.completed_at,
        )

    @classmethod
    def from_dto(
        cls, dto: GenerationItemResult, job_id: UUID, created_by_id: UUID,
    ) -> GenerationItemModel:
        return cls(
            job_id=job_id,
            item_index=dto.item_index,
            item_key=dto.item_key,
            status=dto.status.value,
            statement_id=dto.statement_id,
            error_code=dto.error_code,
            error_message=dto.error_message,
            retryable=dto.retryable,
            duration_ms=dto.duration_ms,
            started_at=dto.started_at,
            completed_at=dto.completed_at,
            created_by_id=created_by_id,
            updated_by_id=None,
        )
