"""
GenerationDriver -- SAVEPOINT-per-target batch statement generation.

Contract:
    ``plan()`` expands a GenerationRequest into targets.  ``run()`` creates
    a job, builds one statement per target sequentially (each in its own
    SAVEPOINT), records per-target results, and returns a report.

Architecture: statement_batch/services.  Imports from statement_batch.domain,
    statement_batch.models, statement_services and kernel services.

Invariants enforced:
    - SAVEPOINT isolation per target: one failure never aborts the batch.
    - Idempotency via UNIQUE job idempotency_key.
    - All timestamps from the injected Clock.
    - Cancellation is cooperative and checked between targets; targets
      not attempted are recorded as SKIPPED.
    - Provider failures are marked retryable, persistence conflicts and
      policy errors are not.

Non-goals:
    - Does NOT call ``session.commit()``; the caller controls boundaries.
    - Does NOT parallelize targets.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from statement_kernel.domain.clock import Clock, SystemClock
from statement_kernel.domain.policy import ListingInfo
from statement_kernel.exceptions import (
    GenerationIdempotencyError,
    GenerationJobNotFoundError,
    ProviderUnavailableError,
    StatementKernelError,
)
from statement_kernel.logging_config import LogContext, get_logger
from statement_kernel.services.listing_repository import ListingRepository
from statement_services.statement_builder import StatementBuilder, StatementRequest

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
from statement_batch.models.generation import GenerationItemModel, GenerationJobModel

logger = get_logger("batch.driver")

ProgressCallback = Callable[[BatchProgress], None]


def _by_owner(listings: list[ListingInfo]) -> dict[int | None, list[int]]:
    grouped: dict[int | None, list[int]] = {}
    for info in listings:
        grouped.setdefault(info.owner_id, []).append(info.listing_id)
    return grouped


class GenerationDriver:
    """Batch statement generation.

    Contract:
        - ``run()`` creates a RUNNING job, executes every target, and
          finishes COMPLETED, PARTIALLY_COMPLETED, FAILED or CANCELLED.
        - ``cancel_job()`` marks a PENDING/RUNNING job as CANCELLED.
        - ``get_job()`` / ``get_job_items()`` for queries.
    """

    def __init__(
        self,
        session: Session,
        builder: StatementBuilder,
        listings: ListingRepository,
        clock: Clock | None = None,
    ):
        self._session = session
        self._builder = builder
        self._listings = listings
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Planning
    # -------------------------------------------------------------------------

    def plan(self, request: GenerationRequest) -> list[GenerationTarget]:
        """Expand a request into ordered targets.

        Raises:
            ValueError: If the request is missing what its mode needs.
        """
        mode = request.mode
        inactive = request.include_inactive
        groups: list[tuple[int | None, tuple[int, ...], int | None]] = []

        if mode == SelectionMode.SINGLE:
            if len(request.property_ids) != 1:
                raise ValueError("SINGLE generation needs exactly one property id")
            pid = request.property_ids[0]
            info = self._listings.get(pid)
            owner = request.owner_id if request.owner_id is not None else (
                info.owner_id if info else None
            )
            groups.append((owner, (pid,), None))

        elif mode == SelectionMode.OWNER_PROPERTIES:
            if request.owner_id is None:
                raise ValueError("OWNER_PROPERTIES generation needs an owner id")
            ids = tuple(request.property_ids) or tuple(
                info.listing_id
                for info in self._listings.list_by_owner(request.owner_id, inactive)
            )
            if request.combined and ids:
                groups.append((request.owner_id, ids, None))
            else:
                groups.extend((request.owner_id, (pid,), None) for pid in ids)

        elif mode == SelectionMode.OWNER_TAG:
            if not request.tag:
                raise ValueError("OWNER_TAG generation needs a tag")
            tagged = self._listings.list_by_tag(request.tag, request.owner_id, inactive)
            if request.combined:
                for owner, ids in _by_owner(tagged).items():
                    groups.append((owner, tuple(ids), None))
            else:
                groups.extend((info.owner_id, (info.listing_id,), None) for info in tagged)

        elif mode == SelectionMode.GROUP:
            if request.group_id is None:
                raise ValueError("GROUP generation needs a group id")
            members = self._listings.list_by_group(request.group_id, inactive)
            if request.owner_id is not None:
                members = [m for m in members if m.owner_id == request.owner_id]
            for owner, ids in _by_owner(members).items():
                groups.append((owner, tuple(ids), request.group_id))

        elif mode == SelectionMode.ALL:
            groups.extend(
                (info.owner_id, (info.listing_id,), None)
                for info in self._listings.list_all(inactive)
            )

        return [
            GenerationTarget(item_index=i, owner_id=owner, property_ids=ids, group_id=group_id)
            for i, (owner, ids, group_id) in enumerate(groups)
        ]

    # -------------------------------------------------------------------------
    # Execute
    # -------------------------------------------------------------------------

    def run(
        self,
        request: GenerationRequest,
        actor_id: UUID,
        progress: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> GenerationReport:
        """Generate every target in ``request``.

        Raises:
            ValueError: If the request cannot be planned.
            GenerationIdempotencyError: If ``request.idempotency_key`` was
                already used.
        """
        start_time = time.monotonic()
        targets = self.plan(request)

        key = request.idempotency_key or f"generation:{uuid4()}"
        existing = self._session.execute(
            select(GenerationJobModel).where(GenerationJobModel.idempotency_key == key)
        ).scalar_one_or_none()
        if existing is not None:
            raise GenerationIdempotencyError(key, str(existing.id))

        now = self._clock.now()
        job_id = uuid4()
        job_model = GenerationJobModel.from_dto(
            GenerationJob(
                job_id=job_id,
                status=GenerationJobStatus.RUNNING,
                idempotency_key=key,
                parameters=request.to_parameters(),
                total_items=len(targets),
                started_at=now,
                created_by=actor_id,
            ),
            created_by_id=actor_id,
        )
        self._session.add(job_model)
        self._session.flush()

        with LogContext.bind(
            batch_id=job_id,
            actor_id=actor_id,
            period=f"{request.period_start}/{request.period_end}",
        ):
            logger.info(
                "generation_job_started",
                extra={
                    "job_id": str(job_id),
                    "mode": request.mode.value,
                    "idempotency_key": key,
                    "total_items": len(targets),
                },
            )

            succeeded = failed = skipped = 0
            cancelled = False
            item_results: list[GenerationItemResult] = []

            for position, target in enumerate(targets, start=1):
                if cancel_token is not None and cancel_token.is_cancelled:
                    cancelled = True
                    now_ts = self._clock.now()
                    item_result = GenerationItemResult(
                        item_index=target.item_index,
                        item_key=target.item_key,
                        status=GenerationItemStatus.SKIPPED,
                        error_code="CANCELLED",
                        started_at=now_ts,
                        completed_at=now_ts,
                    )
                else:
                    item_result = self._run_target(target, request, actor_id)

                if item_result.status.succeeded:
                    succeeded += 1
                elif item_result.status == GenerationItemStatus.SKIPPED:
                    skipped += 1
                else:
                    failed += 1
                item_results.append(item_result)

                item_model = GenerationItemModel.from_dto(
                    item_result, job_id=job_id, created_by_id=actor_id,
                )
                self._session.add(item_model)

                if progress is not None:
                    progress(BatchProgress(
                        current=position,
                        total=len(targets),
                        item_key=target.item_key,
                        status=item_result.status,
                    ))

            job_model.succeeded_items = succeeded
            job_model.failed_items = failed
            job_model.skipped_items = skipped

            if cancelled:
                job_model.status = GenerationJobStatus.CANCELLED.value
            elif failed == 0 and skipped == 0:
                job_model.status = GenerationJobStatus.COMPLETED.value
            elif succeeded == 0 and skipped == 0:
                job_model.status = GenerationJobStatus.FAILED.value
            else:
                job_model.status = GenerationJobStatus.PARTIALLY_COMPLETED.value

            completed_at = self._clock.now()
            job_model.completed_at = completed_at
            total_duration = int((time.monotonic() - start_time) * 1000)

            if failed > 0:
                job_model.error_summary = f"{failed} item(s) failed"
            elif cancelled:
                job_model.error_summary = f"Cancelled: {skipped} item(s) not attempted"

            self._session.flush()

            logger.info(
                "generation_job_finished",
                extra={
                    "job_id": str(job_id),
                    "status": job_model.status,
                    "succeeded": succeeded,
                    "failed": failed,
                    "skipped": skipped,
                    "duration_ms": total_duration,
                },
            )

            return GenerationReport(
                job_id=job_id,
                status=GenerationJobStatus(job_model.status),
                total_items=len(targets),
                succeeded=succeeded,
                failed=failed,
                skipped=skipped,
                item_results=tuple(item_results),
                started_at=now,
                completed_at=completed_at,
                duration_ms=total_duration,
            )

    def _run_target(
        self,
        target: GenerationTarget,
        request: GenerationRequest,
        actor_id: UUID,
    ) -> GenerationItemResult:
        item_start = time.monotonic()
        started_at = self._clock.now()

        savepoint = self._session.begin_nested()
        try:
            outcome = self._builder.build(
                StatementRequest(
                    property_ids=target.property_ids,
                    period_start=request.period_start,
                    period_end=request.period_end,
                    owner_id=target.owner_id,
                    group_id=target.group_id,
                    calculation_type=request.calculation_type,
                    include_inactive=request.include_inactive,
                ),
                actor_id,
            )
            savepoint.commit()
            return GenerationItemResult(
                item_index=target.item_index,
                item_key=target.item_key,
                status=GenerationItemStatus(outcome.status.value),
                statement_id=outcome.statement.statement_id,
                duration_ms=int((time.monotonic() - item_start) * 1000),
                started_at=started_at,
                completed_at=self._clock.now(),
            )
        except StatementKernelError as exc:
            savepoint.rollback()
            error_code = exc.code
            error_message = str(exc)
            retryable = isinstance(exc, ProviderUnavailableError)
        except Exception as exc:
            savepoint.rollback()
            error_code = "UNHANDLED_EXCEPTION"
            error_message = str(exc)
            retryable = False

        logger.warning(
            "generation_item_failed",
            extra={
                "item_key": target.item_key,
                "error_code": error_code,
                "error": error_message,
                "retryable": retryable,
            },
        )
        return GenerationItemResult(
            item_index=target.item_index,
            item_key=target.item_key,
            status=GenerationItemStatus.FAILED,
            error_code=error_code,
            error_message=error_message,
            retryable=retryable,
            duration_ms=int((time.monotonic() - item_start) * 1000),
            started_at=started_at,
            completed_at=self._clock.now(),
        )

    # -------------------------------------------------------------------------
    # Cancel
    # -------------------------------------------------------------------------

    def cancel_job(self, job_id: UUID, reason: str, actor_id: UUID) -> GenerationJob:
        """Cancel a PENDING or RUNNING job.

        Raises:
            GenerationJobNotFoundError: If job_id does not exist.
            ValueError: If the job already finished.
        """
        job_model = self._session.execute(
            select(GenerationJobModel)
            .where(GenerationJobModel.id == job_id)
            .with_for_update()
        ).scalar_one_or_none()

        if job_model is None:
            raise GenerationJobNotFoundError(str(job_id))

        if job_model.status not in (
            GenerationJobStatus.PENDING.value,
            GenerationJobStatus.RUNNING.value,
        ):
            raise ValueError(f"Cannot cancel job in status {job_model.status}")

        job_model.status = GenerationJobStatus.CANCELLED.value
        job_model.completed_at = self._clock.now()
        job_model.error_summary = f"Cancelled: {reason}"
        job_model.touch(actor_id)
        self._session.flush()

        logger.info(
            "generation_job_cancelled",
            extra={"job_id": str(job_id), "reason": reason},
        )
        return job_model.to_dto()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_job(self, job_id: UUID) -> GenerationJob:
        """Get a generation job by ID.

        Raises:
            GenerationJobNotFoundError: If job_id does not exist.
        """
        model = self._session.get(GenerationJobModel, job_id)
        if model is None:
            raise GenerationJobNotFoundError(str(job_id))
        return model.to_dto()

    def get_job_items(self, job_id: UUID) -> tuple[GenerationItemResult, ...]:
        """Get all item results for a generation job, in target order."""
        models = self._session.execute(
            select(GenerationItemModel)
            .where(GenerationItemModel.job_id == job_id)
            .order_by(GenerationItemModel.item_index)
        ).scalars().all()
        return tuple(m.to_dto() for m in models)
