"""
StatementBuilder -- generates (or regenerates) one owner statement.

Responsibility:
    Orchestrates policy resolution, reservation fetch, attribution, expense
    collection, anomaly detection and fee calculation for one owner,
    property set and period, and persists the result as a draft.

Architecture position:
    Services -- imperative shell around the pure engines.

Invariants enforced:
    - One statement per idempotency key (owner, property set or group,
      period).  Re-running over an existing draft overwrites it
      wholesale; re-running over a non-draft returns ALREADY_EXISTS and
      changes nothing.
    - Overwriting a never-finalized draft (or calling ``reconfigure``)
      re-resolves live listing policy and replaces the snapshot.  A draft
      reverted after finalization keeps its frozen snapshot on rebuild;
      only ``reconfigure`` replaces it.
    - Flush-only: never commits or rolls back.

Failure modes:
    - InvalidPeriodError: period end before start.
    - PolicyNotFoundError: unknown or (unless included) inactive listing.
    - ProviderUnavailableError: booking source unreachable, or every
      expense source unreachable.
    - ProviderDataError: booking source answered with unusable data.
    - PersistenceConflictError: a concurrent writer created or changed the
      same statement.
    - StatementNotEditableError: ``reconfigure`` on a non-draft.

Audit relevance:
    ``statement_built`` records key, status, totals and actor.  The
    persisted policy snapshot ties the totals to the settings used.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from statement_config.schema import StatementConfig
from statement_engines.periods import validate_period
from statement_ingestion.guard import ProviderGuard
from statement_kernel.domain.clock import Clock, SystemClock
from statement_kernel.domain.collaborators import BookingProvider
from statement_kernel.domain.dtos import StatementInfo, StatementStatus
from statement_kernel.domain.line_items import Reservation
from statement_kernel.domain.policy import (
    CalculationType,
    EffectivePolicy,
    policies_from_snapshot,
    snapshot_policies,
)
from statement_kernel.domain.tags import serialize_tags
from statement_kernel.logging_config import LogContext, get_logger
from statement_kernel.models.statement import Statement, statement_idempotency_key
from statement_kernel.services.listing_repository import ListingRepository
from statement_kernel.services.policy_resolver import PolicyResolver

from statement_services.calculation import (
    StatementCalculator,
    StatementComputation,
    write_computation,
)
from statement_services.expense_collector import ExpenseCollector
from statement_services.persistence import flush_statement, load_draft_for_update

logger = get_logger("services.statement_builder")


class BuildStatus(str, Enum):
    """What ``build`` did."""

    CREATED = "created"
    REBUILT = "rebuilt"  # Existing draft overwritten
    ALREADY_EXISTS = "already_exists"  # Non-draft left untouched


@dataclass(frozen=True)
class StatementRequest:
    """Inputs identifying one statement.

    ``property_ids`` is normalized to a sorted, de-duplicated tuple.  More
    than one id makes a combined statement.
    """

    property_ids: tuple[int, ...]
    period_start: date
    period_end: date
    owner_id: int | None = None
    group_id: int | None = None
    calculation_type: CalculationType | None = None
    as_of: date | None = None
    include_inactive: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "property_ids", tuple(sorted(set(self.property_ids))))
        if not self.property_ids:
            raise ValueError("A statement needs at least one property")

    @property
    def idempotency_key(self) -> str:
        return statement_idempotency_key(
            self.owner_id, self.property_ids, self.period_start, self.period_end, self.group_id,
        )


@dataclass(frozen=True)
class BuildOutcome:
    status: BuildStatus
    statement: StatementInfo
    excluded_reservation_ids: tuple[str, ...] = field(default=())

    @property
    def already_exists(self) -> bool:
        return self.status == BuildStatus.ALREADY_EXISTS


class StatementBuilder:
    """Builds and persists draft statements."""

    def __init__(
        self,
        session: Session,
        listings: ListingRepository,
        booking: BookingProvider,
        expenses: ExpenseCollector,
        config: StatementConfig,
        clock: Clock | None = None,
        guard: ProviderGuard | None = None,
    ):
        self.session = session
        self._listings = listings
        self._resolver = PolicyResolver(listings)
        self._booking = booking
        self._expenses = expenses
        self._calculator = StatementCalculator(config)
        self._clock = clock or SystemClock()
        self._guard = guard or ProviderGuard.from_config(config.providers)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _find_existing(self, key: str) -> Statement | None:
        return self.session.execute(
            select(Statement).where(Statement.idempotency_key == key).with_for_update()
        ).scalar_one_or_none()

    def _statement_calculation_type(
        self, request: StatementRequest, policies: Mapping[int, EffectivePolicy],
    ) -> CalculationType:
        if request.calculation_type is not None:
            return request.calculation_type
        if request.group_id is not None:
            group = self._listings.get_group(request.group_id)
            if group is not None:
                return group.calculation_type
        return policies[request.property_ids[0]].calculation_type

    def _fetch_reservations(self, request: StatementRequest) -> list[Reservation]:
        fetched = self._guard.call(
            self._booking.name,
            self._booking.fetch_reservations,
            request.property_ids,
            request.period_start,
            request.period_end,
        )
        wanted = set(request.property_ids)
        return [r for r in fetched if r.property_id in wanted]

    def _compute(
        self,
        request: StatementRequest,
        policies: Mapping[int, EffectivePolicy],
        calculation_type: CalculationType,
    ) -> StatementComputation:
        reservations = self._fetch_reservations(request)
        expenses = self._expenses.collect(
            request.property_ids, request.period_start, request.period_end,
        )
        return self._calculator.compute(
            reservations=reservations,
            expenses=expenses,
            policies=policies,
            property_ids=request.property_ids,
            period_start=request.period_start,
            period_end=request.period_end,
            calculation_type=calculation_type,
        )

    def _internal_notes(self, property_ids: tuple[int, ...]) -> str | None:
        notes = []
        for pid in property_ids:
            info = self._listings.get(pid)
            if info is not None and info.internal_notes and info.internal_notes.strip():
                notes.append(f"[{info.label}]: {info.internal_notes.strip()}")
        return "\n\n".join(notes) or None

    def _populate(
        self,
        statement: Statement,
        request: StatementRequest,
        policies: Mapping[int, EffectivePolicy],
        calculation_type: CalculationType,
        computation: StatementComputation,
        actor_id: UUID,
        keep_snapshot: bool = False,
    ) -> None:
        first = self._listings.get(request.property_ids[0])
        statement.owner_id = request.owner_id if request.owner_id is not None else (
            first.owner_id if first else None
        )
        statement.owner_name = (first.owner_name if first else None) or ""
        statement.property_ids = list(request.property_ids)
        statement.property_id = request.property_ids[0] if len(request.property_ids) == 1 else None
        statement.is_combined_statement = len(request.property_ids) > 1
        statement.week_start_date = request.period_start
        statement.week_end_date = request.period_end
        statement.calculation_type = calculation_type.value
        statement.status = StatementStatus.DRAFT.value

        write_computation(statement, computation)
        if not keep_snapshot:
            statement.internal_notes = self._internal_notes(request.property_ids)
            statement.listing_settings_snapshot = snapshot_policies(dict(policies))
            statement.snapshot_frozen_at = None

        group = self._listings.get_group(request.group_id) if request.group_id else None
        statement.group_id = request.group_id
        statement.group_name = group.name if group else None
        statement.group_tags = serialize_tags(group.tags) if group and group.tags else None

        statement.clear_payout()
        statement.touch(actor_id)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def build(self, request: StatementRequest, actor_id: UUID) -> BuildOutcome:
        key = request.idempotency_key
        with LogContext.bind(
            actor_id=actor_id,
            period=f"{request.period_start}/{request.period_end}",
            listing_id=request.property_ids[0] if len(request.property_ids) == 1 else None,
        ):
            validate_period(request.period_start, request.period_end)

            existing = self._find_existing(key)
            if existing is not None and existing.status != StatementStatus.DRAFT.value:
                logger.info(
                    "statement_already_exists",
                    extra={
                        "idempotency_key": key,
                        "statement_id": str(existing.id),
                        "status": existing.status,
                    },
                )
                return BuildOutcome(BuildStatus.ALREADY_EXISTS, existing.to_dto())

            frozen = existing is not None and existing.snapshot_frozen_at is not None
            if frozen:
                # Reverted after finalization: only reconfigure may replace the snapshot
                policies = policies_from_snapshot(existing.listing_settings_snapshot)
                calculation_type = CalculationType(existing.calculation_type)
            else:
                as_of = request.as_of or self._clock.today()
                policies = self._resolver.resolve_many(
                    request.property_ids, as_of, request.include_inactive, request.calculation_type,
                )
                calculation_type = self._statement_calculation_type(request, policies)
            computation = self._compute(request, policies, calculation_type)

            if existing is None:
                statement = Statement(
                    idempotency_key=key,
                    status=StatementStatus.DRAFT.value,
                    created_by_id=actor_id,
                )
                self.session.add(statement)
                status = BuildStatus.CREATED
            else:
                statement = existing
                status = BuildStatus.REBUILT

            self._populate(
                statement, request, policies, calculation_type, computation, actor_id,
                keep_snapshot=frozen,
            )
            flush_statement(self.session, key)

            logger.info(
                "statement_built",
                extra={
                    "idempotency_key": key,
                    "statement_id": str(statement.id),
                    "build_status": status.value,
                    "snapshot_frozen": frozen,
                    "calculation_type": calculation_type.value,
                    "reservation_count": len(computation.attribution.contributions),
                    "expense_count": len(computation.expenses),
                    "owner_payout": statement.owner_payout,
                    "partial_sources": list(computation.partial_sources),
                },
            )
            return BuildOutcome(
                status,
                statement.to_dto(),
                excluded_reservation_ids=computation.excluded_reservation_ids,
            )

    def reconfigure(
        self,
        statement_id: UUID,
        actor_id: UUID,
        as_of: date | None = None,
        expected_version: int | None = None,
    ) -> StatementInfo:
        """Rebuild a draft from live listing policy, replacing its snapshot."""
        with LogContext.bind(statement_id=str(statement_id), actor_id=str(actor_id)):
            statement = load_draft_for_update(self.session, statement_id, expected_version)
            request = StatementRequest(
                property_ids=tuple(int(p) for p in statement.property_ids),
                period_start=statement.week_start_date,
                period_end=statement.week_end_date,
                owner_id=statement.owner_id,
                group_id=statement.group_id,
                calculation_type=CalculationType(statement.calculation_type),
                as_of=as_of,
                include_inactive=True,
            )
            policies = self._resolver.resolve_many(
                request.property_ids,
                as_of or self._clock.today(),
                include_inactive=True,
                calculation_type=request.calculation_type,
            )
            computation = self._compute(request, policies, request.calculation_type)
            self._populate(
                statement, request, policies, request.calculation_type, computation, actor_id,
            )
            flush_statement(self.session, str(statement_id))

            logger.info(
                "statement_reconfigured",
                extra={
                    "statement_id": str(statement_id),
                    "owner_payout": statement.owner_payout,
                    "version": statement.version,
                },
            )
            return statement.to_dto()
