"""
StatementCalculator -- runs the pure engines and writes their results.

Responsibility:
    One place that strings attribution, anomaly detection and fee
    calculation together, for both a fresh build (raw provider data) and a
    recompute (line items already stored on a draft, policies from its
    snapshot).  ``write_computation`` copies a result onto the ORM row.

Architecture position:
    Services.  Shared by StatementBuilder and StatementEditor.

Invariants enforced:
    - Totals always come from ``FeeCalculator.calculate``; nothing else
      writes total columns.
    - JSON columns are replaced wholesale.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from statement_config.schema import StatementConfig
from statement_engines.anomaly import AnomalyDetector, AnomalyReport
from statement_engines.attribution import AttributionResult, RevenueAttributor
from statement_engines.expenses import ExpenseCollection
from statement_engines.fees import FeeCalculator, FeeResult, exclude_cohost_reservations
from statement_kernel.domain.line_items import AttributedReservation, Expense, Reservation
from statement_kernel.domain.policy import CalculationType, EffectivePolicy
from statement_kernel.domain.values import ZERO
from statement_kernel.models.statement import Statement


@dataclass(frozen=True)
class StatementComputation:
    """Everything a statement row needs from one engine run."""

    attribution: AttributionResult
    expenses: tuple[Expense, ...]
    fees: FeeResult
    anomalies: AnomalyReport
    partial_sources: tuple[str, ...] = ()
    excluded_reservation_ids: tuple[str, ...] = ()


class StatementCalculator:
    """Engine wiring configured from a ``StatementConfig``."""

    def __init__(self, config: StatementConfig):
        self.config = config
        self.attributor = RevenueAttributor()
        self.fees = FeeCalculator(
            tech_fee_per_property=config.fees.tech_fee_per_property,
            insurance_fee_per_property=config.fees.insurance_fee_per_property,
            cleaning_round_to=config.fees.cleaning_round_to,
        )
        self.detector = AnomalyDetector(
            duplicate_payout_tolerance=config.anomaly.duplicate_payout_tolerance,
            cleaning_mismatch_threshold=config.anomaly.cleaning_mismatch_threshold,
            calendar_materiality=config.anomaly.calendar_materiality,
            expense_amount_tolerance=config.anomaly.expense_duplicate_amount_tolerance,
            expense_date_tolerance_days=config.anomaly.expense_duplicate_date_tolerance_days,
        )

    def compute(
        self,
        *,
        reservations: Sequence[Reservation],
        expenses: ExpenseCollection,
        policies: Mapping[int, EffectivePolicy],
        property_ids: Sequence[int],
        period_start: date,
        period_end: date,
        calculation_type: CalculationType,
        adjustments: Decimal = ZERO,
    ) -> StatementComputation:
        """Fresh build from provider data."""
        kept, excluded = exclude_cohost_reservations(reservations, policies)
        attribution = self.attributor.attribute(
            reservations=kept,
            period_start=period_start,
            period_end=period_end,
            calculation_type=calculation_type,
        )
        fees = self.fees.calculate(
            contributions=attribution.contributions,
            expenses=expenses.items,
            policies=policies,
            property_ids=property_ids,
            calculation_type=calculation_type,
            adjustments=adjustments,
        )
        anomalies = self.detector.detect(
            attribution=attribution,
            reservations=kept,
            expenses=expenses.items,
            policies=policies,
            revenue=fees.totals.total_revenue,
        )
        return StatementComputation(
            attribution=attribution,
            expenses=expenses.items,
            fees=fees,
            anomalies=anomalies,
            partial_sources=expenses.partial_sources,
            excluded_reservation_ids=tuple(r.reservation_id for r in excluded),
        )

    def recompute(
        self,
        *,
        contributions: Sequence[AttributedReservation],
        expenses: Sequence[Expense],
        policies: Mapping[int, EffectivePolicy],
        property_ids: Sequence[int],
        period_start: date,
        period_end: date,
        calculation_type: CalculationType,
        adjustments: Decimal,
        cancelled_reservation_count: int,
        should_convert_to_calendar: bool,
        data_error_ids: Sequence[str] = (),
        partial_sources: Sequence[str] = (),
    ) -> StatementComputation:
        """Recompute from stored line items.

        Stored contributions keep their proration.  Facts that need the raw
        provider data (cancelled count, calendar suggestion) carry over.
        """
        ordered = tuple(sorted(contributions, key=lambda c: (
            c.original.check_in, c.original.check_out, c.original.reservation_id,
        )))
        attribution = AttributionResult(
            period_start=period_start,
            period_end=period_end,
            calculation_type=calculation_type,
            contributions=ordered,
            data_error_ids=tuple(
                i for i in data_error_ids
                if any(c.original.reservation_id == i for c in ordered)
            ),
        )
        fees = self.fees.calculate(
            contributions=attribution.contributions,
            expenses=tuple(expenses),
            policies=policies,
            property_ids=property_ids,
            calculation_type=calculation_type,
            adjustments=adjustments,
        )
        duplicates = self.detector.find_duplicate_reservations(attribution.originals)
        duplicates += self.detector.find_near_duplicate_expenses(expenses)
        anomalies = AnomalyReport(
            duplicate_warnings=duplicates,
            cancelled_reservation_count=cancelled_reservation_count,
            cleaning_mismatch=self.detector.check_cleaning_mismatch(
                attribution, expenses, policies,
            ),
            should_convert_to_calendar=should_convert_to_calendar,
        )
        return StatementComputation(
            attribution=attribution,
            expenses=tuple(expenses),
            fees=fees,
            anomalies=anomalies,
            partial_sources=tuple(partial_sources),
        )


def write_computation(statement: Statement, computation: StatementComputation) -> None:
    """Copy a computation onto a statement row, replacing every derived field."""
    statement.apply_totals(computation.fees.totals)
    statement.reservations = [c.to_dict() for c in computation.attribution.contributions]
    statement.expenses = [e.to_dict() for e in computation.expenses]
    statement.duplicate_warnings = [
        w.to_dict() for w in computation.anomalies.duplicate_warnings
    ]
    mismatch = computation.anomalies.cleaning_mismatch
    statement.cleaning_mismatch_warning = mismatch.to_dict() if mismatch else None
    statement.should_convert_to_calendar = computation.anomalies.should_convert_to_calendar
    statement.cancelled_reservation_count = computation.anomalies.cancelled_reservation_count
    statement.data_error_reservation_ids = list(computation.attribution.data_error_ids)
    statement.partial_sources = list(computation.partial_sources)
