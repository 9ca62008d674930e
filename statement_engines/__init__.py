"""
Module: statement_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines used to
    build owner statements.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import statement_kernel/domain, statement_kernel.exceptions
    and statement_kernel.logging_config.
    MUST NOT import statement_services or statement_batch.

Invariants enforced:
    - Purity: engines never read the clock; dates are parameters.
    - Decimal-only arithmetic for money.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine entry points are wrapped with ``@traced_engine`` and emit
    STATEMENT_ENGINE_TRACE records.
"""

from statement_engines.anomaly import AnomalyDetector, AnomalyReport
from statement_engines.attribution import AttributionResult, RevenueAttributor, nights_in_period
from statement_engines.expenses import ExpenseCollection, billable_totals, merge_expenses
from statement_engines.fees import (
    FeeCalculator,
    FeeResult,
    ReservationFees,
    exclude_cohost_reservations,
    pass_through_cleaning_charge,
    should_add_tax,
)
from statement_engines.periods import payout_week, previous_payout_week, validate_period
from statement_engines.similarity import best_match, levenshtein_distance, similarity
from statement_engines.tracer import traced_engine

__all__ = [
    "AnomalyDetector",
    "AnomalyReport",
    "AttributionResult",
    "ExpenseCollection",
    "FeeCalculator",
    "FeeResult",
    "ReservationFees",
    "RevenueAttributor",
    "best_match",
    "billable_totals",
    "exclude_cohost_reservations",
    "levenshtein_distance",
    "merge_expenses",
    "nights_in_period",
    "pass_through_cleaning_charge",
    "payout_week",
    "previous_payout_week",
    "should_add_tax",
    "similarity",
    "traced_engine",
    "validate_period",
]
