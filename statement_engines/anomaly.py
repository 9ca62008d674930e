"""
statement_engines.anomaly -- Informational anomaly detection for statements.

Responsibility:
    Flag conditions a human reviewer should look at before a statement is
    finalized:

    * duplicate reservations (same guest, overlapping stay, near-equal
      gross payout), clustered;
    * near-duplicate expenses across the synced and uploaded sources;
    * cancelled reservations touching the period (count only);
    * cleaning-expense mismatch against the default cleaning fee for
      pass-through listings;
    * a suggestion to switch a checkout-mode statement to calendar mode.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Uses the revenue
    attributor to evaluate the calendar-mode alternative.

Invariants enforced:
    - Anomalies never block generation or finalization; the detector only
      reports.
    - The proration suggestion is advisory; the detector never changes the
      calculation type.
    - Every threshold is injected by the caller.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from statement_engines.attribution import AttributionResult, RevenueAttributor
from statement_engines.tracer import traced_engine
from statement_kernel.domain.dtos import CleaningMismatchWarning, DuplicateWarning
from statement_kernel.domain.line_items import Expense, Reservation
from statement_kernel.domain.policy import CalculationType, EffectivePolicy
from statement_kernel.domain.values import ZERO, round_money
from statement_kernel.logging_config import get_logger

logger = get_logger("engines.anomaly")

_RATIO = Decimal("0.0001")


def _guest_key(name: str) -> str:
    return " ".join(name.split()).lower()


def _stays_overlap(a: Reservation, b: Reservation) -> bool:
    if a.check_in == b.check_in and a.check_out == b.check_out:
        return True
    return a.check_in < b.check_out and b.check_in < a.check_out


class _UnionFind:
    def __init__(self, size: int):
        self.parent = list(range(size))

    def find(self, i: int) -> int:
        while self.parent[i] != i:
            self.parent[i] = self.parent[self.parent[i]]
            i = self.parent[i]
        return i

    def union(self, a: int, b: int) -> None:
        ra, rb = self.find(a), self.find(b)
        if ra != rb:
            self.parent[max(ra, rb)] = min(ra, rb)


@dataclass(frozen=True)
class AnomalyReport:
    """All anomaly findings for one statement build."""

    duplicate_warnings: tuple[DuplicateWarning, ...] = ()
    cancelled_reservation_count: int = 0
    cleaning_mismatch: CleaningMismatchWarning | None = None
    should_convert_to_calendar: bool = False

    @property
    def has_findings(self) -> bool:
        return bool(
            self.duplicate_warnings
            or self.cancelled_reservation_count
            or self.cleaning_mismatch
            or self.should_convert_to_calendar
        )


class AnomalyDetector:
    """Detects statement anomalies.

    Contract:
        Thresholds are fixed at construction.  ``detect`` is pure.

    Non-goals:
        Does not decide whether a statement may be finalized.
    """

    def __init__(
        self,
        duplicate_payout_tolerance: Decimal = Decimal("0.00"),
        cleaning_mismatch_threshold: Decimal = Decimal("0.10"),
        calendar_materiality: Decimal = Decimal("0.01"),
        expense_amount_tolerance: Decimal = Decimal("0.01"),
        expense_date_tolerance_days: int = 1,
    ):
        self.duplicate_payout_tolerance = duplicate_payout_tolerance
        self.cleaning_mismatch_threshold = cleaning_mismatch_threshold
        self.calendar_materiality = calendar_materiality
        self.expense_amount_tolerance = expense_amount_tolerance
        self.expense_date_tolerance_days = expense_date_tolerance_days
        self._attributor = RevenueAttributor()

    # ------------------------------------------------------------------
    # Duplicates
    # ------------------------------------------------------------------

    def find_duplicate_reservations(
        self, reservations: Sequence[Reservation],
    ) -> tuple[DuplicateWarning, ...]:
        """One warning per cluster of mutually linked duplicate reservations."""
        rows = [r for r in reservations if _guest_key(r.guest_name)]
        uf = _UnionFind(len(rows))
        for i in range(len(rows)):
            for j in range(i + 1, len(rows)):
                a, b = rows[i], rows[j]
                if a.reservation_id == b.reservation_id:
                    continue
                if _guest_key(a.guest_name) != _guest_key(b.guest_name):
                    continue
                if not _stays_overlap(a, b):
                    continue
                if abs(a.gross_payout - b.gross_payout) > self.duplicate_payout_tolerance:
                    continue
                uf.union(i, j)

        clusters: dict[int, list[Reservation]] = {}
        for i, row in enumerate(rows):
            clusters.setdefault(uf.find(i), []).append(row)

        warnings = []
        for members in clusters.values():
            if len(members) < 2:
                continue
            warnings.append(DuplicateWarning(
                kind="reservation",
                item_ids=tuple(m.reservation_id for m in members),
                description=(
                    f"Possible duplicate reservations for {members[0].guest_name} "
                    f"({members[0].check_in.isoformat()} - {members[0].check_out.isoformat()})"
                ),
                amounts=tuple(m.gross_payout for m in members),
            ))
        return tuple(warnings)

    def find_near_duplicate_expenses(
        self, expenses: Sequence[Expense],
    ) -> tuple[DuplicateWarning, ...]:
        """Pairs across the two sources that look alike without matching exactly."""
        warnings = []
        for i in range(len(expenses)):
            for j in range(i + 1, len(expenses)):
                a, b = expenses[i], expenses[j]
                if a.source == b.source or a.duplicate_key == b.duplicate_key:
                    continue
                if abs(a.amount - b.amount) > self.expense_amount_tolerance:
                    continue
                if abs((a.expense_date - b.expense_date).days) > self.expense_date_tolerance_days:
                    continue
                desc_a = a.description.strip().lower()
                desc_b = b.description.strip().lower()
                if not desc_a or not desc_b:
                    continue
                if desc_a not in desc_b and desc_b not in desc_a:
                    continue
                warnings.append(DuplicateWarning(
                    kind="expense",
                    item_ids=(a.expense_id, b.expense_id),
                    description=f"Possible duplicate expense: {a.description}",
                    amounts=(a.amount, b.amount),
                ))
        return tuple(warnings)

    # ------------------------------------------------------------------
    # Cleaning mismatch
    # ------------------------------------------------------------------

    def check_cleaning_mismatch(
        self,
        attribution: AttributionResult,
        expenses: Sequence[Expense],
        policies: Mapping[int, EffectivePolicy],
    ) -> CleaningMismatchWarning | None:
        """Compare actual cleaning expenses with the default-fee expectation.

        Only pass-through listings participate.  The expectation is the
        default cleaning fee weighted by each reservation's share of nights
        in the period.
        """
        pass_through = {
            listing_id for listing_id, policy in policies.items()
            if policy.cleaning_fee_pass_through
        }
        if not pass_through:
            return None

        expected = ZERO
        reservation_count = 0
        for contribution in attribution.contributions:
            policy = policies.get(contribution.original.property_id)
            if policy is None or not policy.cleaning_fee_pass_through:
                continue
            reservation_count += 1
            if policy.default_cleaning_fee is not None:
                expected += policy.default_cleaning_fee * contribution.factor

        cleaning_rows = [
            e for e in expenses
            if e.property_id in pass_through
            and e.is_cleaning
            and not (e.hidden or e.is_ll_cover or e.is_upsell)
        ]
        actual = sum((e.amount for e in cleaning_rows), ZERO)

        expected = round_money(expected)
        actual = round_money(actual)
        if expected == ZERO:
            if actual <= ZERO:
                return None
            relative = Decimal("1")
        else:
            relative = (abs(actual - expected) / expected).quantize(_RATIO)
            if relative <= self.cleaning_mismatch_threshold:
                return None

        return CleaningMismatchWarning(
            expected_amount=expected,
            actual_amount=actual,
            relative_difference=relative,
            reservation_count=reservation_count,
            cleaning_expense_count=len(cleaning_rows),
        )

    # ------------------------------------------------------------------
    # Proration suggestion
    # ------------------------------------------------------------------

    def suggest_calendar(
        self,
        reservations: Sequence[Reservation],
        checkout_revenue: Decimal,
        period_start: date,
        period_end: date,
    ) -> bool:
        """True when calendar mode would materially change a non-positive checkout result."""
        if checkout_revenue > ZERO:
            return False
        calendar = self._attributor.attribute(
            reservations=reservations,
            period_start=period_start,
            period_end=period_end,
            calculation_type=CalculationType.CALENDAR,
        )
        if len(calendar.spanning_boundary()) <= 1:
            return False
        return calendar.total("revenue") > self.calendar_materiality

    # ------------------------------------------------------------------
    # Combined
    # ------------------------------------------------------------------

    @traced_engine("anomaly", "1.0", fingerprint_fields=("attribution", "expenses", "policies"))
    def detect(
        self,
        *,
        attribution: AttributionResult,
        reservations: Sequence[Reservation],
        expenses: Sequence[Expense],
        policies: Mapping[int, EffectivePolicy],
        revenue: Decimal,
    ) -> AnomalyReport:
        """Run every check.

        Args:
            attribution: Result used for the statement.
            reservations: Raw reservations fetched for the period (the
                calendar suggestion re-attributes them).
            expenses: Merged expense rows.
            policies: Effective policy per listing id.
            revenue: Statement revenue after exclusions.
        """
        duplicates = self.find_duplicate_reservations(attribution.originals)
        duplicates += self.find_near_duplicate_expenses(expenses)
        mismatch = self.check_cleaning_mismatch(attribution, expenses, policies)

        convert = False
        if attribution.calculation_type == CalculationType.CHECKOUT:
            convert = self.suggest_calendar(
                reservations, revenue, attribution.period_start, attribution.period_end,
            )

        report = AnomalyReport(
            duplicate_warnings=duplicates,
            cancelled_reservation_count=len(attribution.cancelled),
            cleaning_mismatch=mismatch,
            should_convert_to_calendar=convert,
        )
        if report.has_findings:
            logger.info(
                "statement_anomalies_detected",
                extra={
                    "duplicate_count": len(duplicates),
                    "cancelled_count": report.cancelled_reservation_count,
                    "cleaning_mismatch": mismatch is not None,
                    "should_convert_to_calendar": convert,
                },
            )
        return report
