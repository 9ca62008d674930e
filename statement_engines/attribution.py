"""
statement_engines.attribution -- Revenue attribution to a statement period.

Responsibility:
    Decide which reservations belong to a period and what share of each
    reservation's financial fields the period receives, under one of the
    two proration models:

    * **checkout** -- a reservation belongs to the period containing its
      check-out date and contributes 100% of every field.
    * **calendar** -- a reservation belongs to every period its stay
      overlaps and contributes ``nights_in_period / total_nights`` of every
      field.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Reservations entirely outside the period contribute nothing.
    - Checkout-mode contributions are binary (factor 1 or excluded).
    - Calendar-mode contributions scale every financial field by the same
      ratio (linear proration, not just the base rate).
    - A zero-night reservation never divides by zero: without revenue it is
      excluded; with revenue it is attributed in full to the period
      containing its check-out and reported as a data error.
    - Cancelled reservations never contribute; they are returned separately
      for the anomaly detector.

Failure modes:
    - ``InvalidPeriodError`` when ``period_start > period_end``.

Usage:
    attributor = RevenueAttributor()
    result = attributor.attribute(
        reservations=reservations,
        period_start=date(2025, 1, 1),
        period_end=date(2025, 1, 7),
        calculation_type=CalculationType.CALENDAR,
    )
    result.total("revenue")
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from statement_engines.periods import validate_period
from statement_engines.tracer import traced_engine
from statement_kernel.domain.line_items import AttributedReservation, Reservation
from statement_kernel.domain.policy import CalculationType
from statement_kernel.domain.values import ZERO
from statement_kernel.logging_config import get_logger

logger = get_logger("engines.attribution")


def nights_in_period(reservation: Reservation, period_start: date, period_end: date) -> int:
    """Nights of ``[check_in, check_out)`` counted inside the period.

    The overlap runs from the later of check-in and period start to the
    earlier of check-out and period end; negative overlaps are zero.
    """
    overlap_start = max(reservation.check_in, period_start)
    overlap_end = min(reservation.check_out, period_end)
    return max(0, (overlap_end - overlap_start).days)


def _dates_touch_period(reservation: Reservation, period_start: date, period_end: date) -> bool:
    return reservation.check_in <= period_end and reservation.check_out >= period_start


def _has_revenue(reservation: Reservation) -> bool:
    return reservation.client_revenue != ZERO or reservation.gross_payout != ZERO


@dataclass(frozen=True)
class AttributionResult:
    """Outcome of attributing a set of reservations to one period.

    ``contributions`` is ordered by check-in, then check-out, then id.
    ``originals`` holds the unscaled reservation behind each contribution
    in the same order.
    """

    period_start: date
    period_end: date
    calculation_type: CalculationType
    contributions: tuple[AttributedReservation, ...]
    cancelled: tuple[Reservation, ...] = ()
    data_error_ids: tuple[str, ...] = ()

    @property
    def originals(self) -> tuple[Reservation, ...]:
        return tuple(c.original for c in self.contributions)

    def total(self, field_name: str) -> Decimal:
        """Unrounded sum of one attributed financial field."""
        return sum((c.amount(field_name) for c in self.contributions), ZERO)

    def spanning_boundary(self) -> tuple[Reservation, ...]:
        """Contributed stays that are in progress at either period edge."""
        return tuple(
            c.original for c in self.contributions
            if c.original.check_in < self.period_start < c.original.check_out
            or c.original.check_in < self.period_end < c.original.check_out
        )


class RevenueAttributor:
    """Attributes reservations to a statement period.

    Contract:
        Pure and stateless.  Non-revenue statuses (inquiries, pending
        requests) are ignored; cancelled statuses are reported but never
        contribute.
    """

    @traced_engine(
        "attribution", "1.0",
        fingerprint_fields=("reservations", "period_start", "period_end", "calculation_type"),
    )
    def attribute(
        self,
        *,
        reservations: Sequence[Reservation],
        period_start: date,
        period_end: date,
        calculation_type: CalculationType,
    ) -> AttributionResult:
        validate_period(period_start, period_end)

        contributions: list[AttributedReservation] = []
        cancelled: list[Reservation] = []
        data_errors: list[str] = []

        for reservation in reservations:
            if reservation.is_cancelled:
                if _dates_touch_period(reservation, period_start, period_end):
                    cancelled.append(reservation)
                continue
            if not reservation.is_revenue_bearing:
                continue

            total_nights = reservation.total_nights
            checkout_in_period = period_start <= reservation.check_out <= period_end

            if total_nights <= 0:
                if not _has_revenue(reservation) or not checkout_in_period:
                    continue
                logger.warning(
                    "zero_night_reservation_fallback",
                    extra={"reservation_id": reservation.reservation_id},
                )
                contributions.append(AttributedReservation(
                    original=reservation,
                    nights_in_period=0,
                    total_nights=0,
                    checkout_in_period=True,
                    fallback=True,
                ))
                data_errors.append(reservation.reservation_id)
                continue

            if calculation_type == CalculationType.CHECKOUT:
                if not checkout_in_period:
                    continue
                nights = total_nights
            else:
                nights = nights_in_period(reservation, period_start, period_end)
                if nights <= 0:
                    continue

            contributions.append(AttributedReservation(
                original=reservation,
                nights_in_period=nights,
                total_nights=total_nights,
                checkout_in_period=checkout_in_period,
            ))

        contributions.sort(key=lambda c: (
            c.original.check_in, c.original.check_out, c.original.reservation_id,
        ))
        return AttributionResult(
            period_start=period_start,
            period_end=period_end,
            calculation_type=calculation_type,
            contributions=tuple(contributions),
            cancelled=tuple(cancelled),
            data_error_ids=tuple(data_errors),
        )
