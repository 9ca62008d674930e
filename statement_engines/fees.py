"""
statement_engines.fees -- Commission, tax, pass-through fees and owner payout.

Responsibility:
    Turn attributed reservations, merged expenses and per-listing effective
    policies into the rounded statement totals.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Commission base excludes pass-through cleaning fees and guest-paid
      damage coverage when the policy says so; it is never negative.
    - A waived commission is computed and displayed (``pm_commission``)
      but not deducted (``pm_commission_deducted`` is zero for it).
    - Tax is added to payout only when ``disregard_tax`` is false and the
      booking is either non-Airbnb or the listing passes Airbnb tax
      through.  ``disregard_tax`` always wins.
    - Airbnb reservations of co-hosted listings are removed before
      attribution (see ``exclude_cohost_reservations``).
    - Each total is rounded half-up to cents once, and ``owner_payout`` is
      computed from the rounded components:

          owner_payout = total_revenue - pm_commission_deducted
                         + tax_adjustment - cleaning_pass_through
                         + total_upsells - total_expenses
                         - tech_fees - insurance_fees + adjustments

Failure modes:
    - ValueError when a contribution's listing has no effective policy.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal

from statement_engines.expenses import billable_totals
from statement_engines.tracer import traced_engine
from statement_kernel.domain.dtos import StatementTotals
from statement_kernel.domain.line_items import AttributedReservation, Expense, Reservation
from statement_kernel.domain.policy import CalculationType, EffectivePolicy
from statement_kernel.domain.values import HUNDRED, ZERO, round_money
from statement_kernel.logging_config import get_logger

logger = get_logger("engines.fees")


def exclude_cohost_reservations(
    reservations: Sequence[Reservation],
    policies: Mapping[int, EffectivePolicy],
) -> tuple[list[Reservation], list[Reservation]]:
    """Split off Airbnb bookings of co-hosted listings.

    Returns:
        ``(kept, excluded)``.
    """
    kept: list[Reservation] = []
    excluded: list[Reservation] = []
    for reservation in reservations:
        policy = policies.get(reservation.property_id)
        if policy is not None and policy.is_cohost_on_airbnb and reservation.is_airbnb:
            excluded.append(reservation)
        else:
            kept.append(reservation)
    return kept, excluded


def should_add_tax(policy: EffectivePolicy, reservation: Reservation) -> bool:
    if policy.disregard_tax:
        return False
    return not reservation.is_airbnb or policy.airbnb_pass_through_tax


def pass_through_cleaning_charge(
    policy: EffectivePolicy,
    reservation: Reservation,
    round_to: Decimal = Decimal("5"),
) -> Decimal:
    """Cleaning amount billed to the owner for one pass-through reservation.

    The listing default cleaning fee when set; otherwise the guest-paid
    cleaning fee with the PM markup removed, rounded up to ``round_to``.
    """
    if not policy.cleaning_fee_pass_through:
        return ZERO
    if policy.default_cleaning_fee is not None:
        return policy.default_cleaning_fee
    guest_paid = reservation.cleaning_fee
    if guest_paid <= ZERO:
        return ZERO
    pct = policy.pm_percentage_for(reservation.booked_on)
    net = guest_paid / (1 + pct / HUNDRED)
    return Decimal(math.ceil(net / round_to)) * round_to


@dataclass(frozen=True)
class ReservationFees:
    """Fee breakdown for one attributed reservation (unrounded)."""

    reservation_id: str
    revenue: Decimal
    commissionable_base: Decimal
    pm_percentage: Decimal
    pm_commission: Decimal
    pm_commission_deducted: Decimal
    tax_adjustment: Decimal
    cleaning_pass_through: Decimal


@dataclass(frozen=True)
class FeeResult:
    """Rounded totals plus the per-reservation breakdown."""

    totals: StatementTotals
    lines: tuple[ReservationFees, ...] = ()

    @property
    def pm_commission(self) -> Decimal:
        return self.totals.pm_commission

    @property
    def tax_adjustment(self) -> Decimal:
        return self.totals.tax_adjustment

    @property
    def owner_payout(self) -> Decimal:
        return self.totals.owner_payout

    @property
    def commissionable_base(self) -> Decimal:
        return self.totals.commissionable_base


class FeeCalculator:
    """Computes statement totals.

    Contract:
        Fixed fees and the cleaning rounding step are injected at
        construction.  ``calculate`` is pure.
    """

    def __init__(
        self,
        tech_fee_per_property: Decimal = Decimal("50.00"),
        insurance_fee_per_property: Decimal = Decimal("25.00"),
        cleaning_round_to: Decimal = Decimal("5"),
    ):
        self.tech_fee_per_property = tech_fee_per_property
        self.insurance_fee_per_property = insurance_fee_per_property
        self.cleaning_round_to = cleaning_round_to

    def reservation_fees(
        self,
        contribution: AttributedReservation,
        policy: EffectivePolicy,
        calculation_type: CalculationType,
    ) -> ReservationFees:
        attributed = contribution.attributed
        revenue = attributed.client_revenue

        excluded = ZERO
        if policy.cleaning_fee_pass_through:
            excluded += attributed.cleaning_fee
        if policy.guest_paid_damage_coverage:
            excluded += attributed.amount("guest_paid_damage_coverage")
        base = max(revenue - excluded, ZERO)

        pct = policy.pm_percentage_for(attributed.booked_on)
        commission = base * pct / HUNDRED
        deducted = ZERO if policy.waive_commission else commission

        tax = attributed.tax if should_add_tax(policy, attributed) else ZERO

        cleaning = ZERO
        if policy.cleaning_fee_pass_through:
            charged_here = (
                calculation_type == CalculationType.CHECKOUT
                or contribution.checkout_in_period
            )
            if charged_here:
                cleaning = pass_through_cleaning_charge(
                    policy, contribution.original, self.cleaning_round_to,
                )

        return ReservationFees(
            reservation_id=attributed.reservation_id,
            revenue=revenue,
            commissionable_base=base,
            pm_percentage=pct,
            pm_commission=commission,
            pm_commission_deducted=deducted,
            tax_adjustment=tax,
            cleaning_pass_through=cleaning,
        )

    @traced_engine(
        "fees", "1.0",
        fingerprint_fields=(
            "contributions", "expenses", "policies", "property_ids",
            "calculation_type", "adjustments",
        ),
    )
    def calculate(
        self,
        *,
        contributions: Sequence[AttributedReservation],
        expenses: Sequence[Expense],
        policies: Mapping[int, EffectivePolicy],
        property_ids: Sequence[int],
        calculation_type: CalculationType,
        adjustments: Decimal = ZERO,
    ) -> FeeResult:
        lines: list[ReservationFees] = []
        for contribution in contributions:
            policy = policies.get(contribution.original.property_id)
            if policy is None:
                raise ValueError(
                    f"No effective policy for listing {contribution.original.property_id}"
                )
            lines.append(self.reservation_fees(contribution, policy, calculation_type))

        pass_through_ids = {
            listing_id for listing_id, policy in policies.items()
            if policy.cleaning_fee_pass_through
        }
        raw_expenses, raw_upsells = billable_totals(expenses, pass_through_ids)
        property_count = len(set(property_ids))

        total_revenue = round_money(sum((ln.revenue for ln in lines), ZERO))
        commissionable_base = round_money(sum((ln.commissionable_base for ln in lines), ZERO))
        pm_commission = round_money(sum((ln.pm_commission for ln in lines), ZERO))
        pm_deducted = round_money(sum((ln.pm_commission_deducted for ln in lines), ZERO))
        tax_adjustment = round_money(sum((ln.tax_adjustment for ln in lines), ZERO))
        cleaning = round_money(sum((ln.cleaning_pass_through for ln in lines), ZERO))
        total_expenses = round_money(raw_expenses)
        total_upsells = round_money(raw_upsells)
        tech_fees = round_money(self.tech_fee_per_property * property_count)
        insurance_fees = round_money(self.insurance_fee_per_property * property_count)
        adjustments = round_money(adjustments)

        owner_payout = (
            total_revenue
            - pm_deducted
            + tax_adjustment
            - cleaning
            + total_upsells
            - total_expenses
            - tech_fees
            - insurance_fees
            + adjustments
        )

        totals = StatementTotals(
            total_revenue=total_revenue,
            commissionable_base=commissionable_base,
            pm_commission=pm_commission,
            pm_commission_deducted=pm_deducted,
            tax_adjustment=tax_adjustment,
            cleaning_pass_through=cleaning,
            total_expenses=total_expenses,
            total_upsells=total_upsells,
            tech_fees=tech_fees,
            insurance_fees=insurance_fees,
            adjustments=adjustments,
            owner_payout=owner_payout,
        )
        logger.debug(
            "statement_totals_calculated",
            extra={"reservation_count": len(lines), "owner_payout": str(owner_payout)},
        )
        return FeeResult(totals=totals, lines=tuple(lines))
