"""
Statement DTOs -- frozen data transfer objects for statements.

Responsibility:
    Status enums, anomaly warning records, totals, and the ``StatementInfo``
    DTO that services return instead of ORM entities.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Invariants enforced:
    - DTOs are frozen; collections are tuples.
    - Warning records serialize to JSON-safe dicts and back without loss.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from statement_kernel.domain.line_items import AttributedReservation, Expense
from statement_kernel.domain.policy import CalculationType
from statement_kernel.domain.values import ZERO, to_decimal


class StatementStatus(str, Enum):
    """Statement lifecycle status."""

    DRAFT = "draft"
    FINAL = "final"
    SENT = "sent"
    PAID = "paid"


class StatementAction(str, Enum):
    """Lifecycle actions accepted by the lifecycle manager."""

    FINALIZE = "finalize"
    SEND = "send"
    MARK_PAID = "mark_paid"
    REVERT_TO_DRAFT = "revert_to_draft"
    DELETE = "delete"


class PayoutStatus(str, Enum):
    """Owner payout transfer status."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class EmailStatus(str, Enum):
    """Delivery status of a statement email, reported by the email collaborator."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    BOUNCED = "bounced"


# =============================================================================
# Anomaly warnings
# =============================================================================


@dataclass(frozen=True)
class DuplicateWarning:
    """One cluster of suspected duplicate reservations or expenses."""

    kind: str  # "reservation" or "expense"
    item_ids: tuple[str, ...]
    description: str
    amounts: tuple[Decimal, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "item_ids": list(self.item_ids),
            "description": self.description,
            "amounts": [str(a) for a in self.amounts],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DuplicateWarning:
        return cls(
            kind=data["kind"],
            item_ids=tuple(data.get("item_ids", ())),
            description=data.get("description", ""),
            amounts=tuple(to_decimal(a) for a in data.get("amounts", ())),
        )


@dataclass(frozen=True)
class CleaningMismatchWarning:
    """Actual cleaning expenses differ from the default-fee expectation."""

    expected_amount: Decimal
    actual_amount: Decimal
    relative_difference: Decimal
    reservation_count: int
    cleaning_expense_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "expected_amount": str(self.expected_amount),
            "actual_amount": str(self.actual_amount),
            "relative_difference": str(self.relative_difference),
            "reservation_count": self.reservation_count,
            "cleaning_expense_count": self.cleaning_expense_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CleaningMismatchWarning:
        return cls(
            expected_amount=to_decimal(data["expected_amount"]),
            actual_amount=to_decimal(data["actual_amount"]),
            relative_difference=to_decimal(data["relative_difference"]),
            reservation_count=int(data["reservation_count"]),
            cleaning_expense_count=int(data["cleaning_expense_count"]),
        )


# =============================================================================
# Totals
# =============================================================================


@dataclass(frozen=True)
class StatementTotals:
    """Rounded statement totals.

    ``pm_commission`` is the displayed commission; ``pm_commission_deducted``
    excludes waived listings.  ``owner_payout`` is:

        total_revenue - pm_commission_deducted + tax_adjustment
        - cleaning_pass_through + total_upsells - total_expenses
        - tech_fees - insurance_fees + adjustments
    """

    total_revenue: Decimal = ZERO
    commissionable_base: Decimal = ZERO
    pm_commission: Decimal = ZERO
    pm_commission_deducted: Decimal = ZERO
    tax_adjustment: Decimal = ZERO
    cleaning_pass_through: Decimal = ZERO
    total_expenses: Decimal = ZERO
    total_upsells: Decimal = ZERO
    tech_fees: Decimal = ZERO
    insurance_fees: Decimal = ZERO
    adjustments: Decimal = ZERO
    owner_payout: Decimal = ZERO

    @property
    def commission_waived(self) -> bool:
        return self.pm_commission != self.pm_commission_deducted

    def to_dict(self) -> dict[str, str]:
        return {
            "total_revenue": str(self.total_revenue),
            "commissionable_base": str(self.commissionable_base),
            "pm_commission": str(self.pm_commission),
            "pm_commission_deducted": str(self.pm_commission_deducted),
            "tax_adjustment": str(self.tax_adjustment),
            "cleaning_pass_through": str(self.cleaning_pass_through),
            "total_expenses": str(self.total_expenses),
            "total_upsells": str(self.total_upsells),
            "tech_fees": str(self.tech_fees),
            "insurance_fees": str(self.insurance_fees),
            "adjustments": str(self.adjustments),
            "owner_payout": str(self.owner_payout),
        }


# =============================================================================
# Statement
# =============================================================================


@dataclass(frozen=True)
class StatementInfo:
    """Immutable view of a persisted statement."""

    statement_id: UUID
    idempotency_key: str
    owner_id: int | None
    owner_name: str
    property_ids: tuple[int, ...]
    week_start_date: date
    week_end_date: date
    calculation_type: CalculationType
    status: StatementStatus
    totals: StatementTotals
    version: int
    reservations: tuple[AttributedReservation, ...] = ()
    expenses: tuple[Expense, ...] = ()
    duplicate_warnings: tuple[DuplicateWarning, ...] = ()
    cleaning_mismatch_warning: CleaningMismatchWarning | None = None
    should_convert_to_calendar: bool = False
    cancelled_reservation_count: int = 0
    data_error_reservation_ids: tuple[str, ...] = ()
    partial_sources: tuple[str, ...] = ()
    internal_notes: str | None = None
    listing_settings_snapshot: dict[str, Any] = field(default_factory=dict)
    snapshot_frozen_at: datetime | None = None
    group_id: int | None = None
    group_name: str | None = None
    group_tags: frozenset[str] = field(default_factory=frozenset)
    sent_at: datetime | None = None
    paid_at: datetime | None = None
    payout_status: PayoutStatus | None = None
    payout_transfer_id: str | None = None
    payout_error: str | None = None
    stripe_fee: Decimal | None = None
    total_transfer_amount: Decimal | None = None

    @property
    def property_id(self) -> int | None:
        return self.property_ids[0] if len(self.property_ids) == 1 else None

    @property
    def is_combined_statement(self) -> bool:
        return len(self.property_ids) > 1

    @property
    def snapshot_frozen(self) -> bool:
        return self.snapshot_frozen_at is not None
