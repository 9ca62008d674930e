"""
Statement ORM model -- the persisted owner statement aggregate.

Contract:
    One row per (owner, property set, period).  Totals are columns; line
    items and warnings are embedded JSON arrays of tagged records.  The
    listing settings snapshot is embedded JSON and ``snapshot_frozen_at``
    records when it became immutable.

Architecture: statement_kernel/models. Imports from db.base and domain only.

Invariants enforced:
    - ``week_start_date <= week_end_date`` (CHECK constraint).
    - ``idempotency_key`` is UNIQUE: at most one statement per
      owner/property set/period.
    - ``version`` is the SQLAlchemy version counter: every UPDATE is
      conditional on the version read, and a stale write raises
      ``StaleDataError`` (translated to ``PersistenceConflictError`` by
      the services).
    - JSON columns are replaced wholesale, never mutated in place.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Boolean, CheckConstraint, Date, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from statement_kernel.db.base import TrackedBase
from statement_kernel.domain.dtos import (
    CleaningMismatchWarning,
    DuplicateWarning,
    PayoutStatus,
    StatementInfo,
    StatementStatus,
    StatementTotals,
)
from statement_kernel.domain.line_items import AttributedReservation, Expense
from statement_kernel.domain.policy import CalculationType
from statement_kernel.domain.tags import parse_tags

_ZERO = Decimal("0")


def statement_idempotency_key(
    owner_id: int | None,
    property_ids: tuple[int, ...],
    week_start_date: date,
    week_end_date: date,
    group_id: int | None = None,
) -> str:
    """Key identifying one statement: owner, property set (or group), period."""
    owner_part = "all" if owner_id is None else str(owner_id)
    if group_id is not None:
        scope = f"group-{group_id}"
    else:
        scope = "+".join(str(p) for p in sorted(property_ids))
    return f"{owner_part}:{scope}:{week_start_date.isoformat()}:{week_end_date.isoformat()}"


class Statement(TrackedBase):
    """Persisted owner statement."""

    __tablename__ = "statements"

    __table_args__ = (
        CheckConstraint("week_start_date <= week_end_date", name="ck_statements_period"),
        Index("ix_statements_owner", "owner_id"),
        Index("ix_statements_status", "status"),
        Index("ix_statements_period", "week_start_date", "week_end_date"),
    )

    idempotency_key: Mapped[str] = mapped_column(String(300), nullable=False, unique=True)
    owner_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    owner_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    property_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    property_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_combined_statement: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    week_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    week_end_date: Mapped[date] = mapped_column(Date, nullable=False)
    calculation_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=StatementStatus.DRAFT.value,
    )

    total_revenue: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    commissionable_base: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    pm_commission: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    pm_commission_deducted: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    tax_adjustment: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    cleaning_pass_through: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    total_expenses: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    total_upsells: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    tech_fees: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    insurance_fees: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    adjustments: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    owner_payout: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)

    reservations: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    expenses: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    duplicate_warnings: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    cleaning_mismatch_warning: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    should_convert_to_calendar: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cancelled_reservation_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    data_error_reservation_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    partial_sources: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    internal_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    listing_settings_snapshot: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    snapshot_frozen_at: Mapped[datetime | None] = mapped_column(nullable=True)

    group_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    group_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    group_tags: Mapped[str | None] = mapped_column(Text, nullable=True)

    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    payout_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payout_transfer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payout_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    stripe_fee: Mapped[Decimal | None] = mapped_column(nullable=True)
    total_transfer_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def status_enum(self) -> StatementStatus:
        return StatementStatus(self.status)

    def apply_totals(self, totals: StatementTotals) -> None:
        for name, value in totals.to_dict().items():
            setattr(self, name, Decimal(value))

    def totals(self) -> StatementTotals:
        return StatementTotals(
            total_revenue=self.total_revenue,
            commissionable_base=self.commissionable_base,
            pm_commission=self.pm_commission,
            pm_commission_deducted=self.pm_commission_deducted,
            tax_adjustment=self.tax_adjustment,
            cleaning_pass_through=self.cleaning_pass_through,
            total_expenses=self.total_expenses,
            total_upsells=self.total_upsells,
            tech_fees=self.tech_fees,
            insurance_fees=self.insurance_fees,
            adjustments=self.adjustments,
            owner_payout=self.owner_payout,
        )

    def attributed_reservations(self) -> tuple[AttributedReservation, ...]:
        return tuple(AttributedReservation.from_dict(r) for r in self.reservations or ())

    def expense_items(self) -> tuple[Expense, ...]:
        return tuple(Expense.from_dict(e) for e in self.expenses or ())

    def clear_payout(self) -> None:
        self.sent_at = None
        self.paid_at = None
        self.payout_status = None
        self.payout_transfer_id = None
        self.payout_error = None
        self.stripe_fee = None
        self.total_transfer_amount = None

    def to_dto(self) -> StatementInfo:
        mismatch: dict[str, Any] | None = self.cleaning_mismatch_warning
        return StatementInfo(
            statement_id=self.id,
            idempotency_key=self.idempotency_key,
            owner_id=self.owner_id,
            owner_name=self.owner_name,
            property_ids=tuple(int(p) for p in self.property_ids or ()),
            week_start_date=self.week_start_date,
            week_end_date=self.week_end_date,
            calculation_type=CalculationType(self.calculation_type),
            status=StatementStatus(self.status),
            totals=self.totals(),
            version=self.version,
            reservations=self.attributed_reservations(),
            expenses=self.expense_items(),
            duplicate_warnings=tuple(
                DuplicateWarning.from_dict(w) for w in self.duplicate_warnings or ()
            ),
            cleaning_mismatch_warning=(
                CleaningMismatchWarning.from_dict(mismatch) if mismatch else None
            ),
            should_convert_to_calendar=self.should_convert_to_calendar,
            cancelled_reservation_count=self.cancelled_reservation_count,
            data_error_reservation_ids=tuple(self.data_error_reservation_ids or ()),
            partial_sources=tuple(self.partial_sources or ()),
            internal_notes=self.internal_notes,
            listing_settings_snapshot=dict(self.listing_settings_snapshot or {}),
            snapshot_frozen_at=self.snapshot_frozen_at,
            group_id=self.group_id,
            group_name=self.group_name,
            group_tags=parse_tags(self.group_tags),
            sent_at=self.sent_at,
            paid_at=self.paid_at,
            payout_status=PayoutStatus(self.payout_status) if self.payout_status else None,
            payout_transfer_id=self.payout_transfer_id,
            payout_error=self.payout_error,
            stripe_fee=self.stripe_fee,
            total_transfer_amount=self.total_transfer_amount,
        )
