"""
StatementEditor -- manual edits to draft statements.

Responsibility:
    Adds and removes reservations (including custom ones), hides or shows
    expenses, sets adjustments, and recalculates.  Every edit recomputes
    totals from the stored line items with the policies captured in the
    statement's listing settings snapshot, never from live listing data.

Invariants enforced:
    - Only drafts are editable (StatementNotEditableError otherwise).
    - Optional ``expected_version`` rejects edits based on a stale read.
    - Missing line items raise LineItemNotFoundError; duplicates, foreign
      listings and out-of-period stays raise InvalidLineItemError.
    - Flush-only.
"""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from statement_config.schema import StatementConfig
from statement_kernel.domain.dtos import StatementInfo
from statement_kernel.domain.line_items import (
    AttributedReservation,
    CustomReservation,
    Expense,
)
from statement_kernel.domain.policy import CalculationType, policies_from_snapshot
from statement_kernel.domain.values import round_money, to_decimal
from statement_kernel.exceptions import InvalidLineItemError, LineItemNotFoundError
from statement_kernel.logging_config import LogContext, get_logger
from statement_kernel.models.statement import Statement

from statement_services.calculation import StatementCalculator, write_computation
from statement_services.persistence import flush_statement, load_draft_for_update

logger = get_logger("services.statement_editor")

_Edit = Callable[
    [Statement, list[AttributedReservation], list[Expense]],
    tuple[list[AttributedReservation], list[Expense], Decimal],
]


class StatementEditor:
    """Draft statement edits."""

    def __init__(self, session: Session, config: StatementConfig):
        self.session = session
        self._calculator = StatementCalculator(config)

    def _apply(
        self,
        statement_id: UUID,
        actor_id: UUID,
        expected_version: int | None,
        event: str,
        edit: _Edit,
        **log_fields: object,
    ) -> StatementInfo:
        with LogContext.bind(statement_id=str(statement_id), actor_id=str(actor_id)):
            statement = load_draft_for_update(self.session, statement_id, expected_version)
            contributions, expenses, adjustments = edit(
                statement,
                list(statement.attributed_reservations()),
                list(statement.expense_items()),
            )
            self._recompute(statement, contributions, expenses, adjustments)
            # Every edit is a write, even when the totals come out unchanged
            statement.touch(actor_id)
            flush_statement(self.session, str(statement_id))
            logger.info(
                event,
                extra={
                    "statement_id": str(statement_id),
                    "owner_payout": str(statement.owner_payout),
                    "version": statement.version,
                    **log_fields,
                },
            )
            return statement.to_dto()

    def _recompute(
        self,
        statement: Statement,
        contributions: list[AttributedReservation],
        expenses: list[Expense],
        adjustments: Decimal,
    ) -> None:
        computation = self._calculator.recompute(
            contributions=contributions,
            expenses=expenses,
            policies=policies_from_snapshot(statement.listing_settings_snapshot),
            property_ids=tuple(int(p) for p in statement.property_ids),
            period_start=statement.week_start_date,
            period_end=statement.week_end_date,
            calculation_type=CalculationType(statement.calculation_type),
            adjustments=adjustments,
            cancelled_reservation_count=statement.cancelled_reservation_count,
            should_convert_to_calendar=statement.should_convert_to_calendar,
            data_error_ids=tuple(statement.data_error_reservation_ids or ()),
            partial_sources=tuple(statement.partial_sources or ()),
        )
        write_computation(statement, computation)

    # ------------------------------------------------------------------
    # Reservations
    # ------------------------------------------------------------------

    def add_custom_reservation(
        self,
        statement_id: UUID,
        reservation: CustomReservation,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> StatementInfo:
        """Add a manual reservation, prorated like any other for the period."""

        def edit(statement, contributions, expenses):
            if reservation.property_id not in [int(p) for p in statement.property_ids]:
                raise InvalidLineItemError(
                    str(statement_id), reservation.reservation_id,
                    f"listing {reservation.property_id} is not on the statement",
                )
            if any(c.original.reservation_id == reservation.reservation_id for c in contributions):
                raise InvalidLineItemError(
                    str(statement_id), reservation.reservation_id, "already present",
                )
            attribution = self._calculator.attributor.attribute(
                reservations=[reservation],
                period_start=statement.week_start_date,
                period_end=statement.week_end_date,
                calculation_type=CalculationType(statement.calculation_type),
            )
            if not attribution.contributions:
                raise InvalidLineItemError(
                    str(statement_id), reservation.reservation_id,
                    "does not fall in the statement period",
                )
            return contributions + list(attribution.contributions), expenses, statement.adjustments

        return self._apply(
            statement_id, actor_id, expected_version, "statement_reservation_added", edit,
            reservation_id=reservation.reservation_id,
        )

    def remove_reservation(
        self,
        statement_id: UUID,
        reservation_id: str,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> StatementInfo:
        def edit(statement, contributions, expenses):
            kept = [c for c in contributions if c.original.reservation_id != reservation_id]
            if len(kept) == len(contributions):
                raise LineItemNotFoundError(str(statement_id), "reservation", reservation_id)
            return kept, expenses, statement.adjustments

        return self._apply(
            statement_id, actor_id, expected_version, "statement_reservation_removed", edit,
            reservation_id=reservation_id,
        )

    def remove_custom_reservation(
        self,
        statement_id: UUID,
        reservation_id: str,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> StatementInfo:
        def edit(statement, contributions, expenses):
            match = [c for c in contributions if c.original.reservation_id == reservation_id]
            if not match:
                raise LineItemNotFoundError(str(statement_id), "reservation", reservation_id)
            if not match[0].original.is_manual:
                raise InvalidLineItemError(
                    str(statement_id), reservation_id, "not a custom reservation",
                )
            kept = [c for c in contributions if c.original.reservation_id != reservation_id]
            return kept, expenses, statement.adjustments

        return self._apply(
            statement_id, actor_id, expected_version, "statement_reservation_removed", edit,
            reservation_id=reservation_id,
        )

    # ------------------------------------------------------------------
    # Expenses and adjustments
    # ------------------------------------------------------------------

    def set_expense_hidden(
        self,
        statement_id: UUID,
        expense_id: str,
        hidden: bool,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> StatementInfo:
        def edit(statement, contributions, expenses):
            updated = []
            found = False
            for expense in expenses:
                if expense.expense_id == expense_id:
                    found = True
                    expense = Expense.from_dict({**expense.to_dict(), "hidden": hidden})
                updated.append(expense)
            if not found:
                raise LineItemNotFoundError(str(statement_id), "expense", expense_id)
            return contributions, updated, statement.adjustments

        return self._apply(
            statement_id, actor_id, expected_version, "statement_expense_visibility_changed", edit,
            expense_id=expense_id, hidden=hidden,
        )

    def set_adjustments(
        self,
        statement_id: UUID,
        amount: Decimal | str | int,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> StatementInfo:
        """Set the signed manual adjustment added to the owner payout."""
        value = round_money(to_decimal(amount))

        def edit(statement, contributions, expenses):
            return contributions, expenses, value

        return self._apply(
            statement_id, actor_id, expected_version, "statement_adjustments_set", edit,
            adjustments=str(value),
        )

    def recalculate(
        self,
        statement_id: UUID,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> StatementInfo:
        """Recompute totals from stored items and the frozen snapshot."""

        def edit(statement, contributions, expenses):
            return contributions, expenses, statement.adjustments

        return self._apply(
            statement_id, actor_id, expected_version, "statement_recalculated", edit,
        )
