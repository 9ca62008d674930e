"""
statement_engines.expenses -- Expense merge and billable totals.

Responsibility:
    Merge synced (accounting provider) and uploaded expenses for a period,
    resolve exact duplicates between the two sources, and compute the
    owner-billable expense and upsell totals.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The expense collector
    service fetches the rows; this module only combines them.

Invariants enforced:
    - Only rows dated inside ``[period_start, period_end]`` are kept.
    - An uploaded row whose ``(date, description, amount)`` key matches a
      synced row is dropped in favour of the synced row.
    - Hidden rows are kept in the result but never billed.
    - LL Cover rows are kept for reporting but never billed.
    - Upsell rows are owner income, never expenses.
    - For pass-through-cleaning properties, cleaning and supplies rows are
      kept but not billed (the pass-through charge replaces them).
"""

from __future__ import annotations

from collections.abc import Collection, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from statement_kernel.domain.line_items import Expense
from statement_kernel.domain.values import ZERO


@dataclass(frozen=True)
class ExpenseCollection:
    """Merged expense rows for one statement period."""

    items: tuple[Expense, ...]
    dropped_duplicates: tuple[Expense, ...] = ()
    partial_sources: tuple[str, ...] = ()

    @property
    def visible(self) -> tuple[Expense, ...]:
        return tuple(e for e in self.items if not e.hidden)

    @property
    def ll_cover(self) -> tuple[Expense, ...]:
        return tuple(e for e in self.items if e.is_ll_cover)


def _in_period(expense: Expense, period_start: date, period_end: date) -> bool:
    return period_start <= expense.expense_date <= period_end


def merge_expenses(
    synced: Sequence[Expense],
    uploaded: Sequence[Expense],
    period_start: date,
    period_end: date,
    partial_sources: Sequence[str] = (),
) -> ExpenseCollection:
    """Combine both sources, preferring synced rows on exact duplicates."""
    kept_synced = [e for e in synced if _in_period(e, period_start, period_end)]
    synced_keys = {e.duplicate_key for e in kept_synced}

    kept_uploaded: list[Expense] = []
    dropped: list[Expense] = []
    for expense in uploaded:
        if not _in_period(expense, period_start, period_end):
            continue
        if expense.duplicate_key in synced_keys:
            dropped.append(expense)
            continue
        kept_uploaded.append(expense)

    items = sorted(
        kept_synced + kept_uploaded,
        key=lambda e: (e.expense_date, e.source.value, e.expense_id),
    )
    return ExpenseCollection(
        items=tuple(items),
        dropped_duplicates=tuple(dropped),
        partial_sources=tuple(partial_sources),
    )


def is_billable(expense: Expense, pass_through_property_ids: Collection[int]) -> bool:
    """True if the row counts against the owner as an expense."""
    if expense.hidden or expense.is_ll_cover or expense.is_upsell:
        return False
    if expense.property_id in pass_through_property_ids and (
        expense.is_cleaning or expense.is_supplies
    ):
        return False
    return True


def billable_totals(
    expenses: Sequence[Expense],
    pass_through_property_ids: Collection[int] = (),
) -> tuple[Decimal, Decimal]:
    """Unrounded ``(total_expenses, total_upsells)``."""
    total_expenses = ZERO
    total_upsells = ZERO
    for expense in expenses:
        if expense.hidden or expense.is_ll_cover:
            continue
        if expense.is_upsell:
            total_upsells += expense.amount
        elif is_billable(expense, pass_through_property_ids):
            total_expenses += expense.amount
    return total_expenses, total_upsells
