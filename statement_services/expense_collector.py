"""
ExpenseCollector -- gathers synced and uploaded expenses for a statement.

Responsibility:
    Reads synced rows from the accounting provider (through the provider
    guard) and uploaded rows from the database, assigns property ids,
    folds child listings into their parent, and merges the two sources.

Failure modes:
    - One source unavailable or unreadable: the other is returned and the failed source
      is named in ``ExpenseCollection.partial_sources``.
    - Both unavailable: ProviderUnavailableError("expenses").
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from statement_engines.expenses import ExpenseCollection, merge_expenses
from statement_ingestion.guard import ProviderGuard
from statement_kernel.domain.collaborators import AccountingProvider
from statement_kernel.domain.line_items import Expense
from statement_kernel.exceptions import ProviderDataError, ProviderUnavailableError
from statement_kernel.logging_config import get_logger
from statement_kernel.models.uploaded_expense import UploadedExpense
from statement_kernel.services.listing_repository import ListingRepository

from statement_services.property_mapping import PropertyMappingRepository

logger = get_logger("services.expense_collector")

UPLOAD_SOURCE = "uploads"


class ExpenseCollector:
    """Expense gathering for one or more properties and a period.

    ``accounting`` may be None, in which case only uploaded rows are used
    and no partial marker is recorded.
    """

    def __init__(
        self,
        session: Session,
        listings: ListingRepository,
        mappings: PropertyMappingRepository,
        accounting: AccountingProvider | None = None,
        guard: ProviderGuard | None = None,
    ):
        self.session = session
        self._listings = listings
        self._mappings = mappings
        self._accounting = accounting
        self._guard = guard or ProviderGuard()

    def scope(self, property_ids: tuple[int, ...]) -> dict[int, int]:
        """Map every in-scope listing id to the statement property it rolls into."""
        scope = {pid: pid for pid in property_ids}
        for pid in property_ids:
            info = self._listings.get(pid)
            if info is None or not info.include_child_listings:
                continue
            for child in self._listings.children_of(pid):
                scope.setdefault(child.listing_id, pid)
        return scope

    def _fetch_synced(self, start: date, end: date) -> list[Expense]:
        return self._guard.call(
            self._accounting.name, self._accounting.fetch_expenses, start, end,
        )

    def _fetch_uploaded(self, listing_ids: list[int], start: date, end: date) -> list[Expense]:
        rows = self.session.execute(
            select(UploadedExpense).where(
                UploadedExpense.property_id.in_(listing_ids),
                UploadedExpense.expense_date >= start,
                UploadedExpense.expense_date <= end,
            )
        ).scalars().all()
        return [row.to_domain() for row in rows]

    def _assign(self, expense: Expense, scope: dict[int, int]) -> Expense | None:
        property_id = expense.property_id
        if property_id is None:
            property_id = self._mappings.lookup(expense.listing_name)
        if property_id is None or property_id not in scope:
            return None
        target = scope[property_id]
        if target != expense.property_id:
            return replace(expense, property_id=target)
        return expense

    def collect(
        self,
        property_ids: tuple[int, ...],
        period_start: date,
        period_end: date,
    ) -> ExpenseCollection:
        scope = self.scope(property_ids)
        partial: list[str] = []
        synced_failed = uploads_failed = False

        synced: list[Expense] = []
        if self._accounting is not None:
            try:
                fetched = self._fetch_synced(period_start, period_end)
            except (ProviderUnavailableError, ProviderDataError) as exc:
                synced_failed = True
                partial.append(self._accounting.name)
                logger.warning(
                    "expense_source_unavailable",
                    extra={"source": self._accounting.name, "error": exc.detail},
                )
            else:
                for expense in fetched:
                    assigned = self._assign(expense, scope)
                    if assigned is not None:
                        synced.append(assigned)

        uploaded: list[Expense] = []
        try:
            with self.session.begin_nested():
                raw = self._fetch_uploaded(sorted(scope), period_start, period_end)
        except OperationalError as exc:
            uploads_failed = True
            partial.append(UPLOAD_SOURCE)
            logger.warning(
                "expense_source_unavailable",
                extra={"source": UPLOAD_SOURCE, "error": str(exc.orig)},
            )
        else:
            for expense in raw:
                assigned = self._assign(expense, scope)
                if assigned is not None:
                    uploaded.append(assigned)

        if synced_failed and uploads_failed:
            raise ProviderUnavailableError("expenses", "all expense sources unavailable")

        collection = merge_expenses(
            synced, uploaded, period_start, period_end, partial_sources=partial,
        )
        logger.debug(
            "expenses_collected",
            extra={
                "synced_count": len(synced),
                "uploaded_count": len(uploaded),
                "dropped_duplicates": len(collection.dropped_duplicates),
                "partial_sources": list(collection.partial_sources),
            },
        )
        return collection
