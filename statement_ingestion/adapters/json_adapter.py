"""
File-backed booking and accounting providers.

Both read a JSON document exported from the upstream system.  They satisfy
the ``BookingProvider`` and ``AccountingProvider`` protocols and are what
the command-line driver wires in.

Booking file layout::

    {"reservations": [{"reservation_id": "...", "property_id": 1, ...}, ...]}

Accounting file layout::

    {"category_mappings": {"Cleaning Services": "Cleaning"},
     "expenses": [{"expense_id": "...", "expense_date": "2025-01-03", ...}]}
"""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Any

from statement_kernel.domain.line_items import (
    Expense,
    ExpenseSource,
    Reservation,
    detect_ll_cover,
    line_item_from_dict,
)
from statement_kernel.logging_config import get_logger

logger = get_logger("ingestion.json_adapter")


def _load(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a JSON object at top level")
    return data


class JsonBookingProvider:
    """Reservations from a JSON export."""

    name = "booking"

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def fetch_reservations(
        self, property_ids: tuple[int, ...], start: date, end: date,
    ) -> list[Reservation]:
        data = _load(self.path)
        wanted = set(property_ids)
        result: list[Reservation] = []
        for raw in data.get("reservations", []):
            if "kind" in raw:
                item = line_item_from_dict(raw)
            else:
                item = Reservation.from_dict(raw)
            if not isinstance(item, Reservation) or item.property_id not in wanted:
                continue
            # Anything ending before the period or starting after it is irrelevant
            if item.check_out < start or item.check_in > end:
                continue
            result.append(item)
        logger.debug(
            "reservations_loaded",
            extra={"path": str(self.path), "count": len(result)},
        )
        return result


class JsonAccountingProvider:
    """Synced expenses from a JSON export, with category mappings applied."""

    name = "accounting"

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def fetch_expenses(self, start: date, end: date) -> list[Expense]:
        data = _load(self.path)
        mappings: dict[str, str] = {
            k.strip().lower(): v for k, v in (data.get("category_mappings") or {}).items()
        }
        result: list[Expense] = []
        for raw in data.get("expenses", []):
            expense = Expense.from_dict({**raw, "source": ExpenseSource.SYNCED.value})
            if not start <= expense.expense_date <= end:
                continue
            category = mappings.get(expense.category.strip().lower(), expense.category)
            is_ll_cover = expense.is_ll_cover or detect_ll_cover(
                expense.description, expense.vendor, expense.category,
            )
            if category != expense.category or is_ll_cover != expense.is_ll_cover:
                expense = Expense(
                    expense_id=expense.expense_id,
                    expense_date=expense.expense_date,
                    description=expense.description,
                    category=category,
                    amount=expense.amount,
                    property_id=expense.property_id,
                    listing_name=expense.listing_name,
                    vendor=expense.vendor,
                    hidden=expense.hidden,
                    is_ll_cover=is_ll_cover,
                    source=ExpenseSource.SYNCED,
                )
            result.append(expense)
        logger.debug(
            "expenses_loaded",
            extra={"path": str(self.path), "count": len(result)},
        )
        return result
