"""
Plain builders and in-process collaborators shared by the test suite.

Kept out of conftest so hypothesis tests (which cannot take
function-scoped fixtures) and service tests can import them directly.
"""

from datetime import date
from decimal import Decimal

from statement_kernel.domain.collaborators import PaymentReceipt
from statement_kernel.domain.line_items import (
    RESERVATION_AMOUNT_FIELDS,
    CustomReservation,
    Expense,
    ExpenseSource,
    Reservation,
)
from statement_kernel.domain.policy import CalculationType, EffectivePolicy


def _amounts(values: dict) -> dict:
    """Accept amounts as strings for readability."""
    return {
        k: Decimal(v) if k in RESERVATION_AMOUNT_FIELDS + ("amount",) and isinstance(v, str) else v
        for k, v in values.items()
    }


def make_reservation(
    reservation_id: str = "R1",
    property_id: int = 101,
    check_in: date = date(2025, 1, 1),
    check_out: date = date(2025, 1, 4),
    revenue: str = "300.00",
    **overrides,
) -> Reservation:
    values = {
        "reservation_id": reservation_id,
        "property_id": property_id,
        "guest_name": "Alex Guest",
        "check_in": check_in,
        "check_out": check_out,
        "source": "Direct",
        "status": "confirmed",
        "revenue": Decimal(revenue),
        "gross_payout": Decimal(revenue),
    }
    values.update(overrides)
    return Reservation(**_amounts(values))


def make_custom_reservation(
    reservation_id: str = "C1",
    property_id: int = 101,
    check_in: date = date(2025, 1, 2),
    check_out: date = date(2025, 1, 5),
    revenue: str = "200.00",
    **overrides,
) -> CustomReservation:
    values = {
        "reservation_id": reservation_id,
        "property_id": property_id,
        "guest_name": "Walk In",
        "check_in": check_in,
        "check_out": check_out,
        "source": "Manual",
        "revenue": Decimal(revenue),
        "gross_payout": Decimal(revenue),
        "note": "Owner friend stay",
    }
    values.update(overrides)
    return CustomReservation(**_amounts(values))


def make_expense(
    expense_id: str = "E1",
    amount: str = "40.00",
    expense_date: date = date(2025, 1, 3),
    property_id: int | None = 101,
    **overrides,
) -> Expense:
    values = {
        "expense_id": expense_id,
        "expense_date": expense_date,
        "description": "Light bulbs",
        "category": "Maintenance",
        "amount": Decimal(amount),
        "property_id": property_id,
    }
    values.update(overrides)
    return Expense(**_amounts(values))


def make_uploaded_expense(expense_id: str = "upload:1", **overrides) -> Expense:
    overrides.setdefault("source", ExpenseSource.UPLOADED)
    return make_expense(expense_id=expense_id, **overrides)


def make_policy(
    listing_id: int = 101,
    pm_percentage: str = "15",
    calculation_type: CalculationType = CalculationType.CHECKOUT,
    as_of: date = date(2025, 1, 8),
    **overrides,
) -> EffectivePolicy:
    values = {
        "listing_id": listing_id,
        "as_of": as_of,
        "pm_percentage": Decimal(pm_percentage),
        "calculation_type": calculation_type,
    }
    values.update(overrides)
    return EffectivePolicy(**values)


class StaticBookingProvider:
    """Returns a fixed reservation list; records calls."""

    name = "booking"

    def __init__(self, reservations=()):
        self.reservations = list(reservations)
        self.calls = []

    def fetch_reservations(self, property_ids, start, end):
        self.calls.append((tuple(property_ids), start, end))
        return [r for r in self.reservations if r.property_id in property_ids]


class StaticAccountingProvider:
    name = "accounting"

    def __init__(self, expenses=()):
        self.expenses = list(expenses)

    def fetch_expenses(self, start, end):
        return list(self.expenses)


class FailingProvider:
    """Booking/accounting provider whose every call raises."""

    def __init__(self, name="booking", error="connection refused"):
        self.name = name
        self.error = error
        self.calls = 0

    def fetch_reservations(self, property_ids, start, end):
        self.calls += 1
        raise ConnectionError(self.error)

    def fetch_expenses(self, start, end):
        self.calls += 1
        raise ConnectionError(self.error)


class SelectiveBookingProvider(StaticBookingProvider):
    """Raises for requests touching any of ``failing_ids``."""

    def __init__(self, reservations=(), failing_ids=()):
        super().__init__(reservations)
        self.failing_ids = set(failing_ids)

    def fetch_reservations(self, property_ids, start, end):
        if self.failing_ids & set(property_ids):
            self.calls.append((tuple(property_ids), start, end))
            raise ConnectionError("booking api 503")
        return super().fetch_reservations(property_ids, start, end)


class RecordingPaymentGateway:
    def __init__(self, fee="1.50"):
        self.fee = Decimal(fee)
        self.transfers = []

    def transfer(self, owner_id, amount, reference):
        self.transfers.append((owner_id, amount, reference))
        return PaymentReceipt(
            transfer_id=f"tr_{len(self.transfers)}",
            fee_amount=self.fee,
            total_transfer_amount=amount + self.fee,
        )


class FailingPaymentGateway:
    def transfer(self, owner_id, amount, reference):
        raise RuntimeError("insufficient platform balance")


class RecordingEmailSender:
    def __init__(self):
        self.sent = []

    def send_statement(self, recipient, subject, statement_id):
        self.sent.append((recipient, subject, statement_id))
        return f"msg-{len(self.sent)}"


class FailingEmailSender:
    def send_statement(self, recipient, subject, statement_id):
        raise ConnectionError("smtp relay down")
