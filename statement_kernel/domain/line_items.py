"""
Statement line items -- closed set of tagged variants.

Responsibility:
    Typed records for everything a statement can embed:

    * ``Reservation`` -- booking sourced from the booking provider.
    * ``CustomReservation`` -- same shape, manually authored while the
      statement is draft.
    * ``Expense`` -- synced from the accounting provider or uploaded.
    * ``AttributedReservation`` -- a reservation plus the share of its
      nights that falls inside a statement period.

    Each variant serializes to a JSON-safe dict carrying a ``kind`` tag, and
    ``line_item_from_dict`` dispatches on that tag.  Unknown tags are
    rejected rather than loaded as untyped bags.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Invariants enforced:
    - All amounts are ``Decimal``.
    - Proration scales every financial field by the same
      nights_in_period / total_nights ratio.
    - A zero-night reservation attributed through the fallback path keeps
      100% of its amounts (no division by zero).

Failure modes:
    - ValueError from ``line_item_from_dict`` on unknown ``kind`` or
      malformed values.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Union

from statement_kernel.domain.values import ZERO, to_decimal


class LineItemKind(str, Enum):
    """Discriminator for serialized line items."""

    RESERVATION = "reservation"
    CUSTOM_RESERVATION = "custom_reservation"
    EXPENSE = "expense"


class ExpenseSource(str, Enum):
    """Where an expense row came from."""

    SYNCED = "synced"  # Accounting provider
    UPLOADED = "uploaded"  # Manual CSV/XLSX upload


REVENUE_STATUSES = frozenset({"confirmed", "accepted", "modified"})
CANCELLED_STATUSES = frozenset({"cancelled", "canceled", "declined", "expired"})

# Scaled together under calendar proration.
RESERVATION_AMOUNT_FIELDS: tuple[str, ...] = (
    "base_rate",
    "guest_fees",
    "platform_fees",
    "revenue",
    "pm_commission",
    "tax",
    "gross_payout",
    "cleaning_fee",
    "guest_paid_damage_coverage",
)

_OPTIONAL_AMOUNT_FIELDS = frozenset({"revenue", "guest_paid_damage_coverage"})

_LL_COVER_MARKERS = ("ll cover", "llcover")
_CLEANING_MARKERS = ("cleaning",)
_SUPPLIES_MARKERS = ("supplies",)


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def detect_ll_cover(*texts: str | None) -> bool:
    """True if any text marks the expense as company-absorbed (LL Cover)."""
    for text in texts:
        if text and any(marker in text.lower() for marker in _LL_COVER_MARKERS):
            return True
    return False


# =============================================================================
# Reservations
# =============================================================================


@dataclass(frozen=True)
class Reservation:
    """A booking as reported by the booking provider.

    ``revenue`` is the client revenue when the provider reports it; otherwise
    ``client_revenue`` derives it from the booking components (see below).
    ``pm_commission`` is whatever the provider reported and is informational
    only (the statement computes its own commission from the effective policy).
    """

    reservation_id: str
    property_id: int
    guest_name: str
    check_in: date
    check_out: date
    nights: int = 0
    source: str = ""
    status: str = "confirmed"
    base_rate: Decimal = ZERO
    guest_fees: Decimal = ZERO
    platform_fees: Decimal = ZERO
    revenue: Decimal | None = None
    pm_commission: Decimal = ZERO
    tax: Decimal = ZERO
    gross_payout: Decimal = ZERO
    cleaning_fee: Decimal = ZERO
    guest_paid_damage_coverage: Decimal | None = None
    booked_on: date | None = None

    kind: ClassVar[LineItemKind] = LineItemKind.RESERVATION

    @property
    def is_manual(self) -> bool:
        return False

    @property
    def is_cancelled(self) -> bool:
        return self.status.strip().lower() in CANCELLED_STATUSES

    @property
    def is_revenue_bearing(self) -> bool:
        return self.status.strip().lower() in REVENUE_STATUSES

    @property
    def is_airbnb(self) -> bool:
        return "airbnb" in self.source.lower()

    @property
    def client_revenue(self) -> Decimal:
        """Revenue the statement attributes and commissions.

        Reported ``revenue`` wins.  Without it, base rate plus guest fees less
        platform fees; a booking with no rate breakdown falls back to its
        gross payout.
        """
        if self.revenue is not None:
            return self.revenue
        if self.base_rate or self.guest_fees or self.platform_fees:
            return self.base_rate + self.guest_fees - self.platform_fees
        return self.gross_payout

    @property
    def total_nights(self) -> int:
        """Nights derived from dates; provider-reported ``nights`` is not trusted."""
        return (self.check_out - self.check_in).days

    def amount(self, field_name: str) -> Decimal:
        if field_name not in RESERVATION_AMOUNT_FIELDS:
            raise ValueError(f"Not a reservation amount field: {field_name}")
        if field_name == "revenue":
            return self.client_revenue
        value = getattr(self, field_name)
        return ZERO if value is None else value

    def scaled(self, numerator: int, denominator: int) -> Reservation:
        """Copy with every financial field multiplied by numerator/denominator."""
        if denominator <= 0 or numerator == denominator:
            return self
        ratio_num = Decimal(numerator)
        ratio_den = Decimal(denominator)
        changes: dict[str, Decimal | None] = {}
        for name in RESERVATION_AMOUNT_FIELDS:
            value = getattr(self, name)
            changes[name] = None if value is None else value * ratio_num / ratio_den
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind.value}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Decimal):
                data[f.name] = str(value)
            elif isinstance(value, date):
                data[f.name] = value.isoformat()
            else:
                data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Reservation:
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            value = data[f.name]
            if f.name in RESERVATION_AMOUNT_FIELDS:
                if f.name in _OPTIONAL_AMOUNT_FIELDS and value is None:
                    kwargs[f.name] = None
                else:
                    kwargs[f.name] = to_decimal(value, ZERO)
            elif f.name in ("check_in", "check_out", "booked_on"):
                kwargs[f.name] = _parse_date(value)
            elif f.name in ("property_id", "nights"):
                kwargs[f.name] = int(value)
            else:
                kwargs[f.name] = value
        return cls(**kwargs)


@dataclass(frozen=True)
class CustomReservation(Reservation):
    """A manually authored reservation added to a draft statement."""

    note: str = ""

    kind: ClassVar[LineItemKind] = LineItemKind.CUSTOM_RESERVATION

    @property
    def is_manual(self) -> bool:
        return True


@dataclass(frozen=True)
class AttributedReservation:
    """A reservation's contribution to one statement period.

    ``nights_in_period`` / ``total_nights`` is the proration ratio.  In
    checkout mode both are equal.  ``fallback`` marks a zero-night row with
    revenue (same-day data error): it is attributed in full when it checks
    out inside the period.
    """

    original: Reservation
    nights_in_period: int
    total_nights: int
    checkout_in_period: bool
    fallback: bool = False

    @property
    def is_full(self) -> bool:
        return self.fallback or self.nights_in_period == self.total_nights

    @property
    def factor(self) -> Decimal:
        if self.is_full:
            return Decimal("1")
        return Decimal(self.nights_in_period) / Decimal(self.total_nights)

    @property
    def attributed(self) -> Reservation:
        if self.is_full:
            return self.original
        return self.original.scaled(self.nights_in_period, self.total_nights)

    @property
    def proration_note(self) -> str | None:
        if self.is_full:
            return None
        return f"{self.nights_in_period}/{self.total_nights} days in period"

    def amount(self, field_name: str) -> Decimal:
        return self.attributed.amount(field_name)

    def to_dict(self) -> dict[str, Any]:
        data = self.original.to_dict()
        data["proration"] = {
            "nights_in_period": self.nights_in_period,
            "total_nights": self.total_nights,
            "checkout_in_period": self.checkout_in_period,
            "fallback": self.fallback,
        }
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AttributedReservation:
        proration = data.get("proration") or {}
        original = line_item_from_dict({k: v for k, v in data.items() if k != "proration"})
        if not isinstance(original, Reservation):
            raise ValueError(f"Attributed line item is not a reservation: {data.get('kind')}")
        total = int(proration.get("total_nights", original.total_nights))
        return cls(
            original=original,
            nights_in_period=int(proration.get("nights_in_period", total)),
            total_nights=total,
            checkout_in_period=bool(proration.get("checkout_in_period", True)),
            fallback=bool(proration.get("fallback", False)),
        )


# =============================================================================
# Expenses
# =============================================================================


@dataclass(frozen=True)
class Expense:
    """An expense (or upsell income) row.

    ``amount`` is a positive magnitude.  Rows categorised ``upsell`` are
    owner income; every other row is an owner cost unless hidden or LL Cover.
    """

    expense_id: str
    expense_date: date
    description: str
    category: str
    amount: Decimal
    property_id: int | None = None
    listing_name: str | None = None
    vendor: str = ""
    hidden: bool = False
    is_ll_cover: bool = False
    source: ExpenseSource = ExpenseSource.SYNCED

    kind: ClassVar[LineItemKind] = LineItemKind.EXPENSE

    @property
    def is_upsell(self) -> bool:
        return self.category.strip().lower() == "upsell"

    @property
    def is_cleaning(self) -> bool:
        text = f"{self.category} {self.description}".lower()
        return any(marker in text for marker in _CLEANING_MARKERS)

    @property
    def is_supplies(self) -> bool:
        return any(marker in self.category.lower() for marker in _SUPPLIES_MARKERS)

    @property
    def duplicate_key(self) -> tuple[date, str, Decimal]:
        """Exact-match key used to resolve synced/uploaded duplicates."""
        return (self.expense_date, self.description.strip().lower(), self.amount)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "expense_id": self.expense_id,
            "expense_date": self.expense_date.isoformat(),
            "description": self.description,
            "category": self.category,
            "amount": str(self.amount),
            "property_id": self.property_id,
            "listing_name": self.listing_name,
            "vendor": self.vendor,
            "hidden": self.hidden,
            "is_ll_cover": self.is_ll_cover,
            "source": self.source.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Expense:
        property_id = data.get("property_id")
        return cls(
            expense_id=str(data["expense_id"]),
            expense_date=_parse_date(data["expense_date"]),
            description=data.get("description") or "",
            category=data.get("category") or "",
            amount=abs(to_decimal(data["amount"])),
            property_id=int(property_id) if property_id is not None else None,
            listing_name=data.get("listing_name"),
            vendor=data.get("vendor") or "",
            hidden=bool(data.get("hidden", False)),
            is_ll_cover=bool(data.get("is_ll_cover", False)),
            source=ExpenseSource(data.get("source", ExpenseSource.SYNCED.value)),
        )


LineItem = Union[Reservation, CustomReservation, Expense]

_VARIANTS: dict[str, type] = {
    LineItemKind.RESERVATION.value: Reservation,
    LineItemKind.CUSTOM_RESERVATION.value: CustomReservation,
    LineItemKind.EXPENSE.value: Expense,
}


def line_item_to_dict(item: LineItem) -> dict[str, Any]:
    return item.to_dict()


def line_item_from_dict(data: dict[str, Any]) -> LineItem:
    """Rebuild a line item from its tagged dict form."""
    kind = data.get("kind")
    variant = _VARIANTS.get(kind)
    if variant is None:
        raise ValueError(f"Unknown line item kind: {kind!r}")
    payload = {k: v for k, v in data.items() if k != "kind"}
    return variant.from_dict(payload)
