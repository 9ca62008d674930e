"""
Listing policy value objects.

Responsibility:
    ``ListingInfo`` and ``ListingGroupInfo`` are the read-only views of
    listing configuration handed out by the listing repository.
    ``EffectivePolicy`` is the immutable, fully resolved policy for one
    listing at one as-of date, and the unit that statements snapshot.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Invariants enforced:
    - ``EffectivePolicy.waive_commission`` is the *effective* flag: the
      as-of date has already been compared against the waiver end date.
    - ``to_snapshot()`` / ``from_snapshot()`` round-trip exactly, so a
      statement recomputed from its snapshot is independent of the live
      listing row.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from statement_kernel.domain.values import to_decimal


class CalculationType(str, Enum):
    """Revenue proration model for a statement."""

    CHECKOUT = "checkout"  # Full revenue in the period containing check-out
    CALENDAR = "calendar"  # Revenue prorated by nights in period


@dataclass(frozen=True)
class ListingInfo:
    """Read-only listing configuration (domain view of the Listing row)."""

    listing_id: int
    name: str
    pm_fee_percentage: Decimal
    is_active: bool = True
    display_name: str | None = None
    nickname: str | None = None
    owner_id: int | None = None
    owner_name: str | None = None
    group_id: int | None = None
    parent_listing_id: int | None = None
    calculation_type: CalculationType | None = None
    new_pm_fee_enabled: bool = False
    new_pm_fee_percentage: Decimal | None = None
    new_pm_fee_start_date: date | None = None
    waive_commission: bool = False
    waive_commission_until: date | None = None
    disregard_tax: bool = False
    airbnb_pass_through_tax: bool = False
    cleaning_fee_pass_through: bool = False
    is_cohost_on_airbnb: bool = False
    guest_paid_damage_coverage: bool = False
    include_child_listings: bool = False
    default_cleaning_fee: Decimal | None = None
    default_pet_fee: Decimal | None = None
    tags: frozenset[str] = field(default_factory=frozenset)
    internal_notes: str | None = None

    @property
    def label(self) -> str:
        return self.display_name or self.nickname or self.name


@dataclass(frozen=True)
class ListingGroupInfo:
    """A named collection of listings sharing tags and a calculation type."""

    group_id: int
    name: str
    calculation_type: CalculationType = CalculationType.CHECKOUT
    tags: frozenset[str] = field(default_factory=frozenset)
    listing_ids: tuple[int, ...] = ()


def _opt_decimal(value: Any) -> Decimal | None:
    return None if value is None else to_decimal(value)


def _opt_date(value: Any) -> date | None:
    if value is None:
        return None
    return value if isinstance(value, date) else date.fromisoformat(str(value))


@dataclass(frozen=True)
class EffectivePolicy:
    """Fully resolved financial policy for one listing at one as-of date.

    Contract:
        Frozen.  Everything the fee calculator and anomaly detector need
        to know about a listing is in here; they never read the listing.

    Guarantees:
        ``from_snapshot(p.to_snapshot()) == p``.
    """

    listing_id: int
    as_of: date
    pm_percentage: Decimal
    calculation_type: CalculationType
    waive_commission: bool = False
    disregard_tax: bool = False
    airbnb_pass_through_tax: bool = False
    cleaning_fee_pass_through: bool = False
    is_cohost_on_airbnb: bool = False
    guest_paid_damage_coverage: bool = False
    default_cleaning_fee: Decimal | None = None
    default_pet_fee: Decimal | None = None
    waive_commission_until: date | None = None
    new_pm_fee_percentage: Decimal | None = None
    new_pm_fee_start_date: date | None = None

    def pm_percentage_for(self, booked_on: date | None) -> Decimal:
        """PM percentage for a reservation booked on ``booked_on``.

        Bookings made on or after the new-fee start date use the new
        percentage; older bookings (or bookings with no creation date) keep
        the legacy percentage.
        """
        if (
            self.new_pm_fee_percentage is not None
            and self.new_pm_fee_start_date is not None
            and booked_on is not None
            and booked_on >= self.new_pm_fee_start_date
        ):
            return self.new_pm_fee_percentage
        return self.pm_percentage

    def to_snapshot(self) -> dict[str, Any]:
        """JSON-safe snapshot for embedding in a statement."""
        return {
            "listing_id": self.listing_id,
            "as_of": self.as_of.isoformat(),
            "pm_percentage": str(self.pm_percentage),
            "calculation_type": self.calculation_type.value,
            "waive_commission": self.waive_commission,
            "disregard_tax": self.disregard_tax,
            "airbnb_pass_through_tax": self.airbnb_pass_through_tax,
            "cleaning_fee_pass_through": self.cleaning_fee_pass_through,
            "is_cohost_on_airbnb": self.is_cohost_on_airbnb,
            "guest_paid_damage_coverage": self.guest_paid_damage_coverage,
            "default_cleaning_fee": _str_or_none(self.default_cleaning_fee),
            "default_pet_fee": _str_or_none(self.default_pet_fee),
            "waive_commission_until": _iso_or_none(self.waive_commission_until),
            "new_pm_fee_percentage": _str_or_none(self.new_pm_fee_percentage),
            "new_pm_fee_start_date": _iso_or_none(self.new_pm_fee_start_date),
        }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> EffectivePolicy:
        return cls(
            listing_id=int(data["listing_id"]),
            as_of=date.fromisoformat(data["as_of"]),
            pm_percentage=to_decimal(data["pm_percentage"]),
            calculation_type=CalculationType(data["calculation_type"]),
            waive_commission=bool(data.get("waive_commission", False)),
            disregard_tax=bool(data.get("disregard_tax", False)),
            airbnb_pass_through_tax=bool(data.get("airbnb_pass_through_tax", False)),
            cleaning_fee_pass_through=bool(data.get("cleaning_fee_pass_through", False)),
            is_cohost_on_airbnb=bool(data.get("is_cohost_on_airbnb", False)),
            guest_paid_damage_coverage=bool(data.get("guest_paid_damage_coverage", False)),
            default_cleaning_fee=_opt_decimal(data.get("default_cleaning_fee")),
            default_pet_fee=_opt_decimal(data.get("default_pet_fee")),
            waive_commission_until=_opt_date(data.get("waive_commission_until")),
            new_pm_fee_percentage=_opt_decimal(data.get("new_pm_fee_percentage")),
            new_pm_fee_start_date=_opt_date(data.get("new_pm_fee_start_date")),
        )


def _str_or_none(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def _iso_or_none(value: date | None) -> str | None:
    return None if value is None else value.isoformat()


def snapshot_policies(policies: dict[int, EffectivePolicy]) -> dict[str, Any]:
    """Snapshot a set of per-listing policies keyed by listing id."""
    return {
        "listings": {
            str(listing_id): policy.to_snapshot()
            for listing_id, policy in sorted(policies.items())
        }
    }


def policies_from_snapshot(snapshot: dict[str, Any]) -> dict[int, EffectivePolicy]:
    """Inverse of ``snapshot_policies``."""
    listings = (snapshot or {}).get("listings", {})
    return {
        int(listing_id): EffectivePolicy.from_snapshot(data)
        for listing_id, data in listings.items()
    }
