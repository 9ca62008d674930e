"""
Listing and ListingGroup ORM models.

Contract:
    ``Listing`` holds the per-property financial policy; ``ListingGroup``
    holds shared tags and the default calculation type for its members.
    Both convert to frozen domain DTOs via ``to_dto()``.

Architecture: statement_kernel/models. Imports from db.base and domain only.

Invariants enforced:
    - Listings keep the booking provider's integer id as primary key.
    - Tags are stored as a comma-separated string and only ever leave this
      module as ``frozenset[str]`` (``parse_tags``/``serialize_tags``).
    - Listing groups have unique names.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from statement_kernel.db.base import TrackedBase
from statement_kernel.domain.policy import CalculationType, ListingGroupInfo, ListingInfo
from statement_kernel.domain.tags import parse_tags, serialize_tags


class ListingGroup(TrackedBase):
    """Named collection of listings (combined/batch statement generation)."""

    __tablename__ = "listing_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    tags: Mapped[str | None] = mapped_column(Text, nullable=True)
    calculation_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CalculationType.CHECKOUT.value,
    )

    listings: Mapped[list["Listing"]] = relationship(
        "Listing",
        back_populates="group",
        foreign_keys="Listing.group_id",
    )

    @property
    def tag_set(self) -> frozenset[str]:
        return parse_tags(self.tags)

    def set_tags(self, tags: Iterable[str]) -> None:
        self.tags = serialize_tags(tags) or None

    def to_dto(self) -> ListingGroupInfo:
        return ListingGroupInfo(
            group_id=self.id,
            name=self.name,
            calculation_type=CalculationType(self.calculation_type),
            tags=self.tag_set,
            listing_ids=tuple(sorted(listing.id for listing in self.listings)),
        )


class Listing(TrackedBase):
    """A managed property and its financial policy flags."""

    __tablename__ = "listings"

    __table_args__ = (
        Index("ix_listings_owner", "owner_id"),
        Index("ix_listings_group", "group_id"),
        Index("ix_listings_parent", "parent_listing_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    nickname: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    owner_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    owner_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    group_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("listing_groups.id", ondelete="SET NULL"), nullable=True,
    )
    parent_listing_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    calculation_type: Mapped[str | None] = mapped_column(String(20), nullable=True)

    pm_fee_percentage: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("15.00"))
    new_pm_fee_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    new_pm_fee_percentage: Mapped[Decimal | None] = mapped_column(nullable=True)
    new_pm_fee_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    waive_commission: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    waive_commission_until: Mapped[date | None] = mapped_column(Date, nullable=True)
    disregard_tax: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    airbnb_pass_through_tax: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cleaning_fee_pass_through: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_cohost_on_airbnb: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    guest_paid_damage_coverage: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    include_child_listings: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    default_cleaning_fee: Mapped[Decimal | None] = mapped_column(nullable=True)
    default_pet_fee: Mapped[Decimal | None] = mapped_column(nullable=True)
    tags: Mapped[str | None] = mapped_column(Text, nullable=True)
    internal_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    group: Mapped[ListingGroup | None] = relationship(
        "ListingGroup",
        back_populates="listings",
        foreign_keys=[group_id],
    )

    @property
    def tag_set(self) -> frozenset[str]:
        return parse_tags(self.tags)

    def set_tags(self, tags: Iterable[str]) -> None:
        self.tags = serialize_tags(tags) or None

    def to_dto(self) -> ListingInfo:
        return ListingInfo(
            listing_id=self.id,
            name=self.name,
            pm_fee_percentage=self.pm_fee_percentage,
            is_active=self.is_active,
            display_name=self.display_name,
            nickname=self.nickname,
            owner_id=self.owner_id,
            owner_name=self.owner_name,
            group_id=self.group_id,
            parent_listing_id=self.parent_listing_id,
            calculation_type=(
                CalculationType(self.calculation_type) if self.calculation_type else None
            ),
            new_pm_fee_enabled=self.new_pm_fee_enabled,
            new_pm_fee_percentage=self.new_pm_fee_percentage,
            new_pm_fee_start_date=self.new_pm_fee_start_date,
            waive_commission=self.waive_commission,
            waive_commission_until=self.waive_commission_until,
            disregard_tax=self.disregard_tax,
            airbnb_pass_through_tax=self.airbnb_pass_through_tax,
            cleaning_fee_pass_through=self.cleaning_fee_pass_through,
            is_cohost_on_airbnb=self.is_cohost_on_airbnb,
            guest_paid_damage_coverage=self.guest_paid_damage_coverage,
            include_child_listings=self.include_child_listings,
            default_cleaning_fee=self.default_cleaning_fee,
            default_pet_fee=self.default_pet_fee,
            tags=self.tag_set,
            internal_notes=self.internal_notes,
        )
