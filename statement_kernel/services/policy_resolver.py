"""
PolicyResolver -- effective financial policy for a listing at a date.

Responsibility:
    Combine a listing's own configuration with its group defaults into a
    frozen ``EffectivePolicy`` for one as-of date.

Architecture position:
    Kernel > Services.  Reads through ``ListingRepository``; never writes.

Invariants enforced:
    - A commission waiver is effective only when ``waive_commission_until``
      is unset or on/after the as-of date.
    - Calculation type precedence: explicit request override, then the
      listing override, then the group default, then checkout.
    - The new PM fee is carried only when the transition is enabled and
      fully configured.

Failure modes:
    - ``PolicyNotFoundError`` when the listing does not exist, or is
      inactive and inactive listings were not requested.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from statement_kernel.domain.policy import CalculationType, EffectivePolicy, ListingInfo
from statement_kernel.exceptions import PolicyNotFoundError
from statement_kernel.logging_config import get_logger
from statement_kernel.services.listing_repository import ListingRepository

logger = get_logger("services.policy_resolver")


class PolicyResolver:
    """Resolves ``EffectivePolicy`` values.

    Contract:
        ``resolve`` is a pure function of the repository contents and its
        arguments.  Results are not cached; the repository is.
    """

    def __init__(self, listings: ListingRepository):
        self._listings = listings

    def _calculation_type(
        self, info: ListingInfo, override: CalculationType | None,
    ) -> CalculationType:
        if override is not None:
            return override
        if info.calculation_type is not None:
            return info.calculation_type
        if info.group_id is not None:
            group = self._listings.get_group(info.group_id)
            if group is not None:
                return group.calculation_type
        return CalculationType.CHECKOUT

    def resolve(
        self,
        listing_id: int,
        as_of: date,
        include_inactive: bool = False,
        calculation_type: CalculationType | None = None,
    ) -> EffectivePolicy:
        info = self._listings.get(listing_id)
        if info is None:
            raise PolicyNotFoundError(listing_id)
        if not info.is_active and not include_inactive:
            raise PolicyNotFoundError(listing_id, reason="inactive")

        waive = info.waive_commission and (
            info.waive_commission_until is None or info.waive_commission_until >= as_of
        )
        new_fee_configured = (
            info.new_pm_fee_enabled
            and info.new_pm_fee_percentage is not None
            and info.new_pm_fee_start_date is not None
        )

        policy = EffectivePolicy(
            listing_id=info.listing_id,
            as_of=as_of,
            pm_percentage=info.pm_fee_percentage,
            calculation_type=self._calculation_type(info, calculation_type),
            waive_commission=waive,
            disregard_tax=info.disregard_tax,
            airbnb_pass_through_tax=info.airbnb_pass_through_tax,
            cleaning_fee_pass_through=info.cleaning_fee_pass_through,
            is_cohost_on_airbnb=info.is_cohost_on_airbnb,
            guest_paid_damage_coverage=info.guest_paid_damage_coverage,
            default_cleaning_fee=info.default_cleaning_fee,
            default_pet_fee=info.default_pet_fee,
            waive_commission_until=info.waive_commission_until if waive else None,
            new_pm_fee_percentage=info.new_pm_fee_percentage if new_fee_configured else None,
            new_pm_fee_start_date=info.new_pm_fee_start_date if new_fee_configured else None,
        )
        if info.waive_commission and not waive:
            logger.info(
                "commission_waiver_expired",
                extra={
                    "listing_id": listing_id,
                    "waive_commission_until": str(info.waive_commission_until),
                    "as_of": str(as_of),
                },
            )
        return policy

    def resolve_many(
        self,
        listing_ids: Iterable[int],
        as_of: date,
        include_inactive: bool = False,
        calculation_type: CalculationType | None = None,
    ) -> dict[int, EffectivePolicy]:
        return {
            listing_id: self.resolve(listing_id, as_of, include_inactive, calculation_type)
            for listing_id in listing_ids
        }
