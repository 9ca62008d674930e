"""
Tests for EffectivePolicy snapshots and booking-date fee selection.
"""

from datetime import date
from decimal import Decimal

from statement_kernel.domain.policy import (
    CalculationType,
    ListingInfo,
    policies_from_snapshot,
    snapshot_policies,
)
from tests.factories import make_policy


class TestPmPercentageFor:
    def setup_method(self):
        self.policy = make_policy(
            new_pm_fee_percentage=Decimal("18"),
            new_pm_fee_start_date=date(2025, 1, 1),
        )

    def test_booking_before_start_keeps_legacy(self):
        assert self.policy.pm_percentage_for(date(2024, 12, 31)) == Decimal("15")

    def test_booking_on_start_uses_new(self):
        assert self.policy.pm_percentage_for(date(2025, 1, 1)) == Decimal("18")

    def test_unknown_booking_date_keeps_legacy(self):
        assert self.policy.pm_percentage_for(None) == Decimal("15")

    def test_incomplete_new_fee_configuration_ignored(self):
        policy = make_policy(new_pm_fee_percentage=Decimal("18"))
        assert policy.pm_percentage_for(date(2030, 1, 1)) == Decimal("15")


class TestSnapshot:
    def test_round_trip_with_every_field(self):
        policy = make_policy(
            calculation_type=CalculationType.CALENDAR,
            waive_commission=True,
            waive_commission_until=date(2025, 3, 31),
            disregard_tax=True,
            airbnb_pass_through_tax=True,
            cleaning_fee_pass_through=True,
            is_cohost_on_airbnb=True,
            guest_paid_damage_coverage=True,
            default_cleaning_fee=Decimal("120.00"),
            default_pet_fee=Decimal("35.00"),
            new_pm_fee_percentage=Decimal("18.5"),
            new_pm_fee_start_date=date(2025, 2, 1),
        )
        assert type(policy).from_snapshot(policy.to_snapshot()) == policy

    def test_snapshot_is_json_safe(self):
        snapshot = make_policy(default_cleaning_fee=Decimal("99.99")).to_snapshot()
        assert snapshot["pm_percentage"] == "15"
        assert snapshot["default_cleaning_fee"] == "99.99"
        assert snapshot["as_of"] == "2025-01-08"
        assert snapshot["calculation_type"] == "checkout"
        assert snapshot["new_pm_fee_start_date"] is None

    def test_multi_listing_snapshot(self):
        policies = {202: make_policy(202, "20"), 101: make_policy(101)}
        snapshot = snapshot_policies(policies)
        assert list(snapshot["listings"]) == ["101", "202"]
        assert policies_from_snapshot(snapshot) == policies

    def test_empty_snapshot(self):
        assert policies_from_snapshot({}) == {}
        assert policies_from_snapshot(None) == {}


class TestListingInfo:
    def test_label_prefers_display_name(self):
        info = ListingInfo(
            listing_id=1, name="Raw", pm_fee_percentage=Decimal("15"),
            display_name="Display", nickname="Nick",
        )
        assert info.label == "Display"

    def test_label_falls_back_to_nickname_then_name(self):
        base = dict(listing_id=1, name="Raw", pm_fee_percentage=Decimal("15"))
        assert ListingInfo(nickname="Nick", **base).label == "Nick"
        assert ListingInfo(**base).label == "Raw"
