"""
Tests for the file-backed booking and accounting providers.
"""

import json
from datetime import date
from decimal import Decimal

import pytest

from statement_ingestion.adapters import JsonAccountingProvider, JsonBookingProvider
from statement_kernel.domain.line_items import CustomReservation, ExpenseSource
from tests.factories import make_custom_reservation, make_expense, make_reservation

JAN_1 = date(2025, 1, 1)
JAN_7 = date(2025, 1, 7)


@pytest.fixture
def write_json(tmp_path):
    def _write(payload, name="export.json"):
        path = tmp_path / name
        path.write_text(json.dumps(payload))
        return path

    return _write


class TestJsonBookingProvider:
    def test_filters_by_property_and_period(self, write_json):
        path = write_json({"reservations": [
            make_reservation("IN").to_dict(),
            make_reservation("OTHER", property_id=102).to_dict(),
            make_reservation("EARLY", check_in=date(2024, 12, 1), check_out=date(2024, 12, 5)).to_dict(),
            make_reservation("LATE", check_in=date(2025, 1, 8), check_out=date(2025, 1, 10)).to_dict(),
            make_reservation("SPANS", check_in=date(2024, 12, 30), check_out=date(2025, 1, 9)).to_dict(),
        ]})

        result = JsonBookingProvider(path).fetch_reservations((101,), JAN_1, JAN_7)

        assert [r.reservation_id for r in result] == ["IN", "SPANS"]
        assert result[0].revenue == Decimal("300.00")

    def test_rows_without_kind_parsed_as_reservations(self, write_json):
        path = write_json({"reservations": [{
            "reservation_id": "X1",
            "property_id": "101",
            "guest_name": "Sam",
            "check_in": "2025-01-02",
            "check_out": "2025-01-05",
            "revenue": "$1,250.00",
        }]})
        (reservation,) = JsonBookingProvider(path).fetch_reservations((101,), JAN_1, JAN_7)
        assert reservation.property_id == 101
        assert reservation.revenue == Decimal("1250.00")
        assert reservation.total_nights == 3

    def test_custom_reservations_keep_their_type(self, write_json):
        path = write_json({"reservations": [make_custom_reservation().to_dict()]})
        (reservation,) = JsonBookingProvider(path).fetch_reservations((101,), JAN_1, JAN_7)
        assert isinstance(reservation, CustomReservation)
        assert reservation.note == "Owner friend stay"

    def test_top_level_must_be_object(self, write_json):
        path = write_json([])
        with pytest.raises(ValueError, match="JSON object"):
            JsonBookingProvider(path).fetch_reservations((101,), JAN_1, JAN_7)

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(OSError):
            JsonBookingProvider(tmp_path / "missing.json").fetch_reservations((101,), JAN_1, JAN_7)


class TestJsonAccountingProvider:
    def test_period_filter_and_source(self, write_json):
        path = write_json({"expenses": [
            make_expense("E1").to_dict(),
            make_expense("E2", expense_date=date(2025, 1, 9)).to_dict(),
        ]})
        result = JsonAccountingProvider(path).fetch_expenses(JAN_1, JAN_7)

        assert [e.expense_id for e in result] == ["E1"]
        assert result[0].source == ExpenseSource.SYNCED

    def test_category_mappings_applied_case_insensitively(self, write_json):
        path = write_json({
            "category_mappings": {"Cleaning Services": "Cleaning"},
            "expenses": [make_expense(category="  cleaning services").to_dict()],
        })
        (expense,) = JsonAccountingProvider(path).fetch_expenses(JAN_1, JAN_7)
        assert expense.category == "Cleaning"
        assert expense.is_cleaning

    def test_ll_cover_detected_from_text(self, write_json):
        path = write_json({"expenses": [
            make_expense(description="Water heater (LL cover)").to_dict(),
        ]})
        (expense,) = JsonAccountingProvider(path).fetch_expenses(JAN_1, JAN_7)
        assert expense.is_ll_cover

    def test_negative_amounts_stored_as_magnitude(self, write_json):
        row = make_expense().to_dict()
        row["amount"] = "(40.00)"
        path = write_json({"expenses": [row]})
        (expense,) = JsonAccountingProvider(path).fetch_expenses(JAN_1, JAN_7)
        assert expense.amount == Decimal("40.00")
