"""
Tests for ExpenseUploadService: read -> validate -> store.

Covers:
- Flexible column headers and date formats
- Per-row validation errors (bad rows reported, never stored)
- Listing name resolution with a default property fallback
- Whole-file failures (unsupported type, missing columns, unreadable file)
- Stored rows surface as uploaded expenses
"""

from datetime import date, datetime
from decimal import Decimal

import openpyxl
import pytest
from sqlalchemy import select

from statement_ingestion.services.upload_service import (
    ExpenseUploadService,
    parse_upload_date,
    resolve_columns,
)
from statement_kernel.domain.line_items import ExpenseSource
from statement_kernel.exceptions import ExpenseUploadError
from statement_kernel.models.uploaded_expense import UploadedExpense

NAMES = {"beach house": 101, "ocean view": 102}


@pytest.fixture
def service(db_session):
    return ExpenseUploadService(
        db_session,
        resolve_property=lambda name: NAMES.get(name.strip().lower()),
    )


@pytest.fixture
def write_csv(tmp_path):
    def _write(text, name="expenses.csv"):
        path = tmp_path / name
        path.write_text(text)
        return path

    return _write


class TestResolveColumns:
    def test_aliases_and_punctuation(self):
        columns = resolve_columns(["Txn Date", "Memo", "Expense Type", "Amount ($)", "Payee", "Unit"])
        assert columns == {
            "expense_date": "Txn Date",
            "description": "Memo",
            "category": "Expense Type",
            "amount": "Amount ($)",
            "vendor": "Payee",
            "listing_name": "Unit",
        }

    def test_unknown_headers_ignored(self):
        assert resolve_columns(["Foo", "", "Date"]) == {"expense_date": "Date"}


class TestParseUploadDate:
    @pytest.mark.parametrize(
        "raw",
        [
            "2025-01-03",
            "01/03/2025",
            "1/3/25",
            "03-Jan-2025",
            "Jan 03, 2025",
            " 2025-01-03 ",
            datetime(2025, 1, 3, 14, 30),
            date(2025, 1, 3),
        ],
    )
    def test_accepted_formats(self, raw):
        assert parse_upload_date(raw) == date(2025, 1, 3)

    def test_rejects_garbage(self):
        with pytest.raises(ValueError, match="Unrecognised date"):
            parse_upload_date("next tuesday")


class TestParse:
    def test_valid_rows(self, service, write_csv, captured_logs):
        path = write_csv(
            "Date,Description,Category,Amount,Vendor,Listing\n"
            "2025-01-03,Light bulbs,Supplies,$12.50,Hardware Co,Beach House\n"
            "01/04/2025,Drain repair,Maintenance,\"1,200.00\",,Ocean View\n"
        )

        result = service.parse(path)

        assert not result.has_errors
        first, second = result.rows
        assert first.row_number == 1
        assert first.amount == Decimal("12.50")
        assert first.vendor == "Hardware Co"
        assert first.property_id == 101
        assert second.expense_date == date(2025, 1, 4)
        assert second.amount == Decimal("1200.00")
        assert second.property_id == 102

        parsed = [r for r in captured_logs() if r["message"] == "expense_upload_parsed"]
        assert parsed[0]["valid_count"] == 2
        assert parsed[0]["error_count"] == 0

    def test_bad_rows_reported_good_rows_kept(self, service, write_csv):
        path = write_csv(
            "Date,Description,Amount\n"
            "2025-01-03,Ok row,10\n"
            "someday,Bad date,10\n"
            "2025-01-05,No amount,\n"
            ",Nothing valid,abc\n"
        )

        result = service.parse(path)

        assert [r.description for r in result.rows] == ["Ok row"]
        assert [(e.row_number, e.field) for e in result.errors] == [
            (2, "expense_date"),
            (3, "amount"),
            (4, "expense_date"),
            (4, "amount"),
        ]

    def test_negative_amounts_become_magnitudes(self, service, write_csv):
        path = write_csv("Date,Amount\n2025-01-03,(40.00)\n2025-01-04,-15\n")
        assert [r.amount for r in service.parse(path).rows] == [Decimal("40.00"), Decimal("15")]

    def test_unresolved_listing_falls_back_to_default(self, service, write_csv):
        path = write_csv(
            "Date,Amount,Listing\n"
            "2025-01-03,5,Mystery Cabin\n"
            "2025-01-03,5,\n"
        )
        result = service.parse(path, default_property_id=101)

        assert [r.property_id for r in result.rows] == [101, 101]
        assert result.rows[0].listing_name == "Mystery Cabin"
        assert result.rows[1].listing_name is None

    def test_unmapped_rows(self, service, write_csv):
        path = write_csv("Date,Amount,Listing\n2025-01-03,5,Mystery Cabin\n2025-01-03,5,Beach House\n")
        result = service.parse(path)
        assert [r.listing_name for r in result.unmapped_rows] == ["Mystery Cabin"]

    def test_header_only_file(self, service, write_csv):
        result = service.parse(write_csv("Date,Amount\n"))
        assert result.rows == ()
        assert not result.has_errors

    def test_missing_required_column(self, service, write_csv):
        path = write_csv("Date,Description\n2025-01-03,No amount column\n")
        with pytest.raises(ExpenseUploadError) as exc_info:
            service.parse(path)
        assert exc_info.value.code == "EXPENSE_UPLOAD_INVALID"
        assert "amount" in exc_info.value.detail

    def test_unsupported_extension(self, service, tmp_path):
        path = tmp_path / "expenses.pdf"
        path.write_text("not a spreadsheet")
        with pytest.raises(ExpenseUploadError, match="unsupported file type"):
            service.parse(path)

    def test_unreadable_file(self, service, tmp_path):
        with pytest.raises(ExpenseUploadError) as exc_info:
            service.parse(tmp_path / "missing.csv")
        assert exc_info.value.filename == "missing.csv"

    def test_xlsx_upload(self, service, tmp_path):
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.append(["January expenses"])
        ws.append(["Transaction Date", "Details", "Cost", "Property"])
        ws.append([datetime(2025, 1, 3), "Pool chemicals", 64.2, "Ocean View"])
        path = tmp_path / "expenses.xlsx"
        wb.save(path)

        (row,) = service.parse(path).rows

        assert row.expense_date == date(2025, 1, 3)
        assert row.amount == Decimal("64.2")
        assert row.property_id == 102


class TestStore:
    def test_import_file_persists_valid_rows(self, service, write_csv, db_session, actor_id):
        path = write_csv(
            "Date,Description,Category,Amount,Listing\n"
            "2025-01-03,Light bulbs,Supplies,12.50,Beach House\n"
            "bad,Broken row,Supplies,1,Beach House\n"
        )

        result = service.import_file(path, actor_id)

        assert result.stored_count == 1
        assert len(result.errors) == 1
        (row,) = db_session.execute(select(UploadedExpense)).scalars().all()
        assert row.property_id == 101
        assert row.upload_filename == "expenses.csv"
        assert row.row_number == 1
        assert row.vendor is None
        assert row.created_by_id == actor_id

        expense = row.to_domain()
        assert expense.expense_id == f"upload:{row.id}"
        assert expense.source == ExpenseSource.UPLOADED
        assert expense.amount == Decimal("12.50")

    def test_store_logs_unmapped_count(self, service, write_csv, actor_id, captured_logs):
        path = write_csv("Date,Amount,Listing\n2025-01-03,5,Mystery Cabin\n")
        service.import_file(path, actor_id)
        stored = [r for r in captured_logs() if r["message"] == "expense_upload_stored"]
        assert stored[0]["stored_count"] == 1
        assert stored[0]["unmapped_count"] == 1
