"""
Tests for JSON logging (statement_kernel/logging_config.py).

Covers:
- Record shape: event name, bound statement context, extras
- Money, enum and id rendering
- Kernel errors as a nested ``error`` object
- Statement events carrying their context end to end
- One-time configuration
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from statement_kernel.domain.dtos import StatementStatus
from statement_kernel.exceptions import InvalidTransitionError
from statement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from statement_services.statement_builder import StatementRequest
from tests.factories import StaticBookingProvider, make_reservation


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def log_lines():
    """Install a JSON handler and return a reader for everything it wrote."""
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    configure_logging(handler=handler)

    def _read() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    return _read


def _events(records, name):
    return [r for r in records if r["message"] == name]


class TestRecordShape:
    def test_event_line(self, log_lines):
        get_logger("services.builder").info("statement_built")

        (record,) = log_lines()
        assert record["message"] == "statement_built"
        assert record["level"] == "INFO"
        assert record["logger"] == "statement_kernel.services.builder"
        assert record["ts"].endswith("+00:00")

    def test_bound_statement_context(self, log_lines):
        statement_id = uuid4()
        with LogContext.bind(statement_id=statement_id, listing_id=101, period="2025-01-01/2025-01-07"):
            get_logger("test").info("statement_finalized", extra={"version": 2})

        (record,) = log_lines()
        assert record["statement_id"] == str(statement_id)
        assert record["listing_id"] == "101"
        assert record["period"] == "2025-01-01/2025-01-07"
        assert record["version"] == 2

    def test_context_wins_over_extra(self, log_lines):
        with LogContext.bind(batch_id="job-1"):
            get_logger("test").info("generation_job_started", extra={"batch_id": "other"})
        assert log_lines()[0]["batch_id"] == "job-1"

    def test_debug_dropped_at_default_level(self, log_lines):
        logger = get_logger("test")
        logger.debug("policy_resolved")
        logger.warning("provider_call_failed", extra={"provider": "booking"})
        assert [r["message"] for r in log_lines()] == ["provider_call_failed"]


class TestValueRendering:
    def test_money_is_fixed_point_text(self, log_lines):
        get_logger("test").info(
            "statement_built",
            extra={"owner_payout": Decimal("180.00"), "pm_commission": Decimal("1.5E+2")},
        )
        record = log_lines()[0]
        assert record["owner_payout"] == "180.00"
        assert record["pm_commission"] == "150"

    def test_enums_ids_and_dates(self, log_lines):
        job_id = uuid4()
        get_logger("test").info(
            "statement_sent",
            extra={"to_status": StatementStatus.SENT, "job_id": job_id, "sent_on": date(2025, 1, 8)},
        )
        record = log_lines()[0]
        assert record["to_status"] == "sent"
        assert record["job_id"] == str(job_id)
        assert record["sent_on"] == "2025-01-08"

    def test_collections(self, log_lines):
        get_logger("test").info(
            "statement_built",
            extra={"partial_sources": ("accounting",), "property_ids": frozenset({102, 101})},
        )
        record = log_lines()[0]
        assert record["partial_sources"] == ["accounting"]
        assert record["property_ids"] == [101, 102]


class TestErrorPayload:
    def test_kernel_error_fields(self, log_lines):
        try:
            raise InvalidTransitionError("stmt-1", "paid", "send")
        except InvalidTransitionError:
            get_logger("test").warning("transition_rejected", exc_info=True)

        record = log_lines()[0]
        assert record["error"] == {
            "type": "InvalidTransitionError",
            "message": "Cannot send statement stmt-1 in status paid",
            "code": "INVALID_TRANSITION",
            "statement_id": "stmt-1",
            "current_status": "paid",
            "action": "send",
        }
        assert "Traceback" in record["traceback"]

    def test_plain_error_has_no_code(self, log_lines):
        try:
            raise RuntimeError("insufficient platform balance")
        except RuntimeError:
            get_logger("test").error("payout_failed", exc_info=True)

        error = log_lines()[0]["error"]
        assert error == {"type": "RuntimeError", "message": "insufficient platform balance"}


class TestLogContext:
    def test_bind_restores_outer_context(self):
        LogContext.set(batch_id="job-1")
        with LogContext.bind(statement_id="s-1") as bound:
            assert bound == {"batch_id": "job-1", "statement_id": "s-1"}
        assert LogContext.get_all() == {"batch_id": "job-1"}

    def test_bind_restores_after_error(self):
        with pytest.raises(ValueError):
            with LogContext.bind(listing_id=101):
                raise ValueError("boom")
        assert LogContext.get_all() == {}

    def test_none_and_unknown_fields_ignored(self):
        actor = uuid4()
        with LogContext.bind(actor_id=actor, listing_id=None, owner_email="x@example.com"):
            assert LogContext.get_all() == {"actor_id": str(actor)}

    def test_dates_stringified(self):
        LogContext.set(period=date(2025, 1, 1))
        assert LogContext.get_all() == {"period": "2025-01-01"}

    def test_clear(self):
        LogContext.set(correlation_id="c-1", batch_id="job-1")
        LogContext.clear()
        assert LogContext.get_all() == {}


class TestStatementEvents:
    def test_build_logs_period_and_listing(self, log_lines, make_listing, make_builder, actor_id):
        make_listing(101)
        builder = make_builder(StaticBookingProvider([make_reservation()]))

        builder.build(
            StatementRequest(property_ids=(101,), period_start=date(2025, 1, 1), period_end=date(2025, 1, 7)),
            actor_id,
        )

        (built,) = _events(log_lines(), "statement_built")
        assert built["period"] == "2025-01-01/2025-01-07"
        assert built["listing_id"] == "101"
        assert built["actor_id"] == str(actor_id)
        assert built["build_status"] == "created"
        assert Decimal(built["owner_payout"]) == Decimal("180.00")
        assert LogContext.get_all() == {}

    def test_combined_build_has_no_listing_context(self, log_lines, make_listing, make_builder, actor_id):
        make_listing(101)
        make_listing(102)
        builder = make_builder(StaticBookingProvider())

        builder.build(
            StatementRequest(
                property_ids=(101, 102), period_start=date(2025, 1, 1), period_end=date(2025, 1, 7),
                owner_id=1,
            ),
            actor_id,
        )

        (built,) = _events(log_lines(), "statement_built")
        assert "listing_id" not in built

    def test_finalize_logs_transition(self, log_lines, make_listing, make_builder, lifecycle, actor_id):
        make_listing(101)
        outcome = make_builder(StaticBookingProvider([make_reservation()])).build(
            StatementRequest(property_ids=(101,), period_start=date(2025, 1, 1), period_end=date(2025, 1, 7)),
            actor_id,
        )
        sid = outcome.statement.statement_id

        finalized = lifecycle.finalize(sid, actor_id)

        (record,) = _events(log_lines(), "statement_finalized")
        assert record["statement_id"] == str(sid)
        assert record["actor_id"] == str(actor_id)
        assert record["from_status"] == "draft"
        assert record["to_status"] == "final"
        assert record["version"] == finalized.version


class TestConfigureLogging:
    def test_configured_once(self):
        first = logging.StreamHandler(StringIO())
        configure_logging(handler=first)
        configure_logging(handler=logging.StreamHandler(StringIO()))
        assert logging.getLogger("statement_kernel").handlers == [first]

    def test_level_by_name(self):
        configure_logging(level="debug", stream=StringIO())
        assert logging.getLogger("statement_kernel").level == logging.DEBUG

    def test_reset(self):
        configure_logging(stream=StringIO())
        reset_logging()
        root = logging.getLogger("statement_kernel")
        assert root.handlers == []
        assert root.level == logging.WARNING
