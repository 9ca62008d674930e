"""
Tests for EmailLogService delivery callbacks.
"""

from datetime import date

import pytest

from statement_kernel.domain.dtos import EmailStatus
from statement_kernel.exceptions import EmailLogNotFoundError
from statement_kernel.services.email_log_service import EmailLogService
from statement_kernel.services.lifecycle import StatementLifecycleManager
from statement_services.statement_builder import StatementRequest
from tests.factories import RecordingEmailSender, StaticBookingProvider, make_reservation


@pytest.fixture
def sent_statement(db_session, clock, make_listing, make_builder, actor_id):
    """Send one statement through a recording sender; message id is msg-1."""
    make_listing(101)
    request = StatementRequest(
        property_ids=(101,), period_start=date(2025, 1, 1), period_end=date(2025, 1, 7),
    )
    statement = make_builder(StaticBookingProvider([make_reservation()])).build(
        request, actor_id,
    ).statement
    manager = StatementLifecycleManager(
        db_session, clock=clock, email_sender=RecordingEmailSender(),
    )
    manager.finalize(statement.statement_id, actor_id)
    manager.send(statement.statement_id, actor_id, recipient="owner@example.com")
    return statement


@pytest.fixture
def service(db_session, clock):
    return EmailLogService(db_session, clock=clock)


class TestEmailLogCreation:
    def test_send_creates_pending_log(self, service, sent_statement):
        logs = service.for_statement(sent_statement.statement_id)
        assert len(logs) == 1
        assert logs[0].status == EmailStatus.PENDING
        assert logs[0].message_id == "msg-1"
        assert logs[0].recipient == "owner@example.com"


class TestRecordDelivery:
    def test_delivered(self, service, sent_statement, clock):
        info = service.record_delivery("msg-1", EmailStatus.SENT)
        assert info.status == EmailStatus.SENT
        assert info.delivered_at == clock.now()

    def test_bounce_records_error(self, service, sent_statement, captured_logs):
        info = service.record_delivery(
            "msg-1", EmailStatus.BOUNCED, error_message="mailbox full", error_code="552",
        )
        assert info.status == EmailStatus.BOUNCED
        assert info.error_message == "mailbox full"
        assert info.error_code == "552"
        warnings = [r for r in captured_logs() if r["message"] == "email_delivery_recorded"]
        assert warnings[0]["level"] == "WARNING"

    def test_late_sent_does_not_overwrite_failure(self, service, sent_statement):
        service.record_delivery("msg-1", EmailStatus.FAILED, error_message="rejected")
        info = service.record_delivery("msg-1", EmailStatus.SENT)
        assert info.status == EmailStatus.FAILED
        assert info.delivered_at is None

    def test_unknown_message(self, service):
        with pytest.raises(EmailLogNotFoundError) as exc_info:
            service.record_delivery("nope", EmailStatus.SENT)
        assert exc_info.value.code == "EMAIL_LOG_NOT_FOUND"
