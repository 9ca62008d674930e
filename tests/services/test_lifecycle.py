"""
Tests for StatementLifecycleManager.

Covers:
- draft -> final -> sent -> paid with collaborator side effects
- Revert-to-draft back-edges and the draft no-op
- Snapshot freezing on finalize
- Email and payment collaborator failures
- Optimistic version checks
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from statement_kernel.domain.dtos import PayoutStatus, StatementAction, StatementStatus
from statement_kernel.exceptions import (
    InvalidTransitionError,
    PersistenceConflictError,
    ProviderUnavailableError,
    StatementNotFoundError,
)
from statement_kernel.services.email_log_service import EmailLogService
from statement_kernel.services.lifecycle import StatementLifecycleManager
from statement_services.statement_builder import StatementRequest
from tests.factories import (
    FailingEmailSender,
    FailingPaymentGateway,
    RecordingEmailSender,
    RecordingPaymentGateway,
    StaticBookingProvider,
    make_reservation,
)

JAN_1 = date(2025, 1, 1)
JAN_7 = date(2025, 1, 7)


@pytest.fixture
def make_draft(make_listing, make_builder, actor_id):
    """Build a draft for listing 101 from the given reservations."""
    make_listing(101)

    def _make(reservations=(make_reservation(),)):
        request = StatementRequest(property_ids=(101,), period_start=JAN_1, period_end=JAN_7)
        return make_builder(StaticBookingProvider(reservations)).build(request, actor_id).statement

    return _make


@pytest.fixture
def gateway():
    return RecordingPaymentGateway()


@pytest.fixture
def sender():
    return RecordingEmailSender()


@pytest.fixture
def manager(db_session, clock, gateway, sender):
    return StatementLifecycleManager(
        db_session, clock=clock, payment_gateway=gateway, email_sender=sender,
    )


class TestHappyPath:
    def test_draft_to_paid(self, manager, make_draft, gateway, sender, clock, actor_id):
        draft = make_draft()
        sid = draft.statement_id

        final = manager.finalize(sid, actor_id)
        assert final.status == StatementStatus.FINAL
        assert final.snapshot_frozen_at == clock.now()

        sent = manager.send(sid, actor_id, recipient="owner@example.com")
        assert sent.status == StatementStatus.SENT
        assert sent.sent_at == clock.now()
        assert sender.sent == [("owner@example.com", "Owner statement 2025-01-01 - 2025-01-07", str(sid))]

        paid = manager.mark_paid(sid, actor_id)
        assert paid.status == StatementStatus.PAID
        assert paid.payout_status == PayoutStatus.PAID
        assert paid.payout_transfer_id == "tr_1"
        assert paid.stripe_fee == Decimal("1.50")
        assert paid.total_transfer_amount == Decimal("181.50")
        assert gateway.transfers == [(1, Decimal("180.00"), str(sid))]
        assert paid.version == draft.version + 3

    def test_transitions_logged(self, manager, make_draft, actor_id, captured_logs):
        sid = make_draft().statement_id
        manager.finalize(sid, actor_id)

        records = [r for r in captured_logs() if r["message"] == "statement_finalized"]
        assert len(records) == 1
        assert records[0]["from_status"] == "draft"
        assert records[0]["to_status"] == "final"
        assert records[0]["statement_id"] == str(sid)

    def test_manual_delivery_without_sender(self, lifecycle, make_draft, actor_id):
        sid = make_draft().statement_id
        lifecycle.finalize(sid, actor_id)
        assert lifecycle.send(sid, actor_id).status == StatementStatus.SENT

    def test_apply_dispatches_by_action(self, lifecycle, make_draft, actor_id):
        sid = make_draft().statement_id
        result = lifecycle.apply(sid, StatementAction.FINALIZE, actor_id)
        assert result.status == StatementStatus.FINAL


class TestGuardTable:
    def test_sent_cannot_revert(self, manager, make_draft, actor_id):
        sid = make_draft().statement_id
        manager.finalize(sid, actor_id)
        manager.send(sid, actor_id, recipient="owner@example.com")

        with pytest.raises(InvalidTransitionError) as exc_info:
            manager.revert_to_draft(sid, actor_id)
        assert exc_info.value.code == "INVALID_TRANSITION"
        assert manager.get(sid).status == StatementStatus.SENT

    def test_only_drafts_deletable(self, manager, make_draft, actor_id):
        sid = make_draft().statement_id
        manager.finalize(sid, actor_id)
        with pytest.raises(InvalidTransitionError):
            manager.delete(sid, actor_id)

    def test_cannot_finalize_twice(self, lifecycle, make_draft, actor_id):
        sid = make_draft().statement_id
        lifecycle.finalize(sid, actor_id)
        with pytest.raises(InvalidTransitionError):
            lifecycle.finalize(sid, actor_id)

    def test_cannot_pay_unsent(self, manager, make_draft, actor_id):
        sid = make_draft().statement_id
        manager.finalize(sid, actor_id)
        with pytest.raises(InvalidTransitionError):
            manager.mark_paid(sid, actor_id)

    def test_delete_draft(self, lifecycle, make_draft, actor_id):
        sid = make_draft().statement_id
        lifecycle.delete(sid, actor_id)
        with pytest.raises(StatementNotFoundError):
            lifecycle.get(sid)


ALLOWED = {
    (StatementStatus.DRAFT, StatementAction.FINALIZE),
    (StatementStatus.DRAFT, StatementAction.REVERT_TO_DRAFT),
    (StatementStatus.DRAFT, StatementAction.DELETE),
    (StatementStatus.FINAL, StatementAction.SEND),
    (StatementStatus.FINAL, StatementAction.REVERT_TO_DRAFT),
    (StatementStatus.SENT, StatementAction.MARK_PAID),
    (StatementStatus.PAID, StatementAction.REVERT_TO_DRAFT),
}

FORBIDDEN = [
    (status, action)
    for status in StatementStatus
    for action in StatementAction
    if (status, action) not in ALLOWED
]


def _advance(manager, sid, status, actor_id):
    """Walk a fresh draft forward to ``status`` through the manager."""
    steps = {
        StatementStatus.FINAL: [lambda: manager.finalize(sid, actor_id)],
        StatementStatus.SENT: [
            lambda: manager.finalize(sid, actor_id),
            lambda: manager.send(sid, actor_id, recipient="owner@example.com"),
        ],
        StatementStatus.PAID: [
            lambda: manager.finalize(sid, actor_id),
            lambda: manager.send(sid, actor_id, recipient="owner@example.com"),
            lambda: manager.mark_paid(sid, actor_id),
        ],
    }
    for step in steps.get(status, []):
        step()
    return manager.get(sid)


class TestForbiddenTransitions:
    def test_every_state_and_action_is_classified(self):
        assert len(ALLOWED) + len(FORBIDDEN) == len(StatementStatus) * len(StatementAction)
        assert (StatementStatus.PAID, StatementAction.SEND) in FORBIDDEN
        assert (StatementStatus.PAID, StatementAction.MARK_PAID) in FORBIDDEN
        assert (StatementStatus.SENT, StatementAction.FINALIZE) in FORBIDDEN
        assert (StatementStatus.SENT, StatementAction.SEND) in FORBIDDEN

    @pytest.mark.parametrize(
        "status,action", FORBIDDEN, ids=[f"{s.value}-{a.value}" for s, a in FORBIDDEN],
    )
    def test_rejected_without_side_effects(
        self, manager, make_draft, gateway, sender, actor_id, status, action,
    ):
        sid = make_draft().statement_id
        before = _advance(manager, sid, status, actor_id)
        transfers = len(gateway.transfers)
        emails = len(sender.sent)

        with pytest.raises(InvalidTransitionError) as exc_info:
            manager.apply(sid, action, actor_id)

        assert exc_info.value.code == "INVALID_TRANSITION"
        after = manager.get(sid)
        assert after.status == status
        assert after.version == before.version
        assert after.payout_status == before.payout_status
        assert len(gateway.transfers) == transfers
        assert len(sender.sent) == emails


class TestRevert:
    def test_final_back_to_draft_keeps_snapshot_frozen(self, lifecycle, make_draft, actor_id):
        sid = make_draft().statement_id
        frozen_at = lifecycle.finalize(sid, actor_id).snapshot_frozen_at

        reverted = lifecycle.revert_to_draft(sid, actor_id)

        assert reverted.status == StatementStatus.DRAFT
        assert reverted.snapshot_frozen_at == frozen_at

    def test_refinalize_keeps_original_freeze_time(self, lifecycle, make_draft, clock, actor_id):
        sid = make_draft().statement_id
        frozen_at = lifecycle.finalize(sid, actor_id).snapshot_frozen_at
        lifecycle.revert_to_draft(sid, actor_id)
        clock.advance(3600)

        assert lifecycle.finalize(sid, actor_id).snapshot_frozen_at == frozen_at

    def test_draft_revert_is_noop(self, lifecycle, make_draft, actor_id, captured_logs):
        draft = make_draft()
        result = lifecycle.revert_to_draft(draft.statement_id, actor_id)

        assert result.status == StatementStatus.DRAFT
        assert result.version == draft.version
        assert any(r["message"] == "statement_revert_noop" for r in captured_logs())

    def test_paid_revert_clears_payout(self, manager, make_draft, actor_id):
        sid = make_draft().statement_id
        manager.finalize(sid, actor_id)
        manager.send(sid, actor_id, recipient="owner@example.com")
        manager.mark_paid(sid, actor_id)

        reverted = manager.revert_to_draft(sid, actor_id)

        assert reverted.status == StatementStatus.DRAFT
        assert reverted.payout_status is None
        assert reverted.payout_transfer_id is None
        assert reverted.paid_at is None
        assert reverted.sent_at is None
        assert reverted.snapshot_frozen


class TestCollaboratorFailures:
    def test_send_requires_recipient_when_sender_configured(self, manager, make_draft, actor_id):
        sid = make_draft().statement_id
        manager.finalize(sid, actor_id)
        with pytest.raises(ValueError, match="recipient"):
            manager.send(sid, actor_id)

    def test_email_failure_keeps_statement_final(self, db_session, clock, make_draft, actor_id):
        manager = StatementLifecycleManager(
            db_session, clock=clock, email_sender=FailingEmailSender(),
        )
        sid = make_draft().statement_id
        manager.finalize(sid, actor_id)

        with pytest.raises(ProviderUnavailableError) as exc_info:
            manager.send(sid, actor_id, recipient="owner@example.com")

        assert exc_info.value.provider == "email"
        assert manager.get(sid).status == StatementStatus.FINAL
        assert EmailLogService(db_session).for_statement(sid) == []

    def test_payment_failure_recorded_not_raised(
        self, db_session, clock, make_draft, actor_id, captured_logs,
    ):
        manager = StatementLifecycleManager(
            db_session, clock=clock, payment_gateway=FailingPaymentGateway(),
        )
        sid = make_draft().statement_id
        manager.finalize(sid, actor_id)
        manager.send(sid, actor_id)

        result = manager.mark_paid(sid, actor_id)

        assert result.status == StatementStatus.SENT
        assert result.payout_status == PayoutStatus.FAILED
        assert result.payout_error == "insufficient platform balance"
        assert result.paid_at is None
        assert any(r["message"] == "statement_payout_failed" for r in captured_logs())

    def test_retry_after_payment_failure(self, db_session, clock, make_draft, actor_id):
        failing = StatementLifecycleManager(
            db_session, clock=clock, payment_gateway=FailingPaymentGateway(),
        )
        sid = make_draft().statement_id
        failing.finalize(sid, actor_id)
        failing.send(sid, actor_id)
        failing.mark_paid(sid, actor_id)

        working = StatementLifecycleManager(
            db_session, clock=clock, payment_gateway=RecordingPaymentGateway(),
        )
        result = working.mark_paid(sid, actor_id)
        assert result.status == StatementStatus.PAID
        assert result.payout_error is None

    def test_non_positive_payout_skips_transfer(self, manager, make_draft, gateway, actor_id):
        draft = make_draft(reservations=())
        assert draft.totals.owner_payout < 0
        sid = draft.statement_id
        manager.finalize(sid, actor_id)
        manager.send(sid, actor_id, recipient="owner@example.com")

        paid = manager.mark_paid(sid, actor_id)

        assert paid.status == StatementStatus.PAID
        assert paid.payout_transfer_id is None
        assert gateway.transfers == []

    def test_positive_payout_needs_gateway(self, lifecycle, make_draft, actor_id):
        sid = make_draft().statement_id
        lifecycle.finalize(sid, actor_id)
        lifecycle.send(sid, actor_id)
        with pytest.raises(ValueError, match="payment gateway"):
            lifecycle.mark_paid(sid, actor_id)


class TestConcurrencyGuards:
    def test_expected_version_mismatch(self, lifecycle, make_draft, actor_id):
        draft = make_draft()
        with pytest.raises(PersistenceConflictError) as exc_info:
            lifecycle.finalize(draft.statement_id, actor_id, expected_version=draft.version + 1)
        assert exc_info.value.code == "PERSISTENCE_CONFLICT"

    def test_expected_version_match(self, lifecycle, make_draft, actor_id):
        draft = make_draft()
        result = lifecycle.finalize(draft.statement_id, actor_id, expected_version=draft.version)
        assert result.status == StatementStatus.FINAL

    def test_unknown_statement(self, lifecycle, actor_id):
        with pytest.raises(StatementNotFoundError):
            lifecycle.finalize(uuid4(), actor_id)


def test_sent_at_uses_clock(lifecycle, make_draft, clock, actor_id):
    sid = make_draft().statement_id
    lifecycle.finalize(sid, actor_id)
    clock.advance(int(timedelta(hours=2).total_seconds()))
    assert lifecycle.send(sid, actor_id).sent_at == clock.now()
