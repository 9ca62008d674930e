"""
StatementLifecycleManager -- guarded state transitions for statements.

Responsibility:
    Moves persisted statements through ``draft -> final -> sent -> paid``
    (with revert-to-draft as a back-edge, and delete for drafts) and
    performs each transition's side effects.

Architecture position:
    Kernel > Services -- imperative shell.  Acts on statements after the
    builder has persisted them, independent of generation.

Invariants enforced:
    - Every (status, action) pair is looked up in ``STATEMENT_WORKFLOW``;
      pairs not in the table raise ``InvalidTransitionError``.
    - Reverting a draft is a documented no-op.
    - Finalize freezes the listing settings snapshot if not yet frozen.
      Nothing ever unfreezes it.
    - Rows are read ``FOR UPDATE`` and written through the SQLAlchemy
      version counter; a concurrent writer surfaces as
      ``PersistenceConflictError``.
    - Flush-only: never commits or rolls back.

Failure modes:
    - ``StatementNotFoundError``: unknown statement id.
    - ``InvalidTransitionError``: guard table violation.
    - ``PersistenceConflictError``: ``expected_version`` mismatch or stale
      write.
    - ``ProviderUnavailableError``: the email collaborator rejected the
      send; the statement stays ``final``.
    - Payment collaborator errors are NOT raised: the statement stays
      ``sent`` with ``payout_status = failed`` and ``payout_error`` set.

Audit relevance:
    Each transition logs ``statement_<action>`` with statement id, from/to
    status and actor.  Transitions stamp ``updated_by_id``.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from statement_kernel.domain.clock import Clock, SystemClock
from statement_kernel.domain.collaborators import EmailSender, PaymentGateway
from statement_kernel.domain.dtos import (
    EmailStatus,
    PayoutStatus,
    StatementAction,
    StatementInfo,
    StatementStatus,
)
from statement_kernel.domain.statement_workflow import STATEMENT_WORKFLOW
from statement_kernel.domain.workflow import Transition, Workflow
from statement_kernel.exceptions import (
    InvalidTransitionError,
    PersistenceConflictError,
    ProviderUnavailableError,
    StatementNotFoundError,
)
from statement_kernel.logging_config import LogContext, get_logger
from statement_kernel.models.email_log import EmailLog
from statement_kernel.models.statement import Statement
from statement_kernel.services.base import BaseService

logger = get_logger("services.lifecycle")

_ZERO = Decimal("0")


class StatementLifecycleManager(BaseService[Statement]):
    """
    Guarded statement transitions.

    Contract:
        Each public transition takes the statement id, the acting user and
        an optional ``expected_version`` (the version the caller last
        read).  Returns the updated ``StatementInfo``; ``delete`` returns
        nothing.

    Guarantees:
        - A transition either applies all of its side effects or raises
          before changing the row.
        - The payment collaborator is called only for positive payouts.

    Non-goals:
        - Does NOT recompute totals (that is the builder/editor's job).
        - Does NOT guarantee email delivery; delivery is tracked through
          ``EmailLog`` rows updated by ``EmailLogService``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        payment_gateway: PaymentGateway | None = None,
        email_sender: EmailSender | None = None,
        workflow: Workflow = STATEMENT_WORKFLOW,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._payments = payment_gateway
        self._email = email_sender
        self._workflow = workflow

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_for_update(self, statement_id: UUID) -> Statement:
        statement = self.session.execute(
            select(Statement)
            .where(Statement.id == statement_id)
            .with_for_update()
        ).scalar_one_or_none()
        if statement is None:
            raise StatementNotFoundError(str(statement_id))
        return statement

    def _load(self, statement_id: UUID, expected_version: int | None) -> Statement:
        statement = self._get_for_update(statement_id)
        if expected_version is not None and statement.version != expected_version:
            raise PersistenceConflictError(
                str(statement_id),
                f"expected version {expected_version}, found {statement.version}",
            )
        return statement

    def _transition(self, statement: Statement, action: StatementAction) -> Transition:
        transition = self._workflow.find(statement.status, action.value)
        if transition is None:
            logger.warning(
                "statement_transition_rejected",
                extra={
                    "statement_id": str(statement.id),
                    "status": statement.status,
                    "action": action.value,
                },
            )
            raise InvalidTransitionError(str(statement.id), statement.status, action.value)
        return transition

    def _flush(self, statement_id: UUID) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "statement_write_conflict",
                extra={"statement_id": str(statement_id)},
            )
            raise PersistenceConflictError(str(statement_id), "stale version") from exc

    def _log_transition(
        self, event: str, statement: Statement, from_status: str, actor_id: UUID,
    ) -> None:
        logger.info(
            event,
            extra={
                "statement_id": str(statement.id),
                "from_status": from_status,
                "to_status": statement.status,
                "actor_id": str(actor_id),
                "version": statement.version,
            },
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, statement_id: UUID) -> StatementInfo:
        statement = self.session.get(Statement, statement_id)
        if statement is None:
            raise StatementNotFoundError(str(statement_id))
        return statement.to_dto()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def finalize(
        self, statement_id: UUID, actor_id: UUID, expected_version: int | None = None,
    ) -> StatementInfo:
        with LogContext.bind(statement_id=str(statement_id), actor_id=str(actor_id)):
            statement = self._load(statement_id, expected_version)
            transition = self._transition(statement, StatementAction.FINALIZE)

            from_status = statement.status
            statement.status = transition.to_state
            if statement.snapshot_frozen_at is None:
                statement.snapshot_frozen_at = self._clock.now()
            statement.touch(actor_id)
            self._flush(statement_id)

            self._log_transition("statement_finalized", statement, from_status, actor_id)
            return statement.to_dto()

    def send(
        self,
        statement_id: UUID,
        actor_id: UUID,
        recipient: str | None = None,
        subject: str | None = None,
        expected_version: int | None = None,
    ) -> StatementInfo:
        """Mark the statement sent and hand it to the email collaborator.

        Without a configured email sender the statement is only stamped
        (manual delivery).  With one, ``recipient`` is required and a
        pending ``EmailLog`` row records the provider message id.
        """
        with LogContext.bind(statement_id=str(statement_id), actor_id=str(actor_id)):
            statement = self._load(statement_id, expected_version)
            transition = self._transition(statement, StatementAction.SEND)
            now = self._clock.now()

            if self._email is not None:
                if not recipient:
                    raise ValueError("recipient is required when an email sender is configured")
                subject = subject or (
                    f"Owner statement {statement.week_start_date.isoformat()}"
                    f" - {statement.week_end_date.isoformat()}"
                )
                try:
                    message_id = self._email.send_statement(recipient, subject, str(statement.id))
                except Exception as exc:
                    logger.warning(
                        "statement_email_failed",
                        extra={"statement_id": str(statement.id), "error": str(exc)},
                    )
                    raise ProviderUnavailableError("email", str(exc)) from exc
                self.session.add(EmailLog(
                    statement_id=statement.id,
                    property_id=statement.property_id,
                    recipient=recipient,
                    subject=subject,
                    status=EmailStatus.PENDING.value,
                    message_id=message_id,
                    attempted_at=now,
                    created_by_id=actor_id,
                ))

            from_status = statement.status
            statement.status = transition.to_state
            statement.sent_at = now
            statement.touch(actor_id)
            self._flush(statement_id)

            self._log_transition("statement_sent", statement, from_status, actor_id)
            return statement.to_dto()

    def mark_paid(
        self, statement_id: UUID, actor_id: UUID, expected_version: int | None = None,
    ) -> StatementInfo:
        """Pay the owner and mark the statement paid.

        A rejected transfer leaves the statement ``sent`` with
        ``payout_status = failed`` and the collaborator's error message.
        """
        with LogContext.bind(statement_id=str(statement_id), actor_id=str(actor_id)):
            statement = self._load(statement_id, expected_version)
            transition = self._transition(statement, StatementAction.MARK_PAID)
            from_status = statement.status
            payout = statement.owner_payout

            if payout > _ZERO:
                if self._payments is None:
                    raise ValueError("payment gateway is not configured")
                try:
                    receipt = self._payments.transfer(
                        statement.owner_id, payout, str(statement.id),
                    )
                except Exception as exc:
                    statement.payout_status = PayoutStatus.FAILED.value
                    statement.payout_error = str(exc)
                    statement.touch(actor_id)
                    self._flush(statement_id)
                    logger.warning(
                        "statement_payout_failed",
                        extra={
                            "statement_id": str(statement.id),
                            "owner_payout": str(payout),
                            "error": str(exc),
                        },
                    )
                    return statement.to_dto()
                statement.payout_transfer_id = receipt.transfer_id
                statement.stripe_fee = receipt.fee_amount
                statement.total_transfer_amount = receipt.total_transfer_amount

            statement.status = transition.to_state
            statement.paid_at = self._clock.now()
            statement.payout_status = PayoutStatus.PAID.value
            statement.payout_error = None
            statement.touch(actor_id)
            self._flush(statement_id)

            self._log_transition("statement_paid", statement, from_status, actor_id)
            return statement.to_dto()

    def revert_to_draft(
        self, statement_id: UUID, actor_id: UUID, expected_version: int | None = None,
    ) -> StatementInfo:
        """Back-edge to draft.  The snapshot stays frozen."""
        with LogContext.bind(statement_id=str(statement_id), actor_id=str(actor_id)):
            statement = self._load(statement_id, expected_version)
            transition = self._transition(statement, StatementAction.REVERT_TO_DRAFT)
            if transition.no_op:
                logger.info(
                    "statement_revert_noop",
                    extra={"statement_id": str(statement.id), "status": statement.status},
                )
                return statement.to_dto()

            from_status = statement.status
            statement.status = transition.to_state
            statement.clear_payout()
            statement.touch(actor_id)
            self._flush(statement_id)

            self._log_transition("statement_reverted", statement, from_status, actor_id)
            return statement.to_dto()

    def delete(
        self, statement_id: UUID, actor_id: UUID, expected_version: int | None = None,
    ) -> None:
        with LogContext.bind(statement_id=str(statement_id), actor_id=str(actor_id)):
            statement = self._load(statement_id, expected_version)
            self._transition(statement, StatementAction.DELETE)
            self.session.delete(statement)
            self._flush(statement_id)
            logger.info(
                "statement_deleted",
                extra={
                    "statement_id": str(statement_id),
                    "from_status": StatementStatus.DRAFT.value,
                    "actor_id": str(actor_id),
                },
            )

    def apply(
        self,
        statement_id: UUID,
        action: StatementAction,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> StatementInfo | None:
        """Dispatch an action by name (send uses manual delivery)."""
        handlers = {
            StatementAction.FINALIZE: self.finalize,
            StatementAction.SEND: self.send,
            StatementAction.MARK_PAID: self.mark_paid,
            StatementAction.REVERT_TO_DRAFT: self.revert_to_draft,
            StatementAction.DELETE: self.delete,
        }
        return handlers[action](statement_id, actor_id, expected_version=expected_version)
