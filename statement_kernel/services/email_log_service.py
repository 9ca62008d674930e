"""
EmailLogService -- delivery status callbacks for statement emails.

Responsibility:
    Applies asynchronous delivery reports from the email collaborator to
    ``EmailLog`` rows: ``pending -> sent | failed | bounced``.

Architecture position:
    Kernel > Services.  Called by the webhook/callback handler of the
    deploying application.

Invariants enforced:
    - Logs are located by provider message id.
    - A terminal status (failed, bounced) is not overwritten by a late
      ``sent`` report.
    - Flush-only.

Failure modes:
    - ``EmailLogNotFoundError`` for an unknown message id.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select

from statement_kernel.domain.clock import Clock, SystemClock
from statement_kernel.domain.dtos import EmailStatus
from statement_kernel.exceptions import EmailLogNotFoundError
from statement_kernel.logging_config import get_logger
from statement_kernel.models.email_log import EmailLog
from statement_kernel.services.base import BaseService

logger = get_logger("services.email_log")

_TERMINAL = frozenset({EmailStatus.FAILED.value, EmailStatus.BOUNCED.value})


@dataclass(frozen=True)
class EmailLogInfo:
    email_log_id: UUID
    statement_id: UUID | None
    recipient: str
    status: EmailStatus
    message_id: str | None
    error_message: str | None = None
    error_code: str | None = None
    attempted_at: datetime | None = None
    delivered_at: datetime | None = None


def _to_info(row: EmailLog) -> EmailLogInfo:
    return EmailLogInfo(
        email_log_id=row.id,
        statement_id=row.statement_id,
        recipient=row.recipient,
        status=EmailStatus(row.status),
        message_id=row.message_id,
        error_message=row.error_message,
        error_code=row.error_code,
        attempted_at=row.attempted_at,
        delivered_at=row.delivered_at,
    )


class EmailLogService(BaseService[EmailLog]):
    """Records delivery outcomes reported by the email collaborator."""

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def _by_message_id(self, message_id: str) -> EmailLog:
        row = self.session.execute(
            select(EmailLog).where(EmailLog.message_id == message_id).with_for_update()
        ).scalar_one_or_none()
        if row is None:
            raise EmailLogNotFoundError(message_id)
        return row

    def record_delivery(
        self,
        message_id: str,
        status: EmailStatus,
        error_message: str | None = None,
        error_code: str | None = None,
    ) -> EmailLogInfo:
        row = self._by_message_id(message_id)
        if row.status in _TERMINAL and status == EmailStatus.SENT:
            logger.info(
                "email_delivery_late_report_ignored",
                extra={"message_id": message_id, "status": row.status},
            )
            return _to_info(row)

        row.status = status.value
        if status == EmailStatus.SENT:
            row.delivered_at = self._clock.now()
        else:
            row.error_message = error_message
            row.error_code = error_code
        self.session.flush()

        log = logger.warning if status in (EmailStatus.FAILED, EmailStatus.BOUNCED) else logger.info
        log(
            "email_delivery_recorded",
            extra={
                "message_id": message_id,
                "status": status.value,
                "statement_id": str(row.statement_id) if row.statement_id else None,
            },
        )
        return _to_info(row)

    def for_statement(self, statement_id: UUID) -> list[EmailLogInfo]:
        rows = self.session.execute(
            select(EmailLog)
            .where(EmailLog.statement_id == statement_id)
            .order_by(EmailLog.attempted_at)
        ).scalars().all()
        return [_to_info(row) for row in rows]
