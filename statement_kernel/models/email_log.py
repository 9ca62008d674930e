"""
EmailLog ORM model -- delivery record for statement emails.

Contract:
    Created ``pending`` when a statement is sent.  The email collaborator
    reports delivery asynchronously; ``EmailLogService.record_delivery``
    moves the row to ``sent``, ``failed`` or ``bounced``.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from statement_kernel.db.base import TrackedBase, UUIDString
from statement_kernel.domain.dtos import EmailStatus


class EmailLog(TrackedBase):
    """Outbound statement email and its delivery outcome."""

    __tablename__ = "email_logs"

    __table_args__ = (
        Index("ix_email_logs_statement", "statement_id"),
        Index("ix_email_logs_status", "status"),
        Index("ix_email_logs_message_id", "message_id"),
    )

    statement_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("statements.id", ondelete="SET NULL"),
        nullable=True,
    )
    property_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    recipient: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EmailStatus.PENDING.value,
    )
    message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    attempted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True)
