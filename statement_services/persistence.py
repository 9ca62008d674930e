"""Row locking and conflict translation shared by the statement writers."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from statement_kernel.domain.dtos import StatementStatus
from statement_kernel.exceptions import (
    PersistenceConflictError,
    StatementNotEditableError,
    StatementNotFoundError,
)
from statement_kernel.logging_config import get_logger
from statement_kernel.models.statement import Statement

logger = get_logger("services.persistence")


def load_for_update(
    session: Session, statement_id: UUID, expected_version: int | None = None,
) -> Statement:
    statement = session.execute(
        select(Statement).where(Statement.id == statement_id).with_for_update()
    ).scalar_one_or_none()
    if statement is None:
        raise StatementNotFoundError(str(statement_id))
    if expected_version is not None and statement.version != expected_version:
        raise PersistenceConflictError(
            str(statement_id),
            f"expected version {expected_version}, found {statement.version}",
        )
    return statement


def load_draft_for_update(
    session: Session, statement_id: UUID, expected_version: int | None = None,
) -> Statement:
    statement = load_for_update(session, statement_id, expected_version)
    if statement.status != StatementStatus.DRAFT.value:
        raise StatementNotEditableError(str(statement_id), statement.status)
    return statement


def flush_statement(session: Session, reference: str) -> None:
    """Flush, turning version and uniqueness races into PersistenceConflictError."""
    try:
        session.flush()
    except StaleDataError as exc:
        logger.warning("statement_write_conflict", extra={"reference": reference})
        raise PersistenceConflictError(reference, "stale version") from exc
    except IntegrityError as exc:
        logger.warning("statement_write_conflict", extra={"reference": reference})
        raise PersistenceConflictError(reference, "concurrent create") from exc
