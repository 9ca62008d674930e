"""
Declarative base for the statement schema.

Every table in the kernel, ingestion and batch layers maps through ``Base``.
Nothing here imports models, services or domain code.

Column conventions:
    - Money and percentages are ``Decimal`` columns, stored as Numeric(38, 9)
      so a statement total read back compares equal to the computed one.
    - Row ids are uuid4 values kept as 36-character strings; listings and
      listing groups override ``id`` with the booking provider's integer id.
    - Audit columns live on ``TrackedBase``.  ``touch`` is the only way a
      service records who last changed a row.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID column stored as text so SQLite and PostgreSQL share one schema.

    Accepts either a ``UUID`` or its string form on the way in; rejects
    anything that does not parse as a UUID before it reaches the database.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, UUID):
            value = UUID(str(value))
        return str(value)

    def process_result_value(self, value, dialect):
        return UUID(value) if value is not None else None


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        UUID: UUIDString(),
        int: Integer,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """Rows that record who created them and who last changed them."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False,
    )
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    updated_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def touch(self, actor_id: UUID) -> None:
        """Stamp ``actor_id`` as the last editor and mark the row dirty.

        The row is written on the next flush even when no other column
        changed, so versioned rows (statements) still bump their version.
        """
        self.updated_by_id = actor_id
        flag_modified(self, "updated_by_id")
