"""
PropertyMapping ORM model -- accounting-provider listing name to property id.

Contract:
    The accounting provider identifies properties by free-text name.  Each
    row maps one (provider, external name) pair to a listing id.  Names are
    stored normalized (trimmed, lower-cased) so lookups are exact.
"""

from __future__ import annotations

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from statement_kernel.db.base import TrackedBase


def normalize_external_name(name: str) -> str:
    return " ".join(name.split()).lower()


class PropertyMapping(TrackedBase):
    """One external-name mapping."""

    __tablename__ = "property_mappings"

    __table_args__ = (
        UniqueConstraint("provider", "external_name", name="uq_property_mappings_name"),
    )

    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    external_name: Mapped[str] = mapped_column(String(255), nullable=False)
    property_id: Mapped[int] = mapped_column(Integer, nullable=False)
