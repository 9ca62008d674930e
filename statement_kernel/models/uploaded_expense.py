"""
UploadedExpense ORM model -- expenses entered through CSV/XLSX uploads.

Contract:
    Manually uploaded rows live in the statement database (synced rows stay
    with the accounting provider).  ``to_domain()`` yields an ``Expense``
    tagged ``ExpenseSource.UPLOADED``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from statement_kernel.db.base import TrackedBase
from statement_kernel.domain.line_items import Expense, ExpenseSource, detect_ll_cover


class UploadedExpense(TrackedBase):
    """One manually uploaded expense row."""

    __tablename__ = "uploaded_expenses"

    __table_args__ = (
        Index("ix_uploaded_expenses_property_date", "property_id", "expense_date"),
    )

    property_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    listing_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    vendor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    upload_filename: Mapped[str | None] = mapped_column(String(255), nullable=True)
    row_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    def to_domain(self) -> Expense:
        return Expense(
            expense_id=f"upload:{self.id}",
            expense_date=self.expense_date,
            description=self.description,
            category=self.category,
            amount=abs(self.amount),
            property_id=self.property_id,
            listing_name=self.listing_name,
            vendor=self.vendor or "",
            hidden=self.hidden,
            is_ll_cover=detect_ll_cover(self.description, self.vendor, self.category),
            source=ExpenseSource.UPLOADED,
        )
