"""
External collaborator protocols.

Responsibility:
    Interfaces for the systems the statement engine talks to but does not
    own: the booking provider, the accounting provider, the payment
    collaborator and the email collaborator.  Concrete implementations
    live in ``statement_ingestion`` (file-backed providers) or in the
    deploying application.

Architecture position:
    Kernel > Domain -- protocol definitions only, zero I/O.

Failure modes:
    - Read collaborators (booking, accounting) raise any exception on
      failure; callers wrap them with ``statement_ingestion.guard`` which
      converts repeated failures into ``ProviderUnavailableError``.
    - ``PaymentGateway.transfer`` raises on a rejected transfer; the
      lifecycle manager records the error on the statement.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Protocol, runtime_checkable

from statement_kernel.domain.line_items import Expense, Reservation


@runtime_checkable
class BookingProvider(Protocol):
    """Source of reservations."""

    name: str

    def fetch_reservations(
        self, property_ids: Sequence[int], start: date, end: date,
    ) -> list[Reservation]:
        """Reservations for the listings whose stay touches ``[start, end]``."""
        ...


@runtime_checkable
class AccountingProvider(Protocol):
    """Source of synced expenses and listing-name category mappings."""

    name: str

    def fetch_expenses(self, start: date, end: date) -> list[Expense]:
        """Expenses dated in ``[start, end]``.

        Rows identify their property by ``listing_name`` and may carry a
        ``property_id`` when the provider knows it.
        """
        ...


@dataclass(frozen=True)
class PaymentReceipt:
    """Accepted owner payout transfer."""

    transfer_id: str
    fee_amount: Decimal
    total_transfer_amount: Decimal


@runtime_checkable
class PaymentGateway(Protocol):
    """Payment collaborator invoked by the mark-paid transition."""

    def transfer(self, owner_id: int | None, amount: Decimal, reference: str) -> PaymentReceipt:
        ...


@runtime_checkable
class EmailSender(Protocol):
    """Email collaborator invoked by the send transition."""

    def send_statement(self, recipient: str, subject: str, statement_id: str) -> str:
        """Queue the statement email and return the provider message id."""
        ...
