"""
Monetary value helpers.

Responsibility:
    Decimal parsing and rounding conventions shared by engines, services
    and adapters.  Statements have a single currency (no conversion), so
    amounts are plain ``Decimal`` values rather than currency-tagged
    objects.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Invariants enforced:
    - Floats never enter arithmetic: ``to_decimal`` converts via ``str``.
    - Statement totals are rounded half-up to cents exactly once, at the
      end of a calculation; intermediate prorated values keep full
      precision.

Failure modes:
    - ValueError from ``to_decimal`` on unparseable input.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value: Any, default: Decimal | None = None) -> Decimal:
    """Parse a provider/JSON/YAML value into a Decimal.

    ``None`` and empty strings yield ``default`` (or raise when no default is
    given).  Currency symbols, thousands separators and parenthesised
    negatives (accounting exports) are accepted.
    """
    if isinstance(value, Decimal):
        return value
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is not None:
            return default
        raise ValueError("Missing monetary value")
    if isinstance(value, bool):
        raise ValueError(f"Cannot parse amount from {value!r}")
    if isinstance(value, (int, float)):
        return Decimal(str(value))

    text = str(value).strip().replace("$", "").replace(",", "")
    negative = text.startswith("(") and text.endswith(")")
    if negative:
        text = text[1:-1]
    try:
        parsed = Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"Cannot parse amount from {value!r}") from exc
    return -parsed if negative else parsed


def round_money(amount: Decimal) -> Decimal:
    """Round to cents, half-up."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def within_tolerance(a: Decimal, b: Decimal, tolerance: Decimal) -> bool:
    """True if |a - b| <= tolerance."""
    return abs(a - b) <= tolerance
