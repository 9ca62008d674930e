"""
Configuration Schema (``statement_config.schema``).

Responsibility
--------------
Frozen dataclass definitions for every configuration value the statement
engine reads: fixed per-property fees, anomaly thresholds, and provider
call limits.

Architecture position
---------------------
**Config layer** -- pure data definitions, no I/O.

Invariants enforced
-------------------
* All dataclasses are ``frozen=True``.
* Monetary values are ``Decimal``; thresholds are validated in
  ``__post_init__`` and raise ``InvalidConfigError`` when out of range.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from statement_kernel.exceptions import InvalidConfigError


@dataclass(frozen=True)
class FeeConfig:
    """Fixed fees and defaults applied by the fee calculator."""

    tech_fee_per_property: Decimal = Decimal("50.00")
    insurance_fee_per_property: Decimal = Decimal("25.00")
    default_pm_percentage: Decimal = Decimal("15.00")
    cleaning_round_to: Decimal = Decimal("5")

    def __post_init__(self) -> None:
        if self.tech_fee_per_property < 0:
            raise InvalidConfigError("fees.tech_fee_per_property", "must be >= 0")
        if self.insurance_fee_per_property < 0:
            raise InvalidConfigError("fees.insurance_fee_per_property", "must be >= 0")
        if not Decimal("0") <= self.default_pm_percentage <= Decimal("100"):
            raise InvalidConfigError("fees.default_pm_percentage", "must be within 0..100")
        if self.cleaning_round_to <= 0:
            raise InvalidConfigError("fees.cleaning_round_to", "must be > 0")


@dataclass(frozen=True)
class AnomalyConfig:
    """Thresholds for the anomaly detector."""

    duplicate_payout_tolerance: Decimal = Decimal("0.00")
    cleaning_mismatch_threshold: Decimal = Decimal("0.10")
    calendar_materiality: Decimal = Decimal("0.01")
    expense_duplicate_amount_tolerance: Decimal = Decimal("0.01")
    expense_duplicate_date_tolerance_days: int = 1

    def __post_init__(self) -> None:
        if self.duplicate_payout_tolerance < 0:
            raise InvalidConfigError("anomaly.duplicate_payout_tolerance", "must be >= 0")
        if self.cleaning_mismatch_threshold < 0:
            raise InvalidConfigError("anomaly.cleaning_mismatch_threshold", "must be >= 0")
        if self.calendar_materiality < 0:
            raise InvalidConfigError("anomaly.calendar_materiality", "must be >= 0")
        if self.expense_duplicate_date_tolerance_days < 0:
            raise InvalidConfigError(
                "anomaly.expense_duplicate_date_tolerance_days", "must be >= 0",
            )


@dataclass(frozen=True)
class ProviderConfig:
    """Timeout/retry limits for external read calls."""

    timeout_seconds: float = 30.0
    retries: int = 2
    retry_backoff_seconds: float = 0.5

    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            raise InvalidConfigError("providers.timeout_seconds", "must be > 0")
        if self.retries < 0:
            raise InvalidConfigError("providers.retries", "must be >= 0")
        if self.retry_backoff_seconds < 0:
            raise InvalidConfigError("providers.retry_backoff_seconds", "must be >= 0")


@dataclass(frozen=True)
class StatementConfig:
    """Root configuration object."""

    version: int = 1
    fees: FeeConfig = field(default_factory=FeeConfig)
    anomaly: AnomalyConfig = field(default_factory=AnomalyConfig)
    providers: ProviderConfig = field(default_factory=ProviderConfig)
    checksum: str = ""
