"""
Configuration Loader (``statement_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen dataclasses
of ``statement_config.schema``.  Callers go through
``statement_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unparseable or out-of-range values  -> ``InvalidConfigError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from statement_config.schema import AnomalyConfig, FeeConfig, ProviderConfig, StatementConfig
from statement_kernel.exceptions import InvalidConfigError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _decimal(section: str, data: dict[str, Any], key: str, default: Decimal) -> Decimal:
    if key not in data or data[key] is None:
        return default
    try:
        return Decimal(str(data[key]))
    except InvalidOperation as exc:
        raise InvalidConfigError(f"{section}.{key}", f"not a number: {data[key]!r}") from exc


def parse_fees(data: dict[str, Any]) -> FeeConfig:
    base = FeeConfig()
    return FeeConfig(
        tech_fee_per_property=_decimal("fees", data, "tech_fee_per_property", base.tech_fee_per_property),
        insurance_fee_per_property=_decimal(
            "fees", data, "insurance_fee_per_property", base.insurance_fee_per_property,
        ),
        default_pm_percentage=_decimal("fees", data, "default_pm_percentage", base.default_pm_percentage),
        cleaning_round_to=_decimal("fees", data, "cleaning_round_to", base.cleaning_round_to),
    )


def parse_anomaly(data: dict[str, Any]) -> AnomalyConfig:
    base = AnomalyConfig()
    return AnomalyConfig(
        duplicate_payout_tolerance=_decimal(
            "anomaly", data, "duplicate_payout_tolerance", base.duplicate_payout_tolerance,
        ),
        cleaning_mismatch_threshold=_decimal(
            "anomaly", data, "cleaning_mismatch_threshold", base.cleaning_mismatch_threshold,
        ),
        calendar_materiality=_decimal("anomaly", data, "calendar_materiality", base.calendar_materiality),
        expense_duplicate_amount_tolerance=_decimal(
            "anomaly", data, "expense_duplicate_amount_tolerance",
            base.expense_duplicate_amount_tolerance,
        ),
        expense_duplicate_date_tolerance_days=int(
            data.get("expense_duplicate_date_tolerance_days", base.expense_duplicate_date_tolerance_days)
        ),
    )


def parse_providers(data: dict[str, Any]) -> ProviderConfig:
    base = ProviderConfig()
    return ProviderConfig(
        timeout_seconds=float(data.get("timeout_seconds", base.timeout_seconds)),
        retries=int(data.get("retries", base.retries)),
        retry_backoff_seconds=float(data.get("retry_backoff_seconds", base.retry_backoff_seconds)),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of the raw configuration mapping."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_config(data: dict[str, Any]) -> StatementConfig:
    """Parse a raw mapping (as loaded from YAML) into a ``StatementConfig``."""
    return StatementConfig(
        version=int(data.get("version", 1)),
        fees=parse_fees(data.get("fees") or {}),
        anomaly=parse_anomaly(data.get("anomaly") or {}),
        providers=parse_providers(data.get("providers") or {}),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> StatementConfig:
    return parse_config(load_yaml_file(path))
