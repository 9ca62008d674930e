"""
statement_config -- single public entrypoint for statement engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Services receive the resulting
    ``StatementConfig`` by injection and never read files or environment
    variables themselves.

Architecture position:
    Configuration -- YAML-driven.  Sits above ``statement_kernel`` and below
    ``statement_services`` / ``statement_batch``.  The kernel never imports
    from this package.

Failure modes:
    - ``FileNotFoundError`` -- explicit config path does not exist.
    - ``InvalidConfigError`` -- a value is unparseable or out of range.

Audit relevance:
    Every ``get_active_config()`` call emits a ``STATEMENT_CONFIG_TRACE``
    log entry with the config version and checksum, tying generated
    statements to the exact fee/threshold configuration that produced them.
"""

from __future__ import annotations

import logging
from pathlib import Path

from statement_config.loader import load_config
from statement_config.schema import AnomalyConfig, FeeConfig, ProviderConfig, StatementConfig

_logger = logging.getLogger("statement_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(config_path: Path | None = None) -> StatementConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load.  Defaults to the packaged
            ``defaults.yaml``.

    Returns:
        Validated, frozen ``StatementConfig``.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    config = load_config(path)
    _logger.info(
        "STATEMENT_CONFIG_TRACE",
        extra={
            "trace_type": "STATEMENT_CONFIG_TRACE",
            "config_path": str(path),
            "config_version": config.version,
            "checksum": config.checksum,
        },
    )
    return config


__all__ = [
    "AnomalyConfig",
    "DEFAULT_CONFIG_PATH",
    "FeeConfig",
    "ProviderConfig",
    "StatementConfig",
    "get_active_config",
]
