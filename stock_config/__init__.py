"""
stock_config -- single public entrypoint for stock ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files directly.  Returns a frozen ``StockConfig``.

Architecture position:
    Configuration -- YAML-driven settings, validated on load.
    Sits above ``stock_kernel`` and below ``stock_services``.  The kernel
    MUST NEVER import from ``stock_config``; services pass the relevant
    values into kernel services as plain arguments.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Deterministic checksum: the same YAML content always produces the
      same ``StockConfig.checksum``.

Failure modes:
    - ``FileNotFoundError`` -- the requested file does not exist.
    - ``ValueError`` -- unknown keys or invalid values.
    - ``yaml.YAMLError`` -- malformed YAML.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``STOCK_CONFIG_TRACE`` log entry with the config id, version and
    checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path

from stock_config.loader import compute_checksum, load_config, parse_config
from stock_config.schema import (
    AnalyticsConfig,
    CacheConfig,
    ItemsConfig,
    LedgerConfig,
    RecommendationConfig,
    StockConfig,
)

_logger = logging.getLogger("stock_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(config_path: Path | str | None = None) -> StockConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override YAML file.  Defaults to the packaged
            ``defaults.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If validation fails.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    config = load_config(path)

    _logger.info(
        "STOCK_CONFIG_TRACE",
        extra={
            "trace_type": "STOCK_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(path),
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "AnalyticsConfig",
    "CacheConfig",
    "ItemsConfig",
    "LedgerConfig",
    "RecommendationConfig",
    "StockConfig",
    "compute_checksum",
    "get_active_config",
    "parse_config",
]
