"""
Configuration Loader (``stock_config.loader``).

Responsibility
--------------
Loads the YAML configuration file and parses it into the frozen
``stock_config.schema`` dataclasses.  Runtime callers go through
``stock_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown top-level sections and unknown keys inside a section raise
  ``ValueError``; a typo never silently falls back to a default.
* Decimal settings are parsed from their string form, never via float.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  parsed data.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError`` from the schema ``__post_init__``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import (
    AnalyticsConfig,
    CacheConfig,
    ItemsConfig,
    LedgerConfig,
    RecommendationConfig,
    StockConfig,
)

_SECTIONS: dict[str, type] = {
    "ledger": LedgerConfig,
    "items": ItemsConfig,
    "analytics": AnalyticsConfig,
    "recommendations": RecommendationConfig,
    "cache": CacheConfig,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"{name}: expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{name}: expected a number, got {value!r}") from None


def _parse_section(name: str, cls: type, data: Any) -> Any:
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ValueError(f"{name}: expected a mapping, got {type(data).__name__}")
    known = {f.name: f for f in fields(cls)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ValueError(f"{name}: unknown keys {', '.join(unknown)}")

    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        annotation = str(known[key].type)
        if annotation == "Decimal":
            kwargs[key] = parse_decimal(value, f"{name}.{key}")
        elif key == "part_overrides":
            kwargs[key] = {
                str(part): parse_decimal(mult, f"{name}.{key}.{part}")
                for part, mult in (value or {}).items()
            }
        else:
            kwargs[key] = value
    return cls(**kwargs)


def parse_config(data: dict[str, Any]) -> StockConfig:
    """
    Parse a full ``StockConfig`` from a dict.

    Postconditions:
        - Returns a ``StockConfig`` whose checksum is computed over ``data``.
    Raises:
        ValueError: on unknown sections or keys and invalid values.
    """
    unknown = sorted(set(data) - set(_SECTIONS) - {"config_id", "version"})
    if unknown:
        raise ValueError(f"Unknown configuration sections: {', '.join(unknown)}")
    sections = {name: _parse_section(name, cls, data.get(name)) for name, cls in _SECTIONS.items()}
    return StockConfig(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        checksum=compute_checksum(data),
        **sections,
    )


def load_config(path: Path) -> StockConfig:
    return parse_config(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
