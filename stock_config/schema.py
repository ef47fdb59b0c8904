"""
Stock configuration schema.

Frozen dataclasses parsed from ``defaults.yaml`` (or an override file) by
the loader.  Each section validates itself in ``__post_init__`` so an
invalid file fails on load, not at first use.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping

# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerConfig:
    """Retry policy for per-item serialization conflicts."""

    max_retries: int = 5
    retry_backoff_ms: int = 20

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError(f"ledger.max_retries must be >= 1, got {self.max_retries}")
        if self.retry_backoff_ms < 0:
            raise ValueError(
                f"ledger.retry_backoff_ms cannot be negative, got {self.retry_backoff_ms}"
            )


# ---------------------------------------------------------------------------
# Item store
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ItemsConfig:
    unique_per_location: bool = False
    default_location: str = "MAIN"

    def __post_init__(self) -> None:
        if not self.default_location.strip():
            raise ValueError("items.default_location cannot be blank")


# ---------------------------------------------------------------------------
# Analytics (availability and critical parts)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AnalyticsConfig:
    consumption_window_days: int = 30
    warning_multiplier: Decimal = Decimal("1.5")
    part_overrides: Mapping[str, Decimal] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.consumption_window_days < 1:
            raise ValueError(
                "analytics.consumption_window_days must be >= 1, "
                f"got {self.consumption_window_days}"
            )
        if self.warning_multiplier < 1:
            raise ValueError(
                f"analytics.warning_multiplier must be >= 1, got {self.warning_multiplier}"
            )
        for part_id, multiplier in self.part_overrides.items():
            if multiplier < 1:
                raise ValueError(
                    f"analytics.part_overrides[{part_id}] must be >= 1, got {multiplier}"
                )
        object.__setattr__(self, "part_overrides", MappingProxyType(dict(self.part_overrides)))

    def multiplier_for(self, part_id: str) -> Decimal:
        return self.part_overrides.get(part_id, self.warning_multiplier)


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RecommendationConfig:
    default_pipeline: str = "consumption-frequency"
    default_limit: int = 5
    max_limit: int = 50
    confidence_k: Decimal = Decimal("5")
    recency_half_life_days: Decimal = Decimal("30")
    history_window_days: int = 365

    def __post_init__(self) -> None:
        if not 1 <= self.default_limit <= self.max_limit:
            raise ValueError(
                "recommendations.default_limit must be between 1 and max_limit, "
                f"got {self.default_limit}"
            )
        if self.confidence_k <= 0:
            raise ValueError(
                f"recommendations.confidence_k must be positive, got {self.confidence_k}"
            )
        if self.recency_half_life_days <= 0:
            raise ValueError("recommendations.recency_half_life_days must be positive")
        if self.history_window_days < 1:
            raise ValueError("recommendations.history_window_days must be >= 1")


# ---------------------------------------------------------------------------
# Availability cache
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CacheConfig:
    enabled: bool = True
    max_age_seconds: int = 60

    def __post_init__(self) -> None:
        if self.max_age_seconds < 0:
            raise ValueError("cache.max_age_seconds cannot be negative")


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StockConfig:
    """The runtime configuration artifact; obtained via get_active_config()."""

    config_id: str = "default"
    version: int = 1
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    items: ItemsConfig = field(default_factory=ItemsConfig)
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)
    recommendations: RecommendationConfig = field(default_factory=RecommendationConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    checksum: str = ""
