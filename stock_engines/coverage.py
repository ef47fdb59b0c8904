"""
Module: stock_engines.coverage
Responsibility:
    Project how long on-hand stock lasts given recent consumption.
    Produces the average daily consumption over a trailing window, the
    coverage in days and the projected stockout date.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import stock_kernel/domain.

Invariants enforced:
    - Purity: ``as_of`` is passed in; the engine never reads a clock.
    - Decimal-only arithmetic.
    - Coverage is None (not infinite, not zero) when consumption is
      negligible, so a part nobody uses is never reported as running out.

Failure modes:
    - ValueError when window_days < 1 or a quantity is negative.

Usage:
    from stock_engines.coverage import project_coverage

    projection = project_coverage(
        available=Decimal("12"),
        net_consumed=Decimal("30"),
        window_days=30,
        as_of=clock.now(),
    )
    projection.coverage_days  # Decimal("12.00")
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal

from stock_engines.tracer import traced_engine

ZERO = Decimal("0")
# Below this average daily consumption a part is treated as not moving.
CONSUMPTION_EPSILON = Decimal("0.0001")
_DAYS_PLACES = Decimal("0.01")
_RATE_PLACES = Decimal("0.0001")


@dataclass(frozen=True)
class CoverageProjection:
    """
    Contract:
        Result of ``project_coverage``.
    Guarantees:
        - average_daily_consumption >= 0.
        - coverage_days and projected_stockout_date are both None or both set.
    """

    average_daily_consumption: Decimal
    coverage_days: Decimal | None
    projected_stockout_date: date | None

    @property
    def is_moving(self) -> bool:
        return self.coverage_days is not None


@traced_engine(
    "coverage",
    "1.0",
    fingerprint_fields=("available", "net_consumed", "window_days", "as_of"),
)
def project_coverage(
    *,
    available: Decimal,
    net_consumed: Decimal,
    window_days: int,
    as_of: datetime,
) -> CoverageProjection:
    """Coverage of ``available`` at the trailing window's consumption rate."""
    if window_days < 1:
        raise ValueError(f"window_days must be >= 1, got {window_days}")
    if available < ZERO:
        raise ValueError(f"available cannot be negative: {available}")
    if net_consumed < ZERO:
        raise ValueError(f"net_consumed cannot be negative: {net_consumed}")

    average = (net_consumed / Decimal(window_days)).quantize(
        _RATE_PLACES, rounding=ROUND_HALF_UP
    )
    if average < CONSUMPTION_EPSILON:
        return CoverageProjection(
            average_daily_consumption=average,
            coverage_days=None,
            projected_stockout_date=None,
        )

    coverage = (available / average).quantize(_DAYS_PLACES, rounding=ROUND_HALF_UP)
    whole_days = int(coverage.to_integral_value(rounding=ROUND_FLOOR))
    return CoverageProjection(
        average_daily_consumption=average,
        coverage_days=coverage,
        projected_stockout_date=as_of.date() + timedelta(days=whole_days),
    )


def worst_coverage(projections: Iterable[CoverageProjection]) -> CoverageProjection | None:
    """
    Aggregate several part projections into the bottleneck one.

    Coverage is the minimum over moving parts and the stockout date the
    earliest.  Average consumption is summed.  Returns None for an empty
    input; parts that do not move never become the bottleneck.
    """
    items = list(projections)
    if not items:
        return None
    moving = [p for p in items if p.is_moving]
    total_rate = sum((p.average_daily_consumption for p in items), ZERO)
    if not moving:
        return CoverageProjection(total_rate, None, None)
    return CoverageProjection(
        average_daily_consumption=total_rate,
        coverage_days=min(p.coverage_days for p in moving),
        projected_stockout_date=min(p.projected_stockout_date for p in moving),
    )
