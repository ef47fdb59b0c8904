"""
Module: stock_engines.severity
Responsibility:
    Classify a part's stock level against its minimum and phrase the
    corresponding replenishment action.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - CRITICAL iff available < minimum.
    - WARNING iff minimum <= available < minimum * multiplier.
    - STABLE otherwise, including every part with minimum 0.

Failure modes:
    - ValueError when the multiplier is below 1 or a quantity is negative.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal

from stock_engines.tracer import traced_engine
from stock_kernel.domain.values import Severity

ZERO = Decimal("0")
DEFAULT_WARNING_MULTIPLIER = Decimal("1.5")


@dataclass(frozen=True)
class SeverityAssessment:
    """
    Contract:
        Classification plus the quantities that explain it.
    Guarantees:
        - shortfall = max(minimum - available, 0).
        - reorder_quantity is the whole number of units that brings
          available up to the WARNING threshold (0 when STABLE).
    """

    severity: Severity
    shortfall: Decimal
    warning_threshold: Decimal
    reorder_quantity: int
    recommended_action: str


def classify_stock(
    available: Decimal,
    minimum: Decimal,
    warning_multiplier: Decimal = DEFAULT_WARNING_MULTIPLIER,
) -> Severity:
    if warning_multiplier < 1:
        raise ValueError(f"warning_multiplier must be >= 1, got {warning_multiplier}")
    if available < ZERO or minimum < ZERO:
        raise ValueError("quantities cannot be negative")
    if available < minimum:
        return Severity.CRITICAL
    if available < minimum * warning_multiplier:
        return Severity.WARNING
    return Severity.STABLE


@traced_engine(
    "severity",
    "1.0",
    fingerprint_fields=("available", "minimum", "warning_multiplier"),
)
def assess_stock(
    *,
    available: Decimal,
    minimum: Decimal,
    warning_multiplier: Decimal = DEFAULT_WARNING_MULTIPLIER,
) -> SeverityAssessment:
    severity = classify_stock(available, minimum, warning_multiplier)
    threshold = minimum * warning_multiplier
    shortfall = max(minimum - available, ZERO)

    if severity is Severity.STABLE:
        reorder = 0
    else:
        reorder = max(
            int((threshold - available).to_integral_value(rounding=ROUND_CEILING)), 1
        )

    if severity is Severity.CRITICAL:
        action = (
            f"Reorder immediately: {shortfall.normalize():f} below minimum, "
            f"order at least {reorder} units"
        )
    elif severity is Severity.WARNING:
        action = f"Plan replenishment of {reorder} units"
    else:
        action = "No action required"

    return SeverityAssessment(
        severity=severity,
        shortfall=shortfall,
        warning_threshold=threshold,
        reorder_quantity=reorder,
        recommended_action=action,
    )
