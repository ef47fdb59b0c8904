"""
stock_services.critical_parts_service -- Critical stock report.

Responsibility:
    Classifies every active inventory item as CRITICAL, WARNING or STABLE
    against its minimum quantity and attaches what a buyer needs to act:
    totals, cumulative consumption and a recommended action.

Architecture position:
    Services -- read orchestration over kernel selectors + the severity
    engine.  Always recomputed; no cache sits in front of this report.

Invariants enforced:
    - Severity uses available (not total) quantity.
    - The WARNING multiplier is ``analytics.warning_multiplier`` unless
      ``analytics.part_overrides`` names the part.
    - Ordering: CRITICAL, WARNING, STABLE; within a severity the larger
      shortfall (minimum - available) first, then part id.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from stock_config import AnalyticsConfig, RecommendationConfig
from stock_engines.recommendation import confidence_for
from stock_engines.severity import assess_stock
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.ledger import ZERO
from stock_kernel.domain.ports import PartCatalog
from stock_kernel.domain.values import Severity
from stock_kernel.logging_config import get_logger
from stock_kernel.selectors.item_selector import ItemSelector
from stock_kernel.selectors.movement_selector import MovementSelector

logger = get_logger("services.critical_parts")


@dataclass(frozen=True)
class CriticalPartEntry:
    item_id: UUID
    part_id: str
    part_name: str | None
    location: str
    current_quantity: Decimal
    reserved_quantity: Decimal
    total_quantity: Decimal
    minimum_quantity: Decimal
    total_consumed: Decimal
    severity: Severity
    shortfall: Decimal
    reorder_quantity: int
    recommended_action: str
    confidence: Decimal


class CriticalPartsService:
    """
    Contract:
        One report row per ACTIVE item.
    Guarantees:
        - confidence reflects how much recent consumption backs the row,
          using the same n / (n + k) rule as recommendations.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        analytics: AnalyticsConfig,
        recommendations: RecommendationConfig,
        part_catalog: PartCatalog | None = None,
    ):
        self._clock = clock
        self._analytics = analytics
        self._recommendations = recommendations
        self._catalog = part_catalog
        self._items = ItemSelector(session)
        self._movements = MovementSelector(session)

    def report(self) -> list[CriticalPartEntry]:
        items = self._items.active_items()
        if not items:
            return []
        consumed = self._movements.total_consumed_by_item(i.id for i in items)
        part_ids = sorted({i.part_id for i in items})
        recent = self._movements.consumption_by_part(
            since=self._clock.now()
            - timedelta(days=self._analytics.consumption_window_days),
            part_ids=part_ids,
        )
        names = self._catalog.get_parts(part_ids) if self._catalog is not None else {}

        entries = []
        for item in items:
            assessment = assess_stock(
                available=item.available_quantity,
                minimum=item.minimum_quantity,
                warning_multiplier=self._analytics.multiplier_for(item.part_id),
            )
            usage = recent.get(item.part_id)
            part = names.get(item.part_id)
            entries.append(
                CriticalPartEntry(
                    item_id=item.id,
                    part_id=item.part_id,
                    part_name=part.name if part else None,
                    location=item.location,
                    current_quantity=item.available_quantity,
                    reserved_quantity=item.reserved_quantity,
                    total_quantity=item.total_quantity,
                    minimum_quantity=item.minimum_quantity,
                    total_consumed=consumed.get(item.id, ZERO),
                    severity=assessment.severity,
                    shortfall=assessment.shortfall,
                    reorder_quantity=assessment.reorder_quantity,
                    recommended_action=assessment.recommended_action,
                    confidence=confidence_for(
                        usage.service_order_items if usage else 0,
                        self._recommendations.confidence_k,
                    ),
                )
            )

        entries.sort(key=lambda e: (e.severity.rank, -e.shortfall, e.part_id, e.location))
        logger.info(
            "critical_parts_report_built",
            extra={
                "item_count": len(entries),
                "critical": sum(1 for e in entries if e.severity is Severity.CRITICAL),
                "warning": sum(1 for e in entries if e.severity is Severity.WARNING),
            },
        )
        return entries
