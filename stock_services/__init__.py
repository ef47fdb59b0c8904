"""
stock_services -- Orchestration over the stock kernel and engines.

Architecture position:
    Services -- stateful orchestration.  May import stock_kernel,
    stock_engines and stock_config.  ``InventoryCore`` is the public
    contract; the other services are the read models it composes.
"""

from stock_services.availability_service import (
    AggregateAvailability,
    AvailabilityCache,
    AvailabilityService,
    LocationAvailability,
    PartAvailability,
)
from stock_services.critical_parts_service import CriticalPartEntry, CriticalPartsService
from stock_services.inventory_core import InventoryCore, is_retryable_conflict
from stock_services.recommendation_service import RecommendationService

__all__ = [
    "AggregateAvailability",
    "AvailabilityCache",
    "AvailabilityService",
    "CriticalPartEntry",
    "CriticalPartsService",
    "InventoryCore",
    "LocationAvailability",
    "PartAvailability",
    "RecommendationService",
    "is_retryable_conflict",
]
