"""
stock_services.recommendation_service -- Part suggestions for service orders.

Responsibility:
    Gathers the historical usage that matches a vehicle and/or service
    order and hands it to the recommendation engine.  A match is any past
    service-order item for the same vehicle model or with the same item
    description (case-insensitive).

Architecture position:
    Services -- read orchestration over kernel selectors + the
    recommendation engine.  Ports (ServiceOrderDirectory, PartCatalog) are
    consulted when configured; otherwise the context snapshotted on the
    movements is used.

Invariants enforced:
    - Parts already reserved on the requested service order are excluded.
    - The requested service order's own items never count as history.
    - Unknown pipeline ids are rejected before any query runs.

Failure modes:
    - UnknownPipelineError for an unregistered pipeline id.
    - ValidationError when limit is outside 1..recommendations.max_limit.
"""

from __future__ import annotations

from datetime import timedelta

from sqlalchemy.orm import Session

from stock_config import AnalyticsConfig, RecommendationConfig
from stock_engines.recommendation import (
    PartVelocity,
    Recommendation,
    UsageSample,
    get_pipeline,
    recommend_parts,
)
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import MovementFilter
from stock_kernel.domain.ports import PartCatalog, ServiceOrderDirectory
from stock_kernel.exceptions import ValidationError
from stock_kernel.logging_config import get_logger
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.selectors.reservation_selector import ReservationSelector

logger = get_logger("services.recommendations")


class RecommendationService:
    def __init__(
        self,
        session: Session,
        clock: Clock,
        analytics: AnalyticsConfig,
        config: RecommendationConfig,
        part_catalog: PartCatalog | None = None,
        service_orders: ServiceOrderDirectory | None = None,
    ):
        self._clock = clock
        self._analytics = analytics
        self._config = config
        self._catalog = part_catalog
        self._service_orders = service_orders
        self._movements = MovementSelector(session)
        self._reservations = ReservationSelector(session)

    def recommend(
        self,
        vehicle_id: str | None = None,
        service_order_id: str | None = None,
        limit: int | None = None,
        pipeline_id: str | None = None,
    ) -> list[Recommendation]:
        pipeline = get_pipeline(pipeline_id or self._config.default_pipeline)
        limit = self._config.default_limit if limit is None else limit
        if not 1 <= limit <= self._config.max_limit:
            raise ValidationError(
                f"limit must be between 1 and {self._config.max_limit}, got {limit}",
                field="limit",
            )

        now = self._clock.now()
        vehicle_model = self._vehicle_model(vehicle_id)
        own_items, descriptions = self._service_order_context(service_order_id)
        excluded = (
            self._reservations.parts_reserved_for_service_order(service_order_id)
            if service_order_id
            else set()
        )

        samples: list[UsageSample] = []
        if vehicle_model or descriptions:
            usage = self._movements.reservation_usage(
                vehicle_model=vehicle_model,
                descriptions=descriptions,
                since=now - timedelta(days=self._config.history_window_days),
            )
            samples = [
                UsageSample(
                    service_order_item_id=u.service_order_item_id,
                    part_id=u.part_id,
                    net_consumed=u.net_consumed,
                    occurred_at=u.last_activity_at,
                )
                for u in usage
                if u.service_order_item_id not in own_items
            ]

        window = self._movements.consumption_by_part(
            since=now - timedelta(days=self._analytics.consumption_window_days)
        )
        velocities = [
            PartVelocity(
                part_id=c.part_id,
                net_consumed=c.net_consumed,
                service_order_items=c.service_order_items,
            )
            for c in window.values()
        ]

        candidate_ids = {s.part_id for s in samples} | {v.part_id for v in velocities}
        names = {}
        if self._catalog is not None and candidate_ids:
            names = {p: ref.name for p, ref in self._catalog.get_parts(candidate_ids).items()}

        result = recommend_parts(
            pipeline_id=pipeline.id,
            samples=samples,
            velocities=velocities,
            exclude_part_ids=excluded,
            limit=limit,
            as_of=now,
            confidence_k=self._config.confidence_k,
            half_life_days=self._config.recency_half_life_days,
            part_names=names,
        )
        logger.info(
            "recommendations_built",
            extra={
                "pipeline_id": pipeline.id,
                "vehicle_model": vehicle_model,
                "service_order_id": service_order_id,
                "sample_count": len(samples),
                "result_count": len(result),
                "is_fallback": any(r.is_fallback for r in result),
            },
        )
        return result

    def _vehicle_model(self, vehicle_id: str | None) -> str | None:
        if not vehicle_id:
            return None
        if self._service_orders is not None:
            model = self._service_orders.vehicle_model(vehicle_id)
            if model:
                return model
        return self._movements.vehicle_model_of(vehicle_id)

    def _service_order_context(
        self, service_order_id: str | None
    ) -> tuple[set[str], list[str]]:
        """Item ids and descriptions of the service order being planned."""
        if not service_order_id:
            return set(), []
        item_ids: set[str] = set()
        descriptions: list[str] = []
        if self._service_orders is not None:
            for ref in self._service_orders.items_for_service_order(service_order_id):
                item_ids.add(ref.id)
                if ref.description:
                    descriptions.append(ref.description)
        for movement in self._movements.list_movements(
            MovementFilter(service_order_id=service_order_id)
        ):
            if movement.service_order_item_id:
                item_ids.add(movement.service_order_item_id)
            if movement.item_description:
                descriptions.append(movement.item_description)
        return item_ids, sorted(set(descriptions))
