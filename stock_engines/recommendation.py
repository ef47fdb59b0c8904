"""
Module: stock_engines.recommendation
Responsibility:
    Rank parts to suggest for a service order from historical usage.
    Holds the closed registry of recommendation pipelines and the scoring
    functions behind each of them.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Inputs are plain value objects (UsageSample, PartVelocity) built by the
    service layer from ledger aggregates.

Invariants enforced:
    - priority_score is in [0, 100] and confidence in [0, 1].
    - confidence = n / (n + k) where n is the number of service-order items
      backing the recommendation.
    - suggested_quantity = ceil(average net consumption per item), never
      below 1.
    - Excluded parts never appear in the output.
    - A matched pipeline that finds no usable history degrades to the
      fast-moving ranking with is_fallback=True.
    - Output order is deterministic: score desc, confidence desc, part_id.

Failure modes:
    - UnknownPipelineError (a ValidationError) for an unregistered id.
    - ValueError when limit < 1 or confidence_k <= 0.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal

from stock_engines.tracer import traced_engine
from stock_kernel.exceptions import UnknownPipelineError

ZERO = Decimal("0")
HUNDRED = Decimal("100")
_SCORE_PLACES = Decimal("0.01")
_CONFIDENCE_PLACES = Decimal("0.0001")

CONSUMPTION_FREQUENCY = "consumption-frequency"
RECENCY_WEIGHTED = "recency-weighted"
FAST_MOVING = "fast-moving"


@dataclass(frozen=True)
class PipelineDescriptor:
    id: str
    name: str
    description: str
    version: str
    is_default: bool = False
    uses_history_match: bool = True


PIPELINES: dict[str, PipelineDescriptor] = {
    CONSUMPTION_FREQUENCY: PipelineDescriptor(
        id=CONSUMPTION_FREQUENCY,
        name="Consumption frequency",
        description=(
            "Parts consumed most often on service orders for the same vehicle "
            "model or job description."
        ),
        version="1.0",
        is_default=True,
    ),
    RECENCY_WEIGHTED: PipelineDescriptor(
        id=RECENCY_WEIGHTED,
        name="Recency weighted",
        description=(
            "Like consumption frequency, but recent service orders weigh more "
            "(exponential decay by half-life)."
        ),
        version="1.0",
    ),
    FAST_MOVING: PipelineDescriptor(
        id=FAST_MOVING,
        name="Fast-moving parts",
        description="Parts with the highest net consumption in the recent window.",
        version="1.0",
        uses_history_match=False,
    ),
}

DEFAULT_PIPELINE_ID = CONSUMPTION_FREQUENCY


def list_pipelines() -> list[PipelineDescriptor]:
    """Registry contents, default pipeline first."""
    return sorted(PIPELINES.values(), key=lambda p: (not p.is_default, p.id))


def get_pipeline(pipeline_id: str | None) -> PipelineDescriptor:
    if pipeline_id is None or pipeline_id == "":
        return PIPELINES[DEFAULT_PIPELINE_ID]
    try:
        return PIPELINES[pipeline_id]
    except KeyError:
        raise UnknownPipelineError(pipeline_id, sorted(PIPELINES)) from None


@dataclass(frozen=True)
class UsageSample:
    """What one matched service-order item consumed of one part."""

    service_order_item_id: str
    part_id: str
    net_consumed: Decimal
    occurred_at: datetime


@dataclass(frozen=True)
class PartVelocity:
    """Window consumption of one part, for the fast-moving ranking."""

    part_id: str
    net_consumed: Decimal
    service_order_items: int


@dataclass(frozen=True)
class Recommendation:
    """
    Contract:
        One suggested part.
    Guarantees:
        - 0 <= priority_score <= 100; 0 <= confidence <= 1.
        - suggested_quantity >= 1.
        - id is stable for a (pipeline, part) pair.
    """

    id: str
    part_id: str
    part_name: str
    description: str
    priority_score: Decimal
    suggested_quantity: int
    confidence: Decimal
    rationale: str
    is_fallback: bool
    pipeline_id: str


@dataclass(frozen=True)
class RankingParameters:
    confidence_k: Decimal
    half_life_days: Decimal
    as_of: datetime


def confidence_for(n: int, k: Decimal) -> Decimal:
    if n <= 0:
        return ZERO
    value = Decimal(n) / (Decimal(n) + k)
    return value.quantize(_CONFIDENCE_PLACES, rounding=ROUND_HALF_UP)


def suggested_quantity(total: Decimal, n: int) -> int:
    if n <= 0 or total <= ZERO:
        return 1
    average = total / Decimal(n)
    return max(int(average.to_integral_value(rounding=ROUND_CEILING)), 1)


def _score(value: Decimal) -> Decimal:
    bounded = min(max(value, ZERO), HUNDRED)
    return bounded.quantize(_SCORE_PLACES, rounding=ROUND_HALF_UP)


@dataclass
class _Candidate:
    part_id: str
    weight: Decimal = ZERO
    total: Decimal = ZERO
    items: set[str] = field(default_factory=set)


def _decay(occurred_at: datetime, params: RankingParameters) -> Decimal:
    age_days = max((params.as_of - occurred_at).total_seconds() / 86400.0, 0.0)
    factor = 0.5 ** (age_days / float(params.half_life_days))
    return Decimal(repr(factor))


def _rank_matches(
    samples: list[UsageSample],
    params: RankingParameters,
    weigh: Callable[[UsageSample, RankingParameters], Decimal],
) -> list[tuple[_Candidate, Decimal, int]]:
    """Shared body of the history-match pipelines.

    Each matched service-order item contributes its weight once per part it
    used; the score is the part's weight over the total weight of matched
    items, so a part used on every similar job scores 100.
    """
    item_weight: dict[str, Decimal] = {}
    candidates: dict[str, _Candidate] = {}
    for sample in samples:
        weight = weigh(sample, params)
        item_weight[sample.service_order_item_id] = max(
            item_weight.get(sample.service_order_item_id, ZERO), weight
        )
        candidate = candidates.setdefault(sample.part_id, _Candidate(sample.part_id))
        if sample.service_order_item_id not in candidate.items:
            candidate.items.add(sample.service_order_item_id)
            candidate.weight += weight
        candidate.total += sample.net_consumed

    universe = sum(item_weight.values(), ZERO)
    if universe <= ZERO:
        return []
    total_items = len(item_weight)
    return [
        (c, _score(c.weight / universe * HUNDRED), total_items)
        for c in candidates.values()
    ]


def _frequency_weight(sample: UsageSample, params: RankingParameters) -> Decimal:
    return Decimal(1)


def _recency_weight(sample: UsageSample, params: RankingParameters) -> Decimal:
    return _decay(sample.occurred_at, params)


_MATCH_WEIGHTS: dict[str, Callable[[UsageSample, RankingParameters], Decimal]] = {
    CONSUMPTION_FREQUENCY: _frequency_weight,
    RECENCY_WEIGHTED: _recency_weight,
}


def _from_matches(
    pipeline: PipelineDescriptor,
    samples: list[UsageSample],
    params: RankingParameters,
    part_names: Mapping[str, str],
) -> list[Recommendation]:
    ranked = _rank_matches(samples, params, _MATCH_WEIGHTS[pipeline.id])
    result = []
    for candidate, score, total_items in ranked:
        n = len(candidate.items)
        name = part_names.get(candidate.part_id, f"Part {candidate.part_id}")
        result.append(
            Recommendation(
                id=f"{pipeline.id}:{candidate.part_id}",
                part_id=candidate.part_id,
                part_name=name,
                description=f"Used on {n} of {total_items} similar service order items",
                priority_score=score,
                suggested_quantity=suggested_quantity(candidate.total, n),
                confidence=confidence_for(n, params.confidence_k),
                rationale=(
                    f"{pipeline.name}: {candidate.total.normalize():f} units consumed "
                    f"across {n} matching service order items"
                ),
                is_fallback=False,
                pipeline_id=pipeline.id,
            )
        )
    return result


def _from_velocity(
    velocities: list[PartVelocity],
    params: RankingParameters,
    part_names: Mapping[str, str],
    is_fallback: bool,
) -> list[Recommendation]:
    moving = [v for v in velocities if v.net_consumed > ZERO]
    if not moving:
        return []
    top = max(v.net_consumed for v in moving)
    pipeline = PIPELINES[FAST_MOVING]
    result = []
    for velocity in moving:
        n = velocity.service_order_items
        name = part_names.get(velocity.part_id, f"Part {velocity.part_id}")
        result.append(
            Recommendation(
                id=f"{pipeline.id}:{velocity.part_id}",
                part_id=velocity.part_id,
                part_name=name,
                description="Fast-moving part",
                priority_score=_score(velocity.net_consumed / top * HUNDRED),
                suggested_quantity=suggested_quantity(velocity.net_consumed, n),
                confidence=confidence_for(n, params.confidence_k),
                rationale=(
                    f"{velocity.net_consumed.normalize():f} units consumed recently "
                    f"across {n} service order items"
                ),
                is_fallback=is_fallback,
                pipeline_id=pipeline.id,
            )
        )
    return result


def _ordered(recommendations: Iterable[Recommendation], limit: int) -> list[Recommendation]:
    ordered = sorted(
        recommendations,
        key=lambda r: (-r.priority_score, -r.confidence, r.part_id),
    )
    return ordered[:limit]


@traced_engine(
    "recommendation",
    "1.0",
    fingerprint_fields=("pipeline_id", "limit", "exclude_part_ids", "as_of"),
)
def recommend_parts(
    *,
    pipeline_id: str | None,
    samples: Iterable[UsageSample],
    velocities: Iterable[PartVelocity],
    exclude_part_ids: Iterable[str] = (),
    limit: int,
    as_of: datetime,
    confidence_k: Decimal = Decimal("5"),
    half_life_days: Decimal = Decimal("30"),
    part_names: Mapping[str, str] | None = None,
) -> list[Recommendation]:
    """
    Run one pipeline.

    ``fast-moving`` ranks by window velocity directly.  The history-match
    pipelines rank matched samples and fall back to the velocity ranking
    (flagged is_fallback) when no sample consumed anything.
    """
    pipeline = get_pipeline(pipeline_id)
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")
    if confidence_k <= ZERO:
        raise ValueError(f"confidence_k must be positive, got {confidence_k}")
    if half_life_days <= ZERO:
        raise ValueError(f"half_life_days must be positive, got {half_life_days}")

    excluded = set(exclude_part_ids)
    names = part_names or {}
    params = RankingParameters(
        confidence_k=Decimal(confidence_k),
        half_life_days=Decimal(half_life_days),
        as_of=as_of,
    )
    usable = [
        s for s in samples if s.part_id not in excluded and s.net_consumed > ZERO
    ]
    velocity = [v for v in velocities if v.part_id not in excluded]

    if pipeline.uses_history_match:
        matched = _from_matches(pipeline, usable, params, names)
        if matched:
            return _ordered(matched, limit)
        return _ordered(_from_velocity(velocity, params, names, is_fallback=True), limit)

    return _ordered(_from_velocity(velocity, params, names, is_fallback=False), limit)


__all__ = [
    "CONSUMPTION_FREQUENCY",
    "DEFAULT_PIPELINE_ID",
    "FAST_MOVING",
    "PIPELINES",
    "RECENCY_WEIGHTED",
    "PartVelocity",
    "PipelineDescriptor",
    "Recommendation",
    "UsageSample",
    "confidence_for",
    "get_pipeline",
    "list_pipelines",
    "recommend_parts",
    "suggested_quantity",
]
