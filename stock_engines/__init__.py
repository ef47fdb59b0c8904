"""
Module: stock_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines used by
    the analytics services: coverage projection, stock severity and part
    recommendations.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import stock_kernel/domain, stock_kernel.exceptions and
    sibling engine modules.  MUST NOT import stock_services.

Invariants enforced:
    - Purity: engines never read a clock; ``as_of`` is passed in.
    - Decimal-only arithmetic on quantities, scores and confidences.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Every engine invocation is traced via ``@traced_engine``, emitting a
    STOCK_ENGINE_TRACE log record.

Usage:
    from stock_engines import assess_stock, project_coverage, recommend_parts
"""

from stock_engines.coverage import (
    CoverageProjection,
    project_coverage,
    worst_coverage,
)
from stock_engines.recommendation import (
    DEFAULT_PIPELINE_ID,
    PIPELINES,
    PartVelocity,
    PipelineDescriptor,
    Recommendation,
    UsageSample,
    get_pipeline,
    list_pipelines,
    recommend_parts,
)
from stock_engines.severity import (
    DEFAULT_WARNING_MULTIPLIER,
    SeverityAssessment,
    assess_stock,
    classify_stock,
)
from stock_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "DEFAULT_PIPELINE_ID",
    "DEFAULT_WARNING_MULTIPLIER",
    "PIPELINES",
    "CoverageProjection",
    "PartVelocity",
    "PipelineDescriptor",
    "Recommendation",
    "SeverityAssessment",
    "UsageSample",
    "assess_stock",
    "classify_stock",
    "compute_input_fingerprint",
    "get_pipeline",
    "list_pipelines",
    "project_coverage",
    "recommend_parts",
    "traced_engine",
    "worst_coverage",
]
