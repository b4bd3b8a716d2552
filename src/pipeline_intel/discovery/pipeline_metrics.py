"""Deal-level pipeline metrics built from pipeline orders."""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from config.settings import settings
from pipeline_intel.discovery.records import (
    PipelineDeal,
    PipelineOrder,
    Stage,
    _safe_ratio,
    deal_from_order,
)
from pipeline_intel.discovery.velocity import (
    VelocityMetrics,
    VelocityMetricsFn,
    calculate_velocity_metrics,
    flag_velocity,
)


@dataclass
class PipelineDealMetrics:
    total_deals: int
    total_value: float
    weighted_value: float
    average_probability: float  # 0-1
    velocity: float  # revenue per month
    velocity_details: VelocityMetrics
    conversion_rate: float  # closed-won share, 0-1
    stage_distribution: dict[Stage, int] = field(default_factory=dict)
    stage_values: dict[Stage, float] = field(default_factory=dict)
    velocity_flags: list[str] = field(default_factory=list)
    deals: list[PipelineDeal] = field(default_factory=list)


def build_pipeline_metrics(
    orders: Sequence[PipelineOrder],
    now: datetime,
    velocity_metrics: VelocityMetricsFn = calculate_velocity_metrics,
    deal_limit: int | None = None,
) -> PipelineDealMetrics:
    """Map orders to deals, then total, weight and time them.

    *velocity_metrics* is the collaborator computing deals and revenue per
    month; only its output contract is relied on.
    """
    deals = [deal_from_order(order, now) for order in orders]
    limit = settings.report_deal_limit if deal_limit is None else deal_limit

    distribution = Counter(d.stage for d in deals)
    values: dict[Stage, float] = defaultdict(float)
    for d in deals:
        values[d.stage] += d.value

    details = velocity_metrics(deals)
    return PipelineDealMetrics(
        total_deals=len(deals),
        total_value=sum(d.value for d in deals),
        weighted_value=sum(d.weighted_value for d in deals),
        average_probability=_safe_ratio(sum(d.probability for d in deals), len(deals)),
        velocity=details.velocity_per_month,
        velocity_details=details,
        conversion_rate=_safe_ratio(distribution.get(Stage.CLOSED_WON, 0), len(deals)),
        stage_distribution=dict(distribution),
        stage_values=dict(values),
        velocity_flags=flag_velocity(details),
        deals=deals[:limit],
    )
