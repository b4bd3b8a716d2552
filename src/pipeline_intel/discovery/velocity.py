"""Velocity calculator: how fast opportunities and deals move through the pipeline.

Two views are computed.  The opportunity view (:func:`calculate_pipeline_velocity`)
works off stage metrics and tracked pipeline time.  The deal view
(:func:`calculate_velocity_metrics`) works off pipeline orders mapped into
:class:`~pipeline_intel.discovery.records.PipelineDeal` and yields deals and
revenue per month, which :func:`flag_velocity` turns into warnings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from statistics import mean
from typing import Callable, Sequence

from pipeline_intel.discovery.records import (
    Opportunity,
    PipelineDeal,
    Stage,
    _round_half_up,
    _safe_ratio,
)
from pipeline_intel.discovery.stage_aggregator import StageMetric
from pipeline_intel.discovery.thresholds import (
    CRITICAL_DEALS_PER_MONTH,
    DAYS_PER_MONTH,
    DEFAULT_DEAL_CYCLE_DAYS,
    DEFAULT_SALES_CYCLE_DAYS,
    DEFAULT_TIME_TO_CLOSE_DAYS,
    LOW_DEALS_PER_MONTH,
    VELOCITY_BOTTLENECK_RISK,
)

_QUALIFIED_DEAL_STAGES = frozenset({
    Stage.PROSPECTING,
    Stage.QUALIFICATION,
    Stage.PROPOSAL,
    Stage.NEGOTIATION,
    Stage.FINAL_APPROVAL,
})
_LOST_DEAL_STAGES = frozenset({Stage.CLOSED_LOST, Stage.CANCELLED, Stage.LOST_TO_COMPETITOR})

MIN_FALLBACK_WIN_RATE = 0.05
MAX_FALLBACK_WIN_RATE = 0.95

CRITICAL_VELOCITY_MESSAGE = (
    "Pipeline velocity is critically low - focus on moving qualified deals through to close"
)
LOW_MOMENTUM_MESSAGE = "Increase deal momentum to convert more opportunities each month"
SLOW_CYCLE_MESSAGE = (
    "Monthly revenue velocity trails the average deal size - "
    "shorten the sales cycle to improve throughput"
)


@dataclass
class PipelineVelocity:
    """Opportunity-level velocity."""
    avg_time_to_close: float
    avg_time_in_pipeline: float
    stage_transition_speed: dict[str, float] = field(default_factory=dict)
    bottlenecks: list[str] = field(default_factory=list)
    sales_cycle_length: float = DEFAULT_SALES_CYCLE_DAYS


@dataclass
class VelocityMetrics:
    """Deal-level velocity, the Velocity Metrics collaborator's contract."""
    total_deals: int
    qualified_deals: int
    average_deal_size: float
    win_rate: float  # 0-1
    sales_cycle_days: float
    velocity_per_day: float
    velocity_per_month: float
    deals_per_month: float


VelocityMetricsFn = Callable[[Sequence[PipelineDeal]], VelocityMetrics]


# ---------------------------------------------------------------------------
# Opportunity view
# ---------------------------------------------------------------------------


def calculate_pipeline_velocity(
    opportunities: Sequence[Opportunity],
    stage_metrics: Sequence[StageMetric],
) -> PipelineVelocity:
    """Time-to-close, pipeline age, per-stage dwell and slow stages."""
    closed = [o for o in opportunities if o.is_closed]
    if closed:
        avg_time_to_close = mean(
            o.total_time_in_pipeline or DEFAULT_TIME_TO_CLOSE_DAYS for o in closed
        )
    else:
        avg_time_to_close = DEFAULT_TIME_TO_CLOSE_DAYS

    avg_time_in_pipeline = _safe_ratio(
        sum(o.total_time_in_pipeline or 0 for o in opportunities), len(opportunities)
    )

    cycles = [
        (o.updated_at - o.created_at).total_seconds() / 86400
        for o in opportunities
        if o.stage is Stage.CLOSED_WON and o.created_at and o.updated_at
    ]
    sales_cycle_length = mean(cycles) if cycles else DEFAULT_SALES_CYCLE_DAYS

    return PipelineVelocity(
        avg_time_to_close=_round_half_up(avg_time_to_close),
        avg_time_in_pipeline=_round_half_up(avg_time_in_pipeline),
        stage_transition_speed={m.stage.value: m.avg_time_in_stage for m in stage_metrics},
        bottlenecks=[
            m.stage.value for m in stage_metrics if m.bottleneck_risk > VELOCITY_BOTTLENECK_RISK
        ],
        sales_cycle_length=_round_half_up(sales_cycle_length),
    )


# ---------------------------------------------------------------------------
# Deal view
# ---------------------------------------------------------------------------


def _win_rate(deals: Sequence[PipelineDeal]) -> float:
    won = sum(1 for d in deals if d.stage is Stage.CLOSED_WON)
    lost = sum(1 for d in deals if d.stage in _LOST_DEAL_STAGES)
    rate = _safe_ratio(won, won + lost)
    if rate or not deals:
        return rate
    # No closed history yet: lean on the deals' own probabilities.
    avg_probability = mean(d.probability for d in deals)
    return min(max(avg_probability, MIN_FALLBACK_WIN_RATE), MAX_FALLBACK_WIN_RATE)


def _sales_cycle_days(deals: Sequence[PipelineDeal]) -> float:
    won_cycles = [
        d.sales_cycle_days or d.pipeline_age_days
        for d in deals
        if d.stage is Stage.CLOSED_WON and (d.sales_cycle_days or d.pipeline_age_days) > 0
    ]
    if won_cycles:
        return mean(won_cycles)
    ages = [d.pipeline_age_days for d in deals if d.pipeline_age_days > 0]
    if ages:
        return mean(ages)
    return DEFAULT_DEAL_CYCLE_DAYS


def calculate_velocity_metrics(deals: Sequence[PipelineDeal]) -> VelocityMetrics:
    """Default Velocity Metrics collaborator.

    ``velocity_per_day = qualified x average deal size x win rate / cycle``,
    ``deals_per_month = qualified x win rate x 30 / cycle``.
    """
    qualified = [d for d in deals if d.stage in _QUALIFIED_DEAL_STAGES]
    average_deal_size = _safe_ratio(sum(d.value for d in qualified), len(qualified))
    win_rate = _win_rate(deals)
    cycle = _sales_cycle_days(deals)

    velocity_per_day = _safe_ratio(len(qualified) * average_deal_size * win_rate, cycle)
    return VelocityMetrics(
        total_deals=len(deals),
        qualified_deals=len(qualified),
        average_deal_size=average_deal_size,
        win_rate=win_rate,
        sales_cycle_days=cycle,
        velocity_per_day=velocity_per_day,
        velocity_per_month=velocity_per_day * DAYS_PER_MONTH,
        deals_per_month=_safe_ratio(len(qualified) * win_rate * DAYS_PER_MONTH, cycle),
    )


def flag_velocity(metrics: VelocityMetrics) -> list[str]:
    """Velocity warnings, most severe first."""
    flags = []
    if metrics.deals_per_month < CRITICAL_DEALS_PER_MONTH:
        flags.append(CRITICAL_VELOCITY_MESSAGE)
    elif metrics.deals_per_month < LOW_DEALS_PER_MONTH:
        flags.append(LOW_MOMENTUM_MESSAGE)
    if metrics.velocity_per_month < metrics.average_deal_size:
        flags.append(SLOW_CYCLE_MESSAGE)
    return flags
