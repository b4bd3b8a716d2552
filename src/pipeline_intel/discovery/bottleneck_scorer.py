"""Bottleneck scorer: turns stage dwell time and conversion into risk.

Each stage gets a 0-100 ``bottleneck_risk``.  Stages above the reporting
threshold are diagnosed with a stage-keyed issue and a list of suggested
actions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Sequence

from pipeline_intel.discovery.records import Opportunity, Stage
from pipeline_intel.discovery.stage_aggregator import StageMetric, aggregate_stages
from pipeline_intel.discovery.thresholds import (
    BOTTLENECK_HIGH_RISK,
    BOTTLENECK_MEDIUM_RISK,
    BOTTLENECK_REPORT_RISK,
    CONVERSION_CRITICAL_PCT,
    CONVERSION_CRITICAL_POINTS,
    CONVERSION_WEAK_PCT,
    CONVERSION_WEAK_POINTS,
    DWELL_ELEVATED_DAYS,
    DWELL_ELEVATED_POINTS,
    DWELL_HIGH_DAYS,
    DWELL_HIGH_POINTS,
    DWELL_SEVERE_DAYS,
    DWELL_SEVERE_POINTS,
    MAX_RATE,
    NEGOTIATION_ACTION_RISK,
    NEGOTIATION_CONVERSION_PCT,
    NEGOTIATION_CONVERSION_POINTS,
    PROSPECTING_ACTION_RISK,
    PROSPECTING_DWELL_DAYS,
    PROSPECTING_DWELL_POINTS,
)

logger = logging.getLogger(__name__)

_PROSPECTING_ACTIONS = [
    "Improve lead qualification criteria",
    "Enhance lead nurturing process",
    "Increase prospecting activities",
]
_NEGOTIATION_ACTIONS = [
    "Review pricing strategy",
    "Improve negotiation training",
    "Strengthen value proposition",
]
_FALLBACK_ACTIONS = [
    "Review and optimize process",
    "Allocate additional resources",
    "Implement automation",
]

BOTTLENECK_RECOMMENDATION = "Monitor and adjust engagement strategy"


@dataclass
class Bottleneck:
    """A diagnosed bottleneck stage."""
    stage: Stage
    risk: int
    impact: str  # HIGH / MEDIUM / LOW
    issue: str
    recommendation: str = BOTTLENECK_RECOMMENDATION
    actions: list[str] = field(default_factory=list)


def score_stage_risk(stage: Stage, avg_time_in_stage: float, conversion_rate: float) -> int:
    """Accumulate the 0-100 bottleneck risk for one stage."""
    risk = 0

    if avg_time_in_stage > DWELL_SEVERE_DAYS:
        risk += DWELL_SEVERE_POINTS
    elif avg_time_in_stage > DWELL_HIGH_DAYS:
        risk += DWELL_HIGH_POINTS
    elif avg_time_in_stage > DWELL_ELEVATED_DAYS:
        risk += DWELL_ELEVATED_POINTS

    if conversion_rate < CONVERSION_CRITICAL_PCT:
        risk += CONVERSION_CRITICAL_POINTS
    elif conversion_rate < CONVERSION_WEAK_PCT:
        risk += CONVERSION_WEAK_POINTS

    if stage is Stage.PROSPECTING and avg_time_in_stage > PROSPECTING_DWELL_DAYS:
        risk += PROSPECTING_DWELL_POINTS
    if stage is Stage.NEGOTIATION and conversion_rate < NEGOTIATION_CONVERSION_PCT:
        risk += NEGOTIATION_CONVERSION_POINTS

    return min(max(risk, 0), MAX_RATE)


def apply_bottleneck_risk(metrics: Sequence[StageMetric]) -> list[StageMetric]:
    """Return copies of *metrics* with ``bottleneck_risk`` filled in.

    A stage holding no opportunities carries no risk.
    """
    return [
        replace(
            m,
            bottleneck_risk=score_stage_risk(m.stage, m.avg_time_in_stage, m.conversion_rate) if m.count else 0,
        )
        for m in metrics
    ]


def build_stage_breakdown(
    opportunities: Sequence[Opportunity],
    now: datetime,
) -> list[StageMetric]:
    """Aggregate stages and score them in one step."""
    return apply_bottleneck_risk(aggregate_stages(opportunities, now))


def _impact(risk: int) -> str:
    if risk > BOTTLENECK_HIGH_RISK:
        return "HIGH"
    if risk > BOTTLENECK_MEDIUM_RISK:
        return "MEDIUM"
    return "LOW"


def _fmt_days(days: float) -> str:
    return f"{days:g}"


def describe_issue(metric: StageMetric) -> str:
    """Stage-keyed, deterministic description of why a stage is slow."""
    conv = metric.conversion_rate
    days = _fmt_days(metric.avg_time_in_stage)
    if metric.stage is Stage.PROSPECTING:
        return f"Low qualification rate ({conv}%) indicates poor lead quality or qualification criteria"
    if metric.stage is Stage.QUALIFICATION:
        return f"Slow progression ({days} days) suggests resource constraints or process inefficiencies"
    if metric.stage is Stage.PROPOSAL:
        return f"Extended proposal phase ({days} days) indicates complex requirements or delays"
    if metric.stage is Stage.NEGOTIATION:
        return f"Low close rate ({conv}%) suggests pricing issues or competitive pressure"
    return f"Bottleneck identified with {conv}% conversion rate"


def suggest_actions(stage: Stage, risk: int) -> list[str]:
    if stage is Stage.PROSPECTING and risk > PROSPECTING_ACTION_RISK:
        return list(_PROSPECTING_ACTIONS)
    if stage is Stage.NEGOTIATION and risk > NEGOTIATION_ACTION_RISK:
        return list(_NEGOTIATION_ACTIONS)
    return list(_FALLBACK_ACTIONS)


def diagnose_bottlenecks(metrics: Sequence[StageMetric]) -> list[Bottleneck]:
    """Report every stage whose risk exceeds the reporting threshold, in stage order."""
    bottlenecks = []
    for m in metrics:
        if m.bottleneck_risk <= BOTTLENECK_REPORT_RISK:
            continue
        bottlenecks.append(Bottleneck(
            stage=m.stage,
            risk=m.bottleneck_risk,
            impact=_impact(m.bottleneck_risk),
            issue=describe_issue(m),
            actions=suggest_actions(m.stage, m.bottleneck_risk),
        ))
    if bottlenecks:
        logger.debug(
            "Bottleneck stages: %s",
            ", ".join(f"{b.stage.value}={b.risk}" for b in bottlenecks),
        )
    return bottlenecks
