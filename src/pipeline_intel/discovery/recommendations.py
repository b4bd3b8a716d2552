"""Recommendation synthesizer: computed metrics in, recommendation text out.

Every function here is deterministic.  The same metrics always produce the
same recommendations in the same order, and nothing here reads a clock or a
random source other than the ``now`` handed in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Mapping, Sequence

from pipeline_intel.discovery.bottleneck_scorer import Bottleneck
from pipeline_intel.discovery.records import Activity, Opportunity, Stage, _pct
from pipeline_intel.discovery.revenue_forecaster import RevenueForecast
from pipeline_intel.discovery.risk_assessor import RiskAssessment
from pipeline_intel.discovery.stage_aggregator import StageMetric
from pipeline_intel.discovery.thresholds import (
    EFFECTIVE_ACTIVITY_PCT,
    FORECAST_TARGET,
    HOT_DEAL_PROBABILITY,
    IDLE_HOT_DEAL_DAYS,
    IDLE_PROSPECT_DAYS,
    IDLE_WARM_DEAL_DAYS,
    IMMEDIATE_ACTION_LIMIT,
    LOW_HISTORICAL_CONVERSION,
    LOW_PIPELINE_PROBABILITY,
    LOW_STAGE_CONVERSION_PCT,
    ON_HOLD_ALERT_COUNT,
    STAGNANT_PROSPECT_SHARE,
    STRATEGIC_INSIGHT_LIMIT,
    STRONG_WIN_RATE,
    WARM_DEAL_PROBABILITY,
    WEAK_WIN_RATE,
)
from pipeline_intel.discovery.velocity import VelocityMetrics, flag_velocity

SEASONALITY_NOTE = "Consider seasonal patterns when evaluating forecast accuracy"


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass
class ImmediateAction:
    type: str
    priority: str
    description: str
    expected_impact: str
    timeline: str


@dataclass
class PredictiveAlert:
    type: str
    severity: str
    message: str
    probability: float
    suggested_response: str


@dataclass
class StrategicInsight:
    category: str
    insight: str
    confidence: float
    supporting_data: dict[str, int] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Text recommendations
# ---------------------------------------------------------------------------


def forecast_recommendations(forecast: RevenueForecast) -> list[str]:
    recs = []
    if forecast.historical_conversion_rate < LOW_HISTORICAL_CONVERSION:
        recs.append("Historical conversion rate is below 25% - focus on deal qualification")
    if forecast.weighted_forecast < FORECAST_TARGET:
        recs.append("Pipeline value is below target - increase prospecting activities")
    recs.append(SEASONALITY_NOTE)
    return recs


def bottleneck_recommendations(bottlenecks: Sequence[Bottleneck]) -> list[str]:
    """One line of stage guidance per diagnosed bottleneck."""
    return [
        f"{b.stage.value}: {b.issue}. Suggested actions: {', '.join(b.actions)}"
        for b in bottlenecks
    ]


def pipeline_recommendations(
    average_probability: float,
    stage_counts: Mapping[Stage, int],
    velocity: VelocityMetrics,
) -> list[str]:
    """Deal-level pipeline guidance; *average_probability* is on a 0-1 scale."""
    recs = []
    if average_probability < LOW_PIPELINE_PROBABILITY:
        recs.append("Focus on qualifying leads better to improve overall pipeline probability")
    recs.extend(flag_velocity(velocity))
    if stage_counts.get(Stage.ON_HOLD, 0) > ON_HOLD_ALERT_COUNT:
        recs.append("Review and re-engage deals on hold to prevent pipeline stagnation")
    if stage_counts.get(Stage.PROSPECTING, 0) > stage_counts.get(Stage.CLOSED_WON, 0):
        recs.append("Improve conversion funnel - too many deals stuck in early stages")
    return recs


def synthesize_recommendations(
    *,
    stage_metrics: Sequence[StageMetric] = (),
    bottlenecks: Sequence[Bottleneck] = (),
    forecast: RevenueForecast | None = None,
    risk: RiskAssessment | None = None,
    velocity_flags: Sequence[str] = (),
) -> list[str]:
    """Merge every rule's output, first occurrence wins, order preserved."""
    recs: list[str] = []

    total = sum(m.count for m in stage_metrics)
    won = sum(m.count for m in stage_metrics if m.stage is Stage.CLOSED_WON)
    if total and _pct(won, total) < LOW_STAGE_CONVERSION_PCT:
        recs.append("Improve lead qualification process to increase conversion rates")

    if forecast is not None:
        recs.extend(forecast_recommendations(forecast))

    recs.extend(bottleneck_recommendations(bottlenecks))
    recs.extend(velocity_flags)

    if risk is not None:
        if risk.high_risk_opportunities:
            recs.append(
                f"{len(risk.high_risk_opportunities)} opportunities have high risk scores "
                "- review and take action"
            )
        recs.extend(risk.pipeline_health.recommendations)

    return list(dict.fromkeys(recs))


# ---------------------------------------------------------------------------
# Structured recommendations
# ---------------------------------------------------------------------------


def _idle_since(opp: Opportunity, cutoff: datetime) -> bool:
    return opp.last_activity_date is None or opp.last_activity_date < cutoff


def immediate_actions(
    opportunities: Sequence[Opportunity],
    now: datetime,
    limit: int = IMMEDIATE_ACTION_LIMIT,
) -> list[ImmediateAction]:
    actions = []

    overdue = sum(1 for o in opportunities if o.is_past_close_date(now))
    if overdue:
        actions.append(ImmediateAction(
            type="Opportunity",
            priority="HIGH",
            description=f"{overdue} opportunities are overdue",
            expected_impact="Prevent revenue loss",
            timeline="Immediate",
        ))

    cutoff = now - timedelta(days=IDLE_HOT_DEAL_DAYS)
    hot = sum(1 for o in opportunities if o.probability > HOT_DEAL_PROBABILITY and _idle_since(o, cutoff))
    if hot:
        actions.append(ImmediateAction(
            type="Opportunity",
            priority="HIGH",
            description=f"Follow up on {hot} high-probability opportunities",
            expected_impact="Accelerate sales cycle",
            timeline="Within 24 hours",
        ))

    return actions[:limit]


def predictive_alerts(opportunities: Sequence[Opportunity], now: datetime) -> list[PredictiveAlert]:
    alerts = []

    warm_cutoff = now - timedelta(days=IDLE_WARM_DEAL_DAYS)
    at_risk = sum(1 for o in opportunities if o.probability > WARM_DEAL_PROBABILITY and _idle_since(o, warm_cutoff))
    if at_risk:
        alerts.append(PredictiveAlert(
            type="Opportunity",
            severity="MEDIUM",
            message=f"{at_risk} high-probability opportunities haven't been updated recently",
            probability=0.7,
            suggested_response="Schedule immediate follow-up calls",
        ))

    prospect_cutoff = now - timedelta(days=IDLE_PROSPECT_DAYS)
    stagnant = sum(
        1 for o in opportunities
        if o.stage is Stage.PROSPECTING and _idle_since(o, prospect_cutoff)
    )
    if stagnant > len(opportunities) * STAGNANT_PROSPECT_SHARE:
        alerts.append(PredictiveAlert(
            type="Pipeline",
            severity="HIGH",
            message="Pipeline velocity is slowing - many opportunities stuck in early stages",
            probability=0.8,
            suggested_response="Implement qualification acceleration strategies",
        ))

    return alerts


def strategic_insights(
    opportunities: Sequence[Opportunity],
    activities: Sequence[Activity],
    limit: int = STRATEGIC_INSIGHT_LIMIT,
) -> list[StrategicInsight]:
    insights = []

    won = sum(1 for o in opportunities if o.stage is Stage.CLOSED_WON)
    closed = sum(1 for o in opportunities if o.is_closed)
    win_rate = _pct(won, closed)
    supporting = {"win_rate": win_rate, "total_closed": closed, "won": won}
    if win_rate > STRONG_WIN_RATE:
        insights.append(StrategicInsight(
            category="Performance",
            insight=f"Excellent win rate of {win_rate}% indicates strong sales effectiveness",
            confidence=0.9,
            supporting_data=supporting,
        ))
    elif win_rate < WEAK_WIN_RATE:
        insights.append(StrategicInsight(
            category="Performance",
            insight=f"Win rate of {win_rate}% suggests need for process improvements",
            confidence=0.85,
            supporting_data=supporting,
        ))

    effective = sum(1 for a in activities if a.is_effective)
    effectiveness = _pct(effective, len(activities))
    if effectiveness > EFFECTIVE_ACTIVITY_PCT:
        insights.append(StrategicInsight(
            category="Activity",
            insight=f"{effectiveness}% of activities are highly effective",
            confidence=0.8,
            supporting_data={
                "effectiveness_rate": effectiveness,
                "total_activities": len(activities),
                "effective_activities": effective,
            },
        ))

    return insights[:limit]
