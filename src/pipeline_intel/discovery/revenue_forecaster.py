"""Revenue forecaster: stage-weighted forecasts, scenarios and projections.

Pure functions over a list of :class:`Opportunity`:

- scenario forecasting (weighted / optimistic / pessimistic) over open deals
  with a six-month projection whose confidence decays month over month;
- calendar-aligned current month / next month / quarter / year figures;
- month-over-month anomaly detection on closed-won revenue;
- qualitative forecast factors and forecast risk factors.

The monthly projection carries a bounded random variance term.  The random
source is injectable (anything with ``uniform(a, b)``) so callers can pin it.
"""

from __future__ import annotations

import logging
import random
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, Sequence

from config.settings import settings
from pipeline_intel.discovery.records import (
    FollowUp,
    Opportunity,
    Stage,
    _days_since,
    _round_half_up,
)
from pipeline_intel.discovery.thresholds import (
    ANOMALY_CHANGE_PCT,
    ANOMALY_HIGH_CHANGE_PCT,
    CONFIDENT_PROBABILITY,
    DEFAULT_FORECAST_PROBABILITY,
    DEFAULT_HISTORICAL_CONVERSION,
    FORECAST_HIGH_VALUE_DEAL,
    HIGH_CONFIDENCE_DEALS,
    LOW_CONFIDENCE_DEALS,
    OPTIMISTIC_MULTIPLIER,
    OVERDUE_FOLLOW_UP_FACTOR,
    PESSIMISTIC_MULTIPLIER,
    PROJECTION_BASE_DIVISOR,
    PROJECTION_CONFIDENCE_DECAY,
    PROJECTION_CONFIDENCE_FLOOR,
    PROJECTION_CONFIDENCE_START,
    PROJECTION_MONTHLY_GROWTH,
    PROJECTION_MONTHS,
    PROJECTION_VARIANCE,
    QUARTER_EARLY_STAGE_WEIGHT,
    STAGE_FORECAST_PROBABILITY,
    STRONG_PIPELINE_DEALS,
    STUCK_DEAL_DAYS,
    YEAR_QUARTERS,
)

logger = logging.getLogger(__name__)


class VarianceSource(Protocol):
    """Random source for the projection variance term."""

    def uniform(self, a: float, b: float) -> float: ...


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass
class MonthlyProjection:
    month: str
    forecast: float
    confidence: float


@dataclass
class RevenueForecast:
    """Scenario forecast over open opportunities."""
    current_pipeline: float
    weighted_forecast: float
    optimistic_forecast: float
    pessimistic_forecast: float
    historical_conversion_rate: float
    monthly_projection: list[MonthlyProjection] = field(default_factory=list)


@dataclass
class ForecastFactor:
    factor: str
    impact: str  # positive / negative / neutral
    weight: float
    description: str


@dataclass
class AnomalyAlert:
    type: str
    severity: str
    description: str
    impact: str


@dataclass
class CalendarForecast:
    """Calendar-aligned revenue figures."""
    current_month: float
    next_month: float
    quarter_projection: float
    year_projection: float
    confidence_level: str  # high / medium / low
    factors: list[ForecastFactor] = field(default_factory=list)
    anomaly_alerts: list[AnomalyAlert] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def stage_probability(stage: Stage | None) -> float:
    """Forecast probability for a stage, independent of the deal's stored probability."""
    if stage is None:
        return DEFAULT_FORECAST_PROBABILITY
    return STAGE_FORECAST_PROBABILITY.get(stage.value, DEFAULT_FORECAST_PROBABILITY)


def _open(opportunities: Sequence[Opportunity]) -> list[Opportunity]:
    return [o for o in opportunities if not o.is_closed]


def _add_months(now: datetime, months: int) -> datetime:
    month_index = now.month - 1 + months
    return now.replace(year=now.year + month_index // 12, month=month_index % 12 + 1, day=1)


def default_variance_source() -> VarianceSource:
    """Random source seeded from ``settings.forecast_seed`` (unseeded when unset)."""
    return random.Random(settings.forecast_seed)


# ---------------------------------------------------------------------------
# Scenario forecast
# ---------------------------------------------------------------------------


def historical_conversion_rate(opportunities: Sequence[Opportunity]) -> float:
    """Won over closed, or the default rate when nothing has closed yet."""
    closed = [o for o in opportunities if o.is_closed]
    if not closed:
        return DEFAULT_HISTORICAL_CONVERSION
    won = sum(1 for o in closed if o.stage is Stage.CLOSED_WON)
    return won / len(closed)


def project_months(
    weighted_forecast: float,
    now: datetime,
    rng: VarianceSource,
    months: int = PROJECTION_MONTHS,
) -> list[MonthlyProjection]:
    """Linear projection with bounded variance, growth and decaying confidence."""
    base = weighted_forecast / PROJECTION_BASE_DIVISOR
    projection = []
    for i in range(1, months + 1):
        variance = rng.uniform(-PROJECTION_VARIANCE, PROJECTION_VARIANCE)
        projected = base * (1 + variance) * (1 + i * PROJECTION_MONTHLY_GROWTH)
        confidence = max(
            PROJECTION_CONFIDENCE_FLOOR,
            round(PROJECTION_CONFIDENCE_START - i * PROJECTION_CONFIDENCE_DECAY, 2),
        )
        projection.append(MonthlyProjection(
            month=_add_months(now, i).strftime("%b %Y"),
            forecast=_round_half_up(projected),
            confidence=confidence,
        ))
    return projection


def forecast_revenue(
    opportunities: Sequence[Opportunity],
    now: datetime,
    rng: VarianceSource | None = None,
) -> RevenueForecast:
    """Weighted, optimistic and pessimistic forecasts over open opportunities."""
    pipeline = _open(opportunities)
    weighted = optimistic = pessimistic = 0.0
    for opp in pipeline:
        prob = stage_probability(opp.stage)
        weighted += opp.deal_size * prob
        optimistic += opp.deal_size * min(prob * OPTIMISTIC_MULTIPLIER, 1.0)
        pessimistic += opp.deal_size * prob * PESSIMISTIC_MULTIPLIER

    rng = rng if rng is not None else default_variance_source()
    result = RevenueForecast(
        current_pipeline=sum(o.deal_size for o in pipeline),
        weighted_forecast=weighted,
        optimistic_forecast=optimistic,
        pessimistic_forecast=pessimistic,
        historical_conversion_rate=historical_conversion_rate(opportunities),
        monthly_projection=project_months(weighted, now, rng),
    )
    logger.debug(
        "Forecast over %d open opportunities: weighted=%.2f",
        len(pipeline), weighted,
    )
    return result


# ---------------------------------------------------------------------------
# Calendar forecast
# ---------------------------------------------------------------------------


def detect_revenue_anomalies(opportunities: Sequence[Opportunity]) -> list[AnomalyAlert]:
    """Flag month-over-month swings in closed-won revenue.

    A month following a zero-revenue month has no defined change and never
    alerts.
    """
    monthly: dict[str, float] = defaultdict(float)
    for opp in opportunities:
        if opp.stage is Stage.CLOSED_WON and opp.created_at is not None:
            monthly[opp.created_at.strftime("%Y-%m")] += opp.deal_size

    months = sorted(monthly)
    alerts = []
    for prev_month, month in zip(months, months[1:]):
        previous = monthly[prev_month]
        current = monthly[month]
        change = (current - previous) / previous * 100 if previous > 0 else 0.0
        if abs(change) <= ANOMALY_CHANGE_PCT:
            continue
        alerts.append(AnomalyAlert(
            type="Revenue",
            severity="HIGH" if abs(change) > ANOMALY_HIGH_CHANGE_PCT else "MEDIUM",
            description=f"{abs(change):.1f}% {'increase' if change > 0 else 'decrease'} in {month}",
            impact="Positive growth anomaly" if change > 0 else "Potential revenue issue",
        ))
    return alerts


def forecast_factors(
    opportunities: Sequence[Opportunity],
    follow_ups: Sequence[FollowUp],
    now: datetime,
) -> list[ForecastFactor]:
    factors = []
    advanced = sum(1 for o in opportunities if o.stage in (Stage.PROPOSAL, Stage.NEGOTIATION))
    if advanced > STRONG_PIPELINE_DEALS:
        factors.append(ForecastFactor(
            factor="Strong pipeline",
            impact="positive",
            weight=0.3,
            description=f"{advanced} opportunities in advanced stages",
        ))
    overdue = sum(1 for f in follow_ups if f.is_overdue(now))
    if overdue > OVERDUE_FOLLOW_UP_FACTOR:
        factors.append(ForecastFactor(
            factor="Overdue follow-ups",
            impact="negative",
            weight=0.2,
            description=f"{overdue} follow-ups overdue",
        ))
    return factors


def confidence_level(opportunities: Sequence[Opportunity]) -> str:
    confident = sum(1 for o in opportunities if o.probability > CONFIDENT_PROBABILITY)
    if confident > HIGH_CONFIDENCE_DEALS:
        return "high"
    if confident < LOW_CONFIDENCE_DEALS:
        return "low"
    return "medium"


def project_calendar_revenue(
    opportunities: Sequence[Opportunity],
    follow_ups: Sequence[FollowUp],
    now: datetime,
) -> CalendarForecast:
    """Current month actuals plus weighted open-deal contributions.

    Next month weights PROPOSAL and NEGOTIATION deals by their stored
    probability.  The quarter adds QUALIFICATION and PROPOSAL deals at a flat
    30 % and the year is four quarters.
    """
    current_month = sum(
        o.deal_size
        for o in opportunities
        if o.stage is Stage.CLOSED_WON
        and o.created_at is not None
        and (o.created_at.year, o.created_at.month) == (now.year, now.month)
    )
    next_month = sum(
        o.deal_size * o.probability / 100
        for o in opportunities
        if o.stage in (Stage.NEGOTIATION, Stage.PROPOSAL)
    )
    early_stage = sum(
        o.deal_size * QUARTER_EARLY_STAGE_WEIGHT
        for o in opportunities
        if o.stage in (Stage.QUALIFICATION, Stage.PROPOSAL)
    )
    quarter = current_month + next_month + early_stage

    return CalendarForecast(
        current_month=_round_half_up(current_month),
        next_month=_round_half_up(next_month),
        quarter_projection=_round_half_up(quarter),
        year_projection=_round_half_up(quarter * YEAR_QUARTERS),
        confidence_level=confidence_level(opportunities),
        factors=forecast_factors(opportunities, follow_ups, now),
        anomaly_alerts=detect_revenue_anomalies(opportunities),
    )


# ---------------------------------------------------------------------------
# Risk factors
# ---------------------------------------------------------------------------


def forecast_risk_factors(opportunities: Sequence[Opportunity], now: datetime) -> list[str]:
    """Stuck and oversized deals among open opportunities."""
    pipeline = _open(opportunities)
    risks = []
    stuck = sum(
        1 for o in pipeline
        if (_days_since(o.updated_at, now) or 0) > STUCK_DEAL_DAYS
    )
    if stuck:
        risks.append(f"{stuck} deals haven't been updated in {STUCK_DEAL_DAYS}+ days")
    high_value = sum(1 for o in pipeline if o.deal_size > FORECAST_HIGH_VALUE_DEAL)
    if high_value:
        risks.append(f"{high_value} high-value deals require special attention")
    return risks
