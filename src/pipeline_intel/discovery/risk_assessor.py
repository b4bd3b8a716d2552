"""Risk assessor: one overall risk score plus categorized risk lists.

Combines opportunity exposure, overdue follow-ups, stale contacts and missed
close dates into a clamped 0-100 score, and lists the individual high-risk
opportunities, contacts and overdue items behind it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Sequence

from pipeline_intel.discovery.records import (
    Contact,
    FollowUp,
    Opportunity,
    Stage,
    _pct,
    _whole_days_since,
)
from pipeline_intel.discovery.thresholds import (
    AT_RISK_DEAL_VALUE,
    HEALTHY_CLOSE_HORIZON_DAYS,
    HEALTHY_PROBABILITY,
    HIGH_PRIORITY_SCORE,
    HIGH_RISK_MIN_FACTORS,
    HIGH_VALUE_DEAL,
    HIGH_VALUE_POINTS,
    INACTIVE_CONTACT_DAYS,
    INACTIVE_CONTACT_POINTS,
    LONG_CYCLE_DAYS,
    LOW_CONTACT_SCORE,
    LOW_HEALTH_SCORE,
    LOW_PROBABILITY,
    MAX_RISK_SCORE,
    MISSING_CLOSE_DATE_SHARE,
    OVERDUE_FOLLOW_UP_POINTS,
    OVERDUE_OPPORTUNITY_POINTS,
    RISK_CRITICAL,
    RISK_HIGH,
    RISK_MEDIUM,
    STAGNANT_PROSPECT_DAYS,
    UNKNOWN_INTERACTION_DAYS,
)

logger = logging.getLogger(__name__)

_CONTACT_RISK_FACTORS = ["Low engagement", "Outdated contact info"]
_CONTACT_ACTIONS = ["Re-engage contact", "Update contact information", "Schedule follow-up"]


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass
class HighRiskOpportunity:
    id: str
    name: str
    value: float
    probability: float
    risk_factors: list[str] = field(default_factory=list)
    mitigation_actions: list[str] = field(default_factory=list)


@dataclass
class HighRiskContact:
    id: str
    name: str
    engagement_score: float
    risk_factors: list[str] = field(default_factory=lambda: list(_CONTACT_RISK_FACTORS))
    recommended_actions: list[str] = field(default_factory=lambda: list(_CONTACT_ACTIONS))


@dataclass
class OverdueItem:
    type: str  # Follow-up / Opportunity
    id: str
    description: str
    days_overdue: int
    impact: str
    priority: str  # HIGH / MEDIUM


@dataclass
class PipelineHealth:
    score: int  # 0-100
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


@dataclass
class RiskAssessment:
    overall_risk_score: int
    risk_level: str
    high_risk_opportunities: list[HighRiskOpportunity] = field(default_factory=list)
    high_risk_contacts: list[HighRiskContact] = field(default_factory=list)
    overdue_items: list[OverdueItem] = field(default_factory=list)
    pipeline_health: PipelineHealth = field(default_factory=lambda: PipelineHealth(score=0))


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def _is_inactive(contact: Contact, now: datetime) -> bool:
    """Known last interaction older than the inactivity window."""
    days = contact.days_inactive(now)
    return days is not None and days > INACTIVE_CONTACT_DAYS


def overall_risk_score(
    opportunities: Sequence[Opportunity],
    follow_ups: Sequence[FollowUp],
    contacts: Sequence[Contact],
    now: datetime,
) -> int:
    score = 0
    score += HIGH_VALUE_POINTS * sum(1 for o in opportunities if o.deal_size > HIGH_VALUE_DEAL)
    score += OVERDUE_OPPORTUNITY_POINTS * sum(1 for o in opportunities if o.is_past_close_date(now))
    score += OVERDUE_FOLLOW_UP_POINTS * sum(1 for f in follow_ups if f.is_overdue(now))
    score += INACTIVE_CONTACT_POINTS * sum(1 for c in contacts if _is_inactive(c, now))
    return min(max(score, 0), MAX_RISK_SCORE)


def risk_level(score: float) -> str:
    if score >= RISK_CRITICAL:
        return "CRITICAL"
    if score >= RISK_HIGH:
        return "HIGH"
    if score >= RISK_MEDIUM:
        return "MEDIUM"
    return "LOW"


# ---------------------------------------------------------------------------
# Risk lists
# ---------------------------------------------------------------------------


def _high_risk_signals(opp: Opportunity, now: datetime) -> int:
    signals = 0
    if opp.probability < LOW_PROBABILITY:
        signals += 1
    if opp.deal_size > AT_RISK_DEAL_VALUE:
        signals += 1
    if opp.stage is Stage.PROSPECTING and opp.pipeline_age_days(now) > STAGNANT_PROSPECT_DAYS:
        signals += 1
    return signals


def opportunity_risk_factors(opp: Opportunity, now: datetime) -> list[str]:
    factors = []
    if opp.probability < LOW_PROBABILITY:
        factors.append("Low probability")
    if opp.deal_size > AT_RISK_DEAL_VALUE:
        factors.append("High value at risk")
    if opp.pipeline_age_days(now) > LONG_CYCLE_DAYS:
        factors.append("Long sales cycle")
    if opp.stage is Stage.PROSPECTING:
        factors.append("Early stage")
    return factors


def mitigation_actions(opp: Opportunity, now: datetime) -> list[str]:
    actions = []
    if opp.probability < LOW_PROBABILITY:
        actions.append("Focus on qualification")
    if opp.pipeline_age_days(now) > LONG_CYCLE_DAYS:
        actions.append("Accelerate decision process")
    if opp.stage is Stage.PROSPECTING:
        actions.append("Schedule discovery call")
    return actions


def find_high_risk_opportunities(
    opportunities: Sequence[Opportunity],
    now: datetime,
) -> list[HighRiskOpportunity]:
    return [
        HighRiskOpportunity(
            id=o.id,
            name=o.name,
            value=o.deal_size,
            probability=o.probability,
            risk_factors=opportunity_risk_factors(o, now),
            mitigation_actions=mitigation_actions(o, now),
        )
        for o in opportunities
        if _high_risk_signals(o, now) >= HIGH_RISK_MIN_FACTORS
    ]


def find_high_risk_contacts(contacts: Sequence[Contact], now: datetime) -> list[HighRiskContact]:
    """Contacts idle beyond the inactivity window with a low contact score.

    A contact never interacted with counts as idle.
    """
    risky = []
    for contact in contacts:
        idle = _whole_days_since(contact.last_interaction, now)
        if idle is None:
            idle = UNKNOWN_INTERACTION_DAYS
        if idle > INACTIVE_CONTACT_DAYS and contact.contact_score < LOW_CONTACT_SCORE:
            risky.append(HighRiskContact(
                id=contact.id,
                name=contact.name,
                engagement_score=contact.contact_score,
            ))
    return risky


def find_overdue_items(
    opportunities: Sequence[Opportunity],
    follow_ups: Sequence[FollowUp],
    now: datetime,
) -> list[OverdueItem]:
    """Overdue follow-ups first, then opportunities past their close date."""
    items = [
        OverdueItem(
            type="Follow-up",
            id=f.id,
            description=f.action_description,
            days_overdue=_whole_days_since(f.follow_up_date, now),
            impact="Potential loss of opportunity",
            priority="HIGH" if f.priority_score >= HIGH_PRIORITY_SCORE else "MEDIUM",
        )
        for f in follow_ups
        if f.is_overdue(now)
    ]
    items.extend(
        OverdueItem(
            type="Opportunity",
            id=o.id,
            description=o.name,
            days_overdue=_whole_days_since(o.expected_close_date, now),
            impact="Missed deadline",
            priority="HIGH",
        )
        for o in opportunities
        if o.is_past_close_date(now)
    )
    return items


def assess_pipeline_health(opportunities: Sequence[Opportunity], now: datetime) -> PipelineHealth:
    """Share of opportunities that are qualified, likely and not closing imminently."""
    total = len(opportunities)
    horizon = now + timedelta(days=HEALTHY_CLOSE_HORIZON_DAYS)
    healthy = sum(
        1 for o in opportunities
        if o.stage is not Stage.PROSPECTING
        and o.probability >= HEALTHY_PROBABILITY
        and (o.expected_close_date is None or o.expected_close_date > horizon)
    )
    health = PipelineHealth(score=_pct(healthy, total))

    if health.score < LOW_HEALTH_SCORE:
        health.issues.append("Low pipeline health score")
        health.recommendations.append("Focus on opportunity qualification")
        health.recommendations.append("Improve probability assessments")

    missing = sum(1 for o in opportunities if o.expected_close_date is None)
    if missing > total * MISSING_CLOSE_DATE_SHARE:
        health.issues.append("Missing close dates")
        health.recommendations.append("Set realistic close dates for all opportunities")
    return health


def assess_risk(
    opportunities: Sequence[Opportunity],
    follow_ups: Sequence[FollowUp],
    contacts: Sequence[Contact],
    now: datetime,
) -> RiskAssessment:
    """Full risk assessment over one snapshot."""
    score = overall_risk_score(opportunities, follow_ups, contacts, now)
    assessment = RiskAssessment(
        overall_risk_score=score,
        risk_level=risk_level(score),
        high_risk_opportunities=find_high_risk_opportunities(opportunities, now),
        high_risk_contacts=find_high_risk_contacts(contacts, now),
        overdue_items=find_overdue_items(opportunities, follow_ups, now),
        pipeline_health=assess_pipeline_health(opportunities, now),
    )
    logger.debug("Risk score %d (%s)", score, assessment.risk_level)
    return assessment
