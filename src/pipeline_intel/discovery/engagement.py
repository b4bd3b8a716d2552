"""Engagement insights: activity, follow-up and contact intelligence.

Pure functions summarising how the sales team engages with contacts:
channel effectiveness, response rates, sentiment trend, follow-up discipline
and the most influential contacts.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Sequence

from pipeline_intel.discovery.records import Activity, Contact, FollowUp, Opportunity, _pct
from pipeline_intel.discovery.thresholds import (
    ACTIVE_CONTACT_DAYS,
    RECENT_ACTIVITY_DAYS,
    SENTIMENT_TREND_RATIO,
    TOP_INFLUENCER_LIMIT,
)

_INFLUENTIAL_LEVELS = ("DECISION_MAKER", "INFLUENCER")


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass
class SentimentSummary:
    positive: int
    neutral: int
    negative: int
    trend: str  # IMPROVING / STABLE / DECLINING


@dataclass
class ResponseRates:
    overall: int
    by_channel: dict[str, int] = field(default_factory=dict)
    by_contact_type: dict[str, int] = field(default_factory=dict)


@dataclass
class ActivityInsights:
    total_activities: int
    activities_by_type: dict[str, int]
    effectiveness_by_channel: dict[str, int]
    response_rates: ResponseRates
    sentiment: SentimentSummary


@dataclass
class FollowUpInsights:
    total_follow_ups: int
    completed_follow_ups: int
    overdue_follow_ups: int
    success_rate: int
    priority_distribution: dict[str, int]


@dataclass
class Influencer:
    id: str
    name: str
    role: str | None
    influence_level: str | None
    engagement_score: float
    opportunities_count: int


@dataclass
class ContactInsights:
    total_contacts: int
    active_contacts: int
    vip_contacts: int
    engagement_distribution: dict[str, int]
    top_influencers: list[Influencer] = field(default_factory=list)


@dataclass
class EngagementInsights:
    activities: ActivityInsights
    follow_ups: FollowUpInsights
    contacts: ContactInsights


# ---------------------------------------------------------------------------
# Activities
# ---------------------------------------------------------------------------


def _rate_by(activities: Sequence[Activity], key, hit) -> dict[str, int]:
    """Percentage of activities per *key* group for which *hit* is true."""
    totals: dict[str, int] = defaultdict(int)
    hits: dict[str, int] = defaultdict(int)
    for activity in activities:
        group = key(activity)
        totals[group] += 1
        if hit(activity):
            hits[group] += 1
    return {group: _pct(hits[group], total) for group, total in totals.items()}


def channel_effectiveness(activities: Sequence[Activity]) -> dict[str, int]:
    return _rate_by(activities, lambda a: a.channel, lambda a: a.is_effective)


def response_rates(activities: Sequence[Activity], contacts: Sequence[Contact]) -> ResponseRates:
    influence = {c.id: c.influence_level for c in contacts}
    return ResponseRates(
        overall=_pct(sum(1 for a in activities if a.response_received), len(activities)),
        by_channel=_rate_by(activities, lambda a: a.channel, lambda a: a.response_received),
        by_contact_type=_rate_by(
            activities,
            lambda a: influence.get(a.contact_id) or "UNKNOWN",
            lambda a: a.response_received,
        ),
    )


def analyze_sentiment(activities: Sequence[Activity], now: datetime) -> SentimentSummary:
    """Sentiment shares plus a trend over the trailing 30 days.

    The trend tips to IMPROVING (or DECLINING) when recent positive activities
    outnumber negative ones (or the reverse) by more than 1.2x.
    """
    counts = Counter(a.sentiment for a in activities)
    total = len(activities)

    cutoff = now - timedelta(days=RECENT_ACTIVITY_DAYS)
    recent = [a for a in activities if a.occurred_at is not None and a.occurred_at > cutoff]
    recent_positive = sum(1 for a in recent if a.sentiment == "POSITIVE")
    recent_negative = sum(1 for a in recent if a.sentiment == "NEGATIVE")

    trend = "STABLE"
    if recent_positive > recent_negative * SENTIMENT_TREND_RATIO:
        trend = "IMPROVING"
    elif recent_negative > recent_positive * SENTIMENT_TREND_RATIO:
        trend = "DECLINING"

    return SentimentSummary(
        positive=_pct(counts["POSITIVE"], total),
        neutral=_pct(counts["NEUTRAL"], total),
        negative=_pct(counts["NEGATIVE"], total),
        trend=trend,
    )


def analyze_activities(
    activities: Sequence[Activity],
    contacts: Sequence[Contact],
    now: datetime,
) -> ActivityInsights:
    return ActivityInsights(
        total_activities=len(activities),
        activities_by_type=dict(Counter(a.activity_type for a in activities)),
        effectiveness_by_channel=channel_effectiveness(activities),
        response_rates=response_rates(activities, contacts),
        sentiment=analyze_sentiment(activities, now),
    )


# ---------------------------------------------------------------------------
# Follow-ups and contacts
# ---------------------------------------------------------------------------


def analyze_follow_ups(follow_ups: Sequence[FollowUp], now: datetime) -> FollowUpInsights:
    completed = sum(1 for f in follow_ups if f.status == "COMPLETED")
    priorities = Counter(str(f.priority_score) for f in follow_ups)
    return FollowUpInsights(
        total_follow_ups=len(follow_ups),
        completed_follow_ups=completed,
        overdue_follow_ups=sum(1 for f in follow_ups if f.is_overdue(now)),
        success_rate=_pct(completed, len(follow_ups)),
        priority_distribution=dict(sorted(priorities.items())),
    )


def analyze_contacts(
    contacts: Sequence[Contact],
    opportunities: Sequence[Opportunity],
    now: datetime,
) -> ContactInsights:
    cutoff = now - timedelta(days=ACTIVE_CONTACT_DAYS)
    opp_counts = Counter(o.primary_contact_id for o in opportunities if o.primary_contact_id)

    influential = sorted(
        (c for c in contacts if c.influence_level in _INFLUENTIAL_LEVELS),
        key=lambda c: c.contact_score,
        reverse=True,
    )[:TOP_INFLUENCER_LIMIT]

    return ContactInsights(
        total_contacts=len(contacts),
        active_contacts=sum(
            1 for c in contacts if c.last_interaction is not None and c.last_interaction > cutoff
        ),
        vip_contacts=sum(1 for c in contacts if c.engagement_level == "VIP"),
        engagement_distribution=dict(Counter(c.engagement_level or "UNKNOWN" for c in contacts)),
        top_influencers=[
            Influencer(
                id=c.id,
                name=c.name,
                role=c.role,
                influence_level=c.influence_level,
                engagement_score=c.contact_score,
                opportunities_count=opp_counts.get(c.id, 0),
            )
            for c in influential
        ],
    )


def analyze_engagement(
    activities: Sequence[Activity],
    follow_ups: Sequence[FollowUp],
    contacts: Sequence[Contact],
    opportunities: Sequence[Opportunity],
    now: datetime,
) -> EngagementInsights:
    return EngagementInsights(
        activities=analyze_activities(activities, contacts, now),
        follow_ups=analyze_follow_ups(follow_ups, now),
        contacts=analyze_contacts(contacts, opportunities, now),
    )
