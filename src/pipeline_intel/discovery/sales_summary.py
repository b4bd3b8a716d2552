"""Sales summary: closed-won totals, stage table and revenue trend buckets."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Mapping, Sequence

from pipeline_intel.discovery.performer_ranker import SellerRanking, rank_sellers
from pipeline_intel.discovery.records import CANONICAL_STAGES, Opportunity, Stage, _pct, _safe_ratio
from pipeline_intel.ingestion.snapshot_loader import Period

STAGE_LABELS: dict[Stage, str] = {
    Stage.PROSPECTING: "Prospecting",
    Stage.QUALIFICATION: "Qualification",
    Stage.PROPOSAL: "Proposal",
    Stage.NEGOTIATION: "Negotiation",
    Stage.CLOSED_WON: "Closed Won",
    Stage.CLOSED_LOST: "Closed Lost",
}

WEEKS_PER_MONTH_BUCKETS = 4


@dataclass
class StageTotal:
    stage: str
    count: int
    value: float


@dataclass
class TrendBucket:
    label: str
    revenue: float = 0.0
    deals: int = 0


@dataclass
class SalesSummary:
    total_revenue: float
    total_deals: int
    total_opportunities: int
    conversion_rate: int
    average_deal_size: float
    pipeline_stages: list[StageTotal] = field(default_factory=list)
    trends: list[TrendBucket] = field(default_factory=list)
    top_sellers: list[SellerRanking] = field(default_factory=list)


def _month_label(dt: datetime) -> str:
    return dt.strftime("%b %Y")


def _day_label(dt: datetime) -> str:
    return f"{dt:%b} {dt.day}"


def _shift_month(dt: datetime, months: int) -> datetime:
    idx = dt.year * 12 + dt.month - 1 + months
    return dt.replace(year=idx // 12, month=idx % 12 + 1, day=1)


def _bucket_label(ts: datetime, period: Period) -> str:
    if period in (Period.YEAR, Period.QUARTER):
        return _month_label(ts)
    if period is Period.MONTH:
        week = min(WEEKS_PER_MONTH_BUCKETS, math.ceil(ts.day / 7))
        return f"W{week}"
    return _day_label(ts)


def empty_trend_buckets(period: Period, now: datetime) -> list[TrendBucket]:
    """Chronological, zero-filled buckets for *period* ending at *now*."""
    if period is Period.YEAR:
        labels = [_month_label(_shift_month(now, -i)) for i in range(11, -1, -1)]
    elif period is Period.QUARTER:
        labels = [_month_label(_shift_month(now, -i)) for i in range(2, -1, -1)]
    elif period is Period.MONTH:
        labels = [f"W{w}" for w in range(1, WEEKS_PER_MONTH_BUCKETS + 1)]
    else:
        labels = [_day_label(now - timedelta(days=i)) for i in range(6, -1, -1)]
    return [TrendBucket(label=label) for label in labels]


def build_trends(
    opportunities: Sequence[Opportunity],
    period: Period,
    now: datetime,
) -> list[TrendBucket]:
    """Closed-won revenue and deal counts per bucket.

    A deal whose bucket falls outside the pre-built range gets its own bucket
    appended at the end.
    """
    buckets = {b.label: b for b in empty_trend_buckets(period, now)}
    for opp in opportunities:
        if opp.stage is not Stage.CLOSED_WON or opp.created_at is None:
            continue
        label = _bucket_label(opp.created_at, period)
        bucket = buckets.setdefault(label, TrendBucket(label=label))
        bucket.revenue += opp.deal_size
        bucket.deals += 1
    return list(buckets.values())


def summarize_sales(
    opportunities: Sequence[Opportunity],
    period: Period,
    now: datetime,
    owner_names: Mapping[str, str] | None = None,
) -> SalesSummary:
    won = [o for o in opportunities if o.stage is Stage.CLOSED_WON]
    total_revenue = sum(o.deal_size for o in won)

    stages = [
        StageTotal(
            stage=STAGE_LABELS[stage],
            count=sum(1 for o in opportunities if o.stage is stage),
            value=sum(o.deal_size for o in opportunities if o.stage is stage),
        )
        for stage in CANONICAL_STAGES
    ]

    return SalesSummary(
        total_revenue=total_revenue,
        total_deals=len(won),
        total_opportunities=len(opportunities),
        conversion_rate=_pct(len(won), len(opportunities)),
        average_deal_size=_safe_ratio(total_revenue, len(won)),
        pipeline_stages=stages,
        trends=build_trends(opportunities, period, now),
        top_sellers=rank_sellers(opportunities, owner_names),
    )
