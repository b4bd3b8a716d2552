"""Performer ranker: per-owner win rates, deal sizes and performance tiers."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Mapping, Sequence

from pipeline_intel.discovery.records import Opportunity, Stage, _pct, _round_half_up, _safe_ratio
from pipeline_intel.discovery.thresholds import (
    EXCELLENT_AVG_DEAL,
    EXCELLENT_WIN_RATE,
    GOOD_AVG_DEAL,
    GOOD_WIN_RATE,
    NEEDS_IMPROVEMENT_WIN_RATE,
    TOP_PERFORMER_LIMIT,
)

UNKNOWN_OWNER = "Unknown"


@dataclass
class Performer:
    """Aggregated pipeline results for one owner."""
    owner_id: str | None
    name: str
    deals: int
    won: int
    lost: int
    value: float
    win_rate: int
    avg_deal_size: float
    conversion_rate: int
    performance: str  # EXCELLENT / GOOD / AVERAGE / NEEDS_IMPROVEMENT


@dataclass
class SellerRanking:
    """Closed-won revenue for one owner."""
    owner_id: str | None
    name: str
    revenue: float
    deals: int


def performance_tier(win_rate: float, avg_deal_size: float) -> str:
    if win_rate >= EXCELLENT_WIN_RATE and avg_deal_size > EXCELLENT_AVG_DEAL:
        return "EXCELLENT"
    if win_rate >= GOOD_WIN_RATE or avg_deal_size > GOOD_AVG_DEAL:
        return "GOOD"
    if win_rate < NEEDS_IMPROVEMENT_WIN_RATE:
        return "NEEDS_IMPROVEMENT"
    return "AVERAGE"


def _owner_name(owner_id: str | None, owner_names: Mapping[str, str]) -> str:
    if owner_id is None:
        return UNKNOWN_OWNER
    return owner_names.get(owner_id, UNKNOWN_OWNER)


def rank_performers(
    opportunities: Sequence[Opportunity],
    owner_names: Mapping[str, str] | None = None,
    limit: int = TOP_PERFORMER_LIMIT,
) -> list[Performer]:
    """Group opportunities by owner and return the top *limit* by pipeline value.

    Ties on value keep first-seen owner order.
    """
    owner_names = owner_names or {}
    groups: dict[str | None, list[Opportunity]] = defaultdict(list)
    for opp in opportunities:
        groups[opp.owner_id].append(opp)

    performers = []
    for owner_id, opps in groups.items():
        deals = len(opps)
        won = sum(1 for o in opps if o.stage is Stage.CLOSED_WON)
        lost = sum(1 for o in opps if o.stage is Stage.CLOSED_LOST)
        value = sum(o.deal_size for o in opps)
        win_rate = _pct(won, deals)
        avg_deal_size = _round_half_up(_safe_ratio(value, deals))
        performers.append(Performer(
            owner_id=owner_id,
            name=_owner_name(owner_id, owner_names),
            deals=deals,
            won=won,
            lost=lost,
            value=value,
            win_rate=win_rate,
            avg_deal_size=avg_deal_size,
            conversion_rate=win_rate,
            performance=performance_tier(win_rate, avg_deal_size),
        ))

    performers.sort(key=lambda p: p.value, reverse=True)
    return performers[:limit]


def rank_sellers(
    opportunities: Sequence[Opportunity],
    owner_names: Mapping[str, str] | None = None,
    limit: int = TOP_PERFORMER_LIMIT,
) -> list[SellerRanking]:
    """Rank owners by closed-won revenue, then by closed-won deal count.

    Every owner with an opportunity in the set is ranked, including owners
    with nothing won yet.  Opportunities without an owner are skipped.
    """
    owner_names = owner_names or {}
    revenue: dict[str, float] = {}
    deals: dict[str, int] = {}
    for opp in opportunities:
        if opp.owner_id is None:
            continue
        revenue.setdefault(opp.owner_id, 0.0)
        deals.setdefault(opp.owner_id, 0)
        if opp.stage is Stage.CLOSED_WON:
            revenue[opp.owner_id] += opp.deal_size
            deals[opp.owner_id] += 1

    sellers = [
        SellerRanking(
            owner_id=owner_id,
            name=owner_names.get(owner_id, f"User {owner_id}"),
            revenue=revenue[owner_id],
            deals=deals[owner_id],
        )
        for owner_id in revenue
    ]
    sellers.sort(key=lambda s: (s.revenue, s.deals), reverse=True)
    return sellers[:limit]
