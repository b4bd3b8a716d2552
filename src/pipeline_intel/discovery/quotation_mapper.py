"""Quotation report and quotation-to-opportunity mapping."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Sequence

from pipeline_intel.discovery.records import (
    Company,
    Opportunity,
    Quotation,
    Stage,
    _round_half_up,
    _safe_ratio,
)

LONG_PENDING_DAYS = 30
HIGH_VALUE_QUOTATION = 100_000
DEADLINE_WARNING_DAYS = 7
TOP_CLIENT_LIMIT = 10

_STATUS_PROBABILITY = {
    "ACCEPTED": 100,
    "REJECTED": 0,
    "SENT": 60,
    "PENDING": 40,
}
_OTHER_STATUS_PROBABILITY = 20
ACTIVE_OPPORTUNITY_BONUS = 20
WON_OPPORTUNITY_BONUS = 15

# Statuses that have not been answered yet; excluded from response time.
_UNANSWERED = frozenset({"PENDING", "SENT"})


@dataclass
class ClientTotal:
    name: str
    quotations: int
    value: float


@dataclass
class RelatedOpportunity:
    id: str
    title: str
    stage: Stage | None
    value: float
    probability: float


@dataclass
class QuotationMapping:
    quotation_id: str
    quotation_value: float
    client_name: str
    status: str
    conversion_probability: int
    related_opportunities: list[RelatedOpportunity] = field(default_factory=list)
    risk_factors: list[str] = field(default_factory=list)
    recommended_actions: list[str] = field(default_factory=list)


@dataclass
class QuotationReport:
    total_quotations: int
    pending_quotations: int
    accepted_quotations: int
    rejected_quotations: int
    overdue_quotations: int
    total_value: float
    average_response_time: float  # days, 1 decimal
    top_clients: list[ClientTotal] = field(default_factory=list)
    mappings: list[QuotationMapping] = field(default_factory=list)


def _names_overlap(a: str, b: str) -> bool:
    a, b = a.lower(), b.lower()
    if not a or not b:
        return False
    return a in b or b in a


def related_opportunities(
    quotation: Quotation,
    opportunities: Sequence[Opportunity],
    company_names: dict[str, str],
) -> list[Opportunity]:
    """Opportunities whose company name and the quotation's client name contain one another."""
    return [
        o for o in opportunities
        if _names_overlap(company_names.get(o.company_id or "", ""), quotation.client_name)
    ]


def conversion_probability(quotation: Quotation, related: Sequence[Opportunity]) -> int:
    probability = _STATUS_PROBABILITY.get(quotation.status, _OTHER_STATUS_PROBABILITY)
    if any(o.stage is not Stage.CLOSED_LOST for o in related):
        probability += ACTIVE_OPPORTUNITY_BONUS
    if any(o.stage is Stage.CLOSED_WON for o in related):
        probability += WON_OPPORTUNITY_BONUS
    return min(probability, 100)


def map_quotation(
    quotation: Quotation,
    opportunities: Sequence[Opportunity],
    company_names: dict[str, str],
    now: datetime,
) -> QuotationMapping:
    related = related_opportunities(quotation, opportunities, company_names)
    long_pending = quotation.days_pending(now) > LONG_PENDING_DAYS

    risks = []
    if long_pending:
        risks.append("Long pending time")
    if quotation.order_value > HIGH_VALUE_QUOTATION:
        risks.append("High value quotation")
    if not related:
        risks.append("No related opportunities")

    actions = []
    if long_pending:
        actions.append("Send follow-up reminder")
    if quotation.deadline is not None and now <= quotation.deadline < now + timedelta(days=DEADLINE_WARNING_DAYS):
        actions.append("Urgent: approaching deadline")
    if related:
        actions.append("Reference existing opportunities")

    return QuotationMapping(
        quotation_id=quotation.id,
        quotation_value=quotation.order_value,
        client_name=quotation.client_name,
        status=quotation.status,
        conversion_probability=conversion_probability(quotation, related),
        related_opportunities=[
            RelatedOpportunity(
                id=o.id, title=o.name, stage=o.stage, value=o.deal_size, probability=o.probability,
            )
            for o in related
        ],
        risk_factors=risks,
        recommended_actions=actions,
    )


def average_response_days(quotations: Sequence[Quotation]) -> float:
    """Mean created-to-updated days over answered quotations, to one decimal."""
    durations = []
    for q in quotations:
        if q.status in _UNANSWERED or q.created_at is None or q.updated_at is None:
            continue
        days = (q.updated_at - q.created_at).total_seconds() / 86400
        if days >= 0:
            durations.append(days)
    return _round_half_up(_safe_ratio(sum(durations), len(durations)), 1)


def top_clients(quotations: Sequence[Quotation], limit: int = TOP_CLIENT_LIMIT) -> list[ClientTotal]:
    counts: dict[str, int] = defaultdict(int)
    values: dict[str, float] = defaultdict(float)
    for q in quotations:
        counts[q.client_name] += 1
        values[q.client_name] += q.order_value
    clients = [ClientTotal(name=name, quotations=counts[name], value=values[name]) for name in counts]
    clients.sort(key=lambda c: c.value, reverse=True)
    return clients[:limit]


def build_quotation_report(
    quotations: Sequence[Quotation],
    opportunities: Sequence[Opportunity],
    companies: Sequence[Company],
    now: datetime,
) -> QuotationReport:
    company_names = {c.id: c.name for c in companies}
    return QuotationReport(
        total_quotations=len(quotations),
        pending_quotations=sum(1 for q in quotations if q.status == "PENDING"),
        accepted_quotations=sum(1 for q in quotations if q.status == "ACCEPTED"),
        rejected_quotations=sum(1 for q in quotations if q.status == "REJECTED"),
        overdue_quotations=sum(1 for q in quotations if q.deadline is not None and q.deadline < now),
        total_value=sum(q.order_value for q in quotations),
        average_response_time=average_response_days(quotations),
        top_clients=top_clients(quotations),
        mappings=[map_quotation(q, opportunities, company_names, now) for q in quotations],
    )
