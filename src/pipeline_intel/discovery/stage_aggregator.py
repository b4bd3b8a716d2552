"""Stage aggregator: per-stage counts, value, conversion and dwell time.

Buckets opportunities over the six canonical pipeline stages.  Opportunities
whose stage is missing or outside the canonical set are left out of the
buckets rather than raising.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from pipeline_intel.discovery.records import (
    CANONICAL_STAGES,
    Opportunity,
    Stage,
    _days_since,
    _pct,
    _round_half_up,
    _safe_ratio,
)
from pipeline_intel.discovery.thresholds import (
    CLOSED_LOST_CONVERSION,
    CLOSED_WON_CONVERSION,
    MAX_RATE,
    STAGE_DWELL_CAP_DAYS,
)

logger = logging.getLogger(__name__)


@dataclass
class StageMetric:
    """Derived metrics for one canonical stage."""
    stage: Stage
    count: int
    value: float
    avg_deal_size: float
    conversion_rate: int  # 0-100
    avg_time_in_stage: float  # days
    bottleneck_risk: int = 0  # 0-100, filled in by the bottleneck scorer


def _next_stage(stage: Stage) -> Stage | None:
    """The canonical stage an open deal advances into (NEGOTIATION -> CLOSED_WON)."""
    idx = CANONICAL_STAGES.index(stage)
    if stage in (Stage.CLOSED_WON, Stage.CLOSED_LOST):
        return None
    return CANONICAL_STAGES[idx + 1]


def _dwell_days(opp: Opportunity, now: datetime) -> float:
    """Days spent in the current stage: explicit velocity, else capped age."""
    if opp.stage_velocity:
        return opp.stage_velocity
    age = _days_since(opp.created_at, now)
    if age is None:
        return 0.0
    return min(max(age, 0.0), STAGE_DWELL_CAP_DAYS)


def _conversion_rate(stage: Stage, counts: dict[Stage, int]) -> int:
    """0 for an empty stage; terminal stages are fixed at 100 (won) and 0 (lost)."""
    count = counts.get(stage, 0)
    if count == 0:
        return 0
    if stage is Stage.CLOSED_WON:
        return CLOSED_WON_CONVERSION
    if stage is Stage.CLOSED_LOST:
        return CLOSED_LOST_CONVERSION
    nxt = _next_stage(stage)
    return min(_pct(counts.get(nxt, 0), count), MAX_RATE)


def aggregate_stages(
    opportunities: Sequence[Opportunity],
    now: datetime,
) -> list[StageMetric]:
    """Compute one :class:`StageMetric` per canonical stage, in canonical order.

    Conversion for an intermediate stage is the count in the next canonical
    stage over the count in this stage, both taken from ``Opportunity.stage``
    and capped at 100.  ``bottleneck_risk`` is left at 0; see
    :func:`pipeline_intel.discovery.bottleneck_scorer.apply_bottleneck_risk`.
    """
    buckets: dict[Stage, list[Opportunity]] = defaultdict(list)
    skipped = 0
    for opp in opportunities:
        if opp.stage in CANONICAL_STAGES:
            buckets[opp.stage].append(opp)
        else:
            skipped += 1
    if skipped:
        logger.debug("Excluded %d opportunities without a canonical stage", skipped)

    counts = {stage: len(items) for stage, items in buckets.items()}

    metrics: list[StageMetric] = []
    for stage in CANONICAL_STAGES:
        items = buckets.get(stage, [])
        count = len(items)
        value = sum(o.deal_size for o in items)
        dwell = _safe_ratio(sum(_dwell_days(o, now) for o in items), count)
        metrics.append(StageMetric(
            stage=stage,
            count=count,
            value=value,
            avg_deal_size=_safe_ratio(value, count),
            conversion_rate=_conversion_rate(stage, counts),
            avg_time_in_stage=_round_half_up(dwell, 2),
        ))
    return metrics
