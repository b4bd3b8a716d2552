"""Report facade: the one entry point external callers use.

``ReportFacade.generate_report(kind, period, scope)`` loads a filtered
snapshot, runs the analytical components for the requested report kind and
returns a plain JSON-serializable dict::

    {"kind", "period", "title", "generated_at", "summary", "data"}

Task graph for the pipeline analysis (SALES and PIPELINE reports):

    snapshot -> stage aggregation + bottleneck scores
             -> performers | velocity | forecast | calendar | risk | deal metrics   (fan-out)
             -> recommendation synthesis                                           (join)

Any failure after the report kind and period are parsed surfaces as a single
:class:`ReportGenerationError`; no partial report is ever returned.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from pipeline_intel.discovery.attendance_summary import summarize_attendance
from pipeline_intel.discovery.bottleneck_scorer import (
    Bottleneck,
    build_stage_breakdown,
    diagnose_bottlenecks,
)
from pipeline_intel.discovery.engagement import analyze_engagement
from pipeline_intel.discovery.performer_ranker import Performer, rank_performers
from pipeline_intel.discovery.pipeline_metrics import PipelineDealMetrics, build_pipeline_metrics
from pipeline_intel.discovery.quotation_mapper import build_quotation_report
from pipeline_intel.discovery.recommendations import (
    forecast_recommendations,
    immediate_actions,
    pipeline_recommendations,
    predictive_alerts,
    strategic_insights,
    synthesize_recommendations,
)
from pipeline_intel.discovery.records import _utcnow
from pipeline_intel.discovery.revenue_forecaster import (
    CalendarForecast,
    RevenueForecast,
    VarianceSource,
    default_variance_source,
    forecast_revenue,
    forecast_risk_factors,
    project_calendar_revenue,
)
from pipeline_intel.discovery.risk_assessor import RiskAssessment, assess_risk
from pipeline_intel.discovery.sales_summary import summarize_sales
from pipeline_intel.discovery.stage_aggregator import StageMetric
from pipeline_intel.discovery.velocity import (
    PipelineVelocity,
    VelocityMetricsFn,
    calculate_pipeline_velocity,
    calculate_velocity_metrics,
)
from pipeline_intel.ingestion.snapshot_loader import (
    Period,
    RecordSource,
    ReportScope,
    Snapshot,
    load_snapshot,
)

logger = logging.getLogger(__name__)


class ReportGenerationError(RuntimeError):
    """Raised when a report cannot be produced; the cause is chained."""

    def __init__(self, kind: ReportKind) -> None:
        super().__init__(f"Failed to generate {kind.value} report")
        self.kind = kind


class ReportKind(str, Enum):
    SALES = "sales"
    PIPELINE = "pipeline"
    FORECAST = "forecast"
    QUOTATION = "quotation"
    ATTENDANCE = "attendance"

    @classmethod
    def parse(cls, value: str | ReportKind) -> ReportKind:
        if isinstance(value, ReportKind):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unsupported report kind: {value!r}") from None


_TITLES = {
    ReportKind.SALES: "Sales Report",
    ReportKind.PIPELINE: "Pipeline Report",
    ReportKind.FORECAST: "Revenue Forecast Report",
    ReportKind.QUOTATION: "Quotation Report",
    ReportKind.ATTENDANCE: "Attendance Report",
}

# Collections each report kind needs from the record source.
_COLLECTIONS = {
    ReportKind.SALES: ("opportunities", "follow_ups", "activities", "contacts", "users"),
    ReportKind.PIPELINE: ("opportunities", "follow_ups", "contacts", "pipeline_orders", "users"),
    ReportKind.FORECAST: ("opportunities", "follow_ups"),
    ReportKind.QUOTATION: ("quotations", "opportunities", "companies"),
    ReportKind.ATTENDANCE: ("attendance", "users"),
}


# ---------------------------------------------------------------------------
# Pipeline analysis task graph
# ---------------------------------------------------------------------------


@dataclass
class PipelineAnalysis:
    stage_breakdown: list[StageMetric]
    bottlenecks: list[Bottleneck]
    top_performers: list[Performer]
    velocity: PipelineVelocity
    forecast: RevenueForecast
    calendar_forecast: CalendarForecast
    risk: RiskAssessment
    recommendations: list[str] = field(default_factory=list)
    deal_metrics: PipelineDealMetrics | None = None


async def analyze_pipeline(
    snapshot: Snapshot,
    rng: VarianceSource,
    velocity_metrics: VelocityMetricsFn | None = None,
) -> PipelineAnalysis:
    """Run every pipeline component over *snapshot*.

    Stage aggregation runs first; the calculators that need only the snapshot
    and the stage metrics then run concurrently; recommendation synthesis
    joins their results.  Deal metrics are computed only when a
    *velocity_metrics* collaborator is supplied.
    """
    now = snapshot.now
    opps = snapshot.opportunities
    stages = build_stage_breakdown(opps, now)

    tasks = [
        asyncio.to_thread(rank_performers, opps, snapshot.owner_names),
        asyncio.to_thread(calculate_pipeline_velocity, opps, stages),
        asyncio.to_thread(forecast_revenue, opps, now, rng),
        asyncio.to_thread(project_calendar_revenue, opps, snapshot.follow_ups, now),
        asyncio.to_thread(assess_risk, opps, snapshot.follow_ups, snapshot.contacts, now),
    ]
    if velocity_metrics is not None:
        tasks.append(asyncio.to_thread(
            build_pipeline_metrics, snapshot.pipeline_orders, now, velocity_metrics,
        ))
    performers, velocity, forecast, calendar, risk, *rest = await asyncio.gather(*tasks)
    deal_metrics = rest[0] if rest else None

    bottlenecks = diagnose_bottlenecks(stages)
    recommendations = synthesize_recommendations(
        stage_metrics=stages,
        bottlenecks=bottlenecks,
        forecast=forecast,
        risk=risk,
        velocity_flags=deal_metrics.velocity_flags if deal_metrics else (),
    )
    return PipelineAnalysis(
        stage_breakdown=stages,
        bottlenecks=bottlenecks,
        top_performers=performers,
        velocity=velocity,
        forecast=forecast,
        calendar_forecast=calendar,
        risk=risk,
        recommendations=recommendations,
        deal_metrics=deal_metrics,
    )


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------


def to_jsonable(value: Any) -> Any:
    """Convert dataclasses, enums and datetimes into JSON-native values."""
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(to_jsonable(k)): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# Facade
# ---------------------------------------------------------------------------


class ReportFacade:
    """Builds reports over a :class:`RecordSource`.

    *variance_source* is called once per report to obtain the random source
    for the monthly projection; *velocity_metrics* is the deal velocity
    collaborator; *clock* supplies "now".
    """

    def __init__(
        self,
        source: RecordSource,
        *,
        variance_source: Callable[[], VarianceSource] = default_variance_source,
        velocity_metrics: VelocityMetricsFn = calculate_velocity_metrics,
        clock: Callable[[], datetime] = _utcnow,
        timeout: float | None = None,
    ) -> None:
        self._source = source
        self._variance_source = variance_source
        self._velocity_metrics = velocity_metrics
        self._clock = clock
        self._timeout = timeout
        self._builders: dict[ReportKind, Callable[[Snapshot], Awaitable[tuple[str, dict]]]] = {
            ReportKind.SALES: self._sales,
            ReportKind.PIPELINE: self._pipeline,
            ReportKind.FORECAST: self._forecast,
            ReportKind.QUOTATION: self._quotation,
            ReportKind.ATTENDANCE: self._attendance,
        }

    async def generate_report(
        self,
        kind: str | ReportKind,
        period: str | Period = Period.MONTH,
        scope: ReportScope | None = None,
    ) -> dict:
        """Generate one report.

        Raises ``ValueError`` for an unknown kind or period, and
        :class:`ReportGenerationError` (chained to the cause) for anything
        that goes wrong while loading or computing.
        """
        kind = ReportKind.parse(kind)
        period = Period.parse(period)
        scope = scope or ReportScope()
        now = self._clock()
        started = time.monotonic()

        try:
            snapshot = await load_snapshot(
                self._source,
                period,
                scope,
                now=now,
                collections=_COLLECTIONS[kind],
                timeout=self._timeout,
            )
            summary, data = await self._builders[kind](snapshot)
        except Exception as exc:
            logger.exception("Failed to generate %s report (%s)", kind.value, period.value)
            raise ReportGenerationError(kind) from exc

        logger.info(
            "Generated %s report (%s, admin=%s) in %.0f ms",
            kind.value, period.value, scope.is_admin, (time.monotonic() - started) * 1000,
        )
        return {
            "kind": kind.value,
            "period": period.value,
            "title": _TITLES[kind],
            "generated_at": now.isoformat(),
            "summary": summary,
            "data": to_jsonable(data),
        }

    # -- per-kind builders -------------------------------------------------

    async def _sales(self, snapshot: Snapshot) -> tuple[str, dict]:
        now = snapshot.now
        analysis = await analyze_pipeline(snapshot, self._variance_source())
        sales = summarize_sales(snapshot.opportunities, snapshot.period, now, snapshot.owner_names)
        data = {
            "sales": sales,
            "analysis": analysis,
            "engagement": analyze_engagement(
                snapshot.activities,
                snapshot.follow_ups,
                snapshot.contacts,
                snapshot.opportunities,
                now,
            ),
            "immediate_actions": immediate_actions(snapshot.opportunities, now),
            "predictive_alerts": predictive_alerts(snapshot.opportunities, now),
            "strategic_insights": strategic_insights(snapshot.opportunities, snapshot.activities),
        }
        summary = (
            f"{sales.total_deals} deals closed for {sales.total_revenue:,.0f} in revenue "
            f"({sales.conversion_rate}% conversion) across {sales.total_opportunities} opportunities"
        )
        return summary, data

    async def _pipeline(self, snapshot: Snapshot) -> tuple[str, dict]:
        now = snapshot.now
        analysis = await analyze_pipeline(
            snapshot, self._variance_source(), velocity_metrics=self._velocity_metrics,
        )
        deals = analysis.deal_metrics
        data = {
            "analysis": analysis,
            "recommendations": pipeline_recommendations(
                deals.average_probability, deals.stage_distribution, deals.velocity_details,
            ),
            "immediate_actions": immediate_actions(snapshot.opportunities, now),
            "predictive_alerts": predictive_alerts(snapshot.opportunities, now),
        }
        summary = (
            f"{deals.total_deals} deals worth {deals.total_value:,.0f} "
            f"({deals.weighted_value:,.0f} weighted); "
            f"{len(analysis.bottlenecks)} bottleneck stages, risk level {analysis.risk.risk_level}"
        )
        return summary, data

    async def _forecast(self, snapshot: Snapshot) -> tuple[str, dict]:
        now = snapshot.now
        opps = snapshot.opportunities
        forecast, calendar = await asyncio.gather(
            asyncio.to_thread(forecast_revenue, opps, now, self._variance_source()),
            asyncio.to_thread(project_calendar_revenue, opps, snapshot.follow_ups, now),
        )
        data = {
            "forecast": forecast,
            "calendar": calendar,
            "risk_factors": forecast_risk_factors(opps, now),
            "recommendations": forecast_recommendations(forecast),
        }
        summary = (
            f"Weighted forecast {forecast.weighted_forecast:,.0f} "
            f"(range {forecast.pessimistic_forecast:,.0f} - {forecast.optimistic_forecast:,.0f}), "
            f"{calendar.confidence_level} confidence"
        )
        return summary, data

    async def _quotation(self, snapshot: Snapshot) -> tuple[str, dict]:
        report = build_quotation_report(
            snapshot.quotations, snapshot.opportunities, snapshot.companies, snapshot.now,
        )
        summary = (
            f"{report.total_quotations} quotations worth {report.total_value:,.0f}; "
            f"{report.pending_quotations} pending, {report.overdue_quotations} overdue"
        )
        return summary, {"quotations": report}

    async def _attendance(self, snapshot: Snapshot) -> tuple[str, dict]:
        total_employees = len(snapshot.users) if snapshot.scope.is_admin else 1
        report = summarize_attendance(
            snapshot.attendance,
            total_employees,
            snapshot.period.attendance_days,
            snapshot.now,
            snapshot.owner_names,
        )
        summary = (
            f"{report.present_today} of {report.total_employees} present today, "
            f"{report.late_submissions} late"
        )
        return summary, {"attendance": report}
