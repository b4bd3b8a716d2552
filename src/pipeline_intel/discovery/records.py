"""Immutable CRM record types consumed by the pipeline engine.

Repository adapters map loosely-typed storage rows into these value types
through each type's ``from_row`` constructor.  Coercion is forgiving: a
missing amount becomes 0, an unknown stage becomes None, an unparseable date
becomes None.  The engine never writes back to any of these records.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping

_DAY_SECONDS = 24 * 60 * 60


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _safe_float(val) -> float | None:
    """Convert a value to float, returning None on failure."""
    if val is None:
        return None
    if isinstance(val, bool):
        return float(val)
    try:
        result = float(str(val).replace(",", "").strip())
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def _coerce_str(val) -> str | None:
    """Return a stripped string, or None for empty / missing values."""
    if val is None:
        return None
    text = str(val).strip()
    return text or None


def _coerce_datetime(val) -> datetime | None:
    """Parse a timestamp into an aware UTC datetime.

    Naive datetimes are assumed to be UTC.  Strings may be ISO-8601
    (with or without a trailing ``Z``) or one of a few common date formats.
    """
    if val is None:
        return None
    if isinstance(val, datetime):
        dt = val
    elif isinstance(val, date):
        dt = datetime(val.year, val.month, val.day)
    else:
        text = str(val).strip()
        if not text:
            return None
        dt = None
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            for fmt in ("%Y/%m/%d", "%m/%d/%Y", "%Y-%m-%d %H:%M:%S"):
                try:
                    dt = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
        if dt is None:
            return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _round_half_up(val: float, digits: int = 0) -> float:
    """Round half away from zero for positive values (JS ``Math.round`` parity)."""
    factor = 10 ** digits
    return math.floor(val * factor + 0.5) / factor


def _safe_ratio(numerator: float, denominator: float) -> float:
    """Divide, defining division by zero as 0."""
    if not denominator:
        return 0.0
    return numerator / denominator


def _pct(numerator: float, denominator: float) -> int:
    """Whole-number percentage, 0 when the denominator is 0."""
    return int(_round_half_up(_safe_ratio(numerator, denominator) * 100))


def _days_since(ts: datetime | None, now: datetime) -> float | None:
    """Fractional days elapsed from *ts* to *now*."""
    if ts is None:
        return None
    return (now - ts).total_seconds() / _DAY_SECONDS


def _whole_days_since(ts: datetime | None, now: datetime) -> int | None:
    """Whole days elapsed from *ts* to *now*, floored."""
    elapsed = _days_since(ts, now)
    if elapsed is None:
        return None
    return math.floor(elapsed)


def _normalise_token(val) -> str | None:
    """Upper-case a categorical value, folding spaces and hyphens to underscores."""
    text = _coerce_str(val)
    if text is None:
        return None
    return text.upper().replace("-", "_").replace(" ", "_")


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


class Stage(str, Enum):
    """Pipeline stage of an opportunity or deal."""

    PROSPECTING = "PROSPECTING"
    QUALIFICATION = "QUALIFICATION"
    PROPOSAL = "PROPOSAL"
    NEGOTIATION = "NEGOTIATION"
    FINAL_APPROVAL = "FINAL_APPROVAL"
    CLOSED_WON = "CLOSED_WON"
    CLOSED_LOST = "CLOSED_LOST"
    ON_HOLD = "ON_HOLD"
    CANCELLED = "CANCELLED"
    LOST_TO_COMPETITOR = "LOST_TO_COMPETITOR"


CANONICAL_STAGES: tuple[Stage, ...] = (
    Stage.PROSPECTING,
    Stage.QUALIFICATION,
    Stage.PROPOSAL,
    Stage.NEGOTIATION,
    Stage.CLOSED_WON,
    Stage.CLOSED_LOST,
)

CLOSED_STAGES = frozenset({Stage.CLOSED_WON, Stage.CLOSED_LOST})

_STAGE_LOOKUP = {s.value: s for s in Stage}


def parse_stage(val) -> Stage | None:
    """Map a raw stage value onto :class:`Stage`, or None when unrecognised."""
    if isinstance(val, Stage):
        return val
    token = _normalise_token(val)
    if token is None:
        return None
    return _STAGE_LOOKUP.get(token)


# ---------------------------------------------------------------------------
# Record types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Opportunity:
    """A sales opportunity as of snapshot time."""

    id: str
    name: str = ""
    stage: Stage | None = None
    deal_size: float = 0.0
    probability: float = 0.0  # 0-100
    owner_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    expected_close_date: datetime | None = None
    last_activity_date: datetime | None = None
    company_id: str | None = None
    primary_contact_id: str | None = None
    stage_velocity: float | None = None  # explicit days spent in current stage
    total_time_in_pipeline: float | None = None  # days

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Opportunity:
        probability = _safe_float(row.get("probability")) or 0.0
        return cls(
            id=str(row.get("id")),
            name=_coerce_str(row.get("name")) or "",
            stage=parse_stage(row.get("stage")),
            deal_size=max(_safe_float(row.get("deal_size")) or 0.0, 0.0),
            probability=min(max(probability, 0.0), 100.0),
            owner_id=_coerce_str(row.get("owner_id")),
            created_at=_coerce_datetime(row.get("created_at")),
            updated_at=_coerce_datetime(row.get("updated_at")),
            expected_close_date=_coerce_datetime(row.get("expected_close_date")),
            last_activity_date=_coerce_datetime(row.get("last_activity_date")),
            company_id=_coerce_str(row.get("company_id")),
            primary_contact_id=_coerce_str(row.get("primary_contact_id")),
            stage_velocity=_safe_float(row.get("stage_velocity")),
            total_time_in_pipeline=_safe_float(row.get("total_time_in_pipeline")),
        )

    @property
    def timestamp(self) -> datetime | None:
        return self.created_at

    @property
    def owned_by(self) -> str | None:
        return self.owner_id

    @property
    def is_closed(self) -> bool:
        return self.stage in CLOSED_STAGES

    def pipeline_age_days(self, now: datetime) -> float:
        """Days in the pipeline: the tracked total when present, else age since creation."""
        if self.total_time_in_pipeline:
            return self.total_time_in_pipeline
        return _days_since(self.created_at, now) or 0.0

    def is_past_close_date(self, now: datetime) -> bool:
        return self.expected_close_date is not None and self.expected_close_date < now


@dataclass(frozen=True)
class FollowUp:
    """A scheduled follow-up task."""

    id: str
    opportunity_id: str | None = None
    status: str = "PENDING"
    follow_up_date: datetime | None = None
    priority_score: int = 1  # 1-5
    assigned_to: str | None = None
    created_at: datetime | None = None
    action_description: str = ""

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> FollowUp:
        priority = _safe_float(row.get("priority_score"))
        return cls(
            id=str(row.get("id")),
            opportunity_id=_coerce_str(row.get("opportunity_id")),
            status=_normalise_token(row.get("status")) or "PENDING",
            follow_up_date=_coerce_datetime(row.get("follow_up_date")),
            priority_score=int(min(max(priority, 1), 5)) if priority else 1,
            assigned_to=_coerce_str(row.get("assigned_to")),
            created_at=_coerce_datetime(row.get("created_at")),
            action_description=_coerce_str(row.get("action_description")) or "",
        )

    @property
    def timestamp(self) -> datetime | None:
        return self.created_at or self.follow_up_date

    @property
    def owned_by(self) -> str | None:
        return self.assigned_to

    def is_overdue(self, now: datetime) -> bool:
        return (
            self.status != "COMPLETED"
            and self.follow_up_date is not None
            and self.follow_up_date < now
        )


@dataclass(frozen=True)
class Activity:
    """A logged customer interaction."""

    id: str
    contact_id: str | None = None
    channel: str = "UNKNOWN"
    activity_type: str = "UNKNOWN"
    effectiveness: str | None = None
    sentiment: str = "NEUTRAL"
    occurred_at: datetime | None = None
    response_received: bool = False
    user_id: str | None = None
    company_id: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Activity:
        return cls(
            id=str(row.get("id")),
            contact_id=_coerce_str(row.get("contact_id")),
            channel=_normalise_token(row.get("channel")) or "UNKNOWN",
            activity_type=_normalise_token(row.get("activity_type")) or "UNKNOWN",
            effectiveness=_normalise_token(row.get("effectiveness")),
            sentiment=_normalise_token(row.get("sentiment")) or "NEUTRAL",
            occurred_at=_coerce_datetime(row.get("occurred_at")),
            response_received=bool(row.get("response_received")),
            user_id=_coerce_str(row.get("user_id")),
            company_id=_coerce_str(row.get("company_id")),
        )

    @property
    def timestamp(self) -> datetime | None:
        return self.occurred_at

    @property
    def owned_by(self) -> str | None:
        return self.user_id

    @property
    def is_effective(self) -> bool:
        return self.effectiveness in ("HIGH", "EXCELLENT")


@dataclass(frozen=True)
class Contact:
    """A person at a client company."""

    id: str
    company_id: str | None = None
    name: str = ""
    role: str | None = None
    influence_level: str | None = None
    engagement_level: str | None = None
    contact_score: float = 0.0  # 0-100
    last_interaction: datetime | None = None
    owner_id: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Contact:
        score = _safe_float(row.get("contact_score")) or 0.0
        return cls(
            id=str(row.get("id")),
            company_id=_coerce_str(row.get("company_id")),
            name=_coerce_str(row.get("name")) or "",
            role=_coerce_str(row.get("role")),
            influence_level=_normalise_token(row.get("influence_level")),
            engagement_level=_normalise_token(row.get("engagement_level")),
            contact_score=min(max(score, 0.0), 100.0),
            last_interaction=_coerce_datetime(row.get("last_interaction")),
            owner_id=_coerce_str(row.get("owner_id")),
            created_at=_coerce_datetime(row.get("created_at")),
        )

    @property
    def timestamp(self) -> datetime | None:
        return self.created_at or self.last_interaction

    @property
    def owned_by(self) -> str | None:
        return self.owner_id

    def days_inactive(self, now: datetime) -> float | None:
        return _days_since(self.last_interaction, now)


@dataclass(frozen=True)
class Company:
    """A client company."""

    id: str
    name: str = ""
    company_type: str | None = None
    region: str | None = None
    owner_id: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Company:
        return cls(
            id=str(row.get("id")),
            name=_coerce_str(row.get("name")) or "",
            company_type=_coerce_str(row.get("company_type")),
            region=_coerce_str(row.get("region")),
            owner_id=_coerce_str(row.get("owner_id")),
            created_at=_coerce_datetime(row.get("created_at")),
        )

    @property
    def timestamp(self) -> datetime | None:
        return self.created_at

    @property
    def owned_by(self) -> str | None:
        return self.owner_id


@dataclass(frozen=True)
class Quotation:
    """A quotation sent (or pending) to a client."""

    id: str
    client_name: str = ""
    status: str = "PENDING"
    order_value: float = 0.0
    created_by_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deadline: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Quotation:
        return cls(
            id=str(row.get("id")),
            client_name=_coerce_str(row.get("client_name")) or "",
            status=_normalise_token(row.get("status")) or "PENDING",
            order_value=max(_safe_float(row.get("order_value")) or 0.0, 0.0),
            created_by_id=_coerce_str(row.get("created_by_id")),
            created_at=_coerce_datetime(row.get("created_at")),
            updated_at=_coerce_datetime(row.get("updated_at")),
            deadline=_coerce_datetime(row.get("deadline")),
        )

    @property
    def timestamp(self) -> datetime | None:
        return self.created_at

    @property
    def owned_by(self) -> str | None:
        return self.created_by_id

    def days_pending(self, now: datetime) -> int:
        return _whole_days_since(self.created_at, now) or 0


@dataclass(frozen=True)
class PipelineOrder:
    """An order moving through fulfilment, the source of deal-level pipeline views."""

    id: str
    name: str = ""
    status: str = "ORDER_RECEIVED"
    order_value: float = 0.0
    progress_percentage: float = 0.0
    owner_id: str | None = None
    company_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    order_date: datetime | None = None
    expected_delivery_date: datetime | None = None
    actual_delivery_date: datetime | None = None
    actual_install_date: datetime | None = None
    payment_date: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> PipelineOrder:
        return cls(
            id=str(row.get("id")),
            name=_coerce_str(row.get("name")) or "",
            status=_normalise_token(row.get("status")) or "ORDER_RECEIVED",
            order_value=max(_safe_float(row.get("order_value")) or 0.0, 0.0),
            progress_percentage=_safe_float(row.get("progress_percentage")) or 0.0,
            owner_id=_coerce_str(row.get("owner_id")),
            company_id=_coerce_str(row.get("company_id")),
            created_at=_coerce_datetime(row.get("created_at")),
            updated_at=_coerce_datetime(row.get("updated_at")),
            order_date=_coerce_datetime(row.get("order_date")),
            expected_delivery_date=_coerce_datetime(row.get("expected_delivery_date")),
            actual_delivery_date=_coerce_datetime(row.get("actual_delivery_date")),
            actual_install_date=_coerce_datetime(row.get("actual_install_date")),
            payment_date=_coerce_datetime(row.get("payment_date")),
        )

    @property
    def timestamp(self) -> datetime | None:
        return self.created_at

    @property
    def owned_by(self) -> str | None:
        return self.owner_id


@dataclass(frozen=True)
class AttendanceRecord:
    """A daily attendance submission."""

    id: str
    user_id: str | None = None
    date: datetime | None = None
    status: str = "PRESENT"

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> AttendanceRecord:
        return cls(
            id=str(row.get("id")),
            user_id=_coerce_str(row.get("user_id")),
            date=_coerce_datetime(row.get("date")),
            status=_normalise_token(row.get("status")) or "PRESENT",
        )

    @property
    def timestamp(self) -> datetime | None:
        return self.date

    @property
    def owned_by(self) -> str | None:
        return self.user_id


@dataclass(frozen=True)
class User:
    """A CRM user; only used to resolve display names."""

    id: str
    name: str | None = None
    email: str | None = None
    role: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> User:
        return cls(
            id=str(row.get("id")),
            name=_coerce_str(row.get("name")),
            email=_coerce_str(row.get("email")),
            role=_coerce_str(row.get("role")),
        )

    @property
    def display_name(self) -> str:
        return self.name or self.email or f"User {self.id}"


# ---------------------------------------------------------------------------
# Deal-level view
# ---------------------------------------------------------------------------

_ORDER_STATUS_STAGES: dict[str, Stage] = {
    "ORDER_RECEIVED": Stage.PROPOSAL,
    "ORDER_PROCESSING": Stage.PROPOSAL,
    "CONTRACT_SIGNING": Stage.PROPOSAL,
    "PRODUCTION_STARTED": Stage.NEGOTIATION,
    "QUALITY_CHECK": Stage.NEGOTIATION,
    "PACKING_SHIPPING": Stage.FINAL_APPROVAL,
    "SHIPPED": Stage.FINAL_APPROVAL,
    "DELIVERED": Stage.CLOSED_WON,
    "INSTALLATION_STARTED": Stage.CLOSED_WON,
    "INSTALLATION_COMPLETE": Stage.CLOSED_WON,
    "PAYMENT_RECEIVED": Stage.CLOSED_WON,
    "PROJECT_COMPLETE": Stage.CLOSED_WON,
    "ON_HOLD": Stage.ON_HOLD,
    "DELAYED": Stage.ON_HOLD,
    "CANCELLED": Stage.CANCELLED,
    "DISPUTED": Stage.CANCELLED,
    "LOST_TO_COMPETITOR": Stage.LOST_TO_COMPETITOR,
}

MIN_DEAL_PROBABILITY = 0.1
MAX_DEAL_PROBABILITY = 1.0


def stage_for_order_status(status: str) -> Stage:
    """Map an order lifecycle status onto a deal stage (PROPOSAL when unknown)."""
    return _ORDER_STATUS_STAGES.get(_normalise_token(status) or "", Stage.PROPOSAL)


@dataclass(frozen=True)
class PipelineDeal:
    """A pipeline order mapped for velocity and forecast math."""

    id: str
    name: str
    value: float
    stage: Stage
    probability: float  # 0.1-1.0
    weighted_value: float
    owner_id: str | None
    order_date: datetime | None
    expected_close_date: datetime | None
    closed_date: datetime | None
    pipeline_age_days: int
    sales_cycle_days: int | None


def deal_from_order(order: PipelineOrder, now: datetime) -> PipelineDeal:
    """Build the deal-level view of a pipeline order."""
    stage = stage_for_order_status(order.status)
    order_date = order.order_date or order.created_at
    age = _days_since(order_date, now)
    pipeline_age_days = max(1, int(_round_half_up(age))) if age is not None else 1

    closed_date = None
    if stage is Stage.CLOSED_WON:
        closed_date = (
            order.actual_install_date
            or order.actual_delivery_date
            or order.payment_date
            or order.updated_at
        )

    sales_cycle_days = None
    if closed_date is not None and order_date is not None:
        cycle = (closed_date - order_date) / timedelta(days=1)
        sales_cycle_days = max(1, int(_round_half_up(cycle)))

    raw_probability = order.progress_percentage / 100
    probability = min(max(raw_probability, MIN_DEAL_PROBABILITY), MAX_DEAL_PROBABILITY)
    return PipelineDeal(
        id=order.id,
        name=order.name,
        value=order.order_value,
        stage=stage,
        probability=probability,
        weighted_value=order.order_value * probability,
        owner_id=order.owner_id,
        order_date=order_date,
        expected_close_date=order.expected_delivery_date,
        closed_date=closed_date,
        pipeline_age_days=pipeline_age_days,
        sales_cycle_days=sales_cycle_days,
    )
