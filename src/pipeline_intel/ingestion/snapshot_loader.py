"""Record snapshot loader: fetch, period-filter and scope-filter CRM collections.

The loader is the engine's only suspension point.  All requested collections
are fetched concurrently from a :class:`RecordSource`; once they are in memory
every record outside the report period or outside the caller's scope is
dropped, and the result is frozen into a :class:`Snapshot`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Protocol, Sequence, TypeVar

from config.settings import settings
from pipeline_intel.discovery.records import (
    Activity,
    AttendanceRecord,
    Company,
    Contact,
    FollowUp,
    Opportunity,
    PipelineOrder,
    Quotation,
    User,
    _utcnow,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Period and scope
# ---------------------------------------------------------------------------


class Period(str, Enum):
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"

    @classmethod
    def parse(cls, value: str | Period) -> Period:
        if isinstance(value, Period):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unsupported report period: {value!r}") from None

    @property
    def attendance_days(self) -> int:
        """Length of the daily attendance window for this period."""
        return _ATTENDANCE_DAYS[self]


_ATTENDANCE_DAYS = {
    Period.WEEK: 7,
    Period.MONTH: 30,
    Period.QUARTER: 90,
    Period.YEAR: 365,
}


def period_start(period: Period, now: datetime) -> datetime:
    """Start of the reporting window ending at *now*."""
    if period is Period.WEEK:
        return now - timedelta(days=7)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period is Period.MONTH:
        return midnight.replace(day=1)
    if period is Period.QUARTER:
        first_month = (now.month - 1) // 3 * 3 + 1
        return midnight.replace(month=first_month, day=1)
    return midnight.replace(month=1, day=1)


def attendance_window_start(period: Period, now: datetime) -> datetime:
    """Midnight of the first day in the trailing attendance window (today included)."""
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight - timedelta(days=period.attendance_days - 1)


@dataclass(frozen=True)
class ReportScope:
    """Who the report is for.  Non-admins only see records they own."""
    is_admin: bool = True
    user_id: str | None = None

    def allows(self, owner_id: str | None) -> bool:
        if self.is_admin:
            return True
        return self.user_id is not None and owner_id == self.user_id


# ---------------------------------------------------------------------------
# Source and snapshot
# ---------------------------------------------------------------------------


class RecordSource(Protocol):
    """Read-only repositories the loader pulls from."""

    async def list_opportunities(self) -> list[Opportunity]: ...

    async def list_follow_ups(self) -> list[FollowUp]: ...

    async def list_activities(self) -> list[Activity]: ...

    async def list_contacts(self) -> list[Contact]: ...

    async def list_companies(self) -> list[Company]: ...

    async def list_quotations(self) -> list[Quotation]: ...

    async def list_pipeline_orders(self) -> list[PipelineOrder]: ...

    async def list_attendance(self) -> list[AttendanceRecord]: ...

    async def list_users(self) -> list[User]: ...


# collection name -> RecordSource method
COLLECTIONS: dict[str, str] = {
    "opportunities": "list_opportunities",
    "follow_ups": "list_follow_ups",
    "activities": "list_activities",
    "contacts": "list_contacts",
    "companies": "list_companies",
    "quotations": "list_quotations",
    "pipeline_orders": "list_pipeline_orders",
    "attendance": "list_attendance",
    "users": "list_users",
}

# Reference data used to resolve names: never period- or scope-filtered.
_UNFILTERED = frozenset({"users", "companies"})


@dataclass(frozen=True)
class Snapshot:
    """Immutable, filtered input for one report run."""
    now: datetime
    period: Period
    scope: ReportScope
    opportunities: tuple[Opportunity, ...] = ()
    follow_ups: tuple[FollowUp, ...] = ()
    activities: tuple[Activity, ...] = ()
    contacts: tuple[Contact, ...] = ()
    companies: tuple[Company, ...] = ()
    quotations: tuple[Quotation, ...] = ()
    pipeline_orders: tuple[PipelineOrder, ...] = ()
    attendance: tuple[AttendanceRecord, ...] = ()
    users: tuple[User, ...] = ()

    @property
    def owner_names(self) -> dict[str, str]:
        return {u.id: u.display_name for u in self.users}


def filter_records(
    records: Iterable[T],
    start: datetime,
    end: datetime,
    scope: ReportScope,
) -> tuple[T, ...]:
    """Keep records timestamped within ``[start, end]`` and visible to *scope*.

    Records without a usable timestamp are dropped.
    """
    kept = []
    for record in records:
        ts = record.timestamp
        if ts is None or ts < start or ts > end:
            continue
        if not scope.allows(record.owned_by):
            continue
        kept.append(record)
    return tuple(kept)


async def _fetch_all(source: RecordSource, names: Sequence[str]) -> dict[str, list]:
    results = await asyncio.gather(*(getattr(source, COLLECTIONS[n])() for n in names))
    return dict(zip(names, results))


async def load_snapshot(
    source: RecordSource,
    period: Period,
    scope: ReportScope,
    *,
    now: datetime | None = None,
    collections: Sequence[str] | None = None,
    timeout: float | None = None,
) -> Snapshot:
    """Fetch *collections* concurrently and build a filtered :class:`Snapshot`.

    Any repository failure propagates; so does ``asyncio.TimeoutError`` when
    the fetch outlives *timeout* seconds (``settings.snapshot_timeout_seconds``
    by default, 0 for no bound).
    """
    now = now or _utcnow()
    names = list(collections) if collections is not None else list(COLLECTIONS)
    unknown = [n for n in names if n not in COLLECTIONS]
    if unknown:
        raise ValueError(f"Unknown collections: {', '.join(unknown)}")
    if timeout is None:
        timeout = settings.snapshot_timeout_seconds

    started = time.monotonic()
    fetch = _fetch_all(source, names)
    raw = await (asyncio.wait_for(fetch, timeout) if timeout and timeout > 0 else fetch)

    start = period_start(period, now)
    filtered: dict[str, tuple] = {}
    for name, records in raw.items():
        if name in _UNFILTERED:
            filtered[name] = tuple(records)
        elif name == "attendance":
            filtered[name] = filter_records(records, attendance_window_start(period, now), now, scope)
        else:
            filtered[name] = filter_records(records, start, now, scope)

    logger.info(
        "Loaded snapshot (%s) in %.0f ms: %s",
        period.value,
        (time.monotonic() - started) * 1000,
        ", ".join(f"{n}={len(filtered[n])}/{len(raw[n])}" for n in names),
    )
    return Snapshot(now=now, period=period, scope=scope, **filtered)
