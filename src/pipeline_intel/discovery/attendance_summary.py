"""Attendance summary for the ATTENDANCE report kind."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Mapping, Sequence

from pipeline_intel.discovery.records import AttendanceRecord, _round_half_up

LATE_STATUS = "AUTO_FLAGGED"
TOP_ATTENDANCE_LIMIT = 5


@dataclass
class DailyAttendance:
    date: str  # YYYY-MM-DD
    present: int
    absent: int


@dataclass
class AttendanceRate:
    user_id: str
    name: str
    attendance_rate: float  # percent, 1 decimal


@dataclass
class AttendanceSummary:
    total_employees: int
    present_today: int
    absent_today: int
    late_submissions: int
    daily_attendance: list[DailyAttendance] = field(default_factory=list)
    top_performers: list[AttendanceRate] = field(default_factory=list)


def summarize_attendance(
    records: Sequence[AttendanceRecord],
    total_employees: int,
    window_days: int,
    now: datetime,
    user_names: Mapping[str, str] | None = None,
) -> AttendanceSummary:
    """Today's presence, a daily series over *window_days* and the best attendance rates.

    *records* are expected to be already restricted to the window.
    """
    user_names = user_names or {}
    today = now.date()
    today_records = [r for r in records if r.date is not None and r.date.date() == today]
    present_today = len(today_records)

    per_day = Counter(r.date.date().isoformat() for r in records if r.date is not None)
    daily = []
    for offset in range(window_days - 1, -1, -1):
        key = (today - timedelta(days=offset)).isoformat()
        present = per_day.get(key, 0)
        daily.append(DailyAttendance(date=key, present=present, absent=max(0, total_employees - present)))

    window = max(window_days, 1)
    per_user = Counter(r.user_id for r in records if r.user_id is not None)
    ranked = sorted(per_user.items(), key=lambda item: item[1], reverse=True)[:TOP_ATTENDANCE_LIMIT]

    return AttendanceSummary(
        total_employees=total_employees,
        present_today=present_today,
        absent_today=max(0, total_employees - present_today),
        late_submissions=sum(1 for r in today_records if r.status == LATE_STATUS),
        daily_attendance=daily,
        top_performers=[
            AttendanceRate(
                user_id=user_id,
                name=user_names.get(user_id, f"User {user_id}"),
                attendance_rate=_round_half_up(count / window * 100, 1),
            )
            for user_id, count in ranked
        ],
    )
