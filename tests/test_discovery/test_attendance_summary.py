"""Tests for the attendance summary."""

from datetime import datetime, timezone

from pipeline_intel.discovery.attendance_summary import summarize_attendance
from pipeline_intel.discovery.records import AttendanceRecord

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def _record(i, user, day, status="PRESENT"):
    return AttendanceRecord(
        id=str(i), user_id=user, date=datetime(2024, 6, day, 9, 0, tzinfo=timezone.utc), status=status,
    )


class TestSummarizeAttendance:
    def test_today_and_series(self):
        records = [
            _record(1, "u1", 15),
            _record(2, "u2", 15, status="AUTO_FLAGGED"),
            _record(3, "u1", 14),
        ]
        summary = summarize_attendance(records, 3, 7, NOW, {"u1": "Asha"})
        assert summary.present_today == 2
        assert summary.absent_today == 1
        assert summary.late_submissions == 1

        assert len(summary.daily_attendance) == 7
        assert summary.daily_attendance[0].date == "2024-06-09"
        assert summary.daily_attendance[-1].date == "2024-06-15"
        assert (summary.daily_attendance[-1].present, summary.daily_attendance[-1].absent) == (2, 1)
        assert (summary.daily_attendance[-2].present, summary.daily_attendance[-2].absent) == (1, 2)

        assert [(p.name, p.attendance_rate) for p in summary.top_performers] == [
            ("Asha", 28.6),
            ("User u2", 14.3),
        ]

    def test_absent_never_negative(self):
        records = [_record(i, f"u{i}", 15) for i in range(3)]
        summary = summarize_attendance(records, 1, 7, NOW)
        assert summary.absent_today == 0
        assert summary.daily_attendance[-1].absent == 0

    def test_empty(self):
        summary = summarize_attendance([], 4, 30, NOW)
        assert summary.present_today == 0
        assert summary.absent_today == 4
        assert len(summary.daily_attendance) == 30
        assert summary.top_performers == []
