"""Tests for the sales summary."""

from datetime import datetime, timezone

import pytest

from pipeline_intel.discovery.records import Opportunity, Stage
from pipeline_intel.discovery.sales_summary import build_trends, empty_trend_buckets, summarize_sales
from pipeline_intel.ingestion.snapshot_loader import Period

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def _opp(i, stage, deal_size, day, owner=None, month=6):
    return Opportunity(
        id=str(i),
        stage=stage,
        deal_size=deal_size,
        owner_id=owner,
        created_at=datetime(2024, month, day, 9, 0, tzinfo=timezone.utc),
    )


def _sample():
    return [
        _opp(1, Stage.CLOSED_WON, 1000, 3, owner="u1"),
        _opp(2, Stage.CLOSED_WON, 2000, 10, owner="u2"),
        _opp(3, Stage.CLOSED_WON, 500, 14, owner="u1"),
        _opp(4, Stage.PROSPECTING, 400, 12, owner="u2"),
        _opp(5, Stage.CLOSED_LOST, 100, 1, owner="u3"),
    ]


class TestSummarizeSales:
    def test_totals(self):
        summary = summarize_sales(_sample(), Period.MONTH, NOW, {"u1": "Asha"})
        assert summary.total_revenue == 3500
        assert summary.total_deals == 3
        assert summary.total_opportunities == 5
        assert summary.conversion_rate == 60
        assert summary.average_deal_size == pytest.approx(3500 / 3)

    def test_stage_table_uses_labels(self):
        summary = summarize_sales(_sample(), Period.MONTH, NOW)
        stages = {s.stage: (s.count, s.value) for s in summary.pipeline_stages}
        assert list(stages) == [
            "Prospecting", "Qualification", "Proposal", "Negotiation", "Closed Won", "Closed Lost",
        ]
        assert stages["Closed Won"] == (3, 3500)
        assert stages["Qualification"] == (0, 0)

    def test_top_sellers(self):
        summary = summarize_sales(_sample(), Period.MONTH, NOW, {"u1": "Asha"})
        assert [(s.name, s.revenue) for s in summary.top_sellers] == [
            ("User u2", 2000),
            ("Asha", 1500),
            ("User u3", 0),
        ]

    def test_empty(self):
        summary = summarize_sales([], Period.WEEK, NOW)
        assert summary.total_revenue == 0
        assert summary.conversion_rate == 0
        assert summary.average_deal_size == 0
        assert len(summary.trends) == 7
        assert summary.top_sellers == []


class TestTrends:
    def test_month_buckets_by_week_of_month(self):
        trends = build_trends(_sample(), Period.MONTH, NOW)
        assert [(t.label, t.revenue, t.deals) for t in trends] == [
            ("W1", 1000, 1),
            ("W2", 2500, 2),
            ("W3", 0, 0),
            ("W4", 0, 0),
        ]

    def test_late_month_days_fold_into_w4(self):
        trends = build_trends([_opp(1, Stage.CLOSED_WON, 10, 30, month=5)], Period.MONTH, NOW)
        assert trends[-1].label == "W4"
        assert trends[-1].deals == 1

    def test_year_buckets(self):
        labels = [b.label for b in empty_trend_buckets(Period.YEAR, NOW)]
        assert len(labels) == 12
        assert labels[0] == "Jul 2023"
        assert labels[-1] == "Jun 2024"

    def test_quarter_buckets(self):
        labels = [b.label for b in empty_trend_buckets(Period.QUARTER, NOW)]
        assert labels == ["Apr 2024", "May 2024", "Jun 2024"]

    def test_week_buckets(self):
        labels = [b.label for b in empty_trend_buckets(Period.WEEK, NOW)]
        assert labels == ["Jun 9", "Jun 10", "Jun 11", "Jun 12", "Jun 13", "Jun 14", "Jun 15"]

    def test_out_of_range_deal_gets_own_bucket(self):
        trends = build_trends([_opp(1, Stage.CLOSED_WON, 10, 5, month=1)], Period.QUARTER, NOW)
        assert [t.label for t in trends] == ["Apr 2024", "May 2024", "Jun 2024", "Jan 2024"]
