"""Tests for deal-level pipeline metrics."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from pipeline_intel.discovery.pipeline_metrics import build_pipeline_metrics
from pipeline_intel.discovery.records import PipelineOrder, Stage
from pipeline_intel.discovery.velocity import CRITICAL_VELOCITY_MESSAGE, VelocityMetrics

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def _order(i, status, value, progress=50.0):
    return PipelineOrder(
        id=str(i),
        name=f"Order {i}",
        status=status,
        order_value=value,
        progress_percentage=progress,
        order_date=NOW - timedelta(days=20),
    )


def _velocity(deals_per_month, velocity_per_month, average_deal_size):
    return VelocityMetrics(
        total_deals=0,
        qualified_deals=0,
        average_deal_size=average_deal_size,
        win_rate=0.5,
        sales_cycle_days=30,
        velocity_per_day=velocity_per_month / 30,
        velocity_per_month=velocity_per_month,
        deals_per_month=deals_per_month,
    )


class TestBuildPipelineMetrics:
    def test_totals_and_distribution(self):
        orders = [
            _order(1, "ORDER_RECEIVED", 1000, progress=20),
            _order(2, "PRODUCTION_STARTED", 3000, progress=60),
            _order(3, "DELIVERED", 2000, progress=100),
            _order(4, "ON_HOLD", 500, progress=0),
        ]
        metrics = build_pipeline_metrics(orders, NOW)
        assert metrics.total_deals == 4
        assert metrics.total_value == 6500
        # 1000 x 0.2 + 3000 x 0.6 + 2000 x 1.0 + 500 x 0.1
        assert metrics.weighted_value == pytest.approx(4050)
        assert metrics.average_probability == pytest.approx((0.2 + 0.6 + 1.0 + 0.1) / 4)
        assert metrics.conversion_rate == 0.25
        assert metrics.stage_distribution == {
            Stage.PROPOSAL: 1, Stage.NEGOTIATION: 1, Stage.CLOSED_WON: 1, Stage.ON_HOLD: 1,
        }
        assert metrics.stage_values[Stage.NEGOTIATION] == 3000
        assert len(metrics.deals) == 4

    def test_uses_velocity_collaborator(self):
        collaborator = MagicMock(return_value=_velocity(0.5, 100, 1000))
        orders = [_order(1, "ORDER_RECEIVED", 1000)]
        metrics = build_pipeline_metrics(orders, NOW, velocity_metrics=collaborator)
        collaborator.assert_called_once()
        (deals,), _ = collaborator.call_args
        assert [d.id for d in deals] == ["1"]
        assert metrics.velocity == 100
        assert metrics.velocity_flags[0] == CRITICAL_VELOCITY_MESSAGE

    def test_deal_limit(self):
        orders = [_order(i, "ORDER_RECEIVED", 10) for i in range(5)]
        metrics = build_pipeline_metrics(orders, NOW, deal_limit=2)
        assert metrics.total_deals == 5
        assert len(metrics.deals) == 2

    def test_empty(self):
        metrics = build_pipeline_metrics([], NOW)
        assert metrics.total_deals == 0
        assert metrics.average_probability == 0
        assert metrics.conversion_rate == 0
        assert metrics.stage_distribution == {}
