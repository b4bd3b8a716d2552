"""Tests for CRM record coercion and the deal-level view."""

from datetime import date, datetime, timedelta, timezone

from pipeline_intel.discovery.records import (
    FollowUp,
    Opportunity,
    PipelineOrder,
    Stage,
    User,
    _coerce_datetime,
    _pct,
    _round_half_up,
    _safe_float,
    _safe_ratio,
    deal_from_order,
    parse_stage,
    stage_for_order_status,
)

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


class TestHelpers:
    def test_safe_float_strips_thousands_separator(self):
        assert _safe_float("1,500.50") == 1500.5

    def test_safe_float_rejects_garbage(self):
        assert _safe_float("n/a") is None
        assert _safe_float(None) is None
        assert _safe_float(float("nan")) is None

    def test_round_half_up(self):
        assert _round_half_up(2.5) == 3
        assert _round_half_up(2.4) == 2
        assert _round_half_up(0.125, 2) == 0.13

    def test_pct_rounds_half_up(self):
        assert _pct(1, 3) == 33
        assert _pct(2, 3) == 67
        assert _pct(1, 8) == 13  # 12.5

    def test_zero_denominator_is_zero(self):
        assert _safe_ratio(5, 0) == 0.0
        assert _pct(5, 0) == 0

    def test_naive_datetime_assumed_utc(self):
        dt = _coerce_datetime(datetime(2024, 1, 1, 9, 30))
        assert dt.tzinfo is not None
        assert dt.utcoffset() == timedelta(0)

    def test_iso_string_with_z(self):
        dt = _coerce_datetime("2024-03-01T10:00:00Z")
        assert dt == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)

    def test_plain_date(self):
        assert _coerce_datetime(date(2024, 2, 29)) == datetime(2024, 2, 29, tzinfo=timezone.utc)

    def test_unparseable_date_is_none(self):
        assert _coerce_datetime("not a date") is None
        assert _coerce_datetime("") is None


class TestStageParsing:
    def test_exact_value(self):
        assert parse_stage("PROPOSAL") is Stage.PROPOSAL

    def test_spaces_and_case_are_normalised(self):
        assert parse_stage("closed won") is Stage.CLOSED_WON
        assert parse_stage("Closed-Lost") is Stage.CLOSED_LOST

    def test_unknown_and_missing(self):
        assert parse_stage("SOMETHING_ELSE") is None
        assert parse_stage(None) is None
        assert parse_stage("   ") is None


class TestOpportunityFromRow:
    def test_coerces_dirty_row(self):
        opp = Opportunity.from_row({
            "id": 7,
            "name": "  Boiler retrofit ",
            "stage": "negotiation",
            "deal_size": "125,000",
            "probability": 140,
            "owner_id": 3,
            "created_at": "2024-06-01T00:00:00Z",
        })
        assert opp.id == "7"
        assert opp.name == "Boiler retrofit"
        assert opp.stage is Stage.NEGOTIATION
        assert opp.deal_size == 125000.0
        assert opp.probability == 100.0
        assert opp.owner_id == "3"
        assert opp.created_at == datetime(2024, 6, 1, tzinfo=timezone.utc)

    def test_missing_amounts_default_to_zero(self):
        opp = Opportunity.from_row({"id": 1, "deal_size": None, "probability": "abc"})
        assert opp.deal_size == 0.0
        assert opp.probability == 0.0
        assert opp.stage is None

    def test_negative_deal_size_clamped(self):
        assert Opportunity.from_row({"id": 1, "deal_size": -50}).deal_size == 0.0

    def test_pipeline_age_prefers_tracked_total(self):
        opp = Opportunity(id="1", total_time_in_pipeline=12, created_at=NOW - timedelta(days=40))
        assert opp.pipeline_age_days(NOW) == 12

    def test_pipeline_age_falls_back_to_creation(self):
        opp = Opportunity(id="1", created_at=NOW - timedelta(days=40))
        assert opp.pipeline_age_days(NOW) == 40

    def test_past_close_date(self):
        assert Opportunity(id="1", expected_close_date=NOW - timedelta(days=1)).is_past_close_date(NOW)
        assert not Opportunity(id="1", expected_close_date=NOW + timedelta(days=1)).is_past_close_date(NOW)
        assert not Opportunity(id="1").is_past_close_date(NOW)


class TestFollowUpFromRow:
    def test_priority_clamped(self):
        assert FollowUp.from_row({"id": 1, "priority_score": 9}).priority_score == 5
        assert FollowUp.from_row({"id": 1, "priority_score": None}).priority_score == 1

    def test_status_defaults_to_pending(self):
        assert FollowUp.from_row({"id": 1}).status == "PENDING"

    def test_overdue_excludes_completed(self):
        past = NOW - timedelta(days=2)
        assert FollowUp(id="1", follow_up_date=past).is_overdue(NOW)
        assert not FollowUp(id="1", status="COMPLETED", follow_up_date=past).is_overdue(NOW)

    def test_timestamp_falls_back_to_follow_up_date(self):
        fu = FollowUp(id="1", follow_up_date=NOW)
        assert fu.timestamp == NOW
        assert fu.owned_by is None


class TestUser:
    def test_display_name_fallbacks(self):
        assert User(id="1", name="Ana").display_name == "Ana"
        assert User(id="1", email="ana@example.com").display_name == "ana@example.com"
        assert User(id="1").display_name == "User 1"


class TestDealFromOrder:
    def test_status_mapping(self):
        assert stage_for_order_status("DELIVERED") is Stage.CLOSED_WON
        assert stage_for_order_status("production started") is Stage.NEGOTIATION
        assert stage_for_order_status("unheard of") is Stage.PROPOSAL

    def test_won_order_gets_closed_date_and_cycle(self):
        order = PipelineOrder(
            id="o1",
            name="Line 4",
            status="DELIVERED",
            order_value=10_000,
            progress_percentage=100,
            order_date=NOW - timedelta(days=10),
            actual_delivery_date=NOW - timedelta(days=2),
        )
        deal = deal_from_order(order, NOW)
        assert deal.stage is Stage.CLOSED_WON
        assert deal.closed_date == NOW - timedelta(days=2)
        assert deal.sales_cycle_days == 8
        assert deal.pipeline_age_days == 10
        assert deal.probability == 1.0
        assert deal.weighted_value == 10_000

    def test_probability_floor(self):
        order = PipelineOrder(id="o1", status="ORDER_RECEIVED", order_value=1000, progress_percentage=0)
        deal = deal_from_order(order, NOW)
        assert deal.probability == 0.1
        assert deal.weighted_value == 100
        assert deal.closed_date is None
        assert deal.sales_cycle_days is None
        assert deal.pipeline_age_days == 1
