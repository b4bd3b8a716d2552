"""Tests for the quotation report and quotation-to-opportunity mapping."""

from datetime import datetime, timedelta, timezone

from pipeline_intel.discovery.quotation_mapper import (
    average_response_days,
    build_quotation_report,
    conversion_probability,
    map_quotation,
    related_opportunities,
    top_clients,
)
from pipeline_intel.discovery.records import Company, Opportunity, Quotation, Stage

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def _days_ago(n):
    return NOW - timedelta(days=n)


COMPANIES = [Company(id="c1", name="Acme Steel"), Company(id="c2", name="Globex"), Company(id="c3", name="")]
COMPANY_NAMES = {c.id: c.name for c in COMPANIES}


def _quotation(i, client="Acme Steel Ltd", status="PENDING", value=10_000, **kwargs):
    return Quotation(id=str(i), client_name=client, status=status, order_value=value, **kwargs)


class TestRelatedOpportunities:
    def test_names_contain_each_other(self):
        opps = [
            Opportunity(id="o1", company_id="c1"),
            Opportunity(id="o2", company_id="c2"),
            Opportunity(id="o3", company_id="c3"),
            Opportunity(id="o4"),
        ]
        related = related_opportunities(_quotation(1, client="acme steel"), opps, COMPANY_NAMES)
        assert [o.id for o in related] == ["o1"]

    def test_blank_client_matches_nothing(self):
        opps = [Opportunity(id="o1", company_id="c1")]
        assert related_opportunities(_quotation(1, client=""), opps, COMPANY_NAMES) == []


class TestConversionProbability:
    def test_status_base(self):
        assert conversion_probability(_quotation(1, status="ACCEPTED"), []) == 100
        assert conversion_probability(_quotation(1, status="REJECTED"), []) == 0
        assert conversion_probability(_quotation(1, status="SENT"), []) == 60
        assert conversion_probability(_quotation(1, status="PENDING"), []) == 40
        assert conversion_probability(_quotation(1, status="DRAFT"), []) == 20

    def test_related_bonuses_capped(self):
        active = Opportunity(id="o1", stage=Stage.PROPOSAL)
        won = Opportunity(id="o2", stage=Stage.CLOSED_WON)
        lost = Opportunity(id="o3", stage=Stage.CLOSED_LOST)
        assert conversion_probability(_quotation(1, status="PENDING"), [lost]) == 40
        assert conversion_probability(_quotation(1, status="PENDING"), [active]) == 60
        assert conversion_probability(_quotation(1, status="PENDING"), [won]) == 75
        assert conversion_probability(_quotation(1, status="SENT"), [active, won]) == 95
        assert conversion_probability(_quotation(1, status="ACCEPTED"), [won]) == 100


class TestMapQuotation:
    def test_risks_and_actions(self):
        quotation = _quotation(
            1, client="Nobody Inc", value=150_000, created_at=_days_ago(45), deadline=NOW + timedelta(days=3),
        )
        mapping = map_quotation(quotation, [], COMPANY_NAMES, NOW)
        assert mapping.risk_factors == ["Long pending time", "High value quotation", "No related opportunities"]
        assert mapping.recommended_actions == ["Send follow-up reminder", "Urgent: approaching deadline"]
        assert mapping.conversion_probability == 40

    def test_related_opportunity_reference(self):
        opps = [Opportunity(id="o1", name="Mill upgrade", company_id="c1", stage=Stage.NEGOTIATION, deal_size=5)]
        mapping = map_quotation(_quotation(1, created_at=_days_ago(2)), opps, COMPANY_NAMES, NOW)
        assert mapping.risk_factors == []
        assert mapping.recommended_actions == ["Reference existing opportunities"]
        assert mapping.related_opportunities[0].title == "Mill upgrade"
        assert mapping.related_opportunities[0].stage is Stage.NEGOTIATION

    def test_passed_deadline_is_not_a_warning(self):
        mapping = map_quotation(_quotation(1, deadline=_days_ago(1)), [], COMPANY_NAMES, NOW)
        assert "Urgent: approaching deadline" not in mapping.recommended_actions


class TestQuotationReport:
    def test_totals(self):
        quotations = [
            _quotation(1, status="PENDING", value=1000, deadline=_days_ago(1)),
            _quotation(2, client="Globex", status="ACCEPTED", value=5000,
                       created_at=_days_ago(10), updated_at=_days_ago(7)),
            _quotation(3, client="Globex", status="REJECTED", value=2000,
                       created_at=_days_ago(10), updated_at=_days_ago(9)),
            _quotation(4, status="SENT", value=500, created_at=_days_ago(10), updated_at=_days_ago(1)),
        ]
        report = build_quotation_report(quotations, [], COMPANIES, NOW)
        assert report.total_quotations == 4
        assert report.pending_quotations == 1
        assert report.accepted_quotations == 1
        assert report.rejected_quotations == 1
        assert report.overdue_quotations == 1
        assert report.total_value == 8500
        assert report.average_response_time == 2.0
        assert [(c.name, c.quotations, c.value) for c in report.top_clients] == [
            ("Globex", 2, 7000),
            ("Acme Steel Ltd", 2, 1500),
        ]
        assert len(report.mappings) == 4

    def test_empty(self):
        report = build_quotation_report([], [], [], NOW)
        assert report.total_quotations == 0
        assert report.average_response_time == 0
        assert report.top_clients == []

    def test_response_time_rounding(self):
        quotations = [
            _quotation(1, status="ACCEPTED", created_at=_days_ago(3), updated_at=_days_ago(2)),
            _quotation(2, status="ACCEPTED", created_at=_days_ago(3), updated_at=_days_ago(1)),
            _quotation(3, status="ACCEPTED", created_at=_days_ago(3), updated_at=_days_ago(2)),
        ]
        assert average_response_days(quotations) == 1.3

    def test_top_clients_limit(self):
        quotations = [_quotation(i, client=f"Client {i}", value=i) for i in range(15)]
        clients = top_clients(quotations)
        assert len(clients) == 10
        assert clients[0].name == "Client 14"
