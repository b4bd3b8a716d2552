"""Tests for pipeline risk assessment."""

from datetime import datetime, timedelta, timezone

from pipeline_intel.discovery.records import Contact, FollowUp, Opportunity, Stage
from pipeline_intel.discovery.risk_assessor import (
    assess_pipeline_health,
    assess_risk,
    find_high_risk_contacts,
    find_high_risk_opportunities,
    find_overdue_items,
    overall_risk_score,
    risk_level,
)

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def _days_ago(n):
    return NOW - timedelta(days=n)


class TestRiskScore:
    def test_empty_inputs(self):
        assessment = assess_risk([], [], [], NOW)
        assert assessment.overall_risk_score == 0
        assert assessment.risk_level == "LOW"
        assert assessment.high_risk_opportunities == []
        assert assessment.overdue_items == []
        assert assessment.pipeline_health.score == 0

    def test_weighted_counts(self):
        opps = [
            Opportunity(id="1", deal_size=150_000),
            Opportunity(id="2", deal_size=200_000, expected_close_date=_days_ago(3)),
            Opportunity(id="3", deal_size=10),
        ]
        follow_ups = [
            FollowUp(id="f1", follow_up_date=_days_ago(1)),
            FollowUp(id="f2", follow_up_date=_days_ago(5)),
            FollowUp(id="f3", status="COMPLETED", follow_up_date=_days_ago(5)),
        ]
        contacts = [
            Contact(id="c1", last_interaction=_days_ago(100)),
            Contact(id="c2", last_interaction=_days_ago(10)),
            Contact(id="c3"),
        ]
        # 2 x 10 + 1 x 15 + 2 x 5 + 1 x 2
        assert overall_risk_score(opps, follow_ups, contacts, NOW) == 47

    def test_clamped_to_100(self):
        opps = [Opportunity(id=str(i), deal_size=500_000) for i in range(11)]
        score = overall_risk_score(opps, [], [], NOW)
        assert score == 100
        assert risk_level(score) == "CRITICAL"

    def test_levels(self):
        assert risk_level(70) == "CRITICAL"
        assert risk_level(69) == "HIGH"
        assert risk_level(50) == "HIGH"
        assert risk_level(30) == "MEDIUM"
        assert risk_level(29) == "LOW"


class TestHighRiskOpportunities:
    def test_needs_two_signals(self):
        opps = [
            Opportunity(id="1", name="Big and unlikely", stage=Stage.PROPOSAL, probability=20, deal_size=250_000),
            Opportunity(id="2", name="Just unlikely", stage=Stage.PROPOSAL, probability=20, deal_size=1_000),
            Opportunity(
                id="3", name="Stale prospect", stage=Stage.PROSPECTING, probability=10,
                deal_size=1_000, created_at=_days_ago(95),
            ),
        ]
        risky = find_high_risk_opportunities(opps, NOW)
        assert [r.id for r in risky] == ["1", "3"]
        assert risky[0].risk_factors == ["Low probability", "High value at risk"]
        assert risky[0].mitigation_actions == ["Focus on qualification"]
        assert risky[1].risk_factors == ["Low probability", "Long sales cycle", "Early stage"]
        assert risky[1].mitigation_actions == [
            "Focus on qualification",
            "Accelerate decision process",
            "Schedule discovery call",
        ]


class TestHighRiskContacts:
    def test_idle_and_low_score(self):
        contacts = [
            Contact(id="1", name="Never contacted", contact_score=10),
            Contact(id="2", name="Good score", contact_score=50),
            Contact(id="3", name="Long idle", contact_score=10, last_interaction=_days_ago(91)),
            Contact(id="4", name="Edge", contact_score=10, last_interaction=_days_ago(90)),
        ]
        risky = find_high_risk_contacts(contacts, NOW)
        assert [c.id for c in risky] == ["1", "3"]
        assert risky[0].risk_factors == ["Low engagement", "Outdated contact info"]
        assert "Re-engage contact" in risky[0].recommended_actions


class TestOverdueItems:
    def test_pending_follow_up_ten_days_late(self):
        follow_ups = [
            FollowUp(id="f1", status="PENDING", follow_up_date=_days_ago(10), priority_score=4,
                     action_description="Call procurement"),
        ]
        items = find_overdue_items([], follow_ups, NOW)
        assert len(items) == 1
        assert items[0].type == "Follow-up"
        assert items[0].days_overdue == 10
        assert items[0].priority == "HIGH"
        assert items[0].description == "Call procurement"

    def test_low_priority_follow_up_is_medium(self):
        items = find_overdue_items([], [FollowUp(id="f1", follow_up_date=_days_ago(2), priority_score=3)], NOW)
        assert items[0].priority == "MEDIUM"

    def test_follow_ups_listed_before_opportunities(self):
        opps = [Opportunity(id="o1", name="Late deal", expected_close_date=_days_ago(4))]
        follow_ups = [FollowUp(id="f1", follow_up_date=_days_ago(1))]
        items = find_overdue_items(opps, follow_ups, NOW)
        assert [(i.type, i.id) for i in items] == [("Follow-up", "f1"), ("Opportunity", "o1")]
        assert items[1].days_overdue == 4
        assert items[1].impact == "Missed deadline"


class TestPipelineHealth:
    def test_score_and_issues(self):
        opps = [
            Opportunity(id="1", stage=Stage.QUALIFICATION, probability=60),
            Opportunity(id="2", stage=Stage.PROPOSAL, probability=60, expected_close_date=NOW + timedelta(days=10)),
            Opportunity(id="3", stage=Stage.PROSPECTING, probability=90),
            Opportunity(id="4", stage=Stage.NEGOTIATION, probability=40),
        ]
        health = assess_pipeline_health(opps, NOW)
        assert health.score == 25
        assert health.issues == ["Low pipeline health score", "Missing close dates"]
        assert "Set realistic close dates for all opportunities" in health.recommendations

    def test_healthy_pipeline(self):
        opps = [
            Opportunity(id=str(i), stage=Stage.NEGOTIATION, probability=80,
                        expected_close_date=NOW + timedelta(days=60))
            for i in range(3)
        ]
        health = assess_pipeline_health(opps, NOW)
        assert health.score == 100
        assert health.issues == []
        assert health.recommendations == []

    def test_score_bounds(self):
        assert 0 <= assess_pipeline_health([], NOW).score <= 100
