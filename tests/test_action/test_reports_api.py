"""Tests for the reports API endpoints."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from pipeline_intel.action.api import app
from pipeline_intel.action.dependencies import get_report_facade, get_report_scope
from pipeline_intel.discovery.report_facade import ReportGenerationError, ReportKind
from pipeline_intel.ingestion.snapshot_loader import ReportScope

REPORT = {
    "kind": "sales",
    "period": "month",
    "title": "Sales Report",
    "generated_at": "2024-06-15T12:00:00+00:00",
    "summary": "2 deals closed",
    "data": {},
}


@pytest.fixture()
def facade():
    mock = MagicMock()
    mock.generate_report = AsyncMock(return_value=REPORT)
    return mock


@pytest.fixture()
def client(facade):
    app.dependency_overrides[get_report_facade] = lambda: facade
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "version": "1.0.0"}


def test_list_report_kinds(client):
    resp = client.get("/reports")
    assert resp.status_code == 200
    data = resp.json()
    assert data["kinds"] == ["sales", "pipeline", "forecast", "quotation", "attendance"]
    assert data["periods"] == ["week", "month", "quarter", "year"]


def test_get_report(client, facade):
    resp = client.get("/reports/sales", params={"period": "quarter"})
    assert resp.status_code == 200
    assert resp.json() == REPORT
    facade.generate_report.assert_awaited_once_with("sales", "quarter", ReportScope(is_admin=True))


def test_period_defaults_to_month(client, facade):
    client.get("/reports/forecast")
    assert facade.generate_report.await_args[0][1] == "month"


def test_member_scope_from_headers(client, facade):
    client.get("/reports/pipeline", headers={"X-User-Id": " 42 ", "X-User-Role": "sales_rep"})
    scope = facade.generate_report.await_args[0][2]
    assert scope == ReportScope(is_admin=False, user_id="42")


def test_admin_scope_from_headers(client, facade):
    client.get("/reports/pipeline", headers={"X-User-Id": "1", "X-User-Role": "SuperAdmin"})
    scope = facade.generate_report.await_args[0][2]
    assert scope == ReportScope(is_admin=True, user_id="1")


def test_invalid_request_is_400(client, facade):
    facade.generate_report.side_effect = ValueError("Unsupported report kind: 'inventory'")
    resp = client.get("/reports/inventory")
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Unsupported report kind: 'inventory'"


def test_generation_failure_is_500(client, facade):
    facade.generate_report.side_effect = ReportGenerationError(ReportKind.QUOTATION)
    resp = client.get("/reports/quotation")
    assert resp.status_code == 500
    assert resp.json()["detail"] == "Failed to generate quotation report"


class TestReportScopeDependency:
    @pytest.mark.asyncio
    async def test_no_identity_is_admin(self):
        assert await get_report_scope(None, None) == ReportScope(is_admin=True)

    @pytest.mark.asyncio
    async def test_missing_role_is_member(self):
        assert await get_report_scope("9", None) == ReportScope(is_admin=False, user_id="9")
