"""Tests for the SQL-backed CRM store."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from pipeline_intel.db import models
from pipeline_intel.discovery.records import Stage
from pipeline_intel.memory.crm_store import SqlCrmStore, row_to_dict


def _session_factory(rows=(), error=None):
    session = AsyncMock()
    result = MagicMock()
    result.scalars.return_value.all.return_value = list(rows)
    if error is not None:
        session.execute = AsyncMock(side_effect=error)
    else:
        session.execute = AsyncMock(return_value=result)

    @asynccontextmanager
    async def factory():
        yield session

    return factory, session


class TestRowToDict:
    def test_columns_only(self):
        row = models.Quotation(id=3, client_name="Acme", status="SENT")
        data = row_to_dict(row)
        assert data["id"] == 3
        assert data["client_name"] == "Acme"
        assert data["deadline"] is None


class TestSqlCrmStore:
    @pytest.mark.asyncio
    async def test_opportunities_are_coerced(self):
        created = datetime(2024, 6, 1, 9, 0)
        factory, session = _session_factory([
            models.Opportunity(
                id=1, name="Mill upgrade", stage="closed won", deal_size=Decimal("1250.50"),
                probability=140, owner_id=7, created_at=created,
            ),
        ])
        opps = await SqlCrmStore(factory).list_opportunities()

        assert len(opps) == 1
        opp = opps[0]
        assert opp.id == "1"
        assert opp.stage is Stage.CLOSED_WON
        assert opp.deal_size == 1250.5
        assert opp.probability == 100
        assert opp.owner_id == "7"
        assert opp.created_at == created.replace(tzinfo=timezone.utc)

        statement = session.execute.call_args[0][0]
        assert "FROM opportunities" in str(statement)

    @pytest.mark.asyncio
    async def test_attendance(self):
        factory, _ = _session_factory([
            models.Attendance(id=5, user_id=2, date=datetime(2024, 6, 14, tzinfo=timezone.utc), status="auto_flagged"),
        ])
        records = await SqlCrmStore(factory).list_attendance()
        assert records[0].user_id == "2"
        assert records[0].status == "AUTO_FLAGGED"

    @pytest.mark.asyncio
    async def test_users(self):
        factory, _ = _session_factory([models.User(id=1, email="ravi@example.com", role="admin")])
        users = await SqlCrmStore(factory).list_users()
        assert users[0].display_name == "ravi@example.com"

    @pytest.mark.asyncio
    async def test_empty_table(self):
        factory, _ = _session_factory([])
        assert await SqlCrmStore(factory).list_quotations() == []

    @pytest.mark.asyncio
    async def test_database_errors_propagate(self):
        factory, _ = _session_factory(error=RuntimeError("connection reset"))
        with pytest.raises(RuntimeError, match="connection reset"):
            await SqlCrmStore(factory).list_contacts()
