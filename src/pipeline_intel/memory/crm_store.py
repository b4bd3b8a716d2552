"""Read access to the CRM tables, mapped onto the engine's value types."""
from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pipeline_intel.db import models
from pipeline_intel.db.connection import async_session
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
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def row_to_dict(obj: Any) -> dict[str, Any]:
    """Column name -> value for an ORM instance."""
    return {c.key: getattr(obj, c.key) for c in obj.__table__.columns}


class SqlCrmStore:
    """RecordSource backed by the SQL database.

    Each collection is read in its own short-lived session so the snapshot
    loader can run the reads concurrently. Database errors propagate.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | Callable[[], AsyncSession] = async_session):
        self._session_factory = session_factory

    async def _fetch(self, model, build: Callable[[dict[str, Any]], T]) -> list[T]:
        async with self._session_factory() as session:
            result = await session.execute(select(model))
            rows = result.scalars().all()
        logger.debug("Fetched %d rows from %s", len(rows), model.__tablename__)
        return [build(row_to_dict(row)) for row in rows]

    async def list_opportunities(self) -> list[Opportunity]:
        return await self._fetch(models.Opportunity, Opportunity.from_row)

    async def list_follow_ups(self) -> list[FollowUp]:
        return await self._fetch(models.FollowUp, FollowUp.from_row)

    async def list_activities(self) -> list[Activity]:
        return await self._fetch(models.Activity, Activity.from_row)

    async def list_contacts(self) -> list[Contact]:
        return await self._fetch(models.Contact, Contact.from_row)

    async def list_companies(self) -> list[Company]:
        return await self._fetch(models.Company, Company.from_row)

    async def list_quotations(self) -> list[Quotation]:
        return await self._fetch(models.Quotation, Quotation.from_row)

    async def list_pipeline_orders(self) -> list[PipelineOrder]:
        return await self._fetch(models.PipelineOrder, PipelineOrder.from_row)

    async def list_attendance(self) -> list[AttendanceRecord]:
        return await self._fetch(models.Attendance, AttendanceRecord.from_row)

    async def list_users(self) -> list[User]:
        return await self._fetch(models.User, User.from_row)
