"""Shared dependencies for API routers: report scope and the report facade."""

import logging
from typing import Optional

from fastapi import Header

from pipeline_intel.discovery.report_facade import ReportFacade
from pipeline_intel.ingestion.snapshot_loader import ReportScope
from pipeline_intel.memory.crm_store import SqlCrmStore

logger = logging.getLogger(__name__)

# Roles that see every record rather than only their own.
ADMIN_ROLES = frozenset({"admin", "superadmin"})


# ---------------------------------------------------------------------------
# FastAPI Dependencies
# ---------------------------------------------------------------------------


async def get_report_scope(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> ReportScope:
    """Derive the report scope from the caller's identity headers.

    No user id means an internal caller, which gets the admin view.
    """
    if not x_user_id:
        return ReportScope(is_admin=True)
    role = (x_user_role or "").strip().lower()
    return ReportScope(is_admin=role in ADMIN_ROLES, user_id=x_user_id.strip())


_facade: Optional[ReportFacade] = None


def get_report_facade() -> ReportFacade:
    """Process-wide facade over the SQL store."""
    global _facade
    if _facade is None:
        _facade = ReportFacade(SqlCrmStore())
    return _facade
