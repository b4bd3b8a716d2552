"""Reports routes."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from pipeline_intel.action.dependencies import get_report_facade, get_report_scope
from pipeline_intel.discovery.report_facade import ReportFacade, ReportGenerationError, ReportKind
from pipeline_intel.ingestion.snapshot_loader import Period, ReportScope

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reports"])


# ---------------------------------------------------------------------------
# Response Models
# ---------------------------------------------------------------------------


class ReportCatalog(BaseModel):
    kinds: list[str]
    periods: list[str]


class ReportResponse(BaseModel):
    kind: str
    period: str
    title: str
    generated_at: str
    summary: str
    data: dict[str, Any]


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/reports", response_model=ReportCatalog)
async def list_report_kinds() -> dict:
    """List the report kinds and periods that can be requested."""
    return {
        "kinds": [k.value for k in ReportKind],
        "periods": [p.value for p in Period],
    }


@router.get("/reports/{kind}", response_model=ReportResponse)
async def get_report(
    kind: str,
    period: str = "month",
    scope: ReportScope = Depends(get_report_scope),
    facade: ReportFacade = Depends(get_report_facade),
) -> dict:
    """Generate a report of *kind* over *period* for the calling user."""
    try:
        return await facade.generate_report(kind, period, scope)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ReportGenerationError as exc:
        logger.warning("Report request failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc))
