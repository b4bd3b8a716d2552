"""FastAPI application exposing the pipeline reports."""

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pipeline_intel.action.routers.reports import router as reports_router

logger = logging.getLogger(__name__)

app = FastAPI(title="CRM Pipeline Intelligence API", version="1.0.0")

# CORS: lock down in production via CORS_ORIGINS env var (comma-separated).
_cors_origins = os.environ.get("CORS_ORIGINS", "*").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in _cors_origins],
    allow_methods=["GET"],
    allow_headers=["*"],
)

app.include_router(reports_router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "version": app.version}
