"""Admin sync API endpoints.

- ``POST /api/v1/admin/sync``        -- Run a sync now and return its summary.
- ``GET  /api/v1/admin/sync/status`` -- Last result and scheduler state.

Both require the ``X-Admin-API-Key`` header (see :mod:`src.middleware.auth`).
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from src.middleware.auth import require_sync_admin

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/admin/sync",
    tags=["admin", "sync"],
    dependencies=[Depends(require_sync_admin)],
)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class SyncTriggerResponse(BaseModel):
    ok: bool
    summary: dict[str, Any]


class SyncStatusResponse(BaseModel):
    status: str
    running: bool = False
    last_result: dict[str, Any] | None = None
    scheduler_running: bool = False
    last_scheduled_run: str | None = None


# ---------------------------------------------------------------------------
# Helper
# ---------------------------------------------------------------------------


def _get_pipeline(request: Request):
    """Retrieve the sync pipeline from app state, or raise 503."""
    pipeline = getattr(request.app.state, "sync_pipeline", None)
    if pipeline is None:
        raise HTTPException(
            status_code=503,
            detail="Sync pipeline not initialised.",
        )
    return pipeline


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("", response_model=SyncTriggerResponse)
async def trigger_sync(request: Request) -> SyncTriggerResponse:
    """Fetch from data.gov.in, transform, and upsert, then report counts.

    Fetch failures are not errors here: the summary simply reports
    ``source="none"`` and zero counts.
    """
    pipeline = _get_pipeline(request)

    logger.info("api.admin.sync_triggered")

    try:
        result = await pipeline.sync()
    except Exception as exc:
        logger.error("api.admin.sync_failed", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Sync failed: {exc}") from exc

    return SyncTriggerResponse(ok=True, summary=result.to_dict())


@router.get("/status", response_model=SyncStatusResponse)
async def get_sync_status(request: Request) -> SyncStatusResponse:
    pipeline = getattr(request.app.state, "sync_pipeline", None)
    scheduler = getattr(request.app.state, "scheduler", None)

    if pipeline is None:
        return SyncStatusResponse(status="not_initialised")

    last_result = pipeline.last_result.to_dict() if pipeline.last_result is not None else None
    last_run = None
    if scheduler is not None and scheduler.last_run is not None:
        last_run = scheduler.last_run.isoformat()

    return SyncStatusResponse(
        status="ready",
        running=pipeline.is_running,
        last_result=last_result,
        scheduler_running=scheduler is not None and scheduler.is_running,
        last_scheduled_run=last_run,
    )
