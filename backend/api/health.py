"""Health check endpoint."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.deps import get_scheduler, get_session, get_sync_service
from backend.services.datetime_service import format_iso
from backend.services.scheduler_service import SyncScheduler
from backend.services.sync_service import ModSyncService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    database: str
    scheduler: str
    sync_running: bool
    last_sync_status: str | None = None
    last_sync_finished_at: str | None = None


@router.get("/api/health", response_model=HealthResponse)
async def health_check(
    session: Annotated[AsyncSession, Depends(get_session)],
    sync_service: Annotated[ModSyncService, Depends(get_sync_service)],
    scheduler: Annotated[SyncScheduler | None, Depends(get_scheduler)],
) -> HealthResponse:
    """Health check endpoint for monitoring and load balancers."""
    db_status = "ok"
    try:
        await session.execute(text("SELECT 1"))
    except Exception:
        logger.warning("Health check database query failed", exc_info=True)
        db_status = "error"

    if scheduler is None:
        scheduler_status = "disabled"
    else:
        scheduler_status = "running" if scheduler.running else "stopped"

    report = sync_service.last_report
    return HealthResponse(
        status="ok" if db_status == "ok" else "degraded",
        version="0.1.0",
        database=db_status,
        scheduler=scheduler_status,
        sync_running=sync_service.is_running,
        last_sync_status=report.status.value if report else None,
        last_sync_finished_at=(
            format_iso(report.finished_at) if report and report.finished_at else None
        ),
    )
