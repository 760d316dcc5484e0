"""Periodic mod.io sync scheduling.

Uses APScheduler's asyncio scheduler so jobs run on the application's event
loop. Every job funnels into ``ModSyncService.run_tracked``, whose latch keeps
scheduled and manual passes from overlapping and whose task ``aclose``
cancels at shutdown.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from backend.services.datetime_service import format_iso, now_utc

if TYPE_CHECKING:
    from backend.services.sync_service import ModSyncService

logger = logging.getLogger(__name__)

INTERVAL_JOB_ID = "modio_sync"
STARTUP_JOB_ID = "modio_sync_startup"


class SyncScheduler:
    """Owns the background scheduler for the lifetime of the application."""

    def __init__(
        self,
        sync_service: ModSyncService,
        *,
        interval_minutes: int = 30,
        startup_delay_seconds: int = 5,
    ) -> None:
        if interval_minutes < 1:
            msg = f"interval_minutes must be >= 1, got {interval_minutes}"
            raise ValueError(msg)
        self._sync_service = sync_service
        self._interval_minutes = interval_minutes
        self._startup_delay_seconds = startup_delay_seconds
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    async def _run_scheduled_sync(self) -> None:
        report = await self._sync_service.run_tracked()
        if report is None:
            logger.info("Scheduled mod.io sync cancelled")
            return
        logger.debug("Scheduled mod.io sync finished with status %s", report.status)

    def start(self) -> None:
        """Register the interval and start-up jobs and start the scheduler.

        Must be called from within a running event loop.
        """
        if self._scheduler is not None:
            logger.warning("Sync scheduler already started")
            return

        scheduler = AsyncIOScheduler(timezone="UTC")
        scheduler.add_job(
            self._run_scheduled_sync,
            IntervalTrigger(minutes=self._interval_minutes),
            id=INTERVAL_JOB_ID,
            name="mod.io sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=300,
        )
        scheduler.add_job(
            self._run_scheduled_sync,
            DateTrigger(run_date=now_utc() + timedelta(seconds=self._startup_delay_seconds)),
            id=STARTUP_JOB_ID,
            name="Initial mod.io sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info(
            "Mod.io sync scheduler started (every %d minutes, first run in %d seconds)",
            self._interval_minutes,
            self._startup_delay_seconds,
        )

    def shutdown(self) -> None:
        """Stop the scheduler without waiting for a running job."""
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Mod.io sync scheduler stopped")
        self._scheduler = None

    def status(self) -> dict[str, Any]:
        """Current scheduler state for monitoring."""
        if self._scheduler is None:
            return {"running": False, "jobs": []}

        jobs = []
        for job in self._scheduler.get_jobs():
            next_run_time = getattr(job, "next_run_time", None)
            jobs.append(
                {
                    "id": job.id,
                    "name": job.name,
                    "next_run_time": format_iso(next_run_time) if next_run_time else None,
                }
            )
        return {"running": self._scheduler.running, "jobs": jobs}
