"""Periodic full and incremental sync via APScheduler."""

import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from prunarr.config import Settings
from prunarr.exceptions import SyncInProgressError
from prunarr.services.jobs import FULL_SYNC, INCREMENTAL_SYNC
from prunarr.services.sync import SyncOrchestrator

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Drives the orchestrator on timers. A tick that lands on a running cycle is skipped."""

    def __init__(self, orchestrator: SyncOrchestrator):
        self.orchestrator = orchestrator
        self.scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._running = False

    def start(self, settings: Settings):
        if self._running:
            return

        first_run = {}
        if settings.sync.auto_start:
            # Passing next_run_time=None would add the job paused
            first_run["next_run_time"] = datetime.now(timezone.utc)

        self.scheduler.add_job(
            self._run,
            IntervalTrigger(minutes=settings.sync.full_interval),
            args=[FULL_SYNC],
            id=FULL_SYNC,
            name="Full sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            **first_run,
        )
        self.scheduler.add_job(
            self._run,
            IntervalTrigger(minutes=settings.sync.incremental_interval),
            args=[INCREMENTAL_SYNC],
            id=INCREMENTAL_SYNC,
            name="Incremental sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.start()
        self._running = True
        logger.info(
            f"Scheduler started (full every {settings.sync.full_interval}m, "
            f"incremental every {settings.sync.incremental_interval}m, auto_start={settings.sync.auto_start})"
        )

    def reschedule(self, settings: Settings):
        """Apply new intervals after a config reload."""
        if not self._running:
            return
        self.scheduler.reschedule_job(FULL_SYNC, trigger=IntervalTrigger(minutes=settings.sync.full_interval))
        self.scheduler.reschedule_job(
            INCREMENTAL_SYNC, trigger=IntervalTrigger(minutes=settings.sync.incremental_interval)
        )
        logger.info("Scheduler intervals updated")

    def stop(self):
        if not self._running:
            return
        self.scheduler.shutdown(wait=False)
        self._running = False
        logger.info("Scheduler stopped")

    def is_running(self) -> bool:
        return self._running

    def next_runs(self) -> dict:
        out = {}
        for job_id in (FULL_SYNC, INCREMENTAL_SYNC):
            job = self.scheduler.get_job(job_id)
            out[job_id] = job.next_run_time.isoformat() if job and job.next_run_time else None
        return out

    async def _run(self, kind: str):
        try:
            job = await self.orchestrator.run_sync(kind)
            logger.debug(f"Scheduled {kind} finished with status {job.status}")
        except SyncInProgressError:
            logger.info(f"Scheduled {kind} skipped: a sync is already running")
