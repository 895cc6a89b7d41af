"""Sync triggers and job history."""

from fastapi import APIRouter, Depends, HTTPException, Query

from prunarr.api.deps import get_jobs, get_orchestrator, get_scheduler
from prunarr.exceptions import SyncInProgressError
from prunarr.services.jobs import FULL_SYNC, INCREMENTAL_SYNC, JobRecorder
from prunarr.services.scheduler import SyncScheduler
from prunarr.services.sync import SyncOrchestrator

router = APIRouter()


async def _trigger(orchestrator: SyncOrchestrator, kind: str) -> dict:
    try:
        job_id = await orchestrator.trigger_sync(kind)
    except SyncInProgressError as e:
        raise HTTPException(status_code=409, detail=e.message)
    return {"job_id": job_id, "type": kind, "status": "started"}


@router.post("/sync/full", status_code=202)
async def trigger_full_sync(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    return await _trigger(orchestrator, FULL_SYNC)


@router.post("/sync/incremental", status_code=202)
async def trigger_incremental_sync(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    return await _trigger(orchestrator, INCREMENTAL_SYNC)


@router.post("/deletions/execute")
async def execute_deletions(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Delete every overdue item now. A no-op unless both safety gates allow it."""
    try:
        outcome = await orchestrator.execute_deletions()
    except SyncInProgressError as e:
        raise HTTPException(status_code=409, detail=e.message)
    return outcome.to_dict()


@router.get("/sync/status")
async def sync_status(
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
    scheduler: SyncScheduler | None = Depends(get_scheduler),
):
    status = orchestrator.status()
    status["next_runs"] = scheduler.next_runs() if scheduler and scheduler.is_running() else {}
    return status


@router.get("/jobs")
async def list_jobs(
    limit: int = Query(20, ge=1, le=100),
    jobs: JobRecorder = Depends(get_jobs),
):
    return {"jobs": [j.to_dict() for j in await jobs.recent(limit)]}


@router.get("/jobs/latest")
async def latest_job(jobs: JobRecorder = Depends(get_jobs)):
    job = await jobs.latest()
    if job is None:
        raise HTTPException(status_code=404, detail="no jobs yet")
    return job.to_dict()


@router.get("/jobs/{job_id}")
async def get_job(job_id: str, jobs: JobRecorder = Depends(get_jobs)):
    job = await jobs.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"job {job_id} not found")
    return job.to_dict()
