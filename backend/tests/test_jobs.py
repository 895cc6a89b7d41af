"""Job persistence: lifecycle, immutability and retention of the newest jobs."""

import pytest

from prunarr.exceptions import JobFinalizedError
from prunarr.services.jobs import COMPLETED, FAILED, FULL_SYNC, INCREMENTAL_SYNC, PENDING, RUNNING, JobRecorder


@pytest.mark.asyncio
async def test_lifecycle_is_persisted(session_factory):
    jobs = JobRecorder(session_factory)
    job = await jobs.create(FULL_SYNC)
    assert job.status == PENDING

    await jobs.mark_running(job)
    assert (await jobs.get(job.id)).status == RUNNING

    await jobs.complete(job, {"total_media": 3})
    stored = await jobs.get(job.id)
    assert stored.status == COMPLETED
    assert stored.summary == {"total_media": 3}
    assert stored.completed_at is not None
    assert stored.duration_ms >= 0
    assert stored.to_dict()["type"] == FULL_SYNC


@pytest.mark.asyncio
async def test_finalized_job_cannot_change(session_factory):
    jobs = JobRecorder(session_factory)
    job = await jobs.create(INCREMENTAL_SYNC)
    await jobs.fail(job, "radarr: connection refused")

    with pytest.raises(JobFinalizedError):
        await jobs.complete(job, {})
    with pytest.raises(JobFinalizedError):
        await jobs.mark_running(job)

    stored = await jobs.get(job.id)
    assert stored.status == FAILED
    assert stored.error == "radarr: connection refused"


@pytest.mark.asyncio
async def test_unknown_kind_rejected(session_factory):
    with pytest.raises(ValueError):
        await JobRecorder(session_factory).create("partial_sync")


@pytest.mark.asyncio
async def test_keeps_only_newest_jobs(session_factory):
    jobs = JobRecorder(session_factory, max_jobs=3)
    created = [await jobs.create(FULL_SYNC) for _ in range(5)]

    recent = await jobs.recent(limit=10)
    assert len(recent) == 3
    assert await jobs.get(created[0].id) is None
    assert (await jobs.latest()).id == created[-1].id


@pytest.mark.asyncio
async def test_missing_job(session_factory):
    jobs = JobRecorder(session_factory)
    assert await jobs.get("nope") is None
    assert await jobs.latest() is None
