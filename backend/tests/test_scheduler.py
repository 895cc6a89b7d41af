import pytest

from prunarr.exceptions import SyncInProgressError
from prunarr.services.jobs import FULL_SYNC, INCREMENTAL_SYNC
from prunarr.services.scheduler import SyncScheduler
from tests.fakes import make_settings


@pytest.mark.asyncio
async def test_registers_both_jobs(harness):
    scheduler = SyncScheduler(harness.orchestrator)
    scheduler.start(make_settings(sync={"full_interval": 30, "incremental_interval": 5, "auto_start": False}))
    try:
        assert scheduler.is_running()
        runs = scheduler.next_runs()
        assert set(runs) == {FULL_SYNC, INCREMENTAL_SYNC}
        assert all(runs.values())

        scheduler.reschedule(make_settings(sync={"full_interval": 120}))
        assert scheduler.scheduler.get_job(FULL_SYNC).trigger.interval.total_seconds() == 7200
    finally:
        scheduler.stop()
    assert not scheduler.is_running()


@pytest.mark.asyncio
async def test_tick_during_running_sync_is_skipped(harness, monkeypatch):
    async def busy(kind):
        raise SyncInProgressError("job-1")

    monkeypatch.setattr(harness.orchestrator, "run_sync", busy)
    # Must not raise into the scheduler
    await SyncScheduler(harness.orchestrator)._run(FULL_SYNC)
