"""End-to-end sync cycles against fake integrations."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from prunarr.clients.base import HistoryRecord, MediaRequest, ServerItem
from prunarr.clients.factory import ClientSet
from prunarr.exceptions import SyncInProgressError
from prunarr.services.jobs import COMPLETED, FAILED, FULL_SYNC
from tests.fakes import (
    JELLYFIN_ON, FakeBridge, FakeHistory, FakeManager, FakeRequests, FakeServer, Harness,
    make_settings, movie_entry, series_entry,
)

SEVEN_DAY = {"rules": {"movie_retention": "7d", "tv_retention": "7d"}}
ARMED = {"dry_run": False, "enable_deletion": True}
JELLYSTAT_ON = {"jellystat": {"enabled": True, "url": "http://jellystat:3000", "api_key": "js"}}
JELLYSEERR_ON = {"jellyseerr": {"enabled": True, "url": "http://jellyseerr:5055", "api_key": "jsr"}}
SONARR_ON = {"sonarr": {"enabled": True, "url": "http://sonarr:8989", "api_key": "sk"}}


def _seven_movies(tags_for_first=()):
    return [movie_entry(i, 3, tags=tags_for_first if i == 1 else ()) for i in range(1, 8)]


@pytest.fixture
def full_clients():
    return ClientSet(
        radarr=FakeManager("radarr", _seven_movies()),
        sonarr=FakeManager("sonarr", [series_entry(1, 3)]),
        jellyfin=FakeServer(),
        bridge=FakeBridge(),
        jellyseerr=FakeRequests(),
        jellystat=FakeHistory(),
    )


def _everything(**extra):
    overrides = {"integrations": {**JELLYFIN_ON, **JELLYSTAT_ON, **JELLYSEERR_ON, **SONARR_ON}, **SEVEN_DAY}
    overrides.update(extra)
    return make_settings(**overrides)


class TestPreview:

    @pytest.mark.asyncio
    async def test_seven_recent_movies_are_leaving_soon(self, harness):
        harness.clients.radarr.entries = _seven_movies()
        await harness.use(make_settings(**SEVEN_DAY))

        job = await harness.full_sync()
        assert job.status == COMPLETED
        assert job.summary["movies"] == 7
        assert job.summary["leaving_soon_count"] == 7
        assert job.summary["scheduled_deletions"] == 0
        assert job.summary["would_delete"] == []
        assert "deleted_count" not in job.summary
        assert job.summary["symlinks"] == {"status": "disabled"}

    @pytest.mark.asyncio
    async def test_exclusion_survives_cycles_and_can_be_lifted(self, harness):
        harness.clients.radarr.entries = _seven_movies()
        await harness.use(make_settings(**SEVEN_DAY))
        await harness.full_sync()

        await harness.exclusions.exclude("radarr-3", "keep forever")
        now = datetime.now(timezone.utc)
        assert len(harness.catalog.leaving_soon(now, 14)) == 6

        job = await harness.full_sync()
        assert job.summary["leaving_soon_count"] == 6
        assert job.summary["excluded"] == 1
        assert harness.catalog.get("radarr-3").excluded

        await harness.exclusions.remove_exclusion("radarr-3")
        assert len(harness.catalog.leaving_soon(datetime.now(timezone.utc), 14)) == 7
        job = await harness.full_sync()
        assert job.summary["leaving_soon_count"] == 7

    @pytest.mark.asyncio
    async def test_zero_day_tag_rule_schedules_exactly_one(self, harness):
        harness.clients.radarr.entries = _seven_movies(tags_for_first=["demo"])
        await harness.use(make_settings(
            **SEVEN_DAY,
            advanced_rules=[{"name": "Demo", "type": "tag", "tag": "demo", "retention": "0d"}],
        ))

        job = await harness.full_sync()
        assert job.summary["scheduled_deletions"] == 1
        assert job.summary["leaving_soon_count"] == 6
        candidate = job.summary["would_delete"][0]
        assert candidate["id"] == "radarr-1"
        assert candidate["days_overdue"] == 3
        assert "'Demo' tag rule" in candidate["reason"]
        # deletion disabled by default: reported, not executed
        assert "deleted_count" not in job.summary
        assert harness.clients.radarr.deleted == []


class TestFailurePolicy:

    @pytest.mark.asyncio
    async def test_manager_failure_fails_job_and_keeps_catalog(self, harness):
        harness.clients.radarr.entries = _seven_movies()
        await harness.full_sync()
        assert len(harness.catalog) == 7

        harness.clients.radarr.error = httpx.ConnectError("connection refused")
        harness.clients.radarr.entries = []
        job = await harness.full_sync()

        assert job.status == FAILED
        assert job.error == "radarr: connection refused"
        assert len(harness.catalog) == 7
        stored = await harness.jobs.get(job.id)
        assert stored.status == FAILED

    @pytest.mark.asyncio
    async def test_optional_failures_degrade(self, session_factory, full_clients):
        full_clients.jellyseerr.error = httpx.ReadTimeout("slow")
        full_clients.jellystat.error = httpx.ConnectError("down")
        h = Harness(session_factory, full_clients, _everything())

        job = await h.full_sync()
        assert job.status == COMPLETED
        assert job.summary["integrations"]["jellyseerr"]["status"] == "error"
        assert job.summary["integrations"]["jellystat"]["status"] == "error"
        assert job.summary["integrations"]["radarr"] == {"status": "ok", "count": 7}
        assert any(e.startswith("jellystat:") for e in job.summary["errors"])
        assert job.summary["total_media"] == 8
        assert not h.catalog.history_available

    @pytest.mark.asyncio
    async def test_server_failure_keeps_previous_watch_state(self, session_factory, full_clients):
        played = datetime.now(timezone.utc) - timedelta(days=1)
        full_clients.jellyfin.items["Movie"] = [
            ServerItem(id="jf-1", name="Movie 1", item_type="Movie", tmdb_id=1001, play_count=2, last_played_at=played),
        ]
        h = Harness(session_factory, full_clients, _everything())
        await h.full_sync()
        assert h.catalog.get("radarr-1").jellyfin_id == "jf-1"

        full_clients.jellyfin.error = httpx.ConnectError("jellyfin down")
        job = await h.full_sync()
        assert job.status == COMPLETED
        assert job.summary["integrations"]["jellyfin"]["status"] == "error"
        assert h.catalog.get("radarr-1").jellyfin_id == "jf-1"
        assert h.catalog.get("radarr-1").play_count == 2

    @pytest.mark.asyncio
    async def test_timeout_fails_job(self, harness):
        harness.clients.radarr.entries = _seven_movies()
        harness.clients.radarr.delay = 1.0
        await harness.use(make_settings(sync={"timeout_seconds": 0.05}))

        job = await harness.full_sync()
        assert job.status == FAILED
        assert job.error == "sync timed out after 0.05s"
        assert len(harness.catalog) == 0
        assert not harness.orchestrator.running


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_second_trigger_rejected(self, harness):
        harness.clients.radarr.entries = _seven_movies()
        harness.clients.radarr.delay = 0.2

        job_id = await harness.orchestrator.trigger_sync(FULL_SYNC)
        with pytest.raises(SyncInProgressError) as exc:
            await harness.orchestrator.trigger_sync(FULL_SYNC)
        assert exc.value.running_job_id == job_id

        await harness.orchestrator.wait()
        assert (await harness.jobs.get(job_id)).status == COMPLETED
        assert not harness.orchestrator.running
        assert len(await harness.jobs.recent()) == 1


class TestWatchState:

    @pytest.mark.asyncio
    async def test_require_watched_protects_until_history_shows_a_play(self, session_factory, full_clients):
        full_clients.radarr.entries = _seven_movies(tags_for_first=["kids"])
        full_clients.jellyfin.items["Movie"] = [ServerItem(id="jf-1", name="Movie 1", item_type="Movie", tmdb_id=1001)]
        settings = _everything(advanced_rules=[
            {"name": "kids", "type": "tag", "tag": "kids", "retention": "0d", "require_watched": True},
        ])
        h = Harness(session_factory, full_clients, settings)

        job = await h.full_sync()
        assert job.summary["scheduled_deletions"] == 0
        assert "not watched yet" in h.catalog.get("radarr-1").deletion_reason

        full_clients.jellystat.records = [
            HistoryRecord(item_id="jf-1", user_name="kid", watched_at=datetime.now(timezone.utc) - timedelta(hours=1)),
        ]
        job = await h.incremental_sync()
        assert job.summary["scheduled_deletions"] == 1
        assert job.summary["integrations"]["radarr"] == {"status": "skipped"}

    @pytest.mark.asyncio
    async def test_requests_feed_user_rules(self, session_factory, full_clients):
        full_clients.jellyseerr.requests = [
            MediaRequest(request_id=1, media_type="movie", tmdb_id=1002, status=5, user_id=9, username="guest"),
        ]
        settings = _everything(advanced_rules=[
            {"name": "guests", "type": "user", "retention": "1d", "users": [{"username": "guest"}]},
        ])
        h = Harness(session_factory, full_clients, settings)

        job = await h.full_sync()
        assert [c["id"] for c in job.summary["would_delete"]] == ["radarr-2"]
        assert job.summary["would_delete"][0]["requested_by_username"] == "guest"


class TestIncremental:

    @pytest.mark.asyncio
    async def test_incremental_does_not_poll_managers(self, harness):
        harness.clients.radarr.entries = _seven_movies()
        await harness.full_sync()

        harness.clients.radarr.entries = harness.clients.radarr.entries + [movie_entry(8, 1)]
        job = await harness.incremental_sync()
        assert job.status == COMPLETED
        assert len(harness.catalog) == 7
        assert harness.orchestrator.last_incremental_sync is not None

        await harness.full_sync()
        assert len(harness.catalog) == 8


class TestReconcileAndDelete:

    @pytest.mark.asyncio
    async def test_symlinks_follow_the_catalog(self, session_factory, full_clients):
        h = Harness(session_factory, full_clients, _everything(app={"dry_run": False}))
        job = await h.full_sync()
        assert job.summary["symlinks"]["status"] == "ok"
        assert job.summary["symlinks"]["movies"]["added"] == 7
        assert len(full_clients.bridge.all_paths) == 8

        await h.exclusions.exclude("radarr-1", "keep")
        await h.full_sync()
        assert len(full_clients.bridge.all_paths) == 7
        assert h.catalog.get("radarr-1").symlink_path is None

        await h.exclusions.remove_exclusion("radarr-1")
        job = await h.full_sync()
        assert job.summary["symlinks"]["movies"]["added"] == 1
        assert len(full_clients.bridge.all_paths) == 8
        assert h.catalog.get("radarr-1").symlink_path == "/data/leaving-soon/movies/movie-1.mkv"

    @pytest.mark.asyncio
    async def test_deletion_runs_when_both_gates_allow(self, session_factory, full_clients):
        settings = _everything(app=ARMED, rules={"movie_retention": "0d", "tv_retention": "never"})
        h = Harness(session_factory, full_clients, settings)

        job = await h.full_sync()
        assert job.summary["deleted_count"] == 7
        assert job.summary["deletion_errors"] == []
        assert sorted(full_clients.radarr.deleted) == list(range(1, 8))
        assert full_clients.sonarr.deleted == []
        assert len(h.catalog) == 1

    @pytest.mark.asyncio
    async def test_bridge_failure_does_not_block_deletion(self, session_factory, full_clients):
        full_clients.bridge.error = httpx.ConnectError("plugin missing")
        settings = _everything(app=ARMED, rules={"movie_retention": "0d", "tv_retention": "never"})
        h = Harness(session_factory, full_clients, settings)

        job = await h.full_sync()
        assert job.status == COMPLETED
        assert job.summary["symlinks"]["status"] == "error"
        assert job.summary["deleted_count"] == 7

    @pytest.mark.asyncio
    async def test_dry_run_never_deletes(self, session_factory, full_clients):
        settings = _everything(app={"dry_run": True, "enable_deletion": True},
                               rules={"movie_retention": "0d"})
        h = Harness(session_factory, full_clients, settings)

        job = await h.full_sync()
        assert job.summary["scheduled_deletions"] == 7
        assert "deleted_count" not in job.summary
        assert full_clients.radarr.deleted == []
        assert full_clients.bridge.add_calls == 0
