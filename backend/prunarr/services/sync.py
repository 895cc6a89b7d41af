"""Sync orchestrator: one full or incremental cycle at a time.

A cycle takes the config snapshot current at trigger time, fetches from
every enabled integration concurrently, fuses and stamps the catalog in a
single writer section, then drives the symlink preview and (when both
safety gates allow) deletion. Every cycle is recorded as a Job.
On-demand deletion between cycles takes the same single-flight slot.

Failure policy:
- media manager (Radarr/Sonarr) failure: job fails, catalog untouched
- media server failure: previous watch state and server IDs are kept
- request / history tracker failure: treated as disabled for this cycle
- symlink bridge failure: recorded, deletion still runs
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable, Optional

from prunarr.clients.factory import ClientSet, build_clients
from prunarr.config import ConfigStore, Settings
from prunarr.exceptions import IntegrationError, ReconciliationError, SyncInProgressError
from prunarr.models.media import MediaItem, MediaType
from prunarr.services import correlation, rules
from prunarr.services.catalog import MediaCatalog
from prunarr.services.deletion import DeletionExecutor, DeletionOutcome
from prunarr.services.exclusions import ExclusionManager
from prunarr.services.jobs import FULL_SYNC, SYNC_KINDS, Job, JobRecorder
from prunarr.services.symlinks import SymlinkReconciler

logger = logging.getLogger(__name__)

SERVER_TYPES = {MediaType.MOVIE: "Movie", MediaType.TV_SHOW: "Series"}
REQUIRED = ("radarr", "sonarr")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def deletion_candidate(item: MediaItem, now: datetime) -> dict:
    """Entry of ``would_delete`` in the job summary."""
    return {
        "id": item.id,
        "title": item.title,
        "year": item.year,
        "type": item.media_type.value,
        "file_size": item.file_size,
        "delete_after": _iso(item.deletion_date),
        "days_overdue": (now - item.deletion_date).days if item.deletion_date else 0,
        "reason": rules.explain_deletion(item, now),
        "rule": item.deletion_reason,
        "last_watched": _iso(item.last_watched),
        "is_requested": item.is_requested,
        "requested_by_user_id": item.requested_by_user_id,
        "requested_by_username": item.requested_by_username,
        "requested_by_email": item.requested_by_email,
    }


class SyncOrchestrator:

    def __init__(
        self,
        config: ConfigStore,
        catalog: MediaCatalog,
        jobs: JobRecorder,
        exclusions: ExclusionManager,
        clients_factory: Callable[[Settings], ClientSet] = build_clients,
    ):
        self.config = config
        self.catalog = catalog
        self.jobs = jobs
        self.exclusions = exclusions
        self.clients_factory = clients_factory

        self._running = False
        self._current: Optional[Job] = None
        self._task: Optional[asyncio.Task] = None
        self.last_full_sync: Optional[datetime] = None
        self.last_incremental_sync: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self._running

    # ── Entry points ─────────────────────────────────────────────

    async def trigger_sync(self, kind: str) -> str:
        """Start a cycle in the background and return its job ID."""
        job, settings = await self._begin(kind)
        self._task = asyncio.create_task(self._execute(job, settings))
        return job.id

    async def run_sync(self, kind: str) -> Job:
        """Run a cycle to completion."""
        job, settings = await self._begin(kind)
        return await self._execute(job, settings)

    async def wait(self) -> None:
        """Wait for a background cycle started by ``trigger_sync``."""
        if self._task is not None:
            await self._task

    async def execute_deletions(self) -> DeletionOutcome:
        """Delete everything overdue right now, outside a sync cycle."""
        async with self._exclusive():
            settings = self.config.get()
            now = datetime.now(timezone.utc)
            overdue = self.catalog.overdue(now)
            logger.info(f"On-demand deletion: {len(overdue)} overdue items")
            return await self._executor(self.clients_factory(settings), settings).execute(overdue, settings, now)

    async def delete_media(self, item_id: str) -> DeletionOutcome:
        """Delete a single item on request. See ``DeletionExecutor.delete_item``."""
        async with self._exclusive():
            settings = self.config.get()
            return await self._executor(self.clients_factory(settings), settings).delete_item(item_id, settings)

    def status(self) -> dict:
        return {
            "running": self._running,
            "current_job_id": self._current.id if self._current else None,
            "current_job_type": self._current.kind if self._current else None,
            "last_full_sync": _iso(self.last_full_sync),
            "last_incremental_sync": _iso(self.last_incremental_sync),
            "media_count": len(self.catalog),
            "history_available": self.catalog.history_available,
        }

    # ── Cycle ────────────────────────────────────────────────────

    @asynccontextmanager
    async def _exclusive(self):
        """Hold the single-flight slot for work that changes the catalog outside a cycle."""
        if self._running:
            raise SyncInProgressError(self._current.id if self._current else None)
        self._running = True
        try:
            yield
        finally:
            self._running = False

    def _executor(
        self, clients: ClientSet, settings: Settings, reconciler: Optional[SymlinkReconciler] = None,
    ) -> DeletionExecutor:
        if reconciler is None and clients.jellyfin is not None and clients.bridge is not None:
            reconciler = SymlinkReconciler(clients.jellyfin, clients.bridge, settings)
        return DeletionExecutor(
            self.catalog,
            {MediaType.MOVIE: clients.radarr, MediaType.TV_SHOW: clients.sonarr},
            clients.jellyfin,
            reconciler,
        )

    async def _begin(self, kind: str) -> tuple[Job, Settings]:
        if kind not in SYNC_KINDS:
            raise ValueError(f"unknown sync kind {kind!r}")
        # Claimed before the first await so two triggers cannot both pass
        if self._running:
            raise SyncInProgressError(self._current.id if self._current else None)
        self._running = True
        try:
            settings = self.config.get()
            job = await self.jobs.create(kind)
        except BaseException:
            self._running = False
            raise
        self._current = job
        return job, settings

    async def _execute(self, job: Job, settings: Settings) -> Job:
        timeout = settings.sync.timeout_seconds
        try:
            await self.jobs.mark_running(job)
            summary = await asyncio.wait_for(self._cycle(job, settings), timeout=timeout)
            await self.jobs.complete(job, summary)
            if job.kind == FULL_SYNC:
                self.last_full_sync = job.completed_at
            else:
                self.last_incremental_sync = job.completed_at
        except IntegrationError as e:
            await self.jobs.fail(job, e.message)
        except asyncio.TimeoutError:
            await self.jobs.fail(job, f"sync timed out after {timeout:g}s")
        except Exception as e:
            logger.exception(f"Sync {job.id} crashed")
            await self.jobs.fail(job, f"{type(e).__name__}: {e}")
        finally:
            self._running = False
            self._current = None
        return job

    async def _cycle(self, job: Job, settings: Settings) -> dict:
        full = job.kind == FULL_SYNC
        clients = self.clients_factory(settings)
        logger.info(f"Starting {job.kind} (dry_run={settings.app.dry_run}, "
                    f"enable_deletion={settings.app.enable_deletion})")

        fetched, integrations = await self._fetch(clients, full)
        job.summary = {"integrations": integrations}

        for name in REQUIRED:
            if integrations[name]["status"] == "error":
                raise IntegrationError(name, integrations[name]["error"], required=True)

        history_available = integrations["jellystat"]["status"] == "ok"
        now = datetime.now(timezone.utc)

        async with self.catalog.lock:
            exclusions = await self.exclusions.load()
            staged: dict[MediaType, dict[str, MediaItem]] = {}
            for media_type in MediaType:
                staged[media_type] = self._stage(media_type, full, fetched, clients)

            all_items = [i for items in staged.values() for i in items.values()]
            ExclusionManager.apply(all_items, exclusions)
            for item in all_items:
                rules.stamp(item, settings, history_available)

            for media_type, items in staged.items():
                self.catalog.put_type(media_type, items)
            self.catalog.history_available = history_available
            self.catalog.updated_at = now

        items = self.catalog.all_items()
        overdue = self.catalog.overdue(now)
        leaving = self.catalog.leaving_soon(now, settings.app.leaving_soon_days)
        errors = [f"{name}: {i['error']}" for name, i in integrations.items() if i["status"] == "error"]

        summary = {
            "dry_run": settings.app.dry_run,
            "enable_deletion": settings.app.enable_deletion,
            "movies": len(self.catalog.all_items(MediaType.MOVIE)),
            "tv_shows": len(self.catalog.all_items(MediaType.TV_SHOW)),
            "total_media": len(items),
            "excluded": sum(1 for i in items if i.excluded),
            "scheduled_deletions": len(overdue),
            "leaving_soon_count": len(leaving),
            "would_delete": [deletion_candidate(i, now) for i in overdue],
            "integrations": integrations,
            "errors": errors,
        }

        reconciler = None
        if clients.jellyfin is not None and clients.bridge is not None:
            reconciler = SymlinkReconciler(clients.jellyfin, clients.bridge, settings)
            try:
                result = await reconciler.reconcile(items, now)
                summary["symlinks"] = result.to_dict()
                errors.extend(f"symlinks: {e}" for e in result.errors)
            except ReconciliationError as e:
                logger.error(f"Symlink reconciliation failed: {e.message}")
                summary["symlinks"] = {"status": "error", "error": e.message}
                errors.append(f"symlinks: {e.message}")
        else:
            summary["symlinks"] = {"status": "disabled"}

        if settings.app.deletion_allowed:
            outcome = await self._executor(clients, settings, reconciler).execute(overdue, settings, now)
            summary["deleted_count"] = len(outcome.deleted)
            summary["deleted_items"] = outcome.deleted
            summary["deletion_errors"] = outcome.errors
            errors.extend(outcome.warnings)
        elif overdue:
            logger.info(f"{len(overdue)} items overdue; deletion disabled, nothing removed")

        logger.info(
            f"{job.kind} done: {summary['total_media']} items, {summary['leaving_soon_count']} leaving soon, "
            f"{summary['scheduled_deletions']} overdue"
        )
        return summary

    async def _fetch(self, clients: ClientSet, full: bool) -> tuple[dict, dict]:
        """Run every enabled fetch concurrently. Returns (results, per-integration status)."""
        calls = {}
        if full and clients.radarr is not None:
            calls["radarr"] = clients.radarr.list_entries()
        if full and clients.sonarr is not None:
            calls["sonarr"] = clients.sonarr.list_entries()
        if clients.jellyfin is not None:
            calls["jellyfin_movies"] = clients.jellyfin.list_items(SERVER_TYPES[MediaType.MOVIE])
            calls["jellyfin_series"] = clients.jellyfin.list_items(SERVER_TYPES[MediaType.TV_SHOW])
        if clients.jellyseerr is not None:
            calls["jellyseerr"] = clients.jellyseerr.list_requests()
        if clients.jellystat is not None:
            calls["jellystat"] = clients.jellystat.list_history()

        results = dict(zip(calls, await asyncio.gather(*calls.values(), return_exceptions=True)))

        fetched = {}
        for name, res in results.items():
            if isinstance(res, asyncio.CancelledError):
                raise res
            if isinstance(res, Exception):
                logger.warning(f"{name} fetch failed: {res}")
            else:
                fetched[name] = res

        sources = {
            "radarr": ("radarr",),
            "sonarr": ("sonarr",),
            "jellyfin": ("jellyfin_movies", "jellyfin_series"),
            "jellyseerr": ("jellyseerr",),
            "jellystat": ("jellystat",),
        }
        integrations = {}
        for name, keys in sources.items():
            if not all(k in results for k in keys):
                # Managers are not polled on incremental cycles
                configured = getattr(clients, name) is not None
                integrations[name] = {"status": "skipped" if configured else "disabled"}
                continue
            failed = [results[k] for k in keys if k not in fetched]
            if failed:
                integrations[name] = {"status": "error", "error": str(failed[0]) or type(failed[0]).__name__}
            else:
                integrations[name] = {"status": "ok", "count": sum(len(fetched[k]) for k in keys)}
        return fetched, integrations

    def _stage(self, media_type: MediaType, full: bool, fetched: dict, clients: ClientSet) -> dict[str, MediaItem]:
        """Build the next item set for one media type outside the live catalog."""
        previous = self.catalog.by_type(media_type)
        manager_key = "radarr" if media_type == MediaType.MOVIE else "sonarr"

        if full:
            if getattr(clients, manager_key) is None:
                items = {}
            else:
                items = correlation.build_items(fetched[manager_key], media_type, previous)
        else:
            items = correlation.copy_items(previous)

        server_key = "jellyfin_movies" if media_type == MediaType.MOVIE else "jellyfin_series"
        if server_key in fetched:
            correlation.apply_server_items(items, fetched[server_key], media_type)
        elif clients.jellyfin is None:
            correlation.apply_server_items(items, [], media_type)

        correlation.apply_requests(items, fetched.get("jellyseerr", []), media_type)
        correlation.apply_history(items, fetched.get("jellystat", []))
        return items
