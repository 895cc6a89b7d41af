"""In-memory fakes for every integration plus settings and entry builders shared by the tests."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx

from prunarr.clients.base import (
    HistoryRecord, IMediaManager, IMediaServer, IRequestTracker, ISymlinkBridge, IWatchHistoryProvider,
    ManagerEntry, MediaRequest, PluginStatus, ServerItem, SymlinkEntry, SymlinkRequest, SymlinkResult,
    VirtualFolder,
)
from prunarr.clients.factory import ClientSet
from prunarr.config import ConfigStore, Settings
from prunarr.services.catalog import MediaCatalog
from prunarr.services.exclusions import ExclusionManager
from prunarr.services.jobs import JobRecorder
from prunarr.services.symlinks import symlink_path
from prunarr.services.sync import SyncOrchestrator

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def _merge(base: dict, extra: dict) -> dict:
    out = dict(base)
    for k, v in extra.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def make_settings(**overrides) -> Settings:
    """Settings with Radarr enabled and everything else off unless overridden."""
    base = {
        "app": {"dry_run": True, "enable_deletion": False, "leaving_soon_days": 14},
        "rules": {"movie_retention": "90d", "tv_retention": "120d"},
        "sync": {"auto_start": False, "timeout_seconds": 30},
        "integrations": {
            "radarr": {"enabled": True, "url": "http://radarr:7878", "api_key": "radarr-key"},
        },
    }
    return Settings(_env_file=None, **_merge(base, overrides))


JELLYFIN_ON = {
    "jellyfin": {
        "enabled": True, "url": "http://jellyfin:8096", "api_key": "jf-key",
        "symlink_library": {"enabled": True, "base_path": "/data/leaving-soon"},
    },
}


def movie_entry(i: int, added_days_ago: float, tags=(), now: datetime = None) -> ManagerEntry:
    now = now or datetime.now(timezone.utc)
    return ManagerEntry(
        manager_id=i,
        title=f"Movie {i}",
        year=2020,
        tmdb_id=1000 + i,
        path=f"/media/movies/Movie {i} (2020)/movie-{i}.mkv",
        size_on_disk=1_000_000 * i,
        added_at=now - timedelta(days=added_days_ago),
        tags=list(tags),
    )


def series_entry(i: int, added_days_ago: float, now: datetime = None) -> ManagerEntry:
    now = now or datetime.now(timezone.utc)
    return ManagerEntry(
        manager_id=i,
        title=f"Show {i}",
        year=2019,
        tvdb_id=5000 + i,
        path=f"/media/tv/Show {i}",
        size_on_disk=5_000_000,
        added_at=now - timedelta(days=added_days_ago),
    )


# ── Fakes ────────────────────────────────────────────────────────

class FakeManager(IMediaManager):
    def __init__(self, name: str, entries: list[ManagerEntry]):
        self.name = name
        self.entries = entries
        self.error: Optional[Exception] = None
        self.fail_delete: set[int] = set()
        self.deleted: list[int] = []
        self.delay = 0.0

    async def list_entries(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return list(self.entries)

    async def delete_entry(self, manager_id, delete_files=True):
        if manager_id in self.fail_delete:
            raise httpx.ConnectError(f"cannot delete {manager_id}")
        self.deleted.append(manager_id)
        self.entries = [e for e in self.entries if e.manager_id != manager_id]

    async def test_connection(self):
        return self.error is None


class FakeServer(IMediaServer):
    def __init__(self, items: Optional[dict[str, list[ServerItem]]] = None):
        self.items = items or {"Movie": [], "Series": []}
        self.folders: dict[str, VirtualFolder] = {}
        self.error: Optional[Exception] = None
        self.fail_delete_item = False
        self.deleted_items: list[str] = []
        self.refreshes = 0
        self.folder_calls: list[tuple] = []

    async def list_items(self, item_type):
        if self.error:
            raise self.error
        return list(self.items.get(item_type, []))

    async def delete_item(self, item_id):
        if self.fail_delete_item:
            raise httpx.ConnectError("jellyfin down")
        self.deleted_items.append(item_id)

    async def refresh_library(self):
        self.refreshes += 1

    async def list_virtual_folders(self):
        return list(self.folders.values())

    async def create_virtual_folder(self, name, collection_type, paths):
        self.folder_calls.append(("create", name))
        self.folders[name] = VirtualFolder(name=name, collection_type=collection_type, locations=list(paths))

    async def delete_virtual_folder(self, name):
        self.folder_calls.append(("delete", name))
        self.folders.pop(name, None)

    async def add_virtual_folder_path(self, name, path):
        self.folder_calls.append(("add_path", name))
        self.folders[name].locations.append(path)

    async def test_connection(self):
        return True


class FakeBridge(ISymlinkBridge):
    def __init__(self):
        self.links: dict[str, dict[str, str]] = {}      # directory -> {path: target}
        self.available = True
        self.error: Optional[Exception] = None
        self.add_calls = 0
        self.remove_calls = 0

    async def status(self):
        if self.error:
            raise self.error
        return PluginStatus(available=self.available, version="1.0.0")

    async def list_symlinks(self, directory):
        return [SymlinkEntry(path=p, target=t) for p, t in self.links.get(directory, {}).items()]

    async def add_symlinks(self, items: list[SymlinkRequest]):
        self.add_calls += 1
        created = []
        for i in items:
            path = symlink_path(i.target_directory, i.source_path)
            self.links.setdefault(i.target_directory, {})[path] = i.source_path
            created.append(path)
        return SymlinkResult(success=True, paths=created)

    async def remove_symlinks(self, paths):
        self.remove_calls += 1
        for links in self.links.values():
            for p in paths:
                links.pop(p, None)
        return SymlinkResult(success=True, paths=list(paths))

    @property
    def all_paths(self) -> set[str]:
        return {p for links in self.links.values() for p in links}


class FakeRequests(IRequestTracker):
    def __init__(self, requests: Optional[list[MediaRequest]] = None):
        self.requests = requests or []
        self.error: Optional[Exception] = None

    async def list_requests(self):
        if self.error:
            raise self.error
        return list(self.requests)

    async def test_connection(self):
        return True


class FakeHistory(IWatchHistoryProvider):
    def __init__(self, records: Optional[list[HistoryRecord]] = None):
        self.records = records or []
        self.error: Optional[Exception] = None

    async def list_history(self):
        if self.error:
            raise self.error
        return list(self.records)

    async def test_connection(self):
        return True


# ── Harness ────────────────────────────────────────────────────────

class Harness:
    """Orchestrator wired to fakes; ``settings`` can be swapped between cycles."""

    def __init__(self, session_factory, clients: ClientSet, settings: Settings):
        self.clients = clients
        self.store = ConfigStore(settings)
        self.catalog = MediaCatalog()
        self.jobs = JobRecorder(session_factory, max_jobs=50)
        self.exclusions = ExclusionManager(session_factory, self.catalog, self.store.get)
        self.orchestrator = SyncOrchestrator(
            self.store, self.catalog, self.jobs, self.exclusions,
            clients_factory=self._clients_for,
        )

    def _clients_for(self, settings: Settings) -> ClientSet:
        # Mirror build_clients: only integrations enabled in this snapshot
        c = self.clients
        return ClientSet(
            radarr=c.radarr if settings.has_radarr else None,
            sonarr=c.sonarr if settings.has_sonarr else None,
            jellyfin=c.jellyfin if settings.has_jellyfin else None,
            bridge=c.bridge if settings.has_symlink_library else None,
            jellyseerr=c.jellyseerr if settings.has_jellyseerr else None,
            jellystat=c.jellystat if settings.has_jellystat else None,
        )

    async def use(self, settings: Settings):
        await self.store.replace(settings)

    async def full_sync(self):
        return await self.orchestrator.run_sync("full_sync")

    async def incremental_sync(self):
        return await self.orchestrator.run_sync("incremental_sync")
