"""Leaving-soon preview: diff desired symlinks against what the bridge reports.

For each media type the desired set is every leaving-soon item with a file
path, linked as ``<base_path>/<movies|tv>/<basename(source)>``. Items whose
basenames collide each get a ``<title> (<year>)`` subdirectory instead.
The reconciler only issues add/remove calls for the difference, so a second
pass over an unchanged catalog is a no-op. The matching media-server library
is created when needed and, with ``hide_when_empty``, deleted when the set
is empty.
"""

import logging
import posixpath
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import httpx

from prunarr.clients.base import IMediaServer, ISymlinkBridge, SymlinkRequest
from prunarr.config import Settings
from prunarr.exceptions import ReconciliationError
from prunarr.models.media import MediaItem, MediaType
from prunarr.services import rules

logger = logging.getLogger(__name__)

SUBDIRS = {MediaType.MOVIE: "movies", MediaType.TV_SHOW: "tv"}
COLLECTION_TYPES = {MediaType.MOVIE: "movies", MediaType.TV_SHOW: "tvshows"}


@dataclass
class TypeResult:
    directory: str
    library: str
    desired: int = 0
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    library_action: str = "none"          # none | created | path_added | deleted
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "directory": self.directory,
            "library": self.library,
            "desired": self.desired,
            "added": len(self.added),
            "removed": len(self.removed),
            "library_action": self.library_action,
            "errors": list(self.errors),
        }


@dataclass
class ReconcileResult:
    dry_run: bool
    types: dict[str, TypeResult] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return any(t.added or t.removed or t.library_action != "none" for t in self.types.values())

    @property
    def errors(self) -> list[str]:
        return [e for t in self.types.values() for e in t.errors]

    def to_dict(self) -> dict:
        return {
            "status": "error" if self.errors else "ok",
            "dry_run": self.dry_run,
            **{key: t.to_dict() for key, t in self.types.items()},
        }


def symlink_path(directory: str, source_path: str) -> str:
    return posixpath.join(directory, posixpath.basename(source_path.rstrip("/")))


_UNSAFE = re.compile(r'[\\/:*?"<>|]+')


def item_folder(item: MediaItem) -> str:
    name = f"{item.title} ({item.year})" if item.year else item.title
    return _UNSAFE.sub(" ", name).strip() or item.id


class SymlinkReconciler:

    def __init__(self, server: IMediaServer, bridge: ISymlinkBridge, settings: Settings):
        self.server = server
        self.bridge = bridge
        self.settings = settings
        self.library_cfg = settings.integrations.jellyfin.symlink_library
        self.dry_run = settings.app.dry_run

    def directory(self, media_type: MediaType) -> str:
        return posixpath.join(self.library_cfg.base_path, SUBDIRS[media_type])

    def library_name(self, media_type: MediaType) -> str:
        if media_type == MediaType.MOVIE:
            return self.library_cfg.movies_library_name
        return self.library_cfg.tv_library_name

    def desired(self, items: list[MediaItem], media_type: MediaType, now: datetime) -> dict[str, MediaItem]:
        """symlink path -> item, for leaving-soon items of one type."""
        directory = self.directory(media_type)
        candidates = [
            i for i in items
            if i.media_type == media_type and i.file_path
            and rules.is_leaving_soon(i, now, self.settings.app.leaving_soon_days)
        ]
        basename = lambda i: posixpath.basename(symlink_path(directory, i.file_path))  # noqa: E731
        names = Counter(basename(i) for i in candidates)
        # Same title and year too: only the item ID tells them apart
        folders = Counter((item_folder(i), basename(i)) for i in candidates if names[basename(i)] > 1)

        wanted = {}
        for item in candidates:
            if names[basename(item)] == 1:
                wanted[symlink_path(directory, item.file_path)] = item
                continue
            folder = item_folder(item)
            if folders[(folder, basename(item))] > 1:
                folder = f"{folder} [{item.id}]"
            wanted[symlink_path(posixpath.join(directory, folder), item.file_path)] = item
        return wanted

    async def reconcile(self, items: list[MediaItem], now: datetime) -> ReconcileResult:
        """Bring the preview libraries in line with the catalog.

        Raises ReconciliationError when the bridge is unreachable; per-type
        failures are collected in the result instead.
        """
        try:
            status = await self.bridge.status()
        except httpx.HTTPError as e:
            raise ReconciliationError(f"symlink bridge unavailable: {e}") from e
        if not status.available:
            raise ReconciliationError(f"symlink bridge unavailable: {status.message or 'unknown'}")

        try:
            folders = {f.name: f for f in await self.server.list_virtual_folders()}
        except httpx.HTTPError as e:
            raise ReconciliationError(f"cannot list Jellyfin libraries: {e}") from e

        result = ReconcileResult(dry_run=self.dry_run)
        for media_type in MediaType:
            type_result = TypeResult(self.directory(media_type), self.library_name(media_type))
            result.types[SUBDIRS[media_type]] = type_result
            try:
                await self._reconcile_type(media_type, items, now, folders, type_result)
            except httpx.HTTPError as e:
                logger.error(f"Symlink reconciliation for {SUBDIRS[media_type]} failed: {e}")
                type_result.errors.append(f"{SUBDIRS[media_type]}: {e}")

        if result.changed and not self.dry_run:
            try:
                await self.server.refresh_library()
            except httpx.HTTPError as e:
                logger.warning(f"Jellyfin library refresh failed: {e}")
                result.types[SUBDIRS[MediaType.MOVIE]].errors.append(f"refresh: {e}")

        return result

    async def _reconcile_type(self, media_type, items, now, folders, out: TypeResult) -> None:
        directory = out.directory
        wanted = self.desired(items, media_type, now)
        out.desired = len(wanted)

        actual = {e.path: e for e in await self.bridge.list_symlinks(directory)}
        # Disambiguation subdirectories from the previous pass are not in the top-level listing
        previous = {
            posixpath.dirname(i.symlink_path) for i in items
            if i.media_type == media_type and i.symlink_path
        }
        for sub in sorted(d for d in previous if d.startswith(directory + "/")):
            try:
                actual.update((e.path, e) for e in await self.bridge.list_symlinks(sub))
            except httpx.HTTPError as e:
                logger.debug(f"Cannot list {sub}, treating as empty: {e}")

        to_add = []
        for path, item in wanted.items():
            current = actual.get(path)
            if current is None or (current.target and current.target != item.file_path):
                to_add.append(path)
        stale = [p for p, e in actual.items()
                 if p not in wanted or (e.target and e.target != wanted[p].file_path)]

        if stale:
            if self.dry_run:
                logger.info(f"DRY RUN: would remove {len(stale)} symlinks from {directory}")
                out.removed = stale
            else:
                res = await self.bridge.remove_symlinks(stale)
                out.removed = stale
                out.errors.extend(res.errors)

        if to_add:
            requests = [SymlinkRequest(wanted[p].file_path, posixpath.dirname(p)) for p in to_add]
            if self.dry_run:
                logger.info(f"DRY RUN: would create {len(to_add)} symlinks in {directory}")
                out.added = to_add
            else:
                res = await self.bridge.add_symlinks(requests)
                out.added = to_add
                out.errors.extend(res.errors)

        # Catalog reflects the desired preview state
        for item in items:
            if item.media_type == media_type:
                item.symlink_path = None
        for path, item in wanted.items():
            item.symlink_path = path

        await self._ensure_visibility(media_type, bool(wanted), folders, out)

    async def _ensure_visibility(self, media_type, has_items: bool, folders, out: TypeResult) -> None:
        name = out.library
        folder = folders.get(name)

        if self.library_cfg.hide_when_empty and not has_items:
            if folder is None:
                return
            if self.dry_run:
                logger.info(f"DRY RUN: would delete empty library '{name}'")
            else:
                await self.server.delete_virtual_folder(name)
            out.library_action = "deleted"
            return

        if folder is None:
            if self.dry_run:
                logger.info(f"DRY RUN: would create library '{name}' at {out.directory}")
            else:
                await self.server.create_virtual_folder(name, COLLECTION_TYPES[media_type], [out.directory])
            out.library_action = "created"
        elif out.directory not in folder.locations:
            if self.dry_run:
                logger.info(f"DRY RUN: would add {out.directory} to library '{name}'")
            else:
                await self.server.add_virtual_folder_path(name, out.directory)
            out.library_action = "path_added"

    async def remove_item_symlink(self, item: MediaItem) -> Optional[str]:
        """Remove one item's preview symlink ahead of deletion."""
        path = item.symlink_path
        if not path:
            return None
        if self.dry_run:
            logger.info(f"DRY RUN: would remove symlink {path}")
        else:
            await self.bridge.remove_symlinks([path])
        item.symlink_path = None
        return path
