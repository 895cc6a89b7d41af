"""Jellyfin client: IMediaServer implementation, plus the symlink bridge plugin.

Handles: item listing with provider IDs and user data, item removal,
library refresh, virtual folder (library) management. The bridge plugin
lives under ``/api/oxicleanarr`` on the same server and creates/removes
symlinks on the server's filesystem on our behalf.
"""

import logging
import posixpath
from typing import Optional

from prunarr.clients.base import (
    HttpClient, IMediaServer, ISymlinkBridge,
    PluginStatus, ServerItem, SymlinkEntry, SymlinkRequest, SymlinkResult, VirtualFolder,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

ITEM_FIELDS = "Path,DateCreated,ProviderIds"
BRIDGE_PREFIX = "/api/oxicleanarr"


def _int_or_none(value) -> Optional[int]:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def _pick(d: dict, *keys, default=None):
    """First present key; the plugin and server disagree on casing."""
    for k in keys:
        if k in d and d[k] is not None:
            return d[k]
    return default


class JellyfinClient(HttpClient, IMediaServer):
    """Jellyfin implementation of IMediaServer."""

    def _headers(self) -> dict:
        return {"X-Emby-Token": self.api_key, "Accept": "application/json"}

    # ── IMediaServer implementation ──────────────────────────────

    async def list_items(self, item_type: str) -> list[ServerItem]:
        data = await self._get("/Items", params={
            "IncludeItemTypes": item_type,
            "Recursive": "true",
            "Fields": ITEM_FIELDS,
            "EnableUserData": "true",
        }) or {}
        items = [self._parse_item(i) for i in data.get("Items", [])]
        logger.debug(f"Jellyfin: {len(items)} items of type {item_type}")
        return items

    async def delete_item(self, item_id: str) -> None:
        await self._request("DELETE", f"/Items/{item_id}")
        logger.info(f"Jellyfin: removed item {item_id}")

    async def refresh_library(self) -> None:
        await self._request("POST", "/Library/Refresh")
        logger.info("Jellyfin: library refresh requested")

    async def list_virtual_folders(self) -> list[VirtualFolder]:
        folders = await self._get("/Library/VirtualFolders") or []
        return [
            VirtualFolder(
                name=f.get("Name", ""),
                collection_type=f.get("CollectionType"),
                locations=list(f.get("Locations") or []),
                item_id=f.get("ItemId"),
            )
            for f in folders
        ]

    async def create_virtual_folder(self, name: str, collection_type: str, paths: list[str]) -> None:
        # Scanning is left to the explicit refresh after symlink changes
        params = [
            ("name", name),
            ("collectionType", collection_type),
            ("refreshLibrary", "false"),
        ] + [("paths", p) for p in paths]
        await self._request("POST", "/Library/VirtualFolders", params=params)
        logger.info(f"Jellyfin: created library '{name}' ({collection_type}) at {paths}")

    async def delete_virtual_folder(self, name: str) -> None:
        await self._request("DELETE", "/Library/VirtualFolders",
                            params={"name": name, "refreshLibrary": "false"})
        logger.info(f"Jellyfin: deleted library '{name}'")

    async def add_virtual_folder_path(self, name: str, path: str) -> None:
        await self._request(
            "POST", "/Library/VirtualFolders/Paths",
            params={"refreshLibrary": "false"},
            json={"Name": name, "PathInfo": {"Path": path}},
        )
        logger.info(f"Jellyfin: added path {path} to library '{name}'")

    async def test_connection(self) -> bool:
        try:
            await self._get("/System/Info")
            return True
        except Exception as e:
            logger.warning(f"Jellyfin connection test failed: {e}")
            return False

    # ── Internal helpers ─────────────────────────────────────────

    @staticmethod
    def _parse_item(i: dict) -> ServerItem:
        providers = {k.lower(): v for k, v in (i.get("ProviderIds") or {}).items()}
        user_data = i.get("UserData") or {}
        return ServerItem(
            id=str(i.get("Id", "")),
            name=i.get("Name", ""),
            item_type=i.get("Type", ""),
            year=i.get("ProductionYear") or None,
            path=i.get("Path"),
            tmdb_id=_int_or_none(providers.get("tmdb")),
            tvdb_id=_int_or_none(providers.get("tvdb")),
            play_count=int(user_data.get("PlayCount") or 0),
            last_played_at=parse_timestamp(user_data.get("LastPlayedDate")),
            played=bool(user_data.get("Played", False)),
        )


class JellyfinBridgeClient(HttpClient, ISymlinkBridge):
    """Symlink bridge plugin installed in Jellyfin."""

    def _headers(self) -> dict:
        return {"X-Emby-Token": self.api_key, "Accept": "application/json"}

    async def status(self) -> PluginStatus:
        data = await self._get(f"{BRIDGE_PREFIX}/status") or {}
        return PluginStatus(
            available=True,
            version=_pick(data, "version", "Version"),
            message=_pick(data, "message", "Message", "status", "Status"),
        )

    async def list_symlinks(self, directory: str) -> list[SymlinkEntry]:
        data = await self._get(f"{BRIDGE_PREFIX}/symlinks/list", params={"directory": directory}) or {}
        entries = []
        for s in _pick(data, "symlinks", "Symlinks", default=[]):
            if isinstance(s, str):
                entries.append(SymlinkEntry(path=s))
                continue
            entries.append(SymlinkEntry(
                path=_pick(s, "path", "Path", default=""),
                target=_pick(s, "target", "Target"),
            ))
        return entries

    async def add_symlinks(self, items: list[SymlinkRequest]) -> SymlinkResult:
        body = {
            "items": [
                {"source_path": i.source_path, "target_directory": i.target_directory}
                for i in items
            ],
            "dry_run": False,
        }
        data = await self._request("POST", f"{BRIDGE_PREFIX}/symlinks/add", json=body) or {}
        created = _pick(data, "created_symlinks", "CreatedSymlinks")
        if created is None:
            created = [posixpath.join(i.target_directory, posixpath.basename(i.source_path)) for i in items]
        result = SymlinkResult(
            success=bool(_pick(data, "success", "Success", default=True)),
            paths=list(created),
            errors=list(_pick(data, "errors", "Errors", default=[])),
        )
        logger.info(f"Bridge: created {len(result.paths)} symlinks ({len(result.errors)} errors)")
        return result

    async def remove_symlinks(self, paths: list[str]) -> SymlinkResult:
        body = {"paths": list(paths), "dry_run": False}
        data = await self._request("POST", f"{BRIDGE_PREFIX}/symlinks/remove", json=body) or {}
        result = SymlinkResult(
            success=bool(_pick(data, "success", "Success", default=True)),
            paths=list(_pick(data, "removed_symlinks", "RemovedSymlinks", default=paths)),
            errors=list(_pick(data, "errors", "Errors", default=[])),
        )
        logger.info(f"Bridge: removed {len(result.paths)} symlinks ({len(result.errors)} errors)")
        return result
