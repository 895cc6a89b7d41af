"""Sonarr client: IMediaManager implementation for series."""

import logging

from prunarr.clients.base import HttpClient, IMediaManager, ManagerEntry, parse_timestamp

logger = logging.getLogger(__name__)


class SonarrClient(HttpClient, IMediaManager):
    """Sonarr v3 API. A series is the unit of retention."""

    name = "sonarr"

    async def get_tag_labels(self) -> dict[int, str]:
        tags = await self._get("/api/v3/tag") or []
        return {t["id"]: t.get("label", "") for t in tags if "id" in t}

    # ── IMediaManager implementation ──────────────────────────────

    async def list_entries(self) -> list[ManagerEntry]:
        """Series with at least one episode file."""
        series = await self._get("/api/v3/series") or []
        labels = await self.get_tag_labels()

        entries = []
        for s in series:
            stats = s.get("statistics") or {}
            if int(stats.get("episodeFileCount") or 0) == 0:
                continue
            entries.append(ManagerEntry(
                manager_id=int(s["id"]),
                title=s.get("title", ""),
                year=s.get("year") or None,
                tvdb_id=s.get("tvdbId") or None,
                tmdb_id=s.get("tmdbId") or None,
                imdb_id=s.get("imdbId") or None,
                path=s.get("path"),
                size_on_disk=int(stats.get("sizeOnDisk") or 0),
                added_at=parse_timestamp(s.get("added")),
                has_file=True,
                tags=[labels[t] for t in s.get("tags", []) if t in labels],
            ))

        logger.debug(f"Sonarr: {len(entries)} series with files (of {len(series)})")
        return entries

    async def delete_entry(self, manager_id: int, delete_files: bool = True) -> None:
        await self._request(
            "DELETE",
            f"/api/v3/series/{manager_id}",
            params={"deleteFiles": str(delete_files).lower(), "addImportListExclusion": "false"},
        )
        logger.info(f"Sonarr: deleted series {manager_id} (files={delete_files})")

    async def test_connection(self) -> bool:
        try:
            await self._get("/api/v3/system/status")
            return True
        except Exception as e:
            logger.warning(f"Sonarr connection test failed: {e}")
            return False
