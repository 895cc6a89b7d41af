"""Radarr client: IMediaManager implementation for movies."""

import logging

from prunarr.clients.base import HttpClient, IMediaManager, ManagerEntry, parse_timestamp

logger = logging.getLogger(__name__)


class RadarrClient(HttpClient, IMediaManager):
    """Radarr v3 API."""

    name = "radarr"

    async def get_tag_labels(self) -> dict[int, str]:
        tags = await self._get("/api/v3/tag") or []
        return {t["id"]: t.get("label", "") for t in tags if "id" in t}

    # ── IMediaManager implementation ──────────────────────────────

    async def list_entries(self) -> list[ManagerEntry]:
        """Movies with a file on disk. Movies without files have nothing to clean up."""
        movies = await self._get("/api/v3/movie") or []
        labels = await self.get_tag_labels()

        entries = []
        for m in movies:
            if not m.get("hasFile"):
                continue
            entries.append(self._parse_movie(m, labels))

        logger.debug(f"Radarr: {len(entries)} movies with files (of {len(movies)})")
        return entries

    async def delete_entry(self, manager_id: int, delete_files: bool = True) -> None:
        await self._request(
            "DELETE",
            f"/api/v3/movie/{manager_id}",
            params={"deleteFiles": str(delete_files).lower(), "addImportExclusion": "false"},
        )
        logger.info(f"Radarr: deleted movie {manager_id} (files={delete_files})")

    async def test_connection(self) -> bool:
        try:
            await self._get("/api/v3/system/status")
            return True
        except Exception as e:
            logger.warning(f"Radarr connection test failed: {e}")
            return False

    # ── Internal helpers ─────────────────────────────────────────

    @staticmethod
    def _parse_movie(m: dict, labels: dict[int, str]) -> ManagerEntry:
        movie_file = m.get("movieFile") or {}
        return ManagerEntry(
            manager_id=int(m["id"]),
            title=m.get("title", ""),
            year=m.get("year") or None,
            tmdb_id=m.get("tmdbId") or None,
            imdb_id=m.get("imdbId") or None,
            path=movie_file.get("path") or m.get("path"),
            size_on_disk=int(m.get("sizeOnDisk") or movie_file.get("size") or 0),
            added_at=parse_timestamp(m.get("added")),
            has_file=True,
            tags=[labels[t] for t in m.get("tags", []) if t in labels],
        )
