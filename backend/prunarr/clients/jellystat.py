"""Jellystat client: IWatchHistoryProvider implementation."""

import logging

from prunarr.clients.base import HistoryRecord, HttpClient, IWatchHistoryProvider, parse_timestamp

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


class JellystatClient(HttpClient, IWatchHistoryProvider):
    """Jellystat implementation of IWatchHistoryProvider."""

    def _headers(self) -> dict:
        return {"x-api-token": self.api_key, "Accept": "application/json"}

    async def list_history(self) -> list[HistoryRecord]:
        """Pull the full playback history.

        Jellystat paginates with 1-based ``page`` and reports the page count;
        we stop at the last page or on the first empty one.
        """
        records = []
        page = 1

        while True:
            data = await self._get("/api/getHistory", params={"page": page, "size": PAGE_SIZE}) or {}
            results = data.get("results", [])
            records.extend(self._parse_history_record(r) for r in results)

            if not results or page >= int(data.get("pages") or 0):
                break
            page += 1

        logger.debug(f"Jellystat: {len(records)} history records over {page} pages")
        return [r for r in records if r.item_id]

    async def test_connection(self) -> bool:
        try:
            await self._get("/api/getLibraries")
            return True
        except Exception as e:
            logger.warning(f"Jellystat connection test failed: {e}")
            return False

    # ── Internal helpers ─────────────────────────────────────────

    @staticmethod
    def _parse_history_record(r: dict) -> HistoryRecord:
        item_id = r.get("NowPlayingItemId") or r.get("NowPlayingItemID") or ""
        return HistoryRecord(
            item_id=str(item_id),
            user_name=r.get("UserName"),
            watched_at=parse_timestamp(r.get("ActivityDateInserted")),
            series_id=r.get("SeriesId") or None,
        )
