"""Jellyseerr client: IRequestTracker implementation."""

import logging

from prunarr.clients.base import HttpClient, IRequestTracker, MediaRequest, parse_timestamp

logger = logging.getLogger(__name__)

PAGE_SIZE = 50

# Request status 2 = approved, 5 = available (approved and downloaded)
COUNTED_STATUSES = {2, 5}


class JellyseerrClient(HttpClient, IRequestTracker):
    """Jellyseerr v1 API."""

    async def list_requests(self) -> list[MediaRequest]:
        """Pull every request page by page and keep approved/available ones."""
        requests = []
        skip = 0

        while True:
            data = await self._get("/api/v1/request", params={"take": PAGE_SIZE, "skip": skip}) or {}
            results = data.get("results", [])
            if not results:
                break

            for r in results:
                req = self._parse_request(r)
                if req.status in COUNTED_STATUSES:
                    requests.append(req)

            skip += PAGE_SIZE
            pages = (data.get("pageInfo") or {}).get("pages", 0)
            if skip // PAGE_SIZE >= pages:
                break

        logger.debug(f"Jellyseerr: {len(requests)} approved/available requests")
        return requests

    async def test_connection(self) -> bool:
        try:
            await self._get("/api/v1/status")
            return True
        except Exception as e:
            logger.warning(f"Jellyseerr connection test failed: {e}")
            return False

    # ── Internal helpers ─────────────────────────────────────────

    @staticmethod
    def _parse_request(r: dict) -> MediaRequest:
        media = r.get("media") or {}
        user = r.get("requestedBy") or {}
        # Display name first, then the linked Jellyfin account, then the local username
        username = user.get("displayName") or user.get("jellyfinUsername") or user.get("username") or None
        return MediaRequest(
            request_id=int(r.get("id", 0)),
            media_type=r.get("type") or media.get("mediaType") or "",
            tmdb_id=media.get("tmdbId") or None,
            tvdb_id=media.get("tvdbId") or None,
            status=int(r.get("status") or 0),
            user_id=user.get("id") or None,
            username=username,
            email=user.get("email") or None,
            created_at=parse_timestamp(r.get("createdAt")),
        )
