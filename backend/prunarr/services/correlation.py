"""Fuse per-service records into MediaItems.

Each source owns a slice of the record:

- media manager: identity, file facts, tags (builds the item)
- media server: server ID and watch state, matched by TMDB (movies) / TVDB (series)
- request tracker: requester identity, matched by TMDB / TVDB
- history tracker: watch count and latest watch, matched by server item ID

``apply_*`` functions reset their own slice before applying, so a source
that returned nothing (disabled or degraded) leaves no stale data behind.
Callers skip ``apply_server_items`` when the server fetch failed to keep
the previous watch state.
"""

import logging
import re
from dataclasses import replace
from datetime import datetime
from typing import Optional

from prunarr.clients.base import HistoryRecord, ManagerEntry, MediaRequest, ServerItem
from prunarr.models.media import MatchStatus, MediaItem, MediaType

logger = logging.getLogger(__name__)

ID_PREFIX = {MediaType.MOVIE: "radarr", MediaType.TV_SHOW: "sonarr"}

_SERVER_FIELDS = ("jellyfin_id", "play_count", "last_played_at", "played", "match_status", "mismatch_info")
_CARRIED_FIELDS = _SERVER_FIELDS + ("symlink_path",)


def item_id(media_type: MediaType, manager_id: int) -> str:
    return f"{ID_PREFIX[media_type]}-{manager_id}"


def normalize_title(title: str) -> str:
    return re.sub(r"[^a-z0-9]+", "", title.lower())


# ── Manager ──────────────────────────────────────────────────────

def build_items(
    entries: list[ManagerEntry],
    media_type: MediaType,
    previous: Optional[dict[str, MediaItem]] = None,
) -> dict[str, MediaItem]:
    """Create fresh items from manager entries.

    Server watch state and the current symlink path carry over from
    ``previous`` so a failed server fetch does not wipe them.
    """
    previous = previous or {}
    items: dict[str, MediaItem] = {}
    skipped = 0

    for e in entries:
        if not (e.tmdb_id or e.tvdb_id or e.imdb_id):
            logger.warning(f"Skipping '{e.title}' ({ID_PREFIX[media_type]} id {e.manager_id}): no external ID")
            skipped += 1
            continue

        item = MediaItem(
            id=item_id(media_type, e.manager_id),
            media_type=media_type,
            title=e.title,
            year=e.year,
            tmdb_id=e.tmdb_id,
            tvdb_id=e.tvdb_id,
            imdb_id=e.imdb_id,
            file_path=e.path,
            file_size=e.size_on_disk,
            added_at=e.added_at,
            tags=list(e.tags),
        )
        if media_type == MediaType.MOVIE:
            item.radarr_id = e.manager_id
        else:
            item.sonarr_id = e.manager_id

        old = previous.get(item.id)
        if old is not None:
            for name in _CARRIED_FIELDS:
                setattr(item, name, getattr(old, name))
        items[item.id] = item

    if skipped:
        logger.info(f"{skipped} {media_type.value} entries skipped during correlation")
    return items


def copy_items(items: dict[str, MediaItem]) -> dict[str, MediaItem]:
    """Shallow per-item copies for an incremental refresh."""
    return {k: replace(v, tags=list(v.tags)) for k, v in items.items()}


# ── Media server ─────────────────────────────────────────────────

def apply_server_items(items: dict[str, MediaItem], server_items: list[ServerItem], media_type: MediaType) -> dict:
    """Attach server ID and watch state. Returns match statistics."""
    by_provider: dict[int, ServerItem] = {}
    by_title: dict[tuple[str, Optional[int]], ServerItem] = {}
    for s in server_items:
        key = s.tmdb_id if media_type == MediaType.MOVIE else s.tvdb_id
        if key:
            by_provider.setdefault(key, s)
        by_title.setdefault((normalize_title(s.name), s.year), s)

    stats = {"matched": 0, "metadata_mismatch": 0, "not_found": 0}
    for item in items.values():
        item.jellyfin_id = None
        item.play_count = 0
        item.last_played_at = None
        item.played = False
        item.mismatch_info = None

        key = item.tmdb_id if media_type == MediaType.MOVIE else item.tvdb_id
        server = by_provider.get(key) if key else None
        same_title = by_title.get((normalize_title(item.title), item.year))
        if server is not None:
            item.jellyfin_id = server.id
            item.play_count = server.play_count
            item.last_played_at = server.last_played_at
            item.played = server.played
            item.match_status = MatchStatus.MATCHED
        elif same_title is not None:
            # Present in the server under a different provider ID; do not trust its watch state
            item.match_status = MatchStatus.METADATA_MISMATCH
            item.mismatch_info = _mismatch_info(item, same_title, media_type)
        else:
            item.match_status = MatchStatus.NOT_FOUND
            item.mismatch_info = "Item not found in Jellyfin library"
        stats[item.match_status.value] += 1

    if stats["metadata_mismatch"]:
        logger.warning(
            f"{stats['metadata_mismatch']} {media_type.value} items found in Jellyfin with mismatched provider IDs"
        )
    if stats["not_found"]:
        logger.info(f"{stats['not_found']} {media_type.value} items not found in Jellyfin")
    return stats


def _mismatch_info(item: MediaItem, server: ServerItem, media_type: MediaType) -> str:
    if media_type == MediaType.MOVIE:
        provider, theirs, ours = "TMDB", server.tmdb_id, item.tmdb_id
    else:
        provider, theirs, ours = "TVDB", server.tvdb_id, item.tvdb_id
    return f"Jellyfin has wrong metadata ({provider} {theirs or 'none'} instead of {ours})"


# ── Request tracker ──────────────────────────────────────────────

def apply_requests(items: dict[str, MediaItem], requests: list[MediaRequest], media_type: MediaType) -> int:
    """Mark requested items with requester identity. Returns number matched."""
    index: dict[int, MediaRequest] = {}
    for r in requests:
        if media_type == MediaType.MOVIE and r.media_type == "movie" and r.tmdb_id:
            index.setdefault(r.tmdb_id, r)
        elif media_type == MediaType.TV_SHOW and r.media_type == "tv" and r.tvdb_id:
            index.setdefault(r.tvdb_id, r)

    matched = 0
    for item in items.values():
        item.is_requested = False
        item.requested_by_user_id = None
        item.requested_by_username = None
        item.requested_by_email = None

        key = item.tmdb_id if media_type == MediaType.MOVIE else item.tvdb_id
        req = index.get(key) if key else None
        if req is None:
            continue
        item.is_requested = True
        item.requested_by_user_id = req.user_id
        item.requested_by_username = req.username
        item.requested_by_email = req.email
        matched += 1
    return matched


# ── History tracker ──────────────────────────────────────────────

def aggregate_history(records: list[HistoryRecord]) -> dict[str, tuple[int, Optional[datetime]]]:
    """Server item ID -> (watch count, latest watch). Episode plays count toward their series."""
    agg: dict[str, list] = {}
    for r in records:
        for key in {r.item_id, r.series_id} - {None, ""}:
            entry = agg.setdefault(key, [0, None])
            entry[0] += 1
            if r.watched_at and (entry[1] is None or r.watched_at > entry[1]):
                entry[1] = r.watched_at
    return {k: (v[0], v[1]) for k, v in agg.items()}


def apply_history(items: dict[str, MediaItem], records: list[HistoryRecord]) -> int:
    """History tracker is authoritative for watch count and latest watch."""
    agg = aggregate_history(records)
    matched = 0
    for item in items.values():
        item.history_watch_count = 0
        item.history_last_watched = None
        if not item.jellyfin_id or item.jellyfin_id not in agg:
            continue
        item.history_watch_count, item.history_last_watched = agg[item.jellyfin_id]
        matched += 1
    return matched
