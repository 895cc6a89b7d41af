"""Unified in-memory media record, fused from all integrations each cycle."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class MediaType(str, Enum):
    MOVIE = "movie"
    TV_SHOW = "tv_show"


class MatchStatus(str, Enum):
    """Outcome of matching a manager entry against the media server."""
    MATCHED = "matched"
    METADATA_MISMATCH = "metadata_mismatch"   # title matched, provider ID did not
    NOT_FOUND = "not_found"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class MediaItem:
    """A movie or series as seen across manager, server, tracker and history."""
    id: str                                  # radarr-<id> | sonarr-<id>
    media_type: MediaType
    title: str
    year: Optional[int] = None

    # Manager facts (authoritative for files)
    radarr_id: Optional[int] = None
    sonarr_id: Optional[int] = None
    tmdb_id: Optional[int] = None
    tvdb_id: Optional[int] = None
    imdb_id: Optional[str] = None
    file_path: Optional[str] = None
    file_size: int = 0
    added_at: Optional[datetime] = None
    tags: list[str] = field(default_factory=list)

    # Media server facts (authoritative for watch state)
    jellyfin_id: Optional[str] = None
    play_count: int = 0
    last_played_at: Optional[datetime] = None
    played: bool = False
    match_status: MatchStatus = MatchStatus.NOT_FOUND
    mismatch_info: Optional[str] = None

    # Request tracker
    is_requested: bool = False
    requested_by_user_id: Optional[int] = None
    requested_by_username: Optional[str] = None
    requested_by_email: Optional[str] = None

    # Watch-history tracker
    history_watch_count: int = 0
    history_last_watched: Optional[datetime] = None

    # Policy (recomputed every cycle)
    excluded: bool = False
    exclusion_reason: Optional[str] = None
    excluded_at: Optional[datetime] = None
    deletion_date: Optional[datetime] = None
    deletion_reason: Optional[str] = None
    rule_name: Optional[str] = None
    rule_kind: Optional[str] = None
    rule_retention: Optional[str] = None
    reference_event: str = "added"          # "added" | "last watched"

    # Reconciliation
    symlink_path: Optional[str] = None

    @property
    def last_watched(self) -> Optional[datetime]:
        """Most recent watch across history tracker and media server."""
        stamps = [t for t in (self.history_last_watched, self.last_played_at) if t is not None]
        return max(stamps) if stamps else None

    @property
    def has_watch_history(self) -> bool:
        return self.history_watch_count > 0

    def days_until_due(self, now: datetime) -> Optional[int]:
        if self.deletion_date is None:
            return None
        return (self.deletion_date - now).days

    def to_dict(self, now: Optional[datetime] = None) -> dict:
        data = {
            "id": self.id,
            "type": self.media_type.value,
            "title": self.title,
            "year": self.year,
            "radarr_id": self.radarr_id,
            "sonarr_id": self.sonarr_id,
            "tmdb_id": self.tmdb_id,
            "tvdb_id": self.tvdb_id,
            "imdb_id": self.imdb_id,
            "jellyfin_id": self.jellyfin_id,
            "file_path": self.file_path,
            "file_size": self.file_size,
            "added_at": _iso(self.added_at),
            "tags": list(self.tags),
            "play_count": self.play_count,
            "played": self.played,
            "last_watched": _iso(self.last_watched),
            "watch_count": self.history_watch_count,
            "match_status": self.match_status.value,
            "mismatch_info": self.mismatch_info,
            "is_requested": self.is_requested,
            "requested_by_user_id": self.requested_by_user_id,
            "requested_by_username": self.requested_by_username,
            "requested_by_email": self.requested_by_email,
            "excluded": self.excluded,
            "exclusion_reason": self.exclusion_reason,
            "deletion_date": _iso(self.deletion_date),
            "deletion_reason": self.deletion_reason,
            "rule_name": self.rule_name,
            "rule_kind": self.rule_kind,
            "retention": self.rule_retention,
            "symlink_path": self.symlink_path,
        }
        if now is not None:
            data["days_until_due"] = self.days_until_due(now)
        return data
