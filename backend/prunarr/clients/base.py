"""Abstract interfaces for the external services.

Media managers (Radarr, Sonarr) own files, the media server (Jellyfin) owns
watch state and the preview libraries, the bridge plugin manages symlinks
on the server's filesystem, the request tracker (Jellyseerr) knows who
asked for what and the history tracker (Jellystat) knows who watched what.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

import httpx


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as returned by the *arr / Jellyfin APIs."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # Jellyfin emits 7 fractional digits; fromisoformat handles at most 6
    if "." in text:
        head, _, tail = text.partition(".")
        digits = ""
        rest = ""
        for i, ch in enumerate(tail):
            if not ch.isdigit():
                rest = tail[i:]
                break
            digits += ch
        text = f"{head}.{digits[:6]}{rest}" if digits else head + rest
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    # 0001-01-01 is the server's "never" marker
    if parsed.year <= 1:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class HttpClient:
    """Shared request plumbing: one AsyncClient per call, like the rest of the clients."""

    def __init__(self, url: str, api_key: str, timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> dict:
        return {"X-Api-Key": self.api_key, "Accept": "application/json"}

    async def _request(self, method: str, path: str, params: dict | list | None = None,
                       json: dict | list | None = None):
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.request(
                method,
                f"{self.url}{path}",
                params=params,
                json=json,
                headers=self._headers(),
            )
            resp.raise_for_status()
            if not resp.content:
                return None
            return resp.json()

    async def _get(self, path: str, params: dict | None = None):
        return await self._request("GET", path, params=params)


# ── Data Transfer Objects ────────────────────────────────────────

@dataclass
class ManagerEntry:
    """A movie (Radarr) or series (Sonarr) as the manager reports it."""
    manager_id: int
    title: str
    year: Optional[int] = None
    tmdb_id: Optional[int] = None
    tvdb_id: Optional[int] = None
    imdb_id: Optional[str] = None
    path: Optional[str] = None             # movie file, or series directory
    size_on_disk: int = 0
    added_at: Optional[datetime] = None
    has_file: bool = True
    tags: list[str] = field(default_factory=list)


@dataclass
class ServerItem:
    """A movie or series in the media server with its watch state."""
    id: str
    name: str
    item_type: str                          # "Movie" | "Series"
    year: Optional[int] = None
    path: Optional[str] = None
    tmdb_id: Optional[int] = None
    tvdb_id: Optional[int] = None
    play_count: int = 0
    last_played_at: Optional[datetime] = None
    played: bool = False


@dataclass
class MediaRequest:
    """An approved or available request from the request tracker."""
    request_id: int
    media_type: str                          # "movie" | "tv"
    tmdb_id: Optional[int] = None
    tvdb_id: Optional[int] = None
    status: int = 0
    user_id: Optional[int] = None
    username: Optional[str] = None
    email: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class HistoryRecord:
    """One playback entry from the watch-history tracker."""
    item_id: str                             # media-server item ID
    user_name: Optional[str] = None
    watched_at: Optional[datetime] = None
    series_id: Optional[str] = None          # for episode plays, the series item ID


@dataclass
class VirtualFolder:
    name: str
    collection_type: Optional[str] = None
    locations: list[str] = field(default_factory=list)
    item_id: Optional[str] = None


@dataclass
class SymlinkRequest:
    source_path: str
    target_directory: str


@dataclass
class SymlinkEntry:
    path: str
    target: Optional[str] = None


@dataclass
class PluginStatus:
    available: bool
    version: Optional[str] = None
    message: Optional[str] = None


@dataclass
class SymlinkResult:
    success: bool
    paths: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


# ── Abstract Interfaces ──────────────────────────────────────────

class IMediaManager(ABC):
    """Interface for media managers (Radarr for movies, Sonarr for series)."""

    name: str = "manager"

    @abstractmethod
    async def list_entries(self) -> list[ManagerEntry]:
        """All movies/series with files on disk, tags resolved to labels."""
        ...

    @abstractmethod
    async def delete_entry(self, manager_id: int, delete_files: bool = True) -> None:
        """Remove the entry and (by default) its files."""
        ...

    @abstractmethod
    async def test_connection(self) -> bool:
        ...


class IMediaServer(ABC):
    """Interface for the media server (Jellyfin)."""

    @abstractmethod
    async def list_items(self, item_type: str) -> list[ServerItem]:
        """All items of a type ("Movie" | "Series") with provider IDs and user data."""
        ...

    @abstractmethod
    async def delete_item(self, item_id: str) -> None:
        ...

    @abstractmethod
    async def refresh_library(self) -> None:
        ...

    @abstractmethod
    async def list_virtual_folders(self) -> list[VirtualFolder]:
        ...

    @abstractmethod
    async def create_virtual_folder(self, name: str, collection_type: str, paths: list[str]) -> None:
        ...

    @abstractmethod
    async def delete_virtual_folder(self, name: str) -> None:
        ...

    @abstractmethod
    async def add_virtual_folder_path(self, name: str, path: str) -> None:
        ...

    @abstractmethod
    async def test_connection(self) -> bool:
        ...


class ISymlinkBridge(ABC):
    """Interface for the server-side plugin that owns the preview symlinks."""

    @abstractmethod
    async def status(self) -> PluginStatus:
        ...

    @abstractmethod
    async def list_symlinks(self, directory: str) -> list[SymlinkEntry]:
        ...

    @abstractmethod
    async def add_symlinks(self, items: list[SymlinkRequest]) -> SymlinkResult:
        ...

    @abstractmethod
    async def remove_symlinks(self, paths: list[str]) -> SymlinkResult:
        ...


class IRequestTracker(ABC):
    """Interface for request trackers (Jellyseerr)."""

    @abstractmethod
    async def list_requests(self) -> list[MediaRequest]:
        """All approved/available requests across every page."""
        ...

    @abstractmethod
    async def test_connection(self) -> bool:
        ...


class IWatchHistoryProvider(ABC):
    """Interface for watch history sources (Jellystat)."""

    @abstractmethod
    async def list_history(self) -> list[HistoryRecord]:
        """Every playback record across every page."""
        ...

    @abstractmethod
    async def test_connection(self) -> bool:
        ...
