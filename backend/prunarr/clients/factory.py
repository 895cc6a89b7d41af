"""Build the client set for one sync cycle from a settings snapshot."""

from dataclasses import dataclass
from typing import Optional

from prunarr.clients.base import (
    IMediaManager, IMediaServer, IRequestTracker, ISymlinkBridge, IWatchHistoryProvider,
)
from prunarr.clients.jellyfin import JellyfinBridgeClient, JellyfinClient
from prunarr.clients.jellyseerr import JellyseerrClient
from prunarr.clients.jellystat import JellystatClient
from prunarr.clients.radarr import RadarrClient
from prunarr.clients.sonarr import SonarrClient
from prunarr.config import Settings


@dataclass
class ClientSet:
    """Clients for enabled integrations; ``None`` means disabled."""
    radarr: Optional[IMediaManager] = None
    sonarr: Optional[IMediaManager] = None
    jellyfin: Optional[IMediaServer] = None
    bridge: Optional[ISymlinkBridge] = None
    jellyseerr: Optional[IRequestTracker] = None
    jellystat: Optional[IWatchHistoryProvider] = None


def build_clients(settings: Settings) -> ClientSet:
    cfg = settings.integrations
    clients = ClientSet()
    if settings.has_radarr:
        clients.radarr = RadarrClient(cfg.radarr.url, cfg.radarr.api_key, cfg.radarr.timeout)
    if settings.has_sonarr:
        clients.sonarr = SonarrClient(cfg.sonarr.url, cfg.sonarr.api_key, cfg.sonarr.timeout)
    if settings.has_jellyfin:
        clients.jellyfin = JellyfinClient(cfg.jellyfin.url, cfg.jellyfin.api_key, cfg.jellyfin.timeout)
        if settings.has_symlink_library:
            clients.bridge = JellyfinBridgeClient(cfg.jellyfin.url, cfg.jellyfin.api_key, cfg.jellyfin.timeout)
    if settings.has_jellyseerr:
        clients.jellyseerr = JellyseerrClient(cfg.jellyseerr.url, cfg.jellyseerr.api_key, cfg.jellyseerr.timeout)
    if settings.has_jellystat:
        clients.jellystat = JellystatClient(cfg.jellystat.url, cfg.jellystat.api_key, cfg.jellystat.timeout)
    return clients
