"""Re-export models for import convenience."""

from prunarr.models.media import MediaItem, MediaType, MatchStatus  # noqa: F401
from prunarr.models.tables import Exclusion, SyncJob  # noqa: F401
