"""In-memory media catalog.

Readers never block: every write swaps whole per-type dicts or mutates a
single item between awaits. Writers that span awaits (a sync commit, an
exclusion change) hold ``lock`` so their read-modify-write is not
interleaved with another writer.
"""

import asyncio
from datetime import datetime
from typing import Optional

from prunarr.models.media import MatchStatus, MediaItem, MediaType
from prunarr.services import rules


class MediaCatalog:

    def __init__(self):
        self._items: dict[MediaType, dict[str, MediaItem]] = {t: {} for t in MediaType}
        self.lock = asyncio.Lock()
        self.history_available = False
        self.updated_at: Optional[datetime] = None

    # ── Writes (hold ``lock``) ───────────────────────────────────

    def put_type(self, media_type: MediaType, items: dict[str, MediaItem]) -> None:
        self._items[media_type] = dict(items)

    def remove(self, item_id: str) -> Optional[MediaItem]:
        for bucket in self._items.values():
            if item_id in bucket:
                return bucket.pop(item_id)
        return None

    # ── Reads ────────────────────────────────────────────────────

    def get(self, item_id: str) -> Optional[MediaItem]:
        for bucket in self._items.values():
            if item_id in bucket:
                return bucket[item_id]
        return None

    def by_type(self, media_type: MediaType) -> dict[str, MediaItem]:
        return dict(self._items[media_type])

    def all_items(self, media_type: Optional[MediaType] = None) -> list[MediaItem]:
        if media_type is not None:
            return list(self._items[media_type].values())
        return [i for bucket in self._items.values() for i in bucket.values()]

    def find_by_title(self, title: str) -> list[MediaItem]:
        """Exact (case-insensitive) title matches, else substring matches."""
        needle = title.strip().lower()
        items = self.all_items()
        exact = [i for i in items if i.title.lower() == needle]
        if exact:
            return exact
        return [i for i in items if needle in i.title.lower()]

    def leaving_soon(self, now: datetime, leaving_soon_days: int) -> list[MediaItem]:
        items = [i for i in self.all_items() if rules.is_leaving_soon(i, now, leaving_soon_days)]
        return sorted(items, key=lambda i: i.deletion_date)

    def overdue(self, now: datetime) -> list[MediaItem]:
        items = [i for i in self.all_items() if rules.is_overdue(i, now)]
        return sorted(items, key=lambda i: i.deletion_date)

    def unmatched(self) -> list[MediaItem]:
        """Items the media server could not be matched to, mismatches first."""
        items = [i for i in self.all_items() if i.match_status != MatchStatus.MATCHED]
        return sorted(items, key=lambda i: (i.match_status != MatchStatus.METADATA_MISMATCH, i.title.lower()))

    def __len__(self) -> int:
        return sum(len(b) for b in self._items.values())
