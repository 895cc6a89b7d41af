"""Per-item "never delete" overrides, persisted in the database.

Changes re-stamp the catalog item immediately so read APIs reflect them;
symlink removal/re-adding follows on the next sync cycle.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import select

from prunarr.config import Settings
from prunarr.exceptions import MediaNotFoundError
from prunarr.models.tables import Exclusion
from prunarr.services import rules
from prunarr.services.catalog import MediaCatalog

logger = logging.getLogger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def exclusion_to_dict(row: Exclusion) -> dict:
    return {
        "item_id": row.item_id,
        "media_type": row.media_type,
        "title": row.title,
        "reason": row.reason,
        "excluded_by": row.excluded_by,
        "excluded_at": _aware(row.excluded_at).isoformat() if row.excluded_at else None,
    }


class ExclusionManager:

    def __init__(self, session_factory, catalog: MediaCatalog, get_settings: Callable[[], Settings]):
        self._session_factory = session_factory
        self._catalog = catalog
        self._get_settings = get_settings

    async def exclude(self, item_id: str, reason: str = "", excluded_by: Optional[str] = None) -> dict:
        """Exclude an item. Re-excluding updates the reason."""
        async with self._catalog.lock:
            item = self._catalog.get(item_id)
            if item is None:
                raise MediaNotFoundError(item_id)

            now = datetime.now(timezone.utc)
            async with self._session_factory() as session:
                row = await session.get(Exclusion, item_id)
                if row is None:
                    row = Exclusion(item_id=item_id, excluded_at=now)
                    session.add(row)
                row.media_type = item.media_type.value
                row.title = item.title
                row.reason = reason
                row.excluded_by = excluded_by
                await session.commit()
                data = exclusion_to_dict(row)

            item.excluded = True
            item.exclusion_reason = reason
            item.excluded_at = _aware(row.excluded_at) or now
            rules.stamp(item, self._get_settings(), self._catalog.history_available)

        logger.info(f"Excluded {item_id} ('{item.title}'): {reason or 'no reason given'}")
        return data

    async def remove_exclusion(self, item_id: str) -> bool:
        """Drop an exclusion. Returns False when there was none."""
        async with self._catalog.lock:
            async with self._session_factory() as session:
                row = await session.get(Exclusion, item_id)
                existed = row is not None
                if existed:
                    await session.delete(row)
                    await session.commit()

            item = self._catalog.get(item_id)
            if item is not None and item.excluded:
                item.excluded = False
                item.exclusion_reason = None
                item.excluded_at = None
                rules.stamp(item, self._get_settings(), self._catalog.history_available)

        if existed:
            logger.info(f"Removed exclusion for {item_id}")
        return existed

    async def list_exclusions(self) -> list[dict]:
        async with self._session_factory() as session:
            result = await session.execute(select(Exclusion).order_by(Exclusion.excluded_at.desc()))
            return [exclusion_to_dict(r) for r in result.scalars().all()]

    async def load(self) -> dict[str, Exclusion]:
        """All exclusions keyed by item ID, for the sync cycle."""
        async with self._session_factory() as session:
            result = await session.execute(select(Exclusion))
            return {r.item_id: r for r in result.scalars().all()}

    @staticmethod
    def apply(items, exclusions: dict[str, Exclusion]) -> int:
        """Set exclusion fields on items. Returns how many are excluded."""
        count = 0
        for item in items:
            row = exclusions.get(item.id)
            item.excluded = row is not None
            item.exclusion_reason = row.reason if row else None
            item.excluded_at = _aware(row.excluded_at) if row else None
            count += item.excluded
        return count
