"""Final, irreversible deletion of overdue items.

Runs only when ``enable_deletion`` is on and ``dry_run`` is off. Each item
is handled independently; one failure never stops the batch.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import httpx

from prunarr.clients.base import IMediaManager, IMediaServer
from prunarr.config import Settings
from prunarr.exceptions import DeletionError, MediaNotFoundError
from prunarr.models.media import MediaItem, MediaType
from prunarr.services.catalog import MediaCatalog
from prunarr.services.symlinks import SymlinkReconciler

logger = logging.getLogger(__name__)


@dataclass
class DeletionOutcome:
    executed: bool
    deleted: list[dict] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "executed": self.executed,
            "deleted_count": len(self.deleted),
            "deleted_items": self.deleted,
            "errors": self.errors,
            "warnings": self.warnings,
        }


class DeletionExecutor:

    def __init__(
        self,
        catalog: MediaCatalog,
        managers: dict[MediaType, Optional[IMediaManager]],
        server: Optional[IMediaServer] = None,
        reconciler: Optional[SymlinkReconciler] = None,
    ):
        self.catalog = catalog
        self.managers = managers
        self.server = server
        self.reconciler = reconciler

    async def execute(self, items: list[MediaItem], settings: Settings, now: datetime) -> DeletionOutcome:
        if not settings.app.deletion_allowed:
            logger.info(
                f"Deletion skipped (enable_deletion={settings.app.enable_deletion}, dry_run={settings.app.dry_run})"
            )
            return DeletionOutcome(executed=False)

        outcome = DeletionOutcome(executed=True)
        for item in items:
            current = self.catalog.get(item.id) or item
            if current.excluded:
                logger.info(f"Skipping {item.id}: excluded since it was scheduled")
                continue
            if current.deletion_date is None or current.deletion_date > now:
                continue
            try:
                await self._delete_one(current, outcome)
            except DeletionError as e:
                logger.error(f"Deletion of '{current.title}' failed: {e.detail}")
                outcome.errors.append({"id": current.id, "title": current.title, "error": e.detail})
                continue

            self._record(current, outcome)

        logger.info(f"Deletion finished: {len(outcome.deleted)} deleted, {len(outcome.errors)} failed")
        return outcome

    async def delete_item(self, item_id: str, settings: Settings) -> DeletionOutcome:
        """Delete one item on request, regardless of its schedule or exclusion.

        Both safety gates still apply: with either closed nothing is touched
        and the outcome is not ``executed``. Raises ``MediaNotFoundError`` for
        an unknown ID and ``DeletionError`` when the media manager refuses.
        """
        item = self.catalog.get(item_id)
        if item is None:
            raise MediaNotFoundError(item_id)
        if not settings.app.deletion_allowed:
            logger.info(f"Would delete '{item.title}' ({item.id}); deletion is disabled")
            return DeletionOutcome(executed=False)

        outcome = DeletionOutcome(executed=True)
        await self._delete_one(item, outcome)
        self._record(item, outcome)
        return outcome

    def _record(self, item: MediaItem, outcome: DeletionOutcome) -> None:
        self.catalog.remove(item.id)
        outcome.deleted.append({
            "id": item.id,
            "title": item.title,
            "year": item.year,
            "type": item.media_type.value,
            "file_size": item.file_size,
        })

    async def _delete_one(self, item: MediaItem, outcome: DeletionOutcome) -> None:
        manager = self.managers.get(item.media_type)
        manager_id = item.radarr_id if item.media_type == MediaType.MOVIE else item.sonarr_id
        if manager is None or manager_id is None:
            raise DeletionError(item.id, "media manager not configured")

        if self.reconciler is not None:
            try:
                await self.reconciler.remove_item_symlink(item)
            except httpx.HTTPError as e:
                outcome.warnings.append(f"{item.id}: symlink removal failed: {e}")
                logger.warning(f"Symlink removal for {item.id} failed: {e}")

        try:
            await manager.delete_entry(manager_id, delete_files=True)
        except httpx.HTTPError as e:
            raise DeletionError(item.id, f"{manager.name} delete failed: {e}") from e

        # Manager deletion succeeded: from here on the item counts as deleted
        if self.server is not None and item.jellyfin_id:
            try:
                await self.server.delete_item(item.jellyfin_id)
            except httpx.HTTPError as e:
                outcome.warnings.append(f"{item.id}: Jellyfin removal failed: {e}")
                logger.warning(f"Jellyfin removal for {item.id} failed after manager deletion: {e}")

        logger.info(f"Deleted {item.media_type.value} '{item.title}' ({item.id})")
