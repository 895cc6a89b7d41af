"""Media catalog and exclusion endpoints."""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from prunarr.api.deps import get_catalog, get_config_store, get_exclusions, get_orchestrator
from prunarr.config import ConfigStore
from prunarr.exceptions import DeletionError, MediaNotFoundError, SyncInProgressError
from prunarr.models import MediaItem, MediaType
from prunarr.services.catalog import MediaCatalog
from prunarr.services.exclusions import ExclusionManager
from prunarr.services.sync import SyncOrchestrator

router = APIRouter()


class ExcludeRequest(BaseModel):
    reason: str = ""
    excluded_by: Optional[str] = None


def _page(items: list[MediaItem], now: datetime) -> dict:
    items = sorted(items, key=lambda i: i.title.lower())
    return {"items": [i.to_dict(now) for i in items], "total": len(items)}


@router.get("/media")
async def list_media(
    title: Optional[str] = Query(None, min_length=1),
    catalog: MediaCatalog = Depends(get_catalog),
):
    """All media, or title matches when ``title`` is given."""
    now = datetime.now(timezone.utc)
    items = catalog.find_by_title(title) if title else catalog.all_items()
    return _page(items, now)


@router.get("/media/movies")
async def list_movies(catalog: MediaCatalog = Depends(get_catalog)):
    return _page(catalog.all_items(MediaType.MOVIE), datetime.now(timezone.utc))


@router.get("/media/shows")
async def list_shows(catalog: MediaCatalog = Depends(get_catalog)):
    return _page(catalog.all_items(MediaType.TV_SHOW), datetime.now(timezone.utc))


@router.get("/media/leaving-soon")
async def list_leaving_soon(
    catalog: MediaCatalog = Depends(get_catalog),
    store: ConfigStore = Depends(get_config_store),
):
    """Items inside the preview window, soonest first."""
    now = datetime.now(timezone.utc)
    items = catalog.leaving_soon(now, store.get().app.leaving_soon_days)
    return {"items": [i.to_dict(now) for i in items], "total": len(items)}


@router.get("/media/unmatched")
async def list_unmatched(
    catalog: MediaCatalog = Depends(get_catalog),
    store: ConfigStore = Depends(get_config_store),
):
    """Items Jellyfin could not be matched to, with the reason for each."""
    if not store.get().has_jellyfin:
        return {"items": [], "total": 0}
    now = datetime.now(timezone.utc)
    items = catalog.unmatched()
    return {"items": [i.to_dict(now) for i in items], "total": len(items)}


@router.get("/media/{item_id}")
async def get_media(item_id: str, catalog: MediaCatalog = Depends(get_catalog)):
    item = catalog.get(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"media item {item_id} not found")
    return item.to_dict(datetime.now(timezone.utc))


@router.delete("/media/{item_id}")
async def delete_media(item_id: str, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    try:
        outcome = await orchestrator.delete_media(item_id)
    except MediaNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except SyncInProgressError as e:
        raise HTTPException(status_code=409, detail=e.message)
    except DeletionError as e:
        raise HTTPException(status_code=502, detail=e.message)
    return {"item_id": item_id, **outcome.to_dict()}


@router.post("/media/{item_id}/exclude")
async def exclude_media(
    item_id: str,
    body: ExcludeRequest,
    exclusions: ExclusionManager = Depends(get_exclusions),
    catalog: MediaCatalog = Depends(get_catalog),
):
    try:
        await exclusions.exclude(item_id, body.reason, body.excluded_by)
    except MediaNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return catalog.get(item_id).to_dict(datetime.now(timezone.utc))


@router.delete("/media/{item_id}/exclude")
async def remove_exclusion(
    item_id: str,
    exclusions: ExclusionManager = Depends(get_exclusions),
):
    removed = await exclusions.remove_exclusion(item_id)
    return {"item_id": item_id, "removed": removed}


@router.get("/exclusions")
async def list_exclusions(exclusions: ExclusionManager = Depends(get_exclusions)):
    rows = await exclusions.list_exclusions()
    return {"exclusions": rows, "total": len(rows)}
