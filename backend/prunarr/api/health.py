"""Health and system status endpoints."""

from fastapi import APIRouter, Depends, Request
from datetime import datetime, timezone

from prunarr.api.deps import get_catalog, get_config_store, get_orchestrator
from prunarr.config import ConfigStore
from prunarr.models.media import MediaType
from prunarr.services.catalog import MediaCatalog
from prunarr.services.integration_probe import probe_all
from prunarr.services.sync import SyncOrchestrator

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Service health check: reports integration status from the last probe."""
    integrations = getattr(request.app.state, "integrations", {})
    return {
        "status": "ok",
        "version": "0.1.0",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "integrations": integrations,
    }


@router.post("/health/probe")
async def reprobe(request: Request, store: ConfigStore = Depends(get_config_store)):
    """Re-check reachability of every configured integration."""
    request.app.state.integrations = await probe_all(store.get())
    return request.app.state.integrations


@router.get("/stats")
async def system_stats(
    catalog: MediaCatalog = Depends(get_catalog),
    store: ConfigStore = Depends(get_config_store),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Catalog counters for the dashboard."""
    settings = store.get()
    now = datetime.now(timezone.utc)
    items = catalog.all_items()
    return {
        "movies": len(catalog.all_items(MediaType.MOVIE)),
        "tv_shows": len(catalog.all_items(MediaType.TV_SHOW)),
        "total_size": sum(i.file_size for i in items),
        "excluded": sum(1 for i in items if i.excluded),
        "leaving_soon": len(catalog.leaving_soon(now, settings.app.leaving_soon_days)),
        "overdue": len(catalog.overdue(now)),
        "dry_run": settings.app.dry_run,
        "enable_deletion": settings.app.enable_deletion,
        "sync": orchestrator.status(),
    }
