"""Configuration view and reload."""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from prunarr.api.deps import get_config_store, get_scheduler
from prunarr.config import ConfigStore, Settings
from prunarr.services.scheduler import SyncScheduler

router = APIRouter()


def redacted(settings: Settings) -> dict:
    """Settings as JSON with API keys masked."""
    data = settings.model_dump(mode="json")
    for integration in data.get("integrations", {}).values():
        if integration.get("api_key"):
            integration["api_key"] = "********"
    return data


@router.get("/config")
async def get_config(store: ConfigStore = Depends(get_config_store)):
    return redacted(store.get())


@router.post("/config/reload")
async def reload_config(
    store: ConfigStore = Depends(get_config_store),
    scheduler: SyncScheduler | None = Depends(get_scheduler),
):
    """Re-read environment / .env. Invalid configuration is rejected and the old one stays active."""
    try:
        settings = await store.reload()
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if scheduler is not None:
        scheduler.reschedule(settings)
    return redacted(settings)
