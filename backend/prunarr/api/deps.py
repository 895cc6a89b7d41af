"""FastAPI dependencies: engine components live on ``app.state``."""

from fastapi import Request

from prunarr.config import ConfigStore
from prunarr.services.catalog import MediaCatalog
from prunarr.services.exclusions import ExclusionManager
from prunarr.services.jobs import JobRecorder
from prunarr.services.scheduler import SyncScheduler
from prunarr.services.sync import SyncOrchestrator


def get_config_store(request: Request) -> ConfigStore:
    return request.app.state.config_store


def get_catalog(request: Request) -> MediaCatalog:
    return request.app.state.catalog


def get_jobs(request: Request) -> JobRecorder:
    return request.app.state.jobs


def get_exclusions(request: Request) -> ExclusionManager:
    return request.app.state.exclusions


def get_orchestrator(request: Request) -> SyncOrchestrator:
    return request.app.state.orchestrator


def get_scheduler(request: Request) -> SyncScheduler | None:
    return getattr(request.app.state, "scheduler", None)
