"""Prunarr: FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from prunarr.config import ConfigStore, settings
from prunarr.api import config, health, media, sync
from prunarr.logging_config import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    from prunarr.database import async_session, init_db
    from prunarr.services.catalog import MediaCatalog
    from prunarr.services.exclusions import ExclusionManager
    from prunarr.services.integration_probe import probe_all
    from prunarr.services.jobs import JobRecorder
    from prunarr.services.scheduler import SyncScheduler
    from prunarr.services.sync import SyncOrchestrator

    configure_logging(settings.log_level, settings.debug)
    await init_db()

    store = ConfigStore(settings)
    catalog = MediaCatalog()
    jobs = JobRecorder(async_session, max_jobs=settings.max_jobs)
    exclusions = ExclusionManager(async_session, catalog, store.get)
    orchestrator = SyncOrchestrator(store, catalog, jobs, exclusions)
    scheduler = SyncScheduler(orchestrator)

    app.state.config_store = store
    app.state.catalog = catalog
    app.state.jobs = jobs
    app.state.exclusions = exclusions
    app.state.orchestrator = orchestrator
    app.state.scheduler = scheduler
    app.state.integrations = await probe_all(settings)

    if settings.app.dry_run:
        logger.info("DRY RUN mode: no symlinks or libraries are changed and nothing is deleted")
    elif not settings.app.enable_deletion:
        logger.info("Deletion disabled: overdue items are reported only")

    scheduler.start(settings)
    yield
    scheduler.stop()
    from prunarr.database import engine
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description="Retention rules and leaving-soon previews for a self-hosted media library",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", f"http://localhost:{settings.port}"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Mount routers ────────────────────────────────────────────────
app.include_router(health.router,  prefix="/api/v1", tags=["system"])
app.include_router(sync.router,    prefix="/api/v1", tags=["sync"])
app.include_router(media.router,   prefix="/api/v1", tags=["media"])
app.include_router(config.router,  prefix="/api/v1", tags=["config"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("prunarr.main:app", host=settings.host, port=settings.port)
