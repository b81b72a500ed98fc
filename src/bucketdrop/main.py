"""Main application entrypoint for bucketdrop."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bucketdrop.api.v1 import routes_health
from bucketdrop.api.v1.routes_share import download_router, router as share_router
from bucketdrop.core.config import ConfigWatcher, SettingsStore, settings_store
from bucketdrop.core.logging import setup_logging
from bucketdrop.core.middleware import HTTPErrorLoggingMiddleware
from bucketdrop.shares.service import ShareService
from bucketdrop.storage.base import ShareStore
from bucketdrop.storage.local import LocalShareStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the burn queue, expiry sweeper and config watcher for the app's lifetime."""
    service: ShareService = app.state.share_service
    store: SettingsStore = app.state.settings_store
    stop = asyncio.Event()

    service.burn_queue.start()
    # The sweeper's first pass runs right away, not after one interval
    tasks = [
        asyncio.create_task(service.sweeper.run(stop)),
        asyncio.create_task(ConfigWatcher(store).run(stop)),
    ]
    settings = store.get()
    logger.info(
        "bucketdrop started",
        extra={
            "port": settings.port,
            "data_dir": settings.data_dir,
            "storage_backend": service.store.get_backend_name(),
        },
    )

    yield

    stop.set()
    await asyncio.gather(*tasks, return_exceptions=True)
    service.burn_queue.stop()
    logger.info("bucketdrop shutting down")


def create_app(store: SettingsStore | None = None, share_store: ShareStore | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        store: Settings store to read configuration from; defaults to the process-wide one
        share_store: Storage backend; defaults to the local filesystem under ``data_dir``

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    store = store or settings_store
    settings = store.get()

    setup_logging(settings)

    app = FastAPI(
        title=settings.service_name,
        version=settings.service_version,
        lifespan=lifespan,
    )
    app.state.settings_store = store
    app.state.share_service = ShareService(
        share_store or LocalShareStore(settings.uploads_dir, settings.staging_dir),
        store.get,
    )

    app.add_middleware(HTTPErrorLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Password"],
    )

    app.include_router(routes_health.router, tags=["health"])
    app.include_router(share_router)
    app.include_router(download_router)

    return app


# Export app instance for ASGI servers
app = create_app()
