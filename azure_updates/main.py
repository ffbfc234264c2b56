"""
Azure Updates Search Service
Main FastAPI application
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from . import __version__
from .api import router as api_router
from .api_client import AzureUpdatesClient
from .config import Settings, get_settings
from .database import Database
from .logger import get_logger, setup_logger
from .retry import RetryOptions
from .scheduler import SyncScheduler
from .search import SearchEngine
from .sync import SyncController

logger = get_logger(__name__)


def make_client_factory(settings: Settings):
    """Build the per-sync upstream client factory from settings."""
    def factory() -> AzureUpdatesClient:
        return AzureUpdatesClient(
            api_endpoint=settings.api_endpoint,
            timeout=settings.request_timeout,
            page_size=settings.page_size,
            retry_options=RetryOptions(
                max_retries=settings.max_retries,
                retryable_errors=["network", "timeout", "connection", "503", "429"],
            ),
        )

    return factory


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Startup opens and initialises the index, resets a checkpoint left
    in_progress by a crashed process, kicks off a background sync when the
    data is stale and schedules periodic syncs.

    Args:
        settings: Settings to use (environment-loaded when omitted)

    Returns:
        FastAPI app
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logger(log_dir=settings.log_dir, log_level=settings.log_level)
        logger.info("Azure Updates Search starting up...")
        logger.info(f"Database: {settings.database_path}")
        logger.info(f"Upstream: {settings.api_endpoint}")

        db = Database(settings.database_path)
        db.init()

        controller = SyncController(db, make_client_factory(settings), settings.sync_config())
        controller.recover()

        app.state.settings = settings
        app.state.db = db
        app.state.search_engine = SearchEngine(db)
        app.state.sync_controller = controller

        startup_sync: Optional[asyncio.Task] = None
        if settings.sync_on_startup and controller.needs_sync():
            # Search serves whatever is indexed while this runs
            logger.info("Data is stale, starting background sync")
            startup_sync = asyncio.create_task(controller.sync())

        scheduler = SyncScheduler()
        scheduler.add_sync_job(controller.sync, settings.sync_interval_minutes)
        scheduler.start()

        logger.info("Startup complete!")
        yield

        logger.info("Azure Updates Search shutting down...")
        scheduler.stop()
        if startup_sync is not None and not startup_sync.done():
            startup_sync.cancel()
            await asyncio.gather(startup_sync, return_exceptions=True)

    app = FastAPI(
        title="Azure Updates Search",
        description="Keyword and structured search over a local mirror of the Azure Updates feed",
        version=__version__,
        lifespan=lifespan,
    )

    app.include_router(api_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "azure-updates-search",
            "version": __version__
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """Global exception handler"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    return app


def run() -> None:
    """Run the service with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    run()
