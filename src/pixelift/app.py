"""FastAPI application factory."""

# Import timezone enforcement (sets TZ=UTC)
import asyncio
from contextlib import asynccontextmanager
from typing import Callable, Coroutine

import structlog
from fastapi import FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from pixelift.api.routes import photos
from pixelift.core import timezone  # noqa: F401
from pixelift.core.config import Settings, configure_logging
from pixelift.core.database import setup_db_session
from pixelift.services.enhancement.replicate_client import ReplicateEnhancementClient
from pixelift.services.scanner import StuckJobScanner
from pixelift.services.storage.pinata_client import PinataBlobStore
from pixelift.uow import create_uow_factory
from pixelift.workers.recovery_worker import run_recovery_worker

logger = structlog.get_logger()

CORS_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
CORS_HEADERS = [
    "Content-Type",
    "Authorization",
    "X-Internal-Service",
    "X-User-Id",
    "X-Internal-Token",
    "X-Requested-With",
]


class WorkerHandle:
    """Points at the live task of a resilient worker, following restarts."""

    def __init__(self, name: str):
        self.name = name
        self.task: asyncio.Task | None = None

    async def stop(self) -> None:
        """Cancel the current task and wait for it to finish."""
        if self.task is None:
            return
        self.task.cancel()
        # Wait for cancellation to complete (ignore CancelledError)
        await asyncio.gather(self.task, return_exceptions=True)


def create_resilient_worker(
    coro_factory: Callable[[], Coroutine],
    worker_name: str,
    shutdown_event: asyncio.Event,
    restart_delay: float = 1,
) -> WorkerHandle:
    """Create a worker with automatic restart on failure.

    Args:
        coro_factory: Zero-argument callable returning a fresh worker coroutine
        worker_name: Human-readable worker name for logging
        shutdown_event: Event to signal graceful shutdown
        restart_delay: Seconds to wait before restarting a crashed worker

    Returns:
        Handle whose task is replaced on every restart
    """
    handle = WorkerHandle(worker_name)

    def on_worker_done(task: asyncio.Task):
        # Check if shutdown was requested
        if shutdown_event.is_set():
            logger.info("worker.shutdown_complete", worker=worker_name)
            return

        # Check if task was cancelled (normal shutdown)
        if task.cancelled():
            logger.info("worker.cancelled", worker=worker_name)
            return

        exc = task.exception()
        if exc:
            logger.error(
                "worker.crashed",
                worker=worker_name,
                error=str(exc),
                error_type=type(exc).__name__,
                retry_in_seconds=restart_delay,
                exc_info=exc,
            )
        else:
            # Worker stopped cleanly (unexpected for infinite loop workers)
            logger.warning(
                "worker.stopped_unexpectedly",
                worker=worker_name,
                retry_in_seconds=restart_delay,
            )

        async def restart_worker():
            await asyncio.sleep(restart_delay)

            # Check again if shutdown was requested during sleep
            if shutdown_event.is_set():
                return

            logger.info("worker.restarting", worker=worker_name)
            start()

        handle.task = asyncio.create_task(restart_worker())

    def start():
        handle.task = asyncio.create_task(coro_factory())
        handle.task.add_done_callback(on_worker_done)

    start()
    return handle


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Handles startup and shutdown tasks:
    - Startup: Configure logging, initialize database session factory and
      collaborator adapters, start the recovery worker
    - Shutdown: Stop the worker

    The recovery worker automatically restarts on failure.
    """
    # Load settings
    settings = Settings()  # type: ignore[call-arg]

    # Configure logging
    configure_logging(settings)

    # Setup database session factory
    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)

    # Create UoW factory for dependency injection
    uow_factory = create_uow_factory(session_factory)

    # Store in app.state for access in routes
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.enhancement_service = ReplicateEnhancementClient(
        api_token=settings.replicate_api_token,
        model_version=settings.replicate_model_version,
    )
    app.state.blob_store = PinataBlobStore(
        jwt_token=settings.pinata_jwt,
        gateway_domain=settings.pinata_gateway,
    )

    # Create shutdown event for graceful worker termination
    shutdown_event = asyncio.Event()

    recovery_worker = None
    if settings.recovery_worker_enabled:
        scanner = StuckJobScanner.from_settings(
            settings, uow_factory, app.state.enhancement_service, app.state.blob_store
        )
        recovery_worker = create_resilient_worker(
            lambda: run_recovery_worker(scanner, settings), "recovery", shutdown_event
        )
    else:
        logger.warning("startup.recovery_worker_disabled")

    logger.info("application.startup", db_url=settings.database_url.split("@")[-1])

    yield

    # Shutdown: Signal workers to stop
    logger.info("application.shutdown")
    shutdown_event.set()

    if recovery_worker is not None:
        await recovery_worker.stop()


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="Pixelift Backend API",
        description="Photo enhancement job pipeline",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Add CORS middleware (answers OPTIONS preflight on every route)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
    )

    # Register API routers
    app.include_router(photos.router)  # Photos router has prefix="/photos" in definition

    # Health check endpoint with database validation
    @app.get("/health")
    async def health_check(response: Response):
        """Health check endpoint with database connectivity test.

        Returns:
            200: {"status": "healthy"} if database connection succeeds
            503: {"status": "unhealthy", "error": {...}} if database connection fails
        """
        try:
            # Test database connection with simple query
            async with app.state.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            logger.debug("health_check.success")
            return {"status": "healthy"}

        except Exception as e:
            logger.error(
                "health_check.failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {
                "status": "unhealthy",
                "error": {
                    "type": type(e).__name__,
                    "message": str(e),
                },
            }

    return app


# Create app instance for uvicorn
app = create_app()
