"""blobsync API - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .auth import require_api_key
from .config import Settings, get_settings
from .database import Databases, DatabaseRouter
from .errors import PersistenceError, SyncError
from .logging_config import get_logger, setup_logging
from .routes import records_router

logger = get_logger("blobsync.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    settings: Settings = app.state.settings
    databases = DatabaseRouter.from_settings(settings)
    await databases.open()
    app.state.databases = databases
    logger.info(
        f"Starting blobsync API (debug={settings.debug}, data_dir={settings.data_dir}, "
        f"databases={sorted(settings.databases)})"
    )
    yield
    # Shutdown
    logger.info("Shutting down blobsync API")


async def sync_error_handler(request: Request, exc: SyncError) -> JSONResponse:
    """Render any SyncError as ``{"error": message}``."""
    if isinstance(exc, PersistenceError):
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render routing errors (404, 405) in the same ``{"error": ...}`` shape."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application. Settings are read once and shared via app.state."""
    if settings is None:
        settings = get_settings()
    setup_logging(settings.log_level)

    app = FastAPI(
        title="blobsync API",
        description="Sync endpoint for client-encrypted records",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.settings = settings

    app.add_exception_handler(SyncError, sync_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    # Shared-secret check runs before routing, so unmatched paths and the
    # OpenAPI docs are covered too. CORS is added after it and wraps it.
    app.middleware("http")(require_api_key)

    # CORS middleware
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/health")
    async def health(databases: Databases):
        """Health check with per-collection record counts."""
        return {
            "status": "ok",
            "version": __version__,
            "databases": {
                name: {c: len(store) for c, store in db.stores.items()}
                for name, db in databases.databases.items()
            },
        }

    app.include_router(records_router)
    return app


app = create_app()
