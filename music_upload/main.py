import logging
import shutil
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from music_upload.auth.admin import AuthError
from music_upload.auth.bootstrap import ensure_default_admin
from music_upload.db.engine import engine
from music_upload.db.session import async_session_factory
from music_upload.ingest.pipeline import IngestPipeline
from music_upload.ingest.upload_log import UploadLogStore
from music_upload.models import Base, app_config, upload_log, user  # noqa: F401
from music_upload.routers import admin, auth, health, uploads, version
from music_upload.settings import settings

logger = logging.getLogger(__name__)


async def _init_database() -> None:
    """Verify the database is reachable and create missing tables."""
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
        await conn.run_sync(Base.metadata.create_all)


def _check_tools() -> None:
    """Warn about external tools that are enabled but not installed."""
    tools = [
        (settings.processor_enabled, "processor", settings.processor_path),
        (settings.youtube_enabled, "yt-dlp", settings.ytdlp_path),
        (settings.spotify_enabled, "spotdl", settings.spotdl_path),
    ]
    for enabled, name, path in tools:
        if enabled and not shutil.which(path):
            logger.warning("%s enabled but not found at '%s'", name, path)
        elif enabled:
            logger.info("%s found at %s", name, shutil.which(path))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # 1. Storage roots
    for root in (settings.library_root, settings.staging_root):
        Path(root).mkdir(parents=True, exist_ok=True)
    logger.info("Library root: %s, staging root: %s", settings.library_root, settings.staging_root)

    # 2. Database
    try:
        await _init_database()
        logger.info("Database connection verified")
    except Exception as exc:
        logger.debug("Database connection error: %s", exc)
        raise SystemExit(
            "FATAL: Cannot reach the database. "
            "Check DATABASE_URL and ensure the server is running."
        ) from exc

    # 3. First-run admin and stale attempts from a previous run
    await ensure_default_admin(async_session_factory)
    log_store = UploadLogStore(
        async_session_factory, max_error_message_chars=settings.max_error_message_chars
    )
    await log_store.fail_interrupted()

    # 4. External tools
    _check_tools()

    app.state.pipeline = IngestPipeline(async_session_factory, settings, log_store=log_store)

    yield

    # Shutdown
    await app.state.pipeline.drain(settings.shutdown_grace_seconds)
    await engine.dispose()


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(health.router)
    application.include_router(version.router, prefix="/api/v1")
    application.include_router(auth.router, prefix="/api/v1")
    application.include_router(uploads.router, prefix="/api/v1")
    application.include_router(admin.router, prefix="/api/v1")

    @application.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "code": exc.code,
                    "message": exc.message,
                }
            },
        )

    @application.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred.",
                    "details": None,
                }
            },
        )

    return application


app = create_app()
