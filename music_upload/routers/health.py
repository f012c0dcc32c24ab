import os

from fastapi import APIRouter, Request

from music_upload.schemas.health import HealthResponse
from music_upload.settings import settings

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Liveness plus the number of upload attempts running in this process."""
    pipeline = getattr(request.app.state, "pipeline", None)
    return HealthResponse(
        status="ok",
        version=settings.app_version,
        active_uploads=len(pipeline.active_attempts) if pipeline is not None else 0,
        library_writable=os.access(settings.library_root, os.W_OK),
    )
