"""Upload endpoints: direct file upload, YouTube and Spotify submissions.

Each submission creates an upload-log row, validates the source and returns
202 with the attempt id. Acquisition, processing and merging continue in the
background; progress is read back through ``GET /uploads/{attempt_id}``.

Rejected sources return 400 and still carry the attempt id, because the
rejection is recorded as a failed attempt.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from fastapi.responses import JSONResponse

from music_upload.auth.users import get_current_owner
from music_upload.ingest.errors import SourceDisabledError, UploadLogError, ValidationError
from music_upload.ingest.pipeline import IngestPipeline
from music_upload.ingest.sources import FilePart
from music_upload.ingest.staging import Owner
from music_upload.ingest.upload_log import LogFilter
from music_upload.models.upload_log import SourceKind, UploadStatus
from music_upload.schemas.errors import ErrorResponse
from music_upload.schemas.pagination import PaginatedResponse, PaginationMeta
from music_upload.schemas.upload import UploadAccepted, UploadLogEntry, UrlUploadRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["uploads"])

_SUBMIT_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"description": "Source rejected by validation", "model": ErrorResponse},
    401: {"description": "Missing or invalid bearer token", "model": ErrorResponse},
    403: {"description": "Source provider disabled", "model": ErrorResponse},
    503: {"description": "Upload log unavailable", "model": ErrorResponse},
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def error_response(
    status_code: int, code: str, message: str, details: Any | None = None
) -> JSONResponse:
    """Build a JSON error response matching the project convention."""
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code,
                "message": message,
                "details": details,
            }
        },
    )


def get_pipeline(request: Request) -> IngestPipeline:
    return request.app.state.pipeline


async def _submit(
    pipeline: IngestPipeline, owner: Owner, kind: SourceKind, source: Any
) -> UploadAccepted | JSONResponse:
    try:
        attempt_id = await pipeline.submit(owner, kind, source)
    except SourceDisabledError as exc:
        return error_response(403, exc.code, exc.message)
    except ValidationError as exc:
        return error_response(400, exc.code, exc.message, {"attempt_id": exc.attempt_id})
    except UploadLogError as exc:
        logger.error("Upload not started, log store unavailable: %s", exc)
        return error_response(503, exc.code, "Upload log unavailable; upload was not started.")

    return UploadAccepted(
        attempt_id=attempt_id,
        status=UploadStatus.PENDING,
        message=f"Upload accepted; track progress at /api/v1/uploads/{attempt_id}",
    )


def paginate_logs(rows: Any, total: int, page: int, page_size: int) -> PaginatedResponse:
    return PaginatedResponse[UploadLogEntry](
        data=[UploadLogEntry.model_validate(r) for r in rows],
        pagination=PaginationMeta(
            page=page,
            page_size=page_size,
            total_items=total,
            total_pages=math.ceil(total / page_size) if total > 0 else 0,
        ),
    )


# ---------------------------------------------------------------------------
# Submission endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/uploads/files",
    response_model=UploadAccepted,
    status_code=202,
    responses=_SUBMIT_RESPONSES,
)
async def upload_files(
    files: list[UploadFile] = File(  # noqa: B008
        ..., description="One or more audio files (repeat the `files` field)."
    ),
    owner: Owner = Depends(get_current_owner),  # noqa: B008
    pipeline: IngestPipeline = Depends(get_pipeline),  # noqa: B008
) -> UploadAccepted | JSONResponse:
    """Upload audio files directly. All files are accepted or none are."""
    parts = [FilePart(filename=f.filename or "", data=await f.read()) for f in files]
    return await _submit(pipeline, owner, SourceKind.FILE, parts)


@router.post(
    "/uploads/youtube",
    response_model=UploadAccepted,
    status_code=202,
    responses=_SUBMIT_RESPONSES,
)
async def upload_youtube(
    body: UrlUploadRequest,
    owner: Owner = Depends(get_current_owner),  # noqa: B008
    pipeline: IngestPipeline = Depends(get_pipeline),  # noqa: B008
) -> UploadAccepted | JSONResponse:
    """Download audio from a YouTube URL with yt-dlp."""
    return await _submit(pipeline, owner, SourceKind.YOUTUBE, body.url)


@router.post(
    "/uploads/spotify",
    response_model=UploadAccepted,
    status_code=202,
    responses=_SUBMIT_RESPONSES,
)
async def upload_spotify(
    body: UrlUploadRequest,
    owner: Owner = Depends(get_current_owner),  # noqa: B008
    pipeline: IngestPipeline = Depends(get_pipeline),  # noqa: B008
) -> UploadAccepted | JSONResponse:
    """Download audio from a Spotify track/album/playlist/artist URL with spotdl."""
    return await _submit(pipeline, owner, SourceKind.SPOTIFY, body.url)


# ---------------------------------------------------------------------------
# Upload log (own attempts)
# ---------------------------------------------------------------------------


@router.get("/uploads", response_model=PaginatedResponse[UploadLogEntry])
async def list_my_uploads(
    page: int = Query(default=1),
    pageSize: int = Query(default=50, alias="pageSize"),  # noqa: N803
    status: UploadStatus | None = Query(default=None),
    owner: Owner = Depends(get_current_owner),  # noqa: B008
    pipeline: IngestPipeline = Depends(get_pipeline),  # noqa: B008
) -> PaginatedResponse | JSONResponse:
    """Return the caller's upload attempts, newest first."""
    page = max(1, page)
    page_size = max(1, min(100, pageSize))
    try:
        rows, total = await pipeline.log.list(
            LogFilter(
                user_id=owner.user_id,
                status=status,
                limit=page_size,
                offset=(page - 1) * page_size,
            )
        )
    except UploadLogError as exc:
        return error_response(503, exc.code, exc.message)
    return paginate_logs(rows, total, page, page_size)


@router.get(
    "/uploads/{attempt_id}",
    response_model=UploadLogEntry,
    responses={404: {"description": "Attempt not found", "model": ErrorResponse}},
)
async def get_my_upload(
    attempt_id: int,
    owner: Owner = Depends(get_current_owner),  # noqa: B008
    pipeline: IngestPipeline = Depends(get_pipeline),  # noqa: B008
) -> UploadLogEntry | JSONResponse:
    """Return one of the caller's upload attempts."""
    try:
        entry = await pipeline.log.get(attempt_id)
    except UploadLogError as exc:
        return error_response(503, exc.code, exc.message)

    if entry is None or entry.user_id != owner.user_id:
        return error_response(404, "NOT_FOUND", f"No upload attempt with id {attempt_id}")
    return UploadLogEntry.model_validate(entry)
