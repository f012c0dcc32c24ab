"""Admin endpoints: all users' upload log, runtime settings and accounts.

Protected by admin API key (X-Admin-Key header).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from music_upload.auth.admin import require_admin_key
from music_upload.auth.users import (
    DuplicateUsernameError,
    LastAdminError,
    create_user,
    delete_user,
    list_users,
    set_library_path,
    set_password,
)
from music_upload.db.session import get_db
from music_upload.ingest.errors import UploadLogError
from music_upload.ingest.pipeline import IngestPipeline
from music_upload.ingest.runtime_config import (
    UnknownSettingError,
    list_settings,
    set_setting,
)
from music_upload.ingest.upload_log import LogFilter
from music_upload.models.upload_log import SourceKind, UploadStatus
from music_upload.models.user import User
from music_upload.routers.uploads import error_response, get_pipeline, paginate_logs
from music_upload.schemas.errors import ErrorResponse
from music_upload.schemas.pagination import PaginatedResponse
from music_upload.schemas.upload import (
    RuntimeSettingsResponse,
    RuntimeSettingUpdate,
    UploadLogEntry,
)
from music_upload.schemas.user import (
    LibraryPathUpdate,
    PasswordReset,
    UserCreate,
    UserResponse,
)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin_key)],
)


@router.get("/uploads", response_model=PaginatedResponse[UploadLogEntry])
async def list_all_uploads(
    page: int = Query(default=1),
    pageSize: int = Query(default=50, alias="pageSize"),  # noqa: N803
    user_id: str | None = Query(default=None),
    status: UploadStatus | None = Query(default=None),
    source_kind: SourceKind | None = Query(default=None),
    pipeline: IngestPipeline = Depends(get_pipeline),  # noqa: B008
) -> PaginatedResponse | JSONResponse:
    """Return upload attempts across all users, newest first."""
    page = max(1, page)
    page_size = max(1, min(100, pageSize))
    try:
        rows, total = await pipeline.log.list(
            LogFilter(
                user_id=user_id,
                status=status,
                source_kind=source_kind,
                limit=page_size,
                offset=(page - 1) * page_size,
            )
        )
    except UploadLogError as exc:
        return error_response(503, exc.code, exc.message)
    return paginate_logs(rows, total, page, page_size)


@router.get("/config", response_model=RuntimeSettingsResponse)
async def get_runtime_settings(
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> RuntimeSettingsResponse:
    return RuntimeSettingsResponse(settings=await list_settings(db))


@router.put(
    "/config/{key}",
    response_model=RuntimeSettingsResponse,
    responses={
        400: {"description": "Invalid value", "model": ErrorResponse},
        404: {"description": "Unknown setting", "model": ErrorResponse},
    },
)
async def update_runtime_setting(
    key: str,
    body: RuntimeSettingUpdate,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> RuntimeSettingsResponse | JSONResponse:
    """Set a runtime override, e.g. ``processor_enabled``."""
    try:
        await set_setting(db, key, body.value)
    except UnknownSettingError:
        return error_response(404, "NOT_FOUND", f"Unknown setting: {key}")
    except ValueError as exc:
        return error_response(400, "INVALID_VALUE", str(exc))
    return RuntimeSettingsResponse(settings=await list_settings(db))


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def _user_not_found(user_id: str) -> JSONResponse:
    return error_response(404, "NOT_FOUND", f"User {user_id} not found")


@router.get("/users", response_model=list[UserResponse])
async def list_all_users(
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> list[UserResponse]:
    return [UserResponse.model_validate(u) for u in await list_users(db)]


@router.post(
    "/users",
    response_model=UserResponse,
    status_code=201,
    responses={409: {"description": "Username already exists", "model": ErrorResponse}},
)
async def create_account(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> UserResponse | JSONResponse:
    """Create a user, optionally with its own library directory."""
    try:
        user = await create_user(
            db,
            body.username,
            body.password,
            is_admin=body.is_admin,
            library_path=body.library_path,
        )
    except DuplicateUsernameError:
        return error_response(409, "CONFLICT", f"Username already exists: {body.username}")
    return UserResponse.model_validate(user)


@router.delete(
    "/users/{user_id}",
    status_code=204,
    responses={
        400: {"description": "Last remaining admin", "model": ErrorResponse},
        404: {"description": "User not found", "model": ErrorResponse},
    },
)
async def delete_account(
    user_id: str,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> Response:
    """Delete a user and its upload history. Library files are left in place."""
    user = await db.get(User, user_id)
    if user is None:
        return _user_not_found(user_id)
    try:
        await delete_user(db, user)
    except LastAdminError:
        return error_response(400, "LAST_ADMIN", "Cannot delete the last admin account")
    return Response(status_code=204)


@router.put(
    "/users/{user_id}/library-path",
    response_model=UserResponse,
    responses={404: {"description": "User not found", "model": ErrorResponse}},
)
async def update_library_path(
    user_id: str,
    body: LibraryPathUpdate,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> UserResponse | JSONResponse:
    """Point future uploads of a user at another library directory."""
    user = await db.get(User, user_id)
    if user is None:
        return _user_not_found(user_id)
    return UserResponse.model_validate(await set_library_path(db, user, body.library_path))


@router.put(
    "/users/{user_id}/password",
    status_code=204,
    responses={404: {"description": "User not found", "model": ErrorResponse}},
)
async def reset_password(
    user_id: str,
    body: PasswordReset,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> Response:
    user = await db.get(User, user_id)
    if user is None:
        return _user_not_found(user_id)
    await set_password(db, user, body.new_password)
    return Response(status_code=204)
