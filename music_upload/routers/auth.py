"""Token endpoint for local user accounts."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from music_upload.auth.jwt import create_access_token
from music_upload.auth.users import authenticate
from music_upload.db.session import get_db
from music_upload.schemas.errors import ErrorDetail, ErrorResponse
from music_upload.schemas.upload import TokenResponse

router = APIRouter(tags=["auth"])


@router.post(
    "/auth/token",
    response_model=TokenResponse,
    responses={401: {"description": "Invalid credentials", "model": ErrorResponse}},
)
async def issue_token(
    form: OAuth2PasswordRequestForm = Depends(),  # noqa: B008
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> TokenResponse | JSONResponse:
    """Exchange a username and password for a bearer token."""
    user = await authenticate(db, form.username, form.password)
    if user is None:
        return JSONResponse(
            status_code=401,
            content=ErrorResponse(
                error=ErrorDetail(
                    code="INVALID_CREDENTIALS", message="Invalid username or password"
                )
            ).model_dump(),
        )
    return TokenResponse(access_token=create_access_token(user.id))
