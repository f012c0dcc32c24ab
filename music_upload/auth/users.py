"""Local user accounts.

The pipeline only needs an identity and a library path; this module turns a
bearer token into that :class:`~music_upload.ingest.staging.Owner`, and holds
the account operations behind the admin API.
"""

from __future__ import annotations

import logging

import jwt as pyjwt
from fastapi import Depends
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from music_upload.auth.admin import AuthError
from music_upload.auth.jwt import decode_access_token
from music_upload.auth.oauth2 import oauth2_scheme
from music_upload.auth.password import hash_password, verify_password
from music_upload.db.session import get_db
from music_upload.ingest.staging import Owner
from music_upload.models.user import User

logger = logging.getLogger(__name__)


class UserAuthError(AuthError):
    """Missing, invalid or expired bearer token."""

    status_code = 401


async def authenticate(session: AsyncSession, username: str, password: str) -> User | None:
    result = await session.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


async def get_current_user(
    token: str | None = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> User:
    if not token:
        raise UserAuthError("UNAUTHORIZED", "Missing bearer token.")

    try:
        payload = decode_access_token(token)
    except pyjwt.PyJWTError:
        raise UserAuthError("UNAUTHORIZED", "Invalid or expired token.") from None

    user_id = payload.get("sub")
    user = await db.get(User, str(user_id)) if user_id else None
    if user is None:
        raise UserAuthError("UNAUTHORIZED", "Unknown user.")
    return user


async def get_current_owner(user: User = Depends(get_current_user)) -> Owner:  # noqa: B008
    return Owner(user_id=user.id, library_path=user.library_path)


# ---------------------------------------------------------------------------
# Account management (admin API)
# ---------------------------------------------------------------------------


class DuplicateUsernameError(Exception):
    pass


class LastAdminError(Exception):
    pass


async def list_users(session: AsyncSession) -> list[User]:
    result = await session.execute(select(User).order_by(User.username))
    return list(result.scalars())


async def create_user(
    session: AsyncSession,
    username: str,
    password: str,
    *,
    is_admin: bool = False,
    library_path: str | None = None,
) -> User:
    """Insert a user with an argon2 password hash.

    Raises:
        DuplicateUsernameError: The username is taken.
    """
    user = User(
        username=username,
        password_hash=hash_password(password),
        is_admin=is_admin,
        library_path=library_path,
    )
    session.add(user)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise DuplicateUsernameError(username) from None
    await session.refresh(user)
    logger.info("Created user %s (admin=%s, library=%s)", username, is_admin, library_path)
    return user


async def delete_user(session: AsyncSession, user: User) -> None:
    """Delete *user* and, through the foreign key cascade, its upload log.

    Raises:
        LastAdminError: *user* is the only remaining admin.
    """
    if user.is_admin:
        admins = (
            await session.execute(select(func.count(User.id)).where(User.is_admin.is_(True)))
        ).scalar_one()
        if admins <= 1:
            raise LastAdminError(user.username)
    await session.delete(user)
    await session.commit()
    logger.info("Deleted user %s", user.username)


async def set_library_path(session: AsyncSession, user: User, library_path: str | None) -> User:
    user.library_path = library_path
    await session.commit()
    await session.refresh(user)
    logger.info("Library path for %s set to %s", user.username, library_path or "<global>")
    return user


async def set_password(session: AsyncSession, user: User, password: str) -> None:
    user.password_hash = hash_password(password)
    await session.commit()
