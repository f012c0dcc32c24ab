"""First-run identity bootstrap.

If no user exists, create a default admin with the configured (insecure by
default) credentials and log a prominent warning. Safe to call on every
start: it does nothing once any user exists.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from music_upload.auth.password import hash_password
from music_upload.models.user import User
from music_upload.settings import Settings, settings

logger = logging.getLogger(__name__)


async def ensure_default_admin(
    session_factory: async_sessionmaker[AsyncSession],
    config: Settings = settings,
) -> User | None:
    """Create the default admin if the users table is empty.

    Returns:
        The created user, or ``None`` if users already existed.
    """
    async with session_factory() as session:
        user_count: int = (await session.execute(select(func.count(User.id)))).scalar_one()
        if user_count > 0:
            return None

        logger.warning("No users found in database. Creating default admin user...")
        logger.warning(
            "DEFAULT CREDENTIALS - Username: %s, Password: %s",
            config.default_admin_username,
            config.default_admin_password,
        )
        logger.warning("PLEASE CHANGE THE DEFAULT PASSWORD IMMEDIATELY!")

        admin = User(
            username=config.default_admin_username,
            password_hash=hash_password(config.default_admin_password),
            is_admin=True,
        )
        session.add(admin)
        await session.commit()

    logger.info("Default admin user created successfully")
    return admin
