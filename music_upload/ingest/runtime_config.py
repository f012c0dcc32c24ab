"""Runtime-editable settings stored in the ``app_config`` table.

Values stored here override the environment configuration for attempts
started after the change. Only keys listed in :data:`EDITABLE_KEYS` can be
written.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from music_upload.models.app_config import RuntimeSetting

logger = logging.getLogger(__name__)

PROCESSOR_ENABLED_KEY = "processor_enabled"

EDITABLE_KEYS: frozenset[str] = frozenset({PROCESSOR_ENABLED_KEY})

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class UnknownSettingError(KeyError):
    """Raised when writing a key that is not runtime-editable."""


def parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Not a boolean value: {value!r}")


async def list_settings(session: AsyncSession) -> dict[str, str]:
    result = await session.execute(select(RuntimeSetting).order_by(RuntimeSetting.key))
    return {row.key: row.value for row in result.scalars().all()}


async def get_setting(session: AsyncSession, key: str) -> str | None:
    row = await session.get(RuntimeSetting, key)
    return row.value if row is not None else None


async def set_setting(session: AsyncSession, key: str, value: str) -> None:
    """Upsert *key*; boolean keys are normalized to ``"true"``/``"false"``.

    Raises:
        UnknownSettingError: *key* is not runtime-editable.
        ValueError: *value* is not valid for *key*.
    """
    if key not in EDITABLE_KEYS:
        raise UnknownSettingError(key)
    if key == PROCESSOR_ENABLED_KEY:
        value = "true" if parse_bool(value) else "false"

    row = await session.get(RuntimeSetting, key)
    if row is None:
        session.add(RuntimeSetting(key=key, value=value))
    else:
        row.value = value
    await session.commit()
    logger.info("Runtime setting %s set to %s", key, value)


async def processor_enabled(
    session_factory: async_sessionmaker[AsyncSession],
    default: bool,
) -> bool:
    """Effective processor flag: the stored override, else *default*.

    A store or parse failure falls back to *default*.
    """
    try:
        async with session_factory() as session:
            stored = await get_setting(session, PROCESSOR_ENABLED_KEY)
    except SQLAlchemyError:
        logger.warning("Could not read %s override, using default", PROCESSOR_ENABLED_KEY)
        return default

    if stored is None:
        return default
    try:
        return parse_bool(stored)
    except ValueError:
        logger.warning("Ignoring invalid %s value %r", PROCESSOR_ENABLED_KEY, stored)
        return default
