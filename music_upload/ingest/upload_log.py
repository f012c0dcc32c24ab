"""Durable status ledger for upload attempts.

One row per attempt. Status changes go exclusively through
:meth:`UploadLogStore.transition`, which issues a conditional UPDATE keyed on
the row id and the allowed predecessor states: concurrent attempts touch
different rows and never contend, and a repeated or backwards transition is
refused instead of silently overwriting a terminal row.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from music_upload.ingest.errors import InvalidTransitionError, UploadLogError
from music_upload.models.upload_log import (
    MAX_SOURCE_LENGTH,
    SourceKind,
    UploadLog,
    UploadStatus,
)

logger = logging.getLogger(__name__)

# new status -> statuses it may be entered from
ALLOWED_TRANSITIONS: dict[UploadStatus, frozenset[UploadStatus]] = {
    UploadStatus.PROCESSING: frozenset({UploadStatus.PENDING}),
    UploadStatus.COMPLETED: frozenset({UploadStatus.PROCESSING}),
    # pending -> failed covers sources rejected by validation
    UploadStatus.FAILED: frozenset({UploadStatus.PENDING, UploadStatus.PROCESSING}),
}

INTERRUPTED_MESSAGE = "Interrupted by service restart"


@dataclass
class LogFilter:
    user_id: str | None = None
    status: UploadStatus | None = None
    source_kind: SourceKind | None = None
    limit: int = 50
    offset: int = 0


def truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[: max(0, max_chars - 3)] + "..."


class UploadLogStore:
    """Create, transition and query upload log rows."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        max_error_message_chars: int = 2000,
    ) -> None:
        self.session_factory = session_factory
        self.max_error_message_chars = max_error_message_chars

    async def create(self, user_id: str, kind: SourceKind, source: str) -> int:
        """Insert a ``pending`` row and return its id.

        Raises:
            UploadLogError: The row could not be written.
        """
        entry = UploadLog(
            user_id=user_id,
            source_kind=kind.value,
            source=truncate(source, MAX_SOURCE_LENGTH),
            status=UploadStatus.PENDING.value,
            file_count=0,
        )
        try:
            async with self.session_factory() as session:
                session.add(entry)
                await session.commit()
                attempt_id = entry.id
        except SQLAlchemyError as exc:
            logger.exception("Failed to create upload log for user %s", user_id)
            raise UploadLogError(f"Failed to create upload log: {exc}") from exc

        logger.info("Upload attempt %d created (%s, user %s)", attempt_id, kind.value, user_id)
        return attempt_id

    async def transition(
        self,
        attempt_id: int,
        new_status: UploadStatus,
        *,
        file_count: int | None = None,
        error_message: str | None = None,
    ) -> None:
        """Move an attempt to *new_status*.

        Terminal states record ``completed_at`` and ``file_count``; ``failed``
        also records the (truncated) error message.

        Raises:
            InvalidTransitionError: The row does not exist or is not in an
                allowed predecessor state.
            UploadLogError: The store could not be written.
        """
        allowed_from = ALLOWED_TRANSITIONS.get(new_status)
        if allowed_from is None:
            raise InvalidTransitionError(f"Cannot transition to {new_status.value}")

        values: dict[str, object] = {"status": new_status.value}
        if new_status.is_terminal:
            values["completed_at"] = func.now()
            values["file_count"] = max(0, file_count or 0)
        elif file_count is not None:
            values["file_count"] = max(0, file_count)
        if new_status == UploadStatus.FAILED:
            values["error_message"] = truncate(
                error_message or "Unknown error", self.max_error_message_chars
            )

        stmt = (
            update(UploadLog)
            .where(UploadLog.id == attempt_id)
            .where(UploadLog.status.in_([s.value for s in allowed_from]))
            .values(**values)
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.exception("Failed to update upload log %d", attempt_id)
            raise UploadLogError(f"Failed to update upload log: {exc}") from exc

        if result.rowcount != 1:
            raise InvalidTransitionError(
                f"Upload attempt {attempt_id} cannot move to {new_status.value}"
            )
        logger.info("Upload attempt %d -> %s", attempt_id, new_status.value)

    async def get(self, attempt_id: int) -> UploadLog | None:
        try:
            async with self.session_factory() as session:
                return await session.get(UploadLog, attempt_id)
        except SQLAlchemyError as exc:
            raise UploadLogError(f"Failed to read upload log: {exc}") from exc

    async def list(self, log_filter: LogFilter | None = None) -> tuple[Sequence[UploadLog], int]:
        """Return one page of rows (newest first) and the total matching count."""
        log_filter = log_filter or LogFilter()
        query = select(UploadLog)
        if log_filter.user_id is not None:
            query = query.where(UploadLog.user_id == log_filter.user_id)
        if log_filter.status is not None:
            query = query.where(UploadLog.status == log_filter.status.value)
        if log_filter.source_kind is not None:
            query = query.where(UploadLog.source_kind == log_filter.source_kind.value)

        count_query = select(func.count()).select_from(query.subquery())
        page_query = (
            query.order_by(UploadLog.id.desc()).offset(log_filter.offset).limit(log_filter.limit)
        )
        try:
            async with self.session_factory() as session:
                total: int = (await session.execute(count_query)).scalar_one()
                rows = (await session.execute(page_query)).scalars().all()
        except SQLAlchemyError as exc:
            raise UploadLogError(f"Failed to list upload logs: {exc}") from exc
        return rows, total

    async def fail_interrupted(self) -> int:
        """Mark every non-terminal row failed. Run once at startup."""
        stmt = (
            update(UploadLog)
            .where(
                UploadLog.status.in_([UploadStatus.PENDING.value, UploadStatus.PROCESSING.value])
            )
            .values(
                status=UploadStatus.FAILED.value,
                error_message=INTERRUPTED_MESSAGE,
                completed_at=func.now(),
            )
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            raise UploadLogError(f"Failed to recover interrupted uploads: {exc}") from exc

        if result.rowcount:
            logger.warning("Marked %d interrupted upload attempt(s) as failed", result.rowcount)
        return result.rowcount
