"""Upload attempt orchestration.

Sequences validation, acquisition, processing, merging and staging cleanup
for one attempt, writing upload-log transitions at each boundary:

    pending --(validation rejected)--> failed
    pending --> processing --> completed | failed

:meth:`IngestPipeline.submit` acknowledges synchronously (the ``pending`` row
exists and the source passed validation) and runs the rest of the attempt as
an independent asyncio task. Each attempt owns its staging directory and its
log row; a failure in one attempt never affects another.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from music_upload.ingest.errors import (
    IngestError,
    MergeError,
    SourceDisabledError,
    UploadLogError,
    ValidationError,
)
from music_upload.ingest.merge import merge
from music_upload.ingest.processor import AudioProcessor, build_processor
from music_upload.ingest.runtime_config import processor_enabled
from music_upload.ingest.sources import FilePart, SourceAcquirer, build_acquirers
from music_upload.ingest.staging import Owner, StagingArea, resolve_library_dir
from music_upload.ingest.upload_log import UploadLogStore
from music_upload.ingest.validation import validate
from music_upload.models.upload_log import SourceKind, UploadStatus
from music_upload.settings import Settings, settings

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Cancelled before completion"


@dataclass
class AttemptResult:
    """Final outcome of one attempt, as recorded in the upload log."""

    attempt_id: int
    status: UploadStatus
    file_count: int = 0
    error: str | None = None


def describe_source(kind: SourceKind, source: Any) -> str:
    """Text stored in the log's ``source`` column."""
    if kind == SourceKind.FILE:
        names = [part.filename for part in source]
        return ", ".join(names) if names else "multipart upload"
    return str(source)


class IngestPipeline:
    """Runs upload attempts from submission to a terminal log state."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: Settings = settings,
        *,
        log_store: UploadLogStore | None = None,
        acquirers: Mapping[SourceKind, SourceAcquirer] | None = None,
        processor_factory: Callable[[bool], AudioProcessor] | None = None,
    ) -> None:
        self.config = config
        self.session_factory = session_factory
        self.log = log_store or UploadLogStore(
            session_factory, max_error_message_chars=config.max_error_message_chars
        )
        self.acquirers = dict(acquirers) if acquirers is not None else build_acquirers(config)
        self.processor_factory = processor_factory or (
            lambda enabled: build_processor(enabled, config)
        )
        self._tasks: dict[int, asyncio.Task[AttemptResult]] = {}

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def ensure_enabled(self, kind: SourceKind) -> None:
        if kind == SourceKind.YOUTUBE and not self.config.youtube_enabled:
            raise SourceDisabledError("YouTube downloads are disabled")
        if kind == SourceKind.SPOTIFY and not self.config.spotify_enabled:
            raise SourceDisabledError("Spotify downloads are disabled")

    def validate_source(self, kind: SourceKind, source: Any) -> None:
        if kind == SourceKind.FILE:
            parts: Sequence[FilePart] = source
            for part in parts:
                validate(kind, part.filename, self.config)
        else:
            validate(kind, str(source), self.config)

    async def submit(self, owner: Owner, kind: SourceKind, source: Any) -> int:
        """Register an attempt and start it in the background.

        Args:
            owner: Authenticated user driving the attempt.
            kind: Source kind.
            source: ``list[FilePart]`` for file uploads, the URL otherwise.

        Returns:
            The attempt id.

        Raises:
            SourceDisabledError: The provider is switched off; no row is created.
            ValidationError: The source was rejected; the row is ``failed`` and
                ``exc.attempt_id`` is set.
            UploadLogError: The log store is unavailable; the attempt was not
                started.
        """
        self.ensure_enabled(kind)

        attempt_id = await self.log.create(owner.user_id, kind, describe_source(kind, source))

        try:
            self.validate_source(kind, source)
        except ValidationError as exc:
            exc.attempt_id = attempt_id
            logger.warning("Upload attempt %d rejected: %s", attempt_id, exc)
            await self.log.transition(
                attempt_id, UploadStatus.FAILED, file_count=0, error_message=str(exc)
            )
            raise

        task = asyncio.create_task(
            self.run_attempt(attempt_id, owner, kind, source),
            name=f"upload-attempt-{attempt_id}",
        )
        self._tasks[attempt_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(attempt_id, None))
        return attempt_id

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def run_attempt(
        self,
        attempt_id: int,
        owner: Owner,
        kind: SourceKind,
        source: Any,
    ) -> AttemptResult:
        """Drive a validated attempt to exactly one terminal state."""
        staging = StagingArea.for_attempt(attempt_id, self.config)
        library_dir = resolve_library_dir(owner.library_path, self.config)
        file_count = 0
        error: str | None = None

        try:
            await self.log.transition(attempt_id, UploadStatus.PROCESSING)
            await asyncio.to_thread(staging.create)

            file_count = await self.acquirers[kind].acquire(source, staging.incoming)

            enabled = await processor_enabled(self.session_factory, self.config.processor_enabled)
            output = await self.processor_factory(enabled).process(
                staging.incoming, staging.processed
            )

            report = await merge(output.directory, library_dir)
            file_count = report.merged
            if report.failed:
                raise MergeError(report.summary())

        except asyncio.CancelledError:
            logger.warning("Upload attempt %d cancelled", attempt_id)
            await self._conclude(
                staging, attempt_id, UploadStatus.FAILED, file_count, CANCELLED_MESSAGE
            )
            raise
        except IngestError as exc:
            error = str(exc)
            logger.warning("Upload attempt %d failed [%s]: %s", attempt_id, exc.code, error)
        except Exception as exc:
            error = f"Unexpected error: {exc}"
            logger.exception("Unexpected error in upload attempt %d", attempt_id)

        status = UploadStatus.FAILED if error is not None else UploadStatus.COMPLETED
        await self._conclude(staging, attempt_id, status, file_count, error)
        return AttemptResult(attempt_id, status, file_count, error)

    async def _conclude(
        self,
        staging: StagingArea,
        attempt_id: int,
        status: UploadStatus,
        file_count: int,
        error: str | None,
    ) -> None:
        """Remove staging, then write the terminal status.

        Runs in its own shielded task. A cancellation arriving mid-cleanup is
        re-raised to the caller only after the row is written.
        """

        async def conclude() -> None:
            await staging.cleanup()
            await self._finish(attempt_id, status, file_count, error)

        task = asyncio.create_task(conclude(), name=f"upload-attempt-{attempt_id}-finish")
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            logger.warning(
                "Upload attempt %d cancelled while finishing; recording %s",
                attempt_id,
                status.value,
            )
            await asyncio.wait({task})
            raise

    async def _finish(
        self,
        attempt_id: int,
        status: UploadStatus,
        file_count: int,
        error: str | None,
    ) -> None:
        try:
            await self.log.transition(
                attempt_id, status, file_count=file_count, error_message=error
            )
        except UploadLogError:
            logger.exception(
                "Could not record terminal status %s for upload attempt %d",
                status.value,
                attempt_id,
            )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def active_attempts(self) -> list[int]:
        return sorted(self._tasks)

    async def wait(self, attempt_id: int) -> AttemptResult | None:
        """Wait for a running attempt; ``None`` if it is not running here."""
        task = self._tasks.get(attempt_id)
        if task is None:
            return None
        return await asyncio.shield(task)

    async def drain(self, timeout: float) -> None:
        """Wait up to *timeout* seconds for running attempts, then cancel the rest."""
        tasks = list(self._tasks.values())
        if not tasks:
            return

        logger.info("Waiting for %d upload attempt(s) to finish", len(tasks))
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            logger.warning("Cancelling %d unfinished upload attempt(s)", len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
