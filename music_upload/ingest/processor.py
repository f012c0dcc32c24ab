"""External audio processor invocation.

The processor is an opaque command that reads a directory of raw audio and
writes an organized tree into a separate output directory. It is never
pointed at the library itself: output lands in the attempt's private
``processed`` directory and is merged afterwards.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from music_upload.ingest.errors import ProcessingError
from music_upload.ingest.runner import run_command, tail_lines
from music_upload.ingest.staging import count_files
from music_upload.settings import Settings, settings

logger = logging.getLogger(__name__)

# Upper bound on the diagnostic output written to the application log.
MAX_LOGGED_OUTPUT_CHARS = 4000


@dataclass
class ProcessedOutput:
    """Where merge-ready files live after processing, and how many there are."""

    directory: Path
    file_count: int


class AudioProcessor(Protocol):
    async def process(self, staging_dir: Path, work_dir: Path) -> ProcessedOutput: ...


def _reset_dir(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True)


class LocalBinaryProcessor:
    """Runs a local processor binary with ``--input-dir``/``--output-dir``."""

    def __init__(
        self,
        binary: str,
        *,
        timeout: float,
        stderr_tail_lines: int = 20,
    ) -> None:
        self.binary = binary
        self.timeout = timeout
        self.stderr_tail_lines = stderr_tail_lines

    def build_argv(self, staging_dir: Path, work_dir: Path) -> list[str]:
        return [self.binary, "--input-dir", str(staging_dir), "--output-dir", str(work_dir)]

    async def process(self, staging_dir: Path, work_dir: Path) -> ProcessedOutput:
        """Process *staging_dir* into an emptied *work_dir*.

        The source directory is left untouched, so re-running on the same
        staging directory yields the same output.

        Raises:
            ProcessingError: Missing binary, non-zero exit, or no output from
                a non-empty staging directory.
            CommandTimeoutError: The processor exceeded the deadline.
        """
        await asyncio.to_thread(_reset_dir, work_dir)

        try:
            result = await run_command(self.build_argv(staging_dir, work_dir), timeout=self.timeout)
        except FileNotFoundError:
            raise ProcessingError(
                f"Processor binary not found at '{self.binary}'. "
                "Install it or disable processing (PROCESSOR_ENABLED=false)."
            ) from None
        except OSError as exc:
            raise ProcessingError(f"Could not start processor: {exc}") from exc

        if not result.ok:
            logger.error(
                "Processor exited with code %d\nstdout: %s\nstderr: %s",
                result.returncode,
                result.stdout[-MAX_LOGGED_OUTPUT_CHARS:],
                result.stderr[-MAX_LOGGED_OUTPUT_CHARS:],
            )
            detail = tail_lines(result.stderr, self.stderr_tail_lines) or tail_lines(
                result.stdout, self.stderr_tail_lines
            )
            raise ProcessingError(
                f"Processing failed: processor exited with code {result.returncode}: {detail}"
            )

        file_count = await asyncio.to_thread(count_files, work_dir)
        logger.info("Processor produced %d file(s) in %s", file_count, work_dir)
        if file_count == 0:
            staged = await asyncio.to_thread(count_files, staging_dir)
            if staged:
                raise ProcessingError(
                    f"Processing failed: processor produced no files from {staged} input file(s)"
                )
        return ProcessedOutput(directory=work_dir, file_count=file_count)


class DisabledProcessor:
    """Skips processing; raw staged files are merged as they are."""

    async def process(self, staging_dir: Path, work_dir: Path) -> ProcessedOutput:
        file_count = await asyncio.to_thread(count_files, staging_dir)
        logger.info("Processor disabled: merging %d raw file(s)", file_count)
        return ProcessedOutput(directory=staging_dir, file_count=file_count)


def build_processor(enabled: bool, config: Settings = settings) -> AudioProcessor:
    if not enabled:
        return DisabledProcessor()
    return LocalBinaryProcessor(
        config.processor_path,
        timeout=config.subprocess_timeout_seconds,
        stderr_tail_lines=config.stderr_tail_lines,
    )
