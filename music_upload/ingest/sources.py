"""Source acquisition strategies: direct upload, YouTube and Spotify.

Each strategy fills an attempt's ``incoming`` staging directory and returns
the number of files produced. Downloaders are external binaries invoked with
an explicit argument vector; the URL is always a single argv element.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from music_upload.ingest.errors import AcquisitionError, ValidationError
from music_upload.ingest.runner import run_command, tail_lines
from music_upload.ingest.staging import count_files
from music_upload.ingest.validation import validate_filename
from music_upload.models.upload_log import SourceKind
from music_upload.settings import Settings, settings

logger = logging.getLogger(__name__)


@dataclass
class FilePart:
    """One named part of a multipart upload, already read into memory."""

    filename: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class SourceAcquirer(Protocol):
    kind: SourceKind

    async def acquire(self, source: object, staging_dir: Path) -> int: ...


def check_file_parts(parts: Sequence[FilePart], config: Settings = settings) -> None:
    """Validate every part's name and size before anything is written.

    All-or-nothing: the first offending part rejects the whole upload and the
    error names that file.

    Raises:
        ValidationError: Bad filename or extension.
        AcquisitionError: Empty upload or a size limit exceeded.
    """
    if not parts:
        raise AcquisitionError("No files uploaded")

    total = 0
    for part in parts:
        validate_filename(part.filename, config.allowed_extension_set)
        if part.size == 0:
            raise AcquisitionError(f"Empty file uploaded: {part.filename!r}")
        if part.size > config.max_file_size_bytes:
            raise AcquisitionError(
                f"File too large: {part.filename!r} is {part.size // (1024 * 1024)} MB "
                f"(max: {config.max_file_size_mb} MB)"
            )
        total += part.size

    if total > config.max_total_size_bytes:
        raise AcquisitionError(
            f"Upload too large: {total // (1024 * 1024)} MB in total "
            f"(max: {config.max_total_size_mb} MB)"
        )

    names = [p.filename for p in parts]
    if len(set(names)) != len(names):
        raise ValidationError("Duplicate filenames in upload")


def _write_parts(parts: Sequence[FilePart], staging_dir: Path) -> int:
    staging_dir.mkdir(parents=True, exist_ok=True)
    for part in parts:
        target = staging_dir / part.filename
        # Re-check containment after joining; names were validated already.
        if target.resolve().parent != staging_dir.resolve():
            raise AcquisitionError(f"Refusing to write outside staging: {part.filename!r}")
        target.write_bytes(part.data)
    return len(parts)


class FileUploadSource:
    """Writes validated multipart parts into the staging directory."""

    kind = SourceKind.FILE

    def __init__(self, config: Settings = settings) -> None:
        self.config = config

    async def acquire(self, source: object, staging_dir: Path) -> int:
        parts = list(source)  # type: ignore[call-overload]
        check_file_parts(parts, self.config)
        try:
            count = await asyncio.to_thread(_write_parts, parts, staging_dir)
        except OSError as exc:
            raise AcquisitionError(f"Failed to store upload: {exc}") from exc
        logger.info("Stored %d uploaded file(s) in %s", count, staging_dir)
        return count


class DownloaderSource:
    """Base for URL sources backed by an external download tool."""

    kind: SourceKind
    tool_name: str = "downloader"

    def __init__(self, config: Settings = settings) -> None:
        self.config = config

    @property
    def binary(self) -> str:
        raise NotImplementedError

    def build_args(self, url: str, staging_dir: Path) -> list[str]:
        raise NotImplementedError

    async def acquire(self, source: object, staging_dir: Path) -> int:
        url = str(source)
        staging_dir.mkdir(parents=True, exist_ok=True)
        argv = [self.binary, *self.build_args(url, staging_dir)]
        logger.info("Running %s for %s", self.tool_name, url)

        try:
            result = await run_command(
                argv, timeout=self.config.subprocess_timeout_seconds, cwd=staging_dir
            )
        except FileNotFoundError:
            raise AcquisitionError(
                f"{self.tool_name} binary not found at '{self.binary}'. "
                "Ensure it is installed and the path is configured."
            ) from None
        except OSError as exc:
            raise AcquisitionError(f"Could not start {self.tool_name}: {exc}") from exc

        if not result.ok:
            stderr_tail = tail_lines(result.stderr, self.config.stderr_tail_lines)
            logger.error(
                "%s failed for %s (exit %d): %s",
                self.tool_name,
                url,
                result.returncode,
                stderr_tail,
            )
            raise AcquisitionError(
                f"Download failed: {self.tool_name} exited with code {result.returncode}: "
                f"{stderr_tail}"
            )

        count = await asyncio.to_thread(count_files, staging_dir)
        if count == 0:
            raise AcquisitionError(f"Download failed: {self.tool_name} produced no files")

        logger.info("%s produced %d file(s) for %s", self.tool_name, count, url)
        return count


class YoutubeSource(DownloaderSource):
    kind = SourceKind.YOUTUBE
    tool_name = "yt-dlp"

    @property
    def binary(self) -> str:
        return self.config.ytdlp_path

    def build_args(self, url: str, staging_dir: Path) -> list[str]:
        """``[options..., url, *extra_args, *player_client_flags]``."""
        args = [
            "--extract-audio",
            "--audio-format",
            self.config.youtube_audio_format,
            "--format",
            self.config.youtube_format_selector,
            "--no-playlist",
            "--output",
            f"{staging_dir}/%(title)s.%(ext)s",
            url,
            *self.config.youtube_extra_arg_list,
        ]
        if self.config.youtube_player_client:
            args += [
                "--extractor-args",
                f"youtube:player_client={self.config.youtube_player_client}",
            ]
        return args


class SpotifySource(DownloaderSource):
    kind = SourceKind.SPOTIFY
    tool_name = "spotdl"

    @property
    def binary(self) -> str:
        return self.config.spotdl_path

    def build_args(self, url: str, staging_dir: Path) -> list[str]:
        # spotdl wants an output pattern, not a bare directory.
        return [
            "download",
            url,
            "--output",
            f"{staging_dir}/{{artist}} - {{title}}.{{output-ext}}",
            "--format",
            self.config.spotify_audio_format,
            *self.config.spotify_extra_arg_list,
        ]


def build_acquirers(config: Settings = settings) -> dict[SourceKind, SourceAcquirer]:
    return {
        SourceKind.FILE: FileUploadSource(config),
        SourceKind.YOUTUBE: YoutubeSource(config),
        SourceKind.SPOTIFY: SpotifySource(config),
    }


async def acquire(
    kind: SourceKind,
    source: object,
    staging_dir: Path,
    config: Settings = settings,
) -> int:
    """Fill *staging_dir* from *source* using the strategy for *kind*."""
    return await build_acquirers(config)[kind].acquire(source, staging_dir)
