"""CLI entry point for running a single upload attempt in-process.

Usage:
    python -m music_upload.ingest --user admin file ~/Music/track.mp3 ~/Music/other.flac
    python -m music_upload.ingest --user admin youtube https://www.youtube.com/watch?v=...
    python -m music_upload.ingest --user admin spotify https://open.spotify.com/track/...
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from sqlalchemy import select

from music_upload.db.session import async_session_factory
from music_upload.ingest.errors import IngestError
from music_upload.ingest.pipeline import AttemptResult, IngestPipeline
from music_upload.ingest.sources import FilePart
from music_upload.ingest.staging import Owner
from music_upload.models.upload_log import SourceKind, UploadStatus
from music_upload.models.user import User


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m music_upload.ingest",
        description="Ingest audio into a user's library.",
    )
    parser.add_argument("--user", required=True, help="Username that owns the upload")
    parser.add_argument("kind", choices=[k.value for k in SourceKind])
    parser.add_argument("sources", nargs="+", help="Audio files, or a single URL")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the ingestion CLI."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    args = _build_parser().parse_args(argv)
    kind = SourceKind(args.kind)

    if kind != SourceKind.FILE and len(args.sources) != 1:
        print(f"Error: {kind.value} takes exactly one URL", file=sys.stderr)  # noqa: T201
        sys.exit(2)

    result = asyncio.run(_run(args.user, kind, args.sources))
    _print_report(result)
    if result.status != UploadStatus.COMPLETED:
        sys.exit(1)


def _read_parts(paths: list[str]) -> list[FilePart]:
    parts = []
    for raw in paths:
        path = Path(raw)
        if not path.is_file():
            print(f"Error: '{path}' is not a file", file=sys.stderr)  # noqa: T201
            sys.exit(2)
        parts.append(FilePart(filename=path.name, data=path.read_bytes()))
    return parts


async def _run(username: str, kind: SourceKind, sources: list[str]) -> AttemptResult:
    """Submit one attempt and wait for it to finish."""
    log = logging.getLogger(__name__)

    async with async_session_factory() as session:
        user = (
            await session.execute(select(User).where(User.username == username))
        ).scalar_one_or_none()
    if user is None:
        print(f"Error: unknown user '{username}'", file=sys.stderr)  # noqa: T201
        sys.exit(2)

    owner = Owner(user_id=user.id, library_path=user.library_path)
    source: object = _read_parts(sources) if kind == SourceKind.FILE else sources[0]

    pipeline = IngestPipeline(async_session_factory)
    try:
        attempt_id = await pipeline.submit(owner, kind, source)
    except IngestError as exc:
        log.error("Upload rejected: %s", exc)
        return AttemptResult(exc.attempt_id or 0, UploadStatus.FAILED, 0, str(exc))

    result = await pipeline.wait(attempt_id)
    if result is None:
        entry = await pipeline.log.get(attempt_id)
        if entry is None:
            return AttemptResult(attempt_id, UploadStatus.FAILED, 0, "Attempt not found")
        return AttemptResult(
            attempt_id, UploadStatus(entry.status), entry.file_count, entry.error_message
        )
    return result


def _print_report(result: AttemptResult) -> None:
    print(f"\n{'=' * 60}")  # noqa: T201
    print("Upload Report")  # noqa: T201
    print(f"{'=' * 60}")  # noqa: T201
    print(f"Attempt:      {result.attempt_id}")  # noqa: T201
    print(f"Status:       {result.status}")  # noqa: T201
    print(f"Files:        {result.file_count}")  # noqa: T201
    if result.error:
        print(f"Error:        {result.error}")  # noqa: T201
    print(f"{'=' * 60}")  # noqa: T201


if __name__ == "__main__":
    main()
