"""Move processed files into the permanent per-user library.

Staging and library are frequently different mounts in containerized
deployments, so a cross-device rename is an ordinary branch: the file is
copied next to its destination, verified by size, renamed into place, and
only then is the source removed.

Per-file failures never abort the remaining files. Files already merged stay
in the library even if a sibling fails; the caller decides how to report a
partial merge.
"""

from __future__ import annotations

import asyncio
import errno
import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from music_upload.ingest.errors import MergeError

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".partial"


@dataclass
class MergeFailure:
    """A single file that could not be merged."""

    path: str
    error: str


@dataclass
class MergeReport:
    """Summary of one merge run."""

    merged: int = 0
    failed: int = 0
    errors: list[MergeFailure] = field(default_factory=list)
    merged_paths: list[Path] = field(default_factory=list)

    def summary(self, max_items: int = 5) -> str:
        shown = "; ".join(f"{e.path}: {e.error}" for e in self.errors[:max_items])
        more = f" (+{len(self.errors) - max_items} more)" if len(self.errors) > max_items else ""
        total = self.merged + self.failed
        return f"{self.failed} of {total} file(s) failed to merge: {shown}{more}"


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.resolve().relative_to(root.resolve())
    except ValueError:
        return False
    return True


def copy_verify_replace(source: Path, destination: Path) -> None:
    """Copy *source* over *destination* via a verified temporary file, then delete *source*.

    Raises:
        OSError: If copying fails or the copy's size differs from the source.
    """
    partial = destination.with_name(destination.name + PARTIAL_SUFFIX)
    try:
        shutil.copy2(source, partial)
        expected = source.stat().st_size
        actual = partial.stat().st_size
        if actual != expected:
            raise OSError(f"size mismatch after copy ({actual} != {expected} bytes)")
        os.replace(partial, destination)
    except BaseException:
        partial.unlink(missing_ok=True)
        raise
    source.unlink()


def move_file(source: Path, destination: Path) -> None:
    """Atomic rename, falling back to copy+verify+delete across filesystems."""
    try:
        os.replace(source, destination)
    except OSError as exc:
        if exc.errno != errno.EXDEV:
            raise
        logger.debug("Cross-device move for %s, copying instead", source.name)
        copy_verify_replace(source, destination)


def merge_tree(processed_dir: Path, library_dir: Path) -> MergeReport:
    """Move every file under *processed_dir* into *library_dir*, keeping the subtree.

    Symlinks are skipped. Destinations that would resolve outside
    *library_dir* are recorded as failures.

    Raises:
        MergeError: *library_dir* itself cannot be created.
    """
    report = MergeReport()
    try:
        library_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise MergeError(f"Cannot create library directory {library_dir}: {exc}") from exc

    sources = sorted(p for p in processed_dir.rglob("*") if p.is_file() and not p.is_symlink())

    for source in sources:
        relative = source.relative_to(processed_dir)
        destination = library_dir / relative

        if not _is_within(destination, library_dir):
            logger.warning("Merge blocked, destination escapes library: %s", destination)
            report.failed += 1
            report.errors.append(MergeFailure(str(relative), "destination outside library"))
            continue

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            move_file(source, destination)
        except OSError as exc:
            logger.error("Failed to merge %s -> %s: %s", source, destination, exc)
            report.failed += 1
            report.errors.append(MergeFailure(str(relative), str(exc)))
            continue

        report.merged += 1
        report.merged_paths.append(destination)

    logger.info(
        "Merged %d file(s) into %s (%d failed)", report.merged, library_dir, report.failed
    )
    return report


async def merge(processed_dir: Path, library_dir: Path) -> MergeReport:
    """Async wrapper running :func:`merge_tree` in a worker thread."""
    return await asyncio.to_thread(merge_tree, processed_dir, library_dir)
