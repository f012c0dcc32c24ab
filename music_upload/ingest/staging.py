"""Per-attempt staging directories and per-user library resolution.

Staging layout: ``{staging_root}/attempt-{id}/incoming`` holds acquired files,
``{staging_root}/attempt-{id}/processed`` is the processor's private output.
Attempt ids are unique, so concurrent attempts never share a directory.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from music_upload.settings import Settings, settings

logger = logging.getLogger(__name__)

DEFAULT_LIBRARY_SUBDIR = "default"


@dataclass(frozen=True)
class Owner:
    """Authenticated identity driving an attempt."""

    user_id: str
    library_path: str | None = None


def resolve_library_dir(library_path: str | None, config: Settings = settings) -> Path:
    """Return the library directory an attempt merges into.

    A user without a ``library_path`` shares the global library root. A user
    whose ``library_path`` *is* the global root gets ``{root}/default`` so
    files are never dumped into the shared root directly.
    """
    root = Path(config.library_root)
    if not library_path:
        return root

    user_path = Path(library_path)
    if user_path.resolve() == root.resolve():
        return root / DEFAULT_LIBRARY_SUBDIR
    return user_path


def check_library_path(value: str) -> str:
    """Validate an administrator-supplied per-user library path.

    Raises:
        ValueError: Empty, relative, or containing ``..`` or control characters.
    """
    path = value.strip()
    if not path:
        raise ValueError("Library path cannot be empty")
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in path):
        raise ValueError("Library path contains control characters")
    if ".." in Path(path).parts:
        raise ValueError("Library path contains invalid characters (..)")
    if not Path(path).is_absolute():
        raise ValueError("Library path must be absolute")
    return path


def staging_dir_for(attempt_id: int, config: Settings = settings) -> Path:
    """Directory owned by a single attempt."""
    return Path(config.staging_root) / f"attempt-{attempt_id}"


@dataclass
class StagingArea:
    """Temporary directory tree exclusively owned by one attempt."""

    root: Path

    @classmethod
    def for_attempt(cls, attempt_id: int, config: Settings = settings) -> StagingArea:
        return cls(root=staging_dir_for(attempt_id, config))

    @property
    def incoming(self) -> Path:
        return self.root / "incoming"

    @property
    def processed(self) -> Path:
        return self.root / "processed"

    def create(self) -> None:
        """Create the directory tree; reusing an existing tree is allowed."""
        self.incoming.mkdir(parents=True, exist_ok=True)
        self.processed.mkdir(parents=True, exist_ok=True)

    def remove(self) -> bool:
        """Remove the whole tree, best effort. Returns True if nothing is left."""
        if not self.root.exists():
            return True
        shutil.rmtree(self.root, ignore_errors=True)
        if self.root.exists():
            logger.warning("Failed to fully remove staging directory %s", self.root)
            return False
        return True

    async def cleanup(self) -> bool:
        return await asyncio.to_thread(self.remove)


def count_files(directory: Path) -> int:
    """Count regular files below *directory* (recursive, symlinks excluded)."""
    if not directory.is_dir():
        return 0
    return sum(1 for p in directory.rglob("*") if p.is_file() and not p.is_symlink())
