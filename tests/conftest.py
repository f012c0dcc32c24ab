"""Shared fixtures: isolated settings, a throwaway SQLite store, fake tools."""

from __future__ import annotations

import stat
from collections.abc import AsyncIterator
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from music_upload.db.engine import build_engine
from music_upload.models import Base, app_config, upload_log, user  # noqa: F401
from music_upload.models.user import User
from music_upload.settings import Settings


def make_executable(directory: Path, name: str, script: str) -> Path:
    """Write a ``/bin/sh`` script standing in for an external tool."""
    path = directory / name
    path.write_text("#!/bin/sh\n" + script)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


# Fake yt-dlp / spotdl: writes one file into the directory of the output template.
FAKE_DOWNLOADER = """\
out=""
while [ $# -gt 0 ]; do
  if [ "$1" = "--output" ]; then out="$2"; shift; fi
  shift
done
dir=$(dirname "$out")
printf 'fake audio' > "$dir/Fake Song.opus"
"""

# Fake processor: copies the input files into an Artist/Album subtree.
FAKE_PROCESSOR = """\
while [ $# -gt 0 ]; do
  case "$1" in
    --input-dir) in="$2"; shift ;;
    --output-dir) out="$2"; shift ;;
  esac
  shift
done
mkdir -p "$out/Various Artists/Uploads"
for f in "$in"/*; do
  cp "$f" "$out/Various Artists/Uploads/"
done
"""

FAILING_TOOL = """\
i=1
while [ $i -le 30 ]; do
  printf 'error line %02d\\n' $i >&2
  i=$((i + 1))
done
exit 1
"""

SLOW_TOOL = """\
sleep 30
"""


@pytest.fixture
def tools_dir(tmp_path: Path) -> Path:
    path = tmp_path / "bin"
    path.mkdir()
    return path


@pytest.fixture
def test_settings(tmp_path: Path, tools_dir: Path) -> Settings:
    """Settings pointing every root and tool into ``tmp_path``."""
    library = tmp_path / "library"
    staging = tmp_path / "staging"
    library.mkdir()
    staging.mkdir()
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        library_root=str(library),
        staging_root=str(staging),
        ytdlp_path=str(make_executable(tools_dir, "yt-dlp", FAKE_DOWNLOADER)),
        spotdl_path=str(make_executable(tools_dir, "spotdl", FAKE_DOWNLOADER)),
        processor_path=str(make_executable(tools_dir, "processor", FAKE_PROCESSOR)),
        processor_enabled=True,
        subprocess_timeout_seconds=10.0,
        max_file_size_mb=10,
        max_total_size_mb=20,
        admin_api_key="test-admin-key-12345",
    )


@pytest.fixture
async def session_factory(
    test_settings: Settings,
) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """File-backed SQLite so concurrent sessions see the same database."""
    engine = build_engine(test_settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def alice(session_factory: async_sessionmaker[AsyncSession]) -> User:
    async with session_factory() as session:
        user = User(username="alice", password_hash="not-a-real-hash", is_admin=False)
        session.add(user)
        await session.commit()
    return user


@pytest.fixture
async def bob(session_factory: async_sessionmaker[AsyncSession]) -> User:
    async with session_factory() as session:
        user = User(username="bob", password_hash="not-a-real-hash", is_admin=False)
        session.add(user)
        await session.commit()
    return user


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    """Client for the full application (lifespan not run)."""
    from music_upload.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
