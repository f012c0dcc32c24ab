"""Tests for music_upload.ingest.staging."""

from __future__ import annotations

from pathlib import Path

import pytest

from music_upload.ingest.staging import (
    StagingArea,
    check_library_path,
    count_files,
    resolve_library_dir,
    staging_dir_for,
)
from music_upload.settings import Settings


class TestResolveLibraryDir:
    def test_no_user_path_uses_root(self, test_settings: Settings) -> None:
        assert resolve_library_dir(None, test_settings) == Path(test_settings.library_root)
        assert resolve_library_dir("", test_settings) == Path(test_settings.library_root)

    def test_user_path_equal_to_root_gets_default_subdir(self, test_settings: Settings) -> None:
        resolved = resolve_library_dir(test_settings.library_root, test_settings)
        assert resolved == Path(test_settings.library_root) / "default"

    def test_root_with_trailing_slash_still_matches(self, test_settings: Settings) -> None:
        resolved = resolve_library_dir(test_settings.library_root + "/", test_settings)
        assert resolved.name == "default"

    def test_distinct_user_path(self, test_settings: Settings, tmp_path: Path) -> None:
        user_dir = tmp_path / "users" / "alice"
        assert resolve_library_dir(str(user_dir), test_settings) == user_dir


class TestCheckLibraryPath:
    def test_accepts_absolute_path(self) -> None:
        assert check_library_path(" /srv/music/alice ") == "/srv/music/alice"

    @pytest.mark.parametrize(
        ("value", "message"),
        [
            ("", "empty"),
            ("relative/dir", "absolute"),
            ("/srv/music/../../etc", r"\.\."),
            ("/srv/mu\x00sic", "control"),
        ],
    )
    def test_rejects(self, value: str, message: str) -> None:
        with pytest.raises(ValueError, match=message):
            check_library_path(value)


class TestStagingArea:
    def test_per_attempt_directories_are_distinct(self, test_settings: Settings) -> None:
        assert staging_dir_for(1, test_settings) != staging_dir_for(2, test_settings)
        assert staging_dir_for(7, test_settings).name == "attempt-7"

    def test_create_and_remove(self, test_settings: Settings) -> None:
        area = StagingArea.for_attempt(3, test_settings)
        area.create()
        assert area.incoming.is_dir()
        assert area.processed.is_dir()
        (area.incoming / "x.mp3").write_bytes(b"x")

        assert area.remove() is True
        assert not area.root.exists()

    def test_create_is_reentrant(self, test_settings: Settings) -> None:
        area = StagingArea.for_attempt(4, test_settings)
        area.create()
        area.create()
        assert area.incoming.is_dir()

    async def test_cleanup_missing_tree(self, test_settings: Settings) -> None:
        area = StagingArea.for_attempt(99, test_settings)
        assert await area.cleanup() is True


class TestCountFiles:
    def test_counts_recursively(self, tmp_path: Path) -> None:
        (tmp_path / "a" / "b").mkdir(parents=True)
        (tmp_path / "one.mp3").write_bytes(b"1")
        (tmp_path / "a" / "b" / "two.mp3").write_bytes(b"2")
        (tmp_path / "link.mp3").symlink_to(tmp_path / "one.mp3")
        assert count_files(tmp_path) == 2

    def test_missing_directory(self, tmp_path: Path) -> None:
        assert count_files(tmp_path / "nope") == 0
