"""Tests for music_upload.ingest.validation."""

from __future__ import annotations

import pytest

from music_upload.ingest.errors import ValidationError
from music_upload.ingest.validation import (
    file_extension,
    validate,
    validate_filename,
    validate_url,
)
from music_upload.models.upload_log import SourceKind
from music_upload.settings import Settings

ALLOWED = {"mp3", "flac", "ogg", "opus", "m4a", "wav", "aac"}
YOUTUBE_HOSTS = {"youtube.com", "www.youtube.com", "m.youtube.com", "youtu.be"}


@pytest.fixture
def config() -> Settings:
    return Settings(_env_file=None)


class TestValidateFilename:
    @pytest.mark.parametrize(
        "name",
        ["track.mp3", "TRACK.MP3", "Song (Live) - Artist.flac", "01 intro.Opus", "a.b.c.wav"],
    )
    def test_accepts_audio_names(self, name: str) -> None:
        validate_filename(name, ALLOWED)

    @pytest.mark.parametrize(
        "name",
        [
            "../../etc/passwd",
            "../track.mp3",
            "dir/track.mp3",
            "dir\\track.mp3",
            "/abs/track.mp3",
            "track..mp3",
        ],
    )
    def test_rejects_path_traversal(self, name: str) -> None:
        with pytest.raises(ValidationError, match="path traversal"):
            validate_filename(name, ALLOWED)

    @pytest.mark.parametrize("name", ["", "   "])
    def test_rejects_empty(self, name: str) -> None:
        with pytest.raises(ValidationError, match="empty"):
            validate_filename(name, ALLOWED)

    @pytest.mark.parametrize("name", ["bad\x00.mp3", "line\nbreak.mp3", "tab\t.mp3", "del\x7f.mp3"])
    def test_rejects_control_characters(self, name: str) -> None:
        with pytest.raises(ValidationError, match="control"):
            validate_filename(name, ALLOWED)

    @pytest.mark.parametrize("name", ["setup.exe", "notes.txt", "noextension", "mp3"])
    def test_rejects_disallowed_extension(self, name: str) -> None:
        with pytest.raises(ValidationError, match="not allowed"):
            validate_filename(name, ALLOWED)

    def test_error_names_the_file(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_filename("cover.jpg", ALLOWED)
        assert "cover.jpg" in str(exc_info.value)

    def test_extension_is_lowercased(self) -> None:
        assert file_extension("Track.FLAC") == "flac"
        assert file_extension("noext") == ""


class TestValidateUrl:
    @pytest.mark.parametrize(
        "url",
        [
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://youtu.be/dQw4w9WgXcQ",
            "https://m.youtube.com/watch?v=abc",
            "https://WWW.YOUTUBE.COM/watch?v=abc",
        ],
    )
    def test_accepts_provider_urls(self, url: str) -> None:
        validate_url(url, YOUTUBE_HOSTS)

    @pytest.mark.parametrize(
        "url",
        [
            "https://evil.com/foo",
            "https://evil.com/watch?v=youtube.com",
            "https://youtube.com.evil.com/watch?v=abc",
            "https://notyoutube.com/watch?v=abc",
            "https://evil.com/youtube.com/watch",
        ],
    )
    def test_rejects_foreign_hosts(self, url: str) -> None:
        with pytest.raises(ValidationError, match="not an allowed provider"):
            validate_url(url, YOUTUBE_HOSTS)

    @pytest.mark.parametrize(
        "url",
        ["http://www.youtube.com/watch?v=abc", "ftp://youtube.com/x", "youtube.com/watch?v=abc"],
    )
    def test_requires_https(self, url: str) -> None:
        with pytest.raises(ValidationError):
            validate_url(url, YOUTUBE_HOSTS)

    def test_rejects_long_urls(self) -> None:
        url = "https://www.youtube.com/watch?v=" + "a" * 200
        with pytest.raises(ValidationError, match="longer than 200"):
            validate_url(url, YOUTUBE_HOSTS, max_length=200)

    @pytest.mark.parametrize(
        "url",
        [
            "https://www.youtube.com/watch?v=abc;rm -rf",
            "https://www.youtube.com/watch?v=abc|cat",
            "https://www.youtube.com/watch?v=`id`",
            "https://www.youtube.com/watch?v=$HOME",
            "https://www.youtube.com/watch?v=abc&list=x",
            "https://www.youtube.com/watch?v=abc&&id",
            "https://www.youtube.com/watch?v=abc||id",
            "https://www.youtube.com/watch?v=abc\nid",
        ],
    )
    def test_rejects_shell_metacharacters(self, url: str) -> None:
        with pytest.raises(ValidationError, match="forbidden characters"):
            validate_url(url, YOUTUBE_HOSTS)

    def test_rejects_embedded_credentials(self) -> None:
        with pytest.raises(ValidationError, match="credentials"):
            validate_url("https://user:pw@www.youtube.com/watch?v=abc", YOUTUBE_HOSTS)

    def test_userinfo_cannot_smuggle_host(self) -> None:
        with pytest.raises(ValidationError):
            validate_url("https://www.youtube.com@evil.com/watch?v=abc", YOUTUBE_HOSTS)

    def test_rejects_whitespace(self) -> None:
        with pytest.raises(ValidationError):
            validate_url("https://www.youtube.com/watch?v=a b", YOUTUBE_HOSTS)

    def test_required_path_prefix(self) -> None:
        hosts = {"open.spotify.com"}
        validate_url(
            "https://open.spotify.com/track/abc", hosts, required_path_prefixes=("/track/",)
        )
        with pytest.raises(ValidationError, match="path must start"):
            validate_url(
                "https://open.spotify.com/user/abc", hosts, required_path_prefixes=("/track/",)
            )


class TestValidateByKind:
    def test_file_kind_checks_filename(self, config: Settings) -> None:
        validate(SourceKind.FILE, "track.mp3", config)
        with pytest.raises(ValidationError):
            validate(SourceKind.FILE, "../../etc/passwd", config)

    def test_youtube_kind_uses_youtube_domains(self, config: Settings) -> None:
        validate(SourceKind.YOUTUBE, "https://youtu.be/abc", config)
        with pytest.raises(ValidationError):
            validate(SourceKind.YOUTUBE, "https://open.spotify.com/track/abc", config)

    @pytest.mark.parametrize(
        "url",
        [
            "https://open.spotify.com/track/4uLU6hMCjMI75M1A2tKUQC",
            "https://open.spotify.com/album/1DFixLWuPkv3KT3TnV35m3",
            "https://open.spotify.com/playlist/37i9dQZF1DXcBWIGoYBM5M",
            "https://open.spotify.com/artist/0OdUWJ0sBjDrqHygGUXeCF",
        ],
    )
    def test_spotify_kind_accepts_catalog_urls(self, config: Settings, url: str) -> None:
        validate(SourceKind.SPOTIFY, url, config)

    def test_spotify_kind_rejects_other_paths(self, config: Settings) -> None:
        with pytest.raises(ValidationError):
            validate(SourceKind.SPOTIFY, "https://open.spotify.com/user/someone", config)

    def test_spotify_kind_rejects_youtube(self, config: Settings) -> None:
        with pytest.raises(ValidationError):
            validate(SourceKind.SPOTIFY, "https://www.youtube.com/watch?v=abc", config)
