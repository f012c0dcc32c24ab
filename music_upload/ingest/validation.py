"""Sanitization of untrusted filenames and URLs.

Runs before any acquisition side effect: a rejected source never creates a
staging directory and never spawns a process. URLs are passed to external
tools as a single argv element, but shell metacharacters are still refused
because a downstream tool may itself shell out.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import PurePosixPath
from urllib.parse import urlsplit

from music_upload.ingest.errors import ValidationError
from music_upload.models.upload_log import SourceKind
from music_upload.settings import Settings, settings

# Characters that carry meaning to a shell; "&&" and "||" are covered by "&" and "|".
FORBIDDEN_URL_CHARS: frozenset[str] = frozenset(";|`$&\n\r")

SPOTIFY_PATH_PREFIXES: tuple[str, ...] = ("/track/", "/album/", "/playlist/", "/artist/")


def _has_control_char(value: str) -> bool:
    return any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in value)


def file_extension(filename: str) -> str:
    """Return the lower-cased extension of *filename* without the dot."""
    return PurePosixPath(filename).suffix.lower().lstrip(".")


def validate_filename(filename: str, allowed_extensions: Iterable[str]) -> None:
    """Reject filenames that could escape the staging directory or are not audio.

    Raises:
        ValidationError: With a reason that names the offending file.
    """
    if not filename or not filename.strip():
        raise ValidationError("Invalid filename: empty name")

    if ".." in filename or "/" in filename or "\\" in filename:
        raise ValidationError(f"Invalid filename {filename!r}: path traversal attempt detected")

    if _has_control_char(filename):
        raise ValidationError(f"Invalid filename {filename!r}: contains control characters")

    extension = file_extension(filename)
    allowed = {ext.lower().lstrip(".") for ext in allowed_extensions}
    if not extension or extension not in allowed:
        shown = f".{extension}" if extension else "(none)"
        raise ValidationError(f"File type {shown} not allowed for {filename!r}")


def validate_url(
    url: str,
    allowed_hosts: Iterable[str],
    *,
    max_length: int = 200,
    required_path_prefixes: tuple[str, ...] = (),
) -> None:
    """Reject URLs that are not plain HTTPS links to one of *allowed_hosts*.

    Raises:
        ValidationError: With the reason for rejection.
    """
    if not url:
        raise ValidationError("Invalid URL: empty")

    if len(url) > max_length:
        raise ValidationError(f"Invalid URL: longer than {max_length} characters")

    bad = sorted({ch for ch in url if ch in FORBIDDEN_URL_CHARS})
    if bad:
        raise ValidationError(f"Invalid URL: contains forbidden characters {''.join(bad)!r}")

    if _has_control_char(url) or any(ch.isspace() for ch in url):
        raise ValidationError("Invalid URL: contains whitespace or control characters")

    try:
        parts = urlsplit(url)
        host = (parts.hostname or "").lower()
        # Accessing .port validates it; a malformed port raises ValueError.
        _ = parts.port
    except ValueError as exc:
        raise ValidationError(f"Invalid URL: {exc}") from None

    if parts.scheme.lower() != "https":
        raise ValidationError("Invalid URL: scheme must be https")

    if parts.username is not None or parts.password is not None:
        raise ValidationError("Invalid URL: embedded credentials are not allowed")

    if host not in {h.lower() for h in allowed_hosts}:
        raise ValidationError(f"Invalid URL: host {host!r} is not an allowed provider domain")

    if required_path_prefixes and not parts.path.startswith(required_path_prefixes):
        raise ValidationError(
            "Invalid URL: path must start with one of " + ", ".join(required_path_prefixes)
        )


def validate(kind: SourceKind, source: str, config: Settings = settings) -> None:
    """Validate a single source of the given kind.

    For ``file`` sources *source* is the client-supplied filename; for
    ``youtube`` and ``spotify`` it is the URL.
    """
    if kind == SourceKind.FILE:
        validate_filename(source, config.allowed_extension_set)
    elif kind == SourceKind.YOUTUBE:
        validate_url(source, config.youtube_domain_set, max_length=config.max_url_length)
    elif kind == SourceKind.SPOTIFY:
        validate_url(
            source,
            config.spotify_domain_set,
            max_length=config.max_url_length,
            required_path_prefixes=SPOTIFY_PATH_PREFIXES,
        )
    else:
        raise ValidationError(f"Unknown source kind: {kind!r}")
