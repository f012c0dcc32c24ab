import shlex

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Service
    service_port: int = 8080
    service_host: str = "0.0.0.0"  # nosec B104

    # CORS
    cors_origins: str = "http://localhost:8080"

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/music_upload.db"

    # JWT
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 24 * 60

    # App metadata
    app_name: str = "music-upload-service"
    app_version: str = "0.1.0"

    # Admin
    admin_api_key: str = ""  # Empty = admin endpoints locked (fail-closed)
    default_admin_username: str = "admin"
    default_admin_password: str = "admin"

    # Storage
    library_root: str = "./data/music"
    staging_root: str = "./data/staging"

    # Upload limits
    allowed_extensions: str = "mp3,flac,ogg,opus,m4a,wav,aac"
    max_file_size_mb: int = 500
    max_total_size_mb: int = 2000
    max_url_length: int = 200

    # YouTube (yt-dlp)
    youtube_enabled: bool = True
    ytdlp_path: str = "yt-dlp"
    youtube_audio_format: str = "best"
    youtube_format_selector: str = "bestaudio/best"
    youtube_player_client: str | None = "web"
    youtube_extra_args: str = ""  # shell-style quoting, never run through a shell
    youtube_domains: str = "youtube.com,www.youtube.com,m.youtube.com,music.youtube.com,youtu.be"

    # Spotify (spotdl)
    spotify_enabled: bool = True
    spotdl_path: str = "spotdl"
    spotify_audio_format: str = "opus"
    spotify_extra_args: str = ""  # shell-style quoting, never run through a shell
    spotify_domains: str = "open.spotify.com"

    # External processor
    processor_enabled: bool = True
    processor_path: str = "/usr/local/bin/ferric"

    # Subprocess and failure reporting
    subprocess_timeout_seconds: float = 1800.0
    stderr_tail_lines: int = 20
    max_error_message_chars: int = 2000

    # Seconds to wait for in-flight attempts on shutdown
    shutdown_grace_seconds: float = 30.0

    @field_validator("youtube_extra_args", "spotify_extra_args")
    @classmethod
    def check_extra_args_quoting(cls, value: str) -> str:
        shlex.split(value)
        return value

    @property
    def cors_origin_list(self) -> list[str]:
        return _split_csv(self.cors_origins)

    @property
    def allowed_extension_set(self) -> set[str]:
        return {ext.lower().lstrip(".") for ext in _split_csv(self.allowed_extensions)}

    @property
    def youtube_domain_set(self) -> set[str]:
        return {d.lower() for d in _split_csv(self.youtube_domains)}

    @property
    def spotify_domain_set(self) -> set[str]:
        return {d.lower() for d in _split_csv(self.spotify_domains)}

    @property
    def youtube_extra_arg_list(self) -> list[str]:
        return shlex.split(self.youtube_extra_args)

    @property
    def spotify_extra_arg_list(self) -> list[str]:
        return shlex.split(self.spotify_extra_args)

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    @property
    def max_total_size_bytes(self) -> int:
        return self.max_total_size_mb * 1024 * 1024


settings = Settings()
