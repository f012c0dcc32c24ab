from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from music_upload.models.upload_log import SourceKind, UploadStatus


class UrlUploadRequest(BaseModel):
    """Body for YouTube and Spotify submissions."""

    url: str = Field(min_length=1, max_length=2048)


class UploadAccepted(BaseModel):
    """Synchronous acknowledgement; processing continues in the background."""

    attempt_id: int
    status: UploadStatus
    message: str


class UploadLogEntry(BaseModel):
    """One upload attempt as recorded in the upload log."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    source_kind: SourceKind
    source: str
    status: UploadStatus
    file_count: int
    error_message: str | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None


class RuntimeSettingUpdate(BaseModel):
    value: str = Field(min_length=1, max_length=1000)


class RuntimeSettingsResponse(BaseModel):
    settings: dict[str, str]


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
