from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from music_upload.ingest.staging import check_library_path


def _optional_library_path(value: str | None) -> str | None:
    return None if value is None else check_library_path(value)


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=8, max_length=1024)
    is_admin: bool = False
    # Absent means the user shares the global library root
    library_path: str | None = None

    @field_validator("library_path")
    @classmethod
    def validate_library_path(cls, value: str | None) -> str | None:
        return _optional_library_path(value)


class LibraryPathUpdate(BaseModel):
    """``null`` moves the user back to the global library root."""

    library_path: str | None

    @field_validator("library_path")
    @classmethod
    def validate_library_path(cls, value: str | None) -> str | None:
        return _optional_library_path(value)


class PasswordReset(BaseModel):
    new_password: str = Field(min_length=8, max_length=1024)


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    is_admin: bool
    library_path: str | None = None
    created_at: datetime | None = None
