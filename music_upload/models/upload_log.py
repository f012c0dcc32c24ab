from datetime import datetime
from enum import StrEnum

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from music_upload.models import Base

MAX_SOURCE_LENGTH = 1024


class SourceKind(StrEnum):
    """Where the audio of an upload attempt comes from."""

    FILE = "file"
    YOUTUBE = "youtube"
    SPOTIFY = "spotify"


class UploadStatus(StrEnum):
    """Lifecycle of an upload attempt: pending -> processing -> completed | failed."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (UploadStatus.COMPLETED, UploadStatus.FAILED)


class UploadLog(Base):
    __tablename__ = "upload_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    source_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    source: Mapped[str] = mapped_column(String(MAX_SOURCE_LENGTH), nullable=False)

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=UploadStatus.PENDING.value
    )
    file_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "source_kind IN ('file', 'youtube', 'spotify')", name="ck_upload_logs_source_kind"
        ),
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_upload_logs_status",
        ),
        CheckConstraint("file_count >= 0", name="ck_upload_logs_file_count"),
        Index("ix_upload_logs_user_id", "user_id"),
        Index("ix_upload_logs_created_at", "created_at"),
    )
