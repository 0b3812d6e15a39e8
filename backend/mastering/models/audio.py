"""SQLAlchemy model for uploaded audio files and their processing status."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, BigInteger, Column, DateTime, Enum as SAEnum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from mastering.db.base import Base


class AudioStatus(str, Enum):
    """Lifecycle of an uploaded file through the mastering pipeline."""

    UPLOADED = "uploaded"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# processing -> processing covers a redelivered attempt after a worker crash.
ALLOWED_TRANSITIONS: dict[AudioStatus, frozenset[AudioStatus]] = {
    AudioStatus.UPLOADED: frozenset({AudioStatus.PROCESSING, AudioStatus.FAILED}),
    AudioStatus.PROCESSING: frozenset({AudioStatus.PROCESSING, AudioStatus.COMPLETED, AudioStatus.FAILED}),
    AudioStatus.FAILED: frozenset({AudioStatus.PROCESSING, AudioStatus.FAILED}),
    AudioStatus.COMPLETED: frozenset(),
}


def can_transition(current: AudioStatus | str | None, new: AudioStatus | str) -> bool:
    if current is None:
        return True
    return AudioStatus(new) in ALLOWED_TRANSITIONS[AudioStatus(current)]


class AudioFile(Base):
    """
    Represents an uploaded audio file.

    The row is created by the upload path in ``uploaded`` status; from then on
    only the job orchestrator changes ``status``, the output paths,
    ``error_message`` and ``metadata``.
    """
    __tablename__ = "audio_files"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    user_id = Column(Integer, nullable=True, index=True, comment="Owner of the upload.")
    preset_id = Column(Integer, ForeignKey("processing_presets.id", ondelete="SET NULL"), nullable=True, index=True)
    original_filename = Column(String(255), nullable=False, comment="The original filename as uploaded by the user.")
    original_path = Column(String(1024), nullable=False, comment="Path of the upload, relative to the storage root.")
    mastered_path = Column(String(1024), nullable=True, comment="Final mastered output, relative to the storage root.")
    ai_only_path = Column(String(1024), nullable=True, comment="Stage 1 output kept alongside an EQ-enhanced master.")
    mime_type = Column(String(255), nullable=True)
    file_size = Column(BigInteger, nullable=False, default=0)
    hash = Column(String(64), nullable=True, unique=True)
    status = Column(SAEnum(AudioStatus), nullable=False, default=AudioStatus.UPLOADED, index=True)
    error_message = Column(Text, nullable=True)
    # ``metadata`` is reserved on declarative classes, hence the trailing underscore.
    metadata_ = Column("metadata", JSON, nullable=True, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    preset = relationship("ProcessingPreset", back_populates="audio_files", lazy="joined")

    @property
    def status_str(self) -> str:
        return self.status.value if isinstance(self.status, AudioStatus) else str(self.status)

    @property
    def original_format(self) -> Optional[str]:
        if not self.original_filename or "." not in self.original_filename:
            return None
        return self.original_filename.rsplit(".", 1)[-1].lower()
