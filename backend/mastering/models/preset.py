"""Processing presets: named bundles of AI mastering and post-EQ settings."""

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from mastering.db.base import Base


class ProcessingPreset(Base):
    """
    ``settings`` holds ``{"ai_mastering": {...}, "post_eq": {...}}``; the
    ``post_eq`` block is what Stage 2 consumes.
    """
    __tablename__ = "processing_presets"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(String(1024), nullable=True)
    settings = Column(JSON, nullable=False, default=dict)
    is_default = Column(Boolean, nullable=False, default=False)
    user_id = Column(Integer, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)

    audio_files = relationship("AudioFile", back_populates="preset")

    @property
    def post_eq_block(self) -> Any:
        """The stored ``post_eq`` value as-is, which may not be a mapping."""
        settings = self.settings if isinstance(self.settings, Mapping) else {}
        return settings.get("post_eq")

    @property
    def post_eq(self) -> dict:
        block = self.post_eq_block
        return dict(block) if isinstance(block, Mapping) else {}
