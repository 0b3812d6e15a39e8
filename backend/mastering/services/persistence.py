"""Atomic partial updates of ``AudioFile`` rows."""

from __future__ import annotations

import logging
from typing import Any, Callable

from sqlalchemy.orm import Session

from ..db.database import SessionLocal
from ..errors import AudioFileNotFound, InvalidStatusTransition
from ..models.audio import AudioFile, AudioStatus, can_transition
from .metadata import merge_metadata

logger = logging.getLogger(__name__)

_UPDATABLE = frozenset({"status", "mastered_path", "ai_only_path", "error_message", "metadata"})


class AudioFileStore:
    """Reads and updates AudioFile rows, one short transaction per call.

    ``update`` never replaces ``metadata``; it merges into whatever is stored
    at commit time, with the row locked where the database supports it.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self._session_factory = session_factory

    def get(self, audio_file_id: int) -> AudioFile:
        with self._session_factory() as db:
            audio_file = db.get(AudioFile, audio_file_id)
            if audio_file is None:
                raise AudioFileNotFound(f"Audio file {audio_file_id} not found")
            # preset is eagerly joined; detach so attributes stay readable
            db.expunge(audio_file)
            return audio_file

    def update(self, audio_file_id: int, **fields: Any) -> AudioFile:
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update AudioFile fields: {sorted(unknown)}")

        with self._session_factory() as db:
            try:
                audio_file = db.get(AudioFile, audio_file_id, with_for_update=True)
                if audio_file is None:
                    raise AudioFileNotFound(f"Audio file {audio_file_id} not found")

                if "status" in fields:
                    new_status = AudioStatus(fields["status"])
                    if not can_transition(audio_file.status, new_status):
                        raise InvalidStatusTransition(
                            f"Audio file {audio_file_id} cannot move from "
                            f"{audio_file.status_str} to {new_status.value}"
                        )
                    audio_file.status = new_status

                if "metadata" in fields:
                    audio_file.metadata_ = merge_metadata(audio_file.metadata_, fields["metadata"])

                for name in ("mastered_path", "ai_only_path", "error_message"):
                    if name in fields:
                        setattr(audio_file, name, fields[name])

                db.commit()
            except Exception:
                db.rollback()
                raise
            db.refresh(audio_file)
            db.expunge(audio_file)
            logger.debug("Audio file %s updated: %s", audio_file_id, sorted(fields))
            return audio_file
