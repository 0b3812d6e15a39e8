from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from mastering.config import MasteringConfig
from mastering.db.database import create_tables
from mastering.models import AudioFile, AudioStatus, ProcessingPreset
from mastering.utils.storage import LocalStorage


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    create_tables(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    yield factory
    engine.dispose()


@pytest.fixture
def storage(tmp_path: Path) -> LocalStorage:
    root = tmp_path / "data"
    root.mkdir()
    return LocalStorage(root)


@pytest.fixture
def config() -> MasteringConfig:
    return MasteringConfig()


@pytest.fixture
def make_audio_file(session_factory, storage):
    """Create an uploaded AudioFile row (and its input file unless told not to)."""

    def _make(content: bytes = b"RIFF....WAVEfmt dummy audio", *, post_eq=None, create_input=True,
              status=AudioStatus.UPLOADED, filename="song.wav"):
        relative = f"audio/original/{filename}"
        if create_input:
            path = storage.path(relative)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        with session_factory() as db:
            preset = None
            if post_eq is not None:
                preset = ProcessingPreset(name="Test preset", settings={"post_eq": post_eq})
                db.add(preset)
                db.flush()
            audio_file = AudioFile(
                original_filename=filename,
                original_path=relative,
                mime_type="audio/wav",
                file_size=len(content),
                status=status,
                preset_id=preset.id if preset else None,
            )
            db.add(audio_file)
            db.commit()
            return audio_file.id

    return _make
