# Namespace for ORM models.
from .audio import AudioFile, AudioStatus
from .preset import ProcessingPreset

__all__ = ["AudioFile", "AudioStatus", "ProcessingPreset"]
