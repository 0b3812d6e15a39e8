"""Application-wide configuration loader.

Two layers live here:

1. ``Settings`` parses environment variables and is exposed as the
   ``settings`` singleton that the worker and DB helpers import.
2. ``MasteringConfig`` is the explicit, immutable struct handed to the job
   orchestrator at construction time, so the pipeline itself never reads the
   environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUTHY


class Settings:
    """Settings helper that gracefully falls back to sane defaults.

    When docker-compose injects an environment variable whose value is empty
    (e.g. ``AIMASTERING_TIMEOUT=""``) ``os.getenv(KEY, default)`` returns an
    empty string, not ``None``, and ``int("")`` blows up at import time.  Every
    setting therefore uses the idiom

        os.getenv(KEY) or DEFAULT

    so that empty values are replaced by the specified DEFAULT.
    """

    DATABASE_URL: str = os.getenv('DATABASE_URL') or 'postgresql://mastering:mastering@db:5432/mastering'
    DB_ECHO: bool = _env_bool('DB_ECHO', False)
    CELERY_BROKER_URL: str = os.getenv('CELERY_BROKER_URL') or 'redis://broker:6379/0'
    CELERY_RESULT_BACKEND: str = os.getenv('CELERY_RESULT_BACKEND') or 'redis://broker:6379/0'

    # Stage 1 - AI mastering tool
    AIMASTERING_ENABLED: bool = _env_bool('AIMASTERING_ENABLED', True)
    AIMASTERING_CLI_PATH: str = os.getenv('AIMASTERING_CLI_PATH') or 'aimastering'
    AIMASTERING_TARGET_LOUDNESS: float = float(os.getenv('AIMASTERING_TARGET_LOUDNESS') or '-14')
    AIMASTERING_TIMEOUT: int = int(os.getenv('AIMASTERING_TIMEOUT') or '300')
    AIMASTERING_PROBE_TIMEOUT: int = int(os.getenv('AIMASTERING_PROBE_TIMEOUT') or '30')

    # Stage 2 - post-mastering EQ
    EQ_PROCESSING_ENABLED: bool = _env_bool('EQ_PROCESSING_ENABLED', True)
    KEEP_AI_ONLY_VERSION: bool = _env_bool('KEEP_AI_ONLY_VERSION', True)
    EQ_MIN_GAIN_DB: float = float(os.getenv('EQ_MIN_GAIN_DB') or '-18')
    EQ_MAX_GAIN_DB: float = float(os.getenv('EQ_MAX_GAIN_DB') or '18')
    EQ_CLEANUP_TEMP_FILES_HOURS: int = int(os.getenv('EQ_CLEANUP_TEMP_FILES_HOURS') or '24')
    FFMPEG_PATH: str = os.getenv('FFMPEG_PATH') or 'ffmpeg'

    # Directories are relative to the storage root (see utils.storage.DATA_ROOT)
    AUDIO_OUTPUT_DIRECTORY: str = os.getenv('AUDIO_OUTPUT_DIRECTORY') or 'audio/mastered'
    AUDIO_TEMP_DIRECTORY: str = os.getenv('AUDIO_TEMP_DIRECTORY') or 'temp/audio'
    EQ_TEMP_DIRECTORY: str = os.getenv('EQ_TEMP_DIRECTORY') or 'temp/eq'
    AUDIO_OUTPUT_FORMAT: str = os.getenv('AUDIO_OUTPUT_FORMAT') or 'wav'

settings = Settings()


@dataclass(frozen=True)
class MasteringConfig:
    """Everything the job pipeline needs to know about its environment."""

    ai_mastering_enabled: bool = True
    cli_path: str = "aimastering"
    target_loudness: float = -14.0
    timeout_seconds: int = 300
    probe_timeout_seconds: int = 30
    eq_enabled: bool = True
    keep_ai_only_version: bool = True
    min_gain_db: float = -18.0
    max_gain_db: float = 18.0
    output_directory: str = "audio/mastered"
    temp_directory: str = "temp/audio"
    eq_temp_directory: str = "temp/eq"
    output_format: str = "wav"
    ffmpeg_path: str = "ffmpeg"
    eq_cleanup_hours: int = 24

    def __post_init__(self) -> None:
        if self.min_gain_db > self.max_gain_db:
            raise ValueError(
                f"min_gain_db ({self.min_gain_db}) must not exceed max_gain_db ({self.max_gain_db})"
            )
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> "MasteringConfig":
        source = source or settings
        return cls(
            ai_mastering_enabled=source.AIMASTERING_ENABLED,
            cli_path=source.AIMASTERING_CLI_PATH,
            target_loudness=source.AIMASTERING_TARGET_LOUDNESS,
            timeout_seconds=source.AIMASTERING_TIMEOUT,
            probe_timeout_seconds=source.AIMASTERING_PROBE_TIMEOUT,
            eq_enabled=source.EQ_PROCESSING_ENABLED,
            keep_ai_only_version=source.KEEP_AI_ONLY_VERSION,
            min_gain_db=source.EQ_MIN_GAIN_DB,
            max_gain_db=source.EQ_MAX_GAIN_DB,
            output_directory=source.AUDIO_OUTPUT_DIRECTORY,
            temp_directory=source.AUDIO_TEMP_DIRECTORY,
            eq_temp_directory=source.EQ_TEMP_DIRECTORY,
            output_format=source.AUDIO_OUTPUT_FORMAT.lstrip('.'),
            ffmpeg_path=source.FFMPEG_PATH,
            eq_cleanup_hours=source.EQ_CLEANUP_TEMP_FILES_HOURS,
        )
