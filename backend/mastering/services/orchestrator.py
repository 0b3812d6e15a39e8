"""Job orchestration for the two-stage mastering pipeline.

A job is one attempt at mastering one ``AudioFile``:

1. check the input file exists and is readable,
2. mark the file ``processing``,
3. make sure the output and temp directories are usable,
4. Stage 1, AI mastering (or a passthrough copy),
5. Stage 2, optional EQ enhancement (degrades to the Stage 1 file),
6. copy the results to their canonical paths,
7. merge metadata and mark the file ``completed``.

Any exception along the way marks the file ``failed``, removes every file
the attempt could have produced and is re-raised for the queue runtime.
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from ..config import MasteringConfig
from ..errors import EQError, MasteringPipelineError, PreconditionError
from ..models.audio import AudioFile, AudioStatus
from ..utils.process import Runner
from ..utils.storage import LocalStorage, Storage
from .cleanup import CleanupHandler
from .eq import EQEngine, EQEnhancer, EQSettings
from .eq_engine import FFmpegEQEngine
from .file_lifecycle import FileLifecycleManager, JobPaths
from .mastering import MasteringInvoker
from .persistence import AudioFileStore

logger = logging.getLogger(__name__)

_MESSAGE_LIMIT = 500


def new_job_id() -> str:
    """Fresh id per attempt; never derived from a previous attempt."""
    return uuid.uuid4().hex


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Job:
    id: str
    audio_file_id: int
    original_path: str
    input_path: Path
    output_directory: Path
    temp_directory: Path
    paths: JobPaths
    eq_settings: Optional[EQSettings] = None
    preset_eq: Dict[str, Any] = field(default_factory=dict)
    eq_settings_error: Optional[str] = None
    original_filename: Optional[str] = None
    original_format: Optional[str] = None
    original_size: Optional[int] = None


@dataclass
class ProcessingOutcome:
    audio_file_id: int
    job_id: Optional[str]
    status: str
    mastered_path: Optional[str] = None
    ai_only_path: Optional[str] = None
    eq_applied: bool = False
    processing_time: Optional[float] = None

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class JobOrchestrator:
    def __init__(
        self,
        config: MasteringConfig,
        store: AudioFileStore,
        storage: Storage,
        lifecycle: FileLifecycleManager,
        mastering: MasteringInvoker,
        eq: EQEnhancer,
        cleanup: CleanupHandler,
    ) -> None:
        self.config = config
        self.store = store
        self.storage = storage
        self.lifecycle = lifecycle
        self.mastering = mastering
        self.eq = eq
        self.cleanup = cleanup

    def create_job(self, audio_file: AudioFile) -> Job:
        job_id = new_job_id()
        preset = audio_file.preset
        preset_eq = preset.post_eq if preset is not None else {}
        eq_settings = None
        eq_settings_error = None
        try:
            eq_settings = EQSettings.from_mapping(preset.post_eq_block if preset is not None else None)
        except EQError as exc:
            logger.warning("Ignoring invalid EQ settings on audio file %s: %s", audio_file.id, exc)
            eq_settings_error = str(exc)

        return Job(
            id=job_id,
            audio_file_id=audio_file.id,
            original_path=audio_file.original_path,
            input_path=self.storage.path(audio_file.original_path),
            output_directory=self.lifecycle.output_directory,
            temp_directory=self.lifecycle.temp_directory,
            paths=self.lifecycle.paths_for(job_id, audio_file.id),
            eq_settings=eq_settings,
            preset_eq=preset_eq,
            eq_settings_error=eq_settings_error,
            original_filename=audio_file.original_filename,
            original_format=audio_file.original_format,
            original_size=audio_file.file_size,
        )

    def check_input(self, job: Job) -> None:
        if not self.storage.exists(job.original_path) or job.input_path.is_dir():
            raise PreconditionError(f"Input file does not exist: {job.input_path}")
        if not os.access(job.input_path, os.R_OK):
            raise PreconditionError(f"Input file is not readable: {job.input_path}")

    def run(self, audio_file_id: int) -> ProcessingOutcome:
        """Run one attempt to a terminal status.

        Raises whatever made the attempt fail, after the file has been marked
        ``failed`` and the attempt's files removed.
        """
        audio_file = self.store.get(audio_file_id)
        if audio_file.status == AudioStatus.COMPLETED:
            logger.info("Audio file %s already completed, nothing to do", audio_file_id)
            return ProcessingOutcome(
                audio_file_id=audio_file_id,
                job_id=None,
                status=AudioStatus.COMPLETED.value,
                mastered_path=audio_file.mastered_path,
                ai_only_path=audio_file.ai_only_path,
                eq_applied=bool((audio_file.metadata_ or {}).get("eq_applied")),
            )

        job = self.create_job(audio_file)
        logger.info(
            "Starting two-stage audio processing for file %s (job %s): input=%s size=%s format=%s preset_eq=%s",
            job.audio_file_id, job.id, job.input_path, job.original_size, job.original_format, bool(job.preset_eq),
        )

        stage = "precondition"
        started = time.monotonic()
        try:
            self.check_input(job)

            stage = "start"
            self.store.update(job.audio_file_id, status=AudioStatus.PROCESSING, error_message=None)

            stage = "prepare"
            self.lifecycle.prepare_directories()

            stage = "ai_mastering"
            stage1_started = time.monotonic()
            stage1 = self.mastering.master(job.input_path, job.paths.stage1_temp)
            ai_time = time.monotonic() - stage1_started

            stage = "eq"
            eq_result = self.eq.enhance(stage1.output_path, job.eq_settings)

            stage = "finalize"
            mastered_path = self.lifecycle.finalize(eq_result.output_path, job.paths.mastered)
            ai_only_path = None
            if eq_result.applied and self.config.keep_ai_only_version:
                ai_only_path = self.lifecycle.finalize(stage1.output_path, job.paths.ai_only)
            # Stage 1 temp survives when EQ ran and the AI-only copy is not kept
            self.cleanup.cleanup(job.paths, include_outputs=False)

            stage = "persist"
            total_time = time.monotonic() - started
            metadata = {
                "job_id": job.id,
                "processing_time": round(total_time, 2),
                "ai_processing_time": round(ai_time, 2),
                "eq_processing_time": round(eq_result.elapsed, 2),
                "output_size": self.storage.size(mastered_path),
                "original_size": job.original_size,
                "original_format": job.original_format,
                "output_format": self.config.output_format,
                "ai_only_path": ai_only_path,
                "ai_mastering_mode": stage1.mode,
                "eq_applied": eq_result.applied,
                "eq_settings": job.eq_settings.as_dict() if job.eq_settings else dict(job.preset_eq),
                "aimastering_enabled": self.config.ai_mastering_enabled,
                "eq_processing_enabled": self.config.eq_enabled,
                "completed_at": _now(),
            }
            eq_error = eq_result.error or job.eq_settings_error
            if eq_error:
                metadata["eq_error"] = eq_error

            self.store.update(
                job.audio_file_id,
                status=AudioStatus.COMPLETED,
                mastered_path=mastered_path,
                ai_only_path=ai_only_path,
                error_message=None,
                metadata=metadata,
            )
        except Exception as exc:
            self._fail(job, stage, exc)
            raise

        logger.info(
            "Two-stage audio processing completed for file %s (job %s): total=%.2fs ai=%.2fs eq_applied=%s",
            job.audio_file_id, job.id, total_time, ai_time, eq_result.applied,
        )
        return ProcessingOutcome(
            audio_file_id=job.audio_file_id,
            job_id=job.id,
            status=AudioStatus.COMPLETED.value,
            mastered_path=mastered_path,
            ai_only_path=ai_only_path,
            eq_applied=eq_result.applied,
            processing_time=round(total_time, 2),
        )

    def _fail(self, job: Job, stage: str, exc: Exception) -> None:
        message = error_message_for(exc)
        logger.error(
            "Audio processing failed for file %s (job %s) during %s: %s",
            job.audio_file_id, job.id, stage, message, exc_info=exc,
        )
        try:
            self.store.update(
                job.audio_file_id,
                status=AudioStatus.FAILED,
                error_message=message,
                metadata={
                    "failure": {
                        "job_id": job.id,
                        "stage": stage,
                        "error_class": type(exc).__name__,
                        "error": message,
                        "failed_at": _now(),
                    }
                },
            )
        except Exception:
            logger.exception("Could not mark audio file %s as failed", job.audio_file_id)
        finally:
            self.cleanup.cleanup(job.paths)


def error_message_for(exc: BaseException) -> str:
    if isinstance(exc, MasteringPipelineError):
        message = str(exc)
    elif isinstance(exc, FileNotFoundError):
        message = f"File not found: {exc}"
    else:
        message = f"Unexpected error: {exc}"
    return message[:_MESSAGE_LIMIT]


def create_orchestrator(
    config: Optional[MasteringConfig] = None,
    session_factory: Optional[Callable[[], Session]] = None,
    storage: Optional[Storage] = None,
    runner: Optional[Runner] = None,
    eq_engine: Optional[EQEngine] = None,
) -> JobOrchestrator:
    """Wire an orchestrator from configuration, with injectable collaborators."""
    config = config or MasteringConfig.from_settings()
    storage = storage or LocalStorage()
    store = AudioFileStore(session_factory) if session_factory is not None else AudioFileStore()
    lifecycle = FileLifecycleManager(storage, config)
    return JobOrchestrator(
        config=config,
        store=store,
        storage=storage,
        lifecycle=lifecycle,
        mastering=MasteringInvoker(config, runner),
        eq=EQEnhancer(config, eq_engine or FFmpegEQEngine(storage, config)),
        cleanup=CleanupHandler(storage),
    )
