"""Path computation and temp-to-final moves for mastering jobs.

All paths are derived from the job id (and the audio file id for final
outputs), so two attempts never write to the same file and a retry simply
recomputes the names of whatever it might have to clean up.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List

from ..config import MasteringConfig
from ..errors import FinalizationError, PreconditionError
from ..utils.storage import Storage, ensure_dir_exists

logger = logging.getLogger(__name__)

STAGE1_PREFIX = "temp_ai_"
AI_ONLY_SUFFIX = "_ai_only"
EQ_OUTPUT_MARKER = "_processed_"


@dataclass(frozen=True)
class JobPaths:
    """Every filesystem location a single job attempt may touch."""

    job_id: str
    stage1_temp: Path
    eq_temp_directory: Path
    mastered: str
    ai_only: str

    def eq_temp_files(self) -> List[Path]:
        """EQ engine outputs derived from this job's Stage 1 file."""
        if not self.eq_temp_directory.is_dir():
            return []
        pattern = f"{self.stage1_temp.stem}{EQ_OUTPUT_MARKER}*"
        return sorted(self.eq_temp_directory.glob(pattern))


class FileLifecycleManager:
    def __init__(self, storage: Storage, config: MasteringConfig) -> None:
        self.storage = storage
        self.config = config

    @property
    def output_directory(self) -> Path:
        return self.storage.path(self.config.output_directory)

    @property
    def temp_directory(self) -> Path:
        return self.storage.path(self.config.temp_directory)

    @property
    def eq_temp_directory(self) -> Path:
        return self.storage.path(self.config.eq_temp_directory)

    def paths_for(self, job_id: str, audio_file_id: int) -> JobPaths:
        ext = self.config.output_format
        final_base = f"{self.config.output_directory.rstrip('/')}/{audio_file_id}_{job_id}"
        return JobPaths(
            job_id=job_id,
            stage1_temp=self.temp_directory / f"{STAGE1_PREFIX}{job_id}.{ext}",
            eq_temp_directory=self.eq_temp_directory,
            mastered=f"{final_base}.{ext}",
            ai_only=f"{final_base}{AI_ONLY_SUFFIX}.{ext}",
        )

    def prepare_directories(self) -> None:
        """Create output and temp directories and verify they are writable.

        Raises:
            PreconditionError: a directory cannot be created or is not writable.
        """
        for label, directory in (
            ("Output", self.output_directory),
            ("Temp", self.temp_directory),
            ("EQ temp", self.eq_temp_directory),
        ):
            try:
                ensure_dir_exists(directory)
            except OSError as exc:
                logger.error("Cannot create %s directory %s: %s", label.lower(), directory, exc)
                raise PreconditionError(f"{label} directory could not be created: {directory}") from exc
            if not os.access(directory, os.W_OK | os.X_OK):
                logger.error("%s directory %s is not writable", label, directory)
                raise PreconditionError(f"{label} directory is not writable: {directory}")
            logger.debug("Ensured %s directory exists: %s", label.lower(), directory)

    def finalize(self, temp_path: Path, final_relative: str) -> str:
        """Copy ``temp_path`` to its canonical location and drop the temp copy.

        The temp file is removed only when it is a different file from the
        destination. Returns the storage-relative final path.
        """
        destination = self.storage.path(final_relative)
        try:
            ensure_dir_exists(destination.parent)
            if not _same_file(temp_path, destination):
                shutil.copyfile(temp_path, destination)
        except OSError as exc:
            logger.error("Failed to finalize %s -> %s: %s", temp_path, destination, exc, exc_info=True)
            raise FinalizationError(f"Failed to move processed audio to {final_relative}: {exc}") from exc

        if temp_path.exists() and not _same_file(temp_path, destination):
            try:
                temp_path.unlink()
            except OSError as exc:
                # The final copy exists; leftover temp files are swept by cleanup.
                logger.warning("Could not remove temp file %s: %s", temp_path, exc)

        logger.info("Finalized %s -> %s", temp_path.name, final_relative)
        return final_relative


def _same_file(a: Path, b: Path) -> bool:
    if a.exists() and b.exists():
        return os.path.samefile(a, b)
    return a.resolve() == b.resolve()
