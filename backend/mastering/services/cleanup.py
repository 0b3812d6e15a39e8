"""Best-effort removal of everything a job attempt may have left behind."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Union

from ..utils.storage import Storage
from .file_lifecycle import JobPaths

logger = logging.getLogger(__name__)

# Temp files are absolute paths; final outputs are storage-relative strings.
Target = Union[Path, str]


class CleanupHandler:
    """Deletes a job's temp and partial artifacts. Never raises.

    Cleanup runs while another exception is usually in flight, so failures
    here are logged and swallowed to keep the original error intact.
    """

    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    def targets(self, paths: JobPaths, include_outputs: bool = True) -> List[Target]:
        targets: List[Target] = [paths.stage1_temp]
        try:
            targets.extend(paths.eq_temp_files())
        except OSError as exc:
            logger.error("Could not list EQ temp files for job %s: %s", paths.job_id, exc)
        if include_outputs:
            targets.append(paths.mastered)
            targets.append(paths.ai_only)
        return targets

    def cleanup(self, paths: JobPaths, include_outputs: bool = True) -> List[Path]:
        """Remove artifacts for ``paths.job_id``; returns what was actually deleted.

        With ``include_outputs=False`` only temp files are swept, which is what
        runs after a successful finalization.
        """
        removed: List[Path] = []
        for target in self.targets(paths, include_outputs=include_outputs):
            try:
                deleted = self._remove(target)
            except Exception as exc:  # cleanup must not mask the triggering error
                logger.error("Failed to remove %s for job %s: %s", target, paths.job_id, exc, exc_info=True)
                continue
            if deleted:
                removed.append(self.storage.path(target) if isinstance(target, str) else target)

        if removed:
            logger.info("Cleaned up %d file(s) for job %s: %s", len(removed), paths.job_id, [p.name for p in removed])
        return removed

    def _remove(self, target: Target) -> bool:
        if isinstance(target, str):
            return self.storage.delete(target)
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        return True
