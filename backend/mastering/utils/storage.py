"""Filesystem storage helpers.

Every path persisted on an ``AudioFile`` is relative to the storage root so
the data directory can move between hosts and containers.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Protocol, Union

logger = logging.getLogger(__name__)

# Determine base data directory:
# 1. Use DATA_ROOT env var if set.
# 2. Else, if /data exists, assume Docker environment and use /data.
# 3. Otherwise, use project_root/data (development environment).
_PROJECT_ROOT = Path(__file__).resolve().parents[3]
_ENV_DATA_ROOT = os.getenv("DATA_ROOT")
if _ENV_DATA_ROOT:
    DATA_ROOT = Path(_ENV_DATA_ROOT)
elif Path("/data").exists():
    DATA_ROOT = Path("/data")
else:
    DATA_ROOT = _PROJECT_ROOT / "data"

PathLike = Union[str, Path]


def ensure_dir_exists(path: Path) -> Path:
    """Ensure that the given directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


class Storage(Protocol):
    def path(self, relative_path: PathLike) -> Path: ...
    def exists(self, relative_path: PathLike) -> bool: ...
    def size(self, relative_path: PathLike) -> int: ...
    def delete(self, relative_path: PathLike) -> bool: ...


class LocalStorage:
    """Storage disk backed by a local directory."""

    def __init__(self, root: PathLike = DATA_ROOT) -> None:
        self.root = Path(root)

    def path(self, relative_path: PathLike) -> Path:
        return self.root / Path(relative_path)

    def exists(self, relative_path: PathLike) -> bool:
        return self.path(relative_path).exists()

    def size(self, relative_path: PathLike) -> int:
        return self.path(relative_path).stat().st_size

    def delete(self, relative_path: PathLike) -> bool:
        """Remove a file; returns False when there was nothing to remove."""
        target = self.path(relative_path)
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        logger.debug("Deleted %s", target)
        return True
