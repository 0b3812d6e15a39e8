"""Five-band equalizer built on FFmpeg filters."""

from __future__ import annotations

import logging
import shutil
import time
import uuid
from pathlib import Path
from typing import Any, Dict

import ffmpeg

from ..config import MasteringConfig
from ..errors import EQError
from ..utils.storage import Storage, ensure_dir_exists
from .eq import EQSettings
from .file_lifecycle import EQ_OUTPUT_MARKER

logger = logging.getLogger(__name__)

# Shelving filters for the outer bands, peaking filters in between
BAND_FILTERS: Dict[str, Dict[str, Any]] = {
    "bass": {"filter": "bass", "frequency": 80, "q": 0.7},
    "low_mid": {"filter": "equalizer", "frequency": 200, "q": 1.0},
    "mid": {"filter": "equalizer", "frequency": 1000, "q": 1.4},
    "high_mid": {"filter": "equalizer", "frequency": 5000, "q": 1.0},
    "treble": {"filter": "treble", "frequency": 10000, "q": 0.7},
}


class FFmpegEQEngine:
    def __init__(self, storage: Storage, config: MasteringConfig) -> None:
        self.config = config
        self.temp_directory = storage.path(config.eq_temp_directory)

    def output_path_for(self, input_path: Path) -> Path:
        suffix = input_path.suffix or f".{self.config.output_format}"
        token = uuid.uuid4().hex[:8]
        return self.temp_directory / f"{input_path.stem}{EQ_OUTPUT_MARKER}{int(time.time())}_{token}{suffix}"

    def enhance(self, input_path: Path, settings: EQSettings) -> Path:
        """
        Applies the EQ curve in ``settings`` to ``input_path``.

        Args:
            input_path: The AI-mastered file.
            settings: Per-band gains in dB; zero-gain bands are left out of the chain.

        Returns:
            Path of the enhanced file inside the EQ temp directory.

        Raises:
            FileNotFoundError: If the input file does not exist.
            EQError: If a gain is out of range or FFmpeg fails.
        """
        if not input_path.exists():
            raise FileNotFoundError(f"AI mastered file not found: {input_path}")

        settings.validate(self.config.min_gain_db, self.config.max_gain_db)
        ensure_dir_exists(self.temp_directory)
        output_path = self.output_path_for(input_path)

        try:
            node = ffmpeg.input(str(input_path))
            for band, gain in settings.gains().items():
                if gain == 0:
                    continue
                band_filter = BAND_FILTERS[band]
                node = ffmpeg.filter(node, band_filter["filter"], f=band_filter["frequency"], width_type="q", w=band_filter["q"], g=gain)
            # Keep the EQ boosts from clipping
            node = ffmpeg.filter(node, "alimiter", limit=0.98)
            stream = ffmpeg.output(node, str(output_path))
            logger.debug("FFmpeg EQ stream configured for output: %s", output_path)
            ffmpeg.run(
                stream,
                cmd=self.config.ffmpeg_path,
                global_args=["-hide_banner", "-loglevel", "error"],
                overwrite_output=True,
                capture_stdout=True,
                capture_stderr=True,
            )
        except ffmpeg.Error as e:
            error_details = e.stderr.decode("utf8", "replace") if e.stderr else "No stderr details from FFmpeg."
            logger.error("FFmpeg error during EQ processing for %s. Details: %s", input_path, error_details)
            _remove_partial(output_path)
            raise EQError(f"EQ processing failed: {error_details[:500]}") from e
        except Exception:
            _remove_partial(output_path)
            raise

        logger.info("EQ processing completed: %s -> %s", input_path.name, output_path.name)
        return output_path

    def cleanup_temp_files(self, hours_old: int | None = None) -> int:
        """Delete EQ outputs older than ``hours_old`` hours; returns how many were removed."""
        hours_old = self.config.eq_cleanup_hours if hours_old is None else hours_old
        if not self.temp_directory.is_dir():
            return 0

        cutoff = time.time() - hours_old * 3600
        cleaned = 0
        for path in self.temp_directory.glob(f"*{EQ_OUTPUT_MARKER}*"):
            try:
                if path.is_file() and path.stat().st_mtime < cutoff:
                    path.unlink()
                    cleaned += 1
            except OSError as exc:
                logger.warning("Could not remove stale EQ temp file %s: %s", path, exc)

        logger.info("EQ temp file cleanup completed: %d removed (older than %dh)", cleaned, hours_old)
        return cleaned

    def stats(self) -> Dict[str, Any]:
        files = []
        if self.temp_directory.is_dir():
            files = [p for p in self.temp_directory.glob(f"*{EQ_OUTPUT_MARKER}*") if p.is_file()]
        total = sum(p.stat().st_size for p in files)
        return {
            "temp_files_count": len(files),
            "temp_files_size_mb": round(total / (1024 * 1024), 2),
            "temp_directory": str(self.temp_directory),
            "ffmpeg_available": shutil.which(self.config.ffmpeg_path) is not None,
        }


def _remove_partial(output_path: Path) -> None:
    if output_path.exists():
        try:
            output_path.unlink()
            logger.debug("Removed partially created file: %s", output_path)
        except OSError as os_err:
            logger.error("Could not remove partially created file %s: %s", output_path, os_err, exc_info=True)
