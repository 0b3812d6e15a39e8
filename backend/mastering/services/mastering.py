"""Stage 1: loudness mastering through the external ``aimastering`` CLI."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from ..config import MasteringConfig
from ..errors import MasteringError, ProcessTimeout
from ..utils.process import ProcessRunner, Runner

logger = logging.getLogger(__name__)

MODE_TOOL = "tool"
MODE_PASSTHROUGH = "passthrough"

_STDERR_LIMIT = 500


@dataclass(frozen=True)
class MasteringResult:
    output_path: Path
    mode: str
    tool_version: Optional[str] = None


class MasteringInvoker:
    """Wraps the mastering CLI; falls back to a byte-for-byte copy.

    The copy fallback is taken when the tool is disabled in configuration or
    does not answer ``--version``. Once the tool has been found, any failure it
    reports is a real mastering failure.
    """

    def __init__(self, config: MasteringConfig, runner: Optional[Runner] = None) -> None:
        self.config = config
        self.runner = runner or ProcessRunner()

    def probe(self) -> Optional[str]:
        """Return the tool's version string, or ``None`` if it is unavailable."""
        try:
            result = self.runner.run(self.config.cli_path, ["--version"], timeout=self.config.probe_timeout_seconds)
        except (OSError, ProcessTimeout) as exc:
            logger.warning("AI mastering tool %s not available: %s", self.config.cli_path, exc)
            return None
        if not result.ok:
            logger.warning("AI mastering tool %s not available: %s", self.config.cli_path, result.stderr.strip())
            return None
        return result.stdout.strip() or "unknown"

    def health_check(self) -> Dict[str, Any]:
        version = self.probe()
        return {
            "available": version is not None,
            "version": version,
            "cli_path": self.config.cli_path,
            "enabled": self.config.ai_mastering_enabled,
        }

    def master(self, input_path: Path, output_path: Path) -> MasteringResult:
        """Produce the Stage 1 file at ``output_path``.

        Raises:
            MasteringError: the tool exited non-zero, timed out, or wrote nothing.
        """
        output_path.parent.mkdir(parents=True, exist_ok=True)

        if not self.config.ai_mastering_enabled:
            logger.info("AI mastering disabled by configuration, copying %s", input_path.name)
            return self._passthrough(input_path, output_path)

        version = self.probe()
        if version is None:
            return self._passthrough(input_path, output_path)

        args = [
            "master",
            "--input", str(input_path),
            "--output", str(output_path),
            "--target-loudness", _format_loudness(self.config.target_loudness),
        ]
        logger.info("Stage 1: running %s %s", self.config.cli_path, " ".join(args))
        try:
            result = self.runner.run(self.config.cli_path, args, timeout=self.config.timeout_seconds)
        except ProcessTimeout as exc:
            raise MasteringError(f"AI mastering timed out after {self.config.timeout_seconds}s") from exc
        except OSError as exc:
            raise MasteringError(f"AI mastering failed: {exc}") from exc

        if not result.ok:
            stderr = result.stderr.strip()[:_STDERR_LIMIT] or f"exit code {result.exit_code}"
            raise MasteringError(f"AI mastering failed: {stderr}")
        if not output_path.is_file():
            raise MasteringError("AI mastering failed: tool produced no output file")

        logger.info("Stage 1: AI mastering completed (%s bytes)", output_path.stat().st_size)
        return MasteringResult(output_path=output_path, mode=MODE_TOOL, tool_version=version)

    def _passthrough(self, input_path: Path, output_path: Path) -> MasteringResult:
        try:
            shutil.copyfile(input_path, output_path)
        except OSError as exc:
            raise MasteringError(f"Failed to copy audio file for processing: {exc}") from exc
        logger.info("Stage 1: file copied without AI mastering (%s bytes)", output_path.stat().st_size)
        return MasteringResult(output_path=output_path, mode=MODE_PASSTHROUGH)


def _format_loudness(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)
