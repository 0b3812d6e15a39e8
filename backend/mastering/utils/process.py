"""Thin wrapper around ``subprocess`` for invoking external tools safely."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import Protocol, Sequence

from ..errors import ProcessTimeout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessResult:
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class Runner(Protocol):
    def run(self, command: str, args: Sequence[str], timeout: float) -> ProcessResult:
        ...


class ProcessRunner:
    """Execute a command with arguments and a hard timeout.

    Parameters
    ----------
    command:
        Executable name or path.
    args:
        Arguments passed directly to the executable (no shell).
    timeout:
        Seconds to wait before the child is killed.

    Returns
    -------
    ProcessResult
        Exit status plus captured stdout and stderr.

    Raises
    ------
    ProcessTimeout
        The command exceeded ``timeout``; the child has already been killed.
    FileNotFoundError
        The executable does not exist.
    """

    def run(self, command: str, args: Sequence[str], timeout: float) -> ProcessResult:
        cmd = [command, *args]
        logger.debug("Running %s (timeout=%ss)", " ".join(cmd), timeout)
        try:
            # subprocess.run kills the child before re-raising TimeoutExpired
            completed = subprocess.run(
                cmd,
                check=False,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as exc:
            stderr = exc.stderr.decode("utf-8", "replace") if isinstance(exc.stderr, bytes) else (exc.stderr or "")
            logger.error("Command %s killed after %ss timeout", " ".join(cmd), timeout)
            raise ProcessTimeout(" ".join(cmd), timeout, stderr) from exc

        if completed.returncode != 0:
            logger.debug("Command %s exited with %s: %s", cmd[0], completed.returncode, completed.stderr.strip())
        return ProcessResult(completed.returncode, completed.stdout or "", completed.stderr or "")
