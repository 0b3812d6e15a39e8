"""Exceptions raised by the mastering pipeline.

``str()`` of a :class:`MasteringPipelineError` is what ends up in
``AudioFile.error_message``, so messages are written for humans.
"""


class MasteringPipelineError(Exception):
    """Base exception for the mastering pipeline."""


class PreconditionError(MasteringPipelineError):
    """Input file or working directories are unusable; no stage was attempted."""


class MasteringError(MasteringPipelineError):
    """Stage 1 tool ran and failed (non-zero exit, timeout, missing output)."""


class EQError(MasteringPipelineError):
    """The EQ engine could not enhance a file."""


class FinalizationError(MasteringPipelineError):
    """Copying a stage output to its canonical location failed."""


class InvalidStatusTransition(MasteringPipelineError):
    """An AudioFile status change would break the forward-only lifecycle."""


class AudioFileNotFound(MasteringPipelineError):
    """No AudioFile row exists for the requested id."""


class ProcessTimeout(Exception):
    """A subprocess exceeded its timeout and was killed."""

    def __init__(self, command, timeout: float, stderr: str = "") -> None:
        super().__init__(f"Command {command!r} timed out after {timeout}s")
        self.command = command
        self.timeout = timeout
        self.stderr = stderr
